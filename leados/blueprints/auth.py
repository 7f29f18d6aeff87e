"""Auth blueprint - /auth/*

JSON registration, login, logout and profile. Registration is open: every
new user starts as an sdr on the gratuito plan.

Routes:
- POST  /auth/register : create account, log in, send welcome email
- POST  /auth/login    : email + password login
- POST  /auth/logout   : end the session
- GET   /auth/me       : profile + current plan
- PATCH /auth/me       : update display_name / company / avatar_url
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash, generate_password_hash

from leados.extensions import db, limiter
from leados.models.audit import AuditEvent
from leados.models.user import User
from leados.services import onboarding_service, plan_service
from leados.utils import sanitize

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

PROFILE_FIELDS = ("display_name", "company", "avatar_url")


# ──────────────────────────────────────────────
# POST /auth/register
# ──────────────────────────────────────────────

@auth_bp.route("/register", methods=["POST"])
@limiter.limit("10 per minute")
def register():
    """Create a user, log them in and send the welcome email."""
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""
    display_name = sanitize(data.get("display_name"), max_length=255) or ""
    company = sanitize(data.get("company"), max_length=255) or ""

    # --- Validation ---
    errors = []
    if not email:
        errors.append("Email is required.")
    if not password:
        errors.append("Password is required.")
    elif len(password) < 8:
        errors.append("Password must be at least 8 characters.")
    if email and User.query.filter_by(email=email).first():
        errors.append("An account with this email already exists.")

    if errors:
        return jsonify(success=False, error=errors[0], errors=errors), 400

    # --- Create user ---
    user = User(
        email=email,
        password_hash=generate_password_hash(password),
        display_name=display_name or email.split("@")[0],
        company=company or None,
        role="sdr",
    )
    db.session.add(user)
    db.session.flush()

    db.session.add(AuditEvent(
        actor_user_id=user.id,
        action="user.registered",
        metadata_={"email": email},
    ))
    db.session.commit()

    login_user(user)

    # Welcome email is sent in the background; a failure never blocks signup
    try:
        onboarding_service.send_welcome_email(user)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Welcome email failed for {email}: {e}")

    return jsonify(success=True, user=user.to_dict()), 201


# ──────────────────────────────────────────────
# POST /auth/login
# ──────────────────────────────────────────────

@auth_bp.route("/login", methods=["POST"])
@limiter.limit("15 per minute")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""

    if not email or not password:
        return jsonify(success=False, error="Email and password are required."), 400

    user = User.query.filter_by(email=email).first()
    if user is None or not check_password_hash(user.password_hash, password):
        return jsonify(success=False, error="Invalid email or password."), 401

    if not user.is_active:
        return jsonify(success=False, error="Your account has been deactivated."), 403

    login_user(user, remember=bool(data.get("remember")))
    return jsonify(success=True, user=user.to_dict())


# ──────────────────────────────────────────────
# POST /auth/logout
# ──────────────────────────────────────────────

@auth_bp.route("/logout", methods=["POST"])
def logout():
    logout_user()
    return jsonify(success=True)


# ──────────────────────────────────────────────
# GET/PATCH /auth/me
# ──────────────────────────────────────────────

@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    user = current_user._get_current_object()
    return jsonify(success=True, user=user.to_dict(), plan=plan_service.get_user_plan(user))


@auth_bp.route("/me", methods=["PATCH"])
@login_required
def update_me():
    data = request.get_json(silent=True) or {}
    user = current_user._get_current_object()
    for field in PROFILE_FIELDS:
        if field in data:
            setattr(user, field, sanitize(data.get(field), max_length=500) or None)
    db.session.commit()
    return jsonify(success=True, user=user.to_dict())
