"""
Custom route decorators for access control.

- function_auth: function endpoints accept either a Bearer token matching
  SERVICE_API_KEY (machine callers, user taken from the "userId" body
  field) or a logged-in session. Resolves the acting user into g.user.
- plan_feature_required: rejects the request with 403 when the acting
  user's plan lacks a feature flag (e.g. can_use_whatsapp).
"""

from functools import wraps

from flask import current_app, g, jsonify, request
from flask_login import current_user, login_required

from leados.extensions import db


def function_auth(f):
    """Allow access via session OR a Bearer token matching SERVICE_API_KEY."""

    @wraps(f)
    def decorated(*args, **kwargs):
        from leados.models.user import User

        body = request.get_json(silent=True) or {}

        # Check Bearer token first (service-role callers)
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
            expected = current_app.config.get("SERVICE_API_KEY") or ""
            if not expected or token != expected:
                return jsonify(success=False, error="Invalid API key"), 401

            user_id = body.get("userId")
            if not user_id:
                return jsonify(success=False, error="userId é obrigatório"), 400

            user = db.session.get(User, str(user_id))
            if user is None or not user.is_active:
                return jsonify(success=False, error="User not found"), 404
            g.user = user
            return f(*args, **kwargs)

        # Fall back to session auth
        if not current_user.is_authenticated:
            return jsonify(success=False, error="Unauthorized"), 401
        g.user = current_user._get_current_object()
        return f(*args, **kwargs)

    return decorated


def session_user(f):
    """login_required + expose the user as g.user (same as function_auth)."""

    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        g.user = current_user._get_current_object()
        return f(*args, **kwargs)

    return decorated


def plan_feature_required(feature):
    """Require a plan feature flag. Must run after function_auth/session_user."""

    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            from leados.services.plan_service import get_user_plan

            plan = get_user_plan(g.user)
            if not plan.get(feature):
                return jsonify(
                    success=False,
                    error=f"Recurso indisponível no plano {plan['name']}",
                    upgrade_required=True,
                    plan=plan["plan"],
                ), 403
            return f(*args, **kwargs)

        return decorated

    return decorator
