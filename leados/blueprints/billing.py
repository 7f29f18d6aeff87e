"""Billing blueprint - /billing/*

Stripe subscription state and Customer Portal for the logged-in user.
Checkout itself starts from POST /api/plan/upgrade.

Routes:
- GET  /billing/status : latest subscription + plan (syncs from ?session_id)
- POST /billing/portal : create Customer Portal Session, return its URL
"""

import logging

import stripe
from flask import Blueprint, current_app, g, jsonify, request

from leados.decorators import session_user
from leados.extensions import db
from leados.models.billing import BillingSubscription
from leados.services import plan_service
from leados.services.stripe_service import create_portal_session, sync_checkout_session

logger = logging.getLogger(__name__)

billing_bp = Blueprint("billing", __name__, url_prefix="/billing")


def _subscription_dict(sub):
    if sub is None:
        return None
    return {
        "id": sub.id,
        "plan": sub.plan,
        "status": sub.status,
        "current_period_end": (
            sub.current_period_end.isoformat() if sub.current_period_end else None
        ),
        "cancel_at_period_end": bool(sub.cancel_at_period_end),
    }


# ──────────────────────────────────────────────
# GET /billing/status (polled after checkout)
# ──────────────────────────────────────────────

@billing_bp.route("/status", methods=["GET"])
@session_user
def status():
    """Current subscription.

    If the webhook hasn't arrived yet, the session_id from the success URL
    is used to fetch the subscription directly from Stripe.
    """
    session_id = request.args.get("session_id")
    if session_id and current_app.config.get("STRIPE_SECRET_KEY"):
        try:
            sync_checkout_session(g.user, session_id)
            db.session.commit()
        except stripe.error.StripeError as e:
            db.session.rollback()
            logger.warning(f"Failed to sync from Stripe session: {e}")

    sub = (
        BillingSubscription.query
        .filter_by(user_id=g.user.id)
        .order_by(BillingSubscription.created_at.desc())
        .first()
    )
    return jsonify(
        success=True,
        active=sub is not None and sub.status in ("active", "trialing"),
        subscription=_subscription_dict(sub),
        plan=plan_service.get_user_plan(g.user),
    )


# ──────────────────────────────────────────────
# POST /billing/portal
# ──────────────────────────────────────────────

@billing_bp.route("/portal", methods=["POST"])
@session_user
def customer_portal():
    """Only available once the user has checked out at least once."""
    if not current_app.config.get("STRIPE_SECRET_KEY"):
        return jsonify(success=False, error="Billing is not configured"), 503
    try:
        portal_url = create_portal_session(g.user)
    except ValueError:
        return jsonify(success=False, error="No billing account found. Please subscribe first."), 404
    except stripe.error.StripeError as e:
        logger.error(f"Portal session error: {e}", exc_info=True)
        return jsonify(success=False, error="Something went wrong. Please try again."), 502
    return jsonify(success=True, url=portal_url)
