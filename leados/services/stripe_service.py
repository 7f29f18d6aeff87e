"""Stripe service: all Stripe API calls and webhook handling.

Responsible for:
- Creating Stripe Checkout Sessions for the pro / enterprise plans
- Creating Stripe Customer Portal Sessions
- Handling incoming webhooks with signature verification
- Dispatching to event-specific handlers
- Idempotency via stripe_events table
"""

import logging
from datetime import datetime, timezone

import stripe
from flask import current_app

from leados.extensions import db
from leados.models.billing import BillingCustomer, BillingSubscription
from leados.models.stripe_event import StripeEvent
from leados.models.user import User
from leados.services.billing_service import (
    get_or_create_billing_customer,
    get_plan_from_price_id,
    get_price_id_for_plan,
    get_user_id_from_stripe_customer,
    log_billing_audit,
    upsert_subscription,
)

logger = logging.getLogger(__name__)


def _extract_period_end(sub_data):
    """current_period_end from a subscription, top level or first item.

    Returns a timezone-aware datetime or None.
    """
    ts = sub_data.get("current_period_end")
    if not ts:
        items = sub_data.get("items")
        if items and items.get("data"):
            ts = items["data"][0].get("current_period_end")
    if ts:
        return datetime.fromtimestamp(ts, tz=timezone.utc)
    return None


def _extract_price_id(sub_data):
    items = sub_data.get("items")
    if items and items.get("data"):
        return items["data"][0].get("price", {}).get("id")
    return None


def _is_cancelling(sub_data):
    # Stripe signals a pending cancel with either field
    return bool(
        sub_data.get("cancel_at_period_end", False)
        or sub_data.get("cancel_at") is not None
    )


# ──────────────────────────────────────────────
# Email Notifications
# ──────────────────────────────────────────────

def _send_activation_email(user_id, plan_key):
    """Tell the user their paid plan is active. Email failures are logged only."""
    try:
        from leados.services.email_service import send_email
        from leados.services.plan_service import PLANS

        user = db.session.get(User, user_id)
        if not user or not user.email:
            return

        app_base_url = current_app.config["APP_BASE_URL"]
        plan = PLANS.get(plan_key) or {}
        send_email(
            to=user.email,
            subject=f"Plano {plan.get('name', plan_key)} ativado - Leados AI",
            template="emails/subscription_activated.html",
            context={
                "name": user.display_name or user.email,
                "plan_name": plan.get("name", plan_key),
                "features": plan.get("features", []),
                "dashboard_url": f"{app_base_url}/",
            },
        )
        logger.info(f"Activation email sent to {user.email} ({plan_key})")
    except Exception as e:
        logger.error(f"Failed to send activation email for user {user_id}: {e}")


# ──────────────────────────────────────────────
# Checkout & Portal Sessions
# ──────────────────────────────────────────────

def create_checkout_session(user, plan_key):
    """Create a subscription Checkout Session for a paid plan.

    Gets or creates the Stripe Customer for this user. The plan key and
    user id ride along in metadata for the checkout webhook.

    Returns the Stripe checkout session URL.
    Raises stripe.error.StripeError on API failures.
    """
    stripe.api_key = current_app.config["STRIPE_SECRET_KEY"]
    app_base_url = current_app.config["APP_BASE_URL"]
    price_id = get_price_id_for_plan(plan_key, current_app.config)

    billing_customer = BillingCustomer.query.filter_by(user_id=user.id).first()
    if billing_customer:
        stripe_customer_id = billing_customer.stripe_customer_id
    else:
        customer_params = {
            "email": user.email,
            "metadata": {"user_id": str(user.id)},
        }
        if user.display_name:
            customer_params["name"] = user.display_name
        customer = stripe.Customer.create(**customer_params)
        stripe_customer_id = customer.id
        get_or_create_billing_customer(user.id, stripe_customer_id)

    session = stripe.checkout.Session.create(
        mode="subscription",
        customer=stripe_customer_id,
        line_items=[{"price": price_id, "quantity": 1}],
        success_url=f"{app_base_url}/?checkout=success&session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{app_base_url}/pricing?checkout=cancel",
        metadata={"user_id": str(user.id), "plan": plan_key},
    )
    return session.url


def create_portal_session(user):
    """Create a Customer Portal Session for managing the subscription.

    Raises ValueError if the user never went through checkout.
    Raises stripe.error.StripeError on API failures.
    """
    stripe.api_key = current_app.config["STRIPE_SECRET_KEY"]
    app_base_url = current_app.config["APP_BASE_URL"]

    billing_customer = BillingCustomer.query.filter_by(user_id=user.id).first()
    if not billing_customer:
        raise ValueError("No billing customer found for this user")

    session = stripe.billing_portal.Session.create(
        customer=billing_customer.stripe_customer_id,
        return_url=f"{app_base_url}/",
    )
    return session.url


def sync_checkout_session(user, session_id):
    """Pull a finished Checkout Session straight from Stripe.

    Used when the success redirect arrives before the webhook. Returns
    True when the user now has an active or trialing subscription.
    Raises stripe.error.StripeError on API failures.
    """
    stripe.api_key = current_app.config["STRIPE_SECRET_KEY"]
    session = stripe.checkout.Session.retrieve(session_id)
    metadata = session.get("metadata") or {}
    if metadata.get("user_id") != str(user.id):
        logger.warning(f"Checkout session {session_id} does not belong to user {user.id}")
        return False
    if session.get("payment_status") != "paid" or not session.get("subscription"):
        return False

    get_or_create_billing_customer(user.id, session.get("customer"))
    sub = stripe.Subscription.retrieve(session["subscription"])
    stripe_price_id = _extract_price_id(sub)
    upsert_subscription(
        user_id=user.id,
        stripe_subscription_id=sub["id"],
        status=sub.get("status", "active"),
        stripe_price_id=stripe_price_id,
        current_period_end=_extract_period_end(sub),
        cancel_at_period_end=_is_cancelling(sub),
        plan=get_plan_from_price_id(stripe_price_id, current_app.config) or metadata.get("plan"),
    )
    logger.info(f"Synced subscription from Stripe session {session_id} for user {user.id}")
    return sub.get("status") in ("active", "trialing")


# ──────────────────────────────────────────────
# Webhook Handling
# ──────────────────────────────────────────────

def verify_webhook_signature(payload, sig_header):
    """Verify Stripe webhook signature and construct the event.

    Raises stripe.error.SignatureVerificationError on invalid signature.
    """
    webhook_secret = current_app.config["STRIPE_WEBHOOK_SECRET"]
    return stripe.Webhook.construct_event(payload, sig_header, webhook_secret)


def handle_webhook_event(event):
    """Process a verified Stripe webhook event.

    Idempotency: checks stripe_events table before processing.
    If the event was already processed, returns immediately.

    Returns (success: bool, message: str).
    """
    event_id = event["id"]
    event_type = event["type"]

    existing = StripeEvent.query.filter_by(stripe_event_id=event_id).first()
    if existing:
        logger.info(f"Duplicate webhook event {event_id}, skipping")
        return True, "already_processed"

    handlers = {
        "checkout.session.completed": _handle_checkout_completed,
        "customer.subscription.updated": _handle_subscription_updated,
        "customer.subscription.deleted": _handle_subscription_deleted,
        "invoice.payment_failed": _handle_payment_failed,
        "invoice.payment_succeeded": _handle_payment_succeeded,
    }

    handler = handlers.get(event_type)
    if handler:
        try:
            handler(event)
        except Exception as e:
            logger.error(f"Error handling {event_type}: {e}", exc_info=True)
            db.session.rollback()
            return False, str(e)

    db.session.add(StripeEvent(stripe_event_id=event_id, event_type=event_type))
    db.session.commit()

    return True, "processed"


# ──────────────────────────────────────────────
# Event Handlers
# ──────────────────────────────────────────────

def _handle_checkout_completed(event):
    """checkout.session.completed: create the subscription row for the user."""
    session = event["data"]["object"]
    metadata = session.get("metadata", {})

    user_id = metadata.get("user_id")
    plan_key = metadata.get("plan")
    stripe_subscription_id = session.get("subscription")
    stripe_customer_id = session.get("customer")

    if not user_id or not stripe_subscription_id:
        logger.warning("checkout.session.completed missing user_id or subscription")
        return

    get_or_create_billing_customer(user_id, stripe_customer_id)

    stripe.api_key = current_app.config["STRIPE_SECRET_KEY"]
    sub = stripe.Subscription.retrieve(stripe_subscription_id)
    stripe_price_id = _extract_price_id(sub)
    plan = get_plan_from_price_id(stripe_price_id, current_app.config) or plan_key

    upsert_subscription(
        user_id=user_id,
        stripe_subscription_id=stripe_subscription_id,
        status=sub.get("status", "active"),
        stripe_price_id=stripe_price_id,
        current_period_end=_extract_period_end(sub),
        cancel_at_period_end=_is_cancelling(sub),
        plan=plan,
    )

    if plan == "enterprise":
        user = db.session.get(User, user_id)
        if user:
            user.role = "admin"
            db.session.flush()

    log_billing_audit(user_id, "subscription.created", {
        "stripe_subscription_id": stripe_subscription_id,
        "plan": plan,
    })

    _send_activation_email(user_id, plan)


def _handle_subscription_updated(event):
    """customer.subscription.updated: sync status, plan, period end, cancel flag."""
    sub_data = event["data"]["object"]
    stripe_subscription_id = sub_data.get("id")
    stripe_customer_id = sub_data.get("customer")

    existing_sub = BillingSubscription.query.filter_by(
        stripe_subscription_id=stripe_subscription_id
    ).first()
    if existing_sub:
        user_id = existing_sub.user_id
    else:
        user_id = get_user_id_from_stripe_customer(stripe_customer_id)

    if not user_id:
        logger.warning(
            f"subscription.updated: cannot find user for sub={stripe_subscription_id}"
        )
        return

    status = sub_data.get("status", "active")
    upsert_subscription(
        user_id=user_id,
        stripe_subscription_id=stripe_subscription_id,
        status=status,
        stripe_price_id=_extract_price_id(sub_data),
        current_period_end=_extract_period_end(sub_data),
        cancel_at_period_end=_is_cancelling(sub_data),
        app_config=current_app.config,
    )

    log_billing_audit(user_id, "subscription.updated", {
        "stripe_subscription_id": stripe_subscription_id,
        "status": status,
        "cancel_at_period_end": sub_data.get("cancel_at_period_end", False),
    })


def _handle_subscription_deleted(event):
    """customer.subscription.deleted: mark canceled; the user drops to gratuito."""
    sub_data = event["data"]["object"]
    stripe_subscription_id = sub_data.get("id")

    existing_sub = BillingSubscription.query.filter_by(
        stripe_subscription_id=stripe_subscription_id
    ).first()
    if not existing_sub:
        logger.warning(
            f"subscription.deleted: no local record for sub={stripe_subscription_id}"
        )
        return

    existing_sub.status = "canceled"
    existing_sub.cancel_at_period_end = False
    db.session.flush()

    log_billing_audit(existing_sub.user_id, "subscription.deleted", {
        "stripe_subscription_id": stripe_subscription_id,
    })


def _handle_payment_failed(event):
    """invoice.payment_failed: move the subscription to past_due."""
    invoice = event["data"]["object"]
    stripe_customer_id = invoice.get("customer")
    stripe_subscription_id = invoice.get("subscription")

    user_id = get_user_id_from_stripe_customer(stripe_customer_id)
    if not user_id:
        logger.warning(
            f"invoice.payment_failed: cannot find user for customer={stripe_customer_id}"
        )
        return

    if stripe_subscription_id:
        sub = BillingSubscription.query.filter_by(
            stripe_subscription_id=stripe_subscription_id
        ).first()
        if sub and sub.status != "past_due":
            sub.status = "past_due"
            db.session.flush()

    log_billing_audit(user_id, "invoice.payment_failed", {
        "stripe_subscription_id": stripe_subscription_id,
        "amount_due": invoice.get("amount_due"),
    })


def _handle_payment_succeeded(event):
    """invoice.payment_succeeded: restore a past_due/unpaid subscription."""
    invoice = event["data"]["object"]
    stripe_customer_id = invoice.get("customer")
    stripe_subscription_id = invoice.get("subscription")

    user_id = get_user_id_from_stripe_customer(stripe_customer_id)
    if not user_id:
        logger.warning(
            f"invoice.payment_succeeded: cannot find user for customer={stripe_customer_id}"
        )
        return

    if stripe_subscription_id:
        sub = BillingSubscription.query.filter_by(
            stripe_subscription_id=stripe_subscription_id
        ).first()
        if sub and sub.status in ("past_due", "unpaid"):
            sub.status = "active"
            db.session.flush()

    log_billing_audit(user_id, "invoice.payment_succeeded", {
        "stripe_subscription_id": stripe_subscription_id,
        "amount_paid": invoice.get("amount_paid"),
    })
