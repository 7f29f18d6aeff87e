"""Billing service - DB sync helpers for Stripe state.

Responsible for:
- Mapping Stripe price IDs to plan names (pro / enterprise)
- Upserting billing_subscriptions rows from Stripe webhook data
- Getting or creating BillingCustomer records
- Audit events for system-initiated billing changes

The plan itself is never stored on the user; plan_service derives it from
these rows per request.
"""

import logging

from leados.extensions import db
from leados.models.audit import AuditEvent
from leados.models.billing import BillingCustomer, BillingSubscription

logger = logging.getLogger(__name__)


def get_plan_from_price_id(price_id, app_config):
    """Map a Stripe price ID to a plan name (pro / enterprise), or None."""
    if price_id and price_id == app_config.get("STRIPE_PRO_PRICE_ID"):
        return "pro"
    if price_id and price_id == app_config.get("STRIPE_ENTERPRISE_PRICE_ID"):
        return "enterprise"
    return None


def get_price_id_for_plan(plan_key, app_config):
    price_ids = {
        "pro": app_config.get("STRIPE_PRO_PRICE_ID"),
        "enterprise": app_config.get("STRIPE_ENTERPRISE_PRICE_ID"),
    }
    price_id = price_ids.get(plan_key)
    if not price_id:
        raise ValueError(f"No Stripe price configured for plan {plan_key}")
    return price_id


def get_or_create_billing_customer(user_id, stripe_customer_id):
    """Get the user's BillingCustomer, creating it if needed. Flushes."""
    customer = BillingCustomer.query.filter_by(user_id=user_id).first()
    if customer:
        if customer.stripe_customer_id != stripe_customer_id:
            customer.stripe_customer_id = stripe_customer_id
            db.session.flush()
        return customer

    customer = BillingCustomer.query.filter_by(
        stripe_customer_id=stripe_customer_id
    ).first()
    if customer:
        return customer

    customer = BillingCustomer(
        user_id=user_id,
        stripe_customer_id=stripe_customer_id,
    )
    db.session.add(customer)
    db.session.flush()
    return customer


def upsert_subscription(user_id, stripe_subscription_id, status,
                        stripe_price_id=None, current_period_end=None,
                        cancel_at_period_end=False, app_config=None,
                        plan=None):
    """Create or update a BillingSubscription from Stripe data.

    plan falls back to the price-id mapping when not given explicitly.
    """
    sub = BillingSubscription.query.filter_by(
        stripe_subscription_id=stripe_subscription_id
    ).first()

    if not plan and stripe_price_id and app_config:
        plan = get_plan_from_price_id(stripe_price_id, app_config)

    if sub:
        sub.status = status
        if stripe_price_id:
            sub.stripe_price_id = stripe_price_id
        if plan:
            sub.plan = plan
        if current_period_end:
            sub.current_period_end = current_period_end
        sub.cancel_at_period_end = cancel_at_period_end
    else:
        sub = BillingSubscription(
            user_id=user_id,
            stripe_subscription_id=stripe_subscription_id,
            stripe_price_id=stripe_price_id,
            plan=plan,
            status=status,
            current_period_end=current_period_end,
            cancel_at_period_end=cancel_at_period_end,
        )
        db.session.add(sub)

    db.session.flush()
    return sub


def log_billing_audit(user_id, action, metadata=None):
    """Billing audit event. Webhook events are system-initiated (no actor)."""
    event = AuditEvent(
        actor_user_id=None,
        action=action,
        metadata_={"user_id": user_id, **(metadata or {})},
    )
    db.session.add(event)
    db.session.flush()


def get_user_id_from_stripe_customer(stripe_customer_id):
    customer = BillingCustomer.query.filter_by(
        stripe_customer_id=stripe_customer_id
    ).first()
    if customer:
        return customer.user_id
    return None
