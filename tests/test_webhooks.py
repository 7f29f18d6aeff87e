"""Tests for the webhooks blueprint and Stripe event handling.

Covers:
- Webhook signature verification (missing, invalid)
- Idempotent event processing (duplicate events skipped)
- checkout.session.completed handler (plan from price id, enterprise role)
- customer.subscription.updated / deleted handlers
- invoice.payment_failed / payment_succeeded handlers
- Unknown event types (accepted but not processed)
"""

import json
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from leados.extensions import db
from leados.models.audit import AuditEvent
from leados.models.billing import BillingCustomer, BillingSubscription
from leados.models.stripe_event import StripeEvent
from leados.services import plan_service


def _post_event(client):
    return client.post(
        "/stripe/webhooks",
        data="{}",
        content_type="application/json",
        headers={"Stripe-Signature": "valid_sig"},
    )


def _subscription(sub_id="sub_stripe_new", price_id="price_pro_test", status="active", **extra):
    return {
        "id": sub_id,
        "customer": "cus_existing",
        "status": status,
        "current_period_end": 1798761600,
        "cancel_at_period_end": False,
        "items": {"data": [{"price": {"id": price_id}}]},
        **extra,
    }


@pytest.fixture
def existing_sub(seed_data):
    """Free user with a Stripe customer and an active pro subscription."""
    user_id = seed_data["free_user_id"]
    db.session.add(BillingCustomer(user_id=user_id, stripe_customer_id="cus_existing"))
    db.session.add(BillingSubscription(
        user_id=user_id,
        stripe_subscription_id="sub_existing",
        stripe_price_id="price_pro_test",
        plan="pro",
        status="active",
        current_period_end=datetime(2026, 12, 31, tzinfo=timezone.utc),
    ))
    db.session.commit()
    return user_id


class TestWebhookSignature:

    def test_missing_signature_returns_400(self, client, seed_data):
        resp = client.post("/stripe/webhooks", data="{}", content_type="application/json")
        assert resp.status_code == 400
        assert b"Missing signature" in resp.data

    @patch("leados.services.stripe_service.stripe.Webhook.construct_event")
    def test_invalid_signature_returns_400(self, mock_construct, client, seed_data):
        mock_construct.side_effect = Exception("Invalid signature")
        resp = client.post(
            "/stripe/webhooks",
            data="{}",
            content_type="application/json",
            headers={"Stripe-Signature": "bad_sig"},
        )
        assert resp.status_code == 400
        assert b"Invalid signature" in resp.data


class TestWebhookIdempotency:

    @patch("leados.services.stripe_service.stripe.Webhook.construct_event")
    def test_duplicate_event_returns_200(self, mock_construct, client, seed_data):
        db.session.add(StripeEvent(
            stripe_event_id="evt_duplicate_123",
            event_type="checkout.session.completed",
        ))
        db.session.commit()
        mock_construct.return_value = {
            "id": "evt_duplicate_123",
            "type": "checkout.session.completed",
            "data": {"object": {}},
        }

        resp = _post_event(client)
        assert resp.status_code == 200
        assert json.loads(resp.data)["status"] == "already_processed"

    @patch("leados.services.stripe_service.stripe.Webhook.construct_event")
    def test_unknown_event_is_recorded(self, mock_construct, client, seed_data):
        mock_construct.return_value = {
            "id": "evt_unknown", "type": "customer.created", "data": {"object": {}},
        }
        resp = _post_event(client)
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "processed"
        assert StripeEvent.query.filter_by(stripe_event_id="evt_unknown").count() == 1


class TestCheckoutCompleted:

    def _event(self, user_id, plan="pro"):
        return {
            "id": f"evt_checkout_{plan}",
            "type": "checkout.session.completed",
            "data": {"object": {
                "subscription": "sub_stripe_new",
                "customer": "cus_stripe_new",
                "metadata": {"user_id": user_id, "plan": plan},
            }},
        }

    @patch("leados.services.email_service.send_email")
    @patch("leados.services.stripe_service.stripe.Subscription.retrieve")
    @patch("leados.services.stripe_service.stripe.Webhook.construct_event")
    def test_creates_subscription(self, mock_construct, mock_retrieve, mock_send, client, seed_data):
        user_id = seed_data["free_user_id"]
        mock_construct.return_value = self._event(user_id)
        mock_retrieve.return_value = _subscription()

        assert _post_event(client).status_code == 200

        sub = BillingSubscription.query.filter_by(stripe_subscription_id="sub_stripe_new").one()
        assert sub.status == "active"
        assert sub.plan == "pro"
        assert sub.user_id == user_id
        assert BillingCustomer.query.filter_by(stripe_customer_id="cus_stripe_new").count() == 1
        assert StripeEvent.query.filter_by(stripe_event_id="evt_checkout_pro").count() == 1
        assert AuditEvent.query.filter_by(action="subscription.created").count() == 1
        assert plan_service.get_user_plan(seed_data["free_user"])["plan"] == "pro"

        mock_send.assert_called_once()
        assert mock_send.call_args.kwargs["template"] == "emails/subscription_activated.html"

    @patch("leados.services.email_service.send_email")
    @patch("leados.services.stripe_service.stripe.Subscription.retrieve")
    @patch("leados.services.stripe_service.stripe.Webhook.construct_event")
    def test_enterprise_promotes_role(self, mock_construct, mock_retrieve, mock_send, client, seed_data):
        mock_construct.return_value = self._event(seed_data["free_user_id"], plan="enterprise")
        mock_retrieve.return_value = _subscription(price_id="price_enterprise_test")

        assert _post_event(client).status_code == 200
        assert seed_data["free_user"].role == "admin"

    @patch("leados.services.stripe_service.stripe.Subscription.retrieve")
    @patch("leados.services.stripe_service.stripe.Webhook.construct_event")
    def test_handler_failure_returns_500(self, mock_construct, mock_retrieve, client, seed_data):
        mock_construct.return_value = self._event(seed_data["free_user_id"])
        mock_retrieve.side_effect = RuntimeError("stripe down")

        assert _post_event(client).status_code == 500
        assert StripeEvent.query.count() == 0


class TestSubscriptionLifecycle:

    @patch("leados.services.stripe_service.stripe.Webhook.construct_event")
    def test_updated_syncs_status_and_plan(self, mock_construct, client, existing_sub):
        mock_construct.return_value = {
            "id": "evt_update_001",
            "type": "customer.subscription.updated",
            "data": {"object": _subscription(
                "sub_existing", price_id="price_enterprise_test",
                status="past_due", cancel_at_period_end=True,
            )},
        }
        assert _post_event(client).status_code == 200

        sub = BillingSubscription.query.filter_by(stripe_subscription_id="sub_existing").one()
        assert sub.status == "past_due"
        assert sub.plan == "enterprise"
        assert sub.cancel_at_period_end is True

    @patch("leados.services.stripe_service.stripe.Webhook.construct_event")
    def test_deleted_drops_to_free_plan(self, mock_construct, client, seed_data, existing_sub):
        mock_construct.return_value = {
            "id": "evt_delete_001",
            "type": "customer.subscription.deleted",
            "data": {"object": {"id": "sub_existing"}},
        }
        assert _post_event(client).status_code == 200

        sub = BillingSubscription.query.filter_by(stripe_subscription_id="sub_existing").one()
        assert sub.status == "canceled"
        assert plan_service.get_user_plan(seed_data["free_user"])["plan"] == "gratuito"

    @patch("leados.services.stripe_service.stripe.Webhook.construct_event")
    def test_payment_failed_then_succeeded(self, mock_construct, client, existing_sub):
        invoice = {"customer": "cus_existing", "subscription": "sub_existing", "amount_due": 9700}

        mock_construct.return_value = {
            "id": "evt_fail_001", "type": "invoice.payment_failed", "data": {"object": invoice},
        }
        assert _post_event(client).status_code == 200
        sub = BillingSubscription.query.filter_by(stripe_subscription_id="sub_existing").one()
        assert sub.status == "past_due"

        mock_construct.return_value = {
            "id": "evt_paid_001", "type": "invoice.payment_succeeded", "data": {"object": invoice},
        }
        assert _post_event(client).status_code == 200
        assert sub.status == "active"
        assert AuditEvent.query.filter_by(action="invoice.payment_failed").count() == 1
        assert AuditEvent.query.filter_by(action="invoice.payment_succeeded").count() == 1
