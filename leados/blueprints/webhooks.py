"""Webhooks blueprint: public vendor callbacks.

Routes:
- POST /stripe/webhooks    - Stripe events (signature-verified, idempotent)
- GET  /whatsapp/webhook   - Meta verification handshake
- POST /whatsapp/webhook  : inbound WhatsApp messages

CSRF is exempted for this blueprint in create_app().
"""

import logging

from flask import Blueprint, jsonify, request

from leados.extensions import limiter
from leados.services import whatsapp_service
from leados.services.stripe_service import handle_webhook_event, verify_webhook_signature

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__)


# ──────────────────────────────────────────────
# POST /stripe/webhooks
# ──────────────────────────────────────────────

@webhooks_bp.route("/stripe/webhooks", methods=["POST"])
@limiter.limit("120 per minute")
def stripe_webhook():
    """Receive and process Stripe webhook events.

    1. Get raw body (required for signature verification)
    2. Verify signature with STRIPE_WEBHOOK_SECRET
    3. Pass to handle_webhook_event (idempotent via stripe_events table)
    4. Return 200 to acknowledge receipt
    """
    payload = request.get_data(as_text=True)
    sig_header = request.headers.get("Stripe-Signature")

    if not sig_header:
        logger.warning("Stripe webhook received without Stripe-Signature header")
        return jsonify(success=False, error="Missing signature"), 400

    try:
        event = verify_webhook_signature(payload, sig_header)
    except Exception as e:
        logger.warning(f"Stripe webhook signature verification failed: {e}")
        return jsonify(success=False, error="Invalid signature"), 400

    success, message = handle_webhook_event(event)
    if not success:
        logger.error(f"Stripe webhook processing failed: {message}")
        return jsonify(success=False, error=message), 500
    return jsonify(success=True, status=message), 200


# ──────────────────────────────────────────────
# GET/POST /whatsapp/webhook
# ──────────────────────────────────────────────

@webhooks_bp.route("/whatsapp/webhook", methods=["GET"])
def whatsapp_verify():
    challenge = whatsapp_service.verify_webhook(
        request.args.get("hub.mode"),
        request.args.get("hub.verify_token"),
        request.args.get("hub.challenge"),
    )
    if challenge is None:
        logger.warning("WhatsApp webhook verification rejected")
        return "Forbidden", 403, {"Content-Type": "text/plain; charset=utf-8"}
    return challenge, 200, {"Content-Type": "text/plain; charset=utf-8"}


@webhooks_bp.route("/whatsapp/webhook", methods=["POST"])
@limiter.limit("300 per minute")
def whatsapp_inbound():
    """Always answer 200 so Meta does not retry; failures are logged per message."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict) or payload.get("object") != "whatsapp_business_account":
        return jsonify(success=True, status="ignored", processed=0), 200

    processed = whatsapp_service.process_webhook_payload(payload)
    logger.info(f"WhatsApp webhook processed {processed} message(s)")
    return jsonify(success=True, processed=processed), 200
