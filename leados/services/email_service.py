"""
Transactional email service for Leados AI.

Sends templated HTML email through the Resend HTTP API. Reusable across
the app: welcome / onboarding / upsell emails and campaign outreach.

When RESEND_API_KEY is not configured, or Resend fails, the send is logged
and reported back as simulated instead of raising.

Usage:
    from leados.services.email_service import send_email

    send_email(
        to="user@example.com",
        subject="Hello",
        template="emails/welcome.html",
        context={"name": "Jane"},
    )
"""

import logging
import threading

import requests
from flask import current_app, render_template

logger = logging.getLogger(__name__)


def _build_payload(app, to, subject, html_body, reply_to=None):
    from_name = app.config.get("MAIL_FROM_NAME", "Leados AI")
    from_email = app.config.get("MAIL_FROM_ADDRESS")
    payload = {
        "from": f"{from_name} <{from_email}>",
        "to": [to] if isinstance(to, str) else list(to),
        "subject": subject,
        "html": html_body,
    }
    if reply_to:
        payload["reply_to"] = reply_to
    return payload


def _post_resend(app, payload):
    """POST one email to Resend. Returns {"id", "simulated"[, "error"]}."""
    api_key = app.config.get("RESEND_API_KEY")
    recipients = ", ".join(payload["to"])

    if not api_key:
        logger.warning(
            f"Email simulated (RESEND_API_KEY not configured): "
            f"{recipients} - {payload['subject']}"
        )
        return {"id": None, "simulated": True}

    try:
        resp = requests.post(
            app.config["RESEND_API_URL"],
            headers={"Authorization": f"Bearer {api_key}"},
            json=payload,
            timeout=30,
        )
        resp.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"Failed to send email to {recipients}: {e}")
        return {"id": None, "simulated": True, "error": str(e)}

    message_id = resp.json().get("id")
    logger.info(f"Email sent to {recipients} - {payload['subject']} ({message_id})")
    return {"id": message_id, "simulated": False}


def _send_in_context(app, payload):
    with app.app_context():
        _post_resend(app, payload)


def send_email(to, subject, template, context=None, reply_to=None):
    """
    Send a templated HTML email without blocking the request.

    Args:
        to:        Recipient email address (str or list).
        subject:   Email subject line.
        template:  Path to Jinja2 HTML template (relative to templates/).
        context:   Dict of variables to pass to the template.
        reply_to:  Optional reply-to address.
    """
    app = current_app._get_current_object()
    html_body = render_template(template, **(context or {}))
    payload = _build_payload(app, to, subject, html_body, reply_to)

    thread = threading.Thread(target=_send_in_context, args=(app, payload))
    thread.daemon = True
    thread.start()


def send_email_sync(to, subject, template, context=None, reply_to=None):
    """
    Same as send_email but blocks until Resend answers, and returns the
    result dict. Used by CLI jobs and campaign sends that report per-email
    outcomes.
    """
    app = current_app._get_current_object()
    html_body = render_template(template, **(context or {}))
    payload = _build_payload(app, to, subject, html_body, reply_to)
    return _post_resend(app, payload)
