"""WhatsApp Business service.

- config: per-user Graph API credentials (upsert, active lookup)
- send_message: POST a text message through the Graph API; a vendor
  failure degrades to a simulated id so callers can carry on
- campaign sends: personalise campaign scripts and send them per lead,
  plus the promotional run that also messages the attendance number
- webhook: Meta verification and inbound message processing
- bot_respond: RAG answer wrapped in the branded template, sent back

Service functions flush but do NOT commit, except process_webhook_payload,
which commits per inbound message so one bad message cannot lose the rest.
"""

import logging
import re
import time
from datetime import datetime, timezone

import requests
from flask import current_app

from leados.extensions import db
from leados.models.lead import Lead
from leados.models.user import User
from leados.models.whatsapp import WhatsAppConfig, WhatsAppMessage
from leados.services import knowledge_service, llm_service, rag_service, sentiment_service
from leados.utils import sanitize

logger = logging.getLogger(__name__)

DEFAULT_BOT_ANSWER = (
    "Obrigado pela sua mensagem! Em breve um de nossos consultores "
    "entrará em contato."
)
DEFAULT_GREETING_NAME = "Prezado(a)"
BOT_HISTORY_SIZE = 10


class WhatsAppNotConfigured(ValueError):
    """The user has no active WhatsApp Business configuration."""


# ──────────────────────────────────────────────
# Configuration
# ──────────────────────────────────────────────

def get_config(user_id):
    return WhatsAppConfig.query.filter_by(user_id=user_id).first()


def get_active_config(user_id):
    return WhatsAppConfig.query.filter_by(user_id=user_id, is_active=True).first()


def upsert_config(user_id, data):
    """Create or update the user's config. Raises ValueError on bad input."""
    config = get_config(user_id)
    api_token = (data.get("api_token") or "").strip()
    phone_number_id = sanitize(data.get("phone_number_id"), max_length=100)

    if config is None:
        if not api_token or not phone_number_id:
            raise ValueError("api_token e phone_number_id são obrigatórios")
        config = WhatsAppConfig(user_id=user_id, api_token=api_token,
                                phone_number_id=phone_number_id)
        db.session.add(config)
    else:
        # A blank token on update keeps the stored one
        if api_token:
            config.api_token = api_token
        if phone_number_id:
            config.phone_number_id = phone_number_id

    if "webhook_url" in data:
        config.webhook_url = sanitize(data.get("webhook_url"), max_length=500) or None
    if "is_active" in data:
        config.is_active = bool(data.get("is_active"))

    db.session.flush()
    return config


# ──────────────────────────────────────────────
# Sending
# ──────────────────────────────────────────────

def normalize_phone(phone):
    """Digits only; Brazilian numbers without country code get 55."""
    digits = re.sub(r"\D", "", str(phone or ""))
    if len(digits) in (10, 11):
        digits = "55" + digits
    return digits


def _post_graph(config, to, message):
    base_url = current_app.config["WHATSAPP_GRAPH_URL"].rstrip("/")
    resp = requests.post(
        f"{base_url}/{config.phone_number_id}/messages",
        headers={"Authorization": f"Bearer {config.api_token}"},
        json={
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": message},
        },
        timeout=30,
    )
    resp.raise_for_status()
    messages = resp.json().get("messages") or [{}]
    return messages[0].get("id")


def send_message(user, to, message):
    """Send one text message.

    Returns {"messageId", "simulated"[, "warning"]}. Raises
    WhatsAppNotConfigured when the user has no active config and
    ValueError when to/message are missing.
    """
    to = normalize_phone(to)
    if not to or not (message or "").strip():
        raise ValueError("Parâmetros obrigatórios: to, message")

    config = get_active_config(user.id)
    if not config:
        raise WhatsAppNotConfigured("WhatsApp não configurado")

    result = {"simulated": False}
    try:
        result["messageId"] = _post_graph(config, to, message)
    except requests.RequestException as e:
        logger.error(f"WhatsApp send to {to} failed, simulating: {e}")
        result = {
            "messageId": f"sim_{int(time.time() * 1000)}",
            "simulated": True,
            "warning": "Falha no envio pela API do WhatsApp; mensagem simulada",
        }

    knowledge_service.log_knowledge(
        user.id, f"WhatsApp enviado para {to}: {message[:200]}"
    )
    logger.info(f"WhatsApp message to {to} ({'simulated' if result['simulated'] else 'sent'})")
    return result


# ──────────────────────────────────────────────
# Campaign sends
# ──────────────────────────────────────────────

def find_related_lead(leads, company):
    """Case-insensitive mutual substring match on company name."""
    wanted = (company or "").lower()
    if not wanted:
        return None
    for lead in leads:
        name = (lead.company or "").lower()
        if name and (name in wanted or wanted in name):
            return lead
    return None


def personalize_script(text, contact_name=None):
    brand = current_app.config.get("WHATSAPP_BRAND_NAME")
    return (
        (text or "")
        .replace("[Nome]", contact_name or DEFAULT_GREETING_NAME)
        .replace("Bom dia", f"📞 *{brand}*\n\nOlá")
    )


def _send_or_simulate(user, phone, text):
    try:
        return send_message(user, phone, text)
    except WhatsAppNotConfigured:
        logger.info(f"WhatsApp not configured, simulated send to {phone}")
        return {"messageId": f"sim_{int(time.time() * 1000)}", "simulated": True}


def run_campaign(user, campaign):
    """Send the campaign's unsent scripts by WhatsApp.

    Each send falls back to a simulated result when the user has no active
    config. Returns {"sentCount", "messages"}.
    """
    leads = Lead.query.filter_by(user_id=user.id).all()
    fallback_phone = current_app.config["WHATSAPP_FALLBACK_PHONE"]
    scripts = [s for s in campaign.scripts if not s.whatsapp_sent]

    messages = []
    for script in scripts:
        lead = find_related_lead(leads, script.company)
        phone = normalize_phone(lead.phone) if lead and lead.phone else ""
        phone = phone or fallback_phone
        text = personalize_script(
            script.call_script, lead.decision_maker if lead else None
        )

        result = _send_or_simulate(user, phone, text)
        script.mark_sent("whatsapp")
        messages.append({
            "company": script.company,
            "phone": phone,
            "messageId": result.get("messageId"),
            "simulated": result.get("simulated", False),
        })

    db.session.flush()
    logger.info(f"WhatsApp campaign {campaign.id}: {len(messages)} message(s)")
    return {"sentCount": len(messages), "messages": messages}


PROMO_PREVIEW_LENGTH = 100
PROMO_SCRIPT_EXCERPT = 200


def _format_phone(digits):
    """5562981959829 -> (62) 9 8195-9829"""
    local = digits[2:] if digits.startswith("55") and len(digits) == 13 else digits
    if len(local) != 11:
        return digits
    return f"({local[:2]}) {local[2]} {local[3:7]}-{local[7:]}"


def promo_broadcast(brand, phone, booking_url):
    return (
        f"🏆 *{brand.upper()} - PROMOÇÃO ESPECIAL*\n\n"
        f"📊 *Consultoria Tributária Premium para Grandes Empresas*\n\n"
        f"✅ Recuperação de créditos tributários\n"
        f"✅ Planejamento fiscal avançado\n"
        f"✅ Compliance fiscal completo\n\n"
        f"💰 *OFERTA LIMITADA:*\n"
        f"📞 Consultoria inicial GRATUITA\n"
        f"📋 Proposta personalizada\n\n"
        f"📱 *AGENDE AGORA:*\n{booking_url}\n\n"
        f"📞 *{_format_phone(phone)}*"
    )


def promo_for_lead(brand, contact_name, company, call_script, phone, booking_url):
    excerpt = (call_script or "")[:PROMO_SCRIPT_EXCERPT]
    return (
        f"📞 *{brand}*\n\n"
        f"Olá {contact_name}!\n\n"
        f"🏢 Identificamos que a *{company}* pode se beneficiar de nossos "
        f"serviços de consultoria tributária especializada.\n\n"
        f"🎯 *OPORTUNIDADES IDENTIFICADAS:*\n{excerpt}...\n\n"
        f"💰 *OFERTA ESPECIAL:*\n"
        f"✅ Análise fiscal gratuita\n"
        f"✅ Identificação de créditos tributários\n\n"
        f"📞 *Entre em contato:* {_format_phone(phone)}\n"
        f"📅 *Ou agende direto:* {booking_url}\n\n"
        f"Atenciosamente,\n*Equipe {brand}*"
    )


def run_promo_campaign(user, campaign):
    """Promotional WhatsApp run for a campaign.

    Sends the promo broadcast to the attendance number, one personalised
    promo per script (to the related lead's phone, or the attendance
    number) and a closing notification to the attendance number. Every
    script is marked WhatsApp-sent. Sends fall back to simulated results
    when the user has no active config.
    """
    attendance = current_app.config["WHATSAPP_FALLBACK_PHONE"]
    brand = current_app.config.get("WHATSAPP_BRAND_NAME")
    booking_url = current_app.config.get("APP_BASE_URL", "").rstrip("/")
    leads = Lead.query.filter_by(user_id=user.id).all()

    outbox = [(attendance, promo_broadcast(brand, attendance, booking_url),
               f"{brand} - Atendimento", "promo-campaign")]
    for script in campaign.scripts:
        lead = find_related_lead(leads, script.company)
        phone = normalize_phone(lead.phone) if lead and lead.phone else ""
        contact_name = (lead.decision_maker if lead else None) or "Responsável Financeiro"
        text = promo_for_lead(
            brand, contact_name, script.company, script.call_script, attendance, booking_url
        )
        outbox.append((phone or attendance, text, script.company, "lead-promo"))
        script.mark_sent("whatsapp")

    sent_at = datetime.now(timezone.utc).strftime("%d/%m/%Y %H:%M UTC")
    notification = (
        f"🚀 *NOVA CAMPANHA ATIVADA*\n\n"
        f"📊 Campanha: {campaign.name}\n"
        f"👥 Leads processados: {len(campaign.scripts)}\n"
        f"📱 Mensagens enviadas: {len(outbox)}\n"
        f"⏰ {sent_at}"
    )
    outbox.append((attendance, notification, "Sistema - Notificação", "campaign-notification"))

    messages = []
    for phone, text, company, kind in outbox:
        result = _send_or_simulate(user, phone, text)
        messages.append({
            "company": company,
            "type": kind,
            "to": phone,
            "preview": text[:PROMO_PREVIEW_LENGTH] + "...",
            "messageId": result.get("messageId"),
            "simulated": result.get("simulated", False),
        })

    db.session.flush()
    logger.info(f"WhatsApp promo for campaign {campaign.id}: {len(messages)} message(s)")
    return {
        "sentCount": len(messages),
        "attendanceNumber": attendance,
        "messages": messages,
    }


# ──────────────────────────────────────────────
# Bot responder
# ──────────────────────────────────────────────

def format_bot_reply(customer_name, answer):
    brand = current_app.config.get("WHATSAPP_BRAND_NAME")
    base_url = current_app.config.get("APP_BASE_URL", "").rstrip("/")
    return (
        f"🤖 *{brand}*\n\n"
        f"Olá {customer_name or 'Cliente'}!\n\n"
        f"{answer}\n\n"
        f"📅 *Agende sua consultoria:*\n{base_url}\n\n"
        f"*Especialistas em Consultoria Tributária para Grandes Empresas*"
    )


def bot_respond(user, phone_number, message, customer_name=None):
    """Answer an inbound message with the RAG chat and send it back.

    Returns {"response", "sent"[, "messageId", "simulated"]}.
    """
    name = customer_name or "Cliente"
    memory = [e.content for e in knowledge_service.recent_knowledge(user.id, BOT_HISTORY_SIZE)]
    extra = "HISTÓRICO RECENTE:\n" + "\n".join(memory) if memory else None
    question = (
        f"Cliente {name} perguntou via WhatsApp: {message}\n"
        f"Responda de forma concisa e profissional."
    )

    try:
        answer, _, _ = rag_service.answer(user, message, extra_context=extra, question=question)
    except llm_service.LLMError as e:
        logger.error(f"Bot answer failed for {phone_number}: {e}")
        answer = None
    reply = format_bot_reply(name, answer or DEFAULT_BOT_ANSWER)

    knowledge_service.log_knowledge(
        user.id,
        f"WhatsApp Bot - Cliente: {name} | Pergunta: {message} | Resposta: {reply}",
    )

    result = {"response": reply, "sent": False}
    try:
        sent = send_message(user, phone_number, reply)
        result.update(sent=True, messageId=sent.get("messageId"),
                      simulated=sent.get("simulated", False))
    except ValueError as e:
        logger.warning(f"Bot reply to {phone_number} not sent: {e}")
    return result


# ──────────────────────────────────────────────
# Webhook
# ──────────────────────────────────────────────

def verify_webhook(mode, token, challenge):
    """Return the challenge when the Meta verification matches, else None."""
    expected = current_app.config.get("WHATSAPP_VERIFY_TOKEN")
    if mode == "subscribe" and expected and token == expected:
        return challenge or ""
    return None


def _message_text(msg):
    msg_type = msg.get("type") or "text"
    if msg_type == "text":
        return (msg.get("text") or {}).get("body") or ""
    return f"[{msg_type}]"


def handle_inbound_message(user, msg, contact_names):
    """Store one inbound message, analyse it and answer it."""
    phone = msg.get("from") or ""
    text = _message_text(msg)
    sender = contact_names.get(phone) or f"Cliente {phone[-4:]}"

    history = sentiment_service.recent_history(user.id, phone)
    record = WhatsAppMessage(
        user_id=user.id,
        wa_message_id=msg.get("id"),
        phone_number=phone,
        sender_name=sender,
        message_content=text,
        message_type=msg.get("type") or "text",
    )
    db.session.add(record)
    db.session.flush()

    sentiment_service.analyze_message(user, text, phone, sender, history=history)
    reply = bot_respond(user, phone, text, sender)

    record.processed = True
    record.response_sent = reply["sent"]
    db.session.flush()
    return record


def process_webhook_payload(payload):
    """Walk a Meta webhook payload. Returns the number of processed messages.

    Messages belong to the user of the first active config; with none,
    they are logged and ignored.
    """
    if (payload or {}).get("object") != "whatsapp_business_account":
        return 0

    config = (
        WhatsAppConfig.query.filter_by(is_active=True)
        .order_by(WhatsAppConfig.created_at.asc())
        .first()
    )
    if not config:
        logger.warning("WhatsApp webhook received but no active config; ignoring")
        return 0
    user = db.session.get(User, config.user_id)

    processed = 0
    for entry in payload.get("entry") or []:
        for change in entry.get("changes") or []:
            if change.get("field") != "messages":
                continue
            value = change.get("value") or {}
            names = {
                c.get("wa_id"): (c.get("profile") or {}).get("name")
                for c in value.get("contacts") or []
            }
            for msg in value.get("messages") or []:
                try:
                    handle_inbound_message(user, msg, names)
                    db.session.commit()
                    processed += 1
                except Exception:
                    db.session.rollback()
                    logger.error(
                        f"Error processing WhatsApp message {msg.get('id')}",
                        exc_info=True,
                    )
    return processed
