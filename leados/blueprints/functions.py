"""Function endpoints - /functions/v1/<name>

POST-only JSON operations callable by machine clients (Bearer
SERVICE_API_KEY + "userId" in the body) or by the logged-in user.
CSRF-exempt. Every response is {"success": bool, "message"|"error": str, ...}.

Route Map:
  POST /functions/v1/generate-prospects         - Gemini prospect batch
  POST /functions/v1/generate-prospects-hybrid  - ReceitaWS CNPJ lookups
  POST /functions/v1/qualify-leads              - Gemini lead qualification
  POST /functions/v1/launch-campaign            - Campaign + scripts + WhatsApp send
  POST /functions/v1/whatsapp-campaign          - WhatsApp send of a campaign
  POST /functions/v1/whatsapp-promo             - Promotional WhatsApp run of a campaign
  POST /functions/v1/email-campaign             - Email send of a campaign
  POST /functions/v1/content-agent              - Social or WhatsApp copy for a lead
  POST /functions/v1/proposal-generator         - Commercial proposal for a lead
  POST /functions/v1/calendar-integration       - Book a meeting slot
  POST /functions/v1/whatsapp-send-message      - Single WhatsApp text
  POST /functions/v1/sentiment-analysis         - Two-tier sentiment analysis
  POST /functions/v1/rag-chat                   - RAG chat with commands
  POST /functions/v1/whatsapp-bot-responder     - Bot answer sent by WhatsApp
  POST /functions/v1/send-welcome-email         - Welcome email
  POST /functions/v1/send-upsell-email          - Upsell email when near limit
  POST /functions/v1/send-onboarding-email      - Trial onboarding email (day 1/3/5/7)
"""

import logging

from flask import Blueprint, g, jsonify, request

from leados.decorators import function_auth, plan_feature_required
from leados.extensions import db
from leados.services import (
    campaign_service,
    content_service,
    lead_service,
    llm_service,
    meeting_service,
    onboarding_service,
    plan_service,
    proposal_service,
    prospect_service,
    qualification_service,
    rag_service,
    sentiment_service,
    whatsapp_service,
)

logger = logging.getLogger(__name__)

functions_bp = Blueprint("functions", __name__, url_prefix="/functions/v1")


def _body():
    return request.get_json(silent=True) or {}


def _error(message, status, **extra):
    return jsonify(success=False, error=message, **extra), status


def _run(operation, *args, **kwargs):
    """Call a service operation, commit on success, map failures to JSON.

    Returns (result, None) or (None, error_response).
    """
    try:
        result = operation(*args, **kwargs)
    except plan_service.PlanLimitError as e:
        db.session.rollback()
        return None, _error(
            str(e), 403, upgrade_required=True, plan=plan_service.get_user_plan(g.user)
        )
    except campaign_service.CampaignNotFound as e:
        db.session.rollback()
        return None, _error(str(e), 404)
    except lead_service.LeadNotFound as e:
        db.session.rollback()
        return None, _error(str(e), 404)
    except meeting_service.SlotUnavailable as e:
        db.session.rollback()
        return None, _error(str(e), 409, availableSlots=e.slots)
    except ValueError as e:
        db.session.rollback()
        return None, _error(str(e), 400)
    except llm_service.LLMNotConfiguredError as e:
        db.session.rollback()
        logger.warning(f"{request.path}: {e}")
        return None, _error("Serviço de IA não configurado", 503)
    except llm_service.LLMRateLimitError as e:
        db.session.rollback()
        logger.error(f"{request.path}: {e}")
        return None, _error("Limite de requisições da IA atingido. Tente novamente.", 429)
    except llm_service.LLMError as e:
        db.session.rollback()
        logger.error(f"{request.path}: {e}")
        return None, _error(f"Erro no serviço de IA: {e}", 502)

    db.session.commit()
    return result, None


# ──────────────────────────────────────────────
# Prospecting
# ──────────────────────────────────────────────

@functions_bp.route("/generate-prospects", methods=["POST"])
@function_auth
def generate_prospects():
    data = _body()
    result, error = _run(
        prospect_service.generate_prospects,
        g.user,
        sector=data.get("sector"),
        region=data.get("region"),
        count=data.get("count") or prospect_service.DEFAULT_COUNT,
    )
    if error:
        return error
    return jsonify(
        success=True,
        message=f"{result['prospects_created']} prospects gerados com sucesso",
        **result,
    )


@functions_bp.route("/generate-prospects-hybrid", methods=["POST"])
@function_auth
@plan_feature_required("can_access_enriched_data")
def generate_prospects_hybrid():
    cnpjs = _body().get("cnpjs")
    if not cnpjs or not isinstance(cnpjs, list):
        return _error("cnpjs é obrigatório", 400)
    result, error = _run(prospect_service.generate_prospects_hybrid, g.user, cnpjs)
    if error:
        return error
    return jsonify(
        success=True,
        message=f"{result['prospects_created']} prospects criados via ReceitaWS",
        **result,
    )


@functions_bp.route("/qualify-leads", methods=["POST"])
@function_auth
@plan_feature_required("can_access_enriched_data")
def qualify_leads():
    lead_ids = _body().get("leadIds") or None
    result, error = _run(qualification_service.qualify_leads, g.user, lead_ids)
    if error:
        return error
    return jsonify(success=True, **result)


# ──────────────────────────────────────────────
# Campaigns
# ──────────────────────────────────────────────

@functions_bp.route("/launch-campaign", methods=["POST"])
@function_auth
def launch_campaign():
    result, error = _run(campaign_service.launch_campaign, g.user)
    if error:
        return error
    return jsonify(
        success=True,
        message=f"Campanha lançada com {result['totalScripts']} scripts",
        **result,
    )


def _campaign_send(sender):
    campaign_id = _body().get("campaignId")
    if not campaign_id:
        return None, _error("campaignId é obrigatório", 400)
    try:
        campaign = campaign_service.get_campaign_or_raise(g.user.id, campaign_id)
    except campaign_service.CampaignNotFound as e:
        return None, _error(str(e), 404)
    return _run(sender, g.user, campaign)


@functions_bp.route("/whatsapp-campaign", methods=["POST"])
@function_auth
@plan_feature_required("can_use_whatsapp")
def whatsapp_campaign():
    result, error = _campaign_send(whatsapp_service.run_campaign)
    if error:
        return error
    return jsonify(
        success=True,
        message=f"{result['sentCount']} mensagens WhatsApp enviadas",
        **result,
    )


@functions_bp.route("/whatsapp-promo", methods=["POST"])
@function_auth
@plan_feature_required("can_use_whatsapp")
def whatsapp_promo():
    result, error = _campaign_send(whatsapp_service.run_promo_campaign)
    if error:
        return error
    return jsonify(
        success=True,
        message=f"Campanha promocional enviada: {result['sentCount']} mensagens",
        **result,
    )


@functions_bp.route("/email-campaign", methods=["POST"])
@function_auth
def email_campaign():
    result, error = _campaign_send(campaign_service.run_email_campaign)
    if error:
        return error
    return jsonify(
        success=True,
        message=f"{result['sentCount']} emails enviados",
        **result,
    )


# ──────────────────────────────────────────────
# Content, proposals & meetings
# ──────────────────────────────────────────────

@functions_bp.route("/content-agent", methods=["POST"])
@function_auth
def content_agent():
    data = _body()
    if not data.get("leadId") or not data.get("contentType"):
        return _error("Parâmetros obrigatórios: leadId, contentType", 400)
    record, error = _run(
        content_service.generate_content,
        g.user,
        data["leadId"],
        data["contentType"],
        tone=data.get("tone"),
        custom_prompt=data.get("customPrompt"),
    )
    if error:
        return error
    return jsonify(
        success=True,
        message=f"Conteúdo {record.content_type} gerado com sucesso",
        content=record.content,
        contentId=record.id,
        contentType=record.content_type,
        metadata={
            "leadName": record.company,
            "platform": record.platform,
            "generatedBy": record.generated_by,
            "tone": record.tone,
        },
    )


@functions_bp.route("/proposal-generator", methods=["POST"])
@function_auth
def proposal_generator():
    lead_id = _body().get("leadId")
    if not lead_id:
        return _error("leadId é obrigatório", 400)
    result, error = _run(proposal_service.generate_proposal, g.user, lead_id)
    if error:
        return error
    proposal, services, warning = result
    payload = {
        "success": True,
        "message": "Proposta gerada com sucesso",
        "proposal": proposal.content,
        "proposalId": proposal.id,
        "whatsappMessage": proposal.whatsapp_summary,
        "recommendedServices": services,
        "generatedBy": proposal.generated_by,
    }
    if warning:
        payload["warning"] = warning
    return jsonify(payload)


@functions_bp.route("/calendar-integration", methods=["POST"])
@function_auth
def calendar_integration():
    data = _body()
    result, error = _run(
        meeting_service.schedule_meeting,
        g.user,
        data.get("leadEmail"),
        lead_name=data.get("leadName"),
        lead_id=data.get("leadId"),
        preferred_date=data.get("preferredDate"),
        preferred_time=data.get("preferredTime"),
        meeting_type=data.get("meetingType"),
        duration=data.get("duration"),
        notes=data.get("notes"),
    )
    if error:
        return error
    meeting = result["meeting"]
    return jsonify(
        success=True,
        message="Reunião agendada com sucesso",
        eventId=meeting.id,
        scheduledDateTime=result["calendarInvite"]["startTime"],
        meetingLink=meeting.meeting_link,
        whatsappMessage=result["whatsappMessage"],
        calendarInvite=result["calendarInvite"],
    )


# ──────────────────────────────────────────────
# WhatsApp
# ──────────────────────────────────────────────

@functions_bp.route("/whatsapp-send-message", methods=["POST"])
@function_auth
@plan_feature_required("can_use_whatsapp")
def whatsapp_send_message():
    data = _body()
    if not data.get("to") or not data.get("message"):
        return _error("Parâmetros obrigatórios: to, message", 400)
    result, error = _run(whatsapp_service.send_message, g.user, data["to"], data["message"])
    if error:
        return error
    return jsonify(success=True, message="Mensagem enviada", **result)


@functions_bp.route("/whatsapp-bot-responder", methods=["POST"])
@function_auth
@plan_feature_required("can_use_whatsapp")
def whatsapp_bot_responder():
    data = _body()
    if not data.get("phoneNumber") or not data.get("message"):
        return _error("Parâmetros obrigatórios: phoneNumber, message", 400)
    result, error = _run(
        whatsapp_service.bot_respond,
        g.user,
        data["phoneNumber"],
        data["message"],
        data.get("customerName"),
    )
    if error:
        return error
    return jsonify(success=True, message="Resposta gerada", **result)


# ──────────────────────────────────────────────
# Analysis & chat
# ──────────────────────────────────────────────

@functions_bp.route("/sentiment-analysis", methods=["POST"])
@function_auth
def sentiment_analysis():
    data = _body()
    message = (data.get("message") or "").strip()
    if not message:
        return _error("Parâmetros obrigatórios: message, userId", 400)
    result, error = _run(
        sentiment_service.analyze_message,
        g.user,
        message,
        data.get("phoneNumber"),
        data.get("customerName"),
    )
    if error:
        return error
    return jsonify(
        success=True,
        message=f"Sentimento: {result['sentiment']}",
        analysis=result,
        analysisId=result["analysis_id"],
    )


@functions_bp.route("/rag-chat", methods=["POST"])
@function_auth
def rag_chat():
    message = (_body().get("message") or "").strip()
    if not message:
        return _error("message é obrigatório", 400)
    result, error = _run(rag_service.chat, g.user, message)
    if error:
        return error
    return jsonify(success=True, **result)


# ──────────────────────────────────────────────
# Lifecycle emails
# ──────────────────────────────────────────────

@functions_bp.route("/send-welcome-email", methods=["POST"])
@function_auth
def send_welcome_email():
    result, error = _run(onboarding_service.send_welcome_email, g.user, sync=True)
    if error:
        return error
    return jsonify(
        success=True,
        message="Welcome email sent",
        simulated=result.get("simulated", False),
    )


@functions_bp.route("/send-upsell-email", methods=["POST"])
@function_auth
def send_upsell_email():
    result, error = _run(onboarding_service.send_upsell_email, g.user)
    if error:
        return error
    if result is None:
        return jsonify(success=True, message="User not near limit, no email sent")
    return jsonify(success=True, message="Upsell email sent", **result)


@functions_bp.route("/send-onboarding-email", methods=["POST"])
@function_auth
def send_onboarding_email():
    day = _body().get("day")
    if day is None:
        return _error("Invalid day parameter", 400)
    result, error = _run(onboarding_service.send_onboarding_email, g.user, day)
    if error:
        return error
    return jsonify(success=True, message=f"Onboarding day {result['day']} email sent", **result)
