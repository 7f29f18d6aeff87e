"""Campaign service.

- launch_campaign: build a campaign from qualified/contacted leads, one
  OpenAI-written script per lead (built-in script or template fallback),
  then kick off the WhatsApp send
- run_email_campaign: send each unsent script as a branded HTML email

Functions flush but do NOT commit: caller commits.
"""

import logging
from datetime import datetime, timezone

from flask import current_app

from leados.extensions import db
from leados.models.audit import AuditEvent
from leados.models.campaign import Campaign, CampaignScript
from leados.models.lead import Lead
from leados.services import knowledge_service, llm_service, whatsapp_service
from leados.services.email_service import send_email_sync

logger = logging.getLogger(__name__)

TARGET_STATUSES = ("qualified", "contacted")

SCRIPT_PROMPT = """Você é um especialista em prospecção B2B para uma consultoria tributária.
Crie um script de vendas personalizado para:

EMPRESA: {company}
SETOR: {sector}
REGIME TRIBUTÁRIO: {tax_regime}
GANCHO DE PROSPECÇÃO: {hook}
CONTATO DECISOR: {decision_maker}

Crie um JSON com:
{{
  "call_script": "Script de telefone direto, objetivo, mencionando ganhos específicos (máx 150 palavras)",
  "email_subject": "Assunto atrativo e específico (máx 60 caracteres)",
  "email_body": "E-mail personalizado, profissional, com CTA claro (máx 200 palavras)"
}}

Foque em:
- Recuperação tributária (ICMS, PIS/COFINS)
- Compliance e planejamento fiscal
- Benefícios específicos do setor
- Linguagem executiva e direta"""


class CampaignError(ValueError):
    """Raised when a campaign cannot be launched or sent."""


class CampaignNotFound(CampaignError):
    pass


def list_campaigns(user_id):
    return (
        Campaign.query.filter_by(user_id=user_id)
        .order_by(Campaign.created_at.desc())
        .all()
    )


def get_campaign(user_id, campaign_id):
    return Campaign.query.filter_by(id=campaign_id, user_id=user_id).first()


def get_campaign_or_raise(user_id, campaign_id):
    if not campaign_id:
        raise CampaignError("campaignId é obrigatório")
    campaign = get_campaign(user_id, campaign_id)
    if not campaign:
        raise CampaignNotFound("Campanha não encontrada")
    return campaign


# ──────────────────────────────────────────────
# Scripts
# ──────────────────────────────────────────────

def template_script(lead):
    """Generic script used when neither the LLM nor a built-in script applies."""
    contact = lead.decision_maker or "[Nome]"
    hook = lead.prospecting_hook
    return {
        "call_script": (
            f"Bom dia, falo com {contact}? Somos especialistas em recuperação "
            f"tributária. Identificamos oportunidades na {lead.company} "
            f"relacionadas a {hook or 'créditos fiscais'}. Posso explicar como "
            f"maximizar esses benefícios em 15 minutos?"
        ),
        "email_subject": f"Oportunidades fiscais para {lead.company}",
        "email_body": (
            f"Prezado {contact},\n\n"
            f"Identificamos oportunidades de recuperação tributária na "
            f"{lead.company}, especificamente relacionadas a "
            f"{hook or 'créditos de ICMS e benefícios fiscais'}.\n\n"
            f"Atuamos com empresas do setor {lead.sector or 'similar'} para "
            f"maximizar créditos e reduzir passivos tributários.\n\n"
            f"Podemos agendar 20 minutos para apresentar os ganhos potenciais?\n\n"
            f"Atenciosamente,\n[Seu Nome]"
        ),
    }


def fallback_script(lead):
    builtin = knowledge_service.get_call_script(lead.company)
    if builtin:
        return {
            "call_script": builtin["call_script"],
            "email_subject": builtin["email_subject"],
            "email_body": builtin["email_body"],
        }
    return template_script(lead)


def generate_script(lead):
    """OpenAI script for one lead, falling back on any LLM failure."""
    if not llm_service.openai_configured():
        return fallback_script(lead)

    prompt = SCRIPT_PROMPT.format(
        company=lead.company,
        sector=lead.sector or "Não informado",
        tax_regime=lead.tax_regime or "Não informado",
        hook=lead.prospecting_hook or "Oportunidade fiscal",
        decision_maker=lead.decision_maker or "[Nome]",
    )
    try:
        data = llm_service.chat_openai_json(prompt, temperature=0.7, max_tokens=1000)
    except llm_service.LLMError as e:
        logger.error(f"Script generation failed for {lead.company}, using fallback: {e}")
        return fallback_script(lead)

    script = {key: str(data.get(key) or "").strip()
              for key in ("call_script", "email_subject", "email_body")}
    if not script["call_script"]:
        return fallback_script(lead)
    fallback = template_script(lead)
    return {key: value or fallback[key] for key, value in script.items()}


# ──────────────────────────────────────────────
# Launch
# ──────────────────────────────────────────────

def launch_campaign(user, now=None):
    """Create a campaign for the user's qualified/contacted leads.

    Returns {"campaignId", "totalScripts", "companies"[, "whatsapp",
    "warning"]}. Raises CampaignError when there are no target leads.
    """
    now = now or datetime.now(timezone.utc)
    leads = (
        Lead.query.filter_by(user_id=user.id)
        .filter(Lead.status.in_(TARGET_STATUSES))
        .order_by(Lead.created_at.asc())
        .all()
    )
    if not leads:
        raise CampaignError("Nenhum lead qualificado encontrado")

    companies = [lead.company for lead in leads]
    campaign = Campaign(
        user_id=user.id,
        name=f"Campanha CRM - {now.strftime('%d/%m/%Y')}",
        description=f"Campanha automática para {len(leads)} leads do CRM",
        status="ativa",
        target_companies=companies,
    )
    db.session.add(campaign)

    for lead in leads:
        script = generate_script(lead)
        campaign.scripts.append(CampaignScript(company=lead.company, **script))

    db.session.add(AuditEvent(
        actor_user_id=user.id,
        action="campaign.launched",
        metadata_={"scripts": len(leads)},
    ))
    db.session.flush()

    knowledge_service.log_knowledge(
        user.id,
        f"Campanha '{campaign.name}' lançada para {len(leads)} empresas: "
        f"{', '.join(companies)}",
    )
    logger.info(f"Campaign {campaign.id} launched with {len(leads)} script(s)")

    result = {
        "campaignId": campaign.id,
        "totalScripts": len(leads),
        "companies": companies,
    }
    try:
        result["whatsapp"] = whatsapp_service.run_campaign(user, campaign)
    except Exception as e:
        logger.error(f"WhatsApp send failed for campaign {campaign.id}: {e}", exc_info=True)
        result["warning"] = "Campanha criada, mas o envio por WhatsApp falhou"
    return result


# ──────────────────────────────────────────────
# Email
# ──────────────────────────────────────────────

def recipient_for(lead, company):
    if lead and lead.email:
        return lead.email
    return f"contato@{''.join(company.lower().split())}.com.br"


def personalize_email(body, contact_name=None):
    sender = current_app.config.get("CAMPAIGN_SENDER_NAME")
    return (
        (body or "")
        .replace("[Nome]", contact_name or whatsapp_service.DEFAULT_GREETING_NAME)
        .replace("[Seu Nome]", sender)
    )


def run_email_campaign(user, campaign):
    """Email every script not yet emailed. Returns {"sentCount", "emails", "simulated"}."""
    leads = Lead.query.filter_by(user_id=user.id).all()
    emails = []
    simulated = False

    for script in [s for s in campaign.scripts if not s.email_sent]:
        lead = whatsapp_service.find_related_lead(leads, script.company)
        to = recipient_for(lead, script.company)
        body = personalize_email(script.email_body, lead.decision_maker if lead else None)

        result = send_email_sync(
            to=to,
            subject=script.email_subject or f"Oportunidades fiscais para {script.company}",
            template="emails/campaign_outreach.html",
            context={
                "subject": script.email_subject,
                "paragraphs": [p for p in body.split("\n") if p.strip()],
                "sender_name": current_app.config.get("CAMPAIGN_SENDER_NAME"),
                "schedule_url": current_app.config.get("APP_BASE_URL"),
            },
        )
        simulated = simulated or result.get("simulated", False)
        script.mark_sent("email")
        emails.append({
            "company": script.company,
            "to": to,
            "subject": script.email_subject,
            "id": result.get("id"),
        })

    db.session.flush()
    logger.info(f"Email campaign {campaign.id}: {len(emails)} email(s)")
    return {"sentCount": len(emails), "emails": emails, "simulated": simulated}
