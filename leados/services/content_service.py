"""Content agent: social and messaging copy for one lead.

An external sales-agent service is tried first when SALES_AGENT_URL and
SALES_AGENT_API_KEY are set; any failure there falls back to Gemini
(temperature 0.8). The result is stored as GeneratedContent and logged as
a "content" interaction. Functions flush but do NOT commit.
"""

import logging

import requests
from flask import current_app

from leados.extensions import db
from leados.models.content import GeneratedContent
from leados.services import interaction_service, lead_service, llm_service

logger = logging.getLogger(__name__)

CONTENT_TEMPLATES = {
    "linkedin-post": {
        "name": "Post LinkedIn Corporativo",
        "description": "Post profissional para LinkedIn focado em B2B",
        "max_length": 1300,
        "hashtags": True,
        "agent_path": "/generate-linkedin-post",
        "guidelines": (
            "- Foco em insights do setor {sector}\n"
            "- Call-to-action profissional\n"
            "- Mencionar benefícios tangíveis\n"
            "- Usar storytelling corporativo"
        ),
    },
    "instagram-reel": {
        "name": "Reel Instagram",
        "description": "Script para vídeo curto educativo sobre tributação",
        "max_length": 800,
        "hashtags": True,
        "agent_path": "/generate-reel",
        "guidelines": (
            "- Script para vídeo de 15-30 segundos\n"
            "- Hook forte nos primeiros 3 segundos\n"
            "- CTA claro no final"
        ),
    },
    "whatsapp-message": {
        "name": "Mensagem WhatsApp",
        "description": "Mensagem direta e personalizada para WhatsApp",
        "max_length": 600,
        "hashtags": False,
        "agent_path": "/generate-whatsapp-message",
        "guidelines": (
            "- Mensagem direta e personalizada\n"
            "- Sem formalidades excessivas\n"
            "- Emojis estratégicos"
        ),
    },
    "facebook-post": {
        "name": "Post Facebook",
        "description": "Post para Facebook com engajamento",
        "max_length": 1000,
        "hashtags": True,
        "agent_path": "/generate-facebook-post",
        "guidelines": (
            "- Educativo com dicas práticas\n"
            "- Linguagem acessível\n"
            "- CTA para interação"
        ),
    },
}

TONES = {
    "professional": "Profissional e técnico",
    "casual": "Descontraído e acessível",
    "consultative": "Consultivo e educativo",
}
DEFAULT_TONE = "consultative"

AGENT_CTA = "Descubra como otimizar sua carga tributária: Fale com nossos especialistas!"

CONTENT_PROMPT = """Você é um especialista em marketing digital e consultoria tributária.

Gere um {name} de alta qualidade para engajar um lead B2B.

DADOS DO LEAD:
- Empresa: {company}
- Setor: {sector}
- Regime Tributário: {tax_regime}
- Contato: {decision_maker}

CONSULTOR: {consultant_name}
EMPRESA: {consultant_company}

TIPO DE CONTEÚDO: {description}
TOM: {tone}
LIMITE: Máximo {max_length} caracteres
HASHTAGS: {hashtags}
{custom}
DIRETRIZES ESPECÍFICAS:
{guidelines}

CONTEXTO TRIBUTÁRIO:
- Focar em oportunidades de economia fiscal
- Mencionar recuperação de créditos se relevante
- Destacar compliance e segurança jurídica

Gere apenas o conteúdo solicitado, sem explicações adicionais."""


class SalesAgentError(Exception):
    """The external sales agent failed or returned no content."""


def consultant_identity(user):
    return (
        user.display_name or "Consultor Tributário",
        user.company or "Consultoria Tributária",
    )


def sales_agent_configured():
    return bool(
        current_app.config.get("SALES_AGENT_URL")
        and current_app.config.get("SALES_AGENT_API_KEY")
    )


def _call_sales_agent(lead, content_type, tone, custom_prompt, consultant):
    base_url = current_app.config["SALES_AGENT_URL"].rstrip("/")
    payload = {
        "topic": custom_prompt or f"Consultoria tributária para {lead.sector or '-'} - {lead.company}",
        "lead_info": {
            "empresa": lead.company,
            "setor": lead.sector,
            "regime_tributario": lead.tax_regime,
            "contato": lead.decision_maker,
        },
        "platform": content_type,
        "cta": AGENT_CTA,
        "tone": tone,
        "consultant": {"name": consultant[0], "company": consultant[1]},
    }
    try:
        resp = requests.post(
            base_url + CONTENT_TEMPLATES[content_type]["agent_path"],
            headers={"Authorization": f"Bearer {current_app.config['SALES_AGENT_API_KEY']}"},
            json=payload,
            timeout=current_app.config.get("LLM_TIMEOUT", 60),
        )
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        raise SalesAgentError(str(e)) from e

    if not isinstance(data, dict):
        raise SalesAgentError("Resposta inválida do agente de vendas")
    content = (data.get("content") or data.get("generated_content") or "").strip()
    if not content:
        raise SalesAgentError("Resposta vazia do agente de vendas")
    return content


def build_prompt(lead, content_type, tone, custom_prompt, consultant):
    template = CONTENT_TEMPLATES[content_type]
    custom = f"\nPROMPT PERSONALIZADO: {custom_prompt}\n" if custom_prompt else ""
    return CONTENT_PROMPT.format(
        name=template["name"],
        company=lead.company,
        sector=lead.sector or "Empresarial",
        tax_regime=lead.tax_regime or "A definir",
        decision_maker=lead.decision_maker or "Decisor",
        consultant_name=consultant[0],
        consultant_company=consultant[1],
        description=template["description"],
        tone=TONES[tone],
        max_length=template["max_length"],
        hashtags="Incluir hashtags relevantes" if template["hashtags"] else "Sem hashtags",
        custom=custom,
        guidelines=template["guidelines"].format(sector=lead.sector or "empresarial"),
    )


def generate_content(user, lead_id, content_type, tone=None, custom_prompt=None):
    """Write one piece of content for a lead and store it.

    Raises ValueError on an unknown content type or tone, LeadNotFound,
    and llm_service.LLMError subclasses when Gemini is needed and fails
    (LLMNotConfiguredError when neither generator is configured).
    """
    if content_type not in CONTENT_TEMPLATES:
        raise ValueError(
            f"contentType inválido. Use: {', '.join(CONTENT_TEMPLATES)}"
        )
    tone = tone or DEFAULT_TONE
    if tone not in TONES:
        raise ValueError(f"tone inválido. Use: {', '.join(TONES)}")
    lead = lead_service.get_lead_or_raise(user.id, lead_id)
    consultant = consultant_identity(user)

    content, generated_by = None, None
    if sales_agent_configured():
        try:
            content = _call_sales_agent(lead, content_type, tone, custom_prompt, consultant)
            generated_by = "sales_agent"
        except SalesAgentError as e:
            logger.warning(f"Sales agent unavailable, falling back to Gemini: {e}")

    if content is None:
        content = llm_service.generate_gemini(
            build_prompt(lead, content_type, tone, custom_prompt, consultant),
            temperature=0.8,
            max_output_tokens=1500,
        ).strip()
        generated_by = "gemini"

    platform = content_type.split("-")[0]
    record = GeneratedContent(
        user_id=user.id,
        lead_id=lead.id,
        company=lead.company,
        content_type=content_type,
        platform=platform,
        tone=tone,
        content=content,
        generated_by=generated_by,
        metadata_={"lead_sector": lead.sector, "custom_prompt": custom_prompt},
    )
    db.session.add(record)
    interaction_service.log_for_company(
        user.id,
        lead.company,
        "content",
        f"Conteúdo {content_type} gerado",
        f"Conteúdo para {content_type} gerado automaticamente para {lead.company}",
    )
    db.session.flush()
    logger.info(f"Generated {content_type} ({generated_by}) for lead {lead.id}")
    return record


def list_contents(user_id, lead_id=None):
    query = GeneratedContent.query.filter_by(user_id=user_id)
    if lead_id:
        query = query.filter(GeneratedContent.lead_id == lead_id)
    return query.order_by(GeneratedContent.created_at.desc()).all()
