"""Commercial proposals for one lead.

Services are picked from SERVICES_CATALOG by sector and tax regime. The
proposal text comes from Gemini (temperature 0.7) when configured and
from the static template otherwise, or when the Gemini call fails.
Functions flush but do NOT commit.
"""

import logging

from leados.extensions import db
from leados.models.proposal import Proposal
from leados.services import content_service, interaction_service, lead_service, llm_service

logger = logging.getLogger(__name__)

SERVICES_CATALOG = {
    "recuperacao_creditos": {
        "name": "Recuperação de Créditos Tributários",
        "description": "Identificação e recuperação de créditos de ICMS, PIS/COFINS, IRPJ/CSLL",
        "price_range": "R$ 15.000 - R$ 50.000",
        "duration": "3-6 meses",
    },
    "planejamento_tributario": {
        "name": "Planejamento Tributário Avançado",
        "description": "Estratégias de otimização fiscal para grandes empresas",
        "price_range": "R$ 25.000 - R$ 80.000",
        "duration": "6-12 meses",
    },
    "compliance_auditoria": {
        "name": "Compliance e Auditoria Fiscal",
        "description": "Blindagem jurídica e conformidade tributária",
        "price_range": "R$ 20.000 - R$ 60.000",
        "duration": "4-8 meses",
    },
    "reestruturacao_societaria": {
        "name": "Reestruturação Societária",
        "description": "Otimização da estrutura societária com foco tributário",
        "price_range": "R$ 30.000 - R$ 100.000",
        "duration": "6-10 meses",
    },
    "incentivos_fiscais": {
        "name": "Incentivos Fiscais e Regimes Especiais",
        "description": "Aproveitamento de benefícios fiscais específicos do setor",
        "price_range": "R$ 10.000 - R$ 40.000",
        "duration": "2-4 meses",
    },
}

BASE_SERVICES = ("recuperacao_creditos", "planejamento_tributario")

# (sector keywords, service)
SECTOR_SERVICES = [
    (("agro", "alimento"), "incentivos_fiscais"),
    (("construção", "energia"), "reestruturacao_societaria"),
]

SUMMARY_LENGTH = 300

PROPOSAL_PROMPT = """Você é um especialista em consultoria tributária para grandes empresas.

Gere uma proposta comercial profissional e persuasiva para:

DADOS DO CLIENTE:
- Empresa: {company}
- Setor: {sector}
- Regime Tributário: {tax_regime}
- Contato: {decision_maker}

CONSULTOR: {consultant_name}
EMPRESA: {consultant_company}

SERVIÇOS RECOMENDADOS:
{services}

ESTRUTURA DA PROPOSTA:
1. Apresentação personalizada da empresa cliente
2. Diagnóstico das oportunidades tributárias do setor
3. Serviços propostos com benefícios específicos
4. Investimento e condições comerciais
5. Próximos passos e timeline

TOM: Profissional, consultivo, focado em ROI e benefícios tangíveis.
TAMANHO: entre 800 e 1200 palavras, em texto corrido pronto para envio."""


def recommend_services(sector, tax_regime):
    """Catalog entries for a lead, each with its "key"."""
    keys = list(BASE_SERVICES)
    sector_text = (sector or "").lower()
    for keywords, key in SECTOR_SERVICES:
        if any(k in sector_text for k in keywords):
            keys.append(key)
    if "real" in (tax_regime or "").lower():
        keys.append("compliance_auditoria")
    return [{"key": key, **SERVICES_CATALOG[key]} for key in keys]


def static_proposal(lead, consultant, services):
    blocks = "\n".join(
        f"{s['name']}\n{s['description']}\n"
        f"• Prazo de execução: {s['duration']}\n"
        f"• Investimento: {s['price_range']}\n"
        for s in services
    )
    sector = lead.sector or "empresarial"
    return (
        f"🏢 PROPOSTA COMERCIAL - {lead.company.upper()}\n\n"
        f"Prezado(a) {lead.decision_maker or 'Gestor'},\n\n"
        f"Apresentamos nossa proposta de consultoria tributária especializada "
        f"para {lead.company}, com oportunidades de otimização fiscal para o "
        f"setor {sector}.\n\n"
        f"🎯 DIAGNÓSTICO INICIAL\n"
        f"• Recuperação de créditos tributários históricos\n"
        f"• Otimização do regime tributário atual\n"
        f"• Compliance fiscal e segurança jurídica\n\n"
        f"💼 SERVIÇOS PROPOSTOS\n\n{blocks}\n"
        f"📋 PRÓXIMOS PASSOS\n"
        f"1. Assinatura da proposta\n"
        f"2. Análise documental inicial (15 dias)\n"
        f"3. Apresentação do diagnóstico detalhado\n"
        f"4. Execução das estratégias aprovadas\n\n"
        f"Esta proposta é válida por 30 dias.\n\n"
        f"{consultant[0]}\n{consultant[1]}\n"
        f"Especialista em Consultoria Tributária"
    )


def whatsapp_summary(lead, content, consultant_name):
    summary = content[:SUMMARY_LENGTH]
    if len(content) > SUMMARY_LENGTH:
        summary += "..."
    return (
        f"📋 *PROPOSTA COMERCIAL PERSONALIZADA* 📋\n\n"
        f"Olá *{lead.decision_maker or 'Gestor'}*!\n\n"
        f"Preparei uma proposta comercial especialmente para *{lead.company}*.\n\n"
        f"{summary}\n\n"
        f"📎 *A proposta completa será enviada por e-mail*\n\n"
        f"💬 Gostaria de agendar uma ligação para apresentar os detalhes?\n\n"
        f"*{consultant_name}*\nEspecialista em Consultoria Tributária"
    )


def _ai_proposal(lead, consultant, services):
    prompt = PROPOSAL_PROMPT.format(
        company=lead.company,
        sector=lead.sector or "Não informado",
        tax_regime=lead.tax_regime or "A definir",
        decision_maker=lead.decision_maker or "Decisor",
        consultant_name=consultant[0],
        consultant_company=consultant[1],
        services="\n".join(
            f"- {s['name']}: {s['description']} ({s['price_range']})" for s in services
        ),
    )
    return llm_service.generate_gemini(prompt, temperature=0.7, max_output_tokens=2000).strip()


def generate_proposal(user, lead_id):
    """Write and store a proposal for a lead.

    Returns (proposal, services, warning). warning is set when Gemini failed
    and the static template was used instead.
    """
    lead = lead_service.get_lead_or_raise(user.id, lead_id)
    consultant = content_service.consultant_identity(user)
    services = recommend_services(lead.sector, lead.tax_regime)

    content, generated_by, warning = None, "template", None
    if llm_service.gemini_configured():
        try:
            content = _ai_proposal(lead, consultant, services)
            generated_by = "gemini"
        except llm_service.LLMError as e:
            logger.error(f"Proposal generation failed for lead {lead.id}, using template: {e}")
            warning = str(e)
    if not content:
        content = static_proposal(lead, consultant, services)
        generated_by = "template"

    proposal = Proposal(
        user_id=user.id,
        lead_id=lead.id,
        company=lead.company,
        services=[s["key"] for s in services],
        content=content,
        whatsapp_summary=whatsapp_summary(lead, content, consultant[0]),
        generated_by=generated_by,
    )
    db.session.add(proposal)
    interaction_service.log_for_company(
        user.id,
        lead.company,
        "proposal",
        f"Proposta Comercial - {lead.company}",
        "Proposta gerada com serviços: " + ", ".join(s["name"] for s in services),
    )
    db.session.flush()
    logger.info(f"Proposal {proposal.id} ({generated_by}) for lead {lead.id}")
    return proposal, services, warning


def list_proposals(user_id):
    return (
        Proposal.query.filter_by(user_id=user_id)
        .order_by(Proposal.created_at.desc())
        .all()
    )
