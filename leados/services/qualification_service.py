"""AI lead qualification.

Each lead is sent to Gemini (temperature 0.3) for a qualification report.
A rate limit, vendor error or unparseable answer skips that lead and the
batch carries on. qualify_batch scores freshly looked-up companies in a
single call before they are stored. Functions flush but do NOT commit.
"""

import json
import logging

from leados.models.lead import Lead
from leados.services import lead_service, llm_service

logger = logging.getLogger(__name__)

DEFAULT_BATCH = 10

QUALIFY_PROMPT = """Você é um especialista em qualificação de leads B2B para consultoria tributária.
Analise a empresa abaixo e gere um relatório de qualificação acionável.

Empresa: {company}
Setor: {sector}
CNAE: {cnae}
Regime Tributário: {tax_regime}
Contato Decisor: {decision_maker}
Gancho: {prospecting_hook}

Tarefas:
- Identifique eventos corporativos recentes e dores tributárias do setor
  (ICMS, PIS/COFINS, IRPJ/CSLL, incentivos fiscais).
- Atribua uma pontuação de 1 a 5 (5 = maior prioridade) e um nível de
  urgência (Alta, Média, Baixa).

Retorne APENAS um JSON válido no formato:
{{
  "qualificationScore": 4,
  "urgencyLevel": "Alta",
  "notes": "Resumo das dores e oportunidades identificadas",
  "bestContactTime": "Manhã (9h-11h)",
  "approachStrategy": "Focar em otimização fiscal da nova unidade",
  "estimatedRevenue": "R$ 50.000 - R$ 150.000"
}}"""

# model key -> Lead attribute
RESULT_FIELDS = {
    "qualificationScore": "qualification_score",
    "urgencyLevel": "urgency_level",
    "notes": "notes",
    "bestContactTime": "best_contact_time",
    "approachStrategy": "approach_strategy",
    "estimatedRevenue": "estimated_revenue",
}


BATCH_PROMPT = """Você é um especialista em qualificação de leads B2B para consultoria tributária.

DADOS REAIS COLETADOS:
{companies}

Qualifique cada empresa (BANT adaptado: decisor = sócio, dor tributária,
urgência pelo porte e atividade). Use APENAS os dados reais fornecidos.

Retorne APENAS um JSON válido no formato:
{{
  "prospects": [
    {{
      "company": "[nome exatamente como recebido]",
      "qualificationScore": 4,
      "urgencyLevel": "Alta",
      "notes": "Resumo das dores e oportunidades",
      "bestContactTime": "Manhã (9h-11h)",
      "approachStrategy": "Estratégia de abordagem",
      "estimatedRevenue": "Faixa baseada no porte"
    }}
  ]
}}"""


def _select_leads(user_id, lead_ids=None):
    query = Lead.query.filter_by(user_id=user_id)
    if lead_ids:
        return query.filter(Lead.id.in_(lead_ids)).all()
    return (
        query.filter_by(status="new")
        .order_by(Lead.created_at.asc())
        .limit(DEFAULT_BATCH)
        .all()
    )


def qualify_lead(lead):
    """Qualify one lead. Raises llm_service.LLMError on any failure."""
    prompt = QUALIFY_PROMPT.format(
        company=lead.company,
        sector=lead.sector or "-",
        cnae=lead.cnae or "-",
        tax_regime=lead.tax_regime or "-",
        decision_maker=lead.decision_maker or "-",
        prospecting_hook=lead.prospecting_hook or "-",
    )
    data = llm_service.generate_gemini_json(prompt, temperature=0.3)
    result = {attr: data.get(key) for key, attr in RESULT_FIELDS.items()}
    return lead_service.apply_qualification(lead, result)


def qualify_batch(prospects):
    """Qualify not-yet-stored prospect dicts in one Gemini call.

    Returns {lowercased company: qualification result}. Raises
    llm_service.LLMError when the call or its answer fails.
    """
    companies = json.dumps(prospects, ensure_ascii=False, indent=2)
    data = llm_service.generate_gemini_json(
        BATCH_PROMPT.format(companies=companies), temperature=0.3
    )
    items = data.get("prospects") if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise llm_service.LLMResponseError("Estrutura de dados inválida da IA")

    reports = {}
    for item in items:
        if not isinstance(item, dict) or not item.get("company"):
            continue
        key = str(item["company"]).strip().lower()
        reports[key] = {attr: item.get(k) for k, attr in RESULT_FIELDS.items()}
    return reports


def qualify_leads(user, lead_ids=None):
    """Qualify the given leads (or up to 10 new ones).

    Returns {"qualified": [...ids], "skipped": [...ids], "message": str}.
    Raises LLMNotConfiguredError up front when Gemini has no key, and
    ValueError when lead_ids is not a list.
    """
    if lead_ids is not None and not isinstance(lead_ids, list):
        raise ValueError("leadIds deve ser uma lista")
    if not llm_service.gemini_configured():
        raise llm_service.LLMNotConfiguredError("GEMINI_API_KEY not configured")

    leads = _select_leads(user.id, lead_ids)
    if not leads:
        return {
            "qualified": [],
            "skipped": [],
            "message": "Nenhum lead encontrado para qualificação.",
        }

    qualified, skipped = [], []
    for lead in leads:
        try:
            qualify_lead(lead)
            qualified.append(lead.id)
        except llm_service.LLMRateLimitError:
            logger.error(f"Gemini rate limit reached for lead {lead.id}, skipping")
            skipped.append(lead.id)
        except llm_service.LLMError as e:
            logger.error(f"Qualification failed for lead {lead.id}: {e}")
            skipped.append(lead.id)

    return {
        "qualified": qualified,
        "skipped": skipped,
        "message": f"{len(qualified)} leads qualificados",
    }
