"""Prospect service: fill the lead list from an LLM or from ReceitaWS.

- generate_prospects: ask Gemini for a batch of B2B prospects (JSON),
  salvaging complete objects when the answer is truncated
- generate_prospects_hybrid: look up given CNPJs on ReceitaWS one at a
  time (spaced by RECEITAWS_DELAY_SECONDS), skipping MEI and third-sector
  entities, then qualify the real data with Gemini in one call

Both check the monthly quota before any vendor call, insert through
lead_service.bulk_create_leads (plan limit, company de-duplication) and
add a contact per decision maker. Functions flush but do NOT commit.
"""

import logging
import re
import time

import requests
from flask import current_app

from leados.extensions import db
from leados.models.audit import AuditEvent
from leados.services import (
    contact_service,
    lead_service,
    llm_service,
    plan_service,
    qualification_service,
)

logger = logging.getLogger(__name__)

DEFAULT_COUNT = 30
RECOVERY_LIMIT = 15

PROSPECT_FIELDS = [
    "company",
    "sector",
    "cnae",
    "tax_regime",
    "decision_maker",
    "phone",
    "email",
    "website",
    "prospecting_hook",
]

THIRD_SECTOR_MARKERS = ("ASSOCIAÇÃO", "FUNDAÇÃO", "ORGANIZAÇÃO")

PROSPECTS_PROMPT = """Você é um especialista em prospecção B2B nacional.

OBJETIVO: Identificar EXATAMENTE {count} prospects com CNPJ ativo
(EXCLUIR MEI e terceiro setor).
{focus}
CRITÉRIOS BANT ADAPTADOS:
- Authority: OBRIGATÓRIO ser dono, sócio ou diretor (decisor)
- Need: dor tributária ou financeira identificável
- Timing: evento recente (expansão, investimento, autuação)

Para cada prospect, gere empresa real, setor, CNAE principal, regime
tributário, nome e cargo do decisor, telefone comercial, e-mail
corporativo, website oficial e um gancho de prospecção específico.

Retorne APENAS um JSON válido no formato:
{{
  "prospects": [
    {{
      "company": "Nome da Empresa Ltda",
      "sector": "Comércio Varejista",
      "cnae": "4712-1/00",
      "tax_regime": "Lucro Presumido",
      "decision_maker": "Maria Silva (Sócia)",
      "phone": "(11) 3456-7890",
      "email": "maria.silva@empresa.com.br",
      "website": "empresa.com.br",
      "prospecting_hook": "Alta carga de ICMS após expansão recente"
    }}
  ]
}}"""


def _build_prompt(count, sector=None, region=None):
    focus = []
    if sector:
        focus.append(f"FOCO NO SETOR: {sector}")
    if region:
        focus.append(f"REGIÃO: {region}")
    focus_text = ("\n".join(focus) + "\n") if focus else ""
    return PROSPECTS_PROMPT.format(count=count, focus=focus_text)


def _normalize(prospect):
    return {
        field: str(prospect.get(field) or "").strip()
        for field in PROSPECT_FIELDS
    }


def parse_prospects(raw_text):
    """Extract prospect dicts from the model answer.

    Falls back to salvaging complete objects (up to RECOVERY_LIMIT) when
    the JSON is truncated or malformed.
    """
    try:
        data = llm_service.extract_json(raw_text)
        prospects = data.get("prospects") or []
    except llm_service.LLMResponseError:
        prospects = llm_service.recover_objects(raw_text, "company", RECOVERY_LIMIT)
        logger.warning(f"Truncated prospect JSON, recovered {len(prospects)} object(s)")
    return [_normalize(p) for p in prospects if isinstance(p, dict)]


def generate_prospects(user, sector=None, region=None, count=DEFAULT_COUNT):
    """Generate prospects with Gemini and store them as leads.

    Each new lead's decision maker is also added as a contact. Raises
    PlanLimitError before calling Gemini when the monthly limit is already
    reached, and llm_service.LLMError subclasses on vendor failures.
    """
    plan_service.ensure_can_create_leads(user, 1)

    count = max(1, min(int(count or DEFAULT_COUNT), DEFAULT_COUNT))
    raw = llm_service.generate_gemini(
        _build_prompt(count, sector, region), temperature=0.5
    )
    prospects = parse_prospects(raw)[:count]
    if not prospects:
        raise llm_service.LLMResponseError("Nenhum prospect válido na resposta da IA")

    created, dupes, skipped_limit = lead_service.bulk_create_leads(
        user, prospects, source="ai"
    )
    contacts = contact_service.create_from_leads(user.id, created)
    db.session.add(AuditEvent(
        actor_user_id=user.id,
        action="prospects.generated",
        metadata_={
            "created": len(created),
            "contacts": len(contacts),
            "skipped_duplicates": dupes,
            "skipped_limit": skipped_limit,
        },
    ))
    db.session.flush()
    logger.info(f"Generated {len(created)} prospect(s) for user {user.id}")

    return {
        "prospects_created": len(created),
        "contacts_created": len(contacts),
        "skipped_duplicates": dupes,
        "skipped_limit": skipped_limit,
        "companies": [lead.company for lead in created],
    }


# ──────────────────────────────────────────────
# ReceitaWS (hybrid)
# ──────────────────────────────────────────────

def normalize_cnpj(cnpj):
    digits = re.sub(r"\D", "", str(cnpj or ""))
    if len(digits) != 14:
        raise ValueError(f"CNPJ inválido: {cnpj}")
    return digits


def lookup_cnpj(cnpj):
    """Fetch one company from ReceitaWS. Returns the JSON dict."""
    digits = normalize_cnpj(cnpj)
    base_url = current_app.config["RECEITAWS_URL"].rstrip("/")
    resp = requests.get(f"{base_url}/{digits}", timeout=30)
    resp.raise_for_status()
    return resp.json()


def exclusion_reason(data):
    """Why a ReceitaWS record is not a valid prospect, or None."""
    if data.get("status") != "OK":
        return data.get("message") or "lookup error"
    nature = (data.get("natureza_juridica") or "").upper()
    if data.get("porte") == "MICRO EMPRESA" and "INDIVIDUAL" in nature:
        return "MEI"
    if any(marker in nature for marker in THIRD_SECTOR_MARKERS):
        return "terceiro setor"
    return None


def lead_from_receita(data):
    activity = (data.get("atividade_principal") or [{}])[0]
    simples = data.get("simples") or {}
    city = " / ".join(p for p in (data.get("municipio"), data.get("uf")) if p)
    hook = f"Empresa {data.get('porte') or ''} ativa desde {data.get('abertura') or '-'}"
    if city:
        hook += f" em {city}"
    return {
        "company": data.get("fantasia") or data.get("nome") or "",
        "sector": activity.get("text") or "",
        "cnae": activity.get("code") or "",
        "tax_regime": "simples_nacional" if simples.get("optante") else "",
        "decision_maker": ((data.get("qsa") or [{}])[0]).get("nome") or "",
        "phone": data.get("telefone") or "",
        "email": data.get("email") or "",
        "website": "",
        "prospecting_hook": " ".join(hook.split()),
    }


def _qualify_real_data(prospects):
    """Score looked-up companies with Gemini. Returns (reports, warning).

    Without Gemini, or when the call fails, the companies are stored
    unqualified and the failure is reported as a warning.
    """
    if not prospects or not llm_service.gemini_configured():
        return {}, None
    try:
        return qualification_service.qualify_batch(prospects), None
    except llm_service.LLMError as e:
        logger.error(f"Hybrid qualification failed, storing raw ReceitaWS data: {e}")
        return {}, str(e)


def generate_prospects_hybrid(user, cnpjs):
    """Turn a list of CNPJs into leads via ReceitaWS, serially.

    Real data is collected first, then qualified with Gemini in one call
    when configured, then stored as leads plus decision-maker contacts.
    """
    plan_service.ensure_can_create_leads(user, 1)

    delay = current_app.config.get("RECEITAWS_DELAY_SECONDS", 1.0)
    prospects = []
    skipped = []

    for index, cnpj in enumerate(cnpjs):
        if index and delay:
            time.sleep(delay)
        try:
            data = lookup_cnpj(cnpj)
        except ValueError as e:
            skipped.append({"cnpj": cnpj, "reason": str(e)})
            continue
        except requests.RequestException as e:
            logger.error(f"ReceitaWS lookup failed for {cnpj}: {e}")
            skipped.append({"cnpj": cnpj, "reason": "lookup failed"})
            continue

        reason = exclusion_reason(data)
        if reason:
            logger.info(f"Skipping CNPJ {cnpj}: {reason}")
            skipped.append({"cnpj": cnpj, "reason": reason})
            continue
        prospects.append(lead_from_receita(data))

    reports, warning = _qualify_real_data(prospects)

    created, dupes, skipped_limit = lead_service.bulk_create_leads(
        user, prospects, source="receitaws"
    )
    qualified = 0
    for lead in created:
        report = reports.get(lead.company.strip().lower())
        if report:
            lead_service.apply_qualification(lead, report)
            qualified += 1
    contacts = contact_service.create_from_leads(user.id, created, default_role="Sócio")

    db.session.add(AuditEvent(
        actor_user_id=user.id,
        action="prospects.receitaws",
        metadata_={
            "created": len(created),
            "qualified": qualified,
            "skipped": len(skipped),
        },
    ))
    db.session.flush()

    result = {
        "prospects_created": len(created),
        "qualified": qualified,
        "contacts_created": len(contacts),
        "skipped_duplicates": dupes,
        "skipped_limit": skipped_limit,
        "skipped": skipped,
        "companies": [lead.company for lead in created],
    }
    if warning:
        result["warning"] = warning
    return result
