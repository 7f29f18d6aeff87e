"""RAG chat: command detection plus table-lookup context for Gemini.

"Retrieval" is plain lookups: CRM counts, a deep search on the message
keywords, the built-in knowledge base and the user's recent memory,
concatenated into one prompt. Without Gemini the answer is assembled from
the same lookups.

Functions flush but do NOT commit.
"""

import logging
import re

from leados.services import (
    dashboard_service,
    knowledge_service,
    llm_service,
    plan_service,
    prospect_service,
    qualification_service,
)

logger = logging.getLogger(__name__)

GENERATE_PROSPECTS = "generate_prospects"
QUALIFY_LEADS = "qualify_leads"

COMMAND_TRIGGERS = [
    (("criar prospects", "nova campanha"), GENERATE_PROSPECTS),
    (("qualificar",), QUALIFY_LEADS),
]

SYSTEM_PROMPT = """Você é um PhD em Contabilidade e Finanças especialista em consultoria tributária para grandes empresas.

CONHECIMENTO ESPECIALIZADO:
- Recuperação de créditos tributários (ICMS, PIS/COFINS, IRPJ/CSLL)
- Planejamento tributário avançado
- Compliance e auditoria fiscal
- Incentivos fiscais e regimes especiais

DADOS DO CRM ATUAL:
- Leads cadastrados: {total_leads}
- Leads qualificados: {qualified_leads}
- Oportunidades: {total_opportunities} (pipeline R$ {pipeline_value:,.2f})
- Campanhas: {campaigns}

COMANDOS DISPONÍVEIS:
1. "Criar Prospects" - Gera novos prospects com IA
2. "Qualificar Leads" - Qualifica leads existentes

Sempre responda de forma técnica, consultiva e com foco em gerar valor."""

STOPWORDS = {
    "para", "como", "qual", "quais", "sobre", "mais", "quero", "preciso",
    "pode", "esse", "essa", "isso", "meus", "minhas", "tenho", "fazer",
}


def detect_command(message):
    text = (message or "").lower()
    for triggers, command in COMMAND_TRIGGERS:
        if any(t in text for t in triggers):
            return command
    return None


def _keywords(message, limit=3):
    words = re.findall(r"\w{4,}", (message or "").lower())
    seen = []
    for word in words:
        if word not in STOPWORDS and word not in seen:
            seen.append(word)
    return seen[:limit]


def gather_context(user_id, message):
    """Collect CRM stats, deep-search hits and built-in knowledge."""
    stats = dashboard_service.dashboard_stats(user_id)

    hits = {"leads": {}, "contacts": {}, "opportunities": {}}
    for keyword in _keywords(message):
        found = knowledge_service.deep_search(user_id, keyword)
        for kind in hits:
            for row in found[kind]:
                hits[kind][row["id"]] = row

    return {
        "stats": stats,
        "leads": list(hits["leads"].values()),
        "contacts": list(hits["contacts"].values()),
        "opportunities": list(hits["opportunities"].values()),
        "knowledge": knowledge_service.rag_search(message),
        "memory": [e.content for e in knowledge_service.recent_knowledge(user_id, 5)],
    }


def _context_text(ctx):
    lines = []
    if ctx["leads"]:
        lines.append("LEADS RELACIONADOS:")
        lines += [
            f"- {lead['company']} ({lead['status']}): {lead['prospecting_hook'] or '-'}"
            for lead in ctx["leads"]
        ]
    if ctx["contacts"]:
        lines.append("CONTATOS RELACIONADOS:")
        lines += [f"- {c['name']} - {c['role'] or '-'} ({c['company'] or '-'})"
                  for c in ctx["contacts"]]
    if ctx["opportunities"]:
        lines.append("OPORTUNIDADES RELACIONADAS:")
        lines += [f"- {o['title']} ({o['stage']}): R$ {o['value']:,.2f}"
                  for o in ctx["opportunities"]]
    for target in ctx["knowledge"]["targets"]:
        lines.append(f"ALVO: {target['company']} - {target['prospecting_hook']}")
    for script in ctx["knowledge"]["scripts"]:
        lines.append(f"ROTEIRO {script['company']}: {script['call_script']}")
    if ctx["memory"]:
        lines.append("MEMÓRIA RECENTE:")
        lines += [f"- {m[:300]}" for m in ctx["memory"]]
    return "\n".join(lines)


def _fallback_answer(ctx):
    stats = ctx["stats"]
    parts = [
        f"Você tem {stats['total_leads']} leads "
        f"({stats['qualified_leads']} qualificados) e "
        f"{stats['total_opportunities']} oportunidades no CRM."
    ]
    related = [lead["company"] for lead in ctx["leads"]]
    related += [t["company"] for t in ctx["knowledge"]["targets"]]
    if related:
        parts.append("Empresas relacionadas: " + ", ".join(dict.fromkeys(related)) + ".")
    if ctx["knowledge"]["suggestions"]:
        parts.append("Sugestões: " + "; ".join(ctx["knowledge"]["suggestions"]) + ".")
    return " ".join(parts)


def answer(user, message, extra_context=None, question=None):
    """Answer a free-form question. Returns (text, sources, warning).

    `message` drives the lookups. `question`, when given, replaces it as
    the last block of the Gemini prompt.
    """
    ctx = gather_context(user.id, message)

    if llm_service.gemini_configured():
        prompt = SYSTEM_PROMPT.format(**ctx["stats"])
        context_text = _context_text(ctx)
        if context_text:
            prompt += "\n\nCONTEXTO:\n" + context_text
        if extra_context:
            prompt += "\n\n" + extra_context
        prompt += "\n\n" + (question or message)
        try:
            text = llm_service.generate_gemini(prompt, temperature=0.5)
            return text.strip(), ["gemini", "crm", "knowledge_base"], None
        except llm_service.LLMError as e:
            logger.error(f"RAG answer failed, using lookup answer: {e}")
            return _fallback_answer(ctx), ["crm", "knowledge_base"], str(e)

    return _fallback_answer(ctx), ["crm", "knowledge_base"], None


def chat(user, message):
    """RAG chat entry point. Commands run their operation directly.

    Commands are held to the same plan gates as their function endpoints.
    Command operations raise their own errors (LLMError, PlanLimitError).
    """
    command = detect_command(message)

    if command == GENERATE_PROSPECTS:
        result = prospect_service.generate_prospects(user)
        return {
            "response": (
                f"{result['prospects_created']} novos prospects criados e "
                f"adicionados ao CRM."
            ),
            "sources": ["generate_prospects"],
            "command": command,
            "result": result,
        }

    if command == QUALIFY_LEADS:
        plan_service.ensure_feature(user, "can_access_enriched_data")
        result = qualification_service.qualify_leads(user)
        return {
            "response": result["message"],
            "sources": ["qualify_leads"],
            "command": command,
            "result": result,
        }

    text, sources, warning = answer(user, message)
    response = {"response": text, "sources": sources}
    if warning:
        response["warning"] = warning
    return response
