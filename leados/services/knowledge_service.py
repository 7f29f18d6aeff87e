"""Knowledge service: built-in prospecting knowledge + per-user RAG memory.

Responsible for:
- Static reference data (TARGETS, CALL_SCRIPTS) and keyword search over it
- Appending and reading CampaignKnowledge entries (the bot's memory)
- Serialising a user's CRM + campaigns into one plain-text document
- Deep search: case-insensitive LIKE queries across the CRM tables

Functions flush but do NOT commit; the caller commits.
"""

import logging
from datetime import datetime, timezone

from leados.extensions import db
from leados.models.campaign import Campaign
from leados.models.contact import Contact
from leados.models.interaction import Interaction
from leados.models.knowledge import CampaignKnowledge
from leados.models.lead import Lead
from leados.models.opportunity import Opportunity
from leados.utils import sanitize

logger = logging.getLogger(__name__)

TARGETS = [
    {
        "company": "Jalles Machado S.A.",
        "sector": "Agroindústria - Açúcar e Etanol",
        "cnae": "1071-6/00",
        "tax_regime": "Lucro Real",
        "decision_maker": "CFO/Tributário",
        "phone": "(62) 3321-8200",
        "email": "ri@jallesmachado.com",
        "website": "jallesmachado.com.br",
        "prospecting_hook": (
            "Investimentos recentes em expansão de capacidade e alta carga "
            "de ICMS – possível otimização tributária"
        ),
    },
    {
        "company": "CRV Industrial",
        "sector": "Agroindústria - Etanol",
        "cnae": "1931-4/00",
        "tax_regime": "Lucro Real",
        "decision_maker": "Gerente Fiscal",
        "phone": "(64) 2103-8600",
        "email": "contato@crvindustrial.com.br",
        "website": "crvindustrial.com.br",
        "prospecting_hook": (
            "Endividamento fiscal registrado em execuções trabalhistas/fiscais "
            "– oportunidade de recuperação"
        ),
    },
    {
        "company": "São Salvador Alimentos (SSA)",
        "sector": "Agroindústria - Frango",
        "cnae": "1012-1/01",
        "tax_regime": "Lucro Real",
        "decision_maker": "Diretor Tributário",
        "phone": "(62) 3330-7000",
        "email": "relacionamento@ssa-alimentos.com.br",
        "website": "ssa-alimentos.com.br",
        "prospecting_hook": (
            "Auditorias e crescimento exportador – risco de créditos "
            "tributários não aproveitados"
        ),
    },
    {
        "company": "Cerradinho Bioenergia",
        "sector": "Bioenergia e Etanol",
        "cnae": "1931-4/00",
        "tax_regime": "Lucro Real",
        "decision_maker": "CFO",
        "phone": "(64) 2101-8100",
        "email": "",
        "website": "",
        "prospecting_hook": (
            "Histórico de execuções fiscais e ICMS elevado – oportunidade de "
            "compliance e recuperação"
        ),
    },
]

CALL_SCRIPTS = [
    {
        "company": "Ambev",
        "call_script": (
            "Bom dia, falo com o CFO ou responsável tributário? Vi que a Ambev "
            "tem enfrentado pressões relacionadas a créditos de ICMS e "
            "fiscalizações estaduais. Nosso trabalho é estruturar estratégias "
            "para recuperar valores e reduzir carga em operações industriais. "
            "Gostaria de marcar 15 minutos para explorar se isso pode gerar "
            "ganhos para vocês."
        ),
        "email_subject": "Potenciais créditos tributários para Ambev",
        "email_body": (
            "Prezado [Nome], Identificamos oportunidades de recuperação "
            "tributária ligadas a ICMS e benefícios fiscais em operações "
            "industriais de bebidas. Atuamos junto a players do seu porte para "
            "maximizar créditos e reduzir passivos. Podemos agendar 20 min para "
            "detalhar os cenários aplicáveis à Ambev? Atenciosamente, [Seu Nome]"
        ),
    },
    {
        "company": "JBS",
        "call_script": (
            "Bom dia, [Nome]. A JBS aparece em várias auditorias sobre passivos "
            "tributários de exportação e créditos de ICMS. Nosso escritório "
            "trabalha diretamente em estratégias para reduzir riscos fiscais "
            "nesse cenário. Posso explicar como otimizamos créditos em grandes "
            "indústrias de proteína?"
        ),
        "email_subject": "Estratégias fiscais para exportações da JBS",
        "email_body": (
            "Prezado [Nome], Recentes auditorias do setor reforçam a importância "
            "de estruturar melhor créditos de ICMS em exportação. Nossa equipe "
            "auxilia multinacionais a reduzir riscos e capturar benefícios "
            "fiscais de forma segura. Poderíamos conversar na próxima semana? "
            "[Seu Nome]"
        ),
    },
    {
        "company": "BRF",
        "call_script": (
            "Bom dia, [Nome]. A BRF vem de um ciclo de reestruturação societária "
            "e ajustes fiscais. Nosso trabalho é justamente apoiar grupos nesse "
            "momento, trazendo recuperação tributária em ICMS de insumos e "
            "compliance reforçado. Seria útil avaliarmos juntos?"
        ),
        "email_subject": "Recuperação de créditos BRF",
        "email_body": (
            "Prezado [Nome], Identificamos oportunidades em créditos de ICMS na "
            "cadeia de insumos da BRF, especialmente após a recente "
            "reorganização societária. Nosso objetivo é gerar ganhos líquidos "
            "com segurança jurídica. Posso agendar uma apresentação curta? "
            "[Seu Nome]"
        ),
    },
]

SUGGESTIONS = [
    (("lead", "prospect"), [
        "Qualificação BANT para leads B2B",
        "Estratégias de abordagem por setor",
        "Follow-up automático",
    ]),
    (("tributário", "fiscal"), [
        "Recuperação de créditos ICMS",
        "Compliance tributário",
        "Planejamento fiscal",
    ]),
    (("reunião", "meeting"), [
        "Melhores horários para contato",
        "Scripts de agendamento",
        "Follow-up pós reunião",
    ]),
]


# ──────────────────────────────────────────────
# Static knowledge
# ──────────────────────────────────────────────

def search_targets(query):
    term = (query or "").lower()
    return [
        t for t in TARGETS
        if term in t["company"].lower()
        or term in t["sector"].lower()
        or term in t["prospecting_hook"].lower()
    ]


def get_call_script(company):
    """First built-in script whose company contains the given name."""
    name = (company or "").strip().lower()
    if not name:
        return None
    for script in CALL_SCRIPTS:
        if name in script["company"].lower() or script["company"].lower() in name:
            return script
    return None


def rag_search(query):
    """Keyword retrieval over the built-in targets and scripts."""
    q = (query or "").lower()

    targets = [
        t for t in TARGETS
        if q in t["company"].lower()
        or q in t["sector"].lower()
        or q in t["prospecting_hook"].lower()
        or t["company"].lower().split(" ")[0] in q
    ]
    scripts = [
        s for s in CALL_SCRIPTS
        if q in s["company"].lower() or s["company"].lower() in q
    ]
    suggestions = []
    for keywords, ideas in SUGGESTIONS:
        if any(k in q for k in keywords):
            suggestions.extend(ideas)

    return {"targets": targets, "scripts": scripts, "suggestions": suggestions}


# ──────────────────────────────────────────────
# Per-user memory
# ──────────────────────────────────────────────

def log_knowledge(user_id, content):
    entry = CampaignKnowledge(user_id=user_id, content=sanitize(content))
    db.session.add(entry)
    db.session.flush()
    return entry


def recent_knowledge(user_id, limit=10):
    return (
        CampaignKnowledge.query
        .filter_by(user_id=user_id)
        .order_by(CampaignKnowledge.generated_at.desc())
        .limit(limit)
        .all()
    )


def build_knowledge_document(user_id, now=None):
    """Serialise the user's CRM and campaigns into one text document."""
    now = now or datetime.now(timezone.utc)

    leads = Lead.query.filter_by(user_id=user_id).order_by(Lead.company).all()
    campaigns = (
        Campaign.query.filter_by(user_id=user_id)
        .order_by(Campaign.created_at.desc())
        .all()
    )
    entries = recent_knowledge(user_id, limit=20)

    lines = [
        "BASE DE CONHECIMENTO - LEADOS AI",
        f"Gerado em: {now.strftime('%d/%m/%Y %H:%M')}",
        "",
        "=== RESUMO ===",
        f"Leads: {len(leads)}",
        f"Contatos: {Contact.query.filter_by(user_id=user_id).count()}",
        f"Oportunidades: {Opportunity.query.filter_by(user_id=user_id).count()}",
        f"Campanhas: {len(campaigns)}",
        "",
        "=== LEADS ===",
    ]
    for lead in leads:
        lines.append(
            f"- {lead.company} | {lead.sector or '-'} | {lead.status} | "
            f"{lead.prospecting_hook or '-'}"
        )

    lines += ["", "=== CAMPANHAS ==="]
    for campaign in campaigns:
        lines.append(f"# {campaign.name} ({campaign.status})")
        for script in campaign.scripts:
            flags = (
                f"whatsapp={'sim' if script.whatsapp_sent else 'não'}, "
                f"email={'sim' if script.email_sent else 'não'}, "
                f"ligação={'sim' if script.call_made else 'não'}"
            )
            lines.append(f"  * {script.company} [{flags}]")
            if script.call_script:
                lines.append(f"    Roteiro: {script.call_script}")
            if script.email_subject:
                lines.append(f"    Assunto: {script.email_subject}")

    lines += ["", "=== MEMÓRIA RECENTE ==="]
    for entry in entries:
        lines.append(f"- {entry.content}")

    return "\n".join(lines) + "\n"


def save_knowledge_snapshot(user_id):
    """Store the current knowledge document as a memory entry."""
    document = build_knowledge_document(user_id)
    entry = CampaignKnowledge(user_id=user_id, content=document)
    db.session.add(entry)
    db.session.flush()
    return entry


# ──────────────────────────────────────────────
# Deep search
# ──────────────────────────────────────────────

def deep_search(user_id, query):
    """Case-insensitive LIKE search across the user's CRM tables."""
    pattern = f"%{(query or '').strip()}%"

    leads = Lead.query.filter_by(user_id=user_id).filter(db.or_(
        Lead.company.ilike(pattern),
        Lead.sector.ilike(pattern),
        Lead.prospecting_hook.ilike(pattern),
    )).limit(10).all()
    contacts = Contact.query.filter_by(user_id=user_id).filter(db.or_(
        Contact.name.ilike(pattern),
        Contact.company.ilike(pattern),
        Contact.role.ilike(pattern),
    )).limit(10).all()
    opportunities = Opportunity.query.filter_by(user_id=user_id).filter(db.or_(
        Opportunity.title.ilike(pattern),
        Opportunity.company.ilike(pattern),
    )).limit(10).all()
    interactions = (
        Interaction.query.filter_by(user_id=user_id)
        .order_by(Interaction.interaction_date.desc())
        .limit(5)
        .all()
    )
    campaigns = Campaign.query.filter_by(user_id=user_id).filter(
        Campaign.name.ilike(pattern)
    ).limit(10).all()

    result = {
        "leads": [lead.to_dict() for lead in leads],
        "contacts": [c.to_dict() for c in contacts],
        "opportunities": [o.to_dict() for o in opportunities],
        "interactions": [i.to_dict() for i in interactions],
        "campaigns": [c.to_dict() for c in campaigns],
    }
    result["total_results"] = sum(len(v) for v in result.values())
    return result
