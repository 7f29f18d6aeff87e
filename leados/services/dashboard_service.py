"""Dashboard service: counts and ratios over one user's CRM tables.

- dashboard_stats: headline numbers for the CRM dashboard
- funnel_stats: lead statuses + opportunity stages as one funnel
- keyword_qualify: fixed-keyword qualification of new leads
"""

import logging

from leados.extensions import db
from leados.models.campaign import Campaign
from leados.models.contact import Contact
from leados.models.interaction import Interaction
from leados.models.lead import Lead
from leados.models.opportunity import Opportunity

logger = logging.getLogger(__name__)

# A new lead matching any of these is flipped to "qualified"
QUALIFYING_REGIMES = ("lucro real",)
QUALIFYING_HOOK_KEYWORDS = ("icms", "créditos", "tributário")


def _count_by(column, user_column, user_id):
    rows = (
        db.session.query(column, db.func.count())
        .filter(user_column == user_id)
        .group_by(column)
        .all()
    )
    return {key: count for key, count in rows}


def dashboard_stats(user_id):
    pipeline_value = (
        db.session.query(db.func.coalesce(db.func.sum(Opportunity.value), 0))
        .filter(Opportunity.user_id == user_id)
        .scalar()
    )
    return {
        "total_leads": Lead.query.filter_by(user_id=user_id).count(),
        "qualified_leads": Lead.query.filter_by(
            user_id=user_id, status="qualified"
        ).count(),
        "total_contacts": Contact.query.filter_by(user_id=user_id).count(),
        "total_opportunities": Opportunity.query.filter_by(user_id=user_id).count(),
        "closed_opportunities": Opportunity.query.filter_by(
            user_id=user_id, stage="closing"
        ).count(),
        "pipeline_value": float(pipeline_value or 0),
        "total_interactions": Interaction.query.filter_by(user_id=user_id).count(),
        "campaigns": Campaign.query.filter_by(user_id=user_id).count(),
    }


def funnel_stats(user_id):
    """Funnel counts. Unknown opportunity stages only count towards total."""
    leads = _count_by(Lead.status, Lead.user_id, user_id)
    opps = _count_by(Opportunity.stage, Opportunity.user_id, user_id)

    stages = {
        "leads": leads.get("new", 0),
        "contacted": leads.get("contacted", 0),
        "qualified": leads.get("qualified", 0),
        "meeting": opps.get("meeting", 0),
        "proposal": opps.get("proposal", 0),
        "closing": opps.get("closing", 0),
    }
    lost = leads.get("lost", 0) + opps.get("lost", 0)
    total = sum(leads.values()) + sum(opps.values())
    conversion_rate = round(stages["closing"] / total * 100, 1) if total else 0

    return {
        "stages": stages,
        "lost": lost,
        "total": total,
        "conversion_rate": conversion_rate,
    }


def matches_qualification_keywords(lead):
    regime = (lead.tax_regime or "").lower().replace("_", " ")
    hook = (lead.prospecting_hook or "").lower()
    if any(r in regime for r in QUALIFYING_REGIMES):
        return True
    return any(keyword in hook for keyword in QUALIFYING_HOOK_KEYWORDS)


def keyword_qualify(user_id):
    """Flip matching "new" leads to "qualified". Returns the count.

    Flushes but does NOT commit.
    """
    count = 0
    for lead in Lead.query.filter_by(user_id=user_id, status="new").all():
        if matches_qualification_keywords(lead):
            lead.status = "qualified"
            count += 1
    db.session.flush()
    logger.info(f"Keyword qualification for user {user_id}: {count} lead(s)")
    return count
