"""Lead service: CRUD, search and bulk creation scoped to one user.

Every lead-creating path (manual entry, CSV import, AI and ReceitaWS
prospect batches) goes through the plan limit in plan_service.

Functions flush but do NOT commit; the caller commits.
"""

import logging

from leados.extensions import db
from leados.models.audit import AuditEvent
from leados.models.lead import Lead
from leados.services import csv_service, plan_service
from leados.services.plan_service import PlanLimitError
from leados.utils import sanitize

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = [
    "company",
    "sector",
    "cnae",
    "tax_regime",
    "decision_maker",
    "phone",
    "email",
    "website",
    "prospecting_hook",
    "notes",
]

QUALIFICATION_FIELDS = [
    "qualification_score",
    "urgency_level",
    "best_contact_time",
    "approach_strategy",
    "estimated_revenue",
]

PER_PAGE = 10


class LeadNotFound(LookupError):
    pass


def _apply_fields(lead, data):
    for field in EDITABLE_FIELDS:
        if field in data:
            value = sanitize(data[field])
            setattr(lead, field, value or None)
    if not lead.company:
        raise ValueError("Empresa é obrigatória")


def _validate_status(status):
    if status not in Lead.STATUSES:
        raise ValueError(
            f"Invalid status '{status}'. Must be one of: {', '.join(Lead.STATUSES)}"
        )


def list_leads(user_id, search=None, status=None, page=1, per_page=PER_PAGE):
    """Newest-first page of leads, optionally filtered.

    search matches company, sector or decision maker (case-insensitive).
    """
    query = Lead.query.filter_by(user_id=user_id)
    if status:
        query = query.filter(Lead.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Lead.company.ilike(pattern),
            Lead.sector.ilike(pattern),
            Lead.decision_maker.ilike(pattern),
        ))
    pagination = (
        query.order_by(Lead.created_at.desc(), Lead.company)
        .paginate(page=page, per_page=per_page, error_out=False)
    )
    return {
        "items": [lead.to_dict() for lead in pagination.items],
        "page": pagination.page,
        "per_page": per_page,
        "total": pagination.total,
        "pages": pagination.pages,
    }


def get_lead(user_id, lead_id):
    return Lead.query.filter_by(user_id=user_id, id=lead_id).first()


def get_lead_or_raise(user_id, lead_id):
    if not lead_id:
        raise ValueError("leadId é obrigatório")
    lead = get_lead(user_id, lead_id)
    if not lead:
        raise LeadNotFound("Lead não encontrado")
    return lead


def existing_companies(user_id):
    rows = db.session.query(Lead.company).filter(Lead.user_id == user_id).all()
    return [row[0] for row in rows]


def create_lead(user, data, source="manual"):
    """Create one lead after checking the monthly limit."""
    plan_service.ensure_can_create_leads(user, 1)

    lead = Lead(user_id=user.id, source=source)
    _apply_fields(lead, data)

    status = data.get("status") or "new"
    _validate_status(status)
    lead.status = status

    db.session.add(lead)
    db.session.flush()
    return lead


def update_lead(lead, data):
    _apply_fields(lead, data)
    if "status" in data:
        update_lead_status(lead, data["status"])
    db.session.flush()
    return lead


def update_lead_status(lead, status):
    """Set the pipeline status. Any transition between valid statuses is allowed."""
    _validate_status(status)
    lead.status = status
    db.session.flush()
    return lead


def apply_qualification(lead, result):
    """Store an AI qualification result and mark the lead qualified."""
    score = result.get("qualification_score")
    if isinstance(score, str):
        digits = "".join(ch for ch in score if ch.isdigit())
        score = int(digits) if digits else None
    lead.qualification_score = score
    for field in QUALIFICATION_FIELDS[1:]:
        value = result.get(field)
        if value is not None:
            setattr(lead, field, sanitize(str(value), max_length=255))
    if result.get("notes"):
        lead.notes = sanitize(result["notes"])
    lead.status = "qualified"
    db.session.flush()
    return lead


def delete_lead(lead):
    db.session.delete(lead)
    db.session.flush()


def bulk_create_leads(user, lead_dicts, source):
    """Insert many leads, skipping duplicates and trimming to the plan limit.

    Duplicate = case-insensitive company match against the user's stored
    leads and earlier rows of the same batch.

    Returns (created_leads, skipped_duplicates, skipped_limit).
    Raises PlanLimitError when the limit is already reached.
    """
    if not lead_dicts:
        return [], 0, 0

    remaining = plan_service.remaining_leads(user)
    if remaining <= 0:
        raise PlanLimitError("Limite mensal de leads atingido")

    seen = {c.strip().lower() for c in existing_companies(user.id) if c}
    created = []
    skipped_duplicates = 0
    skipped_limit = 0

    for data in lead_dicts:
        company = sanitize(data.get("company") or "")
        if not company:
            continue
        key = company.lower()
        if key in seen:
            skipped_duplicates += 1
            continue
        if len(created) >= remaining:
            skipped_limit += 1
            continue
        seen.add(key)

        lead = Lead(user_id=user.id, source=source)
        _apply_fields(lead, data)
        status = data.get("status") or "new"
        lead.status = status if status in Lead.STATUSES else "new"
        db.session.add(lead)
        created.append(lead)

    db.session.flush()
    return created, skipped_duplicates, skipped_limit


def import_leads_csv(user, text):
    """Parse a lead sheet and store the new rows.

    Returns aggregate counts only (no per-row errors).
    """
    parsed = csv_service.import_leads(text, existing_companies(user.id))
    created, dupes, skipped_limit = bulk_create_leads(
        user, parsed["leads"], source="import"
    )

    db.session.add(AuditEvent(
        actor_user_id=user.id,
        action="leads.imported",
        metadata_={
            "imported": len(created),
            "skipped_duplicates": parsed["skipped_duplicates"] + dupes,
            "skipped_invalid": parsed["skipped_invalid"],
            "skipped_limit": skipped_limit,
        },
    ))
    db.session.flush()

    return {
        "imported": len(created),
        "skipped_duplicates": parsed["skipped_duplicates"] + dupes,
        "skipped_invalid": parsed["skipped_invalid"],
        "skipped_limit": skipped_limit,
    }
