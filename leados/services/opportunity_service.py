"""Opportunity service: CRUD scoped to one user.

Stage is free text (no state machine); value must be numeric and
probability a 0-100 percentage. A linked contact must belong to the
same user.

Functions flush but do NOT commit; the caller commits.
"""

from decimal import Decimal, InvalidOperation

from leados.extensions import db
from leados.models.contact import Contact
from leados.models.opportunity import Opportunity
from leados.utils import sanitize

TEXT_FIELDS = ["title", "company", "expected_close_date", "notes"]

# Numeric(14, 2) holds 12 integer digits
MAX_VALUE = Decimal("1e12")


def _parse_value(raw):
    if raw in (None, ""):
        return Decimal("0")
    try:
        value = Decimal(str(raw).replace(",", "."))
    except InvalidOperation:
        raise ValueError("Valor deve ser numérico")
    if not value.is_finite():
        raise ValueError("Valor deve ser numérico")
    if abs(value) >= MAX_VALUE:
        raise ValueError("Valor excede o limite permitido")
    return value.quantize(Decimal("0.01"))


def _parse_probability(raw):
    text = str(raw).strip().rstrip("%")
    if not text.isdigit() or not 0 <= int(text) <= 100:
        raise ValueError("Probabilidade deve ser um percentual entre 0 e 100")
    return str(int(text))


def _apply_fields(user_id, opportunity, data):
    for field in TEXT_FIELDS:
        if field in data:
            setattr(opportunity, field, sanitize(data[field]) or None)
    if "value" in data:
        opportunity.value = _parse_value(data["value"])
    if "probability" in data:
        opportunity.probability = _parse_probability(data["probability"])
    if "stage" in data:
        stage = sanitize(data["stage"]) or "lead"
        opportunity.stage = stage
    if "contact_id" in data:
        contact_id = data["contact_id"] or None
        if contact_id and not Contact.query.filter_by(
            user_id=user_id, id=contact_id
        ).first():
            raise ValueError("Contato não encontrado")
        opportunity.contact_id = contact_id
    if not opportunity.title:
        raise ValueError("Título é obrigatório")


def list_opportunities(user_id, stage=None):
    query = Opportunity.query.filter_by(user_id=user_id)
    if stage:
        query = query.filter(Opportunity.stage == stage)
    return query.order_by(Opportunity.created_at.desc(), Opportunity.title).all()


def get_opportunity(user_id, opportunity_id):
    return Opportunity.query.filter_by(user_id=user_id, id=opportunity_id).first()


def create_opportunity(user_id, data):
    opportunity = Opportunity(user_id=user_id, value=Decimal("0"))
    _apply_fields(user_id, opportunity, data)
    db.session.add(opportunity)
    db.session.flush()
    return opportunity


def update_opportunity(opportunity, data):
    _apply_fields(opportunity.user_id, opportunity, data)
    db.session.flush()
    return opportunity


def delete_opportunity(opportunity):
    db.session.delete(opportunity)
    db.session.flush()
