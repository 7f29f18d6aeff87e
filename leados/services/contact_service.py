"""Contact service: CRUD scoped to one user.

Functions flush but do NOT commit; the caller commits.
"""

from leados.extensions import db
from leados.models.contact import Contact
from leados.utils import sanitize

EDITABLE_FIELDS = ["name", "company", "role", "email", "phone", "website", "notes"]


def _apply_fields(contact, data):
    for field in EDITABLE_FIELDS:
        if field in data:
            setattr(contact, field, sanitize(data[field]) or None)
    if "status" in data:
        if data["status"] not in Contact.STATUSES:
            raise ValueError(
                f"Invalid status '{data['status']}'. "
                f"Must be one of: {', '.join(Contact.STATUSES)}"
            )
        contact.status = data["status"]
    if not contact.name:
        raise ValueError("Nome é obrigatório")


def list_contacts(user_id, search=None, status=None):
    query = Contact.query.filter_by(user_id=user_id)
    if status:
        query = query.filter(Contact.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Contact.name.ilike(pattern),
            Contact.company.ilike(pattern),
            Contact.role.ilike(pattern),
        ))
    return query.order_by(Contact.created_at.desc(), Contact.name).all()


def get_contact(user_id, contact_id):
    return Contact.query.filter_by(user_id=user_id, id=contact_id).first()


def create_contact(user_id, data):
    contact = Contact(user_id=user_id)
    _apply_fields(contact, data)
    db.session.add(contact)
    db.session.flush()
    return contact


def _role_from_decision_maker(decision_maker, default):
    """'Maria Silva (Sócia)' -> 'Sócia'."""
    if "(" in decision_maker:
        role = decision_maker.split("(", 1)[1].replace(")", "").strip()
        if role:
            return role
    return default


def create_from_leads(user_id, leads, default_role="Decisor"):
    """Add an active contact for the decision maker of each prospect lead.

    Leads without a decision maker get no contact.
    """
    contacts = []
    for lead in leads:
        if not lead.decision_maker:
            continue
        contact = Contact(
            user_id=user_id,
            name=lead.decision_maker,
            company=lead.company,
            role=_role_from_decision_maker(lead.decision_maker, default_role),
            email=lead.email,
            phone=lead.phone,
            website=lead.website,
            status="ativo",
        )
        db.session.add(contact)
        contacts.append(contact)
    db.session.flush()
    return contacts


def update_contact(contact, data):
    _apply_fields(contact, data)
    db.session.flush()
    return contact


def delete_contact(contact):
    """Delete a contact; its interactions and opportunities are detached."""
    for interaction in contact.interactions:
        interaction.contact_id = None
    for opportunity in contact.opportunities:
        opportunity.contact_id = None
    db.session.delete(contact)
    db.session.flush()
