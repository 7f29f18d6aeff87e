"""Interaction service: touch-point log scoped to one user.

Functions flush but do NOT commit; the caller commits.
"""

from datetime import datetime, timezone

from leados.extensions import db
from leados.models.contact import Contact
from leados.models.interaction import Interaction
from leados.utils import sanitize


def _parse_datetime(raw):
    if isinstance(raw, datetime):
        return raw
    try:
        value = datetime.fromisoformat(str(raw).strip().replace("Z", "+00:00"))
    except ValueError:
        raise ValueError("Data da interação inválida")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _apply_fields(user_id, interaction, data):
    if "interaction_type" in data:
        if data["interaction_type"] not in Interaction.TYPES:
            raise ValueError(
                f"Invalid type '{data['interaction_type']}'. "
                f"Must be one of: {', '.join(Interaction.TYPES)}"
            )
        interaction.interaction_type = data["interaction_type"]
    if "subject" in data:
        interaction.subject = sanitize(data["subject"])
    if "description" in data:
        interaction.description = sanitize(data["description"]) or None
    if "follow_up_date" in data:
        # free text, kept as typed
        interaction.follow_up_date = sanitize(data["follow_up_date"]) or None
    if data.get("interaction_date"):
        interaction.interaction_date = _parse_datetime(data["interaction_date"])
    if "contact_id" in data:
        contact_id = data["contact_id"] or None
        if contact_id and not Contact.query.filter_by(
            user_id=user_id, id=contact_id
        ).first():
            raise ValueError("Contato não encontrado")
        interaction.contact_id = contact_id

    if not interaction.interaction_type:
        raise ValueError("Tipo de interação é obrigatório")
    if not interaction.subject:
        raise ValueError("Assunto é obrigatório")


def list_interactions(user_id, contact_id=None, limit=None):
    query = Interaction.query.filter_by(user_id=user_id)
    if contact_id:
        query = query.filter(Interaction.contact_id == contact_id)
    query = query.order_by(Interaction.interaction_date.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def get_interaction(user_id, interaction_id):
    return Interaction.query.filter_by(user_id=user_id, id=interaction_id).first()


def create_interaction(user_id, data):
    interaction = Interaction(user_id=user_id)
    _apply_fields(user_id, interaction, data)
    db.session.add(interaction)
    db.session.flush()
    return interaction


def update_interaction(interaction, data):
    _apply_fields(interaction.user_id, interaction, data)
    db.session.flush()
    return interaction


def delete_interaction(interaction):
    db.session.delete(interaction)
    db.session.flush()


def log_for_company(user_id, company, interaction_type, subject, description=None,
                    follow_up_date=None):
    """Record a system-generated touch-point, tied to the first contact at
    `company` when there is one."""
    contact = None
    if company:
        contact = (
            Contact.query.filter_by(user_id=user_id)
            .filter(db.func.lower(Contact.company) == company.strip().lower())
            .order_by(Contact.created_at.asc())
            .first()
        )
    interaction = Interaction(
        user_id=user_id,
        contact_id=contact.id if contact else None,
        interaction_type=interaction_type,
        subject=subject[:255],
        description=description,
        follow_up_date=follow_up_date,
    )
    db.session.add(interaction)
    db.session.flush()
    return interaction
