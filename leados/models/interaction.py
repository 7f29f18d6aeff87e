"""Interaction model.

A logged touch-point (call, email, meeting, WhatsApp, or a generated
proposal or piece of content), optionally tied to a Contact.
follow_up_date is free text (usually an ISO date) and is only used for
"days until" display arithmetic.
"""

import uuid
from datetime import date, datetime, timezone

from leados.extensions import db
from leados.utils import as_utc


class Interaction(db.Model):
    __tablename__ = "interactions"

    TYPES = ["call", "email", "meeting", "whatsapp", "proposal", "content"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    contact_id = db.Column(
        db.String(36), db.ForeignKey("contacts.id"), nullable=True
    )
    interaction_type = db.Column(
        db.String(50), nullable=False
    )  # call | email | meeting | whatsapp | proposal | content
    subject = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    interaction_date = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    follow_up_date = db.Column(db.String(50), nullable=True)  # free text
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    contact = db.relationship("Contact", back_populates="interactions")

    def days_since(self, now=None):
        """Whole days elapsed since the interaction happened."""
        now = now or datetime.now(timezone.utc)
        happened = as_utc(self.interaction_date)
        if happened is None:
            return None
        return (now - happened).days

    def days_until_follow_up(self, today=None):
        """Days until the follow-up date, or None when it doesn't parse."""
        if not self.follow_up_date:
            return None
        try:
            follow_up = date.fromisoformat(self.follow_up_date.strip()[:10])
        except ValueError:
            return None
        today = today or datetime.now(timezone.utc).date()
        return (follow_up - today).days

    def to_dict(self):
        happened = as_utc(self.interaction_date)
        return {
            "id": self.id,
            "contact_id": self.contact_id,
            "contact_name": self.contact.name if self.contact else None,
            "interaction_type": self.interaction_type,
            "subject": self.subject,
            "description": self.description,
            "interaction_date": happened.isoformat() if happened else None,
            "follow_up_date": self.follow_up_date,
            "days_since": self.days_since(),
            "days_until_follow_up": self.days_until_follow_up(),
        }

    def __repr__(self):
        return f"<Interaction {self.interaction_type}: {self.subject}>"
