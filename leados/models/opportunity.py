"""Opportunity model.

A pipeline deal, optionally tied to a Contact. stage is a plain string:
the known stages drive funnel counts, anything else is still stored.
probability is a free-text percentage mapped to a band for display.
"""

import uuid

from leados.extensions import db


class Opportunity(db.Model):
    __tablename__ = "opportunities"

    # -- Known stages (not enforced; any string can be written) --
    STAGES = [
        "lead",
        "contact",
        "meeting",
        "proposal",
        "closing",
        "lost",
    ]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    contact_id = db.Column(
        db.String(36), db.ForeignKey("contacts.id"), nullable=True
    )
    title = db.Column(db.String(255), nullable=False)
    company = db.Column(db.String(255), nullable=True)
    value = db.Column(db.Numeric(14, 2), default=0, nullable=False)
    probability = db.Column(db.String(10), default="25", nullable=False)
    stage = db.Column(db.String(50), default="lead", nullable=False)
    expected_close_date = db.Column(db.String(50), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    contact = db.relationship("Contact", back_populates="opportunities")

    @property
    def probability_band(self):
        """high >= 75, medium >= 50, low >= 25, else minimal."""
        try:
            pct = int(self.probability)
        except (TypeError, ValueError):
            pct = 0
        if pct >= 75:
            return "high"
        if pct >= 50:
            return "medium"
        if pct >= 25:
            return "low"
        return "minimal"

    def to_dict(self):
        return {
            "id": self.id,
            "contact_id": self.contact_id,
            "title": self.title,
            "company": self.company,
            "value": float(self.value or 0),
            "probability": self.probability,
            "probability_band": self.probability_band,
            "stage": self.stage,
            "expected_close_date": self.expected_close_date,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Opportunity {self.title} ({self.stage})>"
