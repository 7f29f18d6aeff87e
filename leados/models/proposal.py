"""Proposal model.

A commercial proposal written for one lead: the recommended catalog
services, the proposal text and the short WhatsApp summary.
"""

import uuid

from leados.extensions import db


class Proposal(db.Model):
    __tablename__ = "proposals"

    STATUSES = ["enviada", "aceita", "recusada"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    lead_id = db.Column(db.String(36), nullable=True)
    company = db.Column(db.String(255), nullable=False)
    services = db.Column(db.JSON, default=list)  # catalog keys
    content = db.Column(db.Text, nullable=False)
    whatsapp_summary = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(50), default="enviada", nullable=False)
    generated_by = db.Column(db.String(50), nullable=False)  # gemini | template
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "lead_id": self.lead_id,
            "company": self.company,
            "services": self.services or [],
            "content": self.content,
            "whatsapp_summary": self.whatsapp_summary,
            "status": self.status,
            "generated_by": self.generated_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Proposal {self.company} ({self.status})>"
