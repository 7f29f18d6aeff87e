"""Campaign models.

- Campaign: a named batch of outreach scripts targeting a list of companies.
- CampaignScript: call script + email for one company, with sent flags set
  by the WhatsApp / email senders. Flag updates are unconditional.
"""

import uuid

from leados.extensions import db


class Campaign(db.Model):
    __tablename__ = "campaigns"

    STATUSES = ["ativa", "pausada", "concluida", "pendente"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(50), default="ativa", nullable=False)
    target_companies = db.Column(db.JSON, default=list)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    scripts = db.relationship(
        "CampaignScript",
        back_populates="campaign",
        cascade="all, delete-orphan",
        order_by="CampaignScript.created_at",
    )

    def progress(self):
        total = len(self.scripts)
        return {
            "total": total,
            "whatsapp_sent": sum(1 for s in self.scripts if s.whatsapp_sent),
            "email_sent": sum(1 for s in self.scripts if s.email_sent),
            "call_made": sum(1 for s in self.scripts if s.call_made),
        }

    def to_dict(self, include_scripts=False):
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "target_companies": self.target_companies or [],
            "progress": self.progress(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_scripts:
            data["scripts"] = [s.to_dict() for s in self.scripts]
        return data

    def __repr__(self):
        return f"<Campaign {self.name} ({self.status})>"


class CampaignScript(db.Model):
    __tablename__ = "campaign_scripts"

    STATUSES = ["pendente", "enviado"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    campaign_id = db.Column(
        db.String(36), db.ForeignKey("campaigns.id"), nullable=False, index=True
    )
    company = db.Column(db.String(255), nullable=False)
    call_script = db.Column(db.Text, nullable=True)
    email_subject = db.Column(db.String(255), nullable=True)
    email_body = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(50), default="pendente", nullable=False)
    whatsapp_sent = db.Column(db.Boolean, default=False, nullable=False)
    email_sent = db.Column(db.Boolean, default=False, nullable=False)
    call_made = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    campaign = db.relationship("Campaign", back_populates="scripts")

    def mark_sent(self, channel):
        """Flag a channel (whatsapp | email) as sent."""
        setattr(self, f"{channel}_sent", True)
        self.status = "enviado"

    def to_dict(self):
        return {
            "id": self.id,
            "company": self.company,
            "call_script": self.call_script,
            "email_subject": self.email_subject,
            "email_body": self.email_body,
            "status": self.status,
            "whatsapp_sent": self.whatsapp_sent,
            "email_sent": self.email_sent,
            "call_made": self.call_made,
        }

    def __repr__(self):
        return f"<CampaignScript {self.company}>"
