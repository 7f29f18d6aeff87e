"""Lead model.

A prospective company before qualification.
Pipeline: new -> contacted -> qualified | lost (any transition allowed).
Created by manual entry, CSV import, or AI / ReceitaWS prospect batches.
"""

import uuid

from leados.extensions import db


class Lead(db.Model):
    __tablename__ = "leads"

    # -- Valid statuses for pipeline tracking --
    STATUSES = [
        "new",
        "contacted",
        "qualified",
        "lost",
    ]

    SOURCES = ["manual", "import", "ai", "receitaws"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    company = db.Column(db.String(255), nullable=False)
    sector = db.Column(db.String(255), nullable=True)
    cnae = db.Column(db.String(50), nullable=True)  # tax activity code
    tax_regime = db.Column(
        db.String(100), nullable=True
    )  # lucro_real | lucro_presumido | simples_nacional | free text
    decision_maker = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    website = db.Column(db.String(500), nullable=True)
    prospecting_hook = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(50), default="new", nullable=False)
    source = db.Column(db.String(50), default="manual", nullable=False)

    # -- Filled in by AI qualification --
    qualification_score = db.Column(db.Integer, nullable=True)
    urgency_level = db.Column(db.String(50), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    best_contact_time = db.Column(db.String(255), nullable=True)
    approach_strategy = db.Column(db.Text, nullable=True)
    estimated_revenue = db.Column(db.String(255), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="leads")

    def to_dict(self):
        return {
            "id": self.id,
            "company": self.company,
            "sector": self.sector,
            "cnae": self.cnae,
            "tax_regime": self.tax_regime,
            "decision_maker": self.decision_maker,
            "phone": self.phone,
            "email": self.email,
            "website": self.website,
            "prospecting_hook": self.prospecting_hook,
            "status": self.status,
            "source": self.source,
            "qualification_score": self.qualification_score,
            "urgency_level": self.urgency_level,
            "notes": self.notes,
            "best_contact_time": self.best_contact_time,
            "approach_strategy": self.approach_strategy,
            "estimated_revenue": self.estimated_revenue,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Lead {self.company} ({self.status})>"
