"""Contact model.

A person record (no uniqueness constraint). Target of Interaction and
Opportunity foreign keys.
"""

import uuid

from leados.extensions import db


class Contact(db.Model):
    __tablename__ = "contacts"

    STATUSES = ["ativo", "inativo", "prospecto"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    name = db.Column(db.String(255), nullable=False)
    company = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(255), nullable=True)  # job title
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    website = db.Column(db.String(500), nullable=True)
    status = db.Column(
        db.String(50), default="prospecto", nullable=False
    )  # ativo | inativo | prospecto
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
    user = db.relationship("User", back_populates="contacts")
    interactions = db.relationship(
        "Interaction", back_populates="contact", lazy="dynamic"
    )
    opportunities = db.relationship(
        "Opportunity", back_populates="contact", lazy="dynamic"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "company": self.company,
            "role": self.role,
            "email": self.email,
            "phone": self.phone,
            "website": self.website,
            "status": self.status,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Contact {self.name} ({self.status})>"
