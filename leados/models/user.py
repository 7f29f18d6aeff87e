"""User model.

Each user is a tenant: every CRM row carries a user_id and is only ever
read or written in that user's scope. Profile fields (display name,
company, role) live on the same row.
Flask-Login integration via UserMixin.
"""

import uuid

from flask_login import UserMixin

from leados.extensions import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    ROLES = ["sdr", "admin"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    display_name = db.Column(db.String(255))
    company = db.Column(db.String(255))
    role = db.Column(db.String(50), default="sdr", nullable=False)  # sdr | admin
    avatar_url = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )  # start of the 7-day trial
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    leads = db.relationship("Lead", back_populates="user", lazy="dynamic")
    contacts = db.relationship("Contact", back_populates="user", lazy="dynamic")
    audit_events = db.relationship(
        "AuditEvent", back_populates="actor", lazy="dynamic"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "company": self.company,
            "role": self.role,
            "avatar_url": self.avatar_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.email}>"
