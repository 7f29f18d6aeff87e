"""WhatsApp models.

- WhatsAppConfig: per-user Business API credentials (token + phone number id).
- WhatsAppMessage: inbound messages received through the Meta webhook.
"""

import uuid

from leados.extensions import db


class WhatsAppConfig(db.Model):
    __tablename__ = "whatsapp_configs"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36),
        db.ForeignKey("users.id"),
        unique=True,
        nullable=False,
    )
    api_token = db.Column(db.Text, nullable=False)
    phone_number_id = db.Column(db.String(100), nullable=False)
    webhook_url = db.Column(db.String(500), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self):
        token = self.api_token or ""
        return {
            "id": self.id,
            "phone_number_id": self.phone_number_id,
            "webhook_url": self.webhook_url,
            "is_active": self.is_active,
            "api_token": f"{'*' * 8}{token[-4:]}" if token else None,
        }

    def __repr__(self):
        return f"<WhatsAppConfig {self.phone_number_id} active={self.is_active}>"


class WhatsAppMessage(db.Model):
    __tablename__ = "whatsapp_messages"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    wa_message_id = db.Column(db.String(255), nullable=True)
    phone_number = db.Column(db.String(50), nullable=False, index=True)
    sender_name = db.Column(db.String(255), nullable=True)
    message_content = db.Column(db.Text, nullable=False)
    message_type = db.Column(db.String(50), default="text", nullable=False)
    processed = db.Column(db.Boolean, default=False, nullable=False)
    response_sent = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def to_dict(self):
        return {
            "id": self.id,
            "phone_number": self.phone_number,
            "sender_name": self.sender_name,
            "message_content": self.message_content,
            "message_type": self.message_type,
            "processed": self.processed,
            "response_sent": self.response_sent,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<WhatsAppMessage from {self.phone_number}>"
