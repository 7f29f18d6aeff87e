"""Sentiment models.

- SentimentAnalysis: one row per analysed inbound message (pattern or AI tier).
- HumanRedirectNotification: raised when a conversation should be handed
  to a person.
"""

import uuid

from leados.extensions import db


class SentimentAnalysis(db.Model):
    __tablename__ = "sentiment_analyses"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    phone_number = db.Column(db.String(50), nullable=True)
    message_content = db.Column(db.String(500), nullable=False)
    sentiment = db.Column(
        db.String(50), nullable=False
    )  # positive | neutral | negative | frustrated | urgent
    confidence = db.Column(db.Float, nullable=False)
    emotions = db.Column(db.JSON, default=list)
    urgency_level = db.Column(
        db.String(50), nullable=False
    )  # low | medium | high | critical
    redirect_to_human = db.Column(db.Boolean, default=False, nullable=False)
    reasoning = db.Column(db.Text, nullable=True)
    suggested_response_tone = db.Column(db.String(255), nullable=True)
    analysis_type = db.Column(db.String(20), default="pattern")  # ai | pattern
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<SentimentAnalysis {self.sentiment} ({self.analysis_type})>"


class HumanRedirectNotification(db.Model):
    __tablename__ = "human_redirect_notifications"

    STATUSES = ["pending", "resolved"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    sentiment_analysis_id = db.Column(
        db.String(36), db.ForeignKey("sentiment_analyses.id"), nullable=True
    )
    phone_number = db.Column(db.String(50), nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)
    reason = db.Column(db.Text, nullable=False)
    urgency_level = db.Column(db.String(50), nullable=False)
    message_content = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(50), default="pending", nullable=False)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def to_dict(self):
        return {
            "id": self.id,
            "phone_number": self.phone_number,
            "customer_name": self.customer_name,
            "reason": self.reason,
            "urgency_level": self.urgency_level,
            "message_content": self.message_content,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<HumanRedirectNotification {self.urgency_level} ({self.status})>"
