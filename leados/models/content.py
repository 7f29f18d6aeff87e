"""Generated content model.

Social and messaging copy written for one lead (LinkedIn post, Instagram
reel script, WhatsApp message, Facebook post). lead_id is a plain
reference so the row outlives the lead.
"""

import uuid

from leados.extensions import db


class GeneratedContent(db.Model):
    __tablename__ = "generated_contents"

    STATUSES = ["gerado", "publicado", "descartado"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    lead_id = db.Column(db.String(36), nullable=True)
    company = db.Column(db.String(255), nullable=True)
    content_type = db.Column(db.String(50), nullable=False)  # e.g. linkedin-post
    platform = db.Column(db.String(50), nullable=False)  # e.g. linkedin
    tone = db.Column(db.String(50), nullable=True)
    content = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(50), default="gerado", nullable=False)
    generated_by = db.Column(db.String(50), nullable=False)  # sales_agent | gemini
    metadata_ = db.Column("metadata", db.JSON, default=dict)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def to_dict(self):
        return {
            "id": self.id,
            "lead_id": self.lead_id,
            "company": self.company,
            "content_type": self.content_type,
            "platform": self.platform,
            "tone": self.tone,
            "content": self.content,
            "status": self.status,
            "generated_by": self.generated_by,
            "metadata": self.metadata_ or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<GeneratedContent {self.content_type} for {self.company}>"
