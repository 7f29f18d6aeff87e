"""Campaign knowledge model.

Append-only text memory per user: sent messages, bot replies and
knowledge-base snapshots. The newest entries are fed back into LLM prompts.
"""

import uuid
from datetime import datetime, timezone

from leados.extensions import db


class CampaignKnowledge(db.Model):
    __tablename__ = "campaign_knowledge"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    content = db.Column(db.Text, nullable=False)
    generated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "content": self.content,
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
        }

    def __repr__(self):
        return f"<CampaignKnowledge {self.id}>"
