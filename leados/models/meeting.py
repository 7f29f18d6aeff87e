"""Scheduled meeting model.

A consultation booked with a lead on one of the offered business-hour
slots. scheduled_at is stored in UTC; the slot grid itself lives in the
meeting timezone.
"""

import uuid

from leados.extensions import db
from leados.utils import as_utc


class ScheduledMeeting(db.Model):
    __tablename__ = "scheduled_meetings"

    STATUSES = ["agendado", "realizado", "cancelado"]
    TYPES = ["call", "video", "in-person"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    lead_id = db.Column(db.String(36), nullable=True)
    lead_name = db.Column(db.String(255), nullable=True)
    lead_email = db.Column(db.String(255), nullable=False)
    company = db.Column(db.String(255), nullable=True)
    meeting_type = db.Column(db.String(50), default="call", nullable=False)
    scheduled_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    duration_minutes = db.Column(db.Integer, default=60, nullable=False)
    status = db.Column(db.String(50), default="agendado", nullable=False)
    meeting_link = db.Column(db.String(500), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def to_dict(self):
        scheduled = as_utc(self.scheduled_at)
        return {
            "id": self.id,
            "lead_id": self.lead_id,
            "lead_name": self.lead_name,
            "lead_email": self.lead_email,
            "company": self.company,
            "meeting_type": self.meeting_type,
            "scheduled_at": scheduled.isoformat() if scheduled else None,
            "duration_minutes": self.duration_minutes,
            "status": self.status,
            "meeting_link": self.meeting_link,
            "notes": self.notes,
        }

    def __repr__(self):
        return f"<ScheduledMeeting {self.lead_email} at {self.scheduled_at}>"
