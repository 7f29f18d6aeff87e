"""Meeting scheduling on a fixed business-hour slot grid.

Slots cover the next 7 days (weekdays only) at SLOT_TIMES in
MEETING_TIMEZONE, minus the user's already booked meetings. A booking
takes the preferred slot when it is free, or the first free slot when no
preference is given. Functions flush but do NOT commit.
"""

import logging
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from flask import current_app

from leados.extensions import db
from leados.models.meeting import ScheduledMeeting
from leados.services import content_service, interaction_service, lead_service
from leados.utils import as_utc

logger = logging.getLogger(__name__)

SLOT_TIMES = ["09:00", "10:00", "11:00", "14:00", "15:00", "16:00"]
SLOT_DAYS = 7
SUGGESTED_SLOTS = 5
DEFAULT_DURATION = 60
MAX_DURATION = 240

TYPE_LABELS = {
    "call": "Ligação telefônica",
    "video": "Videoconferência",
    "in-person": "Presencial",
}


class SlotUnavailable(ValueError):
    """The requested slot is not on the grid or is already booked."""

    def __init__(self, message, slots):
        super().__init__(message)
        self.slots = slots


def _tz():
    return ZoneInfo(current_app.config.get("MEETING_TIMEZONE", "America/Sao_Paulo"))


def _slot_start(slot):
    start = datetime.fromisoformat(f"{slot['date']}T{slot['time']}")
    return start.replace(tzinfo=_tz())


def _booked(user_id, start, end):
    rows = (
        ScheduledMeeting.query.filter_by(user_id=user_id, status="agendado")
        .filter(ScheduledMeeting.scheduled_at >= start)
        .filter(ScheduledMeeting.scheduled_at < end)
        .all()
    )
    return {as_utc(m.scheduled_at) for m in rows}


def available_slots(user_id, now=None):
    """Free slots as [{"date", "time", "formatted"}], earliest first."""
    tz = _tz()
    today = (now or datetime.now(timezone.utc)).astimezone(tz).date()

    slots = []
    for offset in range(1, SLOT_DAYS + 1):
        day = today + timedelta(days=offset)
        if day.weekday() >= 5:
            continue
        for time in SLOT_TIMES:
            slots.append({
                "date": day.isoformat(),
                "time": time,
                "formatted": f"{day.strftime('%d/%m/%Y')} às {time}",
            })

    if not slots:
        return slots
    start = _slot_start(slots[0]).astimezone(timezone.utc)
    end = _slot_start(slots[-1]).astimezone(timezone.utc) + timedelta(hours=1)
    booked = _booked(user_id, start, end)
    return [s for s in slots if _slot_start(s).astimezone(timezone.utc) not in booked]


def _parse_duration(raw):
    try:
        duration = int(raw or DEFAULT_DURATION)
    except (TypeError, ValueError):
        raise ValueError("duration deve ser um número de minutos")
    if not 15 <= duration <= MAX_DURATION:
        raise ValueError(f"duration deve estar entre 15 e {MAX_DURATION} minutos")
    return duration


def confirmation_message(meeting, slot, consultant):
    lines = [
        "🗓️ *AGENDAMENTO CONFIRMADO* ✅",
        "",
        f"Olá *{meeting.lead_name or 'Cliente'}*!",
        "",
        "Sua conversa de consultoria tributária foi agendada:",
        "",
        f"📅 *Data:* {slot['formatted'].split(' às ')[0]}",
        f"⏰ *Horário:* {slot['time']}",
        f"👨‍💼 *Consultor:* {consultant[0]}",
        f"🏢 *Empresa:* {consultant[1]}",
        f"📞 *Tipo:* {TYPE_LABELS[meeting.meeting_type]}",
        f"⏱️ *Duração:* {meeting.duration_minutes} minutos",
    ]
    if meeting.meeting_type == "video":
        lines += ["", f"🔗 *Link da reunião:* {meeting.meeting_link}"]
    lines += [
        "",
        "📧 Em breve você receberá um convite no seu e-mail com todos os detalhes.",
    ]
    return "\n".join(lines)


def schedule_meeting(user, lead_email, lead_name=None, lead_id=None,
                     preferred_date=None, preferred_time=None,
                     meeting_type="call", duration=None, notes=None, now=None):
    """Book a meeting and log it as an interaction with a follow-up date.

    Raises ValueError on bad input, LeadNotFound for an unknown lead_id and
    SlotUnavailable (carrying the first free slots) when nothing can be
    booked.
    """
    lead_email = (lead_email or "").strip()
    if not lead_email:
        raise ValueError("leadEmail é obrigatório")
    meeting_type = meeting_type or "call"
    if meeting_type not in ScheduledMeeting.TYPES:
        raise ValueError(f"meetingType inválido. Use: {', '.join(ScheduledMeeting.TYPES)}")
    duration = _parse_duration(duration)

    company = None
    if lead_id:
        lead = lead_service.get_lead_or_raise(user.id, lead_id)
        company = lead.company
        lead_name = lead_name or lead.decision_maker or lead.company

    slots = available_slots(user.id, now=now)
    if preferred_date and preferred_time:
        slot = next(
            (s for s in slots if s["date"] == preferred_date and s["time"] == preferred_time),
            None,
        )
    else:
        slot = slots[0] if slots else None
    if slot is None:
        raise SlotUnavailable("Horário solicitado não disponível", slots[:SUGGESTED_SLOTS])

    start = _slot_start(slot).astimezone(timezone.utc)
    meeting = ScheduledMeeting(
        user_id=user.id,
        lead_id=lead_id,
        lead_name=lead_name,
        lead_email=lead_email,
        company=company,
        meeting_type=meeting_type,
        scheduled_at=start,
        duration_minutes=duration,
        notes=notes or f"Reunião agendada com {lead_name or lead_email}",
    )
    db.session.add(meeting)
    db.session.flush()
    base = current_app.config.get("MEETING_LINK_BASE", "").rstrip("/")
    meeting.meeting_link = f"{base}/{meeting.id}"

    interaction_service.log_for_company(
        user.id,
        company,
        "meeting",
        f"Ligação agendada - {meeting_type}",
        f"Reunião agendada para {slot['date']} às {slot['time']} ({duration} min)",
        follow_up_date=slot["date"],
    )
    db.session.flush()
    logger.info(f"Meeting {meeting.id} booked for {slot['date']} {slot['time']}")

    consultant = content_service.consultant_identity(user)
    end = start + timedelta(minutes=duration)
    return {
        "meeting": meeting,
        "whatsappMessage": confirmation_message(meeting, slot, consultant),
        "calendarInvite": {
            "subject": f"Consultoria Tributária - {lead_name or lead_email}",
            "description": (
                f"Reunião de consultoria tributária com {consultant[0]} da {consultant[1]}"
            ),
            "startTime": start.isoformat(),
            "endTime": end.isoformat(),
            "attendees": [lead_email],
        },
    }


def list_meetings(user_id, upcoming_only=False, now=None):
    query = ScheduledMeeting.query.filter_by(user_id=user_id)
    if upcoming_only:
        query = query.filter(
            ScheduledMeeting.scheduled_at >= (now or datetime.now(timezone.utc))
        )
    return query.order_by(ScheduledMeeting.scheduled_at.asc()).all()
