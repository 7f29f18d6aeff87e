"""Lifecycle emails: welcome, trial onboarding drip and usage upsell.

Onboarding sends day 1, 3, 5 and 7 emails during the first week after
signup. Upsell emails go to gratuito/pro users at or above 85% of their
monthly lead limit, at most once per calendar month.

Every delivered onboarding or upsell email is recorded as a
CampaignKnowledge entry; the CLI jobs use those entries to avoid sending
the same email twice. A simulated or failed send leaves no entry, so the
next run retries it.

Designed to be called from Flask CLI commands (`flask send-onboarding-emails`,
`flask send-upsell-emails`) on a daily cron schedule, and from the
function endpoints for one-off sends.
"""

import logging
from datetime import datetime, timezone

import click
from flask import current_app

from leados.extensions import db
from leados.models.knowledge import CampaignKnowledge
from leados.models.user import User
from leados.services import knowledge_service, plan_service
from leados.services.email_service import send_email, send_email_sync
from leados.utils import as_utc

logger = logging.getLogger(__name__)

ONBOARDING_DAYS = (1, 3, 5, 7)

ONBOARDING_SUBJECTS = {
    1: "Bem-vindo(a) ao Leados AI, {name}!",
    3: "Uma dica para potencializar seus leads 🚀",
    5: "Como a Agência X gerou 50 leads qualificados em 1 hora",
    7: "Seu teste do Leados AI termina hoje!",
}

UPSELL_SUBJECTS = {
    "gratuito": "Você está quase no seu limite de leads do Leados AI",
    "pro": "Hora de escalar? Você está usando {usage}% dos seus leads",
}

WELCOME_SUBJECT = "Oficialmente parte da família Leados AI! 🎉"

ONBOARDING_MARKER = "Email de onboarding dia {day} enviado"
UPSELL_MARKER = "Email de upsell enviado"


def _display_name(user):
    return user.display_name or user.email.split("@")[0]


def _signup_day(user, now):
    """Signup day counts as day 1."""
    return (now - as_utc(user.created_at)).days + 1


# ──────────────────────────────────────────────
# Single sends
# ──────────────────────────────────────────────

def send_welcome_email(user, sync=False):
    """Welcome email after registration. Returns the send result when sync."""
    plan = plan_service.get_user_plan(user)
    context = {
        "name": _display_name(user),
        "plan_name": plan["name"],
        "features": plan_service.PLANS[plan["plan"]]["features"],
        "dashboard_url": current_app.config["APP_BASE_URL"],
    }
    result = None
    if sync:
        result = send_email_sync(user.email, WELCOME_SUBJECT, "emails/welcome.html", context)
    else:
        send_email(user.email, WELCOME_SUBJECT, "emails/welcome.html", context)

    knowledge_service.log_knowledge(
        user.id,
        f"Email de boas-vindas enviado para cliente {plan['plan']}: "
        f"{user.email} - {WELCOME_SUBJECT}",
    )
    return result


def send_onboarding_email(user, day):
    """Send the onboarding email for `day`. Raises ValueError on other days."""
    try:
        day = int(day)
    except (TypeError, ValueError):
        raise ValueError("Invalid day parameter")
    if day not in ONBOARDING_DAYS:
        raise ValueError("Invalid day parameter")

    subject = ONBOARDING_SUBJECTS[day].format(name=_display_name(user))
    result = send_email_sync(
        to=user.email,
        subject=subject,
        template="emails/onboarding.html",
        context={
            "name": _display_name(user),
            "day": day,
            "dashboard_url": current_app.config["APP_BASE_URL"],
            "pricing_url": f"{current_app.config['APP_BASE_URL']}/pricing",
        },
    )
    if result.get("simulated"):
        logger.warning(f"Onboarding day {day} email to {user.email} not delivered")
    else:
        knowledge_service.log_knowledge(
            user.id,
            f"{ONBOARDING_MARKER.format(day=day)} para {user.email}: {subject}",
        )
    return {"day": day, "subject": subject, **result}


def send_upsell_email(user):
    """Offer the next plan when usage is near the limit.

    Returns the send result, or None when the user is not near the limit
    (or is already on the top plan).
    """
    plan = plan_service.get_user_plan(user)
    next_plan = plan_service.NEXT_PLAN.get(plan["plan"])
    if not next_plan or plan["usage_percentage"] < plan_service.UPSELL_THRESHOLD:
        return None

    usage = plan["usage_percentage"]
    subject = UPSELL_SUBJECTS[plan["plan"]].format(usage=usage)
    offer = plan_service.PLANS[next_plan]
    result = send_email_sync(
        to=user.email,
        subject=subject,
        template="emails/upsell.html",
        context={
            "name": _display_name(user),
            "usage": usage,
            "leads_used": plan["leads_used"],
            "leads_limit": plan["leads_limit"],
            "current_plan": plan["name"],
            "next_plan": offer,
            "pricing_url": f"{current_app.config['APP_BASE_URL']}/pricing",
        },
    )
    if result.get("simulated"):
        logger.warning(f"Upsell email to {user.email} not delivered")
    else:
        knowledge_service.log_knowledge(
            user.id,
            f"{UPSELL_MARKER} para {user.email}: {usage}% de uso "
            f"({plan['leads_used']}/{plan['leads_limit']}) - Plano atual: {plan['plan']}",
        )
    return {"subject": subject, "next_plan": next_plan, **result}


# ──────────────────────────────────────────────
# CLI jobs
# ──────────────────────────────────────────────

def _marker_sent(user_id, marker, since=None):
    query = CampaignKnowledge.query.filter_by(user_id=user_id).filter(
        CampaignKnowledge.content.contains(marker)
    )
    if since is not None:
        query = query.filter(CampaignKnowledge.generated_at >= since)
    return query.first() is not None


def _due_onboarding_day(user, now):
    """Highest onboarding day reached, unless already sent. Missed
    earlier days are not backfilled."""
    signup_day = _signup_day(user, now)
    if signup_day > ONBOARDING_DAYS[-1]:
        return None
    for day in reversed(ONBOARDING_DAYS):
        if signup_day >= day:
            if _marker_sent(user.id, ONBOARDING_MARKER.format(day=day)):
                return None
            return day
    return None


def process_onboarding(dry_run=False, now=None):
    """Send the due onboarding email to each user in their first week.

    Returns the number of emails sent (or would-be-sent in dry-run mode).
    """
    now = now or datetime.now(timezone.utc)
    sent_count = 0

    if dry_run:
        click.echo("[DRY RUN] No emails will actually be sent.\n")

    users = User.query.filter_by(is_active=True).all()
    click.echo(f"Checking {len(users)} active user(s) for onboarding emails.")

    for user in users:
        day = _due_onboarding_day(user, now)
        if day is None:
            continue

        if dry_run:
            click.echo(f"   DAY {day}: WOULD SEND → {user.email}")
            sent_count += 1
            continue

        click.echo(f"   DAY {day}: SENDING → {user.email}")
        try:
            result = send_onboarding_email(user, day)
            if result["simulated"]:
                click.echo("      ✗ NOT DELIVERED, retried on the next run.")
                continue
            db.session.commit()
            sent_count += 1
            click.echo("      ✓ Sent and logged.")
        except Exception as e:
            click.echo(f"      ✗ FAILED: {e}")
            db.session.rollback()

    click.echo(f"{'[DRY RUN] ' if dry_run else ''}Done: {sent_count} onboarding email(s) {'would be ' if dry_run else ''}sent.")
    return sent_count


def process_upsell(dry_run=False, now=None):
    """Send upsell emails to users near their limit, once per month."""
    now = now or datetime.now(timezone.utc)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    sent_count = 0

    if dry_run:
        click.echo("[DRY RUN] No emails will actually be sent.\n")

    for user in User.query.filter_by(is_active=True).all():
        plan = plan_service.get_user_plan(user, now)
        if plan["plan"] not in plan_service.NEXT_PLAN:
            continue
        if plan["usage_percentage"] < plan_service.UPSELL_THRESHOLD:
            continue
        if _marker_sent(user.id, UPSELL_MARKER, since=month_start):
            click.echo(f"   {user.email}: upsell already sent this month")
            continue

        if dry_run:
            click.echo(f"   {user.email} ({plan['usage_percentage']}%): WOULD SEND")
            sent_count += 1
            continue

        click.echo(f"   {user.email} ({plan['usage_percentage']}%): SENDING")
        try:
            result = send_upsell_email(user)
            if result["simulated"]:
                click.echo("      ✗ NOT DELIVERED, retried on the next run.")
                continue
            db.session.commit()
            sent_count += 1
            click.echo("      ✓ Sent and logged.")
        except Exception as e:
            click.echo(f"      ✗ FAILED: {e}")
            db.session.rollback()

    click.echo(f"{'[DRY RUN] ' if dry_run else ''}Done: {sent_count} upsell email(s) {'would be ' if dry_run else ''}sent.")
    return sent_count
