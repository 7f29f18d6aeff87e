"""Plan service: pricing table, per-request plan derivation and usage limits.

Responsible for:
- The PLANS table (limits, feature flags, prices, marketing copy)
- Deriving a user's current plan from billing state (never persisted)
- Counting lead usage for the current calendar month
- Enforcing the monthly lead limit on every lead-creating path
- Upgrades: Stripe Checkout when configured, manual grant otherwise
"""

import logging
import math
import uuid
from datetime import datetime, timedelta, timezone

from flask import current_app

from leados.extensions import db
from leados.models.audit import AuditEvent
from leados.models.billing import BillingSubscription
from leados.models.lead import Lead
from leados.utils import as_utc

logger = logging.getLogger(__name__)

TRIAL_DAYS = 7
UPSELL_THRESHOLD = 85  # percent of the lead limit

PLANS = {
    "gratuito": {
        "name": "Gratuito",
        "description": "Para sempre grátis. Ideal para experimentar.",
        "price": {"monthly": 0, "yearly": 0},
        "popular": False,
        "leads_limit": 10,
        "can_export_to_crm": False,
        "can_use_whatsapp": False,
        "can_access_enriched_data": False,
        "features": [
            "10 leads por mês",
            "Dados básicos de CNPJ",
            "Pesquisa por setor",
            "Suporte por email",
        ],
        "limitations": [
            "Sem exportação para CRM",
            "Sem dados enriquecidos",
            "Limite de 10 leads/mês",
        ],
    },
    "pro": {
        "name": "Pro",
        "description": "O mais popular. Para equipes que vendem sério.",
        "price": {"monthly": 97, "yearly": 87},
        "popular": True,
        "leads_limit": 500,
        "can_export_to_crm": True,
        "can_use_whatsapp": True,
        "can_access_enriched_data": True,
        "features": [
            "500 leads por mês",
            "Dados completos de CNPJ + receita",
            "Exportação para CRM",
            "Integração WhatsApp/Email",
            "Análise de tecnologias",
            "Qualificação automática",
            "Suporte prioritário",
            "Treinamento personalizado",
        ],
        "limitations": [],
    },
    "enterprise": {
        "name": "Enterprise",
        "description": "Para grandes equipes e agências.",
        "price": {"monthly": 297, "yearly": 267},
        "popular": False,
        "leads_limit": 2000,
        "can_export_to_crm": True,
        "can_use_whatsapp": True,
        "can_access_enriched_data": True,
        "features": [
            "2000 leads por mês",
            "API dedicada",
            "Múltiplos usuários",
            "Relatórios avançados",
            "Integrações personalizadas",
            "Account manager dedicado",
            "SLA garantido",
            "Onboarding premium",
        ],
        "limitations": [],
    },
}

PAID_PLANS = ("pro", "enterprise")

# Next plan offered by the upsell email
NEXT_PLAN = {"gratuito": "pro", "pro": "enterprise"}

FEATURE_FLAGS = ("can_export_to_crm", "can_use_whatsapp", "can_access_enriched_data")


class PlanLimitError(ValueError):
    """Raised when an operation would exceed the monthly lead limit."""


def pricing_table():
    """Public pricing, in display order. Every plan advertises the trial."""
    table = []
    for key, plan in PLANS.items():
        table.append({
            "plan": key,
            "name": plan["name"],
            "description": plan["description"],
            "price": dict(plan["price"]),
            "popular": plan["popular"],
            "leads_limit": plan["leads_limit"],
            "features": list(plan["features"]),
            "limitations": list(plan["limitations"]),
            "trial_days": TRIAL_DAYS,
        })
    return table


def _month_start(now):
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def count_leads_this_month(user_id, now=None):
    now = now or datetime.now(timezone.utc)
    return (
        Lead.query
        .filter(Lead.user_id == user_id)
        .filter(Lead.created_at >= _month_start(now))
        .count()
    )


def resolve_plan_key(user):
    """Newest entitled subscription wins, then the admin role, then free."""
    sub = (
        BillingSubscription.query
        .filter_by(user_id=user.id)
        .filter(BillingSubscription.status.in_(BillingSubscription.ENTITLED_STATUSES))
        .filter(BillingSubscription.plan.in_(PAID_PLANS))
        .order_by(BillingSubscription.created_at.desc())
        .first()
    )
    if sub:
        return sub.plan
    if user.role == "admin":
        return "enterprise"
    return "gratuito"


def get_user_plan(user, now=None):
    """Compute the user's plan and usage. Derived on every call."""
    now = now or datetime.now(timezone.utc)
    key = resolve_plan_key(user)
    plan = PLANS[key]

    leads_used = count_leads_this_month(user.id, now)
    leads_limit = plan["leads_limit"]

    trial_active = False
    trial_days_left = 0
    trial_ends_at = None
    created_at = as_utc(user.created_at)
    if created_at is not None:
        trial_ends = created_at + timedelta(days=TRIAL_DAYS)
        trial_ends_at = trial_ends.isoformat()
        remaining = (trial_ends - now).total_seconds()
        if key == "pro" and remaining > 0:
            trial_active = True
            trial_days_left = math.ceil(remaining / 86400)

    result = {
        "plan": key,
        "name": plan["name"],
        "leads_used": leads_used,
        "leads_limit": leads_limit,
        "leads_remaining": max(leads_limit - leads_used, 0),
        "can_create_leads": leads_used < leads_limit,
        "usage_percentage": round(leads_used / leads_limit * 100) if leads_limit else 0,
        "trial_active": trial_active,
        "trial_days_left": trial_days_left,
        "trial_ends_at": trial_ends_at,
    }
    for flag in FEATURE_FLAGS:
        result[flag] = plan[flag]
    return result


def remaining_leads(user, now=None):
    return get_user_plan(user, now)["leads_remaining"]


def ensure_can_create_leads(user, count=1):
    """Raise PlanLimitError if creating `count` leads would pass the limit."""
    plan = get_user_plan(user)
    if plan["leads_used"] + count > plan["leads_limit"]:
        raise PlanLimitError(
            f"Limite de {plan['leads_limit']} leads/mês do plano "
            f"{plan['name']} atingido"
        )
    return plan


def ensure_feature(user, feature):
    """Raise PlanLimitError when the user's plan lacks a feature flag."""
    plan = get_user_plan(user)
    if not plan.get(feature):
        raise PlanLimitError(f"Recurso indisponível no plano {plan['name']}")
    return plan


def upgrade_plan(user, plan_key):
    """Start an upgrade to a paid plan.

    With Stripe configured, returns {"checkout_url": ...} and the plan is
    granted later by the checkout webhook. Without Stripe the plan is
    granted immediately through a manual subscription row; enterprise also
    promotes the user's role to admin.

    Flushes but does NOT commit.
    """
    if plan_key not in PAID_PLANS:
        raise ValueError(f"Invalid plan: {plan_key}")

    if current_app.config.get("STRIPE_SECRET_KEY"):
        from leados.services.stripe_service import create_checkout_session

        url = create_checkout_session(user, plan_key)
        db.session.add(AuditEvent(
            actor_user_id=user.id,
            action="plan.checkout_started",
            metadata_={"plan": plan_key},
        ))
        db.session.flush()
        return {"checkout_url": url}

    logger.warning(
        f"Stripe not configured, granting {plan_key} to {user.email} manually"
    )
    user.role = "admin" if plan_key == "enterprise" else "sdr"
    db.session.add(BillingSubscription(
        user_id=user.id,
        stripe_subscription_id=f"manual_{uuid.uuid4().hex}",
        plan=plan_key,
        status="active",
    ))
    db.session.add(AuditEvent(
        actor_user_id=user.id,
        action="plan.upgraded",
        metadata_={"plan": plan_key, "method": "manual"},
    ))
    db.session.flush()
    return {"plan": plan_key}
