"""CRM blueprint - /api/*

JSON API for the logged-in user's CRM. Every query is scoped to the
session user; another user's row is reported as not found.

Route Map:
  GET    /api/leads                      - Paginated list (?search, ?status, ?page)
  POST   /api/leads                      - Create (plan limit enforced)
  GET    /api/leads/<id>                 - Detail
  PATCH  /api/leads/<id>                 - Update fields
  PATCH  /api/leads/<id>/status          - Change pipeline status
  DELETE /api/leads/<id>                 - Delete
  POST   /api/leads/import               - CSV/TSV import (JSON text or file upload)
  GET    /api/leads/export               - CSV download
  POST   /api/leads/qualify-keywords     - Keyword qualification of new leads
  GET    /api/contacts                   - List (?search, ?status)
  POST   /api/contacts                   - Create
  GET|PATCH|DELETE /api/contacts/<id>
  GET    /api/contacts/export            - CSV download
  GET    /api/opportunities              - List (?stage)
  POST   /api/opportunities              - Create
  GET|PATCH|DELETE /api/opportunities/<id>
  GET    /api/opportunities/export       - CSV download
  GET    /api/interactions               - List (?contact_id, ?limit)
  POST   /api/interactions               - Create
  GET|PATCH|DELETE /api/interactions/<id>
  GET    /api/dashboard                  - Dashboard counters
  GET    /api/funnel                     - Sales funnel
  GET    /api/plan                       - Current plan + usage
  POST   /api/plan/upgrade               - Start an upgrade
  GET    /api/knowledge                  - Recent memory entries
  GET    /api/knowledge/search           - Deep search + built-in knowledge (?q)
  POST   /api/knowledge/snapshot         - Store the knowledge document
  GET    /api/knowledge/export           - Knowledge document download
  GET    /api/campaigns                  - Campaign list
  GET    /api/campaigns/<id>             - Campaign with scripts
  GET    /api/contents                   - Generated content (?lead_id)
  GET    /api/proposals                  - Proposal list
  GET    /api/meetings                   - Scheduled meetings (?upcoming=1)
  GET    /api/meetings/slots              - Free booking slots
"""

import logging
from datetime import date

import stripe
from flask import Blueprint, Response, g, jsonify, request

from leados.decorators import session_user
from leados.extensions import db
from leados.models.contact import Contact
from leados.models.lead import Lead
from leados.models.opportunity import Opportunity
from leados.services import (
    campaign_service,
    contact_service,
    content_service,
    csv_service,
    dashboard_service,
    interaction_service,
    knowledge_service,
    lead_service,
    meeting_service,
    opportunity_service,
    plan_service,
    proposal_service,
)

logger = logging.getLogger(__name__)

crm_bp = Blueprint("crm", __name__, url_prefix="/api")


def _error(message, status):
    return jsonify(success=False, error=message), status


def _plan_limit_error(e):
    return jsonify(
        success=False,
        error=str(e),
        upgrade_required=True,
        plan=plan_service.get_user_plan(g.user),
    ), 403


def _csv_response(kind, records):
    body = csv_service.UTF8_BOM + csv_service.export_rows(kind, records)
    filename = csv_service.export_filename(kind, date.today())
    return Response(
        body,
        mimetype="text/csv",
        headers={
            "Content-Type": "text/csv; charset=utf-8",
            "Content-Disposition": f'attachment; filename="{filename}"',
        },
    )


def _int_arg(name, default):
    try:
        return max(1, int(request.args.get(name, default)))
    except (TypeError, ValueError):
        return default


# ──────────────────────────────────────────────
# Leads
# ──────────────────────────────────────────────

@crm_bp.route("/leads", methods=["GET"])
@session_user
def list_leads():
    page = lead_service.list_leads(
        g.user.id,
        search=request.args.get("search"),
        status=request.args.get("status"),
        page=_int_arg("page", 1),
        per_page=min(_int_arg("per_page", lead_service.PER_PAGE), 100),
    )
    return jsonify(success=True, **page)


@crm_bp.route("/leads", methods=["POST"])
@session_user
def create_lead():
    data = request.get_json(silent=True) or {}
    try:
        lead = lead_service.create_lead(g.user, data)
    except plan_service.PlanLimitError as e:
        db.session.rollback()
        return _plan_limit_error(e)
    except ValueError as e:
        db.session.rollback()
        return _error(str(e), 422)
    db.session.commit()
    return jsonify(success=True, lead=lead.to_dict()), 201


@crm_bp.route("/leads/<lead_id>", methods=["GET"])
@session_user
def get_lead(lead_id):
    lead = lead_service.get_lead(g.user.id, lead_id)
    if not lead:
        return _error("Lead não encontrado", 404)
    return jsonify(success=True, lead=lead.to_dict())


@crm_bp.route("/leads/<lead_id>", methods=["PATCH"])
@session_user
def update_lead(lead_id):
    lead = lead_service.get_lead(g.user.id, lead_id)
    if not lead:
        return _error("Lead não encontrado", 404)
    try:
        lead_service.update_lead(lead, request.get_json(silent=True) or {})
    except ValueError as e:
        db.session.rollback()
        return _error(str(e), 422)
    db.session.commit()
    return jsonify(success=True, lead=lead.to_dict())


@crm_bp.route("/leads/<lead_id>/status", methods=["PATCH"])
@session_user
def update_lead_status(lead_id):
    lead = lead_service.get_lead(g.user.id, lead_id)
    if not lead:
        return _error("Lead não encontrado", 404)
    status = (request.get_json(silent=True) or {}).get("status")
    if not status:
        return _error("status é obrigatório", 400)
    try:
        lead_service.update_lead_status(lead, status)
    except ValueError as e:
        db.session.rollback()
        return _error(str(e), 422)
    db.session.commit()
    return jsonify(success=True, lead=lead.to_dict())


@crm_bp.route("/leads/<lead_id>", methods=["DELETE"])
@session_user
def delete_lead(lead_id):
    lead = lead_service.get_lead(g.user.id, lead_id)
    if not lead:
        return _error("Lead não encontrado", 404)
    lead_service.delete_lead(lead)
    db.session.commit()
    return jsonify(success=True)


@crm_bp.route("/leads/import", methods=["POST"])
@session_user
def import_leads():
    """Accepts a multipart `file` upload or JSON {"text": "..."}."""
    upload = request.files.get("file")
    if upload:
        text = upload.read().decode("utf-8-sig", errors="replace")
    else:
        text = (request.get_json(silent=True) or {}).get("text") or ""
    if not text.strip():
        return _error("Arquivo CSV vazio", 400)

    try:
        result = lead_service.import_leads_csv(g.user, text)
    except plan_service.PlanLimitError as e:
        db.session.rollback()
        return _plan_limit_error(e)
    db.session.commit()
    logger.info(f"CSV import for user {g.user.id}: {result}")
    return jsonify(
        success=True,
        message=f"{result['imported']} leads importados",
        **result,
    )


@crm_bp.route("/leads/export", methods=["GET"])
@session_user
def export_leads():
    leads = Lead.query.filter_by(user_id=g.user.id).order_by(Lead.created_at.desc()).all()
    return _csv_response("leads", leads)


@crm_bp.route("/leads/qualify-keywords", methods=["POST"])
@session_user
def qualify_keywords():
    count = dashboard_service.keyword_qualify(g.user.id)
    db.session.commit()
    return jsonify(success=True, qualified=count, message=f"{count} leads qualificados")


# ──────────────────────────────────────────────
# Contacts
# ──────────────────────────────────────────────

@crm_bp.route("/contacts", methods=["GET"])
@session_user
def list_contacts():
    contacts = contact_service.list_contacts(
        g.user.id,
        search=request.args.get("search"),
        status=request.args.get("status"),
    )
    return jsonify(success=True, items=[c.to_dict() for c in contacts])


@crm_bp.route("/contacts", methods=["POST"])
@session_user
def create_contact():
    try:
        contact = contact_service.create_contact(g.user.id, request.get_json(silent=True) or {})
    except ValueError as e:
        db.session.rollback()
        return _error(str(e), 422)
    db.session.commit()
    return jsonify(success=True, contact=contact.to_dict()), 201


@crm_bp.route("/contacts/export", methods=["GET"])
@session_user
def export_contacts():
    contacts = Contact.query.filter_by(user_id=g.user.id).order_by(Contact.name).all()
    return _csv_response("contacts", contacts)


@crm_bp.route("/contacts/<contact_id>", methods=["GET"])
@session_user
def get_contact(contact_id):
    contact = contact_service.get_contact(g.user.id, contact_id)
    if not contact:
        return _error("Contato não encontrado", 404)
    return jsonify(success=True, contact=contact.to_dict())


@crm_bp.route("/contacts/<contact_id>", methods=["PATCH"])
@session_user
def update_contact(contact_id):
    contact = contact_service.get_contact(g.user.id, contact_id)
    if not contact:
        return _error("Contato não encontrado", 404)
    try:
        contact_service.update_contact(contact, request.get_json(silent=True) or {})
    except ValueError as e:
        db.session.rollback()
        return _error(str(e), 422)
    db.session.commit()
    return jsonify(success=True, contact=contact.to_dict())


@crm_bp.route("/contacts/<contact_id>", methods=["DELETE"])
@session_user
def delete_contact(contact_id):
    contact = contact_service.get_contact(g.user.id, contact_id)
    if not contact:
        return _error("Contato não encontrado", 404)
    contact_service.delete_contact(contact)
    db.session.commit()
    return jsonify(success=True)


# ──────────────────────────────────────────────
# Opportunities
# ──────────────────────────────────────────────

@crm_bp.route("/opportunities", methods=["GET"])
@session_user
def list_opportunities():
    items = opportunity_service.list_opportunities(g.user.id, stage=request.args.get("stage"))
    return jsonify(success=True, items=[o.to_dict() for o in items])


@crm_bp.route("/opportunities", methods=["POST"])
@session_user
def create_opportunity():
    try:
        opportunity = opportunity_service.create_opportunity(
            g.user.id, request.get_json(silent=True) or {}
        )
    except ValueError as e:
        db.session.rollback()
        return _error(str(e), 422)
    db.session.commit()
    return jsonify(success=True, opportunity=opportunity.to_dict()), 201


@crm_bp.route("/opportunities/export", methods=["GET"])
@session_user
def export_opportunities():
    items = (
        Opportunity.query.filter_by(user_id=g.user.id)
        .order_by(Opportunity.created_at.desc())
        .all()
    )
    return _csv_response("opportunities", items)


@crm_bp.route("/opportunities/<opportunity_id>", methods=["GET"])
@session_user
def get_opportunity(opportunity_id):
    opportunity = opportunity_service.get_opportunity(g.user.id, opportunity_id)
    if not opportunity:
        return _error("Oportunidade não encontrada", 404)
    return jsonify(success=True, opportunity=opportunity.to_dict())


@crm_bp.route("/opportunities/<opportunity_id>", methods=["PATCH"])
@session_user
def update_opportunity(opportunity_id):
    opportunity = opportunity_service.get_opportunity(g.user.id, opportunity_id)
    if not opportunity:
        return _error("Oportunidade não encontrada", 404)
    try:
        opportunity_service.update_opportunity(opportunity, request.get_json(silent=True) or {})
    except ValueError as e:
        db.session.rollback()
        return _error(str(e), 422)
    db.session.commit()
    return jsonify(success=True, opportunity=opportunity.to_dict())


@crm_bp.route("/opportunities/<opportunity_id>", methods=["DELETE"])
@session_user
def delete_opportunity(opportunity_id):
    opportunity = opportunity_service.get_opportunity(g.user.id, opportunity_id)
    if not opportunity:
        return _error("Oportunidade não encontrada", 404)
    opportunity_service.delete_opportunity(opportunity)
    db.session.commit()
    return jsonify(success=True)


# ──────────────────────────────────────────────
# Interactions
# ──────────────────────────────────────────────

@crm_bp.route("/interactions", methods=["GET"])
@session_user
def list_interactions():
    limit = request.args.get("limit", type=int)
    items = interaction_service.list_interactions(
        g.user.id, contact_id=request.args.get("contact_id"), limit=limit
    )
    return jsonify(success=True, items=[i.to_dict() for i in items])


@crm_bp.route("/interactions", methods=["POST"])
@session_user
def create_interaction():
    try:
        interaction = interaction_service.create_interaction(
            g.user.id, request.get_json(silent=True) or {}
        )
    except ValueError as e:
        db.session.rollback()
        return _error(str(e), 422)
    db.session.commit()
    return jsonify(success=True, interaction=interaction.to_dict()), 201


@crm_bp.route("/interactions/<interaction_id>", methods=["GET"])
@session_user
def get_interaction(interaction_id):
    interaction = interaction_service.get_interaction(g.user.id, interaction_id)
    if not interaction:
        return _error("Interação não encontrada", 404)
    return jsonify(success=True, interaction=interaction.to_dict())


@crm_bp.route("/interactions/<interaction_id>", methods=["PATCH"])
@session_user
def update_interaction(interaction_id):
    interaction = interaction_service.get_interaction(g.user.id, interaction_id)
    if not interaction:
        return _error("Interação não encontrada", 404)
    try:
        interaction_service.update_interaction(interaction, request.get_json(silent=True) or {})
    except ValueError as e:
        db.session.rollback()
        return _error(str(e), 422)
    db.session.commit()
    return jsonify(success=True, interaction=interaction.to_dict())


@crm_bp.route("/interactions/<interaction_id>", methods=["DELETE"])
@session_user
def delete_interaction(interaction_id):
    interaction = interaction_service.get_interaction(g.user.id, interaction_id)
    if not interaction:
        return _error("Interação não encontrada", 404)
    interaction_service.delete_interaction(interaction)
    db.session.commit()
    return jsonify(success=True)


# ──────────────────────────────────────────────
# Dashboard & funnel
# ──────────────────────────────────────────────

@crm_bp.route("/dashboard", methods=["GET"])
@session_user
def dashboard():
    return jsonify(success=True, stats=dashboard_service.dashboard_stats(g.user.id))


@crm_bp.route("/funnel", methods=["GET"])
@session_user
def funnel():
    return jsonify(success=True, funnel=dashboard_service.funnel_stats(g.user.id))


# ──────────────────────────────────────────────
# Plan
# ──────────────────────────────────────────────

@crm_bp.route("/plan", methods=["GET"])
@session_user
def current_plan():
    return jsonify(success=True, plan=plan_service.get_user_plan(g.user))


@crm_bp.route("/plan/upgrade", methods=["POST"])
@session_user
def upgrade_plan():
    plan_key = (request.get_json(silent=True) or {}).get("plan")
    if not plan_key:
        return _error("plan é obrigatório", 400)
    try:
        result = plan_service.upgrade_plan(g.user, plan_key)
    except ValueError as e:
        db.session.rollback()
        return _error(str(e), 422)
    except stripe.error.StripeError as e:
        db.session.rollback()
        logger.error(f"Checkout error: {e}", exc_info=True)
        return _error("Não foi possível iniciar o checkout", 502)
    db.session.commit()
    return jsonify(success=True, plan=plan_service.get_user_plan(g.user), **result)


# ──────────────────────────────────────────────
# Knowledge base
# ──────────────────────────────────────────────

@crm_bp.route("/knowledge", methods=["GET"])
@session_user
def recent_knowledge():
    limit = min(_int_arg("limit", 10), 100)
    entries = knowledge_service.recent_knowledge(g.user.id, limit)
    return jsonify(success=True, items=[e.to_dict() for e in entries])


@crm_bp.route("/knowledge/search", methods=["GET"])
@session_user
def search_knowledge():
    query = (request.args.get("q") or "").strip()
    if not query:
        return _error("q é obrigatório", 400)
    return jsonify(
        success=True,
        crm=knowledge_service.deep_search(g.user.id, query),
        knowledge=knowledge_service.rag_search(query),
    )


@crm_bp.route("/knowledge/snapshot", methods=["POST"])
@session_user
def snapshot_knowledge():
    entry = knowledge_service.save_knowledge_snapshot(g.user.id)
    db.session.commit()
    return jsonify(success=True, entry=entry.to_dict()), 201


@crm_bp.route("/knowledge/export", methods=["GET"])
@session_user
def export_knowledge():
    document = knowledge_service.build_knowledge_document(g.user.id)
    filename = f"knowledge-base-{date.today().isoformat()}.txt"
    return Response(
        document,
        mimetype="text/plain",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ──────────────────────────────────────────────
# Campaigns
# ──────────────────────────────────────────────

@crm_bp.route("/campaigns", methods=["GET"])
@session_user
def list_campaigns():
    campaigns = campaign_service.list_campaigns(g.user.id)
    return jsonify(success=True, items=[c.to_dict() for c in campaigns])


@crm_bp.route("/campaigns/<campaign_id>", methods=["GET"])
@session_user
def get_campaign(campaign_id):
    campaign = campaign_service.get_campaign(g.user.id, campaign_id)
    if not campaign:
        return _error("Campanha não encontrada", 404)
    return jsonify(success=True, campaign=campaign.to_dict(include_scripts=True))


# ──────────────────────────────────────────────
# Content, proposals & meetings
# ──────────────────────────────────────────────

@crm_bp.route("/contents", methods=["GET"])
@session_user
def list_contents():
    contents = content_service.list_contents(g.user.id, request.args.get("lead_id"))
    return jsonify(success=True, items=[c.to_dict() for c in contents])


@crm_bp.route("/proposals", methods=["GET"])
@session_user
def list_proposals():
    proposals = proposal_service.list_proposals(g.user.id)
    return jsonify(success=True, items=[p.to_dict() for p in proposals])


@crm_bp.route("/meetings", methods=["GET"])
@session_user
def list_meetings():
    upcoming = request.args.get("upcoming") in ("1", "true")
    meetings = meeting_service.list_meetings(g.user.id, upcoming_only=upcoming)
    return jsonify(success=True, items=[m.to_dict() for m in meetings])


@crm_bp.route("/meetings/slots", methods=["GET"])
@session_user
def meeting_slots():
    return jsonify(success=True, slots=meeting_service.available_slots(g.user.id))
