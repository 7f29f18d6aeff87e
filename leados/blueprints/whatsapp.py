"""WhatsApp blueprint - /api/whatsapp/*

Session-authenticated management of the WhatsApp Business integration.
Every route requires a plan with can_use_whatsapp.

Routes:
- GET  /api/whatsapp/config                       : current config (token masked)
- PUT  /api/whatsapp/config                       : create or update config
- GET  /api/whatsapp/messages                     : received messages, newest first
- GET  /api/whatsapp/notifications                : pending human redirects
- POST /api/whatsapp/notifications/<id>/resolve   : mark a redirect resolved
"""

from flask import Blueprint, g, jsonify, request

from leados.decorators import plan_feature_required, session_user
from leados.extensions import db
from leados.models.whatsapp import WhatsAppMessage
from leados.services import sentiment_service, whatsapp_service

whatsapp_bp = Blueprint("whatsapp", __name__, url_prefix="/api/whatsapp")

MESSAGES_PAGE_SIZE = 100


@whatsapp_bp.route("/config", methods=["GET"])
@session_user
@plan_feature_required("can_use_whatsapp")
def get_config():
    config = whatsapp_service.get_config(g.user.id)
    return jsonify(success=True, config=config.to_dict() if config else None)


@whatsapp_bp.route("/config", methods=["PUT"])
@session_user
@plan_feature_required("can_use_whatsapp")
def put_config():
    data = request.get_json(silent=True) or {}
    try:
        config = whatsapp_service.upsert_config(g.user.id, data)
    except ValueError as e:
        db.session.rollback()
        return jsonify(success=False, error=str(e)), 400
    db.session.commit()
    return jsonify(success=True, config=config.to_dict())


@whatsapp_bp.route("/messages", methods=["GET"])
@session_user
@plan_feature_required("can_use_whatsapp")
def list_messages():
    messages = (
        WhatsAppMessage.query.filter_by(user_id=g.user.id)
        .order_by(WhatsAppMessage.created_at.desc())
        .limit(MESSAGES_PAGE_SIZE)
        .all()
    )
    return jsonify(success=True, messages=[m.to_dict() for m in messages])


@whatsapp_bp.route("/notifications", methods=["GET"])
@session_user
@plan_feature_required("can_use_whatsapp")
def list_notifications():
    notifications = sentiment_service.list_pending_notifications(g.user.id)
    return jsonify(success=True, notifications=[n.to_dict() for n in notifications])


@whatsapp_bp.route("/notifications/<notification_id>/resolve", methods=["POST"])
@session_user
@plan_feature_required("can_use_whatsapp")
def resolve_notification(notification_id):
    try:
        notification = sentiment_service.resolve_notification(g.user.id, notification_id)
    except ValueError as e:
        return jsonify(success=False, error=str(e)), 404
    db.session.commit()
    return jsonify(success=True, notification=notification.to_dict())
