from __future__ import annotations

from flask import Blueprint, jsonify, request, g

from ..decorators import require_auth, require_roles
from ..services import notification_service

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


def _flag(name: str) -> bool:
    return (request.args.get(name) or "").strip().lower() in {"1", "true", "yes"}


@notifications_bp.route("", methods=["GET"])
@require_auth
def list_notifications():
    result = notification_service.list_deliveries(
        g.identity,
        unread_only=_flag("unreadOnly"),
        limit=request.args.get("limit"),
        before=request.args.get("before"),
        before_id=request.args.get("beforeId") or None,
        include_archived=_flag("includeArchived"),
    )
    return jsonify({"success": True, "data": result})


@notifications_bp.route("/unread-count", methods=["GET"])
@require_auth
def get_unread_count():
    count = notification_service.unread_count(g.identity)
    return jsonify({"success": True, "data": {"count": count}})


@notifications_bp.route("/<delivery_id>/read", methods=["PUT"])
@require_auth
def mark_read(delivery_id: str):
    delivery = notification_service.mark_read(delivery_id, g.identity)
    return jsonify({"success": True, "data": delivery})


@notifications_bp.route("/read-all", methods=["POST"])
@require_auth
def mark_all_read():
    updated = notification_service.mark_all_read(g.identity)
    return jsonify({"success": True, "data": {"updated": updated}})


@notifications_bp.route("/<delivery_id>", methods=["DELETE"])
@require_auth
def archive(delivery_id: str):
    delivery = notification_service.archive(delivery_id, g.identity)
    return jsonify({"success": True, "data": delivery})


@notifications_bp.route("", methods=["POST"])
@require_auth
@require_roles("admin", "analyst")
def create_notification():
    """Staff broadcast: one event fanned out to the listed recipients."""
    data = request.get_json(silent=True) or {}
    event_id = notification_service.create_notification_event(
        category=data.get("category") or data.get("type") or "system",
        title=data.get("title"),
        message=data.get("message") or "",
        company_id=data.get("company_id"),
        analyst_id=data.get("analyst_id"),
        created_by_type=g.identity.role,
        created_by_id=g.identity.id,
        link_url=data.get("link_url"),
        data=data.get("data"),
        recipients=data.get("recipients") or [],
    )
    return jsonify({"success": True, "data": {"event_id": event_id}}), 201
