# Overview: Flask API routes for staff notifications; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import EastgateError
from ..extensions import db
from ..models import Notification
from ..permissions import VIEW_NOTIFICATIONS
from ..services import notification_service
from ..services.branch_service import ensure_branch_access, resolve_branch_id
from ..validation import coerce_int


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
@require_permission(VIEW_NOTIFICATIONS)
def list_notifications_route():
    try:
        branch_id = resolve_branch_id(request.args.get("branch_id"))
        limit = coerce_int(request.args.get("limit", "50"), "limit")
        notes = notification_service.list_notifications(
            branch_id,
            unread_only=request.args.get("unread_only", "").lower() in ("1", "true"),
            limit=max(1, min(limit, 200)),
        )
        return jsonify({"notifications": [n.to_dict() for n in notes], "count": len(notes)}), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
@require_permission(VIEW_NOTIFICATIONS)
def mark_read_route(notification_id: int):
    try:
        note = db.session.get(Notification, notification_id)
        if note is not None:
            ensure_branch_access(note.branch_id)
        note = notification_service.mark_read(notification_id)
        return jsonify({"notification": note.to_dict()}), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status
