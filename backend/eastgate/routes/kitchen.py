# Overview: Flask API routes for the kitchen/service board; parses input and returns JSON responses.

"""
Kitchen board routes.

Read-only derived views; clients poll. Admins without ?branch_id= see every
branch aggregated.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import EastgateError
from ..permissions import ADVANCE_ORDER, VIEW_KITCHEN_BOARD
from ..services import kitchen_board_service
from ..services.branch_service import resolve_branch_id


kitchen_bp = Blueprint("kitchen", __name__, url_prefix="/api/kitchen")


def _flag(name: str, default: bool) -> bool:
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")


@kitchen_bp.get("/board")
@require_auth
@require_permission(VIEW_KITCHEN_BOARD)
def board_route():
    """
    Query params:
    - sort_by: priority (default) | time
    - status: narrow to one active status
    - include_ready: false for the kitchen-only view (default true)
    """
    try:
        branch_id = resolve_branch_id(request.args.get("branch_id"), required=False)
        entries = kitchen_board_service.board(
            branch_id,
            sort_by=request.args.get("sort_by", "priority"),
            status=request.args.get("status"),
            include_ready=_flag("include_ready", True),
            role=g.current_user.role,
        )
        return jsonify({"orders": entries, "count": len(entries)}), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status


@kitchen_bp.get("/summary")
@require_auth
@require_permission(VIEW_KITCHEN_BOARD)
def summary_route():
    try:
        branch_id = resolve_branch_id(request.args.get("branch_id"), required=False)
        return jsonify(kitchen_board_service.board_summary(branch_id)), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status


@kitchen_bp.post("/escalations")
@require_auth
@require_permission(ADVANCE_ORDER)
def escalate_route():
    """Fire URGENT_ORDER notifications for orders that just became urgent."""
    try:
        branch_id = resolve_branch_id(request.args.get("branch_id"), required=False)
        escalated = kitchen_board_service.escalate_urgent_orders(branch_id)
        return jsonify({
            "escalated": [o.order_number for o in escalated],
            "count": len(escalated),
        }), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to escalate urgent orders")
        return jsonify({"error": "Internal server error"}), 500
