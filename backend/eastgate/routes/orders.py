# Overview: Flask API routes for order operations; parses input and returns JSON responses.

# backend/eastgate/routes/orders.py
"""
Order routes.

Status changes go through one endpoint (POST /<id>/status) so every client
(waiter tablet, kitchen screen, guest page) hits the same transition table.
A repeated request for the current status answers 200 with "changed": false.

Serving needs SERVE_ORDER and every other forward step needs ADVANCE_ORDER;
cancelling needs CANCEL_ORDER. Waiters hold both, kitchen staff only the latter.
"""

from flask import Blueprint, current_app, jsonify, request, g

from ..decorators import require_auth, require_permission
from ..errors import EastgateError
from ..permissions import (
    ADVANCE_ORDER,
    CANCEL_ORDER,
    CREATE_ORDER,
    SERVE_ORDER,
    VIEW_ORDERS,
    has_permission,
)
from ..services import order_service
from ..services.activity_service import list_activity
from ..services.branch_service import ensure_branch_access, resolve_branch_id
from ..time_utils import parse_iso_datetime
from ..validation import coerce_int, require_text


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _required_permission(requested_status: str) -> str:
    if requested_status == "served":
        return SERVE_ORDER
    if requested_status == "cancelled":
        return CANCEL_ORDER
    return ADVANCE_ORDER


@orders_bp.post("")
@require_auth
@require_permission(CREATE_ORDER)
def create_order_route():
    data = request.get_json(silent=True) or {}
    try:
        branch_id = resolve_branch_id(data.get("branch_id"))
        order = order_service.create_order(
            branch_id=branch_id,
            customer_name=data.get("customer_name"),
            order_type=data.get("order_type"),
            items=data.get("items"),
            payment_method=data.get("payment_method"),
            table_number=data.get("table_number"),
            room_number=data.get("room_number"),
            notes=data.get("notes"),
            created_by_user_id=g.current_user.id,
        )
        return jsonify({"order": order.to_dict()}), 201
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
@require_permission(VIEW_ORDERS)
def list_orders_route():
    args = request.args
    try:
        branch_id = resolve_branch_id(args.get("branch_id"), required=False)
        table_number = coerce_int(args["table_number"], "table_number") if args.get("table_number") else None
        page = coerce_int(args.get("page", "1"), "page")
        per_page = coerce_int(args["limit"], "limit") if args.get("limit") else None
        try:
            date_from = parse_iso_datetime(args.get("from"))
            date_to = parse_iso_datetime(args.get("to"))
        except ValueError:
            return jsonify({"error": "from/to must be ISO-8601 datetimes", "code": "VALIDATION_ERROR"}), 400

        result = order_service.list_orders(
            branch_id=branch_id,
            status=args.get("status"),
            table_number=table_number,
            room_number=args.get("room_number"),
            search=args.get("search"),
            date_from=date_from,
            date_to=date_to,
            page=page,
            per_page=per_page,
        )
        result["items"] = [o.to_dict(include_lines=False) for o in result["items"]]
        return jsonify(result), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status


@orders_bp.get("/<int:order_id>")
@require_auth
@require_permission(VIEW_ORDERS)
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        ensure_branch_access(order.branch_id)
        return jsonify({"order": order.to_dict()}), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status


@orders_bp.get("/<int:order_id>/activity")
@require_auth
@require_permission(VIEW_ORDERS)
def order_activity_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        ensure_branch_access(order.branch_id)
        events = list_activity(branch_id=order.branch_id, entity_type="order", entity_id=order.id)
        return jsonify({"events": [e.to_dict() for e in events], "count": len(events)}), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status


@orders_bp.get("/track/<order_number>")
def track_order_route(order_number: str):
    """Public guest order tracking by order number."""
    try:
        return jsonify({"order": order_service.track_order(order_number)}), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status


@orders_bp.post("/<int:order_id>/status")
@require_auth
def advance_order_status_route(order_id: int):
    """
    Body: {"status": "...", "expected_status": "..." (optional), "reason": "..." (optional)}
    """
    data = request.get_json(silent=True) or {}
    try:
        requested = require_text(data.get("status"), "status").lower()

        needed = _required_permission(requested)
        if not has_permission(g.current_user.role, needed):
            return jsonify({
                "error": "Permission denied",
                "code": "FORBIDDEN",
                "required_permission": needed,
            }), 403

        ensure_branch_access(order_service.get_order(order_id).branch_id)
        order, changed = order_service.advance_order_status(
            order_id,
            requested,
            actor_user_id=g.current_user.id,
            expected_status=data.get("expected_status"),
            reason=data.get("reason"),
        )
        return jsonify({"order": order.to_dict(), "changed": changed}), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
@require_permission(CANCEL_ORDER)
def cancel_order_route(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        ensure_branch_access(order_service.get_order(order_id).branch_id)
        order, changed = order_service.cancel_order(
            order_id,
            reason=data.get("reason"),
            actor_user_id=g.current_user.id,
            expected_status=data.get("expected_status"),
        )
        return jsonify({"order": order.to_dict(), "changed": changed}), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/lines/<int:line_id>")
@require_auth
@require_permission(ADVANCE_ORDER)
def update_line_status_route(order_id: int, line_id: int):
    data = request.get_json(silent=True) or {}
    try:
        ensure_branch_access(order_service.get_order(order_id).branch_id)
        line = order_service.update_line_status(
            order_id, line_id, data.get("item_status"), actor_user_id=g.current_user.id
        )
        return jsonify({"line": line.to_dict()}), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status
