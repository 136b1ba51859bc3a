# Overview: Flask API routes for stock ledger operations; parses input and returns JSON responses.

# backend/eastgate/routes/stock.py
"""
Stock ledger routes.

Quantities are sent and returned as decimal strings (three places); money as
integer cents. There is no endpoint that writes quantity directly: every change
is one of receive / use / waste / adjust.
"""

from flask import Blueprint, current_app, jsonify, request, g

from ..decorators import require_auth, require_permission
from ..errors import EastgateError, ValidationError
from ..permissions import ADJUST_STOCK, RECEIVE_STOCK, USE_STOCK, VIEW_STOCK
from ..services import stock_service
from ..services.branch_service import ensure_branch_access, resolve_branch_id
from ..time_utils import parse_iso_date
from ..validation import coerce_int


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _load_item_for_caller(stock_item_id: int):
    item = stock_service.get_stock_item(stock_item_id)
    ensure_branch_access(item.branch_id)
    return item


@stock_bp.get("")
@require_auth
@require_permission(VIEW_STOCK)
def list_stock_route():
    try:
        branch_id = resolve_branch_id(request.args.get("branch_id"))
        items = stock_service.list_stock(
            branch_id,
            category=request.args.get("category"),
            status=request.args.get("status"),
            search=request.args.get("search"),
            kitchen_only=request.args.get("kitchen_only", "").lower() in ("1", "true"),
        )
        return jsonify({"items": [i.to_dict() for i in items], "count": len(items)}), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status


@stock_bp.post("/in")
@require_auth
@require_permission(RECEIVE_STOCK)
def add_stock_route():
    """
    Receive stock. Matches an existing item by sku or name (case-insensitive);
    otherwise creates the item.
    """
    data = request.get_json(silent=True) or {}
    try:
        branch_id = resolve_branch_id(data.get("branch_id"))
        unit_cost = data.get("unit_cost_cents")
        try:
            expiry = parse_iso_date(data.get("expiry_date"))
        except ValueError:
            raise ValidationError("expiry_date must be an ISO-8601 date")

        item, tx = stock_service.add_stock(
            branch_id=branch_id,
            quantity=data.get("quantity"),
            unit_cost_cents=coerce_int(unit_cost, "unit_cost_cents") if unit_cost is not None else None,
            sku=data.get("sku"),
            name=data.get("name"),
            category=data.get("category"),
            unit=data.get("unit"),
            reorder_level=data.get("reorder_level"),
            expiry_date=expiry,
            location=data.get("location"),
            notes=data.get("notes"),
            reference=data.get("reference"),
            user_id=g.current_user.id,
        )
        return jsonify({"item": item.to_dict(), "transaction": tx.to_dict()}), 201
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/<int:stock_item_id>/use")
@require_auth
@require_permission(USE_STOCK)
def use_stock_route(stock_item_id: int):
    data = request.get_json(silent=True) or {}
    try:
        _load_item_for_caller(stock_item_id)
        tx = stock_service.use_stock(
            stock_item_id,
            data.get("quantity"),
            reference=data.get("reference"),
            reason=data.get("reason"),
            user_id=g.current_user.id,
        )
        return jsonify({"item": tx.stock_item.to_dict(), "transaction": tx.to_dict()}), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to use stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/<int:stock_item_id>/waste")
@require_auth
@require_permission(ADJUST_STOCK)
def waste_stock_route(stock_item_id: int):
    data = request.get_json(silent=True) or {}
    try:
        _load_item_for_caller(stock_item_id)
        tx = stock_service.waste_stock(
            stock_item_id, data.get("quantity"), data.get("reason"), user_id=g.current_user.id
        )
        return jsonify({"item": tx.stock_item.to_dict(), "transaction": tx.to_dict()}), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record wastage")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/<int:stock_item_id>/adjust")
@require_auth
@require_permission(ADJUST_STOCK)
def adjust_stock_route(stock_item_id: int):
    data = request.get_json(silent=True) or {}
    try:
        _load_item_for_caller(stock_item_id)
        tx = stock_service.adjust_stock(
            stock_item_id, data.get("new_quantity"), data.get("reason"), user_id=g.current_user.id
        )
        return jsonify({"item": tx.stock_item.to_dict(), "transaction": tx.to_dict()}), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/<int:stock_item_id>/transactions")
@require_auth
@require_permission(VIEW_STOCK)
def list_transactions_route(stock_item_id: int):
    try:
        item = _load_item_for_caller(stock_item_id)
        limit = coerce_int(request.args.get("limit", "200"), "limit")
        txs = stock_service.list_transactions(stock_item_id, limit=max(1, min(limit, 1000)))
        return jsonify({
            "item": item.to_dict(),
            "transactions": [t.to_dict() for t in txs],
            "count": len(txs),
        }), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status


@stock_bp.get("/low")
@require_auth
@require_permission(VIEW_STOCK)
def low_stock_route():
    try:
        branch_id = resolve_branch_id(request.args.get("branch_id"))
        items = stock_service.list_low_stock_alerts(branch_id)
        return jsonify({"items": [i.to_dict() for i in items], "count": len(items)}), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status


@stock_bp.get("/alerts")
@require_auth
@require_permission(VIEW_STOCK)
def stock_alerts_route():
    try:
        branch_id = resolve_branch_id(request.args.get("branch_id"))
        days = request.args.get("days")
        return jsonify(stock_service.stock_alerts(
            branch_id,
            expiring_within_days=coerce_int(days, "days") if days else None,
        )), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status


@stock_bp.get("/kitchen-summary")
@require_auth
@require_permission(VIEW_STOCK)
def kitchen_summary_route():
    try:
        branch_id = resolve_branch_id(request.args.get("branch_id"))
        return jsonify(stock_service.kitchen_stock_summary(branch_id)), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status


@stock_bp.get("/activity")
@require_auth
@require_permission(VIEW_STOCK)
def stock_activity_route():
    try:
        branch_id = resolve_branch_id(request.args.get("branch_id"))
        limit = coerce_int(request.args.get("limit", "50"), "limit")
        txs = stock_service.recent_activity(branch_id, limit=max(1, min(limit, 500)))
        return jsonify({"transactions": [t.to_dict() for t in txs], "count": len(txs)}), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status
