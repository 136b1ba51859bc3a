# Overview: Flask API routes for menu operations; parses input and returns JSON responses.

# backend/eastgate/routes/menu.py
"""
Menu catalog routes.

BRANCH SCOPING: Branch-bound staff only see and edit their own branch's menu;
admins pass ?branch_id= (or branch_id in the body).

SECURITY: All routes require authentication.
- Read operations require VIEW_MENU permission
- Write operations require MANAGE_MENU permission
"""
from flask import Blueprint, current_app, request, g

from ..decorators import require_auth, require_permission
from ..errors import EastgateError
from ..models import MenuItem
from ..permissions import MANAGE_MENU, VIEW_MENU
from ..services import menu_service
from ..services.branch_service import ensure_branch_access, resolve_branch_id
from ..validation import ModelValidationPolicy, enforce_rules_menu_item, validate_payload

MENU_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "category", "description", "price_cents", "available",
        "is_vegetarian", "is_vegan", "is_gluten_free", "is_spicy", "prep_time_minutes",
    },
    required_on_create={"name", "category", "price_cents"},
)

menu_bp = Blueprint("menu", __name__, url_prefix="/api/menu")


def _menu_item_payload(item: MenuItem) -> dict:
    data = item.to_dict()
    data["recipe"] = [comp.to_dict() for comp in item.recipe]
    return data


@menu_bp.get("")
@require_auth
@require_permission(VIEW_MENU)
def list_menu_route():
    try:
        branch_id = resolve_branch_id(request.args.get("branch_id"))
        items = menu_service.list_menu(
            branch_id,
            category=request.args.get("category"),
            available_only=request.args.get("available_only", "").lower() in ("1", "true"),
            search=request.args.get("search"),
        )
        return {"items": [i.to_dict() for i in items], "count": len(items)}
    except EastgateError as e:
        return e.to_dict(), e.http_status


@menu_bp.get("/<int:menu_item_id>")
@require_auth
@require_permission(VIEW_MENU)
def get_menu_item_route(menu_item_id: int):
    try:
        item = menu_service.get_menu_item(menu_item_id)
        ensure_branch_access(item.branch_id)
        return _menu_item_payload(item)
    except EastgateError as e:
        return e.to_dict(), e.http_status


@menu_bp.post("")
@require_auth
@require_permission(MANAGE_MENU)
def create_menu_item_route():
    payload = request.get_json(silent=True) or {}
    try:
        branch_id = resolve_branch_id(payload.pop("branch_id", None))
        patch = validate_payload(model=MenuItem, payload=payload, policy=MENU_POLICY, partial=False)
        enforce_rules_menu_item(patch)
        item = menu_service.create_menu_item(
            branch_id=branch_id, patch=patch, actor_user_id=g.current_user.id
        )
        return _menu_item_payload(item), 201
    except EastgateError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create menu item")
        return {"error": "Internal server error"}, 500


@menu_bp.patch("/<int:menu_item_id>")
@require_auth
@require_permission(MANAGE_MENU)
def update_menu_item_route(menu_item_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=MenuItem, payload=payload, policy=MENU_POLICY, partial=True)
        enforce_rules_menu_item(patch)
        ensure_branch_access(menu_service.get_menu_item(menu_item_id).branch_id)
        item = menu_service.update_menu_item(menu_item_id, patch=patch, actor_user_id=g.current_user.id)
        return _menu_item_payload(item)
    except EastgateError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update menu item")
        return {"error": "Internal server error"}, 500


@menu_bp.put("/<int:menu_item_id>/recipe")
@require_auth
@require_permission(MANAGE_MENU)
def set_recipe_route(menu_item_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        ensure_branch_access(menu_service.get_menu_item(menu_item_id).branch_id)
        item = menu_service.set_recipe(
            menu_item_id, payload.get("components"), actor_user_id=g.current_user.id
        )
        return _menu_item_payload(item)
    except EastgateError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to set recipe")
        return {"error": "Internal server error"}, 500
