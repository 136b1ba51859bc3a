# backend/eastgate/services/menu_service.py
"""
Menu Catalog Service

Read-mostly reference data. The order engine only ever reads from here
(get_menu_item / resolve_menu_items); price and availability edits never
reach back into existing orders because order lines hold snapshots.
"""
from __future__ import annotations

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Branch, MenuItem, RecipeComponent, StockItem
from ..validation import coerce_int, coerce_quantity, like_pattern
from .activity_service import append_activity
from .concurrency import run_with_retry

MENU_MUTABLE_FIELDS = {
    "name",
    "category",
    "description",
    "price_cents",
    "available",
    "is_vegetarian",
    "is_vegan",
    "is_gluten_free",
    "is_spicy",
    "prep_time_minutes",
}


def apply_menu_patch(item: MenuItem, patch: dict) -> None:
    for k, v in patch.items():
        if k not in MENU_MUTABLE_FIELDS:
            continue
        setattr(item, k, v)


def get_menu_item(menu_item_id: int) -> MenuItem:
    item = db.session.get(MenuItem, menu_item_id)
    if item is None:
        raise NotFoundError("Menu item not found", details={"menu_item_id": menu_item_id})
    return item


def resolve_menu_items(branch_id: int, menu_item_ids) -> dict[int, MenuItem]:
    """Load the given menu items of a branch keyed by id (missing ids are simply absent)."""
    ids = set(menu_item_ids)
    if not ids:
        return {}
    rows = (
        db.session.query(MenuItem)
        .filter(MenuItem.branch_id == branch_id, MenuItem.id.in_(ids))
        .all()
    )
    return {row.id: row for row in rows}


def list_menu(
    branch_id: int,
    *,
    category: str | None = None,
    available_only: bool = False,
    search: str | None = None,
) -> list[MenuItem]:
    q = db.session.query(MenuItem).filter(MenuItem.branch_id == branch_id)
    if category:
        q = q.filter(MenuItem.category == category)
    if available_only:
        q = q.filter(MenuItem.available.is_(True))
    if search:
        q = q.filter(MenuItem.name.ilike(like_pattern(search.strip()), escape="\\"))
    return q.order_by(MenuItem.category.asc(), MenuItem.name.asc(), MenuItem.id.asc()).all()


def create_menu_item(*, branch_id: int, patch: dict, actor_user_id: int | None = None) -> MenuItem:
    """Create menu item from a validated patch dict."""
    def _op():
        if db.session.get(Branch, branch_id) is None:
            raise NotFoundError("Branch not found")

        existing = db.session.query(MenuItem).filter_by(branch_id=branch_id, name=patch["name"]).first()
        if existing is not None:
            raise ValidationError("A menu item with this name already exists in this branch")

        item = MenuItem(branch_id=branch_id)
        apply_menu_patch(item, patch)
        db.session.add(item)
        db.session.flush()

        append_activity(
            branch_id=branch_id,
            event_type="menu.item_created",
            entity_type="menu_item",
            entity_id=item.id,
            actor_user_id=actor_user_id,
            note=item.name,
        )
        db.session.commit()
        return item

    return run_with_retry(_op)


def update_menu_item(menu_item_id: int, *, patch: dict, actor_user_id: int | None = None) -> MenuItem:
    def _op():
        item = get_menu_item(menu_item_id)
        before = {"price_cents": item.price_cents, "available": item.available}
        apply_menu_patch(item, patch)

        append_activity(
            branch_id=item.branch_id,
            event_type="menu.item_updated",
            entity_type="menu_item",
            entity_id=item.id,
            actor_user_id=actor_user_id,
            payload={"before": before, "changes": sorted(patch.keys())},
        )
        db.session.commit()
        return item

    return run_with_retry(_op)


def set_recipe(menu_item_id: int, components: list[dict], actor_user_id: int | None = None) -> MenuItem:
    """
    Replace the ingredient mapping of a menu item.

    components: [{"stock_item_id": int, "quantity": number > 0}, ...]
    Every stock item must belong to the menu item's branch.
    """
    if not isinstance(components, list):
        raise ValidationError("components must be a list")

    parsed: dict[int, object] = {}
    for raw in components:
        if not isinstance(raw, dict):
            raise ValidationError("each component must be an object")
        stock_item_id = coerce_int(raw.get("stock_item_id"), "stock_item_id")
        qty = coerce_quantity(raw.get("quantity"), "quantity")
        if qty <= 0:
            raise ValidationError("component quantity must be > 0")
        if stock_item_id in parsed:
            raise ValidationError("duplicate stock_item_id in recipe", details={"stock_item_id": stock_item_id})
        parsed[stock_item_id] = qty

    def _op():
        item = get_menu_item(menu_item_id)

        if parsed:
            stock_rows = (
                db.session.query(StockItem)
                .filter(StockItem.id.in_(parsed.keys()), StockItem.branch_id == item.branch_id)
                .all()
            )
            found = {row.id for row in stock_rows}
            missing = sorted(set(parsed) - found)
            if missing:
                raise ValidationError(
                    "Stock items not found in this branch",
                    details={"stock_item_ids": missing},
                )

        item.recipe.clear()
        db.session.flush()
        for stock_item_id, qty in parsed.items():
            item.recipe.append(RecipeComponent(stock_item_id=stock_item_id, quantity=qty))

        append_activity(
            branch_id=item.branch_id,
            event_type="menu.recipe_updated",
            entity_type="menu_item",
            entity_id=item.id,
            actor_user_id=actor_user_id,
            payload={"components": {str(k): str(v) for k, v in parsed.items()}},
        )
        db.session.commit()
        return item

    return run_with_retry(_op)
