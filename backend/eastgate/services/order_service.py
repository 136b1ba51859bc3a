# Overview: Service-layer operations for restaurant orders; encapsulates business logic and database work.

"""
Order Engine

STATE MACHINE:
    pending -> confirmed -> preparing -> ready -> served
    pending | confirmed | preparing -> cancelled

RULES (NON-NEGOTIABLE):
1. One step at a time. Skipping ahead or moving backwards is rejected (CANNOT_SKIP).
2. served and cancelled are terminal (TERMINAL).
3. Requesting the current status is a successful no-op: nothing is written and
   no side effect fires a second time.
4. A caller may pass the status it believes the order is in (expected_status).
   A mismatch means someone else already moved the order on (STALE).
5. Totals are frozen at creation from snapshotted line prices; later menu edits
   never change an existing order.
6. A transition and all of its side effects (timestamps, line mirror, stock
   consumption/compensation, notifications, activity) commit together or not at all.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func, or_

from ..errors import InvalidTransitionError, ItemUnavailableError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Order, OrderLine
from ..time_utils import utcnow
from ..validation import coerce_int, like_pattern, optional_text, require_text
from .activity_service import append_activity
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import ORDER_DOCUMENT, next_document_number
from .fulfillment_service import on_status_changed
from .menu_service import resolve_menu_items
from .notification_service import KIND_ORDER_READY, notify


ORDER_STATUSES = ("pending", "confirmed", "preparing", "ready", "served", "cancelled")
ACTIVE_STATUSES = ("pending", "confirmed", "preparing", "ready")
TERMINAL_STATUSES = frozenset({"served", "cancelled"})

ORDER_TRANSITIONS = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"preparing", "cancelled"}),
    "preparing": frozenset({"ready", "cancelled"}),
    "ready": frozenset({"served"}),
    "served": frozenset(),
    "cancelled": frozenset(),
}

ORDER_TYPES = ("dine_in", "room_service", "takeaway", "delivery")
PAYMENT_METHODS = ("cash", "card", "mobile_money", "room_charge")
LINE_STATUSES = ("pending", "preparing", "ready")

WALK_IN_CUSTOMER = "Walk-in Customer"

_STATUS_TIMESTAMP = {
    "confirmed": "confirmed_at",
    "preparing": "preparing_at",
    "ready": "ready_at",
    "served": "served_at",
    "cancelled": "cancelled_at",
}


def check_transition(current: str, requested: str, expected_status: str | None = None) -> bool:
    """
    Validate a requested status change against the transition table.

    Returns False for an idempotent no-op (requested == current), True when the
    transition should be applied. Raises for anything else.
    """
    if requested not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status '{requested}'. Must be one of: {', '.join(ORDER_STATUSES)}",
            details={"status": requested},
        )
    if requested == current:
        return False
    if expected_status is not None and expected_status != current:
        raise InvalidTransitionError(
            "Someone else already updated this order",
            reason=InvalidTransitionError.STALE,
            details={"expected_status": expected_status, "current_status": current},
        )
    if current in TERMINAL_STATUSES:
        raise InvalidTransitionError(
            f"Order is already {current}",
            reason=InvalidTransitionError.TERMINAL,
            details={"current_status": current, "requested_status": requested},
        )
    if requested not in ORDER_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Cannot move order from {current} to {requested}",
            reason=InvalidTransitionError.CANNOT_SKIP,
            details={"current_status": current, "requested_status": requested},
        )
    return True


def _parse_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("Order must contain at least one item")

    parsed = []
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        menu_item_id = coerce_int(raw.get("menu_item_id"), f"items[{idx}].menu_item_id")
        quantity = coerce_int(raw.get("quantity"), f"items[{idx}].quantity")
        if quantity < 1:
            raise ValidationError(f"items[{idx}].quantity must be >= 1")
        notes = optional_text(raw.get("notes"), f"items[{idx}].notes")
        parsed.append({
            "menu_item_id": menu_item_id,
            "quantity": quantity,
            "notes": notes[:255] if notes else None,
        })
    return parsed


def create_order(
    *,
    branch_id: int,
    customer_name: str | None,
    order_type: str,
    items,
    payment_method: str,
    table_number=None,
    room_number=None,
    notes: str | None = None,
    created_by_user_id: int | None = None,
) -> Order:
    """
    Create a pending order.

    Validation happens before anything is written. Name and price are copied
    from the menu onto each line; no stock moves at creation.
    """
    if order_type not in ORDER_TYPES:
        raise ValidationError(
            f"order_type must be one of: {', '.join(ORDER_TYPES)}",
            details={"order_type": order_type},
        )
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
            details={"payment_method": payment_method},
        )

    table = None
    if table_number not in (None, ""):
        table = coerce_int(table_number, "table_number")
        if table < 1:
            raise ValidationError("table_number must be >= 1")
    room = optional_text(room_number, "room_number", max_length=16, allow_numbers=True)

    if order_type == "dine_in" and table is None:
        raise ValidationError("table_number is required for dine_in orders")
    if order_type == "room_service" and not room:
        raise ValidationError("room_number is required for room_service orders")

    parsed = _parse_items(items)
    customer = optional_text(customer_name, "customer_name", max_length=255) or WALK_IN_CUSTOMER
    notes = optional_text(notes, "notes")

    def _op():
        begin_write()
        menu = resolve_menu_items(branch_id, [p["menu_item_id"] for p in parsed])

        missing = sorted({p["menu_item_id"] for p in parsed} - set(menu))
        if missing:
            raise ValidationError(
                "Menu items not found in this branch",
                details={"menu_item_ids": missing},
            )
        unavailable = sorted({mid for mid, item in menu.items() if not item.available})
        if unavailable:
            raise ItemUnavailableError(
                "Some items are currently unavailable",
                details={
                    "menu_item_ids": unavailable,
                    "names": [menu[mid].name for mid in unavailable],
                },
            )

        order = Order(
            branch_id=branch_id,
            order_number=next_document_number(
                branch_id=branch_id, document_type=ORDER_DOCUMENT, prefix="ORD"
            ),
            customer_name=customer,
            order_type=order_type,
            table_number=table,
            room_number=room,
            status="pending",
            payment_method=payment_method,
            grand_total_cents=0,
            notes=notes,
            created_by_user_id=created_by_user_id,
            created_at=utcnow(),
        )

        total = 0
        for position, p in enumerate(parsed, start=1):
            item = menu[p["menu_item_id"]]
            line_total = item.price_cents * p["quantity"]
            order.lines.append(OrderLine(
                position=position,
                menu_item_id=item.id,
                name=item.name,
                unit_price_cents=item.price_cents,
                quantity=p["quantity"],
                line_total_cents=line_total,
                item_status="pending",
                notes=p["notes"],
            ))
            total += line_total
        order.grand_total_cents = total

        db.session.add(order)
        db.session.flush()

        append_activity(
            branch_id=branch_id,
            event_type="order.created",
            entity_type="order",
            entity_id=order.id,
            actor_user_id=created_by_user_id,
            note=order.order_number,
            payload={"order_type": order_type, "grand_total_cents": total, "lines": len(parsed)},
        )
        db.session.commit()
        current_app.logger.info(
            "Order %s created for branch %s (%d line(s), total %d)",
            order.order_number, branch_id, len(parsed), total,
        )
        return order

    return run_with_retry(_op)


def get_order(order_id: int, *, lock: bool = False) -> Order:
    q = db.session.query(Order).filter(Order.id == order_id)
    if lock:
        q = lock_for_update(q)
    order = q.first()
    if order is None:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def get_order_by_number(order_number: str, *, branch_id: int | None = None) -> Order:
    q = db.session.query(Order).filter(Order.order_number == (order_number or "").strip().upper())
    if branch_id is not None:
        q = q.filter(Order.branch_id == branch_id)
    order = q.first()
    if order is None:
        raise NotFoundError("Order not found", details={"order_number": order_number})
    return order


def _mirror_line_status(order: Order, new_status: str) -> None:
    if new_status == "preparing":
        for line in order.lines:
            if line.item_status == "pending":
                line.item_status = "preparing"
    elif new_status in ("ready", "served"):
        for line in order.lines:
            line.item_status = "ready"


def advance_order_status(
    order_id: int,
    requested_status: str,
    *,
    actor_user_id: int | None = None,
    expected_status: str | None = None,
    reason: str | None = None,
) -> tuple[Order, bool]:
    """
    Move an order one step along its lifecycle.

    Returns (order, changed). changed is False for an idempotent no-op.
    """
    requested = require_text(requested_status, "status").lower()
    expected = optional_text(expected_status, "expected_status")
    expected = expected.lower() if expected else None
    reason = optional_text(reason, "reason", max_length=255)

    def _op():
        begin_write()
        order = get_order(order_id, lock=True)
        previous = order.status

        if not check_transition(previous, requested, expected):
            db.session.rollback()
            return order, False

        # Hook runs before timestamps so it can see whether this is the first preparing edge
        on_status_changed(order, previous, requested, user_id=actor_user_id)

        now = utcnow()
        order.status = requested
        ts_field = _STATUS_TIMESTAMP.get(requested)
        if ts_field and getattr(order, ts_field) is None:
            setattr(order, ts_field, now)
        if requested == "cancelled":
            order.cancel_reason = reason
        _mirror_line_status(order, requested)

        if requested == "ready":
            location = (
                f"table {order.table_number}" if order.table_number is not None
                else f"room {order.room_number}" if order.room_number
                else order.order_type.replace("_", " ")
            )
            notify(
                KIND_ORDER_READY,
                f"Order {order.order_number} for {order.customer_name} is ready ({location})",
                order.branch_id,
                title="Order ready",
                reference=order.order_number,
            )

        append_activity(
            branch_id=order.branch_id,
            event_type="order.status_changed",
            entity_type="order",
            entity_id=order.id,
            actor_user_id=actor_user_id,
            occurred_at=now,
            note=reason,
            payload={"from": previous, "to": requested},
        )
        db.session.commit()
        current_app.logger.info("Order %s moved %s -> %s", order.order_number, previous, requested)
        return order, True

    return run_with_retry(_op)


def cancel_order(
    order_id: int,
    *,
    reason: str | None = None,
    actor_user_id: int | None = None,
    expected_status: str | None = None,
) -> tuple[Order, bool]:
    return advance_order_status(
        order_id,
        "cancelled",
        actor_user_id=actor_user_id,
        expected_status=expected_status,
        reason=reason,
    )


def update_line_status(order_id: int, line_id: int, item_status: str, *, actor_user_id: int | None = None) -> OrderLine:
    """
    Tick a line on the kitchen checklist.

    Informational only: the order-level status is never changed from here.
    """
    status = require_text(item_status, "item_status").lower()
    if status not in LINE_STATUSES:
        raise ValidationError(f"item_status must be one of: {', '.join(LINE_STATUSES)}")

    def _op():
        order = get_order(order_id, lock=True)
        if order.status in TERMINAL_STATUSES:
            raise InvalidTransitionError(
                f"Order is already {order.status}",
                reason=InvalidTransitionError.TERMINAL,
            )
        line = next((ln for ln in order.lines if ln.id == line_id), None)
        if line is None:
            raise NotFoundError("Order line not found", details={"line_id": line_id})
        line.item_status = status
        append_activity(
            branch_id=order.branch_id,
            event_type="order.line_status_changed",
            entity_type="order",
            entity_id=order.id,
            actor_user_id=actor_user_id,
            payload={"line_id": line.id, "item_status": status},
        )
        db.session.commit()
        return line

    return run_with_retry(_op)


def list_orders(
    *,
    branch_id: int | None,
    status: str | None = None,
    table_number: int | None = None,
    room_number: str | None = None,
    search: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = 1,
    per_page: int | None = None,
) -> dict:
    """Paginated order history with per-status counts over the same filters (status excluded)."""
    default_size = int(current_app.config.get("ORDER_DEFAULT_PAGE_SIZE", 50))
    max_size = int(current_app.config.get("ORDER_MAX_PAGE_SIZE", 100))
    per_page = min(max(per_page or default_size, 1), max_size)
    page = max(page or 1, 1)

    base = db.session.query(Order)
    if branch_id is not None:
        base = base.filter(Order.branch_id == branch_id)
    if table_number is not None:
        base = base.filter(Order.table_number == table_number)
    if room_number:
        base = base.filter(Order.room_number == room_number)
    if search:
        like = like_pattern(search.strip())
        base = base.filter(or_(
            Order.order_number.ilike(like, escape="\\"),
            Order.customer_name.ilike(like, escape="\\"),
        ))
    if date_from is not None:
        base = base.filter(Order.created_at >= date_from)
    if date_to is not None:
        base = base.filter(Order.created_at <= date_to)

    counts = {s: 0 for s in ORDER_STATUSES}
    for s, n in base.with_entities(Order.status, func.count(Order.id)).group_by(Order.status).all():
        counts[s] = n

    q = base
    if status:
        statuses = [s.strip().lower() for s in status.split(",") if s.strip()]
        bad = [s for s in statuses if s not in ORDER_STATUSES]
        if bad:
            raise ValidationError(f"Invalid status filter: {', '.join(bad)}")
        q = q.filter(Order.status.in_(statuses))

    total = q.count()
    rows = (
        q.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    total_pages = (total + per_page - 1) // per_page if total else 0

    return {
        "items": rows,
        "count": len(rows),
        "status_counts": counts,
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def track_order(order_number: str) -> dict:
    """Guest-facing view: no staff ids, no internal notes."""
    order = get_order_by_number(order_number)
    data = order.to_dict(include_lines=True)
    for key in ("created_by_user_id", "notes", "version_id"):
        data.pop(key, None)

    steps = []
    for s in ("pending", "confirmed", "preparing", "ready", "served"):
        at = data["created_at"] if s == "pending" else data[_STATUS_TIMESTAMP[s]]
        steps.append({"status": s, "reached": at is not None, "at": at})
    data["steps"] = steps
    return data
