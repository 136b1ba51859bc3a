# Overview: Service-layer operations for the stock ledger; encapsulates business logic and database work.

# backend/eastgate/services/stock_service.py

from __future__ import annotations

import secrets
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import func, or_

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import StockItem, StockTransaction
from ..validation import coerce_quantity, like_pattern, optional_text, require_text
from .activity_service import append_activity
from .concurrency import begin_write, lock_for_update, run_with_retry
from .notification_service import KIND_LOW_STOCK, KIND_OUT_OF_STOCK, notify
"""
Stock Ledger Invariants (authoritative)

Quantity model:
- StockItem.quantity is a cached balance. The StockTransaction rows are the
  source of truth: folding quantity_delta in (created_at, id) order reproduces
  quantity exactly (see replay_quantity).
- quantity never goes below zero. use_stock rejects over-draw; waste_stock floors
  the write-off at the quantity on hand.
- add/use/waste/adjust/reverse are the ONLY writers of quantity. Each one locks
  the item row, appends exactly one transaction and updates the cache in the
  same DB transaction.

Status:
- OUT_OF_STOCK when quantity == 0, LOW_STOCK when quantity <= reorder_level,
  otherwise IN_STOCK. Status is re-derived on every mutation.
- Low/out-of-stock notifications are edge-triggered: they fire only when a
  decrementing mutation moves the item INTO LOW_STOCK or OUT_OF_STOCK from a
  different status. Receiving stock never notifies.

Cost:
- unit_cost_cents is the weighted average cost of the lots on hand. Receiving
  stock re-averages it; consumption, waste and adjustment never change it.

Idempotency:
- Order consumption carries idempotency_key "order:<order_number>"; a second
  call for the same (item, key) returns the existing transaction.
- Reversals carry "reversal:<transaction_id>" so an OUT is compensated at most once.
"""

TX_IN = "IN"
TX_OUT = "OUT"
TX_WASTAGE = "WASTAGE"
TX_ADJUSTMENT = "ADJUSTMENT"

IN_STOCK = "IN_STOCK"
LOW_STOCK = "LOW_STOCK"
OUT_OF_STOCK = "OUT_OF_STOCK"

KITCHEN_CATEGORIES = ("PRODUCE", "PROTEINS", "DAIRY", "DRY_GOODS", "BEVERAGES", "SPICES")
GENERAL_CATEGORIES = ("KITCHEN_SUPPLIES", "CLEANING", "TOILETRIES", "LINENS", "MAINTENANCE", "OTHER")
STOCK_CATEGORIES = KITCHEN_CATEGORIES + GENERAL_CATEGORIES

# Items at or below this share of their reorder level are "critical"
CRITICAL_RATIO = Decimal("0.2")

ZERO = Decimal("0")


def derive_status(quantity, reorder_level) -> str:
    """Pure status rule shared by every mutator and by the alert queries."""
    qty = Decimal(quantity or 0)
    if qty <= ZERO:
        return OUT_OF_STOCK
    if qty <= Decimal(reorder_level or 0):
        return LOW_STOCK
    return IN_STOCK


def _normalize_category(category: str | None) -> str:
    value = (optional_text(category, "category") or "").upper().replace(" ", "_")
    if value not in STOCK_CATEGORIES:
        raise ValidationError(
            f"category must be one of: {', '.join(STOCK_CATEGORIES)}",
            details={"category": category},
        )
    return value


def _generate_sku(category: str) -> str:
    prefix = "KIT" if category in KITCHEN_CATEGORIES else "SKU"
    return f"{prefix}-{secrets.token_hex(4).upper()}"


def _positive_quantity(value, field: str = "quantity") -> Decimal:
    qty = coerce_quantity(value, field)
    if qty <= ZERO:
        raise ValidationError(f"{field} must be > 0")
    return qty


def get_stock_item(stock_item_id: int, *, lock: bool = False) -> StockItem:
    q = db.session.query(StockItem).filter(StockItem.id == stock_item_id)
    if lock:
        q = lock_for_update(q)
    item = q.first()
    if item is None:
        raise NotFoundError("Stock item not found", details={"stock_item_id": stock_item_id})
    return item


def _notify_on_edge(item: StockItem, previous_status: str) -> None:
    if item.status == previous_status:
        return
    if item.status == OUT_OF_STOCK:
        notify(
            KIND_OUT_OF_STOCK,
            f"{item.name} is out of stock",
            item.branch_id,
            title="Out of stock",
            reference=item.sku,
        )
    elif item.status == LOW_STOCK:
        notify(
            KIND_LOW_STOCK,
            f"{item.name} is low: {item.quantity} {item.unit} left (reorder level {item.reorder_level})",
            item.branch_id,
            title="Low stock",
            reference=item.sku,
        )


def _post_transaction(
    item: StockItem,
    tx_type: str,
    delta: Decimal,
    *,
    reference: str | None = None,
    idempotency_key: str | None = None,
    reverses_transaction_id: int | None = None,
    reason: str | None = None,
    user_id: int | None = None,
) -> StockTransaction:
    """
    Core ledger write without locking, retry or commit.

    Applies delta to the cached quantity, re-derives status, appends the
    transaction row and fires the edge-triggered notification.
    """
    before = Decimal(item.quantity or 0)
    after = before + delta
    if after < ZERO:
        raise InsufficientStockError(
            f"Insufficient stock for {item.name}",
            details={
                "stock_item_id": item.id,
                "available": str(before),
                "requested": str(-delta),
            },
        )

    previous_status = item.status
    item.quantity = after
    item.status = derive_status(after, item.reorder_level)

    tx = StockTransaction(
        stock_item_id=item.id,
        branch_id=item.branch_id,
        type=tx_type,
        quantity_delta=delta,
        quantity_before=before,
        quantity_after=after,
        unit_cost_cents=item.unit_cost_cents,
        reference=reference,
        idempotency_key=idempotency_key,
        reverses_transaction_id=reverses_transaction_id,
        reason=reason,
        performed_by_user_id=user_id,
    )
    db.session.add(tx)
    db.session.flush()

    append_activity(
        branch_id=item.branch_id,
        event_type=f"stock.{tx_type.lower()}",
        entity_type="stock_item",
        entity_id=item.id,
        actor_user_id=user_id,
        note=reason or reference,
        payload={"transaction_id": tx.id, "delta": str(delta), "quantity_after": str(after)},
    )

    if delta < ZERO:
        _notify_on_edge(item, previous_status)
    return tx


def _find_existing_item(branch_id: int, sku: str | None, name: str | None) -> StockItem | None:
    if sku:
        item = db.session.query(StockItem).filter_by(branch_id=branch_id, sku=sku).first()
        if item is not None:
            return item
    if name:
        return (
            db.session.query(StockItem)
            .filter(StockItem.branch_id == branch_id, func.lower(StockItem.name) == name.lower())
            .first()
        )
    return None


def add_stock(
    *,
    branch_id: int,
    quantity,
    unit_cost_cents: int | None = None,
    sku: str | None = None,
    name: str | None = None,
    category: str | None = None,
    unit: str | None = None,
    reorder_level=None,
    expiry_date: date | None = None,
    location: str | None = None,
    notes: str | None = None,
    reference: str | None = None,
    user_id: int | None = None,
) -> tuple[StockItem, StockTransaction]:
    """
    Receive stock.

    An existing item (same sku, or same name ignoring case, within the branch)
    is incremented and its unit cost re-averaged. Otherwise a new item is created
    with an opening IN transaction whose quantity_before is zero.
    """
    qty = _positive_quantity(quantity)
    if unit_cost_cents is not None and unit_cost_cents < 0:
        raise ValidationError("unit_cost_cents must be >= 0")
    sku = optional_text(sku, "sku", max_length=64)
    name = optional_text(name, "name", max_length=255)
    unit = optional_text(unit, "unit", max_length=16)
    location = optional_text(location, "location", max_length=128)
    notes = optional_text(notes, "notes")
    reference = optional_text(reference, "reference", max_length=64)

    def _op():
        begin_write()
        item = _find_existing_item(branch_id, sku, name)

        if item is not None:
            item = get_stock_item(item.id, lock=True)
            if unit_cost_cents is not None:
                on_hand = Decimal(item.quantity or 0)
                total_cost = on_hand * item.unit_cost_cents + qty * unit_cost_cents
                item.unit_cost_cents = int(
                    (total_cost / (on_hand + qty)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
                )
            if expiry_date is not None:
                item.expiry_date = expiry_date
            if location:
                item.location = location
        else:
            if not name:
                raise ValidationError("name is required for a new stock item")
            if not unit:
                raise ValidationError("unit is required for a new stock item")
            normalized_category = _normalize_category(category)
            level = coerce_quantity(reorder_level, "reorder_level") if reorder_level is not None else Decimal("10")
            if level < ZERO:
                raise ValidationError("reorder_level must be >= 0")

            item = StockItem(
                branch_id=branch_id,
                sku=sku or _generate_sku(normalized_category),
                name=name,
                category=normalized_category,
                unit=unit,
                quantity=ZERO,
                unit_cost_cents=unit_cost_cents or 0,
                reorder_level=level,
                status=OUT_OF_STOCK,
                expiry_date=expiry_date,
                location=location,
                notes=notes,
            )
            db.session.add(item)
            db.session.flush()

        tx = _post_transaction(item, TX_IN, qty, reference=reference, reason="received", user_id=user_id)
        db.session.commit()
        current_app.logger.info("Received %s %s of %s (branch %s)", qty, item.unit, item.sku, branch_id)
        return item, tx

    return run_with_retry(_op)


def _use_stock_inner(
    item: StockItem,
    qty: Decimal,
    *,
    reference: str | None = None,
    idempotency_key: str | None = None,
    reason: str | None = None,
    user_id: int | None = None,
) -> StockTransaction:
    """OUT logic for an already locked item. No commit; callers own the transaction."""
    if idempotency_key:
        existing = (
            db.session.query(StockTransaction)
            .filter_by(stock_item_id=item.id, idempotency_key=idempotency_key)
            .first()
        )
        if existing is not None:
            if existing.type != TX_OUT:
                raise ValidationError("idempotency_key already used for a different transaction")
            if existing.quantity_delta != -qty:
                raise ValidationError(
                    "reference already used for a different quantity",
                    details={
                        "reference": existing.reference,
                        "recorded_quantity": str(-existing.quantity_delta),
                    },
                )
            return existing

    return _post_transaction(
        item,
        TX_OUT,
        -qty,
        reference=reference,
        idempotency_key=idempotency_key,
        reason=reason or "usage",
        user_id=user_id,
    )


def use_stock(
    stock_item_id: int,
    quantity,
    *,
    reference: str | None = None,
    reason: str | None = None,
    user_id: int | None = None,
) -> StockTransaction:
    """
    Consume stock.

    Rejects over-draw with InsufficientStockError and leaves quantity unchanged.
    With a reference the call is idempotent per (item, reference).
    """
    qty = _positive_quantity(quantity)
    reference = optional_text(reference, "reference", max_length=64)
    reason = optional_text(reason, "reason", max_length=255)

    def _op():
        begin_write()
        item = get_stock_item(stock_item_id, lock=True)
        tx = _use_stock_inner(
            item,
            qty,
            reference=reference,
            idempotency_key=f"ref:{reference}" if reference else None,
            reason=reason,
            user_id=user_id,
        )
        db.session.commit()
        return tx

    return run_with_retry(_op)


def waste_stock(stock_item_id: int, quantity, reason: str, *, user_id: int | None = None) -> StockTransaction:
    """Write off spoiled/damaged stock. The write-off is floored at the quantity on hand."""
    qty = _positive_quantity(quantity)
    reason = require_text(reason, "reason", max_length=255)

    def _op():
        begin_write()
        item = get_stock_item(stock_item_id, lock=True)
        written_off = min(qty, Decimal(item.quantity or 0))
        tx = _post_transaction(item, TX_WASTAGE, -written_off, reason=reason, user_id=user_id)
        db.session.commit()
        if written_off < qty:
            current_app.logger.info(
                "Wastage on %s floored at on-hand quantity (%s requested, %s written off)",
                item.sku, qty, written_off,
            )
        return tx

    return run_with_retry(_op)


def adjust_stock(stock_item_id: int, new_quantity, reason: str, *, user_id: int | None = None) -> StockTransaction:
    """Set quantity to a counted value, recording the difference as an ADJUSTMENT."""
    target = coerce_quantity(new_quantity, "new_quantity")
    if target < ZERO:
        raise ValidationError("new_quantity must be >= 0")
    reason = require_text(reason, "reason", max_length=255)

    def _op():
        begin_write()
        item = get_stock_item(stock_item_id, lock=True)
        delta = target - Decimal(item.quantity or 0)
        tx = _post_transaction(item, TX_ADJUSTMENT, delta, reason=reason, user_id=user_id)
        db.session.commit()
        return tx

    return run_with_retry(_op)


def _reverse_transaction_inner(
    original: StockTransaction,
    *,
    reason: str | None = None,
    user_id: int | None = None,
) -> StockTransaction:
    """Compensating IN for an OUT. No commit; at most once per original transaction."""
    if original.type != TX_OUT:
        raise ValidationError("Only OUT transactions can be reversed", details={"transaction_id": original.id})

    key = f"reversal:{original.id}"
    existing = (
        db.session.query(StockTransaction)
        .filter_by(stock_item_id=original.stock_item_id, idempotency_key=key)
        .first()
    )
    if existing is not None:
        return existing

    item = get_stock_item(original.stock_item_id, lock=True)
    return _post_transaction(
        item,
        TX_IN,
        -Decimal(original.quantity_delta),
        reference=original.reference,
        idempotency_key=key,
        reverses_transaction_id=original.id,
        reason=reason or "reversal",
        user_id=user_id,
    )


def reverse_transaction(transaction_id: int, *, reason: str | None = None, user_id: int | None = None) -> StockTransaction:
    reason = optional_text(reason, "reason", max_length=255)

    def _op():
        begin_write()
        original = db.session.get(StockTransaction, transaction_id)
        if original is None:
            raise NotFoundError("Stock transaction not found")
        tx = _reverse_transaction_inner(original, reason=reason, user_id=user_id)
        db.session.commit()
        return tx

    return run_with_retry(_op)


def list_stock(
    branch_id: int,
    *,
    category: str | None = None,
    status: str | None = None,
    search: str | None = None,
    kitchen_only: bool = False,
) -> list[StockItem]:
    q = db.session.query(StockItem).filter(StockItem.branch_id == branch_id)
    if category:
        q = q.filter(StockItem.category == _normalize_category(category))
    if kitchen_only:
        q = q.filter(StockItem.category.in_(KITCHEN_CATEGORIES))
    if status:
        q = q.filter(StockItem.status == status.upper())
    if search:
        like = like_pattern(search.strip())
        q = q.filter(or_(
            StockItem.name.ilike(like, escape="\\"),
            StockItem.sku.ilike(like, escape="\\"),
        ))
    return q.order_by(StockItem.name.asc(), StockItem.id.asc()).all()


def list_low_stock_alerts(branch_id: int) -> list[StockItem]:
    """LOW_STOCK and OUT_OF_STOCK items, lowest quantity first."""
    return (
        db.session.query(StockItem)
        .filter(
            StockItem.branch_id == branch_id,
            StockItem.status.in_([LOW_STOCK, OUT_OF_STOCK]),
        )
        .order_by(StockItem.quantity.asc(), StockItem.id.asc())
        .all()
    )


def stock_alerts(branch_id: int, *, expiring_within_days: int | None = None, today: date | None = None) -> dict:
    """
    Alert buckets for the stock dashboard.

    critical: quantity at or below 20% of the reorder level (includes out of stock).
    expiring: expiry_date within the warning window (already expired included).
    """
    if expiring_within_days is None:
        expiring_within_days = int(current_app.config.get("STOCK_EXPIRY_WARNING_DAYS", 7))
    today = today or date.today()
    horizon = today + timedelta(days=expiring_within_days)

    items = db.session.query(StockItem).filter(StockItem.branch_id == branch_id).all()

    low = [i for i in items if i.status == LOW_STOCK]
    out = [i for i in items if i.status == OUT_OF_STOCK]
    critical = [
        i for i in items
        if Decimal(i.quantity or 0) <= Decimal(i.reorder_level or 0) * CRITICAL_RATIO
    ]
    expiring = [i for i in items if i.expiry_date is not None and i.expiry_date <= horizon]

    def _by_qty(rows):
        return sorted(rows, key=lambda r: (Decimal(r.quantity or 0), r.id))

    return {
        "low_stock": [i.to_dict() for i in _by_qty(low)],
        "out_of_stock": [i.to_dict() for i in _by_qty(out)],
        "critical": [i.to_dict() for i in _by_qty(critical)],
        "expiring_soon": [i.to_dict() for i in sorted(expiring, key=lambda r: (r.expiry_date, r.id))],
        "counts": {
            "low_stock": len(low),
            "out_of_stock": len(out),
            "critical": len(critical),
            "expiring_soon": len(expiring),
        },
    }


def kitchen_stock_summary(branch_id: int) -> dict:
    """Per kitchen category: item count, total quantity and stock value."""
    rows = (
        db.session.query(StockItem)
        .filter(StockItem.branch_id == branch_id, StockItem.category.in_(KITCHEN_CATEGORIES))
        .all()
    )
    categories = {
        c: {"category": c, "item_count": 0, "total_quantity": ZERO, "total_value_cents": 0, "low_stock_count": 0}
        for c in KITCHEN_CATEGORIES
    }
    for item in rows:
        bucket = categories[item.category]
        qty = Decimal(item.quantity or 0)
        bucket["item_count"] += 1
        bucket["total_quantity"] += qty
        bucket["total_value_cents"] += int((qty * item.unit_cost_cents).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        if item.status in (LOW_STOCK, OUT_OF_STOCK):
            bucket["low_stock_count"] += 1

    summary = []
    for bucket in categories.values():
        bucket["total_quantity"] = str(bucket["total_quantity"])
        summary.append(bucket)
    return {
        "categories": summary,
        "total_items": sum(b["item_count"] for b in summary),
        "total_value_cents": sum(b["total_value_cents"] for b in summary),
    }


def list_transactions(stock_item_id: int, *, limit: int = 200) -> list[StockTransaction]:
    get_stock_item(stock_item_id)
    return (
        db.session.query(StockTransaction)
        .filter(StockTransaction.stock_item_id == stock_item_id)
        .order_by(StockTransaction.created_at.desc(), StockTransaction.id.desc())
        .limit(limit)
        .all()
    )


def recent_activity(branch_id: int, *, limit: int = 50) -> list[StockTransaction]:
    return (
        db.session.query(StockTransaction)
        .filter(StockTransaction.branch_id == branch_id)
        .order_by(StockTransaction.created_at.desc(), StockTransaction.id.desc())
        .limit(limit)
        .all()
    )


def replay_quantity(stock_item_id: int) -> Decimal:
    """Fold the ledger in (created_at, id) order; must equal the cached quantity."""
    deltas = (
        db.session.query(StockTransaction.quantity_delta)
        .filter(StockTransaction.stock_item_id == stock_item_id)
        .order_by(StockTransaction.created_at.asc(), StockTransaction.id.asc())
        .all()
    )
    total = ZERO
    for (delta,) in deltas:
        total += Decimal(delta)
    return total
