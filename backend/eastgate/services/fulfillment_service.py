# Overview: Service-layer operations for order fulfillment; ties order status edges to the stock ledger.

"""
Order Fulfillment Hook

Called by order_service inside the same unit of work as every applied order
status transition. Nothing here commits; an exception raised here rolls the
status change back together with any stock movement.

RULES:
1. Ingredients are consumed once, on the first edge into "preparing".
   Each (order, stock item) pair is consumed at most once via the
   idempotency_key "order:<order_number>".
2. Line quantities are multiplied by the recipe quantity and aggregated per
   stock item before touching the ledger, so two lines sharing an ingredient
   produce one OUT transaction.
3. Insufficient stock for any ingredient aborts the whole transition.
4. Cancelling an order after consumption posts compensating IN transactions
   for every OUT it caused.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Order, RecipeComponent, StockTransaction
from .stock_service import TX_OUT, _reverse_transaction_inner, _use_stock_inner, get_stock_item


def consumption_key(order: Order) -> str:
    return f"order:{order.order_number}"


def required_ingredients(order: Order) -> dict[int, Decimal]:
    """Aggregate recipe quantity x line quantity per stock item."""
    menu_ids = {line.menu_item_id for line in order.lines}
    if not menu_ids:
        return {}

    components = (
        db.session.query(RecipeComponent)
        .filter(RecipeComponent.menu_item_id.in_(menu_ids))
        .all()
    )
    by_menu: dict[int, list[RecipeComponent]] = {}
    for comp in components:
        by_menu.setdefault(comp.menu_item_id, []).append(comp)

    required: dict[int, Decimal] = {}
    for line in order.lines:
        for comp in by_menu.get(line.menu_item_id, []):
            qty = Decimal(comp.quantity) * line.quantity
            required[comp.stock_item_id] = required.get(comp.stock_item_id, Decimal("0")) + qty
    return required


def consume_for_order(order: Order, *, user_id: int | None = None) -> list[StockTransaction]:
    """Post OUT transactions for the order's ingredients. Idempotent per (order, stock item)."""
    required = required_ingredients(order)
    key = consumption_key(order)

    txs = []
    # Lock in id order so concurrent orders sharing ingredients cannot deadlock
    for stock_item_id in sorted(required):
        item = get_stock_item(stock_item_id, lock=True)
        tx = _use_stock_inner(
            item,
            required[stock_item_id],
            reference=order.order_number,
            idempotency_key=key,
            reason="order fulfillment",
            user_id=user_id,
        )
        txs.append(tx)

    if txs:
        current_app.logger.info(
            "Consumed %d ingredient(s) for order %s", len(txs), order.order_number
        )
    return txs


def reverse_for_order(order: Order, *, user_id: int | None = None) -> list[StockTransaction]:
    """Compensate every OUT the order caused. Safe to call when nothing was consumed."""
    consumed = (
        db.session.query(StockTransaction)
        .filter(
            StockTransaction.branch_id == order.branch_id,
            StockTransaction.type == TX_OUT,
            StockTransaction.idempotency_key == consumption_key(order),
        )
        .order_by(StockTransaction.stock_item_id.asc())
        .all()
    )

    reversals = [
        _reverse_transaction_inner(tx, reason=f"order {order.order_number} cancelled", user_id=user_id)
        for tx in consumed
    ]
    if reversals:
        current_app.logger.info(
            "Restored %d ingredient(s) for cancelled order %s", len(reversals), order.order_number
        )
    return reversals


def on_status_changed(order: Order, previous_status: str, new_status: str, *, user_id: int | None = None) -> None:
    """Fulfillment hook, invoked once per applied transition."""
    if new_status == "preparing" and order.preparing_at is None:
        consume_for_order(order, user_id=user_id)
    elif new_status == "cancelled" and previous_status == "preparing":
        reverse_for_order(order, user_id=user_id)
