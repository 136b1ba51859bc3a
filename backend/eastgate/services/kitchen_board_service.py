# Overview: Service-layer operations for the kitchen/service board; derived read model over orders.

"""
Kitchen / Service Board

The board owns no state. Every read derives the active set, priority and next
action from the committed orders at read time; clients poll.

compute_priority is the ONLY priority rule. Sorting, the board payload and
urgent escalation all go through it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import Order
from ..permissions import ADVANCE_ORDER, SERVE_ORDER, has_permission
from ..time_utils import minutes_between, utcnow
from .concurrency import run_with_retry
from .notification_service import KIND_URGENT_ORDER, notify
from .order_service import ACTIVE_STATUSES, ORDER_STATUSES


URGENT_AFTER_MINUTES = 30
HIGH_AFTER_MINUTES = 20

PRIORITY_RANK = {"urgent": 0, "high": 1, "normal": 2, "low": 3, None: 4}
SORT_MODES = ("priority", "time")

_NO_PRIORITY_STATUSES = frozenset({"ready", "served", "cancelled"})


@dataclass(frozen=True)
class BoardAction:
    label: str
    next_status: str

    def to_dict(self) -> dict:
        return {"label": self.label, "next_status": self.next_status}


_KITCHEN_ACTIONS = {
    "pending": BoardAction("Accept Order", "confirmed"),
    "confirmed": BoardAction("Start Cooking", "preparing"),
    "preparing": BoardAction("Mark Ready", "ready"),
}
_SERVE_ACTION = BoardAction("Mark Served", "served")


def compute_priority(status: str, order_type: str, created_at: datetime, now: datetime) -> str | None:
    """
    Pure priority rule, evaluated top to bottom:
    ready/served/cancelled -> None; older than 30 min -> urgent;
    older than 20 min -> high; delivery -> high; otherwise normal.
    """
    if status in _NO_PRIORITY_STATUSES:
        return None
    age = minutes_between(created_at, now)
    if age > URGENT_AFTER_MINUTES:
        return "urgent"
    if age > HIGH_AFTER_MINUTES:
        return "high"
    if order_type == "delivery":
        return "high"
    return "normal"


def order_priority(order: Order, now: datetime) -> str | None:
    return compute_priority(order.status, order.order_type, order.created_at, now)


def next_action(order: Order) -> BoardAction | None:
    """Kitchen-side action for the order; ready and terminal orders have none."""
    return _KITCHEN_ACTIONS.get(order.status)


def serve_action(order: Order) -> BoardAction | None:
    """Waiter-side action: only a ready order can be served."""
    return _SERVE_ACTION if order.status == "ready" else None


def sort_orders(orders: list[Order], sort_by: str, now: datetime) -> list[Order]:
    if sort_by == "time":
        return sorted(orders, key=lambda o: (o.created_at, o.id))
    return sorted(orders, key=lambda o: (PRIORITY_RANK[order_priority(o, now)], o.created_at, o.id))


def list_active_orders(
    branch_id: int | None = None,
    *,
    sort_by: str = "priority",
    status: str | None = None,
    include_ready: bool = True,
    now: datetime | None = None,
) -> list[Order]:
    """
    Non-terminal orders, optionally for one branch (None aggregates every branch).

    status narrows to one active status; include_ready=False gives the
    kitchen-only view.
    """
    if sort_by not in SORT_MODES:
        raise ValidationError(f"sort_by must be one of: {', '.join(SORT_MODES)}")

    statuses = list(ACTIVE_STATUSES)
    if not include_ready:
        statuses.remove("ready")
    if status:
        status = status.strip().lower()
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid status '{status}'")
        statuses = [status] if status in statuses else []

    if not statuses:
        return []

    q = db.session.query(Order).filter(Order.status.in_(statuses))
    if branch_id is not None:
        q = q.filter(Order.branch_id == branch_id)

    return sort_orders(q.all(), sort_by, now or utcnow())


def board_entry(order: Order, now: datetime, role: str | None = None) -> dict:
    """
    One board row. With a role, actions that role may not perform come back
    as None.
    """
    data = order.to_dict(include_lines=True)
    action = next_action(order)
    serve = serve_action(order)
    if role is not None:
        if not has_permission(role, ADVANCE_ORDER):
            action = None
        if not has_permission(role, SERVE_ORDER):
            serve = None
    data["priority"] = order_priority(order, now)
    data["age_minutes"] = round(minutes_between(order.created_at, now), 1)
    data["next_action"] = action.to_dict() if action else None
    data["serve_action"] = serve.to_dict() if serve else None
    return data


def board(
    branch_id: int | None = None,
    *,
    sort_by: str = "priority",
    status: str | None = None,
    include_ready: bool = True,
    now: datetime | None = None,
    role: str | None = None,
) -> list[dict]:
    now = now or utcnow()
    orders = list_active_orders(
        branch_id, sort_by=sort_by, status=status, include_ready=include_ready, now=now
    )
    return [board_entry(o, now, role) for o in orders]


def board_summary(branch_id: int | None = None, *, now: datetime | None = None) -> dict:
    """Counts per active status, urgent count and average wait of the active set."""
    now = now or utcnow()
    orders = list_active_orders(branch_id, sort_by="time", now=now)

    by_status = {s: 0 for s in ACTIVE_STATUSES}
    urgent = 0
    for o in orders:
        by_status[o.status] += 1
        if order_priority(o, now) == "urgent":
            urgent += 1

    waiting = [minutes_between(o.created_at, now) for o in orders if o.status != "ready"]
    return {
        "active": len(orders),
        "by_status": by_status,
        "urgent": urgent,
        "average_wait_minutes": round(sum(waiting) / len(waiting), 1) if waiting else 0.0,
        "oldest_order_minutes": round(max(waiting), 1) if waiting else 0.0,
    }


def escalate_urgent_orders(branch_id: int | None = None, *, now: datetime | None = None) -> list[Order]:
    """
    Send one URGENT_ORDER notification per order that has become urgent.

    Edge-triggered through urgent_notified_at, so polling this repeatedly never
    re-notifies the same order.
    """
    now = now or utcnow()

    def _op():
        candidates = [
            o for o in list_active_orders(branch_id, sort_by="time", now=now)
            if o.urgent_notified_at is None and order_priority(o, now) == "urgent"
        ]
        for order in candidates:
            order.urgent_notified_at = now
            notify(
                KIND_URGENT_ORDER,
                f"Order {order.order_number} has been waiting "
                f"{int(minutes_between(order.created_at, now))} minutes ({order.status})",
                order.branch_id,
                title="Urgent order",
                reference=order.order_number,
            )
        db.session.commit()
        if candidates:
            current_app.logger.warning("Escalated %d urgent order(s)", len(candidates))
        return candidates

    return run_with_retry(_op)
