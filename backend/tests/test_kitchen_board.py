# Overview: Pytest coverage for the kitchen/service board.

from datetime import datetime, timedelta

import pytest

from eastgate.errors import ValidationError
from eastgate.extensions import db
from eastgate.models import Notification, Order
from eastgate.services import kitchen_board_service as kb
from eastgate.services.order_service import advance_order_status, cancel_order, create_order


NOW = datetime(2030, 1, 1, 12, 0, 0)


def _order(branch, menu, *, minutes_ago, order_type="dine_in", status=None):
    order = create_order(
        branch_id=branch.id,
        customer_name="Guest",
        order_type=order_type,
        table_number=1 if order_type == "dine_in" else None,
        room_number="101" if order_type == "room_service" else None,
        payment_method="card",
        items=[{"menu_item_id": menu["fries"].id, "quantity": 1}],
    )
    path = {
        None: [],
        "confirmed": ["confirmed"],
        "preparing": ["confirmed", "preparing"],
        "ready": ["confirmed", "preparing", "ready"],
        "served": ["confirmed", "preparing", "ready", "served"],
    }[status]
    for step in path:
        advance_order_status(order.id, step)

    order = db.session.get(Order, order.id)
    order.created_at = NOW - timedelta(minutes=minutes_ago)
    db.session.commit()
    return order


class TestPriority:
    @pytest.mark.parametrize(
        "status,order_type,minutes,expected",
        [
            ("pending", "dine_in", 31, "urgent"),
            ("preparing", "delivery", 45, "urgent"),
            ("pending", "dine_in", 30, "high"),
            ("confirmed", "dine_in", 21, "high"),
            ("pending", "delivery", 5, "high"),
            ("pending", "dine_in", 20, "normal"),
            ("preparing", "room_service", 0, "normal"),
            ("ready", "dine_in", 90, None),
            ("served", "delivery", 5, None),
            ("cancelled", "dine_in", 90, None),
        ],
    )
    def test_compute_priority(self, status, order_type, minutes, expected):
        created = NOW - timedelta(minutes=minutes)
        assert kb.compute_priority(status, order_type, created, NOW) == expected


class TestActions:
    @pytest.mark.parametrize(
        "status,label,next_status",
        [
            ("pending", "Accept Order", "confirmed"),
            ("confirmed", "Start Cooking", "preparing"),
            ("preparing", "Mark Ready", "ready"),
        ],
    )
    def test_kitchen_actions(self, status, label, next_status):
        action = kb.next_action(Order(status=status))
        assert action.label == label
        assert action.next_status == next_status

    @pytest.mark.parametrize("status", ["ready", "served", "cancelled"])
    def test_no_kitchen_action(self, status):
        assert kb.next_action(Order(status=status)) is None

    def test_only_ready_can_be_served(self):
        assert kb.serve_action(Order(status="ready")).to_dict() == {"label": "Mark Served", "next_status": "served"}
        assert kb.serve_action(Order(status="preparing")) is None


class TestBoard:
    def test_active_set_excludes_terminal(self, db_session, branch, menu):
        pending = _order(branch, menu, minutes_ago=5)
        ready = _order(branch, menu, minutes_ago=5, status="ready")
        _order(branch, menu, minutes_ago=5, status="served")
        cancelled = _order(branch, menu, minutes_ago=5)
        cancel_order(cancelled.id)

        ids = {o.id for o in kb.list_active_orders(branch.id, now=NOW)}
        assert ids == {pending.id, ready.id}

        kitchen_only = kb.list_active_orders(branch.id, include_ready=False, now=NOW)
        assert [o.id for o in kitchen_only] == [pending.id]

    def test_priority_sort(self, db_session, branch, menu):
        normal = _order(branch, menu, minutes_ago=2)
        ready = _order(branch, menu, minutes_ago=50, status="ready")
        urgent = _order(branch, menu, minutes_ago=40, status="preparing")
        delivery = _order(branch, menu, minutes_ago=1, order_type="delivery")
        older_normal = _order(branch, menu, minutes_ago=10, status="confirmed")

        ordered = kb.list_active_orders(branch.id, sort_by="priority", now=NOW)
        assert [o.id for o in ordered] == [urgent.id, delivery.id, older_normal.id, normal.id, ready.id]

        by_time = kb.list_active_orders(branch.id, sort_by="time", now=NOW)
        assert [o.id for o in by_time] == [ready.id, urgent.id, older_normal.id, normal.id, delivery.id]

    def test_invalid_sort_mode(self, db_session, branch):
        with pytest.raises(ValidationError):
            kb.list_active_orders(branch.id, sort_by="alphabetical")

    def test_status_filter(self, db_session, branch, menu):
        _order(branch, menu, minutes_ago=5)
        preparing = _order(branch, menu, minutes_ago=5, status="preparing")
        assert [o.id for o in kb.list_active_orders(branch.id, status="preparing", now=NOW)] == [preparing.id]
        assert kb.list_active_orders(branch.id, status="served", now=NOW) == []

    def test_branch_scoping(self, db_session, branch, other_branch, menu):
        _order(branch, menu, minutes_ago=5)
        assert kb.list_active_orders(other_branch.id, now=NOW) == []
        assert len(kb.list_active_orders(None, now=NOW)) == 1

    def test_board_entry_payload(self, db_session, branch, menu):
        _order(branch, menu, minutes_ago=25, status="confirmed")
        entry = kb.board(branch.id, now=NOW)[0]

        assert entry["priority"] == "high"
        assert entry["age_minutes"] == 25.0
        assert entry["next_action"] == {"label": "Start Cooking", "next_status": "preparing"}
        assert entry["serve_action"] is None
        assert len(entry["lines"]) == 1

    @pytest.mark.parametrize(
        "role,serve_label",
        [
            ("waiter", "Mark Served"),
            ("kitchen", None),
            ("stock_manager", None),
            (None, "Mark Served"),
        ],
    )
    def test_ready_entry_actions_follow_role(self, db_session, branch, menu, role, serve_label):
        _order(branch, menu, minutes_ago=5, status="ready")
        entry = kb.board(branch.id, now=NOW, role=role)[0]
        assert entry["next_action"] is None
        assert (entry["serve_action"] or {}).get("label") == serve_label

    @pytest.mark.parametrize("role,visible", [("waiter", True), ("kitchen", True), ("stock_manager", False)])
    def test_pending_entry_actions_follow_role(self, db_session, branch, menu, role, visible):
        _order(branch, menu, minutes_ago=5)
        entry = kb.board(branch.id, now=NOW, role=role)[0]
        assert (entry["next_action"] is not None) is visible

    def test_summary(self, db_session, branch, menu):
        _order(branch, menu, minutes_ago=10)
        _order(branch, menu, minutes_ago=40, status="preparing")
        _order(branch, menu, minutes_ago=60, status="ready")

        summary = kb.board_summary(branch.id, now=NOW)
        assert summary["active"] == 3
        assert summary["by_status"] == {"pending": 1, "confirmed": 0, "preparing": 1, "ready": 1}
        assert summary["urgent"] == 1
        assert summary["average_wait_minutes"] == 25.0
        assert summary["oldest_order_minutes"] == 40.0

    def test_summary_of_empty_board(self, db_session, branch):
        summary = kb.board_summary(branch.id, now=NOW)
        assert summary["active"] == 0
        assert summary["average_wait_minutes"] == 0.0


class TestEscalation:
    def test_escalates_each_order_once(self, db_session, branch, menu):
        late = _order(branch, menu, minutes_ago=35)
        _order(branch, menu, minutes_ago=10)
        _order(branch, menu, minutes_ago=90, status="ready")

        escalated = kb.escalate_urgent_orders(branch.id, now=NOW)
        assert [o.id for o in escalated] == [late.id]
        assert kb.escalate_urgent_orders(branch.id, now=NOW + timedelta(minutes=5)) == []

        notes = db.session.query(Notification).filter_by(kind="URGENT_ORDER").all()
        assert len(notes) == 1
        assert notes[0].reference == late.order_number
        assert db.session.get(Order, late.id).urgent_notified_at == NOW
