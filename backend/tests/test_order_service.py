# Overview: Pytest coverage for the order engine and its stock side effects.

"""
Order Engine Tests

Covers creation (validation, snapshots, numbering), the lifecycle state
machine (one step at a time, idempotent repeats, terminal and stale
rejections) and the stock movements tied to the preparing/cancelled edges.
"""

from decimal import Decimal

import pytest

from eastgate.errors import (
    InsufficientStockError,
    InvalidTransitionError,
    ItemUnavailableError,
    ValidationError,
)
from eastgate.extensions import db
from eastgate.models import ActivityEvent, MenuItem, Notification, Order, StockTransaction
from eastgate.services import order_service, stock_service
from eastgate.services.menu_service import set_recipe, update_menu_item
from eastgate.services.order_service import (
    advance_order_status,
    cancel_order,
    check_transition,
    create_order,
    list_orders,
    track_order,
    update_line_status,
)


def _dine_in(branch, menu, **overrides):
    params = dict(
        branch_id=branch.id,
        customer_name="Alice",
        order_type="dine_in",
        table_number=4,
        payment_method="cash",
        items=[
            {"menu_item_id": menu["burger"].id, "quantity": 2},
            {"menu_item_id": menu["fries"].id, "quantity": 1},
        ],
    )
    params.update(overrides)
    return create_order(**params)


def _walk(order_id, *statuses, user_id=None):
    order = None
    for status in statuses:
        order, changed = advance_order_status(order_id, status, actor_user_id=user_id)
        assert changed is True
    return order


def _order_events(order_id):
    return (
        db.session.query(ActivityEvent)
        .filter_by(entity_type="order", entity_id=order_id)
        .count()
    )


class TestTransitionTable:
    """Pure transition checks."""

    @pytest.mark.parametrize(
        "current,requested",
        [
            ("pending", "confirmed"),
            ("confirmed", "preparing"),
            ("preparing", "ready"),
            ("ready", "served"),
            ("pending", "cancelled"),
            ("confirmed", "cancelled"),
            ("preparing", "cancelled"),
        ],
    )
    def test_allowed(self, current, requested):
        assert check_transition(current, requested) is True

    @pytest.mark.parametrize(
        "current,requested",
        [
            ("pending", "preparing"),
            ("pending", "served"),
            ("confirmed", "ready"),
            ("ready", "preparing"),
            ("ready", "cancelled"),
            ("preparing", "confirmed"),
        ],
    )
    def test_cannot_skip(self, current, requested):
        with pytest.raises(InvalidTransitionError) as exc:
            check_transition(current, requested)
        assert exc.value.reason == InvalidTransitionError.CANNOT_SKIP

    @pytest.mark.parametrize("current", ["served", "cancelled"])
    def test_terminal(self, current):
        with pytest.raises(InvalidTransitionError) as exc:
            check_transition(current, "confirmed")
        assert exc.value.reason == InvalidTransitionError.TERMINAL

    def test_same_status_is_noop(self):
        assert check_transition("preparing", "preparing") is False
        assert check_transition("served", "served") is False

    def test_expected_status_mismatch_is_stale(self):
        with pytest.raises(InvalidTransitionError) as exc:
            check_transition("confirmed", "preparing", expected_status="pending")
        assert exc.value.reason == InvalidTransitionError.STALE

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            check_transition("pending", "eaten")


class TestCreateOrder:
    def test_dine_in_totals_and_snapshots(self, db_session, branch, menu, waiter):
        order = _dine_in(branch, menu, created_by_user_id=waiter.id)

        assert order.status == "pending"
        assert order.grand_total_cents == 13000
        assert order.order_number == f"ORD-{branch.id:03d}-00001"
        assert [(ln.name, ln.unit_price_cents, ln.quantity, ln.line_total_cents) for ln in order.lines] == [
            ("Burger", 5000, 2, 10000),
            ("Fries", 3000, 1, 3000),
        ]
        assert all(ln.item_status == "pending" for ln in order.lines)
        assert _order_events(order.id) == 1

    def test_order_numbers_are_sequential_per_branch(self, db_session, branch, menu):
        first = _dine_in(branch, menu)
        second = _dine_in(branch, menu)
        assert first.order_number.endswith("-00001")
        assert second.order_number.endswith("-00002")

    def test_blank_customer_becomes_walk_in(self, db_session, branch, menu):
        order = _dine_in(branch, menu, customer_name="  ")
        assert order.customer_name == order_service.WALK_IN_CUSTOMER

    def test_dine_in_requires_table(self, db_session, branch, menu):
        with pytest.raises(ValidationError):
            _dine_in(branch, menu, table_number=None)

    def test_room_service_requires_room(self, db_session, branch, menu):
        with pytest.raises(ValidationError):
            _dine_in(branch, menu, order_type="room_service", table_number=None)

    def test_room_service_order(self, db_session, branch, menu):
        order = _dine_in(branch, menu, order_type="room_service", table_number=None, room_number="204")
        assert order.room_number == "204"
        assert order.table_number is None

    def test_empty_items_rejected(self, db_session, branch, menu):
        with pytest.raises(ValidationError):
            _dine_in(branch, menu, items=[])

    def test_zero_quantity_rejected(self, db_session, branch, menu):
        with pytest.raises(ValidationError):
            _dine_in(branch, menu, items=[{"menu_item_id": menu["burger"].id, "quantity": 0}])

    def test_invalid_payment_method(self, db_session, branch, menu):
        with pytest.raises(ValidationError):
            _dine_in(branch, menu, payment_method="cheque")

    def test_unknown_menu_item(self, db_session, branch, menu):
        with pytest.raises(ValidationError) as exc:
            _dine_in(branch, menu, items=[{"menu_item_id": 987654, "quantity": 1}])
        assert exc.value.details["menu_item_ids"] == [987654]
        assert db.session.query(Order).count() == 0

    def test_menu_item_from_other_branch(self, db_session, branch, other_branch, menu):
        foreign = MenuItem(branch_id=other_branch.id, name="Tilapia", category="Main Course", price_cents=4500)
        db.session.add(foreign)
        db.session.commit()

        with pytest.raises(ValidationError):
            _dine_in(branch, menu, items=[{"menu_item_id": foreign.id, "quantity": 1}])

    def test_unavailable_item_writes_nothing(self, db_session, branch, menu):
        with pytest.raises(ItemUnavailableError) as exc:
            _dine_in(branch, menu, items=[
                {"menu_item_id": menu["burger"].id, "quantity": 1},
                {"menu_item_id": menu["lobster"].id, "quantity": 1},
            ])
        assert exc.value.details["names"] == ["Lobster"]
        assert db.session.query(Order).count() == 0
        assert db.session.query(ActivityEvent).filter_by(entity_type="order").count() == 0

    def test_menu_price_change_does_not_touch_existing_order(self, db_session, branch, menu):
        order = _dine_in(branch, menu)
        update_menu_item(menu["burger"].id, patch={"price_cents": 9900})

        reloaded = order_service.get_order(order.id)
        assert reloaded.grand_total_cents == 13000
        assert reloaded.lines[0].unit_price_cents == 5000

        newer = _dine_in(branch, menu)
        assert newer.grand_total_cents == 2 * 9900 + 3000


class TestAdvanceOrder:
    def test_full_lifecycle_sets_timestamps(self, db_session, branch, menu, chef):
        order = _dine_in(branch, menu)
        order = _walk(order.id, "confirmed", "preparing", "ready", "served", user_id=chef.id)

        assert order.status == "served"
        assert order.confirmed_at is not None
        assert order.preparing_at is not None
        assert order.ready_at is not None
        assert order.served_at is not None
        assert order.cancelled_at is None
        assert all(ln.item_status == "ready" for ln in order.lines)

    def test_repeat_is_idempotent(self, db_session, branch, menu):
        order = _dine_in(branch, menu)
        _walk(order.id, "confirmed")
        events_before = _order_events(order.id)
        confirmed_at = order_service.get_order(order.id).confirmed_at

        again, changed = advance_order_status(order.id, "confirmed")

        assert changed is False
        assert again.status == "confirmed"
        assert again.confirmed_at == confirmed_at
        assert _order_events(order.id) == events_before

    def test_skip_rejected_and_state_unchanged(self, db_session, branch, menu):
        order = _dine_in(branch, menu)
        with pytest.raises(InvalidTransitionError) as exc:
            advance_order_status(order.id, "ready")
        assert exc.value.reason == InvalidTransitionError.CANNOT_SKIP
        assert order_service.get_order(order.id).status == "pending"

    def test_served_is_terminal(self, db_session, branch, menu):
        order = _dine_in(branch, menu)
        _walk(order.id, "confirmed", "preparing", "ready", "served")
        with pytest.raises(InvalidTransitionError) as exc:
            cancel_order(order.id, reason="too late")
        assert exc.value.reason == InvalidTransitionError.TERMINAL


    def test_stale_when_someone_else_moved_first(self, db_session, branch, menu):
        order = _dine_in(branch, menu)
        # Two screens both see "pending"; the kitchen confirms first
        advance_order_status(order.id, "confirmed", expected_status="pending")

        with pytest.raises(InvalidTransitionError) as exc:
            cancel_order(order.id, reason="guest left", expected_status="pending")
        assert exc.value.reason == InvalidTransitionError.STALE
        assert order_service.get_order(order.id).status == "confirmed"

    def test_repeat_with_outdated_expectation_is_still_noop(self, db_session, branch, menu):
        order = _dine_in(branch, menu)
        _walk(order.id, "confirmed")
        _, changed = advance_order_status(order.id, "confirmed", expected_status="pending")
        assert changed is False

    def test_cancel_records_reason(self, db_session, branch, menu):
        order = _dine_in(branch, menu)
        cancelled, changed = cancel_order(order.id, reason="guest left")
        assert changed is True
        assert cancelled.status == "cancelled"
        assert cancelled.cancel_reason == "guest left"
        assert cancelled.cancelled_at is not None

    def test_ready_cannot_be_cancelled(self, db_session, branch, menu):
        order = _dine_in(branch, menu)
        _walk(order.id, "confirmed", "preparing", "ready")
        with pytest.raises(InvalidTransitionError) as exc:
            cancel_order(order.id)
        assert exc.value.reason == InvalidTransitionError.CANNOT_SKIP

    def test_ready_notifies_once(self, db_session, branch, menu):
        order = _dine_in(branch, menu)
        _walk(order.id, "confirmed", "preparing", "ready")
        advance_order_status(order.id, "ready")

        notes = db.session.query(Notification).filter_by(kind="ORDER_READY").all()
        assert len(notes) == 1
        assert notes[0].branch_id == branch.id
        assert "table 4" in notes[0].message

    def test_failed_notification_does_not_block_ready(self, db_session, branch, menu, failing_notifications):
        order = _dine_in(branch, menu)
        _walk(order.id, "confirmed", "preparing", "ready")

        db.session.expire_all()
        order = db.session.get(Order, order.id)
        assert order.status == "ready"
        assert order.ready_at is not None
        assert db.session.query(Notification).count() == 0

    def test_lines_mirror_preparing(self, db_session, branch, menu):
        order = _dine_in(branch, menu)
        order = _walk(order.id, "confirmed", "preparing")
        assert [ln.item_status for ln in order.lines] == ["preparing", "preparing"]


class TestLineStatus:
    def test_line_tick_does_not_move_order(self, db_session, branch, menu):
        order = _dine_in(branch, menu)
        order = _walk(order.id, "confirmed", "preparing")
        for line_id in [ln.id for ln in order.lines]:
            update_line_status(order.id, line_id, "ready")

        reloaded = order_service.get_order(order.id)
        assert reloaded.status == "preparing"
        assert reloaded.to_dict()["all_lines_ready"] is True

    def test_line_tick_on_terminal_order(self, db_session, branch, menu):
        order = _dine_in(branch, menu)
        order, _ = cancel_order(order.id)
        with pytest.raises(InvalidTransitionError):
            update_line_status(order.id, order.lines[0].id, "ready")

    def test_invalid_line_status(self, db_session, branch, menu):
        order = _dine_in(branch, menu)
        with pytest.raises(ValidationError):
            update_line_status(order.id, order.lines[0].id, "served")


class TestStockConsumption:
    """Ingredients move on the first preparing edge and come back on cancel."""

    @pytest.fixture
    def burger_recipe(self, db_session, menu, beef):
        set_recipe(menu["burger"].id, [{"stock_item_id": beef.id, "quantity": "0.25"}])
        return beef

    def test_preparing_consumes_recipe(self, db_session, branch, menu, burger_recipe):
        order = _dine_in(branch, menu)
        _walk(order.id, "confirmed")
        assert stock_service.get_stock_item(burger_recipe.id).quantity == Decimal("10")

        _walk(order.id, "preparing")

        item = stock_service.get_stock_item(burger_recipe.id)
        assert item.quantity == Decimal("9.5")
        outs = db.session.query(StockTransaction).filter_by(stock_item_id=item.id, type="OUT").all()
        assert len(outs) == 1
        assert outs[0].reference == order.order_number
        assert stock_service.replay_quantity(item.id) == item.quantity

    def test_later_steps_do_not_consume_again(self, db_session, branch, menu, burger_recipe):
        order = _dine_in(branch, menu)
        _walk(order.id, "confirmed", "preparing")
        advance_order_status(order.id, "preparing")
        _walk(order.id, "ready", "served")

        assert stock_service.get_stock_item(burger_recipe.id).quantity == Decimal("9.5")

    def test_shared_ingredient_aggregated(self, db_session, branch, menu, beef):
        set_recipe(menu["burger"].id, [{"stock_item_id": beef.id, "quantity": "0.25"}])
        set_recipe(menu["fries"].id, [{"stock_item_id": beef.id, "quantity": "0.1"}])

        order = _dine_in(branch, menu)
        _walk(order.id, "confirmed", "preparing")

        outs = db.session.query(StockTransaction).filter_by(stock_item_id=beef.id, type="OUT").all()
        assert len(outs) == 1
        assert outs[0].quantity_delta == Decimal("-0.6")

    def test_insufficient_stock_aborts_transition(self, db_session, branch, menu, beef):
        set_recipe(menu["burger"].id, [{"stock_item_id": beef.id, "quantity": "6"}])
        order = _dine_in(branch, menu)
        _walk(order.id, "confirmed")

        with pytest.raises(InsufficientStockError):
            advance_order_status(order.id, "preparing")

        reloaded = order_service.get_order(order.id)
        assert reloaded.status == "confirmed"
        assert reloaded.preparing_at is None
        assert stock_service.get_stock_item(beef.id).quantity == Decimal("10")
        assert db.session.query(StockTransaction).filter_by(type="OUT").count() == 0

    def test_cancel_while_preparing_restores_stock(self, db_session, branch, menu, burger_recipe):
        order = _dine_in(branch, menu)
        _walk(order.id, "confirmed", "preparing")
        cancel_order(order.id, reason="kitchen fire")

        item = stock_service.get_stock_item(burger_recipe.id)
        assert item.quantity == Decimal("10")
        reversal = db.session.query(StockTransaction).filter_by(stock_item_id=item.id, type="IN").order_by(
            StockTransaction.id.desc()
        ).first()
        assert reversal.reverses_transaction_id is not None
        assert stock_service.replay_quantity(item.id) == Decimal("10")

    def test_cancel_before_preparing_moves_nothing(self, db_session, branch, menu, burger_recipe):
        order = _dine_in(branch, menu)
        _walk(order.id, "confirmed")
        cancel_order(order.id)

        txs = db.session.query(StockTransaction).filter_by(stock_item_id=burger_recipe.id).all()
        assert [t.type for t in txs] == ["IN"]


class TestQueries:
    def test_list_orders_counts_and_filters(self, db_session, branch, menu):
        a = _dine_in(branch, menu)
        b = _dine_in(branch, menu, table_number=7)
        _dine_in(branch, menu, order_type="takeaway", table_number=None)
        _walk(a.id, "confirmed")
        cancel_order(b.id)

        result = list_orders(branch_id=branch.id)
        assert result["pagination"]["total"] == 3
        assert result["status_counts"]["pending"] == 1
        assert result["status_counts"]["confirmed"] == 1
        assert result["status_counts"]["cancelled"] == 1

        only_active = list_orders(branch_id=branch.id, status="pending,confirmed")
        assert {o.status for o in only_active["items"]} == {"pending", "confirmed"}
        # Counts ignore the status filter
        assert only_active["status_counts"]["cancelled"] == 1

        table_seven = list_orders(branch_id=branch.id, table_number=7)
        assert [o.id for o in table_seven["items"]] == [b.id]

    def test_list_orders_pagination(self, db_session, branch, menu):
        for _ in range(3):
            _dine_in(branch, menu)
        page = list_orders(branch_id=branch.id, page=2, per_page=2)
        assert page["count"] == 1
        assert page["pagination"]["total_pages"] == 2
        assert page["pagination"]["has_prev"] is True
        assert page["pagination"]["has_next"] is False

    def test_invalid_status_filter(self, db_session, branch):
        with pytest.raises(ValidationError):
            list_orders(branch_id=branch.id, status="lost")

    def test_track_order_hides_staff_fields(self, db_session, branch, menu, waiter):
        order = _dine_in(branch, menu, created_by_user_id=waiter.id, notes="no onions")
        _walk(order.id, "confirmed")

        view = track_order(order.order_number.lower())
        assert "created_by_user_id" not in view
        assert "notes" not in view
        assert [s["reached"] for s in view["steps"]] == [True, True, False, False, False]
