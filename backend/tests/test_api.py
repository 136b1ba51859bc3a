# Overview: Pytest coverage for the HTTP API: authentication, role checks and branch scoping.

"""
API tests.

Verifies:
- Unauthenticated requests return 401
- Each role only reaches the operations its role map grants (403 otherwise)
- Branch-bound staff cannot read or write another branch (403/404)
- Business errors come back as structured JSON with their HTTP status
"""

import pytest

PASSWORD = "Password123!"


def _order_payload(menu, **overrides):
    payload = {
        "customer_name": "Alice",
        "order_type": "dine_in",
        "table_number": 4,
        "payment_method": "cash",
        "items": [
            {"menu_item_id": menu["burger"].id, "quantity": 2},
            {"menu_item_id": menu["fries"].id, "quantity": 1},
        ],
    }
    payload.update(overrides)
    return payload


def _create_order(client, headers, menu, **overrides):
    resp = client.post("/api/orders", json=_order_payload(menu, **overrides), headers=headers)
    assert resp.status_code == 201, resp.json
    return resp.json["order"]


def _status(client, headers, order_id, status, **extra):
    return client.post(f"/api/orders/{order_id}/status", json={"status": status, **extra}, headers=headers)


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/menu"),
            ("POST", "/api/menu"),
            ("GET", "/api/orders"),
            ("POST", "/api/orders"),
            ("POST", "/api/orders/1/status"),
            ("GET", "/api/kitchen/board"),
            ("GET", "/api/stock"),
            ("POST", "/api/stock/in"),
            ("GET", "/api/service-requests"),
            ("GET", "/api/notifications"),
            ("GET", "/api/auth/me"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.json["code"] == "UNAUTHENTICATED"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/orders", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401


class TestPublicEndpoints:
    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"

    def test_track_order_without_login(self, client, waiter_headers, menu):
        order = _create_order(client, waiter_headers, menu)

        resp = client.get(f"/api/orders/track/{order['order_number']}")
        assert resp.status_code == 200
        assert resp.json["order"]["status"] == "pending"
        assert "created_by_user_id" not in resp.json["order"]

    def test_track_unknown_order(self, client, db_session):
        resp = client.get("/api/orders/track/ORD-999-99999")
        assert resp.status_code == 404


class TestAuth:
    def test_login_me_logout(self, client, waiter, branch):
        resp = client.post("/api/auth/login", json={"username": "waiter", "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.json["branch_id"] == branch.id
        assert "CREATE_ORDER" in resp.json["permissions"]
        headers = {"Authorization": f"Bearer {resp.json['token']}"}

        me = client.get("/api/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.json["user"]["username"] == "waiter"

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_wrong_password(self, client, waiter):
        resp = client.post("/api/auth/login", json={"username": "waiter", "password": "Nope123!x"})
        assert resp.status_code == 401

    def test_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={"username": "waiter"})
        assert resp.status_code == 400


# =============================================================================
# ORDER LIFECYCLE OVER HTTP
# =============================================================================


class TestOrders:
    def test_create_order(self, client, waiter_headers, menu):
        order = _create_order(client, waiter_headers, menu)
        assert order["grand_total_cents"] == 13000
        assert order["status"] == "pending"
        assert len(order["lines"]) == 2

    def test_validation_error_shape(self, client, waiter_headers, menu):
        resp = client.post("/api/orders", json=_order_payload(menu, table_number=None), headers=waiter_headers)
        assert resp.status_code == 400
        assert resp.json["code"] == "VALIDATION_ERROR"

    def test_unavailable_item(self, client, waiter_headers, menu):
        resp = client.post(
            "/api/orders",
            json=_order_payload(menu, items=[{"menu_item_id": menu["lobster"].id, "quantity": 1}]),
            headers=waiter_headers,
        )
        assert resp.status_code == 409
        assert resp.json["code"] == "ITEM_UNAVAILABLE"

    def test_role_split(self, client, waiter_headers, chef_headers, storekeeper_headers, menu):
        order = _create_order(client, waiter_headers, menu)

        resp = _status(client, storekeeper_headers, order["id"], "confirmed")
        assert resp.status_code == 403
        assert resp.json["required_permission"] == "ADVANCE_ORDER"

        assert _status(client, waiter_headers, order["id"], "confirmed").status_code == 200
        for step in ("preparing", "ready"):
            resp = _status(client, chef_headers, order["id"], step)
            assert resp.status_code == 200
            assert resp.json["changed"] is True

        # The kitchen does not serve
        resp = _status(client, chef_headers, order["id"], "served")
        assert resp.status_code == 403
        assert resp.json["required_permission"] == "SERVE_ORDER"

        resp = _status(client, waiter_headers, order["id"], "served")
        assert resp.status_code == 200
        assert resp.json["order"]["status"] == "served"

    @pytest.mark.parametrize(
        "body",
        [
            {"status": 5},
            {"status": ["confirmed"]},
            {"status": "confirmed", "expected_status": 1},
            {"status": "cancelled", "reason": {"text": "gone"}},
        ],
    )
    def test_malformed_status_body(self, client, waiter_headers, menu, body):
        order = _create_order(client, waiter_headers, menu)
        resp = client.post(f"/api/orders/{order['id']}/status", json=body, headers=waiter_headers)
        assert resp.status_code == 400
        assert resp.json["code"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"customer_name": 42},
            {"notes": ["no onions"]},
            {"order_type": "room_service", "table_number": None, "room_number": {"no": 1}},
        ],
    )
    def test_malformed_order_fields(self, client, waiter_headers, menu, overrides):
        resp = client.post("/api/orders", json=_order_payload(menu, **overrides), headers=waiter_headers)
        assert resp.status_code == 400
        assert resp.json["code"] == "VALIDATION_ERROR"

    def test_numeric_room_number_accepted(self, client, waiter_headers, menu):
        order = _create_order(client, waiter_headers, menu, order_type="room_service", table_number=None, room_number=305)
        assert order["room_number"] == "305"

    def test_search_treats_wildcards_literally(self, client, waiter_headers, menu):
        _create_order(client, waiter_headers, menu, customer_name="Alice")
        _create_order(client, waiter_headers, menu, customer_name="100% Bob")

        assert client.get("/api/orders?search=%25", headers=waiter_headers).json["pagination"]["total"] == 1
        assert client.get("/api/orders?search=_", headers=waiter_headers).json["pagination"]["total"] == 0

    def test_repeat_returns_unchanged(self, client, waiter_headers, chef_headers, menu):
        order = _create_order(client, waiter_headers, menu)
        _status(client, chef_headers, order["id"], "confirmed")

        resp = _status(client, chef_headers, order["id"], "confirmed")
        assert resp.status_code == 200
        assert resp.json["changed"] is False

    def test_skip_is_conflict(self, client, waiter_headers, chef_headers, menu):
        order = _create_order(client, waiter_headers, menu)
        resp = _status(client, chef_headers, order["id"], "ready")
        assert resp.status_code == 409
        assert resp.json["code"] == "INVALID_TRANSITION"
        assert resp.json["reason"] == "CANNOT_SKIP"

    def test_stale_is_conflict(self, client, waiter_headers, chef_headers, menu):
        order = _create_order(client, waiter_headers, menu)
        _status(client, chef_headers, order["id"], "confirmed")

        resp = client.post(
            f"/api/orders/{order['id']}/cancel",
            json={"reason": "guest left", "expected_status": "pending"},
            headers=waiter_headers,
        )
        assert resp.status_code == 409
        assert resp.json["reason"] == "STALE"

    def test_cancel(self, client, waiter_headers, menu):
        order = _create_order(client, waiter_headers, menu)
        resp = client.post(f"/api/orders/{order['id']}/cancel", json={"reason": "guest left"}, headers=waiter_headers)
        assert resp.status_code == 200
        assert resp.json["order"]["cancel_reason"] == "guest left"

    def test_list_orders(self, client, waiter_headers, menu):
        _create_order(client, waiter_headers, menu)
        _create_order(client, waiter_headers, menu, table_number=9)

        resp = client.get("/api/orders?table_number=9", headers=waiter_headers)
        assert resp.status_code == 200
        assert resp.json["pagination"]["total"] == 1
        assert resp.json["status_counts"]["pending"] == 1

    def test_line_status(self, client, waiter_headers, chef_headers, menu):
        order = _create_order(client, waiter_headers, menu)
        line_id = order["lines"][0]["id"]

        resp = client.patch(
            f"/api/orders/{order['id']}/lines/{line_id}", json={"item_status": "ready"}, headers=chef_headers
        )
        assert resp.status_code == 200
        assert resp.json["line"]["item_status"] == "ready"

    def test_activity_history(self, client, waiter_headers, chef_headers, menu):
        order = _create_order(client, waiter_headers, menu)
        _status(client, chef_headers, order["id"], "confirmed")

        resp = client.get(f"/api/orders/{order['id']}/activity", headers=waiter_headers)
        assert resp.status_code == 200
        assert [e["event_type"] for e in resp.json["events"]] == ["order.status_changed", "order.created"]


class TestKitchenBoard:
    def test_board(self, client, waiter_headers, chef_headers, menu):
        order = _create_order(client, waiter_headers, menu)

        resp = client.get("/api/kitchen/board", headers=chef_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 1
        entry = resp.json["orders"][0]
        assert entry["id"] == order["id"]
        assert entry["priority"] == "normal"
        assert entry["next_action"]["label"] == "Accept Order"

    def test_invalid_sort(self, client, chef_headers, db_session):
        resp = client.get("/api/kitchen/board?sort_by=name", headers=chef_headers)
        assert resp.status_code == 400

    def test_summary(self, client, waiter_headers, chef_headers, menu):
        _create_order(client, waiter_headers, menu)
        resp = client.get("/api/kitchen/summary", headers=chef_headers)
        assert resp.status_code == 200
        assert resp.json["by_status"]["pending"] == 1

    def test_waiter_can_run_every_offered_action(self, client, waiter_headers, menu):
        order = _create_order(client, waiter_headers, menu)

        for _ in range(4):
            entry = client.get("/api/kitchen/board", headers=waiter_headers).json["orders"][0]
            action = entry["next_action"] or entry["serve_action"]
            resp = _status(client, waiter_headers, order["id"], action["next_status"])
            assert resp.status_code == 200, resp.json

        assert client.get("/api/kitchen/board", headers=waiter_headers).json["count"] == 0

    def test_kitchen_board_hides_serving(self, client, waiter_headers, chef_headers, menu):
        order = _create_order(client, waiter_headers, menu)
        for step in ("confirmed", "preparing", "ready"):
            _status(client, chef_headers, order["id"], step)

        entry = client.get("/api/kitchen/board", headers=chef_headers).json["orders"][0]
        assert entry["next_action"] is None
        assert entry["serve_action"] is None

    def test_storekeeper_cannot_see_board(self, client, storekeeper_headers, db_session):
        assert client.get("/api/kitchen/board", headers=storekeeper_headers).status_code == 403


# =============================================================================
# STOCK
# =============================================================================


class TestStock:
    def test_receive_use_and_alert(self, client, storekeeper_headers, chef_headers):
        resp = client.post("/api/stock/in", json={
            "name": "Tomatoes", "category": "PRODUCE", "unit": "kg",
            "quantity": "8", "unit_cost_cents": 300, "reorder_level": "5",
        }, headers=storekeeper_headers)
        assert resp.status_code == 201
        item = resp.json["item"]
        assert item["quantity"] == "8.000"
        assert resp.json["transaction"]["type"] == "IN"

        resp = client.post(f"/api/stock/{item['id']}/use", json={"quantity": "4"}, headers=chef_headers)
        assert resp.status_code == 200
        assert resp.json["item"]["status"] == "LOW_STOCK"

        resp = client.get("/api/notifications", headers=chef_headers)
        assert [n["kind"] for n in resp.json["notifications"]] == ["LOW_STOCK"]

        resp = client.get("/api/stock/low", headers=storekeeper_headers)
        assert resp.json["count"] == 1

    def test_overdraw_is_conflict(self, client, chef_headers, beef):
        resp = client.post(f"/api/stock/{beef.id}/use", json={"quantity": "11"}, headers=chef_headers)
        assert resp.status_code == 409
        assert resp.json["code"] == "INSUFFICIENT_STOCK"

    def test_chef_cannot_adjust(self, client, chef_headers, beef):
        resp = client.post(
            f"/api/stock/{beef.id}/adjust", json={"new_quantity": "3", "reason": "count"}, headers=chef_headers
        )
        assert resp.status_code == 403

    def test_waiter_cannot_view_stock(self, client, waiter_headers, db_session):
        assert client.get("/api/stock", headers=waiter_headers).status_code == 403

    @pytest.mark.parametrize(
        "body",
        [
            {"quantity": 1, "name": 7, "category": "SPICES", "unit": "kg"},
            {"quantity": 1, "name": "Salt", "category": "SPICES", "unit": "kg", "expiry_date": 20300101},
        ],
    )
    def test_receive_rejects_non_text_fields(self, client, storekeeper_headers, body):
        resp = client.post("/api/stock/in", json=body, headers=storekeeper_headers)
        assert resp.status_code == 400
        assert resp.json["code"] == "VALIDATION_ERROR"

    def test_transactions(self, client, storekeeper_headers, beef):
        client.post(f"/api/stock/{beef.id}/waste", json={"quantity": "1", "reason": "spoiled"},
                    headers=storekeeper_headers)
        resp = client.get(f"/api/stock/{beef.id}/transactions", headers=storekeeper_headers)
        assert resp.status_code == 200
        assert [t["type"] for t in resp.json["transactions"]] == ["WASTAGE", "IN"]


class TestServiceRequests:
    def test_create_and_progress(self, client, waiter_headers, manager_headers, waiter):
        resp = client.post("/api/service-requests", json={
            "guest_name": "Ms. Achieng", "room_number": "210", "type": "laundry", "priority": "high",
        }, headers=waiter_headers)
        assert resp.status_code == 201
        req = resp.json["request"]

        # Waiters may log requests but not work them
        assert client.post(
            f"/api/service-requests/{req['id']}/status", json={"status": "in_progress"}, headers=waiter_headers
        ).status_code == 403

        resp = client.post(
            f"/api/service-requests/{req['id']}/assign", json={"user_id": waiter.id}, headers=manager_headers
        )
        assert resp.status_code == 200

        resp = client.post(
            f"/api/service-requests/{req['id']}/status", json={"status": "in_progress"}, headers=manager_headers
        )
        assert resp.status_code == 200
        assert resp.json["request"]["assigned_to_user_id"] == waiter.id

        listing = client.get("/api/service-requests?open_only=true", headers=waiter_headers)
        assert listing.json["count"] == 1

    def test_invalid_type(self, client, waiter_headers):
        resp = client.post("/api/service-requests", json={
            "guest_name": "Ms. Achieng", "room_number": "210", "type": "spa",
        }, headers=waiter_headers)
        assert resp.status_code == 400

    @pytest.mark.parametrize(
        "body",
        [
            {"guest_name": 12, "room_number": "210", "type": "housekeeping"},
            {"guest_name": "Ms. Achieng", "room_number": "210", "type": "housekeeping", "description": 3},
            {"guest_name": "Ms. Achieng", "room_number": "210", "type": "housekeeping", "priority": 1},
        ],
    )
    def test_non_text_fields_rejected(self, client, waiter_headers, body):
        resp = client.post("/api/service-requests", json=body, headers=waiter_headers)
        assert resp.status_code == 400
        assert resp.json["code"] == "VALIDATION_ERROR"


# =============================================================================
# BRANCH SCOPING
# =============================================================================


class TestBranchScoping:
    def test_foreign_order_is_not_found(self, client, waiter_headers, other_waiter_headers, menu):
        order = _create_order(client, waiter_headers, menu)

        assert client.get(f"/api/orders/{order['id']}", headers=other_waiter_headers).status_code == 404
        assert client.post(
            f"/api/orders/{order['id']}/cancel", json={}, headers=other_waiter_headers
        ).status_code == 404

    def test_foreign_branch_id_rejected(self, client, other_waiter_headers, branch, menu):
        resp = client.post(
            "/api/orders", json=_order_payload(menu, branch_id=branch.id), headers=other_waiter_headers
        )
        assert resp.status_code == 403
        assert resp.json["code"] == "FORBIDDEN"

    def test_own_branch_cannot_order_foreign_menu(self, client, other_waiter_headers, menu):
        resp = client.post("/api/orders", json=_order_payload(menu), headers=other_waiter_headers)
        assert resp.status_code == 400

    def test_lists_only_own_branch(self, client, waiter_headers, other_waiter_headers, menu):
        _create_order(client, waiter_headers, menu)
        resp = client.get("/api/orders", headers=other_waiter_headers)
        assert resp.json["pagination"]["total"] == 0

    def test_admin_must_name_branch(self, client, admin_headers, branch, menu):
        resp = client.post("/api/orders", json=_order_payload(menu), headers=admin_headers)
        assert resp.status_code == 400

        resp = client.post("/api/orders", json=_order_payload(menu, branch_id=branch.id), headers=admin_headers)
        assert resp.status_code == 201

    def test_admin_sees_all_branches(self, client, admin_headers, waiter_headers, other_branch, menu):
        _create_order(client, waiter_headers, menu)
        resp = client.get("/api/orders", headers=admin_headers)
        assert resp.json["pagination"]["total"] == 1


class TestMenu:
    def test_manager_creates_item_and_recipe(self, client, manager_headers, beef):
        resp = client.post("/api/menu", json={
            "name": "Beef Stew", "category": "Main Course", "price_cents": 42000,
        }, headers=manager_headers)
        assert resp.status_code == 201
        item_id = resp.json["id"]

        resp = client.put(f"/api/menu/{item_id}/recipe", json={
            "components": [{"stock_item_id": beef.id, "quantity": "0.3"}],
        }, headers=manager_headers)
        assert resp.status_code == 200
        assert len(resp.json["recipe"]) == 1

    def test_negative_price_rejected(self, client, manager_headers, db_session):
        resp = client.post("/api/menu", json={
            "name": "Free Lunch", "category": "Main Course", "price_cents": -1,
        }, headers=manager_headers)
        assert resp.status_code == 400

    def test_waiter_cannot_manage_menu(self, client, waiter_headers, menu):
        resp = client.patch(f"/api/menu/{menu['burger'].id}", json={"available": False}, headers=waiter_headers)
        assert resp.status_code == 403
