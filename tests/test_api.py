"""HTTP surface: status codes, error bodies and access rules."""

from datetime import date, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from food_ordering.models import Product
from food_ordering.services.orders import OrderPlacementWorkflow
from tests.factories import ADMIN_HEADERS, admin_headers, customer_headers, line


def _order_body(user_id: int, *lines: dict, **fields) -> dict:
    body = {"user_id": user_id, "delivery_method": "collection", "items": list(lines)}
    body.update(fields)
    return body


def _promo_body(code: str = "KOTA10", **fields) -> dict:
    body = {
        "code": code,
        "discount_amount": 10.0,
        "discount_kind": "fixed",
        "max_usages": 1,
        "expiry_date": (date.today() + timedelta(days=30)).isoformat(),
    }
    body.update(fields)
    return body


class TestRoot:

    async def test_root(self, client):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["health"] == "/health"


class TestPlaceOrderEndpoint:

    async def test_created(self, client, catalog, notified):
        response = await client.post(
            "/api/orders",
            json=_order_body(catalog.customer_id, line(catalog.kota_id, 2, extras=[("Cheese", 5.0)])),
            headers=customer_headers(catalog.customer_id),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert data["total_amount"] == 50.0
        assert data["user"]["email"] == "thandi@example.com"
        assert data["items"][0]["product"]["name"] == "Kota"
        assert data["items"][0]["selected_extras"] == [{"name": "Cheese", "price": 5.0}]
        assert data["items"][0]["line_total"] == 50.0
        assert len(notified) == 1

    async def test_requires_identity(self, client, catalog):
        response = await client.post("/api/orders", json=_order_body(catalog.customer_id, line(catalog.kota_id)))
        assert response.status_code == 401

    async def test_cannot_order_for_someone_else(self, client, catalog):
        response = await client.post(
            "/api/orders",
            json=_order_body(catalog.other_customer_id, line(catalog.kota_id)),
            headers=customer_headers(catalog.customer_id),
        )
        assert response.status_code == 403

    async def test_insufficient_stock_body(self, client, catalog):
        response = await client.post(
            "/api/orders",
            json=_order_body(catalog.customer_id, line(catalog.chips_id, 50)),
            headers=customer_headers(catalog.customer_id),
        )

        assert response.status_code == 409
        assert response.json() == {
            "success": False,
            "error": "Insufficient Stock",
            "message": "Insufficient stock for product: Slap Chips. Only 5 left, but 50 requested.",
        }

    async def test_empty_order(self, client, catalog):
        response = await client.post(
            "/api/orders",
            json=_order_body(catalog.customer_id),
            headers=customer_headers(catalog.customer_id),
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Order must contain at least one item."

    async def test_unknown_product(self, client, catalog):
        response = await client.post(
            "/api/orders",
            json=_order_body(catalog.customer_id, line(777)),
            headers=customer_headers(catalog.customer_id),
        )
        assert response.status_code == 404

    async def test_admission_closed(self, client, catalog):
        await client.put("/api/order-limit", json={"limit_value": 0}, headers=ADMIN_HEADERS)

        response = await client.post(
            "/api/orders",
            json=_order_body(catalog.customer_id, line(catalog.kota_id)),
            headers=customer_headers(catalog.customer_id),
        )
        assert response.status_code == 403
        assert response.json()["error"] == "Order Limit Reached"

    async def test_used_up_promo_is_gone(self, client, catalog):
        await client.post("/api/promo-codes", json=_promo_body(), headers=ADMIN_HEADERS)
        await client.post("/api/promo-codes/use/KOTA10")

        response = await client.post(
            "/api/orders",
            json=_order_body(catalog.customer_id, line(catalog.kota_id), promo_code="KOTA10"),
            headers=customer_headers(catalog.customer_id),
        )
        assert response.status_code == 410


class TestOrderQueries:

    async def _place(self, client, catalog) -> int:
        response = await client.post(
            "/api/orders",
            json=_order_body(catalog.customer_id, line(catalog.kota_id, 1)),
            headers=customer_headers(catalog.customer_id),
        )
        return response.json()["id"]

    async def test_owner_can_read(self, client, catalog):
        order_id = await self._place(client, catalog)
        response = await client.get(f"/api/orders/{order_id}", headers=customer_headers(catalog.customer_id))
        assert response.status_code == 200
        assert response.json()["id"] == order_id

    async def test_other_customer_cannot_read(self, client, catalog):
        order_id = await self._place(client, catalog)
        response = await client.get(
            f"/api/orders/{order_id}", headers=customer_headers(catalog.other_customer_id),
        )
        assert response.status_code == 403

    async def test_missing_order(self, client, catalog):
        response = await client.get("/api/orders/404", headers=admin_headers(catalog.admin_id))
        assert response.status_code == 404
        assert response.json()["success"] is False

    async def test_admin_list_and_count(self, client, catalog):
        await self._place(client, catalog)
        await self._place(client, catalog)

        listing = await client.get("/api/orders", headers=ADMIN_HEADERS)
        assert listing.status_code == 200
        assert listing.json()["total"] == 2

        count = await client.get("/api/orders/count", headers=ADMIN_HEADERS)
        assert count.json() == {"count": 2}

    async def test_list_is_admin_only(self, client, catalog):
        response = await client.get("/api/orders", headers=customer_headers(catalog.customer_id))
        assert response.status_code == 403

    async def test_user_history(self, client, catalog):
        await self._place(client, catalog)
        response = await client.get(
            f"/api/orders/user/{catalog.customer_id}", headers=customer_headers(catalog.customer_id),
        )
        assert response.status_code == 200
        assert len(response.json()) == 1

        missing = await client.get("/api/orders/user/9999", headers=ADMIN_HEADERS)
        assert missing.status_code == 404


class TestOrderLifecycleEndpoints:

    async def _place(self, client, catalog) -> int:
        response = await client.post(
            "/api/orders",
            json=_order_body(catalog.customer_id, line(catalog.kota_id, 4)),
            headers=customer_headers(catalog.customer_id),
        )
        return response.json()["id"]

    async def test_cancel_returns_stock(self, client, session_maker, catalog):
        order_id = await self._place(client, catalog)

        response = await client.put(
            f"/api/orders/{order_id}/status", json={"status": "CANCELLED"}, headers=ADMIN_HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        async with session_maker() as s:
            assert (await s.get(Product, catalog.kota_id)).stock == 10

    async def test_illegal_transition(self, client, catalog):
        order_id = await self._place(client, catalog)
        for status in ("processing", "ready", "delivered"):
            await client.put(f"/api/orders/{order_id}/status", json={"status": status}, headers=ADMIN_HEADERS)

        response = await client.put(
            f"/api/orders/{order_id}/status", json={"status": "pending"}, headers=ADMIN_HEADERS,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Illegal Status Transition"

    async def test_unknown_status(self, client, catalog):
        order_id = await self._place(client, catalog)
        response = await client.put(
            f"/api/orders/{order_id}/status", json={"status": "teleported"}, headers=ADMIN_HEADERS,
        )
        assert response.status_code == 400

    async def test_status_change_is_admin_only(self, client, catalog):
        order_id = await self._place(client, catalog)
        response = await client.put(
            f"/api/orders/{order_id}/status",
            json={"status": "cancelled"},
            headers=customer_headers(catalog.customer_id),
        )
        assert response.status_code == 403

    async def test_delete(self, client, catalog):
        order_id = await self._place(client, catalog)

        response = await client.delete(f"/api/orders/{order_id}", headers=ADMIN_HEADERS)
        assert response.status_code == 204

        again = await client.delete(f"/api/orders/{order_id}", headers=ADMIN_HEADERS)
        assert again.status_code == 404


class TestOrderLimitEndpoints:

    async def test_unset_limit(self, client):
        response = await client.get("/api/order-limit", headers=ADMIN_HEADERS)
        assert response.status_code == 404

    async def test_set_and_read(self, client):
        put = await client.put(
            "/api/order-limit", json={"limit_value": 40, "mode": "daily_units"}, headers=ADMIN_HEADERS,
        )
        assert put.status_code == 200

        response = await client.get("/api/order-limit", headers=ADMIN_HEADERS)
        assert response.json()["limit_value"] == 40
        assert response.json()["mode"] == "daily_units"

    async def test_negative_rejected(self, client):
        response = await client.put("/api/order-limit", json={"limit_value": -5}, headers=ADMIN_HEADERS)
        assert response.status_code == 400


class TestPromoCodeEndpoints:

    async def test_create_list_get_delete(self, client):
        created = await client.post("/api/promo-codes", json=_promo_body(max_usages=3), headers=ADMIN_HEADERS)
        assert created.status_code == 201
        promo_id = created.json()["id"]
        assert created.json()["remaining_uses"] == 3

        listing = await client.get("/api/promo-codes", headers=ADMIN_HEADERS)
        assert [p["code"] for p in listing.json()] == ["KOTA10"]

        fetched = await client.get("/api/promo-codes/KOTA10", headers=ADMIN_HEADERS)
        assert fetched.json()["id"] == promo_id

        deleted = await client.delete(f"/api/promo-codes/{promo_id}", headers=ADMIN_HEADERS)
        assert deleted.status_code == 204

    async def test_duplicate(self, client):
        await client.post("/api/promo-codes", json=_promo_body(), headers=ADMIN_HEADERS)
        response = await client.post("/api/promo-codes", json=_promo_body(), headers=ADMIN_HEADERS)
        assert response.status_code == 409

    async def test_validate_with_amount(self, client):
        await client.post(
            "/api/promo-codes",
            json=_promo_body(discount_amount=10, discount_kind="percentage"),
            headers=ADMIN_HEADERS,
        )
        response = await client.get("/api/promo-codes/validate/KOTA10", params={"order_amount": 80})
        assert response.status_code == 200
        assert response.json()["valid"] is True
        assert response.json()["discount"] == 8.0

    async def test_validate_below_minimum(self, client):
        await client.post("/api/promo-codes", json=_promo_body(minimum_order_amount=100), headers=ADMIN_HEADERS)
        response = await client.get("/api/promo-codes/validate/KOTA10", params={"order_amount": 50})
        assert response.status_code == 400

    async def test_validate_unknown(self, client):
        response = await client.get("/api/promo-codes/validate/NOPE")
        assert response.status_code == 404

    async def test_use_until_gone(self, client):
        await client.post("/api/promo-codes", json=_promo_body(), headers=ADMIN_HEADERS)

        first = await client.post("/api/promo-codes/use/KOTA10")
        assert first.status_code == 200
        assert first.json()["usage_count"] == 1
        assert first.json()["remaining_uses"] == 0

        second = await client.post("/api/promo-codes/use/KOTA10")
        assert second.status_code == 410

        fetched = await client.get("/api/promo-codes/KOTA10", headers=ADMIN_HEADERS)
        assert fetched.json()["usage_count"] == 1

    async def test_management_is_admin_only(self, client, catalog):
        response = await client.post(
            "/api/promo-codes", json=_promo_body(), headers=customer_headers(catalog.customer_id),
        )
        assert response.status_code == 403


class TestScheduledDeliveryEndpoints:

    async def test_delivery_slots(self, client, catalog):
        tomorrow = date.today() + timedelta(days=1)
        response = await client.get(
            "/api/delivery-slots/available",
            params={"date": tomorrow.isoformat()},
            headers=customer_headers(catalog.customer_id),
        )
        assert response.status_code == 200
        assert response.json()["slots"][-1] == "23:59"

    async def test_delivery_slots_past_date(self, client, catalog):
        response = await client.get(
            "/api/delivery-slots/available",
            params={"date": (date.today() - timedelta(days=1)).isoformat()},
            headers=customer_headers(catalog.customer_id),
        )
        assert response.status_code == 400

    async def test_scheduled_listing(self, client, catalog):
        slot = (date.today() + timedelta(days=1)).isoformat() + "T19:00:00"
        placed = await client.post(
            "/api/orders",
            json=_order_body(catalog.customer_id, line(catalog.kota_id), scheduled_delivery_time=slot),
            headers=customer_headers(catalog.customer_id),
        )
        assert placed.status_code == 201

        listing = await client.get("/api/admin/scheduled-deliveries", headers=ADMIN_HEADERS)
        assert [o["id"] for o in listing.json()] == [placed.json()["id"]]

        in_range = await client.get(
            "/api/admin/scheduled-deliveries/range",
            params={"start": slot, "end": slot},
            headers=ADMIN_HEADERS,
        )
        assert len(in_range.json()) == 1

    async def test_range_must_be_ordered(self, client):
        response = await client.get(
            "/api/admin/scheduled-deliveries/range",
            params={"start": "2026-10-18T20:00:00", "end": "2026-10-18T18:00:00"},
            headers=ADMIN_HEADERS,
        )
        assert response.status_code == 400

    async def test_manual_scheduler_run(self, client):
        response = await client.post("/api/admin/scheduled-deliveries/run", headers=ADMIN_HEADERS)
        assert response.status_code == 200
        assert response.json() == {"promoted": 0, "order_ids": []}

    @pytest.mark.parametrize("path", ["/api/admin/scheduled-deliveries", "/api/order-limit"])
    async def test_admin_only(self, client, catalog, path):
        response = await client.get(path, headers=customer_headers(catalog.customer_id))
        assert response.status_code == 403


class _DeadlockDetected(Exception):
    sqlstate = "40P01"


class TestErrorBodies:

    async def test_malformed_cart_is_a_400_with_message(self, client, catalog):
        response = await client.post(
            "/api/orders",
            json=_order_body(catalog.customer_id, {"product_id": catalog.kota_id, "quantity": "two"}),
            headers=customer_headers(catalog.customer_id),
        )
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Validation Error"
        assert "items.0.quantity" in body["message"]

    async def test_missing_identity_body(self, client, catalog):
        response = await client.post("/api/orders", json=_order_body(catalog.customer_id, line(catalog.kota_id)))
        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "error": "Unauthorized",
            "message": "Authentication required",
        }

    async def test_ordering_for_someone_else_body(self, client, catalog):
        response = await client.post(
            "/api/orders",
            json=_order_body(catalog.other_customer_id, line(catalog.kota_id)),
            headers=customer_headers(catalog.customer_id),
        )
        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "Forbidden"
        assert body["message"] == "You can only place orders for yourself"

    async def test_admin_route_body(self, client, catalog):
        response = await client.get("/api/orders", headers=customer_headers(catalog.customer_id))
        assert response.status_code == 403
        assert response.json()["message"] == "Administrator role required"

    async def test_unknown_role(self, client):
        response = await client.get("/api/orders", headers={"X-User-Id": "1", "X-User-Role": "chef"})
        assert response.status_code == 400
        assert "chef" in response.json()["message"]

    async def test_unknown_route_body(self, client):
        response = await client.get("/api/nothing-here")
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Not Found", "message": "Not Found"}

    async def test_lock_conflict_is_a_retryable_409(self, client, catalog, monkeypatch):
        async def deadlocked(self, cart, now=None):
            raise OperationalError("UPDATE products", {}, _DeadlockDetected("deadlock detected"))

        monkeypatch.setattr(OrderPlacementWorkflow, "place_order", deadlocked)
        response = await client.post(
            "/api/orders",
            json=_order_body(catalog.customer_id, line(catalog.kota_id)),
            headers=customer_headers(catalog.customer_id),
        )
        assert response.status_code == 409
        assert "retry" in response.json()["message"]

    async def test_other_database_errors_are_internal(self, client, catalog, monkeypatch):
        async def broken(self, cart, now=None):
            raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

        monkeypatch.setattr(OrderPlacementWorkflow, "place_order", broken)
        response = await client.post(
            "/api/orders",
            json=_order_body(catalog.customer_id, line(catalog.kota_id)),
            headers=customer_headers(catalog.customer_id),
        )
        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "error": "Internal Server Error",
            "message": "An unexpected error occurred",
        }
