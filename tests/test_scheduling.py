"""Delivery slots and the scheduled-delivery sweep."""

from datetime import date, datetime, timedelta, timezone

import pytest

from food_ordering.core.exceptions import InvalidDeliverySlot
from food_ordering.models import DeliveryMethod, Order, OrderItem, OrderStatus
from food_ordering.services.queries import OrderQueryService
from food_ordering.services.scheduling import (
    available_delivery_slots,
    promote_scheduled_orders,
    to_local_naive,
    validate_delivery_slot,
)
from tests.factories import NOW


class TestValidateDeliverySlot:

    @pytest.mark.parametrize("hour, minute", [(18, 0), (20, 30), (23, 59)])
    def test_inside_window(self, hour, minute):
        check = validate_delivery_slot(NOW.replace(hour=hour, minute=minute), NOW)
        assert check.accepted
        assert check.reason is None

    @pytest.mark.parametrize("hour, minute", [(17, 59), (12, 30), (0, 0)])
    def test_outside_window(self, hour, minute):
        scheduled = (NOW + timedelta(days=1)).replace(hour=hour, minute=minute)
        check = validate_delivery_slot(scheduled, NOW)
        assert not check.accepted
        assert "between 18:00 and 23:59" in check.reason

    def test_seconds_do_not_push_past_the_end(self):
        scheduled = NOW.replace(hour=23, minute=59, second=59)
        assert validate_delivery_slot(scheduled, NOW).accepted

    def test_past_rejected(self):
        check = validate_delivery_slot(NOW - timedelta(days=1), NOW)
        assert not check.accepted
        assert "future" in check.reason

    def test_now_itself_rejected(self):
        evening = NOW.replace(hour=19)
        assert not validate_delivery_slot(evening, evening).accepted

    def test_seven_days_ahead_accepted(self):
        evening = NOW.replace(hour=19)
        assert validate_delivery_slot(evening + timedelta(days=7), evening).accepted

    def test_more_than_seven_days_rejected(self):
        check = validate_delivery_slot(NOW.replace(hour=19) + timedelta(days=8), NOW)
        assert not check.accepted
        assert "7 days" in check.reason

    def test_aware_timestamps_are_compared_in_local_time(self):
        local = NOW.replace(hour=19)
        aware = local.astimezone(timezone.utc)
        assert to_local_naive(aware) == local
        assert validate_delivery_slot(aware, NOW).accepted


class TestAvailableSlots:

    def test_full_evening_for_tomorrow(self):
        slots = available_delivery_slots(NOW.date() + timedelta(days=1), NOW)
        assert slots == ["18:00", "19:00", "20:00", "21:00", "22:00", "23:00", "23:59"]

    def test_slots_within_the_hour_are_dropped(self):
        slots = available_delivery_slots(NOW.date(), NOW.replace(hour=20, minute=15))
        assert slots == ["22:00", "23:00", "23:59"]

    def test_past_date(self):
        with pytest.raises(InvalidDeliverySlot):
            available_delivery_slots(NOW.date() - timedelta(days=1), NOW)

    def test_too_far_ahead(self):
        with pytest.raises(InvalidDeliverySlot):
            available_delivery_slots(NOW.date() + timedelta(days=8), NOW)

    def test_last_bookable_day(self):
        assert available_delivery_slots(date(2026, 10, 24), NOW)


async def _scheduled_order(session_maker, catalog, scheduled: datetime,
                           status: OrderStatus = OrderStatus.PENDING) -> int:
    async with session_maker() as s:
        order = Order(
            user_id=catalog.customer_id,
            status=status,
            delivery_method=DeliveryMethod.COLLECTION,
            payment_method="cash",
            scheduled_delivery_time=scheduled,
            created_at=NOW - timedelta(hours=2),
            items=[OrderItem(product_id=catalog.kota_id, quantity=1, unit_price=20.0)],
        )
        order.apply_pricing()
        s.add(order)
        await s.commit()
        return order.id


class TestPromoteScheduledOrders:

    async def test_promotes_orders_due_within_lookahead(self, session, session_maker, catalog):
        evening = NOW.replace(hour=18)
        due = await _scheduled_order(session_maker, catalog, evening + timedelta(minutes=20))
        later = await _scheduled_order(session_maker, catalog, evening + timedelta(minutes=45))

        promoted = await promote_scheduled_orders(session, now=evening)

        assert promoted == [due]
        queries = OrderQueryService(session)
        assert (await queries.get_order(due)).status == OrderStatus.PROCESSING
        assert (await queries.get_order(later)).status == OrderStatus.PENDING
        await session.commit()

    async def test_second_run_changes_nothing(self, session, session_maker, catalog):
        evening = NOW.replace(hour=18)
        due = await _scheduled_order(session_maker, catalog, evening + timedelta(minutes=5))

        assert await promote_scheduled_orders(session, now=evening) == [due]
        assert await promote_scheduled_orders(session, now=evening) == []

        order = await OrderQueryService(session).get_order(due)
        assert order.version == 2
        await session.commit()

    async def test_ignores_non_pending_and_past_due(self, session, session_maker, catalog):
        evening = NOW.replace(hour=18)
        await _scheduled_order(session_maker, catalog, evening + timedelta(minutes=10),
                               status=OrderStatus.CANCELLED)
        await _scheduled_order(session_maker, catalog, evening - timedelta(minutes=1))

        assert await promote_scheduled_orders(session, now=evening) == []

    async def test_window_queries(self, session, session_maker, catalog):
        evening = NOW.replace(hour=18)
        first = await _scheduled_order(session_maker, catalog, evening + timedelta(hours=2))
        second = await _scheduled_order(session_maker, catalog, evening + timedelta(minutes=30))
        await _scheduled_order(session_maker, catalog, evening + timedelta(days=2))

        queries = OrderQueryService(session)
        scheduled = await queries.list_scheduled_orders()
        assert [o.id for o in scheduled][:2] == [second, first]

        in_window = await queries.list_orders_in_window(evening, evening + timedelta(hours=3))
        assert [o.id for o in in_window] == [second, first]
        assert await queries.list_orders_in_window(
            evening, evening + timedelta(hours=3), OrderStatus.CANCELLED,
        ) == []
