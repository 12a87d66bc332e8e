"""Notification services and the Celery task that drives them (run eagerly)."""

import pytest

from food_ordering import tasks
from food_ordering.services.notifications import (
    MockNotificationService,
    OrderNotice,
    get_notification_service,
    reset_notification_service,
)


def _notice(**overrides) -> OrderNotice:
    data = dict(
        order_id=12,
        customer_name="Thandi Mokoena",
        customer_email="thandi@example.com",
        customer_phone="+27820000001",
        delivery_method="delivery",
        total_amount=55.0,
        placed_at="17-10-2026 12:00",
        lines=["Kota x 2 @ R20.00 each", "Slap Chips x 1 @ R15.00 each"],
        shipping_address="12 Vilakazi St, Soweto",
    )
    data.update(overrides)
    return OrderNotice(**data)


@pytest.fixture
def quiet_service() -> MockNotificationService:
    return MockNotificationService(failure_rate=0.0, latency=(0.0, 0.0))


class TestOrderNotice:

    def test_round_trips_through_a_plain_dict(self):
        notice = _notice(scheduled_delivery_time="17-10-2026 19:00")
        assert OrderNotice.from_dict(notice.to_dict()) == notice

    def test_fulfilment_details(self):
        assert _notice().fulfilment_details == "Delivery to: 12 Vilakazi St, Soweto"
        assert _notice(delivery_method="collection").fulfilment_details == "Collection at the store"
        assert "scheduled for 17-10-2026 19:00" in _notice(
            scheduled_delivery_time="17-10-2026 19:00"
        ).fulfilment_details


class TestMockNotificationService:

    async def test_confirmation_goes_by_email_and_sms(self, quiet_service):
        result = await quiet_service.send_order_confirmation(_notice())
        assert result.success
        assert len(quiet_service.sent) == 2

    async def test_no_phone_means_email_only(self, quiet_service):
        result = await quiet_service.send_order_confirmation(_notice(customer_phone=None))
        assert result.success
        assert len(quiet_service.sent) == 1

    async def test_operator_alert(self, quiet_service):
        result = await quiet_service.send_operator_alert(_notice())
        assert result.success
        assert result.message_id.startswith("email_mock_")

    async def test_failures_are_reported_not_raised(self):
        service = MockNotificationService(failure_rate=1.0, latency=(0.0, 0.0))
        result = await service.send_order_confirmation(_notice())
        assert not result.success

    async def test_history_is_bounded(self):
        service = MockNotificationService(failure_rate=0.0, latency=(0.0, 0.0), history=3)
        for _ in range(5):
            await service.send_operator_alert(_notice())
        assert len(service.sent) == 3

    def test_customer_message(self, quiet_service):
        message = quiet_service.customer_message(_notice(), "Kasi Kitchen")
        assert "order #12" in message
        assert "R55.00" in message


class TestSendOrderNotificationsTask:

    def test_notifies_customer_and_kitchen(self, quiet_service, monkeypatch):
        monkeypatch.setattr(tasks, "get_notification_service", lambda: quiet_service)

        result = tasks.send_order_notifications(_notice().to_dict())

        assert result["success"] is True
        assert result["customer_notified"] is True
        assert result["operator_notified"] is True

    def test_failed_confirmation_raises_for_retry(self, monkeypatch):
        failing = MockNotificationService(failure_rate=1.0, latency=(0.0, 0.0))
        monkeypatch.setattr(tasks, "get_notification_service", lambda: failing)

        with pytest.raises(tasks.NotificationDeliveryError):
            tasks.send_order_notifications(_notice().to_dict())

    def test_health_check_task(self):
        assert tasks.health_check()["status"] == "healthy"


class TestServiceFactory:

    @pytest.fixture(autouse=True)
    def fresh_factory(self):
        reset_notification_service()
        yield
        reset_notification_service()

    def test_development_uses_the_mock(self):
        service = get_notification_service()
        assert isinstance(service, MockNotificationService)
        assert service.provider_name == "mock"

    def test_instance_is_shared_until_reset(self):
        service = get_notification_service()
        assert get_notification_service() is service

        reset_notification_service()
        assert get_notification_service() is not service
