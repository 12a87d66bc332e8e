"""
Mock Notification Service

Simulates SMS and Email sending for development.
No actual messages are sent - just logged.
"""

import asyncio
import logging
import random
import uuid
from collections import deque
from typing import Optional

from food_ordering.core.config import get_settings
from food_ordering.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
    OrderNotice,
)

logger = logging.getLogger(__name__)
settings = get_settings()


class MockNotificationService(BaseNotificationService):
    """Mock notification service for development."""

    def __init__(
        self,
        failure_rate: float = 0.05,
        latency: tuple[float, float] = (0.1, 0.3),
        history: int = 100,
    ):
        self.failure_rate = failure_rate
        self.latency = latency
        # Last few results only; the worker keeps one instance for its lifetime
        self.sent: deque[NotificationResult] = deque(maxlen=history)
        logger.info(f"MockNotificationService initialized (failure_rate={failure_rate:.0%})")

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _simulate_latency(self) -> None:
        """Simulate network latency."""
        await asyncio.sleep(random.uniform(*self.latency))

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Simulate sending SMS."""
        await self._simulate_latency()

        if self._should_fail():
            logger.warning(f"Mock SMS failed (simulated) to {to_phone}")
            return NotificationResult(
                success=False,
                error_message="Simulated SMS failure",
                provider="mock"
            )

        message_id = f"sms_mock_{uuid.uuid4().hex[:12]}"
        logger.info(f"Mock SMS sent to {to_phone}: {message[:50]}... (ID: {message_id})")

        result = NotificationResult(success=True, message_id=message_id, provider="mock")
        self.sent.append(result)
        return result

    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        """Simulate sending email."""
        await self._simulate_latency()

        if self._should_fail():
            logger.warning(f"Mock email failed (simulated) to {to_email}")
            return NotificationResult(
                success=False,
                error_message="Simulated email failure",
                provider="mock"
            )

        message_id = f"email_mock_{uuid.uuid4().hex[:12]}"
        logger.info(f"Mock email sent to {to_email}: {subject} (ID: {message_id})")

        result = NotificationResult(success=True, message_id=message_id, provider="mock")
        self.sent.append(result)
        return result

    async def send_order_confirmation(self, notice: OrderNotice) -> NotificationResult:
        message = self.customer_message(notice, settings.restaurant_name)

        email_result = await self.send_email(
            to_email=notice.customer_email,
            subject=f"Order Confirmation #{notice.order_id} - {settings.restaurant_name}",
            body_html=f"<h1>Order Placed!</h1><pre>{message}\n\n{notice.summary}</pre>",
            body_text=f"{message}\n\n{notice.summary}",
        )

        sms_result = None
        if notice.customer_phone:
            sms_result = await self.send_sms(notice.customer_phone, message)

        return NotificationResult(
            success=email_result.success or bool(sms_result and sms_result.success),
            message_id=email_result.message_id,
            provider="mock"
        )

    async def send_operator_alert(self, notice: OrderNotice) -> NotificationResult:
        body = self.operator_message(notice)
        return await self.send_email(
            to_email=settings.operator_email,
            subject=f"New Order #{notice.order_id}",
            body_html=f"<pre>{body}</pre>",
            body_text=body,
        )

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True
