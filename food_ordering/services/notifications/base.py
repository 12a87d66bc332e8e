"""
Notification Service Abstract Base Class

Defines the interface for telling customers and kitchen staff about orders.
Supports both Mock (development) and Real (production) implementations.

Notifications are sent from a Celery worker after the order is committed,
so the order travels as a plain ``OrderNotice`` (JSON-serialisable) rather
than as an ORM object.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Optional


@dataclass
class NotificationResult:
    """Result from sending a notification."""
    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"


@dataclass
class OrderNotice:
    """What a notification needs to know about a placed order."""
    order_id: int
    customer_name: str
    customer_email: str
    customer_phone: Optional[str]
    delivery_method: str
    total_amount: float
    placed_at: str
    lines: list[str] = field(default_factory=list)
    shipping_address: Optional[str] = None
    scheduled_delivery_time: Optional[str] = None
    promo_code: Optional[str] = None

    @classmethod
    def from_order(cls, order) -> "OrderNotice":
        """Build from an Order loaded with its user and lines (and their products)."""
        return cls(
            order_id=order.id,
            customer_name=order.user.full_name,
            customer_email=order.user.email,
            customer_phone=order.user.phone_number,
            delivery_method=order.delivery_method.value,
            total_amount=order.total_amount,
            placed_at=order.created_at.strftime("%d-%m-%Y %H:%M"),
            lines=[
                f"{item.product.name} x {item.quantity} @ R{item.unit_price:.2f} each"
                for item in order.items
            ],
            shipping_address=order.shipping_address,
            scheduled_delivery_time=(
                order.scheduled_delivery_time.strftime("%d-%m-%Y %H:%M")
                if order.scheduled_delivery_time else None
            ),
            promo_code=order.promo_code,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "OrderNotice":
        return cls(**data)

    def to_dict(self) -> dict:
        return asdict(self)

    @property
    def fulfilment_details(self) -> str:
        if self.delivery_method == "collection":
            details = "Collection at the store"
        else:
            details = f"Delivery to: {self.shipping_address}"
        if self.scheduled_delivery_time:
            details += f" (scheduled for {self.scheduled_delivery_time})"
        return details

    @property
    def summary(self) -> str:
        return "\n".join(f"- {line}" for line in self.lines)


class BaseNotificationService(ABC):
    """Abstract base class for notification services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Send an SMS message."""
        pass

    @abstractmethod
    async def send_email(
        self,
        to_email: str,
        subject: str,
        body_html: str,
        body_text: Optional[str] = None,
    ) -> NotificationResult:
        """Send an email."""
        pass

    @abstractmethod
    async def send_order_confirmation(self, notice: OrderNotice) -> NotificationResult:
        """Tell the customer their order was placed (email, plus SMS when there is a phone)."""
        pass

    @abstractmethod
    async def send_operator_alert(self, notice: OrderNotice) -> NotificationResult:
        """Tell the kitchen a new order came in."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass

    # =========================================================================
    # MESSAGE BODIES (shared by implementations)
    # =========================================================================

    def customer_message(self, notice: OrderNotice, restaurant_name: str) -> str:
        return (
            f"Hi {notice.customer_name}! Your order #{notice.order_id} has been placed.\n"
            f"{notice.fulfilment_details}\n"
            f"Total: R{notice.total_amount:.2f}\n"
            f"Thank you for ordering from {restaurant_name}!"
        )

    def operator_message(self, notice: OrderNotice) -> str:
        return (
            f"New order #{notice.order_id} placed {notice.placed_at}\n"
            f"Customer: {notice.customer_name} <{notice.customer_email}>\n"
            f"{notice.fulfilment_details}\n"
            f"Total: R{notice.total_amount:.2f}\n"
            f"Items:\n{notice.summary}\n"
            f"Please process this order accordingly."
        )
