"""
Order Placement Workflow

Turns a cart into a persisted PENDING order, or into nothing at all.

    1. resolve the user
    2. reject an empty cart
    3. admission check
    4. resolve every product, check quantities
    5. reserve stock line by line, in cart order
    6. check the scheduled delivery slot
    7. redeem the promo code
    8. persist the order with price snapshots

Steps 3-8 share one session transaction. Any failure rolls it back, which
also returns every unit reserved and the promo use redeemed so far. Only
after the commit is the notification handed to Celery, best effort.

Also home to the post-placement lifecycle: status changes, deletion, counts.
"""

import json
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from food_ordering.core.config import get_settings
from food_ordering.core.exceptions import (
    EmptyOrder,
    InvalidDeliverySlot,
    InvalidQuantity,
    OrderingError,
    UserNotFound,
    ValidationError,
)
from food_ordering.models import (
    DeliveryMethod,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    TERMINAL_STATUSES,
    User,
)
from food_ordering.schemas import OrderCreate
from food_ordering.services.admission import AdmissionController
from food_ordering.services.inventory import InventoryLedger
from food_ordering.services.notifications.base import OrderNotice
from food_ordering.services.promo_codes import PromoCodeLedger, calculate_discount
from food_ordering.services.queries import OrderQueryService
from food_ordering.services.scheduling import to_local_naive, validate_delivery_slot
from food_ordering.tasks import send_order_notifications

logger = logging.getLogger(__name__)

OrderNotifier = Callable[[Order], object]


def dispatch_order_notifications(order: Order) -> bool:
    """
    Queue the confirmation/alert task for a committed order.

    Never raises: the order already exists, a broker outage must not undo it.
    """
    try:
        send_order_notifications.delay(OrderNotice.from_order(order).to_dict())
    except Exception as e:
        logger.error(f"Could not queue notifications for order #{order.id}: {e}")
        return False
    logger.debug(f"Notifications queued for order #{order.id}")
    return True


class OrderPlacementWorkflow:
    """Places orders. One instance per request/session."""

    def __init__(self, session: AsyncSession, notifier: Optional[OrderNotifier] = None):
        self.session = session
        self.notifier = notifier or dispatch_order_notifications
        self.settings = get_settings()
        self.admission = AdmissionController(session)
        self.inventory = InventoryLedger(session)
        self.promo_codes = PromoCodeLedger(session)
        self.queries = OrderQueryService(session)

    async def place_order(self, cart: OrderCreate, now: Optional[datetime] = None) -> Order:
        """
        Place an order for ``cart``.

        Returns:
            The committed order with its user and lines loaded

        Raises:
            OrderingError: any business-rule rejection (nothing is written)
        """
        now = now or datetime.now()
        try:
            order_id = await self._place(cart, now)
            await self.session.commit()
        except OrderingError as e:
            await self.session.rollback()
            logger.info(f"Order for user #{cart.user_id} rejected: {e.message}")
            raise
        except Exception:
            await self.session.rollback()
            logger.exception(f"Order for user #{cart.user_id} failed")
            raise

        order = await self.queries.get_order(order_id)
        logger.info(
            f"Order #{order.id} placed for user #{order.user_id}: "
            f"{len(order.items)} line(s), total {order.total_amount:.2f}"
        )
        self._notify(order)
        return order

    async def _place(self, cart: OrderCreate, now: datetime) -> int:
        user = await self.session.get(User, cart.user_id)
        if user is None:
            raise UserNotFound(cart.user_id)

        if not cart.items:
            raise EmptyOrder()

        if cart.delivery_method == DeliveryMethod.DELIVERY and not (cart.shipping_address or "").strip():
            raise ValidationError("A shipping address is required for delivery orders.")

        await self.admission.check_admission(cart.requested_units, now)

        products: list[Product] = []
        for line in cart.items:
            product = await self.inventory.get_product(line.product_id)
            if line.quantity <= 0:
                raise InvalidQuantity(
                    f"Quantity for product {product.name} must be greater than zero."
                )
            products.append(product)

        for line, product in zip(cart.items, products):
            await self.inventory.reserve(product.id, line.quantity)

        scheduled = None
        if cart.scheduled_delivery_time is not None:
            scheduled = to_local_naive(cart.scheduled_delivery_time)
            slot = validate_delivery_slot(scheduled, now, self.settings)
            if not slot.accepted:
                raise InvalidDeliverySlot(slot.reason)

        order = Order(
            user_id=user.id,
            status=OrderStatus.PENDING,
            delivery_method=cart.delivery_method,
            shipping_address=cart.shipping_address,
            payment_method=cart.payment_method,
            scheduled_delivery_time=scheduled,
            created_at=now,
        )
        for line, product in zip(cart.items, products):
            order.items.append(
                OrderItem(
                    product_id=product.id,
                    quantity=line.quantity,
                    unit_price=product.price,
                    customization_notes=line.customization_notes,
                    selected_extras=json.dumps([e.model_dump() for e in line.selected_extras]),
                    selected_sauces=json.dumps([s.model_dump() for s in line.selected_sauces]),
                )
            )

        discount = 0.0
        if cart.promo_code:
            subtotal = order.items_subtotal()
            promo = await self.promo_codes.redeem(cart.promo_code, subtotal, today=now.date())
            discount = calculate_discount(promo, subtotal)
            order.promo_code = promo.code

        fee = self.settings.delivery_fee if cart.delivery_method == DeliveryMethod.DELIVERY else 0.0
        order.apply_pricing(delivery_fee=fee, discount=discount, supplied_total=cart.total_amount)

        self.session.add(order)
        await self.session.flush()
        return order.id

    def _notify(self, order: Order) -> None:
        try:
            self.notifier(order)
        except Exception as e:
            logger.error(f"Notification for order #{order.id} failed: {e}")


class OrderLifecycleService:
    """Status changes and removal of placed orders."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.inventory = InventoryLedger(session)
        self.queries = OrderQueryService(session)

    async def update_status(self, order_id: int, new_status: OrderStatus) -> Order:
        """
        Move an order along the status table.

        Cancelling gives the reserved stock back. Promo uses are not refunded.
        """
        try:
            order = await self.queries.get_order(order_id)
            previous = order.status
            changed = order.set_status(new_status)
            if changed and new_status == OrderStatus.CANCELLED:
                await self.inventory.release_order(order)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        if changed:
            logger.info(f"Order #{order_id}: {previous.value} -> {new_status.value}")
        return await self.queries.get_order(order_id)

    async def delete_order(self, order_id: int) -> None:
        """
        Delete an order and its lines.

        Stock still held by the order goes back; cancelled orders already
        returned theirs and fulfilled ones have consumed it.
        """
        try:
            order = await self.queries.get_order(order_id)
            if order.status not in TERMINAL_STATUSES:
                await self.inventory.release_order(order)
            await self.session.delete(order)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        logger.info(f"Order #{order_id} deleted")

    async def count_orders(self, status: Optional[OrderStatus] = None) -> int:
        return await self.queries.count_orders(status)
