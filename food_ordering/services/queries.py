"""
Order Query Service

Every order that leaves the service layer is loaded here, with its user,
its lines and each line's product already in memory. Relationships are
declared lazy="raise", so anything not listed in ``ORDER_LOAD_OPTIONS``
fails loudly instead of querying after the session is gone.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from food_ordering.core.exceptions import OrderNotFound, UserNotFound
from food_ordering.models import Order, OrderItem, OrderStatus, User

ORDER_LOAD_OPTIONS = (
    selectinload(Order.user),
    selectinload(Order.items).selectinload(OrderItem.product),
)


def order_select():
    """SELECT of orders with the full graph, always refreshed from the store."""
    return (
        select(Order)
        .options(*ORDER_LOAD_OPTIONS)
        .execution_options(populate_existing=True)
    )


class OrderQueryService:

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_order(self, order_id: int) -> Order:
        result = await self.session.execute(order_select().where(Order.id == order_id))
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFound(order_id)
        return order

    async def list_orders(
        self,
        skip: int = 0,
        limit: Optional[int] = None,
        status: Optional[OrderStatus] = None,
    ) -> list[Order]:
        """Newest first."""
        query = order_select().order_by(Order.created_at.desc(), Order.id.desc())
        if status is not None:
            query = query.where(Order.status == status)
        query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_orders(self, status: Optional[OrderStatus] = None) -> int:
        query = select(func.count(Order.id))
        if status is not None:
            query = query.where(Order.status == status)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def list_orders_for_user(self, user_id: int) -> list[Order]:
        user = await self.session.get(User, user_id)
        if user is None:
            raise UserNotFound(user_id)
        result = await self.session.execute(
            order_select()
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        return list(result.scalars().all())

    async def list_scheduled_orders(self) -> list[Order]:
        """All orders carrying a scheduled delivery time, soonest first."""
        result = await self.session.execute(
            order_select()
            .where(Order.scheduled_delivery_time.is_not(None))
            .order_by(Order.scheduled_delivery_time, Order.id)
        )
        return list(result.scalars().all())

    async def list_orders_in_window(
        self,
        start: datetime,
        end: datetime,
        status: Optional[OrderStatus] = OrderStatus.PENDING,
    ) -> list[Order]:
        """Orders scheduled within [start, end]; ``status=None`` means any."""
        query = (
            order_select()
            .where(Order.scheduled_delivery_time.between(start, end))
            .order_by(Order.scheduled_delivery_time, Order.id)
        )
        if status is not None:
            query = query.where(Order.status == status)
        result = await self.session.execute(query)
        return list(result.scalars().all())
