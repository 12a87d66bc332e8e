"""
Admission Controller

Global cap on incoming orders, kept as a single ``order_limit`` row.

    TOTAL_ORDERS  every order ever placed counts (cancelled ones included)
    DAILY_UNITS   item quantities of orders created today (local time)

A limit of 0 closes ordering. With no row at all, everything is admitted.

The check reads counts inside the placement transaction but does not lock
them, so two placements racing for the last unit of capacity can both be
admitted. Stock reservation is what guarantees no overselling.
"""

import logging
from datetime import datetime, time, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from food_ordering.core.exceptions import AdmissionDenied, ValidationError
from food_ordering.models import LimitMode, Order, OrderItem, OrderLimit

logger = logging.getLogger(__name__)


class AdmissionController:

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_limit(self) -> Optional[OrderLimit]:
        result = await self.session.execute(
            select(OrderLimit)
            .order_by(OrderLimit.id)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def set_limit(self, limit_value: int, mode: LimitMode = LimitMode.TOTAL_ORDERS) -> OrderLimit:
        """Create or replace the order limit. The caller commits."""
        if limit_value < 0:
            raise ValidationError("Order limit must be zero or a positive number.")

        limit = await self.get_limit()
        if limit is None:
            limit = OrderLimit(limit_value=limit_value, mode=mode)
            self.session.add(limit)
        else:
            limit.limit_value = limit_value
            limit.mode = mode
            limit.updated_at = datetime.now()
        await self.session.flush()

        logger.info(f"Order limit set to {limit_value} ({mode.value})")
        return limit

    async def count_orders(self) -> int:
        result = await self.session.execute(select(func.count(Order.id)))
        return result.scalar_one()

    async def units_ordered_on(self, day: datetime) -> int:
        start = datetime.combine(day.date(), time.min)
        end = start + timedelta(days=1)
        result = await self.session.execute(
            select(func.coalesce(func.sum(OrderItem.quantity), 0))
            .join(Order, OrderItem.order_id == Order.id)
            .where(Order.created_at >= start, Order.created_at < end)
        )
        return int(result.scalar_one())

    async def check_admission(self, requested_units: int, now: Optional[datetime] = None) -> None:
        """
        Decide whether a new order of ``requested_units`` items may proceed.

        Raises:
            AdmissionDenied: ordering is closed or the limit is used up
        """
        limit = await self.get_limit()
        if limit is None:
            return

        if limit.limit_value == 0:
            logger.info("Order rejected: ordering is closed (limit 0)")
            raise AdmissionDenied("We are not accepting new orders at the moment.")

        if limit.mode == LimitMode.TOTAL_ORDERS:
            placed = await self.count_orders()
            if placed >= limit.limit_value:
                logger.info(f"Order rejected: {placed}/{limit.limit_value} orders placed")
                raise AdmissionDenied(
                    "Order limit reached. We cannot accept more orders at the moment."
                )
            return

        now = now or datetime.now()
        ordered_today = await self.units_ordered_on(now)
        if ordered_today + requested_units > limit.limit_value:
            remaining = max(limit.limit_value - ordered_today, 0)
            logger.info(
                f"Order rejected: {ordered_today} units today, "
                f"{requested_units} requested, limit {limit.limit_value}"
            )
            raise AdmissionDenied(
                f"Order limit reached. Only {remaining} item(s) left for today."
            )
