"""
Delivery Scheduling

Slot rules for scheduled deliveries and the periodic sweep that hands due
orders to the kitchen.

All times are naive local time. A timezone-aware timestamp from a client is
converted to local time before any rule is applied.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from food_ordering.core.config import Settings, get_settings
from food_ordering.core.exceptions import InvalidDeliverySlot
from food_ordering.models import Order, OrderStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotCheck:
    """Outcome of a delivery-slot check."""
    accepted: bool
    reason: Optional[str] = None


def to_local_naive(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone().replace(tzinfo=None)


def validate_delivery_slot(
    scheduled: datetime,
    now: datetime,
    settings: Optional[Settings] = None,
) -> SlotCheck:
    """
    Check a requested delivery time.

    Accepted when it is strictly after ``now``, at most
    ``max_schedule_days_ahead`` days away, and its time of day (to the
    minute) falls within the delivery window, both ends inclusive.
    """
    settings = settings or get_settings()
    scheduled = to_local_naive(scheduled)
    now = to_local_naive(now)

    if scheduled <= now:
        return SlotCheck(False, "Scheduled delivery time must be in the future.")

    if scheduled > now + timedelta(days=settings.max_schedule_days_ahead):
        return SlotCheck(
            False,
            f"Cannot schedule delivery more than {settings.max_schedule_days_ahead} days in advance.",
        )

    time_of_day = time(scheduled.hour, scheduled.minute)
    if not settings.delivery_window_start <= time_of_day <= settings.delivery_window_end:
        return SlotCheck(
            False,
            f"Scheduled deliveries are only available between "
            f"{settings.delivery_window_start:%H:%M} and {settings.delivery_window_end:%H:%M}.",
        )

    return SlotCheck(True)


def available_delivery_slots(
    day: date,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> list[str]:
    """
    Bookable slots for ``day`` as "HH:MM" strings.

    Hourly from the window start, plus the window end when it is not on the
    hour. Slots less than an hour from ``now`` are left out.

    Raises:
        InvalidDeliverySlot: ``day`` is in the past or too far ahead
    """
    settings = settings or get_settings()
    now = now or datetime.now()
    today = now.date()

    if day < today:
        raise InvalidDeliverySlot("Cannot get slots for past dates.")
    if day > today + timedelta(days=settings.max_schedule_days_ahead):
        raise InvalidDeliverySlot(
            f"Cannot schedule delivery more than {settings.max_schedule_days_ahead} days in advance."
        )

    start = settings.delivery_window_start
    end = settings.delivery_window_end
    times = [time(hour, 0) for hour in range(start.hour, end.hour + 1) if time(hour, 0) >= start]
    if end.minute != 0:
        times.append(time(end.hour, end.minute))

    earliest = now + timedelta(hours=1)
    return [
        slot.strftime("%H:%M")
        for slot in times
        if datetime.combine(day, slot) >= earliest
    ]


async def promote_scheduled_orders(
    session: AsyncSession,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> list[int]:
    """
    Move PENDING orders due within the lookahead window to PROCESSING.

    Each order is committed on its own; one that changed under us is
    skipped and left for the next run. Running again with nothing new due
    changes nothing.

    Returns:
        IDs of the orders promoted by this run
    """
    settings = settings or get_settings()
    now = now or datetime.now()
    window_end = now + timedelta(minutes=settings.scheduler_lookahead_minutes)

    result = await session.execute(
        select(Order.id)
        .where(
            Order.status == OrderStatus.PENDING,
            Order.scheduled_delivery_time.between(now, window_end),
        )
        .order_by(Order.scheduled_delivery_time, Order.id)
    )
    due_ids = list(result.scalars().all())
    await session.commit()

    promoted = []
    for order_id in due_ids:
        order = await session.get(Order, order_id, populate_existing=True)
        if order is None or order.status != OrderStatus.PENDING:
            await session.commit()
            continue

        order.set_status(OrderStatus.PROCESSING)
        try:
            await session.commit()
        except StaleDataError:
            await session.rollback()
            logger.warning(f"Order #{order_id} changed during promotion, will retry next run")
            continue

        promoted.append(order_id)
        logger.info(f"Scheduled order #{order_id} moved to processing")

    if promoted:
        logger.info(f"Scheduler promoted {len(promoted)} order(s): {promoted}")
    else:
        logger.debug("Scheduler run: no scheduled orders due")
    return promoted
