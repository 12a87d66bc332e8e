"""
Celery Tasks
Background work that runs outside the request path:

    promote_scheduled_orders   beat task, hands due scheduled orders to the kitchen
    send_order_notifications   customer confirmation + kitchen alert for a new order
    health_check               worker liveness
"""

import asyncio
import logging
import time
from datetime import datetime

from sqlalchemy.pool import NullPool

from food_ordering.celery_worker import celery_app
from food_ordering.core.config import get_settings
from food_ordering.database import build_engine, build_session_maker
from food_ordering.services.notifications import get_notification_service
from food_ordering.services.notifications.base import OrderNotice
from food_ordering.services.scheduling import promote_scheduled_orders as promote_due_orders

logger = logging.getLogger(__name__)


class NotificationDeliveryError(Exception):
    """Customer confirmation could not be delivered; the task is retried."""


async def _run_scheduler() -> list[int]:
    # Each task run gets its own event loop, so it also gets its own engine
    engine = build_engine(get_settings().database_url, poolclass=NullPool)
    try:
        async with build_session_maker(engine)() as session:
            return await promote_due_orders(session)
    finally:
        await engine.dispose()


async def _notify(notice: OrderNotice) -> tuple[bool, bool]:
    service = get_notification_service()
    customer = await service.send_order_confirmation(notice)
    operator = await service.send_operator_alert(notice)
    return customer.success, operator.success


@celery_app.task(bind=True)
def promote_scheduled_orders(self) -> dict:
    """
    Move PENDING scheduled orders that are due soon to PROCESSING.

    Runs every ``scheduler_interval_seconds`` from celery beat.
    """
    task_id = self.request.id
    start_time = time.time()

    promoted = asyncio.run(_run_scheduler())

    elapsed = round(time.time() - start_time, 3)
    logger.info(f"Task {task_id}: scheduler promoted {len(promoted)} order(s) in {elapsed}s")
    return {
        'promoted': len(promoted),
        'order_ids': promoted,
        'task_id': task_id,
        'processing_time_seconds': elapsed,
    }


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(NotificationDeliveryError,),
    retry_backoff=True
)
def send_order_notifications(self, notice_data: dict) -> dict:
    """
    Send the order confirmation and the kitchen alert.

    Args:
        notice_data: ``OrderNotice.to_dict()`` of the placed order

    Returns:
        dict: Outcome per recipient
    """
    task_id = self.request.id
    notice = OrderNotice.from_dict(notice_data)
    logger.info(f"Task {task_id}: notifying for order #{notice.order_id}")

    customer_ok, operator_ok = asyncio.run(_notify(notice))

    if not operator_ok:
        logger.warning(f"Task {task_id}: kitchen alert for order #{notice.order_id} failed")
    if not customer_ok:
        logger.warning(f"Task {task_id}: confirmation for order #{notice.order_id} failed")
        # Celery will auto-retry based on configuration
        raise NotificationDeliveryError(f"Confirmation for order #{notice.order_id} not delivered")

    return {
        'success': True,
        'order_id': notice.order_id,
        'customer_notified': customer_ok,
        'operator_notified': operator_ok,
        'task_id': task_id,
    }


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }
