"""
FastAPI Application Entry Point

Food Ordering Engine - order placement and fulfilment API.
Supports both Mock notification services (development) and real providers
(production).

Endpoints:
    - POST   /api/orders: Place an order
    - PUT    /api/orders/{id}/status: Move an order along its lifecycle (admin)
    - DELETE /api/orders/{id}: Delete an order (admin)
    - GET    /api/orders[/{id}|/user/{user_id}|/count]: Order queries
    - GET/PUT /api/order-limit: Global admission cap (admin)
    - /api/promo-codes/...: Promo code management, validation and use
    - /api/admin/scheduled-deliveries/...: Scheduled delivery views (admin)
    - GET    /api/delivery-slots/available: Bookable delivery slots
    - GET    /health: System health check

Authentication happens upstream; the caller arrives as X-User-Id /
X-User-Role headers (see core/security.py).
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from http import HTTPStatus
from typing import Optional

import redis
from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError
from starlette.exceptions import HTTPException as StarletteHTTPException

from food_ordering.core.config import get_settings, setup_logging
from food_ordering.core.exceptions import (
    AccessDenied,
    InternalError,
    NotFoundError,
    OrderingError,
    ValidationError,
)
from food_ordering.core.security import Principal, require_admin, require_authenticated
from food_ordering.database import engine, get_db, init_db, is_transient_conflict
from food_ordering.models import OrderStatus
from food_ordering.schemas import (
    DeliverySlotsResponse,
    ErrorResponse,
    HealthResponse,
    OrderCountResponse,
    OrderCreate,
    OrderLimitResponse,
    OrderLimitUpdate,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    PromoCodeCreate,
    PromoCodeResponse,
    PromoCodeUseResponse,
    PromoCodeValidationResponse,
    SchedulerRunResponse,
)
from food_ordering.services.admission import AdmissionController
from food_ordering.services.notifications import get_notification_service
from food_ordering.services.orders import (
    OrderLifecycleService,
    OrderNotifier,
    OrderPlacementWorkflow,
    dispatch_order_notifications,
)
from food_ordering.services.promo_codes import PromoCodeLedger, calculate_discount
from food_ordering.services.queries import OrderQueryService
from food_ordering.services.scheduling import available_delivery_slots, promote_scheduled_orders

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    # Initialize database
    await init_db()
    logger.info("Database initialized")

    notification_service = get_notification_service()
    logger.info(f"Notification Service: {notification_service.provider_name}")

    # Validate production config
    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

    logger.info("Application ready!")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Order placement and fulfilment engine: admission control, stock "
        "reservation, promo codes and scheduled deliveries."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    410: {"model": ErrorResponse},
}


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_order_notifier() -> OrderNotifier:
    """How placed orders are announced. Overridden in tests."""
    return dispatch_order_notifications


def get_placement_workflow(
    db: AsyncSession = Depends(get_db),
    notifier: OrderNotifier = Depends(get_order_notifier),
) -> OrderPlacementWorkflow:
    return OrderPlacementWorkflow(db, notifier=notifier)


def parse_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(value.strip().lower())
    except ValueError:
        raise ValidationError(
            f"Invalid order status: {value}. Options: {[s.value for s in OrderStatus]}"
        )


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify all system components are operational."""

    # Check database
    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    # Check Redis
    redis_status = "healthy"
    try:
        r = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
        r.ping()
        r.close()
    except Exception as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    # Check notification service
    notification_service = get_notification_service()
    notification_status = "healthy" if await notification_service.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, redis_status, notification_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        notification_service=notification_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Place Order",
)
async def create_order(
    order_data: OrderCreate,
    principal: Principal = Depends(require_authenticated),
    workflow: OrderPlacementWorkflow = Depends(get_placement_workflow),
) -> OrderResponse:
    """
    Place a new order.

    Stock is reserved and the promo code redeemed atomically with the order;
    on any rejection nothing is written.
    """
    if not principal.can_access_user(order_data.user_id):
        raise AccessDenied("You can only place orders for yourself")

    logger.info(f"Placing order for user #{order_data.user_id} ({len(order_data.items)} line(s))")
    order = await workflow.place_order(order_data)
    return OrderResponse.model_validate(order)


@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    status: Optional[str] = Query(None),
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    """Retrieve paginated list of orders, newest first."""
    status_enum = parse_status(status) if status else None
    queries = OrderQueryService(db)

    total = await queries.count_orders(status_enum)
    orders = await queries.list_orders(skip=skip, limit=limit, status=status_enum)

    return OrderListResponse(
        total=total,
        orders=[OrderResponse.model_validate(order) for order in orders],
    )


@app.get(
    "/api/orders/count",
    response_model=OrderCountResponse,
    tags=["Orders"],
)
async def count_orders(
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> OrderCountResponse:
    """Total number of orders."""
    return OrderCountResponse(count=await OrderLifecycleService(db).count_orders())


@app.get(
    "/api/orders/user/{user_id}",
    response_model=list[OrderResponse],
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def list_user_orders(
    user_id: int,
    principal: Principal = Depends(require_authenticated),
    db: AsyncSession = Depends(get_db),
) -> list[OrderResponse]:
    """All orders of one user (admins, or the user themselves)."""
    if not principal.can_access_user(user_id):
        raise AccessDenied("Not allowed to view these orders")

    orders = await OrderQueryService(db).list_orders_for_user(user_id)
    return [OrderResponse.model_validate(order) for order in orders]


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def get_order(
    order_id: int,
    principal: Principal = Depends(require_authenticated),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    """Get a specific order by ID."""
    order = await OrderQueryService(db).get_order(order_id)
    if not principal.can_access_user(order.user_id):
        raise AccessDenied("Not allowed to view this order")
    return OrderResponse.model_validate(order)


@app.put(
    "/api/orders/{order_id}/status",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def update_order_status(
    order_id: int,
    update: OrderStatusUpdate,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    """Move an order to a new status. Cancelling returns its stock."""
    new_status = parse_status(update.status)
    order = await OrderLifecycleService(db).update_status(order_id, new_status)
    return OrderResponse.model_validate(order)


@app.delete(
    "/api/orders/{order_id}",
    status_code=204,
    response_class=Response,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def delete_order(
    order_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> Response:
    await OrderLifecycleService(db).delete_order(order_id)
    return Response(status_code=204)


# =============================================================================
# ORDER LIMIT ENDPOINTS
# =============================================================================

@app.get(
    "/api/order-limit",
    response_model=OrderLimitResponse,
    responses=ERROR_RESPONSES,
    tags=["Order Limit"],
)
async def get_order_limit(
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> OrderLimitResponse:
    limit = await AdmissionController(db).get_limit()
    if limit is None:
        raise NotFoundError("No order limit has been set")
    return OrderLimitResponse.model_validate(limit)


@app.put(
    "/api/order-limit",
    response_model=OrderLimitResponse,
    responses=ERROR_RESPONSES,
    tags=["Order Limit"],
)
async def set_order_limit(
    update: OrderLimitUpdate,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> OrderLimitResponse:
    """Create or replace the global order limit (0 closes ordering)."""
    limit = await AdmissionController(db).set_limit(update.limit_value, update.mode)
    await db.commit()
    return OrderLimitResponse.model_validate(limit)


# =============================================================================
# PROMO CODE ENDPOINTS
# =============================================================================

@app.post(
    "/api/promo-codes",
    response_model=PromoCodeResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Promo Codes"],
)
async def create_promo_code(
    promo_data: PromoCodeCreate,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> PromoCodeResponse:
    promo = await PromoCodeLedger(db).create(promo_data)
    await db.commit()
    return PromoCodeResponse.model_validate(promo)


@app.get(
    "/api/promo-codes",
    response_model=list[PromoCodeResponse],
    tags=["Promo Codes"],
)
async def list_promo_codes(
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[PromoCodeResponse]:
    promos = await PromoCodeLedger(db).list_all()
    return [PromoCodeResponse.model_validate(p) for p in promos]


@app.get(
    "/api/promo-codes/validate/{code}",
    response_model=PromoCodeValidationResponse,
    responses=ERROR_RESPONSES,
    tags=["Promo Codes"],
)
async def validate_promo_code(
    code: str,
    order_amount: Optional[float] = Query(None, ge=0),
    db: AsyncSession = Depends(get_db),
) -> PromoCodeValidationResponse:
    """Check a code without using it. With an amount, also returns the discount."""
    promo = await PromoCodeLedger(db).validate(code, order_amount)
    return PromoCodeValidationResponse(
        valid=True,
        message="Promo code is valid",
        promo_code=PromoCodeResponse.model_validate(promo),
        discount=calculate_discount(promo, order_amount) if order_amount is not None else None,
    )


@app.post(
    "/api/promo-codes/use/{code}",
    response_model=PromoCodeUseResponse,
    responses=ERROR_RESPONSES,
    tags=["Promo Codes"],
)
async def use_promo_code(
    code: str,
    order_amount: Optional[float] = Query(None, ge=0),
    db: AsyncSession = Depends(get_db),
) -> PromoCodeUseResponse:
    """Consume one use of a code."""
    try:
        promo = await PromoCodeLedger(db).redeem(code, order_amount)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    discount = (
        calculate_discount(promo, order_amount)
        if order_amount is not None else promo.discount_amount
    )
    return PromoCodeUseResponse(
        success=True,
        message="Promo code applied successfully",
        usage_count=promo.usage_count,
        remaining_uses=promo.remaining_uses,
        discount_amount=discount,
        discount_kind=promo.discount_kind,
    )


@app.get(
    "/api/promo-codes/{code}",
    response_model=PromoCodeResponse,
    responses=ERROR_RESPONSES,
    tags=["Promo Codes"],
)
async def get_promo_code(
    code: str,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> PromoCodeResponse:
    promo = await PromoCodeLedger(db).get_by_code(code)
    return PromoCodeResponse.model_validate(promo)


@app.delete(
    "/api/promo-codes/{promo_id}",
    status_code=204,
    response_class=Response,
    responses=ERROR_RESPONSES,
    tags=["Promo Codes"],
)
async def delete_promo_code(
    promo_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> Response:
    await PromoCodeLedger(db).delete(promo_id)
    await db.commit()
    return Response(status_code=204)


# =============================================================================
# SCHEDULED DELIVERY ENDPOINTS
# =============================================================================

@app.get(
    "/api/admin/scheduled-deliveries",
    response_model=list[OrderResponse],
    tags=["Scheduled Deliveries"],
)
async def list_scheduled_deliveries(
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[OrderResponse]:
    """Every order with a scheduled delivery time, soonest first."""
    orders = await OrderQueryService(db).list_scheduled_orders()
    return [OrderResponse.model_validate(order) for order in orders]


@app.get(
    "/api/admin/scheduled-deliveries/range",
    response_model=list[OrderResponse],
    responses=ERROR_RESPONSES,
    tags=["Scheduled Deliveries"],
)
async def list_scheduled_deliveries_in_range(
    start: datetime = Query(...),
    end: datetime = Query(...),
    status: str = Query(OrderStatus.PENDING.value),
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[OrderResponse]:
    """Orders scheduled between ``start`` and ``end`` in the given status."""
    if start > end:
        raise ValidationError("start must not be after end")
    orders = await OrderQueryService(db).list_orders_in_window(start, end, parse_status(status))
    return [OrderResponse.model_validate(order) for order in orders]


@app.post(
    "/api/admin/scheduled-deliveries/run",
    response_model=SchedulerRunResponse,
    tags=["Scheduled Deliveries"],
)
async def run_delivery_scheduler(
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> SchedulerRunResponse:
    """Run the scheduled-delivery sweep now instead of waiting for celery beat."""
    promoted = await promote_scheduled_orders(db)
    return SchedulerRunResponse(promoted=len(promoted), order_ids=promoted)


@app.get(
    "/api/delivery-slots/available",
    response_model=DeliverySlotsResponse,
    responses=ERROR_RESPONSES,
    tags=["Scheduled Deliveries"],
)
async def get_available_delivery_slots(
    day: date = Query(..., alias="date"),
    principal: Principal = Depends(require_authenticated),
) -> DeliverySlotsResponse:
    return DeliverySlotsResponse(date=day, slots=available_delivery_slots(day))


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(OrderingError)
async def ordering_error_handler(request: Request, exc: OrderingError) -> JSONResponse:
    """Business-rule rejections carry their own status and label."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _describe_validation_error(error: dict) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
    return f"{location}: {error.get('msg')}" if location else str(error.get("msg"))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies, paths and queries are plain 400 validation errors."""
    problems = "; ".join(_describe_validation_error(error) for error in exc.errors())
    error = ValidationError(f"Invalid request: {problems}")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Framework errors (unknown route, wrong method) in the same body shape."""
    try:
        label = HTTPStatus(exc.status_code).phrase
    except ValueError:
        label = "Error"
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": label, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(StaleDataError)
async def stale_data_handler(request: Request, exc: StaleDataError) -> JSONResponse:
    logger.warning(f"Concurrent modification on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=409,
        content={
            "success": False,
            "error": "Conflict",
            "message": "The record was changed by another request. Please retry.",
        },
    )


@app.exception_handler(DBAPIError)
async def database_error_handler(request: Request, exc: DBAPIError) -> JSONResponse:
    """Deadlocks and lock timeouts are retryable conflicts; anything else is a 500."""
    if is_transient_conflict(exc):
        logger.warning(f"Lock conflict on {request.method} {request.url.path}: {exc.orig}")
        return JSONResponse(
            status_code=409,
            content={
                "success": False,
                "error": "Conflict",
                "message": "The request clashed with another order. Please retry.",
            },
        )
    return _internal_error_response(exc)


def _internal_error_response(exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception: {exc}")
    error = InternalError(str(exc)) if settings.debug else InternalError()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    return _internal_error_response(exc)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "food_ordering.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )
