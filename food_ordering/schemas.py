"""
Pydantic Schemas for Request/Response Validation

Request bodies for placing and managing orders, and the response models
every read path projects ORM rows into before they leave the service.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from food_ordering.models import DeliveryMethod, DiscountKind, LimitMode, OrderStatus


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class ExtraSelection(BaseModel):
    """A paid add-on chosen for one line (price is per unit of the line)."""
    name: str = Field(..., min_length=1, max_length=100, examples=["Extra Cheese"])
    price: float = Field(0.0, ge=0, examples=[5.0])


class SauceSelection(BaseModel):
    """A free sauce chosen for one line."""
    name: str = Field(..., min_length=1, max_length=100, examples=["Peri-Peri"])


class OrderItemCreate(BaseModel):
    """Single line in a cart. Quantity is checked by the placement workflow."""
    product_id: int = Field(..., examples=[1])
    quantity: int = Field(..., examples=[2])
    customization_notes: Optional[str] = Field(None, max_length=500, examples=["No pickles"])
    selected_extras: List[ExtraSelection] = Field(default_factory=list)
    selected_sauces: List[SauceSelection] = Field(default_factory=list)


class OrderCreate(BaseModel):
    """Request schema for placing a new order (the cart)."""

    user_id: int = Field(..., examples=[1])

    # Fulfilment
    delivery_method: DeliveryMethod = Field(
        default=DeliveryMethod.DELIVERY,
        examples=["delivery"]
    )
    shipping_address: Optional[str] = Field(None, max_length=255, examples=["12 Vilakazi St, Soweto"])
    payment_method: str = Field(default="cash", max_length=50, examples=["cash", "card", "eft"])
    scheduled_delivery_time: Optional[datetime] = Field(None, examples=["2026-10-18T19:00:00"])

    # Pricing
    promo_code: Optional[str] = Field(None, max_length=50, examples=["KOTA10"])
    total_amount: Optional[float] = Field(
        None,
        ge=0,
        description="Client-computed total; a positive value is kept as the order total",
    )

    items: List[OrderItemCreate] = Field(default_factory=list)

    @property
    def requested_units(self) -> int:
        return sum(item.quantity for item in self.items)


class OrderStatusUpdate(BaseModel):
    status: str = Field(..., min_length=1, examples=["processing"])


class OrderLimitUpdate(BaseModel):
    limit_value: int = Field(..., examples=[50])
    mode: LimitMode = Field(default=LimitMode.TOTAL_ORDERS)


class PromoCodeCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50, examples=["KOTA10"])
    discount_amount: float = Field(..., gt=0, examples=[10.0])
    discount_kind: DiscountKind = Field(default=DiscountKind.FIXED)
    max_usages: int = Field(..., ge=1, examples=[100])
    expiry_date: date
    minimum_order_amount: float = Field(default=0.0, ge=0)
    description: Optional[str] = Field(None, max_length=500)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str
    last_name: str
    phone_number: Optional[str] = None


class ProductSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    price: float


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    product: ProductSummary
    quantity: int
    unit_price: float
    customization_notes: Optional[str]
    selected_extras: List[ExtraSelection] = Field(validation_alias="extras")
    selected_sauces: List[SauceSelection] = Field(validation_alias="sauces")

    @computed_field
    @property
    def line_total(self) -> float:
        extras = sum(extra.price for extra in self.selected_extras)
        return round((self.unit_price + extras) * self.quantity, 2)


class OrderResponse(BaseModel):
    """Response schema for a single, fully materialised order."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    user: UserSummary
    status: OrderStatus
    delivery_method: DeliveryMethod
    shipping_address: Optional[str]
    payment_method: str
    scheduled_delivery_time: Optional[datetime]
    subtotal: float
    delivery_fee: float
    discount_amount: float
    total_amount: float
    promo_code: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]
    version: int
    items: List[OrderItemResponse]


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderResponse]


class OrderCountResponse(BaseModel):
    count: int


class OrderLimitResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    limit_value: int
    mode: LimitMode
    updated_at: datetime


class PromoCodeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    discount_amount: float
    discount_kind: DiscountKind
    max_usages: int
    usage_count: int
    remaining_uses: int
    expiry_date: date
    minimum_order_amount: float
    description: Optional[str]


class PromoCodeValidationResponse(BaseModel):
    valid: bool
    message: str
    promo_code: PromoCodeResponse
    discount: Optional[float] = Field(
        None,
        description="Discount for the supplied order amount, when one was given",
    )


class PromoCodeUseResponse(BaseModel):
    success: bool
    message: str
    usage_count: int
    remaining_uses: int
    discount_amount: float
    discount_kind: DiscountKind


class DeliverySlotsResponse(BaseModel):
    date: date
    slots: List[str]


class SchedulerRunResponse(BaseModel):
    promoted: int
    order_ids: List[int]


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    message: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    notification_service: str
    timestamp: datetime
