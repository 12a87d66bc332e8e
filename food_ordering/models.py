"""
SQLAlchemy Database Models

Order aggregate (Order + OrderItem) with its status state machine and
pricing rules, plus the rows the engine shares with the rest of the store:
users, products (stock), promo codes and the global order limit.

Relationships are declared lazy="raise": every read path must say what it
loads, so no ORM handle can lazily hit the database after its session ends.

Timestamps are naive local time; the delivery window is a local-time rule.
"""

import enum
import json
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from food_ordering.core.exceptions import IllegalStatusTransition
from food_ordering.database import Base


# =============================================================================
# ENUMS
# =============================================================================

class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    COLLECTED = "collected"
    CANCELLED = "cancelled"


class DeliveryMethod(str, enum.Enum):
    """How the order leaves the kitchen."""
    DELIVERY = "delivery"
    COLLECTION = "collection"


class DiscountKind(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class LimitMode(str, enum.Enum):
    """What the global order limit counts."""
    TOTAL_ORDERS = "total_orders"
    DAILY_UNITS = "daily_units"


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


# Allowed next states. Terminal states map to an empty set.
ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({
        OrderStatus.READY,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.READY: frozenset({
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
        OrderStatus.COLLECTED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.COLLECTED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, nxt in ORDER_TRANSITIONS.items() if not nxt)


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    """Re-asserting the current status is always allowed (no-op)."""
    return current == new or new in ORDER_TRANSITIONS[current]


# =============================================================================
# EXTERNAL ENTITIES (summarised)
# =============================================================================

class User(Base):
    """Customer or administrator. Owned by the account service."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone_number = Column(String(20), nullable=True)
    address = Column(String(255), nullable=True)
    role = Column(Enum(UserRole), default=UserRole.CUSTOMER, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<User #{self.id} - {self.email}>"


class Product(Base):
    """Menu item. Stock is only changed through the inventory ledger."""
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    price = Column(Float, nullable=False)
    stock = Column(Integer, nullable=False, default=0)

    image_data = Column(LargeBinary, nullable=True)
    image_content_type = Column(String(50), nullable=True)
    image_name = Column(String(255), nullable=True)

    def __repr__(self):
        return f"<Product #{self.id} - {self.name} - stock={self.stock}>"


# =============================================================================
# ORDER AGGREGATE
# =============================================================================

class Order(Base):
    """
    A customer's order and its line items.

    Created PENDING by the placement workflow, then moved through
    ORDER_TRANSITIONS by admins and the delivery scheduler. The version
    column gives optimistic concurrency on every ORM flush.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # =========================================================================
    # FULFILMENT
    # =========================================================================
    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )
    delivery_method = Column(
        Enum(DeliveryMethod),
        default=DeliveryMethod.DELIVERY,
        nullable=False
    )
    shipping_address = Column(String(255), nullable=True)
    payment_method = Column(String(50), nullable=False)
    scheduled_delivery_time = Column(DateTime, nullable=True, index=True)

    # =========================================================================
    # PRICING
    # =========================================================================
    subtotal = Column(Float, nullable=False, default=0.0)
    delivery_fee = Column(Float, nullable=False, default=0.0)
    discount_amount = Column(Float, nullable=False, default=0.0)
    total_amount = Column(Float, nullable=False, default=0.0)
    promo_code = Column(String(50), nullable=True)

    # =========================================================================
    # TIMESTAMPS / CONCURRENCY
    # =========================================================================
    created_at = Column(DateTime, nullable=False, default=datetime.now, index=True)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.now)
    version = Column(Integer, nullable=False)

    user = relationship("User", lazy="raise")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy="raise",
    )

    __mapper_args__ = {"version_id_col": version}

    # =========================================================================
    # STATE MACHINE
    # =========================================================================

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def set_status(self, new_status: OrderStatus) -> bool:
        """
        Move the order to ``new_status``.

        Returns True when the status actually changed.

        Raises:
            IllegalStatusTransition: if the table forbids the move
        """
        current = self.status
        if not can_transition(current, new_status):
            raise IllegalStatusTransition(
                f"Cannot change order #{self.id} from {current.value} to {new_status.value}"
            )
        if current == new_status:
            return False
        self.status = new_status
        return True

    # =========================================================================
    # PRICING
    # =========================================================================

    def items_subtotal(self) -> float:
        return round(sum(item.line_total() for item in self.items), 2)

    def calculate_total(self) -> float:
        """
        Total the customer pays.

        A positive total already on the order (committed by the caller, e.g.
        with a client-side promo applied) is kept. Otherwise it is derived
        from the lines plus fee minus discount, never below zero.
        """
        if self.total_amount is not None and self.total_amount > 0:
            return self.total_amount
        fee = self.delivery_fee or 0.0
        discount = self.discount_amount or 0.0
        return round(max(self.items_subtotal() + fee - discount, 0.0), 2)

    def apply_pricing(
        self,
        delivery_fee: float = 0.0,
        discount: float = 0.0,
        supplied_total: Optional[float] = None,
    ) -> None:
        """Fill subtotal, fee, discount and total from the current lines."""
        self.subtotal = self.items_subtotal()
        self.delivery_fee = round(delivery_fee, 2)
        self.discount_amount = round(max(discount, 0.0), 2)
        self.total_amount = supplied_total
        self.total_amount = self.calculate_total()

    def __repr__(self):
        return f"<Order #{self.id} - {self.delivery_method.value} - {self.status.value}>"


class OrderItem(Base):
    """
    One line of an order.

    unit_price is the product price captured when the order was placed and is
    never re-read from the product. Extras carry a price per unit of the line;
    sauces are free.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)
    customization_notes = Column(Text, nullable=True)
    selected_extras = Column(Text, nullable=False, default="[]")  # JSON list of {name, price}
    selected_sauces = Column(Text, nullable=False, default="[]")  # JSON list of {name}

    order = relationship("Order", back_populates="items", lazy="raise")
    product = relationship("Product", lazy="raise")

    @property
    def extras(self) -> list[dict]:
        return json.loads(self.selected_extras or "[]")

    @property
    def sauces(self) -> list[dict]:
        return json.loads(self.selected_sauces or "[]")

    def line_total(self) -> float:
        extras_per_unit = sum(float(extra.get("price", 0.0)) for extra in self.extras)
        return round((self.unit_price + extras_per_unit) * self.quantity, 2)

    def __repr__(self):
        return f"<OrderItem #{self.id} - product={self.product_id} x{self.quantity}>"


# =============================================================================
# PROMO CODES / ORDER LIMIT
# =============================================================================

class PromoCode(Base):
    """
    Discount code. usage_count only moves through the ledger's conditional
    update; the check constraint backs the usage invariant in the store.
    """
    __tablename__ = "promo_codes"
    __table_args__ = (
        CheckConstraint("usage_count <= max_usages", name="ck_promo_codes_usage_within_max"),
        CheckConstraint("usage_count >= 0", name="ck_promo_codes_usage_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    code = Column(String(50), nullable=False, unique=True, index=True)
    discount_amount = Column(Float, nullable=False)
    discount_kind = Column(Enum(DiscountKind), nullable=False, default=DiscountKind.FIXED)
    max_usages = Column(Integer, nullable=False)
    usage_count = Column(Integer, nullable=False, default=0)
    expiry_date = Column(Date, nullable=False)
    minimum_order_amount = Column(Float, nullable=False, default=0.0)
    description = Column(Text, nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def remaining_uses(self) -> int:
        return max(self.max_usages - self.usage_count, 0)

    def __repr__(self):
        return f"<PromoCode {self.code} - {self.usage_count}/{self.max_usages}>"


class OrderLimit(Base):
    """Singleton row holding the global admission cap (0 = closed)."""
    __tablename__ = "order_limit"
    __table_args__ = (
        CheckConstraint("limit_value >= 0", name="ck_order_limit_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    limit_value = Column(Integer, nullable=False)
    mode = Column(Enum(LimitMode), nullable=False, default=LimitMode.TOTAL_ORDERS)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    def __repr__(self):
        return f"<OrderLimit {self.limit_value} ({self.mode.value})>"
