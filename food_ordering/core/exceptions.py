"""
Ordering Error Taxonomy

Every business-rule violation raised by the ordering engine derives from
OrderingError. Each class carries the HTTP status and short error label the
API layer uses to build its structured response, so services never import
FastAPI.

    OrderingError
    ├── ValidationError          400
    │   ├── EmptyOrder
    │   ├── InvalidQuantity
    │   ├── InvalidDeliverySlot
    │   └── IllegalStatusTransition
    ├── NotFoundError            404
    │   ├── UserNotFound
    │   ├── ProductNotFound
    │   ├── OrderNotFound
    │   └── PromoCodeNotFound
    ├── AuthenticationRequired   401
    ├── AccessDenied             403
    ├── AdmissionDenied          403
    ├── ConflictError            409
    │   ├── InsufficientStock
    │   ├── PromoCodeUnavailable 410
    │   │   ├── PromoCodeExpired
    │   │   └── PromoCodeLimitReached
    │   └── PromoCodeBelowMinimum 400
    └── InternalError            500
"""


class OrderingError(Exception):
    """Base class for all ordering errors."""

    status_code: int = 500
    error: str = "Internal Server Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"success": False, "error": self.error, "message": self.message}


# =============================================================================
# VALIDATION (400)
# =============================================================================

class ValidationError(OrderingError):
    status_code = 400
    error = "Validation Error"


class EmptyOrder(ValidationError):
    def __init__(self, message: str = "Order must contain at least one item."):
        super().__init__(message)


class InvalidQuantity(ValidationError):
    pass


class InvalidDeliverySlot(ValidationError):
    pass


class IllegalStatusTransition(ValidationError):
    error = "Illegal Status Transition"


# =============================================================================
# NOT FOUND (404)
# =============================================================================

class NotFoundError(OrderingError):
    status_code = 404
    error = "Not Found"


class UserNotFound(NotFoundError):
    def __init__(self, user_id: int):
        super().__init__(f"User not found with ID: {user_id}")
        self.user_id = user_id


class ProductNotFound(NotFoundError):
    def __init__(self, product_id: int):
        super().__init__(f"Product not found: {product_id}")
        self.product_id = product_id


class OrderNotFound(NotFoundError):
    def __init__(self, order_id: int):
        super().__init__(f"Order #{order_id} not found")
        self.order_id = order_id


class PromoCodeNotFound(NotFoundError):
    def __init__(self, code: str):
        super().__init__(f"Promo code '{code}' is not valid")
        self.code = code


# =============================================================================
# ACCESS (401 / 403)
# =============================================================================

class AuthenticationRequired(OrderingError):
    status_code = 401
    error = "Unauthorized"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class AccessDenied(OrderingError):
    status_code = 403
    error = "Forbidden"


# =============================================================================
# ADMISSION (403)
# =============================================================================

class AdmissionDenied(OrderingError):
    status_code = 403
    error = "Order Limit Reached"


# =============================================================================
# CONFLICTS (409 / 410 / 400)
# =============================================================================

class ConflictError(OrderingError):
    status_code = 409
    error = "Conflict"


class InsufficientStock(ConflictError):
    error = "Insufficient Stock"

    def __init__(self, product_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product: {product_name}. "
            f"Only {available} left, but {requested} requested."
        )
        self.product_name = product_name
        self.available = available
        self.requested = requested


class PromoCodeUnavailable(ConflictError):
    status_code = 410
    error = "Promo Code Unavailable"


class PromoCodeExpired(PromoCodeUnavailable):
    def __init__(self, code: str):
        super().__init__(f"Promo code '{code}' has expired")
        self.code = code


class PromoCodeLimitReached(PromoCodeUnavailable):
    def __init__(self, code: str):
        super().__init__(f"Promo code '{code}' usage limit reached")
        self.code = code


class PromoCodeBelowMinimum(ConflictError):
    status_code = 400
    error = "Invalid Request"

    def __init__(self, code: str, minimum: float):
        super().__init__(
            f"Order amount must be at least {minimum:.2f} to use promo code '{code}'"
        )
        self.code = code
        self.minimum = minimum


# =============================================================================
# INTERNAL (500)
# =============================================================================

class InternalError(OrderingError):
    def __init__(self, message: str = "An unexpected error occurred"):
        super().__init__(message)
