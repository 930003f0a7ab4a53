"""Domain errors raised by the storefront services.

Every error carries the HTTP status the routers answer with. Validation and
stock errors are user-facing; ``PersistenceError`` hides the underlying
database failure behind a generic message.
"""
from typing import Optional


class StorefrontError(Exception):
    """Base class for all storefront errors."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StorefrontError):
    """Missing or malformed input."""


class EmptyCartError(StorefrontError):
    """Checkout attempted with an empty cart."""

    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class ProductNotFoundError(StorefrontError):
    status_code = 404

    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class InsufficientStockError(StorefrontError):
    """Requested quantity exceeds what is on hand."""

    status_code = 409

    def __init__(self, product_id: int, requested: int, available: int, product_name: Optional[str] = None):
        label = f'"{product_name}"' if product_name else f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}. Only {available} available."
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class PersistenceError(StorefrontError):
    """Wraps an underlying database failure."""

    status_code = 500

    def __init__(self, message: str = "Failed to place order, please try again"):
        super().__init__(message)


class OrderNotFoundError(StorefrontError):
    status_code = 404

    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class InvalidStatusTransitionError(StorefrontError):
    status_code = 409

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot change order status from {current} to {target}")
        self.current = current
        self.target = target


class ReviewNotAllowedError(StorefrontError):
    status_code = 403

    def __init__(self, message: str = "You must purchase this product before you can leave a review"):
        super().__init__(message)


class DuplicateReviewError(StorefrontError):
    status_code = 409

    def __init__(self, message: str = "You have already reviewed this product"):
        super().__init__(message)


class ReviewNotFoundError(StorefrontError):
    status_code = 404

    def __init__(self, message: str = "Review not found or you don't have permission to change it"):
        super().__init__(message)


class ProductInUseError(StorefrontError):
    status_code = 409

    def __init__(self, product_id: int):
        super().__init__(
            f"Product {product_id} is referenced by orders, sales or reviews and cannot be deleted"
        )
        self.product_id = product_id


class NotificationNotFoundError(StorefrontError):
    status_code = 404

    def __init__(self, notification_id: int):
        super().__init__(f"Notification {notification_id} not found")
        self.notification_id = notification_id
