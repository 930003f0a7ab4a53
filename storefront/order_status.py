"""Order status vocabulary and the transitions allowed between statuses."""
from enum import Enum
from typing import Dict, FrozenSet, Tuple

from storefront.errors import InvalidStatusTransitionError, ValidationError


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


INITIAL_STATUS = OrderStatus.PENDING

# Statuses whose orders count as revenue in profit/loss reports
REVENUE_STATUSES: Tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)

# Statuses that make a purchase eligible for a review
PURCHASE_STATUSES: Tuple[OrderStatus, ...] = (
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)

ADMIN_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

CUSTOMER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CANCELLED}),
}


def parse_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise ValidationError(f"Unknown order status '{value}'. Expected one of: {allowed}")


def can_transition(current: str, target: str, actor_role: str = "admin") -> bool:
    """Whether ``actor_role`` may move an order from ``current`` to ``target``."""
    current, target = OrderStatus(current), OrderStatus(target)
    table = ADMIN_TRANSITIONS if actor_role == "admin" else CUSTOMER_TRANSITIONS
    return target in table.get(current, frozenset())


def ensure_transition(current: str, target: str, actor_role: str = "admin") -> None:
    if not can_transition(current, target, actor_role):
        raise InvalidStatusTransitionError(OrderStatus(current).value, OrderStatus(target).value)
