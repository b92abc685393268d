"""Order status transition table.

Every status change goes through apply_transition; anything not listed here
raises InvalidStatusTransitionError and leaves the order untouched.
"""

from datetime import datetime

from src.mp_common.enums import OrderStatus
from src.mp_common.errors import InvalidStatusTransitionError
from src.mp_order.domain.models import Order

S = OrderStatus

STATUS_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    S.CREATED: frozenset({S.PAID, S.CANCELLED}),
    S.PAID: frozenset({S.ACCEPTED, S.CANCELLED, S.REFUNDED}),
    S.ACCEPTED: frozenset({S.IN_PROGRESS, S.CANCELLED, S.REFUNDED}),
    S.IN_PROGRESS: frozenset({S.SHIPPED, S.DELIVERED, S.DISPUTED}),
    S.SHIPPED: frozenset({S.DELIVERED, S.DISPUTED}),
    S.DELIVERED: frozenset({S.COMPLETED, S.DISPUTED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.REFUNDED: frozenset(),
    S.DISPUTED: frozenset({S.RESOLVED_BUYER, S.RESOLVED_SELLER}),
    S.RESOLVED_BUYER: frozenset(),
    S.RESOLVED_SELLER: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in STATUS_TRANSITIONS.items() if not targets)

# Statuses in which the seller may push in-transit location updates.
LOCATION_STATUSES = frozenset({S.ACCEPTED, S.IN_PROGRESS, S.SHIPPED})

_TIMESTAMP_FIELDS: dict[OrderStatus, str] = {
    S.PAID: "paid_at",
    S.ACCEPTED: "accepted_at",
    S.SHIPPED: "shipped_at",
    S.DELIVERED: "delivered_at",
    S.COMPLETED: "completed_at",
    S.CANCELLED: "cancelled_at",
    S.REFUNDED: "cancelled_at",
    S.DISPUTED: "disputed_at",
}


def can_transition(current: OrderStatus | str, target: OrderStatus) -> bool:
    return target in STATUS_TRANSITIONS[OrderStatus(current)]


def is_terminal(status: OrderStatus | str) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def ensure_transition(order: Order, target: OrderStatus) -> None:
    if not can_transition(order.status, target):
        raise InvalidStatusTransitionError(order.status, target.value)


def apply_transition(order: Order, target: OrderStatus, at: datetime) -> None:
    """Move order to target and stamp the matching timestamp column."""
    ensure_transition(order, target)
    order.status = target.value
    stamp = _TIMESTAMP_FIELDS.get(target)
    if stamp is not None:
        setattr(order, stamp, at)
    order.updated_at = at
