from datetime import datetime
from typing import Any, Dict, Optional

from errors import InvalidTransitionError
from schemas import Order, OrderStatus

S = OrderStatus

TRANSITIONS = {
    S.PENDING: {S.CONFIRMED, S.CANCELLED},
    S.CONFIRMED: {S.PREPARING, S.CANCELLED},
    S.PREPARING: {S.READY, S.CANCELLED},
    S.READY: {S.SERVED, S.CANCELLED},
    S.SERVED: {S.COMPLETED, S.CANCELLED},
    S.COMPLETED: set(),
    S.CANCELLED: set(),
}

FORWARD = {
    S.PENDING: S.CONFIRMED,
    S.CONFIRMED: S.PREPARING,
    S.PREPARING: S.READY,
    S.READY: S.SERVED,
    S.SERVED: S.COMPLETED,
}

# status -> (document field, Order attribute); "preparing" is stamped as preparedAt
TIMESTAMP_FIELDS = {
    S.CONFIRMED: ("confirmedAt", "confirmed_at"),
    S.PREPARING: ("preparedAt", "prepared_at"),
    S.READY: ("readyAt", "ready_at"),
    S.SERVED: ("servedAt", "served_at"),
    S.COMPLETED: ("completedAt", "completed_at"),
}

ACTIVE_STATUSES = [S.PENDING, S.CONFIRMED, S.PREPARING, S.READY, S.SERVED]
KITCHEN_STATUSES = [S.CONFIRMED, S.PREPARING]


def is_terminal(status) -> bool:
    return not TRANSITIONS[OrderStatus(status)]


def can_transition(current, target) -> bool:
    return OrderStatus(target) in TRANSITIONS[OrderStatus(current)]


def next_status(current) -> Optional[OrderStatus]:
    return FORWARD.get(OrderStatus(current))


def transition_updates(order: Order, target, now: datetime) -> Dict[str, Any]:
    """
    Fields to write when moving ``order`` to ``target``.

    Returns an empty dict when the order already has that status. Raises
    InvalidTransitionError for moves the table does not allow. A transition
    timestamp already on the order is left alone.
    """
    current = OrderStatus(order.status)
    target = OrderStatus(target)

    if current == target:
        return {}
    if target not in TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)

    updates: Dict[str, Any] = {"status": target.value}
    stamp = TIMESTAMP_FIELDS.get(target)
    if stamp:
        field, attr = stamp
        if getattr(order, attr) is None:
            updates[field] = now
    return updates
