"""Order status lifecycle for opalstore.

Forward path: pending -> confirmed -> shipped -> delivered. Any state
before delivered may also move to cancelled. Delivered and cancelled are
terminal unless corrections are enabled.
"""

import logging
from decimal import Decimal
from typing import Iterable, Mapping, NamedTuple

from .errors import InvalidStatusTransitionError, OrderNotFoundError, ValidationError
from .models import Order, OrderStatus
from .order_store import OrderStore

logger = logging.getLogger(__name__)

PROGRESSION = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)
TERMINAL = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


def _forward_transitions() -> dict[OrderStatus, frozenset[OrderStatus]]:
    table: dict[OrderStatus, frozenset[OrderStatus]] = {}
    for i, status in enumerate(PROGRESSION):
        allowed = set(PROGRESSION[i + 1:])
        if status not in TERMINAL:
            allowed.add(OrderStatus.CANCELLED)
        table[status] = frozenset(allowed)
    table[OrderStatus.CANCELLED] = frozenset()
    return table


DEFAULT_TRANSITIONS: Mapping[OrderStatus, frozenset[OrderStatus]] = _forward_transitions()


class TransitionPolicy:
    """
    Decides which status changes are legal.

    Setting an order to the status it already has is always allowed.
    With allow_corrections, any status may be set from any other, so an
    operator can undo a mistaken change such as delivered -> pending.
    """

    def __init__(
        self,
        transitions: Mapping[OrderStatus, Iterable[OrderStatus]] | None = None,
        allow_corrections: bool = False,
    ):
        source = DEFAULT_TRANSITIONS if transitions is None else transitions
        self.transitions = {k: frozenset(v) for k, v in source.items()}
        self.allow_corrections = allow_corrections

    def allowed_next(self, current: OrderStatus) -> frozenset[OrderStatus]:
        if self.allow_corrections:
            return frozenset(s for s in OrderStatus if s != current)
        return self.transitions.get(current, frozenset())

    def can_transition(self, current: OrderStatus, requested: OrderStatus) -> bool:
        return current == requested or requested in self.allowed_next(current)

    def check(self, current: OrderStatus, requested: OrderStatus) -> None:
        if not self.can_transition(current, requested):
            raise InvalidStatusTransitionError(current.value, requested.value)


class StatusSummary(NamedTuple):
    counts: dict[str, int]
    order_count: int
    revenue: Decimal


def parse_status(value: OrderStatus | str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        valid = ", ".join(s.value for s in OrderStatus)
        raise ValidationError(
            f"Unknown order status '{value}' (expected one of: {valid})", field="status"
        ) from None


def revenue(orders: Iterable[Order]) -> Decimal:
    """Sum of totals over orders that are not cancelled."""
    return sum(
        (o.total for o in orders if o.status != OrderStatus.CANCELLED), Decimal("0")
    )


def status_summary(orders: Iterable[Order]) -> StatusSummary:
    """Per-status counts plus revenue. Cancelled orders are counted but earn nothing."""
    orders = list(orders)
    counts = {s.value: 0 for s in OrderStatus}
    for order in orders:
        counts[order.status.value] += 1
    return StatusSummary(counts=counts, order_count=len(orders), revenue=revenue(orders))


class OrderLifecycle:
    """Single entry point for status changes and deletions."""

    def __init__(self, orders: OrderStore, policy: TransitionPolicy | None = None):
        self.orders = orders
        self.policy = policy or TransitionPolicy()

    def update_status(self, order_id: str, status: OrderStatus | str) -> Order:
        """
        Move an order to a new status.

        Raises:
            OrderNotFoundError: If order doesn't exist.
            InvalidStatusTransitionError: If the policy forbids the change.
        """
        requested = parse_status(status)
        order = self.orders.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        self.policy.check(order.status, requested)
        if order.status == requested:
            return order

        updated = self.orders.set_status(order_id, requested)
        logger.info(
            "Order %s status %s -> %s",
            order.order_number, order.status.value, requested.value,
        )
        return updated

    def delete_order(self, order_id: str) -> bool:
        """
        Permanently remove an order. Deleting a missing order is not an error.

        Returns:
            True if an order was removed.
        """
        deleted = self.orders.delete_order(order_id)
        if deleted:
            logger.info("Deleted order %s", order_id)
        return deleted
