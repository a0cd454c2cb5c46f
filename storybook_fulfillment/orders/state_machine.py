"""
Forward-only order lifecycle.

    pending_payment -> payment_received -> processing -> generating_pdf -> pdf_ready
    pdf_ready -> completed                                   (digital)
    pdf_ready -> submitted_to_printer -> in_production -> shipped -> delivered   (physical)

``cancelled`` and ``refunded`` are reachable from every non-terminal state.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, FrozenSet, Set

from storybook_fulfillment.common.errors import InvalidTransitionError, OrderNotFoundError
from storybook_fulfillment.orders.models import Order, OrderStatus, utcnow
from storybook_fulfillment.orders.repository import OrderRepository
from storybook_fulfillment.pdf_generation.specs import Channel

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
)

_FORWARD_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING_PAYMENT: {OrderStatus.PAYMENT_RECEIVED},
    OrderStatus.PAYMENT_RECEIVED: {OrderStatus.PROCESSING},
    OrderStatus.PROCESSING: {OrderStatus.GENERATING_PDF},
    OrderStatus.GENERATING_PDF: {OrderStatus.PDF_READY},
    OrderStatus.PDF_READY: {OrderStatus.COMPLETED, OrderStatus.SUBMITTED_TO_PRINTER},
    OrderStatus.SUBMITTED_TO_PRINTER: {OrderStatus.IN_PRODUCTION},
    OrderStatus.IN_PRODUCTION: {OrderStatus.SHIPPED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
}

_ALLOWED_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    status: (
        set()
        if status in TERMINAL_STATUSES
        else _FORWARD_TRANSITIONS.get(status, set()) | {OrderStatus.CANCELLED, OrderStatus.REFUNDED}
    )
    for status in OrderStatus
}

# Statuses each channel may never enter.
_CHANNEL_EXCLUDED: Dict[Channel, FrozenSet[OrderStatus]] = {
    Channel.DIGITAL: frozenset(
        {
            OrderStatus.SUBMITTED_TO_PRINTER,
            OrderStatus.IN_PRODUCTION,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
        }
    ),
    Channel.PHYSICAL: frozenset({OrderStatus.COMPLETED}),
}

# Position of each status along the lifecycle. Digital completion sits where
# the print hand-off would.
_RANK: Dict[OrderStatus, int] = {
    OrderStatus.PENDING_PAYMENT: 0,
    OrderStatus.PAYMENT_RECEIVED: 1,
    OrderStatus.PROCESSING: 2,
    OrderStatus.GENERATING_PDF: 3,
    OrderStatus.PDF_READY: 4,
    OrderStatus.COMPLETED: 5,
    OrderStatus.SUBMITTED_TO_PRINTER: 5,
    OrderStatus.IN_PRODUCTION: 6,
    OrderStatus.SHIPPED: 7,
    OrderStatus.DELIVERED: 8,
    OrderStatus.CANCELLED: 9,
    OrderStatus.REFUNDED: 9,
}


def can_transition(
    current: OrderStatus | str,
    target: OrderStatus | str,
    channel: Channel | str | None = None,
) -> bool:
    """Without ``channel`` only the lifecycle order is checked."""
    target = OrderStatus(target)
    if channel is not None and target in _CHANNEL_EXCLUDED[Channel(channel)]:
        return False
    return target in _ALLOWED_TRANSITIONS[OrderStatus(current)]


def is_terminal(status: OrderStatus | str) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def status_rank(status: OrderStatus | str) -> int:
    return _RANK[OrderStatus(status)]


def is_stale(current: OrderStatus | str, target: OrderStatus | str) -> bool:
    """True when ``target`` is at or behind ``current`` in the lifecycle."""
    return is_terminal(current) or status_rank(target) <= status_rank(current)


class OrderStateMachine:
    """
    Applies validated transitions to stored orders.

    Every write is a compare-and-swap on the status the transition was
    validated against, so two writers racing on the same order cannot both
    win. A lost race surfaces as :class:`InvalidTransitionError`.
    """

    def __init__(self, repository: OrderRepository) -> None:
        self.repository = repository

    def can_transition(self, order: Order, target: OrderStatus | str) -> bool:
        return can_transition(order.status, target, order.channel)

    def transition(
        self,
        order_id: str,
        target: OrderStatus | str,
        **changes: Any,
    ) -> Order:
        order = self.repository.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return self.apply(order, target, **changes)

    def apply(self, order: Order, target: OrderStatus | str, **changes: Any) -> Order:
        target = OrderStatus(target)
        if not can_transition(order.status, target, order.channel):
            logger.warning(
                "Rejected order transition",
                extra={
                    "order_id": order.id,
                    "channel": order.channel.value,
                    "from_status": order.status.value,
                    "to_status": target.value,
                },
            )
            raise InvalidTransitionError(order.status.value, target.value, order_id=order.id)

        updates: dict[str, Any] = {"status": target, "updated_at": utcnow(), **changes}
        if target in TERMINAL_STATUSES and "completed_at" not in updates:
            updates["completed_at"] = updates["updated_at"]

        updated = self.repository.compare_and_swap(
            order.id,
            expected_status=order.status,
            changes=updates,
        )
        if updated is None:
            current = self.repository.get(order.id)
            current_status = current.status.value if current is not None else "missing"
            raise InvalidTransitionError(current_status, target.value, order_id=order.id)

        logger.info(
            "Order transitioned",
            extra={"order_id": order.id, "from_status": order.status.value, "to_status": target.value},
        )
        return updated

    def record_payment(self, order_id: str, *, amount_paid: int) -> Order:
        """Mark a checkout as paid. Repeating the call for a paid order is a no-op."""
        order = self.repository.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if order.status in {OrderStatus.CANCELLED, OrderStatus.REFUNDED}:
            raise InvalidTransitionError(
                order.status.value, OrderStatus.PAYMENT_RECEIVED.value, order_id=order.id
            )
        if order.status is not OrderStatus.PENDING_PAYMENT:
            return order
        return self.apply(order, OrderStatus.PAYMENT_RECEIVED, amount_paid=int(amount_paid))
