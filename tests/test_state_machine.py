from __future__ import annotations

import itertools

import pytest

from storybook_fulfillment.common.errors import InvalidTransitionError, OrderNotFoundError
from storybook_fulfillment.orders import (
    InMemoryOrderRepository,
    OrderStateMachine,
    OrderStatus,
    can_transition,
    is_stale,
    is_terminal,
)
from storybook_fulfillment.pdf_generation import Channel


def test_forward_path_for_digital_and_physical_orders() -> None:
    assert can_transition(OrderStatus.PENDING_PAYMENT, OrderStatus.PAYMENT_RECEIVED)
    assert can_transition(OrderStatus.PAYMENT_RECEIVED, OrderStatus.PROCESSING)
    assert can_transition(OrderStatus.PROCESSING, OrderStatus.GENERATING_PDF)
    assert can_transition(OrderStatus.GENERATING_PDF, OrderStatus.PDF_READY)
    assert can_transition(OrderStatus.PDF_READY, OrderStatus.COMPLETED)
    assert can_transition(OrderStatus.PDF_READY, OrderStatus.SUBMITTED_TO_PRINTER)
    assert can_transition(OrderStatus.SUBMITTED_TO_PRINTER, OrderStatus.IN_PRODUCTION)
    assert can_transition(OrderStatus.IN_PRODUCTION, OrderStatus.SHIPPED)
    assert can_transition(OrderStatus.SHIPPED, OrderStatus.DELIVERED)


def test_backward_and_skipping_transitions_are_rejected() -> None:
    assert not can_transition(OrderStatus.PDF_READY, OrderStatus.PROCESSING)
    assert not can_transition(OrderStatus.PAYMENT_RECEIVED, OrderStatus.PDF_READY)
    assert not can_transition(OrderStatus.SUBMITTED_TO_PRINTER, OrderStatus.SHIPPED)
    assert not can_transition(OrderStatus.DELIVERED, OrderStatus.SHIPPED)


def test_terminal_statuses_have_no_exits() -> None:
    for status in (OrderStatus.COMPLETED, OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED):
        assert is_terminal(status)
        assert not any(can_transition(status, target) for target in OrderStatus)


def test_cancellation_allowed_from_any_non_terminal_status() -> None:
    assert can_transition(OrderStatus.PENDING_PAYMENT, OrderStatus.CANCELLED)
    assert can_transition(OrderStatus.IN_PRODUCTION, OrderStatus.CANCELLED)
    assert can_transition(OrderStatus.PROCESSING, OrderStatus.REFUNDED)


def test_is_stale_compares_lifecycle_position() -> None:
    assert is_stale(OrderStatus.SHIPPED, OrderStatus.IN_PRODUCTION)
    assert is_stale(OrderStatus.IN_PRODUCTION, OrderStatus.IN_PRODUCTION)
    assert not is_stale(OrderStatus.SUBMITTED_TO_PRINTER, OrderStatus.SHIPPED)
    assert is_stale(OrderStatus.DELIVERED, OrderStatus.CANCELLED)


def test_transition_persists_and_stamps_completion(add_order, repository: InMemoryOrderRepository) -> None:
    add_order(status=OrderStatus.PDF_READY)
    machine = OrderStateMachine(repository)

    updated = machine.transition("order-1", OrderStatus.COMPLETED, download_url="https://x/book.pdf")

    assert updated.status is OrderStatus.COMPLETED
    assert updated.completed_at is not None
    assert repository.get("order-1").download_url == "https://x/book.pdf"


def test_illegal_transition_raises_and_leaves_order_untouched(
    add_order, repository: InMemoryOrderRepository
) -> None:
    add_order(status=OrderStatus.PAYMENT_RECEIVED)
    machine = OrderStateMachine(repository)

    with pytest.raises(InvalidTransitionError) as excinfo:
        machine.transition("order-1", OrderStatus.COMPLETED)

    assert excinfo.value.current == "payment_received"
    assert repository.get("order-1").status is OrderStatus.PAYMENT_RECEIVED


def test_apply_detects_a_concurrent_writer(add_order, repository: InMemoryOrderRepository) -> None:
    stale_view = add_order(status=OrderStatus.PAYMENT_RECEIVED)
    machine = OrderStateMachine(repository)
    machine.apply(stale_view, OrderStatus.PROCESSING)

    with pytest.raises(InvalidTransitionError):
        machine.apply(stale_view, OrderStatus.PROCESSING)


def test_transition_unknown_order() -> None:
    with pytest.raises(OrderNotFoundError):
        OrderStateMachine(InMemoryOrderRepository()).transition("missing", OrderStatus.PROCESSING)


def test_record_payment_is_idempotent(add_order, repository: InMemoryOrderRepository) -> None:
    add_order(status=OrderStatus.PENDING_PAYMENT, amount_paid=0)
    machine = OrderStateMachine(repository)

    paid = machine.record_payment("order-1", amount_paid=2999)
    again = machine.record_payment("order-1", amount_paid=2999)

    assert paid.status is OrderStatus.PAYMENT_RECEIVED
    assert paid.amount_paid == 2999
    assert again.status is OrderStatus.PAYMENT_RECEIVED


def test_record_payment_rejects_cancelled_orders(add_order, repository: InMemoryOrderRepository) -> None:
    add_order(status=OrderStatus.CANCELLED, channel=Channel.DIGITAL)

    with pytest.raises(InvalidTransitionError):
        OrderStateMachine(repository).record_payment("order-1", amount_paid=100)


_ILLEGAL_PAIRS = [
    (current, target)
    for current, target in itertools.product(OrderStatus, OrderStatus)
    if not can_transition(current, target)
]


@pytest.mark.parametrize(("current", "target"), _ILLEGAL_PAIRS, ids=lambda status: status.value)
def test_every_illegal_pair_is_rejected_and_order_stays_put(
    add_order, repository: InMemoryOrderRepository, current: OrderStatus, target: OrderStatus
) -> None:
    add_order(status=current, channel=Channel.PHYSICAL)

    with pytest.raises(InvalidTransitionError):
        OrderStateMachine(repository).transition("order-1", target)

    assert repository.get("order-1").status is current


@pytest.mark.parametrize(
    ("channel", "current", "target"),
    [
        (Channel.DIGITAL, OrderStatus.PDF_READY, OrderStatus.SUBMITTED_TO_PRINTER),
        (Channel.DIGITAL, OrderStatus.SUBMITTED_TO_PRINTER, OrderStatus.IN_PRODUCTION),
        (Channel.DIGITAL, OrderStatus.IN_PRODUCTION, OrderStatus.SHIPPED),
        (Channel.DIGITAL, OrderStatus.SHIPPED, OrderStatus.DELIVERED),
        (Channel.PHYSICAL, OrderStatus.PDF_READY, OrderStatus.COMPLETED),
    ],
)
def test_statuses_of_the_other_channel_are_rejected(
    add_order, repository: InMemoryOrderRepository, channel: Channel, current: OrderStatus, target: OrderStatus
) -> None:
    add_order(status=current, channel=channel)

    assert can_transition(current, target)
    assert not can_transition(current, target, channel)
    with pytest.raises(InvalidTransitionError):
        OrderStateMachine(repository).transition("order-1", target)
    assert repository.get("order-1").status is current


def test_physical_order_hands_off_to_printer(add_order, repository: InMemoryOrderRepository) -> None:
    add_order(status=OrderStatus.PDF_READY, channel=Channel.PHYSICAL)

    updated = OrderStateMachine(repository).transition("order-1", OrderStatus.SUBMITTED_TO_PRINTER)

    assert updated.status is OrderStatus.SUBMITTED_TO_PRINTER
    assert updated.completed_at is None
