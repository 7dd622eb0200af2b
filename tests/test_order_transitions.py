"""Unit tests for the order transition table."""
from __future__ import annotations

import pytest

from storeadmin.auth import Actor, ActorRole
from storeadmin.errors import BadRequest, Conflict, Forbidden
from storeadmin.models import Order
from storeadmin.orders import (
    CANCELLED,
    COMPLETED,
    PENDING,
    PROCESSING,
    REJECTED,
    TRANSITIONS,
    Event,
    open_order,
    resolve,
    transition,
)

ADMIN = Actor(1, "admin@example.com", "Ada Admin", ActorRole.ADMIN, "admin", manager_id=10)
MANAGER = Actor(2, "manager@example.com", "Max Manager", ActorRole.MANAGER, "manager", manager_id=20)
ORPHAN_MANAGER = Actor(3, "orphan@example.com", "No Profile", ActorRole.MANAGER)
CUSTOMER = Actor(4, "alice@example.com", "Alice", ActorRole.USER, customer_id=40)


class RecordingTransaction:
    def __init__(self) -> None:
        self.added = []

    def add(self, obj) -> None:
        self.added.append(obj)


def _order(status: str = PENDING, payment_status: str = "Pending") -> Order:
    return Order(customer_id=40, status=status, payment_status=payment_status)


def test_open_order_records_initial_row() -> None:
    tx = RecordingTransaction()
    order = Order(customer_id=40)

    entry = open_order(tx, order, CUSTOMER)

    assert order.status == PENDING
    assert order.payment_status == "Pending"
    assert tx.added == [entry]
    assert entry.previous_status is None
    assert entry.new_status == PENDING
    assert entry.manager_id is None


def test_pay_moves_to_processing_and_records_manager() -> None:
    tx = RecordingTransaction()
    order = _order()

    entry = transition(tx, order, Event.PAY, MANAGER)

    assert order.status == PROCESSING
    assert order.payment_status == "Paid"
    assert order.payment_date is not None
    assert (entry.previous_status, entry.new_status, entry.manager_id) == (PENDING, PROCESSING, 20)


def test_paying_unpaid_processing_order_keeps_status() -> None:
    tx = RecordingTransaction()
    order = _order(PROCESSING)

    assert transition(tx, order, Event.PAY, ADMIN) is None
    assert order.payment_status == "Paid"
    assert tx.added == []


def test_deliver_from_pending_when_paid() -> None:
    tx = RecordingTransaction()
    order = _order(PENDING, "Paid")

    entry = transition(tx, order, Event.DELIVER, ADMIN)

    assert order.status == COMPLETED
    assert entry.previous_status == PENDING


@pytest.mark.parametrize(
    "order, event, actor, error",
    [
        (_order(payment_status="Paid"), Event.PAY, ADMIN, Conflict),
        (_order(COMPLETED, "Paid"), Event.DELIVER, ADMIN, Conflict),
        (_order(CANCELLED), Event.CANCEL, CUSTOMER, Conflict),
        (_order(), Event.DELIVER, MANAGER, BadRequest),
        (_order(COMPLETED, "Paid"), Event.CANCEL, CUSTOMER, BadRequest),
        (_order(CANCELLED), Event.PAY, ADMIN, BadRequest),
        (_order(), Event.PAY, CUSTOMER, Forbidden),
        (_order(), Event.PAY, ORPHAN_MANAGER, Forbidden),
    ],
)
def test_rejected_transitions_leave_order_untouched(order, event, actor, error) -> None:
    tx = RecordingTransaction()
    before = (order.status, order.payment_status)

    with pytest.raises(error):
        transition(tx, order, event, actor)

    assert (order.status, order.payment_status) == before
    assert tx.added == []


def test_cancelled_order_cannot_be_paid_message() -> None:
    with pytest.raises(BadRequest) as excinfo:
        resolve(_order(CANCELLED), Event.PAY, ADMIN)

    assert excinfo.value.message == "Cannot pay an order that is Cancelled"


def test_set_status_out_of_terminal_state_is_admin_only() -> None:
    for status in (COMPLETED, CANCELLED, REJECTED):
        with pytest.raises(Forbidden):
            resolve(_order(status, "Paid"), Event.SET_STATUS, MANAGER, PENDING)
        assert resolve(_order(status, "Paid"), Event.SET_STATUS, ADMIN, PENDING) == PENDING


def test_set_status_validation() -> None:
    with pytest.raises(BadRequest):
        resolve(_order(), Event.SET_STATUS, ADMIN, "Shipped")
    with pytest.raises(Conflict):
        resolve(_order(), Event.SET_STATUS, ADMIN, PENDING)
    with pytest.raises(BadRequest):
        resolve(_order(), Event.SET_STATUS, MANAGER, COMPLETED)


def test_admin_may_complete_unpaid_order() -> None:
    assert resolve(_order(), Event.SET_STATUS, ADMIN, COMPLETED) == COMPLETED


def test_customer_cancel_records_no_manager() -> None:
    tx = RecordingTransaction()
    order = _order(PROCESSING, "Paid")

    entry = transition(tx, order, Event.CANCEL, CUSTOMER)

    assert order.status == CANCELLED
    assert entry.manager_id is None


def test_table_never_leaves_terminal_state_except_admin_set_status() -> None:
    for (status, event, role) in TRANSITIONS:
        if status in (COMPLETED, CANCELLED, REJECTED):
            assert (event, role) == (Event.SET_STATUS, ActorRole.ADMIN)
