"""Order lifecycle: the transition table and the audit history it writes.

``transition`` is the only code path that changes ``Order.status`` once an order
exists, and every status change it makes appends exactly one ``OrderHistory``
row inside the caller's transaction.
"""
from __future__ import annotations

import enum

from .auth import STAFF, Actor, ActorRole
from .database import Transaction
from .errors import BadRequest, Conflict, Forbidden
from .models import ORDER_STATUSES, Order, OrderHistory, utc_now

PENDING = "Pending"
PROCESSING = "Processing"
COMPLETED = "Completed"
CANCELLED = "Cancelled"
REJECTED = "Rejected"

ACTIVE = (PENDING, PROCESSING)
TERMINAL = (COMPLETED, CANCELLED, REJECTED)

PAID = "Paid"
UNPAID = "Pending"


class Event(str, enum.Enum):
    PAY = "pay"
    DELIVER = "deliver"
    CANCEL = "cancel"
    SET_STATUS = "set_status"


# Marks a set_status transition whose destination is supplied by the caller.
TARGET = object()


def _build_table() -> dict[tuple[str, Event, ActorRole], object]:
    table: dict[tuple[str, Event, ActorRole], object] = {}
    for status in ACTIVE:
        for role in STAFF:
            table[(status, Event.PAY, role)] = PROCESSING
            table[(status, Event.DELIVER, role)] = COMPLETED
            table[(status, Event.SET_STATUS, role)] = TARGET
        for role in ActorRole:
            table[(status, Event.CANCEL, role)] = CANCELLED
    for status in TERMINAL:
        table[(status, Event.SET_STATUS, ActorRole.ADMIN)] = TARGET
    return table


TRANSITIONS = _build_table()

EVENT_ROLES = {
    event: frozenset(role for (_, ev, role) in TRANSITIONS if ev is event) for event in Event
}

_ALREADY_APPLIED = {
    Event.PAY: "Order already paid",
    Event.DELIVER: "Order already delivered",
    Event.CANCEL: "Order already cancelled",
}


def record_history(
    tx: Transaction,
    order: Order,
    previous_status: str | None,
    new_status: str,
    manager_id: int | None,
) -> OrderHistory:
    entry = OrderHistory(
        order=order,
        manager_id=manager_id,
        processing_time=utc_now(),
        previous_status=previous_status,
        new_status=new_status,
    )
    tx.add(entry)
    return entry


def open_order(tx: Transaction, order: Order, actor: Actor) -> OrderHistory:
    """Write the initial ``NULL -> Pending`` history row of a new order."""
    order.status = PENDING
    order.payment_status = UNPAID
    return record_history(tx, order, None, PENDING, actor.manager_id)


def _check_already_applied(order: Order, event: Event, target: str | None) -> None:
    if event is Event.PAY and order.payment_status == PAID:
        raise Conflict(_ALREADY_APPLIED[event])
    if event is Event.DELIVER and order.status == COMPLETED:
        raise Conflict(_ALREADY_APPLIED[event])
    if event is Event.CANCEL and order.status == CANCELLED:
        raise Conflict(_ALREADY_APPLIED[event])
    if event is Event.SET_STATUS and order.status == target:
        raise Conflict(f"Order is already in '{target}' status")


def resolve(order: Order, event: Event, actor: Actor, target: str | None = None) -> str:
    """Return the status ``event`` would move ``order`` to, or raise."""
    if event is Event.SET_STATUS and target not in ORDER_STATUSES:
        raise BadRequest("Invalid new status provided")
    if actor.role not in EVENT_ROLES[event]:
        raise Forbidden("You do not have permission to perform this action")

    _check_already_applied(order, event, target)

    destination = TRANSITIONS.get((order.status, event, actor.role))
    if destination is None:
        if event is Event.SET_STATUS and order.status in TERMINAL:
            raise Forbidden(f"Cannot change status of a {order.status} order.")
        if event is Event.CANCEL and order.status == COMPLETED:
            raise BadRequest("Cannot cancel a delivered order")
        raise BadRequest(f"Cannot {event.value.replace('_', ' ')} an order that is {order.status}")
    if destination is TARGET:
        destination = target

    if event is Event.DELIVER and order.payment_status != PAID:
        raise BadRequest("Order must be paid before delivery")
    if (
        event is Event.SET_STATUS
        and destination == COMPLETED
        and order.payment_status != PAID
        and not actor.is_admin
    ):
        raise BadRequest("Order must be paid before it can be marked as Completed.")

    if actor.role in STAFF and event is not Event.CANCEL and actor.manager_id is None:
        raise Forbidden("Only a manager account can process orders")
    return destination


def transition(
    tx: Transaction,
    order: Order,
    event: Event,
    actor: Actor,
    target: str | None = None,
) -> OrderHistory | None:
    """Apply ``event`` to ``order`` and append its history row.

    Returns the new history row, or ``None`` when the event leaves the status
    unchanged (paying an order that is already Processing).
    """
    destination = resolve(order, event, actor, target)

    if event is Event.PAY:
        order.payment_status = PAID
        order.payment_date = utc_now()

    previous = order.status
    if destination == previous:
        return None
    order.status = destination
    return record_history(tx, order, previous, destination, actor.manager_id)
