# Status enums and lifecycle transition tables
# Shared contract for the pooling, run and settlement operations

from enum import Enum
from typing import Dict, FrozenSet, Union

from .errors import FailedPreconditionError


class ServiceWindow(str, Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"


class OrderStatus(str, Enum):
    REQUESTED = "requested"
    POOLED = "pooled"
    READY_TO_ASSIGN = "readyToAssign"
    CLAIMED = "claimed"
    IN_PROGRESS = "inProgress"
    DELIVERED = "delivered"
    PAID = "paid"
    CLOSED = "closed"
    EXPIRED = "expired"
    CANCELLED_BUYER = "cancelledBuyer"
    CANCELLED_DASHER = "cancelledDasher"
    DISPUTED = "disputed"


class PairGroupStatus(str, Enum):
    OPEN = "open"
    FILLED = "filled"


class RunStatus(str, Enum):
    READY_TO_ASSIGN = "readyToAssign"
    CLAIMED = "claimed"
    IN_PROGRESS = "inProgress"
    DELIVERED = "delivered"
    PAID = "paid"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class DeliveryRequestStatus(str, Enum):
    OPEN = "open"
    ASSIGNED = "assigned"
    EXPIRED = "expired"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    CAPTURED = "captured"
    PENDING = "pending"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class DeliveryResponse(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"


ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.REQUESTED: frozenset({OrderStatus.POOLED, OrderStatus.CANCELLED_BUYER}),
    OrderStatus.POOLED: frozenset({OrderStatus.READY_TO_ASSIGN, OrderStatus.CANCELLED_BUYER}),
    OrderStatus.READY_TO_ASSIGN: frozenset({
        OrderStatus.CLAIMED, OrderStatus.CANCELLED_DASHER, OrderStatus.EXPIRED,
    }),
    OrderStatus.CLAIMED: frozenset({OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED_DASHER}),
    OrderStatus.IN_PROGRESS: frozenset({OrderStatus.DELIVERED, OrderStatus.DISPUTED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.PAID}),
    OrderStatus.PAID: frozenset({OrderStatus.CLOSED}),
}

# Single-order broadcast path; never pooled, so it skips the run states
BROADCAST_ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.REQUESTED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED_BUYER}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.PAID}),
    OrderStatus.PAID: frozenset({OrderStatus.CLOSED}),
}

TERMINAL_ORDER_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.CANCELLED_BUYER,
    OrderStatus.CANCELLED_DASHER,
    OrderStatus.EXPIRED,
    OrderStatus.DISPUTED,
    OrderStatus.CLOSED,
})

BUYER_CANCELLABLE_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.REQUESTED, OrderStatus.POOLED,
})

RUN_TRANSITIONS: Dict[RunStatus, FrozenSet[RunStatus]] = {
    RunStatus.READY_TO_ASSIGN: frozenset({RunStatus.CLAIMED, RunStatus.CANCELLED}),
    RunStatus.CLAIMED: frozenset({RunStatus.IN_PROGRESS, RunStatus.CANCELLED}),
    RunStatus.IN_PROGRESS: frozenset({RunStatus.DELIVERED, RunStatus.CANCELLED}),
    RunStatus.DELIVERED: frozenset({RunStatus.PAID, RunStatus.CANCELLED}),
    RunStatus.PAID: frozenset({RunStatus.CLOSED, RunStatus.CANCELLED}),
}

TERMINAL_RUN_STATUSES: FrozenSet[RunStatus] = frozenset({RunStatus.CLOSED, RunStatus.CANCELLED})


def _coerce(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        raise FailedPreconditionError(f"Unknown {enum_cls.__name__} value: {value!r}")


def advance_order_status(current: Union[str, OrderStatus], target: Union[str, OrderStatus],
                         broadcast: bool = False) -> OrderStatus:
    """
    Validate one order status hop

    Args:
        current: stored status
        target: requested status
        broadcast: use the single-order broadcast table

    Returns:
        The target status

    Raises:
        FailedPreconditionError: the hop is not a legal transition
    """
    current = _coerce(OrderStatus, current)
    target = _coerce(OrderStatus, target)
    table = BROADCAST_ORDER_TRANSITIONS if broadcast else ORDER_TRANSITIONS
    if target not in table.get(current, frozenset()):
        raise FailedPreconditionError(
            f"Order cannot move from {current.value} to {target.value}"
        )
    return target


def advance_order_path(current: Union[str, OrderStatus], *path: OrderStatus) -> OrderStatus:
    """Validate a chain of hops applied within one transaction."""
    status = _coerce(OrderStatus, current)
    for step in path:
        status = advance_order_status(status, step)
    return status


def advance_run_status(current: Union[str, RunStatus], target: Union[str, RunStatus]) -> RunStatus:
    """Validate one run status hop, raising FailedPreconditionError when illegal."""
    current = _coerce(RunStatus, current)
    target = _coerce(RunStatus, target)
    if target not in RUN_TRANSITIONS.get(current, frozenset()):
        raise FailedPreconditionError(
            f"Run cannot move from {current.value} to {target.value}"
        )
    return target


def is_terminal_order(status: Union[str, OrderStatus]) -> bool:
    return _coerce(OrderStatus, status) in TERMINAL_ORDER_STATUSES
