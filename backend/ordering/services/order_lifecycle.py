# Overview: Closed order status set and the transition table with each edge's stock effect.

"""
Order Approval State Machine

================================================================================
STATE MACHINE
================================================================================

    approval_pending --> confirmed <--> on_hold
                            |
                            v
                       processing --> shipped --> delivered

    Any non-terminal state --> rejected | sedis_rejected

    Terminal: delivered, rejected, sedis_rejected

STOCK EFFECTS (applied by order_service inside the transition transaction):
- COMMIT: decrement every line; re-validates availability and may fail
  with InsufficientStock, in which case the status does not move.
- RELEASE: increment every line back (confirmed -> on_hold).
- RELEASE_IF_COMMITTED: release only when the order currently holds a
  decrement (rejections). An approval_pending order never holds one.
- NONE: fulfilment steps; stock was already taken at confirmation.

RULES:
1. The table below is exhaustive. A pair that is not listed is an
   IllegalTransition, including a transition to the current status.
2. Terminal states have no outgoing edges.
3. confirmed -> confirmed is illegal, so confirming twice can never
   decrement twice.
================================================================================
"""

from __future__ import annotations

from enum import Enum

from ..errors import IllegalTransition
from ..validation import ValidationError


class OrderStatus(str, Enum):
    APPROVAL_PENDING = "approval_pending"
    CONFIRMED = "confirmed"
    ON_HOLD = "on_hold"
    REJECTED = "rejected"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    SEDIS_REJECTED = "sedis_rejected"


class StockEffect(str, Enum):
    NONE = "none"
    COMMIT = "commit"
    RELEASE = "release"
    RELEASE_IF_COMMITTED = "release_if_committed"


VALID_STATUSES = {s.value for s in OrderStatus}

TERMINAL = frozenset({
    OrderStatus.DELIVERED,
    OrderStatus.REJECTED,
    OrderStatus.SEDIS_REJECTED,
})

_REJECTIONS = (OrderStatus.REJECTED, OrderStatus.SEDIS_REJECTED)


def _with_rejections(edges: dict) -> dict:
    for status in _REJECTIONS:
        edges[status] = StockEffect.RELEASE_IF_COMMITTED
    return edges


TRANSITIONS: dict[OrderStatus, dict[OrderStatus, StockEffect]] = {
    OrderStatus.APPROVAL_PENDING: _with_rejections({
        OrderStatus.CONFIRMED: StockEffect.COMMIT,
    }),
    OrderStatus.CONFIRMED: _with_rejections({
        OrderStatus.ON_HOLD: StockEffect.RELEASE,
        OrderStatus.PROCESSING: StockEffect.NONE,
    }),
    OrderStatus.ON_HOLD: _with_rejections({
        OrderStatus.CONFIRMED: StockEffect.COMMIT,
    }),
    OrderStatus.PROCESSING: _with_rejections({
        OrderStatus.SHIPPED: StockEffect.NONE,
    }),
    OrderStatus.SHIPPED: _with_rejections({
        OrderStatus.DELIVERED: StockEffect.NONE,
    }),
    OrderStatus.DELIVERED: {},
    OrderStatus.REJECTED: {},
    OrderStatus.SEDIS_REJECTED: {},
}


def validate_status(status) -> OrderStatus:
    """
    Coerce a status string into OrderStatus.

    Raises:
        ValidationError: status is not one of the closed set
    """
    try:
        return OrderStatus(status)
    except ValueError:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        ) from None


def is_terminal(status) -> bool:
    return validate_status(status) in TERMINAL


def can_transition(from_status, to_status) -> bool:
    return validate_status(to_status) in TRANSITIONS[validate_status(from_status)]


def require_transition(from_status, to_status) -> StockEffect:
    """
    Look up the stock effect of from_status -> to_status.

    Raises:
        IllegalTransition: the pair is not in the table
    """
    src = validate_status(from_status)
    dst = validate_status(to_status)
    effect = TRANSITIONS[src].get(dst)
    if effect is None:
        raise IllegalTransition(
            f"Cannot move order from '{src.value}' to '{dst.value}'",
            details={
                "from_status": src.value,
                "to_status": dst.value,
                "allowed": sorted(s.value for s in TRANSITIONS[src]),
            },
        )
    return effect


def allowed_targets(status) -> list[str]:
    return sorted(s.value for s in TRANSITIONS[validate_status(status)])


def initial_status(evaluation) -> OrderStatus:
    """Status a freshly submitted order starts in, given the guard evaluation."""
    if evaluation.requires_override:
        return OrderStatus.APPROVAL_PENDING
    return OrderStatus.CONFIRMED
