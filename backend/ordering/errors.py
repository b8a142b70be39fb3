# backend/ordering/errors.py
"""
Domain error taxonomy for the ordering core.

Every failure that crosses a service boundary is one of these classes, so
routes (and the HTTP client on the other side of the wire) can map it to a
stable error code instead of parsing messages.

PROPAGATION:
- InsufficientStock / NetworkFailure: recovered by the optimistic cart with
  an inverse delta, then surfaced to the user as a message.
- LimitExceeded: not an error dialog; the order exists in approval_pending
  and waits for an explicit approve-despite-limit.
- IllegalTransition / AllocationConflict: surfaced as-is, never retried.
  Retrying a transition could double-apply its stock effect.
"""

from __future__ import annotations


class OrderingError(Exception):
    """Base class for typed ordering failures."""

    code = "ORDERING_ERROR"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class InsufficientStock(OrderingError):
    """A decrement asked for more packs than are available."""

    code = "INSUFFICIENT_STOCK"
    http_status = 409


class LimitExceeded(OrderingError):
    """
    Monthly budget or order-count ceiling reached.

    Non-fatal: carries the pending order and the guard evaluation so the
    caller can present the override workflow.
    """

    code = "LIMIT_EXCEEDED"
    http_status = 202

    def __init__(self, message: str, details: dict | None = None, order=None, evaluation=None):
        super().__init__(message, details)
        self.order = order
        self.evaluation = evaluation


class IllegalTransition(OrderingError):
    """Status change not permitted from the order's current status."""

    code = "ILLEGAL_TRANSITION"
    http_status = 409


class AllocationConflict(OrderingError):
    """Product is not (or no longer) allocated to the store."""

    code = "ALLOCATION_CONFLICT"
    http_status = 409


class NotFound(OrderingError):
    code = "NOT_FOUND"
    http_status = 404


class StockUnavailable(OrderingError):
    """Client-side: an optimistic cart change could not be backed by stock."""

    code = "STOCK_UNAVAILABLE"
    http_status = 409


class NetworkFailure(OrderingError):
    """Client-side: transport failure while confirming an optimistic change."""

    code = "NETWORK_FAILURE"
    http_status = 503


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        InsufficientStock,
        LimitExceeded,
        IllegalTransition,
        AllocationConflict,
        NotFound,
        StockUnavailable,
        NetworkFailure,
    )
}
