# Overview: Optimistic client cart; applies quantity changes locally and undoes exactly its own delta on failure.

"""
Cart Aggregate (client side)

================================================================================
OPTIMISTIC CONCURRENCY
================================================================================

    change_quantity(p, +2)
      1. precheck against last-known stock      (no remote call on failure)
      2. apply +2 locally                       (under the lock)
      3. gateway.change_quantity(store, p, +2)  (outside the lock)
      4a. success: reconcile with the server's answer
      4b. failure: apply -2 locally, raise

INVARIANT: local state equals the server state, or differs from it by
exactly the deltas still in flight. A rollback applies the inverse of its
own command only; it never re-fetches and diffs, so changes to other lines
(or other in-flight changes to the same line) are untouched.

Reconciling a success takes the server's quantity/stock for a product only
when no other change to that product is still in flight; otherwise the
pending delta would be counted twice.
================================================================================
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Protocol

from ..errors import InsufficientStock, StockUnavailable
from ..validation import ValidationError
from .records import CartLineState, CartSnapshot, LineConfirmation, ProductSnapshot

logger = logging.getLogger(__name__)


class CartGateway(Protocol):
    def change_quantity(self, store_id: int, product_id: int, delta: int) -> LineConfirmation:
        ...


@dataclass(frozen=True)
class QuantityDelta:
    """Reversible cart command."""
    product_id: int
    delta: int

    def inverse(self) -> QuantityDelta:
        return QuantityDelta(self.product_id, -self.delta)


class CartAggregate:
    def __init__(self, gateway: CartGateway, store_id: int):
        self._gateway = gateway
        self.store_id = store_id
        self._lock = threading.RLock()
        self._quantities: dict[int, int] = {}
        self._prices: dict[int, int] = {}
        self._available: dict[int, int] = {}
        self._in_flight: list[QuantityDelta] = []

    # --- state ----------------------------------------------------------------

    def quantity(self, product_id: int) -> int:
        with self._lock:
            return self._quantities.get(product_id, 0)

    def available(self, product_id: int) -> int:
        """Last-known remaining stock at the store, net of local changes."""
        with self._lock:
            return self._available.get(product_id, 0)

    @property
    def lines(self) -> list[CartLineState]:
        with self._lock:
            return [
                CartLineState(
                    product_id=pid,
                    quantity=qty,
                    unit_price_cents=self._prices.get(pid, 0),
                )
                for pid, qty in sorted(self._quantities.items())
            ]

    @property
    def total_cents(self) -> int:
        return sum(line.line_total_cents for line in self.lines)

    @property
    def in_flight(self) -> tuple[QuantityDelta, ...]:
        with self._lock:
            return tuple(self._in_flight)

    def seed_stock(self, products: Iterable[ProductSnapshot]) -> None:
        """Take prices and stock levels from a catalog read."""
        with self._lock:
            for product in products:
                self._prices[product.product_id] = product.price_cents
                if not self._has_pending(product.product_id):
                    self._available[product.product_id] = product.available_packs

    def load(self, snapshot: CartSnapshot) -> None:
        """
        Replace local lines with a server snapshot.

        Refused while deltas are in flight: the snapshot may or may not
        include them, so replacing would break the rollback invariant.
        """
        with self._lock:
            if self._in_flight:
                raise RuntimeError("Cannot reload the cart while changes are in flight")
            self._quantities = {line.product_id: line.quantity for line in snapshot.lines if line.quantity}
            for line in snapshot.lines:
                self._prices[line.product_id] = line.unit_price_cents

    def clear(self, *, released: bool = False) -> None:
        """
        Empty the local cart after the server converted it into an order.

        released=True returns the line quantities to local stock (the server
        released the reservations); otherwise the stock stays taken.
        """
        with self._lock:
            if self._in_flight:
                raise RuntimeError("Cannot clear the cart while changes are in flight")
            if released:
                for pid, qty in self._quantities.items():
                    self._available[pid] = self._available.get(pid, 0) + qty
            self._quantities = {}

    # --- commands -------------------------------------------------------------

    def _has_pending(self, product_id: int) -> bool:
        return any(cmd.product_id == product_id for cmd in self._in_flight)

    def _precheck(self, cmd: QuantityDelta) -> None:
        if not isinstance(cmd.delta, int) or isinstance(cmd.delta, bool) or cmd.delta == 0:
            raise ValidationError("delta must be a non-zero integer")
        if cmd.delta > 0 and cmd.delta > self._available.get(cmd.product_id, 0):
            raise StockUnavailable(
                f"Only {self._available.get(cmd.product_id, 0)} pack(s) of product "
                f"{cmd.product_id} available",
                details={
                    "product_id": cmd.product_id,
                    "requested": cmd.delta,
                    "available": self._available.get(cmd.product_id, 0),
                },
            )
        if self._quantities.get(cmd.product_id, 0) + cmd.delta < 0:
            raise ValidationError(
                f"Cannot remove {-cmd.delta} pack(s) of product {cmd.product_id}; "
                f"cart holds {self._quantities.get(cmd.product_id, 0)}"
            )

    def _apply(self, cmd: QuantityDelta) -> None:
        quantity = self._quantities.get(cmd.product_id, 0) + cmd.delta
        if quantity:
            self._quantities[cmd.product_id] = quantity
        else:
            self._quantities.pop(cmd.product_id, None)
        self._available[cmd.product_id] = self._available.get(cmd.product_id, 0) - cmd.delta

    def _settle(self, cmd: QuantityDelta) -> None:
        self._in_flight = [pending for pending in self._in_flight if pending is not cmd]

    def _rollback(self, cmd: QuantityDelta, reason) -> None:
        with self._lock:
            self._apply(cmd.inverse())
            self._settle(cmd)
        logger.warning(
            "Rolled back cart change %+d for product %s at store %s: %s",
            cmd.delta, cmd.product_id, self.store_id, reason,
        )

    def _reconcile(self, cmd: QuantityDelta, confirmation: LineConfirmation) -> None:
        with self._lock:
            self._settle(cmd)
            for line in confirmation.cart.lines:
                self._prices[line.product_id] = line.unit_price_cents
            if self._has_pending(cmd.product_id):
                return
            if confirmation.quantity:
                self._quantities[cmd.product_id] = confirmation.quantity
            else:
                self._quantities.pop(cmd.product_id, None)
            self._available[cmd.product_id] = confirmation.available_packs

    def change_quantity(self, product_id: int, delta: int) -> LineConfirmation:
        """
        Optimistically change one line by delta packs and confirm remotely.

        Raises:
            ValidationError: zero delta, or removing more than the line holds
            StockUnavailable: not enough stock (local precheck or server refusal)
            NetworkFailure: transport failure or server error
            OrderingError: any other typed server refusal (e.g. AllocationConflict)
        """
        cmd = QuantityDelta(product_id, delta)
        with self._lock:
            self._precheck(cmd)
            self._apply(cmd)
            self._in_flight.append(cmd)

        settled = False
        try:
            confirmation = self._gateway.change_quantity(self.store_id, product_id, delta)
            settled = True
        except InsufficientStock as exc:
            settled = True
            self._rollback(cmd, exc)
            raise StockUnavailable(exc.message, details=exc.details) from exc
        except Exception as exc:
            settled = True
            self._rollback(cmd, exc)
            raise
        finally:
            # Interrupts (KeyboardInterrupt, SystemExit) must not leave the delta applied
            if not settled:
                self._rollback(cmd, "interrupted before the server answered")

        self._reconcile(cmd, confirmation)
        return confirmation
