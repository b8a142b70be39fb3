# Overview: Service-layer operations for the stock ledger; the only writer of StockLevel counters.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import InsufficientStock
from ..models import StockLevel, StockMovement
from ..validation import ValidationError
from .concurrency import guarded_add, insert_ignore, run_with_retry
"""
Stock Ledger Invariants (authoritative)

- One StockLevel row per (product_id, store_id); a missing row reads as
  zero stock.
- adjust(delta > 0) is unconstrained for RELEASE (returning reserved
  packs). A manual ADJUST may only raise available_packs up to
  total_packs; growing the total is what restock() is for.
- adjust(delta < 0) fails with InsufficientStock when |delta| exceeds
  available_packs. It is rejected whole, never clamped to what is left.
- available_packs never goes negative (guarded UPDATE + CHECK constraint).
- Adjustments are single guarded UPDATE statements, so they are atomic per
  (product, store) and commutative: concurrent callers cannot lose updates
  and the final balance does not depend on arrival order.
- Every applied adjustment appends one StockMovement in the same DB
  transaction. Refused adjustments write nothing.
"""

MOVEMENT_KINDS = {"RESTOCK", "RESERVE", "RELEASE", "COMMIT", "ADJUST"}


def get_stock_level(product_id: int, store_id: int) -> dict:
    row = (
        db.session.query(StockLevel.total_packs, StockLevel.available_packs)
        .filter_by(product_id=product_id, store_id=store_id)
        .first()
    )
    total, available = (row.total_packs, row.available_packs) if row else (0, 0)
    return {
        "product_id": product_id,
        "store_id": store_id,
        "total_packs": total,
        "available_packs": available,
    }


def get_available_packs(product_id: int, store_id: int) -> int:
    value = (
        db.session.query(StockLevel.available_packs)
        .filter_by(product_id=product_id, store_id=store_id)
        .scalar()
    )
    return int(value or 0)


def _ensure_level_row(product_id: int, store_id: int) -> None:
    insert_ignore(
        StockLevel,
        product_id=product_id,
        store_id=store_id,
        total_packs=0,
        available_packs=0,
        version_id=1,
    )


def _record_movement(
    *,
    product_id: int,
    store_id: int,
    kind: str,
    delta: int,
    reference: str | None,
) -> StockMovement:
    movement = StockMovement(
        product_id=product_id,
        store_id=store_id,
        kind=kind,
        delta=delta,
        available_after=get_available_packs(product_id, store_id),
        reference=reference,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def adjust(
    product_id: int,
    store_id: int,
    delta: int,
    *,
    kind: str = "ADJUST",
    reference: str | None = None,
) -> StockMovement:
    """
    Apply delta to available_packs of (product_id, store_id).

    Core ledger operation without retry or commit, so callers can compose
    several adjustments into one DB transaction (an order confirmation
    decrements every line or none).

    Raises:
        ValidationError: delta is zero, kind is unknown, or a positive ADJUST
            would lift available_packs above total_packs
        InsufficientStock: delta < 0 and |delta| > available_packs
    """
    if delta == 0:
        raise ValidationError("delta must be non-zero")
    if kind not in MOVEMENT_KINDS:
        raise ValidationError(f"Unknown movement kind '{kind}'")

    if delta > 0:
        _ensure_level_row(product_id, store_id)

    changed = guarded_add(
        StockLevel,
        "available_packs",
        delta,
        floor=0,
        ceiling=StockLevel.total_packs if delta > 0 and kind == "ADJUST" else None,
        extra_values={"version_id": StockLevel.version_id + 1},
        product_id=product_id,
        store_id=store_id,
    )
    if not changed:
        if delta > 0:
            level = get_stock_level(product_id, store_id)
            raise ValidationError(
                f"Adjustment of +{delta} would leave {level['available_packs'] + delta} available "
                f"of {level['total_packs']} total pack(s); use restock to add new stock"
            )
        available = get_available_packs(product_id, store_id)
        raise InsufficientStock(
            f"Insufficient stock for product {product_id} at store {store_id}: "
            f"requested {-delta}, available {available}",
            details={
                "product_id": product_id,
                "store_id": store_id,
                "requested": -delta,
                "available": available,
            },
        )

    return _record_movement(
        product_id=product_id,
        store_id=store_id,
        kind=kind,
        delta=delta,
        reference=reference,
    )


def adjust_stock(
    *,
    product_id: int,
    store_id: int,
    delta: int,
    kind: str = "ADJUST",
    reference: str | None = None,
) -> StockMovement:
    """Public adjust: retried on lock/version conflicts and committed."""
    def _op():
        movement = adjust(product_id, store_id, delta, kind=kind, reference=reference)
        db.session.commit()
        return movement

    try:
        return run_with_retry(_op)
    except InsufficientStock as exc:
        current_app.logger.warning("Stock adjustment refused: %s", exc)
        raise


def restock(
    *,
    product_id: int,
    store_id: int,
    packs: int,
    reference: str | None = None,
) -> StockMovement:
    """
    Add packs to both total_packs and available_packs.

    WHY separate from adjust(): releases return reserved packs and must not
    inflate the total; only a restock grows it.
    """
    if packs <= 0:
        raise ValidationError("packs must be > 0")

    def _op():
        _ensure_level_row(product_id, store_id)
        guarded_add(
            StockLevel,
            "available_packs",
            packs,
            floor=0,
            extra_values={
                "total_packs": StockLevel.total_packs + packs,
                "version_id": StockLevel.version_id + 1,
            },
            product_id=product_id,
            store_id=store_id,
        )
        movement = _record_movement(
            product_id=product_id,
            store_id=store_id,
            kind="RESTOCK",
            delta=packs,
            reference=reference,
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def list_movements(*, product_id: int, store_id: int, limit: int = 200) -> list[StockMovement]:
    q = StockMovement.query.filter_by(
        product_id=product_id,
        store_id=store_id,
    ).order_by(
        StockMovement.occurred_at.desc(),
        StockMovement.id.desc(),
    )
    return q.limit(limit).all()
