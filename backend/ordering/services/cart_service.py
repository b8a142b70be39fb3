# Overview: Server-side cart; every packed unit in a cart line is reserved in the stock ledger.

"""
Cart Service

This is the confirming side of the optimistic client cart. Each call is
one DB transaction that moves the line quantity and the ledger reservation
together:

    change_quantity(+n): allocation check -> reserve n -> line += n
    change_quantity(-n): line -= n -> release n (line deleted at 0)

The client corrects a failed optimistic change by issuing the inverse
delta as a NEW request; a request that failed here changed nothing, so
there is nothing to cancel.
"""

from __future__ import annotations

from ..extensions import db
from ..errors import AllocationConflict
from ..models import CartLine, Product
from ..validation import ValidationError, enforce_rules_packs
from . import stock_ledger_service
from .allocation_service import is_allocated
from .concurrency import guarded_add, insert_ignore, lock_for_update, run_with_retry


def cart_reference(store_id: int) -> str:
    return f"cart:{store_id}"


def _cart_lines(store_id: int) -> list[CartLine]:
    return (
        db.session.query(CartLine)
        .filter_by(store_id=store_id)
        .order_by(CartLine.id)
        .execution_options(populate_existing=True)
        .all()
    )


def cart_snapshot(store_id: int) -> dict:
    """Cart with its total derived from the lines."""
    lines = _cart_lines(store_id)
    return {
        "store_id": store_id,
        "lines": [line.to_dict() for line in lines],
        "total_cents": sum(line.line_total_cents for line in lines),
        "item_count": sum(line.quantity for line in lines),
    }


def _require_orderable(product: Product, store_id: int) -> None:
    if not product.is_active:
        raise AllocationConflict(
            f"Product {product.id} is inactive",
            details={"product_id": product.id, "store_id": store_id},
        )
    if not is_allocated(product.id, store_id):
        raise AllocationConflict(
            f"Product {product.id} is not allocated to store {store_id}",
            details={"product_id": product.id, "store_id": store_id},
        )


def _line_quantity(store_id: int, product_id: int) -> int:
    value = (
        db.session.query(CartLine.quantity)
        .filter_by(store_id=store_id, product_id=product_id)
        .scalar()
    )
    return int(value or 0)


def _change_quantity_inner(store_id: int, product: Product, delta: int) -> int:
    """
    Apply delta to the line and the ledger in the current transaction.

    Line quantities move through the same guarded UPDATE as stock, so two
    sessions changing the same line concurrently never lose an update.
    Returns the new line quantity (0 means the line is gone).
    """
    if delta > 0:
        _require_orderable(product, store_id)
        stock_ledger_service.adjust(
            product.id, store_id, -delta,
            kind="RESERVE", reference=cart_reference(store_id),
        )
        inserted = insert_ignore(
            CartLine,
            store_id=store_id,
            product_id=product.id,
            quantity=delta,
            unit_price_cents=product.price_cents,
        )
        if not inserted:
            guarded_add(CartLine, "quantity", delta, floor=1, store_id=store_id, product_id=product.id)
        return _line_quantity(store_id, product.id)

    changed = guarded_add(CartLine, "quantity", delta, floor=0, store_id=store_id, product_id=product.id)
    if not changed:
        raise ValidationError(
            f"Cannot remove {-delta} pack(s) of product {product.id}; "
            f"cart holds {_line_quantity(store_id, product.id)}"
        )

    stock_ledger_service.adjust(
        product.id, store_id, -delta,
        kind="RELEASE", reference=cart_reference(store_id),
    )
    db.session.query(CartLine).filter_by(
        store_id=store_id, product_id=product.id, quantity=0
    ).delete(synchronize_session=False)
    return _line_quantity(store_id, product.id)


def change_quantity(store_id: int, product: Product, delta) -> dict:
    """
    Move a cart line by delta packs and reserve/release the same amount.

    Returns the confirmation the optimistic client reconciles with:
        {product_id, quantity, available_packs, cart}

    Raises:
        ValidationError: delta is zero/not an int, or removes more than held
        AllocationConflict: adding a product not orderable at the store
        InsufficientStock: adding more packs than available
    """
    if not isinstance(delta, int) or isinstance(delta, bool):
        raise ValidationError("delta must be an integer")
    enforce_rules_packs("delta", delta, allow_negative=True)

    def _op():
        quantity = _change_quantity_inner(store_id, product, delta)
        db.session.commit()
        return {
            "product_id": product.id,
            "quantity": quantity,
            "available_packs": stock_ledger_service.get_available_packs(product.id, store_id),
            "cart": cart_snapshot(store_id),
        }

    return run_with_retry(_op)


def add_to_cart(store_id: int, product: Product, quantity) -> dict:
    """Positive-only form of change_quantity."""
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise ValidationError("quantity must be an integer")
    enforce_rules_packs("quantity", quantity)
    return change_quantity(store_id, product, quantity)


def remove_line(store_id: int, product_id: int) -> dict:
    """Drop a line entirely, releasing its whole reservation."""
    def _op():
        line = lock_for_update(
            db.session.query(CartLine)
            .filter_by(store_id=store_id, product_id=product_id)
            .execution_options(populate_existing=True)
        ).first()
        if line is not None:
            stock_ledger_service.adjust(
                product_id, store_id, line.quantity,
                kind="RELEASE", reference=cart_reference(store_id),
            )
            db.session.delete(line)
        db.session.commit()
        return cart_snapshot(store_id)

    return run_with_retry(_op)


def release_lines(store_id: int, lines: list[CartLine]) -> None:
    """Release every reservation held by lines and delete them. Does not commit."""
    for line in lines:
        stock_ledger_service.adjust(
            line.product_id, store_id, line.quantity,
            kind="RELEASE", reference=cart_reference(store_id),
        )
        db.session.delete(line)
    db.session.flush()


def clear_cart(store_id: int) -> dict:
    def _op():
        release_lines(store_id, _cart_lines(store_id))
        db.session.commit()
        return cart_snapshot(store_id)

    return run_with_retry(_op)


def locked_cart_lines(store_id: int) -> list[CartLine]:
    """Cart lines locked for conversion into an order."""
    return lock_for_update(
        db.session.query(CartLine)
        .filter_by(store_id=store_id)
        .order_by(CartLine.id)
        .execution_options(populate_existing=True)
    ).all()


def get_cart(store_id: int) -> dict:
    return cart_snapshot(store_id)
