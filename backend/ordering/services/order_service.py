# Overview: Order submission and status transitions; applies each transition's stock effect atomically.

"""
Order Service

SUBMISSION (submit_order):
    cart lines --(allocation check)--> snapshot --(budget guard)--> order

    - Guard clean: the order starts CONFIRMED. The cart reservations are
      carried over as the order's decrement (stock_committed=True); stock is
      NOT decremented a second time. Store counters are incremented.
    - Guard exceeded: the order starts APPROVAL_PENDING and the cart
      reservations are released. approve_order is the explicit override and
      takes stock again through the COMMIT effect.

    Either way the cart is empty afterwards. If any line is no longer
    orderable nothing changes: the cart stays intact and the caller gets
    AllocationConflict.

TRANSITIONS (transition_order):
    One DB transaction per order: row lock -> table lookup -> stock effect
    -> budget counters -> status + audit event. A COMMIT that finds too
    little stock raises InsufficientStock and the whole transaction rolls
    back, so the status never moves without its stock effect.

BUDGET COUNTERS:
    An order is counted the first time it becomes CONFIRMED and uncounted
    when rejected while the store is still in the month it was counted in.
    Hold and re-confirm never count twice (counted_in_budget).
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import AllocationConflict, IllegalTransition, NotFound, OrderingError
from ..models import Order, OrderLine, OrderStatusEvent
from ..validation import ValidationError, coerce_id_list
from . import cart_service, stock_ledger_service, store_service
from .allocation_service import is_allocated
from .budget_guard import LimitEvaluation, evaluate_for_store
from .concurrency import lock_for_update, run_with_retry
from .order_lifecycle import (
    OrderStatus,
    StockEffect,
    initial_status,
    require_transition,
    validate_status,
)


_REJECTIONS = {OrderStatus.REJECTED, OrderStatus.SEDIS_REJECTED}


@dataclass(frozen=True)
class SubmissionResult:
    order: Order
    evaluation: LimitEvaluation

    @property
    def pending_approval(self) -> bool:
        return self.order.status == OrderStatus.APPROVAL_PENDING.value


def order_reference(order_id: int) -> str:
    return f"order:{order_id}"


def _record_event(order: Order, from_status: str | None, to_status: str, actor, note) -> None:
    db.session.add(OrderStatusEvent(
        order_id=order.id,
        from_status=from_status,
        to_status=to_status,
        actor=actor,
        note=note,
    ))


# ================================================================================
# SUBMISSION
# ================================================================================

def _require_lines_orderable(store_id: int, lines) -> None:
    conflicts = []
    for line in lines:
        product = line.product
        if product is None or not product.is_active:
            conflicts.append({"product_id": line.product_id, "reason": "inactive"})
        elif not is_allocated(line.product_id, store_id):
            conflicts.append({"product_id": line.product_id, "reason": "not_allocated"})

    if conflicts:
        raise AllocationConflict(
            "Cart contains products that can no longer be ordered at this store",
            details={"store_id": store_id, "items": conflicts},
        )


def submit_order(org_id: int, store_id: int, *, actor: str | None = None) -> SubmissionResult:
    """
    Convert the store's cart into an order.

    Raises:
        NotFound: store not in this organization
        ValidationError: cart is empty
        AllocationConflict: a line's product is inactive or no longer allocated
    """
    def _op():
        store = store_service.get_store(org_id, store_id, lock=True)
        lines = cart_service.locked_cart_lines(store_id)
        if not lines:
            raise ValidationError("Cart is empty")
        _require_lines_orderable(store_id, lines)

        total = sum(line.line_total_cents for line in lines)
        store_service.roll_budget_period(store)
        evaluation = evaluate_for_store(store, total)
        status = initial_status(evaluation)

        order = Order(
            org_id=org_id,
            store_id=store_id,
            status=status.value,
            total_amount_cents=total,
            exceeds_budget=evaluation.exceeds_budget,
            exceed_amount_cents=evaluation.exceed_amount,
            exceeds_order_count=evaluation.exceeds_order_count,
            created_by=actor,
        )
        for line in lines:
            order.lines.append(OrderLine(
                product_id=line.product_id,
                sku=line.product.sku,
                name=line.product.name,
                pack_quantity=line.product.pack_quantity,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                line_total_cents=line.line_total_cents,
            ))
        db.session.add(order)
        db.session.flush()

        if status == OrderStatus.CONFIRMED:
            # Reservations already hold the stock; they become the order's decrement.
            order.stock_committed = True
            order.budget_period = store_service.record_confirmed_order(store, total)
            order.counted_in_budget = True
            for line in lines:
                db.session.delete(line)
        else:
            cart_service.release_lines(store_id, lines)

        _record_event(order, None, status.value, actor, "submitted")
        db.session.commit()
        return SubmissionResult(order=order, evaluation=evaluation)

    result = run_with_retry(_op)
    current_app.logger.info(
        "Order %s submitted for store %s: %s (total=%s cents)",
        result.order.id, store_id, result.order.status, result.order.total_amount_cents,
    )
    return result


# ================================================================================
# TRANSITIONS
# ================================================================================

def _commit_stock(order: Order) -> None:
    for line in order.lines:
        stock_ledger_service.adjust(
            line.product_id, order.store_id, -line.quantity,
            kind="COMMIT", reference=order_reference(order.id),
        )
    order.stock_committed = True


def _release_stock(order: Order) -> None:
    for line in order.lines:
        stock_ledger_service.adjust(
            line.product_id, order.store_id, line.quantity,
            kind="RELEASE", reference=order_reference(order.id),
        )
    order.stock_committed = False


def _apply_stock_effect(order: Order, effect: StockEffect) -> None:
    if effect == StockEffect.COMMIT:
        if order.stock_committed:
            raise OrderingError(
                f"Order {order.id} already holds its stock",
                details={"order_id": order.id},
            )
        _commit_stock(order)
    elif effect in (StockEffect.RELEASE, StockEffect.RELEASE_IF_COMMITTED):
        if order.stock_committed:
            _release_stock(order)


def _apply_budget_counters(order: Order, target: OrderStatus) -> None:
    if target == OrderStatus.CONFIRMED and not order.counted_in_budget:
        store = store_service.get_store(order.org_id, order.store_id, lock=True)
        order.budget_period = store_service.record_confirmed_order(store, order.total_amount_cents)
        order.counted_in_budget = True
    elif target in _REJECTIONS and order.counted_in_budget:
        store = store_service.get_store(order.org_id, order.store_id, lock=True)
        if store_service.revert_confirmed_order(store, order.total_amount_cents, order.budget_period):
            order.counted_in_budget = False


def _transition_locked(order: Order, to_status, *, actor=None, note=None) -> Order:
    effect = require_transition(order.status, to_status)
    target = validate_status(to_status)
    from_status = order.status

    _apply_stock_effect(order, effect)
    _apply_budget_counters(order, target)

    order.status = target.value
    _record_event(order, from_status, target.value, actor, note)
    db.session.flush()
    return order


def get_order(org_id: int, order_id: int, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter_by(id=order_id, org_id=org_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise NotFound(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def transition_order(
    org_id: int,
    order_id: int,
    to_status,
    *,
    actor: str | None = None,
    note: str | None = None,
) -> Order:
    """
    Move one order to to_status and apply the edge's stock effect.

    Raises:
        ValidationError: to_status is not a known status
        NotFound: order not in this organization
        IllegalTransition: edge not in the transition table
        InsufficientStock: a COMMIT edge found too little stock (status unchanged)
    """
    validate_status(to_status)

    def _op():
        order = get_order(org_id, order_id, lock=True)
        from_status = order.status
        _transition_locked(order, to_status, actor=actor, note=note)
        db.session.commit()
        return order, from_status

    order, from_status = run_with_retry(_op)
    current_app.logger.info(
        "Order %s: %s -> %s (actor=%s)", order.id, from_status, order.status, actor,
    )
    return order


def approve_order(org_id: int, order_id: int, *, actor: str | None = None, note: str | None = None) -> Order:
    """
    Approve a pending order despite the limit it exceeded.

    Only approval_pending orders can be approved; everything else is an
    IllegalTransition, including re-approving a confirmed order.
    """
    order = get_order(org_id, order_id)
    if order.status != OrderStatus.APPROVAL_PENDING.value:
        raise IllegalTransition(
            f"Order {order_id} is '{order.status}', not awaiting approval",
            details={"from_status": order.status, "to_status": OrderStatus.CONFIRMED.value},
        )
    return transition_order(
        org_id, order_id, OrderStatus.CONFIRMED,
        actor=actor, note=note or "approved despite limit",
    )


def reject_order(
    org_id: int,
    order_id: int,
    *,
    actor: str | None = None,
    note: str | None = None,
    sedis: bool = False,
) -> Order:
    status = OrderStatus.SEDIS_REJECTED if sedis else OrderStatus.REJECTED
    return transition_order(org_id, order_id, status, actor=actor, note=note)


def _failed_result(org_id: int, order_id: int, code: str, message: str) -> dict:
    current = (
        db.session.query(Order.status)
        .filter_by(id=order_id, org_id=org_id)
        .scalar()
    )
    return {
        "order_id": order_id,
        "ok": False,
        "status": current,
        "code": code,
        "error": message,
    }


def change_order_status(org_id: int, order_ids, status, *, actor: str | None = None) -> list[dict]:
    """
    Move several orders to status, each in its own transaction.

    A failure on one order is reported in its result entry and never
    affects the others:
        [{order_id, ok, status, code, error}, ...]
    """
    order_ids = coerce_id_list("order_ids", order_ids)
    target = validate_status(status)

    results = []
    for order_id in order_ids:
        try:
            order = transition_order(org_id, order_id, target, actor=actor)
            results.append({
                "order_id": order_id,
                "ok": True,
                "status": order.status,
                "code": None,
                "error": None,
            })
        except OrderingError as exc:
            results.append(_failed_result(org_id, order_id, exc.code, exc.message))
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            current_app.logger.warning("Order %s: status change gave up after retries: %s", order_id, exc)
            results.append(_failed_result(
                org_id, order_id, "CONCURRENCY_CONFLICT",
                f"Order {order_id} is busy; retry the status change",
            ))
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Order %s: status change failed", order_id)
            results.append(_failed_result(org_id, order_id, "INTERNAL_ERROR", "Failed to change order status"))

    failed = sum(1 for r in results if not r["ok"])
    if failed:
        current_app.logger.warning(
            "Batch status change to %s: %d of %d order(s) failed",
            target.value, failed, len(results),
        )
    return results


# ================================================================================
# QUERIES
# ================================================================================

def list_orders(
    org_id: int,
    *,
    store_id: int | None = None,
    status: str | None = None,
    limit: int | None = None,
) -> list[Order]:
    query = db.session.query(Order).filter_by(org_id=org_id)
    if store_id is not None:
        query = query.filter_by(store_id=store_id)
    if status is not None:
        query = query.filter_by(status=validate_status(status).value)
    limit = limit or current_app.config.get("ORDERING_HISTORY_LIMIT", 200)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()


def order_events(org_id: int, order_id: int) -> list[OrderStatusEvent]:
    get_order(org_id, order_id)
    return (
        db.session.query(OrderStatusEvent)
        .filter_by(order_id=order_id)
        .order_by(OrderStatusEvent.id)
        .all()
    )
