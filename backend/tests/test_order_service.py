"""
Order submission and state machine tests.

Stock effects and budget counters are checked against the ledger after
every transition.
"""

import pytest
from sqlalchemy.exc import OperationalError

from conftest import stock_up
from ordering.errors import AllocationConflict, IllegalTransition, InsufficientStock, NotFound
from ordering.models import CartLine, Store
from ordering.services import (
    allocation_service,
    cart_service,
    order_service,
    stock_ledger_service,
    store_service,
)
from ordering.time_utils import month_key
from ordering.validation import ValidationError


def available(product, store):
    return stock_ledger_service.get_available_packs(product.id, store.id)


def place(org, store, product, packs, **kwargs):
    cart_service.change_quantity(store.id, product, packs)
    return order_service.submit_order(org.id, store.id, **kwargs)


def counters(db_session, store):
    row = db_session.get(Store, store.id)
    db_session.refresh(row)
    return row.current_month_amount_cents, row.current_month_orders


# --- submission ---------------------------------------------------------------

def test_clean_submission_confirms_without_second_decrement(db_session, org_a, stocked, product_a):
    result = place(org_a, stocked, product_a, 3, actor="buyer@a1")

    order = result.order
    assert result.pending_approval is False
    assert order.status == "confirmed"
    assert order.stock_committed is True
    assert order.total_amount_cents == 3000
    assert [(l.product_id, l.quantity, l.line_total_cents) for l in order.lines] == [(product_a.id, 3, 3000)]
    # The cart reservation became the order's decrement
    assert available(product_a, stocked) == 7
    assert db_session.query(CartLine).count() == 0
    assert counters(db_session, stocked) == (3000, 1)

    events = order_service.order_events(org_a.id, order.id)
    assert [(e.from_status, e.to_status, e.actor) for e in events] == [(None, "confirmed", "buyer@a1")]


def test_line_snapshot_survives_catalog_edits(db_session, org_a, stocked, product_a):
    order = place(org_a, stocked, product_a, 1).order
    product_a.name = "Renamed"
    product_a.price_cents = 1
    db_session.commit()

    line = order_service.get_order(org_a.id, order.id).lines[0]
    assert line.name == "Product PROD-A-001"
    assert line.unit_price_cents == 1000


def test_over_budget_submission_waits_for_approval(db_session, org_a, stocked, product_a):
    store_service.update_limits(org_a.id, stocked.id, {
        "monthly_expense_limit_cents": 2000,
        "budget_limit_enabled": True,
    })

    result = place(org_a, stocked, product_a, 3)

    assert result.pending_approval is True
    assert result.evaluation.exceed_amount == 1000
    order = result.order
    assert order.status == "approval_pending"
    assert order.stock_committed is False
    assert order.exceeds_budget is True
    assert order.exceed_amount_cents == 1000
    # Reservations were handed back and nothing was counted
    assert available(product_a, stocked) == 10
    assert db_session.query(CartLine).count() == 0
    assert counters(db_session, stocked) == (0, 0)


def test_order_count_ceiling_routes_second_order_to_approval(org_a, stocked, product_a):
    store_service.update_limits(org_a.id, stocked.id, {
        "monthly_order_limit": 1,
        "order_limit_enabled": True,
    })

    first = place(org_a, stocked, product_a, 1)
    second = place(org_a, stocked, product_a, 1)

    assert first.order.status == "confirmed"
    assert second.order.status == "approval_pending"
    assert second.order.exceeds_order_count is True


def test_counters_from_previous_month_are_reset(db_session, org_a, stocked, product_a):
    stocked.budget_period = "1999-12"
    stocked.current_month_amount_cents = 123_456
    stocked.current_month_orders = 9
    db_session.commit()

    place(org_a, stocked, product_a, 1)

    assert counters(db_session, stocked) == (1000, 1)
    assert db_session.get(Store, stocked.id).budget_period == month_key()


def test_empty_cart_is_rejected(org_a, stocked):
    with pytest.raises(ValidationError):
        order_service.submit_order(org_a.id, stocked.id)


def test_deallocated_line_blocks_submission_and_keeps_cart(db_session, org_a, stocked, product_a, product_a2):
    cart_service.change_quantity(stocked.id, product_a, 2)
    cart_service.change_quantity(stocked.id, product_a2, 1)
    allocation_service.deallocate(org_a.id, [product_a2.id], [stocked.id])

    with pytest.raises(AllocationConflict) as exc_info:
        order_service.submit_order(org_a.id, stocked.id)

    assert exc_info.value.details["items"] == [{"product_id": product_a2.id, "reason": "not_allocated"}]
    assert db_session.query(CartLine).count() == 2
    assert available(product_a, stocked) == 8
    assert order_service.list_orders(org_a.id) == []


def test_submit_for_other_tenant_store_is_not_found(org_b, stocked):
    with pytest.raises(NotFound):
        order_service.submit_order(org_b.id, stocked.id)


# --- transitions --------------------------------------------------------------

def test_approve_commits_once(db_session, org_a, stocked, product_a):
    store_service.update_limits(org_a.id, stocked.id, {
        "monthly_expense_limit_cents": 0,
        "budget_limit_enabled": True,
    })
    order = place(org_a, stocked, product_a, 4).order

    approved = order_service.approve_order(org_a.id, order.id, actor="manager")

    assert approved.status == "confirmed"
    assert approved.stock_committed is True
    assert available(product_a, stocked) == 6
    assert counters(db_session, stocked) == (4000, 1)

    with pytest.raises(IllegalTransition):
        order_service.approve_order(org_a.id, order.id)
    with pytest.raises(IllegalTransition):
        order_service.transition_order(org_a.id, order.id, "confirmed")

    assert available(product_a, stocked) == 6
    assert counters(db_session, stocked) == (4000, 1)


def test_approval_revalidates_stock(db_session, org_a, stocked, product_a):
    store_service.update_limits(org_a.id, stocked.id, {
        "monthly_order_limit": 0,
        "order_limit_enabled": True,
    })
    order = place(org_a, stocked, product_a, 5).order
    stock_ledger_service.adjust_stock(product_id=product_a.id, store_id=stocked.id, delta=-8)

    with pytest.raises(InsufficientStock):
        order_service.approve_order(org_a.id, order.id)

    assert order_service.get_order(org_a.id, order.id).status == "approval_pending"
    assert available(product_a, stocked) == 2
    assert counters(db_session, stocked) == (0, 0)


def test_hold_then_reconfirm_is_net_zero(db_session, org_a, stocked, product_a):
    order = place(org_a, stocked, product_a, 3).order
    assert available(product_a, stocked) == 7

    held = order_service.transition_order(org_a.id, order.id, "on_hold")
    assert held.stock_committed is False
    assert available(product_a, stocked) == 10

    order_service.transition_order(org_a.id, order.id, "confirmed")
    assert available(product_a, stocked) == 7
    # Counted once, at the first confirmation
    assert counters(db_session, stocked) == (3000, 1)


def test_reconfirm_from_hold_can_fail(org_a, stocked, product_a):
    order = place(org_a, stocked, product_a, 3).order
    order_service.transition_order(org_a.id, order.id, "on_hold")
    stock_ledger_service.adjust_stock(product_id=product_a.id, store_id=stocked.id, delta=-9)

    with pytest.raises(InsufficientStock):
        order_service.transition_order(org_a.id, order.id, "confirmed")

    assert order_service.get_order(org_a.id, order.id).status == "on_hold"
    assert available(product_a, stocked) == 1


def test_reject_confirmed_releases_and_uncounts(db_session, org_a, stocked, product_a):
    order = place(org_a, stocked, product_a, 3).order

    rejected = order_service.reject_order(org_a.id, order.id, note="duplicate")

    assert rejected.status == "rejected"
    assert rejected.stock_committed is False
    assert available(product_a, stocked) == 10
    assert counters(db_session, stocked) == (0, 0)

    with pytest.raises(IllegalTransition):
        order_service.reject_order(org_a.id, order.id)
    assert available(product_a, stocked) == 10


def test_reject_pending_touches_no_stock(org_a, stocked, product_a):
    store_service.update_limits(org_a.id, stocked.id, {
        "monthly_expense_limit_cents": 0,
        "budget_limit_enabled": True,
    })
    order = place(org_a, stocked, product_a, 2).order

    rejected = order_service.reject_order(org_a.id, order.id, sedis=True)

    assert rejected.status == "sedis_rejected"
    assert available(product_a, stocked) == 10


def test_reject_on_hold_does_not_release_twice(org_a, stocked, product_a):
    order = place(org_a, stocked, product_a, 3).order
    order_service.transition_order(org_a.id, order.id, "on_hold")

    order_service.reject_order(org_a.id, order.id)

    assert available(product_a, stocked) == 10


def test_fulfilment_path_has_no_stock_effect(org_a, stocked, product_a):
    order = place(org_a, stocked, product_a, 2).order

    for status in ("processing", "shipped", "delivered"):
        order_service.transition_order(org_a.id, order.id, status)
        assert available(product_a, stocked) == 8

    with pytest.raises(IllegalTransition):
        order_service.reject_order(org_a.id, order.id)


def test_shipped_order_can_still_be_rejected(org_a, stocked, product_a):
    order = place(org_a, stocked, product_a, 2).order
    order_service.transition_order(org_a.id, order.id, "processing")
    order_service.transition_order(org_a.id, order.id, "shipped")

    order_service.reject_order(org_a.id, order.id, sedis=True)

    assert available(product_a, stocked) == 10


def test_illegal_transition_leaves_order_untouched(org_a, stocked, product_a):
    order = place(org_a, stocked, product_a, 2).order

    with pytest.raises(IllegalTransition) as exc_info:
        order_service.transition_order(org_a.id, order.id, "delivered")

    assert exc_info.value.details["from_status"] == "confirmed"
    assert order_service.get_order(org_a.id, order.id).status == "confirmed"
    assert len(order_service.order_events(org_a.id, order.id)) == 1


def test_unknown_status_is_validation_error(org_a, stocked, product_a):
    order = place(org_a, stocked, product_a, 1).order

    with pytest.raises(ValidationError):
        order_service.transition_order(org_a.id, order.id, "lost")


def test_other_tenant_cannot_see_or_move_order(org_a, org_b, stocked, product_a):
    order = place(org_a, stocked, product_a, 1).order

    with pytest.raises(NotFound):
        order_service.get_order(org_b.id, order.id)
    with pytest.raises(NotFound):
        order_service.transition_order(org_b.id, order.id, "on_hold")


# --- batch --------------------------------------------------------------------

def test_batch_change_isolates_failures(db_session, org_a, stocked, product_a, product_a2):
    order_a = place(org_a, stocked, product_a, 2).order
    order_b = place(org_a, stocked, product_a2, 5).order
    order_c = place(org_a, stocked, product_a, 2).order
    for order in (order_a, order_b, order_c):
        order_service.transition_order(org_a.id, order.id, "on_hold")
    # Only 2 packs of B's product left, so B cannot be re-confirmed
    stock_ledger_service.adjust_stock(product_id=product_a2.id, store_id=stocked.id, delta=-8)

    results = order_service.change_order_status(
        org_a.id, [order_a.id, order_b.id, order_c.id], "confirmed",
    )

    by_id = {r["order_id"]: r for r in results}
    assert by_id[order_a.id]["ok"] is True
    assert by_id[order_a.id]["status"] == "confirmed"
    assert by_id[order_c.id]["ok"] is True
    assert by_id[order_b.id] == {
        "order_id": order_b.id,
        "ok": False,
        "status": "on_hold",
        "code": "INSUFFICIENT_STOCK",
        "error": by_id[order_b.id]["error"],
    }
    assert available(product_a, stocked) == 6
    assert available(product_a2, stocked) == 2


def test_batch_keeps_going_after_database_failure(monkeypatch, org_a, stocked, product_a):
    orders = [place(org_a, stocked, product_a, 1).order for _ in range(3)]
    busy_id = orders[1].id
    real_transition = order_service.transition_order

    def flaky_transition(org_id, order_id, to_status, **kwargs):
        if order_id == busy_id:
            raise OperationalError("UPDATE orders", {}, Exception("database is locked"))
        return real_transition(org_id, order_id, to_status, **kwargs)

    monkeypatch.setattr(order_service, "transition_order", flaky_transition)

    results = order_service.change_order_status(org_a.id, [o.id for o in orders], "processing")

    assert [r["ok"] for r in results] == [True, False, True]
    assert results[1]["code"] == "CONCURRENCY_CONFLICT"
    assert results[1]["status"] == "confirmed"
    assert [r["status"] for r in results] == ["processing", "confirmed", "processing"]


def test_batch_reports_unexpected_errors_per_order(monkeypatch, org_a, stocked, product_a):
    orders = [place(org_a, stocked, product_a, 1).order for _ in range(2)]
    real_transition = order_service.transition_order

    def broken_transition(org_id, order_id, to_status, **kwargs):
        if order_id == orders[0].id:
            raise RuntimeError("boom")
        return real_transition(org_id, order_id, to_status, **kwargs)

    monkeypatch.setattr(order_service, "transition_order", broken_transition)

    results = order_service.change_order_status(org_a.id, [o.id for o in orders], "on_hold")

    assert [(r["ok"], r["code"]) for r in results] == [(False, "INTERNAL_ERROR"), (True, None)]
    assert available(product_a, stocked) == 9


def test_batch_reports_missing_and_illegal(org_a, stocked, product_a):
    order = place(org_a, stocked, product_a, 1).order

    results = order_service.change_order_status(org_a.id, [order.id, 999_999], "delivered")

    assert [(r["ok"], r["code"]) for r in results] == [
        (False, "ILLEGAL_TRANSITION"),
        (False, "NOT_FOUND"),
    ]
    assert results[1]["status"] is None


def test_batch_rejects_unknown_status_up_front(org_a):
    with pytest.raises(ValidationError):
        order_service.change_order_status(org_a.id, [1], "teleported")


# --- queries ------------------------------------------------------------------

def test_list_orders_filters(db_session, org_a, store_a, store_a2, product_a):
    stock_up(org_a, store_a, product_a, 10)
    stock_up(org_a, store_a2, product_a, 10)
    first = place(org_a, store_a, product_a, 1).order
    second = place(org_a, store_a2, product_a, 1).order
    order_service.transition_order(org_a.id, second.id, "on_hold")

    assert [o.id for o in order_service.list_orders(org_a.id, store_id=store_a.id)] == [first.id]
    assert [o.id for o in order_service.list_orders(org_a.id, status="on_hold")] == [second.id]
    assert {o.id for o in order_service.list_orders(org_a.id)} == {first.id, second.id}


def test_events_record_full_history(org_a, stocked, product_a):
    order = place(org_a, stocked, product_a, 1).order
    order_service.transition_order(org_a.id, order.id, "on_hold", actor="ops", note="address check")
    order_service.transition_order(org_a.id, order.id, "confirmed", actor="ops")

    events = order_service.order_events(org_a.id, order.id)

    assert [(e.from_status, e.to_status) for e in events] == [
        (None, "confirmed"),
        ("confirmed", "on_hold"),
        ("on_hold", "confirmed"),
    ]
    assert events[1].note == "address check"
