"""
Concurrent cart reservations and order transitions against shared rows.

Uses a file-backed SQLite database so every thread gets its own
connection; each worker runs in its own app context (and so its own
session), like concurrent requests would.
"""

import threading

import pytest

from ordering import create_app
from ordering.errors import IllegalTransition, InsufficientStock
from ordering.extensions import db
from ordering.models import Organization, Product, Store
from ordering.services import (
    allocation_service,
    cart_service,
    order_service,
    stock_ledger_service,
    store_service,
)


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.sqlite3'}",
        'ORDERING_RETRY_ATTEMPTS': 10,
        'ORDERING_RETRY_BACKOFF': 0.01,
    })
    with app.app_context():
        db.create_all()
        org = Organization(name="Concurrent Org", code="CONC")
        db.session.add(org)
        db.session.flush()
        store = Store(org_id=org.id, name="Busy Store", code="BUSY")
        product = Product(org_id=org.id, sku="HOT-1", name="Hot item", price_cents=100)
        db.session.add_all([store, product])
        db.session.commit()
        ids = (org.id, store.id, product.id)
        allocation_service.allocate(org.id, [product.id], [store.id])
        stock_ledger_service.restock(product_id=product.id, store_id=store.id, packs=10)

    yield app, ids

    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def _reserve_concurrently(app, ids, quantities):
    org_id, store_id, product_id = ids
    barrier = threading.Barrier(len(quantities))
    outcomes = {}

    def worker(index, quantity):
        with app.app_context():
            product = store_service.get_product(org_id, product_id)
            barrier.wait()
            try:
                cart_service.change_quantity(store_id, product, quantity)
                outcomes[index] = ("ok", quantity)
            except Exception as exc:
                outcomes[index] = ("error", exc)
            finally:
                db.session.remove()

    threads = [
        threading.Thread(target=worker, args=(i, qty))
        for i, qty in enumerate(quantities)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return outcomes


def test_concurrent_reservations_never_oversell(file_app):
    app, ids = file_app
    _, store_id, product_id = ids

    outcomes = _reserve_concurrently(app, ids, [3, 3, 10])

    assert len(outcomes) == 3
    reserved = sum(qty for kind, qty in outcomes.values() if kind == "ok")
    failures = [exc for kind, exc in outcomes.values() if kind == "error"]

    assert reserved <= 10
    assert failures, "3 + 3 + 10 packs cannot all fit into 10"
    assert all(isinstance(exc, InsufficientStock) for exc in failures)

    with app.app_context():
        available = stock_ledger_service.get_available_packs(product_id, store_id)
        cart = cart_service.get_cart(store_id)

    assert available == 10 - reserved
    assert available >= 0
    assert cart["item_count"] == reserved


def test_concurrent_small_reservations_all_land(file_app):
    app, ids = file_app
    _, store_id, product_id = ids

    outcomes = _reserve_concurrently(app, ids, [1] * 5)

    assert all(kind == "ok" for kind, _ in outcomes.values())
    with app.app_context():
        assert stock_ledger_service.get_available_packs(product_id, store_id) == 5
        assert cart_service.get_cart(store_id)["lines"][0]["quantity"] == 5


def test_concurrent_reconfirm_commits_stock_once(file_app):
    app, ids = file_app
    org_id, store_id, product_id = ids
    with app.app_context():
        product = store_service.get_product(org_id, product_id)
        cart_service.change_quantity(store_id, product, 3)
        order_id = order_service.submit_order(org_id, store_id).order.id
        order_service.transition_order(org_id, order_id, "on_hold")
        assert stock_ledger_service.get_available_packs(product_id, store_id) == 10
        db.session.remove()

    workers = 4
    barrier = threading.Barrier(workers)
    outcomes = {}

    def worker(index):
        with app.app_context():
            barrier.wait()
            try:
                order_service.transition_order(org_id, order_id, "confirmed", actor=f"worker-{index}")
                outcomes[index] = ("ok", None)
            except Exception as exc:
                outcomes[index] = ("error", exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert len(outcomes) == workers
    assert sum(1 for kind, _ in outcomes.values() if kind == "ok") == 1
    failures = [exc for kind, exc in outcomes.values() if kind == "error"]
    assert all(isinstance(exc, IllegalTransition) for exc in failures)

    with app.app_context():
        order = order_service.get_order(org_id, order_id)
        store = db.session.get(Store, store_id)
        assert order.status == "confirmed"
        assert order.stock_committed is True
        assert stock_ledger_service.get_available_packs(product_id, store_id) == 7
        # Counted at submission, never again on re-confirm
        assert (store.current_month_amount_cents, store.current_month_orders) == (300, 1)
