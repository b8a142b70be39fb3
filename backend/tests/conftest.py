"""
Pytest fixtures for the ordering backend tests.

Provides test database setup, tenant fixtures, stock helpers and test client.
"""

import pytest

from ordering import create_app
from ordering.extensions import db
from ordering.models import Organization, Store, Product
from ordering.services import allocation_service, stock_ledger_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ORDERING_RETRY_BACKOFF': 0.0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Acme Corp", code="ACME", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Inc", code="BETA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def store_a(db_session, org_a):
    """Create Store A in Organization A."""
    store = Store(org_id=org_a.id, name="Store A1", code="A1")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_a2(db_session, org_a):
    """Second store in Organization A."""
    store = Store(org_id=org_a.id, name="Store A2", code="A2")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session, org_b):
    """Create Store B in Organization B."""
    store = Store(org_id=org_b.id, name="Store B1", code="B1")
    db_session.add(store)
    db_session.commit()
    return store


def make_product(db_session, org, sku, price_cents=1000, pack_quantity=1, **extra):
    product = Product(
        org_id=org.id,
        sku=sku,
        name=f"Product {sku}",
        price_cents=price_cents,
        pack_quantity=pack_quantity,
        **extra,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_a(db_session, org_a):
    """Create Product in Organization A."""
    return make_product(db_session, org_a, "PROD-A-001", price_cents=1000)


@pytest.fixture(scope='function')
def product_a2(db_session, org_a):
    return make_product(db_session, org_a, "PROD-A-002", price_cents=250)


@pytest.fixture(scope='function')
def product_b(db_session, org_b):
    """Create Product in Organization B."""
    return make_product(db_session, org_b, "PROD-B-001", price_cents=2000)


def stock_up(org, store, product, packs=10):
    """Allocate product to store and give it packs of stock."""
    allocation_service.allocate(org.id, [product.id], [store.id])
    stock_ledger_service.restock(product_id=product.id, store_id=store.id, packs=packs)


@pytest.fixture(scope='function')
def stocked(org_a, store_a, product_a, product_a2):
    """Both org A products allocated to store A with 10 packs each."""
    stock_up(org_a, store_a, product_a, 10)
    stock_up(org_a, store_a, product_a2, 10)
    return store_a
