# Overview: Tenant lookups, store limit configuration and monthly budget counters.

from __future__ import annotations

from ..extensions import db
from ..errors import NotFound
from ..models import Organization, Store, Product
from ..time_utils import month_key
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_store_limits,
)
from .concurrency import lock_for_update, run_with_retry


STORE_LIMITS_POLICY = ModelValidationPolicy(
    writable_fields={
        "monthly_expense_limit_cents",
        "budget_limit_enabled",
        "monthly_order_limit",
        "order_limit_enabled",
    },
)


def get_active_org(code: str) -> Organization:
    org = db.session.query(Organization).filter_by(code=code).first()
    if org is None or not org.is_active:
        raise NotFound(f"Organization '{code}' not found")
    return org


def get_store(org_id: int, store_id: int, *, lock: bool = False) -> Store:
    """
    Load a store inside the tenant boundary.

    A store of another organization is reported exactly like a missing one.
    """
    query = db.session.query(Store).filter_by(id=store_id, org_id=org_id)
    if lock:
        query = lock_for_update(query)
    store = query.first()
    if store is None:
        raise NotFound(f"Store {store_id} not found")
    return store


def get_product(org_id: int, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, org_id=org_id).first()
    if product is None:
        raise NotFound(f"Product {product_id} not found")
    return product


def roll_budget_period(store: Store, period: str | None = None) -> bool:
    """
    Reset monthly counters when the store's period is not the current one.

    Returns True when counters were reset. Does not commit.
    """
    period = period or month_key()
    if store.budget_period == period:
        return False
    store.budget_period = period
    store.current_month_amount_cents = 0
    store.current_month_orders = 0
    return True


def record_confirmed_order(store: Store, amount_cents: int) -> str:
    """Add one confirmed order to the store's current-month counters."""
    roll_budget_period(store)
    store.current_month_amount_cents += amount_cents
    store.current_month_orders += 1
    return store.budget_period


def revert_confirmed_order(store: Store, amount_cents: int, period: str | None) -> bool:
    """
    Remove a previously counted order from the counters.

    Only applies while the store is still in the period the order was
    counted in; once the month rolled over the old counters are gone.
    """
    roll_budget_period(store)
    if period != store.budget_period:
        return False
    store.current_month_amount_cents = max(0, store.current_month_amount_cents - amount_cents)
    store.current_month_orders = max(0, store.current_month_orders - 1)
    return True


def budget_snapshot(store: Store) -> dict:
    roll_budget_period(store)

    remaining_budget = None
    if store.budget_limit_enabled:
        remaining_budget = (store.monthly_expense_limit_cents or 0) - store.current_month_amount_cents

    remaining_orders = None
    if store.order_limit_enabled:
        remaining_orders = (store.monthly_order_limit or 0) - store.current_month_orders

    return {
        "store_id": store.id,
        "budget_period": store.budget_period,
        "current_month_amount_cents": store.current_month_amount_cents,
        "current_month_orders": store.current_month_orders,
        "remaining_budget_cents": remaining_budget,
        "remaining_orders": remaining_orders,
        **store.limits_dict(),
    }


def get_budget(org_id: int, store_id: int) -> dict:
    def _op():
        store = get_store(org_id, store_id, lock=True)
        snapshot = budget_snapshot(store)
        db.session.commit()
        return snapshot

    return run_with_retry(_op)


def update_limits(org_id: int, store_id: int, payload: dict) -> Store:
    """
    Update a store's limit configuration.

    The core only evaluates these values; this is the single write path so
    enabling a limit without a value is rejected.
    """
    patch = validate_payload(
        model=Store,
        payload=payload,
        policy=STORE_LIMITS_POLICY,
    )

    def _op():
        store = get_store(org_id, store_id, lock=True)
        merged = {**store.limits_dict(), **patch}
        enforce_rules_store_limits(merged)
        for key, value in patch.items():
            setattr(store, key, value)
        db.session.commit()
        return store

    return run_with_retry(_op)
