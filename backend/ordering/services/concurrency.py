# Overview: Concurrency primitives shared by the ledger, cart and order services.

from __future__ import annotations

import time

from flask import current_app, has_app_context
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Counters that must never race are protected by guarded_add instead.
    """
    return query.with_for_update()


def guarded_add(
    model,
    column,
    delta: int,
    *,
    floor: int = 0,
    ceiling=None,
    extra_values: dict | None = None,
    **filters,
) -> int:
    """
    Atomically add delta to column on the rows matching filters, only if
    the result stays >= floor.

    Runs as one statement:
        UPDATE <table> SET column = column + :delta
        WHERE <filters> AND column + :delta >= :floor

    ceiling (a value or another column of the same row) adds
    `AND column + :delta <= ceiling`.

    The database evaluates the condition and the write together, so two
    concurrent decrements whose sum exceeds the balance can never both
    succeed, and the outcome does not depend on arrival order.

    Returns the number of rows changed (0 means the guard refused).
    """
    col = getattr(model, column)
    values = {column: col + delta}
    if extra_values:
        values.update(extra_values)

    stmt = update(model).where(col + delta >= floor)
    if ceiling is not None:
        stmt = stmt.where(col + delta <= ceiling)
    for key, value in filters.items():
        stmt = stmt.where(getattr(model, key) == value)
    stmt = stmt.values(**values).execution_options(synchronize_session=False)

    result = db.session.execute(stmt)
    return result.rowcount


def insert_ignore(model, **values) -> int:
    """
    INSERT a row unless it collides with a unique constraint.

    Used for set-union writes (allocations, lazily created stock rows)
    where a concurrent writer inserting the same key first is success, not
    an error. Returns 1 when this call inserted the row, 0 otherwise.
    """
    dialect = db.session.get_bind().dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        existing = db.session.query(model).filter_by(**values).first()
        if existing is not None:
            return 0
        db.session.add(model(**values))
        db.session.flush()
        return 1

    stmt = insert(model).values(**values).on_conflict_do_nothing()
    result = db.session.execute(stmt)
    return result.rowcount


def _retry_settings(attempts: int | None, backoff_base: float | None) -> tuple[int, float]:
    if has_app_context():
        cfg = current_app.config
        attempts = attempts or cfg.get("ORDERING_RETRY_ATTEMPTS", 3)
        backoff_base = backoff_base if backoff_base is not None else cfg.get("ORDERING_RETRY_BACKOFF", 0.05)
    return attempts or 3, backoff_base if backoff_base is not None else 0.05


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, "database is locked") and
    StaleDataError (optimistic version conflicts). Domain errors raised by
    func propagate immediately after the session is rolled back.
    """
    attempts, backoff_base = _retry_settings(attempts, backoff_base)
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc

