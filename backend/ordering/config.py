# backend/ordering/config.py
from __future__ import annotations
import os


def _csv(value: str | None) -> set[str]:
    return {part.strip() for part in (value or "").split(",") if part.strip()}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/ordering.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///ordering.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Retry policy for lock/deadlock/stale-version failures on ledger writes
    ORDERING_RETRY_ATTEMPTS = int(os.environ.get("ORDERING_RETRY_ATTEMPTS", "3"))
    ORDERING_RETRY_BACKOFF = float(os.environ.get("ORDERING_RETRY_BACKOFF", "0.05"))

    # Upper bound for list endpoints (orders, movements)
    ORDERING_HISTORY_LIMIT = int(os.environ.get("ORDERING_HISTORY_LIMIT", "200"))

    ORDERING_CORS_ORIGINS = _csv(os.environ.get(
        "ORDERING_CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173",
    ))
