from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class StockLevel(db.Model):
    """
    Per-product, per-store stock counters.

    available_packs is the orderable quantity after reservations (carts)
    and committed orders; total_packs only moves on restock, and a manual
    adjustment never lifts available_packs above it.

    CONCURRENCY: rows are only ever changed through single conditional
    UPDATE statements in stock_ledger_service, never by loading the row,
    editing it in Python and flushing it back. version_id is bumped by
    those statements so readers can detect movement.
    """
    __tablename__ = "stock_levels"
    __table_args__ = (
        db.UniqueConstraint("product_id", "store_id", name="uq_stock_levels_product_store"),
        db.CheckConstraint("available_packs >= 0", name="ck_stock_levels_available_nonneg"),
        db.CheckConstraint("total_packs >= 0", name="ck_stock_levels_total_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    total_packs = db.Column(db.Integer, nullable=False, default=0)
    available_packs = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "store_id": self.store_id,
            "total_packs": self.total_packs,
            "available_packs": self.available_packs,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only record of every applied stock adjustment.

    kind:
    - RESTOCK: warehouse added packs (total and available)
    - RESERVE: cart took packs (available only)
    - RELEASE: cart line reduced or order released its decrement
    - COMMIT:  order (re)confirmed and decremented available
    - ADJUST:  manual correction through the ledger API
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_store", "product_id", "store_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)

    kind = db.Column(db.String(16), nullable=False, index=True)
    delta = db.Column(db.Integer, nullable=False)
    available_after = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(64), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "kind": self.kind,
            "delta": self.delta,
            "available_after": self.available_after,
            "reference": self.reference,
            "occurred_at": to_utc_z(self.occurred_at),
        }
