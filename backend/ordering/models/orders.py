from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class CartLine(db.Model):
    """
    Pending order line for one store's cart.

    Every packed unit in quantity is reserved in the stock ledger.
    unit_price_cents is the price snapshot taken when the line was created.
    There is no cart total column: the total is always derived from lines.
    """
    __tablename__ = "cart_lines"
    __table_args__ = (
        db.UniqueConstraint("store_id", "product_id", name="uq_cart_lines_store_product"),
        db.CheckConstraint("quantity >= 0", name="ck_cart_lines_quantity_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "sku": self.product.sku if self.product else None,
            "name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class Order(db.Model):
    """
    Submitted order.

    LIFECYCLE: see services/order_lifecycle.py for the closed status set
    and the transition table. status is only written by
    order_service.transition_order (and once by submit_order).

    STOCK: stock_committed is True while the ledger holds this order's
    decrement. Transitions consult it so a release never happens twice and
    a commit never happens on top of an existing one.

    BUDGET: counted_in_budget / budget_period record whether and in which
    month the order contributed to the store's monthly counters.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_store_status", "store_id", "status"),
        db.Index("ix_orders_org_created", "org_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    status = db.Column(db.String(24), nullable=False, index=True)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    stock_committed = db.Column(db.Boolean, nullable=False, default=False)
    counted_in_budget = db.Column(db.Boolean, nullable=False, default=False)
    budget_period = db.Column(db.String(7), nullable=True)

    # Guard evaluation snapshot taken at submission
    exceeds_budget = db.Column(db.Boolean, nullable=False, default=False)
    exceed_amount_cents = db.Column(db.Integer, nullable=True)
    exceeds_order_count = db.Column(db.Boolean, nullable=False, default=False)

    created_by = db.Column(db.String(120), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        order_by="OrderLine.id",
        cascade="all, delete-orphan",
    )
    store = db.relationship("Store")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} store_id={self.store_id} status={self.status!r}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "order_id": self.id,
            "org_id": self.org_id,
            "store_id": self.store_id,
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "stock_committed": self.stock_committed,
            "counted_in_budget": self.counted_in_budget,
            "budget_period": self.budget_period,
            "limits": {
                "exceeds_budget": self.exceeds_budget,
                "exceed_amount_cents": self.exceed_amount_cents,
                "exceeds_order_count": self.exceeds_order_count,
            },
            "created_by": self.created_by,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class OrderLine(db.Model):
    """
    Immutable snapshot of a cart line at submission.

    Product fields are copied, not referenced for display, so later
    catalog edits (price, name, pack size) never change a submitted order.
    """
    __tablename__ = "order_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    pack_quantity = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "pack_quantity": self.pack_quantity,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class OrderStatusEvent(db.Model):
    """Append-only audit trail of order status changes."""
    __tablename__ = "order_status_events"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    from_status = db.Column(db.String(24), nullable=True)
    to_status = db.Column(db.String(24), nullable=False)
    actor = db.Column(db.String(120), nullable=True)
    note = db.Column(db.String(255), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor": self.actor,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
