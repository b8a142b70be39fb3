from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Organization(db.Model):
    """
    Multi-tenant root: every client company is an Organization.

    The organization owns the shared product catalog and its stores
    (agencies). `code` is the short prefix the API is addressed by.
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Store(db.Model):
    """
    Store (agency) within an organization.

    LIMITS: each store carries a monthly spend ceiling and a monthly order
    count ceiling, each with its own enabled flag. The counters
    (current_month_amount_cents / current_month_orders) belong to the
    period in budget_period ("YYYY-MM") and are rolled to zero lazily by
    store_service.roll_budget_period when the month changes.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_stores_org_name"),
        db.UniqueConstraint("org_id", "code", name="uq_stores_org_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, index=True)

    monthly_expense_limit_cents = db.Column(db.Integer, nullable=True)
    budget_limit_enabled = db.Column(db.Boolean, nullable=False, default=False)
    monthly_order_limit = db.Column(db.Integer, nullable=True)
    order_limit_enabled = db.Column(db.Boolean, nullable=False, default=False)

    current_month_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    current_month_orders = db.Column(db.Integer, nullable=False, default=0)
    budget_period = db.Column(db.String(7), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("stores", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r} org_id={self.org_id}>"

    def limits_dict(self) -> dict:
        return {
            "monthly_expense_limit_cents": self.monthly_expense_limit_cents,
            "budget_limit_enabled": bool(self.budget_limit_enabled),
            "monthly_order_limit": self.monthly_order_limit,
            "order_limit_enabled": bool(self.order_limit_enabled),
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "code": self.code,
            "limits": self.limits_dict(),
            "current_month_amount_cents": self.current_month_amount_cents,
            "current_month_orders": self.current_month_orders,
            "budget_period": self.budget_period,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
