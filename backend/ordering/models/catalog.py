from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product in an organization's shared catalog.

    MULTI-TENANT: Products are scoped to organizations via org_id and made
    visible/orderable at individual stores through ProductAllocation.
    Stock is per (product, store) and lives in StockLevel, never here.

    Prices are authoritative in cents; one unit ordered is one pack of
    pack_quantity items.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("org_id", "sku", name="uq_products_org_sku"),
        db.Index("ix_products_org_active", "org_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    price_cents = db.Column(db.Integer, nullable=False, default=0)
    pack_quantity = db.Column(db.Integer, nullable=False, default=1)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "sku": self.sku,
            "name": self.name,
            "price_cents": self.price_cents,
            "pack_quantity": self.pack_quantity,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductAllocation(db.Model):
    """
    Product <-> Store allocation (many-to-many).

    A product is visible and orderable at a store only while this row
    exists. The unique pair makes allocate() a set union at the DB level.
    """
    __tablename__ = "product_allocations"
    __table_args__ = (
        db.UniqueConstraint("product_id", "store_id", name="uq_product_allocations_pair"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "store_id": self.store_id,
            "created_at": to_utc_z(self.created_at),
        }


class ProductVariantLink(db.Model):
    """
    Link between size-differentiated sibling products.

    Stored once per unordered pair with low_product_id < high_product_id,
    so a link is symmetric without duplicate rows.
    """
    __tablename__ = "product_variant_links"
    __table_args__ = (
        db.UniqueConstraint("low_product_id", "high_product_id", name="uq_variant_links_pair"),
        db.CheckConstraint("low_product_id < high_product_id", name="ck_variant_links_ordered"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    low_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    high_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
