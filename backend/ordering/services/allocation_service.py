# Overview: Allocation engine; decides which products are visible and orderable at which stores.

"""
Allocation Engine

SEMANTICS:
- allocate(product_ids, store_ids) is a set union over the cartesian
  product. Allocating an existing pair is a no-op, never an error, so the
  single-product, single-store and bulk forms are all the same call.
- Allocation is MONOTONIC: resubmitting a selection that omits a previously
  allocated pair does NOT remove it. Removal is only ever the explicit
  deallocate() call, so a partial or stale selection from one screen
  cannot silently hide products that another screen allocated.
- A product removed from a store while it sits in that store's cart is
  caught at submission (AllocationConflict), not here.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import NotFound
from ..models import Product, ProductAllocation, ProductVariantLink, Store, StockLevel
from ..validation import ValidationError, coerce_id_list
from .concurrency import insert_ignore, run_with_retry


def _require_org_members(org_id: int, product_ids: list[int], store_ids: list[int]) -> None:
    found_products = {
        pid for (pid,) in db.session.query(Product.id).filter(
            Product.org_id == org_id, Product.id.in_(product_ids)
        )
    }
    missing_products = sorted(set(product_ids) - found_products)
    if missing_products:
        raise NotFound(
            "Products not found",
            details={"product_ids": missing_products},
        )

    found_stores = {
        sid for (sid,) in db.session.query(Store.id).filter(
            Store.org_id == org_id, Store.id.in_(store_ids)
        )
    }
    missing_stores = sorted(set(store_ids) - found_stores)
    if missing_stores:
        raise NotFound(
            "Stores not found",
            details={"store_ids": missing_stores},
        )


def allocate(org_id: int, product_ids, store_ids) -> dict:
    """
    Allocate every product in product_ids to every store in store_ids.

    Returns:
        {"created": n, "existing": m} counted over the requested pairs
    """
    product_ids = coerce_id_list("product_ids", product_ids)
    store_ids = coerce_id_list("store_ids", store_ids)

    def _op():
        _require_org_members(org_id, product_ids, store_ids)
        created = 0
        for product_id in product_ids:
            for store_id in store_ids:
                created += insert_ignore(
                    ProductAllocation,
                    product_id=product_id,
                    store_id=store_id,
                )
        db.session.commit()
        return created

    created = run_with_retry(_op)
    total = len(product_ids) * len(store_ids)
    current_app.logger.info(
        "Allocated %d product(s) to %d store(s): %d new, %d existing",
        len(product_ids), len(store_ids), created, total - created,
    )
    return {"created": created, "existing": total - created}


def deallocate(org_id: int, product_ids, store_ids) -> dict:
    """Explicitly remove pairs; absent pairs are ignored."""
    product_ids = coerce_id_list("product_ids", product_ids)
    store_ids = coerce_id_list("store_ids", store_ids)

    def _op():
        _require_org_members(org_id, product_ids, store_ids)
        removed = (
            db.session.query(ProductAllocation)
            .filter(
                ProductAllocation.product_id.in_(product_ids),
                ProductAllocation.store_id.in_(store_ids),
            )
            .delete(synchronize_session=False)
        )
        db.session.commit()
        return removed

    removed = run_with_retry(_op)
    current_app.logger.info(
        "Deallocated %d pair(s) for products %s at stores %s", removed, product_ids, store_ids
    )
    return {"removed": removed}


def is_allocated(product_id: int, store_id: int) -> bool:
    return (
        db.session.query(ProductAllocation.id)
        .filter_by(product_id=product_id, store_id=store_id)
        .first()
        is not None
    )


def list_store_products(store_id: int) -> list[int]:
    rows = (
        db.session.query(ProductAllocation.product_id)
        .filter_by(store_id=store_id)
        .order_by(ProductAllocation.product_id)
    )
    return [pid for (pid,) in rows]


def list_product_stores(product_id: int) -> list[int]:
    rows = (
        db.session.query(ProductAllocation.store_id)
        .filter_by(product_id=product_id)
        .order_by(ProductAllocation.store_id)
    )
    return [sid for (sid,) in rows]


# ================================================================================
# VARIANTS
# ================================================================================

def link_variants(org_id: int, product_id: int, variant_ids) -> dict:
    """
    Link product_id with each of variant_ids (size-differentiated siblings).

    Links are symmetric and idempotent.
    """
    variant_ids = coerce_id_list("variant_ids", variant_ids)
    if product_id in variant_ids:
        raise ValidationError("A product cannot be linked to itself")

    def _op():
        wanted = [product_id, *variant_ids]
        found = {
            pid for (pid,) in db.session.query(Product.id).filter(
                Product.org_id == org_id, Product.id.in_(wanted)
            )
        }
        missing = sorted(set(wanted) - found)
        if missing:
            raise NotFound("Products not found", details={"product_ids": missing})

        created = 0
        for variant_id in variant_ids:
            low, high = sorted((product_id, variant_id))
            created += insert_ignore(ProductVariantLink, low_product_id=low, high_product_id=high)
        db.session.commit()
        return created

    created = run_with_retry(_op)
    return {"created": created, "variant_ids": linked_variant_ids(product_id)}


def unlink_variant(org_id: int, product_id: int, variant_id: int) -> bool:
    low, high = sorted((product_id, variant_id))

    def _op():
        removed = (
            db.session.query(ProductVariantLink)
            .join(Product, Product.id == ProductVariantLink.low_product_id)
            .filter(
                Product.org_id == org_id,
                ProductVariantLink.low_product_id == low,
                ProductVariantLink.high_product_id == high,
            )
            .first()
        )
        if removed is None:
            return False
        db.session.delete(removed)
        db.session.commit()
        return True

    return run_with_retry(_op)


def linked_variant_ids(product_id: int) -> list[int]:
    rows = db.session.query(
        ProductVariantLink.low_product_id, ProductVariantLink.high_product_id
    ).filter(
        (ProductVariantLink.low_product_id == product_id)
        | (ProductVariantLink.high_product_id == product_id)
    )
    return sorted(high if low == product_id else low for low, high in rows)


# ================================================================================
# VISIBILITY
# ================================================================================

def store_catalog(store_id: int) -> list[dict]:
    """
    Products orderable at store_id, with their stock at that store.

    Only active, allocated products are listed; each product's variants are
    filtered by the same rule so a customer never sees a sibling they
    cannot order.
    """
    rows = (
        db.session.query(Product, StockLevel)
        .join(ProductAllocation, ProductAllocation.product_id == Product.id)
        .outerjoin(
            StockLevel,
            (StockLevel.product_id == Product.id) & (StockLevel.store_id == store_id),
        )
        .filter(ProductAllocation.store_id == store_id, Product.is_active.is_(True))
        .order_by(Product.name, Product.id)
        .all()
    )
    visible = {product.id for product, _ in rows}

    catalog = []
    for product, level in rows:
        item = product.to_dict()
        item["total_packs"] = level.total_packs if level else 0
        item["available_packs"] = level.available_packs if level else 0
        item["variant_ids"] = [vid for vid in linked_variant_ids(product.id) if vid in visible]
        catalog.append(item)
    return catalog
