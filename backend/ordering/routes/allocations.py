# Overview: Flask API routes for product-to-store allocation and variant links.

from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, require_tenant
from ..services import allocation_service, store_service


allocations_bp = Blueprint("allocations", __name__, url_prefix="/api/<org_code>")


@allocations_bp.post("/allocations")
@require_tenant
def allocate():
    """
    Allocate every product to every store (set union, idempotent).

    Body:
        {"product_ids": [1, 2], "store_ids": [5]}

    Response:
        {"created": 1, "existing": 1}
    """
    payload = request.get_json(silent=True) or {}
    try:
        result = allocation_service.allocate(
            g.org_id, payload.get("product_ids"), payload.get("store_ids"),
        )
        return jsonify(result), 200
    except Exception as e:
        return error_response(e, "Failed to allocate products")


@allocations_bp.delete("/allocations")
@require_tenant
def deallocate():
    payload = request.get_json(silent=True) or {}
    try:
        result = allocation_service.deallocate(
            g.org_id, payload.get("product_ids"), payload.get("store_ids"),
        )
        return jsonify(result), 200
    except Exception as e:
        return error_response(e, "Failed to deallocate products")


@allocations_bp.get("/stores/<int:store_id>/allocations")
@require_tenant
def store_allocations(store_id: int):
    try:
        store_service.get_store(g.org_id, store_id)
        return jsonify({
            "store_id": store_id,
            "product_ids": allocation_service.list_store_products(store_id),
        }), 200
    except Exception as e:
        return error_response(e, "Failed to list store allocations")


@allocations_bp.get("/products/<int:product_id>/allocations")
@require_tenant
def product_allocations(product_id: int):
    try:
        store_service.get_product(g.org_id, product_id)
        return jsonify({
            "product_id": product_id,
            "store_ids": allocation_service.list_product_stores(product_id),
        }), 200
    except Exception as e:
        return error_response(e, "Failed to list product allocations")


@allocations_bp.post("/products/<int:product_id>/variants")
@require_tenant
def link_variants(product_id: int):
    """Body: {"variant_ids": [7, 8]}"""
    payload = request.get_json(silent=True) or {}
    try:
        result = allocation_service.link_variants(g.org_id, product_id, payload.get("variant_ids"))
        return jsonify(result), 200
    except Exception as e:
        return error_response(e, "Failed to link variants")


@allocations_bp.delete("/products/<int:product_id>/variants/<int:variant_id>")
@require_tenant
def unlink_variant(product_id: int, variant_id: int):
    try:
        removed = allocation_service.unlink_variant(g.org_id, product_id, variant_id)
        return jsonify({
            "removed": removed,
            "variant_ids": allocation_service.linked_variant_ids(product_id),
        }), 200
    except Exception as e:
        return error_response(e, "Failed to unlink variant")
