# Overview: Flask API routes for store catalog, limits and budget; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, require_tenant
from ..services import allocation_service, store_service


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/<org_code>/stores")


@catalog_bp.get("/<int:store_id>/catalog")
@require_tenant
def get_catalog(store_id: int):
    """
    Products orderable at the store, with stock and visible variants.

    Response:
        {"store_id": 1, "products": [{..., "available_packs": 8, "variant_ids": [3]}]}
    """
    try:
        store_service.get_store(g.org_id, store_id)
        products = allocation_service.store_catalog(store_id)
        return jsonify({"store_id": store_id, "products": products}), 200
    except Exception as e:
        return error_response(e, "Failed to load catalog")


@catalog_bp.get("/<int:store_id>/limits")
@require_tenant
def get_limits(store_id: int):
    try:
        store = store_service.get_store(g.org_id, store_id)
        return jsonify(store.limits_dict()), 200
    except Exception as e:
        return error_response(e, "Failed to load store limits")


@catalog_bp.put("/<int:store_id>/limits")
@require_tenant
def update_limits(store_id: int):
    """
    Update monthly budget / order-count limits.

    Body: any of monthly_expense_limit_cents, budget_limit_enabled,
    monthly_order_limit, order_limit_enabled.
    """
    payload = request.get_json(silent=True) or {}
    try:
        store = store_service.update_limits(g.org_id, store_id, payload)
        return jsonify(store.limits_dict()), 200
    except Exception as e:
        return error_response(e, "Failed to update store limits")


@catalog_bp.get("/<int:store_id>/budget")
@require_tenant
def get_budget(store_id: int):
    try:
        return jsonify(store_service.get_budget(g.org_id, store_id)), 200
    except Exception as e:
        return error_response(e, "Failed to load store budget")
