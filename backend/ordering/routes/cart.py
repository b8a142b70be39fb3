# Overview: Flask API routes for the server-side cart; every change reserves or releases stock.

from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, require_tenant
from ..services import cart_service, store_service
from ..validation import ValidationError


cart_bp = Blueprint("cart", __name__, url_prefix="/api/<org_code>/stores")


@cart_bp.get("/<int:store_id>/cart")
@require_tenant
def get_cart(store_id: int):
    try:
        store_service.get_store(g.org_id, store_id)
        return jsonify(cart_service.get_cart(store_id)), 200
    except Exception as e:
        return error_response(e, "Failed to load cart")


@cart_bp.post("/<int:store_id>/cart/<int:product_id>")
@require_tenant
def change_quantity(store_id: int, product_id: int):
    """
    Move a cart line by delta packs.

    Body:
        {"delta": 2}     reserve 2 more packs
        {"delta": -1}    release 1 pack

    Response (200):
        {"product_id", "quantity", "available_packs", "cart"}

    Error responses:
        400: delta missing/zero/not an integer, or removes more than held
        404: store or product not found
        409: INSUFFICIENT_STOCK or ALLOCATION_CONFLICT
    """
    payload = request.get_json(silent=True) or {}
    try:
        if "delta" not in payload:
            raise ValidationError("delta is required")
        store_service.get_store(g.org_id, store_id)
        product = store_service.get_product(g.org_id, product_id)
        confirmation = cart_service.change_quantity(store_id, product, payload["delta"])
        return jsonify(confirmation), 200
    except Exception as e:
        return error_response(e, "Failed to change cart quantity")


@cart_bp.delete("/<int:store_id>/cart/<int:product_id>")
@require_tenant
def remove_line(store_id: int, product_id: int):
    try:
        store_service.get_store(g.org_id, store_id)
        return jsonify(cart_service.remove_line(store_id, product_id)), 200
    except Exception as e:
        return error_response(e, "Failed to remove cart line")


@cart_bp.delete("/<int:store_id>/cart")
@require_tenant
def clear_cart(store_id: int):
    try:
        store_service.get_store(g.org_id, store_id)
        return jsonify(cart_service.clear_cart(store_id)), 200
    except Exception as e:
        return error_response(e, "Failed to clear cart")
