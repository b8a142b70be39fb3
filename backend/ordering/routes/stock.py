# backend/ordering/routes/stock.py
"""
Stock ledger routes.

- POST /stock/adjust   signed manual correction of available packs
- POST /stock/restock  incoming packs (grows total and available)
- GET  /stock/:pid?store_id=  current level plus recent movements

A decrement larger than what is available is refused with 409
INSUFFICIENT_STOCK; it is never clamped.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import error_response, require_tenant
from ..services import stock_ledger_service, store_service
from ..validation import ValidationError, coerce_int, enforce_rules_packs


stock_bp = Blueprint("stock", __name__, url_prefix="/api/<org_code>/stock")


def _target(payload: dict) -> tuple[int, int]:
    for key in ("product_id", "store_id"):
        if key not in payload:
            raise ValidationError(f"{key} is required")
    product_id = coerce_int("product_id", payload["product_id"])
    store_id = coerce_int("store_id", payload["store_id"])
    store_service.get_product(g.org_id, product_id)
    store_service.get_store(g.org_id, store_id)
    return product_id, store_id


@stock_bp.post("/adjust")
@require_tenant
def adjust_stock():
    """
    Body:
        {"product_id": 1, "store_id": 2, "delta": -3, "reference": "count-2024-05"}
    """
    payload = request.get_json(silent=True) or {}
    try:
        product_id, store_id = _target(payload)
        delta = coerce_int("delta", payload.get("delta"))
        enforce_rules_packs("delta", delta, allow_negative=True)
        movement = stock_ledger_service.adjust_stock(
            product_id=product_id,
            store_id=store_id,
            delta=delta,
            reference=payload.get("reference"),
        )
        return jsonify({
            "movement": movement.to_dict(),
            "stock": stock_ledger_service.get_stock_level(product_id, store_id),
        }), 200
    except Exception as e:
        return error_response(e, "Failed to adjust stock")


@stock_bp.post("/restock")
@require_tenant
def restock():
    """Body: {"product_id": 1, "store_id": 2, "packs": 10}"""
    payload = request.get_json(silent=True) or {}
    try:
        product_id, store_id = _target(payload)
        packs = coerce_int("packs", payload.get("packs"))
        enforce_rules_packs("packs", packs)
        movement = stock_ledger_service.restock(
            product_id=product_id,
            store_id=store_id,
            packs=packs,
            reference=payload.get("reference"),
        )
        current_app.logger.info(
            "Restocked product %s at store %s with %s pack(s)", product_id, store_id, packs,
        )
        return jsonify({
            "movement": movement.to_dict(),
            "stock": stock_ledger_service.get_stock_level(product_id, store_id),
        }), 201
    except Exception as e:
        return error_response(e, "Failed to restock")


@stock_bp.get("/<int:product_id>")
@require_tenant
def get_stock(product_id: int):
    try:
        product_id, store_id = _target({
            "product_id": product_id,
            "store_id": request.args.get("store_id"),
        })
        limit = current_app.config.get("ORDERING_HISTORY_LIMIT", 200)
        movements = stock_ledger_service.list_movements(
            product_id=product_id, store_id=store_id, limit=limit,
        )
        return jsonify({
            **stock_ledger_service.get_stock_level(product_id, store_id),
            "movements": [m.to_dict() for m in movements],
        }), 200
    except Exception as e:
        return error_response(e, "Failed to load stock level")
