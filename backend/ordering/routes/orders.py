# backend/ordering/routes/orders.py
"""
Order API Routes

- POST /api/<org>/stores/:sid/orders      Submit the store's cart
- GET  /api/<org>/stores/:sid/orders      Orders of one store
- GET  /api/<org>/orders                  Orders of the organization (?store_id=&status=)
- GET  /api/<org>/orders/:id              One order with lines and status history
- POST /api/<org>/orders/:id/approve      approval_pending -> confirmed (limit override)
- POST /api/<org>/orders/:id/reject       -> rejected (or sedis_rejected)
- POST /api/<org>/orders/status           Batch transition, per-order results

ACTOR: the X-Actor header is recorded on status events. It is an audit
label only; authentication is outside this service.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, require_tenant
from ..errors import LimitExceeded
from ..services import order_service, store_service
from ..validation import coerce_int


orders_bp = Blueprint("orders", __name__, url_prefix="/api/<org_code>")


def _actor() -> str | None:
    return request.headers.get("X-Actor") or None


@orders_bp.post("/stores/<int:store_id>/orders")
@require_tenant
def submit_order(store_id: int):
    """
    Convert the cart into an order.

    Response:
        201: {"order": {...}, "evaluation": {...}}  order is confirmed
        202: LIMIT_EXCEEDED body plus "order"; order is approval_pending

    Error responses:
        400: cart empty
        404: store not found
        409: ALLOCATION_CONFLICT (cart untouched)
    """
    try:
        result = order_service.submit_order(g.org_id, store_id, actor=_actor())
    except Exception as e:
        return error_response(e, "Failed to submit order")

    order = result.order.to_dict()
    if result.pending_approval:
        exc = LimitExceeded(
            f"Order {result.order.id} exceeds the store's monthly limits and awaits approval",
            details={"evaluation": result.evaluation.to_dict()},
        )
        body = exc.to_dict()
        body["order"] = order
        body["evaluation"] = result.evaluation.to_dict()
        return jsonify(body), exc.http_status

    return jsonify({"order": order, "evaluation": result.evaluation.to_dict()}), 201


@orders_bp.get("/stores/<int:store_id>/orders")
@require_tenant
def list_store_orders(store_id: int):
    try:
        store_service.get_store(g.org_id, store_id)
        orders = order_service.list_orders(
            g.org_id,
            store_id=store_id,
            status=request.args.get("status"),
        )
        return jsonify([o.to_dict(include_lines=False) for o in orders]), 200
    except Exception as e:
        return error_response(e, "Failed to list store orders")


@orders_bp.get("/orders")
@require_tenant
def list_orders():
    try:
        store_id = request.args.get("store_id")
        orders = order_service.list_orders(
            g.org_id,
            store_id=coerce_int("store_id", store_id) if store_id else None,
            status=request.args.get("status"),
        )
        return jsonify([o.to_dict(include_lines=False) for o in orders]), 200
    except Exception as e:
        return error_response(e, "Failed to list orders")


@orders_bp.get("/orders/<int:order_id>")
@require_tenant
def get_order(order_id: int):
    try:
        order = order_service.get_order(g.org_id, order_id)
        data = order.to_dict()
        data["events"] = [ev.to_dict() for ev in order_service.order_events(g.org_id, order_id)]
        return jsonify(data), 200
    except Exception as e:
        return error_response(e, "Failed to load order")


@orders_bp.post("/orders/<int:order_id>/approve")
@require_tenant
def approve_order(order_id: int):
    """
    Approve a pending order despite its limit overage.

    Re-takes stock for every line; 409 INSUFFICIENT_STOCK leaves the order
    in approval_pending.
    """
    payload = request.get_json(silent=True) or {}
    try:
        order = order_service.approve_order(
            g.org_id, order_id, actor=_actor(), note=payload.get("note"),
        )
        return jsonify({"order": order.to_dict()}), 200
    except Exception as e:
        return error_response(e, "Failed to approve order")


@orders_bp.post("/orders/<int:order_id>/reject")
@require_tenant
def reject_order(order_id: int):
    """Body (optional): {"note": "...", "sedis": true}"""
    payload = request.get_json(silent=True) or {}
    try:
        order = order_service.reject_order(
            g.org_id,
            order_id,
            actor=_actor(),
            note=payload.get("note"),
            sedis=bool(payload.get("sedis", False)),
        )
        return jsonify({"order": order.to_dict()}), 200
    except Exception as e:
        return error_response(e, "Failed to reject order")


@orders_bp.post("/orders/status")
@require_tenant
def change_order_status():
    """
    Move several orders to one status.

    Body:
        {"order_ids": [1, 2, 3], "status": "confirmed"}

    Response (200, even when some orders failed):
        {"results": [{"order_id", "ok", "status", "code", "error"}, ...]}
    """
    payload = request.get_json(silent=True) or {}
    try:
        results = order_service.change_order_status(
            g.org_id,
            payload.get("order_ids"),
            payload.get("status"),
            actor=_actor(),
        )
        return jsonify({"results": results}), 200
    except Exception as e:
        return error_response(e, "Failed to change order status")
