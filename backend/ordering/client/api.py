# Overview: httpx client for the ordering API; maps JSON to records and error codes to typed exceptions.

"""
HTTP gateway used by the client-side cart and session.

ERROR MAPPING:
- Transport errors (connect, timeout) and any 5xx -> NetworkFailure
- Body "code" -> the matching class from ordering.errors
  (INSUFFICIENT_STOCK, ALLOCATION_CONFLICT, ILLEGAL_TRANSITION, NOT_FOUND)
- VALIDATION_ERROR -> ValidationError
- 202 on order submission -> LimitExceeded carrying the pending order
"""

from __future__ import annotations

import logging

import httpx

from ..errors import ERRORS_BY_CODE, LimitExceeded, NetworkFailure, OrderingError
from ..validation import ValidationError
from .records import (
    CartSnapshot,
    LineConfirmation,
    OrderRecord,
    ProductSnapshot,
    StatusChangeResult,
)

logger = logging.getLogger(__name__)


class OrderingApiClient:
    """
    Thin wrapper over httpx.Client scoped to one organization.

    transport is passed straight to httpx (tests use httpx.MockTransport or
    httpx.WSGITransport around the Flask app).
    """

    def __init__(
        self,
        base_url: str,
        org_code: str,
        *,
        transport: httpx.BaseTransport | None = None,
        timeout: float = 10.0,
        actor: str | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.org_code = org_code
        self.actor = actor
        self.client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.actor:
            headers["X-Actor"] = self.actor
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict | None = None,
        params: dict | None = None,
        ok: tuple[int, ...] = (200, 201),
    ) -> httpx.Response:
        url = f"/api/{self.org_code}{path}"
        try:
            response = self.client.request(method, url, json=json, params=params, headers=self._headers())
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise NetworkFailure(f"Could not reach ordering service: {exc}") from exc

        if response.status_code in ok:
            return response
        raise self._error_for(response)

    @staticmethod
    def _error_for(response: httpx.Response) -> Exception:
        if response.status_code >= 500:
            return NetworkFailure(
                f"Ordering service error (HTTP {response.status_code})",
                details={"status_code": response.status_code},
            )
        try:
            body = response.json()
        except ValueError:
            body = {}
        code = body.get("code")
        message = body.get("error") or f"HTTP {response.status_code}"
        details = body.get("details") or {}

        if code == ValidationError.code:
            return ValidationError(message)
        cls = ERRORS_BY_CODE.get(code)
        if cls is None:
            return OrderingError(message, details)
        return cls(message, details)

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    # --- catalog / cart -------------------------------------------------------

    def get_catalog(self, store_id: int) -> list[ProductSnapshot]:
        data = self._request("GET", f"/stores/{store_id}/catalog").json()
        return [ProductSnapshot.from_dict(p) for p in data["products"]]

    def get_cart(self, store_id: int) -> CartSnapshot:
        return CartSnapshot.from_dict(self._request("GET", f"/stores/{store_id}/cart").json())

    def change_quantity(self, store_id: int, product_id: int, delta: int) -> LineConfirmation:
        response = self._request("POST", f"/stores/{store_id}/cart/{product_id}", json={"delta": delta})
        return LineConfirmation.from_dict(response.json())

    def get_budget(self, store_id: int) -> dict:
        return self._request("GET", f"/stores/{store_id}/budget").json()

    # --- orders ---------------------------------------------------------------

    def submit_order(self, store_id: int) -> OrderRecord:
        """
        Submit the store's cart.

        Raises:
            LimitExceeded: the order was created in approval_pending; the
                record is on exc.order and the guard result on exc.evaluation
        """
        response = self._request("POST", f"/stores/{store_id}/orders", ok=(201, 202))
        body = response.json()
        order = OrderRecord.from_dict(body["order"])
        if response.status_code == 202:
            raise LimitExceeded(
                body.get("error") or "Order awaits approval",
                details=body.get("details") or {},
                order=order,
                evaluation=body.get("evaluation"),
            )
        return order

    def get_order(self, order_id: int) -> OrderRecord:
        return OrderRecord.from_dict(self._request("GET", f"/orders/{order_id}").json())

    def list_orders(self, *, store_id: int | None = None, status: str | None = None) -> list[OrderRecord]:
        params = {k: v for k, v in (("store_id", store_id), ("status", status)) if v is not None}
        data = self._request("GET", "/orders", params=params).json()
        return [OrderRecord.from_dict(o) for o in data]

    def approve_order(self, order_id: int, note: str | None = None) -> OrderRecord:
        body = self._request("POST", f"/orders/{order_id}/approve", json={"note": note}).json()
        return OrderRecord.from_dict(body["order"])

    def reject_order(self, order_id: int, note: str | None = None, *, sedis: bool = False) -> OrderRecord:
        body = self._request(
            "POST", f"/orders/{order_id}/reject", json={"note": note, "sedis": sedis},
        ).json()
        return OrderRecord.from_dict(body["order"])

    def change_order_status(self, order_ids: list[int], status: str) -> list[StatusChangeResult]:
        body = self._request(
            "POST", "/orders/status", json={"order_ids": list(order_ids), "status": status},
        ).json()
        return [StatusChangeResult.from_dict(r) for r in body["results"]]

    # --- allocation -----------------------------------------------------------

    def allocate(self, product_ids: list[int], store_ids: list[int]) -> dict:
        return self._request(
            "POST", "/allocations",
            json={"product_ids": list(product_ids), "store_ids": list(store_ids)},
        ).json()

    def deallocate(self, product_ids: list[int], store_ids: list[int]) -> dict:
        return self._request(
            "DELETE", "/allocations",
            json={"product_ids": list(product_ids), "store_ids": list(store_ids)},
        ).json()
