# Overview: Closed, immutable records the client builds from server JSON at the API boundary.

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ProductSnapshot:
    product_id: int
    sku: str
    name: str
    price_cents: int
    pack_quantity: int
    total_packs: int
    available_packs: int
    variant_ids: tuple[int, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> ProductSnapshot:
        return cls(
            product_id=data["id"],
            sku=data["sku"],
            name=data["name"],
            price_cents=data["price_cents"],
            pack_quantity=data.get("pack_quantity", 1),
            total_packs=data.get("total_packs", 0),
            available_packs=data.get("available_packs", 0),
            variant_ids=tuple(data.get("variant_ids") or ()),
        )


@dataclass(frozen=True)
class CartLineState:
    product_id: int
    quantity: int
    unit_price_cents: int
    sku: str | None = None
    name: str | None = None

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    @classmethod
    def from_dict(cls, data: dict) -> CartLineState:
        return cls(
            product_id=data["product_id"],
            quantity=data["quantity"],
            unit_price_cents=data["unit_price_cents"],
            sku=data.get("sku"),
            name=data.get("name"),
        )


@dataclass(frozen=True)
class CartSnapshot:
    store_id: int
    lines: tuple[CartLineState, ...]
    total_cents: int

    @classmethod
    def from_dict(cls, data: dict) -> CartSnapshot:
        return cls(
            store_id=data["store_id"],
            lines=tuple(CartLineState.from_dict(line) for line in data.get("lines", [])),
            total_cents=data.get("total_cents", 0),
        )


@dataclass(frozen=True)
class LineConfirmation:
    """Server answer to one cart quantity change."""
    product_id: int
    quantity: int
    available_packs: int
    cart: CartSnapshot

    @classmethod
    def from_dict(cls, data: dict) -> LineConfirmation:
        return cls(
            product_id=data["product_id"],
            quantity=data["quantity"],
            available_packs=data["available_packs"],
            cart=CartSnapshot.from_dict(data["cart"]),
        )


@dataclass(frozen=True)
class OrderLineRecord:
    product_id: int
    sku: str
    name: str
    quantity: int
    unit_price_cents: int
    line_total_cents: int

    @classmethod
    def from_dict(cls, data: dict) -> OrderLineRecord:
        return cls(
            product_id=data["product_id"],
            sku=data["sku"],
            name=data["name"],
            quantity=data["quantity"],
            unit_price_cents=data["unit_price_cents"],
            line_total_cents=data["line_total_cents"],
        )


@dataclass(frozen=True)
class OrderRecord:
    order_id: int
    store_id: int
    status: str
    total_amount_cents: int
    stock_committed: bool
    exceeds_budget: bool = False
    exceed_amount_cents: int | None = None
    exceeds_order_count: bool = False
    lines: tuple[OrderLineRecord, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> OrderRecord:
        limits = data.get("limits") or {}
        return cls(
            order_id=data["order_id"],
            store_id=data["store_id"],
            status=data["status"],
            total_amount_cents=data["total_amount_cents"],
            stock_committed=data.get("stock_committed", False),
            exceeds_budget=limits.get("exceeds_budget", False),
            exceed_amount_cents=limits.get("exceed_amount_cents"),
            exceeds_order_count=limits.get("exceeds_order_count", False),
            lines=tuple(OrderLineRecord.from_dict(line) for line in data.get("lines", [])),
        )


@dataclass(frozen=True)
class StatusChangeResult:
    order_id: int
    ok: bool
    status: str | None
    code: str | None = None
    error: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> StatusChangeResult:
        return cls(
            order_id=data["order_id"],
            ok=data["ok"],
            status=data.get("status"),
            code=data.get("code"),
            error=data.get("error"),
        )
