# Overview: Explicit per-store application state tying the catalog, the optimistic cart and the gateway together.

from __future__ import annotations

import logging

from ..errors import LimitExceeded
from .cart import CartAggregate
from .records import CartSnapshot, LineConfirmation, OrderRecord, ProductSnapshot

logger = logging.getLogger(__name__)


class OrderingSession:
    """
    Everything one store's ordering screen needs, passed around explicitly.

    gateway is usually an OrderingApiClient; any object with the same
    methods works (tests use in-memory fakes).
    """

    def __init__(self, gateway, store_id: int):
        self.gateway = gateway
        self.store_id = store_id
        self.catalog: dict[int, ProductSnapshot] = {}
        self.cart = CartAggregate(gateway, store_id)
        self.last_order: OrderRecord | None = None

    def refresh_catalog(self) -> list[ProductSnapshot]:
        products = self.gateway.get_catalog(self.store_id)
        self.catalog = {p.product_id: p for p in products}
        self.cart.seed_stock(products)
        return products

    def refresh_cart(self) -> CartSnapshot:
        snapshot = self.gateway.get_cart(self.store_id)
        self.cart.load(snapshot)
        return snapshot

    def add(self, product_id: int, quantity: int = 1) -> LineConfirmation:
        return self.cart.change_quantity(product_id, quantity)

    def remove(self, product_id: int, quantity: int = 1) -> LineConfirmation:
        return self.cart.change_quantity(product_id, -quantity)

    def submit(self) -> OrderRecord:
        """
        Submit the cart; the local cart is emptied once the server accepted it.

        Raises:
            LimitExceeded: accepted but awaiting approval; exc.order is the
                pending order and the reserved stock went back to the store
        """
        try:
            order = self.gateway.submit_order(self.store_id)
        except LimitExceeded as exc:
            self.cart.clear(released=True)
            self.last_order = exc.order
            logger.info("Order %s awaits approval", getattr(exc.order, "order_id", None))
            raise
        self.cart.clear()
        self.last_order = order
        return order
