from .api import OrderingApiClient
from .cart import CartAggregate, CartGateway, QuantityDelta
from .records import (
    CartLineState,
    CartSnapshot,
    LineConfirmation,
    OrderLineRecord,
    OrderRecord,
    ProductSnapshot,
    StatusChangeResult,
)
from .session import OrderingSession
