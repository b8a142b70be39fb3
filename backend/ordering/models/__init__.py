from .tenancy import Organization, Store
from .catalog import Product, ProductAllocation, ProductVariantLink
from .stock import StockLevel, StockMovement
from .orders import CartLine, Order, OrderLine, OrderStatusEvent

__all__ = [
    'Organization', 'Store',
    'Product', 'ProductAllocation', 'ProductVariantLink',
    'StockLevel', 'StockMovement',
    'CartLine', 'Order', 'OrderLine', 'OrderStatusEvent',
]
