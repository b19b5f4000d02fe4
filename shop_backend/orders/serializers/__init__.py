from .order import CheckoutInputSerializer, OrderSerializer
from .order_item import OrderItemSerializer

__all__ = [
    "CheckoutInputSerializer",
    "OrderItemSerializer",
    "OrderSerializer",
]
