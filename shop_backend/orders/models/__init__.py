from .order import Order
from .order_item import OrderItem

__all__ = ["Order", "OrderItem"]
