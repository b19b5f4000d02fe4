from .checkout import CheckoutThrottle, CheckoutView
from .orders import OrderViewSet

__all__ = [
    "CheckoutThrottle",
    "CheckoutView",
    "OrderViewSet",
]
