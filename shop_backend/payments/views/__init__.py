from .order_status import OrderPaymentStatusView
from .webhook import MpesaCallbackView, MpesaTimeoutView

__all__ = [
    "MpesaCallbackView",
    "MpesaTimeoutView",
    "OrderPaymentStatusView",
]
