# payments/urls.py
"""
PAYMENTS API URLS

Base path (mounted in backend/urls.py):
    /api/payments/

- POST /api/payments/mpesa/callback/
- GET  /api/payments/mpesa/callback/
- POST /api/payments/mpesa/timeout/
- GET  /api/payments/order/<order_id>/status/
"""

from django.urls import path

from payments.views import MpesaCallbackView, MpesaTimeoutView, OrderPaymentStatusView

app_name = "payments"

urlpatterns = [
    # Safaricom (public)
    path("mpesa/callback/", MpesaCallbackView.as_view(), name="mpesa-callback"),
    path("mpesa/timeout/", MpesaTimeoutView.as_view(), name="mpesa-timeout"),

    # Storefront polling
    path(
        "order/<uuid:order_id>/status/",
        OrderPaymentStatusView.as_view(),
        name="order-payment-status",
    ),
]
