# orders/urls.py
"""
ORDERS API URLS

Base path (mounted in backend/urls.py):
    /api/orders/

- POST /api/orders/checkout/
- GET  /api/orders/
- GET  /api/orders/<id>/
- POST /api/orders/<id>/cancel/
"""

from django.urls import path
from rest_framework.routers import SimpleRouter

from orders.views import CheckoutView, OrderViewSet

app_name = "orders"

router = SimpleRouter()
router.register("", OrderViewSet, basename="order")

urlpatterns = [
    # checkout must precede the router's <pk>/ route
    path("checkout/", CheckoutView.as_view(), name="checkout"),
] + router.urls
