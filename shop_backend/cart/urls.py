"""
PATH: cart/urls.py

CART URLS
"""

from django.urls import path

from cart.views import CartItemsView, CartView

app_name = "cart"

urlpatterns = [
    path("", CartView.as_view(), name="cart"),
    path("items/", CartItemsView.as_view(), name="cart-items"),
]
