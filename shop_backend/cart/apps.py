# cart/apps.py

"""
CART APP CONFIG

Customer shopping cart:
- one cart per user
- line items keyed by (product, size, color)
- price captured at add time
"""

from django.apps import AppConfig


class CartConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "cart"
    verbose_name = "Cart"
