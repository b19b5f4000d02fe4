# orders/apps.py

"""
ORDERS APP CONFIG

Checkout + order lifecycle:
- cart snapshot → Order + OrderItems
- payment / fulfilment state machine
- cancellation with stock restore
"""

from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "orders"
    verbose_name = "Orders"
