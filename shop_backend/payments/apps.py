# payments/apps.py

"""
PAYMENTS APP CONFIG

M-Pesa STK Push:
- gateway adapter (payments.services.mpesa)
- callback / timeout webhooks + reconciliation
- payment status polling
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
