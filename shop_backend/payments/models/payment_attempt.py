# payments/models/payment_attempt.py

import uuid
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone


class PaymentAttempt(models.Model):
    """
    One STK push issued for an Order.

    Audit trail only: Order carries the authoritative payment state.
    - checkout_request_id is unique (provider correlation id)
    - the callback/timeout payload is stored verbatim in provider_payload
    """

    PROVIDER_MPESA = "mpesa"
    PROVIDER_CHOICES = [
        (PROVIDER_MPESA, "M-Pesa"),
    ]

    STATUS_INITIATED = "initiated"
    STATUS_COMPLETED = "completed"
    STATUS_FAILED = "failed"
    STATUS_TIMED_OUT = "timed_out"

    STATUS_CHOICES = [
        (STATUS_INITIATED, "Initiated"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_FAILED, "Failed"),
        (STATUS_TIMED_OUT, "Timed out"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="payment_attempts",
    )

    provider = models.CharField(max_length=32, choices=PROVIDER_CHOICES, default=PROVIDER_MPESA)

    checkout_request_id = models.CharField(
        max_length=100,
        unique=True,
        help_text="Provider correlation id (CheckoutRequestID).",
    )
    merchant_request_id = models.CharField(max_length=100, blank=True, default="")

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    phone_number = models.CharField(max_length=20, blank=True, default="")

    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default=STATUS_INITIATED)

    result_code = models.CharField(max_length=16, blank=True, default="")
    result_description = models.CharField(max_length=255, blank=True, default="")
    receipt_number = models.CharField(max_length=32, blank=True, default="")

    provider_payload = models.JSONField(default=dict, blank=True)

    initiated_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-initiated_at"]
        indexes = [
            models.Index(fields=["status"], name="payattempt_status_idx"),
            models.Index(fields=["order", "initiated_at"], name="payattempt_order_idx"),
        ]

    def record_result(self, *, status: str, result_code="", description="", receipt="", payload=None):
        self.status = status
        self.result_code = "" if result_code is None else str(result_code)
        self.result_description = str(description or "")[:255]
        if receipt:
            self.receipt_number = str(receipt)
        if payload is not None:
            self.provider_payload = payload
        self.completed_at = self.completed_at or timezone.now()
        self.save(
            update_fields=[
                "status",
                "result_code",
                "result_description",
                "receipt_number",
                "provider_payload",
                "completed_at",
            ]
        )

    def __str__(self):
        return f"{self.provider}:{self.checkout_request_id} | {self.status}"
