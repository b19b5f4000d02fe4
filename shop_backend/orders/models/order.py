# orders/models/order.py

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone


class Order(models.Model):
    """
    Customer order created at checkout.

    Key rules:
    - Items are a snapshot of the cart (OrderItem rows), written once.
    - status (fulfilment) and payment_status are separate axes:
        * completed payment moves status PENDING -> PAID
        * failed / timed-out payment keeps status PENDING (customer may retry
          with a fresh checkout)
    - Allowed status moves live in orders.services.order_lifecycle.
    - M-Pesa reconciliation does NOT go through mark_as_paid(); it uses a
      guarded UPDATE so a duplicate callback can never apply twice.
    """

    # ---------------- STATUS ----------------
    STATUS_PENDING = "pending"
    STATUS_PAID = "paid"
    STATUS_PROCESSING = "processing"
    STATUS_SHIPPED = "shipped"
    STATUS_DELIVERED = "delivered"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_PAID, "Paid"),
        (STATUS_PROCESSING, "Processing"),
        (STATUS_SHIPPED, "Shipped"),
        (STATUS_DELIVERED, "Delivered"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    # ---------------- PAYMENT METHOD ----------------
    PAYMENT_MPESA = "mpesa"
    PAYMENT_CARD = "card"
    PAYMENT_CASH = "cash"

    PAYMENT_METHOD_CHOICES = [
        (PAYMENT_MPESA, "M-Pesa"),
        (PAYMENT_CARD, "Card"),
        (PAYMENT_CASH, "Cash on Delivery"),
    ]

    # ---------------- PAYMENT STATUS ----------------
    PAYMENT_PENDING = "pending"
    PAYMENT_COMPLETED = "completed"
    PAYMENT_FAILED = "failed"

    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_PENDING, "Pending"),
        (PAYMENT_COMPLETED, "Completed"),
        (PAYMENT_FAILED, "Failed"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order_number = models.CharField(
        max_length=32,
        unique=True,
        help_text="Public order number, e.g. INF-2025-00042",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )

    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES)
    payment_status = models.CharField(
        max_length=20, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_PENDING
    )

    # Durable payment reference (M-Pesa receipt once paid)
    transaction_id = models.CharField(max_length=64, blank=True, default="", db_index=True)

    # ---------------- M-PESA ----------------
    # Correlation id; NULL until an STK push is issued, so uniqueness is sparse.
    mpesa_checkout_request_id = models.CharField(
        max_length=100, unique=True, null=True, blank=True
    )
    mpesa_merchant_request_id = models.CharField(max_length=100, blank=True, default="")
    mpesa_receipt_number = models.CharField(max_length=32, blank=True, default="")
    mpesa_phone_number = models.CharField(max_length=20, blank=True, default="")
    mpesa_transaction_date = models.CharField(max_length=20, blank=True, default="")

    # ---------------- SHIPPING ----------------
    shipping_name = models.CharField(max_length=120)
    shipping_phone = models.CharField(max_length=40, blank=True, default="")
    shipping_street = models.CharField(max_length=255)
    shipping_city = models.CharField(max_length=100)
    shipping_state = models.CharField(max_length=100)
    shipping_zip_code = models.CharField(max_length=20)
    shipping_country = models.CharField(max_length=100, default="Kenya")

    notes = models.TextField(max_length=500, blank=True, default="")
    tracking_number = models.CharField(max_length=100, blank=True, default="")

    # ---------------- INVENTORY / RECONCILIATION ----------------
    stock_committed = models.BooleanField(
        default=False,
        help_text="Set once stock was decremented for this order's lines.",
    )
    needs_reconciliation = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Payment and inventory/order state disagree; needs an operator.",
    )
    reconciliation_note = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "created_at"], name="order_user_created_idx"),
            models.Index(fields=["status"], name="order_status_idx"),
            models.Index(fields=["payment_status"], name="order_payment_status_idx"),
        ]

    # =====================================================
    # DERIVED
    # =====================================================

    @property
    def is_paid(self) -> bool:
        return self.payment_status == self.PAYMENT_COMPLETED

    @property
    def is_mpesa(self) -> bool:
        return self.payment_method == self.PAYMENT_MPESA

    @property
    def shipping_address(self) -> dict:
        return {
            "name": self.shipping_name,
            "phone": self.shipping_phone,
            "street": self.shipping_street,
            "city": self.shipping_city,
            "state": self.shipping_state,
            "zip_code": self.shipping_zip_code,
            "country": self.shipping_country,
        }

    # =====================================================
    # CONTROLLED TRANSITIONS
    # =====================================================

    def mark_as_paid(self, transaction_id: str, receipt_number: str | None = None) -> None:
        """
        Record a confirmed payment (offline confirmation of cash/card orders).

        status only moves PENDING -> PAID; a cash order that is already
        PROCESSING/SHIPPED keeps its fulfilment status.
        """
        self.payment_status = self.PAYMENT_COMPLETED
        self.transaction_id = str(transaction_id or "")
        if receipt_number:
            self.mpesa_receipt_number = receipt_number
        if self.status == self.STATUS_PENDING:
            self.status = self.STATUS_PAID
        self.paid_at = self.paid_at or timezone.now()
        self.save(
            update_fields=[
                "payment_status",
                "transaction_id",
                "mpesa_receipt_number",
                "status",
                "paid_at",
                "updated_at",
            ]
        )

    def mark_payment_failed(self) -> None:
        """paymentStatus -> failed; status stays PENDING so checkout can be retried."""
        if self.payment_status == self.PAYMENT_COMPLETED:
            return
        self.payment_status = self.PAYMENT_FAILED
        self.save(update_fields=["payment_status", "updated_at"])

    def update_status(self, new_status: str) -> None:
        from orders.services.order_lifecycle import validate_transition

        validate_transition(order=self, target_status=new_status)

        self.status = new_status
        fields = ["status", "updated_at"]

        if new_status == self.STATUS_DELIVERED:
            self.delivered_at = timezone.now()
            fields.append("delivered_at")
        elif new_status == self.STATUS_CANCELLED:
            self.cancelled_at = timezone.now()
            fields.append("cancelled_at")

        self.save(update_fields=fields)

    def __str__(self):
        return f"{self.order_number} | {self.total_amount} | {self.status}/{self.payment_status}"
