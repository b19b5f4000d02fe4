import decimal
import uuid

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("orders", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="PaymentAttempt",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("provider", models.CharField(choices=[("mpesa", "M-Pesa")], default="mpesa", max_length=32)),
                (
                    "checkout_request_id",
                    models.CharField(
                        help_text="Provider correlation id (CheckoutRequestID).",
                        max_length=100,
                        unique=True,
                    ),
                ),
                ("merchant_request_id", models.CharField(blank=True, default="", max_length=100)),
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=12,
                        validators=[django.core.validators.MinValueValidator(decimal.Decimal("0.00"))],
                    ),
                ),
                ("phone_number", models.CharField(blank=True, default="", max_length=20)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("initiated", "Initiated"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("timed_out", "Timed out"),
                        ],
                        default="initiated",
                        max_length=32,
                    ),
                ),
                ("result_code", models.CharField(blank=True, default="", max_length=16)),
                ("result_description", models.CharField(blank=True, default="", max_length=255)),
                ("receipt_number", models.CharField(blank=True, default="", max_length=32)),
                ("provider_payload", models.JSONField(blank=True, default=dict)),
                ("initiated_at", models.DateTimeField(auto_now_add=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payment_attempts",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "ordering": ["-initiated_at"],
                "indexes": [
                    models.Index(fields=["status"], name="payattempt_status_idx"),
                    models.Index(fields=["order", "initiated_at"], name="payattempt_order_idx"),
                ],
            },
        ),
    ]
