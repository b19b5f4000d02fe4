# products/models/product.py

import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

UNLIMITED_STOCK = -1


class Product(models.Model):
    """
    Represents a sellable product or service.

    STOCK MODEL (IMPORTANT):
    - stock is a signed integer stored on the product row
    - stock == -1 means UNLIMITED (services); it is never incremented/decremented
    - any other value must never go negative

    Stock is only mutated through products.services.inventory (atomic UPDATEs).
    Editing the catalog (names, images, prices) is done in Django admin.
    """

    class Category(models.TextChoices):
        CLADS = "clads", "Clothing"
        SERVICES = "services", "Services"
        ACCESSORIES = "accessories", "Accessories"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=100, db_index=True)
    description = models.TextField(max_length=2000, blank=True, default="")

    category = models.CharField(
        max_length=32,
        choices=Category.choices,
        default=Category.CLADS,
        db_index=True,
    )

    # Current catalog price (KES). Carts snapshot it at add time.
    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )

    stock = models.IntegerField(
        default=0,
        validators=[MinValueValidator(UNLIMITED_STOCK)],
        help_text="Units on hand. -1 means unlimited (services).",
    )

    sizes = models.JSONField(default=list, blank=True)
    colors = models.JSONField(default=list, blank=True)

    is_active = models.BooleanField(default=True, db_index=True)
    featured = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["category", "is_active"], name="product_category_active_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(stock__gte=UNLIMITED_STOCK),
                name="product_stock_not_below_unlimited_sentinel",
            ),
        ]

    def __str__(self):
        return self.name

    def clean(self):
        if self.price is None or Decimal(self.price) < Decimal("0.00"):
            raise ValidationError({"price": "Price cannot be negative"})

        if self.stock is None or int(self.stock) < UNLIMITED_STOCK:
            raise ValidationError({"stock": "Invalid stock value"})

    def save(self, *args, **kwargs):
        # Services are always unlimited
        if self.category == self.Category.SERVICES:
            self.stock = UNLIMITED_STOCK
        super().save(*args, **kwargs)

    @property
    def has_unlimited_stock(self) -> bool:
        return int(self.stock) == UNLIMITED_STOCK

    @property
    def is_in_stock(self) -> bool:
        if self.has_unlimited_stock:
            return True
        return int(self.stock or 0) > 0
