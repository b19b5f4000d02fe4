# cart/models/cart_item.py

"""
CART ITEM MODEL

Rules:
- Identity is (cart, product, size, color); adding the same triple again
  increases quantity instead of creating a second line.
- size/color are stored as "" when not chosen, never NULL, so the unique
  constraint treats "no variant" as one value.
- unit_price is the catalog price captured when the line was first added.
"""

import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models

from products.models import Product
from .cart import Cart


class CartItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    cart = models.ForeignKey(
        Cart,
        on_delete=models.CASCADE,
        related_name="items",
    )

    product = models.ForeignKey(
        Product,
        on_delete=models.CASCADE,
        related_name="cart_items",
    )

    quantity = models.PositiveIntegerField(help_text="Must be greater than zero")

    size = models.CharField(max_length=50, blank=True, default="")
    color = models.CharField(max_length=50, blank=True, default="")

    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Catalog price captured when the line was added",
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["cart", "product", "size", "color"],
                name="unique_product_variant_per_cart",
            )
        ]

    def clean(self):
        if self.quantity is None or int(self.quantity) <= 0:
            raise ValidationError({"quantity": "Quantity must be at least 1"})

        if self.unit_price is None or self.unit_price < 0:
            raise ValidationError({"unit_price": "Price cannot be negative"})

    @property
    def line_total(self) -> Decimal:
        return (self.unit_price or Decimal("0.00")) * Decimal(int(self.quantity or 0))

    def __str__(self):
        variant = "/".join(v for v in (self.size, self.color) if v)
        name = getattr(self.product, "name", "Product")
        return f"{name} ({variant}) x {self.quantity}" if variant else f"{name} x {self.quantity}"
