# products/services/inventory.py

"""
======================================================
PATH: products/services/inventory.py
======================================================
INVENTORY SERVICES

Purpose:
- Decrement stock when a paid order commits it.
- Restore stock when a committed order is cancelled.

Rules:
- stock == -1 (UNLIMITED_STOCK) is never touched.
- Decrements are a single conditional UPDATE (stock >= qty), so two
  concurrent decrements can never drive stock below zero.
- Callers decide what a refused decrement means; this module only reports it.
"""

from __future__ import annotations

import logging

from django.db.models import F

from products.models.product import UNLIMITED_STOCK, Product

logger = logging.getLogger(__name__)


def _to_quantity(quantity) -> int:
    if isinstance(quantity, bool):
        raise ValueError("quantity must be an integer")
    qty = int(quantity)
    if qty <= 0:
        raise ValueError("quantity must be > 0")
    return qty


def has_available_stock(product: Product, quantity: int) -> bool:
    """Read-only check against the current row values (no lock)."""
    if int(product.stock) == UNLIMITED_STOCK:
        return True
    return int(product.stock) >= int(quantity)


def decrease_stock(product_id, quantity) -> bool:
    """
    Atomically remove `quantity` units.

    Returns:
    - True when the product is unlimited or the decrement applied
    - False when the product is missing or stock is insufficient
    """
    qty = _to_quantity(quantity)

    current = Product.objects.filter(pk=product_id).values_list("stock", flat=True).first()
    if current is None:
        logger.warning("Stock decrement for unknown product", extra={"product_id": str(product_id)})
        return False

    if current == UNLIMITED_STOCK:
        return True

    updated = Product.objects.filter(pk=product_id, stock__gte=qty).update(
        stock=F("stock") - qty
    )

    if not updated:
        logger.warning(
            "Stock decrement refused",
            extra={"product_id": str(product_id), "quantity": qty, "stock": current},
        )
        return False

    return True


def increase_stock(product_id, quantity) -> None:
    """Return `quantity` units to stock. Unlimited products are left as-is."""
    qty = _to_quantity(quantity)

    updated = (
        Product.objects.filter(pk=product_id)
        .exclude(stock=UNLIMITED_STOCK)
        .update(stock=F("stock") + qty)
    )

    if updated:
        logger.info("Stock restored", extra={"product_id": str(product_id), "quantity": qty})
