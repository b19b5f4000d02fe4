# cart/services/cart_service.py

"""
CART SERVICE

Purpose:
- The only code path that mutates a cart.

Hard rules:
- Every mutation runs in one transaction with the cart row locked
  (select_for_update), mutates the items, then recomputes and saves
  total_amount. Concurrent readers never see a partial total.
- Line identity is (product, size, color); blank variant == "".
- unit_price is captured from the catalog once, when the line is created.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal

from django.db import transaction
from django.db.models import DecimalField, ExpressionWrapper, F, Sum

from backend.errors import InsufficientStockError, NotFoundError, ProductUnavailableError
from backend.errors import ValidationError as ShopValidationError
from cart.models import Cart, CartItem
from products.models import Product

logger = logging.getLogger(__name__)

TWOPLACES = Decimal("0.01")


def _money(v) -> Decimal:
    if v is None or v == "":
        return Decimal("0.00")
    return Decimal(str(v)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def _variant(value) -> str:
    return str(value or "").strip()


def _to_int_qty(value) -> int:
    if isinstance(value, bool):
        raise ShopValidationError("quantity must be a whole number")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ShopValidationError("quantity must be a whole number")


def _line_filter(product_id, size, color) -> dict:
    return {"product_id": product_id, "size": _variant(size), "color": _variant(color)}


def _check_stock(product: Product, quantity: int) -> None:
    if product.has_unlimited_stock:
        return
    if int(product.stock) < quantity:
        raise InsufficientStockError(
            f"Insufficient stock. Only {product.stock} items available."
        )


# =====================================================
# READ
# =====================================================


def get_or_create_cart(user) -> Cart:
    cart, _ = Cart.objects.get_or_create(user=user)
    return cart


def item_count(cart: Cart) -> int:
    """Total units across all lines."""
    return cart.item_count


def _lock_cart(user) -> Cart:
    cart = get_or_create_cart(user)
    return Cart.objects.select_for_update().get(pk=cart.pk)


def recompute_total(cart: Cart) -> Decimal:
    """Caller must hold the cart lock."""
    line_total = ExpressionWrapper(
        F("unit_price") * F("quantity"),
        output_field=DecimalField(max_digits=14, decimal_places=2),
    )
    total = cart.items.aggregate(total=Sum(line_total)).get("total")
    cart.total_amount = _money(total)
    cart.save(update_fields=["total_amount", "updated_at"])
    return cart.total_amount


# =====================================================
# MUTATIONS
# =====================================================


def add_item(*, user, product_id, quantity=1, size=None, color=None) -> Cart:
    """
    Add a product to the caller's cart.

    - matching (product, size, color) line: quantity increases, price unchanged
    - otherwise: new line priced at the current catalog price
    """
    qty = _to_int_qty(quantity)
    if qty < 1:
        raise ShopValidationError("Quantity must be at least 1")

    product = Product.objects.filter(pk=product_id).first()
    if product is None:
        raise NotFoundError("Product not found", code="PRODUCT_NOT_FOUND")
    if not product.is_active:
        raise ProductUnavailableError("Product is not available")

    with transaction.atomic():
        cart = _lock_cart(user)

        item = cart.items.filter(**_line_filter(product.id, size, color)).first()
        requested = qty + (item.quantity if item else 0)
        _check_stock(product, requested)

        if item:
            item.quantity = requested
            item.save(update_fields=["quantity"])
        else:
            CartItem.objects.create(
                cart=cart,
                product=product,
                quantity=qty,
                size=_variant(size),
                color=_variant(color),
                unit_price=_money(product.price),
            )

        recompute_total(cart)

    logger.info(
        "Cart item added",
        extra={"cart_id": str(cart.id), "product_id": str(product.id), "quantity": qty},
    )
    return cart


def remove_item(*, user, product_id, size=None, color=None) -> bool:
    """Returns False when no matching line exists."""
    with transaction.atomic():
        cart = _lock_cart(user)
        deleted, _ = cart.items.filter(**_line_filter(product_id, size, color)).delete()
        if not deleted:
            return False
        recompute_total(cart)
    return True


def update_quantity(*, user, product_id, quantity, size=None, color=None) -> bool:
    """
    Set a line's quantity. quantity <= 0 removes the line.

    Returns False when no matching line exists.
    """
    qty = _to_int_qty(quantity)
    if qty <= 0:
        return remove_item(user=user, product_id=product_id, size=size, color=color)

    with transaction.atomic():
        cart = _lock_cart(user)
        item = (
            cart.items.select_related("product")
            .filter(**_line_filter(product_id, size, color))
            .first()
        )
        if item is None:
            return False

        _check_stock(item.product, qty)
        item.quantity = qty
        item.save(update_fields=["quantity"])
        recompute_total(cart)
    return True


def clear_cart(user, *, item_ids=None) -> None:
    """
    Empty the cart, or only the given lines when item_ids is passed.

    Checkout passes the ids it snapshotted so a line added after the
    snapshot stays in the cart.
    """
    with transaction.atomic():
        cart = Cart.objects.select_for_update().filter(user=user).first()
        if cart is None:
            return
        lines = cart.items.all()
        if item_ids is not None:
            lines = lines.filter(pk__in=item_ids)
        lines.delete()
        recompute_total(cart)
