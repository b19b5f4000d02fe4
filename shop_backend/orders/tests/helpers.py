# orders/tests/helpers.py

"""Shared builders for order / payment tests."""

from __future__ import annotations

from decimal import Decimal

from orders.models import Order, OrderItem


def make_order(
    user,
    *,
    number="INF-2026-00001",
    status=Order.STATUS_PENDING,
    payment_method=Order.PAYMENT_CASH,
    total=Decimal("0.00"),
    **extra,
) -> Order:
    return Order.objects.create(
        order_number=number,
        user=user,
        total_amount=total,
        status=status,
        payment_method=payment_method,
        shipping_name="Jane Doe",
        shipping_street="Moi Avenue 12",
        shipping_city="Nairobi",
        shipping_state="Nairobi",
        shipping_zip_code="00100",
        **extra,
    )


def add_line(order: Order, product, quantity: int) -> OrderItem:
    item = OrderItem.objects.create(
        order=order,
        product=product,
        product_name=product.name,
        quantity=quantity,
        unit_price=product.price,
        total_price=product.price * quantity,
    )
    Order.objects.filter(pk=order.pk).update(
        total_amount=sum((i.total_price for i in order.items.all()), Decimal("0.00"))
    )
    order.refresh_from_db()
    return item
