# orders/services/order_service.py

"""
ORDER SERVICE

Purpose:
- Commit stock for an order's snapshot lines (after payment is confirmed).
- Cancel an order, restoring exactly the stock that was committed.
- Confirm offline (cash/card) payments.
- Flag orders whose payment and inventory state disagree.

Rules:
- Stock is committed once per line (OrderItem.stock_committed).
- A refused decrement never undoes a payment; the order is flagged for an
  operator instead (needs_reconciliation + reconciliation_note).
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.utils import timezone

from backend.errors import InvalidOrderTransition, NotFoundError
from orders.models import Order, OrderItem
from orders.services.order_lifecycle import can_cancel
from products.services.inventory import decrease_stock, increase_stock

logger = logging.getLogger(__name__)


def get_order_for_update(order_id) -> Order:
    order = Order.objects.select_for_update().filter(pk=order_id).first()
    if order is None:
        raise NotFoundError("Order not found", code="ORDER_NOT_FOUND")
    return order


# =====================================================
# RECONCILIATION FLAG
# =====================================================


def flag_for_reconciliation(order: Order, note: str) -> None:
    combined = f"{order.reconciliation_note}\n{note}".strip()

    Order.objects.filter(pk=order.pk).update(
        needs_reconciliation=True,
        reconciliation_note=combined,
        updated_at=timezone.now(),
    )
    order.needs_reconciliation = True
    order.reconciliation_note = combined

    logger.warning(
        "Order flagged for reconciliation",
        extra={"order_number": order.order_number, "note": note},
    )


# =====================================================
# STOCK COMMIT
# =====================================================


def commit_order_stock(order: Order) -> list[str]:
    """
    Decrement stock for every uncommitted line.

    Must run inside the caller's transaction. Returns the product names
    whose decrement was refused (empty list when everything applied).
    """
    refused = []

    for item in order.items.filter(stock_committed=False):
        if item.product_id is None:
            refused.append(item.product_name)
            continue

        if decrease_stock(item.product_id, item.quantity):
            OrderItem.objects.filter(pk=item.pk).update(stock_committed=True)
        else:
            refused.append(item.product_name)

    Order.objects.filter(pk=order.pk).update(stock_committed=True, updated_at=timezone.now())
    order.stock_committed = True

    if refused:
        flag_for_reconciliation(
            order,
            "Paid but stock could not be decremented for: " + ", ".join(refused),
        )

    return refused


# =====================================================
# CANCELLATION
# =====================================================


@transaction.atomic
def cancel_order(*, order_id) -> Order:
    """
    Cancel from PENDING / PAID / PROCESSING.

    Restores stock only for lines that were committed; unlimited products
    are skipped by the inventory ledger itself.
    """
    order = get_order_for_update(order_id)

    if not can_cancel(order):
        raise InvalidOrderTransition("Order cannot be cancelled at this stage")

    for item in order.items.filter(stock_committed=True):
        if item.product_id is not None:
            increase_stock(item.product_id, item.quantity)
        OrderItem.objects.filter(pk=item.pk).update(stock_committed=False)

    if order.stock_committed:
        order.stock_committed = False
        order.save(update_fields=["stock_committed", "updated_at"])

    order.update_status(Order.STATUS_CANCELLED)

    if order.is_paid:
        flag_for_reconciliation(order, "Paid order cancelled; refund must be issued manually.")

    logger.info(
        "Order cancelled",
        extra={"order_number": order.order_number, "payment_status": order.payment_status},
    )
    return order


# =====================================================
# OFFLINE PAYMENT CONFIRMATION (cash / card)
# =====================================================


@transaction.atomic
def confirm_offline_payment(*, order_id, transaction_id: str) -> Order:
    """
    Record money collected outside M-Pesa and commit the order's stock.

    Idempotent: an already-completed payment is returned unchanged.
    """
    order = get_order_for_update(order_id)

    if order.is_mpesa:
        raise InvalidOrderTransition("M-Pesa orders are confirmed by the payment callback")

    if order.is_paid:
        return order

    if order.status == Order.STATUS_CANCELLED:
        raise InvalidOrderTransition("Cannot confirm payment for a cancelled order")

    order.mark_as_paid(transaction_id)
    commit_order_stock(order)

    logger.info(
        "Offline payment confirmed",
        extra={"order_number": order.order_number, "payment_method": order.payment_method},
    )
    return order
