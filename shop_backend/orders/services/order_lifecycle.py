"""
ORDER LIFECYCLE DOMAIN RULES

This module defines the ONLY allowed status transitions for Order.

DESIGN PRINCIPLES:
- No database writes
- No stock mutation
- No side effects
- Single source of truth

payment_status is a separate axis; it only gates PENDING -> PROCESSING,
which is open to unpaid cash-on-delivery orders alone.
"""

from backend.errors import InvalidOrderTransition
from orders.models import Order

# ============================================================
# STATE DEFINITIONS
# ============================================================

TERMINAL_STATES = {
    Order.STATUS_DELIVERED,
    Order.STATUS_CANCELLED,
}

CANCELLABLE_STATES = {
    Order.STATUS_PENDING,
    Order.STATUS_PAID,
    Order.STATUS_PROCESSING,
}

ALLOWED_TRANSITIONS = {
    Order.STATUS_PENDING: {
        Order.STATUS_PAID,
        Order.STATUS_PROCESSING,
        Order.STATUS_CANCELLED,
    },
    Order.STATUS_PAID: {
        Order.STATUS_PROCESSING,
        Order.STATUS_CANCELLED,
    },
    Order.STATUS_PROCESSING: {
        Order.STATUS_SHIPPED,
        Order.STATUS_CANCELLED,
    },
    Order.STATUS_SHIPPED: {
        Order.STATUS_DELIVERED,
    },
}


# ============================================================
# DOMAIN RULES
# ============================================================


def can_transition(*, from_status: str, to_status: str) -> bool:
    if from_status in TERMINAL_STATES:
        return False

    return to_status in ALLOWED_TRANSITIONS.get(from_status, set())


def can_cancel(order: Order) -> bool:
    return order.status in CANCELLABLE_STATES


def validate_transition(*, order: Order, target_status: str):
    if not can_transition(from_status=order.status, to_status=target_status):
        raise InvalidOrderTransition(
            f"Order {order.order_number} cannot transition from "
            f"'{order.status}' to '{target_status}'"
        )

    if (
        order.status == Order.STATUS_PENDING
        and target_status == Order.STATUS_PROCESSING
        and order.payment_method != Order.PAYMENT_CASH
        and order.payment_status != Order.PAYMENT_COMPLETED
    ):
        raise InvalidOrderTransition(
            f"Order {order.order_number} must be paid before processing"
        )
