# orders/tests/test_order_service.py

"""
ORDER SERVICE TESTS

GUARANTEES:
- cancellation restores exactly the stock that was committed
- unlimited-stock lines never move stock
- offline (cash / card) confirmation commits stock once
- a refused decrement flags the order instead of undoing the payment
"""

from __future__ import annotations

from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase

from backend.errors import InvalidOrderTransition, NotFoundError
from orders.models import Order
from orders.services.order_service import (
    cancel_order,
    commit_order_stock,
    confirm_offline_payment,
)
from products.models import Product
from products.services import UNLIMITED_STOCK
from .helpers import add_line, make_order

User = get_user_model()


class CancellationTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(email="cancel@example.com", password="pass12345")
        self.shirt = Product.objects.create(name="Shirt", price=Decimal("500.00"), stock=10)
        self.fitting = Product.objects.create(
            name="Tailoring",
            category=Product.Category.SERVICES,
            price=Decimal("300.00"),
        )

    def _paid_order(self, product, quantity):
        order = make_order(self.user, payment_method=Order.PAYMENT_MPESA)
        add_line(order, product, quantity)
        order.mark_as_paid("RCPT123")
        commit_order_stock(order)
        return order

    def test_cancel_paid_order_restores_committed_stock(self):
        order = self._paid_order(self.shirt, 3)
        self.shirt.refresh_from_db()
        self.assertEqual(self.shirt.stock, 7)

        cancelled = cancel_order(order_id=order.pk)

        self.shirt.refresh_from_db()
        self.assertEqual(self.shirt.stock, 10)
        self.assertEqual(cancelled.status, Order.STATUS_CANCELLED)
        self.assertIsNotNone(cancelled.cancelled_at)
        self.assertFalse(cancelled.items.filter(stock_committed=True).exists())

    def test_cancel_paid_order_flags_manual_refund(self):
        order = self._paid_order(self.shirt, 1)

        cancel_order(order_id=order.pk)

        order.refresh_from_db()
        self.assertTrue(order.needs_reconciliation)
        self.assertIn("refund", order.reconciliation_note)

    def test_cancel_unlimited_only_order_leaves_stock(self):
        order = self._paid_order(self.fitting, 2)

        cancel_order(order_id=order.pk)

        self.fitting.refresh_from_db()
        self.assertEqual(self.fitting.stock, UNLIMITED_STOCK)

    def test_cancel_pending_order_does_not_touch_stock(self):
        order = make_order(self.user, payment_method=Order.PAYMENT_MPESA)
        add_line(order, self.shirt, 4)

        cancel_order(order_id=order.pk)

        self.shirt.refresh_from_db()
        self.assertEqual(self.shirt.stock, 10)
        order.refresh_from_db()
        self.assertEqual(order.status, Order.STATUS_CANCELLED)
        self.assertFalse(order.needs_reconciliation)

    def test_shipped_order_cannot_be_cancelled(self):
        order = make_order(self.user, status=Order.STATUS_SHIPPED)

        with self.assertRaises(InvalidOrderTransition) as ctx:
            cancel_order(order_id=order.pk)

        self.assertEqual(ctx.exception.message, "Order cannot be cancelled at this stage")

    def test_cancelled_order_cannot_be_cancelled_again(self):
        order = make_order(self.user)
        cancel_order(order_id=order.pk)

        with self.assertRaises(InvalidOrderTransition):
            cancel_order(order_id=order.pk)

    def test_unknown_order(self):
        with self.assertRaises(NotFoundError):
            cancel_order(order_id="8d3c3a3e-3f0e-4a55-9e3a-0d6c6f3f2b11")


class OfflinePaymentTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(email="cash@example.com", password="pass12345")
        self.shirt = Product.objects.create(name="Shirt", price=Decimal("500.00"), stock=10)

    def test_cash_confirmation_commits_stock_once(self):
        order = make_order(self.user, status=Order.STATUS_PROCESSING)
        add_line(order, self.shirt, 2)

        confirm_offline_payment(order_id=order.pk, transaction_id="CASH-001")
        confirm_offline_payment(order_id=order.pk, transaction_id="CASH-001")

        self.shirt.refresh_from_db()
        self.assertEqual(self.shirt.stock, 8)

        order.refresh_from_db()
        self.assertTrue(order.is_paid)
        self.assertTrue(order.stock_committed)
        self.assertEqual(order.status, Order.STATUS_PROCESSING)
        self.assertEqual(order.transaction_id, "CASH-001")

    def test_card_confirmation_moves_pending_to_paid(self):
        order = make_order(self.user, payment_method=Order.PAYMENT_CARD)
        add_line(order, self.shirt, 1)

        order = confirm_offline_payment(order_id=order.pk, transaction_id="CARD-9")

        self.assertEqual(order.status, Order.STATUS_PAID)

    def test_mpesa_orders_are_not_confirmed_offline(self):
        order = make_order(self.user, payment_method=Order.PAYMENT_MPESA)

        with self.assertRaises(InvalidOrderTransition):
            confirm_offline_payment(order_id=order.pk, transaction_id="X")

    def test_cancelled_order_cannot_be_confirmed(self):
        order = make_order(self.user, status=Order.STATUS_CANCELLED)

        with self.assertRaises(InvalidOrderTransition):
            confirm_offline_payment(order_id=order.pk, transaction_id="X")

    def test_refused_decrement_flags_without_undoing_payment(self):
        Product.objects.filter(pk=self.shirt.pk).update(stock=1)
        order = make_order(self.user, status=Order.STATUS_PROCESSING)
        item = add_line(order, self.shirt, 3)

        confirm_offline_payment(order_id=order.pk, transaction_id="CASH-002")

        order.refresh_from_db()
        item.refresh_from_db()
        self.shirt.refresh_from_db()
        self.assertTrue(order.is_paid)
        self.assertTrue(order.needs_reconciliation)
        self.assertIn("Shirt", order.reconciliation_note)
        self.assertFalse(item.stock_committed)
        self.assertEqual(self.shirt.stock, 1)
