# orders/tests/test_checkout.py

"""
CHECKOUT TESTS

Run with:
    python manage.py test orders -v 2

The M-Pesa adapter is patched at payments.services.mpesa.initiate_stk_push;
phone normalization and the minimum-amount check stay real.
"""

from __future__ import annotations

import re
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from backend.errors import (
    AmountBelowMinimumError,
    EmptyCartError,
    InsufficientStockError,
    InvalidPaymentMethodError,
    InvalidPhoneNumberError,
    MissingAddressFieldsError,
    PaymentNetworkError,
    PaymentRejectedError,
    ProductUnavailableError,
    ValidationError,
)
from cart.models import CartItem
from cart.services import add_item, get_or_create_cart, item_count
from orders.models import Order
from orders.services.checkout_orchestrator import checkout
from orders.services.order_numbers import save_with_order_number
from payments.models import PaymentAttempt
from payments.services.mpesa import StkPushResult
from products.models import Product

User = get_user_model()

ORDER_NUMBER_RE = re.compile(r"^INF-\d{4}-\d{5}$")

ADDRESS = {
    "name": "Jane Doe",
    "address": "Moi Avenue 12",
    "city": "Nairobi",
    "state": "Nairobi",
    "postalCode": "00100",
}

MPESA_SETTINGS = {"MPESA": {"MIN_AMOUNT": 1}}

STK_PATH = "payments.services.mpesa.initiate_stk_push"


def _stk_result(cid="ws_CO_191020261200001") -> StkPushResult:
    return StkPushResult(
        checkout_request_id=cid,
        merchant_request_id="29115-34620561-1",
        response_code="0",
        response_description="Success. Request accepted for processing",
        customer_message="Success. Request accepted for processing",
        raw={"CheckoutRequestID": cid, "ResponseCode": "0"},
    )


@override_settings(PAYMENTS=MPESA_SETTINGS)
class CheckoutServiceTests(TestCase):
    """
    Checkout orchestrator tests.

    GUARANTEES:
    - order lines are a snapshot of the cart
    - cash orders clear the cart immediately; stock waits for payment
    - M-Pesa orders keep the cart until the callback
    - a failed STK push leaves no order behind and the cart untouched
    """

    def setUp(self):
        self.user = User.objects.create_user(email="buyer@example.com", password="pass12345")
        self.shirt = Product.objects.create(name="Shirt", price=Decimal("500.00"), stock=10)
        self.cap = Product.objects.create(
            name="Cap", category=Product.Category.ACCESSORIES, price=Decimal("250.00"), stock=5
        )
        add_item(user=self.user, product_id=self.shirt.id, quantity=2, size="M")

    # ---------------- CASH ----------------

    def test_cash_checkout_places_order_and_clears_cart(self):
        result = checkout(user=self.user, shipping_address=ADDRESS, payment_method="cash")
        order = result.order

        self.assertRegex(order.order_number, ORDER_NUMBER_RE)
        self.assertEqual(order.status, Order.STATUS_PROCESSING)
        self.assertEqual(order.payment_status, Order.PAYMENT_PENDING)
        self.assertEqual(order.total_amount, Decimal("1000.00"))
        self.assertIsNone(result.payment_details)
        self.assertEqual(result.message, "Checkout successful. Order placed.")

        self.assertEqual(item_count(get_or_create_cart(self.user)), 0)
        self.assertEqual(get_or_create_cart(self.user).total_amount, Decimal("0.00"))

        self.shirt.refresh_from_db()
        self.assertEqual(self.shirt.stock, 10)

    def test_address_aliases_are_normalized(self):
        order = checkout(user=self.user, shipping_address=ADDRESS, payment_method="cash").order

        self.assertEqual(order.shipping_street, "Moi Avenue 12")
        self.assertEqual(order.shipping_zip_code, "00100")
        self.assertEqual(order.shipping_country, "Kenya")

    def test_order_lines_are_a_snapshot(self):
        order = checkout(user=self.user, shipping_address=ADDRESS, payment_method="cash").order

        add_item(user=self.user, product_id=self.cap.id, quantity=1)
        Product.objects.filter(pk=self.shirt.pk).update(price=Decimal("900.00"))

        lines = list(order.items.all())
        self.assertEqual(len(lines), 1)
        self.assertEqual(lines[0].product_name, "Shirt")
        self.assertEqual(lines[0].size, "M")
        self.assertEqual(lines[0].quantity, 2)
        self.assertEqual(lines[0].unit_price, Decimal("500.00"))
        self.assertEqual(lines[0].total_price, Decimal("1000.00"))

    def test_line_added_during_checkout_stays_in_cart(self):
        cart = get_or_create_cart(self.user)

        def insert_then_save(order):
            CartItem.objects.create(
                cart=cart, product=self.cap, quantity=1, unit_price=self.cap.price
            )
            return save_with_order_number(order)

        with patch(
            "orders.services.checkout_orchestrator.save_with_order_number",
            side_effect=insert_then_save,
        ):
            order = checkout(user=self.user, shipping_address=ADDRESS, payment_method="cash").order

        self.assertEqual([line.product_name for line in order.items.all()], ["Shirt"])
        self.assertEqual(order.total_amount, Decimal("1000.00"))

        cart.refresh_from_db()
        self.assertEqual(list(cart.items.values_list("product__name", flat=True)), ["Cap"])
        self.assertEqual(cart.total_amount, Decimal("250.00"))

    def test_card_checkout_waits_pending(self):
        order = checkout(user=self.user, shipping_address=ADDRESS, payment_method="card").order

        self.assertEqual(order.status, Order.STATUS_PENDING)
        self.assertEqual(order.payment_status, Order.PAYMENT_PENDING)
        self.assertEqual(item_count(get_or_create_cart(self.user)), 0)

    # ---------------- M-PESA ----------------

    def test_mpesa_checkout_sends_stk_push_and_keeps_cart(self):
        with patch(STK_PATH, return_value=_stk_result()) as stk:
            result = checkout(
                user=self.user,
                shipping_address=ADDRESS,
                payment_method="mpesa",
                phone_number="0712345678",
            )

        order = result.order
        stk.assert_called_once_with(
            amount=Decimal("1000.00"),
            phone_number="254712345678",
            account_reference=order.order_number,
        )

        self.assertEqual(order.status, Order.STATUS_PENDING)
        self.assertEqual(order.payment_status, Order.PAYMENT_PENDING)
        self.assertEqual(order.mpesa_checkout_request_id, "ws_CO_191020261200001")
        self.assertEqual(order.mpesa_phone_number, "254712345678")
        self.assertEqual(result.payment_details["correlationId"], "ws_CO_191020261200001")
        self.assertEqual(
            result.message, "Checkout successful. Please check phone for payment prompt."
        )

        self.assertEqual(item_count(get_or_create_cart(self.user)), 2)
        self.assertTrue(
            PaymentAttempt.objects.filter(
                order=order, checkout_request_id="ws_CO_191020261200001"
            ).exists()
        )

    def test_mpesa_alias_and_profile_phone_fallback(self):
        self.user.phone = "+254 712 345 678"
        self.user.save(update_fields=["phone"])

        with patch(STK_PATH, return_value=_stk_result()) as stk:
            checkout(user=self.user, shipping_address=ADDRESS, payment_method="Mpesa")

        self.assertEqual(stk.call_args.kwargs["phone_number"], "254712345678")

    def test_mpesa_snapshot_survives_cart_changes(self):
        with patch(STK_PATH, return_value=_stk_result()):
            order = checkout(
                user=self.user,
                shipping_address=ADDRESS,
                payment_method="mpesa",
                phone_number="0712345678",
            ).order

        add_item(user=self.user, product_id=self.cap.id, quantity=3)

        self.assertEqual(order.items.count(), 1)
        order.refresh_from_db()
        self.assertEqual(order.total_amount, Decimal("1000.00"))

    def test_gateway_failure_rolls_back_order(self):
        with patch(STK_PATH, side_effect=PaymentNetworkError()):
            with self.assertRaises(PaymentNetworkError):
                checkout(
                    user=self.user,
                    shipping_address=ADDRESS,
                    payment_method="mpesa",
                    phone_number="0712345678",
                )

        self.assertFalse(Order.objects.exists())
        cart = get_or_create_cart(self.user)
        self.assertEqual(item_count(cart), 2)
        self.assertEqual(cart.total_amount, Decimal("1000.00"))

    def test_gateway_rejection_is_reraised_unchanged(self):
        with patch(STK_PATH, side_effect=PaymentRejectedError("Request cancelled by user")):
            with self.assertRaises(PaymentRejectedError) as ctx:
                checkout(
                    user=self.user,
                    shipping_address=ADDRESS,
                    payment_method="mpesa",
                    phone_number="0712345678",
                )

        self.assertEqual(ctx.exception.message, "Request cancelled by user")
        self.assertFalse(Order.objects.exists())

    def test_unexpected_gateway_error_becomes_network_error(self):
        with patch(STK_PATH, side_effect=RuntimeError("socket exploded")):
            with self.assertRaises(PaymentNetworkError):
                checkout(
                    user=self.user,
                    shipping_address=ADDRESS,
                    payment_method="mpesa",
                    phone_number="0712345678",
                )

        self.assertFalse(Order.objects.exists())
        self.assertEqual(item_count(get_or_create_cart(self.user)), 2)

    # ---------------- VALIDATION ----------------

    def test_invalid_payment_method(self):
        with self.assertRaises(InvalidPaymentMethodError):
            checkout(user=self.user, shipping_address=ADDRESS, payment_method="bitcoin")

    def test_missing_address_fields_are_named(self):
        with self.assertRaises(MissingAddressFieldsError) as ctx:
            checkout(
                user=self.user,
                shipping_address={"name": "Jane", "city": "Nairobi"},
                payment_method="cash",
            )

        self.assertIn("street", ctx.exception.message)
        self.assertIn("zip_code", ctx.exception.message)

    def test_notes_too_long(self):
        with self.assertRaises(ValidationError) as ctx:
            checkout(
                user=self.user,
                shipping_address=ADDRESS,
                payment_method="cash",
                notes="x" * 501,
            )

        self.assertEqual(ctx.exception.message, "Notes cannot exceed 500 characters")

    def test_empty_cart(self):
        other = User.objects.create_user(email="empty@example.com", password="pass12345")

        with self.assertRaises(EmptyCartError):
            checkout(user=other, shipping_address=ADDRESS, payment_method="cash")

    def test_invalid_phone_creates_nothing(self):
        with patch(STK_PATH) as stk:
            with self.assertRaises(InvalidPhoneNumberError):
                checkout(
                    user=self.user,
                    shipping_address=ADDRESS,
                    payment_method="mpesa",
                    phone_number="12345",
                )

        stk.assert_not_called()
        self.assertFalse(Order.objects.exists())

    @override_settings(PAYMENTS={"MPESA": {"MIN_AMOUNT": 5000}})
    def test_amount_below_mpesa_minimum(self):
        with patch(STK_PATH) as stk:
            with self.assertRaises(AmountBelowMinimumError):
                checkout(
                    user=self.user,
                    shipping_address=ADDRESS,
                    payment_method="mpesa",
                    phone_number="0712345678",
                )

        stk.assert_not_called()

    def test_stale_cart_inactive_product(self):
        Product.objects.filter(pk=self.shirt.pk).update(is_active=False)

        with self.assertRaises(ProductUnavailableError):
            checkout(user=self.user, shipping_address=ADDRESS, payment_method="cash")

        self.assertFalse(Order.objects.exists())

    def test_stale_cart_insufficient_stock(self):
        Product.objects.filter(pk=self.shirt.pk).update(stock=1)

        with self.assertRaises(InsufficientStockError) as ctx:
            checkout(user=self.user, shipping_address=ADDRESS, payment_method="cash")

        self.assertIn("Shirt", ctx.exception.message)
        self.assertEqual(item_count(get_or_create_cart(self.user)), 2)


@override_settings(PAYMENTS=MPESA_SETTINGS)
class CheckoutAPITests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(email="api-buyer@example.com", password="pass12345")
        self.client.force_authenticate(user=self.user)
        self.url = reverse("orders:checkout")

        self.shirt = Product.objects.create(name="Shirt", price=Decimal("500.00"), stock=10)
        add_item(user=self.user, product_id=self.shirt.id, quantity=2)

    def test_requires_authentication(self):
        res = APIClient().post(self.url, {}, format="json")
        self.assertEqual(res.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_cash_checkout_returns_201(self):
        res = self.client.post(
            self.url,
            {"shippingAddress": ADDRESS, "paymentMethod": "cash", "notes": "Call first"},
            format="json",
        )

        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        self.assertTrue(res.data["success"])
        self.assertEqual(res.data["message"], "Checkout successful. Order placed.")
        order = res.data["data"]["order"]
        self.assertEqual(order["status"], Order.STATUS_PROCESSING)
        self.assertEqual(order["payment_status"], Order.PAYMENT_PENDING)
        self.assertEqual(order["total_amount"], "1000.00")
        self.assertEqual(order["notes"], "Call first")
        self.assertEqual(order["shipping_address"]["street"], "Moi Avenue 12")
        self.assertEqual(len(order["items"]), 1)
        self.assertIsNone(res.data["data"]["paymentDetails"])

    def test_snake_case_keys_are_accepted(self):
        res = self.client.post(
            self.url,
            {"shipping_address": ADDRESS, "payment_method": "cash"},
            format="json",
        )

        self.assertEqual(res.status_code, status.HTTP_201_CREATED)

    def test_mpesa_checkout_returns_payment_details(self):
        with patch(STK_PATH, return_value=_stk_result()):
            res = self.client.post(
                self.url,
                {"shippingAddress": ADDRESS, "paymentMethod": "mpesa", "phoneNumber": "0712345678"},
                format="json",
            )

        self.assertEqual(res.status_code, status.HTTP_201_CREATED)
        self.assertEqual(
            res.data["data"]["paymentDetails"]["correlationId"], "ws_CO_191020261200001"
        )

    def test_empty_cart_is_400(self):
        self.client.delete(reverse("cart:cart"))

        res = self.client.post(
            self.url, {"shippingAddress": ADDRESS, "paymentMethod": "cash"}, format="json"
        )

        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["code"], "EMPTY_CART")

    def test_missing_payment_method_is_400(self):
        res = self.client.post(self.url, {"shippingAddress": ADDRESS}, format="json")

        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(res.data["code"], "INVALID_PAYMENT_METHOD")

    def test_gateway_failure_is_500_and_cart_kept(self):
        with patch(STK_PATH, side_effect=PaymentNetworkError()):
            res = self.client.post(
                self.url,
                {"shippingAddress": ADDRESS, "paymentMethod": "mpesa", "phoneNumber": "0712345678"},
                format="json",
            )

        self.assertEqual(res.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(res.data["code"], "PAYMENT_NETWORK_ERROR")
        self.assertFalse(Order.objects.exists())
        self.assertEqual(item_count(get_or_create_cart(self.user)), 2)
