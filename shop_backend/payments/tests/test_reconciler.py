# payments/tests/test_reconciler.py

"""
CALLBACK RECONCILER + WEBHOOK TESTS

Each test starts from a real M-Pesa checkout (STK push patched) so the
order, its snapshot lines, the PaymentAttempt and the still-full cart are
exactly what production would have when the callback arrives.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient
from rest_framework.throttling import AnonRateThrottle

from cart.services import add_item, get_or_create_cart, item_count
from orders.models import Order
from orders.services.checkout_orchestrator import checkout
from orders.services.order_service import cancel_order
from payments.models import PaymentAttempt
from payments.services.mpesa import StkPushResult
from payments.services.reconciler import (
    OUTCOME_DUPLICATE,
    OUTCOME_ERROR,
    OUTCOME_FAILED,
    OUTCOME_FLAGGED,
    OUTCOME_MALFORMED,
    OUTCOME_PAID,
    OUTCOME_UNKNOWN_ORDER,
    handle_stk_callback,
    handle_timeout,
    parse_stk_callback,
)
from products.models import Product

User = get_user_model()

CID = "ws_CO_191020261200001"
ACK = {"ResultCode": 0, "ResultDesc": "Accepted"}

ADDRESS = {
    "name": "Jane Doe",
    "address": "Moi Avenue 12",
    "city": "Nairobi",
    "state": "Nairobi",
    "postalCode": "00100",
}


def callback_payload(
    cid=CID,
    *,
    result_code=0,
    result_desc="The service request is processed successfully.",
    receipt="XYZ123",
    amount=1000,
):
    stk = {
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": cid,
        "ResultCode": result_code,
        "ResultDesc": result_desc,
    }
    if result_code == 0:
        stk["CallbackMetadata"] = {
            "Item": [
                {"Name": "Amount", "Value": amount},
                {"Name": "MpesaReceiptNumber", "Value": receipt},
                {"Name": "Balance"},
                {"Name": "TransactionDate", "Value": 20261019120510},
                {"Name": "PhoneNumber", "Value": 254712345678},
            ]
        }
    return {"Body": {"stkCallback": stk}}


def _stk_result() -> StkPushResult:
    return StkPushResult(
        checkout_request_id=CID,
        merchant_request_id="29115-34620561-1",
        response_code="0",
        response_description="Success. Request accepted for processing",
        customer_message="Success. Request accepted for processing",
        raw={"CheckoutRequestID": CID},
    )


@override_settings(PAYMENTS={"MPESA": {"MIN_AMOUNT": 1}})
class ReconcilerTestBase(TestCase):
    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(email="payer@example.com", password="pass12345")
        self.shirt = Product.objects.create(name="Shirt", price=Decimal("500.00"), stock=10)
        add_item(user=self.user, product_id=self.shirt.id, quantity=2)

        with patch("payments.services.mpesa.initiate_stk_push", return_value=_stk_result()):
            self.order = checkout(
                user=self.user,
                shipping_address=ADDRESS,
                payment_method="mpesa",
                phone_number="0712345678",
            ).order

    def assertStock(self, expected):
        self.shirt.refresh_from_db()
        self.assertEqual(self.shirt.stock, expected)

    def assertCartItems(self, expected):
        self.assertEqual(item_count(get_or_create_cart(self.user)), expected)


class ParseCallbackTests(TestCase):
    def test_metadata_is_flattened(self):
        callback = parse_stk_callback(callback_payload())

        self.assertTrue(callback.is_success)
        self.assertEqual(callback.receipt_number, "XYZ123")
        self.assertEqual(callback.amount, Decimal("1000"))
        self.assertIsNone(callback.metadata["Balance"])

    def test_wrong_shapes_are_rejected(self):
        for payload in (None, [], {}, {"Body": "x"}, {"Body": {"stkCallback": {"ResultCode": 0}}},
                        {"Body": {"stkCallback": {"CheckoutRequestID": CID, "ResultCode": "abc"}}}):
            with self.subTest(payload=payload):
                self.assertIsNone(parse_stk_callback(payload))


class SuccessCallbackTests(ReconcilerTestBase):
    def test_success_marks_paid_commits_stock_and_clears_cart(self):
        outcome = handle_stk_callback(callback_payload())

        self.assertEqual(outcome.status, OUTCOME_PAID)
        self.assertEqual(outcome.order_number, self.order.order_number)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PAID)
        self.assertEqual(self.order.payment_status, Order.PAYMENT_COMPLETED)
        self.assertEqual(self.order.mpesa_receipt_number, "XYZ123")
        self.assertEqual(self.order.transaction_id, "XYZ123")
        self.assertEqual(self.order.mpesa_transaction_date, "20261019120510")
        self.assertIsNotNone(self.order.paid_at)
        self.assertTrue(self.order.stock_committed)
        self.assertFalse(self.order.needs_reconciliation)

        self.assertStock(8)
        self.assertCartItems(0)

        attempt = PaymentAttempt.objects.get(checkout_request_id=CID)
        self.assertEqual(attempt.status, PaymentAttempt.STATUS_COMPLETED)
        self.assertEqual(attempt.receipt_number, "XYZ123")
        self.assertEqual(attempt.result_code, "0")

    def test_duplicate_delivery_applies_once(self):
        first = handle_stk_callback(callback_payload())
        # the customer starts a new cart before the redelivery
        add_item(user=self.user, product_id=self.shirt.id, quantity=1)

        second = handle_stk_callback(callback_payload())

        self.assertEqual(first.status, OUTCOME_PAID)
        self.assertEqual(second.status, OUTCOME_DUPLICATE)
        self.assertStock(8)
        self.assertCartItems(1)

    def test_failure_after_success_is_ignored(self):
        handle_stk_callback(callback_payload())

        outcome = handle_stk_callback(
            callback_payload(result_code=1032, result_desc="Request cancelled by user")
        )

        self.assertEqual(outcome.status, OUTCOME_DUPLICATE)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PAYMENT_COMPLETED)

    def test_payment_on_cancelled_order_is_flagged(self):
        cancel_order(order_id=self.order.pk)

        outcome = handle_stk_callback(callback_payload())

        self.assertEqual(outcome.status, OUTCOME_FLAGGED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_CANCELLED)
        self.assertTrue(self.order.needs_reconciliation)
        self.assertIn("XYZ123", self.order.reconciliation_note)
        self.assertStock(10)

    def test_short_payment_is_flagged(self):
        outcome = handle_stk_callback(callback_payload(amount=500))

        self.assertEqual(outcome.status, OUTCOME_PAID)
        self.order.refresh_from_db()
        self.assertTrue(self.order.needs_reconciliation)
        self.assertIn("below order total", self.order.reconciliation_note)

    def test_stock_shortfall_flags_but_keeps_payment(self):
        Product.objects.filter(pk=self.shirt.pk).update(stock=1)

        outcome = handle_stk_callback(callback_payload())

        self.assertEqual(outcome.status, OUTCOME_PAID)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PAYMENT_COMPLETED)
        self.assertTrue(self.order.needs_reconciliation)
        self.assertIn("Shirt", self.order.reconciliation_note)
        self.assertStock(1)

    def test_late_success_after_timeout_still_applies(self):
        handle_timeout({"CheckoutRequestID": CID})

        outcome = handle_stk_callback(callback_payload())

        self.assertEqual(outcome.status, OUTCOME_PAID)
        self.assertStock(8)

    def test_internal_error_rolls_back_and_is_reported(self):
        with patch(
            "payments.services.reconciler.commit_order_stock",
            side_effect=RuntimeError("db gone"),
        ):
            outcome = handle_stk_callback(callback_payload())

        self.assertEqual(outcome.status, OUTCOME_ERROR)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PAYMENT_PENDING)
        self.assertEqual(self.order.status, Order.STATUS_PENDING)
        self.assertCartItems(2)


class FailureCallbackTests(ReconcilerTestBase):
    def test_failure_keeps_order_pending(self):
        outcome = handle_stk_callback(
            callback_payload(result_code=1032, result_desc="Request cancelled by user")
        )

        self.assertEqual(outcome.status, OUTCOME_FAILED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PAYMENT_FAILED)
        self.assertEqual(self.order.status, Order.STATUS_PENDING)
        self.assertStock(10)
        self.assertCartItems(2)

        attempt = PaymentAttempt.objects.get(checkout_request_id=CID)
        self.assertEqual(attempt.status, PaymentAttempt.STATUS_FAILED)
        self.assertEqual(attempt.result_code, "1032")
        self.assertEqual(attempt.result_description, "Request cancelled by user")

    def test_timeout_marks_failed(self):
        outcome = handle_timeout({"CheckoutRequestID": CID})

        self.assertEqual(outcome.status, OUTCOME_FAILED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PAYMENT_FAILED)
        self.assertEqual(self.order.status, Order.STATUS_PENDING)
        self.assertEqual(
            PaymentAttempt.objects.get(checkout_request_id=CID).status,
            PaymentAttempt.STATUS_TIMED_OUT,
        )

    def test_timeout_accepts_callback_shape(self):
        outcome = handle_timeout(callback_payload(result_code=1037, result_desc="Timeout"))

        self.assertEqual(outcome.status, OUTCOME_FAILED)

    def test_unknown_and_malformed(self):
        self.assertEqual(
            handle_stk_callback(callback_payload(cid="ws_CO_unknown")).status,
            OUTCOME_UNKNOWN_ORDER,
        )
        self.assertEqual(handle_stk_callback({"foo": "bar"}).status, OUTCOME_MALFORMED)
        self.assertEqual(handle_timeout({}).status, OUTCOME_MALFORMED)
        self.assertEqual(handle_timeout({"CheckoutRequestID": "nope"}).status, OUTCOME_UNKNOWN_ORDER)

        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PAYMENT_PENDING)


class WebhookAPITests(ReconcilerTestBase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.callback_url = reverse("payments:mpesa-callback")
        self.timeout_url = reverse("payments:mpesa-timeout")

    def test_success_callback(self):
        res = self.client.post(self.callback_url, callback_payload(), format="json")

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.json(), ACK)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PAID)
        self.assertStock(8)
        self.assertCartItems(0)

    def test_failed_callback_still_acknowledged(self):
        res = self.client.post(
            self.callback_url,
            callback_payload(result_code=1, result_desc="The balance is insufficient"),
            format="json",
        )

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.json(), ACK)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PAYMENT_FAILED)
        self.assertEqual(self.order.status, Order.STATUS_PENDING)
        self.assertStock(10)
        self.assertCartItems(2)

    def test_garbage_is_acknowledged(self):
        res = self.client.post(self.callback_url, {"hello": "world"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.json(), ACK)

        res = self.client.post(self.callback_url, data="{not json", content_type="application/json")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.json(), ACK)

    def test_validation_ping(self):
        res = self.client.get(self.callback_url)

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.json(), ACK)

    def test_timeout_endpoint(self):
        res = self.client.post(self.timeout_url, {"CheckoutRequestID": CID}, format="json")

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.json(), ACK)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PAYMENT_FAILED)

    def test_bearer_header_is_ignored(self):
        self.client.credentials(HTTP_AUTHORIZATION="Bearer not-a-real-token")

        res = self.client.post(self.callback_url, callback_payload(), format="json")

        self.assertEqual(res.status_code, status.HTTP_200_OK)

    def test_burst_of_deliveries_is_never_throttled(self):
        with patch.dict(AnonRateThrottle.THROTTLE_RATES, {"anon": "2/min"}):
            codes = [
                self.client.post(self.callback_url, callback_payload(), format="json").status_code
                for _ in range(5)
            ]
            codes.append(
                self.client.post(
                    self.timeout_url, {"CheckoutRequestID": CID}, format="json"
                ).status_code
            )

        self.assertEqual(codes, [status.HTTP_200_OK] * 6)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PAID)
        self.assertStock(8)
