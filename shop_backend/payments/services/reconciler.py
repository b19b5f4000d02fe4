# payments/services/reconciler.py

"""
======================================================
PATH: payments/services/reconciler.py
======================================================
M-PESA CALLBACK RECONCILER

Purpose:
- Apply an asynchronous STK push outcome (callback or timeout) to the
  matching Order, its stock and the customer's cart.

Hard rules:
- Never raises. Webhook views always acknowledge the provider; every
  internal failure is logged here and reported as an outcome.
- At-most-once: the success path is a single guarded UPDATE
  (status == pending AND payment_status != completed). Only the delivery
  that wins that UPDATE commits stock and clears the cart; every other
  delivery sees 0 rows and stops.
- Paid + mark + stock + cart happen in ONE transaction.
- A refused stock decrement never undoes the payment; the order is
  flagged for manual reconciliation instead.
- Failure / timeout only moves payment_status pending -> failed; order
  status stays pending so the customer can check out again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.utils import timezone

from cart.services import clear_cart
from orders.models import Order
from orders.services.order_service import commit_order_stock, flag_for_reconciliation
from payments.models import PaymentAttempt

logger = logging.getLogger(__name__)

RESULT_SUCCESS = 0

OUTCOME_PAID = "paid"
OUTCOME_FAILED = "failed"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_FLAGGED = "flagged"
OUTCOME_UNKNOWN_ORDER = "unknown_order"
OUTCOME_MALFORMED = "malformed"
OUTCOME_ERROR = "error"


@dataclass(frozen=True)
class ReconciliationOutcome:
    status: str
    checkout_request_id: str = ""
    order_number: str = ""


@dataclass(frozen=True)
class StkCallback:
    checkout_request_id: str
    merchant_request_id: str
    result_code: int
    result_desc: str
    metadata: dict

    @property
    def is_success(self) -> bool:
        return self.result_code == RESULT_SUCCESS

    @property
    def receipt_number(self) -> str:
        return str(self.metadata.get("MpesaReceiptNumber") or "").strip()

    @property
    def amount(self) -> Decimal | None:
        value = self.metadata.get("Amount")
        if value is None:
            return None
        try:
            return Decimal(str(value))
        except (InvalidOperation, ValueError):
            return None


# =====================================================
# PARSING
# =====================================================


def parse_stk_callback(payload) -> StkCallback | None:
    """
    Body.stkCallback -> StkCallback, or None when the shape is wrong.

    CallbackMetadata.Item is flattened to {Name: Value}.
    """
    if not isinstance(payload, dict):
        return None
    body = payload.get("Body")
    if not isinstance(body, dict):
        return None
    stk = body.get("stkCallback")
    if not isinstance(stk, dict):
        return None

    checkout_request_id = str(stk.get("CheckoutRequestID") or "").strip()
    if not checkout_request_id:
        return None

    try:
        result_code = int(stk.get("ResultCode"))
    except (TypeError, ValueError):
        return None

    metadata = {}
    callback_metadata = stk.get("CallbackMetadata")
    items = callback_metadata.get("Item") if isinstance(callback_metadata, dict) else None
    for item in items or []:
        if isinstance(item, dict) and item.get("Name"):
            metadata[str(item["Name"])] = item.get("Value")

    return StkCallback(
        checkout_request_id=checkout_request_id,
        merchant_request_id=str(stk.get("MerchantRequestID") or ""),
        result_code=result_code,
        result_desc=str(stk.get("ResultDesc") or ""),
        metadata=metadata,
    )


def _timeout_checkout_request_id(payload) -> str:
    if not isinstance(payload, dict):
        return ""
    cid = payload.get("CheckoutRequestID")
    if not cid:
        body = payload.get("Body")
        stk = body.get("stkCallback") if isinstance(body, dict) else None
        cid = stk.get("CheckoutRequestID") if isinstance(stk, dict) else None
    return str(cid or "").strip()


# =====================================================
# ATTEMPT AUDIT
# =====================================================


def _record_attempt(
    checkout_request_id: str,
    *,
    status: str,
    result_code="",
    description="",
    receipt="",
    payload=None,
) -> None:
    attempt = PaymentAttempt.objects.filter(checkout_request_id=checkout_request_id).first()
    if attempt is None:
        return
    # a completed attempt is final
    if attempt.status == PaymentAttempt.STATUS_COMPLETED:
        return
    attempt.record_result(
        status=status,
        result_code=result_code,
        description=description,
        receipt=receipt,
        payload=payload,
    )


# =====================================================
# TRANSITIONS
# =====================================================


@transaction.atomic
def _apply_success(order: Order, callback: StkCallback, payload) -> ReconciliationOutcome:
    cid = callback.checkout_request_id
    receipt = callback.receipt_number
    now = timezone.now()

    updated = (
        Order.objects.filter(pk=order.pk, status=Order.STATUS_PENDING)
        .exclude(payment_status=Order.PAYMENT_COMPLETED)
        .update(
            payment_status=Order.PAYMENT_COMPLETED,
            status=Order.STATUS_PAID,
            transaction_id=receipt or cid,
            mpesa_receipt_number=receipt,
            mpesa_transaction_date=str(callback.metadata.get("TransactionDate") or ""),
            paid_at=now,
            updated_at=now,
        )
    )

    _record_attempt(
        cid,
        status=PaymentAttempt.STATUS_COMPLETED,
        result_code=callback.result_code,
        description=callback.result_desc,
        receipt=receipt,
        payload=payload,
    )

    order.refresh_from_db()

    if not updated:
        if order.payment_status == Order.PAYMENT_COMPLETED:
            logger.info(
                "Duplicate M-Pesa success callback ignored",
                extra={"checkout_request_id": cid, "order_number": order.order_number},
            )
            return ReconciliationOutcome(OUTCOME_DUPLICATE, cid, order.order_number)

        flag_for_reconciliation(
            order,
            f"M-Pesa payment {receipt or cid} received while order was '{order.status}'.",
        )
        return ReconciliationOutcome(OUTCOME_FLAGGED, cid, order.order_number)

    paid_amount = callback.amount
    if paid_amount is not None and paid_amount < order.total_amount:
        flag_for_reconciliation(
            order,
            f"M-Pesa amount {paid_amount} is below order total {order.total_amount}.",
        )

    commit_order_stock(order)
    clear_cart(order.user)

    logger.info(
        "Order paid via M-Pesa",
        extra={
            "order_number": order.order_number,
            "checkout_request_id": cid,
            "receipt": receipt,
        },
    )
    return ReconciliationOutcome(OUTCOME_PAID, cid, order.order_number)


def _apply_failure(
    order: Order,
    *,
    checkout_request_id: str,
    attempt_status: str,
    result_code="",
    description="",
    payload=None,
) -> ReconciliationOutcome:
    updated = Order.objects.filter(
        pk=order.pk, payment_status=Order.PAYMENT_PENDING
    ).update(payment_status=Order.PAYMENT_FAILED, updated_at=timezone.now())

    _record_attempt(
        checkout_request_id,
        status=attempt_status,
        result_code=result_code,
        description=description,
        payload=payload,
    )

    if not updated:
        logger.info(
            "M-Pesa failure ignored; payment no longer pending",
            extra={"checkout_request_id": checkout_request_id, "order_number": order.order_number},
        )
        return ReconciliationOutcome(OUTCOME_DUPLICATE, checkout_request_id, order.order_number)

    logger.info(
        "M-Pesa payment failed",
        extra={
            "order_number": order.order_number,
            "checkout_request_id": checkout_request_id,
            "result_code": str(result_code),
            "result_desc": description,
        },
    )
    return ReconciliationOutcome(OUTCOME_FAILED, checkout_request_id, order.order_number)


# =====================================================
# ENTRY POINTS
# =====================================================


def handle_stk_callback(payload) -> ReconciliationOutcome:
    try:
        callback = parse_stk_callback(payload)
        if callback is None:
            logger.warning("Malformed M-Pesa callback ignored")
            return ReconciliationOutcome(OUTCOME_MALFORMED)

        order = Order.objects.filter(mpesa_checkout_request_id=callback.checkout_request_id).first()
        if order is None:
            logger.warning(
                "M-Pesa callback for unknown CheckoutRequestID",
                extra={"checkout_request_id": callback.checkout_request_id},
            )
            return ReconciliationOutcome(OUTCOME_UNKNOWN_ORDER, callback.checkout_request_id)

        if callback.is_success:
            return _apply_success(order, callback, payload)

        return _apply_failure(
            order,
            checkout_request_id=callback.checkout_request_id,
            attempt_status=PaymentAttempt.STATUS_FAILED,
            result_code=callback.result_code,
            description=callback.result_desc,
            payload=payload,
        )
    except Exception:
        logger.exception("M-Pesa callback processing failed")
        return ReconciliationOutcome(OUTCOME_ERROR)


def handle_timeout(payload) -> ReconciliationOutcome:
    try:
        cid = _timeout_checkout_request_id(payload)
        if not cid:
            logger.warning("Malformed M-Pesa timeout ignored")
            return ReconciliationOutcome(OUTCOME_MALFORMED)

        order = Order.objects.filter(mpesa_checkout_request_id=cid).first()
        if order is None:
            logger.warning(
                "M-Pesa timeout for unknown CheckoutRequestID",
                extra={"checkout_request_id": cid},
            )
            return ReconciliationOutcome(OUTCOME_UNKNOWN_ORDER, cid)

        return _apply_failure(
            order,
            checkout_request_id=cid,
            attempt_status=PaymentAttempt.STATUS_TIMED_OUT,
            description="Timed out waiting for customer",
            payload=payload,
        )
    except Exception:
        logger.exception("M-Pesa timeout processing failed")
        return ReconciliationOutcome(OUTCOME_ERROR)
