# orders/services/checkout_orchestrator.py

"""
CHECKOUT ORCHESTRATOR (APPLICATION SERVICE)

Purpose:
- Turn the caller's cart into an Order (immutable item snapshot).
- For M-Pesa: issue the STK push and remember its correlation id.

Hard rules:
- Money is computed server-side from the cart lines; the client never
  sends totals.
- Order + OrderItems are written in ONE transaction.
- The gateway call runs OUTSIDE any transaction (no lock is held across
  the network). If it fails, the order is deleted and the cart is left
  untouched so the customer can retry.
- M-Pesa orders keep the cart until the payment callback confirms
  payment. Cash / card orders remove the snapshotted lines immediately;
  the cart row is locked from snapshot to insert.
- Stock is NOT decremented here; it is committed when payment is
  confirmed (callback or offline confirmation).

Initial state by method:
- mpesa -> pending / pending
- cash  -> processing / pending   (collect on delivery)
- card  -> pending / pending      (awaits external confirmation)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.db import transaction
from django.utils import timezone

from backend.errors import (
    AmountBelowMinimumError,
    EmptyCartError,
    InsufficientStockError,
    InvalidPaymentMethodError,
    InvalidPhoneNumberError,
    MissingAddressFieldsError,
    PaymentNetworkError,
    ProductUnavailableError,
    ShopError,
)
from backend.errors import ValidationError as ShopValidationError
from cart.models import Cart
from cart.services import clear_cart
from orders.models import Order, OrderItem
from orders.services.order_numbers import save_with_order_number
from payments.models import PaymentAttempt
from payments.services import mpesa
from products.services.inventory import has_available_stock

logger = logging.getLogger(__name__)

TWOPLACES = Decimal("0.01")

NOTES_MAX_LENGTH = 500

PAYMENT_METHOD_ALIASES = {
    "mpesa": Order.PAYMENT_MPESA,
    "m-pesa": Order.PAYMENT_MPESA,
    "card": Order.PAYMENT_CARD,
    "cash": Order.PAYMENT_CASH,
}

INITIAL_STATUS = {
    Order.PAYMENT_MPESA: Order.STATUS_PENDING,
    Order.PAYMENT_CASH: Order.STATUS_PROCESSING,
    Order.PAYMENT_CARD: Order.STATUS_PENDING,
}

# client field name -> canonical field name
ADDRESS_ALIASES = {
    "name": "name",
    "phone": "phone",
    "address": "street",
    "street": "street",
    "city": "city",
    "state": "state",
    "postalCode": "zip_code",
    "postal_code": "zip_code",
    "zipCode": "zip_code",
    "zip_code": "zip_code",
    "country": "country",
}

REQUIRED_ADDRESS_FIELDS = ("name", "street", "city", "state", "zip_code")

DEFAULT_COUNTRY = "Kenya"


def _money(v) -> Decimal:
    if v is None or v == "":
        return Decimal("0.00")
    return Decimal(str(v)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CheckoutResult:
    order: Order
    payment_details: dict | None = None

    @property
    def message(self) -> str:
        if self.order.payment_method == Order.PAYMENT_MPESA:
            return "Checkout successful. Please check phone for payment prompt."
        return "Checkout successful. Order placed."


# =====================================================
# INPUT NORMALIZATION
# =====================================================


def normalize_payment_method(raw) -> str:
    method = PAYMENT_METHOD_ALIASES.get(str(raw or "").strip().lower())
    if method is None:
        raise InvalidPaymentMethodError(f"Invalid payment method: {raw}.")
    return method


def normalize_shipping_address(raw) -> dict:
    """
    Map client field names to canonical ones and check required fields.

    address -> street, postalCode / zipCode -> zip_code, country defaults to Kenya.
    """
    if not isinstance(raw, dict):
        raw = {}

    address = {}
    for key, value in raw.items():
        canonical = ADDRESS_ALIASES.get(key)
        if canonical is None or value in (None, ""):
            continue
        address.setdefault(canonical, str(value).strip())

    missing = [f for f in REQUIRED_ADDRESS_FIELDS if not address.get(f)]
    if missing:
        raise MissingAddressFieldsError(
            f"Missing required shipping address fields: {', '.join(missing)}."
        )

    address.setdefault("country", DEFAULT_COUNTRY)
    address.setdefault("phone", "")
    return address


def _validate_lines(items) -> None:
    """Stale-cart defence: every product still active and in stock."""
    for item in items:
        product = item.product
        if not product.is_active:
            raise ProductUnavailableError(f"{product.name} is no longer available.")
        if not has_available_stock(product, item.quantity):
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}. Only {product.stock} available."
            )


# =====================================================
# PERSISTENCE STEPS
# =====================================================


@transaction.atomic
def _create_order(*, user, items, total, method, address, notes, stk_phone) -> Order:
    order = Order(
        user=user,
        total_amount=total,
        status=INITIAL_STATUS[method],
        payment_method=method,
        payment_status=Order.PAYMENT_PENDING,
        shipping_name=address["name"],
        shipping_phone=address["phone"],
        shipping_street=address["street"],
        shipping_city=address["city"],
        shipping_state=address["state"],
        shipping_zip_code=address["zip_code"],
        shipping_country=address["country"],
        notes=notes,
        mpesa_phone_number=stk_phone or "",
    )
    save_with_order_number(order)

    OrderItem.objects.bulk_create(
        [
            OrderItem(
                order=order,
                product=item.product,
                product_name=item.product.name,
                quantity=item.quantity,
                size=item.size,
                color=item.color,
                unit_price=_money(item.unit_price),
                total_price=_money(item.unit_price * item.quantity),
            )
            for item in items
        ]
    )

    if method != Order.PAYMENT_MPESA:
        clear_cart(user, item_ids=[item.pk for item in items])

    return order


def _rollback_order(order: Order, *, reason: str) -> None:
    order_number = order.order_number
    Order.objects.filter(pk=order.pk).delete()
    logger.warning(
        "Checkout rolled back after payment initiation failure",
        extra={"order_number": order_number, "reason": reason},
    )


@transaction.atomic
def _record_stk_push(*, order: Order, result, phone: str) -> None:
    Order.objects.filter(pk=order.pk).update(
        mpesa_checkout_request_id=result.checkout_request_id,
        mpesa_merchant_request_id=result.merchant_request_id,
        updated_at=timezone.now(),
    )
    PaymentAttempt.objects.create(
        order=order,
        checkout_request_id=result.checkout_request_id,
        merchant_request_id=result.merchant_request_id,
        amount=order.total_amount,
        phone_number=phone,
        provider_payload=result.raw,
    )


# =====================================================
# ENTRY POINT
# =====================================================


def checkout(
    *,
    user,
    shipping_address,
    payment_method,
    phone_number=None,
    notes="",
    gateway=None,
) -> CheckoutResult:
    gateway = gateway or mpesa

    method = normalize_payment_method(payment_method)
    address = normalize_shipping_address(shipping_address)

    notes = str(notes or "").strip()
    if len(notes) > NOTES_MAX_LENGTH:
        raise ShopValidationError(f"Notes cannot exceed {NOTES_MAX_LENGTH} characters")

    # cart row stays locked from snapshot to order insert; concurrent cart
    # writes wait and land after the snapshotted lines are removed
    with transaction.atomic():
        cart = Cart.objects.select_for_update().filter(user=user).first()
        items = list(cart.items.select_related("product").order_by("created_at")) if cart else []
        if not items:
            raise EmptyCartError()

        total = _money(sum((item.unit_price * item.quantity for item in items), Decimal("0.00")))

        stk_phone = None
        if method == Order.PAYMENT_MPESA:
            raw_phone = phone_number or address.get("phone") or getattr(user, "phone", "")
            if not raw_phone:
                raise InvalidPhoneNumberError("Phone number is required for M-Pesa payment.")
            stk_phone = gateway.normalize_phone_number(raw_phone)

            minimum = gateway.min_amount()
            if total < minimum:
                raise AmountBelowMinimumError(
                    f"Minimum checkout amount for M-Pesa is KES {minimum}."
                )

        if not address["phone"]:
            address["phone"] = str(phone_number or getattr(user, "phone", "") or "")

        _validate_lines(items)

        order = _create_order(
            user=user,
            items=items,
            total=total,
            method=method,
            address=address,
            notes=notes,
            stk_phone=stk_phone,
        )

    logger.info(
        "Order created",
        extra={
            "order_number": order.order_number,
            "payment_method": method,
            "total_amount": str(total),
        },
    )

    if method != Order.PAYMENT_MPESA:
        return CheckoutResult(order=order, payment_details=None)

    try:
        result = gateway.initiate_stk_push(
            amount=total,
            phone_number=stk_phone,
            account_reference=order.order_number,
        )
    except ShopError as exc:
        _rollback_order(order, reason=exc.code)
        raise
    except Exception as exc:
        logger.exception(
            "Unexpected payment gateway failure", extra={"order_number": order.order_number}
        )
        _rollback_order(order, reason="UNEXPECTED")
        raise PaymentNetworkError() from exc

    _record_stk_push(order=order, result=result, phone=stk_phone)
    order.refresh_from_db()

    logger.info(
        "STK push initiated",
        extra={
            "order_number": order.order_number,
            "checkout_request_id": result.checkout_request_id,
        },
    )

    return CheckoutResult(order=order, payment_details=result.as_payment_details())
