# backend/errors.py

"""
SHOP DOMAIN ERRORS

Centralized error taxonomy shared by every app.

Each error carries:
- code: stable machine-readable identifier (frontend switches on it)
- status_code: transport-level HTTP status
- message: human-readable, safe to show to the caller

status_for() is the single translation point from an exception to an HTTP
status; the DRF exception handler (backend/exception_handler.py) and the
views both rely on it.
"""

from __future__ import annotations


class ShopError(Exception):
    """Base exception for all domain failures."""

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None, *, code: str | None = None):
        self.message = message or self.default_message
        if code:
            self.code = code
        super().__init__(self.message)


# ============================================================
# TAGGED VARIANTS
# ============================================================


class ValidationError(ShopError):
    """Client input could not be accepted."""

    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid request."


class NotFoundError(ShopError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found."


class ConflictError(ShopError):
    """Request is valid but conflicts with current resource state."""

    status_code = 409
    code = "CONFLICT"
    default_message = "Resource state conflict."


class ExternalServiceError(ShopError):
    status_code = 500
    code = "EXTERNAL_SERVICE_ERROR"
    default_message = "An external service failed. Please try again."


class InternalError(ShopError):
    status_code = 500
    code = "INTERNAL_ERROR"


# ============================================================
# CART / CHECKOUT
# ============================================================


class EmptyCartError(ValidationError):
    code = "EMPTY_CART"
    default_message = "Cart is empty. Cannot checkout."


class InvalidPaymentMethodError(ValidationError):
    code = "INVALID_PAYMENT_METHOD"


class MissingAddressFieldsError(ValidationError):
    code = "MISSING_ADDRESS_FIELDS"


class InsufficientStockError(ValidationError):
    """
    Stock conflicts at checkout are reported as 400 with the product named,
    matching what the storefront expects.
    """

    code = "INSUFFICIENT_STOCK"


class ProductUnavailableError(ValidationError):
    code = "PRODUCT_UNAVAILABLE"


class CartItemNotFoundError(NotFoundError):
    code = "CART_ITEM_NOT_FOUND"
    default_message = "Item not found in cart."


# ============================================================
# ORDERS
# ============================================================


class InvalidOrderTransition(ConflictError):
    code = "INVALID_ORDER_TRANSITION"


class OrderNumberConflictError(ConflictError):
    code = "ORDER_NUMBER_CONFLICT"
    default_message = "Could not allocate an order number. Please try again."


# ============================================================
# PAYMENTS
# ============================================================


class PaymentError(ExternalServiceError):
    """Base for payment gateway failures."""

    code = "PAYMENT_ERROR"


class PaymentConfigurationError(PaymentError):
    """Gateway is not configured; raised before any network call."""

    code = "PAYMENT_CONFIGURATION_ERROR"
    default_message = "Payment service is not configured."


class PaymentNetworkError(PaymentError):
    """Network failure or timeout talking to the provider. Retryable by the caller."""

    code = "PAYMENT_NETWORK_ERROR"
    default_message = "Failed to initiate M-Pesa payment. Please try again."


class PaymentRejectedError(PaymentError):
    """Provider answered but refused the request."""

    code = "PAYMENT_REJECTED"
    default_message = "M-Pesa request failed."


class InvalidPhoneNumberError(ValidationError):
    code = "INVALID_PHONE_NUMBER"


class AmountBelowMinimumError(ValidationError):
    code = "AMOUNT_BELOW_MINIMUM"


# ============================================================
# TRANSLATION
# ============================================================


def status_for(exc: BaseException) -> int:
    """Map any exception to its transport-level status code."""
    if isinstance(exc, ShopError):
        return int(exc.status_code)
    return 500


def error_payload(exc: ShopError) -> dict:
    return {"success": False, "message": exc.message, "code": exc.code}
