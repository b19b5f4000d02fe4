# payments/services/mpesa.py

"""
======================================================
PATH: payments/services/mpesa.py
======================================================
M-PESA (SAFARICOM DARAJA) STK PUSH ADAPTER

Purpose:
- Exchange consumer key/secret for an OAuth access token (cached).
- Send an STK Push (Lipa Na M-Pesa Online) payment prompt.
- Query the status of a previously sent STK Push.

Rules:
- Pure request/response boundary: no database access here.
- Config and input are validated BEFORE any network call.
- Every outbound call carries a bounded timeout (REQUEST_TIMEOUT).
- Failures are raised as backend.errors payment errors:
    * PaymentConfigurationError: missing config, bad credentials (401)
    * PaymentNetworkError: connection failure / timeout (caller may retry)
    * PaymentRejectedError: provider answered and refused
"""

from __future__ import annotations

import base64
import json
import logging
import re
from dataclasses import dataclass, field
from decimal import ROUND_CEILING, Decimal, InvalidOperation
from typing import Any
from urllib.error import HTTPError
from urllib.request import Request, urlopen

from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

from backend.errors import (
    AmountBelowMinimumError,
    InvalidPhoneNumberError,
    PaymentConfigurationError,
    PaymentNetworkError,
    PaymentRejectedError,
)

logger = logging.getLogger(__name__)

SANDBOX_BASE = "https://sandbox.safaricom.co.ke"
PRODUCTION_BASE = "https://api.safaricom.co.ke"

TOKEN_PATH = "/oauth/v1/generate?grant_type=client_credentials"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"
STK_QUERY_PATH = "/mpesa/stkpushquery/v1/query"

TOKEN_CACHE_KEY = "payments:mpesa:access_token"
# Refresh the token this many seconds before the provider expires it.
TOKEN_EXPIRY_MARGIN = 60

TRANSACTION_TYPE = "CustomerPayBillOnline"
DEFAULT_CUSTOMER_MESSAGE = "Payment request sent. Check your phone."

_PHONE_STRIP_RE = re.compile(r"[\s\-\(\)]")


# =====================================================
# CONFIG
# =====================================================


@dataclass(frozen=True)
class MpesaConfig:
    consumer_key: str
    consumer_secret: str
    passkey: str
    shortcode: str
    callback_url: str
    timeout_url: str = ""
    environment: str = "sandbox"
    min_amount: int = 1
    request_timeout: int = 30

    @property
    def base_url(self) -> str:
        return PRODUCTION_BASE if self.environment == "production" else SANDBOX_BASE


def _raw_config() -> dict:
    payments = getattr(settings, "PAYMENTS", {}) or {}
    cfg = payments.get("MPESA") if isinstance(payments, dict) else None
    return cfg if isinstance(cfg, dict) else {}


def min_amount() -> int:
    """Provider minimum in whole KES (does not require credentials)."""
    return int(_raw_config().get("MIN_AMOUNT") or 1)


def get_config() -> MpesaConfig:
    cfg = _raw_config()

    required = {
        "CONSUMER_KEY": "consumer key",
        "CONSUMER_SECRET": "consumer secret",
        "PASSKEY": "passkey",
        "SHORTCODE": "shortcode",
        "CALLBACK_URL": "callback URL",
    }
    missing = [label for key, label in required.items() if not str(cfg.get(key) or "").strip()]
    if missing:
        raise PaymentConfigurationError(
            f"M-Pesa configuration incomplete. Missing: {', '.join(missing)}."
        )

    callback_url = str(cfg["CALLBACK_URL"]).strip()
    if not callback_url.startswith(("http://", "https://")):
        raise PaymentConfigurationError(
            "MPESA_CALLBACK_URL must be a valid URL starting with http or https"
        )

    return MpesaConfig(
        consumer_key=str(cfg["CONSUMER_KEY"]).strip(),
        consumer_secret=str(cfg["CONSUMER_SECRET"]).strip(),
        passkey=str(cfg["PASSKEY"]).strip(),
        shortcode=str(cfg["SHORTCODE"]).strip(),
        callback_url=callback_url,
        timeout_url=str(cfg.get("TIMEOUT_URL") or "").strip(),
        environment=str(cfg.get("ENVIRONMENT") or "sandbox").strip().lower(),
        min_amount=int(cfg.get("MIN_AMOUNT") or 1),
        request_timeout=int(cfg.get("REQUEST_TIMEOUT") or 30),
    )


# =====================================================
# INPUT HELPERS
# =====================================================


def normalize_phone_number(raw) -> str:
    """
    Convert common Kenyan formats to 2547XXXXXXXX.

    0712345678, 712345678, +254712345678, "254 712-345 678" -> 254712345678
    """
    original = str(raw or "")
    cleaned = _PHONE_STRIP_RE.sub("", original)

    if cleaned.startswith("+"):
        cleaned = cleaned[1:]
    if cleaned.startswith("0"):
        cleaned = "254" + cleaned[1:]
    if not cleaned.startswith("254"):
        cleaned = "254" + cleaned

    if len(cleaned) != 12 or not cleaned.isdigit():
        raise InvalidPhoneNumberError(
            f"Invalid phone number format: {original}. Must be a valid Kenyan number."
        )
    return cleaned


def _whole_amount(amount) -> int:
    """Daraja accepts whole shillings only; fractions round up."""
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        raise AmountBelowMinimumError("Amount must be a valid number")
    return int(value.to_integral_value(rounding=ROUND_CEILING))


def get_timestamp(now=None) -> str:
    """YYYYMMDDHHMMSS in the project's local time (Africa/Nairobi)."""
    return timezone.localtime(now or timezone.now()).strftime("%Y%m%d%H%M%S")


def generate_password(timestamp: str, *, config: MpesaConfig | None = None) -> str:
    cfg = config or get_config()
    data = f"{cfg.shortcode}{cfg.passkey}{timestamp}"
    return base64.b64encode(data.encode("utf-8")).decode("ascii")


def _mask_phone(phone: str) -> str:
    return f"{phone[:3]}****{phone[-3:]}" if len(phone) > 6 else "***"


# =====================================================
# TRANSPORT
# =====================================================


def _parse_json(raw: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(raw or "")
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _request_json(
    method: str,
    url: str,
    *,
    headers: dict,
    body: dict | None = None,
    timeout: int = 30,
) -> dict[str, Any]:
    data = None
    if body is not None:
        data = json.dumps(body).encode("utf-8")

    req = Request(
        url,
        data=data,
        headers={"Accept": "application/json", "Content-Type": "application/json", **headers},
        method=method,
    )

    try:
        with urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8", errors="replace")
    except HTTPError as e:
        try:
            raw = e.read().decode("utf-8", errors="replace")
        except OSError:
            raw = ""
        parsed = _parse_json(raw) or {}

        logger.warning(
            "M-Pesa HTTP error",
            extra={"status": e.code, "url": url, "error_code": parsed.get("errorCode", "")},
        )

        if e.code == 401:
            raise PaymentConfigurationError(
                "M-Pesa authentication failed. Check consumer key and secret."
            ) from e
        if parsed.get("errorMessage"):
            raise PaymentRejectedError(f"M-Pesa Error: {parsed['errorMessage']}") from e
        if e.code == 400:
            raise PaymentRejectedError(
                "Invalid M-Pesa request. Check phone number and amount."
            ) from e
        raise PaymentNetworkError() from e
    except OSError as e:
        # URLError, connection refused, socket timeout
        logger.warning("M-Pesa request failed", extra={"url": url, "error": str(e)})
        raise PaymentNetworkError() from e

    parsed = _parse_json(raw)
    if parsed is None:
        logger.warning("M-Pesa returned non-JSON body", extra={"url": url})
        raise PaymentNetworkError()
    return parsed


# =====================================================
# OPERATIONS
# =====================================================


def get_access_token(*, config: MpesaConfig | None = None, force_refresh: bool = False) -> str:
    """
    OAuth client-credentials exchange.

    The token is cached for (expires_in - 60) seconds; a cold cache costs
    one extra round-trip and nothing else.
    """
    cfg = config or get_config()

    if not force_refresh:
        cached = cache.get(TOKEN_CACHE_KEY)
        if cached:
            return cached

    credentials = base64.b64encode(
        f"{cfg.consumer_key}:{cfg.consumer_secret}".encode("utf-8")
    ).decode("ascii")

    parsed = _request_json(
        "GET",
        f"{cfg.base_url}{TOKEN_PATH}",
        headers={"Authorization": f"Basic {credentials}"},
        timeout=cfg.request_timeout,
    )

    token = str(parsed.get("access_token") or "").strip()
    if not token:
        raise PaymentConfigurationError("M-Pesa did not return an access token.")

    try:
        expires_in = int(parsed.get("expires_in") or 0)
    except (TypeError, ValueError):
        expires_in = 0

    ttl = expires_in - TOKEN_EXPIRY_MARGIN
    if ttl > 0:
        cache.set(TOKEN_CACHE_KEY, token, timeout=ttl)

    return token


@dataclass(frozen=True)
class StkPushResult:
    checkout_request_id: str
    merchant_request_id: str
    response_code: str
    response_description: str
    customer_message: str
    raw: dict = field(default_factory=dict)

    def as_payment_details(self) -> dict:
        return {
            "correlationId": self.checkout_request_id,
            "merchantRequestId": self.merchant_request_id,
            "responseCode": self.response_code,
            "customerMessage": self.customer_message,
        }


def initiate_stk_push(
    *,
    amount,
    phone_number: str,
    account_reference: str,
    description: str | None = None,
) -> StkPushResult:
    """
    Send the payment prompt to the customer's phone.

    The outcome arrives later on CALLBACK_URL; this only confirms that
    the provider accepted the request.
    """
    cfg = get_config()
    phone = normalize_phone_number(phone_number)

    whole_amount = _whole_amount(amount)
    if whole_amount < cfg.min_amount:
        raise AmountBelowMinimumError(
            f"Minimum checkout amount for M-Pesa is KES {cfg.min_amount}."
        )

    token = get_access_token(config=cfg)
    timestamp = get_timestamp()

    payload = {
        "BusinessShortCode": cfg.shortcode,
        "Password": generate_password(timestamp, config=cfg),
        "Timestamp": timestamp,
        "TransactionType": TRANSACTION_TYPE,
        "Amount": whole_amount,
        "PartyA": phone,
        "PartyB": cfg.shortcode,
        "PhoneNumber": phone,
        "CallBackURL": cfg.callback_url,
        "AccountReference": str(account_reference),
        "TransactionDesc": description or f"Payment for Order {account_reference}",
    }

    logger.info(
        "Sending M-Pesa STK push",
        extra={
            "account_reference": account_reference,
            "amount": whole_amount,
            "phone": _mask_phone(phone),
        },
    )

    parsed = _request_json(
        "POST",
        f"{cfg.base_url}{STK_PUSH_PATH}",
        headers={"Authorization": f"Bearer {token}"},
        body=payload,
        timeout=cfg.request_timeout,
    )

    response_code = str(parsed.get("ResponseCode", "")).strip()
    if response_code != "0":
        message = (
            parsed.get("CustomerMessage")
            or parsed.get("ResponseDescription")
            or "M-Pesa request failed"
        )
        logger.warning(
            "M-Pesa rejected STK push",
            extra={"account_reference": account_reference, "response_code": response_code},
        )
        raise PaymentRejectedError(message)

    checkout_request_id = str(parsed.get("CheckoutRequestID") or "").strip()
    if not checkout_request_id:
        raise PaymentRejectedError("M-Pesa did not return a CheckoutRequestID")

    return StkPushResult(
        checkout_request_id=checkout_request_id,
        merchant_request_id=str(parsed.get("MerchantRequestID") or ""),
        response_code=response_code,
        response_description=str(parsed.get("ResponseDescription") or ""),
        customer_message=str(parsed.get("CustomerMessage") or DEFAULT_CUSTOMER_MESSAGE),
        raw=parsed,
    )


def query_stk_push_status(checkout_request_id: str) -> dict:
    """
    Ask the provider for the outcome of a previous STK push.

    Returns the provider body (ResultCode / ResultDesc on completion).
    """
    cid = str(checkout_request_id or "").strip()
    if not cid:
        raise PaymentRejectedError("checkout_request_id is required")

    cfg = get_config()
    token = get_access_token(config=cfg)
    timestamp = get_timestamp()

    return _request_json(
        "POST",
        f"{cfg.base_url}{STK_QUERY_PATH}",
        headers={"Authorization": f"Bearer {token}"},
        body={
            "BusinessShortCode": cfg.shortcode,
            "Password": generate_password(timestamp, config=cfg),
            "Timestamp": timestamp,
            "CheckoutRequestID": cid,
        },
        timeout=cfg.request_timeout,
    )
