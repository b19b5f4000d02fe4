# payments/views/webhook.py

"""
M-PESA WEBHOOK VIEWS

Endpoints (mounted under /api/payments/):
- POST mpesa/callback/  STK push result
- GET  mpesa/callback/  URL validation ping from the provider
- POST mpesa/timeout/   queue timeout

Hard rules:
- Public (no auth); the provider cannot present credentials.
- ALWAYS answer 200 {"ResultCode": 0, "ResultDesc": "Accepted"}.
  A non-200 makes Daraja redeliver, and the reconciler already makes
  redelivery harmless, so there is nothing to gain from refusing.
- Never throttled: a 429 is a non-200 and would trigger redelivery.
- Processing is synchronous; the reconciler never raises. Orders whose
  callback is lost or slow are picked up by the
  `reconcile_pending_payments` command through the STK query API.
"""

from __future__ import annotations

import logging

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.exceptions import ParseError, UnsupportedMediaType
from rest_framework.parsers import JSONParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from payments.services.reconciler import handle_stk_callback, handle_timeout

logger = logging.getLogger(__name__)

ACKNOWLEDGEMENT = {"ResultCode": 0, "ResultDesc": "Accepted"}


def _ack() -> Response:
    return Response(dict(ACKNOWLEDGEMENT), status=status.HTTP_200_OK)


def _payload(request):
    try:
        return request.data
    except (ParseError, UnsupportedMediaType):
        logger.warning("M-Pesa webhook body could not be parsed")
        return None


class MpesaCallbackView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    parser_classes = [JSONParser]
    throttle_classes = []

    @extend_schema(
        request=OpenApiTypes.OBJECT,
        responses={200: OpenApiTypes.OBJECT},
        description="Safaricom STK push result callback (always acknowledged)",
    )
    def post(self, request, *args, **kwargs):
        outcome = handle_stk_callback(_payload(request))
        logger.info(
            "M-Pesa callback handled",
            extra={
                "outcome": outcome.status,
                "checkout_request_id": outcome.checkout_request_id,
            },
        )
        return _ack()

    @extend_schema(
        responses={200: OpenApiTypes.OBJECT},
        description="Callback URL validation ping",
    )
    def get(self, request, *args, **kwargs):
        return _ack()


class MpesaTimeoutView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    parser_classes = [JSONParser]
    throttle_classes = []

    @extend_schema(
        request=OpenApiTypes.OBJECT,
        responses={200: OpenApiTypes.OBJECT},
        description="Safaricom queue timeout notification (always acknowledged)",
    )
    def post(self, request, *args, **kwargs):
        outcome = handle_timeout(_payload(request))
        logger.info(
            "M-Pesa timeout handled",
            extra={
                "outcome": outcome.status,
                "checkout_request_id": outcome.checkout_request_id,
            },
        )
        return _ack()
