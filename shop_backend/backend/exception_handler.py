# backend/exception_handler.py

"""
DRF EXCEPTION HANDLER

Wired via REST_FRAMEWORK["EXCEPTION_HANDLER"].

- ShopError subclasses → {"success": false, "message", "code"} with status_for(exc)
- DRF exceptions (validation, auth, throttling, 404) keep their own status code
  and are wrapped in the same envelope; field errors are kept under "errors".
- Anything else falls through to Django (500 + logged).
"""

from __future__ import annotations

import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from backend.errors import ShopError, error_payload, status_for

logger = logging.getLogger(__name__)


def _first_message(data) -> str:
    if isinstance(data, dict):
        if "detail" in data:
            return str(data["detail"])
        for key, value in data.items():
            return f"{key}: {_first_message(value)}"
    if isinstance(data, (list, tuple)) and data:
        return _first_message(data[0])
    return str(data)


def api_exception_handler(exc, context):
    if isinstance(exc, ShopError):
        http_status = status_for(exc)
        if http_status >= 500:
            logger.error(
                "Request failed with domain error",
                extra={"code": exc.code, "view": context.get("view").__class__.__name__},
            )
        return Response(error_payload(exc), status=http_status)

    response = drf_exception_handler(exc, context)
    if response is None:
        return None

    data = response.data
    response.data = {
        "success": False,
        "message": _first_message(data),
        "code": str(getattr(exc, "default_code", "error")).upper(),
        "errors": data,
    }
    return response
