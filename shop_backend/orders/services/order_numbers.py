# orders/services/order_numbers.py

"""
ORDER NUMBERS

Format: <PREFIX>-<YYYY>-<NNNNN>   e.g. INF-2025-00042

- Sequential per calendar year, derived from the highest number already
  issued for that year.
- Two concurrent checkouts can compute the same next number. The unique
  constraint on Order.order_number rejects the second insert; we recompute
  and retry inside a fresh savepoint, up to ORDER_NUMBER_MAX_ATTEMPTS.
- Exhaustion raises OrderNumberConflictError (409).
"""

from __future__ import annotations

import logging

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models.functions import Length
from django.utils import timezone

from backend.errors import OrderNumberConflictError
from orders.models import Order

logger = logging.getLogger(__name__)

SEQUENCE_WIDTH = 5


def _year_prefix(year: int) -> str:
    prefix = getattr(settings, "ORDER_NUMBER_PREFIX", "INF")
    return f"{prefix}-{year}-"


def _parse_sequence(order_number: str) -> int:
    try:
        return int(order_number.rsplit("-", 1)[1])
    except (IndexError, ValueError):
        return 0


def next_order_number(*, now=None) -> str:
    """
    Highest issued number for the year + 1.

    Ordering by length first keeps INF-2025-100000 above INF-2025-99999.
    """
    year = (now or timezone.now()).year
    prefix = _year_prefix(year)

    last = (
        Order.objects.filter(order_number__startswith=prefix)
        .annotate(number_length=Length("order_number"))
        .order_by("-number_length", "-order_number")
        .values_list("order_number", flat=True)
        .first()
    )

    sequence = _parse_sequence(last) + 1 if last else 1
    return f"{prefix}{sequence:0{SEQUENCE_WIDTH}d}"


def save_with_order_number(order: Order) -> Order:
    """
    Insert `order` with a freshly allocated number.

    Must be called inside an outer transaction.atomic(); each attempt runs
    in its own savepoint so a duplicate-key failure does not poison it.
    """
    max_attempts = max(1, int(getattr(settings, "ORDER_NUMBER_MAX_ATTEMPTS", 5)))

    for attempt in range(1, max_attempts + 1):
        order.order_number = next_order_number()
        try:
            with transaction.atomic():
                order.save(force_insert=True)
            return order
        except IntegrityError:
            logger.warning(
                "Order number collision, retrying",
                extra={"order_number": order.order_number, "attempt": attempt},
            )

    logger.error("Order number allocation exhausted", extra={"attempts": max_attempts})
    raise OrderNumberConflictError()
