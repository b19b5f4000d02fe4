# payments/management/commands/reconcile_pending_payments.py

"""
Catch M-Pesa orders whose callback never arrived (or arrived before the
CheckoutRequestID was stored).

For every pending M-Pesa order older than --older-than minutes, ask the
provider for the STK push outcome and feed it through the same reconciler
the webhook uses. Orders the provider still reports as in progress are
left alone.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from backend.errors import PaymentError
from orders.models import Order
from payments.services import mpesa
from payments.services.reconciler import OUTCOME_ERROR, handle_stk_callback

logger = logging.getLogger(__name__)


def _as_callback(checkout_request_id: str, result: dict) -> dict:
    """Shape an STK query response like a callback body."""
    return {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": result.get("MerchantRequestID", ""),
                "CheckoutRequestID": checkout_request_id,
                "ResultCode": result.get("ResultCode"),
                "ResultDesc": result.get("ResultDesc", ""),
            }
        }
    }


class Command(BaseCommand):
    help = "Query M-Pesa for stale pending STK pushes and reconcile their orders."

    def add_arguments(self, parser):
        parser.add_argument(
            "--older-than",
            dest="older_than",
            type=int,
            default=5,
            help="Only orders created at least this many minutes ago (default 5)",
        )
        parser.add_argument("--dry-run", action="store_true", help="Query only; do not apply results")

    def handle(self, *args, **options):
        older_than = max(0, int(options.get("older_than") or 0))
        dry_run = bool(options.get("dry_run"))
        cutoff = timezone.now() - timedelta(minutes=older_than)

        pending = (
            Order.objects.filter(
                payment_method=Order.PAYMENT_MPESA,
                payment_status=Order.PAYMENT_PENDING,
                status=Order.STATUS_PENDING,
                mpesa_checkout_request_id__isnull=False,
                created_at__lte=cutoff,
            )
            .order_by("created_at")
        )

        self.stdout.write(self.style.MIGRATE_HEADING("Reconcile pending M-Pesa payments"))
        self.stdout.write(f"Orders older than {older_than} min: {pending.count()}")
        if dry_run:
            self.stdout.write("DRY RUN: results will not be applied.")

        applied = 0
        skipped = 0
        failed = 0

        for order in list(pending):
            cid = order.mpesa_checkout_request_id
            try:
                result = mpesa.query_stk_push_status(cid)
            except PaymentError as exc:
                # still in progress, or the provider is unreachable
                skipped += 1
                logger.info(
                    "STK query skipped",
                    extra={"order_number": order.order_number, "code": exc.code},
                )
                self.stdout.write(f"- {order.order_number}: skipped ({exc.message})")
                continue

            if result.get("ResultCode") in (None, ""):
                skipped += 1
                self.stdout.write(f"- {order.order_number}: no result yet")
                continue

            if dry_run:
                self.stdout.write(
                    f"- {order.order_number}: ResultCode={result.get('ResultCode')} "
                    f"({result.get('ResultDesc', '')})"
                )
                continue

            outcome = handle_stk_callback(_as_callback(cid, result))
            if outcome.status == OUTCOME_ERROR:
                failed += 1
                self.stdout.write(self.style.ERROR(f"- {order.order_number}: error"))
            else:
                applied += 1
                self.stdout.write(f"- {order.order_number}: {outcome.status}")

        self.stdout.write(
            self.style.SUCCESS(f"Done. applied={applied} skipped={skipped} failed={failed}")
        )
