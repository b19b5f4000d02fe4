# payments/admin.py

from django.contrib import admin

from payments.models import PaymentAttempt


# ======================================================
# PAYMENT ATTEMPT ADMIN (audit, read-only)
# ======================================================


@admin.register(PaymentAttempt)
class PaymentAttemptAdmin(admin.ModelAdmin):
    list_display = (
        "checkout_request_id",
        "order",
        "amount",
        "status",
        "result_code",
        "receipt_number",
        "initiated_at",
    )
    readonly_fields = (
        "order",
        "provider",
        "checkout_request_id",
        "merchant_request_id",
        "amount",
        "phone_number",
        "status",
        "result_code",
        "result_description",
        "receipt_number",
        "provider_payload",
        "initiated_at",
        "completed_at",
    )
    search_fields = ("checkout_request_id", "receipt_number", "order__order_number")
    list_filter = ("status", "provider", "initiated_at")

    def has_add_permission(self, request):
        return False
