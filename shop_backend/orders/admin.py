# orders/admin.py

"""
Order fulfilment is driven from the admin:
- status moves go through Order.update_status (lifecycle rules apply)
- cash / card money is confirmed with confirm_offline_payment
- cancellation goes through cancel_order (stock restore)

Order lines and payment fields are read-only.
"""

from django.contrib import admin, messages

from backend.errors import ShopError
from orders.models import Order, OrderItem
from orders.services.order_service import cancel_order, confirm_offline_payment

# =====================================================
# ORDER ITEM INLINE (SNAPSHOT, READ-ONLY)
# =====================================================


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    readonly_fields = (
        "product",
        "product_name",
        "size",
        "color",
        "quantity",
        "unit_price",
        "total_price",
        "stock_committed",
    )

    def has_add_permission(self, request, obj=None):
        return False


# =====================================================
# ACTION HELPERS
# =====================================================


def _apply(modeladmin, request, queryset, func, *, done: str):
    ok = 0
    for order in queryset:
        try:
            func(order)
        except ShopError as exc:
            modeladmin.message_user(
                request, f"{order.order_number}: {exc.message}", level=messages.ERROR
            )
        else:
            ok += 1
    if ok:
        modeladmin.message_user(request, f"{ok} order(s) {done}.", level=messages.SUCCESS)


def _status_action(target: str):
    def action(modeladmin, request, queryset):
        _apply(
            modeladmin,
            request,
            queryset,
            lambda order: order.update_status(target),
            done=f"marked {target}",
        )

    action.__name__ = f"mark_{target}"
    action.short_description = f"Mark selected orders as {target}"
    return action


@admin.action(description="Confirm offline payment (cash / card)")
def confirm_payment(modeladmin, request, queryset):
    _apply(
        modeladmin,
        request,
        queryset,
        lambda order: confirm_offline_payment(
            order_id=order.pk, transaction_id=f"ADMIN-{order.order_number}"
        ),
        done="confirmed as paid",
    )


@admin.action(description="Cancel selected orders (restores stock)")
def cancel_orders(modeladmin, request, queryset):
    _apply(
        modeladmin,
        request,
        queryset,
        lambda order: cancel_order(order_id=order.pk),
        done="cancelled",
    )


# =====================================================
# ORDER ADMIN
# =====================================================


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "order_number",
        "user",
        "total_amount",
        "payment_method",
        "payment_status",
        "status",
        "needs_reconciliation",
        "created_at",
    )
    list_filter = ("status", "payment_status", "payment_method", "needs_reconciliation")
    search_fields = (
        "order_number",
        "user__email",
        "mpesa_checkout_request_id",
        "mpesa_receipt_number",
        "transaction_id",
    )
    readonly_fields = (
        "order_number",
        "user",
        "total_amount",
        "status",
        "payment_method",
        "payment_status",
        "transaction_id",
        "mpesa_checkout_request_id",
        "mpesa_merchant_request_id",
        "mpesa_receipt_number",
        "mpesa_phone_number",
        "mpesa_transaction_date",
        "stock_committed",
        "created_at",
        "updated_at",
        "paid_at",
        "delivered_at",
        "cancelled_at",
    )
    inlines = [OrderItemInline]
    actions = [
        _status_action(Order.STATUS_PROCESSING),
        _status_action(Order.STATUS_SHIPPED),
        _status_action(Order.STATUS_DELIVERED),
        confirm_payment,
        cancel_orders,
    ]
