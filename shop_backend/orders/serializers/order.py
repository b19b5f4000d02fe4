# orders/serializers/order.py

"""
ORDER SERIALIZERS

- OrderSerializer: read model for checkout / list / detail responses
- CheckoutInputSerializer: request shape for POST /api/orders/checkout/

Checkout accepts the storefront's camelCase keys (shippingAddress,
paymentMethod, phoneNumber) and their snake_case spellings. Business
validation (method, address fields, notes length) stays in the checkout
orchestrator so the error codes are the same for every caller.
"""

from rest_framework import serializers

from orders.models import Order
from .order_item import OrderItemSerializer


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    shipping_address = serializers.DictField(read_only=True)
    is_paid = serializers.BooleanField(read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "status",
            "payment_method",
            "payment_status",
            "is_paid",
            "total_amount",
            "transaction_id",
            "mpesa_checkout_request_id",
            "mpesa_receipt_number",
            "shipping_address",
            "notes",
            "tracking_number",
            "items",
            "created_at",
            "updated_at",
            "paid_at",
            "delivered_at",
            "cancelled_at",
        ]
        read_only_fields = fields


class CheckoutInputSerializer(serializers.Serializer):
    SNAKE_CASE_ALIASES = {
        "shipping_address": "shippingAddress",
        "payment_method": "paymentMethod",
        "phone_number": "phoneNumber",
    }

    shippingAddress = serializers.DictField(
        child=serializers.CharField(allow_blank=True, allow_null=True),
        required=False,
        default=dict,
    )
    paymentMethod = serializers.CharField(required=False, allow_blank=True, default="")
    phoneNumber = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, default=None
    )
    notes = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, default="", trim_whitespace=False
    )

    def to_internal_value(self, data):
        if isinstance(data, dict):
            data = dict(data)
            for snake, camel in self.SNAKE_CASE_ALIASES.items():
                if camel not in data and snake in data:
                    data[camel] = data[snake]
        return super().to_internal_value(data)
