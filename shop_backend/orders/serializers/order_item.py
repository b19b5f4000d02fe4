# orders/serializers/order_item.py

from rest_framework import serializers

from orders.models import OrderItem


class OrderItemSerializer(serializers.ModelSerializer):
    """Snapshot line; product_id is null once the product is deleted."""

    product_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_id",
            "product_name",
            "quantity",
            "size",
            "color",
            "unit_price",
            "total_price",
        ]
        read_only_fields = fields
