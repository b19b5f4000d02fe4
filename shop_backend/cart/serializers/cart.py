# cart/serializers/cart.py

"""
CART SERIALIZER

Totals are server-owned: total_amount is the persisted value maintained by
cart_service, item_count is summed from the lines.
"""

from drf_spectacular.utils import extend_schema_field
from rest_framework import serializers

from cart.models import Cart
from .cart_item import CartItemSerializer


class CartSerializer(serializers.ModelSerializer):
    items = serializers.SerializerMethodField()
    item_count = serializers.IntegerField(read_only=True)
    total_amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Cart
        fields = [
            "id",
            "items",
            "item_count",
            "total_amount",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    @extend_schema_field(CartItemSerializer(many=True))
    def get_items(self, obj) -> list:
        items = obj.items.select_related("product").order_by("created_at")
        return CartItemSerializer(items, many=True).data
