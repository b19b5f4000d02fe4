# cart/views/api.py

"""
CART API VIEWS

Purpose:
- Read / clear the caller's cart
- Add, update, remove line items (server-owned pricing)

Response envelope: {"success": true, "message": ..., "data": <cart>}
Domain errors (unknown product, missing line, stock) are raised as
backend.errors.ShopError and rendered by the project exception handler.
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiExample, extend_schema
from rest_framework import serializers, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from backend.errors import CartItemNotFoundError
from cart.serializers import CartSerializer
from cart.services import (
    add_item,
    clear_cart,
    get_or_create_cart,
    remove_item,
    update_quantity,
)


# =====================================================
# SWAGGER INPUT SERIALIZERS
# =====================================================


class CartLineInputSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    size = serializers.CharField(required=False, allow_blank=True, allow_null=True, default="")
    color = serializers.CharField(required=False, allow_blank=True, allow_null=True, default="")


class AddCartItemInputSerializer(CartLineInputSerializer):
    quantity = serializers.IntegerField(min_value=1, default=1)


class UpdateCartItemInputSerializer(CartLineInputSerializer):
    # 0 removes the line
    quantity = serializers.IntegerField()


def _cart_response(user, *, message: str, http_status=status.HTTP_200_OK) -> Response:
    cart = get_or_create_cart(user)
    return Response(
        {"success": True, "message": message, "data": CartSerializer(cart).data},
        status=http_status,
    )


def _line_payload(request) -> dict:
    """DELETE may carry the line in the body or in query params."""
    payload = {}
    for source in (request.query_params, request.data):
        if hasattr(source, "dict"):
            payload.update(source.dict())
        elif isinstance(source, dict):
            payload.update(source)
    return payload


# =====================================================
# CART API VIEWS
# =====================================================


class CartView(APIView):
    permission_classes = [IsAuthenticated]
    serializer_class = CartSerializer

    @extend_schema(
        responses={200: CartSerializer},
        description="Get (or lazily create) the authenticated user's cart",
    )
    def get(self, request):
        return _cart_response(request.user, message="Cart retrieved")

    @extend_schema(
        responses={200: CartSerializer},
        description="Remove every item from the cart",
    )
    def delete(self, request):
        clear_cart(request.user)
        return _cart_response(request.user, message="Cart cleared")


class CartItemsView(APIView):
    """
    Line-item operations. A line is identified by (product_id, size, color).
    """

    permission_classes = [IsAuthenticated]
    serializer_class = CartSerializer

    @extend_schema(
        request=AddCartItemInputSerializer,
        responses={200: CartSerializer},
        description="Add a product (increments quantity when the same product/size/color exists)",
        examples=[
            OpenApiExample(
                "Shirt, size M",
                value={
                    "product_id": "07d0722f-92fd-4a83-b84e-6e25f034a647",
                    "quantity": 2,
                    "size": "M",
                    "color": "Black",
                },
                request_only=True,
            )
        ],
    )
    def post(self, request):
        serializer = AddCartItemInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        add_item(
            user=request.user,
            product_id=data["product_id"],
            quantity=data["quantity"],
            size=data.get("size"),
            color=data.get("color"),
        )
        return _cart_response(request.user, message="Item added to cart")

    @extend_schema(
        request=UpdateCartItemInputSerializer,
        responses={200: CartSerializer},
        description="Set a line's quantity (0 removes the line)",
    )
    def patch(self, request):
        serializer = UpdateCartItemInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        updated = update_quantity(
            user=request.user,
            product_id=data["product_id"],
            quantity=data["quantity"],
            size=data.get("size"),
            color=data.get("color"),
        )
        if not updated:
            raise CartItemNotFoundError()
        return _cart_response(request.user, message="Cart updated")

    @extend_schema(
        request=CartLineInputSerializer,
        parameters=[CartLineInputSerializer],
        responses={200: CartSerializer},
        description="Remove a line (body or query params)",
    )
    def delete(self, request):
        serializer = CartLineInputSerializer(data=_line_payload(request))
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        removed = remove_item(
            user=request.user,
            product_id=data["product_id"],
            size=data.get("size"),
            color=data.get("color"),
        )
        if not removed:
            raise CartItemNotFoundError()
        return _cart_response(request.user, message="Item removed from cart")
