# payments/views/order_status.py

"""
ORDER PAYMENT STATUS (POLLING)

GET /api/payments/order/<order_id>/status/

The storefront polls this after an STK push until paymentStatus leaves
"pending". Owner or shop staff only; anyone else gets 404 so order ids
cannot be probed.
"""

from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import serializers
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from backend.errors import NotFoundError
from orders.models import Order


class OrderPaymentStatusSerializer(serializers.Serializer):
    orderId = serializers.UUIDField(source="id")
    orderNumber = serializers.CharField(source="order_number")
    status = serializers.CharField()
    paymentStatus = serializers.CharField(source="payment_status")
    paymentMethod = serializers.CharField(source="payment_method")
    totalAmount = serializers.DecimalField(source="total_amount", max_digits=12, decimal_places=2)
    isPaid = serializers.BooleanField(source="is_paid")


class OrderPaymentStatusView(APIView):
    permission_classes = [IsAuthenticated]
    serializer_class = OrderPaymentStatusSerializer

    @extend_schema(
        responses={200: OrderPaymentStatusSerializer},
        description="Current payment state of one of the caller's orders",
    )
    def get(self, request, order_id):
        orders = Order.objects.all()
        if not getattr(request.user, "is_shop_staff", False):
            orders = orders.filter(user=request.user)

        order = orders.filter(pk=order_id).first()
        if order is None:
            raise NotFoundError("Order not found", code="ORDER_NOT_FOUND")

        return Response(
            {
                "success": True,
                "message": "Payment status retrieved",
                "data": OrderPaymentStatusSerializer(order).data,
            }
        )
