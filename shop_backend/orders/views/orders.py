# orders/views/orders.py

"""
ORDER VIEWSET (CUSTOMER)

- GET  /api/orders/                 caller's orders (paginated, newest first)
- GET  /api/orders/<id>/            one order with its snapshot lines
- POST /api/orders/<id>/cancel/     cancel (pending / paid / processing)

Staff see every order. Filters: ?status=, ?payment_status=, ?payment_method=
"""

from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from orders.models import Order
from orders.serializers import OrderSerializer
from orders.services.order_service import cancel_order
from .permissions import IsOrderOwnerOrStaff, is_shop_staff


class OrderViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated, IsOrderOwnerOrStaff]
    filterset_fields = ["status", "payment_status", "payment_method"]

    def get_queryset(self):
        qs = Order.objects.prefetch_related("items").order_by("-created_at")
        if not is_shop_staff(self.request.user):
            qs = qs.filter(user=self.request.user)
        return qs

    @extend_schema(
        request=None,
        responses={200: OrderSerializer},
        description="Cancel an order; committed stock is restored",
    )
    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        order = self.get_object()
        order = cancel_order(order_id=order.pk)
        return Response(
            {
                "success": True,
                "message": "Order cancelled",
                "data": OrderSerializer(order).data,
            }
        )
