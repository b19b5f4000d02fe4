# orders/views/checkout.py

"""
CHECKOUT API

POST /api/orders/checkout/

Cart -> Order (+ STK push for M-Pesa). The view only parses input and
shapes the response; every rule lives in the checkout orchestrator and
every failure is a backend.errors.ShopError rendered by the project
exception handler.
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiExample, extend_schema
from rest_framework import status
from rest_framework.parsers import JSONParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import UserRateThrottle
from rest_framework.views import APIView

from orders.serializers import CheckoutInputSerializer, OrderSerializer
from orders.services.checkout_orchestrator import checkout


class CheckoutThrottle(UserRateThrottle):
    scope = "checkout"


class CheckoutView(APIView):
    permission_classes = [IsAuthenticated]
    parser_classes = [JSONParser]
    throttle_classes = [CheckoutThrottle]
    serializer_class = OrderSerializer

    @extend_schema(
        request=CheckoutInputSerializer,
        responses={201: OrderSerializer},
        description=(
            "Turn the caller's cart into an order. For M-Pesa an STK push is sent "
            "to phoneNumber and data.paymentDetails carries the correlation id."
        ),
        examples=[
            OpenApiExample(
                "M-Pesa checkout",
                value={
                    "shippingAddress": {
                        "name": "Jane Doe",
                        "address": "Moi Avenue 12",
                        "city": "Nairobi",
                        "state": "Nairobi",
                        "postalCode": "00100",
                    },
                    "paymentMethod": "mpesa",
                    "phoneNumber": "0712345678",
                    "notes": "Leave at the gate",
                },
                request_only=True,
            )
        ],
    )
    def post(self, request):
        serializer = CheckoutInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = checkout(
            user=request.user,
            shipping_address=data["shippingAddress"],
            payment_method=data["paymentMethod"],
            phone_number=data.get("phoneNumber"),
            notes=data.get("notes") or "",
        )

        return Response(
            {
                "success": True,
                "message": result.message,
                "data": {
                    "order": OrderSerializer(result.order).data,
                    "paymentDetails": result.payment_details,
                },
            },
            status=status.HTTP_201_CREATED,
        )
