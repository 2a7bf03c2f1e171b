"""Payment API views.

Khalti initiation is done by the order's customer, verification is the
public return URL Khalti redirects to, and refunds are staff-only.
"""

from __future__ import annotations

from typing import Any

from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.catalog.repositories.django_repository import CatalogDjangoRepository
from modules.customers.repositories.django_repository import CustomerDjangoRepository
from modules.customers.services import CustomerService
from modules.notifications.dispatcher import NotificationDispatcher
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import OrderSerializer
from modules.payments.gateway import KhaltiGateway
from modules.payments.serializers import (
    InitiateKhaltiPaymentSerializer,
    RefundPaymentSerializer,
    VerifyKhaltiPaymentSerializer,
)
from modules.payments.services import PaymentService


class PaymentViewSet(GenericViewSet):
    permission_classes = [IsAuthenticated]

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._customers = CustomerService(CustomerDjangoRepository())
        self._service = PaymentService(
            order_repository=OrderDjangoRepository(),
            catalog_repository=CatalogDjangoRepository(),
            gateway=KhaltiGateway(),
            notifier=NotificationDispatcher(),
        )

    def get_permissions(self):
        if self.action == "verify_khalti":
            return [AllowAny()]
        if self.action == "refund":
            return [IsAdminUser()]
        return super().get_permissions()

    @action(detail=False, methods=["post"], url_path="khalti/initiate")
    def initiate_khalti(self, request: Request) -> Response:
        """POST /api/v1/payments/khalti/initiate/"""
        serializer = InitiateKhaltiPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        customer = self._customers.get_for_user(request.user)
        result = self._service.initiate_khalti_payment(
            serializer.validated_data["order_id"], customer.id
        )
        return Response(result)

    @action(detail=False, methods=["get"], url_path="khalti/verify")
    def verify_khalti(self, request: Request) -> Response:
        """GET /api/v1/payments/khalti/verify/?pidx=..."""
        serializer = VerifyKhaltiPaymentSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)

        result = self._service.verify_khalti_payment(serializer.validated_data["pidx"])
        return Response({"message": "Payment verified successfully.", **result})

    @action(detail=True, methods=["post"])
    def refund(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/payments/{order_id}/refund/"""
        serializer = RefundPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = self._service.refund_payment(
            pk,
            request.user.pk,
            serializer.validated_data["amount"],
            serializer.validated_data["reason"],
        )
        return Response(OrderSerializer(order).data)
