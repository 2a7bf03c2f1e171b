"""Order API views.

Exposes the ``OrderService`` via HTTP using DRF ViewSets.  Domain
exceptions propagate to ``api_exception_handler``, which renders them
with their status code; the views never catch them.

Staff users (``is_staff``) act as administrators: they see every order,
may move an order to any status and run the exchange/COD actions.
Everyone else is resolved to their customer profile and only sees their
own orders.
"""

from __future__ import annotations

from typing import Any

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.carts.repositories.django_repository import CartDjangoRepository
from modules.catalog.repositories.django_repository import CatalogDjangoRepository
from modules.core.exceptions import AuthorizationError
from modules.core.pagination import StandardResultsSetPagination
from modules.customers.repositories.django_repository import CustomerDjangoRepository
from modules.customers.services import CustomerService
from modules.notifications.dispatcher import NotificationDispatcher
from modules.orders.dtos import (
    ApproveExchangeDTO,
    ConfirmCODPaymentDTO,
    CreateOrderDTO,
    RejectExchangeDTO,
    RequestExchangeDTO,
)
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    ApproveExchangeSerializer,
    CancelOrderSerializer,
    ConfirmCODPaymentSerializer,
    CreateOrderSerializer,
    ExchangeApprovalSerializer,
    ExchangeCompletionSerializer,
    OrderListSerializer,
    OrderSerializer,
    OrderStatsQuerySerializer,
    RejectExchangeSerializer,
    RequestExchangeSerializer,
    UpdateOrderStatusSerializer,
)
from modules.orders.services import OrderService

ADMIN_ACTIONS = {
    "status_flow",
    "approve_exchange",
    "reject_exchange",
    "complete_exchange",
    "confirm_cod",
    "stats",
}


def is_admin(request: Request) -> bool:
    return bool(getattr(request.user, "is_staff", False))


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Uses ``OrderService`` with injected repositories (DIP).
    Does **not** extend ``ModelViewSet``: all writes go through the
    service/repository layer.
    """

    queryset = Order.objects.all()
    permission_classes = [IsAuthenticated]
    filterset_class = OrderFilter
    search_fields = ["order_number", "short_order_id", "customer__email"]
    ordering_fields = ["created_at", "total_amount", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        order_repository = OrderDjangoRepository()
        customer_repository = CustomerDjangoRepository()
        self._customers = CustomerService(customer_repository)
        self._service = OrderService(
            order_repository=order_repository,
            customer_repository=customer_repository,
            catalog_repository=CatalogDjangoRepository(),
            cart_repository=CartDjangoRepository(),
            notifier=NotificationDispatcher(),
        )

    def get_permissions(self):
        if self.action in ADMIN_ACTIONS:
            return [IsAdminUser()]
        return super().get_permissions()

    def get_throttles(self) -> list[BaseThrottle]:
        """Throttle scopes per action."""
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action in {"list", "retrieve"}:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    def _customer_id(self, request: Request) -> str:
        return str(self._customers.get_for_user(request.user).id)

    def _actor_id(self, request: Request) -> str:
        if is_admin(request):
            return str(request.user.pk)
        return self._customer_id(request)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Places an order from the authenticated customer's cart.
        """
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        if data.get("business_rules") and not is_admin(request):
            raise AuthorizationError("Only staff may override business rules.")

        customer_id = self._customer_id(request)
        order = self._service.create_order(customer_id, CreateOrderDTO(**data))
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def get_queryset(self):
        if is_admin(self.request):
            return self._service.list_orders()
        return self._service.list_orders({"customer_id": self._customer_id(self.request)})

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Filtering (status, payment, customer, date range, total range) is
        handled by ``OrderFilter``; ordering by ``OrderingFilter``.
        Results are paginated.
        """
        queryset = self.filter_queryset(self.get_queryset())

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        serializer = OrderListSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        customer_id = None if is_admin(request) else self._customer_id(request)
        order = self._service.get_order(pk, customer_id=customer_id)
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Status Update
    # ------------------------------------------------------------------

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/

        Customers follow the transition table; staff may set any status.
        """
        serializer = UpdateOrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = self._service.update_order_status(
            order_id=pk,
            actor_id=self._actor_id(request),
            new_status=serializer.validated_data["status"],
            reason=serializer.validated_data["reason"],
            is_admin=is_admin(request),
        )
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/

        Cancels an order and releases its reserved stock.
        """
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = self._service.cancel_order(
            order_id=pk,
            actor_id=self._actor_id(request),
            reason=serializer.validated_data["reason"],
            is_admin=is_admin(request),
        )
        return Response(OrderSerializer(order).data)

    @action(detail=False, methods=["get"], url_path="status-flow")
    def status_flow(self, request: Request) -> Response:
        """GET /api/v1/orders/status-flow/"""
        return Response(self._service.get_order_status_flow())

    @action(detail=False, methods=["get"])
    def stats(self, request: Request) -> Response:
        """GET /api/v1/orders/stats/?start_date=&end_date=&customer=

        Dashboard figures: counts by status, COD vs online, revenue,
        average order value, daily activity and conversion rate.
        """
        serializer = OrderStatsQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)

        stats = self._service.get_order_stats(
            start_date=serializer.validated_data.get("start_date"),
            end_date=serializer.validated_data.get("end_date"),
            customer_id=serializer.validated_data.get("customer"),
        )
        return Response(stats)

    # ------------------------------------------------------------------
    # Exchange workflow
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"], url_path="exchange")
    def request_exchange(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/exchange/"""
        serializer = RequestExchangeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = self._service.request_exchange(
            pk, self._customer_id(request), RequestExchangeDTO(**serializer.validated_data)
        )
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"], url_path="exchange/approve")
    def approve_exchange(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/exchange/approve/"""
        serializer = ApproveExchangeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        approval = self._service.approve_exchange(
            pk, ApproveExchangeDTO(**serializer.validated_data), actor_id=request.user.pk
        )
        return Response(ExchangeApprovalSerializer(approval).data)

    @action(detail=True, methods=["post"], url_path="exchange/reject")
    def reject_exchange(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/exchange/reject/"""
        serializer = RejectExchangeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = self._service.reject_exchange(
            pk, RejectExchangeDTO(**serializer.validated_data), actor_id=request.user.pk
        )
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"], url_path="exchange/complete")
    def complete_exchange(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/exchange/complete/"""
        completion = self._service.complete_exchange(pk, actor_id=request.user.pk)
        return Response(ExchangeCompletionSerializer(completion).data)

    # ------------------------------------------------------------------
    # Cash on delivery
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"], url_path="cod/confirm")
    def confirm_cod(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cod/confirm/

        Called by the delivery agent (staff) after collecting the cash.
        """
        serializer = ConfirmCODPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = self._service.confirm_cod_payment(
            pk, request.user.pk, ConfirmCODPaymentDTO(**serializer.validated_data)
        )
        return Response(OrderSerializer(order).data)
