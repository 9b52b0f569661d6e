"""Order API views.

Exposes ``OrderService`` and ``OrderQueryService`` via HTTP using a DRF
ViewSet.  Views only translate HTTP into DTOs and back: domain exceptions
propagate to ``standardized_exception_handler``, which maps each error
family to its HTTP status.
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.orders.dtos import (
    CancelOrderDTO,
    CreateOrderDTO,
    OrderItemDTO,
    OrderListParams,
    ShippingAddressDTO,
    StatusUpdateDTO,
)
from modules.orders.models import Order
from modules.orders.queries import OrderQueryService
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    CancelOrderSerializer,
    CreateOrderSerializer,
    OrderListQuerySerializer,
    OrderPageSerializer,
    OrderSerializer,
    OrderTrackingSerializer,
    StatusUpdateSerializer,
)
from modules.orders.services import OrderService


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Does **not** extend ``ModelViewSet``: all ORM access goes through
    the service/repository layer.
    """

    queryset = Order.objects.none()
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        repository = OrderDjangoRepository()
        self._service = OrderService(order_repository=repository)
        self._queries = OrderQueryService(order_repository=repository)

    def get_throttles(self) -> list[BaseThrottle]:
        """Throttling scope per action."""
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action in {"list", "retrieve", "by_user", "tracking"}:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Supports idempotency via the ``Idempotency-Key`` header.
        Returns 200 if the key was already used, 201 for new orders.
        """
        create_serializer = CreateOrderSerializer(data=request.data)
        create_serializer.is_valid(raise_exception=True)

        data = create_serializer.validated_data
        dto = CreateOrderDTO(
            consumer_id=data.get("consumer_id"),
            vendor_id=data.get("vendor_id"),
            payment_id=data["payment_id"],
            items=[
                OrderItemDTO(
                    product_id=item["product_id"],
                    vendor_id=item.get("vendor_id"),
                    quantity=item["quantity"],
                    price=item["price"],
                )
                for item in data["order_items"]
            ],
            shipping_address=ShippingAddressDTO(**data["shipping_address"]),
            idempotency_key=request.headers.get("Idempotency-Key"),
        )

        order, created = self._service.create_order(request.user, dto)

        out = OrderSerializer(order)
        return Response(
            out.data, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
        )

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Scoped to the caller: vendors see their sales, consumers their
        purchases, admins everything.
        """
        page = self._queries.list_orders(request.user, self._list_params(request))
        return Response(OrderPageSerializer(page).data)

    @action(detail=False, methods=["get"], url_path=r"user/(?P<user_id>[^/.]+)")
    def by_user(self, request: Request, user_id: str | None = None) -> Response:
        """GET /api/v1/orders/user/{user_id}/"""
        page = self._queries.list_orders_for_consumer(
            request.user, str(user_id), self._list_params(request)
        )
        return Response(OrderPageSerializer(page).data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        order = self._service.get_order(request.user, str(pk))
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["get"])
    def tracking(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/tracking/"""
        order, events = self._service.get_tracking(request.user, str(pk))
        serializer = OrderTrackingSerializer(
            {
                "order_id": order.id,
                "order_status": order.order_status,
                "version": order.version,
                "tracking": events,
            }
        )
        return Response(serializer.data)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @action(detail=True, methods=["put"], url_path="status")
    def update_status(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/v1/orders/{pk}/status/

        Cancellations are **not** allowed via this endpoint; use
        ``POST /orders/{id}/cancel/`` instead.
        """
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = self._service.update_status(
            request.user,
            str(pk),
            StatusUpdateDTO(
                order_status=data["order_status"].strip().lower(),
                carrier=data["carrier"],
                tracking_number=data["tracking_number"],
                note=data["note"],
                expected_version=data.get("version"),
            ),
        )
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/"""
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = self._service.cancel_order(
            request.user,
            str(pk),
            CancelOrderDTO(reason=data.get("reason"), expected_version=data.get("version")),
        )
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _list_params(request: Request) -> OrderListParams:
        query = OrderListQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        return OrderListParams(**query.validated_data)
