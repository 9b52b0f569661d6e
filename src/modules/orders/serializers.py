"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from modules.orders.constants import DEFAULT_PAGE_SIZE, MAX_ITEM_QUANTITY, OrderStatus
from modules.orders.filters import parse_date_bound
from modules.orders.models import Order, OrderItem, TrackingEvent

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class ShippingAddressSerializer(serializers.Serializer):
    line1 = serializers.CharField(max_length=255)
    line2 = serializers.CharField(
        max_length=255, required=False, allow_blank=True, allow_null=True
    )
    city = serializers.CharField(max_length=120)
    province = serializers.CharField(
        max_length=120, required=False, allow_blank=True, allow_null=True
    )
    postal_code = serializers.CharField(max_length=20)
    country = serializers.CharField(min_length=2, max_length=2)


class OrderItemInputSerializer(serializers.Serializer):
    """Validates a single line of an order creation request."""

    product_id = serializers.CharField(max_length=64)
    vendor_id = serializers.CharField(
        max_length=64, required=False, allow_blank=True, allow_null=True
    )
    quantity = serializers.IntegerField(min_value=1, max_value=MAX_ITEM_QUANTITY)
    price = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=Decimal("0.00")
    )


class CreateOrderSerializer(serializers.Serializer):
    """Validates the order creation request payload.

    ``consumer_id`` is only meaningful for admins ordering on behalf of a
    consumer; consumers default to themselves.
    """

    consumer_id = serializers.CharField(
        max_length=64, required=False, allow_blank=True, allow_null=True
    )
    vendor_id = serializers.CharField(
        max_length=64, required=False, allow_blank=True, allow_null=True
    )
    payment_id = serializers.CharField(max_length=255)
    order_items = OrderItemInputSerializer(many=True, allow_empty=False)
    shipping_address = ShippingAddressSerializer()


class StatusUpdateSerializer(serializers.Serializer):
    # Free text on purpose: unknown targets are rejected by the lifecycle
    # engine with the same error as disallowed ones.
    order_status = serializers.CharField(max_length=32)
    carrier = serializers.CharField(
        max_length=100, required=False, allow_blank=True, default=""
    )
    tracking_number = serializers.CharField(
        max_length=100, required=False, allow_blank=True, default=""
    )
    note = serializers.CharField(required=False, allow_blank=True, default="")
    version = serializers.IntegerField(min_value=1, required=False)


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    version = serializers.IntegerField(min_value=1, required=False)


class OrderListQuerySerializer(serializers.Serializer):
    """Query-string parameters of order listings.

    ``limit`` has no upper bound here: values above the maximum page size
    are clamped, not rejected.
    """

    page = serializers.IntegerField(min_value=1, required=False, default=1)
    limit = serializers.IntegerField(
        min_value=1, required=False, default=DEFAULT_PAGE_SIZE
    )
    order_status = serializers.ChoiceField(
        choices=OrderStatus.choices, required=False
    )
    date_from = serializers.CharField(required=False)
    date_to = serializers.CharField(required=False)

    def _validate_date_bound(self, value: str) -> str:
        try:
            parse_date_bound(value)
        except ValueError:
            raise serializers.ValidationError(
                "Enter an ISO 8601 date (YYYY-MM-DD) or datetime."
            )
        return value

    def validate_date_from(self, value: str) -> str:
        return self._validate_date_bound(value)

    def validate_date_to(self, value: str) -> str:
        return self._validate_date_bound(value)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    """Read serializer for order items with the checkout price snapshot."""

    price = serializers.DecimalField(
        source="unit_price", max_digits=10, decimal_places=2, read_only=True
    )

    class Meta:
        model = OrderItem
        fields = [
            "product_id",
            "vendor_id",
            "quantity",
            "price",
            "subtotal",
        ]
        read_only_fields = fields


class TrackingEventSerializer(serializers.ModelSerializer):
    """Read serializer for tracking ledger entries."""

    class Meta:
        model = TrackingEvent
        fields = [
            "sequence",
            "status",
            "timestamp",
            "carrier",
            "tracking_number",
            "note",
            "actor_id",
            "actor_role",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Serializer for order listings (items, no tracking ledger)."""

    order_items = OrderItemSerializer(source="items", many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "consumer_id",
            "vendor_id",
            "payment_id",
            "payment_status",
            "order_status",
            "subtotal_amount",
            "order_items",
            "shipping_address",
            "version",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class OrderSerializer(OrderListSerializer):
    """Read serializer for a single order with its tracking ledger."""

    tracking = TrackingEventSerializer(many=True, read_only=True)

    class Meta(OrderListSerializer.Meta):
        fields = OrderListSerializer.Meta.fields + ["tracking"]
        read_only_fields = fields


class OrderPageSerializer(serializers.Serializer):
    page = serializers.IntegerField()
    limit = serializers.IntegerField()
    total = serializers.IntegerField()
    orders = OrderListSerializer(many=True)


class OrderTrackingSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    order_status = serializers.CharField()
    version = serializers.IntegerField()
    tracking = TrackingEventSerializer(many=True)
