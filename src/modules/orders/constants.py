"""Order domain constants.

Defines status choices, the allow-list of statuses a vendor may set, and
the strict transition table used when ``ORDER_TRANSITION_POLICY=strict``.
"""

from decimal import Decimal

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    SHIPPED = "shipped", "Shipped"
    OUT_FOR_DELIVERY = "out_for_delivery", "Out for delivery"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"


class TransitionPolicy(models.TextChoices):
    PERMISSIVE = "permissive", "Allow-list only"
    STRICT = "strict", "Allow-list and transition table"


# Targets settable through the status-update operation.  Cancellation has
# its own operation and is deliberately absent.
UPDATABLE_STATUSES: frozenset[str] = frozenset(
    {
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
    }
)

# Once the parcel has left the vendor, the order can no longer be cancelled.
NON_CANCELLABLE_STATES: frozenset[str] = frozenset(
    {
        OrderStatus.SHIPPED,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
    }
)

VALID_TRANSITIONS: dict[str, frozenset[str]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset(
        {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED}
    ),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATES: frozenset[str] = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
)

DEFAULT_CANCELLATION_NOTE = "Cancelled by customer"

# Fields an existing Order row may still write; everything else is write-once.
MUTABLE_ORDER_FIELDS: frozenset[str] = frozenset(
    {"order_status", "version", "updated_at"}
)

# Column limits: PositiveIntegerField quantity, DecimalField(12, 2) amounts.
MAX_ITEM_QUANTITY = 2147483647
MAX_ORDER_AMOUNT = Decimal("9999999999.99")
MAX_IDEMPOTENCY_KEY_LENGTH = 255

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

OUTBOX_TOPIC = "orders"
