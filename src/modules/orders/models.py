"""Order, OrderItem, and TrackingEvent models.

Business rules implemented:
- An order has exactly one vendor and is write-once after placement:
  only ``order_status`` / ``version`` change, and only through the
  tracking ledger append (``OrderDjangoRepository.append_tracking``).
- ``order_status`` is denormalized: it always equals the status of the
  most recent ``TrackingEvent``.
- ``version`` counts tracking events; it is the optimistic-concurrency
  token callers echo back when they mutate an order.
- ``OrderItem`` snapshots the catalog price at checkout (``unit_price``);
  ``subtotal`` is always ``quantity * unit_price`` (calculated on save).
- Nothing here is ever deleted: ``cancelled`` is a tracking state.
- Idempotency via ``idempotency_key`` unique per consumer.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable

import structlog
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel
from modules.orders.constants import (
    MUTABLE_ORDER_FIELDS,
    NON_CANCELLABLE_STATES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    OrderStatus,
    PaymentStatus,
)
from modules.orders.exceptions import ImmutableOrderField
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)


class Order(DomainEventMixin, BaseModel):
    """Order aggregate root.

    ``consumer_id`` / ``vendor_id`` are identifiers owned by the identity
    service, stored verbatim.  ``payment_id`` is the opaque reference the
    payment gateway returned at checkout.
    """

    consumer_id: models.CharField = models.CharField(max_length=64, db_index=True)
    vendor_id: models.CharField = models.CharField(max_length=64, db_index=True)
    payment_id: models.CharField = models.CharField(max_length=255)
    payment_status: models.CharField = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.SUCCEEDED,
    )
    order_status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    subtotal_amount: models.DecimalField = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    shipping_address: models.JSONField = models.JSONField()
    version: models.PositiveIntegerField = models.PositiveIntegerField(default=1)
    idempotency_key: models.CharField = models.CharField(
        max_length=255,
        null=True,
        blank=True,
    )

    class Meta:
        db_table = "orders"
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["order_status"], name="orders_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
            models.Index(
                fields=["vendor_id", "-created_at"], name="orders_vendor_created_idx"
            ),
            models.Index(
                fields=["consumer_id", "-created_at"],
                name="orders_consumer_created_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["consumer_id", "idempotency_key"],
                name="orders_consumer_idempotency_uniq",
            ),
            models.CheckConstraint(
                condition=models.Q(subtotal_amount__gte=0),
                name="orders_subtotal_non_negative",
            ),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` if the order is in a terminal state."""
        return self.order_status in TERMINAL_STATES

    @property
    def is_cancellable(self) -> bool:
        return self.order_status not in NON_CANCELLABLE_STATES

    def can_transition_to(self, new_status: str) -> bool:
        """Check *new_status* against the strict transition table."""
        allowed = VALID_TRANSITIONS.get(self.order_status, frozenset())
        return new_status in allowed

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    def is_owned_by_consumer(self, consumer_id: str) -> bool:
        return self.consumer_id == str(consumer_id)

    def is_owned_by_vendor(self, vendor_id: str) -> bool:
        return self.vendor_id == str(vendor_id)

    # ------------------------------------------------------------------
    # Tracking ledger
    # ------------------------------------------------------------------

    @property
    def latest_tracking_event(self) -> TrackingEvent | None:
        events = list(self.tracking.all())
        if not events:
            return None
        return max(events, key=lambda event: event.sequence)

    @staticmethod
    def compute_subtotal(lines: Iterable[tuple[int, Decimal]]) -> Decimal:
        """Sum ``quantity * price`` over ``(quantity, price)`` pairs."""
        total = Decimal("0.00")
        for quantity, price in lines:
            total += Decimal(quantity) * Decimal(price)
        return total

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            update_fields = kwargs.get("update_fields")
            if update_fields is None or not set(update_fields) <= MUTABLE_ORDER_FIELDS:
                logger.warning(
                    "order.immutable_write_refused",
                    order_id=str(self.id),
                    update_fields=sorted(update_fields) if update_fields else None,
                )
                raise ImmutableOrderField()
        super().save(*args, **kwargs)

    def delete(self, using=None, keep_parents=False):
        raise ImmutableOrderField("Orders are never deleted; cancel them instead.")

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.id} ({self.order_status})"


class OrderItem(BaseModel):
    """Line item of an order.

    ``product_id`` references the external product catalog.
    ``unit_price`` is a **snapshot** of the product price at checkout: it
    never changes even if the catalog price is updated later.
    ``subtotal`` is always ``quantity * unit_price``.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="items",
    )
    position: models.PositiveIntegerField = models.PositiveIntegerField(default=0)
    product_id: models.CharField = models.CharField(max_length=64)
    vendor_id: models.CharField = models.CharField(max_length=64, blank=True, default="")
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    unit_price: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    subtotal: models.DecimalField = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        editable=False,
    )

    class Meta:
        db_table = "order_items"
        ordering = ["position"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(unit_price__gte=0),
                name="order_items_price_non_negative",
            ),
        ]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise ImmutableOrderField()
        self.subtotal = self.quantity * self.unit_price
        super().save(*args, **kwargs)

    def delete(self, using=None, keep_parents=False):
        raise ImmutableOrderField()

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.product_id} x{self.quantity} (${self.subtotal})"


class TrackingEvent(BaseModel):
    """Append-only tracking ledger entry.

    Each record captures one lifecycle state with optional shipping
    metadata and the actor who recorded it.  ``sequence`` is the 1-based
    position in the order's ledger; ``(order, sequence)`` is unique, so
    two writers can never claim the same slot.

    Records are **immutable**: they are never edited or deleted.
    ``actor_id`` is empty when the event was recorded by the system.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="tracking",
    )
    sequence: models.PositiveIntegerField = models.PositiveIntegerField()
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    timestamp: models.DateTimeField = models.DateTimeField(default=timezone.now)
    carrier: models.CharField = models.CharField(max_length=100, blank=True, default="")
    tracking_number: models.CharField = models.CharField(
        max_length=100, blank=True, default=""
    )
    note: models.TextField = models.TextField(blank=True, default="")
    actor_id: models.CharField = models.CharField(max_length=64, blank=True, default="")
    actor_role: models.CharField = models.CharField(
        max_length=20, blank=True, default=""
    )

    class Meta:
        db_table = "order_tracking_events"
        ordering = ["sequence"]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "sequence"],
                name="tracking_order_sequence_uniq",
            ),
        ]

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise ImmutableOrderField("Tracking events cannot be modified.")
        super().save(*args, **kwargs)

    def delete(self, using=None, keep_parents=False):
        raise ImmutableOrderField("Tracking events cannot be deleted.")

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.order_id} #{self.sequence}: {self.status}"
