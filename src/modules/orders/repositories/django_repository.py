"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.
Order creation (order + items + first tracking event) runs in a single
``transaction.atomic()`` block.

The tracking append is a compare-and-swap on ``Order.version``:
``UPDATE orders SET order_status, version = version + 1 WHERE version = N``
followed by the insert of event ``N + 1`` in the same transaction.  A
concurrent writer that already moved the version makes the UPDATE match
zero rows, and the append is rejected with ``StaleOrderVersion``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F, QuerySet
from django.utils import timezone

from modules.core.models import OutboxEvent
from modules.orders.constants import OUTBOX_TOPIC, OrderStatus, PaymentStatus
from modules.orders.exceptions import StaleOrderVersion
from modules.orders.lifecycle import TrackingEntry
from modules.orders.models import Order, OrderItem, TrackingEvent
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items and initial tracking event."""
        items = data["items"]
        order = Order(
            consumer_id=data["consumer_id"],
            vendor_id=data["vendor_id"],
            payment_id=data["payment_id"],
            payment_status=data.get("payment_status", PaymentStatus.SUCCEEDED),
            order_status=OrderStatus.PENDING,
            subtotal_amount=Order.compute_subtotal(
                (item["quantity"], item["unit_price"]) for item in items
            ),
            shipping_address=data["shipping_address"],
            idempotency_key=data.get("idempotency_key"),
            version=1,
        )
        order.save()

        for position, item_data in enumerate(items):
            OrderItem(
                order=order,
                position=position,
                product_id=item_data["product_id"],
                vendor_id=item_data.get("vendor_id") or "",
                quantity=item_data["quantity"],
                unit_price=item_data["unit_price"],
            ).save()

        TrackingEvent(
            order=order,
            sequence=1,
            status=OrderStatus.PENDING,
            timestamp=order.created_at,
            actor_id=data.get("actor_id", ""),
            actor_role=data.get("actor_role", ""),
        ).save()

        logger.info(
            "order.persisted",
            order_id=str(order.id),
            item_count=len(items),
            subtotal_amount=str(order.subtotal_amount),
        )
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with eager-loaded items and tracking.

        Returns ``None`` for non-existent or malformed IDs.
        """
        try:
            return (
                Order.objects.prefetch_related("items", "tracking")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order with a row-level lock (SELECT FOR UPDATE).

        Must run inside a transaction.  Returns ``None`` for non-existent
        or malformed IDs.
        """
        try:
            return (
                Order.objects.select_for_update()
                .prefetch_related("items", "tracking")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet[Order]:
        """Orders matching exact-match *filters*, newest first.

        Supported filter keys are any ``Order`` lookups, typically
        ``consumer_id``, ``vendor_id`` and ``order_status``.
        """
        queryset = Order.objects.prefetch_related("items").order_by("-created_at", "-id")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def get_by_idempotency_key(self, consumer_id: str, key: str) -> Optional[Order]:
        return (
            Order.objects.prefetch_related("items", "tracking")
            .filter(consumer_id=consumer_id, idempotency_key=key)
            .first()
        )

    # ------------------------------------------------------------------
    # Tracking ledger
    # ------------------------------------------------------------------

    @transaction.atomic
    def append_tracking(
        self, order: Order, entry: TrackingEntry, expected_version: int
    ) -> TrackingEvent:
        """Append *entry* to the ledger and move the denormalized status."""
        now = timezone.now()
        updated = Order.objects.filter(pk=order.pk, version=expected_version).update(
            order_status=entry.status,
            version=F("version") + 1,
            updated_at=now,
        )
        if updated != 1:
            logger.warning(
                "order.stale_version",
                order_id=str(order.pk),
                expected_version=expected_version,
            )
            raise StaleOrderVersion()

        event = TrackingEvent(
            order_id=order.pk,
            sequence=expected_version + 1,
            status=entry.status,
            timestamp=now,
            carrier=entry.carrier,
            tracking_number=entry.tracking_number,
            note=entry.note,
            actor_id=entry.actor_id,
            actor_role=entry.actor_role,
        )
        event.save()

        # Keep the in-memory aggregate in step with the row.
        order.order_status = entry.status
        order.version = expected_version + 1
        order.updated_at = now
        prefetched = getattr(order, "_prefetched_objects_cache", None)
        if prefetched is not None:
            prefetched.pop("tracking", None)

        logger.info(
            "order.tracking_appended",
            order_id=str(order.pk),
            status=entry.status,
            sequence=event.sequence,
        )
        return event

    # ------------------------------------------------------------------
    # Save (IRepository contract)
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist a new order and flush its domain events to the outbox.

        Placed orders are write-once, so an existing order is not re-saved;
        only its pending events are written.
        """
        if entity._state.adding:
            entity.save()

        events = entity.domain_events
        OutboxEvent.objects.record(events, OUTBOX_TOPIC)
        entity.clear_domain_events()

        logger.info("order.saved", order_id=str(entity.id), event_count=len(events))
        return entity
