"""Unit tests for OrderService.

Covers:
- Order placement (consumer for self, admin on behalf, vendor refused).
- Idempotent placement.
- Status updates: allow-list, ownership, version check, ledger append.
- Cancellation: ownership, stage guard, default note.
- Reads: ownership isolation (403, not 404) and tracking order.
- Collaborator wiring with a mocked repository.
"""

from __future__ import annotations

from decimal import Decimal
from unittest import mock
from uuid import uuid4

import pytest
from django.db import IntegrityError

from modules.core.authentication import Principal, Role
from modules.orders.constants import DEFAULT_CANCELLATION_NOTE, OrderStatus
from modules.orders.dtos import CancelOrderDTO, StatusUpdateDTO
from modules.orders.events import OrderPlaced
from modules.orders.exceptions import (
    InvalidOrderData,
    InvalidOrderStatus,
    OrderAccessDenied,
    OrderNotCancellable,
    OrderNotFound,
    StaleOrderVersion,
)
from modules.orders.lifecycle import OrderLifecycle
from modules.orders.models import Order, TrackingEvent
from modules.orders.services import OrderService
from tests.conftest import CONSUMER_ID, VENDOR_ID, make_create_dto

pytestmark = pytest.mark.unit


def _status(value: str, **kwargs) -> StatusUpdateDTO:
    return StatusUpdateDTO(order_status=value, **kwargs)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


class TestCreateOrder:
    def test_consumer_places_order(self, order_service, consumer):
        order, created = order_service.create_order(consumer, make_create_dto())

        assert created is True
        assert order.consumer_id == CONSUMER_ID
        assert order.vendor_id == VENDOR_ID
        assert order.order_status == OrderStatus.PENDING
        assert order.subtotal_amount == Decimal("45.50")
        assert order.version == 1
        assert [item.product_id for item in order.items.all()] == ["sku-a", "sku-b"]
        assert order.shipping_address["country"] == "US"

    def test_initial_tracking_event_records_actor(self, order_service, consumer):
        order, _ = order_service.create_order(consumer, make_create_dto())
        (event,) = order.tracking.all()
        assert event.status == OrderStatus.PENDING
        assert event.actor_id == CONSUMER_ID
        assert event.actor_role == Role.CONSUMER

    def test_consumer_cannot_order_for_someone_else(self, order_service, consumer):
        with pytest.raises(OrderAccessDenied):
            order_service.create_order(consumer, make_create_dto(consumer_id="consumer-2"))
        assert Order.objects.count() == 0

    def test_vendor_cannot_place_orders(self, order_service, vendor):
        with pytest.raises(OrderAccessDenied):
            order_service.create_order(vendor, make_create_dto())

    def test_admin_orders_on_behalf_of_consumer(self, order_service, admin):
        order, _ = order_service.create_order(admin, make_create_dto(consumer_id="consumer-9"))
        assert order.consumer_id == "consumer-9"

    def test_admin_must_name_consumer(self, order_service, admin):
        with pytest.raises(InvalidOrderData):
            order_service.create_order(admin, make_create_dto())

    def test_idempotency_key_returns_existing_order(self, order_service, consumer):
        first, created_first = order_service.create_order(
            consumer, make_create_dto(idempotency_key="key-1")
        )
        second, created_second = order_service.create_order(
            consumer, make_create_dto(idempotency_key="key-1", payment_id="pay_other")
        )

        assert created_first is True
        assert created_second is False
        assert second.id == first.id
        assert second.payment_id == "pay_123"
        assert Order.objects.count() == 1

    def test_idempotency_key_is_per_consumer(self, order_service, consumer, other_consumer):
        first, _ = order_service.create_order(consumer, make_create_dto(idempotency_key="k"))
        second, created = order_service.create_order(
            other_consumer, make_create_dto(idempotency_key="k")
        )
        assert created is True
        assert second.id != first.id

    def test_concurrent_duplicate_key_returns_committed_order(self, order_service, consumer):
        first, _ = order_service.create_order(consumer, make_create_dto(idempotency_key="race"))
        repo = order_service._order_repo
        # The lookup misses as it would for a request racing the first one.
        with mock.patch.object(
            repo,
            "get_by_idempotency_key",
            side_effect=[None, repo.get_by_idempotency_key(CONSUMER_ID, "race")],
        ):
            second, created = order_service.create_order(
                consumer, make_create_dto(idempotency_key="race")
            )

        assert created is False
        assert second.id == first.id
        assert Order.objects.count() == 1
        assert TrackingEvent.objects.filter(order=first).count() == 1

    def test_integrity_error_without_key_propagates(self, consumer):
        repo = mock.Mock()
        repo.create.side_effect = IntegrityError("duplicate")
        service = OrderService(order_repository=repo, lifecycle=OrderLifecycle())

        with pytest.raises(IntegrityError):
            service.create_order(consumer, make_create_dto())
        repo.save.assert_not_called()


# ---------------------------------------------------------------------------
# Status updates
# ---------------------------------------------------------------------------


class TestUpdateStatus:
    def test_vendor_moves_order_forward(self, order_service, order, vendor):
        updated = order_service.update_status(
            vendor, str(order.id), _status("shipped", carrier="DHL", tracking_number="JD01")
        )

        assert updated.order_status == OrderStatus.SHIPPED
        assert updated.version == 2
        events = list(updated.tracking.all())
        assert [e.status for e in events] == [OrderStatus.PENDING, OrderStatus.SHIPPED]
        assert events[-1].carrier == "DHL"
        assert events[-1].tracking_number == "JD01"
        assert events[-1].actor_id == VENDOR_ID

    def test_version_equals_ledger_length(self, order_service, order, vendor):
        for target in ("processing", "shipped", "out_for_delivery", "delivered"):
            order = order_service.update_status(vendor, str(order.id), _status(target))
            assert order.version == order.tracking.count()
            assert order.order_status == order.latest_tracking_event.status

    def test_invalid_status_rejected_before_lookup(self, order_service, vendor):
        with pytest.raises(InvalidOrderStatus):
            order_service.update_status(vendor, str(uuid4()), _status("cancelled"))

    def test_missing_order(self, order_service, vendor):
        with pytest.raises(OrderNotFound):
            order_service.update_status(vendor, str(uuid4()), _status("shipped"))

    def test_malformed_id_is_not_found(self, order_service, vendor):
        with pytest.raises(OrderNotFound):
            order_service.update_status(vendor, "not-a-uuid", _status("shipped"))

    def test_other_vendor_refused(self, order_service, order, other_vendor):
        with pytest.raises(OrderAccessDenied):
            order_service.update_status(other_vendor, str(order.id), _status("shipped"))
        assert TrackingEvent.objects.filter(order=order).count() == 1

    def test_consumer_refused(self, order_service, order, consumer):
        with pytest.raises(OrderAccessDenied):
            order_service.update_status(consumer, str(order.id), _status("shipped"))

    def test_admin_allowed(self, order_service, order, admin):
        updated = order_service.update_status(admin, str(order.id), _status("processing"))
        assert updated.order_status == OrderStatus.PROCESSING

    def test_stale_expected_version(self, order_service, order, vendor):
        order_service.update_status(vendor, str(order.id), _status("processing"))
        with pytest.raises(StaleOrderVersion):
            order_service.update_status(
                vendor, str(order.id), _status("shipped", expected_version=1)
            )
        order.refresh_from_db()
        assert order.order_status == OrderStatus.PROCESSING
        assert order.version == 2

    def test_current_expected_version(self, order_service, order, vendor):
        updated = order_service.update_status(
            vendor, str(order.id), _status("processing", expected_version=1)
        )
        assert updated.version == 2

    def test_status_changed_event_written_to_outbox(self, order_service, order, vendor):
        from modules.core.models import OutboxEvent

        order_service.update_status(vendor, str(order.id), _status("processing"))
        row = OutboxEvent.objects.get(event_type="OrderStatusChanged")
        assert row.aggregate_id == str(order.id)
        assert row.payload["old_status"] == "pending"
        assert row.payload["new_status"] == "processing"
        assert row.payload["version"] == 2


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancelOrder:
    def test_consumer_cancels_pending_order(self, order_service, order, consumer):
        cancelled = order_service.cancel_order(consumer, str(order.id), CancelOrderDTO())

        assert cancelled.order_status == OrderStatus.CANCELLED
        assert cancelled.latest_tracking_event.note == DEFAULT_CANCELLATION_NOTE
        assert cancelled.version == 2

    def test_reason_recorded(self, order_service, order, consumer):
        cancelled = order_service.cancel_order(
            consumer, str(order.id), CancelOrderDTO(reason="Found a better price")
        )
        assert cancelled.latest_tracking_event.note == "Found a better price"

    @pytest.mark.parametrize("stage", ["shipped", "out_for_delivery", "delivered"])
    def test_refused_after_shipping(self, order_service, order, consumer, vendor, stage):
        order_service.update_status(vendor, str(order.id), _status(stage))
        ledger_before = list(TrackingEvent.objects.filter(order=order).values_list("id", "status"))

        with pytest.raises(OrderNotCancellable):
            order_service.cancel_order(consumer, str(order.id), CancelOrderDTO())

        order.refresh_from_db()
        assert order.order_status == stage
        ledger_after = list(TrackingEvent.objects.filter(order=order).values_list("id", "status"))
        assert ledger_after == ledger_before
        assert ledger_after[-1][1] == stage
        assert order.version == len(ledger_before)

    def test_refused_when_already_cancelled(self, order_service, order, consumer):
        order_service.cancel_order(consumer, str(order.id), CancelOrderDTO())
        with pytest.raises(OrderNotCancellable):
            order_service.cancel_order(consumer, str(order.id), CancelOrderDTO())
        assert TrackingEvent.objects.filter(order=order).count() == 2

    def test_vendor_refused(self, order_service, order, vendor):
        with pytest.raises(OrderAccessDenied):
            order_service.cancel_order(vendor, str(order.id), CancelOrderDTO())

    def test_other_consumer_refused(self, order_service, order, other_consumer):
        with pytest.raises(OrderAccessDenied):
            order_service.cancel_order(other_consumer, str(order.id), CancelOrderDTO())

    def test_admin_allowed(self, order_service, order, admin):
        cancelled = order_service.cancel_order(admin, str(order.id), CancelOrderDTO())
        assert cancelled.order_status == OrderStatus.CANCELLED


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestReads:
    def test_owner_reads(self, order_service, order, consumer, vendor):
        assert order_service.get_order(consumer, str(order.id)).id == order.id
        assert order_service.get_order(vendor, str(order.id)).id == order.id

    def test_cross_tenant_read_is_forbidden_not_missing(self, order_service, order, other_consumer):
        with pytest.raises(OrderAccessDenied):
            order_service.get_order(other_consumer, str(order.id))

    def test_missing_order(self, order_service, consumer):
        with pytest.raises(OrderNotFound):
            order_service.get_order(consumer, str(uuid4()))

    def test_tracking_in_append_order(self, order_service, order, vendor, consumer):
        order_service.update_status(vendor, str(order.id), _status("processing"))
        order_service.update_status(vendor, str(order.id), _status("shipped"))

        _, events = order_service.get_tracking(consumer, str(order.id))
        assert [e.sequence for e in events] == [1, 2, 3]
        assert [e.status for e in events] == ["pending", "processing", "shipped"]

    def test_tracking_forbidden_for_rival_vendor(self, order_service, order, other_vendor):
        with pytest.raises(OrderAccessDenied):
            order_service.get_tracking(other_vendor, str(order.id))


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


class TestWiring:
    def test_create_flushes_placed_event_through_repository(self, consumer):
        repo = mock.Mock()
        repo.get_by_idempotency_key.return_value = None
        placed = Order(
            consumer_id=CONSUMER_ID,
            vendor_id=VENDOR_ID,
            payment_id="pay_123",
            subtotal_amount=Decimal("45.50"),
        )
        repo.create.return_value = placed
        repo.get_by_id.return_value = placed

        service = OrderService(order_repository=repo, lifecycle=OrderLifecycle())
        order, created = service.create_order(consumer, make_create_dto())

        assert created is True
        assert order is placed
        data = repo.create.call_args.args[0]
        assert data["consumer_id"] == CONSUMER_ID
        assert data["vendor_id"] == VENDOR_ID
        assert [item["unit_price"] for item in data["items"]] == [
            Decimal("10.00"),
            Decimal("25.50"),
        ]
        repo.save.assert_called_once_with(placed)
        (event,) = placed.domain_events
        assert isinstance(event, OrderPlaced)
        assert event.subtotal_amount == "45.50"

    def test_update_appends_with_version_it_read(self, vendor):
        current = Order(consumer_id=CONSUMER_ID, vendor_id=VENDOR_ID, version=4)
        repo = mock.Mock()
        repo.get_for_update.return_value = current
        repo.get_by_id.return_value = current

        service = OrderService(order_repository=repo, lifecycle=OrderLifecycle())
        service.update_status(vendor, str(current.id), _status("shipped"))

        entry, expected = repo.append_tracking.call_args.args[1:]
        assert entry.status == "shipped"
        assert expected == 4

    def test_lifecycle_follows_settings(self, settings):
        settings.ORDER_TRANSITION_POLICY = "strict"
        service = OrderService(order_repository=mock.Mock())
        assert service._lifecycle.is_strict

    def test_principal_of_unknown_role_cannot_read(self, order_service, order):
        with pytest.raises(OrderAccessDenied):
            order_service.get_order(Principal.of("x", "guest"), str(order.id))
