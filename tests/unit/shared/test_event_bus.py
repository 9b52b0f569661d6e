"""Unit tests for the in-memory event bus and the order event handlers."""

from __future__ import annotations

import logging
from uuid import uuid4

import pytest

from modules.orders.events import OrderCancelled, OrderPlaced, OrderStatusChanged
from modules.orders.handlers import (
    OrderCancelledHandler,
    OrderPlacedHandler,
    OrderStatusChangedHandler,
)
from shared.infrastructure.bus import InMemoryEventBus, event_bus

pytestmark = pytest.mark.unit


class _Recorder:
    def __init__(self):
        self.seen = []

    def handle(self, event):
        self.seen.append(event)


def test_publish_reaches_subscribed_handlers_only():
    bus = InMemoryEventBus()
    placed, cancelled = _Recorder(), _Recorder()
    bus.subscribe(OrderPlaced, placed)
    bus.subscribe(OrderCancelled, cancelled)

    event = OrderPlaced(aggregate_id=uuid4())
    assert bus.publish(event) == 1

    assert placed.seen == [event]
    assert cancelled.seen == []


def test_subscribe_is_idempotent():
    bus = InMemoryEventBus()
    recorder = _Recorder()
    bus.subscribe(OrderPlaced, recorder)
    bus.subscribe(OrderPlaced, recorder)

    assert bus.publish(OrderPlaced(aggregate_id=uuid4())) == 1


def test_publish_all_counts_deliveries():
    bus = InMemoryEventBus()
    bus.subscribe(OrderPlaced, _Recorder())
    events = [OrderPlaced(aggregate_id=uuid4()), OrderStatusChanged(aggregate_id=uuid4())]
    assert bus.publish_all(events) == 1


def test_handler_errors_propagate():
    class Broken:
        def handle(self, event):
            raise RuntimeError("boom")

    bus = InMemoryEventBus()
    bus.subscribe(OrderPlaced, Broken())
    with pytest.raises(RuntimeError):
        bus.publish(OrderPlaced(aggregate_id=uuid4()))


def test_order_handlers_subscribed_on_startup():
    assert event_bus.publish(OrderPlaced(aggregate_id=uuid4())) >= 1
    assert event_bus.publish(OrderStatusChanged(aggregate_id=uuid4())) >= 1
    assert event_bus.publish(OrderCancelled(aggregate_id=uuid4())) >= 1


@pytest.mark.parametrize(
    "handler, event, expected",
    [
        (OrderPlacedHandler(), OrderPlaced(aggregate_id=uuid4()), "order.event.placed"),
        (
            OrderStatusChangedHandler(),
            OrderStatusChanged(aggregate_id=uuid4(), old_status="pending", new_status="shipped"),
            "order.event.status_changed",
        ),
        (OrderCancelledHandler(), OrderCancelled(aggregate_id=uuid4()), "order.event.cancelled"),
    ],
)
def test_handlers_log(caplog, handler, event, expected):
    with caplog.at_level(logging.INFO, logger="modules.orders.handlers"):
        handler.handle(event)

    assert any(expected in record.getMessage() for record in caplog.records)
