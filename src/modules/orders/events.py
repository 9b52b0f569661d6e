"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderPlaced(DomainEvent):
    """Raised when a consumer places an order."""

    consumer_id: str = ""
    vendor_id: str = ""
    payment_id: str = ""
    subtotal_amount: str = "0.00"


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised when a vendor or admin moves an order forward."""

    old_status: str = ""
    new_status: str = ""
    version: int = 0


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Raised when an order is cancelled."""

    old_status: str = ""
    reason: str = ""
    version: int = 0
