"""Order repository interface.

Extends ``IRepository[Order]`` with what the Order aggregate needs:
atomic creation with items and the first tracking event, the atomic
tracking append, row locking and idempotency-key look-up.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

from modules.core.repositories.interfaces import IRepository, Queryable

if TYPE_CHECKING:
    from modules.orders.lifecycle import TrackingEntry
    from modules.orders.models import Order, TrackingEvent


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The Order aggregate includes OrderItem children and the TrackingEvent
    ledger.  Mutations must be atomic.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order, its items and its initial ``pending`` event.

        ``data`` must include ``consumer_id``, ``vendor_id``, ``payment_id``,
        ``items`` (list of dicts with ``product_id``, ``quantity``,
        ``unit_price`` and optionally ``vendor_id``) and ``shipping_address``;
        optionally ``payment_status`` and ``idempotency_key``.
        """

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with prefetched items and tracking."""

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order holding a row lock until the transaction ends."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> Queryable[Order]:
        """Orders matching *filters*, newest first."""

    @abstractmethod
    def append_tracking(
        self, order: Order, entry: TrackingEntry, expected_version: int
    ) -> TrackingEvent:
        """Append *entry* if the stored version still is *expected_version*.

        Raises ``StaleOrderVersion`` (nothing written) otherwise.
        """

    @abstractmethod
    def get_by_idempotency_key(self, consumer_id: str, key: str) -> Optional[Order]:
        """Retrieve a consumer's order by its idempotency key."""
