"""Order service layer (Use Cases).

Orchestrates order placement and the order lifecycle.  All write
operations are atomic; the service defines the unit-of-work boundary.

Every use case follows the same shape:

1. Load the order (``OrderNotFound`` when missing).
2. Ask ``OrderAccessPolicy`` whether the principal may act on it.
3. Ask ``OrderLifecycle`` for the tracking entry to append.
4. Append through the repository's compare-and-swap on ``version``.
5. Record a domain event; the repository flushes it to the outbox.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Tuple

import structlog
from django.db import IntegrityError, transaction

from modules.orders.events import OrderCancelled, OrderPlaced, OrderStatusChanged
from modules.orders.exceptions import InvalidOrderData, OrderNotFound, StaleOrderVersion
from modules.orders.lifecycle import OrderLifecycle
from modules.orders.policies import OrderOperation, order_access_policy

if TYPE_CHECKING:
    from modules.core.authentication import Principal
    from modules.orders.dtos import CancelOrderDTO, CreateOrderDTO, StatusUpdateDTO
    from modules.orders.models import Order, TrackingEvent
    from modules.orders.policies import OrderAccessPolicy
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderService:
    """Application service for Order use-cases.

    Receives its collaborators via constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        access_policy: Optional[OrderAccessPolicy] = None,
        lifecycle: Optional[OrderLifecycle] = None,
    ) -> None:
        self._order_repo = order_repository
        self._policy = access_policy or order_access_policy
        self._lifecycle = lifecycle or OrderLifecycle.from_settings()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_order(
        self, principal: Principal, dto: CreateOrderDTO
    ) -> Tuple[Order, bool]:
        """Place a new order for a consumer.

        Consumers order for themselves; admins must name the consumer
        they order for.  Returns ``(order, created)``; ``created`` is
        ``False`` when the idempotency key was already used by the same
        consumer, in which case the existing order is returned untouched.

        Raises:
            OrderAccessDenied: vendors, or a consumer ordering for someone else.
            InvalidOrderData: an admin did not name the consumer.
        """
        self._policy.check(
            OrderOperation.CREATE, principal, target_consumer_id=dto.consumer_id
        )
        consumer_id = dto.consumer_id or (principal.id if principal.is_consumer else None)
        if consumer_id is None:
            raise InvalidOrderData("consumer_id is required when ordering on behalf of a consumer.")

        log = logger.bind(consumer_id=consumer_id, vendor_id=dto.resolved_vendor_id)
        log.info("order.creation_started")

        existing = self._replay(consumer_id, dto.idempotency_key)
        if existing:
            return existing, False

        data = {
            "consumer_id": consumer_id,
            "vendor_id": dto.resolved_vendor_id,
            "payment_id": dto.payment_id,
            "payment_status": dto.payment_status,
            "items": [
                {
                    "product_id": item.product_id,
                    "vendor_id": item.vendor_id,
                    "quantity": item.quantity,
                    "unit_price": item.price,
                }
                for item in dto.items
            ],
            "shipping_address": dto.shipping_address.as_document(),
            "idempotency_key": dto.idempotency_key,
            "actor_id": principal.id,
            "actor_role": principal.role,
        }
        try:
            # Savepoint: a concurrent request with the same key may commit first.
            with transaction.atomic():
                order = self._order_repo.create(data)
        except IntegrityError:
            existing = self._replay(consumer_id, dto.idempotency_key)
            if existing is None:
                raise
            return existing, False

        order.add_domain_event(
            OrderPlaced(
                aggregate_id=order.id,
                consumer_id=order.consumer_id,
                vendor_id=order.vendor_id,
                payment_id=order.payment_id,
                subtotal_amount=str(order.subtotal_amount),
            )
        )
        self._order_repo.save(order)

        log.info(
            "order.created",
            order_id=str(order.id),
            subtotal_amount=str(order.subtotal_amount),
        )
        return self._order_repo.get_by_id(str(order.id)) or order, True

    @transaction.atomic
    def update_status(
        self, principal: Principal, order_id: str, dto: StatusUpdateDTO
    ) -> Order:
        """Move an order forward in its lifecycle.

        The target status is checked against the allow-list before the
        order is even loaded.  The order row is then locked
        (``SELECT FOR UPDATE``) and the append is a compare-and-swap on the
        version that was read.

        Raises:
            InvalidOrderStatus: target outside the allow-list.
            OrderNotFound: order does not exist.
            OrderAccessDenied: not the owning vendor (or an admin).
            StaleOrderVersion: ``expected_version`` no longer current.
            IllegalStatusTransition: strict policy rejects the pair.
        """
        self._lifecycle.validate_target(dto.order_status)

        order = self._load_for_update(order_id)
        self._policy.check(OrderOperation.UPDATE_STATUS, principal, order)
        self._check_version(order, dto.expected_version)

        log = logger.bind(
            order_id=str(order.id),
            current_status=order.order_status,
            new_status=dto.order_status,
        )

        old_status = order.order_status
        read_version = order.version
        entry = self._lifecycle.transition(
            order,
            dto.order_status,
            principal,
            carrier=dto.carrier,
            tracking_number=dto.tracking_number,
            note=dto.note,
        )
        self._order_repo.append_tracking(order, entry, read_version)

        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.id,
                old_status=old_status,
                new_status=entry.status,
                version=order.version,
            )
        )
        self._order_repo.save(order)

        log.info("order.status_updated", version=order.version)
        return self._reload(order)

    @transaction.atomic
    def cancel_order(
        self, principal: Principal, order_id: str, dto: CancelOrderDTO
    ) -> Order:
        """Cancel an order that has not shipped yet.

        Raises:
            OrderNotFound: order does not exist.
            OrderAccessDenied: not the owning consumer (or an admin).
            StaleOrderVersion: ``expected_version`` no longer current.
            OrderNotCancellable: already shipped, delivered or cancelled.
        """
        order = self._load_for_update(order_id)
        self._policy.check(OrderOperation.CANCEL, principal, order)
        self._check_version(order, dto.expected_version)

        log = logger.bind(order_id=str(order.id), current_status=order.order_status)

        old_status = order.order_status
        read_version = order.version
        entry = self._lifecycle.cancel(order, principal, dto.reason)
        self._order_repo.append_tracking(order, entry, read_version)

        order.add_domain_event(
            OrderCancelled(
                aggregate_id=order.id,
                old_status=old_status,
                reason=entry.note,
                version=order.version,
            )
        )
        self._order_repo.save(order)

        log.info("order.cancelled", version=order.version)
        return self._reload(order)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, principal: Principal, order_id: str) -> Order:
        """Retrieve a single order the principal may see.

        Raises:
            OrderNotFound: if the order does not exist.
            OrderAccessDenied: the order belongs to someone else.
        """
        order = self._load(order_id)
        self._policy.check(OrderOperation.READ, principal, order)
        return order

    def get_tracking(
        self, principal: Principal, order_id: str
    ) -> Tuple[Order, List[TrackingEvent]]:
        """Return the order and its tracking ledger, oldest event first."""
        order = self._load(order_id)
        self._policy.check(OrderOperation.READ_TRACKING, principal, order)
        return order, list(order.tracking.all())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, order_id: str) -> Order:
        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound()
        return order

    def _load_for_update(self, order_id: str) -> Order:
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound()
        return order

    def _replay(self, consumer_id: str, key: Optional[str]) -> Optional[Order]:
        """The order already placed by *consumer_id* under *key*, if any."""
        if not key:
            return None
        existing = self._order_repo.get_by_idempotency_key(consumer_id, key)
        if existing:
            logger.info("order.idempotency_hit", order_id=str(existing.id), key=key)
        return existing

    def _reload(self, order: Order) -> Order:
        return self._order_repo.get_by_id(str(order.id)) or order

    @staticmethod
    def _check_version(order: Order, expected_version: Optional[int]) -> None:
        if expected_version is not None and expected_version != order.version:
            logger.warning(
                "order.version_mismatch",
                order_id=str(order.id),
                expected_version=expected_version,
                current_version=order.version,
            )
            raise StaleOrderVersion()
