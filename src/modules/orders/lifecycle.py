"""Order lifecycle engine.

Decides which tracking events may be appended to an order.  It never
touches the database: the service asks it for a ``TrackingEntry`` and hands
that to the repository's atomic append.

Two transition policies are supported (``ORDER_TRANSITION_POLICY``):

* ``permissive`` (default): a status update is valid when the target is
  in ``UPDATABLE_STATUSES``; jumps such as ``pending -> delivered`` are
  accepted.
* ``strict``: the target must also be reachable from the current status
  in ``VALID_TRANSITIONS``.

Cancellation follows the same rule under both policies: refused once the
parcel has shipped, and refused for an order that is already cancelled.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import structlog
from django.conf import settings

from modules.orders.constants import (
    DEFAULT_CANCELLATION_NOTE,
    UPDATABLE_STATUSES,
    OrderStatus,
    TransitionPolicy,
)
from modules.orders.exceptions import (
    IllegalStatusTransition,
    InvalidOrderStatus,
    OrderNotCancellable,
)

if TYPE_CHECKING:
    from modules.core.authentication import Principal
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TrackingEntry:
    """A tracking event the engine approved, ready to be appended."""

    status: str
    note: str = ""
    carrier: str = ""
    tracking_number: str = ""
    actor_id: str = ""
    actor_role: str = ""


class OrderLifecycle:
    """Validates status transitions and applies the cancellation policy."""

    def __init__(self, policy: str = TransitionPolicy.PERMISSIVE) -> None:
        if policy not in TransitionPolicy.values:
            raise ValueError(f"Unknown order transition policy: {policy!r}")
        self.policy = TransitionPolicy(policy)

    @classmethod
    def from_settings(cls) -> OrderLifecycle:
        return cls(getattr(settings, "ORDER_TRANSITION_POLICY", TransitionPolicy.PERMISSIVE))

    @property
    def is_strict(self) -> bool:
        return self.policy == TransitionPolicy.STRICT

    # ------------------------------------------------------------------
    # Status updates
    # ------------------------------------------------------------------

    def transition(
        self,
        order: Order,
        new_status: str,
        actor: Optional[Principal] = None,
        *,
        carrier: str = "",
        tracking_number: str = "",
        note: str = "",
    ) -> TrackingEntry:
        """Approve moving *order* to *new_status*.

        Raises:
            InvalidOrderStatus: target outside the allow-list.
            IllegalStatusTransition: strict policy and the pair is not in
                the transition table.
        """
        log = logger.bind(
            order_id=str(order.id),
            current_status=order.order_status,
            new_status=new_status,
            policy=self.policy.value,
        )
        self.validate_target(new_status)

        if self.is_strict and not order.can_transition_to(new_status):
            log.warning("order.illegal_transition")
            raise IllegalStatusTransition(
                f"Cannot transition from {order.order_status} to {new_status}."
            )

        return TrackingEntry(
            status=new_status,
            note=note,
            carrier=carrier,
            tracking_number=tracking_number,
            **_actor_fields(actor),
        )

    @staticmethod
    def validate_target(new_status: str) -> None:
        """Raise ``InvalidOrderStatus`` unless *new_status* is settable."""
        if new_status not in UPDATABLE_STATUSES:
            logger.warning("order.invalid_status", new_status=new_status)
            raise InvalidOrderStatus()

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(
        self,
        order: Order,
        actor: Optional[Principal] = None,
        reason: Optional[str] = None,
    ) -> TrackingEntry:
        """Approve cancelling *order*.

        Raises:
            OrderNotCancellable: the order shipped already, or was cancelled.
        """
        if not self.can_cancel(order):
            logger.warning(
                "order.cancel_refused",
                order_id=str(order.id),
                current_status=order.order_status,
            )
            raise OrderNotCancellable()

        return TrackingEntry(
            status=OrderStatus.CANCELLED,
            note=reason or DEFAULT_CANCELLATION_NOTE,
            **_actor_fields(actor),
        )

    @staticmethod
    def can_cancel(order: Order) -> bool:
        return order.is_cancellable and order.order_status != OrderStatus.CANCELLED


def _actor_fields(actor: Optional[Principal]) -> dict[str, str]:
    if actor is None:
        return {"actor_id": "", "actor_role": ""}
    return {"actor_id": actor.id, "actor_role": actor.role}
