"""Order domain exceptions.

Raised by the model, lifecycle engine, access policy and service layer.
Each one extends a family from ``shared.domain.exceptions``; the API
exception handler translates the family into an HTTP status.
"""

from __future__ import annotations

from shared.domain.exceptions import (
    AuthorizationError,
    BusinessRuleViolation,
    ConflictError,
    NotFoundError,
    ValidationError,
)


class InvalidOrderData(ValidationError):
    """The order payload is malformed or incomplete."""

    code = "invalid_order"


class InvalidOrderStatus(ValidationError):
    """Invalid status transition"""

    code = "invalid_status"


class OrderNotFound(NotFoundError):
    """Order not found"""

    code = "order_not_found"


class OrderAccessDenied(AuthorizationError):
    """You do not have permission to perform this action on this order."""

    code = "order_access_denied"


class OrderNotCancellable(BusinessRuleViolation):
    """Order cannot be cancelled at this stage"""

    code = "order_not_cancellable"


class IllegalStatusTransition(BusinessRuleViolation):
    """The order cannot move from its current status to the requested one."""

    code = "illegal_transition"


class ImmutableOrderField(BusinessRuleViolation):
    """Placed orders are write-once except for their tracking ledger."""

    code = "immutable_order"


class StaleOrderVersion(ConflictError):
    """The order was modified by another request; reload and retry."""

    code = "stale_order_version"
