"""Order access policy.

One place decides who may do what with an order, parameterized by
``(operation, principal, order | target)``.  Admins short-circuit to
allowed; everyone else must own the order in the role they act in.

| Operation        | consumer                 | vendor                 |
|------------------|--------------------------|------------------------|
| CREATE           | places for themselves    | denied                 |
| READ / TRACKING  | ``order.consumer_id``    | ``order.vendor_id``    |
| LIST             | scoped to own purchases  | scoped to own sales    |
| LIST_BY_CONSUMER | only their own id        | only their own id      |
| UPDATE_STATUS    | denied                   | ``order.vendor_id``    |
| CANCEL           | ``order.consumer_id``    | denied                 |

Denials raise ``OrderAccessDenied`` (HTTP 403).  The check runs only after
the order was found, so cross-tenant lookups see 403, not 404.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Any, Dict, Optional

import structlog

from modules.core.authentication import Principal, Role
from modules.orders.exceptions import OrderAccessDenied

if TYPE_CHECKING:
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)


class OrderOperation(str, enum.Enum):
    CREATE = "create"
    READ = "read"
    LIST = "list"
    LIST_BY_CONSUMER = "list_by_consumer"
    UPDATE_STATUS = "update_status"
    CANCEL = "cancel"
    READ_TRACKING = "read_tracking"


_ORDER_SCOPED = {
    OrderOperation.READ,
    OrderOperation.READ_TRACKING,
    OrderOperation.UPDATE_STATUS,
    OrderOperation.CANCEL,
}

# Role allowed to act on an order it owns, per operation.
_OWNER_RULES: Dict[OrderOperation, frozenset[str]] = {
    OrderOperation.READ: frozenset({Role.CONSUMER, Role.VENDOR}),
    OrderOperation.READ_TRACKING: frozenset({Role.CONSUMER, Role.VENDOR}),
    OrderOperation.UPDATE_STATUS: frozenset({Role.VENDOR}),
    OrderOperation.CANCEL: frozenset({Role.CONSUMER}),
}


class OrderAccessPolicy:
    """Authorization guard for order operations."""

    def is_allowed(
        self,
        operation: OrderOperation,
        principal: Principal,
        order: Optional[Order] = None,
        *,
        target_consumer_id: Optional[str] = None,
    ) -> bool:
        if principal.role not in Role.values:
            return False
        if principal.is_admin:
            return True

        if operation is OrderOperation.CREATE:
            return principal.is_consumer and (
                target_consumer_id is None or str(target_consumer_id) == principal.id
            )

        if operation is OrderOperation.LIST:
            return principal.is_consumer or principal.is_vendor

        if operation is OrderOperation.LIST_BY_CONSUMER:
            return str(target_consumer_id) == principal.id

        if operation in _ORDER_SCOPED:
            if order is None:
                raise ValueError(f"{operation.value} requires an order.")
            if principal.role not in _OWNER_RULES[operation]:
                return False
            return self._owns(principal, order)

        return False

    def check(
        self,
        operation: OrderOperation,
        principal: Principal,
        order: Optional[Order] = None,
        *,
        target_consumer_id: Optional[str] = None,
    ) -> None:
        """Raise ``OrderAccessDenied`` unless *principal* may run *operation*."""
        if self.is_allowed(
            operation, principal, order, target_consumer_id=target_consumer_id
        ):
            return
        logger.warning(
            "order.access_denied",
            operation=operation.value,
            principal_id=principal.id,
            role=principal.role,
            order_id=str(order.id) if order is not None else None,
        )
        raise OrderAccessDenied()

    def scope_filters(self, principal: Principal) -> Dict[str, Any]:
        """Implicit filters AND-ed into every listing made by *principal*."""
        if principal.is_admin:
            return {}
        if principal.is_vendor:
            return {"vendor_id": principal.id}
        if principal.is_consumer:
            return {"consumer_id": principal.id}
        raise OrderAccessDenied()

    @staticmethod
    def _owns(principal: Principal, order: Order) -> bool:
        if principal.is_consumer:
            return order.is_owned_by_consumer(principal.id)
        if principal.is_vendor:
            return order.is_owned_by_vendor(principal.id)
        return False


order_access_policy = OrderAccessPolicy()
