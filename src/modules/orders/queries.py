"""Order query service.

Read side of the orders module: paginated listings scoped by the caller's
role.  The scope from ``OrderAccessPolicy.scope_filters`` is AND-ed with
the caller's filters, so a vendor can never widen a listing past their
own sales by passing query parameters.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import structlog

from modules.orders.dtos import OrderPage
from modules.orders.filters import OrderFilter
from modules.orders.policies import OrderOperation, order_access_policy

if TYPE_CHECKING:
    from modules.core.authentication import Principal
    from modules.orders.dtos import OrderListParams
    from modules.orders.policies import OrderAccessPolicy
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderQueryService:
    def __init__(
        self,
        order_repository: IOrderRepository,
        access_policy: Optional[OrderAccessPolicy] = None,
    ) -> None:
        self._order_repo = order_repository
        self._policy = access_policy or order_access_policy

    def list_orders(self, principal: Principal, params: OrderListParams) -> OrderPage:
        """Orders visible to *principal*, newest first."""
        self._policy.check(OrderOperation.LIST, principal)
        return self._paginate(self._policy.scope_filters(principal), params)

    def list_orders_for_consumer(
        self, principal: Principal, consumer_id: str, params: OrderListParams
    ) -> OrderPage:
        """Orders placed by *consumer_id*; the consumer themself or an admin."""
        self._policy.check(
            OrderOperation.LIST_BY_CONSUMER, principal, target_consumer_id=consumer_id
        )
        return self._paginate({"consumer_id": str(consumer_id)}, params)

    def _paginate(self, scope: dict, params: OrderListParams) -> OrderPage:
        queryset = self._order_repo.list(scope)
        queryset = OrderFilter(params.filter_data(), queryset=queryset).qs

        total = queryset.count()
        orders = list(queryset[params.offset : params.offset + params.limit])

        logger.debug(
            "order.listed",
            scope=sorted(scope),
            page=params.page,
            limit=params.limit,
            total=total,
        )
        return OrderPage(page=params.page, limit=params.limit, total=total, orders=orders)
