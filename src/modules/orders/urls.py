"""Order URL configuration.

Routes (all relative to ``/api/v1/``)::

    orders/                      list, create
    orders/user/<user_id>/       by_user
    orders/<pk>/                 retrieve
    orders/<pk>/status/          update_status (PUT)
    orders/<pk>/cancel/          cancel (POST)
    orders/<pk>/tracking/        tracking
"""

from __future__ import annotations

from rest_framework.routers import DefaultRouter

from modules.orders.views import OrderViewSet

router = DefaultRouter(trailing_slash=True)
router.include_root_view = False
router.register("orders", OrderViewSet, basename="order")

urlpatterns = router.urls
