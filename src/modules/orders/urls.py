"""Order routes.

    /orders/                          list, create
    /orders/{id}/                     retrieve, partial_update (status)
    /orders/{id}/cancel/
    /orders/{id}/exchange/            request, then approve/ reject/ complete/
    /orders/{id}/cod/confirm/
    /orders/status-flow/
    /orders/stats/                    admin dashboard figures
"""

from __future__ import annotations

from rest_framework.routers import DefaultRouter

from modules.orders.views import OrderViewSet

router = DefaultRouter(trailing_slash=True)
router.register("orders", OrderViewSet, basename="order")

urlpatterns = router.urls
