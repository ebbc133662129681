from django.urls import path

from .views import (
    BulkStatusView,
    OrdersCollectionView,
    OrdersExportView,
    OrdersPingView,
    OrderStatusView,
    SalesAnalyticsView,
)

app_name = "orders"

urlpatterns = [
    path("ping/", OrdersPingView.as_view(), name="ping"),
    path("", OrdersCollectionView.as_view(), name="orders-collection"),
    path("export/", OrdersExportView.as_view(), name="orders-export"),
    path("bulk-status/", BulkStatusView.as_view(), name="orders-bulk-status"),
    path("analytics/", SalesAnalyticsView.as_view(), name="orders-analytics"),
    path("<str:order_id>/status/", OrderStatusView.as_view(), name="orders-status"),
]
