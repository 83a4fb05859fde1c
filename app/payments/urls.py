"""
URL configuration for the payments API.

All URLs are prefixed with /api/v1/payments/ in the main URL configuration.
"""

from django.urls import path

from payments.views import ConnectOnboardView, ConnectStatusView, TransactionListView

app_name = "payments"

urlpatterns = [
    path("connect/onboard/", ConnectOnboardView.as_view(), name="connect-onboard"),
    path("connect/status/", ConnectStatusView.as_view(), name="connect-status"),
    path("transactions/", TransactionListView.as_view(), name="transactions"),
]
