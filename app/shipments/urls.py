"""
URL configuration for the shipments API.

All URLs are prefixed with /api/v1/shipments/ in the main URL configuration.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from shipments.views import (
    ListingViewSet,
    OpenDisputeListView,
    ShipmentRequestViewSet,
    UserReviewListView,
)

router = DefaultRouter()
router.register(r"listings", ListingViewSet, basename="listing")
router.register(r"requests", ShipmentRequestViewSet, basename="shipment-request")

app_name = "shipments"

urlpatterns = [
    path("disputes/", OpenDisputeListView.as_view(), name="open-disputes"),
    path("users/<int:user_id>/reviews/", UserReviewListView.as_view(), name="user-reviews"),
    path("", include(router.urls)),
]
