"""
URL configuration for the Django application.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/                  - Authentication endpoints (simplejwt)
        token/                     - Obtain JWT pair
        token/refresh/             - Refresh access token
    /api/v1/shipments/             - Shipment endpoints
        listings/                  - Own listings list/create
        listings/{id}/cancel/      - Cancel listing
        requests/                  - Own requests list/create
        requests/{id}/             - Request detail
        requests/{id}/transition/  - Lifecycle action (accept, pay, ...)
        requests/{id}/confirm/     - Confirm delivery with code
        requests/{id}/dispute/     - Open dispute
        requests/{id}/resolve/     - Resolve dispute (staff)
        requests/{id}/reviews/     - Submit review
        disputes/                  - Open disputes (staff)
        users/{id}/reviews/        - Reviews received by a user
    /api/v1/payments/              - Payment endpoints
        connect/onboard/           - Payout onboarding link
        connect/status/            - Payout account status
        transactions/              - Escrow transaction history

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Authentication (simplejwt)
    path("auth/", include("authentication.urls")),
    # Shipments
    path("shipments/", include("shipments.urls")),
    # Payments (payout onboarding, transaction history)
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Shipment Marketplace Admin"
admin.site.site_title = "Admin Portal"
admin.site.index_title = "Welcome to the Admin Portal"
