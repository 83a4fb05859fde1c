"""
DRF views for the payments API.

URL Structure:
    /api/v1/payments/connect/onboard/    POST  Hosted onboarding link
    /api/v1/payments/connect/status/     GET   Payout account status
    /api/v1/payments/transactions/       GET   Escrow history (?page=&per_page=)

All endpoints require authentication. Stripe failures are answered with 502
and the service's error code (ONBOARDING_UNAVAILABLE).
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework.generics import ListAPIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import ExternalServiceError
from core.viewset_mixins import ApplicationErrorMixin

from payments import selectors
from payments.pagination import TransactionPagination
from payments.serializers import (
    ConnectedAccountSerializer,
    OnboardingLinkSerializer,
    TransactionSerializer,
)
from payments.services import ConnectedAccountService
from payments.state_machines import OnboardingStatus


def _raise_unavailable(result) -> None:
    raise ExternalServiceError(
        result.error,
        error_code=result.error_code,
        details=result.details,
    )


class ConnectOnboardView(ApplicationErrorMixin, APIView):
    """
    Start or resume Stripe Connect onboarding.

    POST /api/v1/payments/connect/onboard/

    Creates the traveler's connected account on first use. Each call returns
    a fresh single-use link.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_connect_onboarding_link",
        summary="Get a payout onboarding link",
        request=None,
        responses={200: OnboardingLinkSerializer},
        tags=["Payments - Payouts"],
    )
    def post(self, request):
        result = ConnectedAccountService.create_onboarding_link(request.user)
        if not result:
            _raise_unavailable(result)
        return Response(OnboardingLinkSerializer(result.data).data)


class ConnectStatusView(ApplicationErrorMixin, APIView):
    """
    Payout account status, refreshed from Stripe.

    GET /api/v1/payments/connect/status/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_connect_status",
        summary="Get payout account status",
        responses={200: ConnectedAccountSerializer},
        tags=["Payments - Payouts"],
    )
    def get(self, request):
        result = ConnectedAccountService.refresh_status(request.user)
        if not result:
            _raise_unavailable(result)
        if result.data is None:
            return Response(
                {
                    "stripe_account_id": None,
                    "onboarding_status": OnboardingStatus.NOT_STARTED,
                    "payouts_enabled": False,
                    "charges_enabled": False,
                    "ready_for_payouts": False,
                }
            )
        return Response(ConnectedAccountSerializer(result.data).data)


@extend_schema(
    operation_id="list_my_transactions",
    summary="List my escrow transactions",
    parameters=[
        OpenApiParameter("page", int, description="Page number, from 1"),
        OpenApiParameter("per_page", int, description="Items per page (default 20, max 50)"),
    ],
    tags=["Payments - Transactions"],
)
class TransactionListView(ApplicationErrorMixin, ListAPIView):
    permission_classes = [IsAuthenticated]
    pagination_class = TransactionPagination
    serializer_class = TransactionSerializer

    def get_queryset(self):
        return selectors.transactions_for_user(self.request.user)
