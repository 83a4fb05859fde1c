"""
ViewSets for the shipments API.

URL Structure:
    /api/v1/shipments/listings/                      GET, POST
    /api/v1/shipments/listings/{id}/cancel/          POST
    /api/v1/shipments/requests/                      GET, POST
    /api/v1/shipments/requests/{id}/                 GET
    /api/v1/shipments/requests/{id}/transition/      POST
    /api/v1/shipments/requests/{id}/confirm/         POST
    /api/v1/shipments/requests/{id}/dispute/         POST
    /api/v1/shipments/requests/{id}/resolve/         POST (staff)
    /api/v1/shipments/requests/{id}/reviews/         POST
    /api/v1/shipments/disputes/                      GET (staff)
    /api/v1/shipments/users/{user_id}/reviews/       GET

Views only translate HTTP to service calls. Domain errors raised by the
services are rendered by ApplicationErrorMixin with their own status code.
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.generics import ListAPIView
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response

from core.viewset_mixins import ApplicationErrorMixin

from shipments import selectors
from shipments.pagination import NewestFirstCursorPagination, OldestFirstCursorPagination
from shipments.serializers import (
    ConfirmDeliverySerializer,
    DisputeSerializer,
    ListingCreateSerializer,
    ListingSerializer,
    OpenDisputeSerializer,
    ResolveDisputeSerializer,
    ReviewCreateSerializer,
    ReviewSerializer,
    ShipmentRequestCreateSerializer,
    ShipmentRequestSerializer,
    TransitionSerializer,
)
from shipments.services import (
    DisputeService,
    LifecycleService,
    ListingService,
    RequestService,
    ReviewService,
)


@extend_schema_view(
    list=extend_schema(
        operation_id="list_my_listings",
        summary="List my listings",
        tags=["Shipments - Listings"],
    ),
    create=extend_schema(
        operation_id="create_listing",
        summary="Create listing",
        request=ListingCreateSerializer,
        responses={201: ListingSerializer},
        tags=["Shipments - Listings"],
    ),
)
class ListingViewSet(
    ApplicationErrorMixin,
    mixins.ListModelMixin,
    viewsets.GenericViewSet,
):
    """
    The current traveler's listings.

    Searching other travelers' listings is served elsewhere.
    """

    permission_classes = [IsAuthenticated]
    pagination_class = NewestFirstCursorPagination
    serializer_class = ListingSerializer

    def get_queryset(self):
        return selectors.listings_for_traveler(self.request.user)

    def create(self, request):
        serializer = ListingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        listing = ListingService.create_listing(request.user, **serializer.validated_data)
        return Response(ListingSerializer(listing).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="cancel_listing",
        summary="Cancel listing",
        request=None,
        responses={200: ListingSerializer},
        tags=["Shipments - Listings"],
    )
    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        listing = ListingService.cancel_listing(pk, request.user)
        return Response(ListingSerializer(listing).data)


@extend_schema_view(
    list=extend_schema(
        operation_id="list_shipment_requests",
        summary="List my shipment requests",
        parameters=[
            OpenApiParameter("role", str, enum=["sender", "traveler"]),
            OpenApiParameter("status", str),
        ],
        tags=["Shipments - Requests"],
    ),
    retrieve=extend_schema(
        operation_id="get_shipment_request",
        summary="Get shipment request",
        tags=["Shipments - Requests"],
    ),
    create=extend_schema(
        operation_id="create_shipment_request",
        summary="Create shipment request",
        request=ShipmentRequestCreateSerializer,
        responses={201: ShipmentRequestSerializer},
        tags=["Shipments - Requests"],
    ),
)
class ShipmentRequestViewSet(
    ApplicationErrorMixin,
    mixins.ListModelMixin,
    viewsets.GenericViewSet,
):
    """
    Shipment requests the current user takes part in, and their lifecycle.

    list:
        Requests where the user is the sender or the traveler.
        Filter with ?role=sender|traveler and ?status=<status>.

    transition:
        Apply a lifecycle action: accept, reject, cancel, pay,
        mark_collected, mark_in_transit, mark_delivered or confirm.
    """

    permission_classes = [IsAuthenticated]
    pagination_class = NewestFirstCursorPagination
    serializer_class = ShipmentRequestSerializer

    def get_queryset(self):
        return selectors.requests_for_user(
            self.request.user,
            role=self.request.query_params.get("role"),
            status=self.request.query_params.get("status"),
        )

    def get_permissions(self):
        if self.action == "resolve":
            return [IsAuthenticated(), IsAdminUser()]
        return [IsAuthenticated()]

    def _respond(self, shipment_request, status_code=status.HTTP_200_OK):
        serializer = ShipmentRequestSerializer(
            shipment_request, context=self.get_serializer_context()
        )
        return Response(serializer.data, status=status_code)

    def create(self, request):
        serializer = ShipmentRequestCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        shipment_request = RequestService.create_request(
            sender_id=request.user.pk,
            listing_id=data["listing_id"],
            weight_kg=data["weight_kg"],
            description=data["description"],
            instructions=data["instructions"],
        )
        return self._respond(shipment_request, status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        shipment_request = selectors.get_request_for_participant(pk, request.user)
        return self._respond(shipment_request)

    @extend_schema(
        operation_id="transition_shipment_request",
        summary="Apply a lifecycle action",
        request=TransitionSerializer,
        responses={200: ShipmentRequestSerializer},
        tags=["Shipments - Requests"],
    )
    @action(detail=True, methods=["post"])
    def transition(self, request, pk=None):
        serializer = TransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        action_name = data.pop("action")
        shipment_request = LifecycleService.transition(pk, request.user.pk, action_name, data)
        return self._respond(shipment_request)

    @extend_schema(
        operation_id="confirm_delivery",
        summary="Confirm delivery with the confirmation code",
        request=ConfirmDeliverySerializer,
        responses={200: ShipmentRequestSerializer},
        tags=["Shipments - Requests"],
    )
    @action(detail=True, methods=["post"])
    def confirm(self, request, pk=None):
        serializer = ConfirmDeliverySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        shipment_request = LifecycleService.confirm_delivery(
            pk, request.user.pk, serializer.validated_data["code"]
        )
        return self._respond(shipment_request)

    @extend_schema(
        operation_id="open_dispute",
        summary="Open a dispute",
        request=OpenDisputeSerializer,
        responses={201: DisputeSerializer},
        tags=["Shipments - Disputes"],
    )
    @action(detail=True, methods=["post"])
    def dispute(self, request, pk=None):
        serializer = OpenDisputeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dispute = DisputeService.open_dispute(
            pk, request.user.pk, serializer.validated_data["reason"]
        )
        return Response(DisputeSerializer(dispute).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="resolve_dispute",
        summary="Resolve a dispute (staff)",
        request=ResolveDisputeSerializer,
        responses={200: ShipmentRequestSerializer},
        tags=["Shipments - Disputes"],
    )
    @action(detail=True, methods=["post"])
    def resolve(self, request, pk=None):
        serializer = ResolveDisputeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        shipment_request = DisputeService.resolve_dispute(
            pk,
            request.user.pk,
            serializer.validated_data["resolution"],
            note=serializer.validated_data["note"],
        )
        return self._respond(shipment_request)

    @extend_schema(
        operation_id="submit_review",
        summary="Review the other participant",
        request=ReviewCreateSerializer,
        responses={201: ReviewSerializer},
        tags=["Shipments - Reviews"],
    )
    @action(detail=True, methods=["post"])
    def reviews(self, request, pk=None):
        serializer = ReviewCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        review = ReviewService.submit_review(
            pk,
            request.user.pk,
            serializer.validated_data["rating"],
            serializer.validated_data["comment"],
        )
        return Response(ReviewSerializer(review).data, status=status.HTTP_201_CREATED)


@extend_schema(
    operation_id="list_open_disputes",
    summary="Open disputes queue (staff)",
    tags=["Shipments - Disputes"],
)
class OpenDisputeListView(ApplicationErrorMixin, ListAPIView):
    permission_classes = [IsAuthenticated, IsAdminUser]
    pagination_class = OldestFirstCursorPagination
    serializer_class = DisputeSerializer

    def get_queryset(self):
        return selectors.open_disputes()


@extend_schema(
    operation_id="list_user_reviews",
    summary="Reviews a user received",
    tags=["Shipments - Reviews"],
)
class UserReviewListView(ApplicationErrorMixin, ListAPIView):
    permission_classes = [IsAuthenticated]
    pagination_class = NewestFirstCursorPagination
    serializer_class = ReviewSerializer

    def get_queryset(self):
        user = selectors.get_user(self.kwargs["user_id"])
        return selectors.reviews_for_user(user)
