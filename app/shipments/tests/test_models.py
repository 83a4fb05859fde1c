"""
Tests for shipment models: transitions, participants and database constraints.
"""

from datetime import date
from decimal import Decimal

import pytest
from django.db import IntegrityError, transaction
from django_fsm import TransitionNotAllowed, can_proceed

from shipments.models import ShipmentRequest
from shipments.states import CancellationReason, DisputeStatus, ListingStatus, RequestStatus
from shipments.tests.factories import (
    DisputeFactory,
    ListingFactory,
    ReviewFactory,
    ShipmentRequestFactory,
)


class TestShipmentRequestTransitions:
    def test_pending_request_options(self):
        shipment_request = ShipmentRequestFactory.build()

        assert can_proceed(shipment_request.accept)
        assert can_proceed(shipment_request.reject)
        assert can_proceed(shipment_request.cancel)
        assert not can_proceed(shipment_request.mark_paid)
        assert not can_proceed(shipment_request.confirm)
        assert not can_proceed(shipment_request.open_dispute)

    def test_paid_can_skip_tracking_markers(self):
        shipment_request = ShipmentRequestFactory.build(paid=True)

        shipment_request.mark_delivered()

        assert shipment_request.status == RequestStatus.DELIVERED
        assert shipment_request.delivered_at is not None
        assert shipment_request.collected_at is None

    def test_full_tracking_path(self):
        shipment_request = ShipmentRequestFactory.build(paid=True)

        shipment_request.mark_collected()
        shipment_request.mark_in_transit()
        shipment_request.mark_delivered()
        shipment_request.confirm()

        assert shipment_request.status == RequestStatus.CONFIRMED
        assert shipment_request.is_terminal

    def test_in_transit_needs_collected(self):
        shipment_request = ShipmentRequestFactory.build(paid=True)

        with pytest.raises(TransitionNotAllowed):
            shipment_request.mark_in_transit()

    def test_mark_paid_issues_code_and_split(self):
        shipment_request = ShipmentRequestFactory.build(status=RequestStatus.ACCEPTED)

        shipment_request.mark_paid("042917", Decimal("4.00"), Decimal("36.00"))

        assert shipment_request.status == RequestStatus.PAID
        assert shipment_request.confirmation_code == "042917"
        assert shipment_request.platform_fee == Decimal("4.00")
        assert shipment_request.payout_amount == Decimal("36.00")
        assert shipment_request.paid_at is not None

    def test_mark_paid_keeps_issued_code(self):
        shipment_request = ShipmentRequestFactory.build(
            status=RequestStatus.ACCEPTED, confirmation_code="111111"
        )

        shipment_request.mark_paid("222222", Decimal("4.00"), Decimal("36.00"))

        assert shipment_request.confirmation_code == "111111"

    def test_cancel_records_reason(self):
        shipment_request = ShipmentRequestFactory.build()

        shipment_request.cancel(CancellationReason.CANCELLED_BY_SENDER)

        assert shipment_request.status == RequestStatus.CANCELLED
        assert shipment_request.cancellation_reason == CancellationReason.CANCELLED_BY_SENDER
        assert shipment_request.cancelled_at is not None

    def test_dispute_outcomes(self):
        refunded = ShipmentRequestFactory.build(paid=True, status=RequestStatus.DISPUTED)
        released = ShipmentRequestFactory.build(paid=True, status=RequestStatus.DISPUTED)

        refunded.resolve_refund()
        released.resolve_release()

        assert refunded.status == RequestStatus.CANCELLED
        assert refunded.cancellation_reason == CancellationReason.DISPUTE_REFUND
        assert released.status == RequestStatus.CONFIRMED

    @pytest.mark.parametrize(
        "status", [RequestStatus.CONFIRMED, RequestStatus.CANCELLED]
    )
    def test_terminal_statuses_have_no_exits(self, status):
        shipment_request = ShipmentRequestFactory.build(paid=True, status=status)

        for method in (
            shipment_request.accept,
            shipment_request.reject,
            shipment_request.cancel,
            shipment_request.mark_delivered,
            shipment_request.confirm,
            shipment_request.open_dispute,
            shipment_request.resolve_refund,
        ):
            assert not can_proceed(method)


class TestShipmentRequestPersistence:
    def test_status_cannot_be_assigned(self, db, reload):
        shipment_request = reload(ShipmentRequestFactory())

        with pytest.raises(AttributeError):
            shipment_request.status = RequestStatus.PAID

    def test_issued_code_cannot_change(self, db, reload):
        shipment_request = reload(ShipmentRequestFactory(paid=True))
        shipment_request.confirmation_code = "000000"

        with pytest.raises(ValueError, match="cannot change"):
            shipment_request.save()

        assert reload(shipment_request).confirmation_code == "482913"

    def test_participants(self, db):
        shipment_request = ShipmentRequestFactory()
        sender = shipment_request.sender
        traveler = shipment_request.listing.traveler

        assert shipment_request.is_sender(sender)
        assert shipment_request.is_traveler(traveler)
        assert not shipment_request.is_traveler(sender)
        assert not shipment_request.is_participant(None)
        assert shipment_request.counterparty_of(sender) == traveler
        assert shipment_request.counterparty_of(traveler) == sender

    def test_code_only_after_payment(self, db):
        with pytest.raises(IntegrityError), transaction.atomic():
            ShipmentRequestFactory(confirmation_code="123456")

    def test_weight_above_limit_rejected(self, db):
        with pytest.raises(IntegrityError), transaction.atomic():
            ShipmentRequestFactory(weight_kg=Decimal("30.01"))

    def test_weight_at_limit_accepted(self, db):
        shipment_request = ShipmentRequestFactory(weight_kg=Decimal("30.00"))

        assert ShipmentRequest.objects.get(pk=shipment_request.pk).total_price == Decimal(
            "240.00"
        )


class TestListing:
    def test_is_open(self, db):
        assert ListingFactory().is_open
        assert not ListingFactory(available_kg=Decimal("0")).is_open
        assert not ListingFactory(status=ListingStatus.CANCELLED).is_open

    def test_capacity_cannot_go_negative(self, db):
        with pytest.raises(IntegrityError), transaction.atomic():
            ListingFactory(available_kg=Decimal("-1.00"))

    def test_arrival_not_before_departure(self, db):
        with pytest.raises(IntegrityError), transaction.atomic():
            ListingFactory(departure_date=date(2026, 5, 10), arrival_date=date(2026, 5, 9))


class TestDispute:
    def test_one_dispute_per_request(self, db):
        dispute = DisputeFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            DisputeFactory(shipment_request=dispute.shipment_request)

    def test_resolved_needs_resolution(self, db):
        with pytest.raises(IntegrityError), transaction.atomic():
            DisputeFactory(status=DisputeStatus.RESOLVED)


class TestReview:
    def test_one_review_per_reviewer(self, db):
        review = ReviewFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            ReviewFactory(shipment_request=review.shipment_request)

    def test_rating_in_range(self, db):
        with pytest.raises(IntegrityError), transaction.atomic():
            ReviewFactory(rating=6)

    def test_no_self_review(self, db):
        shipment_request = ShipmentRequestFactory(paid=True, status=RequestStatus.CONFIRMED)

        with pytest.raises(IntegrityError), transaction.atomic():
            ReviewFactory(shipment_request=shipment_request, reviewee=shipment_request.sender)
