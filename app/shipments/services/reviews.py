"""
Reviews between the two participants of a confirmed request.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Avg, Count

from core.exceptions import ValidationError
from core.services import BaseService

from shipments import selectors
from shipments.exceptions import ActionNotAllowedError, AlreadyReviewedError, NotConfirmedError
from shipments.models import Review
from shipments.models.review import MAX_RATING, MIN_RATING
from shipments.states import RequestStatus

MAX_COMMENT_LENGTH = 1000


class ReviewService(BaseService):
    @classmethod
    def submit_review(cls, request_id, reviewer_id, rating, comment: str = "") -> Review:
        """
        Store a review of the counterparty and refresh their rating.

        Raises:
            ValidationError: rating not an integer 1-5, comment too long
            RequestNotFoundError: Unknown request, or the reviewer is neither
                a participant nor staff
            ActionNotAllowedError: Reviewer is not the sender or traveler
            NotConfirmedError: Request is not confirmed
            AlreadyReviewedError: Reviewer already reviewed this request
        """
        if isinstance(rating, bool) or not isinstance(rating, int):
            raise ValidationError("rating must be an integer", details={"rating": rating})
        if not MIN_RATING <= rating <= MAX_RATING:
            raise ValidationError(
                f"rating must be between {MIN_RATING} and {MAX_RATING}",
                details={"rating": rating},
            )
        comment = (comment or "").strip()
        if len(comment) > MAX_COMMENT_LENGTH:
            raise ValidationError(
                f"comment must be at most {MAX_COMMENT_LENGTH} characters",
                details={"length": len(comment)},
            )

        shipment_request = selectors.get_request(request_id)
        reviewer = selectors.get_user(reviewer_id)
        selectors.check_visible(shipment_request, reviewer)

        if not shipment_request.is_participant(reviewer):
            raise ActionNotAllowedError(
                "Only the sender or the traveler can review this request",
                details={"request_id": str(shipment_request.id)},
            )
        if shipment_request.status != RequestStatus.CONFIRMED:
            raise NotConfirmedError(
                "Reviews open once delivery is confirmed",
                details={"request_id": str(shipment_request.id), "status": shipment_request.status},
            )
        if Review.objects.filter(shipment_request=shipment_request, reviewer=reviewer).exists():
            raise AlreadyReviewedError(
                "You already reviewed this request",
                details={"request_id": str(shipment_request.id)},
            )

        reviewee = shipment_request.counterparty_of(reviewer)
        try:
            with transaction.atomic():
                review = Review.objects.create(
                    shipment_request=shipment_request,
                    reviewer=reviewer,
                    reviewee=reviewee,
                    rating=rating,
                    comment=comment,
                )
                cls.refresh_rating(reviewee.pk)
        except IntegrityError as e:
            raise AlreadyReviewedError(
                "You already reviewed this request",
                details={"request_id": str(shipment_request.id)},
            ) from e

        cls.get_logger().info(
            "Review submitted",
            extra={
                "request_id": str(shipment_request.id),
                "review_id": str(review.id),
                "reviewee_id": reviewee.pk,
                "rating": rating,
            },
        )
        return review

    @staticmethod
    def refresh_rating(user_id) -> None:
        """Recompute a user's average rating (one decimal) and review count."""
        stats = Review.objects.filter(reviewee_id=user_id).aggregate(
            average=Avg("rating"), count=Count("id")
        )
        average = stats["average"]
        rating = (
            None
            if average is None
            else Decimal(str(average)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
        )
        get_user_model().objects.filter(pk=user_id).update(
            rating=rating, review_count=stats["count"]
        )
