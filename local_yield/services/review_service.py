"""Reviews and review moderation.

Reviews start ``PENDING`` and private. The reviewee decides what happens
next: approving publishes the review, flagging sends it to an admin. An
admin can approve or dismiss a flag, hide any review, and attach
guidance for the parties.

A negative public review (rating at or below the configured threshold)
is refused while the order's resolution window is open, so that the
producer has a chance to put things right first.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from flask import current_app

from ..db import db
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..models import (
    CareBooking,
    CareBookingStatus,
    Order,
    Review,
    ReviewStatus,
    ReviewType,
    User,
)
from ..util.sanitization import clean_optional, strip_tags
from ..util.timeutil import utcnow
from .admin_log_service import log_admin_action
from .notification_service import notify

logger = logging.getLogger(__name__)


def _negative_threshold() -> int:
    return current_app.config.get("NEGATIVE_RATING_THRESHOLD", 2)


def _window_end(review_subject) -> Optional[datetime]:
    if isinstance(review_subject, Order):
        return review_subject.resolution_window_ends_at
    hours = current_app.config.get("RESOLUTION_WINDOW_HOURS", 48)
    return review_subject.end_at + timedelta(hours=hours)


def check_resolution_window(rating: Optional[int], private_flag: bool, window_ends_at) -> None:
    """Refuse a negative public review while the resolution window is open."""
    if private_flag or rating is None or window_ends_at is None:
        return
    if rating <= _negative_threshold() and utcnow() < window_ends_at:
        raise ValidationError(
            "Negative public reviews can be posted once the resolution window closes. "
            "You can leave a private review now.",
            code="RESOLUTION_WINDOW_OPEN",
        )


def create_review(user: User, data: dict) -> Review:
    """Create a MARKET review for an order or a CARE review for a booking."""
    comment = strip_tags(data["comment"])
    if not comment:
        raise ValidationError("comment is required", fields={"comment": ["Required"]})
    rating = data.get("rating")
    private_flag = data.get("private_flag", True)

    if data.get("order_id") is not None:
        subject = db.session.get(Order, data["order_id"])
        if subject is None or subject.buyer_id != user.id:
            raise NotFoundError("Order not found or you are not the buyer")
        review_type = ReviewType.MARKET
        reviewee_id = subject.producer_id
        duplicate = Review.query.filter_by(reviewer_id=user.id, order_id=subject.id).first()
    else:
        subject = db.session.get(CareBooking, data["care_booking_id"])
        if subject is None or subject.care_seeker_id != user.id:
            raise NotFoundError("Booking not found or you are not the care seeker")
        if subject.status != CareBookingStatus.COMPLETED:
            raise ValidationError("Only completed bookings can be reviewed", code="BOOKING_NOT_COMPLETED")
        review_type = ReviewType.CARE
        reviewee_id = subject.caregiver_id
        duplicate = Review.query.filter_by(reviewer_id=user.id, care_booking_id=subject.id).first()

    if duplicate is not None:
        raise ConflictError("You have already left a review for this", code="DUPLICATE_REVIEW")
    check_resolution_window(rating, private_flag, _window_end(subject))

    review = Review(
        reviewer_id=user.id,
        reviewee_id=reviewee_id,
        type=review_type,
        order_id=subject.id if review_type == ReviewType.MARKET else None,
        care_booking_id=subject.id if review_type == ReviewType.CARE else None,
        comment=comment,
        rating=rating,
        private_flag=private_flag,
    )
    db.session.add(review)
    notify(reviewee_id, "NEW_REVIEW", "New review", "You received a new review.", link="/dashboard/reviews")
    db.session.commit()
    logger.info("Review %s created by user %s (%s)", review.id, user.id, review_type.value)
    return review


def get_review(review_id: int) -> Review:
    review = db.session.get(Review, review_id)
    if review is None:
        raise NotFoundError("Review not found")
    return review


def update_review(user: User, review: Review, data: dict) -> Review:
    """Let the reviewer edit a review that has not been moderated yet."""
    if review.reviewer_id != user.id:
        raise ForbiddenError()
    if review.status != ReviewStatus.PENDING:
        raise ValidationError("Only pending reviews can be edited", code="REVIEW_LOCKED")
    comment = strip_tags(data["comment"]) if "comment" in data else review.comment
    if not comment:
        raise ValidationError("comment is required", fields={"comment": ["Required"]})
    rating = data["rating"] if "rating" in data else review.rating
    private_flag = data.get("private_flag", review.private_flag)
    subject = review.order if review.order_id else review.care_booking
    check_resolution_window(rating, private_flag, _window_end(subject))

    review.comment = comment
    review.rating = rating
    review.private_flag = private_flag
    db.session.commit()
    return review


def review_for_order(user: User, order_id: int) -> Optional[Review]:
    return Review.query.filter_by(reviewer_id=user.id, order_id=order_id).first()


# ---------------------------------------------------------------------------
# Reviewee (producer or caregiver) moderation
# ---------------------------------------------------------------------------

def _require_reviewee(user: User, review: Review) -> None:
    if review.reviewee_id != user.id and not user.can_admin:
        raise ForbiddenError()


def _require_status(review: Review, expected: ReviewStatus) -> None:
    if review.status != expected:
        raise ValidationError(
            f"Review is {review.status.value}, expected {expected.value}", code="INVALID_TRANSITION"
        )


def list_received_reviews(user: User, status: Optional[str] = None) -> List[Review]:
    query = Review.query.filter_by(reviewee_id=user.id)
    if status:
        query = query.filter(Review.status == ReviewStatus(status))
    return query.order_by(Review.created_at.desc(), Review.id.desc()).all()


def approve_review(user: User, review: Review) -> Review:
    """Publish a pending review. Approving makes it public."""
    _require_reviewee(user, review)
    _require_status(review, ReviewStatus.PENDING)
    review.status = ReviewStatus.APPROVED
    review.private_flag = False
    review.approved_at = utcnow()
    db.session.commit()
    return review


def flag_review(user: User, review: Review) -> Review:
    """Send a pending review to the admin queue."""
    _require_reviewee(user, review)
    _require_status(review, ReviewStatus.PENDING)
    review.status = ReviewStatus.FLAGGED
    review.flagged_at = utcnow()
    db.session.commit()
    logger.info("Review %s flagged by user %s", review.id, user.id)
    return review


def respond_to_review(user: User, review: Review, response: str, resolved: bool = False) -> Review:
    _require_reviewee(user, review)
    if review.status == ReviewStatus.HIDDEN:
        raise ValidationError("Hidden reviews cannot be answered", code="INVALID_TRANSITION")
    text = strip_tags(response)
    if not text:
        raise ValidationError("response is required", fields={"response": ["Required"]})
    review.producer_response = text
    review.resolved = bool(resolved)
    notify(
        review.reviewer_id,
        "REVIEW_RESPONSE",
        "Response to your review",
        "The seller responded to your review.",
        link=f"/orders/{review.order_id}" if review.order_id else None,
    )
    db.session.commit()
    return review


# ---------------------------------------------------------------------------
# Admin moderation
# ---------------------------------------------------------------------------

def admin_review_query(status: Optional[str] = None):
    query = Review.query
    if status:
        query = query.filter(Review.status == ReviewStatus(status))
    return query.order_by(Review.flagged_at.desc(), Review.created_at.desc(), Review.id.desc())


def admin_approve_flag(admin: User, review: Review) -> Review:
    _require_status(review, ReviewStatus.FLAGGED)
    review.status = ReviewStatus.APPROVED
    review.private_flag = False
    review.approved_at = utcnow()
    log_admin_action(admin, "REVIEW_APPROVE_FLAG", "review", review.id)
    db.session.commit()
    return review


def admin_dismiss_flag(admin: User, review: Review) -> Review:
    _require_status(review, ReviewStatus.FLAGGED)
    review.status = ReviewStatus.PENDING
    review.flagged_at = None
    log_admin_action(admin, "REVIEW_DISMISS_FLAG", "review", review.id)
    db.session.commit()
    return review


def admin_hide(admin: User, review: Review) -> Review:
    if review.status == ReviewStatus.HIDDEN:
        raise ValidationError("Review is already hidden", code="NO_CHANGE")
    previous = review.status.value
    review.status = ReviewStatus.HIDDEN
    review.hidden_at = utcnow()
    log_admin_action(admin, "REVIEW_HIDE", "review", review.id, {"previous_status": previous})
    db.session.commit()
    return review


def admin_set_guidance(admin: User, review: Review, guidance: Optional[str]) -> Review:
    review.admin_guidance = clean_optional(guidance)
    log_admin_action(admin, "REVIEW_GUIDANCE", "review", review.id, {"guidance": review.admin_guidance})
    db.session.commit()
    return review


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------

def public_reviews_for(user_id: int, review_type: Optional[ReviewType] = None) -> List[Review]:
    query = Review.query.filter(
        Review.reviewee_id == user_id,
        Review.status == ReviewStatus.APPROVED,
        Review.private_flag.is_(False),
    )
    if review_type is not None:
        query = query.filter(Review.type == review_type)
    return query.order_by(Review.created_at.desc(), Review.id.desc()).all()


def average_rating(reviews: List[Review]) -> Optional[float]:
    """Mean of the rated reviews rounded to one decimal, or ``None``."""
    ratings = [review.rating for review in reviews if review.rating is not None]
    if not ratings:
        return None
    return round(float(sum(ratings)) / len(ratings), 1)
