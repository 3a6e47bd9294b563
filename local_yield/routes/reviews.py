"""
Review routes.

Buyers review their orders and care seekers their completed bookings.
Reviews are private by default. The reviewee moderates what they
receive from the dashboard routes below; only approved, non-private
reviews are ever shown publicly.
"""

from __future__ import annotations

from flask import Blueprint, request

from ..api import ok, parse_json_body
from ..auth import require_auth
from ..db import db
from ..errors import NotFoundError
from ..models import ReviewStatus, ReviewType, User
from ..rate_limit import rate_limit
from ..schemas import (
    CreateReviewInput,
    ProducerResponseInput,
    PublicReviewSchema,
    ReviewSchema,
    UpdateReviewInput,
)
from ..services import review_service


reviews_bp = Blueprint("reviews", __name__)


@reviews_bp.route("/reviews", methods=["POST"])
@rate_limit()
def create_review():
    """Review an order (``order_id``) or a completed booking (``care_booking_id``).

    A public review rated at or below the negative threshold is refused
    with ``RESOLUTION_WINDOW_OPEN`` until the resolution window closes.
    """
    user = require_auth()
    data = CreateReviewInput().load(parse_json_body())
    review = review_service.create_review(user, data)
    return ok(ReviewSchema().dump(review), 201)


@reviews_bp.route("/reviews/<int:review_id>", methods=["PATCH"])
@rate_limit()
def update_review(review_id: int):
    user = require_auth()
    review = review_service.get_review(review_id)
    data = UpdateReviewInput().load(parse_json_body())
    review = review_service.update_review(user, review, data)
    return ok(ReviewSchema().dump(review))


@reviews_bp.route("/dashboard/reviews", methods=["GET"])
def received_reviews():
    """Reviews the caller has received, optionally filtered by ``status``."""
    user = require_auth()
    status = request.args.get("status")
    if status and status not in ReviewStatus.__members__:
        status = None
    reviews = review_service.list_received_reviews(user, status)
    return ok(ReviewSchema(many=True).dump(reviews))


@reviews_bp.route("/dashboard/reviews/<int:review_id>/approve", methods=["POST"])
@rate_limit()
def approve_review(review_id: int):
    user = require_auth()
    review = review_service.approve_review(user, review_service.get_review(review_id))
    return ok(ReviewSchema().dump(review))


@reviews_bp.route("/dashboard/reviews/<int:review_id>/flag", methods=["POST"])
@rate_limit()
def flag_review(review_id: int):
    """Send a review to the admin queue instead of publishing it."""
    user = require_auth()
    review = review_service.flag_review(user, review_service.get_review(review_id))
    return ok(ReviewSchema().dump(review))


@reviews_bp.route("/dashboard/reviews/<int:review_id>/respond", methods=["POST"])
@rate_limit()
def respond_to_review(review_id: int):
    user = require_auth()
    review = review_service.get_review(review_id)
    data = ProducerResponseInput().load(parse_json_body())
    review = review_service.respond_to_review(user, review, data["response"], data["resolved"])
    return ok(ReviewSchema().dump(review))


@reviews_bp.route("/producers/<int:producer_id>/reviews", methods=["GET"])
def producer_reviews(producer_id: int):
    """Public reviews of a producer with their average rating."""
    producer = db.session.get(User, producer_id)
    if producer is None or not producer.can_sell:
        raise NotFoundError("Producer not found")
    reviews = review_service.public_reviews_for(producer.id, ReviewType.MARKET)
    return ok({
        "producer": {"id": producer.id, "name": producer.name},
        "reviews": PublicReviewSchema(many=True).dump(reviews),
        "average_rating": review_service.average_rating(reviews),
        "count": len(reviews),
    })
