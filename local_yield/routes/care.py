"""
Animal and homestead care routes.

Owners search for caregivers around a ZIP and request bookings;
caregivers manage their profile, their service listings and the
requests they receive.
"""

from __future__ import annotations

from flask import Blueprint, current_app, request

from ..api import int_arg, ok, parse_json_body
from ..auth import require_auth
from ..errors import ValidationError
from ..models import AnimalSpecies, CareServiceType
from ..rate_limit import rate_limit
from ..schemas import (
    CareBookingSchema,
    CaregiverProfileInput,
    CaregiverProfileSchema,
    CareListingInput,
    CareServiceListingSchema,
    CreateCareBookingInput,
    UpdateCareBookingStatusInput,
)
from ..services import care_service, geo_service


care_bp = Blueprint("care", __name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"


def _enum_arg(name: str, enum_cls):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return enum_cls[raw.upper()]
    except KeyError:
        raise ValidationError(f"Unknown {name}: {raw}")


@care_bp.route("/care/caregivers", methods=["GET"])
def search_caregivers():
    """Caregivers serving ``zip`` within ``radius``, filtered by ``species``
    and ``service_type``."""
    zip_code = (request.args.get("zip") or "").strip()
    if not geo_service.validate_zip(zip_code):
        raise ValidationError("ZIP must be 5 digits", code="INVALID_ZIP")
    config = current_app.config
    radius = int_arg(
        "radius", config["DEFAULT_RADIUS_MILES"], minimum=1, maximum=config["MAX_RADIUS_MILES"]
    )
    caregivers = care_service.search_caregivers(
        zip_code,
        radius,
        species=_enum_arg("species", AnimalSpecies),
        service_type=_enum_arg("service_type", CareServiceType),
    )
    return ok({"caregivers": caregivers, "zip": zip_code, "radius_miles": radius})


@care_bp.route("/care/caregivers/<int:caregiver_id>", methods=["GET"])
def get_caregiver(caregiver_id: int):
    return ok(care_service.get_caregiver_detail(caregiver_id))


@care_bp.route("/care/profile", methods=["PUT"])
@rate_limit()
def put_profile():
    """Create or update the caller's caregiver profile."""
    user = require_auth()
    data = CaregiverProfileInput().load(parse_json_body())
    profile = care_service.upsert_profile(user, data)
    return ok(CaregiverProfileSchema().dump(profile))


@care_bp.route("/care/listings", methods=["POST"])
@rate_limit()
def create_listing():
    user = require_auth()
    data = CareListingInput().load(parse_json_body())
    listing = care_service.create_listing(user, data)
    return ok(CareServiceListingSchema().dump(listing), 201)


@care_bp.route("/care/bookings", methods=["POST"])
@rate_limit()
def create_booking():
    """Request a booking.

    Send an ``Idempotency-Key`` header (or ``idempotency_key`` in the
    body) to make retries safe. Overlapping an open booking of the same
    caregiver returns 409 ``CAREGIVER_UNAVAILABLE``.
    """
    user = require_auth()
    data = CreateCareBookingInput().load(parse_json_body())
    key = request.headers.get(IDEMPOTENCY_HEADER) or None
    booking, conversation, created = care_service.create_booking(user, data, idempotency_key=key)
    body = {"booking": CareBookingSchema().dump(booking), "conversation_id": conversation.id}
    return ok(body, 201 if created else 200)


@care_bp.route("/care/bookings", methods=["GET"])
def list_bookings():
    """Bookings the caller is part of; ``role`` narrows to ``caregiver`` or ``seeker``."""
    user = require_auth()
    role = request.args.get("role")
    bookings = care_service.list_bookings(user, role)
    return ok(CareBookingSchema(many=True).dump(bookings))


@care_bp.route("/care/bookings/<int:booking_id>", methods=["GET"])
def get_booking(booking_id: int):
    user = require_auth()
    booking = care_service.get_booking_for(user, booking_id)
    body = CareBookingSchema().dump(booking)
    body["is_caregiver"] = booking.caregiver_id == user.id
    body["is_seeker"] = booking.care_seeker_id == user.id
    return ok(body)


@care_bp.route("/care/bookings/<int:booking_id>", methods=["PATCH"])
@rate_limit()
def update_booking(booking_id: int):
    """Accept, decline, cancel or complete a booking."""
    user = require_auth()
    booking = care_service.get_booking_for(user, booking_id)
    data = UpdateCareBookingStatusInput().load(parse_json_body())
    booking = care_service.update_booking_status(user, booking, data["status"])
    return ok(CareBookingSchema().dump(booking))
