"""Animal and homestead care: caregiver discovery, profiles and bookings.

Bookings are requests for a time range. Two bookings of the same
caregiver overlap when ``start <= other.end and end >= other.start``
(both bounds inclusive); only ``REQUESTED`` and ``ACCEPTED`` bookings
block the calendar.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from ..db import db
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..models import (
    AnimalSpecies,
    CareBooking,
    CareBookingStatus,
    CaregiverProfile,
    CareServiceListing,
    CareServiceType,
    Conversation,
    ReviewType,
    User,
)
from ..schemas import CaregiverProfileSchema, CareServiceListingSchema, PublicReviewSchema
from ..util.sanitization import clean_optional, strip_tags
from ..util.timeutil import to_naive_utc, utcnow
from . import geo_service
from .messaging_service import get_or_create_conversation
from .notification_service import notify
from .review_service import average_rating, public_reviews_for

logger = logging.getLogger(__name__)

BLOCKING_STATUSES = (CareBookingStatus.REQUESTED, CareBookingStatus.ACCEPTED)
LISTING_PREVIEWS = 2

_listing_preview = CareServiceListingSchema(
    only=("id", "title", "service_type", "species_supported", "rate_cents", "rate_unit")
)


def _listing_matches(listing: CareServiceListing, species: Optional[AnimalSpecies],
                     service_type: Optional[CareServiceType]) -> bool:
    if not listing.active:
        return False
    if species is not None and species.value not in (listing.species_supported or []):
        return False
    if service_type is not None and listing.service_type != service_type:
        return False
    return True


def is_featured(profile: Optional[CaregiverProfile], now: Optional[datetime] = None) -> bool:
    if profile is None or profile.featured_until is None:
        return False
    return (now or utcnow()) <= profile.featured_until


def search_caregivers(zip_code: str, radius_miles: int, species: Optional[AnimalSpecies] = None,
                      service_type: Optional[CareServiceType] = None) -> List[dict]:
    """Caregivers who can serve ``zip_code``.

    A caregiver is returned when they are within ``radius_miles`` and at
    least one matching active listing has a service radius that reaches
    the searcher. Featured caregivers come first, then nearest first.
    """
    now = utcnow()
    results = []
    for caregiver in User.query.filter(User.is_caregiver.is_(True)).all():
        listings = sorted(
            (l for l in caregiver.care_listings if _listing_matches(l, species, service_type)),
            key=lambda l: (l.created_at, l.id),
            reverse=True,
        )
        if not listings:
            continue
        distance = geo_service.distance_between_zips(zip_code, caregiver.zip_code)
        if distance is None or distance > radius_miles:
            continue
        if not any(distance <= listing.service_radius_miles for listing in listings):
            continue
        profile = caregiver.caregiver_profile
        results.append({
            "id": caregiver.id,
            "name": caregiver.name,
            "zip_code": caregiver.zip_code,
            "distance": distance,
            "featured": is_featured(profile, now),
            "caregiver_profile": CaregiverProfileSchema(
                only=("bio", "years_experience", "species_comfort", "languages_spoken")
            ).dump(profile) if profile else None,
            "listings": _listing_preview.dump(listings[:LISTING_PREVIEWS], many=True),
        })
    results.sort(key=lambda row: (not row["featured"], row["distance"]))
    return results


def get_caregiver_detail(caregiver_id: int) -> dict:
    caregiver = db.session.get(User, caregiver_id)
    if caregiver is None or not caregiver.is_caregiver:
        raise NotFoundError("Caregiver not found")
    listings = sorted(
        (l for l in caregiver.care_listings if l.active),
        key=lambda l: (l.created_at, l.id),
        reverse=True,
    )
    reviews = public_reviews_for(caregiver.id, ReviewType.CARE)
    profile = caregiver.caregiver_profile
    return {
        "id": caregiver.id,
        "name": caregiver.name,
        "zip_code": caregiver.zip_code,
        "featured": is_featured(profile),
        "caregiver_profile": CaregiverProfileSchema().dump(profile) if profile else None,
        "listings": CareServiceListingSchema(many=True).dump(listings),
        "reviews": PublicReviewSchema(many=True).dump(reviews),
        "average_rating": average_rating(reviews),
    }


def upsert_profile(user: User, data: dict) -> CaregiverProfile:
    """Create or update the caller's caregiver profile and mark them a caregiver."""
    profile = user.caregiver_profile
    if profile is None:
        profile = CaregiverProfile(user_id=user.id, species_comfort=[])
        db.session.add(profile)
    if "bio" in data:
        profile.bio = clean_optional(data["bio"])
    if "years_experience" in data:
        profile.years_experience = data["years_experience"]
    if "species_comfort" in data:
        profile.species_comfort = [species.value for species in data["species_comfort"]]
    if "languages_spoken" in data:
        profile.languages_spoken = clean_optional(data["languages_spoken"])
    user.is_caregiver = True
    db.session.commit()
    return profile


def create_listing(user: User, data: dict) -> CareServiceListing:
    if not user.is_caregiver:
        raise ForbiddenError("Set up your caregiver profile first", code="NOT_A_CAREGIVER")
    listing = CareServiceListing(
        caregiver_id=user.id,
        title=strip_tags(data["title"]),
        service_type=data["service_type"],
        species_supported=sorted({species.value for species in data["species_supported"]}),
        rate_cents=data["rate_cents"],
        rate_unit=strip_tags(data["rate_unit"]),
        service_radius_miles=data["service_radius_miles"],
        description=clean_optional(data.get("description")),
        active=data.get("active", True),
    )
    db.session.add(listing)
    db.session.commit()
    return listing


def _existing_for_key(key: str) -> Optional[CareBooking]:
    return CareBooking.query.filter_by(idempotency_key=key).first()


def _replay(existing: CareBooking, seeker: User):
    if existing.care_seeker_id != seeker.id:
        raise ConflictError("Idempotency key already used", code="IDEMPOTENCY_CONFLICT")
    return existing, booking_conversation(existing), False


def booking_conversation(booking: CareBooking, commit: bool = True) -> Conversation:
    return get_or_create_conversation(
        booking.care_seeker_id, booking.caregiver_id, care_booking_id=booking.id, commit=commit
    )


def create_booking(seeker: User, data: dict, idempotency_key: Optional[str] = None):
    """Request a booking. Returns ``(booking, conversation, created)``.

    Repeating a request with the same idempotency key returns the booking
    created the first time.
    """
    key = idempotency_key or data.get("idempotency_key")
    if key:
        existing = _existing_for_key(key)
        if existing is not None:
            return _replay(existing, seeker)

    caregiver = db.session.get(User, data["caregiver_id"])
    if caregiver is None or not caregiver.is_caregiver:
        raise NotFoundError("Caregiver not found")
    if caregiver.id == seeker.id:
        raise ValidationError("You cannot book yourself")

    start_at = to_naive_utc(data["start_at"])
    end_at = to_naive_utc(data["end_at"])
    if end_at <= start_at:
        raise ValidationError("End date must be after start date", fields={"end_at": ["Must be after start_at"]})

    overlapping = CareBooking.query.filter(
        CareBooking.caregiver_id == caregiver.id,
        CareBooking.status.in_(BLOCKING_STATUSES),
        CareBooking.start_at <= end_at,
        CareBooking.end_at >= start_at,
    ).first()
    if overlapping is not None:
        raise ConflictError("This caregiver is not available for those dates", code="CAREGIVER_UNAVAILABLE")

    booking = CareBooking(
        care_seeker_id=seeker.id,
        caregiver_id=caregiver.id,
        start_at=start_at,
        end_at=end_at,
        location_zip=data["location_zip"],
        notes=clean_optional(data.get("notes")),
        species=data.get("species"),
        service_type=data.get("service_type"),
        idempotency_key=key,
        status=CareBookingStatus.REQUESTED,
    )
    db.session.add(booking)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        existing = _existing_for_key(key) if key else None
        if existing is None:
            raise
        return _replay(existing, seeker)
    conversation = booking_conversation(booking, commit=False)
    notify(
        caregiver.id,
        "BOOKING_REQUESTED",
        "New booking request",
        "You have a new booking request.",
        link="/dashboard/care-bookings",
    )
    if not seeker.is_homestead_owner:
        seeker.is_homestead_owner = True
    db.session.commit()
    logger.info("Care booking %s requested by %s with caregiver %s", booking.id, seeker.id, caregiver.id)
    return booking, conversation, True


def get_booking_for(user: User, booking_id: int) -> CareBooking:
    booking = db.session.get(CareBooking, booking_id)
    if booking is None:
        raise NotFoundError("Booking not found")
    if not user.can_admin and user.id not in (booking.care_seeker_id, booking.caregiver_id):
        raise NotFoundError("Booking not found")
    return booking


def list_bookings(user: User, role: Optional[str] = None) -> List[CareBooking]:
    query = CareBooking.query
    if role == "caregiver":
        query = query.filter(CareBooking.caregiver_id == user.id)
    elif role == "seeker":
        query = query.filter(CareBooking.care_seeker_id == user.id)
    else:
        query = query.filter(
            (CareBooking.caregiver_id == user.id) | (CareBooking.care_seeker_id == user.id)
        )
    return query.order_by(CareBooking.start_at.desc(), CareBooking.id.desc()).all()


def update_booking_status(actor: User, booking: CareBooking, new_status: CareBookingStatus) -> CareBooking:
    """Apply a status change requested by one of the booking's parties.

    * the caregiver accepts or declines a ``REQUESTED`` booking;
    * either party cancels before the start, unless it was completed or
      declined;
    * the caregiver completes an ``ACCEPTED`` booking once it has started.
    """
    is_caregiver = booking.caregiver_id == actor.id
    is_seeker = booking.care_seeker_id == actor.id
    if not is_caregiver and not is_seeker:
        raise ForbiddenError()
    if booking.status == new_status:
        raise ValidationError(f"Booking is already {new_status.value}", code="NO_CHANGE")

    now = utcnow()
    if new_status in (CareBookingStatus.ACCEPTED, CareBookingStatus.DECLINED):
        if not is_caregiver:
            raise ForbiddenError("Only the caregiver can accept or decline")
        if booking.status != CareBookingStatus.REQUESTED:
            raise ValidationError("Can only accept or decline requested bookings", code="INVALID_TRANSITION")
    elif new_status == CareBookingStatus.CANCELED:
        if booking.status in (CareBookingStatus.COMPLETED, CareBookingStatus.DECLINED):
            raise ValidationError("Cannot cancel completed or declined bookings", code="INVALID_TRANSITION")
        if now >= booking.start_at:
            raise ValidationError("Cannot cancel bookings after the start date", code="INVALID_TRANSITION")
    elif new_status == CareBookingStatus.COMPLETED:
        if not is_caregiver:
            raise ForbiddenError("Only the caregiver can complete a booking")
        if booking.status != CareBookingStatus.ACCEPTED or now < booking.start_at:
            raise ValidationError("Only started, accepted bookings can be completed", code="INVALID_TRANSITION")
    else:
        raise ValidationError("Invalid status", code="INVALID_TRANSITION")

    booking.status = new_status
    if new_status in (CareBookingStatus.ACCEPTED, CareBookingStatus.DECLINED):
        accepted = new_status == CareBookingStatus.ACCEPTED
        helper = booking.caregiver.name or "The helper"
        notify(
            booking.care_seeker_id,
            "BOOKING_ACCEPTED" if accepted else "BOOKING_DECLINED",
            "Booking accepted" if accepted else "Booking declined",
            f"{helper} {'accepted' if accepted else 'declined'} your booking request.",
            link="/dashboard/care-bookings",
        )
    elif new_status == CareBookingStatus.CANCELED:
        other = booking.caregiver_id if is_seeker else booking.care_seeker_id
        notify(other, "BOOKING_CANCELED", "Booking canceled", "A booking was canceled.",
               link="/dashboard/care-bookings")
    db.session.commit()
    logger.info("Care booking %s -> %s by user %s", booking.id, new_status.value, actor.id)
    return booking
