"""Accounts: registration, sign-in and producer profile settings."""
from __future__ import annotations

import logging
from typing import Optional

from ..db import db
from ..errors import ConflictError, UnauthorizedError
from ..models import ProducerProfile, Role, User
from ..util.sanitization import clean_optional, strip_tags

logger = logging.getLogger(__name__)


def register_user(data: dict) -> User:
    """Create an account with the requested modes.

    Signing up as a producer makes ``PRODUCER`` the primary role; every
    account can buy.
    """
    email = data["email"].strip().lower()
    if User.query.filter_by(email=email).first() is not None:
        raise ConflictError("Email already registered", code="EMAIL_TAKEN")
    roles = set(data.get("roles") or ["BUYER"])
    user = User(
        email=email,
        name=strip_tags(data["name"]),
        zip_code=data["zip_code"],
        phone=clean_optional(data.get("phone")),
        role=Role.PRODUCER if "PRODUCER" in roles else Role.BUYER,
        is_buyer=True,
        is_producer="PRODUCER" in roles,
        is_caregiver="CAREGIVER" in roles,
        is_homestead_owner="CARE_SEEKER" in roles,
    )
    user.set_password(data["password"])
    if user.is_producer:
        user.producer_profile = ProducerProfile()
    db.session.add(user)
    db.session.commit()
    logger.info("Registered user %s", user.id)
    return user


def authenticate(email: str, password: str) -> User:
    user = User.query.filter_by(email=email.strip().lower()).first()
    if user is None or not user.check_password(password):
        raise UnauthorizedError("Invalid email or password", code="INVALID_CREDENTIALS")
    return user


def get_or_create_producer_profile(user: User, commit: bool = False) -> ProducerProfile:
    profile = user.producer_profile
    if profile is None:
        profile = ProducerProfile(user_id=user.id)
        db.session.add(profile)
        if commit:
            db.session.commit()
    return profile


def update_producer_profile(user: User, data: dict) -> ProducerProfile:
    profile = get_or_create_producer_profile(user)
    for key in ("business_name", "about", "pickup_notes"):
        if key in data:
            setattr(profile, key, clean_optional(data[key]))
    if "offers_delivery" in data:
        profile.offers_delivery = data["offers_delivery"]
    if "delivery_fee_cents" in data:
        profile.delivery_fee_cents = data["delivery_fee_cents"]
    if "zip_code" in data:
        user.zip_code = data["zip_code"]
    db.session.commit()
    return profile


def search_users(search: Optional[str] = None):
    """Query of users for the admin list, newest first."""
    query = User.query
    if search:
        term = search.strip()
        query = query.filter(
            User.email.icontains(term, autoescape=True) | User.name.icontains(term, autoescape=True)
        )
    return query.order_by(User.created_at.desc(), User.id.desc())
