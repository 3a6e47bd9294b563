"""Seed script for development data.

Running this script creates (or updates) the test accounts used by the
development stub login, a caregiver with a service listing, and a few
products for the test producer. All accounts live in ZIP 90210. It can
be executed with ``python -m seed.seed`` from the repository root.
Running it twice does not duplicate anything.
"""
from __future__ import annotations

import logging

from local_yield import create_app, db
from local_yield.auth import STUB_USERS, STUB_ZIP
from local_yield.models import (
    CaregiverProfile,
    CareServiceListing,
    CareServiceType,
    ProducerProfile,
    Product,
    Role,
    User,
)

logger = logging.getLogger("local_yield.seed")

SEED_PASSWORD = "password123"

CAREGIVER = {"email": "caregiver@test.localyield.example", "name": "Test Caregiver"}

PRODUCTS = [
    {"title": "Heirloom Tomatoes", "price_cents": 450, "unit": "lb", "category": "vegetables",
     "description": "Mixed heirloom varieties picked this morning.", "quantity_available": 40},
    {"title": "Farm Fresh Eggs", "price_cents": 700, "unit": "dozen", "category": "poultry",
     "description": "Pasture-raised, brown and blue shells.", "quantity_available": 20},
    {"title": "Wildflower Honey", "price_cents": 1200, "unit": "jar", "category": "honey",
     "description": "Raw, unfiltered, 16 oz.", "quantity_available": None},
    {"title": "Sourdough Loaf", "price_cents": 900, "unit": "each", "category": "bread",
     "description": "Naturally leavened, baked Saturday mornings.", "quantity_available": 12},
]


def _upsert_user(email: str, name: str, role: Role, **flags) -> User:
    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(email=email)
        db.session.add(user)
    user.name = name
    user.role = role
    user.zip_code = STUB_ZIP
    user.is_buyer = True
    for key, value in flags.items():
        setattr(user, key, value)
    user.set_password(SEED_PASSWORD)
    return user


def run_seeds(app=None) -> None:
    """Insert the development accounts, products and care listing.

    Uses a freshly configured application unless ``app`` is given.
    """
    app = app or create_app()
    with app.app_context():
        db.create_all()
        users = {}
        for role, details in STUB_USERS.items():
            users[role] = _upsert_user(
                details["email"], details["name"], role,
                is_producer=role in (Role.PRODUCER, Role.ADMIN),
            )
        caregiver = _upsert_user(CAREGIVER["email"], CAREGIVER["name"], Role.BUYER, is_caregiver=True)
        db.session.flush()

        producer = users[Role.PRODUCER]
        if producer.producer_profile is None:
            producer.producer_profile = ProducerProfile(
                business_name="Test Farm Stand",
                offers_delivery=True,
                delivery_fee_cents=500,
                pickup_notes="Pick up at the red barn, Saturdays 8-12.",
            )
        for spec in PRODUCTS:
            product = Product.query.filter_by(user_id=producer.id, title=spec["title"]).first()
            if product is None:
                product = Product(user_id=producer.id, pickup=True, delivery=True)
                db.session.add(product)
            for key, value in spec.items():
                setattr(product, key, value)
            product.deleted_at = None

        if caregiver.caregiver_profile is None:
            caregiver.caregiver_profile = CaregiverProfile(
                bio="Grew up on a dairy farm; happy with large animals.",
                years_experience=10,
                species_comfort=["GOATS", "POULTRY", "HORSES"],
                languages_spoken="English, Spanish",
            )
        if not caregiver.care_listings:
            caregiver.care_listings.append(CareServiceListing(
                title="Weekend farm sitting",
                service_type=CareServiceType.FARM_SITTING,
                species_supported=["GOATS", "POULTRY"],
                rate_cents=8000,
                rate_unit="day",
                service_radius_miles=30,
            ))

        db.session.commit()
        logger.info("Seed data inserted successfully.")


if __name__ == "__main__":
    run_seeds()
