"""Shared fixtures for the test-suite.

Every test gets a fresh application bound to an in-memory SQLite
database. ZIP centroids come from the small fixed table below instead
of the ``zipcodes`` dataset so that distances are predictable.
"""
from __future__ import annotations

from types import SimpleNamespace

import pytest
from flask_jwt_extended import create_access_token

from local_yield import create_app, db
from local_yield.models import (
    CaregiverProfile,
    CareServiceListing,
    CareServiceType,
    ProducerProfile,
    Product,
    Role,
    User,
)
from local_yield.services import geo_service

# Roughly: 90211 is ~2 miles from 90210, 91101 ~15 miles, 92101 ~110 miles.
ZIP_TABLE = {
    "90210": (34.0901, -118.4065),
    "90211": (34.0650, -118.3831),
    "91101": (34.1478, -118.1445),
    "92101": (32.7157, -117.1611),
    "10001": (40.7506, -73.9972),
}

TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite://",
    "JWT_SECRET_KEY": "test-secret-key-with-at-least-32-bytes!",
    "RATELIMIT_ENABLED": False,
    "DEV_AUTH_ENABLED": False,
    "REDIS_URL": None,
    "LOG_LEVEL": "WARNING",
}


@pytest.fixture(autouse=True)
def fixed_zip_table(monkeypatch):
    monkeypatch.setattr(geo_service, "lookup_zip", lambda zip_code: ZIP_TABLE.get(zip_code))


@pytest.fixture
def make_app():
    """Factory for apps with extra config; tables are created for each."""
    created = []

    def _make(**overrides):
        app = create_app({**TEST_CONFIG, **overrides})
        with app.app_context():
            db.create_all()
        created.append(app)
        return app

    yield _make

    for app in created:
        with app.app_context():
            db.session.remove()
            db.drop_all()


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    return app.test_client()


def _user(email, name, zip_code="90210", role=Role.BUYER, **flags):
    user = User(email=email, name=name, zip_code=zip_code, role=role, **flags)
    user.set_password("password123")
    db.session.add(user)
    return user


@pytest.fixture
def users(app):
    """Ids of a standard cast of accounts."""
    with app.app_context():
        buyer = _user("buyer@example.com", "Bea Buyer")
        other_buyer = _user("other@example.com", "Otto Other", zip_code="91101")
        producer = _user("producer@example.com", "Pat Producer", role=Role.PRODUCER, is_producer=True)
        producer.producer_profile = ProducerProfile(
            business_name="Pat's Farm", offers_delivery=True, delivery_fee_cents=500
        )
        far_producer = _user(
            "far@example.com", "Fran Faraway", zip_code="92101", role=Role.PRODUCER, is_producer=True
        )
        admin = _user("admin@example.com", "Ada Admin", role=Role.ADMIN)
        caregiver = _user("care@example.com", "Cal Caregiver", zip_code="90211", is_caregiver=True)
        caregiver.caregiver_profile = CaregiverProfile(bio="Goats and chickens", species_comfort=["GOATS"])
        db.session.commit()
        return SimpleNamespace(
            buyer=buyer.id,
            other_buyer=other_buyer.id,
            producer=producer.id,
            far_producer=far_producer.id,
            admin=admin.id,
            caregiver=caregiver.id,
        )


@pytest.fixture
def auth(app):
    """``auth(user_id)`` returns bearer headers for that user."""

    def _headers(user_id):
        with app.app_context():
            token = create_access_token(identity=str(user_id))
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def make_product(app):
    """``make_product(producer_id, **fields)`` inserts a product and returns its id."""

    def _make(user_id, **fields):
        values = {"title": "Tomatoes", "price_cents": 400, "category": "vegetables", "unit": "lb"}
        values.update(fields)
        with app.app_context():
            product = Product(user_id=user_id, **values)
            db.session.add(product)
            db.session.commit()
            return product.id

    return _make


@pytest.fixture
def make_care_listing(app):
    def _make(caregiver_id, **fields):
        values = {
            "title": "Farm sitting",
            "service_type": CareServiceType.FARM_SITTING,
            "species_supported": ["GOATS", "POULTRY"],
            "rate_cents": 5000,
            "rate_unit": "day",
            "service_radius_miles": 25,
        }
        values.update(fields)
        with app.app_context():
            listing = CareServiceListing(caregiver_id=caregiver_id, **values)
            db.session.add(listing)
            db.session.commit()
            return listing.id

    return _make
