"""
Database models for The Local Yield.

This module defines the marketplace schema using SQLAlchemy models.
Users may act as buyers, producers and caregivers at once; the primary
``role`` decides dashboard access while the boolean flags record which
modes an account has opted into. Producers list products and fulfil
orders, buyers review completed orders, and caregivers publish care
service listings that homestead owners book. Conversations, reports,
custom categories and the store-credit ledger hang off these core rows.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from werkzeug.security import check_password_hash, generate_password_hash

from .db import db
from .util.timeutil import utcnow


class Role(enum.Enum):
    """Primary role of an account."""
    BUYER = "BUYER"
    PRODUCER = "PRODUCER"
    ADMIN = "ADMIN"


class FulfillmentType(enum.Enum):
    PICKUP = "PICKUP"
    DELIVERY = "DELIVERY"


class OrderStatus(enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FULFILLED = "FULFILLED"
    CANCELED = "CANCELED"
    REFUNDED = "REFUNDED"


class ReviewType(enum.Enum):
    MARKET = "MARKET"
    CARE = "CARE"


class ReviewStatus(enum.Enum):
    """Moderation state of a review.

    New reviews start ``PENDING``. The reviewee approves (public) or flags
    them for an admin, and an admin may hide any review.
    """
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    FLAGGED = "FLAGGED"
    HIDDEN = "HIDDEN"


class CareBookingStatus(enum.Enum):
    REQUESTED = "REQUESTED"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    CANCELED = "CANCELED"
    COMPLETED = "COMPLETED"


class CareServiceType(enum.Enum):
    DROP_IN = "DROP_IN"
    OVERNIGHT = "OVERNIGHT"
    BOARDING = "BOARDING"
    FARM_SITTING = "FARM_SITTING"


class AnimalSpecies(enum.Enum):
    HORSES = "HORSES"
    CATTLE = "CATTLE"
    GOATS = "GOATS"
    SHEEP = "SHEEP"
    PIGS = "PIGS"
    POULTRY = "POULTRY"
    ALPACAS = "ALPACAS"
    LLAMAS = "LLAMAS"
    DONKEYS = "DONKEYS"
    OTHER = "OTHER"


class ReportStatus(enum.Enum):
    PENDING = "PENDING"
    REVIEWED = "REVIEWED"
    RESOLVED = "RESOLVED"
    DISMISSED = "DISMISSED"


class CustomCategoryStatus(enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class User(db.Model):
    __allow_unmapped__ = True
    """An account on the marketplace.

    Passwords are stored as salted hashes. Accounts created through the
    development stub login have no password and cannot sign in with one.
    """
    __tablename__ = "users"

    id: int = db.Column(db.Integer, primary_key=True)
    email: str = db.Column(db.String(120), unique=True, nullable=False)
    name: Optional[str] = db.Column(db.String(200))
    password_hash: Optional[str] = db.Column(db.String(256))
    role: Role = db.Column(db.Enum(Role), default=Role.BUYER, nullable=False)
    phone: Optional[str] = db.Column(db.String(50))
    zip_code: str = db.Column(db.String(5), nullable=False)
    bio: Optional[str] = db.Column(db.String(2000))

    is_buyer: bool = db.Column(db.Boolean, default=True, nullable=False)
    is_producer: bool = db.Column(db.Boolean, default=False, nullable=False)
    is_caregiver: bool = db.Column(db.Boolean, default=False, nullable=False)
    is_homestead_owner: bool = db.Column(db.Boolean, default=False, nullable=False)

    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    producer_profile: Optional[ProducerProfile] = db.relationship(
        "ProducerProfile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    caregiver_profile: Optional[CaregiverProfile] = db.relationship(
        "CaregiverProfile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    # Collections stay unannotated; an unmapped List annotation maps as a scalar
    products = db.relationship("Product", back_populates="user")
    care_listings = db.relationship(
        "CareServiceListing", back_populates="caregiver", cascade="all, delete-orphan"
    )

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def can_sell(self) -> bool:
        return self.role in (Role.PRODUCER, Role.ADMIN) or bool(self.is_producer)

    @property
    def can_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def can_care(self) -> bool:
        return bool(self.is_caregiver) or bool(self.is_homestead_owner)

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role.value})>"


class ProducerProfile(db.Model):
    __allow_unmapped__ = True
    """Business page and delivery settings for a producer."""
    __tablename__ = "producer_profiles"

    id: int = db.Column(db.Integer, primary_key=True)
    user_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), unique=True, nullable=False)
    business_name: Optional[str] = db.Column(db.String(200))
    about: Optional[str] = db.Column(db.String(10000))
    offers_delivery: bool = db.Column(db.Boolean, default=False, nullable=False)
    delivery_fee_cents: int = db.Column(db.Integer, default=0, nullable=False)
    pickup_notes: Optional[str] = db.Column(db.String(500))

    user: User = db.relationship("User", back_populates="producer_profile")


class Product(db.Model):
    __allow_unmapped__ = True
    """A listing offered by a producer.

    ``quantity_available`` of ``None`` means stock is not tracked.
    """
    __tablename__ = "products"

    id: int = db.Column(db.Integer, primary_key=True)
    user_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    title: str = db.Column(db.String(200), nullable=False)
    description: str = db.Column(db.String(5000), nullable=False, default="No description.")
    price_cents: int = db.Column(db.Integer, nullable=False)
    unit: str = db.Column(db.String(100), nullable=False, default="each")
    category: str = db.Column(db.String(100), nullable=False, default="other")
    image_url: Optional[str] = db.Column(db.String(500))
    delivery: bool = db.Column(db.Boolean, default=False, nullable=False)
    pickup: bool = db.Column(db.Boolean, default=True, nullable=False)
    quantity_available: Optional[int] = db.Column(db.Integer)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    # Soft delete timestamp; order items keep pointing at deleted products
    deleted_at = db.Column(db.DateTime, nullable=True)

    user: User = db.relationship("User", back_populates="products")

    def __repr__(self) -> str:
        return f"<Product {self.title}>"


class CartItem(db.Model):
    __allow_unmapped__ = True
    """A line in a buyer's server-side cart."""
    __tablename__ = "cart_items"

    id: int = db.Column(db.Integer, primary_key=True)
    user_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    product_id: int = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity: int = db.Column(db.Integer, nullable=False, default=1)
    # Price the buyer last saw for this line; checkout rejects a mismatch
    unit_price_cents: Optional[int] = db.Column(db.Integer)
    added_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    product: Product = db.relationship("Product")

    __table_args__ = (
        db.UniqueConstraint("user_id", "product_id", name="uix_cart_user_product"),
    )


class Order(db.Model):
    __allow_unmapped__ = True
    """An order placed by a buyer with a single producer."""
    __tablename__ = "orders"

    id: int = db.Column(db.Integer, primary_key=True)
    buyer_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    producer_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    status: OrderStatus = db.Column(db.Enum(OrderStatus), default=OrderStatus.PENDING, nullable=False)
    fulfillment_type: FulfillmentType = db.Column(
        db.Enum(FulfillmentType), default=FulfillmentType.PICKUP, nullable=False
    )
    total_cents: int = db.Column(db.Integer, nullable=False, default=0)
    delivery_fee_cents: int = db.Column(db.Integer, nullable=False, default=0)
    notes: Optional[str] = db.Column(db.String(1000))
    via_cash: bool = db.Column(db.Boolean, default=True, nullable=False)
    pickup_date: Optional[datetime] = db.Column(db.DateTime)
    pickup_code: str = db.Column(db.String(6), nullable=False)
    # A negative public review cannot be published before this time.
    resolution_window_ends_at: datetime = db.Column(db.DateTime, nullable=False)
    paid_at: Optional[datetime] = db.Column(db.DateTime)
    fulfilled_at: Optional[datetime] = db.Column(db.DateTime)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    buyer: User = db.relationship("User", foreign_keys=[buyer_id])
    producer: User = db.relationship("User", foreign_keys=[producer_id])
    items = db.relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Order {self.id} {self.status.value}>"


class OrderItem(db.Model):
    __allow_unmapped__ = True
    """A product line of an order with its price snapshot."""
    __tablename__ = "order_items"

    id: int = db.Column(db.Integer, primary_key=True)
    order_id: int = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    product_id: int = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity: int = db.Column(db.Integer, nullable=False)
    unit_price_cents: int = db.Column(db.Integer, nullable=False)

    order: Order = db.relationship("Order", back_populates="items")
    product: Product = db.relationship("Product")


class CaregiverProfile(db.Model):
    __allow_unmapped__ = True
    """Trust signals shown on a caregiver's public page."""
    __tablename__ = "caregiver_profiles"

    id: int = db.Column(db.Integer, primary_key=True)
    user_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), unique=True, nullable=False)
    bio: Optional[str] = db.Column(db.String(2000))
    years_experience: Optional[int] = db.Column(db.Integer)
    species_comfort = db.Column(db.JSON, nullable=False, default=list)
    languages_spoken: Optional[str] = db.Column(db.String(200))
    featured_until: Optional[datetime] = db.Column(db.DateTime)

    user: User = db.relationship("User", back_populates="caregiver_profile")


class CareServiceListing(db.Model):
    __allow_unmapped__ = True
    """A care service offered by a caregiver within a service radius."""
    __tablename__ = "care_service_listings"

    id: int = db.Column(db.Integer, primary_key=True)
    caregiver_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    title: str = db.Column(db.String(200), nullable=False)
    service_type: CareServiceType = db.Column(db.Enum(CareServiceType), nullable=False)
    species_supported = db.Column(db.JSON, nullable=False, default=list)
    rate_cents: int = db.Column(db.Integer, nullable=False)
    rate_unit: str = db.Column(db.String(50), nullable=False)
    service_radius_miles: int = db.Column(db.Integer, nullable=False, default=25)
    description: Optional[str] = db.Column(db.String(2000))
    active: bool = db.Column(db.Boolean, default=True, nullable=False)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    caregiver: User = db.relationship("User", back_populates="care_listings")


class CareBooking(db.Model):
    __allow_unmapped__ = True
    """A request from a care seeker to a caregiver for a time range."""
    __tablename__ = "care_bookings"

    id: int = db.Column(db.Integer, primary_key=True)
    care_seeker_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    caregiver_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    start_at: datetime = db.Column(db.DateTime, nullable=False)
    end_at: datetime = db.Column(db.DateTime, nullable=False)
    location_zip: str = db.Column(db.String(5), nullable=False)
    notes: Optional[str] = db.Column(db.String(2000))
    species: Optional[AnimalSpecies] = db.Column(db.Enum(AnimalSpecies))
    service_type: Optional[CareServiceType] = db.Column(db.Enum(CareServiceType))
    status: CareBookingStatus = db.Column(
        db.Enum(CareBookingStatus), default=CareBookingStatus.REQUESTED, nullable=False
    )
    idempotency_key: Optional[str] = db.Column(db.String(128), unique=True)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    care_seeker: User = db.relationship("User", foreign_keys=[care_seeker_id])
    caregiver: User = db.relationship("User", foreign_keys=[caregiver_id])


class Review(db.Model):
    __allow_unmapped__ = True
    """Feedback from a buyer (or care seeker) about a producer (or caregiver).

    Reviews are private by default so that problems can be resolved
    between the parties before anything is published.
    """
    __tablename__ = "reviews"

    id: int = db.Column(db.Integer, primary_key=True)
    reviewer_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    reviewee_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    type: ReviewType = db.Column(db.Enum(ReviewType), nullable=False, default=ReviewType.MARKET)
    order_id: Optional[int] = db.Column(db.Integer, db.ForeignKey("orders.id"))
    care_booking_id: Optional[int] = db.Column(db.Integer, db.ForeignKey("care_bookings.id"))
    comment: str = db.Column(db.String(2000), nullable=False)
    rating: Optional[int] = db.Column(db.Integer)
    private_flag: bool = db.Column(db.Boolean, default=True, nullable=False)
    status: ReviewStatus = db.Column(db.Enum(ReviewStatus), default=ReviewStatus.PENDING, nullable=False)
    resolved: bool = db.Column(db.Boolean, default=False, nullable=False)
    producer_response: Optional[str] = db.Column(db.String(2000))
    admin_guidance: Optional[str] = db.Column(db.String(2000))
    flagged_at: Optional[datetime] = db.Column(db.DateTime)
    approved_at: Optional[datetime] = db.Column(db.DateTime)
    hidden_at: Optional[datetime] = db.Column(db.DateTime)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    reviewer: User = db.relationship("User", foreign_keys=[reviewer_id])
    reviewee: User = db.relationship("User", foreign_keys=[reviewee_id])
    order: Optional[Order] = db.relationship("Order")
    care_booking: Optional[CareBooking] = db.relationship("CareBooking")

    __table_args__ = (
        db.UniqueConstraint("reviewer_id", "order_id", name="uix_review_order"),
        db.UniqueConstraint("reviewer_id", "care_booking_id", name="uix_review_booking"),
    )

    @property
    def is_public(self) -> bool:
        return self.status == ReviewStatus.APPROVED and not self.private_flag


class Conversation(db.Model):
    __allow_unmapped__ = True
    """A message thread between two users, optionally scoped to an order or booking.

    ``user_a_id`` always holds the smaller user id.
    """
    __tablename__ = "conversations"

    id: int = db.Column(db.Integer, primary_key=True)
    user_a_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    user_b_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    order_id: Optional[int] = db.Column(db.Integer, db.ForeignKey("orders.id"))
    care_booking_id: Optional[int] = db.Column(db.Integer, db.ForeignKey("care_bookings.id"))
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    user_a: User = db.relationship("User", foreign_keys=[user_a_id])
    user_b: User = db.relationship("User", foreign_keys=[user_b_id])
    messages = db.relationship(
        "Message", back_populates="conversation", cascade="all, delete-orphan", order_by="Message.id"
    )

    __table_args__ = (
        db.UniqueConstraint("user_a_id", "user_b_id", "order_id", "care_booking_id", name="uix_conversation_scope"),
    )

    def has_participant(self, user_id: int) -> bool:
        return user_id in (self.user_a_id, self.user_b_id)


class Message(db.Model):
    __allow_unmapped__ = True
    __tablename__ = "messages"

    id: int = db.Column(db.Integer, primary_key=True)
    conversation_id: int = db.Column(db.Integer, db.ForeignKey("conversations.id"), nullable=False, index=True)
    sender_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    body: str = db.Column(db.String(2000), nullable=False)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    conversation: Conversation = db.relationship("Conversation", back_populates="messages")
    sender: User = db.relationship("User")


class Report(db.Model):
    __allow_unmapped__ = True
    """A moderation report. Reports on orders are disputes."""
    __tablename__ = "reports"

    id: int = db.Column(db.Integer, primary_key=True)
    reporter_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    reason: str = db.Column(db.String(50), nullable=False)
    description: Optional[str] = db.Column(db.String(2000))
    entity_type: str = db.Column(db.String(50), nullable=False)
    entity_id: int = db.Column(db.Integer, nullable=False)
    status: ReportStatus = db.Column(db.Enum(ReportStatus), default=ReportStatus.PENDING, nullable=False)
    problem_type: Optional[str] = db.Column(db.String(50))
    proposed_outcome: Optional[str] = db.Column(db.String(50))
    assigned_to_id: Optional[int] = db.Column(db.Integer, db.ForeignKey("users.id"))
    reviewed_by_id: Optional[int] = db.Column(db.Integer, db.ForeignKey("users.id"))
    reviewed_at: Optional[datetime] = db.Column(db.DateTime)
    resolution_outcome: Optional[str] = db.Column(db.String(50))
    resolution_note: Optional[str] = db.Column(db.String(2000))
    resolution_amount_cents: Optional[int] = db.Column(db.Integer)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    reporter: User = db.relationship("User", foreign_keys=[reporter_id])
    assigned_to: Optional[User] = db.relationship("User", foreign_keys=[assigned_to_id])
    reviewed_by: Optional[User] = db.relationship("User", foreign_keys=[reviewed_by_id])


class CreditLedger(db.Model):
    __allow_unmapped__ = True
    """Store credit a buyer holds with one producer. Entries are signed cents."""
    __tablename__ = "credit_ledger"

    id: int = db.Column(db.Integer, primary_key=True)
    user_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    producer_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    amount_cents: int = db.Column(db.Integer, nullable=False)
    reason: str = db.Column(db.String(50), nullable=False)
    order_id: Optional[int] = db.Column(db.Integer, db.ForeignKey("orders.id"))
    report_id: Optional[int] = db.Column(db.Integer, db.ForeignKey("reports.id"))
    created_by_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)


class Notification(db.Model):
    __allow_unmapped__ = True
    __tablename__ = "notifications"

    id: int = db.Column(db.Integer, primary_key=True)
    user_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    type: str = db.Column(db.String(50), nullable=False)
    title: str = db.Column(db.String(200), nullable=False)
    body: str = db.Column(db.String(1000), nullable=False)
    link: Optional[str] = db.Column(db.String(300))
    read: bool = db.Column(db.Boolean, default=False, nullable=False)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)


class CustomCategory(db.Model):
    __allow_unmapped__ = True
    """A product category proposed by a producer, public once approved."""
    __tablename__ = "custom_categories"

    id: int = db.Column(db.Integer, primary_key=True)
    name: str = db.Column(db.String(100), nullable=False)
    corrected_name: Optional[str] = db.Column(db.String(100))
    group_id: Optional[str] = db.Column(db.String(50))
    default_image_url: Optional[str] = db.Column(db.String(500))
    status: CustomCategoryStatus = db.Column(
        db.Enum(CustomCategoryStatus), default=CustomCategoryStatus.PENDING, nullable=False
    )
    created_by_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    approved_at: Optional[datetime] = db.Column(db.DateTime)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)

    created_by: User = db.relationship("User")

    @property
    def display_name(self) -> str:
        return self.corrected_name or self.name


class AdminActionLog(db.Model):
    __allow_unmapped__ = True
    """Audit trail of moderation actions taken by admins."""
    __tablename__ = "admin_action_logs"

    id: int = db.Column(db.Integer, primary_key=True)
    admin_id: int = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    action: str = db.Column(db.String(50), nullable=False)
    entity_type: str = db.Column(db.String(50), nullable=False)
    entity_id: int = db.Column(db.Integer, nullable=False)
    details = db.Column(db.JSON)
    created_at: datetime = db.Column(db.DateTime, nullable=False, default=utcnow)
