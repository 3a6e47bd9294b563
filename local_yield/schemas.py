"""
Serialization and validation schemas using Marshmallow.

The ``*Schema`` classes built on ``SQLAlchemyAutoSchema`` turn models
into JSON-friendly dicts; sensitive fields such as password hashes are
excluded and nested relationships are kept shallow. The ``*Input``
classes validate request bodies before they reach the service layer.
Unknown keys in request bodies are ignored.
"""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, ValidationError, fields, validate, validates_schema
from marshmallow_sqlalchemy import SQLAlchemyAutoSchema, auto_field

from .models import (
    AdminActionLog,
    AnimalSpecies,
    CareBooking,
    CareBookingStatus,
    CaregiverProfile,
    CareServiceListing,
    CareServiceType,
    Conversation,
    CreditLedger,
    CustomCategory,
    FulfillmentType,
    Message,
    Notification,
    Order,
    OrderItem,
    OrderStatus,
    ProducerProfile,
    Product,
    Report,
    ReportStatus,
    Review,
    User,
)
from .util.timeutil import to_naive_utc

ZIP_VALIDATOR = validate.Regexp(r"^\d{5}$", error="Must be a valid 5-digit ZIP code")

SIGNUP_ROLES = ("BUYER", "PRODUCER", "CAREGIVER", "CARE_SEEKER")
REPORT_REASONS = ("SPAM", "INAPPROPRIATE_CONTENT", "SCAM", "HARASSMENT", "OTHER")
REPORT_ENTITY_TYPES = ("caregiver", "product", "order")
DISPUTE_PROBLEM_TYPES = ("LATE", "DAMAGED", "MISSING", "NOT_AS_DESCRIBED", "WRONG_ITEM", "OTHER")
DISPUTE_PROPOSED_OUTCOMES = ("REFUND", "PARTIAL_REFUND", "REPLACEMENT", "STORE_CREDIT", "OTHER")
RESOLUTION_OUTCOMES = ("REFUND", "PARTIAL_REFUND", "STORE_CREDIT", "RESOLVED_NO_REFUND", "DISMISSED")


# --------------------------------
# Output schemas
# --------------------------------

class UserSchema(SQLAlchemyAutoSchema):
    """Schema for serialising ``User`` objects."""

    class Meta:
        model = User
        # Exclude password_hash from the serialised output
        exclude = ("password_hash",)


class ProducerProfileSchema(SQLAlchemyAutoSchema):
    class Meta:
        model = ProducerProfile
        include_fk = True


class ProductSchema(SQLAlchemyAutoSchema):
    """Schema for serialising ``Product`` objects."""

    user = fields.Nested(UserSchema, only=("id", "name", "zip_code"))

    class Meta:
        model = Product
        include_fk = True
        exclude = ("deleted_at",)


class OrderItemSchema(SQLAlchemyAutoSchema):
    product = fields.Nested(ProductSchema, only=("id", "title", "unit"))

    class Meta:
        model = OrderItem
        include_fk = True


class OrderSchema(SQLAlchemyAutoSchema):
    """Schema for serialising ``Order`` objects with their line items."""

    items = fields.Nested(OrderItemSchema, many=True)
    buyer = fields.Nested(UserSchema, only=("id", "name"))
    producer = fields.Nested(UserSchema, only=("id", "name"))

    class Meta:
        model = Order
        include_fk = True


class ReviewSchema(SQLAlchemyAutoSchema):
    """Schema for serialising ``Review`` objects."""

    reviewer = fields.Nested(UserSchema, only=("id", "name"))
    reviewee = fields.Nested(UserSchema, only=("id", "name"))

    class Meta:
        model = Review
        include_fk = True


class PublicReviewSchema(SQLAlchemyAutoSchema):
    """What anyone may see of an approved public review."""

    reviewer = fields.Nested(UserSchema, only=("id", "name"))

    class Meta:
        model = Review
        fields = ("id", "type", "comment", "rating", "producer_response", "created_at", "reviewer")


class CaregiverProfileSchema(SQLAlchemyAutoSchema):
    species_comfort = fields.Raw()

    class Meta:
        model = CaregiverProfile
        include_fk = True


class CareServiceListingSchema(SQLAlchemyAutoSchema):
    species_supported = fields.Raw()

    class Meta:
        model = CareServiceListing
        include_fk = True


class CareBookingSchema(SQLAlchemyAutoSchema):
    care_seeker = fields.Nested(UserSchema, only=("id", "name", "zip_code"))
    caregiver = fields.Nested(UserSchema, only=("id", "name", "zip_code"))

    class Meta:
        model = CareBooking
        include_fk = True
        exclude = ("idempotency_key",)


class MessageSchema(SQLAlchemyAutoSchema):
    sender = fields.Nested(UserSchema, only=("id", "name"))

    class Meta:
        model = Message
        include_fk = True


class ConversationSchema(SQLAlchemyAutoSchema):
    user_a = fields.Nested(UserSchema, only=("id", "name"))
    user_b = fields.Nested(UserSchema, only=("id", "name"))
    messages = fields.Nested(MessageSchema, many=True)

    class Meta:
        model = Conversation
        include_fk = True


class ReportSchema(SQLAlchemyAutoSchema):
    reporter = fields.Nested(UserSchema, only=("id", "name", "email"))
    assigned_to = fields.Nested(UserSchema, only=("id", "name"), allow_none=True)

    class Meta:
        model = Report
        include_fk = True


class CreditLedgerSchema(SQLAlchemyAutoSchema):
    class Meta:
        model = CreditLedger
        include_fk = True


class NotificationSchema(SQLAlchemyAutoSchema):
    class Meta:
        model = Notification
        include_fk = True


class CustomCategorySchema(SQLAlchemyAutoSchema):
    created_by = fields.Nested(UserSchema, only=("id", "name", "email"))

    class Meta:
        model = CustomCategory
        include_fk = True


class AdminActionLogSchema(SQLAlchemyAutoSchema):
    details = fields.Raw()

    class Meta:
        model = AdminActionLog
        include_fk = True


# --------------------------------
# Input schemas
# --------------------------------

class InputSchema(Schema):
    class Meta:
        unknown = EXCLUDE


class RegisterInput(InputSchema):
    email = fields.Email(required=True)
    password = fields.Str(required=True, validate=validate.Length(min=8, max=128))
    name = fields.Str(required=True, validate=validate.Length(min=1, max=200))
    zip_code = fields.Str(required=True, validate=ZIP_VALIDATOR)
    phone = fields.Str(validate=validate.Length(max=50), allow_none=True)
    roles = fields.List(
        fields.Str(validate=validate.OneOf(SIGNUP_ROLES)),
        load_default=lambda: ["BUYER"],
        validate=validate.Length(min=1, error="Select at least one role"),
    )


class LoginInput(InputSchema):
    email = fields.Str(required=True)
    password = fields.Str(required=True)


class DevLoginInput(InputSchema):
    role = fields.Str(required=True, validate=validate.OneOf(("BUYER", "PRODUCER", "ADMIN")))


class ProductInput(InputSchema):
    title = fields.Str(required=True, validate=validate.Length(min=1, max=200))
    price_cents = fields.Int(required=True, strict=True, validate=validate.Range(min=0))
    description = fields.Str(validate=validate.Length(max=5000), allow_none=True)
    category = fields.Str(validate=validate.Length(min=1, max=100), allow_none=True)
    unit = fields.Str(validate=validate.Length(min=1, max=100))
    image_url = fields.Url(allow_none=True)
    delivery = fields.Bool()
    pickup = fields.Bool()
    quantity_available = fields.Int(strict=True, validate=validate.Range(min=0), allow_none=True)


class ProducerProfileInput(InputSchema):
    business_name = fields.Str(validate=validate.Length(max=200), allow_none=True)
    about = fields.Str(validate=validate.Length(max=10000), allow_none=True)
    offers_delivery = fields.Bool()
    delivery_fee_cents = fields.Int(strict=True, validate=validate.Range(min=0))
    pickup_notes = fields.Str(validate=validate.Length(max=500), allow_none=True)
    zip_code = fields.Str(validate=ZIP_VALIDATOR)


class CartAddInput(InputSchema):
    product_id = fields.Int(required=True)
    quantity = fields.Int(strict=True, load_default=1)


class CartUpdateInput(InputSchema):
    quantity = fields.Int(required=True, strict=True)


class CheckoutInput(InputSchema):
    fulfillment_type = fields.Enum(FulfillmentType, load_default=FulfillmentType.PICKUP)
    notes = fields.Str(validate=validate.Length(max=1000), allow_none=True)
    pickup_date = fields.DateTime(allow_none=True)
    payment_method = fields.Str(validate=validate.OneOf(("cash", "card")), load_default="cash")


class OrderItemInput(InputSchema):
    product_id = fields.Int(required=True)
    quantity = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, max=999, error="Quantity must be between 1 and 999"),
    )
    unit_price_cents = fields.Int(strict=True, validate=validate.Range(min=0))


class CreateOrderInput(CheckoutInput):
    producer_id = fields.Int(required=True)
    items = fields.List(
        fields.Nested(OrderItemInput),
        required=True,
        validate=validate.Length(min=1, error="At least one item required"),
    )


class UpdateOrderStatusInput(InputSchema):
    status = fields.Enum(OrderStatus, required=True)


class IssueCreditInput(InputSchema):
    amount_cents = fields.Int(required=True, strict=True, validate=validate.Range(min=1))
    reason = fields.Str(
        required=True, validate=validate.OneOf(("DISPUTE_RESOLUTION", "GOODWILL", "ADJUSTMENT"))
    )
    report_id = fields.Int(allow_none=True)


class CreateReviewInput(InputSchema):
    order_id = fields.Int()
    care_booking_id = fields.Int()
    comment = fields.Str(required=True, validate=validate.Length(min=1, max=2000))
    rating = fields.Int(strict=True, validate=validate.Range(min=1, max=5), allow_none=True)
    private_flag = fields.Bool(load_default=True)

    @validates_schema
    def _one_subject(self, data, **kwargs):
        if ("order_id" in data) == ("care_booking_id" in data):
            raise ValidationError("Provide exactly one of order_id or care_booking_id", "_schema")


class UpdateReviewInput(InputSchema):
    comment = fields.Str(validate=validate.Length(min=1, max=2000))
    rating = fields.Int(strict=True, validate=validate.Range(min=1, max=5), allow_none=True)
    private_flag = fields.Bool()

    @validates_schema
    def _something_to_change(self, data, **kwargs):
        if not data:
            raise ValidationError("comment, rating or private_flag required", "_schema")


class ProducerResponseInput(InputSchema):
    response = fields.Str(required=True, validate=validate.Length(min=1, max=2000))
    resolved = fields.Bool(load_default=False)


class GuidanceInput(InputSchema):
    guidance = fields.Str(validate=validate.Length(max=2000), allow_none=True, load_default=None)


class CaregiverProfileInput(InputSchema):
    bio = fields.Str(validate=validate.Length(max=2000), allow_none=True)
    years_experience = fields.Int(strict=True, validate=validate.Range(min=0, max=100), allow_none=True)
    species_comfort = fields.List(fields.Enum(AnimalSpecies))
    languages_spoken = fields.Str(validate=validate.Length(max=200), allow_none=True)


class CareListingInput(InputSchema):
    title = fields.Str(required=True, validate=validate.Length(min=1, max=200))
    service_type = fields.Enum(CareServiceType, required=True)
    species_supported = fields.List(
        fields.Enum(AnimalSpecies),
        required=True,
        validate=validate.Length(min=1, error="Select at least one species"),
    )
    rate_cents = fields.Int(required=True, strict=True, validate=validate.Range(min=0))
    rate_unit = fields.Str(required=True, validate=validate.Length(min=1, max=50))
    service_radius_miles = fields.Int(
        required=True, strict=True, validate=validate.Range(min=1, max=100)
    )
    description = fields.Str(validate=validate.Length(max=2000), allow_none=True)
    active = fields.Bool(load_default=True)


class CreateCareBookingInput(InputSchema):
    caregiver_id = fields.Int(required=True)
    start_at = fields.DateTime(required=True)
    end_at = fields.DateTime(required=True)
    location_zip = fields.Str(required=True, validate=ZIP_VALIDATOR)
    notes = fields.Str(validate=validate.Length(max=2000), allow_none=True)
    species = fields.Enum(AnimalSpecies, allow_none=True)
    service_type = fields.Enum(CareServiceType, allow_none=True)
    idempotency_key = fields.Str(validate=validate.Length(min=1, max=128), allow_none=True)

    @validates_schema
    def _end_after_start(self, data, **kwargs):
        start, end = data.get("start_at"), data.get("end_at")
        if start and end and _naive(end) <= _naive(start):
            raise ValidationError("End date must be after start date", "end_at")


class UpdateCareBookingStatusInput(InputSchema):
    status = fields.Enum(CareBookingStatus, required=True)


class CreateConversationInput(InputSchema):
    other_user_id = fields.Int(required=True)
    order_id = fields.Int(allow_none=True)
    care_booking_id = fields.Int(allow_none=True)


class SendMessageInput(InputSchema):
    body = fields.Str(required=True, validate=validate.Length(min=1, max=2000))


class CreateReportInput(InputSchema):
    reason = fields.Str(required=True, validate=validate.OneOf(REPORT_REASONS))
    description = fields.Str(validate=validate.Length(max=2000), allow_none=True)
    entity_type = fields.Str(required=True, validate=validate.OneOf(REPORT_ENTITY_TYPES))
    entity_id = fields.Int(required=True)
    problem_type = fields.Str(validate=validate.OneOf(DISPUTE_PROBLEM_TYPES))
    proposed_outcome = fields.Str(validate=validate.OneOf(DISPUTE_PROPOSED_OUTCOMES))

    @validates_schema
    def _dispute_details(self, data, **kwargs):
        if data.get("entity_type") == "order" and not (data.get("problem_type") and data.get("proposed_outcome")):
            raise ValidationError(
                "problem_type and proposed_outcome are required for order reports", "entity_type"
            )


class UpdateReportAdminInput(InputSchema):
    assigned_to_id = fields.Raw(allow_none=True)
    status = fields.Enum(ReportStatus)
    resolution_outcome = fields.Str(validate=validate.OneOf(RESOLUTION_OUTCOMES), allow_none=True)
    resolution_note = fields.Str(validate=validate.Length(max=2000), allow_none=True)
    resolution_amount_cents = fields.Int(strict=True, validate=validate.Range(min=0), allow_none=True)

    @validates_schema
    def _assignee(self, data, **kwargs):
        value = data.get("assigned_to_id")
        if value is None or value == "me":
            return
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError("assigned_to_id must be a user id, 'me' or null", "assigned_to_id")

    @validates_schema
    def _store_credit_amount(self, data, **kwargs):
        if (
            data.get("status") == ReportStatus.RESOLVED
            and data.get("resolution_outcome") == "STORE_CREDIT"
            and not data.get("resolution_amount_cents")
        ):
            raise ValidationError(
                "resolution_amount_cents required when resolving with STORE_CREDIT",
                "resolution_amount_cents",
            )


class CustomCategoryInput(InputSchema):
    name = fields.Str(required=True, validate=validate.Length(min=1, max=100))
    group_id = fields.Str(allow_none=True)
    default_image_url = fields.Url(allow_none=True)


class CustomCategoryReviewInput(InputSchema):
    status = fields.Str(validate=validate.OneOf(("APPROVED", "REJECTED")))
    corrected_name = fields.Str(validate=validate.Length(max=100), allow_none=True)

    @validates_schema
    def _something_to_change(self, data, **kwargs):
        if "status" not in data and "corrected_name" not in data:
            raise ValidationError("status or corrected_name required", "_schema")


def _naive(value):
    return to_naive_utc(value) if value.tzinfo is not None else value
