"""
Order routes.

Buyers place orders and follow them; producers move them through
``PENDING -> PAID -> FULFILLED`` (or cancel and refund). An order is
only visible to its buyer, its producer and admins.
"""

from __future__ import annotations

from flask import Blueprint, request

from ..api import ok, parse_json_body
from ..auth import require_auth
from ..errors import NotFoundError, ValidationError
from ..rate_limit import rate_limit
from ..schemas import (
    ConversationSchema,
    CreateOrderInput,
    CreditLedgerSchema,
    IssueCreditInput,
    OrderSchema,
    ReviewSchema,
    UpdateOrderStatusInput,
)
from ..services import credit_service, messaging_service, order_service, review_service


orders_bp = Blueprint("orders", __name__)


@orders_bp.route("/orders", methods=["POST"])
@rate_limit()
def create_order():
    """Place an order with a single producer.

    Prices are taken from the products at the time of ordering; a
    ``unit_price_cents`` that no longer matches returns 409
    ``PRICE_CHANGED``.
    """
    user = require_auth()
    data = CreateOrderInput().load(parse_json_body())
    order = order_service.create_order(
        user,
        data["producer_id"],
        data["items"],
        fulfillment_type=data["fulfillment_type"],
        notes=data.get("notes"),
        pickup_date=data.get("pickup_date"),
        payment_method=data["payment_method"],
    )
    return ok(OrderSchema().dump(order), 201)


@orders_bp.route("/orders", methods=["GET"])
def list_orders():
    """List the caller's orders as buyer (default) or as producer."""
    user = require_auth()
    role = request.args.get("role", "buyer")
    if role not in ("buyer", "producer"):
        raise ValidationError("role must be buyer or producer")
    orders = order_service.list_orders(user, role)
    return ok(OrderSchema(many=True).dump(orders))


@orders_bp.route("/orders/<int:order_id>", methods=["GET"])
def get_order(order_id: int):
    user = require_auth()
    order = order_service.get_order_for(user, order_id)
    body = OrderSchema().dump(order)
    body["is_buyer"] = order.buyer_id == user.id
    body["is_producer"] = order.producer_id == user.id
    return ok(body)


@orders_bp.route("/orders/<int:order_id>", methods=["PATCH"])
@rate_limit()
def update_order(order_id: int):
    """Change an order's status. Only its producer or an admin may."""
    user = require_auth()
    order = order_service.get_order_for(user, order_id)
    data = UpdateOrderStatusInput().load(parse_json_body())
    order = order_service.update_order_status(user, order, data["status"])
    return ok(OrderSchema().dump(order))


@orders_bp.route("/orders/<int:order_id>/conversation", methods=["GET"])
def order_conversation(order_id: int):
    """Get or create the buyer-producer thread for an order."""
    user = require_auth()
    order = order_service.get_order_for(user, order_id)
    if user.id not in (order.buyer_id, order.producer_id):
        raise NotFoundError("Order not found")
    other = order.producer_id if user.id == order.buyer_id else order.buyer_id
    conversation = messaging_service.get_or_create_conversation(user.id, other, order_id=order.id)
    return ok(ConversationSchema().dump(conversation))


@orders_bp.route("/orders/<int:order_id>/review", methods=["GET"])
def order_review(order_id: int):
    """The caller's review of an order, or ``null``."""
    user = require_auth()
    order_service.get_order_for(user, order_id)
    review = review_service.review_for_order(user, order_id)
    return ok(ReviewSchema().dump(review) if review else None)


@orders_bp.route("/orders/<int:order_id>/credit", methods=["POST"])
@rate_limit()
def issue_order_credit(order_id: int):
    """Issue store credit to the buyer. Producers are capped at the order total."""
    user = require_auth()
    order = order_service.get_order_for(user, order_id)
    data = IssueCreditInput().load(parse_json_body())
    entry = credit_service.issue_order_credit(
        user, order, data["amount_cents"], data["reason"], data.get("report_id")
    )
    return ok(CreditLedgerSchema().dump(entry), 201)
