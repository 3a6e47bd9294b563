"""Order creation and lifecycle.

An order belongs to exactly one buyer and one producer. Creating one is
a single transaction: every line is checked against the live product,
stock is decremented, and the unit price is copied from the product so
that later price edits never change what the buyer agreed to pay.
"""
from __future__ import annotations

import logging
import secrets
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from flask import current_app
from sqlalchemy.orm import selectinload

from ..db import db
from ..errors import ApiError, ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..models import (
    FulfillmentType,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    User,
)
from ..util.sanitization import clean_optional
from ..util.timeutil import to_naive_utc, utcnow
from .notification_service import notify

logger = logging.getLogger(__name__)

PICKUP_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
PICKUP_CODE_LENGTH = 6
MAX_LINE_QUANTITY = 999

VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.CANCELED},
    OrderStatus.PAID: {OrderStatus.FULFILLED, OrderStatus.CANCELED, OrderStatus.REFUNDED},
    OrderStatus.FULFILLED: set(),
    OrderStatus.CANCELED: set(),
    OrderStatus.REFUNDED: set(),
}


def generate_pickup_code() -> str:
    return "".join(secrets.choice(PICKUP_CODE_ALPHABET) for _ in range(PICKUP_CODE_LENGTH))


def resolution_window_ends(start: Optional[datetime] = None) -> datetime:
    """End of the resolution window that opens at ``start`` (default now)."""
    hours = current_app.config.get("RESOLUTION_WINDOW_HOURS", 48)
    return (start or utcnow()) + timedelta(hours=hours)


def is_valid_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return new in VALID_TRANSITIONS.get(current, set())


def _merge_lines(items: Iterable[dict]) -> "OrderedDict[int, dict]":
    merged: "OrderedDict[int, dict]" = OrderedDict()
    for item in items:
        product_id = item["product_id"]
        line = merged.setdefault(product_id, {"quantity": 0, "unit_price_cents": None})
        line["quantity"] += item["quantity"]
        if item.get("unit_price_cents") is not None:
            line["unit_price_cents"] = item["unit_price_cents"]
    for line in merged.values():
        if line["quantity"] > MAX_LINE_QUANTITY:
            raise ValidationError("Quantity must be between 1 and 999")
    return merged


def create_order(
    buyer: User,
    producer_id: int,
    items: List[dict],
    fulfillment_type: FulfillmentType = FulfillmentType.PICKUP,
    notes: Optional[str] = None,
    pickup_date: Optional[datetime] = None,
    payment_method: str = "cash",
    commit: bool = True,
) -> Order:
    """Create a ``PENDING`` order for ``buyer`` with one producer.

    Parameters
    ----------
    buyer: User
        The purchasing user.
    producer_id: int
        Every product in ``items`` must belong to this producer.
    items: List[dict]
        ``{"product_id", "quantity", "unit_price_cents"?}``. When a client
        price is supplied it must equal the current product price.
    commit: bool
        When ``False`` the order is only flushed so that a caller can
        group several orders in one transaction.

    Raises
    ------
    ValidationError, NotFoundError, ConflictError
        Nothing is written when any line fails its checks.
    """
    try:
        order = _build_order(buyer, producer_id, items, fulfillment_type, notes, pickup_date, payment_method)
        if commit:
            db.session.commit()
        else:
            db.session.flush()
    except ApiError:
        db.session.rollback()
        raise
    logger.info("Order %s created: buyer=%s producer=%s total=%s", order.id, buyer.id, producer_id, order.total_cents)
    return order


def _build_order(buyer, producer_id, items, fulfillment_type, notes, pickup_date, payment_method) -> Order:
    if producer_id == buyer.id:
        raise ValidationError("You cannot order from yourself", code="SELF_ORDER")
    producer = db.session.get(User, producer_id)
    if producer is None or not producer.can_sell:
        raise NotFoundError("Producer not found")
    if not items:
        raise ValidationError("At least one item required")

    lines = _merge_lines(items)
    products = {
        product.id: product
        for product in Product.query.filter(
            Product.id.in_(list(lines.keys())),
            Product.deleted_at.is_(None),
        ).with_for_update().all()
    }

    order_items = []
    subtotal = 0
    for product_id, line in lines.items():
        product = products.get(product_id)
        if product is None or product.user_id != producer_id:
            raise NotFoundError(f"Product {product_id} not found", code="PRODUCT_NOT_FOUND")
        if line["unit_price_cents"] is not None and line["unit_price_cents"] != product.price_cents:
            raise ConflictError(f"The price of {product.title} has changed", code="PRICE_CHANGED")
        if product.quantity_available is not None:
            if product.quantity_available < line["quantity"]:
                raise ConflictError(
                    f"Only {product.quantity_available} of {product.title} left", code="INSUFFICIENT_STOCK"
                )
            product.quantity_available -= line["quantity"]
        subtotal += product.price_cents * line["quantity"]
        order_items.append(OrderItem(
            product_id=product.id,
            quantity=line["quantity"],
            unit_price_cents=product.price_cents,
        ))

    delivery_fee = 0
    if fulfillment_type == FulfillmentType.DELIVERY:
        profile = producer.producer_profile
        if profile is None or not profile.offers_delivery:
            raise ValidationError("This producer does not deliver", code="DELIVERY_UNAVAILABLE")
        delivery_fee = profile.delivery_fee_cents or 0

    pickup_at = to_naive_utc(pickup_date) if pickup_date else None
    order = Order(
        buyer_id=buyer.id,
        producer_id=producer_id,
        status=OrderStatus.PENDING,
        fulfillment_type=fulfillment_type,
        total_cents=subtotal + delivery_fee,
        delivery_fee_cents=delivery_fee,
        notes=clean_optional(notes),
        via_cash=payment_method == "cash",
        pickup_date=pickup_at,
        pickup_code=generate_pickup_code(),
        resolution_window_ends_at=resolution_window_ends(pickup_at),
        items=order_items,
    )
    db.session.add(order)
    db.session.flush()
    notify(
        producer_id,
        "NEW_ORDER",
        "New order",
        f"{buyer.name or 'A buyer'} placed an order for ${order.total_cents / 100:.2f}.",
        link=f"/dashboard/orders/{order.id}",
    )
    return order


def get_order_for(user: User, order_id: int) -> Order:
    """Return an order visible to ``user`` (buyer, producer or admin).

    Orders the user has no part in are reported as not found.
    """
    order = Order.query.options(selectinload(Order.items)).filter_by(id=order_id).first()
    if order is None:
        raise NotFoundError("Order not found")
    if not user.can_admin and user.id not in (order.buyer_id, order.producer_id):
        raise NotFoundError("Order not found")
    return order


def list_orders(user: User, role: str = "buyer") -> List[Order]:
    query = Order.query.options(selectinload(Order.items))
    if role == "producer":
        query = query.filter(Order.producer_id == user.id)
    else:
        query = query.filter(Order.buyer_id == user.id)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()


def update_order_status(actor: User, order: Order, new_status: OrderStatus) -> Order:
    """Move ``order`` to ``new_status`` on behalf of its producer or an admin."""
    if order.producer_id != actor.id and not actor.can_admin:
        raise ForbiddenError()
    current = order.status
    if current == new_status:
        raise ValidationError(f"Order is already {new_status.value}", code="NO_CHANGE")
    if not is_valid_transition(current, new_status):
        raise ValidationError(
            f"Invalid status transition: {current.value} -> {new_status.value}", code="INVALID_TRANSITION"
        )
    if current == OrderStatus.PENDING and new_status == OrderStatus.PAID and not order.via_cash:
        raise ValidationError(
            "Card orders are marked paid when the payment is confirmed", code="INVALID_TRANSITION"
        )

    now = utcnow()
    order.status = new_status
    if new_status == OrderStatus.PAID:
        order.paid_at = now
    elif new_status == OrderStatus.FULFILLED:
        order.fulfilled_at = now
    elif new_status == OrderStatus.CANCELED:
        _restock(order)

    notify(
        order.buyer_id,
        "ORDER_STATUS",
        "Order update",
        f"Your order #{order.id} is now {new_status.value.lower()}.",
        link=f"/orders/{order.id}",
    )
    db.session.commit()
    logger.info("Order %s: %s -> %s by user %s", order.id, current.value, new_status.value, actor.id)
    return order


def _restock(order: Order) -> None:
    for item in order.items:
        product = item.product
        if product is not None and product.quantity_available is not None:
            product.quantity_available += item.quantity
