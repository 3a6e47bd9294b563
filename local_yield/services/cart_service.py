"""Server-side shopping cart.

Each user has at most one line per product. Quantities are clamped to
``1..999``. Checkout splits the cart by producer and creates one order
per producer, all in one transaction.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime
from typing import List, Optional

from ..db import db
from ..errors import ApiError, NotFoundError, ValidationError
from ..models import CartItem, FulfillmentType, Order, Product, User
from ..schemas import ProductSchema
from .order_service import create_order
from .soft_delete_service import active_products

logger = logging.getLogger(__name__)

MIN_QUANTITY = 1
MAX_QUANTITY = 999


def clamp_quantity(quantity: int) -> int:
    return max(MIN_QUANTITY, min(MAX_QUANTITY, int(quantity)))


def _lines(user: User) -> List[CartItem]:
    return (
        CartItem.query.join(Product, CartItem.product_id == Product.id)
        .filter(CartItem.user_id == user.id, Product.deleted_at.is_(None))
        .order_by(CartItem.added_at.asc(), CartItem.id.asc())
        .all()
    )


def get_cart(user: User) -> dict:
    """Cart lines with current prices and totals.

    ``single_producer_id`` is set when every line comes from the same
    producer and is ``None`` for an empty or mixed cart.
    """
    product_schema = ProductSchema(only=("id", "title", "price_cents", "unit", "image_url", "user_id", "quantity_available"))
    lines = []
    producers = set()
    total = 0
    for item in _lines(user):
        line_total = item.product.price_cents * item.quantity
        total += line_total
        producers.add(item.product.user_id)
        lines.append({
            "product_id": item.product_id,
            "quantity": item.quantity,
            "unit_price_cents": item.unit_price_cents,
            "price_changed": item.unit_price_cents not in (None, item.product.price_cents),
            "product": product_schema.dump(item.product),
            "line_total_cents": line_total,
        })
    return {
        "items": lines,
        "total_cents": total,
        "item_count": sum(line["quantity"] for line in lines),
        "single_producer_id": producers.pop() if len(producers) == 1 else None,
    }


def add_item(user: User, product_id: int, quantity: int = 1) -> CartItem:
    """Add ``quantity`` of a product, merging with an existing line."""
    product = active_products().filter(Product.id == product_id).first()
    if product is None:
        raise NotFoundError("Product not found")
    if product.user_id == user.id:
        raise ValidationError("You cannot buy your own product", code="SELF_ORDER")
    item = CartItem.query.filter_by(user_id=user.id, product_id=product_id).first()
    if item is None:
        item = CartItem(user_id=user.id, product_id=product_id, quantity=clamp_quantity(quantity))
        db.session.add(item)
    else:
        item.quantity = clamp_quantity(item.quantity + quantity)
    item.unit_price_cents = product.price_cents
    db.session.commit()
    return item


def set_quantity(user: User, product_id: int, quantity: int) -> Optional[CartItem]:
    """Set a line's quantity; zero or less removes the line.

    Editing a line also confirms the product's current price.
    """
    item = CartItem.query.filter_by(user_id=user.id, product_id=product_id).first()
    if item is None:
        raise NotFoundError("Item not in cart")
    if quantity <= 0:
        db.session.delete(item)
        db.session.commit()
        return None
    item.quantity = clamp_quantity(quantity)
    item.unit_price_cents = item.product.price_cents
    db.session.commit()
    return item


def remove_item(user: User, product_id: int) -> None:
    deleted = CartItem.query.filter_by(user_id=user.id, product_id=product_id).delete()
    if not deleted:
        raise NotFoundError("Item not in cart")
    db.session.commit()


def clear_cart(user: User, commit: bool = True) -> None:
    CartItem.query.filter_by(user_id=user.id).delete()
    if commit:
        db.session.commit()


def checkout(
    user: User,
    fulfillment_type: FulfillmentType = FulfillmentType.PICKUP,
    notes: Optional[str] = None,
    pickup_date: Optional[datetime] = None,
    payment_method: str = "cash",
) -> List[Order]:
    """Turn the cart into one order per producer and empty it.

    Either every order is created or none is.
    """
    by_producer: "OrderedDict[int, list]" = OrderedDict()
    for item in _lines(user):
        by_producer.setdefault(item.product.user_id, []).append({
            "product_id": item.product_id,
            "quantity": item.quantity,
            "unit_price_cents": item.unit_price_cents,
        })
    if not by_producer:
        raise ValidationError("Your cart is empty", code="EMPTY_CART")

    orders = []
    try:
        for producer_id, items in by_producer.items():
            orders.append(create_order(
                user, producer_id, items,
                fulfillment_type=fulfillment_type,
                notes=notes,
                pickup_date=pickup_date,
                payment_method=payment_method,
                commit=False,
            ))
        clear_cart(user, commit=False)
        db.session.commit()
    except ApiError:
        db.session.rollback()
        raise
    logger.info("Checkout by user %s created %d order(s)", user.id, len(orders))
    return orders
