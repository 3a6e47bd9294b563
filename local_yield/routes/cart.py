"""
Shopping cart routes.

The cart lives on the server, one line per product. Checkout turns it
into one order per producer.
"""

from __future__ import annotations

from flask import Blueprint

from ..api import ok, parse_json_body
from ..auth import require_auth
from ..rate_limit import rate_limit
from ..schemas import CartAddInput, CartUpdateInput, CheckoutInput, OrderSchema
from ..services import cart_service


cart_bp = Blueprint("cart", __name__)


@cart_bp.route("/cart", methods=["GET"])
def get_cart():
    user = require_auth()
    return ok(cart_service.get_cart(user))


@cart_bp.route("/cart", methods=["POST"])
@rate_limit()
def add_to_cart():
    """Add a product. Adding a product already in the cart increases its quantity."""
    user = require_auth()
    data = CartAddInput().load(parse_json_body())
    cart_service.add_item(user, data["product_id"], data["quantity"])
    return ok(cart_service.get_cart(user), 201)


@cart_bp.route("/cart/<int:product_id>", methods=["PATCH"])
@rate_limit()
def update_cart_item(product_id: int):
    """Set a line's quantity; ``0`` removes the line."""
    user = require_auth()
    data = CartUpdateInput().load(parse_json_body())
    cart_service.set_quantity(user, product_id, data["quantity"])
    return ok(cart_service.get_cart(user))


@cart_bp.route("/cart/<int:product_id>", methods=["DELETE"])
@rate_limit()
def remove_cart_item(product_id: int):
    user = require_auth()
    cart_service.remove_item(user, product_id)
    return ok(cart_service.get_cart(user))


@cart_bp.route("/cart", methods=["DELETE"])
@rate_limit()
def clear_cart():
    user = require_auth()
    cart_service.clear_cart(user)
    return ok(cart_service.get_cart(user))


@cart_bp.route("/cart/checkout", methods=["POST"])
@rate_limit()
def checkout():
    """Place one order per producer in the cart and empty the cart."""
    user = require_auth()
    data = CheckoutInput().load(parse_json_body())
    orders = cart_service.checkout(
        user,
        fulfillment_type=data["fulfillment_type"],
        notes=data.get("notes"),
        pickup_date=data.get("pickup_date"),
        payment_method=data["payment_method"],
    )
    return ok({"orders": OrderSchema(many=True).dump(orders)}, 201)
