"""
Routes for managing products.

Producers (and admins) create, update and soft delete their listings.
Any visitor may fetch a live product by id.
"""

from __future__ import annotations

from flask import Blueprint

from ..api import ok, parse_json_body
from ..auth import require_producer_or_admin
from ..rate_limit import rate_limit
from ..schemas import ProductInput, ProductSchema
from ..services import product_service


products_bp = Blueprint("products", __name__)


@products_bp.route("/products", methods=["GET"])
def list_products():
    """List the caller's own live products, newest first."""
    user = require_producer_or_admin()
    products = product_service.list_own_products(user)
    return ok(ProductSchema(many=True).dump(products))


@products_bp.route("/products", methods=["POST"])
@rate_limit()
def create_product():
    """Create a product.

    Requires ``title`` and ``price_cents``. ``quantity_available`` of
    ``null`` means stock is not tracked.
    """
    user = require_producer_or_admin()
    data = ProductInput().load(parse_json_body())
    product = product_service.create_product(user, data)
    return ok(ProductSchema().dump(product), 201)


@products_bp.route("/products/<int:product_id>", methods=["GET"])
def get_product(product_id: int):
    product = product_service.get_active_product(product_id)
    return ok(ProductSchema().dump(product))


@products_bp.route("/products/<int:product_id>", methods=["PATCH"])
@rate_limit()
def update_product(product_id: int):
    """Partially update a product. Only the owner or an admin may edit."""
    user = require_producer_or_admin()
    product = product_service.get_owned_product(user, product_id)
    data = ProductInput(partial=True).load(parse_json_body())
    product = product_service.update_product(user, product, data)
    return ok(ProductSchema().dump(product))


@products_bp.route("/products/<int:product_id>", methods=["DELETE"])
@rate_limit()
def delete_product(product_id: int):
    """Soft delete a product. It disappears from search and checkout."""
    user = require_producer_or_admin()
    product = product_service.get_owned_product(user, product_id)
    product_service.delete_product(product)
    return ok({"id": product_id, "deleted": True})
