"""Producer product management."""
from __future__ import annotations

from ..db import db
from ..errors import ForbiddenError, NotFoundError
from ..models import Product, User
from ..util.sanitization import clean_optional, strip_tags
from .catalog_service import resolve_category
from .soft_delete_service import active_products, soft_delete_product

DEFAULT_DESCRIPTION = "No description."


def get_active_product(product_id: int) -> Product:
    product = active_products().filter(Product.id == product_id).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def get_owned_product(user: User, product_id: int) -> Product:
    """Return a live product the user owns (admins may touch any)."""
    product = get_active_product(product_id)
    if product.user_id != user.id and not user.can_admin:
        raise ForbiddenError()
    return product


def list_own_products(user: User):
    return (
        active_products()
        .filter(Product.user_id == user.id)
        .order_by(Product.created_at.desc(), Product.id.desc())
        .all()
    )


def create_product(user: User, data: dict) -> Product:
    product = Product(
        user_id=user.id,
        title=strip_tags(data["title"]),
        price_cents=data["price_cents"],
        description=clean_optional(data.get("description")) or DEFAULT_DESCRIPTION,
        category=resolve_category(data.get("category"), user),
        unit=data.get("unit") or "each",
        image_url=data.get("image_url"),
        delivery=data.get("delivery", False),
        pickup=data.get("pickup", True),
        quantity_available=data.get("quantity_available"),
    )
    db.session.add(product)
    db.session.commit()
    return product


def update_product(user: User, product: Product, data: dict) -> Product:
    """Apply a partial update; only keys present in ``data`` change."""
    if "title" in data:
        product.title = strip_tags(data["title"])
    if "description" in data:
        product.description = clean_optional(data["description"]) or DEFAULT_DESCRIPTION
    if "category" in data:
        product.category = resolve_category(data["category"], user)
    for key in ("price_cents", "unit", "image_url", "delivery", "pickup", "quantity_available"):
        if key in data:
            setattr(product, key, data[key])
    db.session.commit()
    return product


def delete_product(product: Product) -> None:
    soft_delete_product(product)
    db.session.commit()
