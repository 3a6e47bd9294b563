"""Marketplace listing search.

Search loads every live product matching the text and category filters,
annotates each with its distance from the searcher's ZIP, and sorts
nearby listings first. Listings outside the radius are still returned,
labelled ``farther_out``, so that sparse areas never show an empty
page.
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import joinedload

from ..models import Product
from ..schemas import ProductSchema
from . import geo_service
from .soft_delete_service import active_products

NEARBY = "nearby"
FARTHER_OUT = "farther_out"


def search_listings(
    user_zip: str,
    radius_miles: int,
    q: Optional[str] = None,
    category: Optional[str] = None,
    page: int = 1,
    page_size: int = 24,
) -> dict:
    """Search live products around ``user_zip``.

    Parameters
    ----------
    user_zip: str
        A validated five-digit ZIP.
    radius_miles: int
        Listings at or within this many miles are labelled ``nearby``.
    q: str, optional
        Case-insensitive substring matched against title, description
        and category.
    category: str, optional
        Exact category id.

    Returns
    -------
    dict
        ``listings`` for the requested page together with ``total``,
        ``page``, ``page_size``, ``user_zip`` and ``radius_miles``.
    """
    query = active_products().options(joinedload(Product.user))
    if q:
        term = q.strip()
        query = query.filter(or_(
            Product.title.icontains(term, autoescape=True),
            Product.description.icontains(term, autoescape=True),
            Product.category.icontains(term, autoescape=True),
        ))
    if category:
        query = query.filter(Product.category == category)

    products = query.order_by(Product.created_at.desc(), Product.id.desc()).all()
    ranked = geo_service.filter_by_zip_and_radius(
        user_zip, radius_miles, products, lambda product: product.user.zip_code
    )

    start = (page - 1) * page_size
    window = ranked[start:start + page_size]
    schema = ProductSchema()
    listings = []
    for row in window:
        listing = schema.dump(row["item"])
        listing["distance"] = row["distance"]
        listing["label"] = NEARBY if row["nearby"] else FARTHER_OUT
        listings.append(listing)

    return {
        "listings": listings,
        "user_zip": user_zip,
        "radius_miles": radius_miles,
        "total": len(ranked),
        "page": page,
        "page_size": page_size,
    }
