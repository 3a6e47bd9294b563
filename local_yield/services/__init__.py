"""Service layer for The Local Yield.

This package contains business logic that sits between the Flask route
handlers and the database models. Separating services into their own
modules keeps the routes thin and reusable, and makes the core rules
(order transactions, review moderation, booking overlap, distance
ranking) easy to unit test.

Nothing in this package performs any HTTP handling. Services return
plain Python data structures or database objects, and raise the
exceptions defined in ``local_yield.errors`` when something goes wrong.
"""

from .cart_service import checkout
from .geo_service import distance_between_zips, filter_by_zip_and_radius, lookup_zip, validate_zip
from .listing_service import search_listings
from .order_service import create_order, update_order_status
from .review_service import average_rating, check_resolution_window
from .sales_service import dashboard_summary, sales_for_period, summarize_sales
from .soft_delete_service import soft_delete_product

__all__ = [
    "average_rating",
    "check_resolution_window",
    "checkout",
    "create_order",
    "dashboard_summary",
    "distance_between_zips",
    "filter_by_zip_and_radius",
    "lookup_zip",
    "sales_for_period",
    "search_listings",
    "soft_delete_product",
    "summarize_sales",
    "update_order_status",
    "validate_zip",
]
