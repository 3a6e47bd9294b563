"""
Marketplace search route.

``GET /api/listings`` is public. Results are ranked around a ZIP code:
listings within the radius first, then everything farther out.
"""

from __future__ import annotations

from flask import Blueprint, current_app, request

from ..api import int_arg, ok
from ..auth import get_current_user
from ..errors import ValidationError
from ..services import geo_service
from ..services.listing_service import search_listings


listings_bp = Blueprint("listings", __name__)

MAX_PAGE_SIZE = 100


@listings_bp.route("/listings", methods=["GET"])
def list_listings():
    """Search listings by ZIP, radius, text and category.

    ``zip`` defaults to the signed-in user's ZIP and must be five digits
    when given. ``radius`` is clamped to the configured maximum.
    """
    raw_zip = request.args.get("zip")
    if raw_zip is not None and raw_zip.strip():
        if not geo_service.validate_zip(raw_zip):
            raise ValidationError("ZIP must be 5 digits", code="INVALID_ZIP")
        user_zip = raw_zip.strip()
    else:
        user = get_current_user()
        user_zip = user.zip_code if user is not None else None
        if not user_zip:
            raise ValidationError("zip is required", code="INVALID_ZIP")

    config = current_app.config
    radius = int_arg(
        "radius", config["DEFAULT_RADIUS_MILES"], minimum=1, maximum=config["MAX_RADIUS_MILES"]
    )
    page = int_arg("page", 1, minimum=1)
    page_size = int_arg(
        "page_size", config["LISTINGS_PAGE_SIZE"], minimum=1, maximum=MAX_PAGE_SIZE
    )
    result = search_listings(
        user_zip,
        radius,
        q=request.args.get("q") or None,
        category=request.args.get("category") or None,
        page=page,
        page_size=page_size,
    )
    return ok(result)
