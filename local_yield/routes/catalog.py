"""
Catalog routes: product categories and producer-proposed categories.
"""

from __future__ import annotations

from flask import Blueprint

from ..api import ok, parse_json_body
from ..auth import get_current_user, require_producer_or_admin
from ..rate_limit import rate_limit
from ..schemas import CustomCategoryInput, CustomCategorySchema
from ..services import catalog_service


catalog_bp = Blueprint("catalog", __name__)


@catalog_bp.route("/catalog/categories", methods=["GET"])
def list_categories():
    """Predefined groups plus approved custom categories.

    A signed-in producer also sees their own pending proposals.
    """
    custom = catalog_service.custom_categories_for(get_current_user())
    return ok({
        "groups": catalog_service.PRODUCT_CATEGORY_GROUPS,
        "category_ids": catalog_service.ALLOWED_CATEGORY_IDS,
        "units": list(catalog_service.PRODUCT_UNITS),
        "custom_categories": CustomCategorySchema(
            many=True, only=("id", "name", "corrected_name", "group_id", "default_image_url", "status")
        ).dump(custom),
    })


@catalog_bp.route("/catalog/custom-categories", methods=["POST"])
@rate_limit()
def create_custom_category():
    """Propose a new category. It is usable by its creator straight away
    and by everyone once an admin approves it."""
    user = require_producer_or_admin()
    data = CustomCategoryInput().load(parse_json_body())
    category = catalog_service.create_custom_category(
        user, data["name"], data.get("group_id"), data.get("default_image_url")
    )
    return ok(CustomCategorySchema().dump(category), 201)
