"""Product categories.

Products carry a category id: one of the predefined subcategory ids
below, ``other``, or the name of a custom category proposed by a
producer. Custom categories are visible to everyone once an admin
approves them; until then only their creator may use them.
"""
from __future__ import annotations

from typing import List, Optional

from sqlalchemy import func, or_

from ..db import db
from ..errors import ConflictError, ValidationError
from ..models import CustomCategory, CustomCategoryStatus, User
from ..util.sanitization import strip_tags
from ..util.timeutil import utcnow
from .admin_log_service import log_admin_action


def _sub(sub_id: str, label: str) -> dict:
    return {
        "id": sub_id,
        "label": label,
        "default_image_url": f"https://placehold.co/200x200?text={label.split(' ')[0]}",
    }


PRODUCT_CATEGORY_GROUPS: List[dict] = [
    {"id": "produce", "label": "Produce", "subcategories": [
        _sub("fruits", "Fruits"), _sub("vegetables", "Vegetables"), _sub("herbs", "Herbs")]},
    {"id": "dairy", "label": "Dairy", "subcategories": [
        _sub("milk", "Milk"), _sub("cheese", "Cheese"), _sub("yogurt", "Yogurt")]},
    {"id": "meat", "label": "Meat", "subcategories": [
        _sub("poultry", "Poultry"), _sub("beef", "Beef"), _sub("pork", "Pork")]},
    {"id": "baked_goods", "label": "Baked Goods", "subcategories": [
        _sub("bread", "Bread"), _sub("pastries", "Pastries"), _sub("cakes", "Cakes")]},
    {"id": "beverages", "label": "Beverages", "subcategories": [
        _sub("juices", "Juices"), _sub("coffee", "Coffee"), _sub("tea", "Tea")]},
    {"id": "preserves", "label": "Preserves", "subcategories": [
        _sub("jams", "Jams"), _sub("pickles", "Pickles"), _sub("honey", "Honey")]},
    {"id": "handcrafted", "label": "Handcrafted", "subcategories": [
        _sub("jewelry", "Jewelry"), _sub("pottery", "Pottery"), _sub("candles", "Candles")]},
    {"id": "artists_makers", "label": "Artists & makers", "subcategories": [
        _sub("jewelry", "Jewelry"), _sub("pottery", "Pottery"), _sub("candles", "Candles"),
        _sub("art_prints", "Art & prints"), _sub("crafts", "Crafts")]},
    {"id": "prepared_foods", "label": "Prepared Foods", "subcategories": [
        _sub("sauces", "Sauces"), _sub("meals", "Meals"), _sub("snacks", "Snacks")]},
]

PREDEFINED_GROUP_IDS = [group["id"] for group in PRODUCT_CATEGORY_GROUPS]

ALLOWED_CATEGORY_IDS = sorted(
    {sub["id"] for group in PRODUCT_CATEGORY_GROUPS for sub in group["subcategories"]}
) + ["other"]

PRODUCT_UNITS = ("each", "lb", "bunch", "dozen", "jar", "box")


def custom_categories_for(user: Optional[User]) -> List[CustomCategory]:
    """Approved custom categories plus the user's own pending ones."""
    query = CustomCategory.query
    visible = CustomCategory.status == CustomCategoryStatus.APPROVED
    if user is not None:
        visible = or_(
            visible,
            (CustomCategory.created_by_id == user.id)
            & (CustomCategory.status == CustomCategoryStatus.PENDING),
        )
    return query.filter(visible).order_by(CustomCategory.name.asc()).all()


def resolve_category(category: Optional[str], user: User) -> str:
    """Validate a product category for ``user`` and return the value to store.

    Raises ``ValidationError`` for a category the user may not use.
    """
    if not category:
        return "other"
    category = category.strip()
    if category in ALLOWED_CATEGORY_IDS:
        return category
    for custom in custom_categories_for(user):
        if category.lower() in (custom.name.lower(), custom.display_name.lower()):
            return custom.display_name
    raise ValidationError("Unknown category", fields={"category": ["Unknown category"]})


def create_custom_category(user: User, name: str, group_id: Optional[str] = None,
                           default_image_url: Optional[str] = None) -> CustomCategory:
    """Propose a new category; it stays ``PENDING`` until an admin decides."""
    name = strip_tags(name).strip()
    if not name:
        raise ValidationError("name is required", fields={"name": ["Required"]})
    if group_id is not None and group_id not in PREDEFINED_GROUP_IDS:
        raise ValidationError("Unknown group", fields={"group_id": ["Unknown group"]})
    if name.lower() in ALLOWED_CATEGORY_IDS:
        raise ConflictError("Category already exists", code="CATEGORY_EXISTS")
    existing = CustomCategory.query.filter(
        func.lower(CustomCategory.name) == name.lower(),
        CustomCategory.status != CustomCategoryStatus.REJECTED,
    ).first()
    if existing is not None:
        raise ConflictError("Category already exists", code="CATEGORY_EXISTS")
    category = CustomCategory(
        name=name,
        group_id=group_id,
        default_image_url=default_image_url,
        created_by_id=user.id,
    )
    db.session.add(category)
    db.session.commit()
    return category


def list_custom_categories(status: Optional[str] = None, search: Optional[str] = None):
    """Query of custom categories for the admin queue, oldest first."""
    query = CustomCategory.query
    if status:
        query = query.filter(CustomCategory.status == CustomCategoryStatus(status))
    if search:
        query = query.filter(CustomCategory.name.icontains(search.strip(), autoescape=True))
    return query.order_by(CustomCategory.created_at.asc(), CustomCategory.id.asc())


def review_custom_category(admin: User, category: CustomCategory, status: Optional[str] = None,
                           corrected_name: Optional[str] = None, has_corrected_name: bool = False) -> CustomCategory:
    """Approve or reject a pending category and/or correct its name.

    A category that has already been approved or rejected cannot change
    status again.
    """
    details = {}
    if status is not None:
        if category.status != CustomCategoryStatus.PENDING:
            raise ValidationError(
                f"Category already {category.status.value.lower()}", code="ALREADY_DECIDED"
            )
        category.status = CustomCategoryStatus(status)
        if category.status == CustomCategoryStatus.APPROVED:
            category.approved_at = utcnow()
        details["status"] = status
    if has_corrected_name:
        cleaned = strip_tags(corrected_name).strip() if corrected_name else None
        category.corrected_name = cleaned or None
        details["corrected_name"] = category.corrected_name
    action = {
        "APPROVED": "CATEGORY_APPROVE",
        "REJECTED": "CATEGORY_REJECT",
    }.get(status, "CATEGORY_RENAME")
    log_admin_action(admin, action, "custom_category", category.id, details)
    db.session.commit()
    return category
