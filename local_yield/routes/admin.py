"""
Admin moderation routes.

Every route requires the ``ADMIN`` role. Actions that change data are
written to the admin action log.
"""

from __future__ import annotations

from flask import Blueprint, request

from ..api import int_arg, ok, paginate, parse_json_body
from ..auth import require_admin
from ..db import db
from ..errors import NotFoundError, ValidationError
from ..models import (
    AdminActionLog,
    CustomCategory,
    CustomCategoryStatus,
    Product,
    Report,
    ReportStatus,
    ReviewStatus,
)
from ..rate_limit import rate_limit
from ..schemas import (
    REPORT_ENTITY_TYPES,
    AdminActionLogSchema,
    CustomCategoryReviewInput,
    CustomCategorySchema,
    GuidanceInput,
    ProductSchema,
    ReportSchema,
    ReviewSchema,
    UpdateReportAdminInput,
    UserSchema,
)
from ..services import account_service, catalog_service, report_service, review_service
from ..services.admin_log_service import log_admin_action
from ..services.soft_delete_service import active_products, soft_delete_product


admin_bp = Blueprint("admin", __name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _page_args():
    page = int_arg("page", 1, minimum=1)
    limit = int_arg("limit", DEFAULT_PAGE_SIZE, minimum=1, maximum=MAX_PAGE_SIZE)
    return page, limit


def _status_arg(enum_cls):
    raw = request.args.get("status")
    if not raw:
        return None
    if raw not in enum_cls.__members__:
        raise ValidationError(f"Unknown status: {raw}")
    return raw


def _page(key: str, items, total: int, page: int, limit: int) -> dict:
    return {key: items, "total": total, "page": page, "limit": limit}


# --------------------------------
# Users and listings
# --------------------------------

@admin_bp.route("/admin/users", methods=["GET"])
def list_users():
    require_admin()
    page, limit = _page_args()
    users, total = paginate(account_service.search_users(request.args.get("search")), page, limit)
    return ok(_page("users", UserSchema(many=True).dump(users), total, page, limit))


@admin_bp.route("/admin/listings", methods=["GET"])
def list_listings():
    require_admin()
    page, limit = _page_args()
    query = active_products()
    search = request.args.get("search")
    if search:
        query = query.filter(Product.title.icontains(search.strip(), autoescape=True))
    query = query.order_by(Product.created_at.desc(), Product.id.desc())
    products, total = paginate(query, page, limit)
    return ok(_page("listings", ProductSchema(many=True).dump(products), total, page, limit))


@admin_bp.route("/admin/listings/<int:product_id>", methods=["DELETE"])
@rate_limit()
def delete_listing(product_id: int):
    """Soft delete any listing."""
    admin = require_admin()
    product = active_products().filter(Product.id == product_id).first()
    if product is None:
        raise NotFoundError("Listing not found")
    soft_delete_product(product)
    log_admin_action(admin, "LISTING_DELETE", "product", product.id, {"title": product.title})
    db.session.commit()
    return ok({"id": product_id, "deleted": True})


# --------------------------------
# Reviews
# --------------------------------

@admin_bp.route("/admin/reviews", methods=["GET"])
def list_reviews():
    """Reviews for moderation; ``status=FLAGGED`` gives the flag queue."""
    require_admin()
    page, limit = _page_args()
    query = review_service.admin_review_query(_status_arg(ReviewStatus))
    reviews, total = paginate(query, page, limit)
    return ok(_page("reviews", ReviewSchema(many=True).dump(reviews), total, page, limit))


@admin_bp.route("/admin/reviews/<int:review_id>/approve-flag", methods=["POST"])
@rate_limit()
def approve_flag(review_id: int):
    """Uphold the review despite the flag and publish it."""
    admin = require_admin()
    review = review_service.admin_approve_flag(admin, review_service.get_review(review_id))
    return ok(ReviewSchema().dump(review))


@admin_bp.route("/admin/reviews/<int:review_id>/dismiss-flag", methods=["POST"])
@rate_limit()
def dismiss_flag(review_id: int):
    """Drop the flag and return the review to the reviewee as pending."""
    admin = require_admin()
    review = review_service.admin_dismiss_flag(admin, review_service.get_review(review_id))
    return ok(ReviewSchema().dump(review))


@admin_bp.route("/admin/reviews/<int:review_id>/hide", methods=["POST"])
@rate_limit()
def hide_review(review_id: int):
    admin = require_admin()
    review = review_service.admin_hide(admin, review_service.get_review(review_id))
    return ok(ReviewSchema().dump(review))


@admin_bp.route("/admin/reviews/<int:review_id>/guidance", methods=["PATCH"])
@rate_limit()
def review_guidance(review_id: int):
    """Set or clear (``null``) the guidance shown to the review's parties."""
    admin = require_admin()
    review = review_service.get_review(review_id)
    data = GuidanceInput().load(parse_json_body())
    review = review_service.admin_set_guidance(admin, review, data["guidance"])
    return ok(ReviewSchema().dump(review))


# --------------------------------
# Reports
# --------------------------------

@admin_bp.route("/admin/reports", methods=["GET"])
def list_reports():
    require_admin()
    page, limit = _page_args()
    entity_type = request.args.get("entity_type")
    if entity_type and entity_type not in REPORT_ENTITY_TYPES:
        raise ValidationError(f"Unknown entity_type: {entity_type}")
    query = report_service.admin_report_query(
        _status_arg(ReportStatus), entity_type, request.args.get("search")
    )
    reports, total = paginate(query, page, limit)
    return ok(_page("reports", ReportSchema(many=True).dump(reports), total, page, limit))


@admin_bp.route("/admin/reports/<int:report_id>", methods=["GET"])
def get_report(report_id: int):
    require_admin()
    report = db.session.get(Report, report_id)
    if report is None:
        raise NotFoundError("Report not found")
    return ok(ReportSchema().dump(report))


@admin_bp.route("/admin/reports/<int:report_id>", methods=["PATCH"])
@rate_limit()
def update_report(report_id: int):
    """Assign (``assigned_to_id`` may be ``"me"``), review or resolve a report."""
    admin = require_admin()
    report = db.session.get(Report, report_id)
    if report is None:
        raise NotFoundError("Report not found")
    data = UpdateReportAdminInput().load(parse_json_body())
    report = report_service.update_report_admin(admin, report, data)
    return ok(ReportSchema().dump(report))


# --------------------------------
# Custom categories
# --------------------------------

@admin_bp.route("/admin/custom-categories", methods=["GET"])
def list_custom_categories():
    require_admin()
    page, limit = _page_args()
    query = catalog_service.list_custom_categories(
        _status_arg(CustomCategoryStatus), request.args.get("search")
    )
    categories, total = paginate(query, page, limit)
    return ok(_page("categories", CustomCategorySchema(many=True).dump(categories), total, page, limit))


@admin_bp.route("/admin/custom-categories/<int:category_id>", methods=["PATCH"])
@rate_limit()
def review_custom_category(category_id: int):
    """Approve or reject a proposed category and/or correct its name."""
    admin = require_admin()
    category = db.session.get(CustomCategory, category_id)
    if category is None:
        raise NotFoundError("Category not found")
    data = CustomCategoryReviewInput().load(parse_json_body())
    category = catalog_service.review_custom_category(
        admin,
        category,
        status=data.get("status"),
        corrected_name=data.get("corrected_name"),
        has_corrected_name="corrected_name" in data,
    )
    return ok(CustomCategorySchema().dump(category))


# --------------------------------
# Audit log
# --------------------------------

@admin_bp.route("/admin/audit-log", methods=["GET"])
def audit_log():
    require_admin()
    page, limit = _page_args()
    query = AdminActionLog.query.order_by(AdminActionLog.created_at.desc(), AdminActionLog.id.desc())
    entries, total = paginate(query, page, limit)
    return ok(_page("entries", AdminActionLogSchema(many=True).dump(entries), total, page, limit))
