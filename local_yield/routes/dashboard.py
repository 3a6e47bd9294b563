"""
Producer dashboard routes: badge counts, sales figures and shop settings.
"""

from __future__ import annotations

from flask import Blueprint, request

from ..api import ok, parse_json_body
from ..auth import require_auth, require_producer_or_admin
from ..errors import ValidationError
from ..rate_limit import rate_limit
from ..schemas import ProducerProfileInput, ProducerProfileSchema
from ..services import account_service, sales_service


dashboard_bp = Blueprint("dashboard", __name__)


@dashboard_bp.route("/dashboard/summary", methods=["GET"])
def summary():
    """Pending orders, unread notifications and reviews awaiting a decision."""
    user = require_auth()
    return ok(sales_service.dashboard_summary(user))


@dashboard_bp.route("/dashboard/sales", methods=["GET"])
def sales():
    """Sales for ``period`` (``today``, ``week`` or ``month``; default ``week``)."""
    user = require_producer_or_admin()
    period = request.args.get("period", "week")
    if period not in sales_service.PERIODS:
        raise ValidationError("period must be today, week or month")
    return ok(sales_service.sales_for_period(user, period))


@dashboard_bp.route("/dashboard/profile", methods=["GET"])
def get_profile():
    user = require_producer_or_admin()
    profile = account_service.get_or_create_producer_profile(user, commit=True)
    return ok(ProducerProfileSchema().dump(profile))


@dashboard_bp.route("/dashboard/profile", methods=["PATCH"])
@rate_limit()
def update_profile():
    """Update business details, delivery settings and the shop ZIP."""
    user = require_producer_or_admin()
    data = ProducerProfileInput().load(parse_json_body())
    profile = account_service.update_producer_profile(user, data)
    return ok(ProducerProfileSchema().dump(profile))
