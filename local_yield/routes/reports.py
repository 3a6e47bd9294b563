"""
Report and dispute routes for signed-in users.

The admin side of the queue lives in :mod:`local_yield.routes.admin`.
"""

from __future__ import annotations

from flask import Blueprint, request

from ..api import int_arg, ok, paginate, parse_json_body
from ..auth import require_auth
from ..errors import ValidationError
from ..rate_limit import rate_limit
from ..schemas import CreateReportInput, ReportSchema
from ..services import report_service


reports_bp = Blueprint("reports", __name__)

REPORTS_PAGE_SIZE = 20


@reports_bp.route("/reports", methods=["POST"])
@rate_limit()
def create_report():
    """Report a caregiver, product or order.

    Reports on orders are disputes and need ``problem_type`` and
    ``proposed_outcome``; only the order's buyer or producer may file one.
    """
    user = require_auth()
    data = CreateReportInput().load(parse_json_body())
    report = report_service.create_report(user, data)
    return ok(ReportSchema().dump(report), 201)


@reports_bp.route("/reports", methods=["GET"])
def list_reports():
    """``scope=mine`` (default) lists the caller's reports; ``scope=producer``
    lists disputes on orders the caller sold."""
    user = require_auth()
    scope = request.args.get("scope", "mine")
    if scope not in ("mine", "producer"):
        raise ValidationError("scope must be mine or producer")
    page = int_arg("page", 1, minimum=1)
    reports, total = paginate(report_service.reports_for_user(user, scope), page, REPORTS_PAGE_SIZE)
    return ok({
        "reports": ReportSchema(many=True).dump(reports),
        "total": total,
        "page": page,
        "page_size": REPORTS_PAGE_SIZE,
    })


@reports_bp.route("/reports/<int:report_id>", methods=["GET"])
def get_report(report_id: int):
    user = require_auth()
    return ok(ReportSchema().dump(report_service.get_report_for(user, report_id)))
