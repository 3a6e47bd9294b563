"""Moderation reports and order disputes.

Anyone signed in may report a caregiver, a product or an order. A report
on an order is a dispute: only the order's buyer or producer may open
one, and it must say what went wrong and what would make it right.
Admins work the queue, and resolving a dispute with store credit writes
a credit ledger entry for the buyer.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import or_

from ..db import db
from ..errors import NotFoundError, ValidationError
from ..models import Order, Product, Report, ReportStatus, User
from ..util.sanitization import clean_optional
from ..util.timeutil import utcnow
from .admin_log_service import log_admin_action
from .credit_service import issue_credit
from .notification_service import notify
from .soft_delete_service import active_products

logger = logging.getLogger(__name__)


def _entity_exists(entity_type: str, entity_id: int) -> Optional[object]:
    if entity_type == "caregiver":
        user = db.session.get(User, entity_id)
        return user if user is not None and user.is_caregiver else None
    if entity_type == "product":
        return active_products().filter(Product.id == entity_id).first()
    if entity_type == "order":
        return db.session.get(Order, entity_id)
    return None


def create_report(reporter: User, data: dict) -> Report:
    entity_type = data["entity_type"]
    entity = _entity_exists(entity_type, data["entity_id"])
    if entity is None:
        raise NotFoundError(f"{entity_type.capitalize()} not found", code="ENTITY_NOT_FOUND")

    if entity_type == "order":
        if reporter.id not in (entity.buyer_id, entity.producer_id):
            raise NotFoundError("Order not found", code="ENTITY_NOT_FOUND")
        if not (data.get("problem_type") and data.get("proposed_outcome")):
            raise ValidationError("problem_type and proposed_outcome are required for order reports")

    report = Report(
        reporter_id=reporter.id,
        reason=data["reason"],
        description=clean_optional(data.get("description")),
        entity_type=entity_type,
        entity_id=data["entity_id"],
        problem_type=data.get("problem_type") if entity_type == "order" else None,
        proposed_outcome=data.get("proposed_outcome") if entity_type == "order" else None,
    )
    db.session.add(report)
    if entity_type == "order":
        other = entity.producer_id if reporter.id == entity.buyer_id else entity.buyer_id
        notify(
            other,
            "DISPUTE_OPENED",
            "A problem was reported",
            f"A problem was reported on order #{entity.id}. Our team will review it.",
            link=f"/orders/{entity.id}",
        )
    db.session.commit()
    logger.info("Report %s opened by user %s on %s#%s", report.id, reporter.id, entity_type, report.entity_id)
    return report


def get_report_for(user: User, report_id: int) -> Report:
    report = db.session.get(Report, report_id)
    if report is None or (report.reporter_id != user.id and not user.can_admin):
        raise NotFoundError("Report not found")
    return report


def reports_for_user(user: User, scope: str = "mine"):
    """Query of the user's own reports, or disputes on orders they sold."""
    if scope == "producer":
        order_ids = db.select(Order.id).where(Order.producer_id == user.id)
        query = Report.query.filter(Report.entity_type == "order", Report.entity_id.in_(order_ids))
    else:
        query = Report.query.filter(Report.reporter_id == user.id)
    return query.order_by(Report.created_at.desc(), Report.id.desc())


def admin_report_query(status: Optional[str] = None, entity_type: Optional[str] = None,
                       search: Optional[str] = None):
    query = Report.query
    if status:
        query = query.filter(Report.status == ReportStatus(status))
    if entity_type:
        query = query.filter(Report.entity_type == entity_type)
    if search:
        term = search.strip()
        query = query.filter(or_(
            Report.description.icontains(term, autoescape=True),
            Report.reason.icontains(term, autoescape=True),
        ))
    return query.order_by(Report.created_at.desc(), Report.id.desc())


def update_report_admin(admin: User, report: Report, data: dict) -> Report:
    """Assign, review or resolve a report.

    ``assigned_to_id`` may be a user id, ``"me"`` or ``None`` (unassign).
    Resolving an order dispute with ``STORE_CREDIT`` issues the credit to
    the order's buyer, once: repeating the resolution issues nothing more.
    """
    previous_status = report.status
    if "assigned_to_id" in data:
        assignee = data["assigned_to_id"]
        if assignee == "me":
            report.assigned_to_id = admin.id
        elif assignee is None:
            report.assigned_to_id = None
        else:
            if db.session.get(User, assignee) is None:
                raise ValidationError("Assignee not found", fields={"assigned_to_id": ["Unknown user"]})
            report.assigned_to_id = assignee
    if "status" in data:
        report.status = data["status"]
    for key in ("resolution_outcome", "resolution_amount_cents"):
        if key in data:
            setattr(report, key, data[key])
    if "resolution_note" in data:
        report.resolution_note = clean_optional(data["resolution_note"])

    report.reviewed_by_id = admin.id
    report.reviewed_at = utcnow()

    amount = data.get("resolution_amount_cents")
    if (
        data.get("status") == ReportStatus.RESOLVED
        and previous_status != ReportStatus.RESOLVED
        and data.get("resolution_outcome") == "STORE_CREDIT"
        and report.entity_type == "order"
        and amount
    ):
        order = db.session.get(Order, report.entity_id)
        if order is not None:
            issue_credit(
                order.buyer_id, order.producer_id, amount, "DISPUTE_RESOLUTION",
                created_by_id=admin.id, order_id=order.id, report_id=report.id,
            )

    log_admin_action(admin, "REPORT_UPDATE", "report", report.id, {
        "previous_status": previous_status.value,
        "new_status": report.status.value,
        "resolution_outcome": report.resolution_outcome,
        "resolution_amount_cents": report.resolution_amount_cents,
    })
    db.session.commit()
    return report
