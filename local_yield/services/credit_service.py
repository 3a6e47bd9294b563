"""Store credit.

Credit is scoped to one producer: a buyer can only spend it in the shop
that issued it. The balance is the sum of signed ledger entries.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import func

from ..db import db
from ..errors import ForbiddenError, ValidationError
from ..models import CreditLedger, Order, OrderStatus, User
from .notification_service import notify

logger = logging.getLogger(__name__)

CREDIT_REASONS = ("DISPUTE_RESOLUTION", "GOODWILL", "ADJUSTMENT")
LEDGER_LIMIT = 50


def issue_credit(user_id: int, producer_id: int, amount_cents: int, reason: str,
                 created_by_id: int, order_id: Optional[int] = None,
                 report_id: Optional[int] = None) -> CreditLedger:
    """Add a ledger entry and notify the buyer. The caller commits."""
    if amount_cents <= 0:
        raise ValidationError("Amount must be positive")
    entry = CreditLedger(
        user_id=user_id,
        producer_id=producer_id,
        amount_cents=amount_cents,
        reason=reason,
        order_id=order_id,
        report_id=report_id,
        created_by_id=created_by_id,
    )
    db.session.add(entry)
    notify(
        user_id,
        "STORE_CREDIT",
        "Store credit issued",
        f"You received ${amount_cents / 100:.2f} in store credit.",
        link="/credits",
    )
    logger.info("Issued %s cents credit to user %s (producer %s)", amount_cents, user_id, producer_id)
    return entry


def issue_order_credit(actor: User, order: Order, amount_cents: int, reason: str,
                       report_id: Optional[int] = None) -> CreditLedger:
    """Credit the buyer of ``order`` on behalf of its producer or an admin.

    Producers may not exceed the order total; admins may.
    """
    is_admin = actor.can_admin
    if not is_admin and order.producer_id != actor.id:
        raise ForbiddenError("Only the producer or admin can issue credit for this order")
    if order.buyer_id == order.producer_id:
        raise ValidationError("Cannot issue credit to yourself")
    if order.status not in (OrderStatus.PAID, OrderStatus.FULFILLED):
        raise ValidationError("Credit can only be issued for PAID or FULFILLED orders")
    if reason not in CREDIT_REASONS:
        raise ValidationError("Unknown credit reason", fields={"reason": ["Unknown credit reason"]})
    if reason == "DISPUTE_RESOLUTION" and not report_id:
        raise ValidationError("report_id required for DISPUTE_RESOLUTION")
    if not is_admin and amount_cents > order.total_cents:
        raise ValidationError(f"Amount cannot exceed order total (${order.total_cents / 100:.2f})")
    entry = issue_credit(
        order.buyer_id, order.producer_id, amount_cents, reason,
        created_by_id=actor.id, order_id=order.id, report_id=report_id,
    )
    db.session.commit()
    return entry


def get_balance(user_id: int, producer_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(CreditLedger.amount_cents), 0))
        .filter(CreditLedger.user_id == user_id, CreditLedger.producer_id == producer_id)
        .scalar()
    )
    return int(total or 0)


def get_ledger(user_id: int, producer_id: Optional[int] = None) -> List[CreditLedger]:
    query = CreditLedger.query.filter_by(user_id=user_id)
    if producer_id is not None:
        query = query.filter_by(producer_id=producer_id)
    return (
        query.order_by(CreditLedger.created_at.desc(), CreditLedger.id.desc())
        .limit(LEDGER_LIMIT)
        .all()
    )
