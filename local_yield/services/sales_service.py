"""Producer dashboard figures.

These functions encapsulate the arithmetic behind the producer
dashboard: what is waiting for attention right now, and how much was
sold over a recent period. Keeping them out of the route handlers keeps
the handlers thin and the sums easy to unit test.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from ..models import Order, OrderStatus, Review, ReviewStatus, User
from ..util.timeutil import utcnow
from .notification_service import unread_count

PERIODS = ("today", "week", "month")
TOP_PRODUCTS = 5

# Orders in these states never turned into money.
_EXCLUDED = (OrderStatus.CANCELED, OrderStatus.REFUNDED)


def period_bounds(period: str, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Return ``(start, end)`` for ``today``, ``week`` or ``month``.

    The start is midnight (UTC) of the first day in the period; the end
    is ``now``.

    Parameters
    ----------
    period: str
        One of :data:`PERIODS`.
    now: datetime, optional
        Reference time, defaulting to the current UTC time.

    Returns
    -------
    Tuple[datetime, datetime]
        The inclusive start and end of the period.
    """
    end = now or utcnow()
    midnight = end.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "today":
        start = midnight
    elif period == "week":
        start = midnight - timedelta(days=7)
    elif period == "month":
        start = midnight - relativedelta(months=1)
    else:
        raise ValueError(f"Unknown period: {period}")
    return start, end


def summarize_sales(orders: List[Order]) -> Dict[str, object]:
    """Total, payment split and best sellers for a list of orders.

    Canceled and refunded orders are ignored. Card and cash totals are
    split on how the buyer chose to pay.
    """
    total = 0
    counted = 0
    cash_total = card_total = 0
    cash_count = card_count = 0
    products: Dict[int, dict] = {}

    for order in orders:
        if order.status in _EXCLUDED:
            continue
        counted += 1
        total += order.total_cents
        if order.via_cash:
            cash_total += order.total_cents
            cash_count += 1
        else:
            card_total += order.total_cents
            card_count += 1
        for item in order.items:
            entry = products.setdefault(item.product_id, {
                "product_id": item.product_id,
                "title": item.product.title if item.product else "",
                "quantity": 0,
                "total_cents": 0,
            })
            entry["quantity"] += item.quantity
            entry["total_cents"] += item.quantity * item.unit_price_cents

    top = sorted(products.values(), key=lambda p: (-p["total_cents"], -p["quantity"], p["product_id"]))
    return {
        "total_sales_cents": total,
        "order_count": counted,
        "cash_total_cents": cash_total,
        "cash_count": cash_count,
        "card_total_cents": card_total,
        "card_count": card_count,
        "top_products": top[:TOP_PRODUCTS],
    }


def sales_for_period(producer: User, period: str) -> Dict[str, object]:
    start, end = period_bounds(period)
    orders = Order.query.filter(
        Order.producer_id == producer.id,
        Order.created_at >= start,
        Order.created_at <= end,
    ).all()
    summary = summarize_sales(orders)
    summary.update({"period": period, "start": start.isoformat(), "end": end.isoformat()})
    return summary


def dashboard_summary(user: User) -> Dict[str, int]:
    """Counts behind the dashboard badges. Non-sellers get zeros for seller counts."""
    notifications = unread_count(user)
    if not user.can_sell:
        return {"pending_orders": 0, "unread_notifications": notifications, "pending_reviews": 0}
    return {
        "pending_orders": Order.query.filter_by(producer_id=user.id, status=OrderStatus.PENDING).count(),
        "unread_notifications": notifications,
        "pending_reviews": Review.query.filter_by(reviewee_id=user.id, status=ReviewStatus.PENDING).count(),
    }
