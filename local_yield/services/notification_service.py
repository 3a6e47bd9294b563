"""In-app notifications.

Workflows call :func:`notify` inside their own transaction; the
notification is committed together with the change that caused it.
"""
from __future__ import annotations

from typing import List, Optional

from ..db import db
from ..errors import NotFoundError
from ..models import Notification, User


def notify(user_id: int, type_: str, title: str, body: str, link: Optional[str] = None) -> Notification:
    notification = Notification(user_id=user_id, type=type_, title=title, body=body, link=link)
    db.session.add(notification)
    return notification


def list_notifications(user: User, unread_only: bool = False, limit: int = 50) -> List[Notification]:
    query = Notification.query.filter_by(user_id=user.id)
    if unread_only:
        query = query.filter_by(read=False)
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_count(user: User) -> int:
    return Notification.query.filter_by(user_id=user.id, read=False).count()


def mark_read(user: User, notification_id: int) -> Notification:
    notification = db.session.get(Notification, notification_id)
    if notification is None or notification.user_id != user.id:
        raise NotFoundError("Notification not found")
    notification.read = True
    db.session.commit()
    return notification
