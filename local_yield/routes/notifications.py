"""
Notification routes.
"""

from __future__ import annotations

from flask import Blueprint, request

from ..api import ok
from ..auth import require_auth
from ..schemas import NotificationSchema
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__)


@notifications_bp.route("/notifications", methods=["GET"])
def list_notifications():
    user = require_auth()
    unread_only = request.args.get("unread") in ("1", "true", "yes")
    notifications = notification_service.list_notifications(user, unread_only=unread_only)
    return ok({
        "notifications": NotificationSchema(many=True).dump(notifications),
        "unread_count": notification_service.unread_count(user),
    })


@notifications_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
def mark_read(notification_id: int):
    user = require_auth()
    notification = notification_service.mark_read(user, notification_id)
    return ok(NotificationSchema().dump(notification))
