"""Audit trail for admin moderation actions."""
from __future__ import annotations

import logging
from typing import Any, Optional

from ..db import db
from ..models import AdminActionLog, User

logger = logging.getLogger(__name__)


def log_admin_action(admin: User, action: str, entity_type: str, entity_id: int,
                     details: Optional[dict[str, Any]] = None) -> AdminActionLog:
    """Record an admin action. Added to the session; the caller commits."""
    entry = AdminActionLog(
        admin_id=admin.id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    db.session.add(entry)
    logger.info("Admin %s: %s %s#%s", admin.id, action, entity_type, entity_id)
    return entry
