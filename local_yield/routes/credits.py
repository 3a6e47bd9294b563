"""
Store credit routes. Credit is per producer, so both routes take a
``producer_id``.
"""

from __future__ import annotations

from flask import Blueprint, request

from ..api import ok
from ..auth import require_auth
from ..errors import ValidationError
from ..schemas import CreditLedgerSchema
from ..services import credit_service


credits_bp = Blueprint("credits", __name__)


def _producer_id(required: bool = True):
    raw = request.args.get("producer_id")
    if not raw:
        if required:
            raise ValidationError("producer_id is required")
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError("producer_id must be an integer")


@credits_bp.route("/credits/balance", methods=["GET"])
def balance():
    user = require_auth()
    producer_id = _producer_id()
    return ok({
        "producer_id": producer_id,
        "balance_cents": credit_service.get_balance(user.id, producer_id),
    })


@credits_bp.route("/credits/ledger", methods=["GET"])
def ledger():
    """The latest ledger entries, optionally for a single producer."""
    user = require_auth()
    entries = credit_service.get_ledger(user.id, _producer_id(required=False))
    return ok(CreditLedgerSchema(many=True).dump(entries))
