"""Direct messaging between buyers and producers, and owners and caregivers.

There is one conversation per pair of users and scope, where the scope
is an optional order or care booking. The pair is stored with the
smaller user id first so the lookup does not depend on who starts the
thread.

Messages that look like they share contact or payment details (email
addresses, phone numbers, social security or card numbers) are refused
so that deals stay on the platform.
"""
from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..db import db
from ..errors import NotFoundError, ValidationError
from ..models import CareBooking, Conversation, Message, Order, User
from ..util.sanitization import strip_tags
from ..util.timeutil import utcnow

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000

PII_PATTERNS = (
    ("email", re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")),
    ("phone", re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b")),
    ("ssn", re.compile(r"\b\d{3}-\d{2}-\d{4}\b")),
    ("credit_card", re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b")),
)


def detect_pii(body: str) -> Optional[str]:
    """Return the kind of the first PII pattern found in ``body``, if any."""
    text = body.strip()
    for kind, pattern in PII_PATTERNS:
        if pattern.search(text):
            return kind
    return None


def ordered_pair(user_a: int, user_b: int) -> Tuple[int, int]:
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


def get_or_create_conversation(user_a: int, user_b: int, order_id: Optional[int] = None,
                               care_booking_id: Optional[int] = None, commit: bool = True) -> Conversation:
    """Find the conversation for this pair and scope, creating it if needed."""
    if user_a == user_b:
        raise ValidationError("You cannot message yourself")
    first, second = ordered_pair(user_a, user_b)
    scope = dict(user_a_id=first, user_b_id=second, order_id=order_id, care_booking_id=care_booking_id)
    existing = Conversation.query.filter_by(**scope).first()
    if existing is not None:
        return existing
    conversation = Conversation(**scope)
    db.session.add(conversation)
    if not commit:
        db.session.flush()
        return conversation
    try:
        db.session.commit()
    except IntegrityError:
        # Created concurrently by the other participant.
        db.session.rollback()
        return Conversation.query.filter_by(**scope).one()
    return conversation


def get_conversation_for(user: User, conversation_id: int) -> Conversation:
    conversation = db.session.get(Conversation, conversation_id)
    if conversation is None or not conversation.has_participant(user.id):
        raise NotFoundError("Conversation not found")
    return conversation


def list_conversations(user: User) -> List[Conversation]:
    return (
        Conversation.query.filter(or_(Conversation.user_a_id == user.id, Conversation.user_b_id == user.id))
        .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
        .all()
    )


def send_message(user: User, conversation: Conversation, body: str) -> Message:
    """Append a message from ``user`` to ``conversation``.

    Raises
    ------
    ValidationError
        ``PII_DETECTED`` when the body contains contact or payment
        details, ``VALIDATION_ERROR`` when it is empty or too long.
    """
    if not conversation.has_participant(user.id):
        raise NotFoundError("Conversation not found")
    text = strip_tags(body)
    if not text or len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(
            f"Message must be between 1 and {MAX_MESSAGE_LENGTH} characters",
            fields={"body": ["Invalid length"]},
        )
    kind = detect_pii(text)
    if kind is not None:
        logger.info("Blocked message with %s in conversation %s", kind, conversation.id)
        raise ValidationError(
            "For your safety, please don't share contact or payment details in messages.",
            code="PII_DETECTED",
        )
    message = Message(conversation_id=conversation.id, sender_id=user.id, body=text)
    conversation.updated_at = utcnow()
    db.session.add(message)
    db.session.commit()
    return message


def inbox_entry(conversation: Conversation, user: User) -> dict:
    """Summary of a conversation for ``user``'s inbox."""
    other = conversation.user_b if conversation.user_a_id == user.id else conversation.user_a
    last = conversation.messages[-1] if conversation.messages else None
    return {
        "id": conversation.id,
        "other_user": {"id": other.id, "name": other.name},
        "order_id": conversation.order_id,
        "care_booking_id": conversation.care_booking_id,
        "updated_at": conversation.updated_at.isoformat(),
        "last_message": {
            "body": last.body,
            "sender_id": last.sender_id,
            "created_at": last.created_at.isoformat(),
        } if last else None,
    }


def start_conversation(user: User, other_user_id: int, order_id: Optional[int] = None,
                       care_booking_id: Optional[int] = None) -> Conversation:
    """Open a thread with another user.

    When scoped to an order or booking, both users must be its parties.
    """
    if db.session.get(User, other_user_id) is None:
        raise NotFoundError("User not found")
    pair = {user.id, other_user_id}
    if order_id is not None:
        order = db.session.get(Order, order_id)
        if order is None or pair != {order.buyer_id, order.producer_id}:
            raise NotFoundError("Order not found")
    if care_booking_id is not None:
        booking = db.session.get(CareBooking, care_booking_id)
        if booking is None or pair != {booking.care_seeker_id, booking.caregiver_id}:
            raise NotFoundError("Booking not found")
    return get_or_create_conversation(user.id, other_user_id, order_id, care_booking_id)
