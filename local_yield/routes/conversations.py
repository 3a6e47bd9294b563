"""
Messaging routes.

Conversations are private to their two participants; everyone else gets
a 404.
"""

from __future__ import annotations

from flask import Blueprint

from ..api import ok, parse_json_body
from ..auth import require_auth
from ..rate_limit import rate_limit
from ..schemas import ConversationSchema, CreateConversationInput, MessageSchema, SendMessageInput
from ..services import messaging_service


conversations_bp = Blueprint("conversations", __name__)


@conversations_bp.route("/conversations", methods=["GET"])
def inbox():
    """The caller's conversations, most recently active first."""
    user = require_auth()
    conversations = messaging_service.list_conversations(user)
    return ok([messaging_service.inbox_entry(c, user) for c in conversations])


@conversations_bp.route("/conversations", methods=["POST"])
@rate_limit()
def start_conversation():
    user = require_auth()
    data = CreateConversationInput().load(parse_json_body())
    conversation = messaging_service.start_conversation(
        user,
        data["other_user_id"],
        order_id=data.get("order_id"),
        care_booking_id=data.get("care_booking_id"),
    )
    return ok(ConversationSchema().dump(conversation), 201)


@conversations_bp.route("/conversations/<int:conversation_id>", methods=["GET"])
def get_conversation(conversation_id: int):
    user = require_auth()
    conversation = messaging_service.get_conversation_for(user, conversation_id)
    return ok(ConversationSchema().dump(conversation))


@conversations_bp.route("/conversations/<int:conversation_id>/messages", methods=["POST"])
@rate_limit("MESSAGES")
def send_message(conversation_id: int):
    """Post a message. Bodies that share contact or payment details are
    refused with ``PII_DETECTED``."""
    user = require_auth()
    conversation = messaging_service.get_conversation_for(user, conversation_id)
    data = SendMessageInput().load(parse_json_body())
    message = messaging_service.send_message(user, conversation, data["body"])
    return ok(MessageSchema().dump(message), 201)
