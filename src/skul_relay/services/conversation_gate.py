"""Conversation checks run before any message content is inspected."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from skul_relay.db.time import as_utc, utcnow
from skul_relay.models import Conversation
from skul_relay.models.conversation import (
    CONVERSATION_STATUS_ACTIVE,
    CONVERSATION_STATUS_EXPIRED,
)
from skul_relay.services.errors import ConversationInactive, ConversationNotFound, Forbidden

logger = logging.getLogger(__name__)


def open_conversation(
    db: Session,
    conversation_id: str,
    sender_id: str,
    now: datetime | None = None,
) -> Conversation:
    """Return the conversation if ``sender_id`` may post to it right now.

    Checks run in order: existence, participation, status, expiry. A
    conversation found past its expiry is marked expired and committed
    before ``ConversationInactive`` is raised.

    Raises:
        ConversationNotFound: no conversation with that id.
        Forbidden: the sender is neither the student nor the tutor.
        ConversationInactive: the conversation is closed or has expired.
    """
    now = now or utcnow()

    conversation = db.get(Conversation, conversation_id)
    if conversation is None:
        raise ConversationNotFound()

    if not conversation.is_participant(sender_id):
        raise Forbidden(
            "You are not a participant in this conversation",
            kind="not_participant",
        )

    if conversation.status != CONVERSATION_STATUS_ACTIVE:
        raise ConversationInactive(
            "Conversation is not active",
            f"This conversation is {conversation.status}",
        )

    expires_at = as_utc(conversation.expires_at)
    if expires_at is not None and expires_at <= now:
        conversation.status = CONVERSATION_STATUS_EXPIRED
        db.commit()
        logger.info("Conversation %s expired at %s", conversation.id, expires_at.isoformat())
        raise ConversationInactive(
            "Conversation has expired",
            "This conversation has expired. Book a new session to keep messaging.",
        )

    return conversation
