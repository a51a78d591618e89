# tests/services/test_conversation_gate.py
"""Tests for the conversation gate."""

from datetime import timedelta

import pytest

from skul_relay.db.time import utcnow
from skul_relay.models import Conversation
from skul_relay.models.conversation import (
    CONVERSATION_STATUS_ACTIVE,
    CONVERSATION_STATUS_CLOSED,
    CONVERSATION_STATUS_EXPIRED,
)
from skul_relay.services.conversation_gate import open_conversation
from skul_relay.services.errors import ConversationInactive, ConversationNotFound, Forbidden


def test_participants_may_post(db_session, conversation, student, tutor) -> None:
    assert open_conversation(db_session, conversation.id, student.id) is conversation
    assert open_conversation(db_session, conversation.id, tutor.id) is conversation


def test_conversation_without_expiry_stays_open(db_session, conversation, student) -> None:
    conversation.expires_at = None
    db_session.flush()
    assert open_conversation(db_session, conversation.id, student.id) is conversation


def test_unknown_conversation(db_session, student) -> None:
    with pytest.raises(ConversationNotFound) as excinfo:
        open_conversation(db_session, "does-not-exist", student.id)
    assert excinfo.value.status_code == 404


def test_outsider_is_forbidden(db_session, conversation, outsider) -> None:
    with pytest.raises(Forbidden) as excinfo:
        open_conversation(db_session, conversation.id, outsider.id)
    assert excinfo.value.kind == "not_participant"
    assert excinfo.value.error == "You are not a participant in this conversation"


def test_closed_conversation_is_inactive(db_session, conversation, student) -> None:
    conversation.status = CONVERSATION_STATUS_CLOSED
    db_session.flush()

    with pytest.raises(ConversationInactive) as excinfo:
        open_conversation(db_session, conversation.id, student.id)
    assert excinfo.value.to_payload() == {
        "error": "Conversation is not active",
        "reason": "This conversation is closed",
    }
    assert conversation.status == CONVERSATION_STATUS_CLOSED


def test_past_expiry_marks_conversation_expired(db_session, conversation, student) -> None:
    now = utcnow()
    conversation.expires_at = now - timedelta(hours=1)
    db_session.flush()

    with pytest.raises(ConversationInactive) as excinfo:
        open_conversation(db_session, conversation.id, student.id, now)
    assert excinfo.value.error == "Conversation has expired"

    stored = db_session.get(Conversation, conversation.id)
    assert stored.status == CONVERSATION_STATUS_EXPIRED


def test_participation_is_checked_before_status(db_session, conversation, outsider) -> None:
    conversation.status = CONVERSATION_STATUS_CLOSED
    db_session.flush()
    with pytest.raises(Forbidden):
        open_conversation(db_session, conversation.id, outsider.id)


def test_expiry_uses_supplied_clock(db_session, conversation, student) -> None:
    later = utcnow() + timedelta(days=8)
    with pytest.raises(ConversationInactive):
        open_conversation(db_session, conversation.id, student.id, later)
    assert conversation.status == CONVERSATION_STATUS_EXPIRED
    assert conversation.status != CONVERSATION_STATUS_ACTIVE
