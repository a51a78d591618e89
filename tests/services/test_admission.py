# tests/services/test_admission.py
"""Tests for the message admission pipeline."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from skul_relay.db.time import as_utc, utcnow
from skul_relay.models import FlaggedMessage, Message, Profile, UserViolation
from skul_relay.models.conversation import (
    CONVERSATION_STATUS_CLOSED,
    MODERATION_STATUS_APPROVED,
    MODERATION_STATUS_PENDING,
)
from skul_relay.models.moderation import (
    ACTION_BAN,
    ACTION_MUTE_24H,
    FLAG_STATUS_BLOCKED,
    FLAG_STATUS_REVIEW,
)
from skul_relay.services.admission import (
    DEFAULT_SENDER_NAME,
    MessageAdmissionPipeline,
    truncate_preview,
)
from skul_relay.services.errors import (
    ConversationInactive,
    Forbidden,
    InvalidInput,
    MessageBlocked,
    StorageError,
)
from skul_relay.services.violation_ledger import ViolationLedger


@pytest.fixture()
def now():
    return utcnow()


@pytest.fixture()
def pipeline(db_session, now):
    return MessageAdmissionPipeline(
        db_session,
        ledger=ViolationLedger(db_session, auto_escalation=True),
        clock=lambda: now,
        preview_length=200,
        idempotency_window_seconds=300,
    )


def test_truncate_preview() -> None:
    assert truncate_preview("short", 200) == "short"
    assert truncate_preview("x" * 200, 200) == "x" * 200
    assert truncate_preview("x" * 250, 200) == "x" * 200 + "..."


def test_clean_message_is_approved(pipeline, db_session, conversation, student, tutor, now) -> None:
    result = pipeline.submit(student.id, conversation.id, "  Hello, are you free Tuesday?  ")

    message = result.message
    assert message.content == "Hello, are you free Tuesday?"
    assert message.moderation_status == MODERATION_STATUS_APPROVED
    assert message.is_filtered is False
    assert message.filter_reason is None
    assert result.flags == []
    assert result.duplicate is False
    assert as_utc(conversation.last_message_at) == now
    assert db_session.query(FlaggedMessage).count() == 0

    contract = result.notification
    assert contract.recipient_id == tutor.id
    assert contract.title == "New message from Amina Student"
    assert contract.message == "Hello, are you free Tuesday?"
    assert contract.priority == "high"
    assert contract.action_url == f"/messages/{conversation.id}"
    assert contract.action_text == "Open Conversation"
    assert contract.image_url is None
    assert contract.metadata["message_id"] == message.id
    assert contract.metadata["conversation_id"] == conversation.id
    assert contract.metadata["sender_name"] == "Amina Student"


def test_tutor_avatar_falls_back_to_tutor_profile(pipeline, conversation, student, tutor) -> None:
    result = pipeline.submit(tutor.id, conversation.id, "See you on Tuesday")

    contract = result.notification
    assert contract.recipient_id == student.id
    assert contract.title == "New message from Paul Tutor"
    assert contract.image_url == "https://cdn.example.org/paul.png"
    assert contract.metadata["sender_avatar_url"] == "https://cdn.example.org/paul.png"


def test_profile_avatar_wins_over_tutor_photo(pipeline, db_session, conversation, tutor) -> None:
    tutor.avatar_url = "https://cdn.example.org/avatar.png"
    db_session.flush()

    result = pipeline.submit(tutor.id, conversation.id, "See you on Tuesday")
    assert result.notification.image_url == "https://cdn.example.org/avatar.png"


def test_nameless_sender_is_someone(pipeline, db_session, conversation, student) -> None:
    student.full_name = None
    db_session.flush()

    result = pipeline.submit(student.id, conversation.id, "Hello there")
    assert result.notification.title == f"New message from {DEFAULT_SENDER_NAME}"


def test_sender_lookup_failure_uses_defaults(pipeline, db_session, mocker) -> None:
    mocker.patch.object(
        db_session, "get", side_effect=OperationalError("SELECT", {}, Exception("gone"))
    )
    mocker.patch.object(db_session, "rollback")

    identity = pipeline.resolve_sender("someone")
    assert identity.name == DEFAULT_SENDER_NAME
    assert identity.avatar_url is None


def test_long_message_preview_is_truncated(pipeline, conversation, student) -> None:
    content = "We will cover fractions next time " * 10
    result = pipeline.submit(student.id, conversation.id, content)

    preview = result.notification.message
    assert len(preview) == 203
    assert preview.endswith("...")
    assert result.notification.metadata["message_preview"] == preview
    assert result.message.content == content.strip()


def test_flagged_message_is_admitted_for_review(pipeline, db_session, conversation, student) -> None:
    content = "Follow my instagram account for notes"
    result = pipeline.submit(student.id, conversation.id, content)

    assert result.message.moderation_status == MODERATION_STATUS_PENDING
    assert result.message.is_filtered is True
    assert result.message.filter_reason == "social_media"
    assert result.flags == [
        {
            "type": "social_media",
            "severity": "medium",
            "reason": result.flags[0]["reason"],
        }
    ]
    assert result.notification is not None

    flagged = db_session.query(FlaggedMessage).one()
    assert flagged.status == FLAG_STATUS_REVIEW
    assert flagged.severity == "medium"
    assert flagged.content == content
    assert flagged.flags[0]["type"] == "social_media"
    # Medium flags do not reach the ledger.
    assert db_session.query(UserViolation).count() == 0


def test_high_flag_on_admitted_message_stays_off_the_ledger(pipeline, db_session, conversation, student) -> None:
    result = pipeline.submit(student.id, conversation.id, "My number is 612345678")

    assert result.message.moderation_status == MODERATION_STATUS_PENDING
    assert result.flags[0]["severity"] == "high"
    assert db_session.query(FlaggedMessage).one().status == FLAG_STATUS_REVIEW
    assert db_session.query(UserViolation).count() == 0


def test_repeated_mild_language_never_mutes(pipeline, db_session, conversation, student) -> None:
    """Admitted high flags go to review only, so they cannot add up to a mute."""
    for content in (
        "Damn, this homework is hard",
        "What the hell is a derivative",
        "Crap, I forgot the worksheet",
    ):
        result = pipeline.submit(student.id, conversation.id, content)
        assert result.message.moderation_status == MODERATION_STATUS_PENDING
        assert [flag["severity"] for flag in result.flags] == ["high"]

    assert db_session.query(UserViolation).count() == 0
    assert db_session.query(FlaggedMessage).filter_by(status=FLAG_STATUS_REVIEW).count() == 3

    follow_up = pipeline.submit(student.id, conversation.id, "Hello, are you free Tuesday?")
    assert follow_up.message.moderation_status == MODERATION_STATUS_APPROVED


def test_critical_content_is_blocked(pipeline, db_session, conversation, student, now) -> None:
    content = "  Pay me directly and skip the fees "
    with pytest.raises(MessageBlocked) as excinfo:
        pipeline.submit(student.id, conversation.id, content)

    payload = excinfo.value.to_payload()
    assert payload["error"] == "Message blocked"
    assert payload["flags"] == ["payment_request"]
    assert payload["reason"]

    assert db_session.query(Message).count() == 0
    assert conversation.last_message_at is None

    flagged = db_session.query(FlaggedMessage).one()
    assert flagged.status == FLAG_STATUS_BLOCKED
    assert flagged.severity == "critical"
    assert flagged.content == content

    violation = db_session.query(UserViolation).one()
    assert violation.flagged_message_id == flagged.id
    assert violation.severity == "critical"


def test_second_blocked_attempt_mutes_sender(pipeline, conversation, student) -> None:
    for _ in range(2):
        with pytest.raises(MessageBlocked):
            pipeline.submit(student.id, conversation.id, "Pay me directly and skip the fees")

    with pytest.raises(Forbidden) as excinfo:
        pipeline.submit(student.id, conversation.id, "Sorry, see you Tuesday")
    assert excinfo.value.kind == "mute"


@pytest.mark.parametrize(
    ("conversation_id", "content"),
    [
        (None, "hello"),
        ("", "hello"),
        ("some-id", ""),
        ("some-id", "   \n\t "),
        ("some-id", None),
        ("some-id", 42),
    ],
)
def test_invalid_input(pipeline, student, conversation_id, content) -> None:
    with pytest.raises(InvalidInput):
        pipeline.submit(student.id, conversation_id, content)


def test_muted_sender_is_rejected_until_expiry(pipeline, db_session, conversation, student, now) -> None:
    until = now + timedelta(hours=2)
    db_session.add(
        UserViolation(
            user_id=student.id,
            violation_type="phone_number",
            severity="high",
            action_taken=ACTION_MUTE_24H,
            expires_at=until,
        )
    )
    db_session.flush()

    with pytest.raises(Forbidden) as excinfo:
        pipeline.submit(student.id, conversation.id, "Hello again")
    assert excinfo.value.kind == "mute"
    assert as_utc(excinfo.value.until) == until
    assert excinfo.value.to_payload()["error"] == (
        "You are temporarily muted and cannot send messages."
    )

    pipeline.clock = lambda: until + timedelta(seconds=1)
    assert pipeline.submit(student.id, conversation.id, "Hello again").message is not None


def test_banned_sender_is_rejected_before_classification(pipeline, db_session, conversation, student, mocker) -> None:
    db_session.add(
        UserViolation(
            user_id=student.id,
            violation_type="payment_request",
            severity="critical",
            action_taken=ACTION_BAN,
        )
    )
    db_session.flush()
    classifier = mocker.Mock(wraps=pipeline.classifier)
    pipeline.classifier = classifier

    with pytest.raises(Forbidden) as excinfo:
        pipeline.submit(student.id, conversation.id, "Hello")
    assert excinfo.value.kind == "ban"
    assert excinfo.value.error == "Your account has been banned. You cannot send messages."
    classifier.assert_not_called()


def test_gate_runs_before_ledger(pipeline, db_session, conversation, student, now) -> None:
    conversation.expires_at = now - timedelta(minutes=5)
    db_session.flush()
    with pytest.raises(ConversationInactive):
        pipeline.submit(student.id, conversation.id, "Hello")


@pytest.mark.parametrize("lapse", ["closed", "expired"])
def test_inactive_conversation_stores_nothing_for_critical_content(
    pipeline, db_session, conversation, student, now, lapse
) -> None:
    if lapse == "closed":
        conversation.status = CONVERSATION_STATUS_CLOSED
    else:
        conversation.expires_at = now - timedelta(minutes=5)
    db_session.flush()

    with pytest.raises(ConversationInactive):
        pipeline.submit(student.id, conversation.id, "Pay me directly and skip the fees")

    assert db_session.query(Message).count() == 0
    assert db_session.query(FlaggedMessage).count() == 0
    assert db_session.query(UserViolation).count() == 0


def test_repeated_idempotency_key_returns_stored_message(pipeline, db_session, conversation, student) -> None:
    first = pipeline.submit(student.id, conversation.id, "Hello", idempotency_key="client-1")
    second = pipeline.submit(student.id, conversation.id, "Hello", idempotency_key="client-1")

    assert second.duplicate is True
    assert second.message.id == first.message.id
    assert second.notification is None
    assert db_session.query(Message).count() == 1


def test_idempotency_key_expires_after_window(pipeline, db_session, conversation, student, now) -> None:
    pipeline.submit(student.id, conversation.id, "Hello", idempotency_key="client-1")
    pipeline.clock = lambda: now + timedelta(seconds=301)

    again = pipeline.submit(student.id, conversation.id, "Hello", idempotency_key="client-1")
    assert again.duplicate is False
    assert db_session.query(Message).count() == 2


def test_retried_blocked_send_is_recorded_once(pipeline, db_session, conversation, student, mocker) -> None:
    content = "Pay me directly and skip the fees"
    with pytest.raises(MessageBlocked) as first:
        pipeline.submit(student.id, conversation.id, content, idempotency_key="client-2")

    pipeline.classifier = mocker.Mock(wraps=pipeline.classifier)
    with pytest.raises(MessageBlocked) as retry:
        pipeline.submit(student.id, conversation.id, content, idempotency_key="client-2")

    assert retry.value.to_payload() == first.value.to_payload()
    pipeline.classifier.assert_not_called()

    flagged = db_session.query(FlaggedMessage).one()
    assert flagged.idempotency_key == "client-2"
    assert db_session.query(UserViolation).count() == 1
    assert db_session.query(UserViolation).one().action_taken is None


def test_blocked_send_without_key_is_ledgered_each_time(pipeline, db_session, conversation, student) -> None:
    for _ in range(2):
        with pytest.raises(MessageBlocked):
            pipeline.submit(student.id, conversation.id, "Pay me directly and skip the fees")

    assert db_session.query(FlaggedMessage).count() == 2
    assert db_session.query(UserViolation).count() == 2


def test_message_write_failure_is_storage_error(pipeline, db_session, conversation, student, mocker) -> None:
    mocker.patch.object(
        db_session, "commit", side_effect=OperationalError("INSERT", {}, Exception("disk full"))
    )
    rollback = mocker.patch.object(db_session, "rollback")

    with pytest.raises(StorageError) as excinfo:
        pipeline.submit(student.id, conversation.id, "Hello")

    assert excinfo.value.status_code == 500
    assert excinfo.value.to_payload()["error"] == "Failed to send message"
    assert "disk full" in excinfo.value.to_payload()["details"]
    rollback.assert_called_once()


def test_earlier_writes_survive_a_later_failure(pipeline, db_session, conversation, student, mocker) -> None:
    real_commit = db_session.commit
    calls = []

    def flaky_commit():
        calls.append(None)
        if len(calls) == 2:
            raise OperationalError("INSERT", {}, Exception("ledger unavailable"))
        real_commit()

    mocker.patch.object(db_session, "commit", side_effect=flaky_commit)
    mocker.patch.object(db_session, "rollback")

    with pytest.raises(StorageError):
        pipeline.submit(student.id, conversation.id, "Pay me directly and skip the fees")

    assert db_session.query(FlaggedMessage).count() == 1
    assert db_session.query(Message).count() == 0


def test_unknown_sender_profile_still_notifies(pipeline, db_session, conversation, student) -> None:
    db_session.delete(db_session.get(Profile, student.id))
    db_session.flush()

    result = pipeline.submit(student.id, conversation.id, "Hello")
    assert result.notification.title == f"New message from {DEFAULT_SENDER_NAME}"
