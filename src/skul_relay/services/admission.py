"""Message admission: the ordered path from a send request to a stored message.

Order per submission:
1. validate input
2. conversation gate
3. ledger check (ban, then mute)
4. idempotency lookup
5. classify
6. blocked: store the flagged attempt and a ledger entry per high or
   critical flag, then fail
7. admitted: store the review copy (when flagged), the message and the
   conversation watermark; admitted flags never reach the ledger
8. build the notification contract for the recipient

Every write is committed on its own. A failing write is rolled back alone
and surfaces as ``StorageError``; earlier commits stay in place.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from skul_relay.core.settings import settings
from skul_relay.db.time import utcnow
from skul_relay.models import Conversation, FlaggedMessage, Message, Profile, TutorProfile
from skul_relay.models.conversation import (
    MODERATION_STATUS_APPROVED,
    MODERATION_STATUS_PENDING,
)
from skul_relay.models.moderation import FLAG_STATUS_BLOCKED, FLAG_STATUS_REVIEW
from skul_relay.services.conversation_gate import open_conversation
from skul_relay.services.errors import Forbidden, InvalidInput, MessageBlocked, StorageError
from skul_relay.services.message_filter import FilterResult, Severity, classify
from skul_relay.services.notifications import NotificationContract
from skul_relay.services.violation_ledger import ViolationLedger

logger = logging.getLogger(__name__)

DEFAULT_SENDER_NAME = "Someone"
LEDGER_SEVERITIES = (Severity.HIGH, Severity.CRITICAL)

Classifier = Callable[..., FilterResult]


@dataclass(frozen=True)
class SenderIdentity:
    name: str = DEFAULT_SENDER_NAME
    avatar_url: str | None = None


@dataclass
class AdmissionResult:
    """A stored message plus what the caller and the recipient should see."""

    message: Message
    flags: list[dict[str, str]] = field(default_factory=list)
    notification: NotificationContract | None = None
    duplicate: bool = False


def truncate_preview(content: str, limit: int) -> str:
    """Cut ``content`` to ``limit`` characters, marking the cut with '...'."""
    if len(content) <= limit:
        return content
    return content[:limit] + "..."


class MessageAdmissionPipeline:
    """Decides whether a message may be sent, and stores the outcome.

    Args:
        db: Session used for every read and write of one submission.
        ledger: Violation ledger; built on ``db`` when omitted.
        classifier: Content classifier with the ``classify`` signature.
        clock: Source of "now" for expiry, mute and watermark decisions.
    """

    def __init__(
        self,
        db: Session,
        *,
        ledger: ViolationLedger | None = None,
        classifier: Classifier = classify,
        clock: Callable[[], datetime] = utcnow,
        preview_length: int | None = None,
        idempotency_window_seconds: int | None = None,
    ) -> None:
        self.db = db
        self.ledger = ledger or ViolationLedger(db)
        self.classifier = classifier
        self.clock = clock
        self.preview_length = preview_length or settings.message_preview_length
        window = (
            settings.idempotency_window_seconds
            if idempotency_window_seconds is None
            else idempotency_window_seconds
        )
        self.idempotency_window = timedelta(seconds=window)

    @contextmanager
    def _persisting(self, step: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to %s: %s", step, exc)
            raise StorageError("Failed to send message", str(exc)) from exc

    def submit(
        self,
        sender_id: str,
        conversation_id: Any,
        content: Any,
        idempotency_key: str | None = None,
    ) -> AdmissionResult:
        """Run one submission through the pipeline.

        Raises:
            InvalidInput: missing conversation id or empty content.
            ConversationNotFound, Forbidden, ConversationInactive: gate failures.
            Forbidden: the sender is banned or muted.
            MessageBlocked: the classifier found a critical violation, or the key
                repeats a blocked attempt.
            StorageError: a read or write against the database failed.
        """
        if not isinstance(conversation_id, str) or not conversation_id.strip():
            raise InvalidInput("Invalid input", "conversationId is required")
        if not isinstance(content, str) or not content.strip():
            raise InvalidInput("Invalid input", "Message content cannot be empty")

        now = self.clock()
        text = content.strip()

        with self._persisting("load conversation"):
            conversation = open_conversation(self.db, conversation_id, sender_id, now)
            block = self.ledger.is_sender_blocked(sender_id, now)

        if block.is_ban:
            raise Forbidden(
                "Your account has been banned. You cannot send messages.",
                "Account banned for repeated policy violations.",
                kind="ban",
            )
        if block.is_mute:
            expiry = block.until.isoformat() if block.until else "indefinitely"
            raise Forbidden(
                "You are temporarily muted and cannot send messages.",
                f"Mute expires: {expiry}",
                kind="mute",
                until=block.until,
            )

        if idempotency_key:
            with self._persisting("look up previous submission"):
                existing = self._find_duplicate(conversation.id, sender_id, idempotency_key, now)
                refused = None
                if existing is None:
                    refused = self._find_blocked_attempt(conversation.id, sender_id, idempotency_key, now)
            if existing is not None:
                logger.info("Returning message %s for repeated key %s", existing.id, idempotency_key)
                return AdmissionResult(
                    message=existing,
                    flags=self.classifier(existing.content, sender_id, conversation.id).summaries(),
                    duplicate=True,
                )
            if refused is not None:
                logger.info("Repeated key %s matches blocked attempt %s", idempotency_key, refused.id)
                raise self._blocked_error(FilterResult.from_records(refused.flags))

        result = self.classifier(text, sender_id, conversation.id)

        if result.will_block:
            flagged = self._store_flagged(
                conversation,
                sender_id,
                content,
                result,
                FLAG_STATUS_BLOCKED,
                now,
                idempotency_key=idempotency_key,
            )
            for flag in result.flags:
                if flag.severity in LEDGER_SEVERITIES:
                    with self._persisting("record violation"):
                        self.ledger.record_violation(
                            sender_id,
                            flag.type,
                            flag.severity.value,
                            flagged_message_id=flagged.id,
                            now=now,
                        )
            logger.warning(
                "Blocked message from %s in %s: %s",
                sender_id,
                conversation.id,
                ",".join(result.flag_types),
            )
            raise self._blocked_error(result)

        if result.flags:
            self._store_flagged(conversation, sender_id, content, result, FLAG_STATUS_REVIEW, now)

        message = Message(
            conversation_id=conversation.id,
            sender_id=sender_id,
            content=text,
            is_filtered=bool(result.flags),
            filter_reason=",".join(result.flag_types) if result.flags else None,
            moderation_status=MODERATION_STATUS_PENDING if result.flags else MODERATION_STATUS_APPROVED,
            idempotency_key=idempotency_key,
            created_at=now,
        )
        with self._persisting("store message"):
            self.db.add(message)
            self.db.commit()

        with self._persisting("update conversation watermark"):
            conversation.last_message_at = now
            self.db.commit()

        notification = None
        if not result.has_critical:
            notification = self._build_notification(conversation, sender_id, message)

        return AdmissionResult(message=message, flags=result.summaries(), notification=notification)

    def _find_duplicate(
        self,
        conversation_id: str,
        sender_id: str,
        idempotency_key: str,
        now: datetime,
    ) -> Message | None:
        return (
            self.db.query(Message)
            .filter(
                Message.conversation_id == conversation_id,
                Message.sender_id == sender_id,
                Message.idempotency_key == idempotency_key,
                Message.created_at >= now - self.idempotency_window,
            )
            .order_by(Message.created_at.desc())
            .first()
        )

    def _find_blocked_attempt(
        self,
        conversation_id: str,
        sender_id: str,
        idempotency_key: str,
        now: datetime,
    ) -> FlaggedMessage | None:
        return (
            self.db.query(FlaggedMessage)
            .filter(
                FlaggedMessage.conversation_id == conversation_id,
                FlaggedMessage.sender_id == sender_id,
                FlaggedMessage.idempotency_key == idempotency_key,
                FlaggedMessage.status == FLAG_STATUS_BLOCKED,
                FlaggedMessage.created_at >= now - self.idempotency_window,
            )
            .order_by(FlaggedMessage.created_at.desc())
            .first()
        )

    @staticmethod
    def _blocked_error(result: FilterResult) -> MessageBlocked:
        primary = result.most_severe()
        return MessageBlocked(
            primary.reason if primary else "Message contains prohibited content",
            result.flag_types,
        )

    def _store_flagged(
        self,
        conversation: Conversation,
        sender_id: str,
        content: str,
        result: FilterResult,
        status: str,
        now: datetime,
        idempotency_key: str | None = None,
    ) -> FlaggedMessage:
        primary = result.most_severe()
        flagged = FlaggedMessage(
            conversation_id=conversation.id,
            sender_id=sender_id,
            content=content,
            flags=result.records(),
            status=status,
            severity=primary.severity.value if primary else Severity.LOW.value,
            idempotency_key=idempotency_key,
            created_at=now,
        )
        with self._persisting("store flagged message"):
            self.db.add(flagged)
            self.db.commit()
        return flagged

    def resolve_sender(self, sender_id: str) -> SenderIdentity:
        """Return the name and avatar the recipient should see.

        The avatar falls back from the profile to the tutor profile photo.
        Lookup failures are logged and yield the defaults.
        """
        try:
            profile = self.db.get(Profile, sender_id)
            name = (profile.full_name if profile else None) or DEFAULT_SENDER_NAME
            avatar = profile.avatar_url if profile else None
            if not avatar:
                tutor_profile = self.db.get(TutorProfile, sender_id)
                avatar = tutor_profile.profile_photo_url if tutor_profile else None
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Could not resolve sender identity for %s: %s", sender_id, exc)
            return SenderIdentity()
        return SenderIdentity(name=name, avatar_url=avatar or None)

    def _build_notification(
        self,
        conversation: Conversation,
        sender_id: str,
        message: Message,
    ) -> NotificationContract:
        sender = self.resolve_sender(sender_id)
        preview = truncate_preview(message.content, self.preview_length)
        return NotificationContract(
            recipient_id=conversation.counterpart_of(sender_id),
            title=f"New message from {sender.name}",
            message=preview,
            notification_type="message",
            priority="high",
            action_url=f"/messages/{conversation.id}",
            action_text="Open Conversation",
            image_url=sender.avatar_url,
            metadata={
                "sender_id": sender_id,
                "sender_name": sender.name,
                "sender_avatar_url": sender.avatar_url,
                "conversation_id": conversation.id,
                "message_id": message.id,
                "message_preview": preview,
            },
            send_email=True,
            send_push=True,
        )
