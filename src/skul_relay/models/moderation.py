# src/skul_relay/models/moderation.py
"""Models tracking flagged messages, violations and filter feedback."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from skul_relay.db.session import Base
from skul_relay.db.time import utcnow

from ._ids import new_id

FLAG_STATUS_BLOCKED = "blocked"
FLAG_STATUS_REVIEW = "review"
FLAG_STATUS_APPROVED = "approved"
FLAG_STATUS_RESOLVED = "resolved"

ACTION_WARNING = "warning"
ACTION_MUTE_24H = "mute_24h"
ACTION_MUTE_7D = "mute_7d"
ACTION_BAN = "ban"

BLOCKING_ACTIONS = (ACTION_MUTE_24H, ACTION_MUTE_7D, ACTION_BAN)


class FlaggedMessage(Base):
    """Audit copy of a blocked or admitted-with-concern message.

    Keeps the original, untrimmed content and the full classifier flags for
    moderators. Rows are never deleted.
    """

    __tablename__ = "flagged_messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    conversation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("conversations.id"), nullable=False, index=True
    )
    sender_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    flags: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    # blocked | review | approved | resolved
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    # only set on blocked attempts
    idempotency_key: Mapped[str | None] = mapped_column(String(128), nullable=True)

    reviewed_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_taken: Mapped[str | None] = mapped_column(String(16), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class UserViolation(Base):
    """Ledger entry recording an infraction and the action derived from it.

    ``action_taken`` is null when no restriction applies. Expiry is computed
    when the row is written and compared lazily at read time.
    """

    __tablename__ = "user_violations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    violation_type: Mapped[str] = mapped_column(String(32), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    action_taken: Mapped[str | None] = mapped_column(String(16), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    flagged_message_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("flagged_messages.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class MessageFeedback(Base):
    """User feedback on a filter decision (false positive reports etc.)."""

    __tablename__ = "message_feedback"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    flagged_message_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("flagged_messages.id"), nullable=True
    )
    message_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("messages.id"), nullable=True
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    feedback_type: Mapped[str] = mapped_column(String(32), nullable=False)
    feedback_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    context_snippet: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
