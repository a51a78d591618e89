# src/skul_relay/models/conversation.py
"""Models describing tutor/student conversations and their messages."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from skul_relay.db.session import Base
from skul_relay.db.time import utcnow

from ._ids import new_id

CONVERSATION_STATUS_ACTIVE = "active"
CONVERSATION_STATUS_EXPIRED = "expired"
CONVERSATION_STATUS_CLOSED = "closed"

MODERATION_STATUS_APPROVED = "approved"
MODERATION_STATUS_PENDING = "pending"


class Conversation(Base):
    """Messaging thread between exactly one student and one tutor.

    ``status`` and ``last_message_at`` are only written by the admission
    pipeline (and an external scheduler that closes threads).
    """

    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    student_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id"), nullable=False, index=True
    )
    tutor_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=CONVERSATION_STATUS_ACTIVE
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def is_participant(self, user_id: str) -> bool:
        """Return True if ``user_id`` is the student or the tutor."""
        return user_id in (self.student_id, self.tutor_id)

    def counterpart_of(self, user_id: str) -> str:
        """Return the participant who is not ``user_id``."""
        return self.tutor_id if self.student_id == user_id else self.student_id


class Message(Base):
    """A message admitted into a conversation.

    Approved messages never carry a ``filter_reason``; messages admitted with
    flags are ``pending`` and list the flag types, comma-joined.
    """

    __tablename__ = "messages"
    __table_args__ = (
        Index(
            "ix_messages_idempotency",
            "conversation_id",
            "sender_id",
            "idempotency_key",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    conversation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_filtered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    filter_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    moderation_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=MODERATION_STATUS_APPROVED
    )
    # Client-supplied token used to collapse retried submissions.
    idempotency_key: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
