"""Error taxonomy for the messaging pipeline.

Services raise these; the API layer renders them through a single exception
handler using ``status_code`` and ``to_payload()``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any


class MessagingError(RuntimeError):
    """Base exception for every failure surfaced to API callers."""

    status_code: int = 500

    def __init__(self, error: str, reason: str | None = None) -> None:
        super().__init__(error)
        self.error = error
        self.reason = reason

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON body sent to the client."""
        payload: dict[str, Any] = {"error": self.error}
        if self.reason is not None:
            payload["reason"] = self.reason
        return payload


class InvalidInput(MessagingError):
    """Request is missing required fields or carries empty content."""

    status_code = 400


class Unauthorized(MessagingError):
    """Caller identity could not be resolved."""

    status_code = 401

    def __init__(self, error: str = "Unauthorized") -> None:
        super().__init__(error)


class NotFound(MessagingError):
    """A referenced record does not exist."""

    status_code = 404


class ConversationNotFound(NotFound):
    """No conversation exists for the supplied identifier."""

    def __init__(self, error: str = "Conversation not found") -> None:
        super().__init__(error)


class Forbidden(MessagingError):
    """Caller may not act: not a participant, muted, banned, or not an admin."""

    status_code = 403

    def __init__(
        self,
        error: str,
        reason: str | None = None,
        *,
        kind: str = "forbidden",
        until: datetime | None = None,
    ) -> None:
        super().__init__(error, reason)
        self.kind = kind
        self.until = until

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.until is not None:
            payload["until"] = self.until.isoformat()
        return payload


class ConversationInactive(MessagingError):
    """Conversation is not active or its expiry has passed."""

    status_code = 400


class MessageBlocked(MessagingError):
    """Content classifier returned a blocking (critical) violation.

    Only the flag types and the most severe flag's reason are exposed.
    """

    status_code = 400

    def __init__(self, reason: str, flag_types: list[str]) -> None:
        super().__init__("Message blocked", reason)
        self.flag_types = flag_types

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["flags"] = list(self.flag_types)
        return payload


class StorageError(MessagingError):
    """A persistence step failed; earlier committed writes are kept."""

    status_code = 500

    def __init__(self, error: str, details: str) -> None:
        super().__init__(error)
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.error, "details": self.details}


class NotificationError(RuntimeError):
    """Notification fan-out failed. Logged only, never returned to callers."""
