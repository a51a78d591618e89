"""Shared types for notification channels.

A ``NotificationContract`` is what the admission pipeline hands off. The
notification service resolves the recipient's address, preferences and
device tokens into a ``NotificationPayload`` and passes it to each channel.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from skul_relay.db.time import utcnow


class ChannelType(str, Enum):
    """Available notification channel types."""

    IN_APP = "in_app"
    EMAIL = "email"
    PUSH = "push"


class DeliveryStatus(str, Enum):
    """Delivery status for a channel."""

    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class NotificationContract:
    """Everything needed to notify one recipient about one event."""

    recipient_id: str
    title: str
    message: str
    notification_type: str = "message"
    priority: str = "normal"
    action_url: str | None = None
    action_text: str | None = None
    image_url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    send_email: bool = True
    send_push: bool = True


@dataclass
class NotificationPayload:
    """A contract enriched with the recipient's delivery details.

    Attributes:
        contract: The notification to deliver.
        recipient_email: Address for the email channel, if known.
        recipient_name: Display name used in the email greeting.
        push_tokens: Active device tokens as ``{"token", "platform"}`` dicts.
    """

    contract: NotificationContract
    recipient_email: str | None = None
    recipient_name: str | None = None
    push_tokens: list[dict[str, str]] = field(default_factory=list)


@dataclass
class ChannelResult:
    """Result of a channel send operation."""

    channel: ChannelType
    status: DeliveryStatus
    message_id: str | None = None
    error_message: str | None = None
    sent_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def sent(self) -> bool:
        return self.status is DeliveryStatus.SENT


@dataclass
class FanOutOutcome:
    """Per-channel outcome of one fan-out."""

    in_app_success: bool = False
    email_sent: bool = False
    push_sent: bool = False
    push_errors: int = 0

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {
            "inApp": {"success": self.in_app_success},
            "email": {"sent": self.email_sent},
            "push": {"sent": self.push_sent, "errors": self.push_errors},
        }


class BaseChannel(ABC):
    """Abstract base class for notification channels.

    Channels report delivery problems through ``ChannelResult``; they do not
    raise for expected transport failures.
    """

    channel_type: ChannelType

    def __init__(self) -> None:
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    async def send(self, payload: NotificationPayload) -> ChannelResult:
        """Deliver ``payload`` through this channel."""

    def create_success_result(
        self,
        message_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ChannelResult:
        return ChannelResult(
            channel=self.channel_type,
            status=DeliveryStatus.SENT,
            message_id=message_id,
            sent_at=utcnow(),
            metadata=metadata or {},
        )

    def create_failure_result(
        self,
        error_message: str,
        metadata: dict[str, Any] | None = None,
    ) -> ChannelResult:
        return ChannelResult(
            channel=self.channel_type,
            status=DeliveryStatus.FAILED,
            error_message=error_message,
            sent_at=utcnow(),
            metadata=metadata or {},
        )

    def create_skipped_result(self, reason: str) -> ChannelResult:
        return ChannelResult(
            channel=self.channel_type,
            status=DeliveryStatus.SKIPPED,
            error_message=reason,
        )
