"""Multi-channel notification fan-out (in-app, email, push)."""

from .base import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    DeliveryStatus,
    FanOutOutcome,
    NotificationContract,
    NotificationPayload,
)
from .dispatcher import NotificationDispatcher
from .email import EmailChannel, SmtpConfig
from .in_app import InAppChannel
from .push import PushChannel
from .service import NotificationService

__all__ = [
    "BaseChannel",
    "ChannelResult",
    "ChannelType",
    "DeliveryStatus",
    "EmailChannel",
    "FanOutOutcome",
    "InAppChannel",
    "NotificationContract",
    "NotificationDispatcher",
    "NotificationPayload",
    "NotificationService",
    "PushChannel",
    "SmtpConfig",
]
