# src/skul_relay/models/__init__.py
"""SQLAlchemy models for the Skul Relay service."""

from .conversation import Conversation, Message
from .moderation import FlaggedMessage, MessageFeedback, UserViolation
from .notification import Notification, NotificationPreference, PushToken
from .user import Profile, TutorProfile

__all__ = [
    "Conversation", "Message",
    "FlaggedMessage", "MessageFeedback", "UserViolation",
    "Notification", "NotificationPreference", "PushToken",
    "Profile", "TutorProfile",
]
