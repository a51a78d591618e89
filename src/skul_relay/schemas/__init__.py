"""Pydantic schemas for API requests and responses."""

from .message import (
    FEEDBACK_TYPES,
    FeedbackRecord,
    FeedbackRequest,
    FeedbackResponse,
    FlagSummary,
    MessageRecord,
    PreviewRequest,
    PreviewResponse,
    SendMessageRequest,
    SendMessageResponse,
)
from .moderation import (
    FlaggedMessageList,
    FlaggedMessageRecord,
    ResolveFlaggedRequest,
    ResolveFlaggedResponse,
    UserStatusResponse,
)

__all__ = [
    "FEEDBACK_TYPES",
    "FeedbackRecord",
    "FeedbackRequest",
    "FeedbackResponse",
    "FlagSummary",
    "FlaggedMessageList",
    "FlaggedMessageRecord",
    "MessageRecord",
    "PreviewRequest",
    "PreviewResponse",
    "ResolveFlaggedRequest",
    "ResolveFlaggedResponse",
    "SendMessageRequest",
    "SendMessageResponse",
    "UserStatusResponse",
]
