"""Message-related Pydantic schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SendMessageRequest(BaseModel):
    """Body of ``POST /messages/send``.

    Fields are typed loosely so that missing or malformed values reach the
    admission pipeline and fail with its own error messages.
    """

    conversation_id: Any = Field(None, alias="conversationId")
    content: Any = None
    idempotency_key: str | None = Field(None, alias="idempotencyKey", max_length=128)

    model_config = ConfigDict(populate_by_name=True)


class FlagSummary(BaseModel):
    """Redacted classifier finding returned to clients."""

    type: str
    severity: str
    reason: str


class MessageRecord(BaseModel):
    """Schema for a stored message returned by the API."""

    id: str
    conversation_id: str
    sender_id: str
    content: str
    is_filtered: bool
    filter_reason: str | None
    moderation_status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SendMessageResponse(BaseModel):
    message: MessageRecord
    flags: list[FlagSummary]


class PreviewRequest(BaseModel):
    content: Any = None
    sender_id: str | None = Field(None, alias="senderId")
    conversation_id: str | None = Field(None, alias="conversationId")

    model_config = ConfigDict(populate_by_name=True)


class PreviewResponse(BaseModel):
    """Classifier verdict for a draft message; nothing is stored."""

    has_warnings: bool = Field(serialization_alias="hasWarnings")
    will_block: bool = Field(serialization_alias="willBlock")
    warnings: list[str]
    flags: list[FlagSummary]


FEEDBACK_TYPES = ("false_positive", "correct_flag", "other")


class FeedbackRequest(BaseModel):
    flagged_message_id: str | None = Field(None, alias="flaggedMessageId")
    message_id: str | None = Field(None, alias="messageId")
    feedback_type: str | None = Field(None, alias="feedbackType")
    feedback_text: str | None = Field(None, alias="feedbackText")
    context_snippet: str | None = Field(None, alias="contextSnippet")

    model_config = ConfigDict(populate_by_name=True)


class FeedbackRecord(BaseModel):
    id: str
    flagged_message_id: str | None
    message_id: str | None
    user_id: str
    feedback_type: str
    feedback_text: str | None
    context_snippet: str | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FeedbackResponse(BaseModel):
    feedback: FeedbackRecord
    message: str
