"""Moderation review schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class FlaggedMessageRecord(BaseModel):
    """Full audit view of a flagged message, for moderators only."""

    id: str
    conversation_id: str
    sender_id: str
    content: str
    flags: list[dict[str, Any]]
    status: str
    severity: str
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    review_notes: str | None = None
    action_taken: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FlaggedMessageList(BaseModel):
    flagged_messages: list[FlaggedMessageRecord] = Field(serialization_alias="flaggedMessages")
    total: int
    limit: int
    offset: int


class ResolveFlaggedRequest(BaseModel):
    action: Literal["approve", "block", "resolve"]
    review_notes: str | None = Field(None, alias="reviewNotes")
    action_taken: Literal["warning", "mute_24h", "mute_7d", "ban"] | None = Field(
        None, alias="actionTaken"
    )

    model_config = ConfigDict(populate_by_name=True)


class ResolveFlaggedResponse(BaseModel):
    flagged_message: FlaggedMessageRecord = Field(serialization_alias="flaggedMessage")
    violation_id: str | None = Field(None, serialization_alias="violationId")


class UserStatusResponse(BaseModel):
    user_id: str = Field(serialization_alias="userId")
    blocked: bool
    reason: str | None = None
    until: datetime | None = None
