# src/skul_relay/api/v1/endpoints/moderation.py
"""Admin endpoints for reviewing flagged messages and user restrictions."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query

from skul_relay.schemas import (
    FlaggedMessageList,
    FlaggedMessageRecord,
    ResolveFlaggedRequest,
    ResolveFlaggedResponse,
    UserStatusResponse,
)
from skul_relay.services.moderation_review import list_flagged, resolve_flagged
from skul_relay.services.violation_ledger import ViolationLedger

from ..dependencies import AdminProfileDep, SessionDep

router = APIRouter(prefix="/moderation", tags=["moderation"])


@router.get("/flagged-messages", response_model=FlaggedMessageList)
async def get_flagged_messages(
    admin: AdminProfileDep,
    db: SessionDep,
    status: str | None = None,
    severity: str | None = None,
    sender_id: str | None = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> FlaggedMessageList:
    """List flagged messages, newest first."""
    rows, total = list_flagged(
        db,
        status=status,
        severity=severity,
        sender_id=sender_id,
        limit=limit,
        offset=offset,
    )
    return FlaggedMessageList(
        flagged_messages=[FlaggedMessageRecord.model_validate(row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/flagged-messages/{flagged_message_id}/resolve", response_model=ResolveFlaggedResponse)
async def resolve_flagged_message(
    flagged_message_id: str,
    payload: ResolveFlaggedRequest,
    admin: AdminProfileDep,
    db: SessionDep,
) -> ResolveFlaggedResponse:
    """Approve, block or resolve a flagged message, optionally restricting the sender."""
    outcome = resolve_flagged(
        db,
        flagged_message_id,
        admin.id,
        payload.action,
        review_notes=payload.review_notes,
        action_taken=payload.action_taken,
    )
    return ResolveFlaggedResponse(
        flagged_message=FlaggedMessageRecord.model_validate(outcome.flagged),
        violation_id=outcome.violation.id if outcome.violation else None,
    )


@router.get("/users/{user_id}/status", response_model=UserStatusResponse)
async def get_user_status(
    user_id: str,
    admin: AdminProfileDep,
    db: SessionDep,
) -> UserStatusResponse:
    """Report whether a user is currently banned or muted."""
    status = ViolationLedger(db).is_sender_blocked(user_id)
    return UserStatusResponse(
        user_id=user_id,
        blocked=status.blocked,
        reason=status.reason,
        until=status.until,
    )
