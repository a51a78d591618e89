# src/skul_relay/api/v1/endpoints/messages.py
"""Conversation message endpoints: send, preview and filter feedback."""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError

from skul_relay.models import MessageFeedback
from skul_relay.schemas import (
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
from skul_relay.services.admission import MessageAdmissionPipeline
from skul_relay.services.errors import InvalidInput, StorageError
from skul_relay.services.message_filter import classify

from ..dependencies import CurrentProfileDep, DispatcherDep, SessionDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("/send", response_model=SendMessageResponse)
async def send_message(
    payload: SendMessageRequest,
    current_profile: CurrentProfileDep,
    db: SessionDep,
    dispatcher: DispatcherDep,
    background_tasks: BackgroundTasks,
) -> SendMessageResponse:
    """Validate, filter and store a message, then notify the recipient."""
    pipeline = MessageAdmissionPipeline(db)
    result = pipeline.submit(
        current_profile.id,
        payload.conversation_id,
        payload.content,
        idempotency_key=payload.idempotency_key,
    )

    if result.notification is not None:
        background_tasks.add_task(dispatcher.dispatch, result.notification)

    return SendMessageResponse(
        message=MessageRecord.model_validate(result.message),
        flags=[FlagSummary(**flag) for flag in result.flags],
    )


@router.post("/preview", response_model=PreviewResponse)
async def preview_message(payload: PreviewRequest) -> PreviewResponse:
    """Run the content filter on a draft without storing anything."""
    if not isinstance(payload.content, str) or not payload.content:
        raise InvalidInput("Invalid input. content is required.")

    result = classify(payload.content, payload.sender_id or "preview", payload.conversation_id)
    return PreviewResponse(
        has_warnings=bool(result.flags),
        will_block=result.will_block,
        warnings=list(result.warnings),
        flags=[FlagSummary(**flag) for flag in result.summaries()],
    )


@router.post("/feedback", response_model=FeedbackResponse)
async def submit_feedback(
    payload: FeedbackRequest,
    current_profile: CurrentProfileDep,
    db: SessionDep,
) -> FeedbackResponse:
    """Let a user report a false positive or confirm a flag."""
    if payload.feedback_type not in FEEDBACK_TYPES:
        raise InvalidInput(
            "Invalid feedback type. Must be false_positive, correct_flag, or other."
        )
    if not payload.flagged_message_id and not payload.message_id:
        raise InvalidInput("Either flaggedMessageId or messageId is required.")

    feedback = MessageFeedback(
        flagged_message_id=payload.flagged_message_id or None,
        message_id=payload.message_id or None,
        user_id=current_profile.id,
        feedback_type=payload.feedback_type,
        feedback_text=payload.feedback_text or None,
        context_snippet=payload.context_snippet or None,
    )
    try:
        db.add(feedback)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Error inserting feedback: %s", exc)
        raise StorageError("Failed to submit feedback", str(exc)) from exc

    return FeedbackResponse(
        feedback=FeedbackRecord.model_validate(feedback),
        message="Feedback submitted successfully. Thank you for helping improve our system!",
    )
