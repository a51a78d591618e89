"""Moderator review of flagged messages."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from skul_relay.db.time import utcnow
from skul_relay.models import FlaggedMessage, UserViolation
from skul_relay.models.moderation import (
    FLAG_STATUS_APPROVED,
    FLAG_STATUS_BLOCKED,
    FLAG_STATUS_RESOLVED,
)
from skul_relay.services.errors import NotFound, StorageError
from skul_relay.services.violation_ledger import ViolationLedger

logger = logging.getLogger(__name__)

REVIEW_STATUSES = {
    "approve": FLAG_STATUS_APPROVED,
    "block": FLAG_STATUS_BLOCKED,
    "resolve": FLAG_STATUS_RESOLVED,
}


@dataclass
class ReviewOutcome:
    flagged: FlaggedMessage
    violation: UserViolation | None = None


def list_flagged(
    db: Session,
    *,
    status: str | None = None,
    severity: str | None = None,
    sender_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[FlaggedMessage], int]:
    """Return one page of flagged messages, newest first, and the filtered total."""
    query = db.query(FlaggedMessage)
    if status:
        query = query.filter(FlaggedMessage.status == status)
    if severity:
        query = query.filter(FlaggedMessage.severity == severity)
    if sender_id:
        query = query.filter(FlaggedMessage.sender_id == sender_id)

    total = query.count()
    rows = query.order_by(FlaggedMessage.created_at.desc()).offset(offset).limit(limit).all()
    return rows, total


def resolve_flagged(
    db: Session,
    flagged_message_id: str,
    reviewer_id: str,
    action: str,
    *,
    review_notes: str | None = None,
    action_taken: str | None = None,
    now: datetime | None = None,
) -> ReviewOutcome:
    """Record a moderator decision on a flagged message.

    A warning, mute or ban in ``action_taken`` also writes a ledger entry
    against the sender.
    """
    flagged = db.get(FlaggedMessage, flagged_message_id)
    if flagged is None:
        raise NotFound("Flagged message not found")

    now = now or utcnow()
    flagged.status = REVIEW_STATUSES[action]
    flagged.reviewed_by = reviewer_id
    flagged.reviewed_at = now
    flagged.review_notes = review_notes
    flagged.action_taken = action_taken
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to update flagged message %s: %s", flagged_message_id, exc)
        raise StorageError("Failed to update flagged message", str(exc)) from exc

    violation = None
    if action_taken:
        violation_type = flagged.flags[0]["type"] if flagged.flags else "unknown"
        try:
            violation = ViolationLedger(db).apply_action(
                flagged.sender_id,
                action_taken,
                violation_type=violation_type,
                severity=flagged.severity,
                flagged_message_id=flagged.id,
                now=now,
            )
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed to record %s for %s: %s", action_taken, flagged.sender_id, exc)
            raise StorageError("Failed to record moderation action", str(exc)) from exc

    logger.info("Flagged message %s reviewed by %s: %s", flagged.id, reviewer_id, action)
    return ReviewOutcome(flagged=flagged, violation=violation)
