"""Violation ledger: records infractions and answers "may this user send?"."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Final

from sqlalchemy import or_
from sqlalchemy.orm import Session

from skul_relay.core.settings import settings
from skul_relay.db.time import as_utc, utcnow
from skul_relay.models import UserViolation
from skul_relay.models.moderation import (
    ACTION_BAN,
    ACTION_MUTE_7D,
    ACTION_MUTE_24H,
    ACTION_WARNING,
    BLOCKING_ACTIONS,
)

logger = logging.getLogger(__name__)

BLOCK_REASON_BAN: Final = "ban"
BLOCK_REASON_MUTE: Final = "mute"

# Rows are (minimum same-severity violations in the lookback window, action),
# checked top to bottom. Counts include the violation being recorded.
ESCALATION_POLICY: Final[dict[str, tuple[tuple[int, str], ...]]] = {
    "critical": ((4, ACTION_BAN), (3, ACTION_MUTE_7D), (2, ACTION_MUTE_24H)),
    "high": ((5, ACTION_MUTE_7D), (3, ACTION_MUTE_24H)),
}

ACTION_WINDOWS: Final[dict[str, timedelta]] = {
    ACTION_MUTE_24H: timedelta(hours=24),
    ACTION_MUTE_7D: timedelta(days=7),
}

MODERATOR_ACTIONS: Final = (ACTION_WARNING, ACTION_MUTE_24H, ACTION_MUTE_7D, ACTION_BAN)


@dataclass(frozen=True)
class BlockStatus:
    """Whether a user is currently prevented from sending messages."""

    blocked: bool
    reason: str | None = None
    until: datetime | None = None

    @property
    def is_ban(self) -> bool:
        return self.blocked and self.reason == BLOCK_REASON_BAN

    @property
    def is_mute(self) -> bool:
        return self.blocked and self.reason == BLOCK_REASON_MUTE


NOT_BLOCKED: Final = BlockStatus(blocked=False)


def escalate(severity: str, violation_count: int) -> str | None:
    """Return the action the policy table assigns, or None for no restriction."""
    for minimum, action in ESCALATION_POLICY.get(severity, ()):
        if violation_count >= minimum:
            return action
    return None


def action_expiry(action: str | None, now: datetime) -> datetime | None:
    """Return when ``action`` lapses; bans and warnings never do."""
    window = ACTION_WINDOWS.get(action or "")
    return now + window if window is not None else None


class ViolationLedger:
    """Read and write side of the per-user violation record.

    Expired restrictions are never purged; rows are filtered against ``now``
    at read time.
    """

    def __init__(
        self,
        db: Session,
        *,
        lookback_days: int | None = None,
        auto_escalation: bool | None = None,
    ) -> None:
        self.db = db
        self.lookback = timedelta(
            days=settings.violation_lookback_days if lookback_days is None else lookback_days
        )
        self.auto_escalation = (
            settings.auto_escalation_enabled if auto_escalation is None else auto_escalation
        )

    def active_restrictions(self, user_id: str, now: datetime | None = None) -> list[UserViolation]:
        """Return blocking ledger rows for ``user_id`` that have not lapsed."""
        now = now or utcnow()
        return (
            self.db.query(UserViolation)
            .filter(
                UserViolation.user_id == user_id,
                UserViolation.action_taken.in_(BLOCKING_ACTIONS),
                or_(UserViolation.expires_at.is_(None), UserViolation.expires_at > now),
            )
            .all()
        )

    def is_sender_blocked(self, user_id: str, now: datetime | None = None) -> BlockStatus:
        """Check for a live ban first, then for the longest live mute."""
        rows = self.active_restrictions(user_id, now)
        if not rows:
            return NOT_BLOCKED

        if any(row.action_taken == ACTION_BAN for row in rows):
            return BlockStatus(blocked=True, reason=BLOCK_REASON_BAN)

        expiries = [as_utc(row.expires_at) for row in rows]
        if any(expiry is None for expiry in expiries):
            # A mute without expiry is indefinite.
            return BlockStatus(blocked=True, reason=BLOCK_REASON_MUTE)
        return BlockStatus(blocked=True, reason=BLOCK_REASON_MUTE, until=max(expiries))

    def count_recent(self, user_id: str, severity: str, now: datetime) -> int:
        """Count ``severity`` violations for ``user_id`` inside the lookback window."""
        since = now - self.lookback
        return (
            self.db.query(UserViolation)
            .filter(
                UserViolation.user_id == user_id,
                UserViolation.severity == severity,
                UserViolation.created_at >= since,
            )
            .count()
        )

    def record_violation(
        self,
        user_id: str,
        violation_type: str,
        severity: str,
        *,
        flagged_message_id: str | None = None,
        now: datetime | None = None,
    ) -> UserViolation:
        """Insert a ledger entry and attach the escalated action, if any.

        The row is committed immediately. Database errors propagate to the
        caller untouched.
        """
        now = now or utcnow()
        action = None
        if self.auto_escalation:
            action = escalate(severity, self.count_recent(user_id, severity, now) + 1)

        violation = UserViolation(
            user_id=user_id,
            violation_type=violation_type,
            severity=severity,
            action_taken=action,
            expires_at=action_expiry(action, now),
            flagged_message_id=flagged_message_id,
            created_at=now,
        )
        self.db.add(violation)
        self.db.commit()

        if action is not None:
            logger.warning(
                "Escalated user %s to %s after %s violation (%s)",
                user_id,
                action,
                severity,
                violation_type,
            )
        return violation

    def apply_action(
        self,
        user_id: str,
        action: str,
        *,
        violation_type: str = "moderator_action",
        severity: str = "high",
        flagged_message_id: str | None = None,
        now: datetime | None = None,
    ) -> UserViolation:
        """Record a moderator-chosen action with the standard expiry window."""
        if action not in MODERATOR_ACTIONS:
            raise ValueError(f"Unknown moderation action: {action}")

        now = now or utcnow()
        violation = UserViolation(
            user_id=user_id,
            violation_type=violation_type,
            severity=severity,
            action_taken=action,
            expires_at=action_expiry(action, now),
            flagged_message_id=flagged_message_id,
            created_at=now,
        )
        self.db.add(violation)
        self.db.commit()
        logger.info("Moderator applied %s to user %s", action, user_id)
        return violation
