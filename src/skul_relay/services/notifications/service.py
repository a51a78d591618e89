"""Notification service: resolves a recipient and delivers on every channel.

Flow for one contract:
1. Load the recipient's profile, channel preferences and active push tokens
2. Write the in-app notification
3. Send the email (when requested and enabled)
4. Send push to every active device, deactivating tokens FCM no longer knows
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from skul_relay.db.session import SessionLocal
from skul_relay.models import NotificationPreference, Profile, PushToken
from skul_relay.services.errors import NotificationError

from .base import FanOutOutcome, NotificationContract, NotificationPayload
from .email import EmailChannel
from .in_app import InAppChannel
from .push import PushChannel

logger = logging.getLogger(__name__)


class NotificationService:
    """Delivers a ``NotificationContract`` to in-app, email and push channels.

    Each call opens its own session from ``session_factory`` because it runs
    after the request that produced the contract has finished.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        email_channel: EmailChannel | None = None,
        push_channel: PushChannel | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.email_channel = email_channel or EmailChannel()
        self.push_channel = push_channel or PushChannel()

    async def send(self, contract: NotificationContract) -> FanOutOutcome:
        """Send ``contract`` and report the per-channel outcome.

        Raises:
            NotificationError: the recipient could not be loaded.
        """
        with self.session_factory() as db:
            try:
                payload, preference = self._resolve(db, contract)
            except SQLAlchemyError as exc:
                raise NotificationError(
                    f"Could not load recipient {contract.recipient_id}"
                ) from exc

            outcome = FanOutOutcome()

            if preference is None or preference.in_app_enabled:
                result = await InAppChannel(db).send(payload)
                outcome.in_app_success = result.sent

            if contract.send_email and (preference is None or preference.email_enabled):
                result = await self.email_channel.send(payload)
                outcome.email_sent = result.sent

            if contract.send_push and (preference is None or preference.push_enabled):
                result = await self.push_channel.send(payload)
                outcome.push_sent = result.sent
                outcome.push_errors = result.metadata.get("failure_count", 0)
                self._deactivate_tokens(db, contract.recipient_id, result.metadata.get("unregistered", []))

        logger.info(
            "Notified %s: in_app=%s email=%s push=%s (errors=%d)",
            contract.recipient_id,
            outcome.in_app_success,
            outcome.email_sent,
            outcome.push_sent,
            outcome.push_errors,
        )
        return outcome

    def _resolve(
        self,
        db: Session,
        contract: NotificationContract,
    ) -> tuple[NotificationPayload, NotificationPreference | None]:
        profile = db.get(Profile, contract.recipient_id)
        preference = db.get(NotificationPreference, contract.recipient_id)
        tokens = (
            db.query(PushToken)
            .filter(PushToken.user_id == contract.recipient_id, PushToken.is_active.is_(True))
            .order_by(PushToken.created_at)
            .all()
        )
        payload = NotificationPayload(
            contract=contract,
            recipient_email=profile.email if profile else None,
            recipient_name=profile.full_name if profile else None,
            push_tokens=[{"token": token.token, "platform": token.platform} for token in tokens],
        )
        return payload, preference

    def _deactivate_tokens(self, db: Session, user_id: str, tokens: list[str]) -> None:
        if not tokens:
            return
        try:
            (
                db.query(PushToken)
                .filter(PushToken.user_id == user_id, PushToken.token.in_(tokens))
                .update({PushToken.is_active: False}, synchronize_session=False)
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed to deactivate %d push tokens for %s: %s", len(tokens), user_id, exc)
            return
        logger.info("Deactivated %d unregistered push tokens for %s", len(tokens), user_id)
