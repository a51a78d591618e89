"""In-app notification channel: writes a row to the notifications table."""

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from skul_relay.models import Notification

from .base import BaseChannel, ChannelResult, ChannelType, NotificationPayload


class InAppChannel(BaseChannel):
    """Creates notification records shown in the app's notification centre."""

    channel_type = ChannelType.IN_APP

    def __init__(self, db: Session) -> None:
        super().__init__()
        self.db = db

    async def send(self, payload: NotificationPayload) -> ChannelResult:
        contract = payload.contract
        notification = Notification(
            user_id=contract.recipient_id,
            notification_type=contract.notification_type,
            title=contract.title,
            message=contract.message,
            priority=contract.priority,
            action_url=contract.action_url,
            action_text=contract.action_text,
            image_url=contract.image_url,
            extra=dict(contract.metadata),
        )
        try:
            self.db.add(notification)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            self.logger.error(
                "Failed to create in-app notification for user %s: %s",
                contract.recipient_id,
                exc,
            )
            return self.create_failure_result(f"Database error: {exc}")

        self.logger.info(
            "Created in-app notification %s for user %s",
            notification.id,
            contract.recipient_id,
        )
        return self.create_success_result(message_id=notification.id)
