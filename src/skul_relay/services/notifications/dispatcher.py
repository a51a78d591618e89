"""Best-effort hand-off of notification contracts.

``NotificationDispatcher.dispatch`` is scheduled as a FastAPI background task
after the send response is built. It never raises.
"""

from __future__ import annotations

import logging

from skul_relay.services.errors import NotificationError

from .base import FanOutOutcome, NotificationContract
from .service import NotificationService

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    def __init__(self, service: NotificationService | None = None) -> None:
        self._service = service

    @property
    def service(self) -> NotificationService:
        if self._service is None:
            self._service = NotificationService()
        return self._service

    async def dispatch(self, contract: NotificationContract) -> FanOutOutcome | None:
        """Send ``contract``; failures are logged and reported as None."""
        try:
            return await self.service.send(contract)
        except NotificationError as exc:
            logger.warning("Notification fan-out to %s failed: %s", contract.recipient_id, exc)
        except Exception:
            logger.exception("Unexpected error during notification fan-out to %s", contract.recipient_id)
        return None
