"""Push notification channel using Firebase Cloud Messaging.

Sends to every active device token through the FCM HTTP v1 API. OAuth
access tokens come from a Firebase service account via ``google-auth``.

Configuration (via environment variables):
- FIREBASE_CREDENTIALS_PATH: Path to service account JSON file
- FIREBASE_PROJECT_ID: Firebase project ID
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from skul_relay.core.settings import settings

from .base import BaseChannel, ChannelResult, ChannelType, NotificationPayload

FCM_API_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
FCM_SCOPES = ["https://www.googleapis.com/auth/firebase.messaging"]

TokenProvider = Callable[[], Awaitable[str | None]]


class ServiceAccountTokenProvider:
    """Loads service account credentials lazily and refreshes them off-loop."""

    def __init__(self, credentials_path: str) -> None:
        self.credentials_path = credentials_path
        self._credentials: service_account.Credentials | None = None

    def _refresh(self) -> str | None:
        if self._credentials is None:
            self._credentials = service_account.Credentials.from_service_account_file(
                self.credentials_path,
                scopes=FCM_SCOPES,
            )
        if not self._credentials.valid:
            self._credentials.refresh(Request())
        return self._credentials.token

    async def __call__(self) -> str | None:
        return await asyncio.to_thread(self._refresh)


class PushChannel(BaseChannel):
    """Push notification channel.

    Args:
        project_id: Firebase project; defaults to FIREBASE_PROJECT_ID.
        token_provider: Coroutine returning an OAuth access token.
        client: Shared ``httpx.AsyncClient``; a short-lived one is created
            per send when omitted.
    """

    channel_type = ChannelType.PUSH

    # FCM priority mapping
    PRIORITY_MAP = {
        "low": "normal",
        "normal": "normal",
        "high": "high",
        "urgent": "high",
    }

    def __init__(
        self,
        project_id: str | None = None,
        token_provider: TokenProvider | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        self.project_id = project_id or settings.fcm_project_id
        if token_provider is None and settings.fcm_credentials_path:
            token_provider = ServiceAccountTokenProvider(settings.fcm_credentials_path)
        self.token_provider = token_provider
        self.client = client

    @property
    def configured(self) -> bool:
        return bool(self.project_id and self.token_provider)

    async def send(self, payload: NotificationPayload) -> ChannelResult:
        if not self.configured:
            return self.create_skipped_result("Push channel not configured")
        if not payload.push_tokens:
            return self.create_skipped_result("No push tokens available")

        try:
            access_token = await self.token_provider()  # type: ignore[misc]
        except (GoogleAuthError, OSError, ValueError) as exc:
            self.logger.error("Failed to get FCM access token: %s", exc)
            access_token = None
        if not access_token:
            return self.create_failure_result(
                "Failed to obtain access token",
                metadata={"failure_count": len(payload.push_tokens)},
            )

        if self.client is not None:
            results = await self._send_all(self.client, payload, access_token)
        else:
            async with httpx.AsyncClient(timeout=settings.fcm_http_timeout_seconds) as client:
                results = await self._send_all(client, payload, access_token)

        success_count = sum(1 for result in results if result["success"])
        failure_count = len(results) - success_count
        metadata = {
            "success_count": success_count,
            "failure_count": failure_count,
            "unregistered": [result["token"] for result in results if result.get("unregistered")],
        }
        if success_count == 0:
            return self.create_failure_result(
                f"All {failure_count} push notifications failed",
                metadata=metadata,
            )
        return self.create_success_result(message_id=results[0].get("message_id"), metadata=metadata)

    async def _send_all(
        self,
        client: httpx.AsyncClient,
        payload: NotificationPayload,
        access_token: str,
    ) -> list[dict[str, Any]]:
        results = []
        for token_info in payload.push_tokens:
            token = token_info.get("token")
            if token:
                results.append(
                    await self._send_to_token(
                        client,
                        token,
                        token_info.get("platform", "android"),
                        payload,
                        access_token,
                    )
                )
        return results

    async def _send_to_token(
        self,
        client: httpx.AsyncClient,
        token: str,
        platform: str,
        payload: NotificationPayload,
        access_token: str,
    ) -> dict[str, Any]:
        url = FCM_API_URL.format(project_id=self.project_id)
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            response = await client.post(
                url,
                headers=headers,
                json={"message": self.build_fcm_message(token, platform, payload)},
            )
        except httpx.HTTPError as exc:
            self.logger.error("Failed to send push to token %s...: %s", token[:12], exc)
            return {"success": False, "token": token, "error": str(exc)}

        if response.status_code == 200:
            message_id = response.json().get("name", "").split("/")[-1]
            return {"success": True, "token": token, "message_id": message_id}

        self.logger.warning("FCM request failed (%d): %s", response.status_code, response.text)
        return {
            "success": False,
            "token": token,
            "error": response.text,
            "unregistered": self._is_unregistered(response),
        }

    @staticmethod
    def _is_unregistered(response: httpx.Response) -> bool:
        if response.status_code == 404:
            return True
        try:
            details = response.json().get("error", {}).get("details", [])
        except ValueError:
            return False
        return any(detail.get("errorCode") == "UNREGISTERED" for detail in details)

    def build_fcm_message(
        self,
        token: str,
        platform: str,
        payload: NotificationPayload,
    ) -> dict[str, Any]:
        """Build the FCM v1 message body for one device."""
        contract = payload.contract
        notification: dict[str, str] = {"title": contract.title, "body": contract.message}
        if contract.image_url:
            notification["image"] = contract.image_url

        # FCM data values must be strings.
        data = {key: str(value) for key, value in contract.metadata.items() if value is not None}
        data["type"] = contract.notification_type
        data["click_action"] = contract.action_url or ""

        message: dict[str, Any] = {"token": token, "notification": notification, "data": data}

        priority = self.PRIORITY_MAP.get(contract.priority, "normal")
        if platform == "android":
            message["android"] = {
                "priority": priority,
                "notification": {"channel_id": "prepskul_messages"},
            }
        elif platform == "ios":
            message["apns"] = {
                "headers": {"apns-priority": "10" if priority == "high" else "5"},
                "payload": {"aps": {"sound": "default", "badge": 1}},
            }
        elif platform == "web":
            message["webpush"] = {
                "headers": {"Urgency": priority},
                "fcm_options": {"link": contract.action_url or "/"},
            }
        return message
