"""Email notification channel using async SMTP.

Sends a plain text and an HTML part through ``aiosmtplib``. The channel is
skipped when SMTP_HOST or SMTP_FROM_EMAIL is not configured.
"""

from __future__ import annotations

import html
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Any

import aiosmtplib

from skul_relay.core.settings import settings

from .base import BaseChannel, ChannelResult, ChannelType, NotificationPayload

SmtpSender = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class SmtpConfig:
    host: str
    port: int
    from_email: str
    from_name: str
    username: str | None = None
    password: str | None = None
    use_tls: bool = True

    @classmethod
    def from_settings(cls) -> SmtpConfig | None:
        """Build the config from settings, or None when SMTP is not configured."""
        if not settings.smtp_configured:
            return None
        return cls(
            host=settings.smtp_host or "",
            port=settings.smtp_port,
            from_email=settings.smtp_from_email or "",
            from_name=settings.smtp_from_name,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
        )


class EmailChannel(BaseChannel):
    """Email notification channel.

    Args:
        config: SMTP settings; defaults to the application settings.
        sender: Coroutine used to deliver the message; defaults to
            ``aiosmtplib.send``.
    """

    channel_type = ChannelType.EMAIL

    def __init__(
        self,
        config: SmtpConfig | None = None,
        sender: SmtpSender | None = None,
    ) -> None:
        super().__init__()
        self.config = config if config is not None else SmtpConfig.from_settings()
        self.sender = sender or aiosmtplib.send

    async def send(self, payload: NotificationPayload) -> ChannelResult:
        if self.config is None:
            return self.create_skipped_result("Email channel not configured")
        if not payload.recipient_email:
            return self.create_skipped_result("No recipient email address")

        message = self.build_message(payload, self.config)
        try:
            await self.sender(
                message,
                hostname=self.config.host,
                port=self.config.port,
                username=self.config.username,
                password=self.config.password,
                start_tls=self.config.use_tls,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            self.logger.error("Failed to send email to %s: %s", payload.recipient_email, exc)
            return self.create_failure_result(
                f"SMTP error: {exc}",
                metadata={"recipient": payload.recipient_email},
            )

        self.logger.info("Email sent to %s: %s", payload.recipient_email, payload.contract.title)
        return self.create_success_result(
            message_id=message["Message-ID"],
            metadata={"recipient": payload.recipient_email},
        )

    def build_message(self, payload: NotificationPayload, config: SmtpConfig) -> MIMEMultipart:
        """Build the multipart/alternative email for ``payload``."""
        contract = payload.contract
        message = MIMEMultipart("alternative")
        message["From"] = f"{config.from_name} <{config.from_email}>"
        message["To"] = payload.recipient_email or ""
        message["Subject"] = contract.title
        message["Message-ID"] = make_msgid(domain=config.from_email.rsplit("@", 1)[-1])

        message.attach(MIMEText(self._plain_text(payload), "plain", "utf-8"))
        message.attach(MIMEText(self._html(payload), "html", "utf-8"))
        return message

    def _action_link(self, action_url: str | None) -> str | None:
        if not action_url:
            return None
        if action_url.startswith("/"):
            return settings.public_app_url.rstrip("/") + action_url
        return action_url

    def _plain_text(self, payload: NotificationPayload) -> str:
        contract = payload.contract
        lines = [f"Hi {payload.recipient_name or 'there'},", "", contract.title, "", contract.message, ""]

        link = self._action_link(contract.action_url)
        if link:
            lines.extend([f"{contract.action_text or 'Open'}: {link}", ""])

        lines.extend([
            "---",
            f"This notification was sent by {settings.platform_name}.",
            "To manage your notification preferences, visit your account settings.",
        ])
        return "\n".join(lines)

    def _html(self, payload: NotificationPayload) -> str:
        contract = payload.contract
        title = html.escape(contract.title)
        body = html.escape(contract.message).replace("\n", "<br>")
        greeting = html.escape(payload.recipient_name or "there")

        avatar = ""
        if contract.image_url:
            avatar = (
                f'<img src="{html.escape(contract.image_url, quote=True)}" alt="" '
                'width="48" height="48" style="border-radius: 24px;">'
            )

        button = ""
        link = self._action_link(contract.action_url)
        if link:
            button = (
                f'<p style="margin: 24px 0;"><a href="{html.escape(link, quote=True)}" '
                'style="background-color: #1B2C4F; color: white; padding: 12px 24px; '
                'text-decoration: none; border-radius: 6px;">'
                f"{html.escape(contract.action_text or 'Open')}</a></p>"
            )

        return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: Arial, sans-serif; color: #1F2937; background-color: #F3F4F6;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px; background-color: white;">
    <p>Hi {greeting},</p>
    {avatar}
    <h2 style="color: #1B2C4F;">{title}</h2>
    <p>{body}</p>
    {button}
    <p style="font-size: 12px; color: #9CA3AF;">
      This notification was sent by {html.escape(settings.platform_name)}.
    </p>
  </div>
</body>
</html>"""
