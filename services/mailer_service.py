"""
Mailer service: from-address resolution and every outbound mail the
engine sends.

The sender identity comes from EmailSettings, which refuses to load
without MAIL_FROM_EMAIL, so a misconfigured deployment dies at startup
instead of on the first "forgot password" click.
"""

from __future__ import annotations

from typing import Any

from config import EmailSettings
from errors import NotificationError
from infrastructure.email.protocol import MailMessage, NotificationSender
from shared.logging import get_logger

log = get_logger(__name__)

SIGNUP_TEMPLATE = "signup-confirmation"
RESET_TEMPLATE = "reset-password"
INFO_TEMPLATE = "info-message"


class MailerService:
    def __init__(self, settings: EmailSettings, sender: NotificationSender) -> None:
        self._settings = settings
        self._sender = sender

    @property
    def from_name(self) -> str:
        return self._settings.mail_from_name

    @property
    def from_email(self) -> str:
        return self._settings.mail_from_email

    def _message(
        self, to: str, subject: str, template: str, context: dict[str, Any]
    ) -> MailMessage:
        return MailMessage(
            to=to.strip().lower(),
            subject=subject,
            template=template,
            from_email=self.from_email,
            from_name=self.from_name,
            context={**context, "fromName": self.from_name},
        )

    async def _deliver(self, message: MailMessage) -> None:
        if not await self._sender.send(message):
            log.error(
                "email_send_failed", to_email=message.to, template=message.template
            )
            raise NotificationError(f"Failed to send '{message.template}' email")

    async def send_signup_code(self, email: str, otp: str) -> None:
        await self._deliver(
            self._message(email, "Confirm your account", SIGNUP_TEMPLATE, {"otp": otp})
        )

    async def send_reset_code(self, email: str, otp: str) -> None:
        await self._deliver(
            self._message(email, "Password reset request", RESET_TEMPLATE, {"otp": otp})
        )

    async def send_info(self, email: str, title: str, message: str) -> None:
        """Send a plain informational mail through the ``info-message`` template."""
        await self._deliver(
            self._message(
                email, title, INFO_TEMPLATE, {"title": title, "message": message}
            )
        )

    async def send_custom_template(self, email: str, template_name: str) -> None:
        """Send *template_name* with only ``fromName`` in its context."""
        await self._deliver(
            self._message(
                email, f"Notification from {self.from_name}", template_name, {}
            )
        )
