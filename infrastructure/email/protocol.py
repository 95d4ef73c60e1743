"""NotificationSender protocol: services depend on this, not the concrete implementation."""

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class MailMessage:
    """A template mail, ready for the provider to render and deliver."""

    to: str
    subject: str
    template: str
    from_email: str
    from_name: str
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def from_address(self) -> str:
        return f'"{self.from_name}" <{self.from_email}>'


class NotificationSender(Protocol):
    async def send(self, message: MailMessage) -> bool: ...
