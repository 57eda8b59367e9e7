"""Channel port — the one interface every dispatch adapter implements.

The orchestrator renders a ChannelContent per channel and hands it, with the
recipient's endpoint for that channel, to `deliver()`. Endpoints are an email
address, a phone number, the list of a user's push tokens, or the user id
(in-app).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class ChannelContent:
    channel: str
    body: str
    subject: str | None = None
    html_body: str | None = None
    sender: str | None = None
    reply_to: str | None = None
    data: dict = field(default_factory=dict)
    sound: str | None = None
    channel_id: str | None = None
    priority: str | None = None
    action: str | None = None
    expires_at: datetime | None = None
    notification_id: str | None = None


class ChannelPort(ABC):
    """Abstract interface for channel dispatch adapters."""

    @abstractmethod
    def deliver(self, content: ChannelContent, endpoint) -> dict:
        """Deliver `content` to one recipient endpoint.

        Returns:
            dict with keys: message_id, status ("sent", "delivered" or "failed"),
            error (optional). Push adapters add `results`, a mapping of
            token → "sent" | "delivered" | "invalid" | "failed".
        """
        ...

    def validate_endpoint(self, endpoint) -> bool:
        """Whether the gateway still accepts `endpoint`. Adapters without a check accept all."""
        return True
