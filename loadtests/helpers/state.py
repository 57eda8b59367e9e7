"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance maintains its own state — no cross-user sharing.
State tracks entity IDs returned by creation endpoints so follow-up
operations can reference them.
"""

from dataclasses import dataclass, field


@dataclass
class NotificationState:
    """Tracks state for a single simulated notification lifecycle."""

    notification_id: str | None = None
    channels: list[str] = field(default_factory=list)
    current_status: str = "draft"


@dataclass
class TemplateState:
    """Tracks state for a template and the notifications sent from it."""

    template_id: str | None = None
    channel_type: str | None = None
    version: int = 1
    notification_ids: list[str] = field(default_factory=list)


@dataclass
class DeviceState:
    """Tracks the push tokens registered by one simulated app user."""

    user_id: str | None = None
    tokens: list[str] = field(default_factory=list)
