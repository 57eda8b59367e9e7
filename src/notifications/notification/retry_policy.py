"""Exponential backoff for failed channel deliveries.

With the defaults a channel is retried after 60s, 120s, 240s, 480s, ...
never waiting more than an hour between attempts. Once a channel's
retry count reaches the ceiling no further attempt is scheduled.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from notifications.settings import DeliverySettings, get_settings


@dataclass(frozen=True)
class RetryPolicy:
    base_delay_seconds: int = 60
    max_delay_seconds: int = 3600
    factor: int = 2

    @classmethod
    def from_settings(cls, settings: DeliverySettings | None = None) -> "RetryPolicy":
        settings = settings or get_settings()
        return cls(
            base_delay_seconds=settings.retry_base_seconds,
            max_delay_seconds=settings.retry_max_seconds,
        )

    def backoff_seconds(self, retry_count: int) -> int:
        """Delay before the attempt that follows the `retry_count`-th failure."""
        if retry_count < 1:
            return 0
        return min(self.base_delay_seconds * self.factor ** (retry_count - 1), self.max_delay_seconds)

    def next_attempt_at(self, retry_count: int, max_retries: int, failed_at: datetime) -> datetime | None:
        if retry_count >= max_retries:
            return None
        return failed_at + timedelta(seconds=self.backoff_seconds(retry_count))
