"""Delivery engine tunables.

Values come from environment variables with conservative defaults. Tests and
the management CLI can override them in-process with `configure_settings()`.

    NOTIFICATION_MAX_RETRIES            retry ceiling per channel (5)
    NOTIFICATION_RETRY_BASE_SECONDS     first backoff delay (60)
    NOTIFICATION_RETRY_MAX_SECONDS      backoff cap (3600)
    NOTIFICATION_DISPATCH_WORKERS       thread pool size for channel attempts (8)
    NOTIFICATION_STUCK_TIMEOUT_MINUTES  age after which a processing job is re-admitted (15)
    NOTIFICATION_RETENTION_DAYS         age after which finished jobs expire (90)
"""

import os
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class DeliverySettings:
    max_retries: int = 5
    retry_base_seconds: int = 60
    retry_max_seconds: int = 3600
    dispatch_workers: int = 8
    stuck_timeout_minutes: int = 15
    retention_days: int = 90

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.retry_base_seconds < 1:
            raise ValueError("retry_base_seconds must be at least 1")
        if self.retry_max_seconds < self.retry_base_seconds:
            raise ValueError("retry_max_seconds must be >= retry_base_seconds")
        if self.dispatch_workers < 1:
            raise ValueError("dispatch_workers must be at least 1")
        if self.stuck_timeout_minutes < 1:
            raise ValueError("stuck_timeout_minutes must be at least 1")
        if self.retention_days < 1:
            raise ValueError("retention_days must be at least 1")

    @classmethod
    def from_env(cls) -> "DeliverySettings":
        def _int(name: str, default: int) -> int:
            raw = os.getenv(name)
            return int(raw) if raw not in (None, "") else default

        return cls(
            max_retries=_int("NOTIFICATION_MAX_RETRIES", cls.max_retries),
            retry_base_seconds=_int("NOTIFICATION_RETRY_BASE_SECONDS", cls.retry_base_seconds),
            retry_max_seconds=_int("NOTIFICATION_RETRY_MAX_SECONDS", cls.retry_max_seconds),
            dispatch_workers=_int("NOTIFICATION_DISPATCH_WORKERS", cls.dispatch_workers),
            stuck_timeout_minutes=_int("NOTIFICATION_STUCK_TIMEOUT_MINUTES", cls.stuck_timeout_minutes),
            retention_days=_int("NOTIFICATION_RETENTION_DAYS", cls.retention_days),
        )


_settings: DeliverySettings | None = None


def get_settings() -> DeliverySettings:
    """Return the active settings, loading them from the environment on first use."""
    global _settings
    if _settings is None:
        _settings = DeliverySettings.from_env()
    return _settings


def configure_settings(**overrides) -> DeliverySettings:
    """Replace individual settings for the running process."""
    global _settings
    _settings = replace(get_settings(), **overrides)
    return _settings


def reset_settings() -> None:
    """Forget overrides; the next access reloads from the environment."""
    global _settings
    _settings = None
