"""ExpireNotifications command + handler — retention sweep over finished jobs."""

from datetime import UTC, datetime, timedelta

import structlog
from notifications.domain import notifications
from notifications.notification.locking import notification_lock
from notifications.notification.notification import (
    Notification,
    NotificationStatus,
    ensure_utc,
)
from notifications.settings import get_settings
from notifications.utils.paging import fetch_all
from protean.exceptions import ValidationError
from protean.fields import DateTime, Integer
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

logger = structlog.get_logger(__name__)

_EXPIRY_BATCH = 1000

_EXPIRABLE_STATUSES = (
    NotificationStatus.SENT.value,
    NotificationStatus.PARTIALLY_SENT.value,
    NotificationStatus.FAILED.value,
    NotificationStatus.DELIVERED.value,
)


def _finished_before(notification, cutoff) -> bool:
    reference = ensure_utc(notification.dispatched_at or notification.created_at)
    return reference is not None and reference <= cutoff


@notifications.command(part_of="Notification")
class ExpireNotifications:
    as_of: DateTime()
    retention_days: Integer(min_value=1)


@notifications.command_handler(part_of=Notification)
class ExpireNotificationsHandler:
    @handle(ExpireNotifications)
    def expire_notifications(self, command: ExpireNotifications):
        as_of = ensure_utc(command.as_of) or datetime.now(UTC)
        retention_days = command.retention_days or get_settings().retention_days
        cutoff = as_of - timedelta(days=retention_days)
        repo = current_domain.repository_for(Notification)

        candidates = [
            notification
            for status in _EXPIRABLE_STATUSES
            for notification in fetch_all(repo._dao.query.filter(status=status), _EXPIRY_BATCH)
            if _finished_before(notification, cutoff)
        ]

        expired = 0
        for notification in candidates:
            try:
                with notification_lock(notification.id):
                    fresh = repo.get(notification.id)
                    fresh.expire(expired_at=as_of)
                    repo.add(fresh)
                expired += 1
            except ValidationError as exc:
                logger.error(
                    "Notification expiry failed",
                    notification_id=str(notification.id),
                    error=str(exc),
                )

        logger.info("Notifications expired", expired=expired, retention_days=retention_days)
        return expired
