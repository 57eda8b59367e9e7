"""RetryNotification command + handler — admin retry of failed channels.

Ignores the backoff schedule but not the retry ceiling: channels that have
used up their attempts stay failed.
"""

import structlog
from notifications.domain import notifications
from notifications.notification.locking import claim_notification
from notifications.notification.notification import (
    DeliveryStatus,
    Notification,
    NotificationStatus,
)
from notifications.notification.orchestrator import DispatchMode, DispatchOrchestrator
from protean.exceptions import ValidationError
from protean.fields import Identifier
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

logger = structlog.get_logger(__name__)

_FINISHED_STATUSES = {
    NotificationStatus.SENT.value,
    NotificationStatus.PARTIALLY_SENT.value,
    NotificationStatus.FAILED.value,
    NotificationStatus.DELIVERED.value,
}


@notifications.command(part_of="Notification")
class RetryNotification:
    """Request to retry the failed channels of a notification now."""

    notification_id: Identifier(required=True)


@notifications.command_handler(part_of=Notification)
class RetryNotificationHandler:
    @handle(RetryNotification)
    def retry_notification(self, command: RetryNotification):
        repo = current_domain.repository_for(Notification)
        notification = repo.get(command.notification_id)

        retryable = [
            d.channel
            for d in notification.deliveries
            if d.status == DeliveryStatus.FAILED.value and not notification.is_exhausted(d)
        ]
        if notification.status not in _FINISHED_STATUSES or not retryable:
            raise ValidationError({"status": ["Notification has no failed channels left to retry"]})

        claimed = claim_notification(command.notification_id, _FINISHED_STATUSES)
        if claimed is None:
            raise ValidationError({"status": ["Notification is already being processed"]})

        logger.info(
            "Manual retry requested",
            notification_id=str(command.notification_id),
            channels=retryable,
        )
        return DispatchOrchestrator().dispatch(command.notification_id, mode=DispatchMode.RESEND, claimed=claimed)
