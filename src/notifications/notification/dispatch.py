"""Dispatch entry points.

NotificationDispatcher reacts to NotificationCreated and sends immediate
notifications straight away. SendNotification is the explicit (re-)trigger:
drafts and scheduled jobs are claimed and sent now, finished jobs are
re-opened and every channel that has not succeeded yet is attempted again
(up to the retry ceiling).
"""

import structlog
from notifications.domain import notifications
from notifications.notification.events import NotificationCreated
from notifications.notification.locking import claim_notification
from notifications.notification.notification import Notification, NotificationStatus
from notifications.notification.orchestrator import DispatchMode, DispatchOrchestrator
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

logger = structlog.get_logger(__name__)

_SENDABLE_STATUSES = {
    NotificationStatus.DRAFT.value,
    NotificationStatus.SCHEDULED.value,
    NotificationStatus.SENT.value,
    NotificationStatus.PARTIALLY_SENT.value,
    NotificationStatus.FAILED.value,
    NotificationStatus.DELIVERED.value,
}


@notifications.event_handler(part_of=Notification)
class NotificationDispatcher:
    """Dispatches immediate notifications when they are created."""

    @handle(NotificationCreated)
    def on_notification_created(self, event: NotificationCreated) -> None:
        # Scheduled notifications are dispatched by the scheduler
        if event.status != NotificationStatus.DRAFT.value:
            logger.info(
                "Notification is scheduled, skipping immediate dispatch",
                notification_id=str(event.notification_id),
                scheduled_time=str(event.scheduled_time),
            )
            return

        try:
            notification = claim_notification(event.notification_id, {NotificationStatus.DRAFT.value})
            if notification is None:
                return

            DispatchOrchestrator().dispatch(event.notification_id, mode=DispatchMode.INITIAL, claimed=notification)
        except Exception as exc:
            logger.exception(
                "Notification dispatch failed",
                notification_id=str(event.notification_id),
                error=str(exc),
            )


@notifications.command(part_of="Notification")
class SendNotification:
    notification_id: Identifier(required=True)
    sent_by: String(max_length=100)


@notifications.command_handler(part_of=Notification)
class SendNotificationHandler:
    @handle(SendNotification)
    def send_notification(self, command: SendNotification):
        repo = current_domain.repository_for(Notification)
        notification = repo.get(command.notification_id)

        if notification.status not in _SENDABLE_STATUSES:
            raise ValidationError({"status": [f"Cannot send a notification in {notification.status} status"]})

        claimed = claim_notification(command.notification_id, _SENDABLE_STATUSES)
        if claimed is None:
            raise ValidationError({"status": ["Notification is already being processed"]})

        if command.sent_by:
            claimed.sent_by = command.sent_by
            repo.add(claimed)

        logger.info(
            "Explicit send requested",
            notification_id=str(command.notification_id),
            previous_status=notification.status,
            sent_by=command.sent_by,
        )
        return DispatchOrchestrator().dispatch(command.notification_id, mode=DispatchMode.RESEND, claimed=claimed)
