"""CancelNotification command + handler — withdraw a draft or scheduled notification."""

import structlog
from notifications.domain import notifications
from notifications.notification.locking import notification_lock
from notifications.notification.notification import Notification
from protean.fields import Identifier, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

logger = structlog.get_logger(__name__)


@notifications.command(part_of="Notification")
class CancelNotification:
    """Request to cancel a notification that has not been dispatched yet."""

    notification_id: Identifier(required=True)
    reason: String(required=True, max_length=500)


@notifications.command_handler(part_of=Notification)
class CancelNotificationHandler:
    @handle(CancelNotification)
    def cancel_notification(self, command: CancelNotification):
        repo = current_domain.repository_for(Notification)
        with notification_lock(command.notification_id):
            notification = repo.get(command.notification_id)
            notification.cancel(command.reason)
            repo.add(notification)

        logger.info(
            "Notification cancelled",
            notification_id=str(command.notification_id),
            reason=command.reason,
        )
