"""RecordEngagement command + handler — opens, clicks and actions reported by clients."""

import structlog
from notifications.domain import notifications
from notifications.notification.locking import notification_lock
from notifications.notification.notification import Notification
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

logger = structlog.get_logger(__name__)


@notifications.command(part_of="Notification")
class RecordEngagement:
    notification_id: Identifier(required=True)
    channel: String(required=True, max_length=20)
    event: String(required=True, max_length=20)  # opened | clicked | action_taken
    action: String(max_length=500)
    read_duration: Integer(min_value=0)  # seconds


@notifications.command_handler(part_of=Notification)
class RecordEngagementHandler:
    @handle(RecordEngagement)
    def record_engagement(self, command: RecordEngagement):
        repo = current_domain.repository_for(Notification)
        with notification_lock(command.notification_id):
            notification = repo.get(command.notification_id)
            notification.record_engagement(
                command.channel,
                command.event,
                action=command.action,
                read_duration=command.read_duration,
            )
            repo.add(notification)

        if notification.engagement_metrics().suspect:
            logger.warning(
                "Engagement recorded for a channel that was not delivered",
                notification_id=str(command.notification_id),
                channel=command.channel,
                engagement_event=command.event,
            )
        return notification.delivery_for(command.channel).status
