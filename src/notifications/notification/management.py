"""Notification record management — update, delete, archive."""

import json

import structlog
from notifications.domain import notifications
from notifications.notification.locking import notification_lock
from notifications.notification.notification import Notification, NotificationStatus
from notifications.template.management import get_active_template
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

logger = structlog.get_logger(__name__)

_JSON_FIELDS = (
    "data",
    "channels",
    "fallback_channels",
    "routing_rules",
    "template_variables",
    "target_users",
    "target_criteria",
    "tags",
)


@notifications.command(part_of="Notification")
class UpdateNotification:
    """Partial update of a draft or scheduled notification: None means unchanged."""

    notification_id: Identifier(required=True)
    title: String(max_length=200)
    body: String(max_length=1000)
    notification_type: String(max_length=30)
    data: Text()
    channels: Text()
    fallback_channels: Text()
    routing_rules: Text()
    template_id: Identifier()
    template_variables: Text()
    target_users: Text()
    target_role: String(max_length=20)
    target_criteria: Text()
    scheduled_time: DateTime()
    clear_schedule: Boolean(default=False)  # Turn a scheduled notification back into a draft
    priority: String(max_length=20)
    tags: Text()
    notes: String(max_length=1000)


@notifications.command(part_of="Notification")
class DeleteNotification:
    notification_id: Identifier(required=True)


@notifications.command(part_of="Notification")
class ArchiveNotification:
    notification_id: Identifier(required=True)


@notifications.command_handler(part_of=Notification)
class NotificationManagementHandler:
    @handle(UpdateNotification)
    def update_notification(self, command: UpdateNotification):
        if command.template_id:
            get_active_template(command.template_id)

        changes = {
            key: value
            for key, value in {
                "title": command.title,
                "body": command.body,
                "notification_type": command.notification_type,
                "template_id": command.template_id,
                "target_role": command.target_role,
                "priority": command.priority,
                "notes": command.notes,
            }.items()
            if value is not None
        }
        for field in _JSON_FIELDS:
            raw = getattr(command, field)
            if raw is not None:
                changes[field] = json.loads(raw)

        if command.clear_schedule:
            changes["scheduled_time"] = None
        elif command.scheduled_time is not None:
            changes["scheduled_time"] = command.scheduled_time

        repo = current_domain.repository_for(Notification)
        with notification_lock(command.notification_id):
            notification = repo.get(command.notification_id)
            notification.update_details(**changes)
            repo.add(notification)

        logger.info(
            "Notification updated",
            notification_id=str(command.notification_id),
            fields=sorted(changes),
        )
        return notification.status

    @handle(DeleteNotification)
    def delete_notification(self, command: DeleteNotification):
        repo = current_domain.repository_for(Notification)
        with notification_lock(command.notification_id):
            notification = repo.get(command.notification_id)
            if notification.status == NotificationStatus.PROCESSING.value:
                raise ValidationError({"status": ["Cannot delete a notification while it is being dispatched"]})
            repo._dao.delete(notification)

        logger.info("Notification deleted", notification_id=str(command.notification_id))

    @handle(ArchiveNotification)
    def archive_notification(self, command: ArchiveNotification):
        repo = current_domain.repository_for(Notification)
        with notification_lock(command.notification_id):
            notification = repo.get(command.notification_id)
            notification.archive()
            repo.add(notification)
