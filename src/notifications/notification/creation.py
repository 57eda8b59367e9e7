"""CreateNotification command + handler.

Immediate notifications are picked up by the NotificationDispatcher as soon as
the record is committed; scheduled ones wait for the scheduler sweep.
"""

import json

import structlog
from notifications.domain import notifications
from notifications.notification.notification import (
    EmailContent,
    InAppContent,
    Notification,
    PushContent,
    SmsContent,
)
from notifications.template.management import get_active_template
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

logger = structlog.get_logger(__name__)

_CONTENT_TYPES = {
    "email_content": EmailContent,
    "sms_content": SmsContent,
    "push_content": PushContent,
    "in_app_content": InAppContent,
}


def _decode(command, field, default=None):
    raw = getattr(command, field)
    if not raw:
        return default
    try:
        return json.loads(raw) if isinstance(raw, str) else raw
    except json.JSONDecodeError:
        raise ValidationError({field: ["Malformed JSON"]}) from None


def build_content_overrides(command) -> dict:
    """Decode the per-channel override blocks present on `command` into value objects."""
    overrides = {}
    for field, vo_cls in _CONTENT_TYPES.items():
        values = _decode(command, field)
        if values:
            if field == "push_content" and isinstance(values.get("data"), dict):
                values = {**values, "data": json.dumps(values["data"])}
            overrides[field] = vo_cls(**values)
    return overrides


@notifications.command(part_of="Notification")
class CreateNotification:
    title: String(required=True, max_length=200)
    body: String(required=True, max_length=1000)
    created_by: String(required=True, max_length=100)
    channels: Text(required=True)  # JSON array of channel tags
    notification_type: String(max_length=30)
    data: Text()  # JSON object

    template_id: Identifier()
    template_variables: Text()  # JSON object

    email_content: Text()  # JSON objects, one per channel override
    sms_content: Text()
    push_content: Text()
    in_app_content: Text()

    target_users: Text()  # JSON array of user ids
    target_role: String(max_length=20)
    target_criteria: Text()  # JSON object

    scheduled_time: DateTime()
    time_zone: String(max_length=50)
    delivery_window_start: String(max_length=5)
    delivery_window_end: String(max_length=5)
    priority: String(max_length=20)
    routing_rules: Text()  # JSON object
    fallback_channels: Text()  # JSON array
    require_confirmation: Boolean(default=False)
    max_retries: Integer(min_value=0)
    tags: Text()  # JSON array
    notes: String(max_length=1000)


@notifications.command_handler(part_of=Notification)
class CreateNotificationHandler:
    @handle(CreateNotification)
    def create_notification(self, command: CreateNotification):
        if command.template_id:
            get_active_template(command.template_id)

        optional = {
            key: value
            for key, value in {
                "notification_type": command.notification_type,
                "priority": command.priority,
                "time_zone": command.time_zone,
            }.items()
            if value is not None
        }

        notification = Notification.create(
            title=command.title,
            body=command.body,
            channels=_decode(command, "channels", []),
            created_by=command.created_by,
            data=_decode(command, "data"),
            template_id=command.template_id,
            template_variables=_decode(command, "template_variables"),
            target_users=_decode(command, "target_users"),
            target_role=command.target_role,
            target_criteria=_decode(command, "target_criteria"),
            scheduled_time=command.scheduled_time,
            delivery_window_start=command.delivery_window_start,
            delivery_window_end=command.delivery_window_end,
            routing_rules=_decode(command, "routing_rules"),
            fallback_channels=_decode(command, "fallback_channels"),
            require_confirmation=command.require_confirmation,
            max_retries=command.max_retries,
            tags=_decode(command, "tags"),
            notes=command.notes,
            **optional,
            **build_content_overrides(command),
        )
        current_domain.repository_for(Notification).add(notification)

        logger.info(
            "Notification created",
            notification_id=str(notification.id),
            channels=notification.get_channels(),
            status=notification.status,
            created_by=command.created_by,
        )
        return str(notification.id)
