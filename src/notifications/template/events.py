"""Domain events for the NotificationTemplate aggregate."""

from notifications.domain import notifications
from protean.fields import Boolean, DateTime, Identifier, Integer, String


@notifications.event(part_of="NotificationTemplate")
class TemplateCreated:
    __version__ = 1

    template_id: Identifier(required=True)
    name: String(required=True)
    category: String(required=True)
    channel_type: String(required=True)
    language: String(required=True)
    created_by: String()
    created_at: DateTime(required=True)


@notifications.event(part_of="NotificationTemplate")
class TemplateUpdated:
    """Template settings or content changed. `version` moves only on content edits."""

    __version__ = 1

    template_id: Identifier(required=True)
    name: String(required=True)
    version: Integer(required=True)
    updated_at: DateTime(required=True)


@notifications.event(part_of="NotificationTemplate")
class TemplateActivationChanged:
    __version__ = 1

    template_id: Identifier(required=True)
    is_active: Boolean(required=True)
    changed_at: DateTime(required=True)
