"""Template store commands + handler (create, update, activate/deactivate, delete)."""

import json

import structlog
from notifications.domain import notifications
from notifications.template.template import (
    EmailSettings,
    NotificationTemplate,
    PushSettings,
    SmsSettings,
)
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Boolean, Identifier, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

logger = structlog.get_logger(__name__)

_SETTINGS_TYPES = {
    "email_settings": EmailSettings,
    "sms_settings": SmsSettings,
    "push_settings": PushSettings,
}


def get_active_template(template_id) -> NotificationTemplate:
    """Load a template that notifications may reference; unknown or inactive ids are invalid input."""
    try:
        template = current_domain.repository_for(NotificationTemplate).get(template_id)
    except ObjectNotFoundError:
        raise ValidationError({"template_id": [f"Template {template_id} does not exist"]}) from None
    if not template.is_active:
        raise ValidationError({"template_id": [f"Template {template_id} is inactive"]})
    return template


def _assert_name_available(name, template_id=None):
    repo = current_domain.repository_for(NotificationTemplate)
    clashes = [t for t in repo._dao.query.filter(name=name).all().items if str(t.id) != str(template_id)]
    if clashes:
        raise ValidationError({"name": [f"A template named {name} already exists"]})


def _settings_from_command(command) -> dict:
    """Decode JSON settings blocks present on `command` into value objects."""
    settings = {}
    for field, vo_cls in _SETTINGS_TYPES.items():
        raw = getattr(command, field)
        if raw is not None:
            settings[field] = vo_cls(**json.loads(raw)) if raw else None
    return settings


@notifications.command(part_of="NotificationTemplate")
class CreateTemplate:
    name: String(required=True, max_length=100)
    channel_type: String(required=True, max_length=20)
    content: Text(required=True)
    subject: String(max_length=200)
    description: String(max_length=500)
    category: String(max_length=20)
    variables: Text()  # JSON array; omitted → placeholders found in subject/content
    default_values: Text()  # JSON object
    language: String(max_length=5)
    email_settings: Text()  # JSON object
    sms_settings: Text()
    push_settings: Text()
    created_by: String(max_length=100)


@notifications.command(part_of="NotificationTemplate")
class UpdateTemplate:
    """Partial update: fields left as None are unchanged."""

    template_id: Identifier(required=True)
    name: String(max_length=100)
    description: String(max_length=500)
    category: String(max_length=20)
    subject: String(max_length=200)
    content: Text()
    variables: Text()
    default_values: Text()
    language: String(max_length=5)
    email_settings: Text()
    sms_settings: Text()
    push_settings: Text()


@notifications.command(part_of="NotificationTemplate")
class SetTemplateActive:
    template_id: Identifier(required=True)
    is_active: Boolean(default=True)


@notifications.command(part_of="NotificationTemplate")
class DeleteTemplate:
    template_id: Identifier(required=True)


@notifications.command_handler(part_of=NotificationTemplate)
class TemplateManagementHandler:
    @handle(CreateTemplate)
    def create_template(self, command: CreateTemplate):
        _assert_name_available(command.name)

        optional = {
            key: value
            for key, value in {
                "category": command.category,
                "language": command.language,
            }.items()
            if value is not None
        }
        template = NotificationTemplate.create(
            name=command.name,
            channel_type=command.channel_type,
            content=command.content,
            subject=command.subject,
            description=command.description,
            variables=json.loads(command.variables) if command.variables else None,
            default_values=json.loads(command.default_values) if command.default_values else None,
            created_by=command.created_by,
            **optional,
            **_settings_from_command(command),
        )
        current_domain.repository_for(NotificationTemplate).add(template)

        logger.info(
            "Notification template created",
            template_id=str(template.id),
            name=template.name,
            channel_type=template.channel_type,
        )
        return str(template.id)

    @handle(UpdateTemplate)
    def update_template(self, command: UpdateTemplate):
        repo = current_domain.repository_for(NotificationTemplate)
        template = repo.get(command.template_id)

        if command.name is not None:
            _assert_name_available(command.name, template_id=template.id)

        changes = {
            key: value
            for key, value in {
                "name": command.name,
                "description": command.description,
                "category": command.category,
                "subject": command.subject,
                "content": command.content,
                "language": command.language,
            }.items()
            if value is not None
        }
        if command.variables is not None:
            changes["variables"] = json.loads(command.variables)
        if command.default_values is not None:
            changes["default_values"] = json.loads(command.default_values)
        changes.update(_settings_from_command(command))

        template.update(**changes)
        repo.add(template)
        return template.version

    @handle(SetTemplateActive)
    def set_template_active(self, command: SetTemplateActive):
        repo = current_domain.repository_for(NotificationTemplate)
        template = repo.get(command.template_id)
        if command.is_active:
            template.activate()
        else:
            template.deactivate()
        repo.add(template)

    @handle(DeleteTemplate)
    def delete_template(self, command: DeleteTemplate):
        repo = current_domain.repository_for(NotificationTemplate)
        template = repo.get(command.template_id)
        repo._dao.delete(template)

        logger.info("Notification template deleted", template_id=str(command.template_id))
