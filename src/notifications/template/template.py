"""NotificationTemplate aggregate — reusable, versioned message content.

Subject and content carry `{{variable}}` placeholders. Each template declares
its variables (and optional defaults); only declared variables are
substituted at render time. Email and multi-channel templates must have a
subject. Editing subject, content or variables bumps the version.
"""

import json
import re
from datetime import UTC, datetime
from enum import Enum

from notifications.domain import notifications
from notifications.template.events import (
    TemplateActivationChanged,
    TemplateCreated,
    TemplateUpdated,
)
from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Integer, String, Text, ValueObject

_UNSET = object()

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([^{}\s]+)\s*\}\}")


class TemplateCategory(Enum):
    SYSTEM = "system"
    MARKETING = "marketing"
    TRANSACTIONAL = "transactional"
    ALERT = "alert"
    PROMOTIONAL = "promotional"


class TemplateChannelType(Enum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    IN_APP = "in_app"
    MULTI_CHANNEL = "multi_channel"


class TemplateLanguage(Enum):
    EN = "en"
    NE = "ne"
    HI = "hi"
    FR = "fr"
    ES = "es"
    DE = "de"


class SmsEncoding(Enum):
    GSM = "gsm"
    UNICODE = "unicode"


class PushSoundPriority(Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


SUBJECT_BEARING_TYPES = {TemplateChannelType.EMAIL.value, TemplateChannelType.MULTI_CHANNEL.value}


def extract_variables(*texts) -> list[str]:
    """Placeholder names used in `texts`, in order of first appearance."""
    names = []
    for text in texts:
        names.extend(PLACEHOLDER_PATTERN.findall(text or ""))
    return list(dict.fromkeys(names))


@notifications.value_object(part_of="NotificationTemplate")
class EmailSettings:
    from_name: String(max_length=100)
    from_email: String(max_length=254)
    reply_to: String(max_length=254)


@notifications.value_object(part_of="NotificationTemplate")
class SmsSettings:
    sender_id: String(max_length=20)
    max_length: Integer(default=160, min_value=1)
    encoding: String(choices=SmsEncoding, default=SmsEncoding.GSM.value)


@notifications.value_object(part_of="NotificationTemplate")
class PushSettings:
    sound: String(max_length=100, default="default")
    channel_id: String(max_length=100)
    priority: String(choices=PushSoundPriority, default=PushSoundPriority.NORMAL.value)


@notifications.aggregate
class NotificationTemplate:
    name: String(required=True, max_length=100, unique=True)
    description: String(max_length=500)
    category: String(choices=TemplateCategory, default=TemplateCategory.SYSTEM.value)
    channel_type: String(choices=TemplateChannelType, required=True)
    subject: String(max_length=200)
    content: Text(required=True)
    variables: Text()  # JSON array of declared variable names
    default_values: Text()  # JSON object
    language: String(choices=TemplateLanguage, default=TemplateLanguage.EN.value)
    is_active: Boolean(default=True)
    version: Integer(default=1, min_value=1)

    email_settings: ValueObject(EmailSettings)
    sms_settings: ValueObject(SmsSettings)
    push_settings: ValueObject(PushSettings)

    usage_count: Integer(default=0, min_value=0)
    last_used_at: DateTime()

    created_by: String(max_length=100)
    created_at: DateTime()
    updated_at: DateTime()

    @invariant.post
    def subject_required_for_email_templates(self):
        if self.channel_type in SUBJECT_BEARING_TYPES and not self.subject:
            raise ValidationError({"subject": ["Subject is required for email and multi-channel templates"]})

    @classmethod
    def create(
        cls,
        name,
        channel_type,
        content,
        subject=None,
        description=None,
        category=TemplateCategory.SYSTEM.value,
        variables=None,
        default_values=None,
        language=TemplateLanguage.EN.value,
        email_settings=None,
        sms_settings=None,
        push_settings=None,
        created_by=None,
    ):
        """Create an active template. Variables default to the placeholders found in subject and content."""
        if variables is None:
            variables = extract_variables(subject, content)
        now = datetime.now(UTC)

        template = cls(
            name=name,
            description=description,
            category=category,
            channel_type=channel_type,
            subject=subject,
            content=content,
            variables=json.dumps(list(variables)),
            default_values=json.dumps(default_values or {}),
            language=language,
            is_active=True,
            version=1,
            email_settings=email_settings,
            sms_settings=sms_settings,
            push_settings=push_settings,
            usage_count=0,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )

        template.raise_(
            TemplateCreated(
                template_id=str(template.id),
                name=name,
                category=template.category,
                channel_type=channel_type,
                language=template.language,
                created_by=created_by,
                created_at=now,
            )
        )

        return template

    def get_variables(self) -> list[str]:
        return json.loads(self.variables) if self.variables else []

    def get_default_values(self) -> dict:
        return json.loads(self.default_values) if self.default_values else {}

    def has_subject(self) -> bool:
        return self.channel_type in SUBJECT_BEARING_TYPES

    def update(
        self,
        name=_UNSET,
        description=_UNSET,
        category=_UNSET,
        subject=_UNSET,
        content=_UNSET,
        variables=_UNSET,
        default_values=_UNSET,
        language=_UNSET,
        email_settings=_UNSET,
        sms_settings=_UNSET,
        push_settings=_UNSET,
    ):
        now = datetime.now(UTC)
        content_changed = False

        if name is not _UNSET:
            self.name = name
        if description is not _UNSET:
            self.description = description
        if category is not _UNSET:
            self.category = category
        if language is not _UNSET:
            self.language = language
        if default_values is not _UNSET:
            self.default_values = json.dumps(default_values or {})
        if email_settings is not _UNSET:
            self.email_settings = email_settings
        if sms_settings is not _UNSET:
            self.sms_settings = sms_settings
        if push_settings is not _UNSET:
            self.push_settings = push_settings

        if subject is not _UNSET and subject != self.subject:
            self.subject = subject
            content_changed = True
        if content is not _UNSET and content != self.content:
            self.content = content
            content_changed = True
        if variables is not _UNSET and list(variables or []) != self.get_variables():
            self.variables = json.dumps(list(variables or []))
            content_changed = True

        if content_changed:
            self.version = self.version + 1
        self.updated_at = now

        self.raise_(
            TemplateUpdated(
                template_id=str(self.id),
                name=self.name,
                version=self.version,
                updated_at=now,
            )
        )

    def activate(self):
        self._set_active(True)

    def deactivate(self):
        self._set_active(False)

    def _set_active(self, is_active):
        if self.is_active == is_active:
            return

        now = datetime.now(UTC)
        self.is_active = is_active
        self.updated_at = now

        self.raise_(
            TemplateActivationChanged(
                template_id=str(self.id),
                is_active=is_active,
                changed_at=now,
            )
        )

    def record_usage(self, used_at=None):
        """Count one dispatch that rendered this template."""
        self.usage_count = (self.usage_count or 0) + 1
        self.last_used_at = used_at or datetime.now(UTC)
