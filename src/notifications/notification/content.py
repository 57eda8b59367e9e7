"""Build the per-channel message for a notification.

Precedence, strongest first: explicit per-channel overrides on the
notification, then template output (with the template's channel settings),
then the notification's own title and body.
"""

import json

from notifications.channel import ChannelContent
from notifications.notification.notification import Channel, Notification, PushPriority
from notifications.template.renderer import RenderedContent, render_template


def _format_sender(settings) -> str | None:
    if settings is None or not settings.from_email:
        return None
    if settings.from_name:
        return f"{settings.from_name} <{settings.from_email}>"
    return settings.from_email


def build_channel_contents(notification: Notification, template=None) -> dict[str, ChannelContent]:
    """Render once and derive the content for every channel the notification may use."""
    rendered = render_template(template, notification.get_template_variables()) if template else None
    channels = list(dict.fromkeys(notification.get_channels() + notification.get_fallback_channels()))
    return {channel: build_channel_content(notification, channel, template, rendered) for channel in channels}


def build_channel_content(
    notification: Notification,
    channel: str,
    template=None,
    rendered: RenderedContent | None = None,
) -> ChannelContent:
    subject = (rendered.subject if rendered else None) or notification.title
    body = rendered.body if rendered else notification.body
    data = notification.get_data()
    notification_id = str(notification.id)

    if channel == Channel.EMAIL.value:
        override = notification.email_content
        settings = template.email_settings if template else None
        return ChannelContent(
            channel=channel,
            subject=(override.subject if override else None) or subject,
            body=(override.text_body if override else None) or body,
            html_body=override.html_body if override else None,
            sender=(override.from_address if override else None) or _format_sender(settings),
            reply_to=(override.reply_to if override else None) or (settings.reply_to if settings else None),
            data=data,
            notification_id=notification_id,
        )

    if channel == Channel.SMS.value:
        override = notification.sms_content
        settings = template.sms_settings if template else None
        return ChannelContent(
            channel=channel,
            body=(override.message if override else None) or body,
            sender=(override.sender_id if override else None) or (settings.sender_id if settings else None),
            notification_id=notification_id,
        )

    if channel == Channel.PUSH.value:
        override = notification.push_content
        settings = template.push_settings if template else None
        if override and override.data:
            data = {**data, **json.loads(override.data)}
        return ChannelContent(
            channel=channel,
            subject=(override.title if override else None) or subject,
            body=(override.body if override else None) or body,
            data=data,
            sound=(override.sound if override else None) or (settings.sound if settings else None) or "default",
            channel_id=(override.channel_id if override else None) or (settings.channel_id if settings else None),
            priority=(override.priority if override else None)
            or (settings.priority if settings else None)
            or PushPriority.NORMAL.value,
            notification_id=notification_id,
        )

    if channel == Channel.IN_APP.value:
        override = notification.in_app_content
        return ChannelContent(
            channel=channel,
            subject=subject,
            body=(override.message if override else None) or body,
            action=override.action if override else None,
            priority=(override.priority if override else None) or notification.priority,
            expires_at=override.expires_at if override else None,
            data=data,
            notification_id=notification_id,
        )

    raise ValueError(f"Unknown channel: {channel}")
