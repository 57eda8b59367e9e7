"""Domain events for the Notification aggregate."""

from notifications.domain import notifications
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text


@notifications.event(part_of="Notification")
class NotificationCreated:
    """A notification was accepted, either for immediate or scheduled delivery."""

    __version__ = 1

    notification_id: Identifier(required=True)
    title: String(required=True)
    notification_type: String(required=True)
    channels: Text(required=True)  # JSON array of channel tags
    priority: String(required=True)
    status: String(required=True)
    template_id: Identifier()
    scheduled_time: DateTime()
    created_by: String(required=True)
    created_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class NotificationUpdated:
    """Content or targeting of a not-yet-dispatched notification was edited."""

    __version__ = 1

    notification_id: Identifier(required=True)
    status: String(required=True)
    scheduled_time: DateTime()
    updated_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class NotificationClaimed:
    """A dispatcher took ownership of the notification (status → processing)."""

    __version__ = 1

    notification_id: Identifier(required=True)
    previous_status: String(required=True)
    claimed_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class NotificationRequeued:
    """A notification stuck in processing was handed back to the scheduler."""

    __version__ = 1

    notification_id: Identifier(required=True)
    reason: String(required=True)
    requeued_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class ChannelDeliverySent:
    """Every attempted recipient on a channel was accepted by the gateway."""

    __version__ = 1

    notification_id: Identifier(required=True)
    channel: String(required=True)
    status: String(required=True)  # sent or delivered (acknowledged)
    sent_count: Integer(required=True)
    is_fallback: Boolean(default=False)
    sent_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class ChannelDeliveryFailed:
    """At least one recipient on a channel failed in the latest attempt."""

    __version__ = 1

    notification_id: Identifier(required=True)
    channel: String(required=True)
    error: String(required=True)
    failed_count: Integer(required=True)
    retry_count: Integer(required=True)
    max_retries: Integer(required=True)
    next_attempt: DateTime()  # None when retries are exhausted
    failed_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class ChannelEscalated:
    """Failed recipients of one channel were handed to a fallback channel."""

    __version__ = 1

    notification_id: Identifier(required=True)
    from_channel: String(required=True)
    to_channel: String(required=True)
    recipient_count: Integer(required=True)
    escalated_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class NotificationDispatched:
    """A dispatch pass finished and the job status was recomputed."""

    __version__ = 1

    notification_id: Identifier(required=True)
    status: String(required=True)
    overall_status: String(required=True)
    recipient_count: Integer(required=True)
    dispatched_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class ChannelDelivered:
    """A provider receipt confirmed delivery on a channel that was sent."""

    __version__ = 1

    notification_id: Identifier(required=True)
    channel: String(required=True)
    status: String(required=True)  # job status after the receipt
    delivered_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class EngagementRecorded:
    """The recipient opened, clicked or acted on the notification."""

    __version__ = 1

    notification_id: Identifier(required=True)
    channel: String(required=True)
    engagement_event: String(required=True)
    suspect: Boolean(default=False)
    recorded_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class NotificationCancelled:
    """A draft or scheduled notification was withdrawn before dispatch."""

    __version__ = 1

    notification_id: Identifier(required=True)
    reason: String(required=True)
    cancelled_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class NotificationArchived:
    __version__ = 1

    notification_id: Identifier(required=True)
    archived_at: DateTime(required=True)


@notifications.event(part_of="Notification")
class NotificationExpired:
    """A finished notification passed its retention window."""

    __version__ = 1

    notification_id: Identifier(required=True)
    previous_status: String(required=True)
    expired_at: DateTime(required=True)
