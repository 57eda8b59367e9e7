"""FailedDeliveries — queue of failing (notification, channel) pairs for investigation."""

from notifications.domain import notifications
from notifications.notification.events import (
    ChannelDeliveryFailed,
    ChannelDeliverySent,
    ChannelEscalated,
    NotificationExpired,
)
from notifications.notification.notification import Notification
from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain


def delivery_key(notification_id, channel) -> str:
    return f"{notification_id}:{channel}"


@notifications.projection
class FailedDeliveries:
    delivery_key: String(identifier=True, required=True, max_length=100)  # "{notification_id}:{channel}"
    notification_id: Identifier(required=True)
    channel: String(required=True, max_length=20)
    error: String(max_length=500)
    failed_count: Integer(default=0)
    retry_count: Integer(default=0)
    max_retries: Integer(default=0)
    exhausted: Boolean(default=False)
    escalated_to: String(max_length=20)
    next_attempt: DateTime()
    failed_at: DateTime()


@notifications.projector(projector_for=FailedDeliveries, aggregates=[Notification])
class FailedDeliveriesProjector:
    @on(ChannelDeliveryFailed)
    def on_channel_delivery_failed(self, event):
        repo = current_domain.repository_for(FailedDeliveries)
        key = delivery_key(event.notification_id, event.channel)

        try:
            failed = repo.get(key)
        except ObjectNotFoundError:
            failed = FailedDeliveries(
                delivery_key=key,
                notification_id=event.notification_id,
                channel=event.channel,
            )

        failed.error = event.error
        failed.failed_count = event.failed_count
        failed.retry_count = event.retry_count
        failed.max_retries = event.max_retries
        failed.exhausted = event.next_attempt is None
        failed.next_attempt = event.next_attempt
        failed.failed_at = event.failed_at
        repo.add(failed)

    @on(ChannelEscalated)
    def on_channel_escalated(self, event):
        repo = current_domain.repository_for(FailedDeliveries)
        try:
            failed = repo.get(delivery_key(event.notification_id, event.from_channel))
        except ObjectNotFoundError:
            return
        failed.escalated_to = event.to_channel
        repo.add(failed)

    @on(ChannelDeliverySent)
    def on_channel_delivery_sent(self, event):
        """A successful retry takes the channel off the queue."""
        repo = current_domain.repository_for(FailedDeliveries)
        try:
            failed = repo.get(delivery_key(event.notification_id, event.channel))
        except ObjectNotFoundError:
            return
        repo._dao.delete(failed)

    @on(NotificationExpired)
    def on_notification_expired(self, event):
        repo = current_domain.repository_for(FailedDeliveries)
        for failed in repo._dao.query.filter(notification_id=event.notification_id).all().items:
            repo._dao.delete(failed)
