"""DeliveryLog — one row per notification tracking its job status over time."""

from notifications.domain import notifications
from notifications.notification.events import (
    ChannelDelivered,
    EngagementRecorded,
    NotificationArchived,
    NotificationCancelled,
    NotificationClaimed,
    NotificationCreated,
    NotificationDispatched,
    NotificationExpired,
    NotificationRequeued,
    NotificationUpdated,
)
from notifications.notification.notification import Notification
from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain


@notifications.projection
class DeliveryLog:
    notification_id: Identifier(identifier=True, required=True)
    title: String(required=True, max_length=200)
    notification_type: String(required=True)
    channels: Text()  # JSON array
    priority: String(max_length=20)
    status: String(required=True)
    overall_status: String(max_length=20, default="pending")
    recipient_count: Integer(default=0)
    dispatch_count: Integer(default=0)
    template_id: Identifier()
    created_by: String(max_length=100)
    cancel_reason: String(max_length=500)
    opened: Boolean(default=False)
    clicked: Boolean(default=False)
    is_archived: Boolean(default=False)
    scheduled_time: DateTime()
    created_at: DateTime()
    dispatched_at: DateTime()
    delivered_at: DateTime()
    updated_at: DateTime()


@notifications.projector(projector_for=DeliveryLog, aggregates=[Notification])
class DeliveryLogProjector:
    @on(NotificationCreated)
    def on_notification_created(self, event):
        current_domain.repository_for(DeliveryLog).add(
            DeliveryLog(
                notification_id=event.notification_id,
                title=event.title,
                notification_type=event.notification_type,
                channels=event.channels,
                priority=event.priority,
                status=event.status,
                template_id=event.template_id,
                created_by=event.created_by,
                scheduled_time=event.scheduled_time,
                created_at=event.created_at,
                updated_at=event.created_at,
            )
        )

    def _update_log(self, notification_id, **fields):
        repo = current_domain.repository_for(DeliveryLog)
        try:
            log = repo.get(notification_id)
        except ObjectNotFoundError:
            return
        for key, value in fields.items():
            setattr(log, key, value)
        repo.add(log)
        return log

    @on(NotificationUpdated)
    def on_notification_updated(self, event):
        self._update_log(
            event.notification_id,
            status=event.status,
            scheduled_time=event.scheduled_time,
            updated_at=event.updated_at,
        )

    @on(NotificationClaimed)
    def on_notification_claimed(self, event):
        self._update_log(event.notification_id, status="processing", updated_at=event.claimed_at)

    @on(NotificationRequeued)
    def on_notification_requeued(self, event):
        self._update_log(event.notification_id, status="scheduled", updated_at=event.requeued_at)

    @on(NotificationDispatched)
    def on_notification_dispatched(self, event):
        repo = current_domain.repository_for(DeliveryLog)
        try:
            log = repo.get(event.notification_id)
        except ObjectNotFoundError:
            return
        log.status = event.status
        log.overall_status = event.overall_status
        log.recipient_count = event.recipient_count
        log.dispatch_count = (log.dispatch_count or 0) + 1
        log.dispatched_at = event.dispatched_at
        log.updated_at = event.dispatched_at
        repo.add(log)

    @on(ChannelDelivered)
    def on_channel_delivered(self, event):
        fields = {"status": event.status, "updated_at": event.delivered_at}
        if event.status == "delivered":
            fields.update(overall_status="delivered", delivered_at=event.delivered_at)
        self._update_log(event.notification_id, **fields)

    @on(EngagementRecorded)
    def on_engagement_recorded(self, event):
        fields = {"updated_at": event.recorded_at}
        if event.engagement_event == "opened":
            fields["opened"] = True
        elif event.engagement_event == "clicked":
            fields["clicked"] = True
        self._update_log(event.notification_id, **fields)

    @on(NotificationCancelled)
    def on_notification_cancelled(self, event):
        self._update_log(
            event.notification_id,
            status="cancelled",
            cancel_reason=event.reason,
            updated_at=event.cancelled_at,
        )

    @on(NotificationExpired)
    def on_notification_expired(self, event):
        self._update_log(event.notification_id, status="expired", updated_at=event.expired_at)

    @on(NotificationArchived)
    def on_notification_archived(self, event):
        self._update_log(event.notification_id, is_archived=True, updated_at=event.archived_at)
