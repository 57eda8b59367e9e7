"""Notification aggregate (CQRS) — one delivery job fanned out over channels.

A notification carries the message (title/body, optional template and
per-channel overrides), who should receive it (explicit users, a role, or
attribute criteria), and when (immediately or at a scheduled time). Each
channel it is sent through gets a ChannelDelivery entry that tracks that
channel's state, retries and fallback bookkeeping independently.

Job state machine:
    DRAFT      → PROCESSING → SENT | FAILED | DELIVERED
    SCHEDULED  → PROCESSING
    PROCESSING → SCHEDULED                  (stuck-job recovery)
    SENT | FAILED | DELIVERED → PROCESSING  (explicit send, retry sweep)
    SENT → DELIVERED                        (delivery receipt)
    DRAFT | SCHEDULED → CANCELLED
    SENT | FAILED | DELIVERED | PARTIALLY_SENT → EXPIRED

Channel state:
    PENDING → SENT | DELIVERED | FAILED
    FAILED  → SENT | DELIVERED | FAILED     (retry)
    SENT    → DELIVERED → READ → CLICKED    (receipts, engagement)
"""

import json
from datetime import UTC, datetime
from enum import Enum

from notifications.domain import notifications
from notifications.notification.events import (
    ChannelDelivered,
    ChannelDeliveryFailed,
    ChannelDeliverySent,
    ChannelEscalated,
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
from notifications.notification.retry_policy import RetryPolicy
from notifications.settings import get_settings
from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

# Sentinel for distinguishing "not provided" from None in partial updates
_UNSET = object()


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class NotificationType(Enum):
    SYSTEM = "system"
    ORDER_STATUS = "order_status"
    NEW_MESSAGE = "new_message"
    PRODUCT_AVAILABLE = "product_available"
    RFQ_RESPONSE = "rfq_response"
    PROMOTION = "promotion"
    MAINTENANCE = "maintenance"
    ALERT = "alert"
    SECURITY = "security"


class Channel(Enum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    IN_APP = "in_app"


class DeliveryStatus(Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    READ = "read"
    CLICKED = "clicked"


class NotificationStatus(Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PROCESSING = "processing"
    SENT = "sent"
    PARTIALLY_SENT = "partially_sent"  # Reserved: never produced by status derivation
    FAILED = "failed"
    DELIVERED = "delivered"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class Priority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class PushPriority(Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class TargetRole(Enum):
    CUSTOMER = "customer"
    SUPPLIER = "supplier"
    ADMIN = "admin"
    ALL = "all"


class EngagementEvent(Enum):
    OPENED = "opened"
    CLICKED = "clicked"
    ACTION_TAKEN = "action_taken"


class FallbackTrigger(Enum):
    EXHAUSTED = "exhausted"
    FAILURE = "failure"


CHANNEL_VALUES = [c.value for c in Channel]

# Statuses after which every listed channel must have a delivery entry
_PROCESSED_STATUSES = {
    NotificationStatus.SENT.value,
    NotificationStatus.PARTIALLY_SENT.value,
    NotificationStatus.FAILED.value,
    NotificationStatus.DELIVERED.value,
}

# Channel statuses that count as a successful hand-off
SUCCESSFUL_DELIVERY_STATUSES = {
    DeliveryStatus.SENT.value,
    DeliveryStatus.DELIVERED.value,
    DeliveryStatus.READ.value,
    DeliveryStatus.CLICKED.value,
}


# ---------------------------------------------------------------------------
# State Machine
# ---------------------------------------------------------------------------
_VALID_TRANSITIONS = {
    NotificationStatus.DRAFT: {
        NotificationStatus.PROCESSING,
        NotificationStatus.SCHEDULED,
        NotificationStatus.CANCELLED,
    },
    NotificationStatus.SCHEDULED: {
        NotificationStatus.PROCESSING,
        NotificationStatus.DRAFT,
        NotificationStatus.CANCELLED,
    },
    NotificationStatus.PROCESSING: {
        NotificationStatus.SENT,
        NotificationStatus.PARTIALLY_SENT,
        NotificationStatus.FAILED,
        NotificationStatus.DELIVERED,
        NotificationStatus.SCHEDULED,  # Via stuck-job recovery
    },
    NotificationStatus.SENT: {
        NotificationStatus.PROCESSING,
        NotificationStatus.DELIVERED,
        NotificationStatus.EXPIRED,
    },
    NotificationStatus.PARTIALLY_SENT: {
        NotificationStatus.PROCESSING,
        NotificationStatus.EXPIRED,
    },
    NotificationStatus.FAILED: {
        NotificationStatus.PROCESSING,
        NotificationStatus.EXPIRED,
    },
    NotificationStatus.DELIVERED: {
        NotificationStatus.PROCESSING,
        NotificationStatus.EXPIRED,
    },
    NotificationStatus.EXPIRED: set(),  # Terminal
    NotificationStatus.CANCELLED: set(),  # Terminal
}


def derive_overall_status(statuses) -> str:
    """Collapse channel statuses into one value: failed > delivered > sent > pending.

    read and clicked do not participate, so a notification whose channels are
    all read/clicked reports pending.
    """
    statuses = set(statuses)
    if DeliveryStatus.FAILED.value in statuses:
        return DeliveryStatus.FAILED.value
    if DeliveryStatus.DELIVERED.value in statuses:
        return DeliveryStatus.DELIVERED.value
    if DeliveryStatus.SENT.value in statuses:
        return DeliveryStatus.SENT.value
    return DeliveryStatus.PENDING.value


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes (e.g. read back from a database) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _loads(raw, default):
    if not raw:
        return default
    return json.loads(raw)


def normalize_channels(channels, field="channels", allow_empty=False) -> list[str]:
    """Validate channel tags and drop duplicates while keeping their order."""
    if isinstance(channels, str):
        channels = [channels]
    channels = list(channels or [])
    if not channels and not allow_empty:
        raise ValidationError({field: ["At least one channel is required"]})

    unknown = [c for c in channels if c not in CHANNEL_VALUES]
    if unknown:
        raise ValidationError({field: [f"Unknown channel(s): {', '.join(map(str, unknown))}"]})

    return list(dict.fromkeys(channels))


def _validate_routing_rules(rules: dict, channels: list[str]) -> dict:
    if not isinstance(rules, dict):
        raise ValidationError({"routing_rules": ["Routing rules must be a mapping"]})

    fallback_on = rules.get("fallback_on", FallbackTrigger.EXHAUSTED.value)
    if fallback_on not in [t.value for t in FallbackTrigger]:
        raise ValidationError({"routing_rules": [f"Unknown fallback trigger: {fallback_on}"]})

    order = rules.get("channel_order")
    if order is not None:
        stray = [c for c in order if c not in channels]
        if stray:
            raise ValidationError({"routing_rules": [f"channel_order lists channels not requested: {', '.join(stray)}"]})

    max_retries = rules.get("max_retries")
    if max_retries is not None and (not isinstance(max_retries, int) or max_retries < 0):
        raise ValidationError({"routing_rules": ["max_retries must be a non-negative integer"]})

    return rules


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@notifications.value_object(part_of="Notification")
class EmailContent:
    subject: String(max_length=500)
    html_body: Text()
    text_body: Text()
    from_address: String(max_length=254)
    reply_to: String(max_length=254)


@notifications.value_object(part_of="Notification")
class SmsContent:
    message: String(max_length=1600)
    sender_id: String(max_length=20)


@notifications.value_object(part_of="Notification")
class PushContent:
    title: String(max_length=200)
    body: String(max_length=1000)
    data: Text()  # JSON object
    sound: String(max_length=100)
    channel_id: String(max_length=100)
    priority: String(choices=PushPriority)


@notifications.value_object(part_of="Notification")
class InAppContent:
    message: String(max_length=1000)
    action: String(max_length=500)
    priority: String(choices=Priority)
    expires_at: DateTime()


@notifications.value_object(part_of="Notification")
class Engagement:
    """Post-delivery interaction with the notification.

    Nothing here is set at creation beyond the boolean flags; only engagement
    commands write the timestamps. `suspect` marks that an event arrived for a
    channel that had not been sent or delivered yet.
    """

    opened: Boolean(default=False)
    opened_at: DateTime()
    clicked: Boolean(default=False)
    clicked_at: DateTime()
    action_taken: Boolean(default=False)
    action_taken_at: DateTime()
    action: String(max_length=500)
    read_duration: Integer(min_value=0)
    engagement_channel: String(max_length=20)
    suspect: Boolean(default=False)


_ENGAGEMENT_FIELDS = (
    "opened",
    "opened_at",
    "clicked",
    "clicked_at",
    "action_taken",
    "action_taken_at",
    "action",
    "read_duration",
    "engagement_channel",
    "suspect",
)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@notifications.entity(part_of="Notification")
class ChannelDelivery:
    """Delivery state of one channel of a notification."""

    channel: String(choices=Channel, required=True)
    status: String(choices=DeliveryStatus, default=DeliveryStatus.PENDING.value)
    status_changed_at: DateTime()
    error: String(max_length=500)
    retry_count: Integer(default=0, min_value=0)
    last_attempt: DateTime()
    next_attempt: DateTime()

    # Fallback bookkeeping
    is_fallback: Boolean(default=False)
    escalated_from: String(max_length=20)
    escalated: Boolean(default=False)
    target_recipients: Text()  # JSON: restricts a fallback channel to these user ids

    # Latest attempt
    failed_recipients: Text()  # JSON: user ids to re-drive on retry
    sent_count: Integer(default=0)
    failed_count: Integer(default=0)
    message_ids: Text()  # JSON: provider message ids

    def get_target_recipients(self) -> list[str]:
        return _loads(self.target_recipients, [])

    def get_failed_recipients(self) -> list[str]:
        return _loads(self.failed_recipients, [])

    def get_message_ids(self) -> list[str]:
        return _loads(self.message_ids, [])

    def is_successful(self) -> bool:
        return self.status in SUCCESSFUL_DELIVERY_STATUSES


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@notifications.aggregate
class Notification:
    """A notification job: one message, a target audience, and one delivery per channel."""

    # Message
    title: String(required=True, max_length=200)
    body: String(required=True, max_length=1000)
    notification_type: String(choices=NotificationType, default=NotificationType.SYSTEM.value)
    data: Text()  # JSON: free-form payload forwarded to push/in-app

    # Channels
    channels: Text(required=True)  # JSON array of channel tags
    fallback_channels: Text()  # JSON array, tried in order
    routing_rules: Text()  # JSON: channel_order, fallback_on, max_retries
    deliveries: HasMany(ChannelDelivery)

    # Template
    template_id: Identifier()
    template_variables: Text()  # JSON object

    # Per-channel overrides
    email_content: ValueObject(EmailContent)
    sms_content: ValueObject(SmsContent)
    push_content: ValueObject(PushContent)
    in_app_content: ValueObject(InAppContent)

    # Target (precedence: users > role > criteria)
    target_users: Text()  # JSON array of user ids
    target_role: String(choices=TargetRole)
    target_criteria: Text()  # JSON object

    # Scheduling
    scheduled_time: DateTime()
    time_zone: String(max_length=50, default="UTC")
    delivery_window_start: String(max_length=5)  # "HH:MM", stored as a hint
    delivery_window_end: String(max_length=5)
    priority: String(choices=Priority, default=Priority.MEDIUM.value)
    require_confirmation: Boolean(default=False)
    max_retries: Integer(min_value=0)

    # Job status
    status: String(choices=NotificationStatus, default=NotificationStatus.DRAFT.value)
    recipient_count: Integer(default=0)
    processing_started_at: DateTime()
    dispatched_at: DateTime()

    engagement: ValueObject(Engagement)

    # Audit
    created_by: String(required=True, max_length=100)
    sent_by: String(max_length=100)
    is_archived: Boolean(default=False)
    tags: Text()  # JSON array
    notes: String(max_length=1000)
    created_at: DateTime()
    updated_at: DateTime()

    @invariant.post
    def processed_notification_has_one_delivery_per_channel(self):
        if self.status not in _PROCESSED_STATUSES:
            return
        tracked = [d.channel for d in self.deliveries]
        missing = [c for c in self.get_channels() if tracked.count(c) != 1]
        if missing:
            raise ValidationError({"deliveries": [f"Missing delivery state for: {', '.join(missing)}"]})

    @invariant.post
    def delivery_entries_are_unique_per_channel(self):
        tracked = [d.channel for d in self.deliveries]
        if len(tracked) != len(set(tracked)):
            raise ValidationError({"deliveries": ["Each channel can only be tracked once"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        title,
        body,
        channels,
        created_by,
        notification_type=NotificationType.SYSTEM.value,
        data=None,
        template_id=None,
        template_variables=None,
        email_content=None,
        sms_content=None,
        push_content=None,
        in_app_content=None,
        target_users=None,
        target_role=None,
        target_criteria=None,
        scheduled_time=None,
        time_zone="UTC",
        delivery_window_start=None,
        delivery_window_end=None,
        priority=Priority.MEDIUM.value,
        routing_rules=None,
        fallback_channels=None,
        require_confirmation=False,
        max_retries=None,
        tags=None,
        notes=None,
    ):
        """Create a notification in DRAFT (immediate) or SCHEDULED status."""
        channels = normalize_channels(channels)
        fallback_channels = normalize_channels(fallback_channels, field="fallback_channels", allow_empty=True)
        routing_rules = _validate_routing_rules(routing_rules or {}, channels)
        if max_retries is None:
            max_retries = routing_rules.get("max_retries", get_settings().max_retries)

        scheduled_time = ensure_utc(scheduled_time)
        status = NotificationStatus.SCHEDULED.value if scheduled_time else NotificationStatus.DRAFT.value
        now = datetime.now(UTC)

        notification = cls(
            title=title,
            body=body,
            notification_type=notification_type,
            data=json.dumps(data) if data else None,
            channels=json.dumps(channels),
            fallback_channels=json.dumps(fallback_channels),
            routing_rules=json.dumps(routing_rules),
            template_id=template_id,
            template_variables=json.dumps(template_variables or {}),
            email_content=email_content,
            sms_content=sms_content,
            push_content=push_content,
            in_app_content=in_app_content,
            target_users=json.dumps(list(target_users)) if target_users else None,
            target_role=target_role,
            target_criteria=json.dumps(target_criteria) if target_criteria else None,
            scheduled_time=scheduled_time,
            time_zone=time_zone or "UTC",
            delivery_window_start=delivery_window_start,
            delivery_window_end=delivery_window_end,
            priority=priority,
            require_confirmation=require_confirmation,
            max_retries=max_retries,
            status=status,
            engagement=Engagement(),
            created_by=created_by,
            tags=json.dumps(list(tags or [])),
            notes=notes,
            created_at=now,
            updated_at=now,
        )

        notification.add_deliveries(
            [ChannelDelivery(channel=channel, status_changed_at=now, message_ids=json.dumps([])) for channel in channels]
        )

        notification.raise_(
            NotificationCreated(
                notification_id=str(notification.id),
                title=title,
                notification_type=notification.notification_type,
                channels=json.dumps(channels),
                priority=notification.priority,
                status=status,
                template_id=template_id,
                scheduled_time=scheduled_time,
                created_by=created_by,
                created_at=now,
            )
        )

        return notification

    # -------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------
    def get_channels(self) -> list[str]:
        return _loads(self.channels, [])

    def get_fallback_channels(self) -> list[str]:
        return _loads(self.fallback_channels, [])

    def get_routing_rules(self) -> dict:
        return _loads(self.routing_rules, {})

    def get_target_users(self) -> list[str]:
        return _loads(self.target_users, [])

    def get_target_criteria(self) -> dict:
        return _loads(self.target_criteria, {})

    def get_template_variables(self) -> dict:
        return _loads(self.template_variables, {})

    def get_data(self) -> dict:
        return _loads(self.data, {})

    def get_tags(self) -> list[str]:
        return _loads(self.tags, [])

    def channel_order(self) -> list[str]:
        """Tracked channels in submission order: routing_rules.channel_order first."""
        tracked = [d.channel for d in self.deliveries]
        preferred = [c for c in self.get_routing_rules().get("channel_order", []) if c in tracked]
        return preferred + [c for c in tracked if c not in preferred]

    def fallback_trigger(self) -> str:
        return self.get_routing_rules().get("fallback_on", FallbackTrigger.EXHAUSTED.value)

    def delivery_for(self, channel) -> ChannelDelivery | None:
        return next((d for d in self.deliveries if d.channel == channel), None)

    def _delivery_or_error(self, channel) -> ChannelDelivery:
        delivery = self.delivery_for(channel)
        if delivery is None:
            raise ValidationError({"channel": [f"Channel {channel} is not part of this notification"]})
        return delivery

    def delivery_statuses(self) -> dict[str, str]:
        return {d.channel: d.status for d in self.deliveries}

    def overall_status(self) -> str:
        return derive_overall_status(d.status for d in self.deliveries)

    def engagement_metrics(self) -> Engagement:
        """Recorded engagement, or unset metrics when nothing has been recorded yet."""
        return self.engagement or Engagement()

    def delivery_rate(self) -> float:
        """Percentage of requested channels that reached delivered or read."""
        channels = self.get_channels()
        if not channels:
            return 0.0
        reached = [
            d
            for d in self.deliveries
            if d.channel in channels and d.status in (DeliveryStatus.DELIVERED.value, DeliveryStatus.READ.value)
        ]
        return round(len(reached) / len(channels) * 100, 2)

    def is_exhausted(self, delivery: ChannelDelivery) -> bool:
        return delivery.retry_count >= self.max_retries

    def is_due_for_retry(self, delivery: ChannelDelivery, as_of: datetime) -> bool:
        if delivery.status != DeliveryStatus.FAILED.value or self.is_exhausted(delivery):
            return False
        next_attempt = ensure_utc(delivery.next_attempt)
        return next_attempt is None or next_attempt <= ensure_utc(as_of)

    # -------------------------------------------------------------------
    # Job transitions
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        """Validate state machine transition."""
        current = NotificationStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def claim(self, claimed_at=None):
        """Take ownership of the job for a dispatch pass."""
        self._assert_can_transition(NotificationStatus.PROCESSING)

        now = claimed_at or datetime.now(UTC)
        previous = self.status
        self.status = NotificationStatus.PROCESSING.value
        self.processing_started_at = now
        self.updated_at = now

        self.raise_(
            NotificationClaimed(
                notification_id=str(self.id),
                previous_status=previous,
                claimed_at=now,
            )
        )

    def requeue(self, reason, requeued_at=None):
        """Hand a stuck PROCESSING job back to the scheduler, due immediately."""
        if self.status != NotificationStatus.PROCESSING.value:
            raise ValidationError({"status": [f"Only notifications being processed can be requeued, not {self.status}"]})

        now = requeued_at or datetime.now(UTC)
        scheduled = ensure_utc(self.scheduled_time)
        if scheduled is None or scheduled > now:
            self.scheduled_time = now
        self.status = NotificationStatus.SCHEDULED.value
        self.processing_started_at = None
        self.updated_at = now

        self.raise_(
            NotificationRequeued(
                notification_id=str(self.id),
                reason=reason,
                requeued_at=now,
            )
        )

    def complete_dispatch(self, recipient_count, dispatched_at=None):
        """Close a dispatch pass: job status follows the derived channel status."""
        if self.status != NotificationStatus.PROCESSING.value:
            raise ValidationError({"status": ["Only notifications being processed can complete a dispatch"]})

        overall = self.overall_status()
        target = (
            NotificationStatus.SENT
            if overall == DeliveryStatus.PENDING.value
            else NotificationStatus(overall)
        )
        self._assert_can_transition(target)

        now = dispatched_at or datetime.now(UTC)
        self.status = target.value
        self.recipient_count = recipient_count
        self.dispatched_at = now
        self.processing_started_at = None
        self.updated_at = now

        self.raise_(
            NotificationDispatched(
                notification_id=str(self.id),
                status=self.status,
                overall_status=overall,
                recipient_count=recipient_count,
                dispatched_at=now,
            )
        )

    def cancel(self, reason):
        """Withdraw a notification that has not been dispatched yet."""
        self._assert_can_transition(NotificationStatus.CANCELLED)

        now = datetime.now(UTC)
        self.status = NotificationStatus.CANCELLED.value
        self.notes = reason if not self.notes else f"{self.notes}\nCancelled: {reason}"[-1000:]
        self.updated_at = now

        self.raise_(
            NotificationCancelled(
                notification_id=str(self.id),
                reason=reason,
                cancelled_at=now,
            )
        )

    def expire(self, expired_at=None):
        self._assert_can_transition(NotificationStatus.EXPIRED)

        now = expired_at or datetime.now(UTC)
        previous = self.status
        self.status = NotificationStatus.EXPIRED.value
        self.updated_at = now

        self.raise_(
            NotificationExpired(
                notification_id=str(self.id),
                previous_status=previous,
                expired_at=now,
            )
        )

    def archive(self):
        if self.is_archived:
            return

        now = datetime.now(UTC)
        self.is_archived = True
        self.updated_at = now

        self.raise_(NotificationArchived(notification_id=str(self.id), archived_at=now))

    def update_details(
        self,
        title=_UNSET,
        body=_UNSET,
        notification_type=_UNSET,
        data=_UNSET,
        channels=_UNSET,
        fallback_channels=_UNSET,
        routing_rules=_UNSET,
        template_id=_UNSET,
        template_variables=_UNSET,
        target_users=_UNSET,
        target_role=_UNSET,
        target_criteria=_UNSET,
        scheduled_time=_UNSET,
        priority=_UNSET,
        tags=_UNSET,
        notes=_UNSET,
    ):
        """Edit a notification that is still a draft or waiting for its schedule."""
        if self.status not in (NotificationStatus.DRAFT.value, NotificationStatus.SCHEDULED.value):
            raise ValidationError({"status": [f"Cannot edit a notification in {self.status} status"]})

        now = datetime.now(UTC)

        if title is not _UNSET:
            self.title = title
        if body is not _UNSET:
            self.body = body
        if notification_type is not _UNSET:
            self.notification_type = notification_type
        if data is not _UNSET:
            self.data = json.dumps(data) if data else None
        if template_id is not _UNSET:
            self.template_id = template_id
        if template_variables is not _UNSET:
            self.template_variables = json.dumps(template_variables or {})
        if target_users is not _UNSET:
            self.target_users = json.dumps(list(target_users)) if target_users else None
        if target_role is not _UNSET:
            self.target_role = target_role
        if target_criteria is not _UNSET:
            self.target_criteria = json.dumps(target_criteria) if target_criteria else None
        if priority is not _UNSET:
            self.priority = priority
        if tags is not _UNSET:
            self.tags = json.dumps(list(tags or []))
        if notes is not _UNSET:
            self.notes = notes

        if channels is not _UNSET:
            self._replace_channels(normalize_channels(channels), now)
        if fallback_channels is not _UNSET:
            normalized = normalize_channels(fallback_channels, field="fallback_channels", allow_empty=True)
            self.fallback_channels = json.dumps(normalized)
        if routing_rules is not _UNSET:
            self.routing_rules = json.dumps(_validate_routing_rules(routing_rules or {}, self.get_channels()))

        if scheduled_time is not _UNSET:
            self.scheduled_time = ensure_utc(scheduled_time)
            target = NotificationStatus.SCHEDULED if scheduled_time else NotificationStatus.DRAFT
            if self.status != target.value:
                self._assert_can_transition(target)
                self.status = target.value

        self.updated_at = now

        self.raise_(
            NotificationUpdated(
                notification_id=str(self.id),
                status=self.status,
                scheduled_time=self.scheduled_time,
                updated_at=now,
            )
        )

    def _replace_channels(self, channels, now):
        stale = [d for d in self.deliveries if d.channel not in channels]
        if stale:
            self.remove_deliveries(stale)
        tracked = {d.channel for d in self.deliveries}
        fresh = [
            ChannelDelivery(channel=channel, status_changed_at=now, message_ids=json.dumps([]))
            for channel in channels
            if channel not in tracked
        ]
        if fresh:
            self.add_deliveries(fresh)
        self.channels = json.dumps(channels)

    # -------------------------------------------------------------------
    # Channel transitions
    # -------------------------------------------------------------------
    def record_channel_success(self, channel, sent_count, acknowledged=False, message_ids=None, attempted_at=None):
        """Every attempted recipient on `channel` was accepted by the gateway."""
        delivery = self._delivery_or_error(channel)

        now = attempted_at or datetime.now(UTC)
        status = DeliveryStatus.DELIVERED.value if acknowledged else DeliveryStatus.SENT.value
        delivery.status = status
        delivery.status_changed_at = now
        delivery.error = None
        delivery.last_attempt = now
        delivery.next_attempt = None
        delivery.failed_recipients = json.dumps([])
        delivery.failed_count = 0
        delivery.sent_count = (delivery.sent_count or 0) + sent_count
        delivery.message_ids = json.dumps(delivery.get_message_ids() + list(message_ids or []))
        self.updated_at = now

        self.raise_(
            ChannelDeliverySent(
                notification_id=str(self.id),
                channel=channel,
                status=status,
                sent_count=sent_count,
                is_fallback=delivery.is_fallback,
                sent_at=now,
            )
        )

    def record_channel_failure(
        self,
        channel,
        error,
        failed_recipients,
        sent_count=0,
        message_ids=None,
        retry_policy=None,
        attempted_at=None,
    ):
        """At least one recipient on `channel` failed; schedule the next attempt."""
        delivery = self._delivery_or_error(channel)
        retry_policy = retry_policy or RetryPolicy.from_settings()

        now = attempted_at or datetime.now(UTC)
        failed_recipients = list(failed_recipients)
        delivery.status = DeliveryStatus.FAILED.value
        delivery.status_changed_at = now
        delivery.error = (error or "Unknown dispatch error")[:500]
        delivery.retry_count = delivery.retry_count + 1
        delivery.last_attempt = now
        delivery.next_attempt = retry_policy.next_attempt_at(delivery.retry_count, self.max_retries, now)
        delivery.failed_recipients = json.dumps(failed_recipients)
        delivery.failed_count = len(failed_recipients)
        delivery.sent_count = (delivery.sent_count or 0) + sent_count
        delivery.message_ids = json.dumps(delivery.get_message_ids() + list(message_ids or []))
        self.updated_at = now

        self.raise_(
            ChannelDeliveryFailed(
                notification_id=str(self.id),
                channel=channel,
                error=delivery.error,
                failed_count=len(failed_recipients),
                retry_count=delivery.retry_count,
                max_retries=self.max_retries,
                next_attempt=delivery.next_attempt,
                failed_at=now,
            )
        )

    def should_escalate(self, delivery: ChannelDelivery) -> bool:
        if delivery.status != DeliveryStatus.FAILED.value or delivery.escalated:
            return False
        if self.fallback_trigger() == FallbackTrigger.FAILURE.value:
            return True
        return self.is_exhausted(delivery)

    def escalate(self, channel, escalated_at=None) -> str | None:
        """Hand the failed recipients of `channel` to the next untried fallback channel.

        Returns the fallback channel, or None when no escalation applies.
        """
        delivery = self._delivery_or_error(channel)
        if not self.should_escalate(delivery):
            return None

        target = next((c for c in self.get_fallback_channels() if self.delivery_for(c) is None), None)
        if target is None:
            return None

        now = escalated_at or datetime.now(UTC)
        recipients = delivery.get_failed_recipients()
        delivery.escalated = True
        self.add_deliveries(
            ChannelDelivery(
                channel=target,
                status_changed_at=now,
                is_fallback=True,
                escalated_from=channel,
                target_recipients=json.dumps(recipients),
                message_ids=json.dumps([]),
            )
        )
        self.updated_at = now

        self.raise_(
            ChannelEscalated(
                notification_id=str(self.id),
                from_channel=channel,
                to_channel=target,
                recipient_count=len(recipients),
                escalated_at=now,
            )
        )

        return target

    def confirm_delivery(self, channel, delivered_at=None) -> bool:
        """Apply a provider receipt. Only channels in SENT move; returns whether it did."""
        delivery = self._delivery_or_error(channel)
        if delivery.status != DeliveryStatus.SENT.value:
            return False

        now = delivered_at or datetime.now(UTC)
        delivery.status = DeliveryStatus.DELIVERED.value
        delivery.status_changed_at = now
        if self.status == NotificationStatus.SENT.value and self.overall_status() == DeliveryStatus.DELIVERED.value:
            self.status = NotificationStatus.DELIVERED.value
        self.updated_at = now

        self.raise_(
            ChannelDelivered(
                notification_id=str(self.id),
                channel=channel,
                status=self.status,
                delivered_at=now,
            )
        )

        return True

    def record_engagement(self, channel, event, action=None, read_duration=None, recorded_at=None):
        """Record an open/click/action. Events for channels not yet sent are kept but flagged."""
        delivery = self._delivery_or_error(channel)
        if event not in [e.value for e in EngagementEvent]:
            raise ValidationError({"event": [f"Unknown engagement event: {event}"]})

        now = recorded_at or datetime.now(UTC)
        suspect = delivery.status in (DeliveryStatus.PENDING.value, DeliveryStatus.FAILED.value)

        current = self.engagement_metrics()
        values = {name: getattr(current, name) for name in _ENGAGEMENT_FIELDS}
        values["engagement_channel"] = channel
        values["suspect"] = bool(values["suspect"]) or suspect
        if read_duration is not None:
            values["read_duration"] = read_duration

        if event == EngagementEvent.OPENED.value:
            values.update(opened=True, opened_at=now)
            if not suspect and delivery.status in (DeliveryStatus.SENT.value, DeliveryStatus.DELIVERED.value):
                delivery.status = DeliveryStatus.READ.value
                delivery.status_changed_at = now
        elif event == EngagementEvent.CLICKED.value:
            values.update(clicked=True, clicked_at=now)
            if not suspect and delivery.status != DeliveryStatus.CLICKED.value:
                delivery.status = DeliveryStatus.CLICKED.value
                delivery.status_changed_at = now
        else:
            values.update(action_taken=True, action_taken_at=now, action=action)

        self.engagement = Engagement(**values)
        self.updated_at = now

        self.raise_(
            EngagementRecorded(
                notification_id=str(self.id),
                channel=channel,
                engagement_event=event,
                suspect=suspect,
                recorded_at=now,
            )
        )
