"""Integration tests for Notification projections — verify projectors build read models from events."""

import json
from datetime import UTC, datetime, timedelta

import pytest
from notifications.channel import get_channel, reset_channels
from notifications.directory import InMemoryUserDirectory, set_directory
from notifications.notification.cancellation import CancelNotification
from notifications.notification.creation import CreateNotification
from notifications.notification.engagement import RecordEngagement
from notifications.notification.expiry import ExpireNotifications
from notifications.notification.management import ArchiveNotification
from notifications.notification.receipts import RecordDeliveryReceipt
from notifications.notification.retry import RetryNotification
from notifications.notification.scheduler import ProcessScheduledNotifications
from notifications.projections.delivery_log import DeliveryLog
from notifications.projections.failed_deliveries import FailedDeliveries, delivery_key
from protean import current_domain
from protean.exceptions import ObjectNotFoundError


def _create(**overrides):
    defaults = {
        "title": "Order shipped",
        "body": "Your order is on its way",
        "notification_type": "order_status",
        "created_by": "fulfillment",
        "channels": ["email"],
        "target_users": ["user-ana"],
    }
    defaults.update(overrides)
    payload = {k: json.dumps(v) if isinstance(v, list | dict) else v for k, v in defaults.items()}
    return current_domain.process(CreateNotification(**payload), asynchronous=False)


def _log(notification_id):
    return current_domain.repository_for(DeliveryLog).get(notification_id)


def _failed(notification_id, channel):
    return current_domain.repository_for(FailedDeliveries).get(delivery_key(notification_id, channel))


class TestDeliveryLog:
    def setup_method(self):
        reset_channels()

    def test_scheduled_notification_is_logged(self, ana):
        notification_id = _create(scheduled_time=datetime.now(UTC) + timedelta(hours=1))

        log = _log(notification_id)
        assert log.title == "Order shipped"
        assert log.notification_type == "order_status"
        assert log.status == "scheduled"
        assert log.dispatch_count == 0
        assert json.loads(log.channels) == ["email"]

    def test_dispatch_updates_the_log(self, ana):
        notification_id = _create()

        log = _log(notification_id)
        assert log.status == "sent"
        assert log.overall_status == "sent"
        assert log.recipient_count == 1
        assert log.dispatch_count == 1
        assert log.dispatched_at is not None

    def test_receipt_marks_delivered(self, ana):
        notification_id = _create()

        current_domain.process(
            RecordDeliveryReceipt(notification_id=notification_id, channel="email"),
            asynchronous=False,
        )

        log = _log(notification_id)
        assert log.status == "delivered"
        assert log.overall_status == "delivered"
        assert log.delivered_at is not None

    def test_engagement_flags(self, ana):
        notification_id = _create()

        current_domain.process(
            RecordEngagement(notification_id=notification_id, channel="email", event="opened"),
            asynchronous=False,
        )

        log = _log(notification_id)
        assert log.opened is True
        assert log.clicked is False

    def test_cancel(self, ana):
        notification_id = _create(scheduled_time=datetime.now(UTC) + timedelta(hours=1))

        current_domain.process(
            CancelNotification(notification_id=notification_id, reason="Order was refunded"),
            asynchronous=False,
        )

        log = _log(notification_id)
        assert log.status == "cancelled"
        assert log.cancel_reason == "Order was refunded"

    def test_archive_and_expire(self, ana):
        notification_id = _create()

        current_domain.process(ArchiveNotification(notification_id=notification_id), asynchronous=False)
        current_domain.process(
            ExpireNotifications(as_of=datetime.now(UTC) + timedelta(days=2), retention_days=1),
            asynchronous=False,
        )

        log = _log(notification_id)
        assert log.is_archived is True
        assert log.status == "expired"


class TestFailedDeliveries:
    def setup_method(self):
        reset_channels()

    def test_failure_is_queued(self, ana):
        get_channel("email").configure(should_succeed=False, failure_reason="Mailbox full")

        notification_id = _create()

        failed = _failed(notification_id, "email")
        assert failed.error == "Mailbox full"
        assert failed.retry_count == 1
        assert failed.max_retries == 5
        assert failed.exhausted is False
        assert failed.next_attempt is not None

    def test_exhausted_failure(self, ana):
        get_channel("email").configure(should_succeed=False)

        notification_id = _create(max_retries=1)

        failed = _failed(notification_id, "email")
        assert failed.exhausted is True
        assert failed.next_attempt is None

    def test_escalation_is_recorded(self, ana):
        get_channel("email").configure(should_succeed=False)

        notification_id = _create(fallback_channels=["sms"], routing_rules={"fallback_on": "failure"})

        assert _failed(notification_id, "email").escalated_to == "sms"

    def test_failure_from_a_scheduled_dispatch_is_queued(self, ana):
        get_channel("email").configure(should_succeed=False, failure_reason="Mailbox full")
        notification_id = _create(scheduled_time=datetime.now(UTC) - timedelta(minutes=1))

        current_domain.process(ProcessScheduledNotifications(), asynchronous=False)

        failed = _failed(notification_id, "email")
        assert failed.error == "Mailbox full"
        assert failed.retry_count == 1

    def test_failure_to_resolve_recipients_is_queued(self):
        class UnreachableDirectory(InMemoryUserDirectory):
            def get_users(self, user_ids):
                raise RuntimeError("directory timeout")

        set_directory(UnreachableDirectory())

        notification_id = _create()

        failed = _failed(notification_id, "email")
        assert "directory timeout" in failed.error
        assert failed.retry_count == 1

    def test_successful_retry_clears_the_row(self, ana):
        get_channel("email").configure(should_succeed=False)
        notification_id = _create()
        get_channel("email").configure()

        current_domain.process(RetryNotification(notification_id=notification_id), asynchronous=False)

        with pytest.raises(ObjectNotFoundError):
            _failed(notification_id, "email")

    def test_expiry_clears_rows(self, ana):
        get_channel("email").configure(should_succeed=False)
        get_channel("sms").configure(should_succeed=False)
        notification_id = _create(channels=["email", "sms"])

        current_domain.process(
            ExpireNotifications(as_of=datetime.now(UTC) + timedelta(days=2), retention_days=1),
            asynchronous=False,
        )

        remaining = current_domain.repository_for(FailedDeliveries)._dao.query.filter(
            notification_id=notification_id
        ).all()
        assert remaining.total == 0
