"""Application tests for the retention sweep."""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

from notifications.channel import reset_channels
from notifications.notification import expiry
from notifications.notification.creation import CreateNotification
from notifications.notification.expiry import ExpireNotifications
from notifications.notification.notification import Notification, NotificationStatus
from notifications.settings import configure_settings
from protean import current_domain


def _create(**overrides):
    defaults = {
        "title": "Receipt",
        "body": "Thanks for your payment",
        "created_by": "billing",
        "channels": ["email"],
        "target_users": ["user-ana"],
    }
    defaults.update(overrides)
    payload = {k: json.dumps(v) if isinstance(v, list | dict) else v for k, v in defaults.items()}
    return current_domain.process(CreateNotification(**payload), asynchronous=False)


def _status(notification_id):
    return current_domain.repository_for(Notification).get(notification_id).status


class TestExpireNotifications:
    def setup_method(self):
        reset_channels()

    def test_expires_finished_jobs_past_retention(self, ana):
        notification_id = _create()

        expired = current_domain.process(
            ExpireNotifications(as_of=datetime.now(UTC) + timedelta(days=31), retention_days=30),
            asynchronous=False,
        )

        assert expired == 1
        assert _status(notification_id) == NotificationStatus.EXPIRED.value

    def test_recent_jobs_are_kept(self, ana):
        notification_id = _create()

        expired = current_domain.process(
            ExpireNotifications(as_of=datetime.now(UTC) + timedelta(days=10), retention_days=30),
            asynchronous=False,
        )

        assert expired == 0
        assert _status(notification_id) == NotificationStatus.SENT.value

    def test_pending_jobs_never_expire(self, ana):
        notification_id = _create(scheduled_time=datetime.now(UTC) + timedelta(hours=1))

        current_domain.process(
            ExpireNotifications(as_of=datetime.now(UTC) + timedelta(days=365), retention_days=30),
            asynchronous=False,
        )

        assert _status(notification_id) == NotificationStatus.SCHEDULED.value

    def test_retention_defaults_to_settings(self, ana):
        configure_settings(retention_days=7)
        notification_id = _create()

        current_domain.process(ExpireNotifications(as_of=datetime.now(UTC) + timedelta(days=8)), asynchronous=False)

        assert _status(notification_id) == NotificationStatus.EXPIRED.value


class TestExpireNotificationsBeyondOnePage:
    def setup_method(self):
        reset_channels()

    def test_every_finished_job_is_expired(self, ana):
        created = [_create() for _ in range(5)]

        with patch.object(expiry, "_EXPIRY_BATCH", 2):
            expired = current_domain.process(
                ExpireNotifications(as_of=datetime.now(UTC) + timedelta(days=31), retention_days=30),
                asynchronous=False,
            )

        assert expired == 5
        assert all(_status(n) == NotificationStatus.EXPIRED.value for n in created)
