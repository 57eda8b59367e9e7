"""Application tests for delivery statistics and notification search."""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from notifications.channel import get_channel, reset_channels
from notifications.notification import queries
from notifications.notification.creation import CreateNotification
from notifications.notification.engagement import RecordEngagement
from notifications.notification.management import ArchiveNotification
from notifications.notification.notification import Notification
from notifications.notification.queries import search_notifications
from notifications.notification.statistics import channel_performance, notification_stats
from protean import current_domain
from protean.exceptions import ValidationError


def _create(**overrides):
    defaults = {
        "title": "Price drop",
        "body": "An item on your wishlist is cheaper",
        "notification_type": "product_available",
        "created_by": "catalogue",
        "channels": ["email"],
        "target_users": ["user-ana"],
    }
    defaults.update(overrides)
    payload = {k: json.dumps(v) if isinstance(v, list | dict) else v for k, v in defaults.items()}
    return current_domain.process(CreateNotification(**payload), asynchronous=False)


class TestNotificationStats:
    def setup_method(self):
        reset_channels()

    def test_counts_by_status_and_channel(self, ana):
        _create(channels=["email", "in_app"])
        get_channel("email").configure(should_succeed=False)
        _create()

        stats = notification_stats("24h")

        assert stats["timeframe"] == "24h"
        assert stats["total"] == 2
        assert stats["by_status"] == {"delivered": 1, "failed": 1}
        assert stats["channels"]["email"] == {"total": 2, "successful": 0, "failed": 1}
        assert stats["channels"]["in_app"] == {"total": 1, "successful": 1, "failed": 0}
        assert stats["channels"]["sms"] == {"total": 0, "successful": 0, "failed": 0}
        assert stats["delivery_rate"] == 33.33

    def test_engagement_counts(self, ana):
        notification_id = _create()
        current_domain.process(
            RecordEngagement(notification_id=notification_id, channel="email", event="clicked"),
            asynchronous=False,
        )

        engagement = notification_stats()["engagement"]

        assert engagement["clicked"] == 1
        assert engagement["opened"] == 0

    def test_timeframe_excludes_older_notifications(self, ana):
        _create()

        stats = notification_stats("1h", as_of=datetime.now(UTC) + timedelta(hours=2))

        assert stats["total"] == 0

    def test_unknown_timeframe(self):
        with pytest.raises(ValidationError):
            notification_stats("2w")

    def test_empty(self):
        stats = notification_stats()
        assert stats["total"] == 0
        assert stats["delivery_rate"] == 0.0

    def test_channel_performance(self, ana):
        get_channel("email").configure(should_succeed=False, failure_reason="Mailbox full")
        notification_id = _create(channels=["email", "in_app"])

        rows = {row["channel"]: row for row in channel_performance(current_domain.repository_for(Notification).get(notification_id))}

        assert rows["email"]["successful"] is False
        assert rows["email"]["error"] == "Mailbox full"
        assert rows["email"]["retry_count"] == 1
        assert rows["in_app"]["successful"] is True


class TestSearchNotifications:
    def setup_method(self):
        reset_channels()

    def test_filter_by_type_and_channel(self, ana):
        _create()
        wanted = _create(notification_type="promotion", channels=["sms"], title="Summer sale")

        items, total = search_notifications(notification_type="promotion")
        assert total == 1
        assert str(items[0].id) == wanted

        _, total = search_notifications(channel="sms")
        assert total == 1

    def test_filter_by_status_and_priority(self, ana):
        _create(priority="high")
        _create(scheduled_time=datetime.now(UTC) + timedelta(days=1))

        assert search_notifications(status="scheduled")[1] == 1
        assert search_notifications(priority="high")[1] == 1

    def test_free_text(self, ana):
        _create(title="Your RFQ got a response", notification_type="rfq_response")
        _create()

        items, total = search_notifications(search="rfq")
        assert total == 1
        assert items[0].title == "Your RFQ got a response"

    def test_archived_hidden_by_default(self, ana):
        notification_id = _create()
        current_domain.process(ArchiveNotification(notification_id=notification_id), asynchronous=False)

        assert search_notifications()[1] == 0
        assert search_notifications(include_archived=True)[1] == 1

    def test_pagination_newest_first(self, ana):
        ids = [_create(title=f"n{i}") for i in range(5)]

        page, total = search_notifications(page=2, limit=2)

        assert total == 5
        assert [str(n.id) for n in page] == [ids[2], ids[1]]

    def test_total_counts_matches_beyond_one_read(self, ana):
        ids = [_create(title=f"n{i}") for i in range(7)]

        with patch.object(queries, "_LIST_BATCH", 3):
            page, total = search_notifications(page=1, limit=2)

        assert total == 7
        assert [str(n.id) for n in page] == [ids[6], ids[5]]

    def test_date_range(self, ana):
        _create()

        _, total = search_notifications(start_date=datetime.now(UTC) + timedelta(minutes=5))
        assert total == 0
