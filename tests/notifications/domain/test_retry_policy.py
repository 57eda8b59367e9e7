"""Tests for exponential retry backoff."""

from datetime import UTC, datetime, timedelta

from notifications.notification.retry_policy import RetryPolicy
from notifications.settings import configure_settings


class TestBackoff:
    def test_doubles_each_attempt(self):
        policy = RetryPolicy(base_delay_seconds=60, max_delay_seconds=3600)
        assert [policy.backoff_seconds(n) for n in (1, 2, 3, 4)] == [60, 120, 240, 480]

    def test_capped_at_max_delay(self):
        policy = RetryPolicy(base_delay_seconds=60, max_delay_seconds=300)
        assert policy.backoff_seconds(10) == 300

    def test_no_delay_before_first_failure(self):
        assert RetryPolicy().backoff_seconds(0) == 0


class TestNextAttempt:
    def test_next_attempt_after_backoff(self):
        failed_at = datetime(2030, 1, 1, tzinfo=UTC)
        assert RetryPolicy().next_attempt_at(2, 5, failed_at) == failed_at + timedelta(seconds=120)

    def test_none_at_ceiling(self):
        assert RetryPolicy().next_attempt_at(5, 5, datetime.now(UTC)) is None

    def test_none_with_zero_retries(self):
        assert RetryPolicy().next_attempt_at(1, 0, datetime.now(UTC)) is None


def test_from_settings():
    configure_settings(retry_base_seconds=10, retry_max_seconds=20)
    policy = RetryPolicy.from_settings()
    assert policy.base_delay_seconds == 10
    assert policy.max_delay_seconds == 20
