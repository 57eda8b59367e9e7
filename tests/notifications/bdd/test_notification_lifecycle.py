"""BDD tests for the notification job lifecycle."""

from protean.exceptions import ValidationError
from pytest_bdd import parsers, scenarios, when

scenarios("features/notification_lifecycle.feature")


@when(
    "the notification is claimed",
    target_fixture="notification",
)
def claim_notification(notification, error):
    try:
        notification.claim()
    except ValidationError as exc:
        error["exc"] = exc
    return notification


@when(
    parsers.cfparse('channel "{channel}" is accepted by the gateway'),
    target_fixture="notification",
)
def channel_accepted(notification, channel):
    notification.record_channel_success(channel, sent_count=1)
    return notification


@when(
    parsers.cfparse('channel "{channel}" fails with "{reason}"'),
    target_fixture="notification",
)
def channel_fails(notification, channel, reason):
    notification.record_channel_failure(channel, reason, failed_recipients=["user-ana"])
    return notification


@when(
    "the dispatch pass completes",
    target_fixture="notification",
)
def dispatch_completes(notification):
    notification.complete_dispatch(recipient_count=1)
    return notification


@when(
    parsers.cfparse('the notification is cancelled with reason "{reason}"'),
    target_fixture="notification",
)
def cancel_notification(notification, reason, error):
    try:
        notification.cancel(reason)
    except ValidationError as exc:
        error["exc"] = exc
    return notification
