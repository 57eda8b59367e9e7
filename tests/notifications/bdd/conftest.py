"""Shared BDD fixtures and step definitions for the Notifications domain."""

from datetime import UTC, datetime, timedelta

import pytest
from notifications.channel import get_channel
from notifications.directory import DirectoryUser, get_directory
from notifications.endpoint.registration import RegisterEndpoint, push_tokens_for
from notifications.notification.events import (
    ChannelDeliveryFailed,
    ChannelDeliverySent,
    ChannelEscalated,
    NotificationCancelled,
    NotificationClaimed,
    NotificationCreated,
    NotificationDispatched,
)
from notifications.notification.notification import Notification
from notifications.template.management import CreateTemplate
from notifications.template.template import NotificationTemplate
from protean import current_domain
from pytest_bdd import given, parsers, then

_NOTIFICATION_EVENT_CLASSES = {
    "NotificationCreated": NotificationCreated,
    "NotificationClaimed": NotificationClaimed,
    "NotificationDispatched": NotificationDispatched,
    "NotificationCancelled": NotificationCancelled,
    "ChannelDeliverySent": ChannelDeliverySent,
    "ChannelDeliveryFailed": ChannelDeliveryFailed,
    "ChannelEscalated": ChannelEscalated,
}


def _split(values):
    return [v.strip() for v in values.split(",") if v.strip()]


@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps: notifications
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse('a new notification on channels "{channels}"'),
    target_fixture="notification",
)
def new_notification(channels):
    return Notification.create(
        title="Order shipped",
        body="Your order is on its way",
        channels=_split(channels),
        created_by="bdd",
        target_users=["user-ana"],
    )


@given(
    parsers.cfparse("a notification scheduled in {minutes:d} minutes"),
    target_fixture="notification",
)
def scheduled_notification(minutes):
    n = Notification.create(
        title="Flash sale",
        body="Starts soon",
        channels=["email"],
        created_by="bdd",
        target_users=["user-ana"],
        scheduled_time=datetime.now(UTC) + timedelta(minutes=minutes),
    )
    n._events.clear()
    return n


@given(
    parsers.cfparse('a claimed notification on channels "{channels}"'),
    target_fixture="notification",
)
def claimed_notification(channels):
    n = Notification.create(
        title="Order shipped",
        body="Your order is on its way",
        channels=_split(channels),
        created_by="bdd",
        target_users=["user-ana"],
    )
    n.claim()
    n._events.clear()
    return n


# ---------------------------------------------------------------------------
# Given steps: directory, endpoints, gateways
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a customer "{user_id}" with email "{email}" and phone "{phone}"'))
def customer_with_contacts(user_id, email, phone):
    get_directory().add_user(DirectoryUser(id=user_id, role="customer", email=email, phone=phone))


@given(parsers.cfparse('customer "{user_id}" has push token "{token}"'))
def customer_push_token(user_id, token):
    current_domain.process(RegisterEndpoint(user_id=user_id, token=token, platform="android"), asynchronous=False)


@given(parsers.cfparse("the {channel} gateway is down"))
def gateway_down(channel):
    get_channel(channel).configure(should_succeed=False, failure_reason=f"{channel} gateway unavailable")


@given("the push gateway acknowledges deliveries")
def push_acknowledges():
    get_channel("push").configure(acknowledge=True)


@given(parsers.cfparse('the push gateway rejects token "{token}"'))
def push_rejects_token(token):
    push = get_channel("push")
    push.configure(acknowledge=push.acknowledge, invalid_tokens=push.invalid_tokens | {token})


# ---------------------------------------------------------------------------
# Given steps: templates
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse('an email template "{name}" with subject "{subject}" and content "{content}"'),
    target_fixture="template",
)
def email_template(name, subject, content):
    template_id = current_domain.process(
        CreateTemplate(name=name, channel_type="email", subject=subject, content=content),
        asynchronous=False,
    )
    return current_domain.repository_for(NotificationTemplate).get(template_id)


# ---------------------------------------------------------------------------
# Then steps: notification status & events
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the notification status is "{status}"'))
def notification_status_is(notification, status):
    assert notification.status == status


@then(parsers.cfparse('the overall status is "{status}"'))
def overall_status_is(notification, status):
    assert notification.overall_status() == status


@then(parsers.cfparse('channel "{channel}" is "{status}"'))
def channel_status_is(notification, channel, status):
    assert notification.delivery_for(channel).status == status


@then(parsers.cfparse("a {event_type} event is raised"))
def notification_event_raised(notification, event_type):
    event_cls = _NOTIFICATION_EVENT_CLASSES[event_type]
    assert any(
        isinstance(e, event_cls) for e in notification._events
    ), f"No {event_type} event found. Events: {[type(e).__name__ for e in notification._events]}"


@then("the action fails with a validation error")
def action_fails(error):
    assert error["exc"] is not None


@then(parsers.cfparse('customer "{user_id}" has push tokens "{tokens}"'))
def customer_has_tokens(user_id, tokens):
    assert push_tokens_for(user_id) == _split(tokens)


@then(parsers.cfparse("{count:d} email was sent"))
@then(parsers.cfparse("{count:d} emails were sent"))
def emails_sent(count):
    assert len(get_channel("email").sent_emails) == count

