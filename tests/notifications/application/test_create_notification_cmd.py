"""Application tests for CreateNotification and immediate dispatch."""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from notifications.channel import get_channel, reset_channels
from notifications.directory import DirectoryUser, InMemoryUserDirectory, set_directory
from notifications.endpoint.registration import RegisterEndpoint
from notifications.notification.creation import CreateNotification
from notifications.notification.notification import (
    DeliveryStatus,
    Notification,
    NotificationStatus,
)
from notifications.notification.orchestrator import DispatchOrchestrator
from notifications.notification.retry import RetryNotification
from notifications.template.management import CreateTemplate, SetTemplateActive
from protean import current_domain
from protean.exceptions import ValidationError


def _create(**overrides):
    defaults = {
        "title": "Order shipped",
        "body": "Your order is on its way",
        "created_by": "admin-1",
        "channels": ["email"],
        "target_users": ["user-ana"],
    }
    defaults.update(overrides)
    for field in (
        "channels",
        "target_users",
        "target_criteria",
        "data",
        "template_variables",
        "routing_rules",
        "fallback_channels",
        "tags",
        "email_content",
        "sms_content",
        "push_content",
        "in_app_content",
    ):
        if defaults.get(field) is not None and not isinstance(defaults[field], str):
            defaults[field] = json.dumps(defaults[field])
    return current_domain.process(CreateNotification(**defaults), asynchronous=False)


def _get(notification_id):
    return current_domain.repository_for(Notification).get(notification_id)


def _register_token(user_id, token):
    current_domain.process(RegisterEndpoint(user_id=user_id, token=token, platform="ios"), asynchronous=False)


class TestCreateNotification:
    def setup_method(self):
        reset_channels()

    def test_returns_notification_id(self, ana):
        notification_id = _create()
        assert _get(notification_id).title == "Order shipped"

    def test_immediate_notification_is_dispatched(self, ana):
        notification_id = _create()

        n = _get(notification_id)
        assert n.status == NotificationStatus.SENT.value
        assert n.delivery_statuses() == {"email": DeliveryStatus.SENT.value}
        assert n.recipient_count == 1
        assert n.dispatched_at is not None
        assert get_channel("email").sent_emails[0]["to"] == "ana@example.com"

    def test_scheduled_notification_is_not_dispatched(self, ana):
        notification_id = _create(scheduled_time=datetime.now(UTC) + timedelta(hours=1))

        n = _get(notification_id)
        assert n.status == NotificationStatus.SCHEDULED.value
        assert n.overall_status() == DeliveryStatus.PENDING.value
        assert get_channel("email").sent_emails == []

    def test_push_sent_and_email_failed_is_failed_overall(self, ana):
        _register_token("user-ana", "tok-ana")
        get_channel("email").configure(should_succeed=False, failure_reason="SMTP 550")

        notification_id = _create(channels=["push", "email"])

        n = _get(notification_id)
        assert n.delivery_statuses() == {"push": "sent", "email": "failed"}
        assert n.overall_status() == "failed"
        assert n.status == NotificationStatus.FAILED.value
        assert n.delivery_for("email").error == "SMTP 550"

    def test_every_channel_tracked_once_after_dispatch(self, ana, ben):
        notification_id = _create(channels=["email", "sms", "push", "in_app"], target_users=["user-ana", "user-ben"])

        n = _get(notification_id)
        assert sorted(d.channel for d in n.deliveries) == ["email", "in_app", "push", "sms"]

    def test_no_recipients_is_not_an_error(self, directory):
        notification_id = _create(target_users=["ghost"])

        n = _get(notification_id)
        assert n.status == NotificationStatus.SENT.value
        assert n.recipient_count == 0
        assert n.overall_status() == DeliveryStatus.PENDING.value

    def test_channel_without_endpoint_stays_pending(self, ana):
        notification_id = _create(channels=["email", "push"])

        n = _get(notification_id)
        assert n.delivery_statuses() == {"email": "sent", "push": "pending"}

    def test_role_targeting(self, ana, ben, directory):
        directory.add_user(id="supplier-1", role="supplier", email="s@example.com")
        notification_id = _create(target_users=None, target_role="customer")

        assert _get(notification_id).recipient_count == 2
        assert sorted(e["to"] for e in get_channel("email").sent_emails) == ["ana@example.com", "ben@example.com"]

    def test_in_app_is_delivered_immediately(self, ana):
        notification_id = _create(channels=["in_app"])

        assert _get(notification_id).status == NotificationStatus.DELIVERED.value
        assert get_channel("in_app").messages_for("user-ana")[0]["message"] == "Your order is on its way"



class _FlakyUserDirectory(InMemoryUserDirectory):
    """Directory that times out until it is brought back."""

    available = False

    def get_users(self, user_ids):
        if not self.available:
            raise RuntimeError("directory timeout")
        return super().get_users(user_ids)


class TestDispatchWhenRecipientsCannotBeResolved:
    def setup_method(self):
        reset_channels()
        self.directory = _FlakyUserDirectory(
            users=[DirectoryUser(id="user-ana", role="customer", email="ana@example.com")],
        )
        set_directory(self.directory)

    def test_creation_succeeds_and_the_failure_is_recorded(self):
        notification_id = _create()

        n = _get(notification_id)
        delivery = n.delivery_for("email")
        assert n.status == NotificationStatus.FAILED.value
        assert delivery.status == DeliveryStatus.FAILED.value
        assert "directory timeout" in delivery.error
        assert delivery.retry_count == 1
        assert delivery.next_attempt is not None
        assert delivery.get_failed_recipients() == []
        assert get_channel("email").sent_emails == []

    def test_every_channel_is_marked_failed(self):
        notification_id = _create(channels=["email", "sms"])

        assert _get(notification_id).delivery_statuses() == {"email": "failed", "sms": "failed"}

    def test_retry_after_recovery_reaches_every_recipient(self):
        notification_id = _create()
        self.directory.available = True

        current_domain.process(RetryNotification(notification_id=notification_id), asynchronous=False)

        n = _get(notification_id)
        assert n.status == NotificationStatus.SENT.value
        assert n.delivery_for("email").status == DeliveryStatus.SENT.value
        assert [e["to"] for e in get_channel("email").sent_emails] == ["ana@example.com"]


class TestDispatchFailureAfterCreation:
    def setup_method(self):
        reset_channels()

    def test_unexpected_dispatch_error_does_not_undo_creation(self, ana):
        with patch.object(DispatchOrchestrator, "dispatch", side_effect=RuntimeError("worker pool shut down")):
            notification_id = _create()

        n = _get(notification_id)
        assert n.title == "Order shipped"
        assert n.status == NotificationStatus.PROCESSING.value


class TestCreateNotificationValidation:
    def test_title_required(self, ana):
        with pytest.raises(ValidationError):
            _create(title=None)

    def test_body_required(self, ana):
        with pytest.raises(ValidationError):
            _create(body=None)

    def test_empty_channels_rejected(self, ana):
        with pytest.raises(ValidationError):
            _create(channels=[])

    def test_unknown_template_rejected(self, ana):
        with pytest.raises(ValidationError) as exc:
            _create(template_id="missing-template")
        assert "template_id" in exc.value.messages

    def test_inactive_template_rejected(self, ana):
        template_id = current_domain.process(
            CreateTemplate(name="promo", channel_type="sms", content="Sale!"),
            asynchronous=False,
        )
        current_domain.process(SetTemplateActive(template_id=template_id, is_active=False), asynchronous=False)

        with pytest.raises(ValidationError):
            _create(template_id=template_id)

    def test_malformed_json_rejected(self, ana):
        with pytest.raises(ValidationError) as exc:
            _create(data="{not json")
        assert "data" in exc.value.messages

    def test_nothing_stored_on_rejection(self, ana):
        with pytest.raises(ValidationError):
            _create(channels=["fax"])
        repo = current_domain.repository_for(Notification)
        assert repo._dao.query.all().total == 0


class TestTemplatedNotification:
    def setup_method(self):
        reset_channels()

    def _template(self):
        return current_domain.process(
            CreateTemplate(
                name="order-shipped",
                channel_type="email",
                subject="Order {{orderId}}",
                content="Hello {{name}}, your order {{orderId}} shipped",
            ),
            asynchronous=False,
        )

    def test_template_is_rendered_per_notification(self, ana):
        template_id = self._template()
        _create(template_id=template_id, template_variables={"name": "Ana", "orderId": "A-17"})

        email = get_channel("email").sent_emails[0]
        assert email["subject"] == "Order A-17"
        assert email["body"] == "Hello Ana, your order A-17 shipped"

    def test_missing_variable_renders_empty(self, ana):
        template_id = self._template()
        _create(template_id=template_id, template_variables={"name": "Ana"})

        assert get_channel("email").sent_emails[0]["body"] == "Hello Ana, your order  shipped"

    def test_dispatch_records_template_usage(self, ana):
        from notifications.template.template import NotificationTemplate

        template_id = self._template()
        _create(template_id=template_id)
        _create(template_id=template_id)

        template = current_domain.repository_for(NotificationTemplate).get(template_id)
        assert template.usage_count == 2
        assert template.last_used_at is not None

    def test_overrides_beat_template(self, ana):
        template_id = self._template()
        _create(template_id=template_id, email_content={"subject": "Custom", "html_body": "<b>Hi</b>"})

        email = get_channel("email").sent_emails[0]
        assert email["subject"] == "Custom"
        assert email["html_body"] == "<b>Hi</b>"

    def test_push_override_data_merges_with_payload(self, ana):
        _register_token("user-ana", "tok-ana")
        _create(channels=["push"], data={"order_id": "1"}, push_content={"title": "Ping", "data": {"screen": "orders"}})

        push = get_channel("push").sent_pushes[0]
        assert push["title"] == "Ping"
        assert push["data"] == {"order_id": "1", "screen": "orders"}
