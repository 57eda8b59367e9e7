"""Application tests for template store commands and queries."""

import json

import pytest
from notifications.template.management import (
    CreateTemplate,
    DeleteTemplate,
    SetTemplateActive,
    UpdateTemplate,
    get_active_template,
)
from notifications.template.queries import list_templates, preview_template
from notifications.template.template import NotificationTemplate
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError


def _create_template(**overrides):
    defaults = {
        "name": "order-shipped",
        "channel_type": "email",
        "subject": "Order {{orderId}} shipped",
        "content": "Hi {{name}}, order {{orderId}} is on its way.",
        "category": "transactional",
    }
    defaults.update(overrides)
    return current_domain.process(CreateTemplate(**defaults), asynchronous=False)


def _get(template_id):
    return current_domain.repository_for(NotificationTemplate).get(template_id)


class TestCreateTemplate:
    def test_create(self):
        template_id = _create_template(email_settings=json.dumps({"from_name": "Shop", "from_email": "hi@shop.test"}))

        t = _get(template_id)
        assert t.name == "order-shipped"
        assert t.get_variables() == ["orderId", "name"]
        assert t.email_settings.from_name == "Shop"
        assert t.is_active is True

    def test_name_must_be_unique(self):
        _create_template()

        with pytest.raises(ValidationError) as exc:
            _create_template()
        assert "name" in exc.value.messages

    def test_email_template_needs_subject(self):
        with pytest.raises(ValidationError):
            _create_template(subject=None)

    def test_declared_variables_and_defaults(self):
        template_id = _create_template(
            variables=json.dumps(["name"]),
            default_values=json.dumps({"name": "there"}),
        )

        t = _get(template_id)
        assert t.get_variables() == ["name"]
        assert t.get_default_values() == {"name": "there"}


class TestUpdateTemplate:
    def test_update_content_bumps_version(self):
        template_id = _create_template()

        version = current_domain.process(
            UpdateTemplate(template_id=template_id, content="Order {{orderId}} shipped."),
            asynchronous=False,
        )

        assert version == 2
        assert _get(template_id).content == "Order {{orderId}} shipped."

    def test_rename_to_taken_name(self):
        _create_template(name="a")
        template_id = _create_template(name="b")

        with pytest.raises(ValidationError):
            current_domain.process(UpdateTemplate(template_id=template_id, name="a"), asynchronous=False)


class TestTemplateActivation:
    def test_deactivate_and_reactivate(self):
        template_id = _create_template()

        current_domain.process(SetTemplateActive(template_id=template_id, is_active=False), asynchronous=False)
        with pytest.raises(ValidationError):
            get_active_template(template_id)

        current_domain.process(SetTemplateActive(template_id=template_id), asynchronous=False)
        assert get_active_template(template_id).is_active is True

    def test_delete(self):
        template_id = _create_template()

        current_domain.process(DeleteTemplate(template_id=template_id), asynchronous=False)

        with pytest.raises(ObjectNotFoundError):
            _get(template_id)


class TestTemplateQueries:
    def test_list_filters(self):
        _create_template(name="email-one")
        _create_template(name="sms-one", channel_type="sms", subject=None, content="Hi", category="alert")

        assert [t.name for t in list_templates(channel_type="sms")] == ["sms-one"]
        assert [t.name for t in list_templates(category="transactional")] == ["email-one"]
        assert len(list_templates()) == 2

    def test_list_search(self):
        _create_template(name="welcome", subject="Welcome aboard", content="Hello")
        _create_template(name="receipt", subject="Your receipt", content="Paid")

        assert [t.name for t in list_templates(search="ABOARD")] == ["welcome"]

    def test_list_active_only(self):
        template_id = _create_template(name="old")
        _create_template(name="new")
        current_domain.process(SetTemplateActive(template_id=template_id, is_active=False), asynchronous=False)

        assert [t.name for t in list_templates(active_only=True)] == ["new"]

    def test_most_used_first(self):
        _create_template(name="a-rare")
        popular_id = _create_template(name="b-popular")
        repo = current_domain.repository_for(NotificationTemplate)
        popular = repo.get(popular_id)
        popular.record_usage()
        repo.add(popular)

        assert [t.name for t in list_templates()] == ["b-popular", "a-rare"]

    def test_preview_does_not_count_usage(self):
        template_id = _create_template()

        rendered = preview_template(template_id, {"name": "Ana", "orderId": "A-1"})

        assert rendered.subject == "Order A-1 shipped"
        assert rendered.body == "Hi Ana, order A-1 is on its way."
        assert _get(template_id).usage_count == 0
