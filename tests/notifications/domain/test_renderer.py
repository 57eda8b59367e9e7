"""Tests for template rendering."""

from notifications.template.renderer import render_template, render_text
from notifications.template.template import NotificationTemplate


def _make_template(**overrides):
    defaults = {
        "name": "order-shipped",
        "channel_type": "email",
        "subject": "Order {{orderId}}",
        "content": "Hello {{name}}, your order {{orderId}} shipped",
    }
    defaults.update(overrides)
    return NotificationTemplate.create(**defaults)


class TestRenderTemplate:
    def test_missing_variable_renders_empty(self):
        rendered = render_template(_make_template(), {"name": "Ana"})
        assert rendered.body == "Hello Ana, your order  shipped"
        assert rendered.subject == "Order "

    def test_all_variables_supplied(self):
        rendered = render_template(_make_template(), {"name": "Ana", "orderId": "A-17"})
        assert rendered.body == "Hello Ana, your order A-17 shipped"
        assert rendered.subject == "Order A-17"

    def test_default_values_fill_gaps(self):
        template = _make_template(default_values={"name": "customer"})
        assert render_template(template, {"orderId": "A-1"}).body == "Hello customer, your order A-1 shipped"

    def test_none_counts_as_absent(self):
        template = _make_template(default_values={"name": "customer"})
        assert render_template(template, {"name": None}).body.startswith("Hello customer,")

    def test_non_string_values_are_stringified(self):
        assert render_template(_make_template(), {"orderId": 42}).subject == "Order 42"

    def test_whitespace_inside_braces(self):
        template = _make_template(content="Hi {{ name }}!")
        assert render_template(template, {"name": "Ben"}).body == "Hi Ben!"

    def test_undeclared_placeholder_left_untouched(self):
        template = _make_template(content="Hi {{name}} {{secret}}", variables=["name"])
        assert render_template(template, {"name": "Ana", "secret": "x"}).body == "Hi Ana {{secret}}"

    def test_subject_only_for_subject_bearing_templates(self):
        template = _make_template(channel_type="sms", subject="ignored {{name}}")
        assert render_template(template, {"name": "Ana"}).subject is None

    def test_rendering_is_pure(self):
        template = _make_template()
        variables = {"name": "Ana"}
        first = render_template(template, variables)
        second = render_template(template, variables)
        assert first == second
        assert variables == {"name": "Ana"}
        assert template.usage_count == 0
        assert template.content == "Hello {{name}}, your order {{orderId}} shipped"


class TestRenderText:
    def test_none_text(self):
        assert render_text(None, ["a"]) is None

    def test_no_declared_variables(self):
        assert render_text("Hi {{name}}", []) == "Hi {{name}}"

    def test_longer_names_are_not_shadowed(self):
        assert render_text("{{order}} {{orderId}}", ["order", "orderId"], {"order": "o", "orderId": "id"}) == "o id"
