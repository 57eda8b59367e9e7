"""Faker-based data generators for Locust load test scenarios.

Each generator produces payloads that pass the domain's validation rules
(known channel tags, template subjects for email, HH:MM delivery windows)
and match the exact field names expected by the API's Pydantic request
schemas.
"""

import random
import uuid
from datetime import UTC, datetime, timedelta

from faker import Faker

fake = Faker()

CHANNELS = ["email", "sms", "push", "in_app"]
NOTIFICATION_TYPES = [
    "system",
    "order_status",
    "new_message",
    "product_available",
    "rfq_response",
    "promotion",
    "maintenance",
    "alert",
    "security",
]
PRIORITIES = ["low", "medium", "high", "critical"]

# ---------- Recipients ----------


def user_id() -> str:
    """Generate user ids like 'user-lt-a1b2c3d4'."""
    return f"user-lt-{uuid.uuid4().hex[:8]}"


def push_token() -> str:
    """Generate an opaque device token of realistic length."""
    return uuid.uuid4().hex + uuid.uuid4().hex


def endpoint_data() -> dict:
    """Generate RegisterEndpointRequest payload."""
    platform = random.choice(["ios", "android", "web"])
    return {
        "token": push_token(),
        "platform": platform,
        "device_name": f"{fake.first_name()}'s {platform}"[:100],
        "os_version": f"{random.randint(12, 17)}.{random.randint(0, 4)}",
        "app_version": f"2.{random.randint(0, 9)}.{random.randint(0, 20)}",
    }


# ---------- Notifications ----------


def channel_set() -> list[str]:
    """One to three distinct channels."""
    return random.sample(CHANNELS, k=random.randint(1, 3))


def notification_data(channels: list[str] | None = None, target_users: list[str] | None = None) -> dict:
    """Generate CreateNotificationRequest payload for an immediate notification."""
    return {
        "title": fake.sentence(nb_words=5)[:200],
        "body": fake.paragraph(nb_sentences=2)[:1000],
        "channels": channels or channel_set(),
        "notification_type": random.choice(NOTIFICATION_TYPES),
        "priority": random.choice(PRIORITIES),
        "target_users": target_users or [user_id() for _ in range(random.randint(1, 3))],
        "tags": [fake.word() for _ in range(random.randint(0, 2))],
        "created_by": "loadtest",
    }


def scheduled_notification_data(minutes_ahead: int | None = None) -> dict:
    """Generate a notification scheduled a few minutes to hours in the future."""
    payload = notification_data()
    minutes = minutes_ahead or random.randint(5, 240)
    payload["scheduled_time"] = (datetime.now(UTC) + timedelta(minutes=minutes)).isoformat()
    return payload


def fallback_notification_data() -> dict:
    """Email first, falling back to SMS once email retries are exhausted."""
    payload = notification_data(channels=["email"])
    payload["fallback_channels"] = ["sms"]
    payload["max_retries"] = random.randint(1, 3)
    return payload


def engagement_data(channel: str) -> dict:
    """Generate EngagementRequest payload."""
    event = random.choices(["opened", "clicked", "action_taken"], weights=[6, 3, 1])[0]
    return {
        "channel": channel,
        "event": event,
        "action": "view_order" if event == "action_taken" else None,
        "read_duration": random.randint(1, 120) if event == "opened" else None,
    }


# ---------- Templates ----------


def template_name() -> str:
    return f"lt-{fake.word()}-{uuid.uuid4().hex[:6]}"


def template_data(channel_type: str | None = None) -> dict:
    """Generate CreateTemplateRequest payload with two placeholders."""
    channel_type = channel_type or random.choice(["email", "sms", "push", "in_app"])
    payload = {
        "name": template_name(),
        "channel_type": channel_type,
        "content": "Hello {{name}}, your order {{orderId}} has shipped.",
        "category": random.choice(["transactional", "marketing", "system"]),
        "created_by": "loadtest",
    }
    if channel_type == "email":
        payload["subject"] = "Order {{orderId}} update"
    return payload


def template_variables() -> dict:
    return {"name": fake.first_name(), "orderId": f"ORD-{uuid.uuid4().hex[:6].upper()}"}
