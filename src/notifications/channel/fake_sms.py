"""Fake SMS adapter — records sent messages for testing."""

import math
from uuid import uuid4

from notifications.channel.port import ChannelContent, ChannelPort

# GSM-7 single-segment length
SEGMENT_LENGTH = 160


class FakeSMSAdapter(ChannelPort):
    """SMS adapter that records messages in memory for test assertions."""

    def __init__(self):
        self.sent_messages: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "SMS delivery failed"
        self.failing_numbers: set[str] = set()

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "SMS delivery failed",
        failing_numbers=(),
    ):
        """Configure the fake adapter behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.failing_numbers = set(failing_numbers)

    def deliver(self, content: ChannelContent, endpoint: str) -> dict:
        if not self.should_succeed or endpoint in self.failing_numbers:
            return {
                "message_id": None,
                "status": "failed",
                "error": self.failure_reason,
            }

        message_id = f"sms-{uuid4().hex[:12]}"
        record = {
            "message_id": message_id,
            "to": endpoint,
            "body": content.body,
            "sender_id": content.sender,
            "parts": max(1, math.ceil(len(content.body) / SEGMENT_LENGTH)),
            "notification_id": content.notification_id,
        }
        self.sent_messages.append(record)

        return {"message_id": message_id, "status": "sent"}

    def reset(self):
        """Clear sent messages (useful between tests)."""
        self.sent_messages.clear()
        self.configure()
