"""Fake in-app adapter — an in-memory inbox per user.

In-app messages are stored where the client reads them, so a successful
hand-off is already a delivery.
"""

from collections import defaultdict
from datetime import UTC, datetime
from uuid import uuid4

from notifications.channel.port import ChannelContent, ChannelPort


class FakeInAppAdapter(ChannelPort):
    def __init__(self):
        self.inbox: dict[str, list[dict]] = defaultdict(list)
        self.should_succeed = True
        self.failure_reason = "In-app delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "In-app delivery failed"):
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def deliver(self, content: ChannelContent, endpoint: str) -> dict:
        if not self.should_succeed:
            return {
                "message_id": None,
                "status": "failed",
                "error": self.failure_reason,
            }

        message_id = f"inapp-{uuid4().hex[:12]}"
        self.inbox[str(endpoint)].append(
            {
                "message_id": message_id,
                "title": content.subject,
                "message": content.body,
                "action": content.action,
                "priority": content.priority,
                "expires_at": content.expires_at,
                "data": content.data,
                "notification_id": content.notification_id,
                "received_at": datetime.now(UTC),
            }
        )

        return {"message_id": message_id, "status": "delivered"}

    def messages_for(self, user_id: str) -> list[dict]:
        return list(self.inbox.get(str(user_id), []))

    def reset(self):
        self.inbox.clear()
        self.configure()
