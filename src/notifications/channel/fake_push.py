"""Fake push notification adapter — records multicast pushes for testing.

A recipient's tokens go out as one batched call. Each token gets its own
outcome; the recipient counts as reached when any token succeeded.
"""

from uuid import uuid4

from notifications.channel.port import ChannelContent, ChannelPort


class FakePushAdapter(ChannelPort):
    """Push adapter that records notifications in memory for test assertions."""

    def __init__(self):
        self.sent_pushes: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Push delivery failed"
        self.acknowledge = False
        self.invalid_tokens: set[str] = set()

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Push delivery failed",
        acknowledge: bool = False,
        invalid_tokens=(),
    ):
        """Configure the fake adapter behavior for testing.

        `acknowledge` makes the gateway confirm receipt (channel → delivered).
        `invalid_tokens` are rejected as unregistered.
        """
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.acknowledge = acknowledge
        self.invalid_tokens = set(invalid_tokens)

    def deliver(self, content: ChannelContent, endpoint: list[str]) -> dict:
        tokens = list(endpoint)
        if not self.should_succeed:
            return {
                "message_id": None,
                "status": "failed",
                "error": self.failure_reason,
                "results": {token: "failed" for token in tokens},
            }

        accepted = "delivered" if self.acknowledge else "sent"
        results = {token: ("invalid" if token in self.invalid_tokens else accepted) for token in tokens}
        delivered_to = [token for token, outcome in results.items() if outcome == accepted]

        if not delivered_to:
            return {
                "message_id": None,
                "status": "failed",
                "error": "All device tokens were rejected",
                "results": results,
            }

        message_id = f"push-{uuid4().hex[:12]}"
        self.sent_pushes.append(
            {
                "message_id": message_id,
                "tokens": delivered_to,
                "title": content.subject,
                "body": content.body,
                "data": content.data,
                "sound": content.sound,
                "priority": content.priority,
                "notification_id": content.notification_id,
            }
        )

        return {"message_id": message_id, "status": accepted, "results": results}

    def validate_endpoint(self, endpoint: str) -> bool:
        return endpoint not in self.invalid_tokens

    def reset(self):
        """Clear sent pushes (useful between tests)."""
        self.sent_pushes.clear()
        self.configure()
