"""Fake email adapter — records sent emails for testing."""

from uuid import uuid4

from notifications.channel.port import ChannelContent, ChannelPort


class FakeEmailAdapter(ChannelPort):
    """Email adapter that records messages in memory for test assertions."""

    def __init__(self):
        self.sent_emails: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Email delivery failed"
        self.failing_addresses: set[str] = set()
        self.raise_error = False

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Email delivery failed",
        failing_addresses=(),
        raise_error: bool = False,
    ):
        """Configure the fake adapter behavior for testing.

        `failing_addresses` fails only those recipients; `raise_error` makes
        the gateway call blow up instead of returning a failed result.
        """
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.failing_addresses = set(failing_addresses)
        self.raise_error = raise_error

    def deliver(self, content: ChannelContent, endpoint: str) -> dict:
        if self.raise_error:
            raise ConnectionError("SMTP connection refused")

        if not self.should_succeed or endpoint in self.failing_addresses:
            return {
                "message_id": None,
                "status": "failed",
                "error": self.failure_reason,
            }

        message_id = f"email-{uuid4().hex[:12]}"
        record = {
            "message_id": message_id,
            "to": endpoint,
            "subject": content.subject,
            "body": content.body,
            "html_body": content.html_body,
            "from": content.sender,
            "reply_to": content.reply_to,
            "notification_id": content.notification_id,
        }
        self.sent_emails.append(record)

        return {"message_id": message_id, "status": "sent"}

    def reset(self):
        """Clear sent emails (useful between tests)."""
        self.sent_emails.clear()
        self.configure()
