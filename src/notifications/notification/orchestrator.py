"""Dispatch orchestrator — fan a claimed notification out over its channels.

One dispatch pass:
    1. resolve recipients and render the per-channel content once
    2. build a task per (channel, recipient) for the channels in scope
    3. run the tasks on a thread pool; adapters never touch the domain, and a
       raising adapter only fails its own task
    4. apply the outcomes on the calling thread, under the notification lock,
       to a freshly loaded aggregate
    5. escalate failed recipients to fallback channels, and repeat for the
       newly created fallback entries
    6. close the pass: job status follows the derived channel status

Which channels are in scope depends on the mode: a first dispatch only
touches pending channels; the retry sweep adds failed channels that are due;
an explicit re-send adds every failed channel still under the retry ceiling.
Within a failed channel only the recipients that failed last time are
re-driven.
"""

from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

import structlog
from notifications.channel import ChannelContent, get_channel
from notifications.endpoint.registration import invalidate_tokens
from notifications.notification.content import build_channel_contents
from notifications.notification.locking import notification_lock, reload
from notifications.notification.notification import (
    DeliveryStatus,
    Notification,
    NotificationStatus,
    ensure_utc,
)
from notifications.notification.retry_policy import RetryPolicy
from notifications.recipient.resolver import Recipient, RecipientResolver
from notifications.settings import DeliverySettings, get_settings
from notifications.template.template import NotificationTemplate
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

logger = structlog.get_logger(__name__)


class DispatchMode(Enum):
    INITIAL = "initial"
    RETRY = "retry"
    RESEND = "resend"


@dataclass(frozen=True)
class DeliveryTask:
    channel: str
    user_id: str
    endpoint: object
    content: ChannelContent


@dataclass
class ChannelOutcome:
    channel: str
    succeeded: list = field(default_factory=list)
    failed: list = field(default_factory=list)
    errors: list = field(default_factory=list)
    acknowledged: list = field(default_factory=list)
    message_ids: list = field(default_factory=list)
    invalid_tokens: list = field(default_factory=list)

    @property
    def all_acknowledged(self) -> bool:
        return bool(self.succeeded) and len(self.acknowledged) == len(self.succeeded)

    @property
    def error(self) -> str:
        return "; ".join(dict.fromkeys(self.errors)) or "Unknown dispatch error"


def _attempt(task: DeliveryTask) -> dict:
    """Run one gateway call. Any exception becomes a failed result for this task only."""
    try:
        return get_channel(task.channel).deliver(task.content, task.endpoint)
    except Exception as exc:
        logger.warning(
            "Channel adapter raised",
            channel=task.channel,
            user_id=task.user_id,
            error=str(exc),
        )
        return {"message_id": None, "status": "failed", "error": str(exc) or exc.__class__.__name__}


class DispatchOrchestrator:
    def __init__(
        self,
        resolver: RecipientResolver | None = None,
        settings: DeliverySettings | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        self.resolver = resolver or RecipientResolver()
        self.settings = settings or get_settings()
        self.retry_policy = retry_policy or RetryPolicy.from_settings(self.settings)

    def dispatch(self, notification_id, mode: DispatchMode = DispatchMode.INITIAL, as_of=None, claimed=None) -> dict:
        """Dispatch a notification that has already been claimed (status PROCESSING).

        Callers that claimed the notification in the same unit of work pass the
        claimed instance as `claimed`, so its pending events are kept.
        """
        as_of = ensure_utc(as_of) or datetime.now(UTC)
        repo = current_domain.repository_for(Notification)
        notification = claimed if claimed is not None else repo.get(notification_id)

        if notification.status != NotificationStatus.PROCESSING.value:
            logger.warning(
                "Notification not claimed for dispatch, skipping",
                notification_id=str(notification_id),
                status=notification.status,
            )
            return self._summary(notification, attempted=0)

        try:
            recipients = self.resolver.resolve(notification)
            template = self._load_template(notification)
            contents = build_channel_contents(notification, template)
        except Exception as exc:
            logger.exception(
                "Dispatch preparation failed",
                notification_id=str(notification_id),
                error=str(exc),
            )
            return self._fail_preparation(notification, mode, as_of, exc)

        attempted_channels: set[str] = set()
        invalid_tokens: set[str] = set()
        attempted = 0

        while True:
            notification = reload(notification)
            scope = [
                channel
                for channel in notification.channel_order()
                if channel not in attempted_channels and self._in_scope(notification, channel, mode, as_of)
            ]
            if not scope:
                break
            attempted_channels.update(scope)

            tasks = self._build_tasks(notification, scope, recipients, contents)
            outcomes = self._execute(tasks)
            attempted += len(tasks)
            for outcome in outcomes.values():
                invalid_tokens.update(outcome.invalid_tokens)

            notification = self._apply(notification, scope, outcomes)

        with notification_lock(notification_id):
            notification = reload(notification)
            notification.complete_dispatch(recipient_count=len(recipients))
            repo.add(notification)

        if template is not None:
            template.record_usage()
            current_domain.repository_for(NotificationTemplate).add(template)

        if invalid_tokens:
            invalidate_tokens(invalid_tokens)

        logger.info(
            "Notification dispatched",
            notification_id=str(notification_id),
            mode=mode.value,
            status=notification.status,
            recipients=len(recipients),
            attempts=attempted,
        )
        return self._summary(notification, attempted=attempted)

    # -------------------------------------------------------------------
    # Pass construction
    # -------------------------------------------------------------------
    def _in_scope(self, notification: Notification, channel: str, mode: DispatchMode, as_of) -> bool:
        delivery = notification.delivery_for(channel)
        if delivery.status == DeliveryStatus.PENDING.value:
            return True
        if delivery.status != DeliveryStatus.FAILED.value or mode == DispatchMode.INITIAL:
            return False
        if mode == DispatchMode.RETRY:
            return notification.is_due_for_retry(delivery, as_of)
        return not notification.is_exhausted(delivery)

    def _build_tasks(self, notification: Notification, scope, recipients: list[Recipient], contents) -> list[DeliveryTask]:
        tasks = []
        for channel in scope:
            delivery = notification.delivery_for(channel)
            allowed = set(delivery.get_target_recipients()) if delivery.is_fallback else None
            retrying = set(delivery.get_failed_recipients()) if delivery.status == DeliveryStatus.FAILED.value else set()

            for recipient in recipients:
                if allowed is not None and recipient.user_id not in allowed:
                    continue
                if retrying and recipient.user_id not in retrying:
                    continue
                endpoint = recipient.endpoint_for(channel)
                if not endpoint:
                    continue
                tasks.append(
                    DeliveryTask(
                        channel=channel,
                        user_id=recipient.user_id,
                        endpoint=endpoint,
                        content=contents[channel],
                    )
                )
        return tasks

    def _execute(self, tasks: list[DeliveryTask]) -> dict[str, ChannelOutcome]:
        outcomes: dict[str, ChannelOutcome] = {}
        if not tasks:
            return outcomes

        results = []
        workers = min(self.settings.dispatch_workers, len(tasks))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notification-dispatch") as pool:
            futures = {pool.submit(_attempt, task): task for task in tasks}
            for future in as_completed(futures):
                results.append((futures[future], future.result()))

        per_channel = defaultdict(list)
        for task, result in results:
            per_channel[task.channel].append((task, result))

        for channel, channel_results in per_channel.items():
            outcome = ChannelOutcome(channel=channel)
            # Keep recipient order stable regardless of completion order
            for task, result in sorted(channel_results, key=lambda item: item[0].user_id):
                status = result.get("status")
                if status in (DeliveryStatus.SENT.value, DeliveryStatus.DELIVERED.value):
                    outcome.succeeded.append(task.user_id)
                    if status == DeliveryStatus.DELIVERED.value:
                        outcome.acknowledged.append(task.user_id)
                else:
                    outcome.failed.append(task.user_id)
                    outcome.errors.append(result.get("error") or "Unknown dispatch error")
                if result.get("message_id"):
                    outcome.message_ids.append(result["message_id"])
                outcome.invalid_tokens.extend(
                    token for token, token_status in (result.get("results") or {}).items() if token_status == "invalid"
                )
            outcomes[channel] = outcome

        return outcomes

    # -------------------------------------------------------------------
    # Result application
    # -------------------------------------------------------------------
    def _apply(self, notification: Notification, scope, outcomes: dict[str, ChannelOutcome]) -> Notification:
        repo = current_domain.repository_for(Notification)
        notification_id = notification.id
        with notification_lock(notification_id):
            notification = reload(notification)

            for channel in scope:
                outcome = outcomes.get(channel)
                if outcome is None:
                    logger.info(
                        "No reachable recipients on channel",
                        notification_id=str(notification_id),
                        channel=channel,
                    )
                    continue

                if outcome.failed:
                    notification.record_channel_failure(
                        channel,
                        error=outcome.error,
                        failed_recipients=outcome.failed,
                        sent_count=len(outcome.succeeded),
                        message_ids=outcome.message_ids,
                        retry_policy=self.retry_policy,
                    )
                    logger.warning(
                        "Channel delivery failed",
                        notification_id=str(notification_id),
                        channel=channel,
                        failed=len(outcome.failed),
                        succeeded=len(outcome.succeeded),
                        error=outcome.error,
                    )
                    fallback = notification.escalate(channel)
                    if fallback:
                        logger.info(
                            "Failed recipients escalated to fallback channel",
                            notification_id=str(notification_id),
                            from_channel=channel,
                            to_channel=fallback,
                        )
                else:
                    notification.record_channel_success(
                        channel,
                        sent_count=len(outcome.succeeded),
                        acknowledged=outcome.all_acknowledged,
                        message_ids=outcome.message_ids,
                    )

            repo.add(notification)
        return notification

    def _fail_preparation(self, notification: Notification, mode: DispatchMode, as_of, exc: Exception) -> dict:
        """Record a pass that could not start as a failure on every channel in scope.

        No recipient was attempted, so the failed recipient list stays empty and
        the next attempt re-drives the whole channel.
        """
        repo = current_domain.repository_for(Notification)
        error = f"Dispatch preparation failed: {str(exc) or exc.__class__.__name__}"
        with notification_lock(notification.id):
            notification = reload(notification)
            for channel in notification.channel_order():
                if self._in_scope(notification, channel, mode, as_of):
                    notification.record_channel_failure(
                        channel,
                        error=error,
                        failed_recipients=[],
                        retry_policy=self.retry_policy,
                    )
            notification.complete_dispatch(recipient_count=0)
            repo.add(notification)

        return self._summary(notification, attempted=0)

    def _load_template(self, notification: Notification) -> NotificationTemplate | None:
        if not notification.template_id:
            return None
        try:
            return current_domain.repository_for(NotificationTemplate).get(notification.template_id)
        except ObjectNotFoundError:
            logger.warning(
                "Template missing at dispatch, falling back to title/body",
                notification_id=str(notification.id),
                template_id=str(notification.template_id),
            )
            return None

    @staticmethod
    def _summary(notification: Notification, attempted: int) -> dict:
        return {
            "notification_id": str(notification.id),
            "status": notification.status,
            "overall_status": notification.overall_status(),
            "channels": notification.delivery_statuses(),
            "recipient_count": notification.recipient_count,
            "attempted": attempted,
        }
