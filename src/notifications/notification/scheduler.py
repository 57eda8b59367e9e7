"""Scheduler sweeps — commands invoked by a background job or cron.

ProcessScheduledNotifications  dispatch scheduled jobs whose time has come
ProcessPendingRetries          re-drive failed channels whose backoff elapsed
RecoverStuckNotifications      re-admit jobs left in PROCESSING by a crash
RunScheduledSweep              all three, in that order

Every sweep claims a job before dispatching it, so two overlapping sweeps
never dispatch the same notification. A failure on one job is logged and
the sweep moves on.
"""

from datetime import UTC, datetime, timedelta

import structlog
from notifications.domain import notifications
from notifications.notification.locking import claim_notification, notification_lock
from notifications.notification.notification import (
    Notification,
    NotificationStatus,
    ensure_utc,
)
from notifications.notification.orchestrator import DispatchMode, DispatchOrchestrator
from notifications.settings import get_settings
from notifications.utils.paging import fetch_all
from protean.fields import DateTime, Integer
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

logger = structlog.get_logger(__name__)

_SWEEP_BATCH = 1000

_RETRYABLE_STATUSES = {
    NotificationStatus.SENT.value,
    NotificationStatus.PARTIALLY_SENT.value,
    NotificationStatus.FAILED.value,
    NotificationStatus.DELIVERED.value,
}


def _notifications_in(status) -> list[Notification]:
    repo = current_domain.repository_for(Notification)
    return fetch_all(repo._dao.query.filter(status=status), _SWEEP_BATCH)


def due_notifications(as_of) -> list[Notification]:
    """Scheduled notifications whose scheduled time is at or before `as_of`, oldest first."""
    as_of = ensure_utc(as_of)
    due = [
        notification
        for notification in _notifications_in(NotificationStatus.SCHEDULED.value)
        if notification.scheduled_time is not None and ensure_utc(notification.scheduled_time) <= as_of
    ]
    return sorted(due, key=lambda n: ensure_utc(n.scheduled_time))


def retry_candidates(as_of) -> list[Notification]:
    """Finished jobs with at least one failed channel that is due for another attempt."""
    candidates = []
    for status in sorted(_RETRYABLE_STATUSES):
        for notification in _notifications_in(status):
            if any(notification.is_due_for_retry(d, as_of) for d in notification.deliveries):
                candidates.append(notification)
    return candidates


def process_scheduled(as_of=None) -> int:
    as_of = ensure_utc(as_of) or datetime.now(UTC)
    orchestrator = DispatchOrchestrator()

    dispatched = 0
    for notification in due_notifications(as_of):
        try:
            claimed = claim_notification(notification.id, {NotificationStatus.SCHEDULED.value})
            if claimed is None:
                continue
            orchestrator.dispatch(notification.id, mode=DispatchMode.INITIAL, as_of=as_of, claimed=claimed)
            dispatched += 1
        except Exception as exc:
            logger.exception(
                "Scheduled notification dispatch failed",
                notification_id=str(notification.id),
                error=str(exc),
            )

    logger.info("Scheduled notifications processed", dispatched=dispatched, as_of=str(as_of))
    return dispatched


def process_retries(as_of=None) -> int:
    as_of = ensure_utc(as_of) or datetime.now(UTC)
    orchestrator = DispatchOrchestrator()

    retried = 0
    for notification in retry_candidates(as_of):
        try:
            claimed = claim_notification(notification.id, _RETRYABLE_STATUSES)
            if claimed is None:
                continue
            orchestrator.dispatch(notification.id, mode=DispatchMode.RETRY, as_of=as_of, claimed=claimed)
            retried += 1
        except Exception as exc:
            logger.exception(
                "Retry dispatch failed",
                notification_id=str(notification.id),
                error=str(exc),
            )

    logger.info("Pending retries processed", retried=retried, as_of=str(as_of))
    return retried


def recover_stuck(as_of=None, timeout_minutes=None) -> int:
    as_of = ensure_utc(as_of) or datetime.now(UTC)
    if timeout_minutes is None:
        timeout_minutes = get_settings().stuck_timeout_minutes
    cutoff = as_of - timedelta(minutes=timeout_minutes)
    repo = current_domain.repository_for(Notification)

    recovered = 0
    for notification in _notifications_in(NotificationStatus.PROCESSING.value):
        started = ensure_utc(notification.processing_started_at)
        if started is not None and started > cutoff:
            continue

        try:
            with notification_lock(notification.id):
                fresh = repo.get(notification.id)
                if fresh.status != NotificationStatus.PROCESSING.value:
                    continue
                fresh.requeue(reason=f"Stuck in processing for more than {timeout_minutes} minutes", requeued_at=as_of)
                repo.add(fresh)
            recovered += 1
            logger.warning(
                "Stuck notification requeued",
                notification_id=str(notification.id),
                processing_started_at=str(started),
            )
        except Exception as exc:
            logger.exception(
                "Stuck notification recovery failed",
                notification_id=str(notification.id),
                error=str(exc),
            )

    if recovered:
        logger.info("Stuck notifications recovered", recovered=recovered)
    return recovered


@notifications.command(part_of="Notification")
class ProcessScheduledNotifications:
    """Request to dispatch every scheduled notification that is due."""

    as_of: DateTime()  # Optional: process as of this time (defaults to now)


@notifications.command(part_of="Notification")
class ProcessPendingRetries:
    as_of: DateTime()


@notifications.command(part_of="Notification")
class RecoverStuckNotifications:
    as_of: DateTime()
    timeout_minutes: Integer(min_value=1)


@notifications.command(part_of="Notification")
class RunScheduledSweep:
    """Recovery, due sweep and retry sweep in one pass."""

    as_of: DateTime()


@notifications.command_handler(part_of=Notification)
class SchedulerHandler:
    @handle(ProcessScheduledNotifications)
    def process_scheduled(self, command: ProcessScheduledNotifications):
        return process_scheduled(command.as_of)

    @handle(ProcessPendingRetries)
    def process_retries(self, command: ProcessPendingRetries):
        return process_retries(command.as_of)

    @handle(RecoverStuckNotifications)
    def recover_stuck(self, command: RecoverStuckNotifications):
        return recover_stuck(command.as_of, command.timeout_minutes)

    @handle(RunScheduledSweep)
    def run_sweep(self, command: RunScheduledSweep):
        as_of = ensure_utc(command.as_of) or datetime.now(UTC)
        return {
            "recovered": recover_stuck(as_of),
            "dispatched": process_scheduled(as_of),
            "retried": process_retries(as_of),
        }
