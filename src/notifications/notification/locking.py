"""In-process locking for notification read-modify-write cycles.

Every writer that loads a Notification, mutates it and saves it back
(orchestrator result application, receipts, engagement, claims) holds the
notification's lock for the whole cycle, so concurrent writers serialise
instead of overwriting each other's channel entries.
"""

import threading
from contextlib import contextmanager

import structlog
from notifications.notification.notification import Notification
from protean.utils.globals import current_domain

logger = structlog.get_logger(__name__)

_guard = threading.Lock()
_locks: dict[str, list] = {}  # notification id → [RLock, holders]

# Serialises claims so overlapping sweeps never both take the same job
_claim_lock = threading.Lock()


@contextmanager
def notification_lock(notification_id):
    key = str(notification_id)
    with _guard:
        entry = _locks.get(key)
        if entry is None:
            entry = _locks[key] = [threading.RLock(), 0]
        entry[1] += 1

    try:
        with entry[0]:
            yield
    finally:
        with _guard:
            entry[1] -= 1
            if entry[1] == 0:
                _locks.pop(key, None)


def claim_notification(notification_id, from_statuses) -> Notification | None:
    """Move a notification to PROCESSING if it is still in one of `from_statuses`.

    Returns the claimed notification, or None when someone else got there first.
    """
    with _claim_lock, notification_lock(notification_id):
        repo = current_domain.repository_for(Notification)
        notification = repo.get(notification_id)
        if notification.status not in from_statuses:
            logger.info(
                "Notification not claimable, skipping",
                notification_id=str(notification_id),
                status=notification.status,
            )
            return None

        notification.claim()
        repo.add(notification)
        return notification


def reload(notification: Notification) -> Notification:
    """A fresh copy of `notification` from its repository.

    Events raised on the stale copy and not yet published move to the fresh
    one, so saving it inside an open unit of work does not drop them.
    """
    fresh = current_domain.repository_for(Notification).get(notification.id)
    fresh._events = [*notification._events, *fresh._events]
    return fresh
