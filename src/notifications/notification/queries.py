"""Read helpers for notification records: filtered, paginated listing."""

from notifications.notification.notification import Notification, ensure_utc
from notifications.utils.paging import fetch_all
from protean.utils.globals import current_domain

_LIST_BATCH = 1000


def search_notifications(
    status=None,
    notification_type=None,
    channel=None,
    priority=None,
    start_date=None,
    end_date=None,
    search=None,
    include_archived=False,
    page=1,
    limit=20,
) -> tuple[list[Notification], int]:
    """Return one page of matching notifications (newest first) and the total match count."""
    filters = {
        key: value
        for key, value in {
            "status": status,
            "notification_type": notification_type,
            "priority": priority,
        }.items()
        if value
    }
    if not include_archived:
        filters["is_archived"] = False

    repo = current_domain.repository_for(Notification)
    matches = fetch_all(repo._dao.query.filter(**filters), _LIST_BATCH)

    start_date = ensure_utc(start_date)
    end_date = ensure_utc(end_date)
    needle = search.lower() if search else None

    def _keep(notification) -> bool:
        created = ensure_utc(notification.created_at)
        if start_date and created < start_date:
            return False
        if end_date and created > end_date:
            return False
        if channel and channel not in notification.get_channels():
            return False
        if needle and needle not in notification.title.lower() and needle not in notification.body.lower():
            return False
        return True

    matches = sorted(filter(_keep, matches), key=lambda n: ensure_utc(n.created_at), reverse=True)
    offset = (max(page, 1) - 1) * limit
    return matches[offset : offset + limit], len(matches)
