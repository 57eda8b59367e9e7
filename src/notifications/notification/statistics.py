"""Read-side statistics over notification records.

`notification_stats` summarises everything created within a timeframe;
`channel_performance` and `delivery_rate` describe a single notification.
"""

from collections import Counter
from datetime import UTC, datetime, timedelta

from notifications.notification.notification import (
    CHANNEL_VALUES,
    DeliveryStatus,
    Notification,
    ensure_utc,
)
from notifications.utils.paging import fetch_all
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

TIMEFRAMES = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "1y": timedelta(days=365),
}
DEFAULT_TIMEFRAME = "30d"

# Channel statuses that count towards a channel's success figures
_SUCCESS_STATUSES = {
    DeliveryStatus.DELIVERED.value,
    DeliveryStatus.READ.value,
    DeliveryStatus.CLICKED.value,
}
_REACHED_STATUSES = {DeliveryStatus.DELIVERED.value, DeliveryStatus.READ.value}


def _created_since(since) -> list[Notification]:
    repo = current_domain.repository_for(Notification)
    return fetch_all(repo._dao.query.filter(created_at__gte=since))


def notification_stats(timeframe=DEFAULT_TIMEFRAME, as_of=None) -> dict:
    if timeframe not in TIMEFRAMES:
        raise ValidationError({"timeframe": [f"Unknown timeframe {timeframe}; use one of {', '.join(TIMEFRAMES)}"]})

    as_of = ensure_utc(as_of) or datetime.now(UTC)
    since = as_of - TIMEFRAMES[timeframe]
    records = _created_since(since)

    by_status = Counter(n.status for n in records)
    channels = {channel: {"total": 0, "successful": 0, "failed": 0} for channel in CHANNEL_VALUES}
    engagement = Counter()
    requested = reached = 0

    for notification in records:
        requested_channels = notification.get_channels()
        requested += len(requested_channels)
        for delivery in notification.deliveries:
            figures = channels[delivery.channel]
            figures["total"] += 1
            if delivery.status in _SUCCESS_STATUSES:
                figures["successful"] += 1
            elif delivery.status == DeliveryStatus.FAILED.value:
                figures["failed"] += 1
            if delivery.channel in requested_channels and delivery.status in _REACHED_STATUSES:
                reached += 1

        current = notification.engagement_metrics()
        engagement["opened"] += int(bool(current.opened))
        engagement["clicked"] += int(bool(current.clicked))
        engagement["action_taken"] += int(bool(current.action_taken))
        engagement["suspect"] += int(bool(current.suspect))

    return {
        "timeframe": timeframe,
        "since": since.isoformat(),
        "total": len(records),
        "by_status": dict(by_status),
        "channels": channels,
        "delivery_rate": round(reached / requested * 100, 2) if requested else 0.0,
        "engagement": {key: engagement[key] for key in ("opened", "clicked", "action_taken", "suspect")},
    }


def channel_performance(notification: Notification) -> list[dict]:
    return [
        {
            "channel": delivery.channel,
            "status": delivery.status,
            "successful": delivery.status in _SUCCESS_STATUSES,
            "status_changed_at": delivery.status_changed_at.isoformat() if delivery.status_changed_at else None,
            "error": delivery.error,
            "retry_count": delivery.retry_count,
            "is_fallback": bool(delivery.is_fallback),
        }
        for delivery in notification.deliveries
    ]


def delivery_rate(notification: Notification) -> float:
    return notification.delivery_rate()
