"""Domain events for the EndpointRegistry aggregate."""

from notifications.domain import notifications
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text


@notifications.event(part_of="EndpointRegistry")
class EndpointRegistered:
    """A device token was registered (or re-registered) for a user."""

    __version__ = 1

    registry_id: Identifier(required=True)
    user_id: String(required=True)
    token: String(required=True)
    platform: String()
    refreshed: Boolean(default=False)
    registered_at: DateTime(required=True)


@notifications.event(part_of="EndpointRegistry")
class EndpointUnregistered:
    """The user (or the app on their behalf) removed device tokens."""

    __version__ = 1

    registry_id: Identifier(required=True)
    user_id: String(required=True)
    tokens: Text(required=True)  # JSON array
    unregistered_at: DateTime(required=True)


@notifications.event(part_of="EndpointRegistry")
class EndpointsInvalidated:
    """The push gateway reported tokens as dead; they were pruned."""

    __version__ = 1

    registry_id: Identifier(required=True)
    user_id: String(required=True)
    tokens: Text(required=True)  # JSON array
    count: Integer(required=True)
    invalidated_at: DateTime(required=True)
