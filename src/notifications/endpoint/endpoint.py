"""EndpointRegistry aggregate — a user's push endpoints (device tokens).

A user can be signed in on several devices at once, so each registry holds
any number of DeviceEndpoint entries. Registration is idempotent: the same
token registered twice refreshes its device metadata. Removal only ever
touches the tokens it is given.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from notifications.domain import notifications
from notifications.endpoint.events import (
    EndpointRegistered,
    EndpointsInvalidated,
    EndpointUnregistered,
)
from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, String


class Platform(Enum):
    IOS = "ios"
    ANDROID = "android"
    WEB = "web"


@notifications.entity(part_of="EndpointRegistry")
class DeviceEndpoint:
    token: String(required=True, max_length=500)
    platform: String(choices=Platform)
    device_name: String(max_length=100)
    device_model: String(max_length=100)
    os_version: String(max_length=50)
    app_version: String(max_length=50)
    registered_at: DateTime()
    last_seen_at: DateTime()


@notifications.aggregate
class EndpointRegistry:
    user_id: String(required=True, max_length=100, unique=True)
    endpoints: HasMany(DeviceEndpoint)
    created_at: DateTime()
    updated_at: DateTime()

    @invariant.post
    def tokens_are_unique(self):
        tokens = [e.token for e in self.endpoints]
        if len(tokens) != len(set(tokens)):
            raise ValidationError({"endpoints": ["A device token can only be registered once per user"]})

    @classmethod
    def create(cls, user_id):
        now = datetime.now(UTC)
        return cls(user_id=user_id, created_at=now, updated_at=now)

    def tokens(self) -> list[str]:
        return [e.token for e in self.endpoints]

    def _endpoint(self, token) -> DeviceEndpoint | None:
        return next((e for e in self.endpoints if e.token == token), None)

    def register(
        self,
        token,
        platform=None,
        device_name=None,
        device_model=None,
        os_version=None,
        app_version=None,
    ) -> bool:
        """Register `token`. Returns False when it was already known (metadata refreshed)."""
        if not token:
            raise ValidationError({"token": ["Device token is required"]})

        now = datetime.now(UTC)
        existing = self._endpoint(token)
        metadata = {
            "platform": platform,
            "device_name": device_name,
            "device_model": device_model,
            "os_version": os_version,
            "app_version": app_version,
        }

        if existing:
            for field, value in metadata.items():
                if value is not None:
                    setattr(existing, field, value)
            existing.last_seen_at = now
        else:
            self.add_endpoints(
                DeviceEndpoint(
                    token=token,
                    registered_at=now,
                    last_seen_at=now,
                    **metadata,
                )
            )

        self.updated_at = now

        self.raise_(
            EndpointRegistered(
                registry_id=str(self.id),
                user_id=self.user_id,
                token=token,
                platform=platform,
                refreshed=existing is not None,
                registered_at=now,
            )
        )

        return existing is None

    def unregister(self, token=None, all_endpoints=False) -> list[str]:
        """Remove one token, or every token with `all_endpoints`. Unknown tokens are a no-op."""
        if all_endpoints:
            removed = list(self.endpoints)
        else:
            endpoint = self._endpoint(token)
            removed = [endpoint] if endpoint else []

        if not removed:
            return []

        now = datetime.now(UTC)
        self.remove_endpoints(removed)
        self.updated_at = now
        tokens = [e.token for e in removed]

        self.raise_(
            EndpointUnregistered(
                registry_id=str(self.id),
                user_id=self.user_id,
                tokens=json.dumps(tokens),
                unregistered_at=now,
            )
        )

        return tokens

    def invalidate(self, tokens) -> list[str]:
        """Prune gateway-reported dead tokens. Returns the ones this registry held."""
        dead = set(tokens)
        removed = [e for e in self.endpoints if e.token in dead]
        if not removed:
            return []

        now = datetime.now(UTC)
        self.remove_endpoints(removed)
        self.updated_at = now
        removed_tokens = [e.token for e in removed]

        self.raise_(
            EndpointsInvalidated(
                registry_id=str(self.id),
                user_id=self.user_id,
                tokens=json.dumps(removed_tokens),
                count=len(removed_tokens),
                invalidated_at=now,
            )
        )

        return removed_tokens
