"""Recipient resolution — turn a notification's target into concrete recipients.

Exactly one targeting mode is authoritative, by precedence:
explicit user ids > role > attribute criteria. A notification with no target
resolves to nobody, which is not an error.

Each recipient carries the endpoint to use per channel: email address and
phone from the user directory, push tokens from the endpoint registry, and
the user id itself for in-app. A channel the user cannot be reached on is
simply absent from their endpoints.
"""

from dataclasses import dataclass, field

import structlog
from notifications.directory import DirectoryUser, UserDirectoryPort, get_directory
from notifications.endpoint.registration import push_tokens_for
from notifications.notification.notification import Channel, Notification, TargetRole

logger = structlog.get_logger(__name__)

# Roles that "all" expands to
BROADCAST_ROLES = (TargetRole.CUSTOMER.value, TargetRole.SUPPLIER.value, TargetRole.ADMIN.value)


@dataclass(frozen=True)
class Recipient:
    user_id: str
    role: str | None = None
    endpoints: dict = field(default_factory=dict)

    def endpoint_for(self, channel: str):
        return self.endpoints.get(channel)


class RecipientResolver:
    def __init__(self, directory: UserDirectoryPort | None = None, push_tokens=push_tokens_for):
        self._directory = directory
        self._push_tokens = push_tokens

    @property
    def directory(self) -> UserDirectoryPort:
        return self._directory or get_directory()

    def resolve(self, notification: Notification) -> list[Recipient]:
        users = self.resolve_users(
            target_users=notification.get_target_users(),
            target_role=notification.target_role,
            target_criteria=notification.get_target_criteria(),
        )
        recipients = [self._recipient(user) for user in users]

        logger.debug(
            "Recipients resolved",
            notification_id=str(notification.id),
            count=len(recipients),
        )
        return recipients

    def resolve_users(self, target_users=None, target_role=None, target_criteria=None) -> list[DirectoryUser]:
        """Active directory users for the authoritative target, unique and ordered by id."""
        if target_users:
            ids = list(dict.fromkeys(str(uid) for uid in target_users))
            users = self.directory.get_users(ids)
        elif target_role:
            roles = BROADCAST_ROLES if target_role == TargetRole.ALL.value else (target_role,)
            users = [user for role in roles for user in self.directory.find_by_role(role)]
        elif target_criteria:
            users = self.directory.find_by_criteria(target_criteria)
        else:
            return []

        unique = {str(user.id): user for user in users if user.is_active}
        return [unique[uid] for uid in sorted(unique)]

    def _recipient(self, user: DirectoryUser) -> Recipient:
        endpoints = {Channel.IN_APP.value: str(user.id)}
        if user.email:
            endpoints[Channel.EMAIL.value] = user.email
        if user.phone:
            endpoints[Channel.SMS.value] = user.phone
        tokens = self._push_tokens(str(user.id))
        if tokens:
            endpoints[Channel.PUSH.value] = list(tokens)

        return Recipient(user_id=str(user.id), role=user.role, endpoints=endpoints)
