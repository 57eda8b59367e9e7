"""Endpoint registration commands + handler.

RegisterEndpoint / UnregisterEndpoint come from client apps; InvalidateEndpoints
is issued by the orchestrator when the push gateway reports dead tokens;
CleanupInvalidEndpoints is an admin sweep that re-validates every stored token.
"""

import json

import structlog
from notifications.channel import get_channel
from notifications.domain import notifications
from notifications.endpoint.endpoint import EndpointRegistry
from notifications.notification.notification import Channel
from notifications.utils.paging import fetch_all
from protean.fields import Boolean, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

logger = structlog.get_logger(__name__)

_REGISTRY_BATCH = 1000


def registry_for(user_id) -> EndpointRegistry | None:
    repo = current_domain.repository_for(EndpointRegistry)
    registries = repo._dao.query.filter(user_id=str(user_id)).all().items
    return registries[0] if registries else None


def all_registries() -> list[EndpointRegistry]:
    repo = current_domain.repository_for(EndpointRegistry)
    return fetch_all(repo._dao.query, _REGISTRY_BATCH)


def push_tokens_for(user_id) -> list[str]:
    registry = registry_for(user_id)
    return registry.tokens() if registry else []


def invalidate_tokens(tokens) -> int:
    """Remove `tokens` wherever they are registered. Returns how many were removed."""
    tokens = set(tokens)
    if not tokens:
        return 0

    repo = current_domain.repository_for(EndpointRegistry)
    removed = 0
    for registry in all_registries():
        pruned = registry.invalidate(tokens)
        if pruned:
            repo.add(registry)
            removed += len(pruned)

    logger.info("Invalid push endpoints removed", requested=len(tokens), removed=removed)
    return removed


@notifications.command(part_of="EndpointRegistry")
class RegisterEndpoint:
    user_id: String(required=True, max_length=100)
    token: String(required=True, max_length=500)
    platform: String(max_length=20)
    device_name: String(max_length=100)
    device_model: String(max_length=100)
    os_version: String(max_length=50)
    app_version: String(max_length=50)


@notifications.command(part_of="EndpointRegistry")
class UnregisterEndpoint:
    user_id: String(required=True, max_length=100)
    token: String(max_length=500)
    all_endpoints: Boolean(default=False)


@notifications.command(part_of="EndpointRegistry")
class InvalidateEndpoints:
    tokens: Text(required=True)  # JSON array of device tokens


@notifications.command(part_of="EndpointRegistry")
class CleanupInvalidEndpoints:
    """Re-validate every stored token against the push gateway and prune dead ones."""

    requested_by: String(max_length=100)


@notifications.command_handler(part_of=EndpointRegistry)
class EndpointRegistrationHandler:
    @handle(RegisterEndpoint)
    def register_endpoint(self, command: RegisterEndpoint):
        repo = current_domain.repository_for(EndpointRegistry)

        # A device belongs to one account at a time
        for other in all_registries():
            if other.user_id != command.user_id and command.token in other.tokens():
                other.unregister(command.token)
                repo.add(other)

        registry = registry_for(command.user_id) or EndpointRegistry.create(command.user_id)
        created = registry.register(
            token=command.token,
            platform=command.platform,
            device_name=command.device_name,
            device_model=command.device_model,
            os_version=command.os_version,
            app_version=command.app_version,
        )
        repo.add(registry)

        logger.info(
            "Push endpoint registered",
            user_id=command.user_id,
            platform=command.platform,
            refreshed=not created,
        )
        return str(registry.id)

    @handle(UnregisterEndpoint)
    def unregister_endpoint(self, command: UnregisterEndpoint):
        registry = registry_for(command.user_id)
        if registry is None:
            return 0

        removed = registry.unregister(token=command.token, all_endpoints=command.all_endpoints)
        if removed:
            current_domain.repository_for(EndpointRegistry).add(registry)
        return len(removed)

    @handle(InvalidateEndpoints)
    def invalidate_endpoints(self, command: InvalidateEndpoints):
        return invalidate_tokens(json.loads(command.tokens))

    @handle(CleanupInvalidEndpoints)
    def cleanup_invalid_endpoints(self, command: CleanupInvalidEndpoints):
        adapter = get_channel(Channel.PUSH.value)
        dead = [token for registry in all_registries() for token in registry.tokens() if not adapter.validate_endpoint(token)]

        logger.info("Push endpoint cleanup checked tokens", invalid=len(dead))
        return invalidate_tokens(dead)
