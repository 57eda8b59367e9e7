"""Application tests for push endpoint registration commands."""

import json
from unittest.mock import patch

from notifications.channel import get_channel, reset_channels
from notifications.endpoint import registration
from notifications.endpoint.registration import (
    CleanupInvalidEndpoints,
    InvalidateEndpoints,
    RegisterEndpoint,
    UnregisterEndpoint,
    push_tokens_for,
    registry_for,
)
from protean import current_domain


def _register(user_id, token, **kwargs):
    return current_domain.process(RegisterEndpoint(user_id=user_id, token=token, **kwargs), asynchronous=False)


class TestRegisterEndpoint:
    def test_register_creates_registry(self):
        registry_id = _register("user-1", "tok-a", platform="android", app_version="1.2.0")

        registry = registry_for("user-1")
        assert str(registry.id) == registry_id
        assert registry.tokens() == ["tok-a"]
        assert registry.endpoints[0].app_version == "1.2.0"

    def test_same_registry_for_second_device(self):
        first = _register("user-1", "tok-a")
        second = _register("user-1", "tok-b")

        assert first == second
        assert push_tokens_for("user-1") == ["tok-a", "tok-b"]

    def test_reregistering_is_idempotent(self):
        _register("user-1", "tok-a")
        _register("user-1", "tok-a", os_version="17.1")

        registry = registry_for("user-1")
        assert registry.tokens() == ["tok-a"]
        assert registry.endpoints[0].os_version == "17.1"

    def test_token_moves_to_new_account(self):
        _register("user-1", "tok-shared")
        _register("user-2", "tok-shared")

        assert push_tokens_for("user-1") == []
        assert push_tokens_for("user-2") == ["tok-shared"]

    def test_unknown_user_has_no_tokens(self):
        assert push_tokens_for("nobody") == []


class TestUnregisterEndpoint:
    def test_unregister_one(self):
        _register("user-1", "tok-a")
        _register("user-1", "tok-b")

        removed = current_domain.process(UnregisterEndpoint(user_id="user-1", token="tok-a"), asynchronous=False)

        assert removed == 1
        assert push_tokens_for("user-1") == ["tok-b"]

    def test_unregister_all(self):
        _register("user-1", "tok-a")
        _register("user-1", "tok-b")

        removed = current_domain.process(UnregisterEndpoint(user_id="user-1", all_endpoints=True), asynchronous=False)

        assert removed == 2
        assert push_tokens_for("user-1") == []

    def test_unregister_for_unknown_user(self):
        assert current_domain.process(UnregisterEndpoint(user_id="ghost", token="x"), asynchronous=False) == 0


class TestInvalidateEndpoints:
    def test_removes_exactly_the_reported_tokens(self):
        _register("user-1", "tok-a")
        _register("user-1", "tok-b")
        _register("user-2", "tok-c")

        removed = current_domain.process(InvalidateEndpoints(tokens=json.dumps(["tok-a", "tok-c"])), asynchronous=False)

        assert removed == 2
        assert push_tokens_for("user-1") == ["tok-b"]
        assert push_tokens_for("user-2") == []

    def test_unknown_tokens(self):
        _register("user-1", "tok-a")

        assert current_domain.process(InvalidateEndpoints(tokens=json.dumps(["tok-x"])), asynchronous=False) == 0
        assert push_tokens_for("user-1") == ["tok-a"]


class TestCleanupInvalidEndpoints:
    def setup_method(self):
        reset_channels()

    def test_prunes_tokens_the_gateway_rejects(self):
        _register("user-1", "tok-a")
        _register("user-1", "tok-b")
        _register("user-2", "tok-dead")
        get_channel("push").configure(invalid_tokens={"tok-b", "tok-dead"})

        removed = current_domain.process(CleanupInvalidEndpoints(requested_by="admin"), asynchronous=False)

        assert removed == 2
        assert push_tokens_for("user-1") == ["tok-a"]
        assert push_tokens_for("user-2") == []

    def test_nothing_to_clean(self):
        _register("user-1", "tok-a")

        assert current_domain.process(CleanupInvalidEndpoints(), asynchronous=False) == 0


class TestRegistriesBeyondOnePage:
    def setup_method(self):
        reset_channels()

    def test_invalidation_reaches_every_registry(self):
        for i in range(4):
            _register(f"user-{i}", f"tok-{i}")

        with patch.object(registration, "_REGISTRY_BATCH", 3):
            removed = current_domain.process(
                InvalidateEndpoints(tokens=json.dumps([f"tok-{i}" for i in range(4)])),
                asynchronous=False,
            )

        assert removed == 4
        assert all(push_tokens_for(f"user-{i}") == [] for i in range(4))

    def test_token_moves_away_from_every_previous_owner(self):
        for i in range(4):
            _register(f"user-{i}", f"tok-{i}")

        with patch.object(registration, "_REGISTRY_BATCH", 3):
            for i in range(4):
                _register("user-new", f"tok-{i}")

        assert all(push_tokens_for(f"user-{i}") == [] for i in range(4))
        assert sorted(push_tokens_for("user-new")) == ["tok-0", "tok-1", "tok-2", "tok-3"]

    def test_cleanup_checks_every_registry(self):
        for i in range(4):
            _register(f"user-{i}", f"tok-{i}")
        get_channel("push").configure(invalid_tokens={f"tok-{i}" for i in range(4)})

        with patch.object(registration, "_REGISTRY_BATCH", 3):
            removed = current_domain.process(CleanupInvalidEndpoints(), asynchronous=False)

        assert removed == 4
