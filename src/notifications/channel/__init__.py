"""Channel adapter registry — pluggable notification dispatch channels.

Provides singleton access to channel adapters, looked up by channel tag.
Fake adapters are used by default; real gateway adapters (SMTP/SendGrid,
Twilio, FCM) are plugged in with `register_channel()` at startup.
"""

from notifications.channel.port import ChannelContent, ChannelPort
from notifications.notification.notification import Channel


def _fake_email():
    from notifications.channel.fake_email import FakeEmailAdapter

    return FakeEmailAdapter()


def _fake_sms():
    from notifications.channel.fake_sms import FakeSMSAdapter

    return FakeSMSAdapter()


def _fake_push():
    from notifications.channel.fake_push import FakePushAdapter

    return FakePushAdapter()


def _fake_in_app():
    from notifications.channel.fake_in_app import FakeInAppAdapter

    return FakeInAppAdapter()


_DEFAULT_FACTORIES = {
    Channel.EMAIL.value: _fake_email,
    Channel.SMS.value: _fake_sms,
    Channel.PUSH.value: _fake_push,
    Channel.IN_APP.value: _fake_in_app,
}

_channel_instances: dict[str, ChannelPort] = {}


def get_channel(channel_type: str) -> ChannelPort:
    """Return the configured channel adapter (singleton per channel type).

    Args:
        channel_type: One of the Channel enum values ("email", "sms", "push", "in_app")
    """
    if channel_type not in _channel_instances:
        factory = _DEFAULT_FACTORIES.get(channel_type)
        if factory is None:
            raise ValueError(f"Unknown channel type: {channel_type}")
        _channel_instances[channel_type] = factory()

    return _channel_instances[channel_type]


def register_channel(channel_type: str, adapter: ChannelPort) -> None:
    """Install `adapter` for `channel_type`, replacing the fake."""
    if channel_type not in _DEFAULT_FACTORIES:
        raise ValueError(f"Unknown channel type: {channel_type}")
    _channel_instances[channel_type] = adapter


def reset_channels():
    """Reset all channel singletons (useful for testing)."""
    _channel_instances.clear()


__all__ = ["ChannelContent", "ChannelPort", "get_channel", "register_channel", "reset_channels"]
