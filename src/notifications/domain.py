"""Notifications bounded context — multi-channel notification delivery engine.

Accepts notification requests, resolves recipients and their endpoints,
renders channel-specific content from stored templates, and dispatches
independently over push, email, SMS and in-app channels. Tracks per-channel
delivery state with retries and fallbacks, runs scheduled delivery, and
records post-delivery engagement.
"""

from protean.domain import Domain

from notifications.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

notifications = Domain(name="notifications")
