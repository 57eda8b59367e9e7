"""User directory registry.

The in-memory directory is used until an application installs a real one
(e.g. a client for the accounts service) with `set_directory()`.
"""

from notifications.directory.in_memory import InMemoryUserDirectory
from notifications.directory.port import DirectoryUser, UserDirectoryPort

_directory: UserDirectoryPort | None = None


def get_directory() -> UserDirectoryPort:
    global _directory
    if _directory is None:
        _directory = InMemoryUserDirectory()
    return _directory


def set_directory(directory: UserDirectoryPort) -> None:
    global _directory
    _directory = directory


def reset_directory():
    """Drop the configured directory (useful for testing)."""
    global _directory
    _directory = None


__all__ = [
    "DirectoryUser",
    "InMemoryUserDirectory",
    "UserDirectoryPort",
    "get_directory",
    "reset_directory",
    "set_directory",
]
