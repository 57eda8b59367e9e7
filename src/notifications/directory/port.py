"""User directory port — read-only view of the accounts that can be notified.

User storage and authentication live outside this context. The resolver only
needs to look users up by id, by role, or by attribute criteria.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class DirectoryUser:
    id: str
    role: str
    email: str | None = None
    phone: str | None = None
    attributes: dict = field(default_factory=dict)
    is_active: bool = True


class UserDirectoryPort(ABC):
    @abstractmethod
    def get_users(self, user_ids: list[str]) -> list[DirectoryUser]:
        """Return the known users among `user_ids`; unknown ids are skipped."""
        ...

    @abstractmethod
    def find_by_role(self, role: str) -> list[DirectoryUser]: ...

    @abstractmethod
    def find_by_criteria(self, criteria: dict) -> list[DirectoryUser]:
        """Users whose attributes match every key in `criteria`.

        A list value matches when the attribute equals any of its items.
        """
        ...
