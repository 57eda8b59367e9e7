"""In-memory user directory — default directory for tests and local runs."""

from notifications.directory.port import DirectoryUser, UserDirectoryPort


def _matches(user: DirectoryUser, criteria: dict) -> bool:
    for key, expected in criteria.items():
        if key == "role":
            actual = user.role
        else:
            actual = user.attributes.get(key)
        if isinstance(expected, list | tuple | set):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


class InMemoryUserDirectory(UserDirectoryPort):
    def __init__(self, users=None):
        self._users: dict[str, DirectoryUser] = {}
        for user in users or []:
            self.add_user(user)

    def add_user(self, user: DirectoryUser | None = None, **fields) -> DirectoryUser:
        """Add (or replace) a user. Accepts a DirectoryUser or its fields."""
        if user is None:
            user = DirectoryUser(**fields)
        self._users[str(user.id)] = user
        return user

    def remove_user(self, user_id: str) -> None:
        self._users.pop(str(user_id), None)

    def get_users(self, user_ids: list[str]) -> list[DirectoryUser]:
        return [self._users[str(uid)] for uid in user_ids if str(uid) in self._users]

    def find_by_role(self, role: str) -> list[DirectoryUser]:
        return [u for u in self._users.values() if u.role == role]

    def find_by_criteria(self, criteria: dict) -> list[DirectoryUser]:
        return [u for u in self._users.values() if _matches(u, criteria)]

    def reset(self):
        self._users.clear()
