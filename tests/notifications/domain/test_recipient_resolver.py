"""Tests for recipient resolution."""

from notifications.directory import DirectoryUser, InMemoryUserDirectory
from notifications.notification.notification import Notification
from notifications.recipient.resolver import RecipientResolver


def _directory():
    directory = InMemoryUserDirectory()
    for i in range(3):
        directory.add_user(id=f"cust-{i}", role="customer", email=f"c{i}@example.com", attributes={"region": "eu"})
    for i in range(2):
        directory.add_user(id=f"supp-{i}", role="supplier", phone=f"+1555000{i}", attributes={"region": "us"})
    directory.add_user(id="admin-0", role="admin", email="admin@example.com", attributes={"region": "eu"})
    return directory


def _resolver(tokens=None):
    tokens = tokens or {}
    return RecipientResolver(directory=_directory(), push_tokens=lambda user_id: tokens.get(user_id, []))


class TestResolveUsers:
    def test_explicit_users(self):
        users = _resolver().resolve_users(target_users=["supp-1", "cust-0"])
        assert [u.id for u in users] == ["cust-0", "supp-1"]

    def test_unknown_ids_are_skipped(self):
        assert [u.id for u in _resolver().resolve_users(target_users=["ghost", "cust-2"])] == ["cust-2"]

    def test_duplicates_collapse(self):
        assert len(_resolver().resolve_users(target_users=["cust-0", "cust-0"])) == 1

    def test_role(self):
        users = _resolver().resolve_users(target_role="supplier")
        assert [u.id for u in users] == ["supp-0", "supp-1"]

    def test_role_all_is_union_of_roles(self):
        resolver = _resolver()
        everyone = {u.id for u in resolver.resolve_users(target_role="all")}
        union = set()
        for role in ("customer", "supplier", "admin"):
            union |= {u.id for u in resolver.resolve_users(target_role=role)}
        assert everyone == union
        assert len(everyone) == 6

    def test_criteria(self):
        users = _resolver().resolve_users(target_criteria={"region": "eu"})
        assert [u.id for u in users] == ["admin-0", "cust-0", "cust-1", "cust-2"]

    def test_criteria_list_value_matches_any(self):
        users = _resolver().resolve_users(target_criteria={"region": ["us", "apac"]})
        assert [u.id for u in users] == ["supp-0", "supp-1"]

    def test_users_take_precedence_over_role(self):
        users = _resolver().resolve_users(target_users=["cust-1"], target_role="all")
        assert [u.id for u in users] == ["cust-1"]

    def test_role_takes_precedence_over_criteria(self):
        users = _resolver().resolve_users(target_role="admin", target_criteria={"region": "us"})
        assert [u.id for u in users] == ["admin-0"]

    def test_no_target_resolves_to_nobody(self):
        assert _resolver().resolve_users() == []

    def test_inactive_users_are_skipped(self):
        directory = InMemoryUserDirectory()
        directory.add_user(DirectoryUser(id="u1", role="customer", is_active=False))
        directory.add_user(id="u2", role="customer")
        resolver = RecipientResolver(directory=directory, push_tokens=lambda _: [])
        assert [u.id for u in resolver.resolve_users(target_role="customer")] == ["u2"]


class TestResolveRecipients:
    def test_endpoints_per_channel(self):
        resolver = _resolver(tokens={"cust-0": ["tok-1", "tok-2"]})
        notification = Notification.create(
            title="t", body="b", channels=["email"], created_by="admin", target_users=["cust-0", "supp-0"]
        )
        cust, supp = resolver.resolve(notification)

        assert cust.endpoint_for("email") == "c0@example.com"
        assert cust.endpoint_for("push") == ["tok-1", "tok-2"]
        assert cust.endpoint_for("sms") is None
        assert cust.endpoint_for("in_app") == "cust-0"

        assert supp.endpoint_for("email") is None
        assert supp.endpoint_for("sms") == "+15550000"
        assert supp.endpoint_for("push") is None
