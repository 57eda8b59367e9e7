import pytest
from notifications.directory import DirectoryUser, get_directory
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def notifications_bed():
    from notifications.domain import notifications

    bed = DomainFixture(notifications)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(notifications_bed):
    with notifications_bed.domain_context():
        yield


@pytest.fixture()
def directory():
    """The in-memory user directory, empty at the start of every test."""
    return get_directory()


@pytest.fixture()
def ana(directory):
    return directory.add_user(
        DirectoryUser(id="user-ana", role="customer", email="ana@example.com", phone="+15550000001")
    )


@pytest.fixture()
def ben(directory):
    return directory.add_user(
        DirectoryUser(id="user-ben", role="customer", email="ben@example.com", phone="+15550000002")
    )
