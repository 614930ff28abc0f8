import pytest

from fakes import FakeClients, FakeHub, FakeRecorder, make_cluster, make_team, make_team_role


@pytest.fixture
def hub():
    h = FakeHub()
    h.add_team_role(make_team_role("viewer"))
    h.add_team(make_team("team-a"))
    return h


@pytest.fixture
def clients():
    return FakeClients()


@pytest.fixture
def recorder():
    return FakeRecorder()


@pytest.fixture
def add_clusters(hub):
    def _add(*names, labels=None, ready=True):
        for name in names:
            hub.add_cluster(make_cluster(name, labels=labels or {"env": "prod"}, ready=ready))
    return _add
