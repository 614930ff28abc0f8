import kopf
import pytest

import main
import settings
from errors import ReconcileError, SelectorError, TeamNotFoundError
from fakes import FakeHub, make_binding, make_cluster
from reconciler import Result


class StubReconciler:
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = []

    def reconcile(self, namespace, name):
        self.calls.append((namespace, name))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


@pytest.fixture
def stub(monkeypatch):
    def _install(outcome):
        reconciler = StubReconciler(outcome)
        monkeypatch.setattr(main, "_reconciler", reconciler)
        return reconciler
    return _install


def test_success(stub):
    reconciler = stub(Result())
    main.reconcile_binding(namespace="org", name="devs")
    assert reconciler.calls == [("org", "devs")]


def test_selector_error_is_permanent(stub):
    stub(SelectorError("bad operator"))
    with pytest.raises(kopf.PermanentError):
        main.reconcile_binding(namespace="org", name="devs")


def test_missing_dependency_retried_later(stub):
    stub(TeamNotFoundError("no team"))
    with pytest.raises(kopf.TemporaryError) as e:
        main.reconcile_binding(namespace="org", name="devs")
    assert e.value.delay == settings.DEPENDENCY_RETRY_SECONDS


def test_partial_failure_retried(stub):
    stub(ReconcileError("c2 failed", ["c2"]))
    with pytest.raises(kopf.TemporaryError) as e:
        main.reconcile_binding(namespace="org", name="devs")
    assert e.value.delay == settings.RETRY_DELAY_SECONDS


def test_pending_deletion_keeps_finalizer(stub):
    stub(Result(requeue_after=5))
    with pytest.raises(kopf.TemporaryError) as e:
        main.delete_binding(namespace="org", name="devs")
    assert e.value.delay == 5


def test_deletion_done(stub):
    reconciler = stub(Result())
    main.delete_binding(namespace="org", name="devs")
    assert reconciler.calls == [("org", "devs")]


@pytest.fixture
def hub(monkeypatch):
    h = FakeHub()
    h.add_binding(make_binding("devs", role="viewer", team="team-a"))
    h.add_binding(make_binding("ops", role="admin", team="team-b"))
    monkeypatch.setattr(main, "_hub", h)
    monkeypatch.setattr(main, "_cluster_fingerprints", {})
    return h


def test_team_role_change_requeues_dependents(hub):
    main.on_team_role_change(namespace="org", name="admin")
    assert hub.reconcile_requests == [("org", "ops")]


def test_team_change_requeues_dependents(hub):
    main.on_team_change(namespace="org", name="team-a")
    assert hub.reconcile_requests == [("org", "devs")]


def test_cluster_events(hub):
    cluster = make_cluster("c1", labels={"env": "prod"})

    # initial listing
    main.on_cluster_event(event={"type": None}, body=cluster, namespace="org", name="c1")
    assert hub.reconcile_requests == []

    # status heartbeat, nothing relevant changed
    main.on_cluster_event(event={"type": "MODIFIED"}, body=cluster, namespace="org", name="c1")
    assert hub.reconcile_requests == []

    relabelled = make_cluster("c1", labels={"env": "dev"})
    main.on_cluster_event(event={"type": "MODIFIED"}, body=relabelled, namespace="org", name="c1")
    assert sorted(hub.reconcile_requests) == [("org", "devs"), ("org", "ops")]

    hub.reconcile_requests.clear()
    not_ready = make_cluster("c1", labels={"env": "dev"}, ready=False)
    main.on_cluster_event(event={"type": "MODIFIED"}, body=not_ready, namespace="org", name="c1")
    assert len(hub.reconcile_requests) == 2

    hub.reconcile_requests.clear()
    main.on_cluster_event(event={"type": "DELETED"}, body=not_ready, namespace="org", name="c1")
    assert len(hub.reconcile_requests) == 2
    assert ("org", "c1") not in main._cluster_fingerprints


def test_new_cluster_triggers_reconcile(hub):
    main.on_cluster_event(event={"type": "ADDED"}, body=make_cluster("c9"), namespace="org", name="c9")
    assert len(hub.reconcile_requests) == 2
