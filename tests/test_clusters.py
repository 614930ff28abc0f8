import pytest
from kubernetes import client

import clusters
from errors import ClusterConnectionError
from fakes import make_cluster

KUBECONFIG = b"""
apiVersion: v1
kind: Config
clusters:
- name: c1
  cluster: {server: https://c1.example.com}
contexts:
- name: c1
  context: {cluster: c1, user: admin}
current-context: c1
users:
- name: admin
  user: {token: abc}
"""


class SecretHub:
    def __init__(self):
        self.version = "1"
        self.reads = 0
        self.error = None

    def read_kubeconfig(self, namespace, name):
        self.reads += 1
        if self.error:
            raise self.error
        return KUBECONFIG, self.version


@pytest.fixture
def built(monkeypatch):
    calls = []

    def new_client(config_dict):
        calls.append(config_dict)
        return client.ApiClient()

    monkeypatch.setattr(clusters.config, "new_client_from_config_dict", new_client)
    return calls


def test_is_ready():
    assert clusters.is_ready(make_cluster("c1"))
    assert not clusters.is_ready(make_cluster("c1", ready=False))
    assert not clusters.is_ready({"metadata": {"name": "c1"}})


def test_fingerprint_ignores_label_order():
    a = make_cluster("c1", labels={"a": "1", "b": "2"})
    b = make_cluster("c1", labels={"b": "2", "a": "1"})
    assert clusters.fingerprint(a) == clusters.fingerprint(b)
    assert clusters.fingerprint(a) != clusters.fingerprint(make_cluster("c1", labels={"a": "1", "b": "2"}, ready=False))


def test_client_cached_within_ttl(built):
    hub = SecretHub()
    factory = clusters.ClientFactory(hub, ttl=300)
    first = factory.client_for(make_cluster("c1"))
    assert factory.client_for(make_cluster("c1")) is first
    assert first.cluster_name == "c1"
    assert hub.reads == 1
    assert built[0]["current-context"] == "c1"


def test_expired_client_reused_when_secret_unchanged(built):
    hub = SecretHub()
    factory = clusters.ClientFactory(hub, ttl=0)
    first = factory.client_for(make_cluster("c1"))
    assert factory.client_for(make_cluster("c1")) is first
    assert hub.reads == 2
    assert len(built) == 1


def test_rotated_secret_rebuilds_client(built):
    hub = SecretHub()
    factory = clusters.ClientFactory(hub, ttl=0)
    first = factory.client_for(make_cluster("c1"))
    hub.version = "2"
    assert factory.client_for(make_cluster("c1")) is not first
    assert len(built) == 2


def test_missing_secret_raises_connection_error(built):
    hub = SecretHub()
    hub.error = KeyError("no kubeconfig key")
    factory = clusters.ClientFactory(hub)
    with pytest.raises(ClusterConnectionError) as e:
        factory.client_for(make_cluster("c1"))
    assert e.value.cluster == "c1"


def test_invalidate(built):
    hub = SecretHub()
    factory = clusters.ClientFactory(hub)
    factory.client_for(make_cluster("c1"))
    factory.invalidate(make_cluster("c1"))
    factory.client_for(make_cluster("c1"))
    assert len(built) == 2
