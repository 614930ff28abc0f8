import base64
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

import api
from hub import Hub


@pytest.fixture
def hub():
    h = Hub(client.ApiClient())
    h.custom = MagicMock()
    h.core_v1 = MagicMock()
    return h


def test_get_returns_none_when_absent(hub):
    hub.custom.get_namespaced_custom_object.side_effect = ApiException(status=404)
    assert hub.get_team("org", "team-a") is None


def test_get_propagates_other_errors(hub):
    hub.custom.get_namespaced_custom_object.side_effect = ApiException(status=500)
    with pytest.raises(ApiException):
        hub.get_cluster("org", "c1")


def test_list_clusters_with_selector(hub):
    hub.custom.list_namespaced_custom_object.return_value = {"items": [{"metadata": {"name": "c1"}}]}
    assert hub.list_clusters("org", "env=prod") == [{"metadata": {"name": "c1"}}]
    hub.custom.list_namespaced_custom_object.assert_called_once_with(
        group=api.GROUP, version=api.CORE_VERSION, namespace="org", plural=api.CLUSTER_PLURAL,
        label_selector="env=prod",
    )


def test_patch_binding_status(hub):
    hub.patch_binding_status("org", "devs", {"conditions": []})
    _, kwargs = hub.custom.patch_namespaced_custom_object_status.call_args
    assert kwargs["body"] == {"status": {"conditions": []}}
    assert kwargs["version"] == api.BINDING_VERSION


def test_request_reconcile_stamps_annotation(hub):
    hub.request_reconcile("org", "devs")
    _, kwargs = hub.custom.patch_namespaced_custom_object.call_args
    assert api.ANNOTATION_RECONCILE_REQUESTED in kwargs["body"]["metadata"]["annotations"]


def test_request_reconcile_ignores_deleted_binding(hub):
    hub.custom.patch_namespaced_custom_object.side_effect = ApiException(status=404)
    hub.request_reconcile("org", "devs")


def test_read_kubeconfig(hub):
    hub.core_v1.read_namespaced_secret.return_value = client.V1Secret(
        metadata=client.V1ObjectMeta(name="c1", resource_version="42"),
        data={"kubeconfig": base64.b64encode(b"apiVersion: v1").decode()},
    )
    assert hub.read_kubeconfig("org", "c1") == (b"apiVersion: v1", "42")


def test_read_kubeconfig_missing_key(hub):
    hub.core_v1.read_namespaced_secret.return_value = client.V1Secret(metadata=client.V1ObjectMeta(name="c1"), data={})
    with pytest.raises(KeyError):
        hub.read_kubeconfig("org", "c1")
