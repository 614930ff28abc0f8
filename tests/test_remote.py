from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from remote import DeletionResult, OperationResult, RemoteClient


def _crb(role="fleet-rbac:viewer", subjects=("g",)):
    return client.V1ClusterRoleBinding(
        api_version="rbac.authorization.k8s.io/v1",
        kind="ClusterRoleBinding",
        metadata=client.V1ObjectMeta(name="fleet-rbac:devs", labels={"a": "b"}),
        role_ref=client.V1RoleRef(api_group="rbac.authorization.k8s.io", kind="ClusterRole", name=role),
        subjects=[client.RbacV1Subject(api_group="rbac.authorization.k8s.io", kind="Group", name=s) for s in subjects],
    )


def _copy_fields(desired):
    def mutate(obj):
        obj.metadata.labels = desired.metadata.labels
        obj.role_ref = desired.role_ref
        obj.subjects = desired.subjects
    return mutate


@pytest.fixture
def remote():
    r = RemoteClient(client.ApiClient(), "c1")
    r.rbac_v1 = MagicMock()
    r.core_v1 = MagicMock()
    return r


def test_create_when_absent(remote):
    remote.rbac_v1.read_cluster_role_binding.side_effect = ApiException(status=404)
    desired = _crb()
    assert remote.create_or_update(desired, _copy_fields(desired)) is OperationResult.CREATED
    remote.rbac_v1.create_cluster_role_binding.assert_called_once_with(body=desired)


def test_unchanged_does_not_write(remote):
    remote.rbac_v1.read_cluster_role_binding.return_value = _crb()
    desired = _crb()
    assert remote.create_or_update(desired, _copy_fields(desired)) is OperationResult.NONE
    remote.rbac_v1.replace_cluster_role_binding.assert_not_called()
    remote.rbac_v1.create_cluster_role_binding.assert_not_called()


def test_changed_subjects_replace(remote):
    live = _crb(subjects=("old",))
    live.metadata.resource_version = "7"
    remote.rbac_v1.read_cluster_role_binding.return_value = live
    desired = _crb(subjects=("new",))
    assert remote.create_or_update(desired, _copy_fields(desired)) is OperationResult.UPDATED
    _, kwargs = remote.rbac_v1.replace_cluster_role_binding.call_args
    assert kwargs["name"] == "fleet-rbac:devs"
    assert kwargs["body"].subjects[0].name == "new"
    # replace keeps the live resourceVersion for optimistic concurrency
    assert kwargs["body"].metadata.resource_version == "7"


def test_changed_role_ref_recreates(remote):
    live = _crb(role="fleet-rbac:old")
    live.metadata.resource_version = "7"
    remote.rbac_v1.read_cluster_role_binding.return_value = live
    desired = _crb(role="fleet-rbac:new")
    assert remote.create_or_update(desired, _copy_fields(desired)) is OperationResult.UPDATED
    remote.rbac_v1.delete_cluster_role_binding.assert_called_once_with(name="fleet-rbac:devs")
    _, kwargs = remote.rbac_v1.create_cluster_role_binding.call_args
    assert kwargs["body"].role_ref.name == "fleet-rbac:new"
    assert kwargs["body"].metadata.resource_version is None
    remote.rbac_v1.replace_cluster_role_binding.assert_not_called()


def test_read_error_propagates(remote):
    remote.rbac_v1.read_cluster_role_binding.side_effect = ApiException(status=403)
    desired = _crb()
    with pytest.raises(ApiException):
        remote.create_or_update(desired, _copy_fields(desired))


def test_namespaced_role_binding_uses_namespace(remote):
    remote.rbac_v1.read_namespaced_role_binding.side_effect = ApiException(status=404)
    rb = client.V1RoleBinding(
        metadata=client.V1ObjectMeta(name="fleet-rbac:devs", namespace="ns1"),
        role_ref=client.V1RoleRef(api_group="rbac.authorization.k8s.io", kind="ClusterRole", name="fleet-rbac:viewer"),
    )
    remote.create_or_update(rb, lambda obj: None)
    remote.rbac_v1.read_namespaced_role_binding.assert_called_once_with(name="fleet-rbac:devs", namespace="ns1")
    remote.rbac_v1.create_namespaced_role_binding.assert_called_once_with(namespace="ns1", body=rb)


def test_delete(remote):
    args = (client.V1RoleBinding, "fleet-rbac:devs", "ns1")
    assert remote.delete(*args) is DeletionResult.DELETED
    remote.rbac_v1.delete_namespaced_role_binding.assert_called_once_with(name="fleet-rbac:devs", namespace="ns1")
    remote.rbac_v1.delete_namespaced_role_binding.side_effect = ApiException(status=404)
    assert remote.delete(*args) is DeletionResult.NOT_FOUND
    remote.rbac_v1.delete_namespaced_role_binding.side_effect = ApiException(status=500)
    with pytest.raises(ApiException):
        remote.delete(*args)


def test_get_returns_none_when_absent(remote):
    remote.rbac_v1.read_cluster_role.side_effect = ApiException(status=404)
    assert remote.get(client.V1ClusterRole, "fleet-rbac:viewer") is None


def test_list_passes_selectors(remote):
    remote.rbac_v1.list_role_binding_for_all_namespaces.return_value = client.V1RoleBindingList(items=[])
    assert remote.list(client.V1RoleBinding, label_selector="a=b") == []
    remote.rbac_v1.list_role_binding_for_all_namespaces.assert_called_once_with(label_selector="a=b")


def test_create_namespace_conflict_is_noop(remote):
    assert remote.create_namespace("ns1") is OperationResult.CREATED
    remote.core_v1.create_namespace.side_effect = ApiException(status=409)
    assert remote.create_namespace("ns1") is OperationResult.NONE


def test_unsupported_kind(remote):
    with pytest.raises(TypeError):
        remote.get(client.V1Namespace, "x")
