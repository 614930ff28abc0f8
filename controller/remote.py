"""
Client for the RBAC objects on one remote cluster.

create_or_update() reads the live object, lets the caller mutate it, and only
writes when the serialised form changed. Everything else on the live object
(annotations, owner references, ...) is left as it is.
"""

import enum
import logging
from typing import Callable, NamedTuple

from kubernetes import client
from kubernetes.client.rest import ApiException

logger = logging.getLogger(__name__)


class OperationResult(str, enum.Enum):
    NONE = "unchanged"
    CREATED = "created"
    UPDATED = "updated"


class DeletionResult(str, enum.Enum):
    DELETED = "deleted"
    NOT_FOUND = "not_found"


class _Ops(NamedTuple):
    read: Callable
    create: Callable
    replace: Callable
    delete: Callable
    list: Callable
    binding: bool


def _strip_server_fields(obj) -> None:
    meta = obj.metadata
    meta.resource_version = None
    meta.uid = None
    meta.creation_timestamp = None
    meta.managed_fields = None


class RemoteClient:
    def __init__(self, api_client: client.ApiClient, cluster_name: str = ""):
        self.api_client = api_client
        self.cluster_name = cluster_name
        self.rbac_v1 = client.RbacAuthorizationV1Api(api_client=api_client)
        self.core_v1 = client.CoreV1Api(api_client=api_client)

    def _ops(self, kind) -> _Ops:
        rbac = self.rbac_v1
        if kind is client.V1ClusterRole:
            return _Ops(
                read=lambda name, ns: rbac.read_cluster_role(name=name),
                create=lambda obj: rbac.create_cluster_role(body=obj),
                replace=lambda obj: rbac.replace_cluster_role(name=obj.metadata.name, body=obj),
                delete=lambda name, ns: rbac.delete_cluster_role(name=name),
                list=lambda **kw: rbac.list_cluster_role(**kw),
                binding=False,
            )
        if kind is client.V1ClusterRoleBinding:
            return _Ops(
                read=lambda name, ns: rbac.read_cluster_role_binding(name=name),
                create=lambda obj: rbac.create_cluster_role_binding(body=obj),
                replace=lambda obj: rbac.replace_cluster_role_binding(name=obj.metadata.name, body=obj),
                delete=lambda name, ns: rbac.delete_cluster_role_binding(name=name),
                list=lambda **kw: rbac.list_cluster_role_binding(**kw),
                binding=True,
            )
        if kind is client.V1RoleBinding:
            return _Ops(
                read=lambda name, ns: rbac.read_namespaced_role_binding(name=name, namespace=ns),
                create=lambda obj: rbac.create_namespaced_role_binding(namespace=obj.metadata.namespace, body=obj),
                replace=lambda obj: rbac.replace_namespaced_role_binding(
                    name=obj.metadata.name, namespace=obj.metadata.namespace, body=obj
                ),
                delete=lambda name, ns: rbac.delete_namespaced_role_binding(name=name, namespace=ns),
                list=lambda **kw: rbac.list_role_binding_for_all_namespaces(**kw),
                binding=True,
            )
        if kind is client.V1Role:
            return _Ops(
                read=lambda name, ns: rbac.read_namespaced_role(name=name, namespace=ns),
                create=lambda obj: rbac.create_namespaced_role(namespace=obj.metadata.namespace, body=obj),
                replace=lambda obj: rbac.replace_namespaced_role(
                    name=obj.metadata.name, namespace=obj.metadata.namespace, body=obj
                ),
                delete=lambda name, ns: rbac.delete_namespaced_role(name=name, namespace=ns),
                list=lambda **kw: rbac.list_role_for_all_namespaces(**kw),
                binding=False,
            )
        raise TypeError(f"unsupported kind {kind.__name__}")

    def get(self, kind, name: str, namespace: str | None = None):
        """Read an object, None if it does not exist."""
        try:
            return self._ops(kind).read(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def serialize(self, obj) -> dict:
        return self.api_client.sanitize_for_serialization(obj)

    def create_or_update(self, obj, mutate: Callable) -> OperationResult:
        """Create obj if it is absent, otherwise apply mutate to the live object and replace it if it changed.

        mutate receives the object to write (obj itself on create, the live
        object on update) and sets the fields this controller owns.
        """
        ops = self._ops(type(obj))
        name, namespace = obj.metadata.name, obj.metadata.namespace
        try:
            current = ops.read(name, namespace)
        except ApiException as e:
            if e.status != 404:
                raise
            mutate(obj)
            ops.create(obj)
            return OperationResult.CREATED

        before = self.serialize(current)
        mutate(current)
        after = self.serialize(current)
        if before == after:
            return OperationResult.NONE

        if ops.binding and before.get("roleRef") != after.get("roleRef"):
            # roleRef is immutable on (Cluster)RoleBindings
            logger.info(f"♻️  recreating {type(obj).__name__}={name} on cluster={self.cluster_name}: roleRef changed")
            self._delete(ops, name, namespace)
            _strip_server_fields(current)
            ops.create(current)
            return OperationResult.UPDATED

        ops.replace(current)
        return OperationResult.UPDATED

    def _delete(self, ops: _Ops, name: str, namespace: str | None) -> DeletionResult:
        try:
            ops.delete(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return DeletionResult.NOT_FOUND
            raise
        return DeletionResult.DELETED

    def delete(self, kind, name: str, namespace: str | None = None) -> DeletionResult:
        return self._delete(self._ops(kind), name, namespace)

    def list(self, kind, label_selector: str = "", field_selector: str = "") -> list:
        """List objects of kind across all namespaces."""
        kwargs = {}
        if label_selector:
            kwargs["label_selector"] = label_selector
        if field_selector:
            kwargs["field_selector"] = field_selector
        return list(self._ops(kind).list(**kwargs).items)

    def create_namespace(self, name: str) -> OperationResult:
        body = client.V1Namespace(metadata=client.V1ObjectMeta(name=name))
        try:
            self.core_v1.create_namespace(body=body)
        except ApiException as e:
            if e.status != 409:
                raise
            return OperationResult.NONE
        return OperationResult.CREATED
