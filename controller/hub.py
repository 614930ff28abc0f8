"""
Access to the central (hub) cluster that stores TeamRoleBindings, TeamRoles,
Teams, Clusters and the clusters' kubeconfig Secrets.
"""

import base64
import logging
from datetime import datetime, timezone

from kubernetes import client, config
from kubernetes.client.rest import ApiException

import api

logger = logging.getLogger(__name__)


def load_config() -> None:
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


def _ignore_not_found(fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except ApiException as e:
        if e.status == 404:
            return None
        raise


class Hub:
    def __init__(self, api_client: client.ApiClient | None = None):
        self.custom = client.CustomObjectsApi(api_client=api_client)
        self.core_v1 = client.CoreV1Api(api_client=api_client)

    def _get(self, version: str, plural: str, namespace: str, name: str) -> dict | None:
        return _ignore_not_found(
            self.custom.get_namespaced_custom_object,
            group=api.GROUP, version=version, namespace=namespace, plural=plural, name=name,
        )

    def _list(self, version: str, plural: str, namespace: str, label_selector: str = "") -> list[dict]:
        kwargs = {"label_selector": label_selector} if label_selector else {}
        result = self.custom.list_namespaced_custom_object(
            group=api.GROUP, version=version, namespace=namespace, plural=plural, **kwargs
        )
        return result.get("items", [])

    # TeamRoleBindings

    def get_binding(self, namespace: str, name: str) -> dict | None:
        return self._get(api.BINDING_VERSION, api.BINDING_PLURAL, namespace, name)

    def list_bindings(self, namespace: str) -> list[dict]:
        return self._list(api.BINDING_VERSION, api.BINDING_PLURAL, namespace)

    def patch_binding_status(self, namespace: str, name: str, status: dict) -> None:
        self.custom.patch_namespaced_custom_object_status(
            group=api.GROUP, version=api.BINDING_VERSION, namespace=namespace,
            plural=api.BINDING_PLURAL, name=name, body={"status": status},
        )

    def request_reconcile(self, namespace: str, name: str) -> None:
        """Touch the binding so the operator sees an update and reconciles it again."""
        stamp = datetime.now(timezone.utc).isoformat()
        body = {"metadata": {"annotations": {api.ANNOTATION_RECONCILE_REQUESTED: stamp}}}
        _ignore_not_found(
            self.custom.patch_namespaced_custom_object,
            group=api.GROUP, version=api.BINDING_VERSION, namespace=namespace,
            plural=api.BINDING_PLURAL, name=name, body=body,
        )

    # dependencies

    def get_team_role(self, namespace: str, name: str) -> dict | None:
        return self._get(api.CORE_VERSION, api.TEAM_ROLE_PLURAL, namespace, name)

    def get_team(self, namespace: str, name: str) -> dict | None:
        return self._get(api.CORE_VERSION, api.TEAM_PLURAL, namespace, name)

    def get_cluster(self, namespace: str, name: str) -> dict | None:
        return self._get(api.CORE_VERSION, api.CLUSTER_PLURAL, namespace, name)

    def list_clusters(self, namespace: str, label_selector: str) -> list[dict]:
        return self._list(api.CORE_VERSION, api.CLUSTER_PLURAL, namespace, label_selector)

    def read_kubeconfig(self, namespace: str, secret_name: str) -> tuple[bytes, str]:
        """Return the decoded kubeconfig and the Secret's resourceVersion."""
        secret = self.core_v1.read_namespaced_secret(name=secret_name, namespace=namespace)
        data = secret.data or {}
        if api.KUBECONFIG_KEY not in data:
            raise KeyError(f"secret {namespace}/{secret_name} has no {api.KUBECONFIG_KEY} key")
        return base64.b64decode(data[api.KUBECONFIG_KEY]), secret.metadata.resource_version or ""
