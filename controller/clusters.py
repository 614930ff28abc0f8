"""
Cluster helpers: readiness, change fingerprints and remote client construction.

Remote clusters authenticate through the kubeconfig stored in a Secret named
after the Cluster, in the Cluster's namespace.
"""

import logging
import time

import yaml
from kubernetes import config

import settings
from errors import ClusterConnectionError
from remote import RemoteClient

logger = logging.getLogger(__name__)


def cluster_name(cluster: dict) -> str:
    return cluster["metadata"]["name"]


def is_ready(cluster: dict) -> bool:
    conditions = (cluster.get("status") or {}).get("conditions") or []
    return any(c.get("type") == "Ready" and c.get("status") == "True" for c in conditions)


def fingerprint(cluster: dict) -> tuple:
    """What a TeamRoleBinding's target resolution depends on: labels and readiness."""
    labels = cluster.get("metadata", {}).get("labels") or {}
    return tuple(sorted(labels.items())), is_ready(cluster)


class ClientFactory:
    """Builds RemoteClients from kubeconfig Secrets, caching them per cluster."""

    def __init__(self, hub, ttl: float = settings.CLIENT_CACHE_TTL_SECONDS):
        self.hub = hub
        self.ttl = ttl
        self._cache: dict = {}

    def client_for(self, cluster: dict) -> RemoteClient:
        namespace = cluster["metadata"].get("namespace", "")
        name = cluster_name(cluster)
        key = (namespace, name)
        now = time.monotonic()
        cached = self._cache.get(key)
        if cached and now < cached["expires"]:
            return cached["client"]

        try:
            kubeconfig, version = self.hub.read_kubeconfig(namespace, name)
            if cached and cached["version"] == version:
                cached["expires"] = now + self.ttl
                return cached["client"]
            api_client = config.new_client_from_config_dict(yaml.safe_load(kubeconfig))
        except Exception as e:
            self._cache.pop(key, None)
            raise ClusterConnectionError(name, f"could not build client: {e}") from e

        remote = RemoteClient(api_client, name)
        self._cache[key] = {"client": remote, "version": version, "expires": now + self.ttl}
        logger.info(f"🌐 built client for cluster={name} ns={namespace}")
        return remote

    def invalidate(self, cluster: dict) -> None:
        self._cache.pop((cluster["metadata"].get("namespace", ""), cluster_name(cluster)), None)
