"""Thin wrapper around a TeamRoleBinding body as returned by the API server."""

import copy

import api
import status as st


class TeamRoleBinding:
    def __init__(self, body: dict):
        self.body = body
        self.meta = body.get("metadata", {})
        self.spec = body.get("spec") or {}
        self._observed_status = copy.deepcopy(body.get("status") or {})
        current = copy.deepcopy(body.get("status") or {})
        self.conditions: list[dict] = current.get("conditions") or []
        self.propagation: list[dict] = current.get("propagation") or []

    @property
    def name(self) -> str:
        return self.meta.get("name", "")

    @property
    def namespace(self) -> str:
        return self.meta.get("namespace", "")

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def deleting(self) -> bool:
        return bool(self.meta.get("deletionTimestamp"))

    @property
    def role_ref(self) -> str:
        return self.spec.get("roleRef", "")

    @property
    def team_ref(self) -> str:
        return self.spec.get("teamRef", "")

    @property
    def target_selector(self) -> dict:
        return self.spec.get("targetSelector") or {}

    @property
    def namespaces(self) -> list[str]:
        return list(self.spec.get("namespaces") or [])

    @property
    def create_namespaces(self) -> bool:
        return bool(self.spec.get("createNamespaces", False))

    @property
    def usernames(self) -> list[str]:
        return list(self.spec.get("usernames") or [])

    @property
    def cluster_scoped(self) -> bool:
        """No namespaces: one ClusterRoleBinding per cluster instead of RoleBindings."""
        return not self.namespaces

    @property
    def rbac_name(self) -> str:
        return api.rbac_name(self.name)

    # status

    def cluster_names(self) -> list[str]:
        return [e["clusterName"] for e in self.propagation]

    def get_propagation_status(self, cluster: str) -> dict | None:
        return next((e for e in self.propagation if e.get("clusterName") == cluster), None)

    def set_propagation_status(self, cluster: str, ready, reason: str, message: str = "") -> None:
        st.set_propagation_status(self.propagation, cluster, ready, reason, message)

    def remove_propagation_status(self, cluster: str) -> None:
        st.remove_propagation_status(self.propagation, cluster)

    def get_condition(self, type_: str) -> dict | None:
        return st.get_condition(self.conditions, type_)

    def set_condition(self, type_: str, ready, reason: str = "", message: str = "") -> None:
        st.set_condition(self.conditions, st.new_condition(type_, ready, reason, message))

    def init_conditions(self, *types: str) -> None:
        for type_ in types:
            if self.get_condition(type_) is None:
                self.set_condition(type_, st.UNKNOWN)

    def update_ready_condition(self) -> None:
        st.set_condition(self.conditions, st.compute_ready_condition(self.propagation))

    def status(self) -> dict:
        return {"conditions": self.conditions, "propagation": self.propagation}

    def status_changed(self) -> bool:
        observed = {
            "conditions": self._observed_status.get("conditions") or [],
            "propagation": self._observed_status.get("propagation") or [],
        }
        return observed != self.status()

