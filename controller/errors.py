"""Exceptions raised while propagating a TeamRoleBinding."""


class PropagationError(Exception):
    pass


class SelectorError(PropagationError, ValueError):
    """The label query of a targetSelector cannot be turned into a selector."""


class DependencyMissingError(PropagationError):
    """Something the whole binding depends on is missing. Retried on a timer."""

    reason = ""


class TeamRoleNotFoundError(DependencyMissingError):
    reason = "TeamRoleNotFound"


class TeamNotFoundError(DependencyMissingError):
    reason = "TeamNotFound"


class TeamGroupMissingError(DependencyMissingError):
    reason = "TeamGroupMissing"


class ClusterConnectionError(PropagationError):
    def __init__(self, cluster: str, message: str):
        super().__init__(f"cluster {cluster}: {message}")
        self.cluster = cluster


class NamespacePendingError(PropagationError):
    """A missing namespace was created; the RoleBinding goes in on the next pass."""

    def __init__(self, namespace: str):
        super().__init__(f"failed to create RoleBinding, created missing namespace {namespace}")
        self.namespace = namespace


class ReconcileError(PropagationError):
    """One or more target clusters failed; the others made progress."""

    def __init__(self, message: str, clusters=None):
        super().__init__(message)
        self.clusters = list(clusters or [])
