"""
Apply a TeamRoleBinding's desired RBAC objects to a single remote cluster.

Failures are recorded in the binding's propagation entry for that cluster and
reported to the caller as False; they never stop the caller from moving on
to the next cluster.
"""

import logging

from kubernetes import client
from kubernetes.client.rest import ApiException

import api
import cleanup
import rbac
from binding import TeamRoleBinding
from clusters import cluster_name
from errors import NamespacePendingError
from remote import OperationResult, RemoteClient

logger = logging.getLogger(__name__)

_RESULT_ICON = {
    OperationResult.NONE: "⏭️ ",
    OperationResult.CREATED: "🆕",
    OperationResult.UPDATED: "✏️ ",
}


def _log_result(result: OperationResult, kind: str, name: str, cluster: str, namespace: str = "") -> None:
    where = f"cluster={cluster}" + (f" ns={namespace}" if namespace else "")
    verb = "noop" if result is OperationResult.NONE else result.value
    logger.info(f"{_RESULT_ICON[result]} {verb} {kind}={name} {where}")


def reconcile_cluster_role(remote: RemoteClient, desired: client.V1ClusterRole) -> OperationResult:
    def mutate(obj):
        obj.metadata.labels = desired.metadata.labels
        obj.aggregation_rule = desired.aggregation_rule
        if desired.aggregation_rule is None:
            obj.rules = desired.rules
        # aggregated rules are filled in by the remote cluster itself

    result = remote.create_or_update(desired, mutate)
    _log_result(result, "ClusterRole", desired.metadata.name, remote.cluster_name)
    return result


def _mutate_binding(desired):
    def mutate(obj):
        obj.metadata.labels = desired.metadata.labels
        obj.role_ref = desired.role_ref
        obj.subjects = desired.subjects
    return mutate


def reconcile_cluster_role_binding(remote: RemoteClient, desired: client.V1ClusterRoleBinding) -> OperationResult:
    result = remote.create_or_update(desired, _mutate_binding(desired))
    _log_result(result, "ClusterRoleBinding", desired.metadata.name, remote.cluster_name)
    return result


def reconcile_role_binding(remote: RemoteClient, desired: client.V1RoleBinding, create_namespaces: bool) -> OperationResult:
    """Create or update a RoleBinding.

    If the namespace does not exist and create_namespaces is set, the
    namespace is created and NamespacePendingError raised, so the binding is
    retried on the next reconcile instead of being reported as done.
    """
    namespace = desired.metadata.namespace
    try:
        result = remote.create_or_update(desired, _mutate_binding(desired))
    except ApiException as e:
        if e.status != 404 or not create_namespaces:
            raise
        remote.create_namespace(namespace)
        logger.info(f"📁 created missing namespace={namespace} on cluster={remote.cluster_name}")
        raise NamespacePendingError(namespace) from e
    _log_result(result, "RoleBinding", desired.metadata.name, remote.cluster_name, namespace)
    return result


def propagate(clients, recorder, trb: TeamRoleBinding, cluster: dict, role: client.V1ClusterRole, team: dict) -> bool:
    """Bring one cluster to the desired state and record the outcome in its propagation entry."""
    name = cluster_name(cluster)
    try:
        remote = clients.client_for(cluster)
    except Exception as e:
        logger.error(f"💥 [{trb.key}] no client for cluster={name}: {e}")
        recorder.emit(trb.body, api.EVENT_WARNING, api.EVENT_FAILED,
                      f"Error getting client for cluster {name} to replicate {trb.name}")
        trb.set_propagation_status(name, False, api.CLUSTER_CONNECTION_FAILED, str(e))
        return False

    try:
        previous_roles = cleanup.bound_roles(remote, trb) - {trb.role_ref}
    except Exception as e:
        logger.error(f"💥 [{trb.key}] listing deployed bindings failed on cluster={name}: {e}")
        recorder.emit(trb.body, api.EVENT_WARNING, api.EVENT_FAILED,
                      f"Error reading deployed bindings of {trb.name} from cluster {name}")
        trb.set_propagation_status(name, False, api.CLUSTER_CONNECTION_FAILED, str(e))
        return False

    try:
        reconcile_cluster_role(remote, role)
    except Exception as e:
        logger.error(f"💥 [{trb.key}] ClusterRole={role.metadata.name} failed on cluster={name}: {e}")
        recorder.emit(trb.body, api.EVENT_WARNING, api.EVENT_FAILED,
                      f"Failed to reconcile ClusterRole {role.metadata.name} in cluster {name}")
        trb.set_propagation_status(name, False, api.CLUSTER_ROLE_FAILED, str(e))
        return False

    if trb.cluster_scoped:
        crb = rbac.cluster_role_binding(trb, role, team)
        try:
            reconcile_cluster_role_binding(remote, crb)
        except Exception as e:
            logger.error(f"💥 [{trb.key}] ClusterRoleBinding={crb.metadata.name} failed on cluster={name}: {e}")
            recorder.emit(trb.body, api.EVENT_WARNING, api.EVENT_FAILED,
                          f"Failed to reconcile ClusterRoleBinding {crb.metadata.name} in cluster {name}")
            trb.set_propagation_status(name, False, api.ROLE_BINDING_FAILED, str(e))
            return False
        return _release_previous_roles(remote, recorder, trb, name, previous_roles)

    errors = []
    pending = []
    for rb in rbac.role_bindings(trb, role, team):
        namespace = rb.metadata.namespace
        try:
            reconcile_role_binding(remote, rb, trb.create_namespaces)
        except NamespacePendingError as e:
            pending.append(namespace)
            errors.append(str(e))
        except Exception as e:
            logger.error(f"💥 [{trb.key}] RoleBinding={rb.metadata.name} failed on cluster={name} ns={namespace}: {e}")
            errors.append(str(e))
        else:
            continue
        recorder.emit(trb.body, api.EVENT_WARNING, api.EVENT_FAILED,
                      f"Failed to reconcile RoleBinding {rb.metadata.name} in cluster/namespace {name}/{namespace}")

    if errors:
        reason = api.NAMESPACE_PENDING if len(pending) == len(errors) else api.ROLE_BINDING_FAILED
        trb.set_propagation_status(name, False, reason, "Failed to reconcile RoleBindings: " + ", ".join(errors))
        return False
    return _release_previous_roles(remote, recorder, trb, name, previous_roles)


def _release_previous_roles(remote: RemoteClient, recorder, trb: TeamRoleBinding, name: str, roles: set[str]) -> bool:
    """Drop the ClusterRoles of roles the binding pointed at before this apply, once nothing uses them."""
    try:
        cleanup.release_roles(remote, trb, roles)
    except Exception as e:
        logger.error(f"💥 [{trb.key}] releasing previous roles {sorted(roles)} failed on cluster={name}: {e}")
        recorder.emit(trb.body, api.EVENT_WARNING, api.EVENT_FAILED_DELETE,
                      f"Failed to remove unused ClusterRoles of {trb.name} from cluster {name}")
        trb.set_propagation_status(name, False, api.CLEANUP_FAILED, str(e))
        return False
    trb.set_propagation_status(name, True, api.RBAC_RECONCILED)
    return True
