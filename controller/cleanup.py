"""
Removal of RBAC objects a TeamRoleBinding no longer wants.

The remote clusters' labels are the only record of what was deployed: the
binding objects are found by name and the rolebinding label, and the shared
ClusterRole is only removed once no object on the cluster carries its role
label anymore.
"""

import logging

from kubernetes import client

import api
from binding import TeamRoleBinding
from clusters import cluster_name, is_ready
from errors import ClusterConnectionError
from remote import DeletionResult, RemoteClient

logger = logging.getLogger(__name__)


def _owned(trb: TeamRoleBinding, obj) -> bool:
    labels = obj.metadata.labels or {}
    return labels.get(api.LABEL_KEY_ROLE_BINDING) == trb.name


def _role_of(obj) -> str | None:
    return (obj.metadata.labels or {}).get(api.LABEL_KEY_ROLE)


def deployed_role_bindings(remote: RemoteClient, trb: TeamRoleBinding) -> list[client.V1RoleBinding]:
    """All RoleBindings this binding deployed to the cluster, in any namespace."""
    items = remote.list(client.V1RoleBinding, field_selector=f"metadata.name={trb.rbac_name}")
    return [rb for rb in items if _owned(trb, rb)]


def deployed_objects(remote: RemoteClient, trb: TeamRoleBinding) -> list:
    """Every binding object this TeamRoleBinding owns on the cluster, whatever scope it was deployed with."""
    objects = deployed_role_bindings(remote, trb)
    crb = remote.get(client.V1ClusterRoleBinding, trb.rbac_name)
    if crb is not None and _owned(trb, crb):
        objects.append(crb)
    return objects


def bound_roles(remote: RemoteClient, trb: TeamRoleBinding) -> set[str]:
    """TeamRole names the binding's deployed objects currently point at."""
    return {role for role in map(_role_of, deployed_objects(remote, trb)) if role}


def _delete(remote: RemoteClient, trb: TeamRoleBinding, kind, name: str, namespace: str | None = None) -> None:
    what = f"{kind.__name__[2:]}={name}"
    where = f"cluster={remote.cluster_name}" + (f" ns={namespace}" if namespace else "")
    if remote.delete(kind, name, namespace) is DeletionResult.DELETED:
        logger.info(f"🗑️  [{trb.key}] deleted {what} from {where}")
    else:
        logger.info(f"👻 [{trb.key}] {what} already gone from {where}")


def _delete_objects(remote: RemoteClient, trb: TeamRoleBinding, objects) -> set[str]:
    roles = set()
    for obj in objects:
        _delete(remote, trb, type(obj), obj.metadata.name, obj.metadata.namespace)
        roles.add(_role_of(obj))
    roles.discard(None)
    return roles


def is_role_referenced(remote: RemoteClient, role_ref: str) -> bool:
    """True if any Role, RoleBinding or ClusterRoleBinding on the cluster carries the role label."""
    selector = f"{api.LABEL_KEY_ROLE}={role_ref}"
    for kind in (client.V1RoleBinding, client.V1ClusterRoleBinding, client.V1Role):
        if remote.list(kind, label_selector=selector):
            return True
    return False


def release_roles(remote: RemoteClient, trb: TeamRoleBinding, roles) -> None:
    """Delete the shared ClusterRole of each role nothing on the cluster refers to anymore."""
    for role in sorted(roles):
        if is_role_referenced(remote, role):
            logger.debug(f"[{trb.key}] ClusterRole for role={role} still referenced on cluster={remote.cluster_name}")
            continue
        _delete(remote, trb, client.V1ClusterRole, api.rbac_name(role))


def cleanup_cluster(remote: RemoteClient, trb: TeamRoleBinding) -> None:
    """Remove all of the binding's objects from the cluster, and every shared ClusterRole left unused."""
    roles = _delete_objects(remote, trb, deployed_objects(remote, trb))
    if trb.role_ref:
        roles.add(trb.role_ref)
    release_roles(remote, trb, roles)


def _wanted(trb: TeamRoleBinding, obj) -> bool:
    if trb.cluster_scoped:
        return isinstance(obj, client.V1ClusterRoleBinding)
    return isinstance(obj, client.V1RoleBinding) and obj.metadata.namespace in trb.namespaces


def cleanup_scope(remote: RemoteClient, trb: TeamRoleBinding) -> None:
    """Remove objects of a still-targeted cluster that the binding's current scope does not want.

    Cluster-scoped: every RoleBinding left over from a namespaced spec.
    Namespace-scoped: a left-over ClusterRoleBinding and RoleBindings in
    namespaces no longer listed. Roles only the removed objects pointed at
    are released; the current role is about to be applied again.
    """
    stale = [obj for obj in deployed_objects(remote, trb) if not _wanted(trb, obj)]
    roles = _delete_objects(remote, trb, stale)
    release_roles(remote, trb, roles - {trb.role_ref})


def cleanup_resources(hub, clients, recorder, trb: TeamRoleBinding, clusters: list[dict]) -> list[str]:
    """Reconcile the clusters tracked in the binding's status against the freshly resolved clusters.

    Returns the names of clusters whose cleanup failed; their status entries
    are kept, marked CleanupFailed, so the work is picked up again on the
    next reconcile.
    """
    selected = {cluster_name(c): c for c in clusters}
    failed = []
    for name in trb.cluster_names():
        if name in selected:
            try:
                cleanup_scope(clients.client_for(selected[name]), trb)
            except ClusterConnectionError as e:
                logger.error(f"💥 [{trb.key}] no client for cluster={name}: {e}")
                recorder.emit(trb.body, api.EVENT_WARNING, api.EVENT_FAILED,
                              f"Error getting client for cluster {name} to replicate {trb.name}")
                trb.set_propagation_status(name, False, api.CLUSTER_CONNECTION_FAILED, str(e))
                failed.append(name)
            except Exception as e:
                logger.error(f"💥 [{trb.key}] failed to remove out-of-scope resources from cluster={name}: {e}")
                recorder.emit(trb.body, api.EVENT_WARNING, api.EVENT_FAILED_DELETE,
                              f"Failed to remove out-of-scope resources for {trb.name} from cluster {name}")
                trb.set_propagation_status(name, False, api.CLEANUP_FAILED, str(e))
                failed.append(name)
            continue

        cluster = hub.get_cluster(trb.namespace, name)
        if cluster is None:
            logger.info(f"👻 [{trb.key}] cluster={name} no longer exists, dropping its status")
            trb.remove_propagation_status(name)
            continue
        if not is_ready(cluster):
            trb.set_propagation_status(name, False, api.CLUSTER_CONNECTION_FAILED, "Cluster is not ready")
            continue
        try:
            cleanup_cluster(clients.client_for(cluster), trb)
        except Exception as e:
            logger.error(f"💥 [{trb.key}] failed to clean up cluster={name}: {e}")
            recorder.emit(trb.body, api.EVENT_WARNING, api.EVENT_FAILED_DELETE,
                          f"Failed to remove resources for {trb.name} from cluster {name}")
            trb.set_propagation_status(name, False, api.CLEANUP_FAILED, str(e))
            failed.append(name)
            continue
        logger.info(f"🧹 [{trb.key}] cluster={name} no longer targeted, resources removed")
        trb.remove_propagation_status(name)
    return failed
