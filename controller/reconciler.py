"""
Reconciliation of a single TeamRoleBinding across its target clusters.

    resolve targets -> clean up stale targets -> apply per target -> aggregate

Deletion removes the binding's objects from every cluster that is either
still targeted or still tracked in the status. The status entries are the
only record of the remaining work, so an interrupted teardown resumes from
whatever the status says on the next call.
"""

import logging
from dataclasses import dataclass

import api
import cleanup
import db
import propagation
import rbac
import settings
import targets
from binding import TeamRoleBinding
from clusters import cluster_name
from errors import (
    ReconcileError,
    SelectorError,
    TeamGroupMissingError,
    TeamNotFoundError,
    TeamRoleNotFoundError,
)

logger = logging.getLogger(__name__)

EXPOSED_CONDITIONS = (api.READY_CONDITION, api.AUTHORIZATION_READY)


@dataclass
class Result:
    requeue_after: float | None = None


class TeamRoleBindingReconciler:
    def __init__(self, hub, clients, recorder):
        self.hub = hub
        self.clients = clients
        self.recorder = recorder

    def reconcile(self, namespace: str, name: str) -> Result:
        """Reconcile the TeamRoleBinding namespace/name.

        Returns a Result with requeue_after set while a deletion is pending.
        Raises SelectorError, DependencyMissingError or ReconcileError when the
        binding could not be brought to its desired state; the status is
        written back in every case.
        """
        body = self.hub.get_binding(namespace, name)
        if body is None:
            logger.info(f"👻 [{namespace}/{name}] TeamRoleBinding is gone, nothing to do")
            return Result()
        trb = TeamRoleBinding(body)

        if trb.deleting:
            try:
                result = self.ensure_deleted(trb)
            finally:
                self._write_status(trb)
            return result

        try:
            self.ensure_created(trb)
        finally:
            trb.update_ready_condition()
            self._write_status(trb)
        return Result()

    def ensure_created(self, trb: TeamRoleBinding) -> None:
        logger.info(f"🔄 [{trb.key}] ensure created (role={trb.role_ref} team={trb.team_ref})")
        trb.init_conditions(*EXPOSED_CONDITIONS)

        team_role = self._get_team_role(trb)
        team = self._get_team(trb)

        try:
            clusters = targets.list_clusters(self.hub, trb)
        except SelectorError as e:
            message = f"Invalid cluster selector: {e}"
            trb.set_condition(api.AUTHORIZATION_READY, False, api.INVALID_CLUSTER_SELECTOR, message)
            self.recorder.emit(trb.body, api.EVENT_WARNING, api.EVENT_FAILED, message)
            raise

        failed = cleanup.cleanup_resources(self.hub, self.clients, self.recorder, trb, clusters)

        if not clusters:
            trb.set_condition(api.AUTHORIZATION_READY, False, api.EMPTY_CLUSTER_LIST, "")
            self.recorder.emit(trb.body, api.EVENT_WARNING, api.EVENT_FAILED, f"No clusters found for {trb.name}")
            if failed:
                raise ReconcileError(f"Error cleaning up TeamRoleBinding on clusters: {', '.join(failed)}", failed)
            logger.info(f"🈳 [{trb.key}] no target clusters")
            return

        role = rbac.cluster_role(team_role)
        for cluster in clusters:
            name = cluster_name(cluster)
            if name in failed:
                logger.warning(f"⏭️  [{trb.key}] cluster={name} skipped, its out-of-scope resources are still there")
                continue
            if not propagation.propagate(self.clients, self.recorder, trb, cluster, role, team):
                failed.append(name)

        if failed:
            message = "Error reconciling TeamRoleBinding for clusters: " + ", ".join(failed)
            trb.set_condition(api.AUTHORIZATION_READY, False, api.RBAC_RECONCILE_FAILED, message)
            logger.error(f"💥 [{trb.key}] {message}")
            raise ReconcileError(message, failed)

        trb.set_condition(api.AUTHORIZATION_READY, True, api.RBAC_RECONCILED, "")
        logger.info(f"✅ [{trb.key}] propagated to {len(clusters)} cluster(s)")

    def ensure_deleted(self, trb: TeamRoleBinding) -> Result:
        logger.info(f"🧹 [{trb.key}] ensure deleted")
        try:
            clusters = targets.list_clusters(self.hub, trb)
        except SelectorError as e:
            logger.warning(f"⚠️  [{trb.key}] invalid cluster selector during deletion, using tracked clusters only: {e}")
            clusters = []
        clusters = targets.combine_cluster_lists(self.hub, trb, clusters)

        for cluster in clusters:
            name = cluster_name(cluster)
            try:
                cleanup.cleanup_cluster(self.clients.client_for(cluster), trb)
            except Exception as e:
                logger.error(f"💥 [{trb.key}] failed to remove resources from cluster={name}: {e}")
                self.recorder.emit(trb.body, api.EVENT_WARNING, api.EVENT_FAILED_DELETE,
                                   f"Failed to remove resources for {trb.name} from cluster {name}")
                continue
            trb.remove_propagation_status(name)

        if not trb.propagation:
            trb.set_condition(api.DELETE_CONDITION, True, api.DELETED, "resource is successfully deleted")
            self.recorder.emit(trb.body, api.EVENT_NORMAL, api.EVENT_DELETED,
                               f"Deleted TeamRoleBinding {trb.name} from all clusters")
            logger.info(f"💀 [{trb.key}] removed from all clusters")
            return Result()

        trb.set_condition(api.DELETE_CONDITION, False, api.PENDING_DELETION, "resource deletion is pending")
        logger.info(f"⏳ [{trb.key}] deletion pending on cluster(s): {', '.join(trb.cluster_names())}")
        return Result(requeue_after=settings.DELETION_REQUEUE_SECONDS)

    def _get_team_role(self, trb: TeamRoleBinding) -> dict:
        if not trb.role_ref:
            message = f"TeamRoleBinding {trb.name} does not reference a TeamRole"
            self.recorder.emit(trb.body, api.EVENT_NORMAL, api.EVENT_ROLE_REFERENCE_MISSING, message)
            trb.set_condition(api.AUTHORIZATION_READY, False, api.TEAM_ROLE_NOT_FOUND, message)
            raise TeamRoleNotFoundError(message)
        team_role = self.hub.get_team_role(trb.namespace, trb.role_ref)
        if team_role is None:
            message = f"Failed to get team role {trb.role_ref} in namespace {trb.namespace}"
            self.recorder.emit(trb.body, api.EVENT_WARNING, api.EVENT_FAILED, message)
            trb.set_condition(api.AUTHORIZATION_READY, False, api.TEAM_ROLE_NOT_FOUND, message)
            raise TeamRoleNotFoundError(message)
        return team_role

    def _get_team(self, trb: TeamRoleBinding) -> dict:
        team = self.hub.get_team(trb.namespace, trb.team_ref) if trb.team_ref else None
        if team is None:
            message = f"Failed to get team {trb.team_ref} in namespace {trb.namespace}"
            self.recorder.emit(trb.body, api.EVENT_WARNING, api.EVENT_FAILED, message)
            trb.set_condition(api.AUTHORIZATION_READY, False, api.TEAM_NOT_FOUND, message)
            raise TeamNotFoundError(message)
        if not rbac.team_group(team):
            message = f"Team {trb.team_ref} has no mapped IdP group"
            self.recorder.emit(trb.body, api.EVENT_WARNING, api.EVENT_FAILED, message)
            trb.set_condition(api.AUTHORIZATION_READY, False, api.TEAM_GROUP_MISSING, message)
            raise TeamGroupMissingError(message)
        return team

    def _write_status(self, trb: TeamRoleBinding) -> None:
        if trb.status_changed():
            self.hub.patch_binding_status(trb.namespace, trb.name, trb.status())
        phase = _phase(trb)
        db.upsert_binding(
            trb.namespace, trb.name,
            team_role=trb.role_ref,
            team=trb.team_ref,
            scope="cluster" if trb.cluster_scoped else "namespace",
            clusters=trb.cluster_names(),
            phase=phase,
            message=(trb.get_condition(api.AUTHORIZATION_READY) or {}).get("message", ""),
            deleted_at=db._now() if phase == "Deleted" else None,
        )


def _phase(trb: TeamRoleBinding) -> str:
    if trb.deleting:
        return "Deleted" if not trb.propagation else "Deleting"
    ready = trb.get_condition(api.READY_CONDITION) or {}
    return "Ready" if ready.get("status") == "True" else "Degraded"
