import logging

import kopf
from kubernetes import client

import api
import dependents
import settings as fleet_settings
from clusters import ClientFactory, fingerprint
from db import init_db, purge_old_records
from errors import DependencyMissingError, ReconcileError, SelectorError
from events import EventRecorder, audit
from hub import Hub, load_config
from reconciler import TeamRoleBindingReconciler

logger = logging.getLogger(__name__)


class _HealthzFilter(logging.Filter):
    def filter(self, record):
        return "GET /healthz" not in record.getMessage()


logging.getLogger("aiohttp.access").addFilter(_HealthzFilter())


SEP = "🛡️ " * 30

_reconciler: TeamRoleBindingReconciler | None = None
_hub: Hub | None = None

# (namespace, name) -> fingerprint of the last seen Cluster state
_cluster_fingerprints: dict = {}


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------

@kopf.on.startup()
async def startup(settings: kopf.OperatorSettings, **kwargs):
    global _reconciler, _hub
    settings.execution.max_workers = fleet_settings.WORKER_LIMIT
    settings.persistence.finalizer = api.FINALIZER
    logger.info(f"🚀 fleet-rbac controller starting up (workers={fleet_settings.WORKER_LIMIT})")

    init_db()
    purge_old_records(days=fleet_settings.AUDIT_RETENTION_DAYS)

    load_config()
    _hub = Hub(client.ApiClient())
    _reconciler = TeamRoleBindingReconciler(_hub, ClientFactory(_hub), EventRecorder())
    logger.info("✅ fleet-rbac controller ready")


# ---------------------------------------------------------------------------
# TeamRoleBinding handlers
# ---------------------------------------------------------------------------

def _reconcile(namespace: str, name: str) -> None:
    logger.info(SEP)
    try:
        result = _reconciler.reconcile(namespace, name)
    except SelectorError as e:
        raise kopf.PermanentError(f"invalid cluster selector: {e}")
    except DependencyMissingError as e:
        raise kopf.TemporaryError(str(e), delay=fleet_settings.DEPENDENCY_RETRY_SECONDS)
    except ReconcileError as e:
        raise kopf.TemporaryError(str(e), delay=fleet_settings.RETRY_DELAY_SECONDS)
    if result.requeue_after:
        raise kopf.TemporaryError("deletion pending", delay=result.requeue_after)


@kopf.on.resume(api.GROUP, api.BINDING_VERSION, api.BINDING_PLURAL)
@kopf.on.create(api.GROUP, api.BINDING_VERSION, api.BINDING_PLURAL)
@kopf.on.update(api.GROUP, api.BINDING_VERSION, api.BINDING_PLURAL)
def reconcile_binding(namespace, name, **kwargs):
    _reconcile(namespace, name)


@kopf.on.delete(api.GROUP, api.BINDING_VERSION, api.BINDING_PLURAL)
def delete_binding(namespace, name, **kwargs):
    _reconcile(namespace, name)
    audit("binding.deleted", f"{namespace}/{name}")


# ---------------------------------------------------------------------------
# Dependencies: TeamRoles, Teams, Clusters
# ---------------------------------------------------------------------------

@kopf.on.create(api.GROUP, api.CORE_VERSION, api.TEAM_ROLE_PLURAL)
@kopf.on.update(api.GROUP, api.CORE_VERSION, api.TEAM_ROLE_PLURAL)
@kopf.on.delete(api.GROUP, api.CORE_VERSION, api.TEAM_ROLE_PLURAL, optional=True)
def on_team_role_change(namespace, name, **kwargs):
    keys = dependents.bindings_for_team_role(_hub, namespace, name)
    dependents.request_reconcile(_hub, keys, f"TeamRole {name} changed")


@kopf.on.create(api.GROUP, api.CORE_VERSION, api.TEAM_PLURAL)
@kopf.on.update(api.GROUP, api.CORE_VERSION, api.TEAM_PLURAL)
@kopf.on.delete(api.GROUP, api.CORE_VERSION, api.TEAM_PLURAL, optional=True)
def on_team_change(namespace, name, **kwargs):
    keys = dependents.bindings_for_team(_hub, namespace, name)
    dependents.request_reconcile(_hub, keys, f"Team {name} changed")


@kopf.on.event(api.GROUP, api.CORE_VERSION, api.CLUSTER_PLURAL)
def on_cluster_event(event, body, namespace, name, **kwargs):
    """Re-trigger all bindings in the namespace when a Cluster's labels or readiness change."""
    key = (namespace, name)
    if event.get("type") == "DELETED":
        current = None
    else:
        current = fingerprint(body)
    known = key in _cluster_fingerprints
    previous = _cluster_fingerprints.pop(key, None)
    if current is not None:
        _cluster_fingerprints[key] = current

    # the initial listing has no event type; those states are picked up by on.resume
    if event.get("type") is None or (known and previous == current):
        return
    keys = dependents.bindings_in_namespace(_hub, namespace)
    dependents.request_reconcile(_hub, keys, f"Cluster {name} changed")
