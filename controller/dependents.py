"""
Find the TeamRoleBindings affected by a change to a TeamRole, Team or Cluster
and ask the operator to reconcile them again.

The mapping is recomputed from a fresh list on every change instead of being
kept in memory, so it cannot go stale.
"""

import logging

logger = logging.getLogger(__name__)


def _key(body: dict) -> tuple[str, str]:
    meta = body.get("metadata", {})
    return meta.get("namespace", ""), meta.get("name", "")


def bindings_for_team_role(hub, namespace: str, team_role: str) -> list[tuple[str, str]]:
    return [_key(b) for b in hub.list_bindings(namespace) if (b.get("spec") or {}).get("roleRef") == team_role]


def bindings_for_team(hub, namespace: str, team: str) -> list[tuple[str, str]]:
    return [_key(b) for b in hub.list_bindings(namespace) if (b.get("spec") or {}).get("teamRef") == team]


def bindings_in_namespace(hub, namespace: str) -> list[tuple[str, str]]:
    return [_key(b) for b in hub.list_bindings(namespace)]


def request_reconcile(hub, keys: list[tuple[str, str]], cause: str) -> int:
    """Stamp each binding so it is reconciled again. Returns how many were requested."""
    requested = 0
    for namespace, name in keys:
        try:
            hub.request_reconcile(namespace, name)
        except Exception as e:
            logger.error(f"💥 [{namespace}/{name}] could not request reconcile after {cause}: {e}")
            continue
        logger.info(f"🔔 [{namespace}/{name}] reconcile requested after {cause}")
        requested += 1
    return requested
