"""
Status conditions and per-cluster propagation entries of a TeamRoleBinding.

Conditions are plain dicts, as they appear in the resource's status:

    {"type": ..., "status": "True"|"False"|"Unknown", "reason": ...,
     "message": ..., "lastTransitionTime": "2024-01-01T00:00:00Z"}

Propagation entries carry the same fields plus ``clusterName``. Whenever a
condition is overwritten with the same status value its lastTransitionTime
is kept, so consumers polling the transition time see a stable value.
"""

from datetime import datetime, timezone

import api

TRUE = "True"
FALSE = "False"
UNKNOWN = "Unknown"


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def as_status(value) -> str:
    if value is True:
        return TRUE
    if value is False:
        return FALSE
    return value


def new_condition(type_: str, status, reason: str = "", message: str = "") -> dict:
    return {
        "type": type_,
        "status": as_status(status),
        "reason": reason,
        "message": message,
        "lastTransitionTime": _now(),
    }


def get_condition(conditions: list[dict], type_: str) -> dict | None:
    return next((c for c in conditions if c.get("type") == type_), None)


def set_condition(conditions: list[dict], condition: dict) -> None:
    """Insert or replace the condition of the same type, in place."""
    for i, existing in enumerate(conditions):
        if existing.get("type") != condition["type"]:
            continue
        if existing.get("status") == condition["status"] and existing.get("lastTransitionTime"):
            condition = {**condition, "lastTransitionTime": existing["lastTransitionTime"]}
        conditions[i] = condition
        return
    conditions.append(condition)


def set_propagation_status(entries: list[dict], cluster: str, status, reason: str, message: str = "") -> None:
    """Set the entry for a cluster; at most one entry per cluster name."""
    condition = new_condition(api.AUTHORIZATION_READY, status, reason, message)
    for i, entry in enumerate(entries):
        if entry.get("clusterName") != cluster:
            continue
        if entry.get("status") == condition["status"] and entry.get("lastTransitionTime"):
            condition["lastTransitionTime"] = entry["lastTransitionTime"]
        entries[i] = {"clusterName": cluster, **condition}
        return
    entries.append({"clusterName": cluster, **condition})


def remove_propagation_status(entries: list[dict], cluster: str) -> None:
    entries[:] = [e for e in entries if e.get("clusterName") != cluster]


def compute_ready_condition(entries: list[dict]) -> dict:
    """Reduce the per-cluster entries into the aggregate Ready condition."""
    for entry in entries:
        if entry.get("status") != TRUE:
            return new_condition(api.READY_CONDITION, FALSE, api.PROPAGATION_FAILED, "Team RBAC propagation failed")
    return new_condition(api.READY_CONDITION, TRUE, api.RECONCILED, "ready")
