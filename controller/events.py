"""Operator-visible events for TeamRoleBindings, mirrored to the audit trail."""

import json
import logging
from datetime import datetime, timezone

import kopf

from db import log_audit

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("fleet-rbac-audit")


def audit(event: str, binding: str, **kwargs):
    """Emit a structured audit log line."""
    audit_logger.info(json.dumps({
        "audit": True,
        "event": event,
        "binding": binding,
        "ts": datetime.now(timezone.utc).isoformat(),
        **kwargs,
    }))


class EventRecorder:
    def emit(self, body: dict, type_: str, reason: str, message: str) -> None:
        meta = body.get("metadata", {})
        key = f"{meta.get('namespace', '')}/{meta.get('name', '')}"
        kopf.event(body, type=type_, reason=reason, message=message)
        audit(reason, key, severity=type_, message=message)
        log_audit(key, reason, severity=type_, detail=message)
