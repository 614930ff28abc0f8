"""
Runtime configuration for the fleet-rbac controller.

Everything is read from the environment once at import time; the Helm chart
injects these as container env vars.
"""

import os

WORKER_LIMIT = int(os.environ.get("WORKER_LIMIT", "20"))

# kopf retry delays for the different failure classes
RETRY_DELAY_SECONDS = int(os.environ.get("RETRY_DELAY_SECONDS", "30"))
DEPENDENCY_RETRY_SECONDS = int(os.environ.get("DEPENDENCY_RETRY_SECONDS", "60"))
DELETION_REQUEUE_SECONDS = int(os.environ.get("DELETION_REQUEUE_SECONDS", "10"))

CLIENT_CACHE_TTL_SECONDS = float(os.environ.get("CLIENT_CACHE_TTL_SECONDS", "300"))
AUDIT_RETENTION_DAYS = int(os.environ.get("AUDIT_RETENTION_DAYS", "30"))
