"""Well-known names shared by the controller modules."""

GROUP = "fleet-rbac.opsmode.io"
BINDING_VERSION = "v1alpha2"
CORE_VERSION = "v1alpha1"

BINDING_PLURAL = "teamrolebindings"
TEAM_ROLE_PLURAL = "teamroles"
TEAM_PLURAL = "teams"
CLUSTER_PLURAL = "clusters"

FINALIZER = f"{GROUP}/cleanup"

# Prefix for the Role and RoleBinding names on remote clusters.
RBAC_PREFIX = "fleet-rbac:"

# Reference marker: the TeamRole a remote object was derived from.
LABEL_KEY_ROLE = f"{GROUP}/role"
# The TeamRoleBinding a remote binding object belongs to.
LABEL_KEY_ROLE_BINDING = f"{GROUP}/rolebinding"
LABEL_MANAGED_BY = "app.kubernetes.io/managed-by"
MANAGED_BY = "fleet-rbac"

ANNOTATION_RECONCILE_REQUESTED = f"{GROUP}/reconcile-requested-at"

KUBECONFIG_KEY = "kubeconfig"

# Condition types
READY_CONDITION = "Ready"
AUTHORIZATION_READY = "AuthorizationReady"
DELETE_CONDITION = "Delete"

# Per-cluster and AuthorizationReady reasons
RBAC_RECONCILED = "RBACReconciled"
RBAC_RECONCILE_FAILED = "RBACReconcileFailed"
EMPTY_CLUSTER_LIST = "EmptyClusterList"
TEAM_NOT_FOUND = "TeamNotFound"
TEAM_ROLE_NOT_FOUND = "TeamRoleNotFound"
TEAM_GROUP_MISSING = "TeamGroupMissing"
INVALID_CLUSTER_SELECTOR = "InvalidClusterSelector"
CLUSTER_CONNECTION_FAILED = "ClusterConnectionFailed"
CLUSTER_ROLE_FAILED = "ClusterRoleFailed"
ROLE_BINDING_FAILED = "RoleBindingFailed"
NAMESPACE_PENDING = "NamespacePending"
CLEANUP_FAILED = "CleanupFailed"

# Ready reasons
RECONCILED = "Reconciled"
PROPAGATION_FAILED = "PropagationFailed"

# Delete reasons
DELETED = "Deleted"
PENDING_DELETION = "PendingDeletion"

# Event reasons
EVENT_FAILED = "Failed"
EVENT_FAILED_DELETE = "FailedDelete"
EVENT_DELETED = "SuccessfulDeleted"
EVENT_ROLE_REFERENCE_MISSING = "RoleReferenceMissing"

EVENT_NORMAL = "Normal"
EVENT_WARNING = "Warning"


def rbac_name(name: str) -> str:
    """Name of the object created on the remote cluster for a TeamRole or TeamRoleBinding."""
    return RBAC_PREFIX + name
