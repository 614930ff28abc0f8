"""
Desired RBAC objects for a TeamRoleBinding.

A TeamRole becomes one shared ClusterRole per remote cluster. A
TeamRoleBinding becomes either one ClusterRoleBinding (no namespaces) or one
RoleBinding per listed namespace, all pointing at that ClusterRole.
"""

from kubernetes import client

import api
from binding import TeamRoleBinding

RBAC_API_GROUP = "rbac.authorization.k8s.io"
RBAC_API_VERSION = f"{RBAC_API_GROUP}/v1"


def _policy_rule(rule: dict) -> client.V1PolicyRule:
    return client.V1PolicyRule(
        api_groups=rule.get("apiGroups"),
        resources=rule.get("resources"),
        resource_names=rule.get("resourceNames"),
        non_resource_ur_ls=rule.get("nonResourceURLs"),
        verbs=rule.get("verbs") or [],
    )


def _label_selector(selector: dict) -> client.V1LabelSelector:
    expressions = [
        client.V1LabelSelectorRequirement(key=e.get("key"), operator=e.get("operator"), values=e.get("values"))
        for e in selector.get("matchExpressions") or []
    ]
    return client.V1LabelSelector(
        match_labels=selector.get("matchLabels"),
        match_expressions=expressions or None,
    )


def _aggregation_rule(rule: dict | None) -> client.V1AggregationRule | None:
    if not rule:
        return None
    return client.V1AggregationRule(
        cluster_role_selectors=[_label_selector(s) for s in rule.get("clusterRoleSelectors") or []],
    )


def cluster_role(team_role: dict) -> client.V1ClusterRole:
    """The shared ClusterRole for a TeamRole: rules and aggregationRule copied verbatim."""
    name = team_role["metadata"]["name"]
    spec = team_role.get("spec") or {}
    labels = dict(spec.get("labels") or {})
    labels[api.LABEL_KEY_ROLE] = name
    labels[api.LABEL_MANAGED_BY] = api.MANAGED_BY
    rules = [_policy_rule(r) for r in spec.get("rules") or []]
    return client.V1ClusterRole(
        api_version=RBAC_API_VERSION,
        kind="ClusterRole",
        metadata=client.V1ObjectMeta(name=api.rbac_name(name), labels=labels),
        rules=rules or None,
        aggregation_rule=_aggregation_rule(spec.get("aggregationRule")),
    )


def subjects(usernames: list[str], mapped_idp_group: str) -> list[client.RbacV1Subject]:
    """One User subject per username followed by the team's IdP group."""
    result = [client.RbacV1Subject(api_group=RBAC_API_GROUP, kind="User", name=u) for u in usernames]
    result.append(client.RbacV1Subject(api_group=RBAC_API_GROUP, kind="Group", name=mapped_idp_group))
    return result


def team_group(team: dict) -> str:
    return (team.get("spec") or {}).get("mappedIdpGroup", "")


def _binding_labels(trb: TeamRoleBinding) -> dict:
    return {
        api.LABEL_KEY_ROLE_BINDING: trb.name,
        api.LABEL_KEY_ROLE: trb.role_ref,
        api.LABEL_MANAGED_BY: api.MANAGED_BY,
    }


def _role_ref(role: client.V1ClusterRole) -> client.V1RoleRef:
    return client.V1RoleRef(api_group=RBAC_API_GROUP, kind="ClusterRole", name=role.metadata.name)


def cluster_role_binding(trb: TeamRoleBinding, role: client.V1ClusterRole, team: dict) -> client.V1ClusterRoleBinding:
    return client.V1ClusterRoleBinding(
        api_version=RBAC_API_VERSION,
        kind="ClusterRoleBinding",
        metadata=client.V1ObjectMeta(name=trb.rbac_name, labels=_binding_labels(trb)),
        role_ref=_role_ref(role),
        subjects=subjects(trb.usernames, team_group(team)),
    )


def role_binding(trb: TeamRoleBinding, role: client.V1ClusterRole, team: dict, namespace: str) -> client.V1RoleBinding:
    return client.V1RoleBinding(
        api_version=RBAC_API_VERSION,
        kind="RoleBinding",
        metadata=client.V1ObjectMeta(name=trb.rbac_name, namespace=namespace, labels=_binding_labels(trb)),
        role_ref=_role_ref(role),
        subjects=subjects(trb.usernames, team_group(team)),
    )


def role_bindings(trb: TeamRoleBinding, role: client.V1ClusterRole, team: dict) -> list[client.V1RoleBinding]:
    return [role_binding(trb, role, team, ns) for ns in trb.namespaces]
