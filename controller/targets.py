"""Resolve a TeamRoleBinding's targetSelector into the ready Clusters it targets."""

import logging

import api
import labelquery
from binding import TeamRoleBinding
from clusters import cluster_name, is_ready

logger = logging.getLogger(__name__)


def list_clusters(hub, trb: TeamRoleBinding) -> list[dict]:
    """Return the ready Clusters matching the binding's targetSelector.

    A named cluster takes precedence over the label query. A name that does
    not exist, or a selector without name and label query, yields an empty
    list rather than an error. Matching clusters that are not ready are
    dropped and recorded as failed in the binding's propagation status.

    Raises SelectorError for a malformed label query.
    """
    selector = trb.target_selector
    name = selector.get("name")
    if name:
        cluster = hub.get_cluster(trb.namespace, name)
        candidates = [cluster] if cluster else []
    else:
        query = selector.get("labelQuery")
        if labelquery.is_empty(query):
            return []
        candidates = hub.list_clusters(trb.namespace, labelquery.to_selector_string(query))

    clusters = []
    for cluster in candidates:
        if not is_ready(cluster):
            logger.info(f"💤 [{trb.key}] skipping cluster={cluster_name(cluster)}: not ready")
            trb.set_propagation_status(cluster_name(cluster), False, api.CLUSTER_CONNECTION_FAILED, "Cluster is not ready")
            continue
        clusters.append(cluster)
    return clusters


def combine_cluster_lists(hub, trb: TeamRoleBinding, clusters: list[dict]) -> list[dict]:
    """Add clusters still tracked in the binding's status to clusters.

    Tracked clusters that no longer exist are dropped from the status since
    there is nothing left to clean up on them.
    """
    combined = list(clusters)
    selected = {cluster_name(c) for c in clusters}
    for name in trb.cluster_names():
        if name in selected:
            continue
        cluster = hub.get_cluster(trb.namespace, name)
        if cluster is None:
            logger.info(f"👻 [{trb.key}] cluster={name} is gone, dropping its status")
            trb.remove_propagation_status(name)
            continue
        combined.append(cluster)
    return combined
