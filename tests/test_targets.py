import pytest

import api
import targets
from binding import TeamRoleBinding
from errors import SelectorError
from fakes import make_binding, make_cluster


def names(clusters):
    return [c["metadata"]["name"] for c in clusters]


def test_name_takes_precedence_over_label_query(hub, add_clusters):
    add_clusters("c1", "c2")
    trb = TeamRoleBinding(make_binding("devs", cluster_name="c2", label_query={"matchLabels": {"env": "prod"}}))
    assert names(targets.list_clusters(hub, trb)) == ["c2"]


def test_unknown_name_yields_empty_list(hub):
    trb = TeamRoleBinding(make_binding("devs", cluster_name="nope"))
    assert targets.list_clusters(hub, trb) == []


def test_label_query(hub, add_clusters):
    add_clusters("c1", "c2", labels={"env": "prod"})
    add_clusters("c3", labels={"env": "dev"})
    trb = TeamRoleBinding(make_binding("devs", label_query={"matchLabels": {"env": "prod"}}))
    assert names(targets.list_clusters(hub, trb)) == ["c1", "c2"]


def test_empty_selector_yields_empty_list(hub, add_clusters):
    add_clusters("c1")
    trb = TeamRoleBinding(make_binding("devs", label_query={}))
    assert targets.list_clusters(hub, trb) == []


def test_invalid_label_query_raises(hub):
    trb = TeamRoleBinding(make_binding("devs", label_query={
        "matchExpressions": [{"key": "env", "operator": "Bogus"}],
    }))
    with pytest.raises(SelectorError):
        targets.list_clusters(hub, trb)


def test_not_ready_clusters_filtered_and_marked(hub, add_clusters):
    add_clusters("c1")
    add_clusters("c2", ready=False)
    trb = TeamRoleBinding(make_binding("devs", label_query={"matchLabels": {"env": "prod"}}))
    assert names(targets.list_clusters(hub, trb)) == ["c1"]
    entry = trb.get_propagation_status("c2")
    assert entry["status"] == "False"
    assert entry["reason"] == api.CLUSTER_CONNECTION_FAILED


def test_clusters_from_other_namespaces_ignored(hub):
    hub.add_cluster(make_cluster("c1", labels={"env": "prod"}, namespace="other"))
    trb = TeamRoleBinding(make_binding("devs", label_query={"matchLabels": {"env": "prod"}}))
    assert targets.list_clusters(hub, trb) == []


def test_combine_adds_tracked_and_drops_vanished(hub, add_clusters):
    add_clusters("c1", "c2")
    trb = TeamRoleBinding(make_binding("devs", cluster_name="c1"))
    for name in ("c1", "c2", "gone"):
        trb.set_propagation_status(name, True, api.RBAC_RECONCILED)

    combined = targets.combine_cluster_lists(hub, trb, targets.list_clusters(hub, trb))
    assert names(combined) == ["c1", "c2"]
    assert trb.cluster_names() == ["c1", "c2"]
