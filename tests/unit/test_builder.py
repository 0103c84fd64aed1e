"""Tests for access graph construction."""

from __future__ import annotations

from typing import Any

from rbacviz.graph.builder import build_graph, role_node_id, subject_node_id, workload_node_id
from rbacviz.graph.filters import FilteredResources, FilterState, FilterType, apply_filters
from rbacviz.graph.models import (
    BindingPayload,
    EdgeKind,
    ExplicitSubject,
    ImplicitSubject,
    NodeKind,
    RolePayload,
    WorkloadPayload,
)
from rbacviz.models.config import GraphConfig
from rbacviz.models.resources import (
    AccessBinding,
    AccessRole,
    AggregationSelector,
    ResourceSnapshot,
    RoleKind,
    RoleRef,
    Subject,
    SubjectKind,
    WorkloadInstance,
)

_APP = Subject(SubjectKind.SERVICE_ACCOUNT, "app", "ns1")
_ALICE = Subject(SubjectKind.USER, "alice")


def _make_filtered(
    cluster_roles: list[AccessRole] | None = None,
    roles: list[AccessRole] | None = None,
    cluster_bindings: list[AccessBinding] | None = None,
    bindings: list[AccessBinding] | None = None,
    workloads: list[WorkloadInstance] | None = None,
) -> FilteredResources:
    return FilteredResources(
        cluster_roles=cluster_roles or [],
        roles=roles or [],
        cluster_bindings=cluster_bindings or [],
        bindings=bindings or [],
        workloads=workloads,
    )


class TestNodeIds:
    def test_content_derived(self) -> None:
        assert role_node_id(AccessRole("view")) == "role:ClusterRole::view"
        assert role_node_id(AccessRole("viewer", "ns1")) == "role:Role:ns1:viewer"
        assert subject_node_id(_ALICE.key) == "subject:User::alice"
        assert workload_node_id(WorkloadInstance("web-0", "ns1")) == "workload:Pod:ns1:web-0"


class TestBuildGraph:
    def test_node_order_and_payloads(self) -> None:
        filtered = _make_filtered(
            cluster_roles=[AccessRole("view")],
            roles=[AccessRole("viewer", "ns1")],
            cluster_bindings=[AccessBinding("crb", RoleRef(RoleKind.CLUSTER_ROLE, "view"), subjects=(_ALICE,))],
            bindings=[AccessBinding("rb", RoleRef(RoleKind.ROLE, "viewer"), "ns1", (_APP,))],
            workloads=[WorkloadInstance("app-0", "ns1", "app")],
        )
        graph = build_graph(filtered)
        assert [n.kind for n in graph.nodes] == [
            NodeKind.CLUSTER_ROLE,
            NodeKind.ROLE,
            NodeKind.BINDING,
            NodeKind.BINDING,
            NodeKind.SUBJECT,
            NodeKind.SUBJECT,
            NodeKind.WORKLOAD,
        ]
        assert isinstance(graph.nodes[0].payload, RolePayload)
        assert graph.nodes[0].payload.binding_count == 1
        assert isinstance(graph.nodes[2].payload, BindingPayload)
        assert isinstance(graph.nodes[-1].payload, WorkloadPayload)
        assert graph.payload_for("subject:ServiceAccount:ns1:app").provenance == "explicit"

    def test_unresolved_binding_is_ignored(self) -> None:
        filtered = _make_filtered(
            bindings=[AccessBinding("rb", RoleRef(RoleKind.ROLE, "missing"), "ns1", (_APP,))],
        )
        graph = build_graph(filtered)
        assert graph.nodes == ()
        assert graph.edges == ()

    def test_edge_ids_are_unique_and_labelled(self) -> None:
        binding = AccessBinding("rb", RoleRef(RoleKind.ROLE, "viewer"), "ns1", (_APP, _ALICE))
        graph = build_graph(_make_filtered(roles=[AccessRole("viewer", "ns1")], bindings=[binding]))
        assert len({e.id for e in graph.edges}) == len(graph.edges) == 3
        bound_by = [e for e in graph.edges if e.kind is EdgeKind.BOUND_BY]
        assert bound_by[0].label == "RoleBinding"
        assert {e.label for e in graph.edges if e.kind is EdgeKind.GRANTS} == {"rb"}

    def test_subject_gate_reapplied(self) -> None:
        binding = AccessBinding("rb", RoleRef(RoleKind.ROLE, "viewer"), "ns1", (_APP, _ALICE))
        filtered = _make_filtered(roles=[AccessRole("viewer", "ns1")], bindings=[binding])
        graph = build_graph(filtered, FilterState(show_users=False))
        assert graph.node(subject_node_id(_ALICE.key)) is None
        assert graph.node(subject_node_id(_APP.key)) is not None

    def test_binding_node_kept_when_all_subjects_hidden(self) -> None:
        binding = AccessBinding("rb", RoleRef(RoleKind.ROLE, "viewer"), "ns1", (_ALICE,))
        filtered = _make_filtered(roles=[AccessRole("viewer", "ns1")], bindings=[binding])
        graph = build_graph(filtered, FilterState(show_users=False))
        assert graph.node("binding:RoleBinding:ns1:rb") is not None
        assert [e.kind for e in graph.edges] == [EdgeKind.BOUND_BY]

    def test_subject_listed_twice_in_one_binding(self) -> None:
        binding = AccessBinding("rb", RoleRef(RoleKind.ROLE, "viewer"), "ns1", (_APP, _APP))
        graph = build_graph(_make_filtered(roles=[AccessRole("viewer", "ns1")], bindings=[binding]))
        payload = graph.payload_for(subject_node_id(_APP.key))
        assert isinstance(payload, ExplicitSubject)
        assert payload.binding_count == 1
        assert sum(1 for e in graph.edges if e.kind is EdgeKind.GRANTS) == 2

    def test_aggregation_edges(self) -> None:
        aggregate = AccessRole(
            "monitoring",
            aggregation=AggregationSelector(({"aggregate-to-monitoring": "true"},)),
        )
        member = AccessRole("metrics-reader", labels={"aggregate-to-monitoring": "true"})
        unrelated = AccessRole("edit", labels={"aggregate-to-edit": "true"})
        graph = build_graph(_make_filtered(cluster_roles=[aggregate, member, unrelated]))
        assert [(e.source, e.target) for e in graph.edges] == [
            ("role:ClusterRole::monitoring", "role:ClusterRole::metrics-reader")
        ]
        assert graph.edges[0].kind is EdgeKind.AGGREGATES

    def test_implicit_subject_counts_workloads(self) -> None:
        pods = [WorkloadInstance("a", "ns1"), WorkloadInstance("b", "ns1"), WorkloadInstance("c", "ns2", "x")]
        graph = build_graph(_make_filtered(workloads=pods))
        payload = graph.payload_for("subject:ServiceAccount:ns1:default")
        assert isinstance(payload, ImplicitSubject)
        assert payload.workload_count == 2
        assert isinstance(graph.payload_for("subject:ServiceAccount:ns2:x"), ImplicitSubject)

    def test_custom_default_service_account(self) -> None:
        graph = build_graph(
            _make_filtered(workloads=[WorkloadInstance("a", "ns1")]),
            config=GraphConfig(default_service_account="runner"),
        )
        assert graph.node("subject:ServiceAccount:ns1:runner") is not None

    def test_nameless_workload_dropped(self, log_output: list[dict[str, Any]]) -> None:
        graph = build_graph(_make_filtered(workloads=[WorkloadInstance("", "ns1", "app")]))
        assert graph.nodes == ()
        assert any(e["event"] == "record_dropped" and e["reason"] == "missing_name" for e in log_output)

    def test_duplicate_workloads_collapse(self) -> None:
        pod = WorkloadInstance("a", "ns1")
        graph = build_graph(_make_filtered(workloads=[pod, pod]))
        assert sum(1 for n in graph.nodes if n.kind is NodeKind.WORKLOAD) == 1
        assert len(graph.edges) == 1

    def test_identity_selection_drops_other_subjects_of_shared_binding(self) -> None:
        snapshot = ResourceSnapshot(
            cluster_roles=[AccessRole("view")],
            cluster_bindings=[
                AccessBinding("crb", RoleRef(RoleKind.CLUSTER_ROLE, "view"), subjects=(_APP, _ALICE)),
            ],
        )
        state = FilterState(filter_type=FilterType.IDENTITY, filter_value="User:alice")
        graph = build_graph(apply_filters(snapshot, state), state)
        assert [n.id for n in graph.nodes if n.kind is NodeKind.SUBJECT] == ["subject:User::alice"]

    def test_to_dict(self) -> None:
        graph = build_graph(_make_filtered(workloads=[WorkloadInstance("a", "ns1", "app")]))
        document = graph.to_dict()
        assert document["edges"] == [
            {
                "id": "runs_as:subject:ServiceAccount:ns1:app->workload:Pod:ns1:a",
                "source": "subject:ServiceAccount:ns1:app",
                "target": "workload:Pod:ns1:a",
                "kind": "runs_as",
                "label": "",
            }
        ]
        assert document["nodes"][0]["data"]["provenance"] == "implicit"
        assert document["nodes"][0]["position"] is None
