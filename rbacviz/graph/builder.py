"""Access graph construction from filtered resources.

Walks the filtered lists and emits nodes for roles, bindings, subjects and
workloads, plus the directed edges between them. Node and edge ids are
derived from resource identities only, so equal inputs always produce
equal graphs and subjects named by many bindings collapse to one node.
"""

from __future__ import annotations

from collections import Counter

from rbacviz.graph.filters import FilteredResources, FilterState, subject_visible
from rbacviz.graph.index import Key, build_index
from rbacviz.graph.models import (
    AccessGraph,
    BindingPayload,
    EdgeKind,
    ExplicitSubject,
    GraphEdge,
    GraphNode,
    ImplicitSubject,
    NodeKind,
    RolePayload,
    WorkloadPayload,
)
from rbacviz.models.config import GraphConfig
from rbacviz.models.resources import (
    AccessBinding,
    AccessRole,
    RoleKind,
    Subject,
    SubjectKind,
    WorkloadInstance,
)
from rbacviz.observability.logging import get_logger
from rbacviz.observability.metrics import graph_builds_total, implicit_subjects_total, records_dropped_total

_logger = get_logger("graph.builder")


def _join(prefix: str, key: Key) -> str:
    return f"{prefix}:{key[0]}:{key[1]}:{key[2]}"


def role_node_id(role: AccessRole) -> str:
    return _join("role", role.key)


def binding_node_id(binding: AccessBinding) -> str:
    return _join("binding", binding.key)


def subject_node_id(key: Key) -> str:
    return _join("subject", key)


def workload_node_id(workload: WorkloadInstance) -> str:
    return f"workload:Pod:{workload.namespace}:{workload.name}"


def _edge(kind: EdgeKind, source: str, target: str, via: str = "", label: str = "") -> GraphEdge:
    edge_id = f"{kind.value}:{source}->{target}"
    if via:
        edge_id = f"{edge_id}@{via}"
    return GraphEdge(id=edge_id, source=source, target=target, kind=kind, label=label)


def build_graph(
    filtered: FilteredResources,
    state: FilterState | None = None,
    config: GraphConfig | None = None,
) -> AccessGraph:
    """Build the access graph for one filter pass.

    Bindings whose role does not resolve inside the filtered set are
    ignored. Workloads without a name are dropped with a diagnostic.
    """
    state = state or FilterState()
    config = config or GraphConfig()
    index = build_index(
        filtered.cluster_roles,
        filtered.roles,
        filtered.cluster_bindings,
        filtered.bindings,
        filtered.workloads,
        config.default_service_account,
    )
    edges: list[GraphEdge] = []

    # Bindings that survive resolution, in input order, first record wins.
    resolved: list[tuple[AccessBinding, AccessRole]] = []
    for binding in filtered.all_bindings:
        if index.bindings.get(binding.key) is not binding:
            continue
        role = index.resolve_role(binding)
        if role is None:
            _logger.debug("binding_unresolved", binding=binding.name, namespace=binding.namespace)
            continue
        resolved.append((binding, role))

    # --- 1. Role nodes ---------------------------------------------------
    role_binding_counts = Counter(role.key for _, role in resolved)
    role_nodes: list[GraphNode] = []
    cluster_roles: list[AccessRole] = []
    for role in (*filtered.cluster_roles, *filtered.roles):
        if index.roles.get(role.key) is not role:
            continue
        if role.kind is RoleKind.CLUSTER_ROLE:
            cluster_roles.append(role)
        role_nodes.append(
            GraphNode(
                id=role_node_id(role),
                kind=NodeKind.CLUSTER_ROLE if role.kind is RoleKind.CLUSTER_ROLE else NodeKind.ROLE,
                label=role.name,
                namespace=role.namespace,
                payload=RolePayload(role=role, binding_count=role_binding_counts[role.key]),
            )
        )

    # Aggregation rules link cluster roles to each other and may form cycles.
    for aggregate in cluster_roles:
        if aggregate.aggregation is None:
            continue
        for member in cluster_roles:
            if member is not aggregate and aggregate.aggregation.matches(member.labels):
                edges.append(_edge(EdgeKind.AGGREGATES, role_node_id(aggregate), role_node_id(member)))

    # --- 2. Bindings and 3. subjects -------------------------------------
    binding_nodes: list[GraphNode] = []
    subjects: dict[Key, Subject] = {}
    subject_binding_counts: Counter[Key] = Counter()

    for binding, role in resolved:
        role_id = role_node_id(role)
        source = role_id
        if state.show_bindings:
            source = binding_node_id(binding)
            binding_nodes.append(
                GraphNode(
                    id=source,
                    kind=NodeKind.BINDING,
                    label=binding.name,
                    namespace=binding.namespace,
                    payload=BindingPayload(binding=binding),
                )
            )
            edges.append(_edge(EdgeKind.BOUND_BY, role_id, source, label=binding.kind.value))

        counted: set[Key] = set()
        for idx, subject in enumerate(binding.subjects):
            if not subject_visible(subject, state, filtered.selection):
                continue
            subjects.setdefault(subject.key, subject)
            if subject.key not in counted:
                counted.add(subject.key)
                subject_binding_counts[subject.key] += 1
            edges.append(
                _edge(
                    EdgeKind.GRANTS,
                    source,
                    subject_node_id(subject.key),
                    via=f"{binding_node_id(binding)}#{idx}",
                    label=binding.name,
                )
            )

    subject_nodes: dict[Key, GraphNode] = {
        key: GraphNode(
            id=subject_node_id(key),
            kind=NodeKind.SUBJECT,
            label=subject.name,
            namespace=subject.namespace,
            payload=ExplicitSubject(subject=subject, binding_count=subject_binding_counts[key]),
        )
        for key, subject in subjects.items()
    }

    # --- 4. Workloads ----------------------------------------------------
    workload_nodes: dict[str, GraphNode] = {}
    implicit_counts: Counter[Key] = Counter()
    for workload in filtered.workloads or ():
        if not workload.name:
            records_dropped_total.labels(kind="Pod").inc()
            _logger.warning("record_dropped", kind="Pod", reason="missing_name", namespace=workload.namespace)
            continue
        workload_id = workload_node_id(workload)
        if workload_id in workload_nodes:
            continue
        key = workload.identity_key(config.default_service_account)
        if key not in subjects:
            implicit_counts[key] += 1
        workload_nodes[workload_id] = GraphNode(
            id=workload_id,
            kind=NodeKind.WORKLOAD,
            label=workload.name,
            namespace=workload.namespace,
            payload=WorkloadPayload(workload=workload),
        )
        edges.append(_edge(EdgeKind.RUNS_AS, subject_node_id(key), workload_id))

    for key, count in implicit_counts.items():
        implicit = Subject(kind=SubjectKind.SERVICE_ACCOUNT, name=key[2], namespace=key[1])
        subject_nodes[key] = GraphNode(
            id=subject_node_id(key),
            kind=NodeKind.SUBJECT,
            label=implicit.name,
            namespace=implicit.namespace,
            payload=ImplicitSubject(subject=implicit, workload_count=count),
        )
        implicit_subjects_total.inc()
        _logger.debug("implicit_subject_synthesized", name=implicit.name, namespace=implicit.namespace)

    nodes = (*role_nodes, *binding_nodes, *subject_nodes.values(), *workload_nodes.values())
    graph_builds_total.inc()
    _logger.debug("graph_built", nodes=len(nodes), edges=len(edges))
    return AccessGraph(nodes=tuple(nodes), edges=tuple(edges))
