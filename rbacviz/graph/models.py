"""Data structures for the access-relationship graph."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any

from rbacviz.models.resources import AccessBinding, AccessRole, Subject, WorkloadInstance


class NodeKind(StrEnum):
    """Types of nodes emitted by the graph builder."""

    CLUSTER_ROLE = "cluster-role"
    ROLE = "role"
    BINDING = "binding"
    SUBJECT = "subject"
    WORKLOAD = "workload"


class EdgeKind(StrEnum):
    """Types of directed relationships between nodes."""

    BOUND_BY = "bound_by"  # role -> binding
    GRANTS = "grants"  # binding (or role when bindings are hidden) -> subject
    RUNS_AS = "runs_as"  # subject -> workload
    AGGREGATES = "aggregates"  # aggregating cluster role -> contributing cluster role


@dataclass(frozen=True)
class RolePayload:
    role: AccessRole
    binding_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.role.kind.value,
            "name": self.role.name,
            "namespace": self.role.namespace,
            "rules": [asdict(rule) for rule in self.role.rules],
            "ruleCount": len(self.role.rules),
            "bindingCount": self.binding_count,
            "labels": dict(self.role.labels),
            "aggregated": self.role.aggregation is not None,
        }


@dataclass(frozen=True)
class BindingPayload:
    binding: AccessBinding

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.binding.kind.value,
            "name": self.binding.name,
            "namespace": self.binding.namespace,
            "roleRef": {"kind": self.binding.role_ref.kind.value, "name": self.binding.role_ref.name},
            "subjectCount": len(self.binding.subjects),
        }


@dataclass(frozen=True)
class ExplicitSubject:
    """A subject named by at least one surviving binding."""

    subject: Subject
    binding_count: int = 1

    provenance = "explicit"

    def to_dict(self) -> dict[str, Any]:
        return {
            "provenance": self.provenance,
            "kind": self.subject.kind.value,
            "name": self.subject.name,
            "namespace": self.subject.namespace,
            "bindingCount": self.binding_count,
        }


@dataclass(frozen=True)
class ImplicitSubject:
    """A service account synthesized because a workload runs as it but no binding names it."""

    subject: Subject
    workload_count: int = 1

    provenance = "implicit"

    def to_dict(self) -> dict[str, Any]:
        return {
            "provenance": self.provenance,
            "kind": self.subject.kind.value,
            "name": self.subject.name,
            "namespace": self.subject.namespace,
            "workloadCount": self.workload_count,
        }


@dataclass(frozen=True)
class WorkloadPayload:
    workload: WorkloadInstance

    def to_dict(self) -> dict[str, Any]:
        w = self.workload
        return {
            "kind": "Pod",
            "name": w.name,
            "namespace": w.namespace,
            "serviceAccount": w.service_identity,
            "phase": w.phase,
            "nodeName": w.node_name,
            "podIP": w.pod_ip,
            "hostIP": w.host_ip,
            "startTime": w.start_time,
            "containers": [asdict(c) for c in w.containers],
        }


NodePayload = RolePayload | BindingPayload | ExplicitSubject | ImplicitSubject | WorkloadPayload


@dataclass(frozen=True)
class Position:
    """Top-left corner of a node's footprint."""

    x: float
    y: float


@dataclass(frozen=True)
class GraphNode:
    """A node in the access graph."""

    id: str
    kind: NodeKind
    label: str
    payload: NodePayload
    namespace: str | None = None
    position: Position | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "label": self.label,
            "namespace": self.namespace,
            "position": asdict(self.position) if self.position is not None else None,
            "data": self.payload.to_dict(),
        }


@dataclass(frozen=True)
class GraphEdge:
    """A typed, directed edge between two nodes."""

    id: str
    source: str
    target: str
    kind: EdgeKind
    label: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "kind": self.kind.value,
            "label": self.label,
        }


@dataclass(frozen=True)
class AccessGraph:
    """Result of a graph build: ordered nodes and edges."""

    nodes: tuple[GraphNode, ...] = ()
    edges: tuple[GraphEdge, ...] = ()
    _by_id: dict[str, GraphNode] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_by_id", {node.id: node for node in self.nodes})

    def node(self, node_id: str) -> GraphNode | None:
        return self._by_id.get(node_id)

    def payload_for(self, node_id: str) -> NodePayload | None:
        """Return a selected node's payload unmodified, for detail display."""
        node = self._by_id.get(node_id)
        return node.payload if node is not None else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
        }
