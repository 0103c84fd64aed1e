"""Access-relationship graph over RBAC resources.

Roles, bindings, subjects and workloads become typed nodes linked by
``bound_by``, ``grants``, ``runs_as`` and ``aggregates`` edges, then
positioned by a layered layout.
"""

from rbacviz.graph.builder import build_graph
from rbacviz.graph.filters import FilterState, FilterType, apply_filters
from rbacviz.graph.index import ResourceIndex, build_index
from rbacviz.graph.layout import DEFAULT_FOOTPRINTS, Footprint, layout_graph
from rbacviz.graph.models import AccessGraph, EdgeKind, GraphEdge, GraphNode, NodeKind
from rbacviz.graph.pipeline import GraphPipeline, render_graph

__all__ = [
    "DEFAULT_FOOTPRINTS",
    "AccessGraph",
    "EdgeKind",
    "FilterState",
    "FilterType",
    "Footprint",
    "GraphEdge",
    "GraphNode",
    "GraphPipeline",
    "NodeKind",
    "ResourceIndex",
    "apply_filters",
    "build_graph",
    "build_index",
    "layout_graph",
    "render_graph",
]
