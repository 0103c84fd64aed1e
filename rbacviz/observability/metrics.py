"""Prometheus metrics for graph construction and layout."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

graph_builds_total = Counter(
    "rbacviz_graph_builds_total",
    "Number of access graphs built from a filtered snapshot.",
)

records_dropped_total = Counter(
    "rbacviz_records_dropped_total",
    "Malformed records dropped while loading or building.",
    ["kind"],
)

implicit_subjects_total = Counter(
    "rbacviz_implicit_subjects_total",
    "Service account nodes synthesized for workloads no binding references.",
)

cycle_edges_reversed_total = Counter(
    "rbacviz_cycle_edges_reversed_total",
    "Edges reversed by the cycle-breaking pre-pass of the layout.",
)

orphan_nodes_total = Counter(
    "rbacviz_orphan_nodes_total",
    "Nodes placed in the fallback grid instead of a ranked layer.",
)

pipeline_cache_total = Counter(
    "rbacviz_pipeline_cache_total",
    "Pipeline memo lookups.",
    ["result"],
)

stage_duration_seconds = Histogram(
    "rbacviz_stage_duration_seconds",
    "Wall-clock duration of each pipeline stage.",
    ["stage"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
)
