"""Filter, build and layout composed into one memoized call.

Usage::

    pipeline = GraphPipeline()
    graph = pipeline.render(snapshot, FilterState(filter_type=FilterType.IDENTITY,
                                                  filter_value="payments/api"))

Every stage is a pure function of its inputs, so a render is memoized on
the snapshot fingerprint plus the hashable render parameters. Repeated
renders with an unchanged input return the identical ``AccessGraph``.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Collection, Mapping
from typing import Any

from rbacviz.graph.builder import build_graph
from rbacviz.graph.filters import FilterState, apply_filters
from rbacviz.graph.layout import DEFAULT_FOOTPRINTS, Footprint, layout_graph
from rbacviz.graph.models import AccessGraph
from rbacviz.models.config import GraphConfig, LayoutConfig
from rbacviz.models.resources import ResourceSnapshot
from rbacviz.observability.logging import get_logger
from rbacviz.observability.metrics import pipeline_cache_total, stage_duration_seconds

_logger = get_logger("graph.pipeline")


class GraphPipeline:
    """Bounded LRU memo in front of ``apply_filters`` -> ``build_graph`` -> ``layout_graph``."""

    def __init__(
        self,
        graph_config: GraphConfig | None = None,
        layout_config: LayoutConfig | None = None,
        footprints: Mapping[str, Footprint] | None = None,
        max_entries: int = 32,
    ) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {max_entries}")
        self._graph_config = graph_config or GraphConfig()
        self._layout_config = layout_config or LayoutConfig()
        self._footprints = dict(footprints if footprints is not None else DEFAULT_FOOTPRINTS)
        self._max_entries = max_entries
        self._memo: OrderedDict[tuple[Any, ...], AccessGraph] = OrderedDict()
        # Renders run outside the lock; only memo reads and writes hold it.
        self._lock = threading.Lock()

    @property
    def layout_config(self) -> LayoutConfig:
        return self._layout_config

    def __len__(self) -> int:
        with self._lock:
            return len(self._memo)

    def clear(self) -> None:
        with self._lock:
            self._memo.clear()

    def render(
        self,
        snapshot: ResourceSnapshot,
        state: FilterState | None = None,
        layout: LayoutConfig | None = None,
        footprints: Mapping[str, Footprint] | None = None,
        expanded: Collection[str] = (),
    ) -> AccessGraph:
        """Return the positioned graph for one snapshot and filter state."""
        state = state or FilterState()
        layout = layout or self._layout_config
        table = dict(footprints) if footprints is not None else self._footprints
        expanded_ids = frozenset(expanded)

        key = (
            snapshot.fingerprint,
            state,
            layout,
            tuple(sorted(table.items())),
            expanded_ids,
        )
        with self._lock:
            cached = self._memo.get(key)
            if cached is not None:
                self._memo.move_to_end(key)
        if cached is not None:
            pipeline_cache_total.labels(result="hit").inc()
            return cached
        pipeline_cache_total.labels(result="miss").inc()

        with stage_duration_seconds.labels(stage="filter").time():
            filtered = apply_filters(snapshot, state, self._graph_config)
        with stage_duration_seconds.labels(stage="build").time():
            graph = build_graph(filtered, state, self._graph_config)
        with stage_duration_seconds.labels(stage="layout").time():
            graph = layout_graph(graph, layout, table, expanded_ids)

        with self._lock:
            self._memo[key] = graph
            self._memo.move_to_end(key)
            while len(self._memo) > self._max_entries:
                self._memo.popitem(last=False)
        _logger.debug(
            "graph_rendered",
            context=snapshot.context,
            nodes=len(graph.nodes),
            edges=len(graph.edges),
        )
        return graph


def render_graph(
    snapshot: ResourceSnapshot,
    state: FilterState | None = None,
    layout: LayoutConfig | None = None,
    graph_config: GraphConfig | None = None,
) -> AccessGraph:
    """One-shot render without memoization."""
    filtered = apply_filters(snapshot, state, graph_config)
    graph = build_graph(filtered, state, graph_config)
    return layout_graph(graph, layout)
