"""Layered (Sugiyama-style) layout for access graphs.

Stages, per weakly connected component:

1. ``break_cycles``  -- greedy Eades-Lin-Smyth ordering; returns the index
   set of edges that must be reversed for ranking. The graph's own edge
   list is never touched.
2. ``assign_ranks``  -- longest path from the sources of the DAG view.
3. ``order_layers``  -- barycenter sweeps, bounded number of passes, keeping
   the ordering with the fewest crossings between adjacent layers.
4. Coordinates from per-kind footprints: layer bands along the primary
   axis, cumulative footprints along the secondary axis.

Nodes without edges, and nodes of a component whose layout failed, are
placed in a fixed-column grid below the ranked layout. Every iteration
runs over id-sorted or input-ordered sequences so repeated runs produce
identical coordinates.
"""

from __future__ import annotations

import heapq
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, replace

import networkx as nx

from rbacviz.graph.models import AccessGraph, GraphNode, NodeKind, Position
from rbacviz.models.config import LayoutConfig, LayoutDirection
from rbacviz.observability.logging import get_logger
from rbacviz.observability.metrics import cycle_edges_reversed_total, orphan_nodes_total

_logger = get_logger("graph.layout")


@dataclass(frozen=True)
class Footprint:
    """Rectangle reserved for a node, optionally larger when expanded."""

    width: float
    height: float
    expanded_width: float | None = None
    expanded_height: float | None = None

    def size(self, expanded: bool = False) -> tuple[float, float]:
        if expanded:
            return (self.expanded_width or self.width, self.expanded_height or self.height)
        return (self.width, self.height)


DEFAULT_FOOTPRINTS: dict[str, Footprint] = {
    NodeKind.CLUSTER_ROLE: Footprint(380, 280, 450, 350),
    NodeKind.ROLE: Footprint(340, 240, 400, 320),
    NodeKind.BINDING: Footprint(220, 80),
    NodeKind.SUBJECT: Footprint(300, 180),
    NodeKind.WORKLOAD: Footprint(250, 140),
}

_FALLBACK_FOOTPRINT = Footprint(320, 160)

Edge = tuple[str, str]


# ---------------------------------------------------------------------------
# Cycle breaking
# ---------------------------------------------------------------------------


def _ranking_graph(node_ids: Sequence[str], edges: Sequence[Edge]) -> nx.DiGraph:
    """DiGraph over ``node_ids`` built in id order; self-loops and unknown endpoints are left out."""
    known = set(node_ids)
    graph: nx.DiGraph = nx.DiGraph()
    graph.add_nodes_from(sorted(known))
    graph.add_edges_from(sorted({(u, v) for u, v in edges if u != v and u in known and v in known}))
    return graph


def greedy_fas_ordering(graph: nx.DiGraph) -> list[str]:
    """Eades-Lin-Smyth ordering: sinks to the right, sources to the left.

    When only cycles remain, the node with the largest out-in surplus goes
    left. Ties are broken by node id.
    """
    active: set[str] = set(graph.nodes)
    out_deg: dict[str, int] = dict(graph.out_degree())
    in_deg: dict[str, int] = dict(graph.in_degree())
    sinks = [v for v in graph.nodes if out_deg[v] == 0]
    sources = [v for v in graph.nodes if in_deg[v] == 0]
    heapq.heapify(sinks)
    heapq.heapify(sources)
    left: list[str] = []
    right: list[str] = []

    def remove(v: str) -> None:
        active.discard(v)
        for succ in graph.successors(v):
            if succ in active:
                in_deg[succ] -= 1
                if in_deg[succ] == 0:
                    heapq.heappush(sources, succ)
        for pred in graph.predecessors(v):
            if pred in active:
                out_deg[pred] -= 1
                if out_deg[pred] == 0:
                    heapq.heappush(sinks, pred)

    while active:
        while sinks and sinks[0] not in active:
            heapq.heappop(sinks)
        if sinks:
            v = heapq.heappop(sinks)
            right.append(v)
            remove(v)
            continue
        while sources and sources[0] not in active:
            heapq.heappop(sources)
        if sources:
            v = heapq.heappop(sources)
            left.append(v)
            remove(v)
            continue
        v = min(active, key=lambda n: (in_deg[n] - out_deg[n], n))
        left.append(v)
        remove(v)

    right.reverse()
    return left + right


def break_cycles(node_ids: Sequence[str], edges: Sequence[Edge]) -> frozenset[int]:
    """Return indexes of edges to reverse so the graph becomes acyclic.

    Self-loops and edges with an unknown endpoint are ignored (never
    reversed). Parallel edges share a direction, so they are reversed
    together.
    """
    graph = _ranking_graph(node_ids, edges)
    position = {v: i for i, v in enumerate(greedy_fas_ordering(graph))}
    return frozenset(
        i for i, (u, v) in enumerate(edges) if graph.has_edge(u, v) and position[u] > position[v]
    )


def dag_edges(edges: Sequence[Edge], reversed_edges: Collection[int]) -> list[Edge]:
    """Return the edge list as ranking sees it: self-loops dropped, reversals applied."""
    result = []
    for i, (u, v) in enumerate(edges):
        if u == v:
            continue
        result.append((v, u) if i in reversed_edges else (u, v))
    return result


# ---------------------------------------------------------------------------
# Ranking and ordering
# ---------------------------------------------------------------------------


def assign_ranks(node_ids: Sequence[str], edges: Sequence[Edge]) -> dict[str, int]:
    """Longest-path ranking over an acyclic edge list.

    A node's topological generation is the length of the longest path
    reaching it. Nodes that cannot be ranked (only possible if the edges
    still contain a cycle) are left out of the result.
    """
    graph = _ranking_graph(node_ids, edges)
    ranked: dict[str, int] = {}
    try:
        for rank, generation in enumerate(nx.topological_generations(graph)):
            ranked.update(dict.fromkeys(generation, rank))
    except nx.NetworkXUnfeasible:
        _logger.debug("ranking_cycle_left", unranked=graph.number_of_nodes() - len(ranked))
    return ranked


def _count_inversions(values: list[int]) -> int:
    """Count pairs i < j with values[i] > values[j] using a Fenwick tree."""
    if not values:
        return 0
    size = max(values) + 2
    tree = [0] * size
    inversions = 0
    for seen, value in enumerate(values):
        # Number of already-seen values <= value.
        i, not_greater = value + 1, 0
        while i > 0:
            not_greater += tree[i]
            i -= i & -i
        inversions += seen - not_greater
        i = value + 1
        while i < size:
            tree[i] += 1
            i += i & -i
    return inversions


def count_crossings(layers: Sequence[Sequence[str]], ranks: Mapping[str, int], edges: Sequence[Edge]) -> int:
    """Count edge crossings between adjacent layers."""
    pos = {v: i for layer in layers for i, v in enumerate(layer)}
    by_layer: dict[int, list[tuple[int, int]]] = {}
    for u, v in edges:
        if u not in ranks or v not in ranks:
            continue
        if ranks[v] == ranks[u] + 1:
            by_layer.setdefault(ranks[u], []).append((pos[u], pos[v]))
        elif ranks[u] == ranks[v] + 1:
            by_layer.setdefault(ranks[v], []).append((pos[v], pos[u]))
    total = 0
    for pairs in by_layer.values():
        pairs.sort()
        total += _count_inversions([target for _, target in pairs])
    return total


def order_layers(ranks: Mapping[str, int], edges: Sequence[Edge], passes: int = 4) -> list[list[str]]:
    """Order nodes within each rank with alternating barycenter sweeps."""
    if not ranks:
        return []
    depth = max(ranks.values()) + 1
    layers: list[list[str]] = [[] for _ in range(depth)]
    for v in sorted(ranks):
        layers[ranks[v]].append(v)

    preds: dict[str, list[str]] = {v: [] for v in ranks}
    succs: dict[str, list[str]] = {v: [] for v in ranks}
    for u, v in edges:
        if u in ranks and v in ranks and u != v:
            succs[u].append(v)
            preds[v].append(u)

    def sweep(order: range, neighbours: dict[str, list[str]]) -> None:
        pos = {v: i for layer in layers for i, v in enumerate(layer)}
        for r in order:
            layer = layers[r]

            def barycenter(v: str) -> tuple[float, int]:
                linked = neighbours[v]
                if not linked:
                    return (float(pos[v]), pos[v])
                return (sum(pos[n] for n in linked) / len(linked), pos[v])

            layer.sort(key=barycenter)
            for i, v in enumerate(layer):
                pos[v] = i

    best = [list(layer) for layer in layers]
    best_crossings = count_crossings(layers, ranks, edges)
    for _ in range(passes):
        if best_crossings == 0:
            break
        sweep(range(1, depth), preds)
        sweep(range(depth - 2, -1, -1), succs)
        crossings = count_crossings(layers, ranks, edges)
        if crossings < best_crossings:
            best_crossings = crossings
            best = [list(layer) for layer in layers]
    return best


# ---------------------------------------------------------------------------
# Coordinates
# ---------------------------------------------------------------------------


@dataclass
class _Box:
    node_id: str
    width: float
    height: float
    x: float = 0.0
    y: float = 0.0


def _place_component(
    node_ids: list[str],
    edges: list[Edge],
    sizes: Mapping[str, tuple[float, float]],
    config: LayoutConfig,
) -> tuple[dict[str, _Box], list[str]]:
    """Lay out one component at origin (0, 0).

    Returns the placed boxes and the ids the ranking could not place.
    """
    reversed_edges = break_cycles(node_ids, edges)
    if reversed_edges:
        cycle_edges_reversed_total.inc(len(reversed_edges))
        _logger.debug("cycle_edges_reversed", count=len(reversed_edges))
    acyclic = dag_edges(edges, reversed_edges)
    ranks = assign_ranks(node_ids, acyclic)
    unplaced = [v for v in node_ids if v not in ranks]
    layers = order_layers(ranks, acyclic, config.crossing_passes)

    horizontal = config.direction is LayoutDirection.LEFT_TO_RIGHT

    def primary(v: str) -> float:
        return sizes[v][0] if horizontal else sizes[v][1]

    def secondary(v: str) -> float:
        return sizes[v][1] if horizontal else sizes[v][0]

    spans = [
        sum(secondary(v) for v in layer) + config.node_separation * max(len(layer) - 1, 0) for layer in layers
    ]
    widest = max(spans, default=0.0)

    boxes: dict[str, _Box] = {}
    band_start = 0.0
    for layer, span in zip(layers, spans, strict=True):
        thickness = max((primary(v) for v in layer), default=0.0)
        cursor = (widest - span) / 2
        for v in layer:
            p = band_start + (thickness - primary(v)) / 2
            w, h = sizes[v]
            if horizontal:
                boxes[v] = _Box(v, w, h, x=p, y=cursor)
            else:
                boxes[v] = _Box(v, w, h, x=cursor, y=p)
            cursor += secondary(v) + config.node_separation
        band_start += thickness + config.rank_separation
    return boxes, unplaced


def _components(node_ids: Sequence[str], edges: Sequence[Edge]) -> list[list[str]]:
    """Weakly connected components, each in input order, ordered by first member."""
    order = {v: i for i, v in enumerate(node_ids)}
    graph = _ranking_graph(node_ids, edges)
    components = [sorted(members, key=order.__getitem__) for members in nx.weakly_connected_components(graph)]
    components.sort(key=lambda members: order[members[0]])
    return components


def layout_graph(
    graph: AccessGraph,
    config: LayoutConfig | None = None,
    footprints: Mapping[str, Footprint] | None = None,
    expanded: Collection[str] = (),
) -> AccessGraph:
    """Return ``graph`` with every node positioned; edges are unchanged.

    Never raises for cyclic or disconnected graphs: nodes that cannot be
    ranked fall back to the orphan grid below the ranked layout.
    """
    config = config or LayoutConfig()
    footprints = footprints if footprints is not None else DEFAULT_FOOTPRINTS
    expanded_ids = set(expanded)

    node_ids = [node.id for node in graph.nodes]
    known = set(node_ids)
    sizes = {
        node.id: footprints.get(node.kind, _FALLBACK_FOOTPRINT).size(node.id in expanded_ids) for node in graph.nodes
    }
    edges = [(e.source, e.target) for e in graph.edges if e.source in known and e.target in known]
    linked = {v for u, w in edges if u != w for v in (u, w)}

    orphans = [v for v in node_ids if v not in linked]
    placed: dict[str, _Box] = {}
    offset = config.margin
    for component in _components([v for v in node_ids if v in linked], edges):
        members = set(component)
        component_edges = [(u, w) for u, w in edges if u in members]
        try:
            boxes, unplaced = _place_component(component, component_edges, sizes, config)
        except Exception as exc:  # noqa: BLE001
            _logger.warning("layout_component_failed", nodes=len(component), error=str(exc))
            orphans.extend(component)
            continue
        orphans.extend(unplaced)
        if not boxes:
            continue
        for box in boxes.values():
            if config.direction is LayoutDirection.LEFT_TO_RIGHT:
                box.x += config.margin
                box.y += offset
            else:
                box.x += offset
                box.y += config.margin
        placed.update(boxes)
        if config.direction is LayoutDirection.LEFT_TO_RIGHT:
            offset = max(b.y + b.height for b in boxes.values()) + config.node_separation
        else:
            offset = max(b.x + b.width for b in boxes.values()) + config.node_separation

    orphan_set = set(orphans)
    orphans = [v for v in node_ids if v in orphan_set]
    if orphans:
        orphan_nodes_total.inc(len(orphans))
        _logger.debug("orphan_nodes_placed", count=len(orphans))
        top = config.margin
        if placed:
            top = max(b.y + b.height for b in placed.values()) + config.rank_separation
        cell_w = max(config.orphan_spacing_x, max(sizes[v][0] for v in orphans) + config.node_separation)
        cell_h = max(config.orphan_spacing_y, max(sizes[v][1] for v in orphans) + config.node_separation)
        columns = max(config.orphan_columns, 1)
        for i, v in enumerate(orphans):
            row, col = divmod(i, columns)
            w, h = sizes[v]
            placed[v] = _Box(v, w, h, x=config.margin + col * cell_w, y=top + row * cell_h)

    nodes: list[GraphNode] = [
        replace(node, position=Position(x=placed[node.id].x, y=placed[node.id].y)) for node in graph.nodes
    ]
    return AccessGraph(nodes=tuple(nodes), edges=graph.edges)
