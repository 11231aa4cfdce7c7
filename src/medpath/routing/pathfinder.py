"""Single-source shortest paths over a graph snapshot.

Dense-array Dijkstra: each round scans every unvisited node for the
minimum tentative distance, giving O(V²) per query. Graphs here are
small enough for that to be fine.

Preconditions, guaranteed by ``GraphStore`` and not re-checked here:
edges have non-negative weights and no edge connects a node to itself.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from medpath.core.errors import InvalidSourceError
from medpath.graph.models import GraphSnapshot

INFINITY = math.inf


@dataclass(frozen=True)
class ShortestPaths:
    """Distances and predecessor links from one source.

    ``dist`` and ``prev`` are read-only views; cached results are shared
    between callers.
    """

    source_id: int
    dist: Mapping[int, float] = field(default_factory=lambda: MappingProxyType({}))
    prev: Mapping[int, int | None] = field(default_factory=lambda: MappingProxyType({}))
    version: int = 0

    def reachable(self, node_id: int) -> bool:
        return self.dist.get(node_id, INFINITY) != INFINITY


def shortest_paths(snapshot: GraphSnapshot, source_id: int) -> ShortestPaths:
    """Compute ``dist`` and ``prev`` for every node from ``source_id``.

    Ties between equal tentative distances go to the lowest node id.

    Raises:
        InvalidSourceError: If ``source_id`` is not in the snapshot.
    """
    order = snapshot.node_ids()
    if source_id not in order:
        raise InvalidSourceError(f"Source node {source_id} not found")

    adjacency: dict[int, list[tuple[int, int]]] = {node_id: [] for node_id in order}
    for edge in snapshot.edges:
        adjacency[edge.source_id].append((edge.target_id, edge.weight))
        adjacency[edge.target_id].append((edge.source_id, edge.weight))

    dist: dict[int, float] = {node_id: INFINITY for node_id in order}
    prev: dict[int, int | None] = {node_id: None for node_id in order}
    visited: set[int] = set()
    dist[source_id] = 0

    for _ in range(len(order)):
        u = None
        for node_id in order:
            if node_id not in visited and (u is None or dist[node_id] < dist[u]):
                u = node_id
        if u is None or dist[u] == INFINITY:
            break
        visited.add(u)

        for v, weight in adjacency[u]:
            if v in visited:
                continue
            alt = dist[u] + weight
            if alt < dist[v]:
                dist[v] = alt
                prev[v] = u

    return ShortestPaths(
        source_id=source_id,
        dist=MappingProxyType(dist),
        prev=MappingProxyType(prev),
        version=snapshot.version,
    )


def path_ids(result: ShortestPaths, target_id: int) -> list[int] | None:
    """Node ids from the source to ``target_id``, or None if unreachable."""
    if not result.reachable(target_id):
        return None
    path = [target_id]
    current = result.prev.get(target_id)
    while current is not None:
        path.append(current)
        current = result.prev.get(current)
    path.reverse()
    return path


def reconstruct_path(
    snapshot: GraphSnapshot, result: ShortestPaths, target_id: int
) -> list[str] | None:
    """Node names from the source to ``target_id``, or None if unreachable."""
    ids = path_ids(result, target_id)
    if ids is None:
        return None
    names = snapshot.names()
    return [names[node_id] for node_id in ids]


def path_weight(snapshot: GraphSnapshot, ids: list[int]) -> float:
    """Sum of edge weights along consecutive ids in ``ids``."""
    weights = {e.pair: e.weight for e in snapshot.edges}
    return sum(weights[frozenset(step)] for step in zip(ids, ids[1:]))
