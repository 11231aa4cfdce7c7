"""Routing facade combining the graph store, path cache and projection."""

from __future__ import annotations

from typing import Protocol

from medpath.core.config import RoutingConfig
from medpath.graph.models import GraphSnapshot
from medpath.routing.cache import PathCache
from medpath.routing.pathfinder import ShortestPaths, shortest_paths
from medpath.routing.projection import RouteSummary, project_routes, route_to


class SnapshotSource(Protocol):
    def snapshot(self) -> GraphSnapshot: ...


class RouteService:
    """Answers shortest-path queries against the current graph.

    Results are cached per source and reused until the graph topology
    changes. Set ``RoutingConfig.cache_enabled`` to False to recompute on
    every call.
    """

    def __init__(self, graph: SnapshotSource, config: RoutingConfig | None = None) -> None:
        self._graph = graph
        self._config = config or RoutingConfig()
        self._cache = PathCache(self._config.max_cached_sources) if self._config.cache_enabled else None

    @property
    def cache(self) -> PathCache | None:
        return self._cache

    def compute(self, snapshot: GraphSnapshot, source_id: int) -> ShortestPaths:
        if self._cache is None:
            return shortest_paths(snapshot, source_id)
        return self._cache.get_or_compute(snapshot, source_id)

    def shortest_paths(self, source_id: int) -> ShortestPaths:
        return self.compute(self._graph.snapshot(), source_id)

    def path_to(self, source_id: int, target_id: int) -> RouteSummary | None:
        """Route from source to target, or None when the target is unreachable."""
        snapshot = self._graph.snapshot()
        return route_to(snapshot, self.compute(snapshot, source_id), target_id)

    def routes(self, source_id: int) -> tuple[ShortestPaths, list[RouteSummary]]:
        snapshot = self._graph.snapshot()
        result = self.compute(snapshot, source_id)
        return result, project_routes(snapshot, result)
