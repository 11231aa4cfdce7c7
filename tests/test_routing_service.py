"""Tests for route projection, the path cache and RouteService."""

from __future__ import annotations

import pytest

from medpath.core.config import RoutingConfig
from medpath.core.types import NodeKind
from medpath.routing.cache import PathCache
from medpath.routing.pathfinder import shortest_paths
from medpath.routing.projection import project_routes, route_to
from medpath.routing.service import RouteService


class TestProjection:
    def test_routes_skip_source_and_unreachable(self, graph, chain):
        graph.add_node(NodeKind.HOSPITAL, name="Far")
        snapshot = graph.snapshot()
        routes = project_routes(snapshot, shortest_paths(snapshot, 0))
        assert [r.target_id for r in routes] == [1, 2]

    def test_only_hospitals_are_notifiable(self, graph, chain):
        snapshot = graph.snapshot()
        routes = {r.target_id: r for r in project_routes(snapshot, shortest_paths(snapshot, 0))}
        assert routes[1].notifiable is False
        assert routes[2].notifiable is True

    def test_route_summary_fields(self, graph, chain):
        snapshot = graph.snapshot()
        summary = route_to(snapshot, shortest_paths(snapshot, 0), 2)
        assert summary.target_name == "H"
        assert summary.distance == 8
        assert summary.path == ["A", "B", "H"]
        assert summary.path_text == "A → B → H"
        dumped = summary.model_dump()
        assert dumped["path_text"] == "A → B → H"
        assert dumped["notifiable"] is True

    def test_route_to_unknown_target(self, graph, chain):
        snapshot = graph.snapshot()
        assert route_to(snapshot, shortest_paths(snapshot, 0), 42) is None


class TestPathCache:
    def test_reuses_result_while_version_unchanged(self, graph, chain):
        cache = PathCache()
        first = cache.get_or_compute(graph.snapshot(), 0)
        second = cache.get_or_compute(graph.snapshot(), 0)
        assert second is first
        assert (cache.hits, cache.misses) == (1, 1)

    def test_mutation_invalidates(self, graph, chain):
        cache = PathCache()
        cache.get_or_compute(graph.snapshot(), 0)
        graph.remove_edge(1)
        result = cache.get_or_compute(graph.snapshot(), 0)
        assert not result.reachable(2)
        assert cache.misses == 2

    def test_attribute_edits_keep_cache(self, graph, chain):
        cache = PathCache()
        cache.get_or_compute(graph.snapshot(), 0)
        graph.update_node(2, available_beds=5)
        cache.get_or_compute(graph.snapshot(), 0)
        assert cache.hits == 1

    def test_cached_result_is_read_only(self, graph, chain):
        cache = PathCache()
        snapshot = graph.snapshot()
        first = cache.get_or_compute(snapshot, 0)
        with pytest.raises(TypeError):
            first.dist[2] = 0
        with pytest.raises(TypeError):
            first.prev[2] = None
        again = cache.get_or_compute(snapshot, 0)
        assert again.dist[2] == 8
        assert again.prev[2] == 1

    def test_evicts_least_recently_used(self, graph, chain):
        cache = PathCache(max_sources=2)
        snapshot = graph.snapshot()
        cache.get_or_compute(snapshot, 0)
        cache.get_or_compute(snapshot, 1)
        cache.get_or_compute(snapshot, 0)
        cache.get_or_compute(snapshot, 2)
        assert len(cache) == 2
        cache.get_or_compute(snapshot, 0)
        assert cache.hits == 2
        cache.get_or_compute(snapshot, 1)
        assert cache.misses == 4


class TestRouteService:
    def test_path_to(self, graph, chain):
        service = RouteService(graph)
        summary = service.path_to(0, 2)
        assert summary.distance == 8
        graph.remove_node(1)
        assert service.path_to(0, 2) is None

    def test_routes(self, graph, chain):
        result, routes = RouteService(graph).routes(0)
        assert result.dist[2] == 8
        assert len(routes) == 2

    def test_cache_can_be_disabled(self, graph, chain):
        service = RouteService(graph, config=RoutingConfig(cache_enabled=False))
        assert service.cache is None
        assert service.shortest_paths(0) is not service.shortest_paths(0)
