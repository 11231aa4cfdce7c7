"""Tests for YAML graph layouts."""

from __future__ import annotations

from pathlib import Path

import pytest

import medpath
from medpath.core.types import NodeKind
from medpath.graph.layout import _DEFAULT_LAYOUT_PATH, apply_layout, load_layout


class TestLoadLayout:
    def test_demo_layout_ships_inside_the_package(self):
        package_dir = Path(medpath.__file__).resolve().parent
        assert _DEFAULT_LAYOUT_PATH.is_file()
        assert _DEFAULT_LAYOUT_PATH.is_relative_to(package_dir)

    def test_bundled_demo_layout(self):
        layout = load_layout()
        keys = [n.key for n in layout.nodes]
        assert "st_mary" in keys
        assert len(layout.edges) == 7
        weighted = [e for e in layout.edges if e.weight is not None]
        assert {(e.source, e.target, e.weight) for e in weighted} == {
            ("alice", "bob", 35),
            ("northside", "riverside", 40),
        }

    def test_unknown_label(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text(
            "nodes:\n"
            "  a: {kind: user}\n"
            "edges:\n"
            "  - [a, b]\n"
        )
        with pytest.raises(ValueError, match="'b'"):
            load_layout(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yml"
        path.write_text("")
        layout = load_layout(path)
        assert layout.nodes == []
        assert layout.edges == []


class TestApplyLayout:
    def test_creates_nodes_and_edges(self, graph):
        ids = apply_layout(graph, load_layout())
        assert graph.node_count == 6
        assert graph.edge_count == 7

        st_mary = graph.get_node(ids["st_mary"])
        assert st_mary.kind == NodeKind.HOSPITAL
        assert st_mary.available_beds == 3
        assert graph.get_node(ids["riverside"]).available_beds == 20
        assert graph.get_node(ids["carmen"]).email == "user@example.com"

    def test_explicit_and_derived_weights(self, graph):
        ids = apply_layout(graph, load_layout())
        weights = {frozenset((e.source_id, e.target_id)): e.weight for e in graph.list_edges()}
        assert weights[frozenset((ids["alice"], ids["bob"]))] == 35
        # alice (120, 140) to st_mary (420, 260): hypot 323.1 -> 32
        assert weights[frozenset((ids["alice"], ids["st_mary"]))] == 32
