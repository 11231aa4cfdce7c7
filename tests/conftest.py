"""Shared test fixtures and helpers."""

from __future__ import annotations

import pytest

from medpath.core.config import AuditConfig, DBConfig, Settings
from medpath.core.types import NodeKind
from medpath.graph.store import GraphStore


def build_chain(graph: GraphStore) -> tuple[int, int, int]:
    """A(0) -5- B(1) -3- H(2, one bed). Returns the three node ids."""
    a = graph.add_node(NodeKind.USER, name="A").id
    b = graph.add_node(NodeKind.USER, name="B").id
    h = graph.add_node(NodeKind.HOSPITAL, name="H", available_beds=1).id
    graph.add_edge(a, b, 5)
    graph.add_edge(b, h, 3)
    return a, b, h


@pytest.fixture
def graph() -> GraphStore:
    return GraphStore()


@pytest.fixture
def chain(graph: GraphStore) -> tuple[int, int, int]:
    return build_chain(graph)


@pytest.fixture
def settings(tmp_path) -> Settings:
    """In-memory settings with the audit log under a temp directory."""
    return Settings(
        audit=AuditConfig(log_dir=str(tmp_path / "audit")),
        db=DBConfig(database_url=None),
    )
