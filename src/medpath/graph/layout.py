"""Load graph layouts from YAML and apply them to a graph store."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from medpath.core.types import NodeKind
from medpath.graph.store import GraphStore

_DEFAULT_LAYOUT_PATH = Path(__file__).resolve().parent / "demo_graph.yml"


class LayoutNode(BaseModel):
    key: str
    kind: NodeKind
    x: float = 0.0
    y: float = 0.0
    name: str | None = None
    phone: str | None = None
    email: str | None = None
    beds: int | None = None


class LayoutEdge(BaseModel):
    source: str
    target: str
    weight: int | None = None


class GraphLayout(BaseModel):
    nodes: list[LayoutNode] = Field(default_factory=list)
    edges: list[LayoutEdge] = Field(default_factory=list)

    def node_payload(self, node: LayoutNode) -> dict[str, Any]:
        """Keyword arguments for ``add_node`` (and the POST /api/nodes body)."""
        return {
            "kind": node.kind,
            "x": node.x,
            "y": node.y,
            "name": node.name,
            "phone": node.phone,
            "email": node.email,
            "available_beds": node.beds,
        }


def load_layout(path: str | Path | None = None) -> GraphLayout:
    """Parse a layout file.

    Nodes are a mapping of label to attributes; edges are
    ``[source, target]`` or ``[source, target, weight]`` lists.

    Raises:
        ValueError: If an edge references an undefined node label.
    """
    with open(Path(path) if path else _DEFAULT_LAYOUT_PATH) as fh:
        data = yaml.safe_load(fh) or {}

    nodes = [LayoutNode(key=key, **attrs) for key, attrs in (data.get("nodes") or {}).items()]
    keys = {n.key for n in nodes}
    edges = []
    for entry in data.get("edges") or []:
        source, target, *rest = entry
        for label in (source, target):
            if label not in keys:
                raise ValueError(f"Edge references unknown node {label!r}")
        edges.append(LayoutEdge(source=source, target=target, weight=rest[0] if rest else None))
    return GraphLayout(nodes=nodes, edges=edges)


def apply_layout(graph: GraphStore, layout: GraphLayout) -> dict[str, int]:
    """Create the layout's nodes and edges; returns label -> node id."""
    ids: dict[str, int] = {}
    for node in layout.nodes:
        payload = layout.node_payload(node)
        kind = payload.pop("kind")
        ids[node.key] = graph.add_node(kind, **payload).id
    for edge in layout.edges:
        graph.add_edge(ids[edge.source], ids[edge.target], edge.weight)
    return ids
