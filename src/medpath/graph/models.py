"""Graph data models."""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from medpath.core.errors import InvalidNodeError
from medpath.core.types import NodeKind
from medpath.referrals.models import Referral


class Node(BaseModel):
    id: int
    kind: NodeKind
    x: float = 0.0
    y: float = 0.0
    name: str = ""
    phone: str = ""
    email: str = ""
    available_beds: int = Field(default=0, ge=0)
    approved: bool = False

    @property
    def is_hospital(self) -> bool:
        return self.kind == NodeKind.HOSPITAL


class Edge(BaseModel):
    id: int
    source_id: int
    target_id: int
    weight: int = Field(ge=0)

    @property
    def pair(self) -> frozenset[int]:
        """Unordered endpoint pair; at most one edge exists per pair."""
        return frozenset((self.source_id, self.target_id))

    def touches(self, node_id: int) -> bool:
        return node_id in (self.source_id, self.target_id)

    def other(self, node_id: int) -> int:
        return self.target_id if node_id == self.source_id else self.source_id


class GraphSnapshot(BaseModel):
    """Immutable point-in-time copy of the graph, ordered by id."""

    model_config = ConfigDict(frozen=True)

    nodes: tuple[Node, ...] = ()
    edges: tuple[Edge, ...] = ()
    version: int = 0

    def node_ids(self) -> list[int]:
        return [n.id for n in self.nodes]

    def get_node(self, node_id: int) -> Node | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def names(self) -> dict[int, str]:
        return {n.id: n.name for n in self.nodes}


class RemovedSet(BaseModel):
    """Everything a cascading node deletion took out of the store."""

    node: Node
    edges: list[Edge] = Field(default_factory=list)
    referrals: list[Referral] = Field(default_factory=list)

    def summary(self) -> dict[str, object]:
        return {
            "node_id": self.node.id,
            "edge_ids": [e.id for e in self.edges],
            "referral_ids": [r.id for r in self.referrals],
        }


def weight_between(a: Node, b: Node, scale: float = 10.0) -> int:
    """Edge weight derived from on-screen distance, rounded half up."""
    distance = math.hypot(a.x - b.x, a.y - b.y)
    return int(math.floor(distance / scale + 0.5))


_DEFAULT_USER_PHONE = "+1 234 567 890"
_DEFAULT_USER_EMAIL = "user@example.com"


def node_fields(
    kind: NodeKind | str,
    node_id: int,
    *,
    name: str | None = None,
    phone: str | None = None,
    email: str | None = None,
    available_beds: int | None = None,
    default_beds: int = 20,
) -> dict[str, Any]:
    """Resolve kind-specific defaults and validate a new node's attributes.

    Hospitals default to ``default_beds`` and reject a non-positive explicit
    bed count. Users always carry zero beds and get placeholder contact
    details.

    Raises:
        InvalidNodeError: On an unknown kind or an invalid bed count.
    """
    try:
        kind = NodeKind(kind)
    except ValueError:
        raise InvalidNodeError(f"Unknown node kind {kind!r}")

    if kind == NodeKind.HOSPITAL:
        if available_beds is None:
            available_beds = default_beds
        elif isinstance(available_beds, bool) or not isinstance(available_beds, int) or available_beds <= 0:
            raise InvalidNodeError(
                f"Hospital bed count must be a positive integer, got {available_beds!r}"
            )
        return {
            "kind": kind,
            "name": name if name is not None else f"Hospital {node_id}",
            "phone": phone or "",
            "email": email or "",
            "available_beds": available_beds,
        }

    return {
        "kind": kind,
        "name": name if name is not None else f"User {node_id}",
        "phone": phone if phone is not None else _DEFAULT_USER_PHONE,
        "email": email if email is not None else _DEFAULT_USER_EMAIL,
        "available_beds": 0,
    }
