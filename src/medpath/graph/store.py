"""In-memory graph store with referential integrity over nodes, edges and referrals."""

from __future__ import annotations

import logging
import threading
from typing import Any

from medpath.core.config import GraphConfig
from medpath.core.errors import (
    DuplicateEdgeError,
    EdgeNotFoundError,
    InvalidEdgeError,
    InvalidNodeError,
    NodeNotFoundError,
    UnknownNodeError,
)
from medpath.core.types import AuditEvent, NodeKind
from medpath.governance.audit import AuditLogger
from medpath.graph.models import (
    Edge,
    GraphSnapshot,
    Node,
    RemovedSet,
    node_fields,
    weight_between,
)
from medpath.referrals.store import ReferralStore

logger = logging.getLogger(__name__)


class GraphStore:
    """In-memory graph of user and hospital nodes joined by undirected edges.

    Nodes and edges are keyed by stable integer ids drawn from monotonically
    increasing counters, so deletions never shift other ids. The store also
    owns the referral collection so that deleting a node removes every edge
    and referral touching it in one step.

    A single re-entrant lock guards all three collections. ``RequestWorkflow``
    acquires the same lock (see :attr:`lock`) around bed reservations.
    """

    def __init__(
        self,
        config: GraphConfig | None = None,
        referrals: ReferralStore | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._config = config or GraphConfig()
        self._referrals = referrals or ReferralStore()
        self._audit = audit_logger
        self._lock = threading.RLock()
        self._nodes: dict[int, Node] = {}
        self._edges: dict[int, Edge] = {}
        self._next_node_id = 0
        self._next_edge_id = 0
        self._version = 0

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def referrals(self) -> ReferralStore:
        return self._referrals

    @property
    def version(self) -> int:
        """Topology version; bumped whenever a node or edge is added or removed."""
        return self._version

    # --- Nodes ---

    def add_node(
        self,
        kind: NodeKind | str,
        *,
        x: float = 0.0,
        y: float = 0.0,
        name: str | None = None,
        phone: str | None = None,
        email: str | None = None,
        available_beds: int | None = None,
        approved: bool = False,
    ) -> Node:
        """Create a node with a fresh id and kind-specific defaults.

        Raises:
            InvalidNodeError: If ``kind`` is unknown or a hospital is given a
                non-positive bed count.
        """
        with self._lock:
            node_id = self._next_node_id
            node = Node(
                id=node_id,
                x=x,
                y=y,
                approved=approved,
                **node_fields(
                    kind,
                    node_id,
                    name=name,
                    phone=phone,
                    email=email,
                    available_beds=available_beds,
                    default_beds=self._config.default_hospital_beds,
                ),
            )
            self._nodes[node_id] = node
            self._next_node_id += 1
            self._version += 1
            return node.model_copy()

    def get_node(self, node_id: int) -> Node | None:
        with self._lock:
            node = self._nodes.get(node_id)
            return node.model_copy() if node else None

    def list_nodes(self, kind: NodeKind | None = None) -> list[Node]:
        with self._lock:
            return [
                n.model_copy() for _, n in sorted(self._nodes.items())
                if kind is None or n.kind == kind
            ]

    def update_node(
        self,
        node_id: int,
        *,
        name: str | None = None,
        phone: str | None = None,
        email: str | None = None,
        available_beds: int | None = None,
    ) -> Node:
        """Edit a node's name, contact details or (hospitals only) bed count."""
        with self._lock:
            node = self._require_node(node_id)
            if available_beds is not None:
                if not node.is_hospital:
                    raise InvalidNodeError(f"Node {node_id} is not a hospital; it has no beds")
                if available_beds < 0:
                    raise InvalidNodeError("Bed count cannot be negative")
                node.available_beds = available_beds
            if name is not None:
                node.name = name
            if phone is not None:
                node.phone = phone
            if email is not None:
                node.email = email
            return node.model_copy()

    def set_approved(self, node_id: int, approved: bool) -> Node:
        with self._lock:
            node = self._require_node(node_id)
            node.approved = approved
            return node.model_copy()

    def remove_node(self, node_id: int, actor: str = "system") -> RemovedSet:
        """Delete a node together with every edge and referral touching it.

        Raises:
            NodeNotFoundError: If the node does not exist.
        """
        with self._lock:
            node = self._require_node(node_id)
            del self._nodes[node_id]
            edges = [e for e in self._edges.values() if e.touches(node_id)]
            for edge in edges:
                del self._edges[edge.id]
            referrals = self._referrals.remove_for_node(node_id)
            self._version += 1

        removed = RemovedSet(node=node, edges=edges, referrals=referrals)
        logger.info(
            "Removed node %s with %d edge(s) and %d referral(s)",
            node_id, len(edges), len(referrals),
        )
        self._log_audit(actor, "node_removed", f"node:{node_id}", removed.summary())
        return removed

    def clear(self, actor: str = "system") -> None:
        """Remove every node, edge and referral."""
        with self._lock:
            counts = {
                "nodes": len(self._nodes),
                "edges": len(self._edges),
                "referrals": self._referrals.count,
            }
            self._nodes.clear()
            self._edges.clear()
            self._referrals.clear()
            self._version += 1
        logger.info("Cleared graph: %s", counts)
        self._log_audit(actor, "graph_cleared", "graph", counts)

    # --- Edges ---

    def add_edge(self, source_id: int, target_id: int, weight: int | None = None) -> Edge:
        """Connect two nodes. The weight defaults to their scaled distance.

        Raises:
            UnknownNodeError: If either endpoint does not exist.
            InvalidEdgeError: For self loops or negative weights.
            DuplicateEdgeError: If the unordered pair is already connected.
        """
        if source_id == target_id:
            raise InvalidEdgeError(f"Edge endpoints must differ (got {source_id} twice)")
        if weight is not None and weight < 0:
            raise InvalidEdgeError(f"Edge weight must be non-negative, got {weight}")

        with self._lock:
            for endpoint in (source_id, target_id):
                if endpoint not in self._nodes:
                    raise UnknownNodeError(f"Node {endpoint} not found")
            pair = frozenset((source_id, target_id))
            if any(e.pair == pair for e in self._edges.values()):
                raise DuplicateEdgeError(
                    f"Edge between {source_id} and {target_id} already exists"
                )
            if weight is None:
                weight = weight_between(
                    self._nodes[source_id], self._nodes[target_id], self._config.weight_scale
                )
            edge = Edge(id=self._next_edge_id, source_id=source_id, target_id=target_id, weight=weight)
            self._edges[edge.id] = edge
            self._next_edge_id += 1
            self._version += 1
            return edge.model_copy()

    def get_edge(self, edge_id: int) -> Edge | None:
        with self._lock:
            edge = self._edges.get(edge_id)
            return edge.model_copy() if edge else None

    def list_edges(self, node_id: int | None = None) -> list[Edge]:
        with self._lock:
            return [
                e.model_copy() for _, e in sorted(self._edges.items())
                if node_id is None or e.touches(node_id)
            ]

    def remove_edge(self, edge_id: int) -> Edge:
        with self._lock:
            edge = self._edges.pop(edge_id, None)
            if edge is None:
                raise EdgeNotFoundError(f"Edge {edge_id} not found")
            self._version += 1
            return edge

    # --- Snapshots ---

    def snapshot(self) -> GraphSnapshot:
        """Copy nodes and edges into an immutable snapshot, ordered by id."""
        with self._lock:
            return GraphSnapshot(
                nodes=tuple(n.model_copy() for _, n in sorted(self._nodes.items())),
                edges=tuple(e.model_copy() for _, e in sorted(self._edges.items())),
                version=self._version,
            )

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def edge_count(self) -> int:
        return len(self._edges)

    # --- Internal ---

    def _require_node(self, node_id: int) -> Node:
        """Return the stored (mutable) node. Caller must hold the lock."""
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(f"Node {node_id} not found")
        return node

    def reserve_bed(self, hospital_id: int) -> int | None:
        """Decrement a hospital's bed count if it has one free.

        Returns the remaining count, or ``None`` if no bed was available.
        Caller must hold the lock.
        """
        node = self._require_node(hospital_id)
        if node.available_beds <= 0:
            return None
        node.available_beds -= 1
        return node.available_beds

    def _log_audit(self, actor: str, action: str, resource: str, details: dict[str, Any]) -> None:
        if self._audit is None:
            return
        self._audit.log(AuditEvent(actor=actor, action=action, resource=resource, details=details))
