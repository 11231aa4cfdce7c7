"""Protocol definitions for the graph and referral repositories.

The in-memory implementations (``GraphStore``, ``RequestWorkflow``) return
values directly; the SQL implementations return awaitables. Route handlers
wrap every call in :func:`medpath.repositories.resolve`.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from medpath.core.types import NodeKind, ReferralStatus
from medpath.graph.models import Edge, GraphSnapshot, Node, RemovedSet
from medpath.referrals.models import BulkApprovalResult, Referral


@runtime_checkable
class GraphRepository(Protocol):
    """Protocol for node and edge storage with cascading deletes."""

    def add_node(self, kind: NodeKind | str, **attrs: Any) -> Node: ...

    def get_node(self, node_id: int) -> Node | None: ...

    def list_nodes(self, kind: NodeKind | None = None) -> list[Node]: ...

    def update_node(self, node_id: int, **changes: Any) -> Node: ...

    def set_approved(self, node_id: int, approved: bool) -> Node: ...

    def remove_node(self, node_id: int, actor: str = "system") -> RemovedSet: ...

    def clear(self, actor: str = "system") -> None: ...

    def add_edge(self, source_id: int, target_id: int, weight: int | None = None) -> Edge: ...

    def list_edges(self, node_id: int | None = None) -> list[Edge]: ...

    def remove_edge(self, edge_id: int) -> Edge: ...

    def snapshot(self) -> GraphSnapshot: ...


@runtime_checkable
class ReferralRepository(Protocol):
    """Protocol for the referral workflow."""

    def submit(self, source_id: int, target_id: int, actor: str = "user") -> Referral: ...

    def approve(self, referral_id: str, approver: str = "admin") -> Referral: ...

    def reject(self, referral_id: str, approver: str = "admin") -> Referral: ...

    def approve_all_pending(
        self, hospital_id: int, approver: str = "admin"
    ) -> BulkApprovalResult: ...

    def get(self, referral_id: str) -> Referral: ...

    def list(
        self,
        status: ReferralStatus | None = None,
        hospital_id: int | None = None,
        source_id: int | None = None,
    ) -> list[Referral]: ...
