"""SQL graph repository.

Edges are stored once with a normalized ``(pair_low, pair_high)`` column pair
under a unique constraint, so a duplicate undirected edge is rejected by the
database as well as by the explicit check. Cascading node deletion runs in a
single transaction.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from medpath.core.config import GraphConfig
from medpath.core.errors import (
    DuplicateEdgeError,
    EdgeNotFoundError,
    InvalidEdgeError,
    InvalidNodeError,
    NodeNotFoundError,
    UnknownNodeError,
)
from medpath.core.types import AuditEvent, NodeKind, ReferralStatus
from medpath.db.engine import DatabaseManager
from medpath.db.models import GraphEdgeRow, GraphNodeRow, GraphRevisionRow, ReferralRow
from medpath.governance.audit import AuditLogger
from medpath.graph.models import Edge, GraphSnapshot, Node, RemovedSet, node_fields, weight_between
from medpath.referrals.models import Referral

logger = logging.getLogger(__name__)

_REVISION_ROW_ID = 1
_SNAPSHOT_ATTEMPTS = 5


class SqlGraphRepository:
    """SQL-backed node and edge storage."""

    def __init__(
        self,
        db: DatabaseManager,
        config: GraphConfig | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._db = db
        self._config = config or GraphConfig()
        self._audit = audit_logger

    # --- Nodes ---

    async def add_node(
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
        # Validate before touching the database; the id is only known after flush.
        node_fields(kind, 0, available_beds=available_beds, default_beds=self._config.default_hospital_beds)

        async with self._db.session() as db:
            row = GraphNodeRow(kind=NodeKind(kind).value, x=x, y=y, approved=approved)
            db.add(row)
            await db.flush()
            fields = node_fields(
                kind,
                row.id,
                name=name,
                phone=phone,
                email=email,
                available_beds=available_beds,
                default_beds=self._config.default_hospital_beds,
            )
            row.name = fields["name"]
            row.phone = fields["phone"]
            row.email = fields["email"]
            row.available_beds = fields["available_beds"]
            await self._bump_revision(db)
            await db.commit()
            return self._row_to_node(row)

    async def get_node(self, node_id: int) -> Node | None:
        async with self._db.session() as db:
            row = await db.get(GraphNodeRow, node_id)
            if row is None:
                return None
            return self._row_to_node(row)

    async def list_nodes(self, kind: NodeKind | None = None) -> list[Node]:
        async with self._db.session() as db:
            stmt = select(GraphNodeRow).order_by(GraphNodeRow.id)
            if kind:
                stmt = stmt.where(GraphNodeRow.kind == NodeKind(kind).value)
            result = await db.execute(stmt)
            return [self._row_to_node(r) for r in result.scalars().all()]

    async def update_node(
        self,
        node_id: int,
        *,
        name: str | None = None,
        phone: str | None = None,
        email: str | None = None,
        available_beds: int | None = None,
    ) -> Node:
        async with self._db.session() as db:
            row = await self._require_node(db, node_id)
            if available_beds is not None:
                if row.kind != NodeKind.HOSPITAL.value:
                    raise InvalidNodeError(f"Node {node_id} is not a hospital; it has no beds")
                if available_beds < 0:
                    raise InvalidNodeError("Bed count cannot be negative")
                row.available_beds = available_beds
            if name is not None:
                row.name = name
            if phone is not None:
                row.phone = phone
            if email is not None:
                row.email = email
            await db.commit()
            return self._row_to_node(row)

    async def set_approved(self, node_id: int, approved: bool) -> Node:
        async with self._db.session() as db:
            row = await self._require_node(db, node_id)
            row.approved = approved
            await db.commit()
            return self._row_to_node(row)

    async def remove_node(self, node_id: int, actor: str = "system") -> RemovedSet:
        async with self._db.session() as db:
            row = await self._require_node(db, node_id)
            node = self._row_to_node(row)

            edge_rows = (await db.execute(
                select(GraphEdgeRow).where(
                    or_(GraphEdgeRow.source_id == node_id, GraphEdgeRow.target_id == node_id)
                ).order_by(GraphEdgeRow.id)
            )).scalars().all()
            referral_rows = (await db.execute(
                select(ReferralRow).where(
                    or_(ReferralRow.source_id == node_id, ReferralRow.target_id == node_id)
                )
            )).scalars().all()
            edges = [self._row_to_edge(r) for r in edge_rows]
            referrals = [row_to_referral(r) for r in referral_rows]

            await db.execute(
                delete(ReferralRow).where(
                    or_(ReferralRow.source_id == node_id, ReferralRow.target_id == node_id)
                )
            )
            await db.execute(
                delete(GraphEdgeRow).where(
                    or_(GraphEdgeRow.source_id == node_id, GraphEdgeRow.target_id == node_id)
                )
            )
            await db.delete(row)
            await self._bump_revision(db)
            await db.commit()

        removed = RemovedSet(node=node, edges=edges, referrals=referrals)
        logger.info(
            "Removed node %s with %d edge(s) and %d referral(s)",
            node_id, len(edges), len(referrals),
        )
        if self._audit is not None:
            self._audit.log(AuditEvent(
                actor=actor, action="node_removed", resource=f"node:{node_id}",
                details=removed.summary(),
            ))
        return removed

    async def clear(self, actor: str = "system") -> None:
        async with self._db.session() as db:
            await db.execute(delete(ReferralRow))
            await db.execute(delete(GraphEdgeRow))
            await db.execute(delete(GraphNodeRow))
            await self._bump_revision(db)
            await db.commit()
        logger.info("Cleared graph")
        if self._audit is not None:
            self._audit.log(AuditEvent(actor=actor, action="graph_cleared", resource="graph"))

    # --- Edges ---

    async def add_edge(self, source_id: int, target_id: int, weight: int | None = None) -> Edge:
        if source_id == target_id:
            raise InvalidEdgeError(f"Edge endpoints must differ (got {source_id} twice)")
        if weight is not None and weight < 0:
            raise InvalidEdgeError(f"Edge weight must be non-negative, got {weight}")

        low, high = sorted((source_id, target_id))
        async with self._db.session() as db:
            source = await db.get(GraphNodeRow, source_id)
            target = await db.get(GraphNodeRow, target_id)
            for endpoint, found in ((source_id, source), (target_id, target)):
                if found is None:
                    raise UnknownNodeError(f"Node {endpoint} not found")

            existing = await db.execute(
                select(GraphEdgeRow.id).where(
                    GraphEdgeRow.pair_low == low, GraphEdgeRow.pair_high == high
                )
            )
            if existing.first() is not None:
                raise DuplicateEdgeError(
                    f"Edge between {source_id} and {target_id} already exists"
                )

            if weight is None:
                weight = weight_between(
                    self._row_to_node(source), self._row_to_node(target), self._config.weight_scale
                )
            row = GraphEdgeRow(
                source_id=source_id,
                target_id=target_id,
                weight=weight,
                pair_low=low,
                pair_high=high,
            )
            db.add(row)
            try:
                await db.flush()
            except IntegrityError:
                await db.rollback()
                raise DuplicateEdgeError(
                    f"Edge between {source_id} and {target_id} already exists"
                )
            await self._bump_revision(db)
            await db.commit()
            return self._row_to_edge(row)

    async def get_edge(self, edge_id: int) -> Edge | None:
        async with self._db.session() as db:
            row = await db.get(GraphEdgeRow, edge_id)
            return self._row_to_edge(row) if row else None

    async def list_edges(self, node_id: int | None = None) -> list[Edge]:
        async with self._db.session() as db:
            stmt = select(GraphEdgeRow).order_by(GraphEdgeRow.id)
            if node_id is not None:
                stmt = stmt.where(
                    or_(GraphEdgeRow.source_id == node_id, GraphEdgeRow.target_id == node_id)
                )
            result = await db.execute(stmt)
            return [self._row_to_edge(r) for r in result.scalars().all()]

    async def remove_edge(self, edge_id: int) -> Edge:
        async with self._db.session() as db:
            row = await db.get(GraphEdgeRow, edge_id)
            if row is None:
                raise EdgeNotFoundError(f"Edge {edge_id} not found")
            edge = self._row_to_edge(row)
            await db.delete(row)
            await self._bump_revision(db)
            await db.commit()
            return edge

    # --- Snapshots ---

    async def snapshot(self) -> GraphSnapshot:
        """Read nodes, edges and the revision as one consistent view.

        The revision is read before and after the rows. If a topology change
        committed in between, the read is repeated; a snapshot always carries
        a version no newer than its rows.
        """
        for _ in range(_SNAPSHOT_ATTEMPTS):
            async with self._db.session() as db:
                if self._db.dialect == "postgresql":
                    await db.connection(execution_options={"isolation_level": "REPEATABLE READ"})
                before = await self._read_version(db)
                node_rows = (await db.execute(
                    select(GraphNodeRow).order_by(GraphNodeRow.id)
                )).scalars().all()
                edge_rows = (await db.execute(
                    select(GraphEdgeRow).order_by(GraphEdgeRow.id)
                )).scalars().all()
                after = await self._read_version(db)
            if before == after:
                break
            logger.debug("Graph changed during snapshot (revision %d -> %d); retrying", before, after)
        return GraphSnapshot(
            nodes=tuple(self._row_to_node(r) for r in node_rows),
            edges=tuple(self._row_to_edge(r) for r in edge_rows),
            version=before,
        )

    async def version(self) -> int:
        async with self._db.session() as db:
            return await self._read_version(db)

    # --- Internal ---

    @staticmethod
    async def _read_version(db: AsyncSession) -> int:
        result = await db.execute(
            select(GraphRevisionRow.version).where(GraphRevisionRow.id == _REVISION_ROW_ID)
        )
        return result.scalar_one_or_none() or 0

    @staticmethod
    async def _require_node(db: AsyncSession, node_id: int) -> GraphNodeRow:
        row = await db.get(GraphNodeRow, node_id)
        if row is None:
            raise NodeNotFoundError(f"Node {node_id} not found")
        return row

    @staticmethod
    async def _bump_revision(db: AsyncSession) -> None:
        result = await db.execute(
            update(GraphRevisionRow)
            .where(GraphRevisionRow.id == _REVISION_ROW_ID)
            .values(version=GraphRevisionRow.version + 1)
        )
        if result.rowcount == 0:
            db.add(GraphRevisionRow(id=_REVISION_ROW_ID, version=1))

    @staticmethod
    def _row_to_node(row: GraphNodeRow) -> Node:
        return Node(
            id=row.id,
            kind=NodeKind(row.kind),
            x=row.x,
            y=row.y,
            name=row.name,
            phone=row.phone,
            email=row.email,
            available_beds=row.available_beds,
            approved=row.approved,
        )

    @staticmethod
    def _row_to_edge(row: GraphEdgeRow) -> Edge:
        return Edge(
            id=row.id,
            source_id=row.source_id,
            target_id=row.target_id,
            weight=row.weight,
        )


def row_to_referral(row: ReferralRow) -> Referral:
    return Referral(
        id=row.id,
        source_id=row.source_id,
        target_id=row.target_id,
        user_name=row.user_name,
        distance=row.distance,
        path=list(row.path or []),
        status=ReferralStatus(row.status),
        created_at=row.created_at,
        updated_at=row.updated_at,
        resolved_by=row.resolved_by,
    )
