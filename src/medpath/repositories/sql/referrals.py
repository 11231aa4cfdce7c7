"""SQL referral repository.

Approval reserves a bed with a conditional ``UPDATE ... WHERE
available_beds > 0`` and flips the status with a conditional ``UPDATE ...
WHERE status = 'pending'``. Both run in one transaction and each checks its
affected-row count, so concurrent approvals cannot oversubscribe a hospital
or resolve a referral twice.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from medpath.core.config import ReferralConfig
from medpath.core.errors import (
    AlreadyResolvedError,
    DuplicatePendingError,
    InvalidNodeError,
    NoBedsAvailableError,
    ReferralNotFoundError,
    StaleRouteError,
    UnknownNodeError,
    UnreachableTargetError,
)
from medpath.core.types import AuditEvent, NodeKind, ReferralStatus
from medpath.db.engine import DatabaseManager
from medpath.db.models import GraphNodeRow, ReferralRow
from medpath.governance.audit import AuditLogger
from medpath.referrals.models import BulkApprovalResult, Referral
from medpath.repositories.sql.graph import SqlGraphRepository, row_to_referral
from medpath.routing.pathfinder import reconstruct_path
from medpath.routing.service import RouteService

logger = logging.getLogger(__name__)


class SqlReferralRepository:
    """SQL-backed referral workflow with database-level bed reservation."""

    def __init__(
        self,
        db: DatabaseManager,
        graph: SqlGraphRepository,
        routes: RouteService | None = None,
        config: ReferralConfig | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._db = db
        self._graph = graph
        self._routes = routes or RouteService(graph)
        self._config = config or ReferralConfig()
        self._audit = audit_logger

    async def submit(self, source_id: int, target_id: int, actor: str = "user") -> Referral:
        snapshot = await self._graph.snapshot()
        source = snapshot.get_node(source_id)
        target = snapshot.get_node(target_id)
        if source is None:
            raise UnknownNodeError(f"Node {source_id} not found")
        if target is None:
            raise UnknownNodeError(f"Node {target_id} not found")
        if not target.is_hospital:
            raise InvalidNodeError(f"Node {target_id} is not a hospital")
        if source_id == target_id:
            raise InvalidNodeError("A referral cannot target its own source")

        result = self._routes.compute(snapshot, source_id)
        if not result.reachable(target_id):
            raise UnreachableTargetError(
                f"Hospital {target_id} is not reachable from node {source_id}"
            )
        referral = Referral(
            source_id=source_id,
            target_id=target_id,
            user_name=source.name,
            distance=result.dist[target_id],
            path=reconstruct_path(snapshot, result, target_id) or [],
        )

        async with self._db.session() as db:
            pending = await db.execute(
                select(ReferralRow.id).where(
                    ReferralRow.source_id == source_id,
                    ReferralRow.target_id == target_id,
                    ReferralRow.status == ReferralStatus.PENDING.value,
                )
            )
            if pending.first() is not None:
                raise DuplicatePendingError(
                    f"A referral from {source_id} to {target_id} is already pending"
                )
            db.add(ReferralRow(
                id=referral.id,
                source_id=referral.source_id,
                target_id=referral.target_id,
                user_name=referral.user_name,
                distance=referral.distance,
                path=referral.path,
                status=referral.status.value,
                created_at=referral.created_at,
                updated_at=referral.updated_at,
            ))
            try:
                await db.flush()
                # The insert holds the write lock, so a node delete cannot
                # commit between this check and the commit below.
                present = set((await db.execute(
                    select(GraphNodeRow.id)
                    .where(GraphNodeRow.id.in_([source_id, target_id]))
                    .with_for_update()
                )).scalars().all())
                if present != {source_id, target_id}:
                    await db.rollback()
                    missing = source_id if source_id not in present else target_id
                    raise UnknownNodeError(f"Node {missing} not found")
                await db.commit()
            except IntegrityError as exc:
                await db.rollback()
                conflict = await self._insert_conflict(source_id, target_id)
                if conflict is None:
                    raise
                raise conflict from exc

        logger.info(
            "Referral %s submitted: %s -> %s (distance %s)",
            referral.id, source_id, target_id, referral.distance,
        )
        self._log_audit(actor, "referral_submitted", referral)
        return referral

    async def approve(self, referral_id: str, approver: str = "admin") -> Referral:
        referral = await self.get(referral_id)
        if referral.status != ReferralStatus.PENDING:
            raise AlreadyResolvedError(
                f"Referral {referral_id} is '{referral.status}', not pending"
            )

        if self._config.revalidate_on_approve:
            snapshot = await self._graph.snapshot()
            if snapshot.get_node(referral.source_id) is None or not self._routes.compute(
                snapshot, referral.source_id
            ).reachable(referral.target_id):
                raise StaleRouteError(
                    f"Route from {referral.source_id} to hospital "
                    f"{referral.target_id} no longer exists"
                )

        now = datetime.now(timezone.utc)
        async with self._db.session() as db:
            reserved = await db.execute(
                update(GraphNodeRow)
                .where(
                    GraphNodeRow.id == referral.target_id,
                    GraphNodeRow.kind == NodeKind.HOSPITAL.value,
                    GraphNodeRow.available_beds > 0,
                )
                .values(available_beds=GraphNodeRow.available_beds - 1)
                .execution_options(synchronize_session=False)
            )
            if reserved.rowcount != 1:
                await db.rollback()
                logger.warning(
                    "Approval of referral %s refused: hospital %s has no beds",
                    referral_id, referral.target_id,
                )
                raise NoBedsAvailableError(
                    f"Hospital {referral.target_id} has no available beds"
                )

            flipped = await db.execute(
                update(ReferralRow)
                .where(
                    ReferralRow.id == referral_id,
                    ReferralRow.status == ReferralStatus.PENDING.value,
                )
                .values(
                    status=ReferralStatus.APPROVED.value,
                    resolved_by=approver,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if flipped.rowcount != 1:
                error = await self._resolution_conflict(db, referral_id)
                await db.rollback()
                raise error

            remaining = (await db.execute(
                select(GraphNodeRow.available_beds).where(GraphNodeRow.id == referral.target_id)
            )).scalar_one()
            await db.commit()

        referral.status = ReferralStatus.APPROVED
        referral.resolved_by = approver
        referral.updated_at = now
        logger.info(
            "Referral %s approved by %s; hospital %s has %d bed(s) left",
            referral_id, approver, referral.target_id, remaining,
        )
        self._log_audit(approver, "referral_approved", referral, remaining_beds=remaining)
        return referral

    async def reject(self, referral_id: str, approver: str = "admin") -> Referral:
        referral = await self.get(referral_id)
        now = datetime.now(timezone.utc)
        async with self._db.session() as db:
            flipped = await db.execute(
                update(ReferralRow)
                .where(
                    ReferralRow.id == referral_id,
                    ReferralRow.status == ReferralStatus.PENDING.value,
                )
                .values(
                    status=ReferralStatus.REJECTED.value,
                    resolved_by=approver,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if flipped.rowcount != 1:
                error = await self._resolution_conflict(db, referral_id)
                await db.rollback()
                raise error
            await db.commit()

        referral.status = ReferralStatus.REJECTED
        referral.resolved_by = approver
        referral.updated_at = now
        logger.info("Referral %s rejected by %s", referral_id, approver)
        self._log_audit(approver, "referral_rejected", referral)
        return referral

    async def approve_all_pending(
        self, hospital_id: int, approver: str = "admin"
    ) -> BulkApprovalResult:
        hospital = await self._graph.get_node(hospital_id)
        if hospital is None:
            raise UnknownNodeError(f"Node {hospital_id} not found")
        if not hospital.is_hospital:
            raise InvalidNodeError(f"Node {hospital_id} is not a hospital")

        outcome = BulkApprovalResult(hospital_id=hospital_id)
        for referral in await self.list(status=ReferralStatus.PENDING, hospital_id=hospital_id):
            try:
                await self.approve(referral.id, approver=approver)
            except (NoBedsAvailableError, StaleRouteError, AlreadyResolvedError) as exc:
                logger.info("Skipping referral %s: %s", referral.id, exc)
                outcome.skipped.append(referral.id)
            else:
                outcome.approved.append(referral.id)
        refreshed = await self._graph.get_node(hospital_id)
        outcome.remaining_beds = refreshed.available_beds if refreshed else 0
        return outcome

    async def get(self, referral_id: str) -> Referral:
        async with self._db.session() as db:
            row = await db.get(ReferralRow, referral_id)
            if row is None:
                raise ReferralNotFoundError(f"Referral {referral_id!r} not found")
            return row_to_referral(row)

    async def list(
        self,
        status: ReferralStatus | None = None,
        hospital_id: int | None = None,
        source_id: int | None = None,
    ) -> list[Referral]:
        async with self._db.session() as db:
            stmt = select(ReferralRow).order_by(ReferralRow.created_at)
            if status is not None:
                stmt = stmt.where(ReferralRow.status == ReferralStatus(status).value)
            if hospital_id is not None:
                stmt = stmt.where(ReferralRow.target_id == hospital_id)
            if source_id is not None:
                stmt = stmt.where(ReferralRow.source_id == source_id)
            result = await db.execute(stmt)
            return [row_to_referral(r) for r in result.scalars().all()]

    async def _insert_conflict(self, source_id: int, target_id: int) -> Exception | None:
        """Name the constraint a failed referral insert ran into."""
        async with self._db.session() as db:
            present = set((await db.execute(
                select(GraphNodeRow.id).where(GraphNodeRow.id.in_([source_id, target_id]))
            )).scalars().all())
            for node_id in (source_id, target_id):
                if node_id not in present:
                    return UnknownNodeError(f"Node {node_id} not found")
            pending = await db.execute(
                select(ReferralRow.id).where(
                    ReferralRow.source_id == source_id,
                    ReferralRow.target_id == target_id,
                    ReferralRow.status == ReferralStatus.PENDING.value,
                )
            )
            if pending.first() is not None:
                return DuplicatePendingError(
                    f"A referral from {source_id} to {target_id} is already pending"
                )
        return None

    @staticmethod
    async def _resolution_conflict(db: AsyncSession, referral_id: str) -> Exception:
        """Explain why a pending-only status update matched no row."""
        row = await db.get(ReferralRow, referral_id)
        if row is None:
            return ReferralNotFoundError(f"Referral {referral_id!r} not found")
        return AlreadyResolvedError(f"Referral {referral_id} is '{row.status}', not pending")

    def _log_audit(self, actor: str, action: str, referral: Referral, **extra: object) -> None:
        if self._audit is None:
            return
        details = {
            "source_id": referral.source_id,
            "target_id": referral.target_id,
            "status": referral.status,
            "distance": referral.distance,
            "path": referral.path_text,
        }
        details.update(extra)
        self._audit.log(AuditEvent(
            actor=actor,
            action=action,
            resource=f"referral:{referral.id}",
            details=details,
        ))
