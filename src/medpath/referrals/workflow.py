"""Emergency referral workflow: submit, approve, reject.

State machine per referral::

    pending --approve--> approved
    pending --reject---> rejected

Approval reserves one bed at the target hospital. The bed check, the
decrement and the status flip run under the graph store lock as one step,
so two approvals racing for a hospital's last bed cannot both succeed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

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
from medpath.core.types import AuditEvent, ReferralStatus
from medpath.governance.audit import AuditLogger
from medpath.graph.store import GraphStore
from medpath.referrals.models import BulkApprovalResult, Referral
from medpath.referrals.store import ReferralStore
from medpath.routing.pathfinder import reconstruct_path
from medpath.routing.service import RouteService

logger = logging.getLogger(__name__)


class RequestWorkflow:
    """Referral lifecycle manager backed by a GraphStore.

    Args:
        graph: Graph store owning nodes, edges and the referral collection.
        routes: Route service used to snapshot the path at submission and to
            revalidate it at approval.
        config: Workflow policy. Defaults to ReferralConfig().
        audit_logger: Optional audit trail for state transitions.
    """

    def __init__(
        self,
        graph: GraphStore,
        routes: RouteService | None = None,
        config: ReferralConfig | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._graph = graph
        self._routes = routes or RouteService(graph)
        self._config = config or ReferralConfig()
        self._audit = audit_logger

    @property
    def store(self) -> ReferralStore:
        return self._graph.referrals

    def submit(self, source_id: int, target_id: int, actor: str = "user") -> Referral:
        """Create a pending referral from ``source_id`` to hospital ``target_id``.

        Raises:
            UnknownNodeError: If either node does not exist.
            InvalidNodeError: If the target is not a hospital or equals the source.
            DuplicatePendingError: If a pending referral already exists for the pair.
            UnreachableTargetError: If no route connects source and target.
        """
        with self._graph.lock:
            snapshot = self._graph.snapshot()
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

            if self.store.find_pending(source_id, target_id) is not None:
                raise DuplicatePendingError(
                    f"A referral from {source_id} to {target_id} is already pending"
                )

            result = self._routes.compute(snapshot, source_id)
            if not result.reachable(target_id):
                raise UnreachableTargetError(
                    f"Hospital {target_id} is not reachable from node {source_id}"
                )
            path = reconstruct_path(snapshot, result, target_id)

            referral = Referral(
                source_id=source_id,
                target_id=target_id,
                user_name=source.name,
                distance=result.dist[target_id],
                path=path or [],
            )
            self.store.save(referral)

        logger.info(
            "Referral %s submitted: %s -> %s (distance %s)",
            referral.id, source_id, target_id, referral.distance,
        )
        self._log_audit(actor, "referral_submitted", referral)
        return referral.model_copy(deep=True)

    def approve(self, referral_id: str, approver: str = "admin") -> Referral:
        """Approve a pending referral and reserve one bed at its hospital.

        Raises:
            ReferralNotFoundError: If the referral does not exist.
            AlreadyResolvedError: If the referral is not pending.
            StaleRouteError: If revalidation is on and the hospital is no
                longer reachable from the source.
            NoBedsAvailableError: If the hospital has no free bed.
        """
        with self._graph.lock:
            referral = self._require_pending(referral_id)

            if self._config.revalidate_on_approve:
                result = self._routes.shortest_paths(referral.source_id)
                if not result.reachable(referral.target_id):
                    raise StaleRouteError(
                        f"Route from {referral.source_id} to hospital "
                        f"{referral.target_id} no longer exists"
                    )

            remaining = self._graph.reserve_bed(referral.target_id)
            if remaining is None:
                logger.warning(
                    "Approval of referral %s refused: hospital %s has no beds",
                    referral_id, referral.target_id,
                )
                raise NoBedsAvailableError(
                    f"Hospital {referral.target_id} has no available beds"
                )
            self._resolve(referral, ReferralStatus.APPROVED, approver)

        logger.info(
            "Referral %s approved by %s; hospital %s has %d bed(s) left",
            referral_id, approver, referral.target_id, remaining,
        )
        self._log_audit(approver, "referral_approved", referral, remaining_beds=remaining)
        return referral.model_copy(deep=True)

    def reject(self, referral_id: str, approver: str = "admin") -> Referral:
        """Reject a pending referral. No bed is touched.

        Raises:
            ReferralNotFoundError: If the referral does not exist.
            AlreadyResolvedError: If the referral is not pending.
        """
        with self._graph.lock:
            referral = self._require_pending(referral_id)
            self._resolve(referral, ReferralStatus.REJECTED, approver)

        logger.info("Referral %s rejected by %s", referral_id, approver)
        self._log_audit(approver, "referral_rejected", referral)
        return referral.model_copy(deep=True)

    def approve_all_pending(self, hospital_id: int, approver: str = "admin") -> BulkApprovalResult:
        """Approve a hospital's pending referrals oldest first until beds run out.

        Referrals that cannot be approved (no beds, stale route) stay pending
        and are listed in ``skipped``.
        """
        with self._graph.lock:
            hospital = self._graph.get_node(hospital_id)
            if hospital is None:
                raise UnknownNodeError(f"Node {hospital_id} not found")
            if not hospital.is_hospital:
                raise InvalidNodeError(f"Node {hospital_id} is not a hospital")

            outcome = BulkApprovalResult(hospital_id=hospital_id)
            for referral in self.pending_for_hospital(hospital_id):
                try:
                    self.approve(referral.id, approver=approver)
                except (NoBedsAvailableError, StaleRouteError) as exc:
                    logger.info("Skipping referral %s: %s", referral.id, exc)
                    outcome.skipped.append(referral.id)
                else:
                    outcome.approved.append(referral.id)
            outcome.remaining_beds = self._graph.get_node(hospital_id).available_beds
        return outcome

    def get(self, referral_id: str) -> Referral:
        with self._graph.lock:
            referral = self.store.get(referral_id)
            if referral is None:
                raise ReferralNotFoundError(f"Referral {referral_id!r} not found")
            return referral.model_copy(deep=True)

    def list(
        self,
        status: ReferralStatus | None = None,
        hospital_id: int | None = None,
        source_id: int | None = None,
    ) -> list[Referral]:
        with self._graph.lock:
            return [
                r.model_copy(deep=True)
                for r in self.store.list(status=status, hospital_id=hospital_id, source_id=source_id)
            ]

    def pending_for_hospital(self, hospital_id: int) -> list[Referral]:
        return self.list(status=ReferralStatus.PENDING, hospital_id=hospital_id)

    # --- Internal ---

    def _require_pending(self, referral_id: str) -> Referral:
        referral = self.store.get(referral_id)
        if referral is None:
            raise ReferralNotFoundError(f"Referral {referral_id!r} not found")
        if referral.status != ReferralStatus.PENDING:
            raise AlreadyResolvedError(
                f"Referral {referral_id} is '{referral.status}', not pending"
            )
        return referral

    @staticmethod
    def _resolve(referral: Referral, status: ReferralStatus, approver: str) -> None:
        referral.status = status
        referral.resolved_by = approver
        referral.updated_at = datetime.now(timezone.utc)

    def _log_audit(self, actor: str, action: str, referral: Referral, **extra: Any) -> None:
        if self._audit is None:
            return
        details: dict[str, Any] = {
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
