"""In-memory referral store."""

from __future__ import annotations

from medpath.core.types import ReferralStatus
from medpath.referrals.models import Referral


class ReferralStore:
    """In-memory store for referrals.

    Not synchronized on its own; ``GraphStore`` and ``RequestWorkflow``
    call it while holding the graph lock.
    """

    def __init__(self) -> None:
        self._referrals: dict[str, Referral] = {}

    def save(self, referral: Referral) -> Referral:
        self._referrals[referral.id] = referral
        return referral

    def get(self, referral_id: str) -> Referral | None:
        return self._referrals.get(referral_id)

    def find_pending(self, source_id: int, target_id: int) -> Referral | None:
        for r in self._referrals.values():
            if (
                r.source_id == source_id
                and r.target_id == target_id
                and r.status == ReferralStatus.PENDING
            ):
                return r
        return None

    def list(
        self,
        status: ReferralStatus | None = None,
        hospital_id: int | None = None,
        source_id: int | None = None,
    ) -> list[Referral]:
        """Referrals matching all given filters, oldest first."""
        return [
            r for r in self._referrals.values()
            if (status is None or r.status == status)
            and (hospital_id is None or r.target_id == hospital_id)
            and (source_id is None or r.source_id == source_id)
        ]

    def remove_for_node(self, node_id: int) -> list[Referral]:
        removed = [r for r in self._referrals.values() if r.references(node_id)]
        for r in removed:
            del self._referrals[r.id]
        return removed

    def clear(self) -> None:
        self._referrals.clear()

    @property
    def count(self) -> int:
        return len(self._referrals)
