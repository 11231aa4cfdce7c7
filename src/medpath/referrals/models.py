"""Referral (emergency request) data models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field, computed_field

from medpath.core.types import ReferralStatus

PATH_SEPARATOR = " → "


class Referral(BaseModel):
    """A transport request from a user node to a hospital node.

    ``user_name``, ``distance`` and ``path`` are captured at submission and
    are not re-synced when the graph changes afterwards.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source_id: int
    target_id: int
    user_name: str
    distance: float
    path: list[str] = Field(default_factory=list)
    status: ReferralStatus = ReferralStatus.PENDING
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    resolved_by: str | None = None

    @computed_field
    @property
    def path_text(self) -> str:
        return PATH_SEPARATOR.join(self.path)

    @property
    def is_pending(self) -> bool:
        return self.status == ReferralStatus.PENDING

    def references(self, node_id: int) -> bool:
        return node_id in (self.source_id, self.target_id)


class BulkApprovalResult(BaseModel):
    """Outcome of approving every pending referral for one hospital."""

    hospital_id: int
    approved: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    remaining_beds: int = 0
