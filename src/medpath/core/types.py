"""Core type definitions shared across MedPath modules."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class NodeKind(StrEnum):
    """Kind of graph vertex. Fixed at creation."""

    USER = "user"
    HOSPITAL = "hospital"


class ReferralStatus(StrEnum):
    """Lifecycle status of an emergency referral."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AuditEvent(BaseModel):
    """Audit log entry for a graph or referral state change."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    actor: str
    action: str
    resource: str
    details: dict[str, Any] = Field(default_factory=dict)
