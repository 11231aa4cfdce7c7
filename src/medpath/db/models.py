"""SQLAlchemy ORM models for all persistent tables."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from medpath.db.base import Base


def _jsonb() -> type:
    """Return JSONB for Postgres, plain JSON for SQLite."""
    return JSON().with_variant(PG_JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------


class GraphNodeRow(Base):
    __tablename__ = "graph_nodes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(16))
    x: Mapped[float] = mapped_column(Float, default=0.0)
    y: Mapped[float] = mapped_column(Float, default=0.0)
    name: Mapped[str] = mapped_column(String(256), default="")
    phone: Mapped[str] = mapped_column(String(64), default="")
    email: Mapped[str] = mapped_column(String(256), default="")
    available_beds: Mapped[int] = mapped_column(Integer, default=0)
    approved: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (
        CheckConstraint("available_beds >= 0", name="ck_graph_nodes_beds_non_negative"),
        Index("ix_graph_nodes_kind", "kind"),
        # Never hand out a deleted node's id again.
        {"sqlite_autoincrement": True},
    )


class GraphEdgeRow(Base):
    __tablename__ = "graph_edges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_id: Mapped[int] = mapped_column(Integer, ForeignKey("graph_nodes.id"))
    target_id: Mapped[int] = mapped_column(Integer, ForeignKey("graph_nodes.id"))
    weight: Mapped[int] = mapped_column(Integer)
    # Normalized endpoints (low, high) so the unordered pair can be unique.
    pair_low: Mapped[int] = mapped_column(Integer)
    pair_high: Mapped[int] = mapped_column(Integer)

    __table_args__ = (
        UniqueConstraint("pair_low", "pair_high", name="uq_graph_edges_pair"),
        CheckConstraint("weight >= 0", name="ck_graph_edges_weight_non_negative"),
        CheckConstraint("source_id <> target_id", name="ck_graph_edges_no_self_loop"),
        Index("ix_graph_edges_source", "source_id"),
        Index("ix_graph_edges_target", "target_id"),
        {"sqlite_autoincrement": True},
    )


class GraphRevisionRow(Base):
    """Single-row topology version counter used for path-cache invalidation."""

    __tablename__ = "graph_revision"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    version: Mapped[int] = mapped_column(Integer, default=0)


# ---------------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------------


class ReferralRow(Base):
    __tablename__ = "referrals"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    source_id: Mapped[int] = mapped_column(Integer, ForeignKey("graph_nodes.id"))
    target_id: Mapped[int] = mapped_column(Integer, ForeignKey("graph_nodes.id"))
    user_name: Mapped[str] = mapped_column(String(256))
    distance: Mapped[float] = mapped_column(Float)
    path: Mapped[list] = mapped_column(_jsonb(), default=list)
    status: Mapped[str] = mapped_column(String(16), default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    resolved_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    __table_args__ = (
        Index("ix_referrals_target_status", "target_id", "status"),
        Index(
            "uq_referrals_pending_pair",
            "source_id",
            "target_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )
