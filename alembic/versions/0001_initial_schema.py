"""Initial schema: graph nodes, edges, revision counter and referrals.

Revision ID: 0001
Revises:
Create Date: 2026-10-18

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # -- Graph nodes --
    op.create_table(
        "graph_nodes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("x", sa.Float, nullable=False, server_default="0"),
        sa.Column("y", sa.Float, nullable=False, server_default="0"),
        sa.Column("name", sa.String(256), nullable=False, server_default=""),
        sa.Column("phone", sa.String(64), nullable=False, server_default=""),
        sa.Column("email", sa.String(256), nullable=False, server_default=""),
        sa.Column("available_beds", sa.Integer, nullable=False, server_default="0"),
        sa.Column("approved", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.CheckConstraint("available_beds >= 0", name="ck_graph_nodes_beds_non_negative"),
    )
    op.create_index("ix_graph_nodes_kind", "graph_nodes", ["kind"])

    # -- Graph edges --
    op.create_table(
        "graph_edges",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("source_id", sa.Integer, sa.ForeignKey("graph_nodes.id"), nullable=False),
        sa.Column("target_id", sa.Integer, sa.ForeignKey("graph_nodes.id"), nullable=False),
        sa.Column("weight", sa.Integer, nullable=False),
        sa.Column("pair_low", sa.Integer, nullable=False),
        sa.Column("pair_high", sa.Integer, nullable=False),
        sa.UniqueConstraint("pair_low", "pair_high", name="uq_graph_edges_pair"),
        sa.CheckConstraint("weight >= 0", name="ck_graph_edges_weight_non_negative"),
        sa.CheckConstraint("source_id <> target_id", name="ck_graph_edges_no_self_loop"),
    )
    op.create_index("ix_graph_edges_source", "graph_edges", ["source_id"])
    op.create_index("ix_graph_edges_target", "graph_edges", ["target_id"])

    # -- Topology revision --
    op.create_table(
        "graph_revision",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
    )

    # -- Referrals --
    op.create_table(
        "referrals",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("source_id", sa.Integer, sa.ForeignKey("graph_nodes.id"), nullable=False),
        sa.Column("target_id", sa.Integer, sa.ForeignKey("graph_nodes.id"), nullable=False),
        sa.Column("user_name", sa.String(256), nullable=False),
        sa.Column("distance", sa.Float, nullable=False),
        sa.Column("path", postgresql.JSONB, nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_by", sa.String(128), nullable=True),
    )
    op.create_index("ix_referrals_target_status", "referrals", ["target_id", "status"])
    op.create_index(
        "uq_referrals_pending_pair",
        "referrals",
        ["source_id", "target_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_table("referrals")
    op.drop_table("graph_revision")
    op.drop_table("graph_edges")
    op.drop_table("graph_nodes")
