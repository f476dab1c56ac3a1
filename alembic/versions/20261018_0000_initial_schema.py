"""Trades, wallet profiles and leaderboard snapshots.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "trades",
        sa.Column("trade_id", sa.String(255), nullable=False),
        sa.Column("asset_id", sa.String(100), nullable=False),
        sa.Column("condition_id", sa.String(80), nullable=False),
        sa.Column("outcome", sa.String(128), nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("image", sa.Text(), nullable=True),
        sa.Column("side", sa.String(4), nullable=False),
        sa.Column("price", sa.Numeric(20, 10), nullable=False),
        sa.Column("size", sa.Numeric(30, 10), nullable=False),
        sa.Column("trade_value", sa.Numeric(30, 10), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("wallet_address", sa.String(42), nullable=False),
        sa.Column("transaction_hash", sa.String(66), nullable=False),
        sa.Column("is_whale", sa.Boolean(), nullable=False),
        sa.Column("is_smart_money", sa.Boolean(), nullable=False),
        sa.Column("is_fresh_wallet", sa.Boolean(), nullable=False),
        sa.Column("is_sweeper", sa.Boolean(), nullable=False),
        sa.Column("tags", sa.Text(), nullable=False),
        sa.Column("enrichment_status", sa.String(16), nullable=False),
        sa.Column("profile_applied", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("trade_id"),
    )
    op.create_index("idx_trades_condition_ts", "trades", ["condition_id", "ts"])
    op.create_index("idx_trades_wallet_ts", "trades", ["wallet_address", "ts"])
    op.create_index("idx_trades_ts", "trades", ["ts"])

    op.create_table(
        "wallet_profiles",
        sa.Column("address", sa.String(42), nullable=False),
        sa.Column("label", sa.String(32), nullable=True),
        sa.Column("total_pnl", sa.Numeric(30, 6), nullable=False),
        sa.Column("win_rate", sa.Numeric(6, 4), nullable=False),
        sa.Column("is_fresh", sa.Boolean(), nullable=False),
        sa.Column("is_smart_money", sa.Boolean(), nullable=False),
        sa.Column("tx_count", sa.Integer(), nullable=False),
        sa.Column("activity_level", sa.String(8), nullable=True),
        sa.Column("max_trade_value", sa.Numeric(30, 10), nullable=False),
        sa.Column("trades_observed", sa.Integer(), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("address"),
    )

    op.create_table(
        "leaderboard_snapshots",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("snapshot_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period", sa.String(16), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("wallet_address", sa.String(42), nullable=False),
        sa.Column("display_name", sa.String(128), nullable=True),
        sa.Column("profit", sa.Numeric(30, 6), nullable=True),
        sa.Column("volume", sa.Numeric(30, 6), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_leaderboard_snapshots_period_at", "leaderboard_snapshots", ["period", "snapshot_at"]
    )
    op.create_index(
        "idx_leaderboard_snapshots_wallet", "leaderboard_snapshots", ["wallet_address"]
    )


def downgrade() -> None:
    op.drop_index("idx_leaderboard_snapshots_wallet", table_name="leaderboard_snapshots")
    op.drop_index("idx_leaderboard_snapshots_period_at", table_name="leaderboard_snapshots")
    op.drop_table("leaderboard_snapshots")

    op.drop_table("wallet_profiles")

    op.drop_index("idx_trades_ts", table_name="trades")
    op.drop_index("idx_trades_wallet_ts", table_name="trades")
    op.drop_index("idx_trades_condition_ts", table_name="trades")
    op.drop_table("trades")
