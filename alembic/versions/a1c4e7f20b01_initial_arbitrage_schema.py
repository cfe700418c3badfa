"""Initial schema: pools and arbitrage_opportunities.

Revision ID: a1c4e7f20b01
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "a1c4e7f20b01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "pools",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("address", sa.String(64), nullable=False, unique=True),
        sa.Column("venue", sa.String(20), nullable=False),
        sa.Column("mint_a", sa.String(64), nullable=False),
        sa.Column("mint_b", sa.String(64), nullable=False),
        sa.Column("pair_key", sa.String(130), nullable=False),
        sa.Column("symbol_a", sa.String(20), nullable=True),
        sa.Column("symbol_b", sa.String(20), nullable=True),
        sa.Column("decimals_a", sa.Integer(), nullable=True),
        sa.Column("decimals_b", sa.Integer(), nullable=True),
        sa.Column("tvl_usd", sa.Numeric(), nullable=True),
        sa.Column("fee_rate", sa.Numeric(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "last_metadata_update", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("current_price_a", sa.Numeric(), nullable=True),
        sa.Column("current_price_b", sa.Numeric(), nullable=True),
        sa.Column("price_updated_at", sa.DateTime(), nullable=True),
        sa.Column("price_source", sa.String(20), nullable=True),
        sa.Column("token_a_balance", sa.Numeric(), nullable=True),
        sa.Column("token_b_balance", sa.Numeric(), nullable=True),
        sa.Column("last_verified_slot", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("mint_a <> mint_b", name="ck_pools_distinct_mints"),
    )
    op.create_index("idx_pools_pair_key", "pools", ["pair_key"])
    op.create_index("idx_pools_active_tvl", "pools", ["is_active", "tvl_usd"])
    op.create_index("idx_pools_price_updated", "pools", ["price_updated_at"])

    op.create_table(
        "arbitrage_opportunities",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("pair_key", sa.String(130), nullable=False),
        sa.Column("mint_a", sa.String(64), nullable=False),
        sa.Column("mint_b", sa.String(64), nullable=False),
        sa.Column("token_symbols", sa.String(50), nullable=True),
        sa.Column("venue_a", sa.String(20), nullable=False),
        sa.Column("venue_b", sa.String(20), nullable=False),
        sa.Column("pool_a_address", sa.String(64), nullable=False),
        sa.Column("pool_b_address", sa.String(64), nullable=False),
        sa.Column("rate_a", sa.Numeric(), nullable=True),
        sa.Column("rate_b", sa.Numeric(), nullable=True),
        sa.Column("profit_percent", sa.Numeric(), nullable=False),
        sa.Column("estimated_profit_usd", sa.Numeric(), nullable=True),
        sa.Column("priority_score", sa.Numeric(), nullable=True),
        sa.Column("total_tvl_usd", sa.Numeric(), nullable=True),
        sa.Column("trading_path", sa.String(100), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="DISCOVERED"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        sa.Column("verified_at", sa.DateTime(), nullable=True),
        sa.Column("verification_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("verification_notes", sa.String(500), nullable=True),
        sa.Column("execution_tx", sa.String(100), nullable=True),
        sa.Column("actual_profit_usd", sa.Numeric(), nullable=True),
        sa.Column("failure_reason", sa.String(500), nullable=True),
        sa.CheckConstraint("expires_at > created_at", name="ck_opportunity_expiry"),
        sa.CheckConstraint(
            "pool_a_address <> pool_b_address", name="ck_opportunity_different_pools"
        ),
        sa.CheckConstraint("venue_a <> venue_b", name="ck_opportunity_different_venues"),
        sa.CheckConstraint("profit_percent >= 0", name="ck_opportunity_profit_non_negative"),
        sa.CheckConstraint("verification_attempts >= 0", name="ck_opportunity_attempts"),
    )
    op.create_index("idx_opportunities_status", "arbitrage_opportunities", ["status"])
    op.create_index("idx_opportunities_pair_key", "arbitrage_opportunities", ["pair_key"])
    op.create_index(
        "idx_opportunities_pools",
        "arbitrage_opportunities",
        ["pool_a_address", "pool_b_address"],
    )
    op.create_index("idx_opportunities_closed_at", "arbitrage_opportunities", ["closed_at"])


def downgrade() -> None:
    op.drop_table("arbitrage_opportunities")
    op.drop_table("pools")
