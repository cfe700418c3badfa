from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class OpportunityRecord(Base):
    """Detected cross-venue price discrepancy and its lifecycle state."""

    __tablename__ = "arbitrage_opportunities"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    pair_key: Mapped[str] = mapped_column(String(130))
    mint_a: Mapped[str] = mapped_column(String(64))
    mint_b: Mapped[str] = mapped_column(String(64))
    token_symbols: Mapped[str | None] = mapped_column(String(50))
    venue_a: Mapped[str] = mapped_column(String(20))
    venue_b: Mapped[str] = mapped_column(String(20))
    pool_a_address: Mapped[str] = mapped_column(String(64))
    pool_b_address: Mapped[str] = mapped_column(String(64))
    rate_a: Mapped[Decimal | None] = mapped_column(Numeric)
    rate_b: Mapped[Decimal | None] = mapped_column(Numeric)
    profit_percent: Mapped[Decimal] = mapped_column(Numeric)
    estimated_profit_usd: Mapped[Decimal | None] = mapped_column(Numeric)
    priority_score: Mapped[Decimal | None] = mapped_column(Numeric)
    total_tvl_usd: Mapped[Decimal | None] = mapped_column(Numeric)
    trading_path: Mapped[str | None] = mapped_column(String(100))

    status: Mapped[str] = mapped_column(String(20), default="DISCOVERED")
    created_at: Mapped[datetime] = mapped_column(DateTime)
    expires_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime)

    # Verification
    verified_at: Mapped[datetime | None] = mapped_column(DateTime)
    verification_attempts: Mapped[int] = mapped_column(Integer, default=0)
    verification_notes: Mapped[str | None] = mapped_column(String(500))

    # Execution
    execution_tx: Mapped[str | None] = mapped_column(String(100))
    actual_profit_usd: Mapped[Decimal | None] = mapped_column(Numeric)
    failure_reason: Mapped[str | None] = mapped_column(String(500))

    __table_args__ = (
        CheckConstraint("expires_at > created_at", name="ck_opportunity_expiry"),
        CheckConstraint("pool_a_address <> pool_b_address", name="ck_opportunity_different_pools"),
        CheckConstraint("venue_a <> venue_b", name="ck_opportunity_different_venues"),
        CheckConstraint("profit_percent >= 0", name="ck_opportunity_profit_non_negative"),
        CheckConstraint("verification_attempts >= 0", name="ck_opportunity_attempts"),
        Index("idx_opportunities_status", "status"),
        Index("idx_opportunities_pair_key", "pair_key"),
        Index("idx_opportunities_pools", "pool_a_address", "pool_b_address"),
        Index("idx_opportunities_closed_at", "closed_at"),
    )
