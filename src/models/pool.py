from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class PoolRecord(Base):
    """One venue pool for a token pair, refreshed by every scan."""

    __tablename__ = "pools"

    id: Mapped[int] = mapped_column(primary_key=True)
    address: Mapped[str] = mapped_column(String(64), unique=True)
    venue: Mapped[str] = mapped_column(String(20))
    mint_a: Mapped[str] = mapped_column(String(64))
    mint_b: Mapped[str] = mapped_column(String(64))
    pair_key: Mapped[str] = mapped_column(String(130))
    symbol_a: Mapped[str | None] = mapped_column(String(20))
    symbol_b: Mapped[str | None] = mapped_column(String(20))
    decimals_a: Mapped[int | None] = mapped_column(Integer)
    decimals_b: Mapped[int | None] = mapped_column(Integer)
    tvl_usd: Mapped[Decimal | None] = mapped_column(Numeric)
    fee_rate: Mapped[Decimal | None] = mapped_column(Numeric)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_metadata_update: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    # Best known prices (venue-reported or chain-verified)
    current_price_a: Mapped[Decimal | None] = mapped_column(Numeric)
    current_price_b: Mapped[Decimal | None] = mapped_column(Numeric)
    price_updated_at: Mapped[datetime | None] = mapped_column(DateTime)
    price_source: Mapped[str | None] = mapped_column(String(20))
    token_a_balance: Mapped[Decimal | None] = mapped_column(Numeric)
    token_b_balance: Mapped[Decimal | None] = mapped_column(Numeric)
    last_verified_slot: Mapped[int | None] = mapped_column(BigInteger)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        CheckConstraint("mint_a <> mint_b", name="ck_pools_distinct_mints"),
        Index("idx_pools_pair_key", "pair_key"),
        Index("idx_pools_active_tvl", "is_active", "tvl_usd"),
        Index("idx_pools_price_updated", "price_updated_at"),
    )
