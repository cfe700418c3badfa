"""Persistence for pools and opportunities.

Session-level functions flush only; ``SqlArbitrageStore`` wraps them in
one committed transaction per call. Writes are read-modify-write keyed by
pool address / opportunity id so they behave the same on every dialect.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta
from decimal import Decimal

from loguru import logger
from sqlalchemy import delete, func, or_, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.arbitrage.types import (
    TERMINAL_STATUSES,
    ArbitrageOpportunity,
    OpportunityStatus,
    Pool,
    PriceSource,
    pair_key,
    utcnow,
)
from src.models.opportunity import OpportunityRecord
from src.models.pool import PoolRecord

_ACTIVE_STATUSES = [OpportunityStatus.DISCOVERED.value, OpportunityStatus.VERIFIED.value]
_TERMINAL_VALUES = [s.value for s in TERMINAL_STATUSES]


def _dec(value: float | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


def _float(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def _sanitize(val: str | None) -> str | None:
    """Strip null bytes and control chars that PostgreSQL rejects."""
    if val is None:
        return None
    return val.replace("\x00", "").strip() or None


# --- Mapping ---


def pool_from_record(rec: PoolRecord) -> Pool:
    return Pool(
        address=rec.address,
        mint_a=rec.mint_a,
        mint_b=rec.mint_b,
        venue=rec.venue,
        tvl_usd=_float(rec.tvl_usd) or 0.0,
        symbol_a=rec.symbol_a,
        symbol_b=rec.symbol_b,
        fee_rate=_float(rec.fee_rate),
        last_metadata_update=rec.last_metadata_update,
        is_active=rec.is_active,
        current_price_a=_float(rec.current_price_a),
        current_price_b=_float(rec.current_price_b),
        price_updated_at=rec.price_updated_at,
        token_a_balance=_float(rec.token_a_balance),
        token_b_balance=_float(rec.token_b_balance),
        decimals_a=rec.decimals_a,
        decimals_b=rec.decimals_b,
        price_source=PriceSource(rec.price_source or PriceSource.DEXSCREENER.value),
        last_verified_slot=rec.last_verified_slot,
    )


def _apply_pool(rec: PoolRecord, pool: Pool) -> None:
    rec.venue = pool.venue
    rec.mint_a = pool.mint_a
    rec.mint_b = pool.mint_b
    rec.pair_key = pool.pair_key
    rec.symbol_a = _sanitize(pool.symbol_a)
    rec.symbol_b = _sanitize(pool.symbol_b)
    rec.decimals_a = pool.decimals_a
    rec.decimals_b = pool.decimals_b
    rec.tvl_usd = _dec(pool.tvl_usd)
    rec.fee_rate = _dec(pool.fee_rate)
    rec.is_active = pool.is_active
    rec.last_metadata_update = pool.last_metadata_update
    rec.current_price_a = _dec(pool.current_price_a)
    rec.current_price_b = _dec(pool.current_price_b)
    rec.price_updated_at = pool.price_updated_at
    rec.price_source = pool.price_source.value
    rec.token_a_balance = _dec(pool.token_a_balance)
    rec.token_b_balance = _dec(pool.token_b_balance)
    rec.last_verified_slot = pool.last_verified_slot


def opportunity_from_record(rec: OpportunityRecord) -> ArbitrageOpportunity:
    return ArbitrageOpportunity(
        id=rec.id,
        pair_key=rec.pair_key,
        venue_a=rec.venue_a,
        venue_b=rec.venue_b,
        pool_a_address=rec.pool_a_address,
        pool_b_address=rec.pool_b_address,
        mint_a=rec.mint_a,
        mint_b=rec.mint_b,
        profit_percent=_float(rec.profit_percent) or 0.0,
        estimated_profit_usd=_float(rec.estimated_profit_usd) or 0.0,
        priority_score=_float(rec.priority_score) or 0.0,
        created_at=rec.created_at,
        expires_at=rec.expires_at,
        status=OpportunityStatus(rec.status),
        token_symbols=rec.token_symbols,
        rate_a=_float(rec.rate_a),
        rate_b=_float(rec.rate_b),
        total_tvl_usd=_float(rec.total_tvl_usd) or 0.0,
        trading_path=rec.trading_path,
        verified_at=rec.verified_at,
        verification_attempts=rec.verification_attempts or 0,
        verification_notes=rec.verification_notes,
        execution_tx=rec.execution_tx,
        actual_profit_usd=_float(rec.actual_profit_usd),
        failure_reason=rec.failure_reason,
        updated_at=rec.updated_at,
        closed_at=rec.closed_at,
    )


def _apply_opportunity(rec: OpportunityRecord, opp: ArbitrageOpportunity) -> None:
    rec.pair_key = opp.pair_key
    rec.mint_a = opp.mint_a
    rec.mint_b = opp.mint_b
    rec.token_symbols = _sanitize(opp.token_symbols)
    rec.venue_a = opp.venue_a
    rec.venue_b = opp.venue_b
    rec.pool_a_address = opp.pool_a_address
    rec.pool_b_address = opp.pool_b_address
    rec.rate_a = _dec(opp.rate_a)
    rec.rate_b = _dec(opp.rate_b)
    rec.profit_percent = _dec(opp.profit_percent)
    rec.estimated_profit_usd = _dec(opp.estimated_profit_usd)
    rec.priority_score = _dec(opp.priority_score)
    rec.total_tvl_usd = _dec(opp.total_tvl_usd)
    rec.trading_path = opp.trading_path
    rec.status = opp.status.value
    rec.created_at = opp.created_at
    rec.expires_at = opp.expires_at
    rec.updated_at = opp.updated_at
    rec.closed_at = opp.closed_at
    rec.verified_at = opp.verified_at
    rec.verification_attempts = opp.verification_attempts
    rec.verification_notes = _sanitize(opp.verification_notes)
    rec.execution_tx = opp.execution_tx
    rec.actual_profit_usd = _dec(opp.actual_profit_usd)
    rec.failure_reason = _sanitize(opp.failure_reason)


# --- Session-level operations ---


async def save_pool(session: AsyncSession, pool: Pool) -> PoolRecord:
    """Insert or update a pool by address."""
    rec = await session.scalar(select(PoolRecord).where(PoolRecord.address == pool.address))
    if rec is None:
        rec = PoolRecord(address=pool.address)
        session.add(rec)
    _apply_pool(rec, pool)
    await session.flush()
    return rec


async def load_pools_with_prices(
    session: AsyncSession,
    min_tvl_usd: float,
    max_price_age_minutes: float,
    now: datetime | None = None,
) -> list[Pool]:
    """Active pools with both prices, TVL >= min and prices newer than the cutoff."""
    now = now or utcnow()
    cutoff = now - timedelta(minutes=max_price_age_minutes)
    stmt = (
        select(PoolRecord)
        .where(
            PoolRecord.is_active.is_(True),
            PoolRecord.tvl_usd >= _dec(min_tvl_usd),
            PoolRecord.current_price_a.is_not(None),
            PoolRecord.current_price_b.is_not(None),
            PoolRecord.price_updated_at >= cutoff,
        )
        .order_by(PoolRecord.tvl_usd.desc(), PoolRecord.address)
    )
    result = await session.execute(stmt)
    return [pool_from_record(rec) for rec in result.scalars().all()]


async def list_pools(
    session: AsyncSession, min_tvl_usd: float = 0.0, limit: int = 200
) -> list[Pool]:
    """Active pools with TVL >= min, deepest first."""
    result = await session.execute(
        select(PoolRecord)
        .where(PoolRecord.is_active.is_(True), PoolRecord.tvl_usd >= _dec(min_tvl_usd))
        .order_by(PoolRecord.tvl_usd.desc(), PoolRecord.address)
        .limit(limit)
    )
    return [pool_from_record(rec) for rec in result.scalars().all()]


async def pools_for_pair(session: AsyncSession, mint_a: str, mint_b: str) -> list[Pool]:
    """Active pools trading the pair, in either mint order."""
    result = await session.execute(
        select(PoolRecord)
        .where(PoolRecord.is_active.is_(True), PoolRecord.pair_key == pair_key(mint_a, mint_b))
        .order_by(PoolRecord.tvl_usd.desc(), PoolRecord.address)
    )
    return [pool_from_record(rec) for rec in result.scalars().all()]


async def pools_with_token(session: AsyncSession, mint: str, limit: int = 200) -> list[Pool]:
    result = await session.execute(
        select(PoolRecord)
        .where(
            PoolRecord.is_active.is_(True),
            or_(PoolRecord.mint_a == mint, PoolRecord.mint_b == mint),
        )
        .order_by(PoolRecord.tvl_usd.desc(), PoolRecord.address)
        .limit(limit)
    )
    return [pool_from_record(rec) for rec in result.scalars().all()]


async def deactivate_stale_pools(session: AsyncSession, before: datetime) -> int:
    """Mark pools whose metadata was last refreshed before ``before`` inactive."""
    result = await session.execute(
        update(PoolRecord)
        .where(PoolRecord.is_active.is_(True), PoolRecord.last_metadata_update < before)
        .values(is_active=False)
    )
    await session.flush()
    return result.rowcount or 0


async def load_active_opportunities(session: AsyncSession) -> list[ArbitrageOpportunity]:
    result = await session.execute(
        select(OpportunityRecord)
        .where(OpportunityRecord.status.in_(_ACTIVE_STATUSES))
        .order_by(OpportunityRecord.priority_score.desc(), OpportunityRecord.id)
    )
    return [opportunity_from_record(rec) for rec in result.scalars().all()]


async def save_opportunity(session: AsyncSession, opp: ArbitrageOpportunity) -> OpportunityRecord:
    """Insert or update an opportunity by id.

    A stored terminal status is never overwritten.
    """
    rec = await session.get(OpportunityRecord, opp.id)
    if rec is None:
        rec = OpportunityRecord(id=opp.id)
        session.add(rec)
    elif rec.status in _TERMINAL_VALUES and rec.status != opp.status.value:
        logger.warning(
            f"[DB] Opportunity {opp.id[:8]} already {rec.status}, ignoring {opp.status.value}"
        )
        return rec
    _apply_opportunity(rec, opp)
    await session.flush()
    return rec


async def delete_expired_opportunities(session: AsyncSession, before: datetime) -> int:
    """Delete terminal opportunities closed before ``before``."""
    closed = func.coalesce(OpportunityRecord.closed_at, OpportunityRecord.expires_at)
    result = await session.execute(
        delete(OpportunityRecord).where(
            OpportunityRecord.status.in_(_TERMINAL_VALUES),
            closed < before,
        )
    )
    await session.flush()
    return result.rowcount or 0


async def count_by_status(session: AsyncSession) -> dict[str, int]:
    result = await session.execute(
        select(OpportunityRecord.status, func.count()).group_by(OpportunityRecord.status)
    )
    return {status: count for status, count in result.all()}


async def list_opportunities(
    session: AsyncSession, *, status: str | None = None, limit: int = 50
) -> list[ArbitrageOpportunity]:
    stmt = select(OpportunityRecord)
    if status:
        stmt = stmt.where(OpportunityRecord.status == status.upper())
    stmt = stmt.order_by(
        OpportunityRecord.created_at.desc(), OpportunityRecord.priority_score.desc()
    ).limit(limit)
    result = await session.execute(stmt)
    return [opportunity_from_record(rec) for rec in result.scalars().all()]


# --- Transactional store ---


class SqlArbitrageStore:
    """Each method runs in its own session and commits on success."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def ping(self) -> None:
        async with self._session_factory() as session:
            await session.execute(text("SELECT 1"))

    async def save_pools(self, pools: Iterable[Pool]) -> int:
        saved = 0
        async with self._session_factory() as session:
            for pool in pools:
                await save_pool(session, pool)
                saved += 1
            await session.commit()
        if saved:
            logger.debug(f"[DB] Saved {saved} pools")
        return saved

    async def save_pool(self, pool: Pool) -> None:
        await self.save_pools([pool])

    async def load_pools_with_prices(
        self, min_tvl_usd: float, max_price_age_minutes: float, now: datetime | None = None
    ) -> list[Pool]:
        async with self._session_factory() as session:
            return await load_pools_with_prices(session, min_tvl_usd, max_price_age_minutes, now)

    async def list_pools(self, min_tvl_usd: float = 0.0, limit: int = 200) -> list[Pool]:
        async with self._session_factory() as session:
            return await list_pools(session, min_tvl_usd, limit)

    async def pools_for_pair(self, mint_a: str, mint_b: str) -> list[Pool]:
        async with self._session_factory() as session:
            return await pools_for_pair(session, mint_a, mint_b)

    async def pools_with_token(self, mint: str, limit: int = 200) -> list[Pool]:
        async with self._session_factory() as session:
            return await pools_with_token(session, mint, limit)

    async def deactivate_stale_pools(self, before: datetime) -> int:
        async with self._session_factory() as session:
            count = await deactivate_stale_pools(session, before)
            await session.commit()
        if count:
            logger.info(f"[DB] Deactivated {count} stale pools")
        return count

    async def load_active_opportunities(self) -> list[ArbitrageOpportunity]:
        async with self._session_factory() as session:
            return await load_active_opportunities(session)

    async def save_opportunities(self, opportunities: Iterable[ArbitrageOpportunity]) -> int:
        saved = 0
        async with self._session_factory() as session:
            for opp in opportunities:
                await save_opportunity(session, opp)
                saved += 1
            await session.commit()
        return saved

    async def save_opportunity(self, opp: ArbitrageOpportunity) -> None:
        await self.save_opportunities([opp])

    async def delete_expired_opportunities(self, before: datetime) -> int:
        async with self._session_factory() as session:
            count = await delete_expired_opportunities(session, before)
            await session.commit()
        if count:
            logger.info(f"[DB] Deleted {count} closed opportunities")
        return count

    async def count_by_status(self) -> dict[str, int]:
        async with self._session_factory() as session:
            return await count_by_status(session)

    async def list_opportunities(
        self, *, status: str | None = None, limit: int = 50
    ) -> list[ArbitrageOpportunity]:
        async with self._session_factory() as session:
            return await list_opportunities(session, status=status, limit=limit)
