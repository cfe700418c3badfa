"""Pool queries: active pools, pools for a token pair, pools holding a token."""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from config.settings import settings
from src.api.dependencies import get_store
from src.arbitrage.persistence import SqlArbitrageStore
from src.arbitrage.types import Pool

router = APIRouter(prefix="/api/v1/pools", tags=["pools"])


class PoolOut(BaseModel):
    address: str
    venue: str
    mint_a: str
    mint_b: str
    pair_key: str
    symbol_pair: str
    tvl_usd: float
    fee_rate: float | None
    exchange_rate: float | None
    price_source: str
    price_updated_at: str | None
    last_verified_slot: int | None

    @classmethod
    def from_domain(cls, pool: Pool) -> "PoolOut":
        return cls(
            address=pool.address,
            venue=pool.venue,
            mint_a=pool.mint_a,
            mint_b=pool.mint_b,
            pair_key=pool.pair_key,
            symbol_pair=pool.symbol_pair,
            tvl_usd=round(pool.tvl_usd, 2),
            fee_rate=pool.fee_rate,
            exchange_rate=pool.exchange_rate(),
            price_source=pool.price_source.value,
            price_updated_at=pool.price_updated_at.isoformat() if pool.price_updated_at else None,
            last_verified_slot=pool.last_verified_slot,
        )


@router.get("", response_model=list[PoolOut])
async def list_pools(
    min_tvl: float | None = Query(default=None, ge=0),
    limit: int = Query(default=200, ge=1, le=1000),
    store: SqlArbitrageStore = Depends(get_store),
) -> list[PoolOut]:
    """Active pools at or above the TVL floor, deepest first."""
    floor = settings.min_tvl_usd if min_tvl is None else min_tvl
    pools = await store.list_pools(floor, limit)
    return [PoolOut.from_domain(p) for p in pools]


@router.get("/pair", response_model=list[PoolOut])
async def pools_for_pair(
    token_a: str = Query(min_length=1, max_length=64),
    token_b: str = Query(min_length=1, max_length=64),
    store: SqlArbitrageStore = Depends(get_store),
) -> list[PoolOut]:
    """Active pools trading the pair in either mint order."""
    if token_a == token_b:
        raise HTTPException(status_code=400, detail="token_a and token_b must differ")
    pools = await store.pools_for_pair(token_a, token_b)
    return [PoolOut.from_domain(p) for p in pools]


@router.get("/token/{mint}", response_model=list[PoolOut])
async def pools_with_token(
    mint: str,
    limit: int = Query(default=200, ge=1, le=1000),
    store: SqlArbitrageStore = Depends(get_store),
) -> list[PoolOut]:
    pools = await store.pools_with_token(mint, limit)
    return [PoolOut.from_domain(p) for p in pools]
