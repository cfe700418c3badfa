import asyncio
import re
from datetime import datetime

import httpx
from loguru import logger
from pydantic import ValidationError

from src.arbitrage.constants import MAIN_MINTS, SUPPORTED_VENUES
from src.arbitrage.types import Pool, utcnow
from src.parsers.dexscreener.models import DexScreenerPair
from src.parsers.rate_limiter import RateLimiter

BASE_URL = "https://api.dexscreener.com"
MAX_RETRIES = 3
RETRY_DELAYS = [1.0, 2.0, 4.0]

_SYMBOL_RE = re.compile(r"[^a-zA-Z0-9]")


def clean_symbol(symbol: str | None) -> str | None:
    """Strip a token symbol to alphanumerics, max 20 chars."""
    if not symbol:
        return None
    cleaned = _SYMBOL_RE.sub("", symbol.strip())
    return cleaned[:20] or None


def pair_to_pool(pair: DexScreenerPair, now: datetime | None = None) -> Pool | None:
    """Convert a DexScreener pair into a Pool snapshot.

    Prices are USD-denominated: price_a is the base token's USD price and
    price_b the quote token's, derived from priceUsd / priceNative, so the
    ratio equals priceNative (quote per base). Returns None for pairs that
    cannot form a valid Pool.
    """
    if not pair.pairAddress or pair.baseToken is None or pair.quoteToken is None:
        return None
    if pair.baseToken.address == pair.quoteToken.address:
        return None

    now = now or utcnow()
    pool = Pool(
        address=pair.pairAddress,
        mint_a=pair.baseToken.address,
        mint_b=pair.quoteToken.address,
        venue=pair.dexId or "unknown",
        tvl_usd=pair.liquidity_usd or 0.0,
        symbol_a=clean_symbol(pair.baseToken.symbol),
        symbol_b=clean_symbol(pair.quoteToken.symbol),
        last_metadata_update=now,
    )

    native = pair.price_native
    usd = pair.price_usd
    if native is not None and usd is not None:
        pool.set_prices(usd, usd / native, now)
    elif native is not None:
        pool.set_prices(native, 1.0, now)
    return pool


class DexScreenerClient:
    """Async REST client for DexScreener public API (no auth required)."""

    def __init__(self, rate_limiter: RateLimiter | None = None, max_rps: float = 1.0) -> None:
        self._client = httpx.AsyncClient(
            base_url=BASE_URL,
            timeout=10.0,
            headers={"Accept": "application/json"},
        )
        self._rate_limiter = rate_limiter or RateLimiter(max_rps)

    async def _request_with_retry(self, path: str) -> httpx.Response:
        """Execute GET with retry on 429/timeout."""
        for attempt in range(MAX_RETRIES):
            await self._rate_limiter.acquire()
            try:
                response = await self._client.get(path)
                if response.status_code == 429:
                    delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                    retry_after = response.headers.get("Retry-After")
                    if retry_after:
                        delay = max(float(retry_after), delay)
                    logger.debug(f"[DEXSCREENER] 429 rate limited, retrying in {delay}s")
                    await asyncio.sleep(delay)
                    continue
                response.raise_for_status()
                return response
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                if attempt < MAX_RETRIES - 1:
                    delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                    logger.debug(f"[DEXSCREENER] {type(e).__name__}, retrying in {delay}s")
                    await asyncio.sleep(delay)
                else:
                    raise
        # Final attempt after exhausting 429 retries
        await self._rate_limiter.acquire()
        response = await self._client.get(path)
        response.raise_for_status()
        return response

    async def get_token_pairs(self, token_address: str) -> list[DexScreenerPair]:
        """Get all pairs for a token on Solana."""
        response = await self._request_with_retry(f"/token-pairs/v1/solana/{token_address}")
        data = response.json()
        if isinstance(data, list):
            return [DexScreenerPair.model_validate(p) for p in data]
        pairs = data.get("pairs", data.get("pair", []))
        if not isinstance(pairs, list):
            pairs = [pairs] if pairs else []
        return [DexScreenerPair.model_validate(p) for p in pairs]

    async def fetch_pool_snapshots(
        self,
        mints: tuple[str, ...] = MAIN_MINTS,
        *,
        min_liquidity_usd: float = 0.0,
        venues: frozenset[str] = SUPPORTED_VENUES,
    ) -> list[Pool]:
        """Collect pool snapshots for pairs touching ``mints``.

        Keeps Solana pairs on ``venues`` with liquidity >= ``min_liquidity_usd``,
        de-duplicated by pair address. A failing mint is logged and skipped.
        """
        now = utcnow()
        pools: dict[str, Pool] = {}
        for mint in mints:
            try:
                pairs = await self.get_token_pairs(mint)
            except (httpx.HTTPError, ValidationError, ValueError) as e:
                logger.warning(f"[DEXSCREENER] Pairs fetch failed for {mint[:8]}: {e}")
                continue

            kept = 0
            for pair in pairs:
                if pair.chainId.lower() != "solana":
                    continue
                if pair.dexId.lower() not in venues:
                    continue
                liquidity = pair.liquidity_usd
                if liquidity is None or liquidity < min_liquidity_usd:
                    continue
                if pair.pairAddress in pools:
                    continue
                pool = pair_to_pool(pair, now)
                if pool is None:
                    continue
                pools[pool.address] = pool
                kept += 1
            logger.debug(f"[DEXSCREENER] {mint[:8]}: {len(pairs)} pairs, {kept} kept")

        logger.info(f"[DEXSCREENER] Collected {len(pools)} pool snapshots")
        return list(pools.values())

    async def close(self) -> None:
        await self._client.aclose()
