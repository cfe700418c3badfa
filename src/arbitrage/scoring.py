"""Priority scoring for pools and opportunities.

Pool score (ranks which pools deserve a chain verification):
  log10(tvl) * 1000                    dominant liquidity term
  + pair bonus                         stable/stable 10000, SOL 5000, stablecoin 2000
  + venue bonus                        raydium 1000, orca 800, meteora 600
  + freshness bonus                    500, decaying linearly to 0 at the cutoff

Opportunity score: profit_percent * log10(tvl_a + tvl_b + 1), so deep
liquidity outranks a high-percentage but illiquid discrepancy.

All functions are pure: same inputs, same score.
"""

import math
from collections.abc import Iterable
from datetime import datetime

from src.arbitrage.types import ArbitrageOpportunity, Pool

TVL_WEIGHT = 1000.0

STABLE_PAIR_BONUS = 10_000.0
SOL_PAIR_BONUS = 5_000.0
STABLECOIN_PAIR_BONUS = 2_000.0

VENUE_BONUS: dict[str, float] = {
    "raydium": 1000.0,
    "orca": 800.0,
    "meteora": 600.0,
}

FRESHNESS_BONUS = 500.0
DEFAULT_FRESHNESS_CUTOFF_MINUTES = 60.0


def tvl_term(tvl_usd: float | None) -> float:
    if not tvl_usd or tvl_usd <= 0:
        return 0.0
    return math.log10(tvl_usd) * TVL_WEIGHT


def pair_bonus(pool: Pool) -> float:
    if pool.is_stable_pair:
        return STABLE_PAIR_BONUS
    if pool.contains_sol:
        return SOL_PAIR_BONUS
    if pool.contains_stablecoin:
        return STABLECOIN_PAIR_BONUS
    return 0.0


def freshness_bonus(
    pool: Pool, now: datetime, cutoff_minutes: float = DEFAULT_FRESHNESS_CUTOFF_MINUTES
) -> float:
    if cutoff_minutes <= 0:
        return 0.0
    age = pool.metadata_age_minutes(now)
    if age >= cutoff_minutes:
        return 0.0
    return FRESHNESS_BONUS * (1.0 - age / cutoff_minutes)


def score_pool(
    pool: Pool,
    now: datetime,
    *,
    freshness_cutoff_minutes: float = DEFAULT_FRESHNESS_CUTOFF_MINUTES,
) -> float:
    return (
        tvl_term(pool.tvl_usd)
        + pair_bonus(pool)
        + VENUE_BONUS.get(pool.venue, 0.0)
        + freshness_bonus(pool, now, freshness_cutoff_minutes)
    )


def score_opportunity_values(profit_percent: float, combined_tvl_usd: float) -> float:
    return profit_percent * math.log10(max(combined_tvl_usd, 0.0) + 1)


def score_opportunity(opportunity: ArbitrageOpportunity, pool_a: Pool, pool_b: Pool) -> float:
    combined = (pool_a.tvl_usd or 0.0) + (pool_b.tvl_usd or 0.0)
    return score_opportunity_values(opportunity.profit_percent, combined)


def rank_pools(
    pools: Iterable[Pool],
    now: datetime,
    *,
    freshness_cutoff_minutes: float = DEFAULT_FRESHNESS_CUTOFF_MINUTES,
) -> list[Pool]:
    """Pools by descending score, address as tiebreak."""
    scored = [
        (score_pool(p, now, freshness_cutoff_minutes=freshness_cutoff_minutes), p) for p in pools
    ]
    scored.sort(key=lambda item: (-item[0], item[1].address))
    return [p for _, p in scored]
