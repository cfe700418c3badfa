"""Tests for pool and opportunity scoring."""

import math
from datetime import datetime, timedelta

import pytest

from src.arbitrage.constants import USDC_MINT, USDT_MINT, WSOL_MINT
from src.arbitrage.scoring import (
    FRESHNESS_BONUS,
    SOL_PAIR_BONUS,
    STABLE_PAIR_BONUS,
    STABLECOIN_PAIR_BONUS,
    freshness_bonus,
    pair_bonus,
    rank_pools,
    score_opportunity_values,
    score_pool,
    tvl_term,
)
from src.arbitrage.types import Pool

NOW = datetime(2026, 1, 1, 12, 0, 0)
OTHER = "Other1111111111111111111111111111111111111"


def _pool(
    address: str = "P",
    mint_a: str = WSOL_MINT,
    mint_b: str = USDC_MINT,
    venue: str = "raydium",
    tvl: float = 1_000_000,
    age_minutes: float = 0,
) -> Pool:
    return Pool(
        address=address,
        mint_a=mint_a,
        mint_b=mint_b,
        venue=venue,
        tvl_usd=tvl,
        last_metadata_update=NOW - timedelta(minutes=age_minutes),
    )


class TestComponents:
    def test_tvl_term(self) -> None:
        assert tvl_term(1_000_000) == pytest.approx(6000.0)
        assert tvl_term(0) == 0.0
        assert tvl_term(None) == 0.0

    def test_pair_bonus_most_specific_wins(self) -> None:
        assert pair_bonus(_pool(mint_a=USDC_MINT, mint_b=USDT_MINT)) == STABLE_PAIR_BONUS
        assert pair_bonus(_pool(mint_a=WSOL_MINT, mint_b=USDC_MINT)) == SOL_PAIR_BONUS
        assert pair_bonus(_pool(mint_a=OTHER, mint_b=USDC_MINT)) == STABLECOIN_PAIR_BONUS
        assert pair_bonus(_pool(mint_a=OTHER, mint_b="Another")) == 0.0

    def test_freshness_decays(self) -> None:
        assert freshness_bonus(_pool(age_minutes=0), NOW) == pytest.approx(FRESHNESS_BONUS)
        assert freshness_bonus(_pool(age_minutes=30), NOW) == pytest.approx(FRESHNESS_BONUS / 2)
        assert freshness_bonus(_pool(age_minutes=90), NOW) == 0.0


class TestScorePool:
    def test_deterministic(self) -> None:
        pool = _pool()
        assert score_pool(pool, NOW) == score_pool(pool, NOW)

    def test_full_score(self) -> None:
        # SOL pair on raydium, $1M, fresh
        assert score_pool(_pool(), NOW) == pytest.approx(6000 + 5000 + 1000 + 500)

    def test_unknown_venue_no_bonus(self) -> None:
        assert score_pool(_pool(venue="lifinity", age_minutes=120), NOW) == pytest.approx(11000)

    def test_rank_pools(self) -> None:
        small = _pool(address="small", tvl=10_000)
        big = _pool(address="big", tvl=10_000_000)
        stable = _pool(address="stable", mint_a=USDC_MINT, mint_b=USDT_MINT, tvl=10_000)
        ranked = rank_pools([small, big, stable], NOW)
        assert [p.address for p in ranked] == ["stable", "big", "small"]

    def test_rank_ties_broken_by_address(self) -> None:
        ranked = rank_pools([_pool(address="b"), _pool(address="a")], NOW)
        assert [p.address for p in ranked] == ["a", "b"]

    def test_reference_time_required(self) -> None:
        with pytest.raises(TypeError):
            rank_pools([_pool()])  # type: ignore[call-arg]
        with pytest.raises(TypeError):
            score_pool(_pool())  # type: ignore[call-arg]


class TestScoreOpportunity:
    def test_formula(self) -> None:
        assert score_opportunity_values(2.0, 999.0) == pytest.approx(2.0 * math.log10(1000))

    def test_liquidity_outranks_percentage(self) -> None:
        deep = score_opportunity_values(1.0, 50_000_000)
        shallow = score_opportunity_values(5.0, 100)
        assert deep > shallow
