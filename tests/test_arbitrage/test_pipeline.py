"""End-to-end scan cycles over the in-memory store with stubbed market data and RPC."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.arbitrage.detector import ArbitrageDetector
from src.arbitrage.lifecycle import OpportunityLifecycleManager
from src.arbitrage.persistence import SqlArbitrageStore
from src.arbitrage.pipeline import ScanPipeline
from src.arbitrage.types import (
    ArbitrageOpportunity,
    OpportunityStatus,
    Pool,
    PriceSource,
    utcnow,
)
from src.arbitrage.verifier import ChainVerifier
from src.parsers.decoders import DecodedPool, DecoderRegistry
from src.parsers.metrics import ScannerMetrics
from src.parsers.rate_limiter import SlidingWindowGate
from src.parsers.solana_rpc.client import AccountState
from src.parsers.solana_rpc.exceptions import RpcRateLimitedError

MINT_A = "AMint11111111111111111111111111111111111111"
MINT_B = "BMint11111111111111111111111111111111111111"


def _snapshot(address: str, venue: str, rate: float, now) -> Pool:
    pool = Pool(
        address=address,
        mint_a=MINT_A,
        mint_b=MINT_B,
        venue=venue,
        tvl_usd=100_000,
        symbol_a="AAA",
        symbol_b="BBB",
        last_metadata_update=now,
    )
    pool.set_prices(rate, 1.0, now)
    return pool


def _registry(chain_rates: dict[str, float]) -> DecoderRegistry:
    def decoder_for(venue: str):
        def decode(data: bytes, hint) -> DecodedPool:
            return DecodedPool(
                mint_a=MINT_A,
                mint_b=MINT_B,
                price_a=chain_rates[venue],
                price_b=1.0,
                decimals_a=9,
                decimals_b=6,
            )

        return decode

    return DecoderRegistry({venue: decoder_for(venue) for venue in chain_rates})


def _rpc_client() -> MagicMock:
    client = MagicMock()
    client.get_account_state = AsyncMock(return_value=AccountState(data=b"\x00", slot=900))
    client.close = AsyncMock()
    return client


def _market_data(snapshots: list[Pool]) -> MagicMock:
    market = MagicMock()
    market.fetch_pool_snapshots = AsyncMock(return_value=snapshots)
    return market


class StepClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _opportunity(opp_id: str, pool_a: str, pool_b: str) -> ArbitrageOpportunity:
    created = utcnow()
    return ArbitrageOpportunity(
        id=opp_id,
        pair_key=f"{MINT_A}-{MINT_B}",
        venue_a="raydium",
        venue_b="orca",
        pool_a_address=pool_a,
        pool_b_address=pool_b,
        mint_a=MINT_A,
        mint_b=MINT_B,
        profit_percent=2.0,
        estimated_profit_usd=5.0,
        priority_score=10.0,
        created_at=created,
        expires_at=created + timedelta(minutes=1),
    )


def _pipeline(
    store: SqlArbitrageStore,
    market: MagicMock,
    primary: MagicMock,
    chain_rates: dict[str, float],
    **kwargs,
) -> ScanPipeline:
    verifier = ChainVerifier(
        primary,
        registry=_registry(chain_rates),
        gate=SlidingWindowGate(budget=35, window_sec=10.0),
        pacing_delay_sec=0.0,
    )
    return ScanPipeline(
        store=store,
        verifier=verifier,
        detector=ArbitrageDetector(min_profit_pct=1.0),
        lifecycle=OpportunityLifecycleManager(ttl_minutes=5),
        market_data=market,
        metrics=kwargs.pop("metrics", None),
        min_tvl_usd=1_000,
        **kwargs,
    )


class TestRunCycle:
    @pytest.mark.asyncio
    async def test_detect_and_verify(self, store: SqlArbitrageStore) -> None:
        now = utcnow()
        market = _market_data(
            [_snapshot("P1", "raydium", 100.0, now), _snapshot("P2", "orca", 102.0, now)]
        )
        primary = _rpc_client()
        metrics = ScannerMetrics()
        pipeline = _pipeline(
            store, market, primary, {"raydium": 100.0, "orca": 102.0}, metrics=metrics
        )

        report = await pipeline.run_cycle(now)

        assert report.snapshots == 2
        assert report.candidates == 1
        assert report.opportunities_created == 1
        assert report.verified_pools == 2
        assert report.opportunities_verified == 1
        assert primary.get_account_state.await_count == 2

        assert await store.count_by_status() == {"VERIFIED": 1}
        (opp,) = await store.list_opportunities()
        assert opp.pool_a_address == "P1"
        assert opp.verification_attempts == 1
        assert "on-chain" in opp.verification_notes

        pools = await store.load_pools_with_prices(0, 60, now)
        assert {p.price_source for p in pools} == {PriceSource.RPC}

        summary = metrics.get_summary()
        assert summary["cycles"] == 1
        assert summary["verified"] == 1

    @pytest.mark.asyncio
    async def test_chain_disagrees(self, store: SqlArbitrageStore) -> None:
        now = utcnow()
        market = _market_data(
            [_snapshot("P1", "raydium", 100.0, now), _snapshot("P2", "orca", 102.0, now)]
        )
        pipeline = _pipeline(store, market, _rpc_client(), {"raydium": 100.0, "orca": 100.1})

        report = await pipeline.run_cycle(now)

        assert report.opportunities_verified == 0
        (opp,) = pipeline.lifecycle.active()
        assert opp.status is OpportunityStatus.DISCOVERED
        assert opp.verification_attempts == 1
        assert "does not confirm" in opp.verification_notes

    @pytest.mark.asyncio
    async def test_rate_limited_verification(self, store: SqlArbitrageStore) -> None:
        now = utcnow()
        market = _market_data(
            [_snapshot("P1", "raydium", 100.0, now), _snapshot("P2", "orca", 102.0, now)]
        )
        primary = _rpc_client()
        primary.get_account_state = AsyncMock(side_effect=RpcRateLimitedError("429"))
        metrics = ScannerMetrics()
        pipeline = _pipeline(
            store, market, primary, {"raydium": 100.0, "orca": 102.0}, metrics=metrics
        )

        report = await pipeline.run_cycle(now)

        assert report.verified_pools == 0
        assert report.failure_kinds == {"rate_limited": 1}
        assert primary.get_account_state.await_count == 1
        (opp,) = pipeline.lifecycle.active()
        assert opp.verification_attempts == 1
        assert metrics.get_summary()["verification_failures"] == {"rate_limited": 1}
        assert pipeline.get_stats()["rate_limit_hits"] == 1

    @pytest.mark.asyncio
    async def test_market_data_failure_uses_stored_pools(self, store: SqlArbitrageStore) -> None:
        now = utcnow()
        await store.save_pools(
            [_snapshot("P1", "raydium", 100.0, now), _snapshot("P2", "orca", 102.0, now)]
        )
        market = MagicMock()
        market.fetch_pool_snapshots = AsyncMock(side_effect=RuntimeError("dexscreener down"))
        pipeline = _pipeline(store, market, _rpc_client(), {"raydium": 100.0, "orca": 102.0})

        report = await pipeline.run_cycle(now)

        assert report.snapshots == 0
        assert report.pools_loaded == 2
        assert report.candidates == 1

    @pytest.mark.asyncio
    async def test_opportunity_expires_in_later_cycle(self, store: SqlArbitrageStore) -> None:
        now = utcnow()
        market = _market_data(
            [_snapshot("P1", "raydium", 100.0, now), _snapshot("P2", "orca", 102.0, now)]
        )
        primary = _rpc_client()
        primary.get_account_state = AsyncMock(side_effect=RpcRateLimitedError("429"))
        pipeline = _pipeline(
            store,
            market,
            primary,
            {"raydium": 100.0, "orca": 102.0},
            price_max_age_minutes=5,
        )

        await pipeline.run_cycle(now)
        market.fetch_pool_snapshots = AsyncMock(return_value=[])
        report = await pipeline.run_cycle(now + timedelta(minutes=6))

        assert report.candidates == 0
        assert report.expired == 1
        assert await store.count_by_status() == {"EXPIRED": 1}
        assert pipeline.lifecycle.active() == []

    @pytest.mark.asyncio
    async def test_verification_capped(self, store: SqlArbitrageStore) -> None:
        now = utcnow()
        market = _market_data(
            [
                _snapshot("P1", "raydium", 100.0, now),
                _snapshot("P2", "orca", 102.0, now),
                _snapshot("P3", "meteora", 104.0, now),
            ]
        )
        primary = _rpc_client()
        pipeline = _pipeline(
            store,
            market,
            primary,
            {"raydium": 100.0, "orca": 102.0, "meteora": 104.0},
            max_verifications=2,
        )

        report = await pipeline.run_cycle(now)

        assert report.candidates == 3
        assert report.verification_requested == 2
        assert primary.get_account_state.await_count == 2
        assert report.opportunities_verified == 1

    @pytest.mark.asyncio
    async def test_failed_opportunity_write_is_retried_next_cycle(
        self, store: SqlArbitrageStore
    ) -> None:
        now = utcnow()
        market = _market_data(
            [_snapshot("P1", "raydium", 100.0, now), _snapshot("P2", "orca", 102.0, now)]
        )
        pipeline = _pipeline(store, market, _rpc_client(), {"raydium": 100.0, "orca": 102.0})

        store.save_opportunities = AsyncMock(side_effect=RuntimeError("db write failed"))
        with pytest.raises(RuntimeError):
            await pipeline.run_cycle(now)
        (opp,) = pipeline.lifecycle.active()
        assert opp.status is OpportunityStatus.VERIFIED

        # spread gone, storage healthy again
        del store.save_opportunities
        later = now + timedelta(minutes=1)
        market.fetch_pool_snapshots = AsyncMock(
            return_value=[
                _snapshot("P1", "raydium", 100.0, later),
                _snapshot("P2", "orca", 100.0, later),
            ]
        )
        report = await pipeline.run_cycle(later)

        assert report.candidates == 0
        assert report.persisted == 1
        (stored,) = await store.load_active_opportunities()
        assert stored.id == opp.id
        assert stored.status is OpportunityStatus.VERIFIED
        assert stored.verification_attempts == 1

    @pytest.mark.asyncio
    async def test_soft_deadline_stops_verification_but_finishes_cycle(
        self, store: SqlArbitrageStore
    ) -> None:
        now = utcnow()
        market = _market_data(
            [
                _snapshot("P1", "raydium", 100.0, now),
                _snapshot("P2", "orca", 102.0, now),
                _snapshot("P3", "meteora", 104.0, now),
            ]
        )
        clock = StepClock()
        primary = _rpc_client()

        async def slow_lookup(address: str) -> AccountState:
            clock.now += 60.0
            return AccountState(data=b"\x00", slot=900)

        primary.get_account_state = AsyncMock(side_effect=slow_lookup)
        pipeline = _pipeline(
            store,
            market,
            primary,
            {"raydium": 100.0, "orca": 102.0, "meteora": 104.0},
            max_verifications=5,
            soft_deadline_sec=100.0,
            deadline_margin_sec=3.0,
            clock=clock,
        )
        stale = pipeline.lifecycle.discover(
            _opportunity("stale", "P8", "P9"), now - timedelta(minutes=10)
        )

        report = await pipeline.run_cycle(now)

        assert report.deadline_hit
        assert report.verification_requested == 3
        assert primary.get_account_state.await_count == 2
        assert report.verified_pools == 2
        assert report.expired == 1
        assert stale.status is OpportunityStatus.EXPIRED
        assert report.persisted == 4
        counts = await store.count_by_status()
        assert counts["EXPIRED"] == 1
        assert counts.get("DISCOVERED", 0) + counts.get("VERIFIED", 0) == 3


class TestScheduling:
    @pytest.mark.asyncio
    async def test_trigger_scan_once(self, store: SqlArbitrageStore) -> None:
        pipeline = _pipeline(store, _market_data([]), _rpc_client(), {"orca": 1.0})
        assert pipeline.trigger_scan()
        assert not pipeline.trigger_scan()

    @pytest.mark.asyncio
    async def test_run_forever_logs_failures_and_stops(self, store: SqlArbitrageStore) -> None:
        metrics = ScannerMetrics()
        pipeline = _pipeline(
            store, _market_data([]), _rpc_client(), {"orca": 1.0}, metrics=metrics
        )
        broken = MagicMock()
        broken.deactivate_stale_pools = AsyncMock(side_effect=RuntimeError("db gone"))
        pipeline._store = broken

        original = metrics.record_cycle_failure

        def failure_then_stop() -> None:
            original()
            pipeline.stop()

        metrics.record_cycle_failure = failure_then_stop
        await pipeline.run_forever(interval_sec=0.01)

        assert metrics.get_summary()["failed_cycles"] == 1
        assert pipeline.get_stats()["last_error"] == "RuntimeError: db gone"
        assert pipeline.get_stats()["total_scans"] == 0
