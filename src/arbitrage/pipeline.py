"""Scan cycle orchestration.

One cycle, strictly in order:
  snapshots -> save pools -> deactivate stale -> load priced pools
  -> adopt active opportunities -> detect -> discover (capped)
  -> verify a bounded subset -> apply results -> sweep expired
  -> persist changed opportunities -> purge old closed ones

Market-data and per-pool verification failures shrink the cycle's
output. Persistence errors propagate out of ``run_cycle``; the scan
loop logs them and moves on to the next cycle.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from src.arbitrage.detector import ArbitrageDetector, profit_percent
from src.arbitrage.lifecycle import OpportunityLifecycleManager
from src.arbitrage.persistence import SqlArbitrageStore
from src.arbitrage.scoring import score_pool
from src.arbitrage.types import (
    ArbitrageOpportunity,
    OpportunityStatus,
    Pool,
    VerificationResult,
    utcnow,
)
from src.arbitrage.verifier import ChainVerifier
from src.parsers.dexscreener.client import DexScreenerClient
from src.parsers.metrics import ScannerMetrics


@dataclass
class CycleReport:
    started_at: datetime
    finished_at: datetime | None = None
    duration_ms: float = 0.0
    snapshots: int = 0
    pools_deactivated: int = 0
    pools_loaded: int = 0
    candidates: int = 0
    opportunities_created: int = 0
    verification_requested: int = 0
    verified_pools: int = 0
    verification_failures: int = 0
    opportunities_verified: int = 0
    expired: int = 0
    persisted: int = 0
    deleted: int = 0
    deadline_hit: bool = False
    failure_kinds: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        data["duration_ms"] = round(self.duration_ms)
        return data


class ScanPipeline:
    def __init__(
        self,
        *,
        store: SqlArbitrageStore,
        verifier: ChainVerifier,
        detector: ArbitrageDetector,
        lifecycle: OpportunityLifecycleManager,
        market_data: DexScreenerClient | None = None,
        metrics: ScannerMetrics | None = None,
        min_tvl_usd: float = 40_000.0,
        price_max_age_minutes: float = 30,
        pool_stale_hours: float = 24,
        max_verifications: int = 5,
        max_opportunities_per_cycle: int = 50,
        soft_deadline_sec: float = 120.0,
        deadline_margin_sec: float = 3.0,
        retention_hours: float = 24,
        freshness_cutoff_minutes: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._verifier = verifier
        self._detector = detector
        self._lifecycle = lifecycle
        self._market_data = market_data
        self._metrics = metrics
        self.min_tvl_usd = min_tvl_usd
        self.price_max_age_minutes = price_max_age_minutes
        self.pool_stale_hours = pool_stale_hours
        self.max_verifications = max_verifications
        self.max_opportunities_per_cycle = max_opportunities_per_cycle
        self.soft_deadline_sec = soft_deadline_sec
        self.deadline_margin_sec = deadline_margin_sec
        self.retention_hours = retention_hours
        self.freshness_cutoff_minutes = freshness_cutoff_minutes
        self._clock = clock

        self._cycle_lock = asyncio.Lock()
        self._wake = asyncio.Event()
        self._stopped = False

        self._total_scans = 0
        self._last_scan_time: datetime | None = None
        self._last_report: CycleReport | None = None
        self._last_error: str | None = None

    @property
    def lifecycle(self) -> OpportunityLifecycleManager:
        return self._lifecycle

    @property
    def verifier(self) -> ChainVerifier:
        return self._verifier

    @property
    def is_scanning(self) -> bool:
        return self._cycle_lock.locked()

    # --- One cycle ---

    async def run_cycle(self, now: datetime | None = None) -> CycleReport:
        async with self._cycle_lock:
            return await self._run_cycle(now or utcnow())

    async def _run_cycle(self, now: datetime) -> CycleReport:
        started = self._clock()
        deadline = started + self.soft_deadline_sec
        report = CycleReport(started_at=now)
        logger.info("[SCAN] Cycle started")

        snapshots = await self._fetch_snapshots()
        report.snapshots = len(snapshots)
        if snapshots:
            await self._store.save_pools(snapshots)

        report.pools_deactivated = await self._store.deactivate_stale_pools(
            now - timedelta(hours=self.pool_stale_hours)
        )
        pools = await self._store.load_pools_with_prices(
            self.min_tvl_usd, self.price_max_age_minutes, now
        )
        report.pools_loaded = len(pools)
        self._lifecycle.load(await self._store.load_active_opportunities())

        candidates = self._detector.detect(pools, now)
        report.candidates = len(candidates)
        before = len(self._lifecycle)
        discovered = [
            self._lifecycle.discover(c, now)
            for c in candidates[: self.max_opportunities_per_cycle]
        ]
        report.opportunities_created = len(self._lifecycle) - before

        pools_by_address = {p.address: p for p in pools}
        targets = self._verification_targets(discovered, pools_by_address, now)
        report.verification_requested = min(len(targets), self.max_verifications)

        failed_pools: dict[str, VerificationResult] = {}

        def on_failure(pool: Pool, result: VerificationResult) -> None:
            failed_pools[pool.address] = result
            kind = result.failure_kind.value if result.failure_kind else "unknown"
            report.failure_kinds[kind] = report.failure_kinds.get(kind, 0) + 1
            if self._metrics is not None:
                self._metrics.record_verification_failure(kind)

        def should_stop() -> bool:
            if self._clock() >= deadline - self.deadline_margin_sec:
                report.deadline_hit = True
                return True
            return self._stopped

        results = await self._verifier.verify_batch(
            targets,
            self.max_verifications,
            should_stop=should_stop,
            on_failure=on_failure,
        )
        report.verified_pools = len(results)
        report.verification_failures = len(failed_pools)

        verified: dict[str, Pool] = {}
        for result in results:
            pool = pools_by_address.get(result.pool_address)
            if pool is None:
                continue
            pool.apply_verification(result, now)
            verified[pool.address] = pool
        if verified:
            await self._store.save_pools(verified.values())

        report.opportunities_verified = self._apply_verification(
            discovered, verified, failed_pools, now
        )

        report.expired = len(self._lifecycle.sweep_expired(now))

        changed = self._lifecycle.drain_dirty()
        if changed:
            try:
                report.persisted = await self._store.save_opportunities(changed)
            except Exception:
                self._lifecycle.requeue(changed)
                raise
        report.deleted = await self._store.delete_expired_opportunities(
            now - timedelta(hours=self.retention_hours)
        )

        report.duration_ms = (self._clock() - started) * 1000
        report.finished_at = utcnow()
        self._total_scans += 1
        self._last_scan_time = now
        self._last_report = report
        self._last_error = None
        if self._metrics is not None:
            self._metrics.record_cycle(
                report.duration_ms,
                snapshots=report.snapshots,
                candidates=report.candidates,
                created=report.opportunities_created,
                verified=report.opportunities_verified,
                expired=report.expired,
            )
        logger.info(
            f"[SCAN] Cycle done in {report.duration_ms:.0f}ms: {report.snapshots} snapshots, "
            f"{report.pools_loaded} pools, {report.candidates} candidates, "
            f"{report.opportunities_created} new, {report.verified_pools}/"
            f"{report.verification_requested} pools verified, "
            f"{report.opportunities_verified} opportunities verified, {report.expired} expired"
            + (" (deadline hit)" if report.deadline_hit else "")
        )
        return report

    async def _fetch_snapshots(self) -> list[Pool]:
        if self._market_data is None:
            return []
        try:
            return await self._market_data.fetch_pool_snapshots(
                min_liquidity_usd=self.min_tvl_usd
            )
        except Exception as e:
            logger.warning(f"[SCAN] Snapshot fetch failed, continuing with stored pools: {e}")
            return []

    def _verification_targets(
        self,
        opportunities: list[ArbitrageOpportunity],
        pools_by_address: dict[str, Pool],
        now: datetime,
    ) -> list[Pool]:
        """Pools to verify: opportunity priority first, then pool score."""
        ordered = sorted(
            (o for o in opportunities if o.status == OpportunityStatus.DISCOVERED),
            key=lambda o: (-o.priority_score, o.id),
        )
        targets: list[Pool] = []
        seen: set[str] = set()
        for opp in ordered:
            pair = [
                pools_by_address[a]
                for a in (opp.pool_a_address, opp.pool_b_address)
                if a in pools_by_address and a not in seen
            ]
            pair.sort(
                key=lambda p: (
                    -score_pool(p, now, freshness_cutoff_minutes=self.freshness_cutoff_minutes),
                    p.address,
                )
            )
            for pool in pair:
                seen.add(pool.address)
                targets.append(pool)
        return targets

    def _apply_verification(
        self,
        opportunities: list[ArbitrageOpportunity],
        verified: dict[str, Pool],
        failed: dict[str, VerificationResult],
        now: datetime,
    ) -> int:
        """Fold chain results into opportunity state. Returns newly verified count."""
        confirmed = 0
        for opp in opportunities:
            if opp.status != OpportunityStatus.DISCOVERED:
                continue
            failure = failed.get(opp.pool_a_address) or failed.get(opp.pool_b_address)
            if failure is not None:
                kind = failure.failure_kind.value if failure.failure_kind else "unknown"
                self._lifecycle.record_verification_failure(
                    opp.id, f"{kind}: {failure.detail}"[:500], now
                )
                continue

            pool_a = verified.get(opp.pool_a_address)
            pool_b = verified.get(opp.pool_b_address)
            if pool_a is None or pool_b is None:
                continue
            rate_a = pool_a.canonical_rate()
            rate_b = pool_b.canonical_rate()
            if rate_a is None or rate_b is None:
                continue

            chain_profit = profit_percent(rate_a, rate_b)
            if chain_profit > self._detector.min_profit_pct and rate_a < rate_b:
                notes = (
                    f"on-chain {chain_profit:.3f}% "
                    f"(snapshot {opp.profit_percent:.3f}%), "
                    f"slots {pool_a.last_verified_slot}/{pool_b.last_verified_slot}"
                )
                if self._lifecycle.mark_verified(opp.id, notes, now):
                    confirmed += 1
            else:
                self._lifecycle.record_verification_failure(
                    opp.id, f"on-chain spread {chain_profit:.3f}% does not confirm", now
                )
        return confirmed

    # --- Scheduling ---

    def trigger_scan(self) -> bool:
        """Wake the scan loop. False if a scan is already running or queued."""
        if self.is_scanning or self._wake.is_set():
            return False
        self._wake.set()
        logger.info("[SCAN] Manual scan triggered")
        return True

    def stop(self) -> None:
        self._stopped = True
        self._wake.set()

    async def run_forever(self, interval_sec: float) -> None:
        """Run a cycle every ``interval_sec`` or when triggered."""
        logger.info(f"[SCAN] Scan loop started (every {interval_sec:.0f}s)")
        while not self._stopped:
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._last_error = f"{type(e).__name__}: {e}"
                if self._metrics is not None:
                    self._metrics.record_cycle_failure()
                logger.error(f"[SCAN] Cycle failed: {self._last_error}")
            if self._stopped:
                break
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=interval_sec)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()
        logger.info("[SCAN] Scan loop stopped")

    async def run_primary_reset_loop(self, interval_sec: float) -> None:
        """Timer-driven return to the primary RPC endpoint."""
        while not self._stopped:
            await asyncio.sleep(interval_sec)
            if self._verifier.using_fallback:
                self._verifier.reset_to_primary()

    def get_stats(self) -> dict[str, Any]:
        verifier_stats = self._verifier.get_stats()
        report = self._last_report
        return {
            "last_scan_time": self._last_scan_time.isoformat() if self._last_scan_time else None,
            "candidates_found": report.candidates if report else 0,
            "verified_count": report.opportunities_verified if report else 0,
            "rate_limit_hits": verifier_stats.rate_limit_hits,
            "using_fallback": verifier_stats.using_fallback,
            "total_scans": self._total_scans,
            "scanning": self.is_scanning,
            "last_error": self._last_error,
            "active_opportunities": len(self._lifecycle.active()),
            "last_cycle": report.to_dict() if report else None,
            "rpc": verifier_stats.to_dict(),
        }
