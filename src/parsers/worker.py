"""Scanner worker: builds the pipeline from settings and runs its loops."""

import asyncio

from loguru import logger

from config.settings import settings
from src.api.metrics_registry import registry
from src.arbitrage.detector import ArbitrageDetector
from src.arbitrage.lifecycle import OpportunityLifecycleManager
from src.arbitrage.persistence import SqlArbitrageStore
from src.arbitrage.pipeline import ScanPipeline
from src.arbitrage.verifier import ChainVerifier
from src.db.database import async_session_factory
from src.parsers.decoders import DecoderRegistry
from src.parsers.dexscreener.client import DexScreenerClient
from src.parsers.metrics import metrics as scanner_metrics
from src.parsers.rate_limiter import SlidingWindowGate
from src.parsers.solana_rpc.client import SolanaRpcClient
from src.parsers.solana_rpc.exceptions import SolanaRpcError


def build_verifier() -> ChainVerifier:
    """Verifier over the configured primary/fallback endpoints.

    Raises VerifierConfigError when neither URL is set.
    """
    primary = (
        SolanaRpcClient(settings.solana_rpc_url, name="primary", timeout=settings.rpc_timeout_sec)
        if settings.solana_rpc_url
        else None
    )
    fallback = (
        SolanaRpcClient(
            settings.solana_fallback_rpc_url, name="fallback", timeout=settings.rpc_timeout_sec
        )
        if settings.solana_fallback_rpc_url
        else None
    )
    return ChainVerifier(
        primary,
        fallback,
        registry=DecoderRegistry(),
        gate=SlidingWindowGate(settings.rpc_window_budget, settings.rpc_window_sec),
        max_retries=settings.rpc_max_retries,
        retry_delay_sec=settings.rpc_retry_delay_sec,
        rate_limit_backoff_sec=settings.rpc_rate_limit_backoff_sec,
        pacing_delay_sec=settings.rpc_pacing_delay_sec,
    )


def build_pipeline(
    verifier: ChainVerifier,
    store: SqlArbitrageStore,
    dexscreener: DexScreenerClient | None,
) -> ScanPipeline:
    return ScanPipeline(
        store=store,
        verifier=verifier,
        detector=ArbitrageDetector(
            min_profit_pct=settings.min_profit_pct,
            ttl_minutes=settings.opportunity_ttl_minutes,
            trade_size_fraction=settings.trade_size_fraction,
        ),
        lifecycle=OpportunityLifecycleManager(ttl_minutes=settings.opportunity_ttl_minutes),
        market_data=dexscreener,
        metrics=scanner_metrics,
        min_tvl_usd=settings.min_tvl_usd,
        price_max_age_minutes=settings.price_max_age_minutes,
        pool_stale_hours=settings.pool_stale_hours,
        max_verifications=settings.rpc_max_verifications_per_cycle,
        max_opportunities_per_cycle=settings.max_opportunities_per_cycle,
        soft_deadline_sec=settings.scan_soft_deadline_sec,
        deadline_margin_sec=settings.scan_deadline_margin_sec,
        retention_hours=settings.opportunity_retention_hours,
        freshness_cutoff_minutes=settings.freshness_cutoff_minutes,
    )


async def _probe_endpoints(rpc_clients: list[SolanaRpcClient]) -> None:
    """Log reachability of each RPC endpoint once at startup."""
    for client in rpc_clients:
        try:
            slot = await client.get_slot()
            logger.info(f"[RPC] {client.name} endpoint reachable, slot {slot}")
        except SolanaRpcError as e:
            logger.warning(f"[RPC] {client.name} endpoint probe failed: {e}")


async def _stats_reporter(pipeline: ScanPipeline) -> None:
    """Log scanner stats every 60 seconds."""
    while True:
        await asyncio.sleep(60)
        rpc = pipeline.verifier.get_stats()
        parts = [
            f"RPC: {'fallback' if rpc.using_fallback else 'primary'}",
            f"rate limits: {rpc.rate_limit_hits}",
            f"window: {rpc.requests_in_window}/{rpc.window_budget}",
            f"active opps: {len(pipeline.lifecycle.active())}",
            scanner_metrics.format_stats_line(),
        ]
        logger.info(f"[STATS] {' | '.join(parts)}")


async def run_scanner() -> None:
    """Entry point: starts the scan loop, stats reporter and dashboard."""
    verifier = build_verifier()
    store = SqlArbitrageStore(async_session_factory)
    dexscreener = (
        DexScreenerClient(max_rps=settings.dexscreener_max_rps)
        if settings.dexscreener_enabled
        else None
    )
    pipeline = build_pipeline(verifier, store, dexscreener)

    registry.pipeline = pipeline
    registry.store = store
    registry.scanner_metrics = scanner_metrics

    await _probe_endpoints(
        [c for c in (verifier.primary_client, verifier.fallback_client) if c is not None]
    )

    tasks = [
        asyncio.create_task(pipeline.run_forever(settings.scan_interval_sec)),
        asyncio.create_task(_stats_reporter(pipeline)),
    ]
    if settings.rpc_primary_reset_interval_sec > 0:
        tasks.append(
            asyncio.create_task(
                pipeline.run_primary_reset_loop(settings.rpc_primary_reset_interval_sec)
            )
        )
        logger.info(
            f"[RPC] Timer-driven primary reset every {settings.rpc_primary_reset_interval_sec}s"
        )
    if settings.dashboard_enabled:
        from src.api.server import run_dashboard_server

        tasks.append(asyncio.create_task(run_dashboard_server()))

    try:
        await asyncio.gather(*tasks)
    finally:
        pipeline.stop()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await verifier.close()
        if dexscreener is not None:
            await dexscreener.close()
        logger.info("[SCAN] Scanner clients closed")
