"""Scanner control and statistics: manual scan trigger, RPC failover controls."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from src.api.app import limiter
from src.api.dependencies import get_pipeline, get_registry, get_store
from src.api.metrics_registry import MetricsRegistry
from src.arbitrage.persistence import SqlArbitrageStore
from src.arbitrage.pipeline import ScanPipeline
from src.arbitrage.types import ArbitrageOpportunity, OpportunityStatus

router = APIRouter(prefix="/api/v1/scanner", tags=["scanner"])


class ActionResponse(BaseModel):
    ok: bool
    message: str


class OpportunityOut(BaseModel):
    id: str
    status: str
    token_symbols: str | None
    pair_key: str
    venue_a: str
    venue_b: str
    pool_a_address: str
    pool_b_address: str
    profit_percent: float
    estimated_profit_usd: float
    priority_score: float
    total_tvl_usd: float
    trading_path: str | None
    created_at: str
    expires_at: str
    verified_at: str | None
    verification_attempts: int
    verification_notes: str | None

    @classmethod
    def from_domain(cls, opp: ArbitrageOpportunity) -> "OpportunityOut":
        return cls(
            id=opp.id,
            status=opp.status.value,
            token_symbols=opp.token_symbols,
            pair_key=opp.pair_key,
            venue_a=opp.venue_a,
            venue_b=opp.venue_b,
            pool_a_address=opp.pool_a_address,
            pool_b_address=opp.pool_b_address,
            profit_percent=round(opp.profit_percent, 4),
            estimated_profit_usd=round(opp.estimated_profit_usd, 2),
            priority_score=round(opp.priority_score, 4),
            total_tvl_usd=round(opp.total_tvl_usd, 2),
            trading_path=opp.trading_path,
            created_at=opp.created_at.isoformat(),
            expires_at=opp.expires_at.isoformat(),
            verified_at=opp.verified_at.isoformat() if opp.verified_at else None,
            verification_attempts=opp.verification_attempts,
            verification_notes=opp.verification_notes,
        )


@router.get("/stats")
async def scanner_stats(
    pipeline: ScanPipeline = Depends(get_pipeline),
    reg: MetricsRegistry = Depends(get_registry),
) -> dict[str, Any]:
    """Last cycle outcome, RPC failover state and running totals."""
    stats = pipeline.get_stats()
    stats["opportunities_by_status"] = pipeline.lifecycle.counts_by_status()
    if reg.scanner_metrics is not None:
        stats["metrics"] = reg.scanner_metrics.get_summary()
    return stats


@router.post("/scan", response_model=ActionResponse)
@limiter.limit("6/minute")
async def trigger_scan(
    request: Request,
    pipeline: ScanPipeline = Depends(get_pipeline),
) -> ActionResponse:
    """Wake the scan loop for an immediate cycle."""
    if pipeline.trigger_scan():
        return ActionResponse(ok=True, message="Scan triggered")
    return ActionResponse(ok=False, message="Scan already in progress")


@router.get("/opportunities", response_model=list[OpportunityOut])
async def list_opportunities(
    status: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    store: SqlArbitrageStore = Depends(get_store),
) -> list[OpportunityOut]:
    """Recent opportunities, optionally filtered by status."""
    if status is not None:
        try:
            status = OpportunityStatus(status.upper()).value
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown status: {status}") from None
    opportunities = await store.list_opportunities(status=status, limit=limit)
    return [OpportunityOut.from_domain(o) for o in opportunities]


@router.get("/opportunities/active", response_model=list[OpportunityOut])
async def active_opportunities(
    pipeline: ScanPipeline = Depends(get_pipeline),
) -> list[OpportunityOut]:
    """Live opportunities held by the scanner, highest priority first."""
    return [OpportunityOut.from_domain(o) for o in pipeline.lifecycle.active()]


@router.post("/rpc/reset-primary", response_model=ActionResponse)
async def reset_primary(pipeline: ScanPipeline = Depends(get_pipeline)) -> ActionResponse:
    """Return the verifier to the primary RPC endpoint."""
    if pipeline.verifier.reset_to_primary():
        return ActionResponse(ok=True, message="Switched to primary RPC")
    return ActionResponse(ok=False, message="Already on primary RPC or no primary configured")


@router.post("/rpc/clear-rate-limit", response_model=ActionResponse)
async def clear_rate_limit(pipeline: ScanPipeline = Depends(get_pipeline)) -> ActionResponse:
    """Drop RPC cooldowns and the request window."""
    pipeline.verifier.clear_rate_limit()
    return ActionResponse(ok=True, message="Rate-limit state cleared")
