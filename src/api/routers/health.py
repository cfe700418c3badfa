"""Health check: no auth required."""

from __future__ import annotations

from fastapi import APIRouter
from loguru import logger
from pydantic import BaseModel

from src.api.app import API_VERSION
from src.api.metrics_registry import registry

router = APIRouter(prefix="/api/v1", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_sec: int
    db_ok: bool
    scanner_running: bool
    using_fallback: bool


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check DB connectivity and scanner state."""
    db_ok = False
    if registry.store is not None:
        try:
            await registry.store.ping()
            db_ok = True
        except Exception as e:
            logger.debug(f"[API] Health DB check failed: {e}")

    uptime = 0
    if registry.scanner_metrics:
        uptime = registry.scanner_metrics.get_summary().get("uptime_sec", 0)

    pipeline = registry.pipeline
    return HealthResponse(
        status="ok" if db_ok and pipeline is not None else "degraded",
        version=API_VERSION,
        uptime_sec=uptime,
        db_ok=db_ok,
        scanner_running=pipeline is not None,
        using_fallback=pipeline.verifier.using_fallback if pipeline else False,
    )
