"""FastAPI dependency injection: registry and runtime objects."""

from __future__ import annotations

from fastapi import HTTPException, status

from src.api.metrics_registry import MetricsRegistry, registry
from src.arbitrage.persistence import SqlArbitrageStore
from src.arbitrage.pipeline import ScanPipeline


def get_registry() -> MetricsRegistry:
    """Return the global metrics registry."""
    return registry


def get_pipeline() -> ScanPipeline:
    if registry.pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scanner not running",
        )
    return registry.pipeline


def get_store() -> SqlArbitrageStore:
    if registry.store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage not configured",
        )
    return registry.store
