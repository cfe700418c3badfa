"""Singleton registry for runtime objects shared between the scanner and dashboard API.

Populated once during ``run_scanner()`` initialization.  FastAPI endpoints
read these references directly; thread-safe because everything runs in a
single asyncio event loop.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.arbitrage.persistence import SqlArbitrageStore
    from src.arbitrage.pipeline import ScanPipeline
    from src.parsers.metrics import ScannerMetrics


class MetricsRegistry:
    """Holds references to runtime objects for API access."""

    scanner_metrics: ScannerMetrics | None = None
    pipeline: ScanPipeline | None = None
    store: SqlArbitrageStore | None = None


registry = MetricsRegistry()
