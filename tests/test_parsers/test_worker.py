"""Tests for scanner worker startup and shutdown."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from config.settings import settings
from src.api.metrics_registry import registry
from src.parsers import worker


@pytest.mark.asyncio
async def test_tasks_finish_before_clients_close(monkeypatch: pytest.MonkeyPatch) -> None:
    events: list[str] = []

    async def failing_scan_loop(interval_sec: float) -> None:
        raise RuntimeError("scan loop crashed")

    async def reporter(pipeline) -> None:
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            events.append("reporter stopped")
            raise

    async def close_verifier() -> None:
        events.append("verifier closed")

    verifier = MagicMock()
    verifier.primary_client = None
    verifier.fallback_client = None
    verifier.close = AsyncMock(side_effect=close_verifier)
    pipeline = MagicMock()
    pipeline.run_forever = failing_scan_loop

    monkeypatch.setattr(settings, "dexscreener_enabled", False)
    monkeypatch.setattr(settings, "dashboard_enabled", False)
    monkeypatch.setattr(settings, "rpc_primary_reset_interval_sec", 0)
    monkeypatch.setattr(registry, "pipeline", None)
    monkeypatch.setattr(registry, "store", None)
    monkeypatch.setattr(registry, "scanner_metrics", None)
    monkeypatch.setattr(worker, "build_verifier", lambda: verifier)
    monkeypatch.setattr(worker, "build_pipeline", lambda v, s, d: pipeline)
    monkeypatch.setattr(worker, "_stats_reporter", reporter)

    with pytest.raises(RuntimeError, match="scan loop crashed"):
        await worker.run_scanner()

    assert events == ["reporter stopped", "verifier closed"]
    pipeline.stop.assert_called_once()
