"""Tests for the dashboard health and scanner endpoints."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from src.api.app import create_app, limiter
from src.api.metrics_registry import registry
from src.arbitrage.lifecycle import OpportunityLifecycleManager
from src.arbitrage.types import ArbitrageOpportunity
from src.parsers.metrics import ScannerMetrics

T = datetime(2026, 1, 1, 12, 0, 0)


def _opp(opp_id: str = "f" * 32) -> ArbitrageOpportunity:
    return ArbitrageOpportunity(
        id=opp_id,
        pair_key="A-B",
        venue_a="raydium",
        venue_b="orca",
        pool_a_address="P1",
        pool_b_address="P2",
        mint_a="A",
        mint_b="B",
        profit_percent=1.23456,
        estimated_profit_usd=42.0,
        priority_score=6.1,
        created_at=T,
        expires_at=T + timedelta(minutes=5),
        token_symbols="SOL/USDC",
        trading_path="raydium->orca",
    )


@pytest.fixture
def runtime():
    lifecycle = OpportunityLifecycleManager()
    pipeline = MagicMock()
    pipeline.lifecycle = lifecycle
    pipeline.trigger_scan = MagicMock(return_value=True)
    pipeline.get_stats = MagicMock(return_value={"total_scans": 3, "using_fallback": True})
    pipeline.verifier.using_fallback = True
    pipeline.verifier.reset_to_primary = MagicMock(return_value=True)
    pipeline.verifier.clear_rate_limit = MagicMock()

    store = MagicMock()
    store.ping = AsyncMock()
    store.list_opportunities = AsyncMock(return_value=[_opp()])

    registry.pipeline = pipeline
    registry.store = store
    registry.scanner_metrics = ScannerMetrics()
    limiter.reset()
    yield pipeline, store
    registry.pipeline = None
    registry.store = None
    registry.scanner_metrics = None


@pytest.fixture
def client(runtime) -> TestClient:
    return TestClient(create_app())


class TestHealth:
    def test_ok(self, client: TestClient) -> None:
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["db_ok"] is True
        assert body["scanner_running"] is True
        assert body["using_fallback"] is True
        assert resp.headers["X-Content-Type-Options"] == "nosniff"

    def test_db_down(self, client: TestClient, runtime) -> None:
        _, store = runtime
        store.ping = AsyncMock(side_effect=RuntimeError("connection refused"))
        body = client.get("/api/v1/health").json()
        assert body["status"] == "degraded"
        assert body["db_ok"] is False


class TestScanner:
    def test_stats(self, client: TestClient, runtime) -> None:
        pipeline, _ = runtime
        pipeline.lifecycle.discover(_opp(), T)
        body = client.get("/api/v1/scanner/stats").json()
        assert body["total_scans"] == 3
        assert body["opportunities_by_status"] == {"DISCOVERED": 1}
        assert body["metrics"]["cycles"] == 0

    def test_trigger_scan(self, client: TestClient, runtime) -> None:
        pipeline, _ = runtime
        assert client.post("/api/v1/scanner/scan").json() == {
            "ok": True,
            "message": "Scan triggered",
        }
        pipeline.trigger_scan.return_value = False
        assert client.post("/api/v1/scanner/scan").json()["ok"] is False

    def test_scan_rate_limited(self, client: TestClient) -> None:
        codes = [client.post("/api/v1/scanner/scan").status_code for _ in range(7)]
        assert codes[:6] == [200] * 6
        assert codes[6] == 429

    def test_list_opportunities(self, client: TestClient, runtime) -> None:
        _, store = runtime
        resp = client.get("/api/v1/scanner/opportunities", params={"status": "verified", "limit": 5})
        assert resp.status_code == 200
        (item,) = resp.json()
        assert item["profit_percent"] == 1.2346
        assert item["token_symbols"] == "SOL/USDC"
        store.list_opportunities.assert_awaited_once_with(status="VERIFIED", limit=5)

    def test_list_unknown_status(self, client: TestClient) -> None:
        resp = client.get("/api/v1/scanner/opportunities", params={"status": "pending"})
        assert resp.status_code == 400

    def test_active(self, client: TestClient, runtime) -> None:
        pipeline, _ = runtime
        pipeline.lifecycle.discover(_opp(), T)
        items = client.get("/api/v1/scanner/opportunities/active").json()
        assert [i["id"] for i in items] == ["f" * 32]

    def test_rpc_controls(self, client: TestClient, runtime) -> None:
        pipeline, _ = runtime
        assert client.post("/api/v1/scanner/rpc/reset-primary").json()["ok"] is True
        assert client.post("/api/v1/scanner/rpc/clear-rate-limit").json()["ok"] is True
        pipeline.verifier.clear_rate_limit.assert_called_once()

    def test_scanner_not_running(self, client: TestClient) -> None:
        registry.pipeline = None
        assert client.get("/api/v1/scanner/stats").status_code == 503
