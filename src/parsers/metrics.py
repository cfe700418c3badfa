"""Scan pipeline metrics: cycles, candidates, verification outcomes, latency.

Thread-safe counters that accumulate during runtime and can be
read by the stats reporter or the dashboard API.
"""

import time
from collections import Counter
from dataclasses import dataclass
from threading import Lock


@dataclass
class CycleTotals:
    cycles: int = 0
    failed_cycles: int = 0
    total_latency_ms: float = 0.0
    max_latency_ms: float = 0.0

    @property
    def avg_latency_ms(self) -> float:
        if self.cycles == 0:
            return 0.0
        return self.total_latency_ms / self.cycles


class ScannerMetrics:
    """Global metrics accumulator for the scan pipeline.

    Thread-safe via a simple lock (the pipeline is single-task async
    but the stats reporter and API read concurrently).
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._cycles = CycleTotals()
        self._snapshots = 0
        self._candidates = 0
        self._opportunities_created = 0
        self._verified = 0
        self._verification_failures: Counter[str] = Counter()
        self._expired = 0
        self._start_time: float = time.monotonic()

    def record_cycle(
        self,
        latency_ms: float,
        *,
        snapshots: int = 0,
        candidates: int = 0,
        created: int = 0,
        verified: int = 0,
        expired: int = 0,
    ) -> None:
        with self._lock:
            self._cycles.cycles += 1
            self._cycles.total_latency_ms += latency_ms
            if latency_ms > self._cycles.max_latency_ms:
                self._cycles.max_latency_ms = latency_ms
            self._snapshots += snapshots
            self._candidates += candidates
            self._opportunities_created += created
            self._verified += verified
            self._expired += expired

    def record_cycle_failure(self) -> None:
        with self._lock:
            self._cycles.failed_cycles += 1

    def record_verification_failure(self, kind: str) -> None:
        with self._lock:
            self._verification_failures[kind] += 1

    def get_summary(self) -> dict:
        """Return a snapshot of all metrics."""
        with self._lock:
            uptime = time.monotonic() - self._start_time
            return {
                "uptime_sec": round(uptime),
                "cycles": self._cycles.cycles,
                "failed_cycles": self._cycles.failed_cycles,
                "avg_cycle_ms": round(self._cycles.avg_latency_ms),
                "max_cycle_ms": round(self._cycles.max_latency_ms),
                "snapshots": self._snapshots,
                "candidates": self._candidates,
                "opportunities_created": self._opportunities_created,
                "verified": self._verified,
                "verification_failures": dict(self._verification_failures),
                "expired": self._expired,
            }

    def format_stats_line(self) -> str:
        """One-line summary for the stats reporter."""
        with self._lock:
            failures = sum(self._verification_failures.values())
            return (
                f"cycles={self._cycles.cycles} failed={self._cycles.failed_cycles} "
                f"candidates={self._candidates} created={self._opportunities_created} "
                f"verified={self._verified} verify_failures={failures} "
                f"expired={self._expired} "
                f"avg_cycle={self._cycles.avg_latency_ms:.0f}ms"
            )


# Global singleton, imported by main.py and the dashboard API
metrics = ScannerMetrics()
