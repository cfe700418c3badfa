"""Opportunity state machine.

  DISCOVERED -> VERIFIED | EXPIRED | EXECUTED | FAILED
  VERIFIED   -> EXPIRED | EXECUTED | FAILED

EXPIRED, EXECUTED and FAILED are terminal and never change again.
Every transition runs under one lock; a rejected transition returns
False and leaves the opportunity untouched.
"""

import dataclasses
import threading
from collections import Counter
from datetime import datetime, timedelta

from loguru import logger

from src.arbitrage.types import ArbitrageOpportunity, OpportunityStatus, utcnow


class OpportunityLifecycleManager:
    def __init__(self, ttl_minutes: float = 5) -> None:
        if ttl_minutes <= 0:
            raise ValueError("ttl_minutes must be positive")
        self.ttl = timedelta(minutes=ttl_minutes)
        self._lock = threading.Lock()
        self._store: dict[str, ArbitrageOpportunity] = {}
        # unordered pool pair -> id of the live opportunity between those pools
        self._by_pair: dict[frozenset[str], str] = {}
        self._dirty: set[str] = set()

    # --- Creation ---

    def discover(
        self, candidate: ArbitrageOpportunity, now: datetime | None = None
    ) -> ArbitrageOpportunity:
        """Register a detected candidate as DISCOVERED with a fresh TTL.

        A candidate on a pool pair that already has a live opportunity in the
        same direction refreshes that opportunity's numbers and keeps its
        timestamps. One in the opposite direction expires the old opportunity
        and registers the candidate as new.
        """
        now = now or utcnow()
        pair = candidate.pool_pair
        with self._lock:
            existing_id = self._by_pair.get(pair)
            existing = self._store.get(existing_id) if existing_id else None
            if (
                existing is not None
                and existing.is_active
                and existing.expires_at > now
                and existing.pool_a_address != candidate.pool_a_address
            ):
                existing.status = OpportunityStatus.EXPIRED
                existing.closed_at = now
                existing.updated_at = now
                existing.verification_notes = "spread reversed direction"
                self._dirty.add(existing.id)
                logger.info(f"[LIFECYCLE] Reversed {existing.id[:8]} {existing.display_name}")
            elif existing is not None and existing.is_active and existing.expires_at > now:
                existing.profit_percent = candidate.profit_percent
                existing.estimated_profit_usd = candidate.estimated_profit_usd
                existing.priority_score = candidate.priority_score
                existing.rate_a = candidate.rate_a
                existing.rate_b = candidate.rate_b
                existing.total_tvl_usd = candidate.total_tvl_usd
                existing.updated_at = now
                self._dirty.add(existing.id)
                logger.debug(f"[LIFECYCLE] Refreshed {existing.id[:8]} {existing.display_name}")
                return existing

            opp = dataclasses.replace(
                candidate,
                status=OpportunityStatus.DISCOVERED,
                created_at=now,
                expires_at=now + self.ttl,
                updated_at=now,
                verified_at=None,
                verification_attempts=0,
                closed_at=None,
            )
            self._store[opp.id] = opp
            self._by_pair[pair] = opp.id
            self._dirty.add(opp.id)
        logger.info(f"[LIFECYCLE] Discovered {opp.id[:8]} {opp.display_name}")
        return opp

    def load(self, opportunities: list[ArbitrageOpportunity]) -> int:
        """Adopt persisted non-terminal opportunities not yet tracked."""
        adopted = 0
        with self._lock:
            for opp in opportunities:
                if opp.is_terminal or opp.id in self._store:
                    continue
                self._store[opp.id] = opp
                self._by_pair[opp.pool_pair] = opp.id
                adopted += 1
        if adopted:
            logger.debug(f"[LIFECYCLE] Loaded {adopted} active opportunities")
        return adopted

    # --- Transitions ---

    def mark_verified(
        self, opportunity_id: str, notes: str | None = None, now: datetime | None = None
    ) -> bool:
        now = now or utcnow()
        with self._lock:
            opp = self._store.get(opportunity_id)
            if opp is None or opp.status != OpportunityStatus.DISCOVERED:
                self._reject("mark_verified", opportunity_id, opp)
                return False
            opp.status = OpportunityStatus.VERIFIED
            opp.verified_at = now
            opp.verification_attempts += 1
            opp.verification_notes = notes
            opp.updated_at = now
            self._dirty.add(opp.id)
        logger.info(f"[LIFECYCLE] Verified {opportunity_id[:8]} {opp.display_name}")
        return True

    def record_verification_failure(
        self, opportunity_id: str, reason: str | None = None, now: datetime | None = None
    ) -> bool:
        """Count a failed verification attempt; status is left as is."""
        now = now or utcnow()
        with self._lock:
            opp = self._store.get(opportunity_id)
            if opp is None or opp.is_terminal:
                self._reject("record_verification_failure", opportunity_id, opp)
                return False
            opp.verification_attempts += 1
            if reason:
                opp.verification_notes = reason
            opp.updated_at = now
            self._dirty.add(opp.id)
        return True

    def sweep_expired(self, now: datetime | None = None) -> list[ArbitrageOpportunity]:
        """Expire every live opportunity whose expires_at <= now."""
        now = now or utcnow()
        expired: list[ArbitrageOpportunity] = []
        with self._lock:
            for opp in self._store.values():
                if opp.is_terminal or opp.expires_at > now:
                    continue
                opp.status = OpportunityStatus.EXPIRED
                opp.closed_at = now
                opp.updated_at = now
                self._dirty.add(opp.id)
                expired.append(opp)
        if expired:
            logger.info(f"[LIFECYCLE] Expired {len(expired)} opportunities")
        return expired

    def mark_executed(
        self,
        opportunity_id: str,
        tx_ref: str,
        actual_profit_usd: float | None = None,
        now: datetime | None = None,
    ) -> bool:
        now = now or utcnow()
        with self._lock:
            opp = self._store.get(opportunity_id)
            if opp is None or opp.is_terminal:
                self._reject("mark_executed", opportunity_id, opp)
                return False
            opp.status = OpportunityStatus.EXECUTED
            opp.execution_tx = tx_ref
            opp.actual_profit_usd = actual_profit_usd
            opp.closed_at = now
            opp.updated_at = now
            self._dirty.add(opp.id)
        logger.info(f"[LIFECYCLE] Executed {opportunity_id[:8]} tx={tx_ref[:16]}")
        return True

    def mark_failed(self, opportunity_id: str, reason: str, now: datetime | None = None) -> bool:
        now = now or utcnow()
        with self._lock:
            opp = self._store.get(opportunity_id)
            if opp is None or opp.is_terminal:
                self._reject("mark_failed", opportunity_id, opp)
                return False
            opp.status = OpportunityStatus.FAILED
            opp.failure_reason = reason
            opp.closed_at = now
            opp.updated_at = now
            self._dirty.add(opp.id)
        logger.info(f"[LIFECYCLE] Failed {opportunity_id[:8]}: {reason}")
        return True

    @staticmethod
    def _reject(action: str, opportunity_id: str, opp: ArbitrageOpportunity | None) -> None:
        state = "unknown" if opp is None else opp.status.value
        logger.warning(f"[LIFECYCLE] Rejected {action} on {opportunity_id[:8]} ({state})")

    # --- Queries ---

    def get(self, opportunity_id: str) -> ArbitrageOpportunity | None:
        with self._lock:
            return self._store.get(opportunity_id)

    def active(self) -> list[ArbitrageOpportunity]:
        """Live opportunities by descending priority."""
        with self._lock:
            live = [o for o in self._store.values() if o.is_active]
        return sorted(live, key=lambda o: (-o.priority_score, o.id))

    def drain_dirty(self) -> list[ArbitrageOpportunity]:
        """Opportunities changed since the last drain.

        Terminal ones are handed over for the last time and forgotten.
        """
        with self._lock:
            changed = [self._store[i] for i in self._dirty if i in self._store]
            self._dirty.clear()
            for opp in changed:
                if opp.is_terminal:
                    del self._store[opp.id]
                    if self._by_pair.get(opp.pool_pair) == opp.id:
                        del self._by_pair[opp.pool_pair]
        return sorted(changed, key=lambda o: o.created_at)

    def requeue(self, opportunities: list[ArbitrageOpportunity]) -> None:
        """Put drained opportunities back for the next drain after a failed write."""
        with self._lock:
            for opp in opportunities:
                self._store.setdefault(opp.id, opp)
                self._dirty.add(opp.id)
        if opportunities:
            logger.warning(f"[LIFECYCLE] Requeued {len(opportunities)} unsaved opportunities")

    def counts_by_status(self) -> dict[str, int]:
        with self._lock:
            counts = Counter(o.status.value for o in self._store.values())
        return dict(counts)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
