"""Rate-limited on-chain verification of pool prices.

One getAccountInfo per pool through a primary/fallback pair of RPC
endpoints, decoded by the venue's account decoder.

Failover: a rate-limit signal arms a cooldown on the endpoint that sent
it and, when that endpoint is the primary and a fallback exists, moves
the verifier to the fallback. Other transport errors are retried with a
linear delay; exhausted retries on the primary also move to the fallback.
The verifier never returns to the primary on its own: see
``reset_to_primary``.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from src.arbitrage.types import (
    EndpointState,
    FailureKind,
    Pool,
    VerificationResult,
    utcnow,
)
from src.parsers.decoders import DecimalsHint, DecoderRegistry, PoolDecodeError
from src.parsers.rate_limiter import SlidingWindowGate
from src.parsers.solana_rpc.client import AccountState, SolanaRpcClient
from src.parsers.solana_rpc.exceptions import (
    AccountNotFoundError,
    RpcRateLimitedError,
    RpcTransportError,
)

# Failures that mean no further call can succeed right now
_BATCH_STOPPERS = frozenset(
    {FailureKind.COOLDOWN, FailureKind.BUDGET_EXHAUSTED, FailureKind.NO_ENDPOINT}
)


class VerifierConfigError(Exception):
    """Neither a primary nor a fallback RPC endpoint is configured."""


@dataclass
class VerifierStats:
    total_calls: int = 0
    successful_calls: int = 0
    failed_verifications: int = 0
    fallback_switches: int = 0
    rate_limit_hits: int = 0
    using_fallback: bool = False
    has_fallback: bool = False
    last_success_at: datetime | None = None
    last_rate_limit_at: datetime | None = None
    requests_in_window: int = 0
    window_budget: int = 0
    cooldowns: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "total_calls": self.total_calls,
            "successful_calls": self.successful_calls,
            "failed_verifications": self.failed_verifications,
            "success_rate": round(self.successful_calls / self.total_calls * 100, 1)
            if self.total_calls
            else 0.0,
            "fallback_switches": self.fallback_switches,
            "rate_limit_hits": self.rate_limit_hits,
            "using_fallback": self.using_fallback,
            "has_fallback": self.has_fallback,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "last_rate_limit_at": self.last_rate_limit_at.isoformat()
            if self.last_rate_limit_at
            else None,
            "requests_in_window": self.requests_in_window,
            "window_budget": self.window_budget,
            "cooldowns": {k: round(v, 1) for k, v in self.cooldowns.items()},
        }


class ChainVerifier:
    def __init__(
        self,
        primary: SolanaRpcClient | None,
        fallback: SolanaRpcClient | None = None,
        *,
        registry: DecoderRegistry | None = None,
        gate: SlidingWindowGate | None = None,
        max_retries: int = 3,
        retry_delay_sec: float = 1.0,
        rate_limit_backoff_sec: float = 10.0,
        pacing_delay_sec: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if primary is None and fallback is None:
            raise VerifierConfigError("No Solana RPC endpoint configured (primary or fallback)")
        self._clients: dict[EndpointState, SolanaRpcClient | None] = {
            EndpointState.PRIMARY: primary,
            EndpointState.FALLBACK: fallback,
        }
        self._state = EndpointState.PRIMARY if primary is not None else EndpointState.FALLBACK
        self._registry = registry or DecoderRegistry()
        self._gate = gate or SlidingWindowGate()
        self._max_retries = max(max_retries, 1)
        self._retry_delay = retry_delay_sec
        self._backoff = rate_limit_backoff_sec
        self._pacing = pacing_delay_sec
        self._clock = clock
        self._sleep = sleep

        self._cooldown_until: dict[EndpointState, float] = {}
        self._last_call_at: float | None = None

        self._total_calls = 0
        self._successful = 0
        self._failed = 0
        self._fallback_switches = 0
        self._rate_limit_hits = 0
        self._last_success_at: datetime | None = None
        self._last_rate_limit_at: datetime | None = None

    # --- Endpoint state ---

    @property
    def state(self) -> EndpointState:
        return self._state

    @property
    def using_fallback(self) -> bool:
        return self._state is EndpointState.FALLBACK

    @property
    def primary_client(self) -> SolanaRpcClient | None:
        return self._clients[EndpointState.PRIMARY]

    @property
    def fallback_client(self) -> SolanaRpcClient | None:
        return self._clients[EndpointState.FALLBACK]

    @property
    def has_fallback(self) -> bool:
        return self._clients[EndpointState.FALLBACK] is not None

    def cooldown_remaining(self, state: EndpointState | None = None) -> float:
        until = self._cooldown_until.get(state or self._state)
        if until is None:
            return 0.0
        return max(until - self._clock(), 0.0)

    @property
    def in_cooldown(self) -> bool:
        return self.cooldown_remaining() > 0

    def _switch_to_fallback(self, reason: str) -> bool:
        if self._state is EndpointState.FALLBACK or not self.has_fallback:
            return False
        self._state = EndpointState.FALLBACK
        self._fallback_switches += 1
        logger.warning(f"[RPC] Switched to fallback endpoint ({reason})")
        return True

    def reset_to_primary(self) -> bool:
        """Operator/timer-driven return to the primary endpoint."""
        if self._clients[EndpointState.PRIMARY] is None:
            logger.warning("[RPC] reset_to_primary ignored: no primary endpoint configured")
            return False
        if self._state is EndpointState.PRIMARY:
            return False
        self._state = EndpointState.PRIMARY
        logger.info("[RPC] Reset to primary endpoint")
        return True

    def clear_rate_limit(self) -> None:
        """Drop every cooldown and the rate window."""
        self._cooldown_until.clear()
        self._gate.clear()
        logger.info("[RPC] Rate-limit state cleared")

    def _on_rate_limited(self, state: EndpointState, error: Exception) -> None:
        self._rate_limit_hits += 1
        self._last_rate_limit_at = utcnow()
        self._cooldown_until[state] = self._clock() + self._backoff
        logger.warning(
            f"[RPC] Rate limited on {state.value} (hit #{self._rate_limit_hits}), "
            f"cooling down {self._backoff:.0f}s: {error}"
        )
        self._switch_to_fallback("rate limited")

    # --- Verification ---

    async def verify(self, pool: Pool) -> VerificationResult:
        """Fetch and decode one pool account. Never raises for per-pool failures."""
        if not self._registry.supports(pool.venue):
            return self._failure(pool, FailureKind.DECODE, f"no decoder for venue '{pool.venue}'")

        while True:
            state = self._state
            client = self._clients[state]
            if client is None:
                return self._failure(pool, FailureKind.NO_ENDPOINT, f"no {state.value} endpoint")
            if self.cooldown_remaining(state) > 0:
                return self._failure(
                    pool,
                    FailureKind.COOLDOWN,
                    f"{state.value} cooling down {self.cooldown_remaining(state):.1f}s",
                )

            last_error: Exception | None = None
            for attempt in range(1, self._max_retries + 1):
                if not self._gate.try_acquire():
                    logger.debug(
                        f"[GATE] Budget {self._gate.budget}/{self._gate.window_sec:.0f}s exhausted"
                    )
                    return self._failure(pool, FailureKind.BUDGET_EXHAUSTED, "rate window full")
                self._total_calls += 1
                try:
                    account = await client.get_account_state(pool.address)
                except RpcRateLimitedError as e:
                    self._on_rate_limited(state, e)
                    return self._failure(pool, FailureKind.RATE_LIMITED, str(e))
                except AccountNotFoundError as e:
                    return self._failure(pool, FailureKind.NOT_FOUND, str(e))
                except RpcTransportError as e:
                    last_error = e
                    logger.debug(
                        f"[RPC] {state.value} attempt {attempt}/{self._max_retries} "
                        f"for {pool.address[:12]} failed: {e}"
                    )
                    if attempt < self._max_retries:
                        await self._sleep(self._retry_delay * attempt)
                    continue
                return self._decode(pool, account)

            if self._switch_to_fallback(f"{self._max_retries} transport failures"):
                continue
            return self._failure(pool, FailureKind.TRANSPORT, str(last_error))

    def _decode(self, pool: Pool, account: AccountState) -> VerificationResult:
        hint = DecimalsHint.from_mints({pool.mint_a: pool.decimals_a, pool.mint_b: pool.decimals_b})
        try:
            decoded = self._registry.decode(pool.venue, account.data, hint)
        except PoolDecodeError as e:
            return self._failure(pool, FailureKind.DECODE, str(e))

        if (decoded.mint_a, decoded.mint_b) == (pool.mint_a, pool.mint_b):
            price_a, price_b = decoded.price_a, decoded.price_b
            liquidity_a, liquidity_b = decoded.liquidity_a, decoded.liquidity_b
        elif (decoded.mint_a, decoded.mint_b) == (pool.mint_b, pool.mint_a):
            price_a, price_b = decoded.price_b, decoded.price_a
            liquidity_a, liquidity_b = decoded.liquidity_b, decoded.liquidity_a
        else:
            return self._failure(pool, FailureKind.DECODE, "account mints do not match pool")

        self._successful += 1
        self._last_success_at = utcnow()
        logger.debug(
            f"[VERIFY] {pool.display_name} rate={price_a / price_b:.8g} slot={account.slot}"
        )
        return VerificationResult(
            pool_address=pool.address,
            success=True,
            price_a=price_a,
            price_b=price_b,
            liquidity_a=liquidity_a,
            liquidity_b=liquidity_b,
            observed_at_slot=account.slot,
            fee_rate=decoded.fee_rate,
        )

    def _failure(self, pool: Pool, kind: FailureKind, detail: str) -> VerificationResult:
        if kind not in _BATCH_STOPPERS:
            self._failed += 1
        logger.debug(f"[VERIFY] {pool.address[:12]} ({pool.venue}) failed: {kind.value} {detail}")
        return VerificationResult.failed(pool.address, kind, detail)

    async def _pace(self) -> None:
        if self._last_call_at is not None:
            wait = self._pacing - (self._clock() - self._last_call_at)
            if wait > 0:
                await self._sleep(wait)
        self._last_call_at = self._clock()

    async def verify_batch(
        self,
        pools: Iterable[Pool],
        max_count: int,
        *,
        should_stop: Callable[[], bool] | None = None,
        on_failure: Callable[[Pool, VerificationResult], None] | None = None,
    ) -> list[VerificationResult]:
        """Verify at most ``max_count`` pools, one at a time.

        Successive calls are at least the pacing delay apart. The batch stops
        early when the current endpoint is cooling down, the rate window is
        full, or ``should_stop()`` turns true. Only successes are returned;
        failed attempts go to ``on_failure``.
        """
        batch = list(pools)[: max(max_count, 0)]
        results: list[VerificationResult] = []
        attempted = 0

        for pool in batch:
            if should_stop is not None and should_stop():
                logger.info(f"[VERIFY] Deadline reached, stopping after {attempted} calls")
                break
            if self.in_cooldown:
                logger.info(
                    f"[VERIFY] {self._state.value} cooling down "
                    f"{self.cooldown_remaining():.1f}s, batch stopped"
                )
                break

            await self._pace()
            if should_stop is not None and should_stop():
                logger.info(f"[VERIFY] Deadline reached, stopping after {attempted} calls")
                break

            result = await self.verify(pool)
            if result.failure_kind in _BATCH_STOPPERS:
                logger.info(f"[VERIFY] Batch stopped: {result.failure_kind.value}")
                break
            attempted += 1
            if result.success:
                results.append(result)
            elif on_failure is not None:
                on_failure(pool, result)

        logger.info(
            f"[VERIFY] Batch: {len(results)}/{attempted} verified "
            f"(requested {len(batch)}, endpoint={self._state.value})"
        )
        return results

    def get_stats(self) -> VerifierStats:
        cooldowns = {
            state.value: self.cooldown_remaining(state)
            for state in EndpointState
            if self.cooldown_remaining(state) > 0
        }
        return VerifierStats(
            total_calls=self._total_calls,
            successful_calls=self._successful,
            failed_verifications=self._failed,
            fallback_switches=self._fallback_switches,
            rate_limit_hits=self._rate_limit_hits,
            using_fallback=self.using_fallback,
            has_fallback=self.has_fallback,
            last_success_at=self._last_success_at,
            last_rate_limit_at=self._last_rate_limit_at,
            requests_in_window=self._gate.in_window(),
            window_budget=self._gate.budget,
            cooldowns=cooldowns,
        )

    async def close(self) -> None:
        for client in self._clients.values():
            if client is not None:
                await client.close()
