"""Core data model for cross-DEX arbitrage detection.

Pool: one venue's pool for a token pair (metadata + best known prices)
ArbitrageOpportunity: a time-boxed price discrepancy between two pools
VerificationResult: transient outcome of one on-chain account lookup
"""

import math
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from src.arbitrage.constants import STABLECOIN_MINTS, WSOL_MINT, default_fee_rate


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how timestamps are stored."""
    return datetime.now(UTC).replace(tzinfo=None)


def pair_key(mint_a: str, mint_b: str) -> str:
    """Order-independent identifier for a token pair."""
    first, second = sorted((mint_a, mint_b))
    return f"{first}-{second}"


def _positive(value: float | None) -> bool:
    return value is not None and math.isfinite(value) and value > 0


class PriceSource(str, Enum):
    DEXSCREENER = "dexscreener"
    RPC = "rpc"


@dataclass
class Pool:
    address: str
    mint_a: str
    mint_b: str
    venue: str
    tvl_usd: float
    symbol_a: str | None = None
    symbol_b: str | None = None
    fee_rate: float | None = None
    last_metadata_update: datetime = field(default_factory=utcnow)
    is_active: bool = True
    current_price_a: float | None = None
    current_price_b: float | None = None
    price_updated_at: datetime | None = None
    token_a_balance: float | None = None
    token_b_balance: float | None = None
    decimals_a: int | None = None
    decimals_b: int | None = None
    price_source: PriceSource = PriceSource.DEXSCREENER
    last_verified_slot: int | None = None

    def __post_init__(self) -> None:
        if self.mint_a == self.mint_b:
            raise ValueError(f"Pool {self.address}: mint_a and mint_b must differ")
        self.venue = self.venue.lower()
        if self.fee_rate is None:
            self.fee_rate = default_fee_rate(self.venue)
        prices_set = self.current_price_a is not None and self.current_price_b is not None
        if self.price_updated_at is not None and not prices_set:
            raise ValueError(f"Pool {self.address}: price_updated_at requires both prices")

    @property
    def pair_key(self) -> str:
        return pair_key(self.mint_a, self.mint_b)

    @property
    def has_prices(self) -> bool:
        return _positive(self.current_price_a) and _positive(self.current_price_b)

    @property
    def has_balances(self) -> bool:
        return _positive(self.token_a_balance) and _positive(self.token_b_balance)

    @property
    def has_zero_liquidity(self) -> bool:
        """Known-empty pool: zero TVL or a zero reserve on either side."""
        if self.tvl_usd is not None and self.tvl_usd <= 0:
            return True
        return self.token_a_balance == 0 or self.token_b_balance == 0

    def exchange_rate(self) -> float | None:
        """Units of token B per unit of token A.

        Chain reserves win over quoted prices when both sides are known.
        """
        if self.has_balances:
            return self.token_b_balance / self.token_a_balance
        if self.has_prices:
            return self.current_price_a / self.current_price_b
        return None

    def canonical_rate(self) -> float | None:
        """Exchange rate oriented to the sorted pair key (second per first)."""
        rate = self.exchange_rate()
        if rate is None:
            return None
        if self.mint_a <= self.mint_b:
            return rate
        return 1.0 / rate

    def set_prices(
        self, price_a: float | None, price_b: float | None, at: datetime | None = None
    ) -> None:
        self.current_price_a = price_a
        self.current_price_b = price_b
        if price_a is not None and price_b is not None:
            self.price_updated_at = at or utcnow()
        else:
            self.price_updated_at = None

    def apply_verification(self, result: "VerificationResult", at: datetime | None = None) -> None:
        """Fold a successful chain lookup into this pool."""
        if not result.success or result.pool_address != self.address:
            return
        self.set_prices(result.price_a, result.price_b, at)
        self.token_a_balance = result.liquidity_a
        self.token_b_balance = result.liquidity_b
        self.price_source = PriceSource.RPC
        self.last_verified_slot = result.observed_at_slot
        if result.fee_rate is not None:
            self.fee_rate = result.fee_rate

    # --- Pair classification ---

    @property
    def contains_sol(self) -> bool:
        return WSOL_MINT in (self.mint_a, self.mint_b)

    @property
    def contains_stablecoin(self) -> bool:
        return self.mint_a in STABLECOIN_MINTS or self.mint_b in STABLECOIN_MINTS

    @property
    def is_stable_pair(self) -> bool:
        return self.mint_a in STABLECOIN_MINTS and self.mint_b in STABLECOIN_MINTS

    # --- Age helpers ---

    def metadata_age_minutes(self, now: datetime | None = None) -> float:
        now = now or utcnow()
        return max((now - self.last_metadata_update).total_seconds() / 60, 0.0)

    def price_age_minutes(self, now: datetime | None = None) -> float | None:
        if self.price_updated_at is None:
            return None
        now = now or utcnow()
        return max((now - self.price_updated_at).total_seconds() / 60, 0.0)

    def has_fresh_prices(self, max_age_minutes: float, now: datetime | None = None) -> bool:
        age = self.price_age_minutes(now)
        return self.has_prices and age is not None and age <= max_age_minutes

    # --- Display ---

    @property
    def symbol_pair(self) -> str:
        return f"{self.symbol_a or '???'}/{self.symbol_b or '???'}"

    @property
    def formatted_tvl(self) -> str:
        if self.tvl_usd is None:
            return "N/A"
        if self.tvl_usd >= 1_000_000:
            return f"${self.tvl_usd / 1_000_000:.1f}M"
        if self.tvl_usd >= 1_000:
            return f"${self.tvl_usd / 1_000:.0f}K"
        return f"${self.tvl_usd:.0f}"

    @property
    def display_name(self) -> str:
        return f"{self.venue.upper()} {self.symbol_pair} (TVL: {self.formatted_tvl})"


class OpportunityStatus(str, Enum):
    DISCOVERED = "DISCOVERED"
    VERIFIED = "VERIFIED"
    EXPIRED = "EXPIRED"
    EXECUTED = "EXECUTED"
    FAILED = "FAILED"


TERMINAL_STATUSES = frozenset(
    {OpportunityStatus.EXPIRED, OpportunityStatus.EXECUTED, OpportunityStatus.FAILED}
)


def new_opportunity_id() -> str:
    return uuid.uuid4().hex


@dataclass
class ArbitrageOpportunity:
    """A detected discrepancy between two pools of the same pair.

    ``pool_a`` is the buy side (lower rate), ``pool_b`` the sell side.
    """

    id: str
    pair_key: str
    venue_a: str
    venue_b: str
    pool_a_address: str
    pool_b_address: str
    mint_a: str
    mint_b: str
    profit_percent: float
    estimated_profit_usd: float
    priority_score: float
    created_at: datetime
    expires_at: datetime
    status: OpportunityStatus = OpportunityStatus.DISCOVERED
    token_symbols: str | None = None
    rate_a: float | None = None
    rate_b: float | None = None
    total_tvl_usd: float = 0.0
    trading_path: str | None = None
    verified_at: datetime | None = None
    verification_attempts: int = 0
    verification_notes: str | None = None
    execution_tx: str | None = None
    actual_profit_usd: float | None = None
    failure_reason: str | None = None
    updated_at: datetime | None = None
    closed_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.pool_a_address == self.pool_b_address:
            raise ValueError("Opportunity pools must differ")
        if self.venue_a == self.venue_b:
            raise ValueError("Opportunity venues must differ")
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be after created_at")
        if self.profit_percent < 0:
            raise ValueError("profit_percent must be >= 0")
        if self.verification_attempts < 0:
            raise ValueError("verification_attempts must be >= 0")
        self.status = OpportunityStatus(self.status)

    @property
    def pool_pair(self) -> frozenset[str]:
        return frozenset((self.pool_a_address, self.pool_b_address))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return not self.is_terminal

    def remaining_seconds(self, now: datetime | None = None) -> float:
        if self.is_terminal:
            return 0.0
        now = now or utcnow()
        return max((self.expires_at - now).total_seconds(), 0.0)

    def lifetime_seconds(self, now: datetime | None = None) -> float:
        end = self.closed_at or now or utcnow()
        return (end - self.created_at).total_seconds()

    @property
    def display_name(self) -> str:
        return (
            f"{self.token_symbols or '???/???'} {self.venue_a}->{self.venue_b} "
            f"({self.profit_percent:.2f}%)"
        )


class FailureKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    TRANSPORT = "transport"
    DECODE = "decode"
    COOLDOWN = "cooldown"
    BUDGET_EXHAUSTED = "budget_exhausted"
    NO_ENDPOINT = "no_endpoint"


class EndpointState(str, Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class VerificationResult:
    pool_address: str
    success: bool
    price_a: float | None = None
    price_b: float | None = None
    liquidity_a: float | None = None
    liquidity_b: float | None = None
    observed_at_slot: int | None = None
    fee_rate: float | None = None
    failure_kind: FailureKind | None = None
    detail: str = ""

    @classmethod
    def failed(cls, pool_address: str, kind: FailureKind, detail: str = "") -> "VerificationResult":
        return cls(pool_address=pool_address, success=False, failure_kind=kind, detail=detail)
