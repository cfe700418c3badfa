"""Cross-venue arbitrage detection over pool snapshots.

Pools are grouped by pair key; every two pools of the same pair on
different venues are compared on their exchange rate (balances when
known, else quoted prices), oriented to the sorted pair so pools that
list the mints swapped compare correctly.
"""

from collections import defaultdict
from datetime import datetime, timedelta
from itertools import combinations

from loguru import logger

from src.arbitrage.scoring import score_opportunity_values
from src.arbitrage.types import ArbitrageOpportunity, Pool, new_opportunity_id, utcnow


def profit_percent(rate_1: float, rate_2: float) -> float:
    return abs(rate_1 - rate_2) / max(rate_1, rate_2) * 100


class ArbitrageDetector:
    def __init__(
        self,
        *,
        min_profit_pct: float = 0.3,
        ttl_minutes: float = 5,
        trade_size_fraction: float = 0.01,
    ) -> None:
        if ttl_minutes <= 0:
            raise ValueError("ttl_minutes must be positive")
        self.min_profit_pct = min_profit_pct
        self.ttl = timedelta(minutes=ttl_minutes)
        self.trade_size_fraction = trade_size_fraction

    @staticmethod
    def is_eligible(pool: Pool) -> bool:
        if not pool.is_active or not pool.has_prices:
            return False
        if pool.has_zero_liquidity:
            return False
        return pool.canonical_rate() is not None

    def detect(self, pools: list[Pool], now: datetime | None = None) -> list[ArbitrageOpportunity]:
        """Emit DISCOVERED opportunities above the profit threshold.

        At most one opportunity per unordered pool pair; sorted by
        priority descending.
        """
        now = now or utcnow()

        groups: dict[str, dict[str, Pool]] = defaultdict(dict)
        rejected = 0
        for pool in pools:
            if not self.is_eligible(pool):
                rejected += 1
                continue
            groups[pool.pair_key].setdefault(pool.address, pool)

        found: dict[frozenset[str], ArbitrageOpportunity] = {}
        compared = 0
        for members in groups.values():
            if len({p.venue for p in members.values()}) < 2:
                continue
            ordered = sorted(members.values(), key=lambda p: p.address)
            for first, second in combinations(ordered, 2):
                if first.venue == second.venue:
                    continue
                compared += 1
                opp = self._compare(first, second, now)
                if opp is None:
                    continue
                key = opp.pool_pair
                existing = found.get(key)
                if existing is None or opp.profit_percent > existing.profit_percent:
                    found[key] = opp

        result = sorted(
            found.values(),
            key=lambda o: (-o.priority_score, o.pair_key, o.pool_a_address, o.pool_b_address),
        )
        logger.info(
            f"[DETECT] {len(pools)} pools ({rejected} ineligible), {len(groups)} pairs, "
            f"{compared} comparisons, {len(result)} opportunities >= {self.min_profit_pct}%"
        )
        return result

    def _compare(self, p1: Pool, p2: Pool, now: datetime) -> ArbitrageOpportunity | None:
        r1 = p1.canonical_rate()
        r2 = p2.canonical_rate()
        if r1 is None or r2 is None:
            return None

        profit = profit_percent(r1, r2)
        if profit <= self.min_profit_pct:
            return None

        # Buy where the first mint is cheaper, sell where it is dearer
        buy, sell, rate_buy, rate_sell = (p1, p2, r1, r2) if r1 <= r2 else (p2, p1, r2, r1)

        first_mint, second_mint = sorted((buy.mint_a, buy.mint_b))
        if buy.mint_a == first_mint:
            symbols = f"{buy.symbol_a or '???'}/{buy.symbol_b or '???'}"
        else:
            symbols = f"{buy.symbol_b or '???'}/{buy.symbol_a or '???'}"

        total_tvl = (buy.tvl_usd or 0.0) + (sell.tvl_usd or 0.0)
        notional = min(buy.tvl_usd or 0.0, sell.tvl_usd or 0.0) * self.trade_size_fraction
        net_fraction = profit / 100 - (buy.fee_rate or 0.0) - (sell.fee_rate or 0.0)

        return ArbitrageOpportunity(
            id=new_opportunity_id(),
            pair_key=buy.pair_key,
            venue_a=buy.venue,
            venue_b=sell.venue,
            pool_a_address=buy.address,
            pool_b_address=sell.address,
            mint_a=first_mint,
            mint_b=second_mint,
            profit_percent=profit,
            estimated_profit_usd=max(notional * net_fraction, 0.0),
            priority_score=score_opportunity_values(profit, total_tvl),
            created_at=now,
            expires_at=now + self.ttl,
            token_symbols=symbols,
            rate_a=rate_buy,
            rate_b=rate_sell,
            total_tvl_usd=total_tvl,
            trading_path=f"{buy.venue}->{sell.venue}",
        )
