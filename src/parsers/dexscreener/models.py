from decimal import Decimal

from pydantic import BaseModel


class DexScreenerToken(BaseModel):
    address: str
    name: str | None = None
    symbol: str | None = None

    model_config = {"extra": "ignore"}


class DexScreenerLiquidity(BaseModel):
    usd: Decimal | None = None
    base: Decimal | None = None
    quote: Decimal | None = None

    model_config = {"extra": "ignore"}


class DexScreenerPair(BaseModel):
    chainId: str = ""
    dexId: str = ""
    pairAddress: str = ""
    labels: list[str] | None = None
    baseToken: DexScreenerToken | None = None
    quoteToken: DexScreenerToken | None = None
    priceNative: str | None = None
    priceUsd: str | None = None
    liquidity: DexScreenerLiquidity | None = None
    pairCreatedAt: int | None = None

    model_config = {"extra": "ignore"}

    @property
    def liquidity_usd(self) -> float | None:
        if self.liquidity is None or self.liquidity.usd is None:
            return None
        return float(self.liquidity.usd)

    @property
    def price_native(self) -> float | None:
        """Quote tokens per one base token."""
        return _parse_price(self.priceNative)

    @property
    def price_usd(self) -> float | None:
        return _parse_price(self.priceUsd)


def _parse_price(raw: str | None) -> float | None:
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if value > 0 else None
