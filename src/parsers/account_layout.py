"""Shared primitives for decoding on-chain pool accounts."""

import math
import struct
from collections.abc import Mapping
from dataclasses import dataclass, field

from solders.pubkey import Pubkey  # type: ignore[import-untyped]

from src.arbitrage.constants import KNOWN_DECIMALS


class PoolDecodeError(Exception):
    """Account bytes are malformed or not a recognised pool layout."""


@dataclass(frozen=True)
class DecodedPool:
    """Venue-agnostic view of a pool account.

    ``price_a / price_b`` is the UI exchange rate: units of mint_b per
    unit of mint_a. Liquidity fields are token reserves when the layout
    carries them, else None.
    """

    mint_a: str
    mint_b: str
    price_a: float
    price_b: float
    decimals_a: int
    decimals_b: int
    liquidity_a: float | None = None
    liquidity_b: float | None = None
    fee_rate: float | None = None


@dataclass(frozen=True)
class DecimalsHint:
    """Mint decimals known outside the account (pool metadata, known mints)."""

    by_mint: Mapping[str, int] = field(default_factory=dict)

    @classmethod
    def from_mints(cls, decimals: Mapping[str, int | None]) -> "DecimalsHint":
        return cls({mint: dec for mint, dec in decimals.items() if dec is not None})

    def lookup(self, mint: str) -> int:
        if mint in self.by_mint:
            return self.by_mint[mint]
        if mint in KNOWN_DECIMALS:
            return KNOWN_DECIMALS[mint]
        raise PoolDecodeError(f"Unknown decimals for mint {mint[:12]}")


def read_pubkey(data: bytes, offset: int) -> str:
    return str(Pubkey.from_bytes(data[offset : offset + 32]))


def read_u128(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset : offset + 16], "little")


def read_u16(data: bytes, offset: int) -> int:
    return struct.unpack_from("<H", data, offset)[0]


def read_i32(data: bytes, offset: int) -> int:
    return struct.unpack_from("<i", data, offset)[0]


def check_discriminator(data: bytes, expected: bytes, layout: str) -> None:
    if data[:8] != expected:
        raise PoolDecodeError(f"{layout}: wrong account discriminator")


def sqrt_price_x64_to_price(sqrt_price_x64: int, decimals_a: int, decimals_b: int) -> float:
    """Q64.64 sqrt price to UI price of token A in units of token B."""
    if sqrt_price_x64 <= 0:
        raise PoolDecodeError("sqrt price is zero")
    raw = (sqrt_price_x64 / 2**64) ** 2
    price = raw * 10 ** (decimals_a - decimals_b)
    if not math.isfinite(price) or price <= 0:
        raise PoolDecodeError(f"sqrt price {sqrt_price_x64} gives invalid price")
    return price
