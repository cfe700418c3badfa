"""Decode Meteora DLMM LbPair on-chain account data.

Layout from https://github.com/MeteoraAg/dlmm-sdk
Account size: 904 bytes; only the header up to token_y_mint is read.

Key field offsets:
  76:80   active_id (i32 LE)
  80:82   bin_step (u16 LE, basis points)
  88:120  token_x_mint (Pubkey 32b)
  120:152 token_y_mint (Pubkey 32b)

Price of the active bin: (1 + bin_step / 10_000) ** active_id per lamport,
scaled by 10 ** (decimals_x - decimals_y) for UI units.
"""

import math

from src.parsers.account_layout import (
    DecimalsHint,
    DecodedPool,
    PoolDecodeError,
    check_discriminator,
    read_i32,
    read_pubkey,
    read_u16,
)
from src.parsers.meteora.constants import (
    BASIS_POINT_MAX,
    LB_PAIR_DISCRIMINATOR,
    LB_PAIR_MIN_SIZE,
)


def bin_price(active_id: int, bin_step: int, decimals_x: int, decimals_y: int) -> float:
    if bin_step <= 0:
        raise PoolDecodeError(f"Meteora DLMM: invalid bin_step {bin_step}")
    try:
        raw = (1 + bin_step / BASIS_POINT_MAX) ** active_id
    except OverflowError as e:
        raise PoolDecodeError(f"Meteora DLMM: active_id {active_id} out of range") from e
    price = raw * 10 ** (decimals_x - decimals_y)
    if not math.isfinite(price) or price <= 0:
        raise PoolDecodeError(f"Meteora DLMM: active bin {active_id} gives invalid price")
    return price


def decode_lb_pair(data: bytes, hint: DecimalsHint | None = None) -> DecodedPool:
    if len(data) < LB_PAIR_MIN_SIZE:
        raise PoolDecodeError(
            f"Meteora: account too short {len(data)} < {LB_PAIR_MIN_SIZE}"
        )
    check_discriminator(data, LB_PAIR_DISCRIMINATOR, "Meteora DLMM")

    hint = hint or DecimalsHint()
    active_id = read_i32(data, 76)
    bin_step = read_u16(data, 80)
    mint_x = read_pubkey(data, 88)
    mint_y = read_pubkey(data, 120)

    decimals_x = hint.lookup(mint_x)
    decimals_y = hint.lookup(mint_y)
    price = bin_price(active_id, bin_step, decimals_x, decimals_y)
    return DecodedPool(
        mint_a=mint_x,
        mint_b=mint_y,
        price_a=price,
        price_b=1.0,
        decimals_a=decimals_x,
        decimals_b=decimals_y,
    )
