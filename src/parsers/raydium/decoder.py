"""Decode Raydium CLMM PoolState on-chain account data.

Layout from https://github.com/raydium-io/raydium-clmm
Account size: 1544 bytes (8 discriminator + packed struct).

Key field offsets:
  73:105  token_mint_0 (Pubkey 32b)
  105:137 token_mint_1 (Pubkey 32b)
  233     mint_decimals_0 (u8)
  234     mint_decimals_1 (u8)
  237:253 liquidity (u128 LE)
  253:269 sqrt_price_x64 (u128 LE, Q64.64)

Reserves live in the token vaults, not here, so liquidity is reported as None.
"""

from src.parsers.account_layout import (
    DecimalsHint,
    DecodedPool,
    PoolDecodeError,
    check_discriminator,
    read_pubkey,
    read_u128,
    sqrt_price_x64_to_price,
)
from src.parsers.raydium.constants import POOL_STATE_DISCRIMINATOR, POOL_STATE_SIZE


def decode_clmm_pool(data: bytes, hint: DecimalsHint | None = None) -> DecodedPool:
    if len(data) != POOL_STATE_SIZE:
        raise PoolDecodeError(
            f"Raydium: unsupported account size {len(data)} (CLMM PoolState is {POOL_STATE_SIZE})"
        )
    check_discriminator(data, POOL_STATE_DISCRIMINATOR, "Raydium CLMM")

    mint_0 = read_pubkey(data, 73)
    mint_1 = read_pubkey(data, 105)
    decimals_0 = data[233]
    decimals_1 = data[234]
    liquidity = read_u128(data, 237)
    sqrt_price_x64 = read_u128(data, 253)

    if liquidity == 0:
        raise PoolDecodeError("Raydium CLMM: pool has no active liquidity")

    price = sqrt_price_x64_to_price(sqrt_price_x64, decimals_0, decimals_1)
    return DecodedPool(
        mint_a=mint_0,
        mint_b=mint_1,
        price_a=price,
        price_b=1.0,
        decimals_a=decimals_0,
        decimals_b=decimals_1,
    )
