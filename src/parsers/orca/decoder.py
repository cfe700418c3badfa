"""Decode Orca Whirlpool on-chain account data.

Layout from https://github.com/orca-so/whirlpools
Account size: 653 bytes.

Key field offsets:
  45:47   fee_rate (u16 LE, hundredths of a bps)
  49:65   liquidity (u128 LE)
  65:81   sqrt_price (u128 LE, Q64.64)
  101:133 token_mint_a (Pubkey 32b)
  181:213 token_mint_b (Pubkey 32b)

Mint decimals are not stored on the pool; they come from the hint.
"""

from src.parsers.account_layout import (
    DecimalsHint,
    DecodedPool,
    PoolDecodeError,
    check_discriminator,
    read_pubkey,
    read_u16,
    read_u128,
    sqrt_price_x64_to_price,
)
from src.parsers.orca.constants import (
    FEE_RATE_DENOMINATOR,
    WHIRLPOOL_DISCRIMINATOR,
    WHIRLPOOL_SIZE,
)


def decode_whirlpool(data: bytes, hint: DecimalsHint | None = None) -> DecodedPool:
    if len(data) != WHIRLPOOL_SIZE:
        raise PoolDecodeError(
            f"Orca: unsupported account size {len(data)} (Whirlpool is {WHIRLPOOL_SIZE})"
        )
    check_discriminator(data, WHIRLPOOL_DISCRIMINATOR, "Orca Whirlpool")

    hint = hint or DecimalsHint()
    fee_rate = read_u16(data, 45) / FEE_RATE_DENOMINATOR
    liquidity = read_u128(data, 49)
    sqrt_price = read_u128(data, 65)
    mint_a = read_pubkey(data, 101)
    mint_b = read_pubkey(data, 181)

    if liquidity == 0:
        raise PoolDecodeError("Orca Whirlpool: pool has no active liquidity")

    decimals_a = hint.lookup(mint_a)
    decimals_b = hint.lookup(mint_b)
    price = sqrt_price_x64_to_price(sqrt_price, decimals_a, decimals_b)
    return DecodedPool(
        mint_a=mint_a,
        mint_b=mint_b,
        price_a=price,
        price_b=1.0,
        decimals_a=decimals_a,
        decimals_b=decimals_b,
        fee_rate=fee_rate,
    )
