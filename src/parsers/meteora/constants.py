"""Meteora Dynamic Liquidity Market Maker (DLMM) program constants."""

DLMM_PROGRAM_ID = "LBUZKhRxPF3XUpBCjp4YzTKgLccjZhTSDM9YuVaPwxo"

# First 8 bytes of LbPair account data (Anchor discriminator)
LB_PAIR_DISCRIMINATOR = bytes([33, 11, 49, 98, 181, 101, 177, 13])

# Bytes needed to reach token_y_mint; real accounts are larger
LB_PAIR_MIN_SIZE = 152

BASIS_POINT_MAX = 10_000
