"""Raydium Concentrated Liquidity (CLMM) program constants."""

CLMM_PROGRAM_ID = "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK"

# First 8 bytes of PoolState account data (Anchor discriminator)
POOL_STATE_DISCRIMINATOR = bytes([247, 237, 227, 245, 215, 195, 222, 70])

POOL_STATE_SIZE = 1544
