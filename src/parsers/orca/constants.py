"""Orca Whirlpool program constants."""

WHIRLPOOL_PROGRAM_ID = "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc"

# First 8 bytes of Whirlpool account data (Anchor discriminator)
WHIRLPOOL_DISCRIMINATOR = bytes([63, 149, 209, 12, 225, 128, 99, 9])

WHIRLPOOL_SIZE = 653

# fee_rate is stored in hundredths of a basis point
FEE_RATE_DENOMINATOR = 1_000_000
