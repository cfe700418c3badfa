"""Token and venue constants shared by detection, scoring and decoding."""

WSOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDT_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"
MSOL_MINT = "mSoLzYCxHdYgdzU16g5QSh3i5K3z3KZK7ytfqcJm7So"

STABLECOIN_MINTS = frozenset({USDC_MINT, USDT_MINT})

# Mints the market-data source is queried for
MAIN_MINTS: tuple[str, ...] = (WSOL_MINT, USDC_MINT, USDT_MINT)

# Decimals for mints whose pools don't store them on-account (Whirlpool, DLMM)
KNOWN_DECIMALS: dict[str, int] = {
    WSOL_MINT: 9,
    USDC_MINT: 6,
    USDT_MINT: 6,
    MSOL_MINT: 9,
    "7vfCXTUXx5WJV5JADk17DUJ4ksgau7utNKj4b963voxs": 8,  # ETH (Wormhole)
    "9n4nbM75f5Ui33ZbPYXn59EwSgE8CGsHtAeTH5YFeJ9E": 6,  # BTC (Sollet)
    "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263": 5,  # BONK
    "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN": 6,  # JUP
}

VENUE_RAYDIUM = "raydium"
VENUE_ORCA = "orca"
VENUE_METEORA = "meteora"
SUPPORTED_VENUES = frozenset({VENUE_RAYDIUM, VENUE_ORCA, VENUE_METEORA})

DEFAULT_FEE_RATES: dict[str, float] = {
    VENUE_RAYDIUM: 0.0025,
    VENUE_ORCA: 0.003,
    VENUE_METEORA: 0.002,
}
FALLBACK_FEE_RATE = 0.003


def default_fee_rate(venue: str | None) -> float:
    if not venue:
        return FALLBACK_FEE_RATE
    return DEFAULT_FEE_RATES.get(venue.lower(), FALLBACK_FEE_RATE)
