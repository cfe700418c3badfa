"""Venue dispatch for on-chain pool account decoders."""

from collections.abc import Callable

from src.arbitrage.constants import VENUE_METEORA, VENUE_ORCA, VENUE_RAYDIUM
from src.parsers.account_layout import DecimalsHint, DecodedPool, PoolDecodeError
from src.parsers.meteora.decoder import decode_lb_pair
from src.parsers.orca.decoder import decode_whirlpool
from src.parsers.raydium.decoder import decode_clmm_pool

__all__ = ["DecimalsHint", "DecodedPool", "DecoderRegistry", "PoolDecodeError"]

Decoder = Callable[[bytes, DecimalsHint], DecodedPool]


class DecoderRegistry:
    """Maps venue name to its account decoder.

    Unknown venues never fabricate data: ``decode`` raises PoolDecodeError.
    """

    def __init__(self, decoders: dict[str, Decoder] | None = None) -> None:
        if decoders is None:
            decoders = {
                VENUE_RAYDIUM: decode_clmm_pool,
                VENUE_ORCA: decode_whirlpool,
                VENUE_METEORA: decode_lb_pair,
            }
        self._decoders = {venue.lower(): fn for venue, fn in decoders.items()}

    def register(self, venue: str, decoder: Decoder) -> None:
        self._decoders[venue.lower()] = decoder

    def supports(self, venue: str) -> bool:
        return venue.lower() in self._decoders

    @property
    def venues(self) -> list[str]:
        return sorted(self._decoders)

    def decode(self, venue: str, data: bytes, hint: DecimalsHint | None = None) -> DecodedPool:
        decoder = self._decoders.get(venue.lower())
        if decoder is None:
            raise PoolDecodeError(f"No decoder for venue '{venue}'")
        return decoder(data, hint or DecimalsHint())
