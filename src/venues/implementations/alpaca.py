"""Alpaca Implementation.

Simulated stand-in for the Alpaca REST/WebSocket client.
"""

from typing import Optional

from src.venues.config import VenueConfig, VenueType
from src.venues.implementations.simulated import SimulatedVenueAdapter


class AlpacaAdapter(SimulatedVenueAdapter):
    """Alpaca venue (stocks, crypto; streaming).

    Currently uses the simulated implementation. A full implementation
    would talk to the paper or live Alpaca endpoint depending on ``paper``.

    Example:
        venue = AlpacaAdapter(VenueConfig(api_key="...", api_secret="..."))
    """

    def __init__(self, config: Optional[VenueConfig] = None):
        super().__init__(VenueType.ALPACA, config)

    @property
    def name(self) -> str:
        return "Alpaca"
