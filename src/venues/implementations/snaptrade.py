"""SnapTrade Implementation.

Simulated stand-in for the SnapTrade aggregation client. Brokers without a
direct integration (Interactive Brokers among them) are reached through it.
"""

from typing import Optional

from src.venues.config import VenueConfig, VenueType
from src.venues.implementations.simulated import SimulatedVenueAdapter


class SnapTradeAdapter(SimulatedVenueAdapter):
    """SnapTrade venue (stocks, crypto, options; polling only)."""

    def __init__(
        self,
        config: Optional[VenueConfig] = None,
        venue_type: VenueType = VenueType.SNAPTRADE,
    ):
        super().__init__(venue_type, config)

    @property
    def name(self) -> str:
        if self.venue_type == VenueType.INTERACTIVE_BROKERS:
            return "Interactive Brokers (via SnapTrade)"
        return "SnapTrade"
