"""MetaTrader Bridge Implementation.

Simulated stand-in for the MT4/MT5 bridge connection.
"""

from typing import Optional

from src.venues.config import VenueConfig, VenueType
from src.venues.errors import ConfigurationError
from src.venues.implementations.simulated import SimulatedVenueAdapter


class MTBridgeAdapter(SimulatedVenueAdapter):
    """MT4/MT5 venue reached through the bridge EA.

    The bridge listens on a host/port pair, so both are required.
    """

    def __init__(self, venue_type: VenueType, config: Optional[VenueConfig] = None):
        if venue_type not in (VenueType.MT4, VenueType.MT5):
            raise ConfigurationError(f"MT bridge cannot serve {venue_type.value}")
        config = config or VenueConfig()
        platform = venue_type.value.upper()
        if not config.host or not config.port:
            raise ConfigurationError(
                f"{platform} requires host and port configuration for MT Bridge connection",
                field="host" if not config.host else "port",
            )
        super().__init__(venue_type, config)

    @property
    def name(self) -> str:
        return f"{self.venue_type.value.upper()} Bridge ({self.config.host}:{self.config.port})"
