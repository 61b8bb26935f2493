"""OANDA Implementation.

Simulated stand-in for the OANDA v20 client.
"""

from typing import Optional

from src.venues.config import VenueConfig, VenueType
from src.venues.errors import ConfigurationError
from src.venues.implementations.simulated import SimulatedVenueAdapter


class OandaAdapter(SimulatedVenueAdapter):
    """OANDA venue (forex, commodities, CFDs, bonds).

    Every OANDA call is scoped to an account, so ``account_id`` is required.
    """

    def __init__(self, config: Optional[VenueConfig] = None):
        config = config or VenueConfig()
        if not config.account_id:
            raise ConfigurationError("OANDA requires account_id in config", field="account_id")
        super().__init__(VenueType.OANDA, config)

    @property
    def name(self) -> str:
        return "OANDA"
