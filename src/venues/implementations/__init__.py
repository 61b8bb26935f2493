"""Venue Implementations.

Registration map from venue type to adapter factory. Adding a venue type
means adding a ``VenueType`` member and registering one factory for it.
"""

from typing import Callable, Mapping, Optional, Union

from src.venues.config import VenueConfig, VenueType
from src.venues.errors import ConfigurationError
from src.venues.implementations.alpaca import AlpacaAdapter
from src.venues.implementations.mt_bridge import MTBridgeAdapter
from src.venues.implementations.oanda import OandaAdapter
from src.venues.implementations.simulated import SimulatedVenueAdapter
from src.venues.implementations.snaptrade import SnapTradeAdapter
from src.venues.interface import VenueAdapter

VenueFactory = Callable[[VenueConfig], VenueAdapter]


VENUE_FACTORIES: dict[VenueType, VenueFactory] = {
    VenueType.ALPACA: AlpacaAdapter,
    VenueType.OANDA: OandaAdapter,
    VenueType.SNAPTRADE: SnapTradeAdapter,
    VenueType.INTERACTIVE_BROKERS: lambda config: SnapTradeAdapter(
        config, venue_type=VenueType.INTERACTIVE_BROKERS,
    ),
    VenueType.MT4: lambda config: MTBridgeAdapter(VenueType.MT4, config),
    VenueType.MT5: lambda config: MTBridgeAdapter(VenueType.MT5, config),
}


def register_venue_factory(venue_type: VenueType, factory: VenueFactory) -> None:
    """Install or replace the default factory for a venue type."""
    VENUE_FACTORIES[VenueType(venue_type)] = factory


def resolve_venue_type(venue_type: Union[VenueType, str]) -> VenueType:
    """Coerce a venue type string into the enum.

    Raises:
        ConfigurationError: If the string names no known venue type.
    """
    try:
        return VenueType(venue_type)
    except ValueError:
        raise ConfigurationError(f"Unknown venue type: {venue_type}", field="type") from None


def create_adapter(
    venue_type: Union[VenueType, str],
    config: VenueConfig,
    factories: Optional[Mapping[VenueType, VenueFactory]] = None,
) -> VenueAdapter:
    """Factory function to create a venue adapter.

    Args:
        venue_type: Venue type (enum or its string value).
        config: Connection settings.
        factories: Factory map to use instead of ``VENUE_FACTORIES``.

    Returns:
        Adapter implementing VenueAdapter.

    Raises:
        ConfigurationError: Unknown type, no factory, or invalid config.
    """
    resolved = resolve_venue_type(venue_type)
    factory = (factories if factories is not None else VENUE_FACTORIES).get(resolved)
    if factory is None:
        raise ConfigurationError(f"No adapter factory registered for {resolved.value}", field="type")
    return factory(config)


__all__ = [
    "VENUE_FACTORIES",
    "VenueFactory",
    "AlpacaAdapter",
    "MTBridgeAdapter",
    "OandaAdapter",
    "SimulatedVenueAdapter",
    "SnapTradeAdapter",
    "create_adapter",
    "register_venue_factory",
    "resolve_venue_type",
]
