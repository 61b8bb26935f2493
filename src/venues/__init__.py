"""Venue Integrations.

Uniform adapter contract, data models, and adapter factories for the
trading venues the routing layer can connect to.

Supported Venues:
- Alpaca (stocks, crypto)
- OANDA (forex, commodities, CFDs, bonds)
- SnapTrade (aggregator; also fronts Interactive Brokers)
- MetaTrader 4/5 through the MT bridge

Example:
    from src.venues import VenueType, VenueConfig, create_adapter

    adapter = create_adapter(VenueType.ALPACA, VenueConfig(api_key="..."))
    await adapter.connect()
    quote = await adapter.get_quote("AAPL")
"""

from src.venues.config import (
    AccountType,
    AssetClass,
    OrderSide,
    OrderStatus,
    OrderType,
    PositionSide,
    TimeInForce,
    VenueCapabilities,
    VenueConfig,
    VenueEvent,
    VenueType,
    VENUE_CAPABILITIES,
)
from src.venues.errors import (
    ConfigurationError,
    DuplicateIdError,
    ErrorCode,
    NoVenueAvailableError,
    RoutingError,
    VenueNotFoundError,
    VenueTimeoutError,
    VenueUnavailableError,
)
from src.venues.models import (
    Account,
    Bar,
    Order,
    OrderRequest,
    Position,
    Quote,
    Trade,
)
from src.venues.interface import BaseVenueAdapter, VenueAdapter
from src.venues.implementations import (
    VENUE_FACTORIES,
    SimulatedVenueAdapter,
    create_adapter,
    register_venue_factory,
)


__all__ = [
    # Config
    "AccountType",
    "AssetClass",
    "OrderSide",
    "OrderStatus",
    "OrderType",
    "PositionSide",
    "TimeInForce",
    "VenueCapabilities",
    "VenueConfig",
    "VenueEvent",
    "VenueType",
    "VENUE_CAPABILITIES",
    # Errors
    "ConfigurationError",
    "DuplicateIdError",
    "ErrorCode",
    "NoVenueAvailableError",
    "RoutingError",
    "VenueNotFoundError",
    "VenueTimeoutError",
    "VenueUnavailableError",
    # Models
    "Account",
    "Bar",
    "Order",
    "OrderRequest",
    "Position",
    "Quote",
    "Trade",
    # Interface
    "BaseVenueAdapter",
    "VenueAdapter",
    # Factory
    "VENUE_FACTORIES",
    "SimulatedVenueAdapter",
    "create_adapter",
    "register_venue_factory",
]
