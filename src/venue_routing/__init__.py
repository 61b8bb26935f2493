"""Multi-Venue Routing.

Connection registry, asset-class routing, concurrent aggregation, heartbeat
monitoring, and the paper/live switch, behind one BrokerManager facade.

Example:
    from src.venue_routing import BrokerManager
    from src.venues import AssetClass, OrderRequest, OrderSide, VenueConfig, VenueType

    manager = BrokerManager.from_settings()
    await manager.add_broker("alpaca-main", VenueType.ALPACA, VenueConfig(api_key="..."), is_primary=True)
    await manager.add_broker("oanda-fx", VenueType.OANDA, VenueConfig(account_id="001-..."))
    await manager.connect_all()
    await manager.initialize()

    routed = await manager.submit_order(OrderRequest("AAPL", OrderSide.BUY, 1), AssetClass.STOCK)
    portfolio = await manager.get_aggregated_portfolio()
    await manager.shutdown()
"""

from src.venue_routing.aggregator import (
    AggregatedPortfolio,
    PortfolioAggregator,
    VenuePosition,
    VenueTrade,
)
from src.venue_routing.connection import (
    CLIENT_DISCONNECT_REASON,
    ConnectionRegistry,
    VenueConnection,
    VenueState,
)
from src.venue_routing.dispatch import OrderRouter, RoutedOrder
from src.venue_routing.errors import (
    ConfigurationError,
    DuplicateIdError,
    ErrorCode,
    NoVenueAvailableError,
    RoutingError,
    VenueNotFoundError,
    VenueTimeoutError,
    VenueUnavailableError,
)
from src.venue_routing.events import (
    TRADING_MODE_CHANGED,
    DeliveryRecord,
    DeliveryStatus,
    EventHub,
    EventHubConfig,
    Subscriber,
    SubscriberState,
    VenueEventEnvelope,
)
from src.venue_routing.fanout import FanOutResult, fan_out
from src.venue_routing.health import HEARTBEAT_FAILURE_REASON, HealthMonitor, HeartbeatResult
from src.venue_routing.manager import BrokerManager
from src.venue_routing.routing import RoutingPreference, RoutingTable
from src.venue_routing.trading_mode import (
    ModeChangeResult,
    TradingMode,
    TradingModeController,
)

__all__ = [
    # Facade
    "BrokerManager",
    # Registry
    "CLIENT_DISCONNECT_REASON",
    "ConnectionRegistry",
    "VenueConnection",
    "VenueState",
    # Routing
    "OrderRouter",
    "RoutedOrder",
    "RoutingPreference",
    "RoutingTable",
    # Aggregation
    "AggregatedPortfolio",
    "FanOutResult",
    "PortfolioAggregator",
    "VenuePosition",
    "VenueTrade",
    "fan_out",
    # Health
    "HEARTBEAT_FAILURE_REASON",
    "HealthMonitor",
    "HeartbeatResult",
    # Trading mode
    "ModeChangeResult",
    "TradingMode",
    "TradingModeController",
    # Events
    "TRADING_MODE_CHANGED",
    "DeliveryRecord",
    "DeliveryStatus",
    "EventHub",
    "EventHubConfig",
    "Subscriber",
    "SubscriberState",
    "VenueEventEnvelope",
    # Errors
    "ConfigurationError",
    "DuplicateIdError",
    "ErrorCode",
    "NoVenueAvailableError",
    "RoutingError",
    "VenueNotFoundError",
    "VenueTimeoutError",
    "VenueUnavailableError",
]
