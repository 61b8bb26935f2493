"""Broker Manager -- the routing layer's public facade.

Wires the connection registry, routing table, order router, aggregator,
health monitor, trading-mode controller, and event hub into one service
object. Construct one per process (``BrokerManager.from_settings()``) and
pass it to whoever needs it; tests build as many independent ones as they
like.
"""

from datetime import datetime, timezone
from typing import Mapping, Optional, Union
import logging

from src.settings import RouterSettings, get_settings
from src.venue_routing.aggregator import (
    AggregatedPortfolio,
    PortfolioAggregator,
    VenuePosition,
    VenueTrade,
)
from src.venue_routing.connection import ConnectionRegistry, VenueConnection
from src.venue_routing.dispatch import OrderRouter, RoutedOrder
from src.venue_routing.events import EventHandler, EventHub, Subscriber
from src.venue_routing.health import HealthMonitor
from src.venue_routing.routing import RoutingPreference, RoutingTable
from src.venue_routing.trading_mode import ModeChangeResult, TradingMode, TradingModeController
from src.venues.config import AssetClass, VenueConfig, VenueType
from src.venues.errors import VenueNotFoundError
from src.venues.implementations import VenueFactory
from src.venues.interface import VenueAdapter
from src.venues.models import Account, Bar, Order, OrderRequest, Quote

logger = logging.getLogger(__name__)


class BrokerManager:
    """Manages venue connections, routing, aggregation, and health.

    Features:
    - Register venues by type and connect them individually or in bulk
    - Asset-class routing with explicit overrides
    - Concurrent portfolio, position, and trade aggregation
    - Heartbeat monitoring with automatic demotion
    - Guarded paper/live switching

    Example:
        manager = BrokerManager()
        await manager.add_broker("alpaca-main", VenueType.ALPACA, VenueConfig(api_key="..."), is_primary=True)
        await manager.connect_all()
        await manager.initialize()
        routed = await manager.submit_order(OrderRequest("AAPL", OrderSide.BUY, 1), AssetClass.STOCK)
    """

    name = "broker_manager"

    def __init__(
        self,
        trading_mode: Union[TradingMode, str] = TradingMode.PAPER,
        heartbeat_interval: float = 60.0,
        failure_threshold: int = 3,
        call_timeout: float = 30.0,
        factories: Optional[Mapping[VenueType, VenueFactory]] = None,
        event_hub: Optional[EventHub] = None,
    ):
        self.events = event_hub or EventHub()
        self.registry = ConnectionRegistry(
            self.events,
            paper_mode=lambda: self.trading_mode.is_paper,
            default_timeout=call_timeout,
            factories=factories,
        )
        self.trading_mode = TradingModeController(
            self.registry.disconnect_all,
            self.events,
            initial=TradingMode.from_setting(trading_mode),
            connected_count=lambda: len(self.registry.connected()),
        )
        self.routing = RoutingTable()
        self.router = OrderRouter(self.registry, self.routing)
        self.aggregator = PortfolioAggregator(self.registry)
        self.health_monitor = HealthMonitor(self.registry, heartbeat_interval, failure_threshold)
        self._initialized = False

    @classmethod
    def from_settings(
        cls,
        settings: Optional[RouterSettings] = None,
        factories: Optional[Mapping[VenueType, VenueFactory]] = None,
    ) -> "BrokerManager":
        settings = settings or get_settings()
        return cls(
            trading_mode=settings.trading_mode,
            heartbeat_interval=settings.heartbeat_interval_seconds,
            failure_threshold=settings.heartbeat_failure_threshold,
            call_timeout=settings.venue_call_timeout_seconds,
            factories=factories,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> None:
        """Start the health monitor."""
        if self._initialized:
            return
        await self.health_monitor.start()
        self._initialized = True
        logger.info(f"Broker manager initialized in {self.trading_mode.mode.value} mode")

    async def shutdown(self) -> None:
        """Stop the health monitor and disconnect every venue."""
        await self.health_monitor.stop()
        await self.registry.disconnect_all()
        self._initialized = False
        logger.info("Broker manager shut down")

    # =========================================================================
    # Venue Management
    # =========================================================================

    async def add_broker(
        self,
        venue_id: str,
        venue_type: Union[VenueType, str],
        config: Optional[VenueConfig] = None,
        is_primary: bool = False,
        name: Optional[str] = None,
    ) -> VenueConnection:
        """Register a venue and update routing for its asset classes.

        Raises:
            DuplicateIdError: ``venue_id`` is taken.
            ConfigurationError: Unknown type or incomplete config.
        """
        conn = await self.registry.register(venue_id, venue_type, config, is_primary=is_primary, name=name)
        self.routing.update_for_venue(venue_id, conn.asset_classes, is_primary)
        return conn

    async def connect_broker(self, venue_id: str) -> VenueConnection:
        return await self.registry.connect(venue_id)

    async def connect_all(self) -> int:
        return await self.registry.connect_all()

    async def disconnect_broker(self, venue_id: str) -> None:
        await self.registry.disconnect(venue_id)

    async def disconnect_all(self) -> None:
        await self.registry.disconnect_all()

    async def remove_broker(self, venue_id: str) -> bool:
        removed = await self.registry.remove(venue_id)
        if removed:
            self.routing.forget_venue(venue_id)
        return removed

    def get_broker(self, venue_id: str) -> Optional[VenueAdapter]:
        conn = self.registry.get(venue_id)
        return conn.adapter if conn else None

    def get_connected_broker_ids(self) -> list[str]:
        return [c.venue_id for c in self.registry.connected()]

    # =========================================================================
    # Status & Health
    # =========================================================================

    def get_status(self) -> dict:
        return self.registry.status()

    def get_health(self) -> dict:
        """Component health: online, degraded (none connected), or offline (none registered)."""
        venues = self.registry.all()
        connected = sum(1 for c in venues if c.is_connected)
        if connected > 0:
            status = "online"
        elif venues:
            status = "degraded"
        else:
            status = "offline"

        last_probe = self.health_monitor.last_check
        return {
            "component": self.name,
            "status": status,
            "last_check": datetime.now(timezone.utc).isoformat(),
            "last_heartbeat_check": last_probe.isoformat() if last_probe else None,
            "initialized": self._initialized,
            "monitor_running": self.health_monitor.is_running,
            "metrics": {
                "connected_brokers": connected,
                "total_brokers": len(venues),
            },
            "venues": [c.health_dict() for c in venues],
        }

    # =========================================================================
    # Aggregation
    # =========================================================================

    async def get_aggregated_portfolio(self) -> AggregatedPortfolio:
        return await self.aggregator.get_aggregated_portfolio()

    async def get_account(self, venue_id: str) -> Account:
        conn = self.registry.require_connected(venue_id)
        return await self.registry.invoke(conn, "get_account", conn.adapter.get_account)

    async def get_all_positions(self) -> list[VenuePosition]:
        return await self.aggregator.get_all_positions()

    async def get_trade_history(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[VenueTrade]:
        return await self.aggregator.get_trade_history(start, end)

    # =========================================================================
    # Trading
    # =========================================================================

    async def submit_order(
        self,
        request: OrderRequest,
        asset_class: Optional[AssetClass] = None,
        preferred_venue_id: Optional[str] = None,
    ) -> RoutedOrder:
        return await self.router.submit_order(request, asset_class, preferred_venue_id)

    async def cancel_order(self, venue_id: str, order_id: str) -> bool:
        return await self.router.cancel_order(venue_id, order_id)

    async def close_position(
        self,
        venue_id: str,
        symbol: str,
        quantity: Optional[float] = None,
    ) -> Order:
        return await self.router.close_position(venue_id, symbol, quantity)

    async def close_all_positions(self) -> dict[str, list[Order]]:
        return await self.router.close_all_positions()

    # =========================================================================
    # Market Data
    # =========================================================================

    async def get_quote(self, symbol: str, venue_id: Optional[str] = None) -> Quote:
        return await self.router.get_quote(symbol, venue_id)

    async def get_bars(
        self,
        symbol: str,
        timeframe: str,
        start: datetime,
        end: datetime,
        venue_id: Optional[str] = None,
    ) -> list[Bar]:
        return await self.router.get_bars(symbol, timeframe, start, end, venue_id)

    async def subscribe_quotes(self, symbols: list[str], venue_id: Optional[str] = None) -> list[str]:
        return await self.router.subscribe_quotes(symbols, venue_id)

    # =========================================================================
    # Routing
    # =========================================================================

    def set_routing_preference(
        self,
        asset_class: AssetClass,
        venue_id: Optional[str],
        fallback_venue_id: Optional[str] = None,
        split_orders: bool = False,
    ) -> RoutingPreference:
        """Point an asset class at a venue (and optional fallback).

        Raises:
            VenueNotFoundError: Either id is not registered.
        """
        for vid in (venue_id, fallback_venue_id):
            if vid is not None and vid not in self.registry:
                raise VenueNotFoundError(vid)
        return self.routing.set_preference(asset_class, venue_id, fallback_venue_id, split_orders)

    def get_routing_preferences(self) -> dict:
        return self.routing.to_dict()

    # =========================================================================
    # Trading Mode
    # =========================================================================

    def is_paper_mode(self) -> bool:
        return self.trading_mode.is_paper

    def get_trading_mode(self) -> TradingMode:
        return self.trading_mode.mode

    async def set_trading_mode(self, mode: Union[TradingMode, str]) -> ModeChangeResult:
        return await self.trading_mode.set_mode(mode)

    def get_trading_mode_info(self) -> dict:
        return self.trading_mode.info()

    # =========================================================================
    # Events
    # =========================================================================

    def subscribe(
        self,
        handler: EventHandler,
        topic_pattern: str = "*",
        name: str = "",
    ) -> Subscriber:
        """Receive venue events (``VenueEventEnvelope``) matching a topic pattern."""
        return self.events.subscribe(handler, topic_pattern, name)

    def unsubscribe(self, subscriber_id: str) -> bool:
        return self.events.unsubscribe(subscriber_id)

    def __repr__(self) -> str:
        status = self.registry.status()
        return (
            f"BrokerManager(mode={self.trading_mode.mode.value}, "
            f"connected={status['connected_brokers']}/{status['total_brokers']})"
        )


__all__ = ["BrokerManager"]
