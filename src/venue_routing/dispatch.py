"""Order Router -- resolves a venue and dispatches trading and data calls.

Resolution order for orders:
1. Explicit venue id from the caller
2. The routing table's preferred venue for the asset class
   (its fallback when the preferred venue is down)
3. The first connected venue in registration order
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
import logging

from src.venue_routing.connection import ConnectionRegistry, VenueConnection
from src.venue_routing.fanout import fan_out
from src.venue_routing.routing import RoutingTable
from src.venues.config import AssetClass
from src.venues.errors import NoVenueAvailableError
from src.venues.models import Bar, Order, OrderRequest, Quote

logger = logging.getLogger(__name__)


@dataclass
class RoutedOrder:
    """An order together with the venue that accepted it."""
    venue_id: str
    order: Order

    def to_dict(self) -> dict:
        return {"venue_id": self.venue_id, "order": self.order.to_dict()}


class OrderRouter:
    """Dispatches requests to venues.

    Single-target calls propagate the venue's own error. Calls without an
    explicit venue try connected venues in registration order.

    Example:
        router = OrderRouter(registry, table)
        routed = await router.submit_order(request, asset_class=AssetClass.STOCK)
        print(routed.venue_id, routed.order.status)
    """

    def __init__(self, registry: ConnectionRegistry, table: RoutingTable) -> None:
        self._registry = registry
        self._table = table

    # -- Resolution ------------------------------------------------------

    def resolve(
        self,
        asset_class: Optional[AssetClass] = None,
        preferred_venue_id: Optional[str] = None,
    ) -> VenueConnection:
        """Pick the venue an order should go to.

        Raises:
            NoVenueAvailableError: Nothing resolves, or the resolved venue
                is not connected.
        """
        target_id = preferred_venue_id

        if target_id is None and asset_class is not None:
            pref = self._table.get(asset_class)
            target_id = pref.preferred_venue_id
            if target_id is not None and not self._is_connected(target_id):
                if pref.fallback_venue_id and self._is_connected(pref.fallback_venue_id):
                    logger.info(
                        f"Preferred venue {target_id} for {pref.asset_class.value} is down, "
                        f"using fallback {pref.fallback_venue_id}"
                    )
                    target_id = pref.fallback_venue_id

        if target_id is None:
            connected = self._registry.connected()
            if not connected:
                raise NoVenueAvailableError()
            return connected[0]

        conn = self._registry.get(target_id)
        if conn is None or not conn.is_connected:
            raise NoVenueAvailableError(f"Venue {target_id} is not available", venue_id=target_id)
        return conn

    def _is_connected(self, venue_id: str) -> bool:
        conn = self._registry.get(venue_id)
        return conn is not None and conn.is_connected

    # -- Orders ----------------------------------------------------------

    async def submit_order(
        self,
        request: OrderRequest,
        asset_class: Optional[AssetClass] = None,
        preferred_venue_id: Optional[str] = None,
    ) -> RoutedOrder:
        conn = self.resolve(asset_class, preferred_venue_id)
        logger.info(
            f"Routing {request.side.value} {request.quantity} {request.symbol} "
            f"({request.order_type.value}) to {conn.venue_id}"
        )
        order = await self._registry.invoke(conn, "submit_order", conn.adapter.submit_order, request)
        return RoutedOrder(venue_id=conn.venue_id, order=order)

    async def cancel_order(self, venue_id: str, order_id: str) -> bool:
        conn = self._registry.require_connected(venue_id)
        return await self._registry.invoke(conn, "cancel_order", conn.adapter.cancel_order, order_id)

    async def close_position(
        self,
        venue_id: str,
        symbol: str,
        quantity: Optional[float] = None,
    ) -> Order:
        conn = self._registry.require_connected(venue_id)
        return await self._registry.invoke(
            conn, "close_position", conn.adapter.close_position, symbol, quantity,
        )

    async def close_all_positions(self) -> dict[str, list[Order]]:
        """Close everything on every connected venue.

        Returns:
            Closing orders per venue; venues that failed are logged and omitted.
        """
        outcome = await fan_out(
            self._registry, "close_all_positions", lambda a: a.close_all_positions(),
        )
        total = sum(len(orders) for orders in outcome.results.values())
        logger.info(
            f"Closed {total} positions across {len(outcome.results)} venues"
            + (f", {len(outcome.errors)} failed" if outcome.errors else "")
        )
        return outcome.results

    # -- Market data -----------------------------------------------------

    async def get_quote(self, symbol: str, venue_id: Optional[str] = None) -> Quote:
        return await self._first_success(
            "get_quote", lambda a: a.get_quote(symbol), venue_id, f"get quote for {symbol}",
        )

    async def get_bars(
        self,
        symbol: str,
        timeframe: str,
        start: datetime,
        end: datetime,
        venue_id: Optional[str] = None,
    ) -> list[Bar]:
        return await self._first_success(
            "get_bars",
            lambda a: a.get_bars(symbol, timeframe, start, end),
            venue_id,
            f"get bars for {symbol}",
        )

    async def _first_success(self, operation: str, call, venue_id: Optional[str], what: str) -> Any:
        if venue_id is not None:
            conn = self._registry.require_connected(venue_id)
            return await self._registry.invoke(conn, operation, call, conn.adapter)

        last_error: Optional[Exception] = None
        for conn in self._registry.connected():
            try:
                return await self._registry.invoke(conn, operation, call, conn.adapter)
            except Exception as e:
                logger.debug(f"{operation} failed on {conn.venue_id}, trying next venue: {e}")
                last_error = e

        if last_error is not None:
            raise last_error
        raise NoVenueAvailableError(f"No venue available to {what}")

    async def subscribe_quotes(self, symbols: list[str], venue_id: Optional[str] = None) -> list[str]:
        """Subscribe to streaming quotes.

        Returns:
            Ids of the venues that accepted the subscription.
        """
        if venue_id is not None:
            conn = self._registry.require_connected(venue_id)
            await self._registry.invoke(conn, "subscribe_quotes", conn.adapter.subscribe_quotes, symbols)
            return [venue_id]

        streaming = [c for c in self._registry.connected() if c.supports_streaming]
        outcome = await fan_out(
            self._registry, "subscribe_quotes", lambda a: a.subscribe_quotes(symbols), streaming,
        )
        return outcome.succeeded
