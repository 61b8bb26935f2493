"""Venue Adapter Interface.

Defines the uniform contract every venue integration must follow, plus a
base class providing event emission.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Optional, Protocol, runtime_checkable
import logging

from src.venues.config import VenueCapabilities, VenueConfig, VenueEvent
from src.venues.models import (
    Account,
    Bar,
    Order,
    OrderRequest,
    Position,
    Quote,
    Trade,
)

logger = logging.getLogger(__name__)

EventHandler = Callable[..., Any]


@runtime_checkable
class VenueAdapter(Protocol):
    """Protocol defining the unified venue interface.

    ``connect`` and ``disconnect`` must be idempotent. Adapters that cannot
    take concurrent calls must serialize them internally.
    """

    paper: bool

    @property
    def name(self) -> str:
        """Display name of the venue."""
        ...

    @property
    def capabilities(self) -> VenueCapabilities:
        """Declared asset classes and streaming support."""
        ...

    def on(self, event: VenueEvent, handler: EventHandler) -> None:
        """Attach a listener for an adapter event."""
        ...

    # Lifecycle
    async def connect(self) -> None:
        ...

    async def disconnect(self) -> None:
        ...

    # Account
    async def get_account(self) -> Account:
        ...

    async def get_positions(self) -> list[Position]:
        ...

    # Orders
    async def submit_order(self, request: OrderRequest) -> Order:
        ...

    async def cancel_order(self, order_id: str) -> bool:
        ...

    async def get_order(self, order_id: str) -> Optional[Order]:
        ...

    async def close_position(self, symbol: str, quantity: Optional[float] = None) -> Order:
        ...

    async def close_all_positions(self) -> list[Order]:
        ...

    async def get_trades(
        self,
        symbol: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Trade]:
        ...

    # Market data
    async def get_quote(self, symbol: str) -> Quote:
        ...

    async def get_bars(
        self,
        symbol: str,
        timeframe: str,
        start: datetime,
        end: datetime,
    ) -> list[Bar]:
        ...

    async def subscribe_quotes(self, symbols: list[str]) -> None:
        ...


class BaseVenueAdapter(ABC):
    """Abstract base class for venue adapters.

    Provides listener bookkeeping. Listener exceptions are logged and
    swallowed so a misbehaving subscriber can never break the adapter.

    Example:
        class MyVenue(BaseVenueAdapter):
            async def connect(self) -> None:
                ...
                self._set_connected(True)
    """

    def __init__(self, config: Optional[VenueConfig] = None):
        self.config = config or VenueConfig()
        self.paper = self.config.paper
        self._connected = False
        self._listeners: dict[VenueEvent, list[EventHandler]] = defaultdict(list)

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def capabilities(self) -> VenueCapabilities:
        pass

    def is_ready(self) -> bool:
        """Whether the adapter holds a live session."""
        return self._connected

    # -- Events ------------------------------------------------------------

    def on(self, event: VenueEvent, handler: EventHandler) -> None:
        self._listeners[VenueEvent(event)].append(handler)

    def off(self, event: VenueEvent, handler: EventHandler) -> bool:
        """Detach a listener. Returns True if it was attached."""
        handlers = self._listeners.get(VenueEvent(event), [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def _emit(self, event: VenueEvent, *args: Any) -> None:
        for handler in list(self._listeners.get(event, [])):
            try:
                handler(*args)
            except Exception as e:
                logger.error(f"{self.name} listener for '{event.value}' failed: {e}")

    def _set_connected(self, connected: bool, reason: str = "") -> None:
        """Flip the session flag and emit connected/disconnected on change."""
        if connected == self._connected:
            return
        self._connected = connected
        if connected:
            self._emit(VenueEvent.CONNECTED)
        else:
            self._emit(VenueEvent.DISCONNECTED, reason or "Client disconnect")

    # -- Contract ----------------------------------------------------------

    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    @abstractmethod
    async def get_account(self) -> Account:
        pass

    @abstractmethod
    async def get_positions(self) -> list[Position]:
        pass

    async def get_position(self, symbol: str) -> Optional[Position]:
        """Get position for a symbol."""
        for pos in await self.get_positions():
            if pos.symbol == symbol:
                return pos
        return None

    @abstractmethod
    async def submit_order(self, request: OrderRequest) -> Order:
        pass

    @abstractmethod
    async def cancel_order(self, order_id: str) -> bool:
        pass

    @abstractmethod
    async def get_order(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def close_position(self, symbol: str, quantity: Optional[float] = None) -> Order:
        pass

    async def close_all_positions(self) -> list[Order]:
        """Close every open position (default: one close per symbol)."""
        orders = []
        for pos in await self.get_positions():
            orders.append(await self.close_position(pos.symbol))
        return orders

    @abstractmethod
    async def get_trades(
        self,
        symbol: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Trade]:
        pass

    @abstractmethod
    async def get_quote(self, symbol: str) -> Quote:
        pass

    @abstractmethod
    async def get_bars(
        self,
        symbol: str,
        timeframe: str,
        start: datetime,
        end: datetime,
    ) -> list[Bar]:
        pass

    async def subscribe_quotes(self, symbols: list[str]) -> None:
        """Subscribe to streaming quotes (default: unsupported)."""
        raise NotImplementedError(f"{self.name} does not support quote streaming")
