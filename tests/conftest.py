"""Pytest configuration and shared fixtures."""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.venues.config import (  # noqa: E402
    AssetClass,
    OrderStatus,
    VenueCapabilities,
    VenueConfig,
    VenueEvent,
    VenueType,
    VENUE_CAPABILITIES,
)
from src.venues.interface import BaseVenueAdapter  # noqa: E402
from src.venues.models import Account, Bar, Order, OrderRequest, Quote  # noqa: E402


# =====================================================================
# Scriptable venue adapter
# =====================================================================


class FakeVenueAdapter(BaseVenueAdapter):
    """In-memory adapter whose failures and hangs are scripted per operation.

    ``fail("get_account", times=2)`` makes the next two calls raise;
    ``fail("get_account")`` with ``times=None`` fails until ``heal`` is called;
    ``hang.add("get_quote")`` makes calls block until cancelled.
    """

    def __init__(
        self,
        config: Optional[VenueConfig] = None,
        name: str = "Fake",
        asset_classes=(AssetClass.STOCK,),
        streaming: bool = True,
        account: Optional[Account] = None,
        positions=None,
        trades=None,
    ):
        super().__init__(config)
        self._name = name
        self._capabilities = VenueCapabilities(
            asset_classes=tuple(asset_classes), supports_streaming=streaming,
        )
        self.account = account or Account(
            account_id=f"{name}-acct", equity=100000.0, cash=50000.0,
            buying_power=100000.0, margin_used=0.0,
        )
        self.positions = list(positions or [])
        self.trades = list(trades or [])
        self.calls: list[str] = []
        self.submitted: list[OrderRequest] = []
        self.subscribed: list[str] = []
        self.hang: set[str] = set()
        self._queued: dict[str, list[Exception]] = {}
        self._persistent: dict[str, Exception] = {}
        self.paper_at_connect: list[bool] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def capabilities(self) -> VenueCapabilities:
        return self._capabilities

    # -- Scripting -------------------------------------------------------

    def fail(self, operation: str, exc: Optional[Exception] = None, times: Optional[int] = 1) -> None:
        exc = exc or ConnectionError(f"{operation} failed")
        if times is None:
            self._persistent[operation] = exc
        else:
            self._queued.setdefault(operation, []).extend([exc] * times)

    def heal(self, operation: Optional[str] = None) -> None:
        if operation is None:
            self._persistent.clear()
            self._queued.clear()
        else:
            self._persistent.pop(operation, None)
            self._queued.pop(operation, None)

    def emit(self, event: VenueEvent, *args) -> None:
        self._emit(VenueEvent(event), *args)

    def drop(self, reason: str = "Socket closed") -> None:
        """Simulate the venue dropping the session on its own."""
        self._set_connected(False, reason)

    def count(self, operation: str) -> int:
        return self.calls.count(operation)

    async def _call(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.hang:
            await asyncio.sleep(3600)
        if operation in self._persistent:
            raise self._persistent[operation]
        queued = self._queued.get(operation)
        if queued:
            raise queued.pop(0)

    # -- Contract --------------------------------------------------------

    async def connect(self) -> None:
        await self._call("connect")
        self.paper_at_connect.append(self.paper)
        self._set_connected(True)

    async def disconnect(self) -> None:
        await self._call("disconnect")
        self._set_connected(False, "Client disconnect")

    async def get_account(self) -> Account:
        await self._call("get_account")
        return self.account

    async def get_positions(self):
        await self._call("get_positions")
        return list(self.positions)

    async def submit_order(self, request: OrderRequest) -> Order:
        await self._call("submit_order")
        self.submitted.append(request)
        return Order(
            symbol=request.symbol,
            side=request.side,
            order_type=request.order_type,
            quantity=request.quantity,
            filled_quantity=request.quantity,
            status=OrderStatus.FILLED,
        )

    async def cancel_order(self, order_id: str) -> bool:
        await self._call("cancel_order")
        return True

    async def get_order(self, order_id: str):
        await self._call("get_order")
        return None

    async def close_position(self, symbol: str, quantity: Optional[float] = None) -> Order:
        await self._call("close_position")
        return Order(symbol=symbol, quantity=quantity or 0.0, status=OrderStatus.FILLED)

    async def close_all_positions(self):
        await self._call("close_all_positions")
        return [Order(symbol=p.symbol, quantity=p.quantity, status=OrderStatus.FILLED) for p in self.positions]

    async def get_trades(self, symbol=None, start=None, end=None):
        await self._call("get_trades")
        return [
            t for t in self.trades
            if (start is None or t.timestamp >= start) and (end is None or t.timestamp <= end)
        ]

    async def get_quote(self, symbol: str) -> Quote:
        await self._call("get_quote")
        return Quote(symbol=symbol, bid=99.9, ask=100.1)

    async def get_bars(self, symbol, timeframe, start, end):
        await self._call("get_bars")
        return [Bar(symbol=symbol, open=100.0, high=101.0, low=99.0, close=100.5, timestamp=start)]

    async def subscribe_quotes(self, symbols):
        await self._call("subscribe_quotes")
        if not self._capabilities.supports_streaming:
            raise NotImplementedError(f"{self.name} does not support quote streaming")
        self.subscribed.extend(symbols)


def fake_factory(venue_type: VenueType):
    """Factory producing FakeVenueAdapters with the venue type's asset classes.

    ``config.extra["asset_classes"]`` overrides the asset classes.
    """
    caps = VENUE_CAPABILITIES[venue_type]

    def build(config: VenueConfig) -> FakeVenueAdapter:
        classes = config.extra.get("asset_classes", caps.asset_classes)
        return FakeVenueAdapter(
            config,
            name=f"Fake {venue_type.value}",
            asset_classes=[AssetClass(a) for a in classes],
            streaming=caps.supports_streaming,
        )

    return build


# =====================================================================
# Fixtures
# =====================================================================


@pytest.fixture
def fake_factories():
    return {vt: fake_factory(vt) for vt in VenueType}


@pytest.fixture
def manager(fake_factories):
    from src.venue_routing import BrokerManager

    return BrokerManager(
        factories=fake_factories,
        heartbeat_interval=3600.0,
        failure_threshold=3,
        call_timeout=1.0,
    )


@pytest.fixture
def event_log(manager):
    """Every envelope published by the manager's hub, in order."""
    log = []
    manager.subscribe(log.append, "*", name="test-log")
    return log
