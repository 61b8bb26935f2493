"""Simulated Venue Implementation.

An in-memory paper venue used for development, tests, and as the stand-in
for venues whose protocol client lives outside this package.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
import logging
import math
import re

from src.venues.config import (
    AccountType,
    OrderSide,
    OrderStatus,
    OrderType,
    PositionSide,
    VenueCapabilities,
    VenueConfig,
    VenueEvent,
    VenueType,
    VENUE_CAPABILITIES,
)
from src.venues.interface import BaseVenueAdapter
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

BASE_PRICES: dict[str, float] = {
    "AAPL": 185.0,
    "MSFT": 378.0,
    "GOOGL": 141.0,
    "AMZN": 178.0,
    "TSLA": 250.0,
    "SPY": 575.0,
    "BTC-USD": 60000.0,
    "ETH-USD": 3000.0,
    "EUR_USD": 1.08,
    "GBP_USD": 1.27,
    "USD_JPY": 150.0,
    "XAU_USD": 2300.0,
}

SPREAD_PCT = 0.001
MAX_BARS = 1000

_TIMEFRAME_RE = re.compile(r"^(\d+)\s*(m|min|minute|h|hour|d|day)s?$", re.IGNORECASE)
_TIMEFRAME_UNITS = {
    "m": timedelta(minutes=1),
    "min": timedelta(minutes=1),
    "minute": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "hour": timedelta(hours=1),
    "d": timedelta(days=1),
    "day": timedelta(days=1),
}


def parse_timeframe(timeframe: str) -> timedelta:
    """Parse '1Min', '5m', '1Hour', '1D' style timeframes."""
    match = _TIMEFRAME_RE.match(timeframe.strip())
    if not match:
        raise ValueError(f"Unsupported timeframe: {timeframe}")
    count, unit = match.groups()
    return int(count) * _TIMEFRAME_UNITS[unit.lower()]


class SimulatedVenueAdapter(BaseVenueAdapter):
    """Paper venue that fills orders against simulated quotes.

    Market orders and marketable limit orders fill immediately; everything
    else rests as OPEN until cancelled. Fills emit order_update, trade and
    position_update events.

    Example:
        venue = SimulatedVenueAdapter(VenueType.ALPACA)
        await venue.connect()
        order = await venue.submit_order(OrderRequest("AAPL", OrderSide.BUY, 10))
    """

    def __init__(
        self,
        venue_type: VenueType = VenueType.ALPACA,
        config: Optional[VenueConfig] = None,
        capabilities: Optional[VenueCapabilities] = None,
        starting_cash: float = 100000.0,
    ):
        super().__init__(config)
        self._venue_type = venue_type
        self._capabilities = capabilities or VENUE_CAPABILITIES.get(venue_type, VenueCapabilities())
        self._cash = starting_cash
        self._realized: dict[str, float] = {}
        self._holdings: dict[str, tuple[float, float]] = {}  # symbol -> (signed qty, avg price)
        self._orders: dict[str, Order] = {}
        self._trades: list[Trade] = []
        self._subscriptions: set[str] = set()
        self._prices = dict(BASE_PRICES)

    @property
    def name(self) -> str:
        return f"Simulated {self._venue_type.value}"

    @property
    def venue_type(self) -> VenueType:
        return self._venue_type

    @property
    def capabilities(self) -> VenueCapabilities:
        return self._capabilities

    @property
    def subscriptions(self) -> set[str]:
        return set(self._subscriptions)

    def set_price(self, symbol: str, price: float) -> None:
        """Move the simulated market for a symbol."""
        self._prices[symbol] = price

    # -- Lifecycle -----------------------------------------------------------

    async def connect(self) -> None:
        self._set_connected(True)
        logger.info(f"Connected to {self.name} ({'paper' if self.paper else 'live'})")

    async def disconnect(self) -> None:
        self._subscriptions.clear()
        self._set_connected(False, "Client disconnect")

    def _require_session(self) -> None:
        if not self._connected:
            raise ConnectionError(f"{self.name} is not connected")

    # -- Account -------------------------------------------------------------

    async def get_account(self) -> Account:
        self._require_session()
        positions = self._snapshot_positions()
        market_value = sum(p.market_value for p in positions)
        equity = self._cash + market_value
        margin = self._capabilities.supports_margin
        if self.paper:
            account_type = AccountType.PAPER
        else:
            account_type = AccountType.MARGIN if margin else AccountType.CASH
        return Account(
            account_id=self.config.account_id or f"{self._venue_type.value}-sim",
            balance=self._cash,
            equity=equity,
            buying_power=self._cash * (2 if margin else 1),
            cash=self._cash,
            portfolio_value=equity,
            margin_used=0.0,
            margin_available=self._cash if margin else 0.0,
            account_type=account_type,
        )

    async def get_positions(self) -> list[Position]:
        self._require_session()
        return self._snapshot_positions()

    def _snapshot_positions(self) -> list[Position]:
        positions = []
        for symbol, (qty, avg) in self._holdings.items():
            price = self._price(symbol)
            positions.append(Position(
                symbol=symbol,
                side=PositionSide.LONG if qty > 0 else PositionSide.SHORT,
                quantity=abs(qty),
                entry_price=avg,
                current_price=price,
                unrealized_pnl=(price - avg) * qty,
                realized_pnl=self._realized.get(symbol, 0.0),
                market_value=price * qty,
            ))
        return positions

    # -- Orders --------------------------------------------------------------

    async def submit_order(self, request: OrderRequest) -> Order:
        self._require_session()
        order = Order(
            client_order_id=request.client_order_id,
            symbol=request.symbol,
            side=request.side,
            order_type=request.order_type,
            quantity=request.quantity,
            price=request.price,
            stop_price=request.stop_price,
            time_in_force=request.time_in_force,
        )
        self._orders[order.order_id] = order

        if request.quantity <= 0 or request.order_type not in self._capabilities.order_types:
            order.status = OrderStatus.REJECTED
            self._emit(VenueEvent.ORDER_UPDATE, order)
            return order

        quote = await self.get_quote(request.symbol)
        fill_price = quote.ask if request.side == OrderSide.BUY else quote.bid

        if request.order_type == OrderType.MARKET:
            self._fill(order, fill_price)
        elif request.order_type == OrderType.LIMIT and request.price is not None and (
            (request.side == OrderSide.BUY and request.price >= fill_price)
            or (request.side == OrderSide.SELL and request.price <= fill_price)
        ):
            self._fill(order, fill_price)
        else:
            order.status = OrderStatus.OPEN
            self._emit(VenueEvent.ORDER_UPDATE, order)
        return order

    def _fill(self, order: Order, price: float) -> None:
        now = datetime.now(timezone.utc)
        order.status = OrderStatus.FILLED
        order.filled_quantity = order.quantity
        order.average_filled_price = price
        order.filled_at = now

        signed = order.quantity if order.side == OrderSide.BUY else -order.quantity
        self._cash -= signed * price
        self._apply_fill(order.symbol, signed, price)

        trade = Trade(
            order_id=order.order_id,
            symbol=order.symbol,
            side=order.side,
            quantity=order.quantity,
            price=price,
            timestamp=now,
        )
        self._trades.append(trade)

        self._emit(VenueEvent.ORDER_UPDATE, order)
        self._emit(VenueEvent.TRADE, trade)
        for pos in self._snapshot_positions():
            if pos.symbol == order.symbol:
                self._emit(VenueEvent.POSITION_UPDATE, pos)
                break

    def _apply_fill(self, symbol: str, signed_qty: float, price: float) -> None:
        qty, avg = self._holdings.get(symbol, (0.0, 0.0))
        new_qty = qty + signed_qty
        if qty == 0 or (qty > 0) == (signed_qty > 0):
            # Opening or adding
            avg = (qty * avg + signed_qty * price) / new_qty
        else:
            closed = min(abs(qty), abs(signed_qty))
            direction = 1 if qty > 0 else -1
            self._realized[symbol] = self._realized.get(symbol, 0.0) + (price - avg) * closed * direction
            if new_qty != 0 and (new_qty > 0) != (qty > 0):
                # Flipped through flat
                avg = price
        if math.isclose(new_qty, 0.0, abs_tol=1e-12):
            self._holdings.pop(symbol, None)
        else:
            self._holdings[symbol] = (new_qty, avg)

    async def cancel_order(self, order_id: str) -> bool:
        self._require_session()
        order = self._orders.get(order_id)
        if order is None or order.status != OrderStatus.OPEN:
            return False
        order.status = OrderStatus.CANCELLED
        order.cancelled_at = datetime.now(timezone.utc)
        self._emit(VenueEvent.ORDER_UPDATE, order)
        return True

    async def get_order(self, order_id: str) -> Optional[Order]:
        self._require_session()
        return self._orders.get(order_id)

    async def close_position(self, symbol: str, quantity: Optional[float] = None) -> Order:
        self._require_session()
        if symbol not in self._holdings:
            raise ValueError(f"No open position for {symbol}")
        held, _ = self._holdings[symbol]
        qty = min(quantity, abs(held)) if quantity else abs(held)
        side = OrderSide.SELL if held > 0 else OrderSide.BUY
        return await self.submit_order(OrderRequest(symbol=symbol, side=side, quantity=qty))

    async def get_trades(
        self,
        symbol: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Trade]:
        self._require_session()
        return [
            t for t in self._trades
            if (symbol is None or t.symbol == symbol)
            and (start is None or t.timestamp >= start)
            and (end is None or t.timestamp <= end)
        ]

    # -- Market data ---------------------------------------------------------

    def _price(self, symbol: str) -> float:
        return self._prices.get(symbol, 100.0)

    async def get_quote(self, symbol: str) -> Quote:
        self._require_session()
        price = self._price(symbol)
        half_spread = price * SPREAD_PCT / 2
        return Quote(
            symbol=symbol,
            bid=price - half_spread,
            ask=price + half_spread,
            bid_size=100,
            ask_size=100,
        )

    async def get_bars(
        self,
        symbol: str,
        timeframe: str,
        start: datetime,
        end: datetime,
    ) -> list[Bar]:
        self._require_session()
        step = parse_timeframe(timeframe)
        base = self._price(symbol)
        bars = []
        ts = start
        i = 0
        while ts <= end and i < MAX_BARS:
            open_ = base * (1 + 0.01 * math.sin(i / 5))
            close = base * (1 + 0.01 * math.sin((i + 1) / 5))
            bars.append(Bar(
                symbol=symbol,
                open=open_,
                high=max(open_, close) * 1.002,
                low=min(open_, close) * 0.998,
                close=close,
                volume=1000.0 + 10 * i,
                timestamp=ts,
            ))
            ts += step
            i += 1
        return bars

    async def subscribe_quotes(self, symbols: list[str]) -> None:
        self._require_session()
        if not self._capabilities.supports_streaming:
            raise NotImplementedError(f"{self.name} does not support quote streaming")
        self._subscriptions.update(symbols)
        for symbol in symbols:
            self._emit(VenueEvent.QUOTE, await self.get_quote(symbol))
