"""Venue Data Models.

Accounts, positions, orders, trades, and market data in the shape every
venue adapter reports them. ``to_dict()`` renders enums by value,
datetimes as ISO strings, and rounds money-like fields listed in
``_ROUNDED``.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
import uuid

from src.venues.config import (
    AccountType,
    OrderSide,
    OrderStatus,
    OrderType,
    PositionSide,
    TimeInForce,
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex[:16]


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


class _Record:
    """``to_dict`` for the dataclasses below."""

    _ROUNDED: tuple = ()

    def to_dict(self) -> dict[str, Any]:
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in self._ROUNDED and value is not None:
                value = round(value, 2)
            out[f.name] = _plain(value)
        return out


# =============================================================================
# Accounts & Positions
# =============================================================================

@dataclass
class Account(_Record):
    """Account snapshot; the aggregator sums equity, cash, buying power and margin used."""
    account_id: str
    currency: str = "USD"
    equity: float = 0.0
    cash: float = 0.0
    buying_power: float = 0.0
    margin_used: float = 0.0
    margin_available: float = 0.0
    balance: float = 0.0
    portfolio_value: float = 0.0
    account_type: AccountType = AccountType.CASH


@dataclass
class Position(_Record):
    symbol: str
    side: PositionSide = PositionSide.LONG
    quantity: float = 0.0
    entry_price: float = 0.0
    current_price: float = 0.0
    market_value: float = 0.0
    unrealized_pnl: float = 0.0
    realized_pnl: float = 0.0

    _ROUNDED = ("market_value", "unrealized_pnl", "realized_pnl")


# =============================================================================
# Orders & Fills
# =============================================================================

@dataclass
class OrderRequest(_Record):
    """What the caller wants placed. Every field is handed to the venue as is."""
    symbol: str
    side: OrderSide
    quantity: float
    order_type: OrderType = OrderType.MARKET
    price: Optional[float] = None       # limit
    stop_price: Optional[float] = None  # stop / stop-limit trigger
    time_in_force: TimeInForce = TimeInForce.DAY
    client_order_id: Optional[str] = None
    take_profit: Optional[float] = None
    stop_loss: Optional[float] = None
    extra: dict[str, Any] = field(default_factory=dict)  # venue-specific passthrough


@dataclass
class Order(_Record):
    """An order as the venue tracks it."""
    order_id: str = field(default_factory=_new_id)
    client_order_id: Optional[str] = None
    symbol: str = ""
    side: OrderSide = OrderSide.BUY
    order_type: OrderType = OrderType.MARKET
    quantity: float = 0.0
    filled_quantity: float = 0.0
    price: Optional[float] = None
    stop_price: Optional[float] = None
    average_filled_price: Optional[float] = None
    time_in_force: TimeInForce = TimeInForce.DAY
    status: OrderStatus = OrderStatus.PENDING
    commission: float = 0.0
    submitted_at: datetime = field(default_factory=_utc_now)
    filled_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @property
    def remaining_quantity(self) -> float:
        return max(self.quantity - self.filled_quantity, 0.0)


@dataclass
class Trade(_Record):
    """One fill."""
    trade_id: str = field(default_factory=_new_id)
    order_id: str = ""
    symbol: str = ""
    side: OrderSide = OrderSide.BUY
    quantity: float = 0.0
    price: float = 0.0
    commission: float = 0.0
    timestamp: datetime = field(default_factory=_utc_now)


# =============================================================================
# Market Data
# =============================================================================

@dataclass
class Quote(_Record):
    symbol: str
    bid: float = 0.0
    ask: float = 0.0
    bid_size: float = 0.0
    ask_size: float = 0.0
    timestamp: datetime = field(default_factory=_utc_now)

    @property
    def mid(self) -> float:
        return (self.bid + self.ask) / 2

    @property
    def spread(self) -> float:
        return self.ask - self.bid


@dataclass
class Bar(_Record):
    """OHLCV bar starting at ``timestamp``."""
    symbol: str
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    timestamp: datetime = field(default_factory=_utc_now)
