"""Venue Integrations Configuration.

Enums, capability descriptors, and connection configuration for trading venues.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Optional


# =============================================================================
# Enums
# =============================================================================

class VenueType(str, Enum):
    """Supported venue types."""
    ALPACA = "alpaca"
    OANDA = "oanda"
    SNAPTRADE = "snaptrade"  # Multi-broker aggregator
    INTERACTIVE_BROKERS = "interactive_brokers"  # Reached through SnapTrade
    MT4 = "mt4"
    MT5 = "mt5"


class AssetClass(str, Enum):
    """Market category used as the routing key."""
    STOCK = "stock"
    CRYPTO = "crypto"
    FOREX = "forex"
    FUTURES = "futures"
    OPTIONS = "options"
    COMMODITIES = "commodities"  # XAU/USD, XAG/USD, oil
    CFDS = "cfds"  # Indices
    BONDS = "bonds"


class OrderSide(str, Enum):
    """Order side."""
    BUY = "buy"
    SELL = "sell"


class OrderType(str, Enum):
    """Order type."""
    MARKET = "market"
    LIMIT = "limit"
    STOP = "stop"
    STOP_LIMIT = "stop_limit"
    TRAILING_STOP = "trailing_stop"


class TimeInForce(str, Enum):
    """Time in force for orders."""
    DAY = "day"
    GTC = "gtc"  # Good til canceled
    IOC = "ioc"  # Immediate or cancel
    FOK = "fok"  # Fill or kill


class OrderStatus(str, Enum):
    """Order status."""
    PENDING = "pending"
    OPEN = "open"
    PARTIAL = "partial"
    FILLED = "filled"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class PositionSide(str, Enum):
    """Position direction."""
    LONG = "long"
    SHORT = "short"
    FLAT = "flat"


class AccountType(str, Enum):
    """Venue account type."""
    CASH = "cash"
    MARGIN = "margin"
    PAPER = "paper"


class VenueEvent(str, Enum):
    """Events emitted by every venue adapter."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"
    ORDER_UPDATE = "order_update"
    POSITION_UPDATE = "position_update"
    TRADE = "trade"
    QUOTE = "quote"
    BAR = "bar"


# =============================================================================
# Venue Capabilities
# =============================================================================

@dataclass(frozen=True)
class VenueCapabilities:
    """What a venue can trade and how it delivers data."""
    asset_classes: tuple[AssetClass, ...] = (AssetClass.STOCK,)
    order_types: tuple[OrderType, ...] = (
        OrderType.MARKET, OrderType.LIMIT, OrderType.STOP, OrderType.STOP_LIMIT,
    )
    supports_streaming: bool = False
    supports_paper_trading: bool = True
    supports_margin: bool = False
    supports_fractional: bool = False
    supports_extended_hours: bool = False
    max_positions: Optional[int] = None
    min_order_size: Optional[float] = None


VENUE_CAPABILITIES = {
    VenueType.ALPACA: VenueCapabilities(
        asset_classes=(AssetClass.STOCK, AssetClass.CRYPTO),
        supports_streaming=True,
        supports_margin=True, supports_fractional=True, supports_extended_hours=True,
    ),
    VenueType.OANDA: VenueCapabilities(
        asset_classes=(AssetClass.FOREX, AssetClass.COMMODITIES, AssetClass.CFDS, AssetClass.BONDS),
        order_types=(
            OrderType.MARKET, OrderType.LIMIT, OrderType.STOP,
            OrderType.STOP_LIMIT, OrderType.TRAILING_STOP,
        ),
        supports_streaming=True,
        supports_margin=True, supports_fractional=True,
        supports_extended_hours=True,  # Forex is 24/5
    ),
    VenueType.SNAPTRADE: VenueCapabilities(
        asset_classes=(AssetClass.STOCK, AssetClass.CRYPTO, AssetClass.OPTIONS),
        supports_streaming=False,  # Polling only
        supports_margin=True, supports_fractional=True, supports_extended_hours=True,
    ),
    VenueType.MT4: VenueCapabilities(
        asset_classes=(AssetClass.FOREX, AssetClass.COMMODITIES, AssetClass.CFDS),
        supports_streaming=True,
        supports_margin=True,
    ),
    VenueType.MT5: VenueCapabilities(
        asset_classes=(AssetClass.FOREX, AssetClass.COMMODITIES, AssetClass.CFDS),
        supports_streaming=True,
        supports_margin=True,
    ),
}
VENUE_CAPABILITIES[VenueType.INTERACTIVE_BROKERS] = VENUE_CAPABILITIES[VenueType.SNAPTRADE]


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class VenueConfig:
    """Connection settings handed to a venue adapter factory."""

    # API credentials
    api_key: str = ""
    api_secret: str = ""
    base_url: Optional[str] = None
    account_id: str = ""

    # MT4/MT5 bridge
    host: str = ""
    port: Optional[int] = None
    login: str = ""
    password: str = ""
    server: str = ""

    # Environment
    paper: bool = True

    # Per-call timeout override (seconds)
    timeout: Optional[float] = None

    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VenueConfig":
        """Build a config from a plain dict; unknown keys land in ``extra``."""
        known = {f.name for f in fields(cls)} - {"extra"}
        kwargs = {k: v for k, v in data.items() if k in known}
        extra = dict(data.get("extra") or {})
        extra.update({k: v for k, v in data.items() if k not in known and k != "extra"})
        return cls(extra=extra, **kwargs)
