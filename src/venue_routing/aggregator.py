"""Portfolio Aggregator -- unified portfolio view across all venues.

Every read fans out to the connected venues concurrently and re-fetches;
nothing is cached. A venue that fails or times out contributes nothing and
never aborts the aggregate.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
import logging

from src.venue_routing.connection import ConnectionRegistry
from src.venue_routing.fanout import fan_out
from src.venues.models import Account, Position, Trade

logger = logging.getLogger(__name__)


def _as_utc(ts: datetime) -> datetime:
    """Naive timestamps are taken to be UTC."""
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts


# =====================================================================
# Dataclasses
# =====================================================================


@dataclass
class VenuePosition:
    """A position tagged with the venue holding it."""
    venue_id: str
    position: Position

    @property
    def key(self) -> str:
        return f"{self.venue_id}:{self.position.symbol}"

    def to_dict(self) -> dict:
        return {"venue_id": self.venue_id, **self.position.to_dict()}


@dataclass
class VenueTrade:
    """A trade tagged with the venue that executed it."""
    venue_id: str
    trade: Trade

    def to_dict(self) -> dict:
        return {"venue_id": self.venue_id, **self.trade.to_dict()}


@dataclass
class AggregatedPortfolio:
    """Unified portfolio view across all connected venues.

    Attributes:
        total_equity: Sum of venue equity.
        total_cash: Sum of venue cash.
        total_buying_power: Sum of venue buying power.
        total_margin_used: Sum of venue margin in use.
        positions: ``"<venue_id>:<symbol>"`` -> position.
        by_venue: Venue id -> raw account snapshot.
        failed_venues: Venues skipped because their query failed.
        as_of: When the snapshot was taken.
    """
    total_equity: float = 0.0
    total_cash: float = 0.0
    total_buying_power: float = 0.0
    total_margin_used: float = 0.0
    positions: dict[str, Position] = field(default_factory=dict)
    by_venue: dict[str, Account] = field(default_factory=dict)
    failed_venues: list[str] = field(default_factory=list)
    as_of: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "total_equity": round(self.total_equity, 2),
            "total_cash": round(self.total_cash, 2),
            "total_buying_power": round(self.total_buying_power, 2),
            "total_margin_used": round(self.total_margin_used, 2),
            "position_count": len(self.positions),
            "positions": {k: p.to_dict() for k, p in self.positions.items()},
            "by_venue": {k: a.to_dict() for k, a in self.by_venue.items()},
            "failed_venues": self.failed_venues,
            "as_of": self.as_of.isoformat(),
        }


# =====================================================================
# Portfolio Aggregator
# =====================================================================


async def _account_and_positions(adapter: Any) -> tuple[Account, list[Position]]:
    return await adapter.get_account(), await adapter.get_positions()


class PortfolioAggregator:
    """Aggregates accounts, positions, and trades across connected venues.

    Example:
        aggregator = PortfolioAggregator(registry)
        portfolio = await aggregator.get_aggregated_portfolio()
        print(portfolio.total_equity, list(portfolio.positions))
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    async def get_aggregated_portfolio(self) -> AggregatedPortfolio:
        outcome = await fan_out(self._registry, "get_portfolio", _account_and_positions)

        portfolio = AggregatedPortfolio(failed_venues=outcome.failed)
        for venue_id, (account, positions) in outcome.results.items():
            portfolio.total_equity += account.equity
            portfolio.total_cash += account.cash
            portfolio.total_buying_power += account.buying_power
            portfolio.total_margin_used += account.margin_used
            portfolio.by_venue[venue_id] = account
            for pos in positions:
                portfolio.positions[f"{venue_id}:{pos.symbol}"] = pos

        logger.debug(
            f"Aggregated {len(portfolio.by_venue)} venues, "
            f"{len(portfolio.positions)} positions, equity {portfolio.total_equity:.2f}"
        )
        return portfolio

    async def get_all_positions(self) -> list[VenuePosition]:
        outcome = await fan_out(self._registry, "get_positions", lambda a: a.get_positions())
        return [
            VenuePosition(venue_id=venue_id, position=pos)
            for venue_id, positions in outcome.results.items()
            for pos in positions
        ]

    async def get_trade_history(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[VenueTrade]:
        """Merged trades from every venue, newest first."""
        outcome = await fan_out(
            self._registry, "get_trades", lambda a: a.get_trades(None, start, end),
        )
        trades = [
            VenueTrade(venue_id=venue_id, trade=trade)
            for venue_id, venue_trades in outcome.results.items()
            for trade in venue_trades
        ]
        trades.sort(key=lambda t: _as_utc(t.trade.timestamp), reverse=True)
        return trades
