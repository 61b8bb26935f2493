"""Trading-Mode Controller -- the global paper/live switch.

A switch disconnects every venue first and never reconnects; reconnecting
under the new mode is an explicit step for the caller.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union
import asyncio
import logging

from src.venue_routing.events import TRADING_MODE_CHANGED, EventHub
from src.venues.errors import ConfigurationError

logger = logging.getLogger(__name__)


class TradingMode(str, Enum):
    """Global trading mode."""
    PAPER = "paper"
    LIVE = "live"

    @classmethod
    def from_setting(cls, value: Optional[str]) -> "TradingMode":
        """Anything other than 'live' means paper."""
        return cls.LIVE if (value or "").strip().lower() == "live" else cls.PAPER


MODE_DESCRIPTIONS: dict[TradingMode, str] = {
    TradingMode.PAPER: "Paper trading mode - simulated trades, no real money at risk",
    TradingMode.LIVE: "LIVE trading mode - REAL money, REAL trades!",
}

LIVE_WARNING = "LIVE MODE: All trades will use real money!"


@dataclass
class ModeChangeResult:
    """Outcome of a mode switch request."""
    success: bool
    message: str
    mode: TradingMode
    previous_mode: TradingMode
    changed: bool = False

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "mode": self.mode.value,
            "previous_mode": self.previous_mode.value,
            "changed": self.changed,
        }


class TradingModeController:
    """Holds the paper/live flag and guards transitions.

    Example:
        controller = TradingModeController(registry.disconnect_all, hub)
        result = await controller.set_mode("live")
        print(result.message)  # "Switched to live mode. Reconnect brokers to apply."
    """

    def __init__(
        self,
        disconnect_all: Callable[[], Awaitable[Any]],
        event_hub: EventHub,
        initial: TradingMode = TradingMode.PAPER,
        connected_count: Callable[[], int] = lambda: 0,
    ) -> None:
        self._disconnect_all = disconnect_all
        self._hub = event_hub
        self._mode = TradingMode(initial)
        self._connected_count = connected_count
        self._lock = asyncio.Lock()

    @property
    def mode(self) -> TradingMode:
        return self._mode

    @property
    def is_paper(self) -> bool:
        return self._mode == TradingMode.PAPER

    async def set_mode(self, mode: Union[TradingMode, str]) -> ModeChangeResult:
        """Switch modes, disconnecting every venue first.

        Raises:
            ConfigurationError: ``mode`` is neither 'paper' nor 'live'.
        """
        try:
            target = TradingMode(mode)
        except ValueError:
            raise ConfigurationError(f"Unknown trading mode: {mode}", field="mode") from None

        async with self._lock:
            previous = self._mode
            if target == previous:
                return ModeChangeResult(
                    success=True,
                    message=f"Already in {target.value} mode",
                    mode=target,
                    previous_mode=previous,
                )

            await self._disconnect_all()
            self._mode = target

            if target == TradingMode.LIVE:
                logger.warning("Switched to LIVE trading mode - real money at risk")
            else:
                logger.info("Switched to paper trading mode")

            self._hub.publish(
                TRADING_MODE_CHANGED,
                "",
                {"mode": target.value, "previous_mode": previous.value},
            )
            return ModeChangeResult(
                success=True,
                message=f"Switched to {target.value} mode. Reconnect brokers to apply.",
                mode=target,
                previous_mode=previous,
                changed=True,
            )

    def info(self) -> dict:
        return {
            "mode": self._mode.value,
            "is_paper": self.is_paper,
            "description": MODE_DESCRIPTIONS[self._mode],
            "warning": None if self.is_paper else LIVE_WARNING,
            "connected_brokers": self._connected_count(),
        }
