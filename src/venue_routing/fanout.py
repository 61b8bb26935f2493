"""Concurrent fan-out over venues with per-venue failure isolation."""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar
import asyncio
import logging

from src.logging_config import LogContext
from src.venue_routing.connection import ConnectionRegistry, VenueConnection

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class FanOutResult(Generic[T]):
    """Per-venue outcomes of one fan-out, keyed in registration order."""
    results: dict[str, T] = field(default_factory=dict)
    errors: dict[str, Exception] = field(default_factory=dict)

    @property
    def succeeded(self) -> list[str]:
        return list(self.results)

    @property
    def failed(self) -> list[str]:
        return list(self.errors)


async def fan_out(
    registry: ConnectionRegistry,
    operation: str,
    call: Callable[[Any], Awaitable[T]],
    connections: Optional[list[VenueConnection]] = None,
) -> FanOutResult[T]:
    """Run ``call(adapter)`` on every venue concurrently.

    Defaults to all connected venues. Each call runs under its venue's
    timeout; a failing or hung venue is logged and left out of ``results``.
    """
    targets = registry.connected() if connections is None else connections

    async def _one(conn: VenueConnection):
        try:
            return await registry.invoke(conn, operation, call, conn.adapter), None
        except Exception as e:
            with LogContext(venue_id=conn.venue_id):
                logger.warning(f"{operation} failed on {conn.venue_id}: {e}")
            return None, e

    outcomes = await asyncio.gather(*(_one(c) for c in targets))

    result: FanOutResult[T] = FanOutResult()
    for conn, (value, error) in zip(targets, outcomes):
        if error is None:
            result.results[conn.venue_id] = value
        else:
            result.errors[conn.venue_id] = error
    return result
