"""Health Monitor -- periodic liveness probes for connected venues.

Every interval each connected venue is probed with ``get_account``. A
success resets the venue's failure streak; the streak reaching the threshold
flips the venue to disconnected, which publishes one ``disconnected`` event
with reason "Heartbeat failures".
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
import asyncio
import logging

from src.logging_config import LogContext, bind_operation
from src.venue_routing.connection import ConnectionRegistry, VenueConnection

logger = logging.getLogger(__name__)

HEARTBEAT_FAILURE_REASON = "Heartbeat failures"


@dataclass
class HeartbeatResult:
    """Outcome of probing one venue."""
    venue_id: str
    ok: bool
    consecutive_failures: int = 0
    demoted: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "venue_id": self.venue_id,
            "ok": self.ok,
            "consecutive_failures": self.consecutive_failures,
            "demoted": self.demoted,
            "error": self.error,
        }


class HealthMonitor:
    """Background heartbeat loop over the connection registry.

    The loop never raises: probe errors are recorded against their venue and
    anything unexpected is logged before the next tick.

    Example:
        monitor = HealthMonitor(registry, interval=60.0)
        await monitor.start()
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        interval: float = 60.0,
        failure_threshold: int = 3,
    ) -> None:
        self._registry = registry
        self.interval = interval
        self.failure_threshold = failure_threshold
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._last_check: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_check(self) -> Optional[datetime]:
        return self._last_check

    async def start(self) -> None:
        """Start the heartbeat loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Health monitor started (every {self.interval:.0f}s, threshold {self.failure_threshold})")

    async def stop(self) -> None:
        """Stop the heartbeat loop and wait for it to exit."""
        self._running = False
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Health monitor stopped")

    async def _loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval)
                if self._running:
                    await self.check_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Health check loop error: {e}")

    async def check_once(self) -> list[HeartbeatResult]:
        """Probe every connected venue concurrently."""
        with bind_operation():
            venues = self._registry.connected()
            results = await asyncio.gather(*(self._probe(conn) for conn in venues))
        self._last_check = datetime.now(timezone.utc)
        return list(results)

    async def _probe(self, conn: VenueConnection) -> HeartbeatResult:
        session = conn.session
        error: Optional[Exception] = None
        try:
            await self._registry.invoke(conn, "heartbeat", conn.adapter.get_account)
        except Exception as e:
            error = e

        demoted = await self._registry.record_heartbeat(
            conn, session, error is None, self.failure_threshold, HEARTBEAT_FAILURE_REASON,
        )
        result = HeartbeatResult(
            venue_id=conn.venue_id,
            ok=error is None,
            consecutive_failures=conn.consecutive_failures,
            demoted=demoted,
            error=str(error) if error is not None else None,
        )
        if error is not None:
            with LogContext(venue_id=conn.venue_id):
                logger.warning(
                    f"Heartbeat failed for {conn.venue_id} "
                    f"({conn.consecutive_failures}/{self.failure_threshold}): {error}"
                )
        return result
