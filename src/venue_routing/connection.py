"""Connection Registry -- owns every registered venue and its lifecycle.

Each venue is wrapped in a VenueConnection record carrying its adapter,
state, and health counters. Mutations for one venue id are serialized by a
per-id asyncio.Lock; different venues proceed concurrently. State changes
publish connected/disconnected to the event hub exactly once per transition.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional, Union
import asyncio
import logging

from src.logging_config import CallStats, CallTimer, LogContext
from src.venue_routing.events import EventHub
from src.venues.config import AssetClass, VenueConfig, VenueEvent, VenueType
from src.venues.errors import (
    DuplicateIdError,
    VenueNotFoundError,
    VenueTimeoutError,
    VenueUnavailableError,
)
from src.venues.implementations import VenueFactory, create_adapter, resolve_venue_type
from src.venues.interface import VenueAdapter

logger = logging.getLogger(__name__)

CLIENT_DISCONNECT_REASON = "Client disconnect"


# =====================================================================
# Venue Connection
# =====================================================================


class VenueState(str, Enum):
    """Connection state of a registered venue."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass
class VenueConnection:
    """Registry record for one venue."""
    venue_id: str
    venue_type: VenueType
    name: str
    adapter: Any  # VenueAdapter protocol instance
    is_primary: bool = False
    asset_classes: frozenset = field(default_factory=frozenset)
    call_timeout: float = 30.0
    state: VenueState = VenueState.DISCONNECTED
    last_heartbeat: Optional[datetime] = None
    consecutive_failures: int = 0
    error_count: int = 0
    session: int = 0  # bumped on every connect
    session_open: bool = False  # adapter session not yet closed, even after a demotion
    connected_at: Optional[datetime] = None
    registered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    call_stats: CallStats = field(default_factory=CallStats)

    @property
    def is_connected(self) -> bool:
        return self.state == VenueState.CONNECTED

    @property
    def needs_close(self) -> bool:
        return self.is_connected or self.session_open

    @property
    def supports_streaming(self) -> bool:
        return bool(self.adapter.capabilities.supports_streaming)

    def supports(self, asset_class: AssetClass) -> bool:
        return AssetClass(asset_class) in self.asset_classes

    def to_dict(self) -> dict:
        """Status entry: id, name, type, connected."""
        return {
            "id": self.venue_id,
            "name": self.name,
            "type": self.venue_type.value,
            "connected": self.is_connected,
        }

    def health_dict(self) -> dict:
        return {
            "id": self.venue_id,
            "state": self.state.value,
            "is_primary": self.is_primary,
            "asset_classes": sorted(a.value for a in self.asset_classes),
            "last_heartbeat": self.last_heartbeat.isoformat() if self.last_heartbeat else None,
            "consecutive_failures": self.consecutive_failures,
            "error_count": self.error_count,
            "connected_at": self.connected_at.isoformat() if self.connected_at else None,
            "calls": self.call_stats.to_dict(),
        }


# =====================================================================
# Connection Registry
# =====================================================================


class ConnectionRegistry:
    """Registration, lifecycle, and guarded calls for venue adapters.

    Example:
        registry = ConnectionRegistry(EventHub())
        await registry.register("alpaca-main", "alpaca", VenueConfig(api_key="..."))
        await registry.connect("alpaca-main")
        conn = registry.require_connected("alpaca-main")
        quote = await registry.invoke(conn, "get_quote", conn.adapter.get_quote, "AAPL")
    """

    def __init__(
        self,
        event_hub: EventHub,
        paper_mode: Callable[[], bool] = lambda: True,
        default_timeout: float = 30.0,
        factories: Optional[Mapping[VenueType, VenueFactory]] = None,
    ) -> None:
        self._hub = event_hub
        self._paper_mode = paper_mode
        self._default_timeout = default_timeout
        self._factories = factories
        self._venues: dict[str, VenueConnection] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._venues)

    def __contains__(self, venue_id: str) -> bool:
        return venue_id in self._venues

    def _lock_for(self, venue_id: str) -> asyncio.Lock:
        lock = self._locks.get(venue_id)
        if lock is None:
            lock = self._locks[venue_id] = asyncio.Lock()
        return lock

    # -- Registration --------------------------------------------------

    async def register(
        self,
        venue_id: str,
        venue_type: Union[VenueType, str],
        config: Optional[VenueConfig] = None,
        is_primary: bool = False,
        name: Optional[str] = None,
    ) -> VenueConnection:
        """Build the adapter for a venue type and store it disconnected.

        Raises:
            DuplicateIdError: ``venue_id`` is already registered.
            ConfigurationError: Unknown type or incomplete config.
        """
        resolved = resolve_venue_type(venue_type)
        config = config or VenueConfig()

        lock = self._lock_for(venue_id)
        try:
            async with lock:
                if venue_id in self._venues:
                    raise DuplicateIdError(venue_id)

                adapter = create_adapter(resolved, config, self._factories)
                adapter.paper = self._paper_mode()

                conn = VenueConnection(
                    venue_id=venue_id,
                    venue_type=resolved,
                    name=name or adapter.name,
                    adapter=adapter,
                    is_primary=is_primary,
                    asset_classes=frozenset(AssetClass(a) for a in adapter.capabilities.asset_classes),
                    call_timeout=config.timeout or self._default_timeout,
                )
                self._wire_events(conn)
                self._venues[venue_id] = conn
        except Exception:
            if venue_id not in self._venues and self._locks.get(venue_id) is lock:
                del self._locks[venue_id]
            raise

        logger.info(f"Registered venue {venue_id} ({resolved.value}, primary={is_primary})")
        return conn

    async def remove(self, venue_id: str) -> bool:
        """Disconnect (if connected) and delete a venue. Unknown ids are a no-op."""
        conn = self._venues.get(venue_id)
        if conn is None:
            return False

        async with self._lock_for(venue_id):
            if self._venues.get(venue_id) is not conn:
                return False
            if conn.needs_close:
                try:
                    await self._close_session(conn)
                except Exception as e:
                    logger.error(f"Disconnect of {venue_id} during removal failed: {e}")
            del self._venues[venue_id]

        self._locks.pop(venue_id, None)
        logger.info(f"Venue {venue_id} removed")
        return True

    # -- Lookup ----------------------------------------------------------

    def get(self, venue_id: str) -> Optional[VenueConnection]:
        return self._venues.get(venue_id)

    def require(self, venue_id: str) -> VenueConnection:
        conn = self._venues.get(venue_id)
        if conn is None:
            raise VenueNotFoundError(venue_id)
        return conn

    def require_connected(self, venue_id: str) -> VenueConnection:
        conn = self.require(venue_id)
        if not conn.is_connected:
            raise VenueUnavailableError(venue_id)
        return conn

    def all(self) -> list[VenueConnection]:
        """Every registered venue in registration order."""
        return list(self._venues.values())

    def connected(self) -> list[VenueConnection]:
        """Connected venues in registration order."""
        return [c for c in self._venues.values() if c.is_connected]

    def status(self) -> dict:
        venues = self.all()
        return {
            "connected_brokers": sum(1 for c in venues if c.is_connected),
            "total_brokers": len(venues),
            "brokers": [c.to_dict() for c in venues],
        }

    # -- Lifecycle -------------------------------------------------------

    async def connect(self, venue_id: str) -> VenueConnection:
        """Open a session on one venue. Already-connected venues are left alone."""
        conn = self.require(venue_id)
        async with self._lock_for(venue_id):
            if self._venues.get(venue_id) is not conn:
                raise VenueNotFoundError(venue_id)
            if conn.is_connected:
                return conn
            conn.adapter.paper = self._paper_mode()
            await self.invoke(conn, "connect", conn.adapter.connect)
            self._mark_connected(conn)
        return conn

    async def disconnect(self, venue_id: str) -> None:
        """Close a venue session.

        A venue demoted by heartbeat failures still has its adapter session
        closed here. Disconnecting a closed venue is a no-op.
        """
        conn = self.require(venue_id)
        async with self._lock_for(venue_id):
            if not conn.needs_close:
                return
            await self._close_session(conn)

    async def _close_session(self, conn: VenueConnection) -> None:
        try:
            await self.invoke(conn, "disconnect", conn.adapter.disconnect)
            conn.session_open = False
        finally:
            self._mark_disconnected(conn, CLIENT_DISCONNECT_REASON)

    async def connect_all(self) -> int:
        """Connect every registered venue concurrently.

        Returns:
            Number of venues connected afterwards.
        """
        venues = self.all()
        results = await asyncio.gather(
            *(self.connect(c.venue_id) for c in venues),
            return_exceptions=True,
        )
        for conn, result in zip(venues, results):
            if isinstance(result, Exception):
                with LogContext(venue_id=conn.venue_id):
                    logger.error(f"Failed to connect {conn.venue_id}: {result}")

        connected = len(self.connected())
        logger.info(f"Connected {connected}/{len(self._venues)} venues")
        return connected

    async def disconnect_all(self) -> None:
        """Close every open venue session concurrently, logging failures.

        Includes venues already demoted by the heartbeat monitor.
        """
        venues = [c for c in self._venues.values() if c.needs_close]
        results = await asyncio.gather(
            *(self.disconnect(c.venue_id) for c in venues),
            return_exceptions=True,
        )
        for conn, result in zip(venues, results):
            if isinstance(result, Exception):
                with LogContext(venue_id=conn.venue_id):
                    logger.error(f"Failed to disconnect {conn.venue_id}: {result}")
        if venues:
            logger.info(f"Disconnected {len(venues)} venues")

    # -- Guarded calls ---------------------------------------------------

    async def invoke(
        self,
        conn: VenueConnection,
        operation: str,
        fn: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Await one adapter call under the venue's timeout.

        Raises:
            VenueTimeoutError: The call did not finish within ``call_timeout``.
        """
        timer = CallTimer(f"{conn.venue_id}.{operation}", stats=conn.call_stats)
        with LogContext(venue_id=conn.venue_id), timer:
            try:
                return await asyncio.wait_for(fn(*args, **kwargs), timeout=conn.call_timeout)
            except asyncio.TimeoutError:
                raise VenueTimeoutError(conn.venue_id, operation, conn.call_timeout) from None

    # -- Heartbeats ------------------------------------------------------

    async def record_heartbeat(
        self,
        conn: VenueConnection,
        session: int,
        ok: bool,
        failure_threshold: int,
        reason: str,
    ) -> bool:
        """Apply one probe outcome to a venue's failure streak.

        Outcomes for a session that has since ended are discarded, so one
        failure streak can demote a venue at most once.

        Returns:
            True if this outcome flipped the venue to disconnected.
        """
        async with self._lock_for(conn.venue_id):
            if (
                self._venues.get(conn.venue_id) is not conn
                or not conn.is_connected
                or conn.session != session
            ):
                return False
            if ok:
                conn.consecutive_failures = 0
                conn.last_heartbeat = datetime.now(timezone.utc)
                return False
            conn.consecutive_failures += 1
            if conn.consecutive_failures < failure_threshold:
                return False
            self._mark_disconnected(conn, reason)
            return True

    # -- State transitions -----------------------------------------------

    def _mark_connected(self, conn: VenueConnection) -> None:
        if conn.is_connected:
            return
        now = datetime.now(timezone.utc)
        conn.state = VenueState.CONNECTED
        conn.session += 1
        conn.session_open = True
        conn.consecutive_failures = 0
        conn.connected_at = now
        conn.last_heartbeat = now
        logger.info(f"Venue {conn.venue_id} connected ({'paper' if conn.adapter.paper else 'live'})")
        self._hub.publish(VenueEvent.CONNECTED.value, conn.venue_id, {"name": conn.name})

    def _mark_disconnected(self, conn: VenueConnection, reason: str) -> None:
        if not conn.is_connected:
            return
        conn.state = VenueState.DISCONNECTED
        conn.connected_at = None
        logger.warning(f"Venue {conn.venue_id} disconnected: {reason}")
        self._hub.publish(VenueEvent.DISCONNECTED.value, conn.venue_id, {"reason": reason})

    # -- Adapter events --------------------------------------------------

    def _wire_events(self, conn: VenueConnection) -> None:
        for event in VenueEvent:
            conn.adapter.on(event, self._make_listener(conn, event))

    def _make_listener(self, conn: VenueConnection, event: VenueEvent) -> Callable[..., None]:
        def listener(*args: Any) -> None:
            self._on_adapter_event(conn, event, *args)
        return listener

    def _on_adapter_event(self, conn: VenueConnection, event: VenueEvent, *args: Any) -> None:
        if self._venues.get(conn.venue_id) is not conn:
            return  # stale adapter of a removed venue

        payload = args[0] if args else None
        if event == VenueEvent.CONNECTED:
            self._mark_connected(conn)
        elif event == VenueEvent.DISCONNECTED:
            conn.session_open = False
            self._mark_disconnected(conn, str(payload) if payload else CLIENT_DISCONNECT_REASON)
        elif event == VenueEvent.ERROR:
            conn.error_count += 1
            with LogContext(venue_id=conn.venue_id):
                logger.error(f"Venue {conn.venue_id} reported error: {payload}")
            self._hub.publish(event.value, conn.venue_id, payload)
        else:
            self._hub.publish(event.value, conn.venue_id, payload)
