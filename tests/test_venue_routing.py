"""Tests for the multi-venue routing layer.

Covers the connection registry, routing table, order/data dispatch,
aggregation fan-out, and the two-venue end-to-end scenario.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from src.venue_routing import (
    BrokerManager,
    ConfigurationError,
    DuplicateIdError,
    HEARTBEAT_FAILURE_REASON,
    NoVenueAvailableError,
    RoutingTable,
    VenueNotFoundError,
    VenueState,
    VenueTimeoutError,
    VenueUnavailableError,
)
from src.venues import (
    Account,
    AssetClass,
    OrderRequest,
    OrderSide,
    Position,
    Trade,
    VenueConfig,
    VenueEvent,
    VenueType,
)


STOCK_ONLY = VenueConfig(extra={"asset_classes": ["stock"]})
CRYPTO_ONLY = VenueConfig(extra={"asset_classes": ["crypto"]})


def _order(symbol="AAPL", qty=1):
    return OrderRequest(symbol=symbol, side=OrderSide.BUY, quantity=qty)


def _topics(log, topic, venue_id=None):
    return [e for e in log if e.topic == topic and (venue_id is None or e.venue_id == venue_id)]


# =====================================================================
# Test: Connection Registry
# =====================================================================


class TestRegistration:
    """Registration, duplicate ids, and configuration errors."""

    @pytest.mark.asyncio
    async def test_register_stores_disconnected(self, manager):
        conn = await manager.add_broker("a", VenueType.ALPACA)
        assert conn.state == VenueState.DISCONNECTED
        assert conn.asset_classes == frozenset({AssetClass.STOCK, AssetClass.CRYPTO})
        assert manager.get_broker("a") is conn.adapter

    @pytest.mark.asyncio
    async def test_register_accepts_type_string(self, manager):
        conn = await manager.add_broker("a", "alpaca")
        assert conn.venue_type == VenueType.ALPACA

    @pytest.mark.asyncio
    async def test_duplicate_id_leaves_original(self, manager):
        original = await manager.add_broker("a", VenueType.ALPACA, is_primary=True)
        with pytest.raises(DuplicateIdError, match="already registered"):
            await manager.add_broker("a", VenueType.SNAPTRADE)
        assert manager.registry.get("a") is original
        assert manager.registry.get("a").venue_type == VenueType.ALPACA
        assert len(manager.registry) == 1

    @pytest.mark.asyncio
    async def test_unknown_type_raises_configuration_error(self, manager):
        with pytest.raises(ConfigurationError, match="Unknown venue type"):
            await manager.add_broker("x", "robinhood")
        assert "x" not in manager.registry

    @pytest.mark.asyncio
    async def test_default_factories_validate_config(self):
        manager = BrokerManager()
        with pytest.raises(ConfigurationError, match="account_id"):
            await manager.add_broker("fx", VenueType.OANDA, VenueConfig())
        with pytest.raises(ConfigurationError, match="host and port"):
            await manager.add_broker("mt", VenueType.MT5, VenueConfig(host="10.0.0.5"))
        assert manager.get_status()["total_brokers"] == 0

    @pytest.mark.asyncio
    async def test_failed_registration_releases_lock(self):
        manager = BrokerManager()
        with pytest.raises(ConfigurationError):
            await manager.add_broker("fx", VenueType.OANDA, VenueConfig())
        with pytest.raises(ConfigurationError):
            await manager.add_broker("x", "robinhood")
        assert "fx" not in manager.registry._locks
        assert "x" not in manager.registry._locks
        conn = await manager.add_broker("fx", VenueType.OANDA, VenueConfig(account_id="001"))
        assert conn.venue_type == VenueType.OANDA

    @pytest.mark.asyncio
    async def test_error_carries_status_code(self, manager):
        await manager.add_broker("a", VenueType.ALPACA)
        with pytest.raises(DuplicateIdError) as exc_info:
            await manager.add_broker("a", VenueType.ALPACA)
        assert exc_info.value.status_code == 409
        assert exc_info.value.to_dict()["error"]["code"] == "DUPLICATE_VENUE"

    @pytest.mark.asyncio
    async def test_reregister_after_remove(self, manager):
        await manager.add_broker("a", VenueType.ALPACA)
        assert await manager.remove_broker("a") is True
        conn = await manager.add_broker("a", VenueType.SNAPTRADE)
        assert conn.venue_type == VenueType.SNAPTRADE

    @pytest.mark.asyncio
    async def test_call_timeout_from_config(self, manager):
        conn = await manager.add_broker("a", VenueType.ALPACA, VenueConfig(timeout=2.5))
        assert conn.call_timeout == 2.5
        other = await manager.add_broker("b", VenueType.SNAPTRADE)
        assert other.call_timeout == 1.0


class TestConnectionLifecycle:
    """Connect, disconnect, and remove."""

    @pytest.mark.asyncio
    async def test_connect_publishes_once(self, manager, event_log):
        await manager.add_broker("a", VenueType.ALPACA)
        await manager.connect_broker("a")
        await manager.connect_broker("a")
        assert manager.registry.get("a").is_connected
        assert len(_topics(event_log, "connected", "a")) == 1
        assert manager.get_broker("a").count("connect") == 1

    @pytest.mark.asyncio
    async def test_connect_unknown_venue(self, manager):
        with pytest.raises(VenueNotFoundError):
            await manager.connect_broker("ghost")

    @pytest.mark.asyncio
    async def test_connect_failure_propagates(self, manager):
        await manager.add_broker("a", VenueType.ALPACA)
        manager.get_broker("a").fail("connect", ConnectionError("auth rejected"))
        with pytest.raises(ConnectionError, match="auth rejected"):
            await manager.connect_broker("a")
        assert not manager.registry.get("a").is_connected

    @pytest.mark.asyncio
    async def test_disconnect_idempotent(self, manager, event_log):
        await manager.add_broker("a", VenueType.ALPACA)
        await manager.connect_broker("a")
        await manager.disconnect_broker("a")
        await manager.disconnect_broker("a")
        assert manager.registry.get("a").state == VenueState.DISCONNECTED
        disconnected = _topics(event_log, "disconnected", "a")
        assert len(disconnected) == 1
        assert disconnected[0].payload == {"reason": "Client disconnect"}
        assert manager.get_broker("a").count("disconnect") == 1

    @pytest.mark.asyncio
    async def test_disconnect_failure_still_marks_disconnected(self, manager):
        await manager.add_broker("a", VenueType.ALPACA)
        await manager.connect_broker("a")
        manager.get_broker("a").fail("disconnect")
        with pytest.raises(ConnectionError):
            await manager.disconnect_broker("a")
        assert not manager.registry.get("a").is_connected

    @pytest.mark.asyncio
    async def test_connect_all_counts_successes(self, manager):
        await manager.add_broker("a", VenueType.ALPACA)
        await manager.add_broker("b", VenueType.SNAPTRADE)
        await manager.add_broker("c", VenueType.OANDA, VenueConfig(account_id="001"))
        manager.get_broker("b").fail("connect")
        assert await manager.connect_all() == 2
        assert manager.get_connected_broker_ids() == ["a", "c"]

    @pytest.mark.asyncio
    async def test_connect_all_runs_concurrently(self, manager):
        await manager.add_broker("a", VenueType.ALPACA, VenueConfig(timeout=0.05))
        await manager.add_broker("b", VenueType.SNAPTRADE)
        manager.get_broker("a").hang.add("connect")
        assert await manager.connect_all() == 1
        assert manager.get_connected_broker_ids() == ["b"]

    @pytest.mark.asyncio
    async def test_disconnect_all_continues_past_failures(self, manager):
        await manager.add_broker("a", VenueType.ALPACA)
        await manager.add_broker("b", VenueType.SNAPTRADE)
        await manager.connect_all()
        manager.get_broker("a").fail("disconnect")
        await manager.disconnect_all()
        assert manager.get_connected_broker_ids() == []

    @pytest.mark.asyncio
    async def test_remove_disconnects_first(self, manager, event_log):
        await manager.add_broker("a", VenueType.ALPACA)
        await manager.connect_broker("a")
        adapter = manager.get_broker("a")
        assert await manager.remove_broker("a") is True
        assert adapter.count("disconnect") == 1
        assert manager.get_broker("a") is None
        assert len(_topics(event_log, "disconnected", "a")) == 1

    @pytest.mark.asyncio
    async def test_disconnect_closes_session_of_demoted_venue(self, manager, event_log):
        await manager.add_broker("a", VenueType.ALPACA)
        await manager.connect_broker("a")
        adapter = manager.get_broker("a")
        adapter.fail("get_account", times=3)
        for _ in range(3):
            await manager.health_monitor.check_once()
        assert manager.registry.get("a").state == VenueState.DISCONNECTED
        assert adapter.count("disconnect") == 0

        await manager.disconnect_broker("a")
        await manager.disconnect_broker("a")
        assert adapter.count("disconnect") == 1
        assert len(_topics(event_log, "disconnected", "a")) == 1

    @pytest.mark.asyncio
    async def test_remove_unknown_is_noop(self, manager):
        assert await manager.remove_broker("ghost") is False

    @pytest.mark.asyncio
    async def test_removed_adapter_events_ignored(self, manager, event_log):
        await manager.add_broker("a", VenueType.ALPACA)
        adapter = manager.get_broker("a")
        await manager.remove_broker("a")
        adapter.emit(VenueEvent.TRADE, Trade(symbol="AAPL"))
        assert _topics(event_log, "trade") == []

    @pytest.mark.asyncio
    async def test_status(self, manager):
        await manager.add_broker("a", VenueType.ALPACA, name="Alpaca Main")
        await manager.add_broker("b", VenueType.SNAPTRADE)
        await manager.connect_broker("a")
        status = manager.get_status()
        assert status["connected_brokers"] == 1
        assert status["total_brokers"] == 2
        assert status["brokers"][0] == {
            "id": "a", "name": "Alpaca Main", "type": "alpaca", "connected": True,
        }
        assert status["brokers"][1]["connected"] is False

    @pytest.mark.asyncio
    async def test_adapter_drop_marks_disconnected(self, manager, event_log):
        await manager.add_broker("a", VenueType.ALPACA)
        await manager.connect_broker("a")
        manager.get_broker("a").drop("Socket closed")
        assert not manager.registry.get("a").is_connected
        events = _topics(event_log, "disconnected", "a")
        assert len(events) == 1
        assert events[0].payload == {"reason": "Socket closed"}

    @pytest.mark.asyncio
    async def test_adapter_errors_counted(self, manager, event_log):
        await manager.add_broker("a", VenueType.ALPACA)
        err = RuntimeError("rate limited")
        manager.get_broker("a").emit(VenueEvent.ERROR, err)
        manager.get_broker("a").emit(VenueEvent.ERROR, err)
        assert manager.registry.get("a").error_count == 2
        assert manager.registry.get("a").consecutive_failures == 0
        assert _topics(event_log, "error", "a")[0].payload is err

    @pytest.mark.asyncio
    async def test_paper_flag_pushed_on_connect(self, manager):
        await manager.add_broker("a", VenueType.ALPACA)
        assert manager.get_broker("a").paper is True
        await manager.set_trading_mode("live")
        await manager.connect_broker("a")
        assert manager.get_broker("a").paper_at_connect == [False]


# =====================================================================
# Test: Routing Table
# =====================================================================


class TestRoutingTable:
    """One preference per asset class, updated in place."""

    def test_initialized_for_every_asset_class(self):
        table = RoutingTable()
        assert {p.asset_class for p in table.all()} == set(AssetClass)
        assert all(p.preferred_venue_id is None for p in table.all())

    def test_first_venue_becomes_preferred(self):
        table = RoutingTable()
        table.update_for_venue("a", [AssetClass.STOCK])
        table.update_for_venue("b", [AssetClass.STOCK, AssetClass.CRYPTO])
        assert table.get(AssetClass.STOCK).preferred_venue_id == "a"
        assert table.get(AssetClass.CRYPTO).preferred_venue_id == "b"

    def test_primary_takes_over(self):
        table = RoutingTable()
        table.update_for_venue("a", [AssetClass.STOCK])
        changed = table.update_for_venue("b", [AssetClass.STOCK], is_primary=True)
        assert changed == [AssetClass.STOCK]
        assert table.get(AssetClass.STOCK).preferred_venue_id == "b"
        assert len(table.all()) == len(AssetClass)

    def test_forget_venue(self):
        table = RoutingTable()
        table.update_for_venue("a", [AssetClass.STOCK])
        table.set_preference(AssetClass.CRYPTO, "b", fallback_venue_id="a")
        table.forget_venue("a")
        assert table.get(AssetClass.STOCK).preferred_venue_id is None
        assert table.get(AssetClass.CRYPTO).fallback_venue_id is None
        assert table.get(AssetClass.CRYPTO).preferred_venue_id == "b"

    @pytest.mark.asyncio
    async def test_set_routing_preference_validates_ids(self, manager):
        await manager.add_broker("a", VenueType.ALPACA)
        with pytest.raises(VenueNotFoundError):
            manager.set_routing_preference(AssetClass.STOCK, "ghost")
        pref = manager.set_routing_preference(AssetClass.OPTIONS, "a", split_orders=True)
        assert pref.split_orders is True
        assert manager.get_routing_preferences()["options"]["preferred_venue_id"] == "a"


# =====================================================================
# Test: Order Dispatch
# =====================================================================


class TestOrderDispatch:
    """Venue resolution for orders and single-target calls."""

    @pytest_asyncio.fixture
    async def two_venues(self, manager):
        await manager.add_broker("a", VenueType.ALPACA, STOCK_ONLY, is_primary=True)
        await manager.add_broker("b", VenueType.ALPACA, CRYPTO_ONLY)
        await manager.connect_all()
        return manager

    @pytest.mark.asyncio
    async def test_routes_by_asset_class(self, two_venues):
        routed = await two_venues.submit_order(_order("BTC-USD"), AssetClass.CRYPTO)
        assert routed.venue_id == "b"

    @pytest.mark.asyncio
    async def test_preferred_venue_wins_regardless_of_others(self, manager):
        await manager.add_broker("a", VenueType.ALPACA)
        await manager.add_broker("b", VenueType.ALPACA)
        await manager.add_broker("c", VenueType.SNAPTRADE)
        manager.set_routing_preference(AssetClass.STOCK, "c")
        await manager.connect_all()
        for _ in range(3):
            routed = await manager.submit_order(_order(), AssetClass.STOCK)
            assert routed.venue_id == "c"

    @pytest.mark.asyncio
    async def test_explicit_venue_overrides_table(self, two_venues):
        routed = await two_venues.submit_order(_order(), AssetClass.STOCK, preferred_venue_id="b")
        assert routed.venue_id == "b"
        assert two_venues.get_broker("b").submitted[0].symbol == "AAPL"

    @pytest.mark.asyncio
    async def test_no_asset_class_uses_first_connected(self, two_venues):
        await two_venues.disconnect_broker("a")
        routed = await two_venues.submit_order(_order())
        assert routed.venue_id == "b"

    @pytest.mark.asyncio
    async def test_class_without_preference_falls_through(self, two_venues):
        routed = await two_venues.submit_order(_order("EUR_USD"), AssetClass.FOREX)
        assert routed.venue_id == "a"

    @pytest.mark.asyncio
    async def test_preferred_disconnected_raises(self, two_venues):
        await two_venues.disconnect_broker("a")
        with pytest.raises(NoVenueAvailableError) as exc_info:
            await two_venues.submit_order(_order(), AssetClass.STOCK)
        assert exc_info.value.venue_id == "a"

    @pytest.mark.asyncio
    async def test_fallback_used_when_preferred_down(self, two_venues):
        two_venues.set_routing_preference(AssetClass.STOCK, "a", fallback_venue_id="b")
        await two_venues.disconnect_broker("a")
        routed = await two_venues.submit_order(_order(), AssetClass.STOCK)
        assert routed.venue_id == "b"

    @pytest.mark.asyncio
    async def test_explicit_unknown_venue_raises(self, two_venues):
        with pytest.raises(NoVenueAvailableError):
            await two_venues.submit_order(_order(), preferred_venue_id="ghost")

    @pytest.mark.asyncio
    async def test_nothing_connected_raises(self, manager):
        await manager.add_broker("a", VenueType.ALPACA)
        with pytest.raises(NoVenueAvailableError):
            await manager.submit_order(_order())

    @pytest.mark.asyncio
    async def test_removed_preferred_venue_no_longer_resolves(self, two_venues):
        await two_venues.remove_broker("a")
        routed = await two_venues.submit_order(_order(), AssetClass.STOCK)
        assert routed.venue_id == "b"

    @pytest.mark.asyncio
    async def test_submit_error_propagates_unchanged(self, two_venues):
        two_venues.get_broker("a").fail("submit_order", ValueError("insufficient buying power"))
        with pytest.raises(ValueError, match="insufficient buying power"):
            await two_venues.submit_order(_order(), AssetClass.STOCK)

    @pytest.mark.asyncio
    async def test_submit_timeout(self, manager):
        await manager.add_broker("a", VenueType.ALPACA, VenueConfig(timeout=0.05))
        await manager.connect_broker("a")
        manager.get_broker("a").hang.add("submit_order")
        with pytest.raises(VenueTimeoutError) as exc_info:
            await manager.submit_order(_order())
        assert exc_info.value.status_code == 504

    @pytest.mark.asyncio
    async def test_cancel_requires_connected(self, two_venues):
        assert await two_venues.cancel_order("a", "order-1") is True
        await two_venues.disconnect_broker("a")
        with pytest.raises(VenueUnavailableError):
            await two_venues.cancel_order("a", "order-1")
        with pytest.raises(VenueNotFoundError):
            await two_venues.cancel_order("ghost", "order-1")

    @pytest.mark.asyncio
    async def test_close_position(self, two_venues):
        order = await two_venues.close_position("a", "AAPL", 5)
        assert order.symbol == "AAPL"
        assert order.quantity == 5

    @pytest.mark.asyncio
    async def test_get_account_single_target(self, two_venues):
        account = await two_venues.get_account("a")
        assert account.equity == 100000.0
        await two_venues.disconnect_broker("b")
        with pytest.raises(VenueUnavailableError):
            await two_venues.get_account("b")


class TestMarketData:
    """First-success quote/bar lookup and streaming subscriptions."""

    @pytest_asyncio.fixture
    async def venues(self, manager):
        await manager.add_broker("a", VenueType.ALPACA)
        await manager.add_broker("s", VenueType.SNAPTRADE)
        await manager.connect_all()
        return manager

    @pytest.mark.asyncio
    async def test_quote_first_success(self, venues):
        venues.get_broker("a").fail("get_quote")
        quote = await venues.get_quote("AAPL")
        assert quote.symbol == "AAPL"
        assert venues.get_broker("s").count("get_quote") == 1

    @pytest.mark.asyncio
    async def test_quote_stops_at_first_success(self, venues):
        await venues.get_quote("AAPL")
        assert venues.get_broker("a").count("get_quote") == 1
        assert venues.get_broker("s").count("get_quote") == 0

    @pytest.mark.asyncio
    async def test_quote_surfaces_last_error(self, venues):
        venues.get_broker("a").fail("get_quote", ConnectionError("first"))
        venues.get_broker("s").fail("get_quote", ConnectionError("last"))
        with pytest.raises(ConnectionError, match="last"):
            await venues.get_quote("AAPL")

    @pytest.mark.asyncio
    async def test_explicit_quote_venue_is_exclusive(self, venues):
        venues.get_broker("s").fail("get_quote")
        with pytest.raises(ConnectionError):
            await venues.get_quote("AAPL", venue_id="s")
        assert venues.get_broker("a").count("get_quote") == 0

    @pytest.mark.asyncio
    async def test_explicit_quote_venue_must_be_connected(self, venues):
        await venues.disconnect_broker("s")
        with pytest.raises(VenueUnavailableError):
            await venues.get_quote("AAPL", venue_id="s")

    @pytest.mark.asyncio
    async def test_quote_with_nothing_connected(self, manager):
        with pytest.raises(NoVenueAvailableError):
            await manager.get_quote("AAPL")

    @pytest.mark.asyncio
    async def test_bars(self, venues):
        start = datetime(2024, 1, 2, tzinfo=timezone.utc)
        bars = await venues.get_bars("AAPL", "1Day", start, start + timedelta(days=5))
        assert bars[0].timestamp == start

    @pytest.mark.asyncio
    async def test_subscribe_only_streaming_venues(self, venues):
        subscribed = await venues.subscribe_quotes(["AAPL", "MSFT"])
        assert subscribed == ["a"]
        assert venues.get_broker("a").subscribed == ["AAPL", "MSFT"]
        assert venues.get_broker("s").count("subscribe_quotes") == 0

    @pytest.mark.asyncio
    async def test_subscribe_failure_does_not_block_others(self, manager):
        await manager.add_broker("a", VenueType.ALPACA)
        await manager.add_broker("b", VenueType.ALPACA)
        await manager.connect_all()
        manager.get_broker("a").fail("subscribe_quotes")
        assert await manager.subscribe_quotes(["AAPL"]) == ["b"]


# =====================================================================
# Test: Aggregation
# =====================================================================


class TestAggregation:
    """Fan-out with partial-failure tolerance."""

    @pytest_asyncio.fixture
    async def three_venues(self, manager):
        for vid in ("a", "b", "c"):
            await manager.add_broker(vid, VenueType.ALPACA)
        await manager.connect_all()
        for i, vid in enumerate(("a", "b", "c"), start=1):
            adapter = manager.get_broker(vid)
            adapter.account = Account(
                account_id=vid, equity=1000.0 * i, cash=100.0 * i,
                buying_power=2000.0 * i, margin_used=10.0 * i,
            )
            adapter.positions = [Position(symbol="AAPL", quantity=i)]
        return manager

    @pytest.mark.asyncio
    async def test_totals_are_sums(self, three_venues):
        portfolio = await three_venues.get_aggregated_portfolio()
        assert portfolio.total_equity == pytest.approx(6000.0)
        assert portfolio.total_cash == pytest.approx(600.0)
        assert portfolio.total_buying_power == pytest.approx(12000.0)
        assert portfolio.total_margin_used == pytest.approx(60.0)
        assert set(portfolio.by_venue) == {"a", "b", "c"}

    @pytest.mark.asyncio
    async def test_positions_keyed_by_venue(self, three_venues):
        portfolio = await three_venues.get_aggregated_portfolio()
        assert set(portfolio.positions) == {"a:AAPL", "b:AAPL", "c:AAPL"}
        assert portfolio.positions["c:AAPL"].quantity == 3

    @pytest.mark.asyncio
    async def test_failing_venue_skipped(self, three_venues):
        three_venues.get_broker("b").fail("get_account")
        portfolio = await three_venues.get_aggregated_portfolio()
        assert portfolio.total_equity == pytest.approx(4000.0)
        assert "b" not in portfolio.by_venue
        assert "b:AAPL" not in portfolio.positions
        assert portfolio.failed_venues == ["b"]

    @pytest.mark.asyncio
    async def test_hung_venue_skipped(self, manager):
        await manager.add_broker("fast", VenueType.ALPACA)
        await manager.add_broker("slow", VenueType.ALPACA, VenueConfig(timeout=0.05))
        await manager.connect_all()
        manager.get_broker("slow").hang.add("get_account")
        portfolio = await manager.get_aggregated_portfolio()
        assert list(portfolio.by_venue) == ["fast"]

    @pytest.mark.asyncio
    async def test_disconnected_venues_excluded(self, three_venues):
        await three_venues.disconnect_broker("a")
        portfolio = await three_venues.get_aggregated_portfolio()
        assert portfolio.total_equity == pytest.approx(5000.0)
        assert three_venues.get_broker("a").count("get_account") == 0

    @pytest.mark.asyncio
    async def test_not_cached(self, three_venues):
        await three_venues.get_aggregated_portfolio()
        three_venues.get_broker("a").account.equity = 0.0
        portfolio = await three_venues.get_aggregated_portfolio()
        assert portfolio.total_equity == pytest.approx(5000.0)

    @pytest.mark.asyncio
    async def test_portfolio_to_dict(self, three_venues):
        data = (await three_venues.get_aggregated_portfolio()).to_dict()
        assert data["position_count"] == 3
        assert data["by_venue"]["a"]["equity"] == 1000.0

    @pytest.mark.asyncio
    async def test_all_positions(self, three_venues):
        three_venues.get_broker("c").fail("get_positions")
        positions = await three_venues.get_all_positions()
        assert [p.key for p in positions] == ["a:AAPL", "b:AAPL"]

    @pytest.mark.asyncio
    async def test_trade_history_sorted_descending(self, three_venues):
        base = datetime(2024, 3, 1, tzinfo=timezone.utc)
        three_venues.get_broker("a").trades = [
            Trade(symbol="AAPL", timestamp=base),
            Trade(symbol="AAPL", timestamp=base + timedelta(hours=3)),
        ]
        three_venues.get_broker("b").trades = [Trade(symbol="MSFT", timestamp=base + timedelta(hours=1))]
        three_venues.get_broker("c").fail("get_trades")
        history = await three_venues.get_trade_history()
        assert [(t.venue_id, t.trade.timestamp) for t in history] == [
            ("a", base + timedelta(hours=3)),
            ("b", base + timedelta(hours=1)),
            ("a", base),
        ]

    @pytest.mark.asyncio
    async def test_trade_history_mixes_naive_and_aware_timestamps(self, three_venues):
        base = datetime(2024, 3, 1, tzinfo=timezone.utc)
        three_venues.get_broker("a").trades = [Trade(symbol="AAPL", timestamp=base)]
        three_venues.get_broker("b").trades = [
            Trade(symbol="MSFT", timestamp=datetime(2024, 3, 1, 2, 0)),
        ]
        three_venues.get_broker("c").trades = [
            Trade(symbol="TSLA", timestamp=base + timedelta(hours=1)),
        ]
        history = await three_venues.get_trade_history()
        assert [t.venue_id for t in history] == ["b", "c", "a"]
        assert history[0].trade.timestamp.tzinfo is None

    @pytest.mark.asyncio
    async def test_trade_history_window(self, three_venues):
        base = datetime(2024, 3, 1, tzinfo=timezone.utc)
        three_venues.get_broker("a").trades = [
            Trade(symbol="AAPL", timestamp=base),
            Trade(symbol="AAPL", timestamp=base + timedelta(days=2)),
        ]
        history = await three_venues.get_trade_history(start=base + timedelta(days=1))
        assert len(history) == 1

    @pytest.mark.asyncio
    async def test_close_all_positions_continues_past_failures(self, three_venues):
        three_venues.get_broker("a").fail("close_all_positions")
        results = await three_venues.close_all_positions()
        assert set(results) == {"b", "c"}
        assert results["c"][0].quantity == 3

    @pytest.mark.asyncio
    async def test_fan_out_is_concurrent(self, manager):
        for vid in ("a", "b", "c"):
            await manager.add_broker(vid, VenueType.ALPACA)
        await manager.connect_all()

        async def slow_account():
            await asyncio.sleep(0.2)
            return Account(account_id="x", equity=1.0)

        for vid in ("a", "b", "c"):
            manager.get_broker(vid).get_account = AsyncMock(side_effect=slow_account)

        loop = asyncio.get_running_loop()
        started = loop.time()
        portfolio = await manager.get_aggregated_portfolio()
        assert loop.time() - started < 0.5
        assert portfolio.total_equity == pytest.approx(3.0)


# =====================================================================
# Test: End-to-end scenario
# =====================================================================


class TestTwoVenueScenario:
    """Equities venue A (primary) and crypto venue B."""

    @pytest.mark.asyncio
    async def test_scenario(self, manager, event_log):
        await manager.add_broker("A", VenueType.ALPACA, STOCK_ONLY, is_primary=True)
        await manager.add_broker("B", VenueType.ALPACA, CRYPTO_ONLY)
        assert await manager.connect_all() == 2

        routed = await manager.submit_order(
            OrderRequest(symbol="AAPL", side=OrderSide.BUY, quantity=1), AssetClass.STOCK,
        )
        assert routed.venue_id == "A"

        manager.get_broker("B").fail("get_account", times=None)
        for _ in range(3):
            await manager.health_monitor.check_once()
        # Further probes must not re-emit
        await manager.health_monitor.check_once()

        assert manager.get_status()["connected_brokers"] == 1
        disconnected = _topics(event_log, "disconnected", "B")
        assert len(disconnected) == 1
        assert disconnected[0].payload == {"reason": HEARTBEAT_FAILURE_REASON}
        assert _topics(event_log, "disconnected", "A") == []
