"""CLI entry point: python main.py --venues venues.json

The venues file is a JSON list of objects with ``id``, ``type`` and optional
``config``, ``is_primary`` and ``name`` keys, e.g.::

    [
      {"id": "alpaca-main", "type": "alpaca", "is_primary": true,
       "config": {"api_key": "...", "api_secret": "..."}},
      {"id": "oanda-fx", "type": "oanda", "config": {"account_id": "001-..."}}
    ]
"""

import argparse
import asyncio
import dataclasses
import json
import logging
import signal
import sys
from pathlib import Path

from src.logging_config import LogFormat, LoggingConfig, LogLevel, configure_logging
from src.settings import get_settings
from src.venue_routing import BrokerManager, RoutingError
from src.venues import VenueConfig

logger = logging.getLogger(__name__)


def load_venues(path: Path) -> list[dict]:
    """Read venue definitions from a JSON file."""
    entries = json.loads(path.read_text())
    if not isinstance(entries, list):
        raise ValueError(f"{path}: expected a JSON list of venues")
    for entry in entries:
        if "id" not in entry or "type" not in entry:
            raise ValueError(f"{path}: every venue needs 'id' and 'type'")
    return entries


async def register_venues(manager: BrokerManager, entries: list[dict]) -> None:
    for entry in entries:
        await manager.add_broker(
            entry["id"],
            entry["type"],
            VenueConfig.from_dict(entry.get("config", {})),
            is_primary=entry.get("is_primary", False),
            name=entry.get("name"),
        )


async def run(args: argparse.Namespace) -> int:
    manager = BrokerManager.from_settings()
    if args.mode:
        await manager.set_trading_mode(args.mode)

    try:
        await register_venues(manager, load_venues(args.venues))
    except (OSError, ValueError, RoutingError) as e:
        logger.error(f"Failed to load venues: {e}")
        return 1

    connected = await manager.connect_all()
    print(json.dumps({
        "trading_mode": manager.get_trading_mode_info(),
        "status": manager.get_status(),
        "routing": manager.get_routing_preferences(),
    }, indent=2))

    if args.status_only:
        await manager.shutdown()
        return 0 if connected else 2

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass

    await manager.initialize()
    try:
        await stop.wait()
    finally:
        await manager.shutdown()
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Venue router - aggregate and route orders across trading venues"
    )
    parser.add_argument(
        "--venues", type=Path, required=True,
        help="JSON file listing venues to register"
    )
    parser.add_argument(
        "--mode", choices=["paper", "live"], default=None,
        help="Trading mode (default: ROUTER_TRADING_MODE or paper)"
    )
    parser.add_argument(
        "--status-only", action="store_true",
        help="Connect, print status, and exit"
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Debug logging in console format"
    )
    args = parser.parse_args()

    settings = get_settings()
    config = LoggingConfig.from_strings(
        settings.log_level, settings.log_format, service_name=settings.service_name,
    )
    if args.verbose:
        config = dataclasses.replace(config, level=LogLevel.DEBUG, format=LogFormat.CONSOLE)
    configure_logging(config)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
