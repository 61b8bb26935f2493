"""Centralized settings for the venue router.

Uses pydantic-settings to load from environment variables (prefixed ROUTER_)
with defaults suitable for local paper trading.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class RouterSettings(BaseSettings):
    """Venue router settings loaded from environment variables."""

    # --- Trading mode ---
    trading_mode: str = "paper"  # anything other than "live" means paper

    # --- Health monitor ---
    heartbeat_interval_seconds: float = 60.0
    heartbeat_failure_threshold: int = 3

    # --- Venue calls ---
    venue_call_timeout_seconds: float = 30.0

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "json"
    service_name: str = "venue-router"

    model_config = {
        "env_prefix": "ROUTER_",
        "env_file": ".env",
        "extra": "ignore",
    }

    @property
    def is_paper(self) -> bool:
        return self.trading_mode.strip().lower() != "live"


@lru_cache
def get_settings() -> RouterSettings:
    """Get cached settings singleton."""
    return RouterSettings()
