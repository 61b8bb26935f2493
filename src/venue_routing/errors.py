"""Errors raised by the routing layer (defined alongside the venue contract)."""

from src.venues.errors import (
    ConfigurationError,
    DuplicateIdError,
    ERROR_STATUS_MAP,
    ErrorCode,
    NoVenueAvailableError,
    RoutingError,
    VenueNotFoundError,
    VenueTimeoutError,
    VenueUnavailableError,
)

__all__ = [
    "ConfigurationError",
    "DuplicateIdError",
    "ERROR_STATUS_MAP",
    "ErrorCode",
    "NoVenueAvailableError",
    "RoutingError",
    "VenueNotFoundError",
    "VenueTimeoutError",
    "VenueUnavailableError",
]
