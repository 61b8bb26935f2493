"""Routing Error Hierarchy.

Typed exceptions raised by the venue layer and the routing facade. Each one
carries an error code and the HTTP status an API layer should answer with.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(Enum):
    """Standardized error codes."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    DUPLICATE_VENUE = "DUPLICATE_VENUE"
    VENUE_NOT_FOUND = "VENUE_NOT_FOUND"
    VENUE_UNAVAILABLE = "VENUE_UNAVAILABLE"
    NO_VENUE_AVAILABLE = "NO_VENUE_AVAILABLE"
    VENUE_TIMEOUT = "VENUE_TIMEOUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_STATUS_MAP: Dict[ErrorCode, int] = {
    ErrorCode.CONFIGURATION_ERROR: 400,
    ErrorCode.DUPLICATE_VENUE: 409,
    ErrorCode.VENUE_NOT_FOUND: 404,
    ErrorCode.VENUE_UNAVAILABLE: 503,
    ErrorCode.NO_VENUE_AVAILABLE: 503,
    ErrorCode.VENUE_TIMEOUT: 504,
    ErrorCode.INTERNAL_ERROR: 500,
}


class RoutingError(Exception):
    """Base exception for the routing layer.

    Catching this catches every error the layer raises on its own behalf.
    Errors raised by a venue adapter are propagated unchanged and are not
    wrapped in this hierarchy.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = ERROR_STATUS_MAP.get(error_code, 500)
        self.details = details or []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "status": self.status_code,
                "details": self.details,
            }
        }


class ConfigurationError(RoutingError):
    """Raised when a venue cannot be built from the given type and config."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = [{"field": field, "issue": message}] if field else None
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


class DuplicateIdError(RoutingError):
    """Raised when registering a venue id that is already taken."""

    def __init__(self, venue_id: str):
        super().__init__(
            f"Venue '{venue_id}' is already registered",
            ErrorCode.DUPLICATE_VENUE,
            [{"venue_id": venue_id}],
        )
        self.venue_id = venue_id


class VenueNotFoundError(RoutingError):
    """Raised when an operation references an unregistered venue."""

    def __init__(self, venue_id: str):
        super().__init__(
            f"Venue not found: {venue_id}",
            ErrorCode.VENUE_NOT_FOUND,
            [{"venue_id": venue_id}],
        )
        self.venue_id = venue_id


class VenueUnavailableError(RoutingError):
    """Raised when a registered venue is not connected."""

    def __init__(self, venue_id: str):
        super().__init__(
            f"Venue {venue_id} is not connected",
            ErrorCode.VENUE_UNAVAILABLE,
            [{"venue_id": venue_id}],
        )
        self.venue_id = venue_id


class NoVenueAvailableError(RoutingError):
    """Raised when no connected venue can take a request."""

    def __init__(self, message: str = "No connected venue available", venue_id: Optional[str] = None):
        details = [{"venue_id": venue_id}] if venue_id else None
        super().__init__(message, ErrorCode.NO_VENUE_AVAILABLE, details)
        self.venue_id = venue_id


class VenueTimeoutError(RoutingError):
    """Raised when a venue call exceeds its timeout."""

    def __init__(self, venue_id: str, operation: str, timeout: float):
        super().__init__(
            f"Venue {venue_id} timed out after {timeout:.1f}s on {operation}",
            ErrorCode.VENUE_TIMEOUT,
            [{"venue_id": venue_id, "operation": operation, "timeout": timeout}],
        )
        self.venue_id = venue_id
        self.operation = operation
        self.timeout = timeout
