"""Logging options for the router process."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["LogLevel"]:
        """Case-insensitive lookup; None for anything unrecognised."""
        return cls.__members__.get((value or "").strip().upper())


class LogFormat(str, Enum):
    JSON = "json"        # one object per line
    CONSOLE = "console"  # colored, for local runs

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["LogFormat"]:
        value = (value or "").strip().lower()
        for fmt in cls:
            if fmt.value == value:
                return fmt
        return None


NOISY_LOGGERS = ("urllib3", "asyncio", "websockets", "httpx")


@dataclass
class LoggingConfig:
    """How the root logger is set up and when venue calls count as slow."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    include_caller: bool = True
    slow_call_threshold_ms: float = 2000.0
    service_name: str = "venue-router"
    quiet_loggers: tuple = NOISY_LOGGERS

    @classmethod
    def from_strings(
        cls,
        level: Optional[str] = None,
        fmt: Optional[str] = None,
        **kwargs,
    ) -> "LoggingConfig":
        """Build from loosely typed values such as settings fields.

        Unrecognised level or format strings fall back to the defaults.
        """
        return cls(
            level=LogLevel.parse(level) or LogLevel.INFO,
            format=LogFormat.parse(fmt) or LogFormat.JSON,
            **kwargs,
        )


DEFAULT_LOGGING_CONFIG = LoggingConfig()

_active_config = DEFAULT_LOGGING_CONFIG


def get_active_config() -> LoggingConfig:
    """The config most recently applied by ``configure_logging``."""
    return _active_config


def set_active_config(config: LoggingConfig) -> None:
    global _active_config
    _active_config = config
