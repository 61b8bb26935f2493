"""Logging Setup.

``configure_logging`` installs a single stdout handler on the root logger.
JSON lines in production, colored console lines when running locally.
Both formatters append the bound operation/venue context.
"""

import dataclasses
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional

from src.logging_config.config import (
    DEFAULT_LOGGING_CONFIG,
    LogFormat,
    LoggingConfig,
    LogLevel,
    set_active_config,
)
from src.logging_config.context import get_context_dict

LOG_LEVEL_ENV = "ROUTER_LOG_LEVEL"
LOG_FORMAT_ENV = "ROUTER_LOG_FORMAT"

# LogRecord attributes copied into the JSON payload when set via ``extra=``
PASSTHROUGH_ATTRS = ("duration_ms", "extra_data")


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class StructuredFormatter(logging.Formatter):
    """Renders each record as one JSON object.

    Keys: timestamp, level, logger, message, service, caller (optional),
    the bound context (operation_id, venue_id, extras), exception, and any
    passthrough attributes such as duration_ms.
    """

    def __init__(self, service_name: str = "venue-router", include_caller: bool = True):
        super().__init__()
        self.service_name = service_name
        self.include_caller = include_caller

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": _record_time(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }
        if self.include_caller:
            payload["caller"] = {
                "module": record.module,
                "function": record.funcName,
                "line": record.lineno,
            }
        payload.update(get_context_dict())

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, _ = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "traceback": self.formatException(record.exc_info),
            }

        for attr in PASSTHROUGH_ATTRS:
            if hasattr(record, attr):
                payload[attr] = getattr(record, attr)

        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    """``HH:MM:SS.mmm LEVEL logger: message [k=v, ...]`` with ANSI colors."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        stamp = _record_time(record).strftime("%H:%M:%S.%f")[:-3]
        level = f"{record.levelname:8s}"
        if self.use_color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"

        line = f"{stamp} {level} {record.name}: {record.getMessage()}"
        ctx = get_context_dict()
        if ctx:
            line += " [" + ", ".join(f"{k}={v}" for k, v in ctx.items()) + "]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def apply_env_overrides(config: LoggingConfig) -> LoggingConfig:
    """Return ``config`` with ROUTER_LOG_LEVEL / ROUTER_LOG_FORMAT applied.

    Unrecognised values are ignored.
    """
    level = LogLevel.parse(os.environ.get(LOG_LEVEL_ENV))
    if level is not None:
        config = dataclasses.replace(config, level=level)
    fmt = LogFormat.parse(os.environ.get(LOG_FORMAT_ENV))
    if fmt is not None:
        config = dataclasses.replace(config, format=fmt)
    return config


def build_formatter(config: LoggingConfig) -> logging.Formatter:
    if config.format == LogFormat.JSON:
        return StructuredFormatter(
            service_name=config.service_name,
            include_caller=config.include_caller,
        )
    return ConsoleFormatter(use_color=sys.stdout.isatty())


def configure_logging(config: Optional[LoggingConfig] = None) -> LoggingConfig:
    """Set up the root logger. Call once at startup.

    Returns:
        The effective config after environment overrides.
    """
    config = apply_env_overrides(config or DEFAULT_LOGGING_CONFIG)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(build_formatter(config))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(config.level.value)

    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    set_active_config(config)
    return config


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
