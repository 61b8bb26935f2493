"""Structured Logging.

JSON or console log output, with operation and venue ids bound through
contextvars so fan-out logs can be traced back to the venue that produced
them.
"""

from src.logging_config.config import LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import (
    LogContext,
    bind_operation,
    generate_operation_id,
    get_context_dict,
)
from src.logging_config.performance import CallStats, CallTimer
from src.logging_config.setup import configure_logging, get_logger

__all__ = [
    "CallStats",
    "CallTimer",
    "LogContext",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "bind_operation",
    "configure_logging",
    "generate_operation_id",
    "get_context_dict",
    "get_logger",
]
