"""Log Context Management.

Binds an operation id and the venue being served to every log line through
contextvars. Each asyncio task gets its own copy of the context, so binding a
venue inside one branch of a fan-out never leaks into its siblings.
"""

import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import Any, Optional


_operation_id_var: ContextVar[str] = ContextVar("operation_id", default="")
_venue_id_var: ContextVar[str] = ContextVar("venue_id", default="")
_extra_context_var: ContextVar[dict] = ContextVar("extra_context", default={})


def generate_operation_id() -> str:
    """Generate a short unique operation ID."""
    return uuid.uuid4().hex[:12]


def get_operation_id() -> str:
    return _operation_id_var.get()


def get_venue_id() -> str:
    return _venue_id_var.get()


def get_context_dict() -> dict[str, Any]:
    """Get all bound context values for log enrichment."""
    ctx = {}
    op_id = _operation_id_var.get()
    if op_id:
        ctx["operation_id"] = op_id
    venue_id = _venue_id_var.get()
    if venue_id:
        ctx["venue_id"] = venue_id
    extra = _extra_context_var.get()
    if extra:
        ctx.update(extra)
    return ctx


@dataclass
class LogContext:
    """Context manager binding operation and venue ids to log entries.

    Values left empty inherit whatever the enclosing context bound. Exiting
    restores the previous values.

    Example:
        with LogContext(venue_id="alpaca-main"):
            logger.warning("heartbeat failed")  # carries venue_id
    """

    operation_id: str = ""
    venue_id: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    _tokens: list[tuple[ContextVar, Token]] = field(default_factory=list, repr=False)

    def __enter__(self) -> "LogContext":
        if self.operation_id:
            self._tokens.append((_operation_id_var, _operation_id_var.set(self.operation_id)))
        if self.venue_id:
            self._tokens.append((_venue_id_var, _venue_id_var.set(self.venue_id)))
        if self.extra:
            merged = {**_extra_context_var.get(), **self.extra}
            self._tokens.append((_extra_context_var, _extra_context_var.set(merged)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()


def bind_operation(operation_id: Optional[str] = None) -> LogContext:
    """Shortcut for a LogContext carrying a fresh operation id."""
    return LogContext(operation_id=operation_id or generate_operation_id())
