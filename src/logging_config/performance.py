"""Venue Call Timing.

Every adapter call runs inside a CallTimer. The timer logs the call at
DEBUG, warns when it crosses the slow-call threshold, and optionally feeds a
per-venue CallStats so latency shows up in the health report.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from src.logging_config.config import get_active_config

logger = logging.getLogger(__name__)


@dataclass
class CallStats:
    """Running latency counters for one venue's adapter calls."""
    calls: int = 0
    failures: int = 0
    slow_calls: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0
    last_ms: float = 0.0

    @property
    def avg_ms(self) -> float:
        return self.total_ms / self.calls if self.calls else 0.0

    def record(self, duration_ms: float, failed: bool = False, slow: bool = False) -> None:
        self.calls += 1
        self.total_ms += duration_ms
        self.last_ms = duration_ms
        self.max_ms = max(self.max_ms, duration_ms)
        if failed:
            self.failures += 1
        if slow:
            self.slow_calls += 1

    def to_dict(self) -> dict:
        return {
            "calls": self.calls,
            "failures": self.failures,
            "slow_calls": self.slow_calls,
            "avg_ms": round(self.avg_ms, 2),
            "max_ms": round(self.max_ms, 2),
            "last_ms": round(self.last_ms, 2),
        }


class CallTimer:
    """Context manager timing one venue call.

    Example:
        stats = CallStats()
        with CallTimer("alpaca-main.get_account", stats=stats) as timer:
            account = await adapter.get_account()
        print(f"took {timer.duration_ms:.1f}ms, avg {stats.avg_ms:.1f}ms")
    """

    def __init__(
        self,
        operation_name: str,
        threshold_ms: Optional[float] = None,
        stats: Optional[CallStats] = None,
    ):
        self.operation_name = operation_name
        if threshold_ms is None:
            threshold_ms = get_active_config().slow_call_threshold_ms
        self.threshold_ms = threshold_ms
        self.stats = stats
        self.duration_ms: float = 0.0
        self._started: float = 0.0

    @property
    def is_slow(self) -> bool:
        return self.duration_ms >= self.threshold_ms

    def __enter__(self) -> "CallTimer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.duration_ms = (time.perf_counter() - self._started) * 1000
        failed = exc_type is not None
        if self.stats is not None:
            self.stats.record(self.duration_ms, failed=failed, slow=self.is_slow)

        extra = {"duration_ms": round(self.duration_ms, 2)}
        if failed:
            # the caller decides whether the failure deserves more than debug
            logger.debug(
                f"{self.operation_name} raised {exc_type.__name__} after {self.duration_ms:.1f}ms",
                extra=extra,
            )
        elif self.is_slow:
            logger.warning(
                f"Slow venue call: {self.operation_name} took {self.duration_ms:.1f}ms "
                f"(threshold {self.threshold_ms:.0f}ms)",
                extra=extra,
            )
        else:
            logger.debug(f"{self.operation_name} ok in {self.duration_ms:.1f}ms", extra=extra)
