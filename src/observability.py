"""Observability: metrics collection and the fire-and-forget analytics sink."""

import time
from contextlib import contextmanager
from typing import Any, Protocol

import structlog

logger = structlog.get_logger().bind(source="observability")


class Metrics:
    """Simple dict-based metrics collector for counters, timers and gauges."""

    def __init__(self):
        self._counters: dict[str, int] = {}
        self._timers: dict[str, list[float]] = {}
        self._gauges: dict[str, float] = {}

    def counter(self, name: str, value: int = 1):
        """Increment a counter by the given value."""
        self._counters[name] = self._counters.get(name, 0) + value

    def get(self, name: str) -> int:
        return self._counters.get(name, 0)

    def gauge(self, name: str, value: float):
        """Record the latest value of a level such as a score."""
        self._gauges[name] = value

    def read(self, name: str) -> float | None:
        return self._gauges.get(name)

    @contextmanager
    def timer(self, name: str):
        """Context manager to time an operation and store duration."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self._timers.setdefault(name, []).append(time.perf_counter() - start)

    def summary(self) -> dict[str, Any]:
        """Return a summary of all collected metrics."""
        timer_summary = {}
        for name, durations in self._timers.items():
            if durations:
                timer_summary[name] = {
                    "count": len(durations),
                    "total": sum(durations),
                    "avg": sum(durations) / len(durations),
                    "min": min(durations),
                    "max": max(durations),
                }
            else:
                timer_summary[name] = {"count": 0}

        return {
            "counters": dict(self._counters),
            "timers": timer_summary,
            "gauges": dict(self._gauges),
        }

    def reset(self):
        """Clear all metrics."""
        self._counters.clear()
        self._timers.clear()
        self._gauges.clear()


# Module-level singleton
metrics = Metrics()


class AnalyticsSink(Protocol):
    """Fire-and-forget event logging. Implementations must not block."""

    def log_event(self, name: str, **fields: Any) -> None: ...


class StructlogAnalyticsSink:
    """Default sink: emits a structlog event and bumps a counter per event name."""

    def __init__(self, collector: Metrics | None = None):
        self._metrics = collector or metrics

    def log_event(self, name: str, **fields: Any) -> None:
        self._metrics.counter(f"event.{name}")
        logger.info("analytics_event", event_name=name, **fields)


def emit(sink: AnalyticsSink | None, name: str, **fields: Any) -> None:
    """Send an analytics event, never letting a sink failure reach the caller."""
    if sink is None:
        return
    try:
        sink.log_event(name, **fields)
    except Exception as e:
        logger.warning("analytics_sink_failed", event_name=name, error=str(e))


def log_run_summary():
    """Log the current metrics summary via structlog."""
    summary = metrics.summary()
    logger.info("run_summary", **summary)
