"""
Timing helpers for observability.

Responsibilities:
- Measure durations using monotonic time (immune to clock changes)
- Emit each measurement as one METRIC_TIMER event via observability.logger
- Never aggregate: one metric = one log event

Per-frame analysis is NOT timed here (it would emit one line per frame);
use it for rare operations such as capture reconfiguration.
"""

from __future__ import annotations

import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event, now_ms


# timer_id -> (metric_name, start_time_ns)
_active_timers: dict[str, tuple[str, int]] = {}


def start_timer(name: str) -> str:
    """
    Start a monotonic timer.

    Returns:
        Opaque timer id for stop_timer(). Prefer timed().
    """
    timer_id = f"timer_{uuid.uuid4().hex[:12]}"
    _active_timers[timer_id] = (name, time.monotonic_ns())
    return timer_id


def stop_timer(
    timer_id: str,
    *,
    details: dict[str, Any] | None = None,
) -> float | None:
    """
    Stop a timer and emit its metric event.

    Returns:
        duration in milliseconds if the timer existed, else None
    """
    entry = _active_timers.pop(timer_id, None)
    if entry is None:
        return None

    name, start_ns = entry
    duration_ms = (time.monotonic_ns() - start_ns) / 1_000_000

    log_event({
        "ts_ms": now_ms(),
        "event_type": "METRIC_TIMER",
        "metric": name,
        "value_ms": round(duration_ms, 3),
        "details": details or {},
    })

    return duration_ms


@contextmanager
def timed(name: str, *, details: dict[str, Any] | None = None) -> Iterator[None]:
    """
    Time the enclosed block.

    The metric is emitted exactly once, also when the block raises.

    Usage:
        with timed("capture_reconfigure", details={"device_id": 5}):
            await controller.reconfigure(...)
    """
    timer_id = start_timer(name)
    try:
        yield
    finally:
        stop_timer(timer_id, details=details)
