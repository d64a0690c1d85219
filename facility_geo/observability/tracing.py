"""Run context and timing spans for store and geocoder calls."""
from __future__ import annotations

import contextlib
import time
from typing import Iterator

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars


def _logger():
    return structlog.get_logger("facility_geo.trace")


def set_context(*, run_id: str, mode: str) -> None:
    bind_contextvars(run_id=run_id, mode=mode)
    _logger().debug("trace_context", run_id=run_id, mode=mode)


def clear_context() -> None:
    clear_contextvars()


@contextlib.contextmanager
def span(name: str, **fields: object) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        _logger().debug("trace_span", span=name, elapsed_ms=elapsed_ms, **fields)


def log_retry(attempt: int, *, provider: str, reason: str) -> None:
    _logger().warning("geocode_retry", attempt=attempt, provider=provider, reason=reason)
