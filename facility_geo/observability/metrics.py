"""In-process counters for one CLI run, exported as JSON when the run ends."""
from __future__ import annotations

import contextlib
import time
from collections import Counter
from pathlib import Path
from typing import Dict

import orjson
import structlog

LOGGER = structlog.get_logger(__name__)

# Always present in the export, even when a run never touches them.
COUNTERS = (
    "facilities_scanned",
    "geocode_hits",
    "geocode_misses",
    "geocode_failures",
    "enrich_errors",
    "points_written",
    "enrich_skipped",
    "store_failures",
    "report_candidates",
    "report_neighbors",
    "run_duration_ms",
)


class MetricsRegistry:
    """Counters shared by the enrichment pass, the report and the CLI."""

    def __init__(self) -> None:
        self._counters: Counter[str] = Counter(dict.fromkeys(COUNTERS, 0))

    def incr(self, name: str, value: int = 1) -> None:
        self._counters[name] += value

    def snapshot(self) -> Dict[str, int]:
        return dict(self._counters)

    def export(self, directory: Path, *, mode: str, run_id: str) -> Path:
        """Write ``<mode>_<run_id>.json`` under ``directory`` and return its path."""
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{mode}_{run_id}.json"
        payload = {
            "run_id": run_id,
            "mode": mode,
            "counters": self.snapshot(),
            "generated_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        }
        path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
        LOGGER.info("metrics_exported", path=str(path))
        return path


@contextlib.contextmanager
def record_duration(registry: MetricsRegistry, metric_name: str):
    """Add the block's wall time in milliseconds to ``metric_name``."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        registry.incr(metric_name, elapsed_ms)
        LOGGER.info("timer_stop", metric=metric_name, duration_ms=elapsed_ms)
