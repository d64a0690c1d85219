"""Enrichment pass: geocode facilities that have no point and store the result."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import structlog
from pymongo.errors import PyMongoError

from facility_geo.errors import GeocoderError, StoreError
from facility_geo.geocode.base import Geocoder
from facility_geo.observability.metrics import MetricsRegistry
from facility_geo.storage.geo_store import GeoStore
from facility_geo.storage.models import POINT_FIELD, Facility

LOGGER = structlog.get_logger(__name__)

RESOLVED = "resolved"
MISSED = "missed"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class EnrichmentSummary:
    """Per-outcome counts for one pass over the collection."""

    scanned: int = 0
    resolved: int = 0
    missed: int = 0
    skipped: int = 0
    failed: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)

    def record(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)

    def as_dict(self) -> Dict[str, object]:
        return {
            "scanned": self.scanned,
            "resolved": self.resolved,
            "missed": self.missed,
            "skipped": self.skipped,
            "failed": self.failed,
            "failures": [{"entity_id": entity_id, "error": error} for entity_id, error in self.failures],
        }


async def enrich_facility(
    facility: Facility,
    *,
    store: GeoStore,
    geocoder: Geocoder,
    metrics: MetricsRegistry,
    summary: EnrichmentSummary,
    timeout: Optional[float] = None,
    point_field: str = POINT_FIELD,
) -> str:
    """Resolve and commit a single facility, returning the outcome name.

    Gateway and store failures are logged and confined to this facility.
    Cancellation is not caught.
    """
    entity_id = str(facility.id)
    if facility.point is not None:
        return SKIPPED

    try:
        coordinate = await asyncio.wait_for(
            geocoder.resolve(
                facility.address or "",
                facility.city or "",
                facility.state or "",
                "" if facility.zip_code is None else str(facility.zip_code),
            ),
            timeout,
        )
    except (GeocoderError, TimeoutError) as exc:
        metrics.incr("geocode_failures")
        summary.failures.append((entity_id, str(exc) or type(exc).__name__))
        LOGGER.error("enrich_failed", entity_id=entity_id, stage="geocode", error=str(exc) or type(exc).__name__)
        return FAILED

    if coordinate is None:
        metrics.incr("geocode_misses")
        LOGGER.info("enrich_miss", entity_id=entity_id, name=facility.name)
        return MISSED
    metrics.incr("geocode_hits")

    try:
        current = await store.get(facility.id)
        if current is None or current.point is not None:
            metrics.incr("enrich_skipped")
            LOGGER.info("enrich_already_resolved", entity_id=entity_id, present=current is not None)
            return SKIPPED
        await store.replace_point(current, coordinate, point_field)
    except (StoreError, PyMongoError) as exc:
        metrics.incr("store_failures")
        summary.failures.append((entity_id, str(exc)))
        LOGGER.error("enrich_failed", entity_id=entity_id, stage="store", error=str(exc))
        return FAILED

    metrics.incr("points_written")
    LOGGER.info(
        "enrich_resolved",
        entity_id=entity_id,
        latitude=coordinate.latitude,
        longitude=coordinate.longitude,
    )
    return RESOLVED


async def run_enrichment(
    store: GeoStore,
    geocoder: Geocoder,
    *,
    concurrency: int = 4,
    entity_timeout: Optional[float] = None,
    metrics: Optional[MetricsRegistry] = None,
    point_field: str = POINT_FIELD,
) -> EnrichmentSummary:
    """Geocode every facility without a point using ``concurrency`` workers.

    The pass is not atomic: stopping it midway leaves a valid partially enriched
    collection and running it again picks up whatever is still missing.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be at least 1")
    metrics = metrics or MetricsRegistry()
    summary = EnrichmentSummary()
    queue: asyncio.Queue[Optional[Facility]] = asyncio.Queue()

    async def worker() -> None:
        while True:
            facility = await queue.get()
            try:
                if facility is None:
                    return
                try:
                    outcome = await enrich_facility(
                        facility,
                        store=store,
                        geocoder=geocoder,
                        metrics=metrics,
                        summary=summary,
                        timeout=entity_timeout,
                        point_field=point_field,
                    )
                except Exception as exc:
                    # confined to this facility like gateway and store failures
                    entity_id = str(facility.id)
                    metrics.incr("enrich_errors")
                    summary.failures.append((entity_id, f"{type(exc).__name__}: {exc}"))
                    LOGGER.exception("enrich_failed", entity_id=entity_id, stage="unexpected")
                    outcome = FAILED
                summary.record(outcome)
            finally:
                queue.task_done()

    async def visit(facility: Facility) -> None:
        await queue.put(facility)

    workers = [asyncio.create_task(worker()) for _ in range(concurrency)]
    try:
        summary.scanned = await store.for_each_missing_point(visit, point_field)
        metrics.incr("facilities_scanned", summary.scanned)
        for _ in workers:
            await queue.put(None)
        await asyncio.gather(*workers)
    except BaseException:
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        raise

    LOGGER.info("enrich_complete", **{key: value for key, value in summary.as_dict().items() if key != "failures"})
    return summary
