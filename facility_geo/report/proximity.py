"""Nearby-facility report over a ZIP code range."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import structlog
from pymongo.errors import PyMongoError

from facility_geo.errors import StoreError
from facility_geo.observability.metrics import MetricsRegistry
from facility_geo.storage.geo_store import GeoStore
from facility_geo.storage.models import POINT_FIELD, Facility

LOGGER = structlog.get_logger(__name__)

_LOCATION_RE = re.compile(r"^POINT \((?P<lat>[-+]?\d*\.\d*) (?P<lng>[-+]?\d*\.\d*)\)$")


def parse_location(text: Optional[str]) -> Tuple[float, float]:
    """Read ``POINT (<lat> <lng>)`` text; anything unparseable gives ``(0.0, 0.0)``."""
    if not text:
        return 0.0, 0.0
    match = _LOCATION_RE.match(text.strip())
    if not match:
        return 0.0, 0.0
    try:
        return float(match.group("lat")), float(match.group("lng"))
    except ValueError:
        return 0.0, 0.0


def facility_coordinates(facility: Facility) -> Tuple[float, float]:
    """Stored point first, legacy ``Location`` text otherwise."""
    if facility.point is not None:
        return facility.point.latitude, facility.point.longitude
    return parse_location(facility.location)


def select_candidates(facilities: List[Facility], zip_min: int, zip_max: int) -> List[Facility]:
    """Facilities with ``zip_min <= ZIP < zip_max`` in ascending ZIP order.

    Facilities whose stored ZIP is missing or unreadable are never candidates.
    """
    selected = [
        facility
        for facility in facilities
        if facility.zip_prefix is not None and zip_min <= facility.zip_prefix < zip_max
    ]
    return sorted(selected, key=lambda facility: facility.zip_prefix)


@dataclass
class ReportEntry:
    facility: Facility
    latitude: float
    longitude: float
    neighbors: List[Facility] = field(default_factory=list)

    def lines(self, radius_miles: float) -> List[str]:
        f = self.facility
        zip_code = "" if f.zip_code is None else f.zip_code
        fields = [f.name or "", f.address or "", f.city or "", f.state or "", zip_code, f.location or ""]
        header = ", ".join(str(value) for value in fields) + f", {self.latitude}, {self.longitude}"
        return [header] + [f"    Within {radius_miles} miles: {neighbor.name or ''}" for neighbor in self.neighbors]


@dataclass
class ProximityReport:
    radius_miles: float
    entries: List[ReportEntry] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def completed(self) -> bool:
        return self.error is None

    def lines(self) -> List[str]:
        output: List[str] = []
        for entry in self.entries:
            output.extend(entry.lines(self.radius_miles))
        return output


async def run_proximity_report(
    store: GeoStore,
    *,
    radius_miles: float,
    zip_min: int,
    zip_max: int,
    metrics: Optional[MetricsRegistry] = None,
    point_field: str = POINT_FIELD,
) -> ProximityReport:
    """List, for each candidate facility, the other facilities within the radius.

    The first store failure stops the report; entries gathered up to that point
    are returned together with the error.
    """
    metrics = metrics or MetricsRegistry()
    report = ProximityReport(radius_miles=radius_miles)
    try:
        await store.ensure_geospatial_index(point_field)
        facilities = await store.all()
    except (StoreError, PyMongoError) as exc:
        metrics.incr("store_failures")
        LOGGER.error("report_aborted", stage="scan", error=str(exc))
        report.error = exc
        return report

    candidates = select_candidates(facilities, zip_min, zip_max)
    metrics.incr("report_candidates", len(candidates))
    LOGGER.info("report_candidates", count=len(candidates), zip_min=zip_min, zip_max=zip_max)

    for facility in candidates:
        latitude, longitude = facility_coordinates(facility)
        entry = ReportEntry(facility=facility, latitude=latitude, longitude=longitude)
        try:
            nearby = await store.find_near(point_field, latitude, longitude, radius_miles)
        except (StoreError, PyMongoError) as exc:
            metrics.incr("store_failures")
            LOGGER.error("report_aborted", entity_id=str(facility.id), error=str(exc))
            report.entries.append(entry)
            report.error = exc
            return report
        entry.neighbors = [other for other in nearby if other.id != facility.id]
        metrics.incr("report_neighbors", len(entry.neighbors))
        report.entries.append(entry)
    return report
