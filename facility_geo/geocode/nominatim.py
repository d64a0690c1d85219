"""OpenStreetMap Nominatim search, usable without an API key."""
from __future__ import annotations

from typing import Any, List, Optional

import httpx
import structlog

from facility_geo.geocode.base import HttpGeocoder, format_query
from facility_geo.settings import GeocoderSettings
from facility_geo.storage.models import Coordinate

LOGGER = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://nominatim.openstreetmap.org"


def _importance(place: dict) -> float:
    try:
        return float(place.get("importance") or 0.0)
    except (TypeError, ValueError):
        return 0.0


def parse_places(payload: Any) -> Optional[Coordinate]:
    if not isinstance(payload, list):
        return None
    places: List[dict] = [place for place in payload if isinstance(place, dict)]
    if not places:
        return None
    best = max(places, key=_importance)
    try:
        return Coordinate(latitude=float(best["lat"]), longitude=float(best["lon"]))
    except (KeyError, TypeError, ValueError):
        return None


class NominatimGeocoder(HttpGeocoder):
    """Gateway backed by the Nominatim ``/search`` endpoint."""

    provider = "nominatim"

    def __init__(self, settings: GeocoderSettings, *, client: Optional[httpx.AsyncClient] = None) -> None:
        super().__init__(settings, client=client)
        self._base_url = (settings.base_url or DEFAULT_BASE_URL).rstrip("/")

    async def resolve(self, address: str, city: str, region: str, postal_code: str) -> Optional[Coordinate]:
        query = format_query(address, city, region, postal_code)
        params = {"q": query, "format": "jsonv2", "limit": 1}
        response = await self._get(f"{self._base_url}/search", params=params)
        if response is None:
            return None
        try:
            coordinate = parse_places(response.json())
        except ValueError:
            coordinate = None
        if coordinate is None:
            LOGGER.info("geocode_miss", provider=self.provider, query=query)
        return coordinate
