"""Mapbox forward geocoding (``mapbox.places`` endpoint)."""
from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
import structlog

from facility_geo.errors import ConfigurationError
from facility_geo.geocode.base import HttpGeocoder, format_query
from facility_geo.settings import GeocoderSettings
from facility_geo.storage.models import Coordinate

LOGGER = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://api.mapbox.com"


def _relevance(feature: Dict[str, Any]) -> float:
    try:
        return float(feature.get("relevance") or 0.0)
    except (TypeError, ValueError):
        return 0.0


def _best_feature(features: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    # max() keeps the first of equally relevant features, i.e. Mapbox's own ranking
    candidates = [feature for feature in features if isinstance(feature, dict)]
    if not candidates:
        return None
    return max(candidates, key=_relevance)


def parse_features(payload: Dict[str, Any]) -> Optional[Coordinate]:
    """Pick the most relevant feature of a FeatureCollection and read its point."""
    if not isinstance(payload, dict):
        return None
    features = payload.get("features")
    feature = _best_feature(features if isinstance(features, list) else [])
    if feature is None:
        return None
    coordinates = (feature.get("geometry") or {}).get("coordinates") or feature.get("center") or []
    if len(coordinates) < 2:
        return None
    try:
        longitude, latitude = float(coordinates[0]), float(coordinates[1])
    except (TypeError, ValueError):
        return None
    return Coordinate(latitude=latitude, longitude=longitude)


class MapboxGeocoder(HttpGeocoder):
    """Gateway backed by the Mapbox geocoding v5 API."""

    provider = "mapbox"

    def __init__(self, settings: GeocoderSettings, *, client: Optional[httpx.AsyncClient] = None) -> None:
        if not settings.api_key:
            raise ConfigurationError("The Mapbox geocoder requires geocoder.api_key (or MAPBOX_ACCESS_TOKEN)")
        super().__init__(settings, client=client)
        self._token = settings.api_key
        self._base_url = (settings.base_url or DEFAULT_BASE_URL).rstrip("/")

    def url_for(self, query: str) -> str:
        return f"{self._base_url}/geocoding/v5/mapbox.places/{quote(query, safe='')}.json"

    async def resolve(self, address: str, city: str, region: str, postal_code: str) -> Optional[Coordinate]:
        query = format_query(address, city, region, postal_code)
        response = await self._get(
            self.url_for(query),
            params={"types": "address", "access_token": self._token, "limit": 1},
        )
        if response is None:
            return None
        try:
            payload = response.json()
        except ValueError:
            LOGGER.warning("geocode_bad_payload", provider=self.provider, query=query)
            return None
        coordinate = parse_features(payload)
        if coordinate is None:
            LOGGER.info("geocode_miss", provider=self.provider, query=query)
        return coordinate
