"""Explicit mapping from configured provider names to geocoder constructors."""
from __future__ import annotations

from typing import Callable, Dict, Optional

import httpx

from facility_geo.errors import ConfigurationError
from facility_geo.geocode.base import Geocoder
from facility_geo.geocode.mapbox import MapboxGeocoder
from facility_geo.geocode.nominatim import NominatimGeocoder
from facility_geo.settings import GeocoderSettings

GeocoderFactory = Callable[..., Geocoder]

GEOCODER_REGISTRY: Dict[str, GeocoderFactory] = {
    "mapbox": MapboxGeocoder,
    "nominatim": NominatimGeocoder,
}


def build_geocoder(settings: GeocoderSettings, *, client: Optional[httpx.AsyncClient] = None) -> Geocoder:
    """Instantiate the configured provider or fail with `ConfigurationError`."""
    key = settings.provider.strip().lower()
    factory = GEOCODER_REGISTRY.get(key)
    if factory is None:
        known = ", ".join(sorted(GEOCODER_REGISTRY))
        raise ConfigurationError(f"Unknown geocoder provider {settings.provider!r}; expected one of: {known}")
    return factory(settings, client=client)
