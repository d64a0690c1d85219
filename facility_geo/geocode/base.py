"""Geocoding gateway contract and the shared HTTP plumbing for providers."""
from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, Optional, Protocol

import httpx
import structlog

from facility_geo.errors import GeocoderUnavailableError
from facility_geo.observability.tracing import log_retry, span
from facility_geo.settings import GeocoderSettings
from facility_geo.storage.models import Coordinate

LOGGER = structlog.get_logger(__name__)


class Geocoder(Protocol):
    """Resolve a postal address to a coordinate.

    ``None`` means the provider definitively found nothing. A broken gateway
    raises `GeocoderError` instead.
    """

    async def resolve(self, address: str, city: str, region: str, postal_code: str) -> Optional[Coordinate]:
        ...

    async def aclose(self) -> None:
        ...


def format_query(address: str, city: str, region: str, postal_code: str) -> str:
    return f"{address}, {city}, {region} {postal_code}"


class HttpGeocoder:
    """Base class holding an ``httpx.AsyncClient`` and the retry loop."""

    provider = "http"

    def __init__(self, settings: GeocoderSettings, *, client: Optional[httpx.AsyncClient] = None) -> None:
        self._settings = settings
        self._client = client or httpx.AsyncClient(
            timeout=settings.timeout_seconds,
            headers={"User-Agent": settings.user_agent},
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, url: str, *, params: Dict[str, Any]) -> Optional[httpx.Response]:
        """GET with retries; ``None`` for a 4xx, raises once retries are exhausted.

        Network errors, timeouts and 5xx responses are retried with exponential
        backoff.
        """
        delay = self._settings.retry_backoff_seconds
        attempts = self._settings.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                with span("geocode_request", provider=self.provider):
                    start = time.perf_counter()
                    response = await self._client.get(url, params=params)
                elapsed_ms = int((time.perf_counter() - start) * 1000)
                LOGGER.debug("geocode_response", provider=self.provider, status=response.status_code, elapsed_ms=elapsed_ms)
                if response.status_code >= 500:
                    reason = f"HTTP {response.status_code}"
                elif response.is_success:
                    return response
                else:
                    LOGGER.info("geocode_rejected", provider=self.provider, status=response.status_code)
                    return None
            except httpx.HTTPError as exc:
                reason = f"{type(exc).__name__}: {exc}"
            log_retry(attempt, provider=self.provider, reason=reason)
            if attempt == attempts:
                raise GeocoderUnavailableError(self.provider, reason)
            await asyncio.sleep(delay)
            delay *= 2
        raise GeocoderUnavailableError(self.provider, "no attempts configured")
