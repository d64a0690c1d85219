"""Exception hierarchy shared by the store, geocoders and CLI."""
from __future__ import annotations


class FacilityGeoError(Exception):
    """Base class for all errors raised by facility_geo."""


class ConfigurationError(FacilityGeoError):
    """Settings are invalid or a required collaborator is unreachable."""


class GeocoderError(FacilityGeoError):
    """The geocoding gateway itself failed (as opposed to finding nothing)."""


class GeocoderUnavailableError(GeocoderError):
    """Network error, timeout or 5xx from the provider after all retries."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"{provider} geocoder unavailable: {reason}")
        self.provider = provider
        self.reason = reason


class StoreError(FacilityGeoError):
    """A store operation could not be completed."""


class EntityNotFoundError(StoreError):
    """No document matched the identifier of a write."""

    def __init__(self, entity_id: object) -> None:
        super().__init__(f"No entity with _id {entity_id!r}")
        self.entity_id = entity_id
