"""Settings loading: TOML file, environment overrides and validation."""
from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from facility_geo.errors import ConfigurationError

DEFAULT_SETTINGS_PATH = Path("config/settings.toml")

# environment variable -> (section, key)
ENV_OVERRIDES = {
    "FACILITY_GEO_MONGO_URI": ("store", "uri"),
    "FACILITY_GEO_DATABASE": ("store", "database"),
    "FACILITY_GEO_COLLECTION": ("store", "collection"),
    "FACILITY_GEO_GEOCODER": ("geocoder", "provider"),
    "MAPBOX_ACCESS_TOKEN": ("geocoder", "api_key"),
    "FACILITY_GEO_GEOCODER_API_KEY": ("geocoder", "api_key"),
}


class AppSettings(BaseModel):
    metrics_dir: Path = Path("data/metrics")
    manifests_dir: Path = Path("data/manifests")


class StoreSettings(BaseModel):
    uri: str = Field(default="mongodb://localhost:27017", min_length=1)
    database: str = Field(default="healthcare", min_length=1)
    collection: str = Field(default="hospitals", min_length=1)
    server_selection_timeout_ms: int = Field(default=5000, gt=0)


class GeocoderSettings(BaseModel):
    provider: str = "mapbox"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout_seconds: float = Field(default=10.0, gt=0)
    max_attempts: int = Field(default=4, ge=1)
    retry_backoff_seconds: float = Field(default=1.0, ge=0)
    user_agent: str = "facility-geo/0.1"


class ReportSettings(BaseModel):
    radius_miles: float = Field(default=3.0, ge=0)
    zip_min: int = 11200
    zip_max: int = 11300

    @model_validator(mode="after")
    def _check_range(self) -> "ReportSettings":
        if self.zip_min >= self.zip_max:
            raise ValueError(f"zip_min ({self.zip_min}) must be below zip_max ({self.zip_max})")
        return self


class EnrichSettings(BaseModel):
    concurrency: int = Field(default=4, gt=0)
    entity_timeout_seconds: float = Field(default=30.0, gt=0)


class Settings(BaseModel):
    """Validated configuration for a single process run."""

    app: AppSettings = Field(default_factory=AppSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    geocoder: GeocoderSettings = Field(default_factory=GeocoderSettings)
    report: ReportSettings = Field(default_factory=ReportSettings)
    enrich: EnrichSettings = Field(default_factory=EnrichSettings)


def _apply_env(raw: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    merged = {section: dict(values) for section, values in raw.items() if isinstance(values, dict)}
    for variable, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(variable)
        if value:
            merged.setdefault(section, {})[key] = value
    return merged


def build_settings(raw: Dict[str, Any], environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Validate a raw settings mapping after applying environment overrides."""
    merged = _apply_env(raw, os.environ if environ is None else environ)
    try:
        return Settings.model_validate(merged)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid settings: {exc}") from exc


def load_settings(path: Path = DEFAULT_SETTINGS_PATH, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Read the TOML configuration file; a missing file means all defaults."""
    raw: Dict[str, Any] = {}
    if path.exists():
        try:
            with path.open("rb") as handle:
                raw = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigurationError(f"Cannot parse {path}: {exc}") from exc
    return build_settings(raw, environ)
