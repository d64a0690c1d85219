"""Command-line entrypoint for the facility geolocation tools."""
from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import orjson
import structlog
from dotenv import load_dotenv

from facility_geo.enrich.runner import run_enrichment
from facility_geo.errors import ConfigurationError
from facility_geo.geocode.registry import build_geocoder
from facility_geo.observability.log import configure_logging
from facility_geo.observability.metrics import MetricsRegistry, record_duration
from facility_geo.observability.tracing import clear_context, set_context
from facility_geo.report.proximity import run_proximity_report
from facility_geo.settings import DEFAULT_SETTINGS_PATH, Settings, load_settings
from facility_geo.storage.geo_store import open_store

try:
    import uvloop
except ImportError:  # uvloop is not available on Windows
    uvloop = None

LOGGER = structlog.get_logger(__name__)

DEFAULT_LOGGING_CONFIG = Path("config/logging.yaml")


def build_arg_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(prog="facility-geo", description="Healthcare facility geolocation")
    parser.add_argument(
        "mode",
        nargs="?",
        default="report",
        choices=["report", "update"],
        help="report: list nearby facilities (default); update: geocode facilities without a point",
    )
    parser.add_argument("--config", type=Path, default=DEFAULT_SETTINGS_PATH, help="Path to settings.toml")
    parser.add_argument("--radius", type=float, help="Report radius in miles")
    parser.add_argument("--zip-min", type=int, help="Lowest ZIP code included in the report")
    parser.add_argument("--zip-max", type=int, help="ZIP code upper bound (exclusive)")
    parser.add_argument("--concurrency", type=int, help="Concurrent geocoding workers for update")
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Return settings with any command-line overrides applied."""
    report = settings.report.model_dump()
    enrich = settings.enrich.model_dump()
    if args.radius is not None:
        report["radius_miles"] = args.radius
    if args.zip_min is not None:
        report["zip_min"] = args.zip_min
    if args.zip_max is not None:
        report["zip_max"] = args.zip_max
    if args.concurrency is not None:
        enrich["concurrency"] = args.concurrency
    payload = settings.model_dump()
    payload.update(report=report, enrich=enrich)
    try:
        return Settings.model_validate(payload)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid command-line option: {exc}") from exc


async def run_report(settings: Settings, metrics: MetricsRegistry) -> int:
    """Print the proximity report; returns the process exit code."""
    async with open_store(settings.store) as store:
        report = await run_proximity_report(
            store,
            radius_miles=settings.report.radius_miles,
            zip_min=settings.report.zip_min,
            zip_max=settings.report.zip_max,
            metrics=metrics,
        )
    for line in report.lines():
        print(line)
    if report.error is not None:
        print(f"Report aborted: {report.error}", file=sys.stderr)
        return 1
    return 0


async def run_update(settings: Settings, metrics: MetricsRegistry, run_id: str) -> int:
    """Run the enrichment pass and write its manifest."""
    geocoder = build_geocoder(settings.geocoder)
    try:
        async with open_store(settings.store) as store:
            summary = await run_enrichment(
                store,
                geocoder,
                concurrency=settings.enrich.concurrency,
                entity_timeout=settings.enrich.entity_timeout_seconds,
                metrics=metrics,
            )
    finally:
        await geocoder.aclose()

    manifest_dir = settings.app.manifests_dir
    manifest_dir.mkdir(parents=True, exist_ok=True)
    manifest = manifest_dir / f"update-{run_id}.json"
    payload = {"run_id": run_id, "summary": summary.as_dict(), "metrics": metrics.snapshot()}
    manifest.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
    print(orjson.dumps(summary.as_dict(), option=orjson.OPT_INDENT_2).decode())
    return 0


async def run(args: argparse.Namespace, settings: Settings) -> int:
    run_id = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    metrics = MetricsRegistry()
    set_context(run_id=run_id, mode=args.mode)
    try:
        with record_duration(metrics, "run_duration_ms"):
            if args.mode == "update":
                code = await run_update(settings, metrics, run_id)
            else:
                code = await run_report(settings, metrics)
    finally:
        clear_context()
    metrics.export(settings.app.metrics_dir, mode=args.mode, run_id=run_id)
    return code


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI."""
    load_dotenv()
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(DEFAULT_LOGGING_CONFIG)

    try:
        settings = apply_overrides(load_settings(args.config), args)
        runner = uvloop.run if uvloop is not None else asyncio.run
        code = runner(run(args, settings))
    except ConfigurationError as exc:
        LOGGER.error("configuration_error", error=str(exc))
        raise SystemExit(f"Configuration error: {exc}")
    if code:
        raise SystemExit(code)


if __name__ == "__main__":
    main()
