#!/usr/bin/env python
"""Bulk-load a CMS hospital CSV export into the facilities collection."""
from __future__ import annotations

import argparse
import asyncio
import csv
from pathlib import Path
from typing import Any, Dict, List

from dotenv import load_dotenv

from facility_geo.observability.log import configure_logging
from facility_geo.settings import DEFAULT_SETTINGS_PATH, load_settings
from facility_geo.storage.geo_store import GeoStore, open_store
from facility_geo.storage.models import POINT_FIELD, Facility

CSV_COLUMNS = ["Facility ID", "Facility Name", "Address", "City", "State", "ZIP Code", "Location"]


def _row_document(row: Dict[str, str]) -> Dict[str, Any]:
    document: Dict[str, Any] = {column: (row.get(column) or "").strip() for column in CSV_COLUMNS}
    # plain five digit ZIPs are stored as numbers, anything else as the CSV text
    if document["ZIP Code"].isdigit():
        document["ZIP Code"] = int(document["ZIP Code"])
    document[POINT_FIELD] = None
    return document


def read_facilities(path: Path) -> List[Facility]:
    """Parse CSV rows into facilities with no point set."""
    facilities: List[Facility] = []
    with path.open("r", newline="", encoding="utf-8-sig") as handle:
        reader = csv.DictReader(handle)
        for row in reader:
            if not row or not (row.get("Facility Name") or "").strip():
                continue
            facilities.append(Facility.from_document(_row_document(row)))
    return facilities


async def load_facilities(store: GeoStore, path: Path) -> int:
    """Insert every facility in the CSV and return how many were written."""
    return await store.insert_many(read_facilities(path))


def main() -> None:
    """CLI entrypoint used by `python -m scripts.load_facilities`."""
    load_dotenv()
    parser = argparse.ArgumentParser(description="Load a hospital CSV into MongoDB")
    parser.add_argument("csv_path", type=Path, help="CSV export with CMS hospital columns")
    parser.add_argument("--config", type=Path, default=DEFAULT_SETTINGS_PATH, help="Path to settings.toml")
    args = parser.parse_args()
    configure_logging(Path("config/logging.yaml"))
    settings = load_settings(args.config)

    async def _run() -> int:
        async with open_store(settings.store) as store:
            return await load_facilities(store, args.csv_path)

    inserted = asyncio.run(_run())
    print(f"Inserted {inserted} facilities")


if __name__ == "__main__":
    main()
