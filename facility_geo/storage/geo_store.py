"""MongoDB-backed store of located facilities with spherical radius search."""
from __future__ import annotations

import contextlib
from typing import AsyncIterator, Awaitable, Callable, Iterable, List, Optional

import structlog
from pymongo import AsyncMongoClient, GEOSPHERE
from pymongo.errors import PyMongoError

from facility_geo.errors import ConfigurationError, EntityNotFoundError
from facility_geo.observability.tracing import span
from facility_geo.settings import StoreSettings
from facility_geo.storage.models import POINT_FIELD, Coordinate, Facility

LOGGER = structlog.get_logger(__name__)

METERS_PER_MILE = 1609.34


def near_sphere_filter(field: str, latitude: float, longitude: float, max_distance_meters: float) -> dict:
    """Build a ``$nearSphere`` filter; GeoJSON wants ``[longitude, latitude]``."""
    return {
        field: {
            "$nearSphere": {
                "$geometry": {"type": "Point", "coordinates": [longitude, latitude]},
                "$maxDistance": max_distance_meters,
            }
        }
    }


class GeoStore:
    """Read/write access to one collection of facilities keyed by a point field."""

    def __init__(self, collection) -> None:
        self._collection = collection

    @property
    def collection(self):
        return self._collection

    async def ensure_geospatial_index(self, field: str = POINT_FIELD) -> str:
        """Create a 2dsphere index on ``field`` unless one already leads with it.

        Index key names are compared case-insensitively. Returns the name of the
        existing or newly created index.
        """
        with span("index_information", field=field):
            indexes = await self._collection.index_information()
        for name, info in indexes.items():
            keys = info.get("key") or []
            if keys and str(keys[0][0]).lower() == field.lower():
                return name
        with span("create_index", field=field):
            name = await self._collection.create_index([(field, GEOSPHERE)])
        LOGGER.info("geo_index_created", field=field, index=name)
        return name

    async def find_near(
        self,
        field: str,
        latitude: float,
        longitude: float,
        radius_miles: float,
    ) -> List[Facility]:
        """Return every facility within ``radius_miles`` of the centre.

        Each call runs a fresh query and materialises the full result list.
        Callers must not rely on the order of the results.
        """
        if radius_miles < 0:
            raise ValueError(f"radius_miles must not be negative, got {radius_miles}")
        query = near_sphere_filter(field, latitude, longitude, radius_miles * METERS_PER_MILE)
        with span("find_near", field=field, latitude=latitude, longitude=longitude, radius_miles=radius_miles):
            documents = await self._collection.find(query).to_list(None)
        return [Facility.from_document(document) for document in documents]

    async def get(self, entity_id) -> Optional[Facility]:
        document = await self._collection.find_one({"_id": entity_id})
        if document is None:
            return None
        return Facility.from_document(document)

    async def all(self) -> List[Facility]:
        """Load the entire collection eagerly."""
        with span("scan"):
            documents = await self._collection.find({}).to_list(None)
        return [Facility.from_document(document) for document in documents]

    async def missing_points(self, field: str = POINT_FIELD) -> List[Facility]:
        """Full scan filtered in memory to documents without a point."""
        with span("scan_missing", field=field):
            documents = await self._collection.find({}).to_list(None)
        return [Facility.from_document(document) for document in documents if document.get(field) is None]

    async def for_each_missing_point(
        self,
        visit: Callable[[Facility], Awaitable[None]],
        field: str = POINT_FIELD,
    ) -> int:
        """Await ``visit`` once per facility lacking a point; return the count.

        The collection is read completely before the first visit. Documents added
        or changed during the iteration are not observed by it.
        """
        pending = await self.missing_points(field)
        for facility in pending:
            await visit(facility)
        return len(pending)

    async def replace_point(
        self,
        entity: Facility,
        coordinate: Coordinate,
        field: str = POINT_FIELD,
    ) -> Facility:
        """Overwrite the whole stored document of ``entity`` with the new point set.

        Concurrent changes to other fields of the same document are lost.
        """
        document = entity.to_document()
        document[field] = coordinate.to_geojson().model_dump()
        with span("replace_one", entity_id=str(entity.id)):
            result = await self._collection.replace_one({"_id": entity.id}, document)
        if result.matched_count == 0:
            raise EntityNotFoundError(entity.id)
        return Facility.from_document(document)

    async def insert_many(self, entities: Iterable[Facility]) -> int:
        documents = [entity.to_document() for entity in entities]
        if not documents:
            return 0
        result = await self._collection.insert_many(documents)
        return len(result.inserted_ids)


@contextlib.asynccontextmanager
async def open_store(settings: StoreSettings) -> AsyncIterator[GeoStore]:
    """Yield a `GeoStore` bound to the configured collection.

    The server is pinged before yielding so an unreachable store is reported as a
    configuration error at startup.
    """
    client = AsyncMongoClient(settings.uri, serverSelectionTimeoutMS=settings.server_selection_timeout_ms)
    try:
        try:
            await client.admin.command("ping")
        except PyMongoError as exc:
            raise ConfigurationError(f"MongoDB unreachable at {settings.uri}: {exc}") from exc
        collection = client[settings.database][settings.collection]
        yield GeoStore(collection)
    finally:
        await client.close()
