import asyncio
import copy

import pytest

from facility_geo.enrich.runner import run_enrichment
from facility_geo.errors import GeocoderUnavailableError
from facility_geo.observability.metrics import MetricsRegistry
from facility_geo.storage.geo_store import GeoStore
from facility_geo.storage.models import Coordinate
from fakes import BlockingGeocoder, FakeCollection, FakeGeocoder, facility_document


def _answers(documents, **coords):
    return {doc["Address"]: coords[doc["Facility Name"]] for doc in documents if doc["Facility Name"] in coords}


def test_enrichment_is_idempotent_and_skips_resolved():
    documents = [
        facility_document("A", 11201),
        facility_document("B", 11205),
        facility_document("Known", 11206, lat=40.69, lng=-73.98),
    ]
    collection = FakeCollection(documents)
    store = GeoStore(collection)
    geocoder = FakeGeocoder(
        _answers(documents, A=Coordinate(40.70, -73.99), B=Coordinate(40.695, -73.96), Known=Coordinate(1.0, 1.0))
    )

    first = asyncio.run(run_enrichment(store, geocoder, concurrency=2))
    after_first = copy.deepcopy(collection.documents)
    second = asyncio.run(run_enrichment(store, geocoder, concurrency=2))

    assert first.scanned == 2 and first.resolved == 2
    assert second.scanned == 0 and second.resolved == 0
    assert collection.documents == after_first
    assert sorted(geocoder.calls) == ["1 A Street", "1 B Street"]
    known = next(doc for doc in collection.documents.values() if doc["Facility Name"] == "Known")
    assert known["Point"]["coordinates"] == [-73.98, 40.69]


def test_miss_leaves_entity_unresolved_for_next_run():
    documents = [facility_document("Lost", 11201)]
    collection = FakeCollection(documents)
    store = GeoStore(collection)
    geocoder = FakeGeocoder()

    summary = asyncio.run(run_enrichment(store, geocoder))
    assert summary.missed == 1
    assert collection.documents[documents[0]["_id"]]["Point"] is None

    geocoder.answers["1 Lost Street"] = Coordinate(0.0, 0.0)
    summary = asyncio.run(run_enrichment(store, geocoder))
    assert summary.resolved == 1
    assert collection.documents[documents[0]["_id"]]["Point"]["coordinates"] == [0.0, 0.0]


def test_gateway_failure_is_isolated_to_one_entity():
    documents = [facility_document(name, 11200 + i) for i, name in enumerate(["A", "B", "C"])]
    collection = FakeCollection(documents)
    store = GeoStore(collection)
    geocoder = FakeGeocoder(
        _answers(
            documents,
            A=Coordinate(40.70, -73.99),
            B=GeocoderUnavailableError("fake", "HTTP 503"),
            C=Coordinate(40.71, -73.95),
        )
    )
    metrics = MetricsRegistry()

    summary = asyncio.run(run_enrichment(store, geocoder, concurrency=3, metrics=metrics))

    assert (summary.resolved, summary.failed) == (2, 1)
    assert summary.failures[0][0] == str(documents[1]["_id"])
    assert collection.documents[documents[1]["_id"]]["Point"] is None
    counters = metrics.snapshot()
    assert counters["geocode_failures"] == 1
    assert counters["points_written"] == 2


def test_store_recheck_prevents_overwriting_a_point_set_meanwhile():
    documents = [facility_document("Raced", 11201)]
    collection = FakeCollection(documents)
    store = GeoStore(collection)
    entity_id = documents[0]["_id"]

    class RacingGeocoder(FakeGeocoder):
        async def resolve(self, address, city, region, postal_code):
            # another worker commits first
            collection.documents[entity_id]["Point"] = {"type": "Point", "coordinates": [-70.0, 40.0]}
            return Coordinate(1.0, 1.0)

    summary = asyncio.run(run_enrichment(store, RacingGeocoder()))

    assert summary.skipped == 1
    assert collection.replacements == []
    assert collection.documents[entity_id]["Point"]["coordinates"] == [-70.0, 40.0]


def test_entity_timeout_counts_as_failure():
    documents = [facility_document("Slow", 11201)]
    store = GeoStore(FakeCollection(documents))

    summary = asyncio.run(run_enrichment(store, BlockingGeocoder(), entity_timeout=0.05))

    assert summary.failed == 1
    assert summary.resolved == 0


def test_cancelled_pass_leaves_entities_untouched():
    documents = [facility_document("Stuck", 11201), facility_document("Also", 11202)]
    collection = FakeCollection(documents)
    store = GeoStore(collection)
    geocoder = BlockingGeocoder()

    async def _run():
        with pytest.raises(TimeoutError):
            await asyncio.wait_for(run_enrichment(store, geocoder, concurrency=2), 0.1)

    asyncio.run(_run())
    assert len(geocoder.calls) == 2
    assert collection.replacements == []
    assert all(doc["Point"] is None for doc in collection.documents.values())


def test_concurrency_must_be_positive(store):
    with pytest.raises(ValueError):
        asyncio.run(run_enrichment(store, FakeGeocoder(), concurrency=0))


def test_null_address_does_not_stop_the_pass():
    documents = [facility_document("A", 11201), facility_document("B", 11205, **{"Address": None})]
    collection = FakeCollection(documents)
    store = GeoStore(collection)
    geocoder = FakeGeocoder({"1 A Street": Coordinate(40.70, -73.99)})

    summary = asyncio.run(run_enrichment(store, geocoder, concurrency=1))

    assert (summary.scanned, summary.resolved, summary.missed) == (2, 1, 1)
    assert sorted(geocoder.calls) == ["", "1 A Street"]
    assert collection.documents[documents[0]["_id"]]["Point"]["coordinates"] == [-73.99, 40.70]
    assert collection.documents[documents[1]["_id"]]["Address"] is None


def test_unexpected_error_is_isolated_to_one_entity():
    documents = [facility_document("A", 11201), facility_document("B", 11205)]
    collection = FakeCollection(documents)
    store = GeoStore(collection)
    geocoder = FakeGeocoder(
        _answers(
            documents,
            A=ValueError("could not convert string to float: 'high'"),
            B=Coordinate(40.695, -73.96),
        )
    )
    metrics = MetricsRegistry()

    summary = asyncio.run(run_enrichment(store, geocoder, concurrency=1, metrics=metrics))

    assert (summary.resolved, summary.failed) == (1, 1)
    assert summary.failures[0][0] == str(documents[0]["_id"])
    assert "ValueError" in summary.failures[0][1]
    assert collection.documents[documents[0]["_id"]]["Point"] is None
    assert collection.documents[documents[1]["_id"]]["Point"]["coordinates"] == [-73.96, 40.695]
    assert metrics.snapshot()["enrich_errors"] == 1
