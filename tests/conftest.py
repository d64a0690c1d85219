import pytest

from facility_geo.storage.geo_store import GeoStore
from fakes import FakeCollection, facility_document


@pytest.fixture()
def brooklyn_documents():
    return [
        facility_document("A", 11201, lat=40.70, lng=-73.99),
        facility_document("B", 11205, lat=40.695, lng=-73.96),
        facility_document("C", 30301, lat=33.75, lng=-84.39),
    ]


@pytest.fixture()
def collection():
    return FakeCollection()


@pytest.fixture()
def store(collection):
    return GeoStore(collection)
