from bson import ObjectId

from facility_geo.storage.models import Coordinate, Facility, GeoPoint


def test_document_roundtrip_keeps_unknown_fields():
    oid = ObjectId()
    document = {
        "_id": oid,
        "Facility ID": 44022,
        "Facility Name": "CONWAY BEHAVIORAL HEALTH",
        "Address": "2255 STURGIS ROAD",
        "City": "CONWAY",
        "State": "AR",
        "ZIP Code": 72034,
        "Location": "",
        "Hospital Type": "Psychiatric",
    }
    facility = Facility.from_document(document)
    assert facility.id == oid
    assert facility.point is None
    assert facility.coordinate is None

    assert facility.to_document() == document


def test_zip_prefix_reads_numbers_and_text():
    assert Facility(zip_code=11201).zip_prefix == 11201
    assert Facility(zip_code="11201").zip_prefix == 11201
    assert Facility(zip_code="11201-4410").zip_prefix == 11201
    assert Facility(zip_code="11201-4410").zip_code == "11201-4410"
    assert Facility(zip_code="").zip_prefix is None
    assert Facility(zip_code="N/A").zip_prefix is None
    assert Facility().zip_prefix is None


def test_null_and_numeric_text_fields_are_accepted():
    facility = Facility.from_document(
        {"_id": ObjectId(), "Facility Name": None, "Address": None, "City": 12, "ZIP Code": "N/A"}
    )
    assert facility.name is None
    assert facility.address is None
    assert facility.city == "12"
    assert facility.to_document()["City"] == 12


def test_new_facility_document_holds_only_set_fields():
    facility = Facility(name="Fresh", zip_code=11201)
    assert facility.to_document() == {"_id": facility.id, "Facility Name": "Fresh", "ZIP Code": 11201}


def test_geojson_order_is_longitude_first():
    point = Coordinate(latitude=40.7, longitude=-73.9).to_geojson()
    assert point.coordinates == [-73.9, 40.7]
    assert GeoPoint(coordinates=[-73.9, 40.7]).to_coordinate() == Coordinate(40.7, -73.9)


def test_origin_is_a_resolved_coordinate():
    facility = Facility(Point={"type": "Point", "coordinates": [0.0, 0.0]})
    assert facility.coordinate == Coordinate(0.0, 0.0)
    assert facility.coordinate is not None
