import math

import pytest

from carereach.catalogs.normalize import (
    build_facility,
    infer_skills,
    normalize_availability,
    normalize_facility_type,
    normalize_worker_type,
    parse_services,
    parse_transport_options,
    standardize_address,
)
from carereach.catalogs.records import (
    Availability,
    Facility,
    FacilityType,
    GeoPoint,
    WorkerType,
    record_from_dict,
)
from carereach.catalogs.seed import seed_boundaries, seed_facilities, seed_workers
from carereach.errors import InvalidCoordinate, ValidationError


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("hospital", FacilityType.HOSPITAL),
        ("amenity=hospital", FacilityType.HOSPITAL),
        ("Doctors", FacilityType.CLINIC),
        ("medical-centre", FacilityType.CLINIC),
        ("Health Post", FacilityType.COMMUNITY_CLINIC),
        ("Savar Upazila Health Complex", FacilityType.UPAZILA_HEALTH_COMPLEX),
        ("Union Health Center", FacilityType.UNION_HEALTH_CENTER),
        (FacilityType.HOSPITAL, FacilityType.HOSPITAL),
    ],
)
def test_facility_type_table(raw, expected):
    assert normalize_facility_type(raw) == expected


@pytest.mark.parametrize("raw", ["spaceport", "", None, 42, float("nan"), "amenity="])
def test_unknown_facility_type_falls_back_to_clinic(raw):
    assert normalize_facility_type(raw) == FacilityType.CLINIC


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Community Health Worker", WorkerType.CHW),
        ("Health Assistant", WorkerType.CHW),
        ("Medical Officer", WorkerType.DOCTOR),
        ("Dr. Rahman", WorkerType.DOCTOR),
        ("Senior Staff Nurse", WorkerType.NURSE),
        ("Nurse Midwife", WorkerType.NURSE),
        ("Midwife", WorkerType.MIDWIFE),
        ("Midwifery Tutor", WorkerType.MIDWIFE),
        ("Staff Nurses", WorkerType.NURSE),
        ("Schwartz Foundation volunteer", WorkerType.VOLUNTEER),
        ("Drainage supervisor", WorkerType.VOLUNTEER),
        ("Peer supporter", WorkerType.VOLUNTEER),
        ("", WorkerType.VOLUNTEER),
        (None, WorkerType.VOLUNTEER),
    ],
)
def test_worker_type_rules(raw, expected):
    assert normalize_worker_type(raw) == expected


def test_availability_aliases():
    assert normalize_availability("on_demand") == Availability.ON_CALL
    assert normalize_availability("Part-Time") == Availability.PART_TIME
    assert normalize_availability("whenever") == Availability.FULL_TIME


def test_parse_services_and_transport():
    assert parse_services("General medicine; Emergency; ;General medicine") == ("General medicine", "Emergency")
    assert parse_services(None) == ()
    assert parse_transport_options("Bus, auto-rickshaw and boat") == ("bus", "boat", "auto_rickshaw")
    assert parse_transport_options("rickshaw or CNG") == ("rickshaw", "auto_rickshaw")
    assert parse_transport_options(None) == ()


def test_infer_skills_and_address():
    assert infer_skills("Maternal and child health officer") == ("Maternal health", "Child health")
    assert infer_skills("Statistician") == ("Basic health support",)
    assert infer_skills("EPI vaccinator") == ("Vaccination support",)
    assert infer_skills("Epilepsy ward attendant") == ("Basic health support",)
    assert infer_skills("Children's ward, immunisation") == ("Child health", "Vaccination support")
    assert standardize_address("  House 12,   Road 5 ") == "House 12, Road 5"
    assert standardize_address(None) == "Unknown Address"


def test_build_facility_from_provider_row():
    row = {
        "name": "  Sadar   Hospital ",
        "lon": "90.4",
        "lat": "23.7",
        "type": "amenity=hospital",
        "address": None,
        "district": float("nan"),
        "services": "Emergency; Surgery",
        "phone": " 01711000000 ",
        "public_transport": "yes",
        "transport": "bus",
    }
    f = build_facility(row, source="HDX", native_id="node/1")
    assert f.name == "Sadar Hospital"
    assert f.type == FacilityType.HOSPITAL
    assert f.location == GeoPoint(90.4, 23.7)
    assert f.address == "Unknown Address"
    assert f.district == "Unknown"
    assert f.services == ("Emergency", "Surgery")
    assert f.contact.phone == "01711000000"
    assert f.accessibility.public_transport is True
    assert f.accessibility.transport_options == ("bus",)
    # Ids are deterministic for identical input.
    assert build_facility(row, source="HDX", native_id="node/1").id == f.id


@pytest.mark.parametrize("lon,lat", [(None, 23.0), ("abc", 23.0), (math.nan, 23.0), (190.0, 23.0), (90.0, -91.0)])
def test_build_facility_rejects_bad_coordinates(lon, lat):
    with pytest.raises(InvalidCoordinate):
        build_facility({"name": "x", "lon": lon, "lat": lat}, source="test")


def test_geopoint_parse_forms():
    p = GeoPoint(90.4, 23.8)
    assert GeoPoint.parse([90.4, 23.8]) == p
    assert GeoPoint.parse("90.4, 23.8") == p
    assert GeoPoint.parse({"lng": 90.4, "lat": 23.8}) == p
    assert GeoPoint.parse({"type": "Point", "coordinates": [90.4, 23.8]}) == p
    for bad in ("90.4", [90.4], {"lat": 23.8}, object()):
        with pytest.raises(ValidationError):
            GeoPoint.parse(bad)


def test_records_survive_dict_round_trip():
    for record in seed_facilities()[:1] + seed_workers()[:1] + seed_boundaries()[:1]:
        again = record_from_dict(record.to_dict())
        assert again == record
    with pytest.raises(ValueError):
        record_from_dict({"kind": "event"})


def test_facility_dict_shape():
    f: Facility = seed_facilities()[0]
    d = f.to_dict()
    assert d["location"] == {"type": "Point", "coordinates": [90.4087, 23.7329]}
    assert d["type"] == "hospital"
    assert set(d["accessibility"]) == {"roadAccess", "publicTransport", "transportOptions", "notes"}
