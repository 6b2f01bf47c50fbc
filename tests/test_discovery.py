from __future__ import annotations

import math

import pytest

from carereach.catalogs.records import GeoPoint
from carereach.catalogs.seed import SEED_LOADERS, seed_osm_facilities
from carereach.discovery import DiscoveryService, parse_facility_type
from carereach.errors import DataUnavailable, StoreError, ValidationError
from carereach.spatial.crs import EARTH_RADIUS_M
from carereach.spatial.distance import CardinalDirection
from carereach.store.base import CATEGORIES, OSM_FACILITIES, GeoStore
from carereach.store.memory import MemoryGeoStore

DMCH = [90.4087, 23.7329]
DHAKA_WORKER = [90.4125, 23.8103]


@pytest.fixture
def store() -> MemoryGeoStore:
    s = MemoryGeoStore()
    for category in CATEGORIES:
        s.replace_all(category, SEED_LOADERS[category]())
    return s


@pytest.fixture
def service(store) -> DiscoveryService:
    return DiscoveryService(store)


class _BrokenStore(GeoStore):
    def _current(self, category):
        raise StoreError("pointer unreadable")

    def _publish(self, category, generation):
        raise StoreError("read-only")


def test_nearest_facility_at_origin_ranks_first(service):
    ranked = service.nearest_facilities(DMCH)
    assert ranked[0].record.name == "Dhaka Medical College Hospital"
    assert ranked[0].distance_m == 0.0
    assert len(ranked) <= 10

    only_one = service.nearest_facilities(DMCH, max_distance_m=100.0, limit=5)
    assert [r.record.name for r in only_one] == ["Dhaka Medical College Hospital"]


def test_nearest_facility_argument_errors(service):
    with pytest.raises(ValidationError):
        service.nearest_facilities(DMCH, limit=0)
    with pytest.raises(ValidationError):
        service.nearest_facilities(DMCH, max_distance_m=-5)
    with pytest.raises(ValidationError):
        service.nearest_facilities([200.0, 23.0])
    with pytest.raises(ValidationError):
        service.nearest_facilities(DMCH, facility_type="spaceport")


def test_list_and_get_facilities(service, store):
    hospitals = service.list_facilities(facility_type="hospital")
    # Two from the facilities seed plus one from the OSM seed.
    assert len(hospitals) == 3
    assert {h.source for h in hospitals} == {"seed", "seed_osm"}
    assert service.list_facilities(upazila="savar")[0].name == "Savar Upazila Health Complex"

    osm = store.all(OSM_FACILITIES)[0]
    assert service.get_facility(osm.id) == osm
    assert service.get_facility("missing") is None


def test_parse_facility_type():
    assert parse_facility_type(None) is None
    assert parse_facility_type(" Hospital ").value == "hospital"


def test_workers_near_dhaka_and_filters(service):
    hits = service.nearest_workers(DHAKA_WORKER)
    assert len(hits) == 1
    worker, distance = hits[0]
    assert worker.district == "Dhaka"
    assert distance == 0.0

    assert service.nearest_workers(DHAKA_WORKER, skill="basic first aid")
    assert service.nearest_workers(DHAKA_WORKER, skill="Vaccination support") == []
    assert service.nearest_workers(DHAKA_WORKER, verified=False) == []
    # The Khulna worker is ~140 km away.
    assert len(service.nearest_workers(DHAKA_WORKER, radius_m=200_000)) == 2


def test_list_workers_search_and_skills(service):
    assert len(service.list_workers()) == 2
    assert [w.district for w in service.list_workers(district="khulna")] == ["Khulna"]

    assert service.list_skills() == ["Basic first aid", "Child health", "Maternal health", "Vaccination support"]

    assert len(service.search_workers("maternal")) == 2
    assert [w.district for w in service.search_workers("করিম")] == ["Dhaka"]
    assert service.search_workers("vaccination")[0].district == "Khulna"
    with pytest.raises(ValidationError):
        service.search_workers("   ")


def test_get_worker(service, store):
    worker = service.list_workers()[0]
    assert service.get_worker(worker.id) == worker
    assert service.get_worker("nope") is None


def test_direction_due_north_in_bangla(service):
    origin = GeoPoint(90.0, 23.0)
    dest = GeoPoint(90.0, 23.0 + math.degrees(1000.0 / EARTH_RADIUS_M))

    d = service.direction(origin.to_list(), dest.to_list())

    assert d.bearing_bucket == CardinalDirection.N
    assert d.distance_m == pytest.approx(1000.0)
    assert d.instructions == ("আপনার গন্তব্য 1000 মিটার দূরে", "উত্তর দিকে যান")
    assert d.to_dict()["bearing"] == "N"


def test_direction_in_english_and_bad_mode(store):
    service = DiscoveryService(store, settings={"discovery": {"language": "en"}})
    d = service.direction([90.0, 23.0], [90.0, 24.0], mode="driving")
    assert d.instructions[1] == "Head north"
    assert d.mode == "driving"

    with pytest.raises(ValidationError):
        service.direction([90.0, 23.0], [90.0, 24.0], mode="teleport")
    with pytest.raises(ValueError):
        DiscoveryService(store, language="fr")


def test_broken_store_reports_data_unavailable():
    service = DiscoveryService(_BrokenStore())
    for call in (
        lambda: service.nearest_facilities(DMCH),
        lambda: service.list_facilities(),
        lambda: service.nearest_workers(DHAKA_WORKER),
        lambda: service.list_skills(),
    ):
        with pytest.raises(DataUnavailable) as exc:
            call()
        assert exc.value.retryable is True


def test_osm_only_facilities_are_ranked_and_listed():
    store = MemoryGeoStore()
    osm = seed_osm_facilities()
    store.replace_all(OSM_FACILITIES, osm)
    service = DiscoveryService(store)

    ranked = service.nearest_facilities(osm[0].location.to_list(), max_distance_m=10_000.0)
    assert ranked[0].record.id == osm[0].id
    assert ranked[0].distance_m == 0.0
    assert {f.id for f in service.list_facilities()} == {f.id for f in osm}
