import math

import pytest

from carereach.catalogs.records import Accessibility, Facility, FacilityType, GeoPoint
from carereach.errors import DataUnavailable, StoreError
from carereach.scoring.accessibility import accessibility_score, score_components
from carereach.scoring.explain import build_explain_payload, build_explain_text
from carereach.scoring.ranking import ProximityRanker, combined_score
from carereach.spatial.crs import EARTH_RADIUS_M
from carereach.store.base import FACILITIES, OSM_FACILITIES, GeoStore
from carereach.store.memory import MemoryGeoStore

ORIGIN = GeoPoint(90.0, 23.0)

LOW_ACCESS = Accessibility(road_access=False, public_transport=False)
FULL_ACCESS = Accessibility(road_access=True, public_transport=True, transport_options=("bus", "rickshaw"))


def _facility(fid: str, meters_north: float, access: Accessibility, **kw) -> Facility:
    return Facility(
        id=fid,
        name=fid,
        type=kw.pop("type", FacilityType.CLINIC),
        location=GeoPoint(ORIGIN.lon, ORIGIN.lat + math.degrees(meters_north / EARTH_RADIUS_M)),
        accessibility=access,
        **kw,
    )


class _BrokenStore(GeoStore):
    def _current(self, category):
        raise StoreError("generation file unreadable")

    def _publish(self, category, generation):
        raise StoreError("read-only")


def test_accessibility_base_and_components():
    assert accessibility_score(LOW_ACCESS) == 50
    assert accessibility_score(Accessibility()) == 70
    assert accessibility_score(FULL_ACCESS) == 100
    assert score_components(FULL_ACCESS) == {
        "base": 50,
        "road_access": 20,
        "public_transport": 20,
        "transport_options": 10,
    }


def test_accessibility_clamps_with_many_options():
    many = Accessibility(road_access=True, public_transport=True, transport_options=tuple(f"opt{i}" for i in range(25)))
    assert accessibility_score(many) == 100
    # Repeated options count once.
    assert accessibility_score(Accessibility(road_access=False, transport_options=("bus", "bus", "bus"))) == 55


def test_accessibility_accepts_mappings_and_none():
    assert accessibility_score({"roadAccess": True, "publicTransport": False, "transportOptions": ["van"]}) == 75
    assert accessibility_score(None) == 50
    # A mapping without keys states nothing, so it scores like a missing block.
    assert accessibility_score({}) == 50
    assert accessibility_score({"road_access": True}) == 70


def test_combined_score_formula():
    assert combined_score(500.0, 50) == pytest.approx(2300.0)
    assert combined_score(1500.0, 100) == pytest.approx(900.0)


def test_ranker_prefers_accessible_facility_farther_away():
    store = MemoryGeoStore()
    store.replace_all(
        FACILITIES,
        [_facility("a", 500.0, LOW_ACCESS), _facility("b", 1500.0, FULL_ACCESS)],
    )
    ranked = ProximityRanker(store).rank(ORIGIN, 10_000.0, 10)

    assert [r.record.id for r in ranked] == ["b", "a"]
    assert ranked[0].combined_score == pytest.approx(900.0, rel=1e-6)
    assert ranked[1].combined_score == pytest.approx(2300.0, rel=1e-6)
    assert ranked[1].accessibility_score == 50

    out = ranked[0].to_dict()
    assert out["accessibilityScore"] == 100
    assert out["distance"] == pytest.approx(1500.0, abs=0.1)


def test_ranker_respects_radius_limit_and_filters():
    store = MemoryGeoStore()
    store.replace_all(
        FACILITIES,
        [
            _facility("near_clinic", 100.0, FULL_ACCESS, services=("Vaccination",)),
            _facility("hospital", 200.0, FULL_ACCESS, type=FacilityType.HOSPITAL),
            _facility("out_of_range", 20_000.0, FULL_ACCESS),
        ],
    )
    ranker = ProximityRanker(store)

    assert [r.record.id for r in ranker.rank(ORIGIN, 10_000.0, 10)] == ["near_clinic", "hospital"]
    assert [r.record.id for r in ranker.rank(ORIGIN, 10_000.0, 1)] == ["near_clinic"]
    assert [r.record.id for r in ranker.rank(ORIGIN, 10_000.0, 5, facility_type=FacilityType.HOSPITAL)] == ["hospital"]
    assert [r.record.id for r in ranker.rank(ORIGIN, 10_000.0, 5, services=["vaccination"])] == ["near_clinic"]
    assert ranker.rank(ORIGIN, 50.0, 5) == []


def test_ranker_rejects_bad_arguments():
    ranker = ProximityRanker(MemoryGeoStore())
    with pytest.raises(ValueError):
        ranker.rank(ORIGIN, 1000.0, 0)
    with pytest.raises(ValueError):
        ranker.rank(ORIGIN, -1.0, 5)


def test_ranker_surfaces_store_failure_as_data_unavailable():
    with pytest.raises(DataUnavailable) as exc:
        ProximityRanker(_BrokenStore()).rank(ORIGIN, 1000.0, 5)
    assert exc.value.retryable is True
    assert exc.value.category == FACILITIES


def test_explain_payload_and_text():
    store = MemoryGeoStore()
    store.replace_all(FACILITIES, [_facility("b", 1500.0, FULL_ACCESS)])
    ranked = ProximityRanker(store).rank(ORIGIN, 10_000.0, 1)[0]

    payload = build_explain_payload(ranked)
    assert payload["accessibility_score"] == 100
    assert payload["weights"] == {"distance": 0.6, "accessibility_deficit": 40.0}
    text = build_explain_text(payload)
    assert text.startswith("1500 m away,")
    assert "road access" in text
    assert text.endswith("-> combined 900.0.")


@pytest.mark.parametrize(
    "accessible_rank,expected",
    [
        # 2nd nearest: inside the 2*limit candidate pool, accessibility lets it win.
        (2, "accessible"),
        # 3rd nearest: outside the pool, so it is never scored.
        (3, "near_0"),
    ],
)
def test_ranker_scores_only_the_nearest_two_per_result(accessible_rank, expected):
    records = [_facility(f"near_{i}", 100.0 * (i + 1), LOW_ACCESS) for i in range(accessible_rank - 1)]
    records.append(_facility("accessible", 100.0 * accessible_rank, FULL_ACCESS))
    store = MemoryGeoStore()
    store.replace_all(FACILITIES, records)

    ranked = ProximityRanker(store).rank(ORIGIN, 10_000.0, 1)

    assert [r.record.id for r in ranked] == [expected]


def test_ranker_merges_osm_facilities_by_distance():
    store = MemoryGeoStore()
    store.replace_all(FACILITIES, [_facility("hdx_far", 900.0, LOW_ACCESS)])
    store.replace_all(
        OSM_FACILITIES,
        [_facility("osm_near", 100.0, LOW_ACCESS), _facility("osm_mid", 500.0, LOW_ACCESS)],
    )

    ranked = ProximityRanker(store).rank(ORIGIN, 10_000.0, 5)
    assert [r.record.id for r in ranked] == ["osm_near", "osm_mid", "hdx_far"]

    # The over-fetch cut applies to the merged pool, not per category.
    assert [r.record.id for r in ProximityRanker(store).rank(ORIGIN, 10_000.0, 1)] == ["osm_near"]


def test_ranker_with_only_osm_data():
    store = MemoryGeoStore()
    store.replace_all(OSM_FACILITIES, [_facility("osm_only", 300.0, FULL_ACCESS)])
    ranked = ProximityRanker(store).rank(ORIGIN, 10_000.0, 5)
    assert [r.record.id for r in ranked] == ["osm_only"]
