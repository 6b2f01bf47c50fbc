"""
Source adapter tests.

All offline: adapters get a fake HTTP client that hands back canned payloads, so we
exercise payload parsing and outcome mapping without touching any provider.
"""

from __future__ import annotations

from typing import Any

import pytest

from carereach.catalogs.records import Boundary, FacilityType, GeoPoint, WorkerType
from carereach.errors import ProviderNetworkError
from carereach.ingestion.adapters.base import FetchOutcome
from carereach.ingestion.adapters.boundaries import GeoJsonBoundaryAdapter
from carereach.ingestion.adapters.dghs import DghsContactsAdapter, extract_phone, geocode_place
from carereach.ingestion.adapters.hdx import HdxTabularAdapter, find_csv_link, resolve_columns
from carereach.ingestion.adapters.healthsites import HealthsitesAdapter
from carereach.ingestion.adapters.overpass import OverpassAdapter
from carereach.store.base import BOUNDARIES, FACILITIES, OSM_FACILITIES, WORKERS


class _FakeClient:
    # Maps url -> payload (or an exception instance to raise) and records every call.
    def __init__(self, responses: dict[str, Any]) -> None:
        self.responses = dict(responses)
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def _answer(self, method: str, url: str, **kwargs: Any) -> Any:
        self.calls.append((method, url, kwargs))
        value = self.responses[url]
        if isinstance(value, Exception):
            raise value
        return value

    def get_text(self, url: str, **kwargs: Any) -> str:
        return self._answer("get_text", url, **kwargs)

    def get_json(self, url: str, **kwargs: Any) -> Any:
        return self._answer("get_json", url, **kwargs)

    def post_form_json(self, url: str, **kwargs: Any) -> Any:
        return self._answer("post_form_json", url, **kwargs)


HDX_CSV = """osm_id,name,amenity,latitude,longitude,addr_district
1,Sadar Hospital,hospital,23.7,90.4,Dhaka
2,No Coords Clinic,clinic,,,Dhaka
3,Town Pharmacy,pharmacy,23.8,90.41,
"""


def test_hdx_with_explicit_csv_url_skips_bad_rows():
    client = _FakeClient({"https://example.org/bgd.csv": HDX_CSV})
    adapter = HdxTabularAdapter(client=client, options={"csv_url": "https://example.org/bgd.csv"})

    result = adapter.fetch(FACILITIES)

    assert result.outcome == FetchOutcome.SUCCESS
    assert [r.name for r in result.records] == ["Sadar Hospital", "Town Pharmacy"]
    assert [r.type for r in result.records] == [FacilityType.HOSPITAL, FacilityType.CLINIC]
    assert result.records[0].district == "Dhaka"
    assert result.records[1].district == "Unknown"
    assert result.records[0].source == "HDX"
    assert result.detail["rows"] == 3
    assert result.detail["skipped"] == 1


def test_hdx_discovers_csv_link_on_dataset_page():
    page = '<html><a href="/dataset/x/resource/y/download/bgd_health.csv">Download</a></html>'
    csv_url = "https://data.humdata.org/dataset/x/resource/y/download/bgd_health.csv"
    client = _FakeClient({"https://data.humdata.org/dataset/x": page, csv_url: HDX_CSV})
    adapter = HdxTabularAdapter(client=client, url="https://data.humdata.org/dataset/x")

    result = adapter.fetch(FACILITIES)

    assert result.ok
    assert [c[1] for c in client.calls] == ["https://data.humdata.org/dataset/x", csv_url]


def test_hdx_falls_back_to_ckan_when_page_is_down():
    api_url = "https://data.humdata.org/api/3/action/package_show?id=x"
    client = _FakeClient(
        {
            "https://data.humdata.org/dataset/x": ProviderNetworkError("HTTP 502"),
            api_url: {"result": {"resources": [{"format": "PDF", "url": "https://x/a.pdf"}, {"format": "CSV", "url": "https://x/f.csv"}]}},
            "https://x/f.csv": HDX_CSV,
        }
    )
    adapter = HdxTabularAdapter(client=client, url="https://data.humdata.org/dataset/x", options={"api_url": api_url})

    result = adapter.fetch(FACILITIES)

    assert result.outcome == FetchOutcome.SUCCESS
    assert len(result.records) == 2


def test_hdx_without_csv_is_parse_error_and_down_page_is_network_error():
    no_link = _FakeClient({"https://data.humdata.org/dataset/x": "<html>nothing here</html>"})
    assert HdxTabularAdapter(client=no_link, url="https://data.humdata.org/dataset/x").fetch(FACILITIES).outcome == (
        FetchOutcome.PARSE_ERROR
    )

    down = _FakeClient({"https://data.humdata.org/dataset/x": ProviderNetworkError("timed out")})
    result = HdxTabularAdapter(client=down, url="https://data.humdata.org/dataset/x").fetch(FACILITIES)
    assert result.outcome == FetchOutcome.NETWORK_ERROR
    assert "timed out" in result.detail["error"]


def test_hdx_helpers():
    assert resolve_columns(["OSM_ID", "Latitude", "lng", "Name"]) == {
        "name": "Name",
        "lat": "Latitude",
        "lon": "lng",
        "native_id": "OSM_ID",
    }
    assert find_csv_link('<a href="https://cdn/x.csv">x</a>') is None


OVERPASS_PAYLOAD = {
    "elements": [
        {"type": "node", "id": 1, "lat": 23.75, "lon": 90.39, "tags": {"amenity": "hospital", "name": "Node Hospital"}},
        {
            "type": "way",
            "id": 2,
            "geometry": [{"lat": 23.76, "lon": 90.40}, {"lat": 23.77, "lon": 90.41}],
            "tags": {"amenity": "clinic", "name": "Way Clinic", "addr:district": "Dhaka"},
        },
        {"type": "relation", "id": 3, "center": {"lat": 23.78, "lon": 90.42}, "tags": {"amenity": "doctors"}},
        {"type": "node", "id": 4, "lat": 23.79, "lon": 90.43},
        {"type": "way", "id": 5, "tags": {"amenity": "clinic"}},
    ]
}


def test_overpass_reads_nodes_ways_and_relations():
    client = _FakeClient({"https://overpass.example/api": OVERPASS_PAYLOAD})
    adapter = OverpassAdapter(client=client, url="https://overpass.example/api")

    result = adapter.fetch(OSM_FACILITIES)

    assert result.outcome == FetchOutcome.SUCCESS
    assert [r.name for r in result.records] == ["Node Hospital", "Way Clinic", "Unknown Facility"]
    assert result.records[1].location == GeoPoint(90.40, 23.76)
    assert result.records[2].location == GeoPoint(90.42, 23.78)
    assert result.records[0].source == "OpenStreetMap"

    method, _, kwargs = client.calls[0]
    assert method == "post_form_json"
    assert "(20.5,88.0,26.5,92.5)" in kwargs["data"]["data"]


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"elements": []}, FetchOutcome.EMPTY_RESULT),
        ({"remark": "runtime error: Query timed out", "elements": []}, FetchOutcome.PARSE_ERROR),
        (
            {
                "remark": "runtime error: Query run out of memory using about 2048 MB of RAM.",
                "elements": [{"type": "node", "id": 1, "lat": 23.75, "lon": 90.39, "tags": {"amenity": "hospital", "name": "Partial"}}],
            },
            FetchOutcome.PARSE_ERROR,
        ),
        ({"version": 0.6}, FetchOutcome.PARSE_ERROR),
        (ProviderNetworkError("HTTP 429"), FetchOutcome.NETWORK_ERROR),
    ],
)
def test_overpass_failure_outcomes(payload, expected):
    client = _FakeClient({"https://overpass.example/api": payload})
    assert OverpassAdapter(client=client, url="https://overpass.example/api").fetch(OSM_FACILITIES).outcome == expected


def test_healthsites_feature_collection():
    payload = {
        "type": "FeatureCollection",
        "features": [
            {"geometry": {"type": "Point", "coordinates": [90.41, 23.81]}, "properties": {"name": "A", "amenity": "hospital"}},
            {"geometry": {"type": "Point", "coordinates": [90.42, 23.82]}, "properties": {"name": "B", "amenity": "dentist"}},
            {"geometry": {"type": "LineString", "coordinates": [[90, 23], [91, 23]]}, "properties": {"name": "C"}},
        ],
    }
    client = _FakeClient({"https://healthsites.example/api": payload})
    result = HealthsitesAdapter(client=client, url="https://healthsites.example/api", options={"api_key": "k"}).fetch(
        FACILITIES
    )

    assert [r.name for r in result.records] == ["A", "B"]
    assert [r.type for r in result.records] == [FacilityType.HOSPITAL, FacilityType.CLINIC]
    assert client.calls[0][2]["params"] == {"api-key": "k"}


def test_geojson_boundaries():
    square = [[[90.2, 23.8], [90.3, 23.8], [90.3, 23.9], [90.2, 23.9], [90.2, 23.8]]]
    payload = {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {"NAME_3": "Savar", "NAME_2": "Dhaka", "NAME_1": "Dhaka"},
                "geometry": {"type": "Polygon", "coordinates": square},
            },
            {"type": "Feature", "properties": {"name": "Broken"}, "geometry": None},
        ],
    }
    client = _FakeClient({"https://geo.example/upazilas.geojson": payload})
    adapter = GeoJsonBoundaryAdapter(client=client, url="https://geo.example/upazilas.geojson")

    result = adapter.fetch(BOUNDARIES)

    assert result.outcome == FetchOutcome.SUCCESS
    assert result.detail["skipped"] == 1
    (boundary,) = result.records
    assert isinstance(boundary, Boundary)
    assert (boundary.name, boundary.district, boundary.division) == ("Savar", "Dhaka", "Dhaka")
    assert boundary.location.lon == pytest.approx(90.25)

    # A boundary adapter asked for facilities fails its attempt instead of raising.
    assert adapter.fetch(FACILITIES).outcome == FetchOutcome.PARSE_ERROR


DGHS_HTML = """
<html><body>
<table>
  <tr><th>Name</th><th>Designation</th><th>Contact</th><th>Facility</th></tr>
  <tr><td>Dr. Rahim Uddin</td><td>Medical Officer</td><td>Mobile: 01711223344</td><td>Khulna Sadar Hospital</td></tr>
  <tr><td>Shirin Akter</td><td>Community Health Worker (maternal care)</td><td>+8801812345678</td><td>Somewhere</td></tr>
  <tr><td>too</td><td>short</td></tr>
</table>
</body></html>
"""


def test_dghs_contact_tables_become_workers():
    client = _FakeClient({"https://dghs.example/contacts": DGHS_HTML})
    result = DghsContactsAdapter(client=client, url="https://dghs.example/contacts").fetch(WORKERS)

    assert result.outcome == FetchOutcome.SUCCESS
    doctor, chw = result.records
    assert doctor.type == WorkerType.DOCTOR
    assert doctor.contact.phone == "01711223344"
    assert doctor.location == GeoPoint(89.5403, 22.8077)
    assert (doctor.district, doctor.division) == ("Khulna", "Khulna Division")
    assert doctor.skills == ("Basic health support",)

    assert chw.type == WorkerType.CHW
    assert chw.contact.phone == "+8801812345678"
    assert chw.skills == ("Maternal health",)
    assert chw.district == "Dhaka"
    assert chw.verified is True
    ring = chw.service_area["coordinates"][0]
    assert ring[0] == ring[-1]


def test_dghs_helpers_and_missing_tables():
    assert geocode_place("Chattogram Medical College")[0] == "chattogram"
    assert geocode_place(None)[0] == "dhaka"
    assert extract_phone("call 01911000111 now") == "01911000111"
    assert extract_phone("  n/a ") == "n/a"

    client = _FakeClient({"https://dghs.example/contacts": "<html>maintenance</html>"})
    assert DghsContactsAdapter(client=client, url="https://dghs.example/contacts").fetch(WORKERS).outcome == (
        FetchOutcome.PARSE_ERROR
    )
