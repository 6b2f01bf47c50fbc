"""
OpenStreetMap Overpass adapter.

The Overpass API answers a query-language request with a flat element list mixing
nodes, ways and relations. Each element is reduced to one representative point:
- node: its own lat/lon,
- way: the first vertex of its geometry (or `center` when the query asked for it),
- relation: its `center`.
Elements without tags or without a usable point are dropped.

The primary endpoint, a mirror and a cheaper "hospitals only" query are all just
differently configured instances of this adapter.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from carereach.catalogs.normalize import build_facility
from carereach.catalogs.records import Record
from carereach.errors import ProviderParseError
from carereach.ingestion.adapters.base import SourceAdapter
from carereach.store.base import FACILITIES, OSM_FACILITIES

# Bangladesh in Overpass bbox order: (south, west, north, east).
BANGLADESH_BBOX = "(20.5,88.0,26.5,92.5)"

DEFAULT_QUERY = f"""
[out:json][timeout:180];
(
  node["amenity"~"hospital|clinic|doctors|pharmacy"]{BANGLADESH_BBOX};
  way["amenity"~"hospital|clinic|doctors|pharmacy"]{BANGLADESH_BBOX};
  relation["amenity"~"hospital|clinic|doctors|pharmacy"]{BANGLADESH_BBOX};
);
out geom;
"""

SMALL_QUERY = f"""
[out:json][timeout:60];
(
  node["amenity"="hospital"]{BANGLADESH_BBOX};
);
out geom;
"""


def element_point(element: Mapping[str, Any]) -> tuple[Any, Any] | None:
    """Return (lon, lat) for an Overpass element, or None."""
    etype = element.get("type")
    if etype == "node" and element.get("lat") is not None and element.get("lon") is not None:
        return element["lon"], element["lat"]
    if etype == "way":
        geometry = element.get("geometry") or []
        if geometry:
            return geometry[0].get("lon"), geometry[0].get("lat")
        center = element.get("center")
        if center:
            return center.get("lon"), center.get("lat")
    if etype == "relation":
        center = element.get("center")
        if center:
            return center.get("lon"), center.get("lat")
    return None


def element_to_row(element: Mapping[str, Any]) -> dict[str, Any] | None:
    tags = element.get("tags") or {}
    point = element_point(element)
    if point is None or not tags:
        return None
    lon, lat = point
    return {
        "native_id": f"{element.get('type')}/{element.get('id')}",
        "name": tags.get("name") or tags.get("name:en"),
        "lon": lon,
        "lat": lat,
        "type": tags.get("amenity") or tags.get("healthcare"),
        "address": tags.get("addr:full") or tags.get("addr:housename"),
        "upazila": tags.get("addr:subdistrict"),
        "district": tags.get("addr:district"),
        "division": tags.get("addr:state"),
        "services": tags.get("healthcare:speciality") or tags.get("healthcare"),
        "phone": tags.get("phone") or tags.get("contact:phone"),
        "email": tags.get("email") or tags.get("contact:email"),
        "opening_hours": tags.get("opening_hours"),
        "public_transport": tags.get("public_transport"),
        "transport": tags.get("transport"),
        "accessibility_notes": tags.get("accessibility") or tags.get("wheelchair"),
    }


class OverpassAdapter(SourceAdapter):
    adapter_id = "overpass"
    categories = frozenset({FACILITIES, OSM_FACILITIES})
    source_name = "OpenStreetMap"

    def query(self) -> str:
        return str(self.options.get("query") or DEFAULT_QUERY)

    def _fetch_rows(self, category: str, params: Mapping[str, Any]) -> Iterable[dict[str, Any]]:
        if not self.url:
            raise ProviderParseError("Overpass adapter has no endpoint configured", provider=self.adapter_id)
        payload = self.client.post_form_json(
            self.url,
            data={"data": self.query()},
            provider=self.adapter_id,
            timeout_s=self.timeout_s,
        )
        if not isinstance(payload, dict) or not isinstance(payload.get("elements"), list):
            raise ProviderParseError("Overpass response has no `elements` list", provider=self.adapter_id)
        # Overpass reports query timeouts and memory exhaustion in `remark` with a 200 status;
        # any elements that came back with such a remark are a partial result.
        remark = str(payload.get("remark") or "")
        if "runtime error" in remark.lower():
            raise ProviderParseError(f"Overpass runtime error: {remark[:200]}", provider=self.adapter_id)

        rows = []
        for element in payload["elements"]:
            if isinstance(element, dict):
                row = element_to_row(element)
                if row is not None:
                    rows.append(row)
        return rows

    def _to_record(self, category: str, row: dict[str, Any]) -> Record:
        return build_facility(row, source=self.source_name, native_id=row.get("native_id"))
