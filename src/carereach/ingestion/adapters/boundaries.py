from __future__ import annotations

from typing import Any, Iterable, Mapping

from carereach.catalogs.normalize import clean_text
from carereach.catalogs.records import Boundary, Record, make_record_id
from carereach.errors import ProviderParseError, ValidationError
from carereach.ingestion.adapters.base import SourceAdapter
from carereach.spatial.buffers import representative_point
from carereach.store.base import BOUNDARIES

PROPERTY_ALIASES: dict[str, tuple[str, ...]] = {
    "name": ("NAME_3", "name", "Upazila", "upazila"),
    "district": ("NAME_2", "district", "District"),
    "division": ("NAME_1", "division", "Division"),
}
DEFAULTS = {"name": "Unknown Upazila", "district": "Unknown District", "division": "Unknown Division"}


def _prop(props: Mapping[str, Any], field_name: str) -> str:
    for key in PROPERTY_ALIASES[field_name]:
        value = props.get(key)
        if value:
            return clean_text(value, DEFAULTS[field_name])
    return DEFAULTS[field_name]


class GeoJsonBoundaryAdapter(SourceAdapter):
    """Upazila polygons from any GeoJSON FeatureCollection (several public mirrors exist)."""

    adapter_id = "upazila_geojson"
    categories = frozenset({BOUNDARIES})

    def _fetch_rows(self, category: str, params: Mapping[str, Any]) -> Iterable[dict[str, Any]]:
        if not self.url:
            raise ProviderParseError("Boundary adapter has no URL configured", provider=self.adapter_id)
        payload = self.client.get_json(
            self.url,
            provider=self.adapter_id,
            timeout_s=self.timeout_s,
            cache_namespace="boundaries",
            cache_ttl_s=self.options.get("cache_ttl_s"),
        )
        if not isinstance(payload, dict) or not isinstance(payload.get("features"), list):
            raise ProviderParseError("Boundary payload is not a FeatureCollection", provider=self.adapter_id)
        return [f for f in payload["features"] if isinstance(f, dict)]

    def _to_record(self, category: str, row: dict[str, Any]) -> Record:
        props = row.get("properties") or {}
        geometry = row.get("geometry") or {}
        try:
            location = representative_point(geometry)
        except (ValueError, IndexError, TypeError) as e:
            raise ValidationError(f"Boundary without usable polygon: {e}") from e
        name = _prop(props, "name")
        district = _prop(props, "district")
        return Boundary(
            id=make_record_id(self.adapter_id, name, district, location.lon, location.lat),
            name=name,
            district=district,
            division=_prop(props, "division"),
            geometry=geometry,
            location=location,
            source=self.adapter_id,
        )
