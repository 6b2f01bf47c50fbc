from __future__ import annotations

import os
from typing import Any, Iterable, Mapping

from carereach.catalogs.normalize import build_facility
from carereach.catalogs.records import Record
from carereach.errors import ProviderParseError
from carereach.ingestion.adapters.base import SourceAdapter
from carereach.store.base import FACILITIES, OSM_FACILITIES


def feature_to_row(feature: Mapping[str, Any]) -> dict[str, Any] | None:
    geometry = feature.get("geometry") or {}
    coords = geometry.get("coordinates")
    if geometry.get("type") != "Point" or not isinstance(coords, (list, tuple)) or len(coords) < 2:
        return None
    props = feature.get("properties") or {}
    return {
        "native_id": props.get("osm_id") or props.get("uuid") or feature.get("id"),
        "name": props.get("name"),
        "lon": coords[0],
        "lat": coords[1],
        "type": props.get("amenity") or props.get("category"),
        "address": props.get("addr_full") or props.get("address"),
        "upazila": props.get("suburb"),
        "district": props.get("city") or props.get("county"),
        "division": props.get("state"),
        "services": props.get("healthcare") or props.get("specialities"),
        "phone": props.get("phone"),
        "email": props.get("email"),
        "opening_hours": props.get("opening_hours"),
        "public_transport": props.get("public_transport"),
        "transport": props.get("transport"),
        "accessibility_notes": props.get("accessibility"),
    }


class HealthsitesAdapter(SourceAdapter):
    """healthsites.io REST API: a GeoJSON FeatureCollection of Point features."""

    adapter_id = "healthsites"
    categories = frozenset({FACILITIES, OSM_FACILITIES})
    source_name = "Healthsites.io"

    def _fetch_rows(self, category: str, params: Mapping[str, Any]) -> Iterable[dict[str, Any]]:
        if not self.url:
            raise ProviderParseError("Healthsites adapter has no URL configured", provider=self.adapter_id)
        query: dict[str, Any] = {}
        api_key = self.options.get("api_key") or os.getenv(str(self.options.get("api_key_env", "HEALTHSITES_API_KEY")))
        if api_key:
            query["api-key"] = api_key
        payload = self.client.get_json(
            self.url,
            params=query,
            provider=self.adapter_id,
            timeout_s=self.timeout_s,
            cache_namespace=self.adapter_id,
            cache_ttl_s=self.options.get("cache_ttl_s"),
        )
        # The v2 API returns a bare feature list on some paths and a FeatureCollection on others.
        if isinstance(payload, list):
            features = payload
        elif isinstance(payload, dict) and isinstance(payload.get("features"), list):
            features = payload["features"]
        else:
            raise ProviderParseError("Healthsites response is not a feature collection", provider=self.adapter_id)

        rows = []
        for feature in features:
            if isinstance(feature, dict):
                row = feature_to_row(feature)
                if row is not None:
                    rows.append(row)
        return rows

    def _to_record(self, category: str, row: dict[str, Any]) -> Record:
        return build_facility(row, source=self.source_name, native_id=row.get("native_id"))
