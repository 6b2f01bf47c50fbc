"""
HDX (Humanitarian Data Exchange) bulk tabular dataset adapter.

The dataset page does not have a stable download URL, so the CSV is discovered:
1) an explicit `csv_url` option wins;
2) otherwise the dataset page is scraped for a `.csv` download link;
3) otherwise the CKAN `package_show` API is asked for a CSV resource.

Column names differ between dataset revisions (`lat` vs `latitude` vs `osm_lat`), so
each canonical field is resolved from an ordered alias list, case-insensitively.
"""

from __future__ import annotations

import io
from typing import Any, Iterable, Mapping
from urllib.parse import urljoin

import pandas as pd
# BeautifulSoup reads the dataset page; the download link is in plain anchors.
from bs4 import BeautifulSoup

from carereach.catalogs.normalize import build_facility
from carereach.catalogs.records import Record
from carereach.errors import ProviderNetworkError, ProviderParseError
from carereach.ingestion.adapters.base import SourceAdapter
from carereach.log import get_logger
from carereach.store.base import FACILITIES, OSM_FACILITIES

HDX_BASE_URL = "https://data.humdata.org"

COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "name": ("name", "facility_name", "osm_name"),
    "lat": ("lat", "latitude", "osm_lat", "y"),
    "lon": ("lon", "longitude", "osm_lon", "lng", "x"),
    "type": ("amenity", "facility_type", "healthcare"),
    "address": ("addr_full", "address", "addr:full"),
    "upazila": ("addr_subdistrict", "upazila", "addr:subdistrict"),
    "district": ("addr_district", "district", "addr:district"),
    "division": ("addr_state", "division", "addr:state"),
    "services": ("healthcare", "services"),
    "phone": ("phone", "contact_phone"),
    "email": ("email", "contact_email"),
    "opening_hours": ("opening_hours",),
    "public_transport": ("public_transport",),
    "transport": ("transport",),
    "accessibility_notes": ("accessibility",),
    "native_id": ("osm_id", "id", "fid"),
}


def resolve_columns(columns: Iterable[str]) -> dict[str, str]:
    """Map canonical field -> actual column name for the columns present."""
    by_lower = {str(c).strip().lower(): str(c) for c in columns}
    out: dict[str, str] = {}
    for field_name, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in by_lower:
                out[field_name] = by_lower[alias]
                break
    return out


def find_csv_link(html: str, *, base_url: str = HDX_BASE_URL) -> str | None:
    soup = BeautifulSoup(html, "html.parser")
    for a in soup.select('a[href*=".csv"]'):
        href = str(a.get("href") or "")
        if "download" in href:
            return href if href.startswith("http") else urljoin(base_url, href)
    return None


def find_csv_resource(package: Mapping[str, Any]) -> str | None:
    result = package.get("result") or {}
    for resource in result.get("resources") or []:
        fmt = str(resource.get("format") or "").lower()
        url = str(resource.get("url") or "")
        if fmt == "csv" or ".csv" in url:
            return url or None
    return None


class HdxTabularAdapter(SourceAdapter):
    adapter_id = "hdx"
    categories = frozenset({FACILITIES, OSM_FACILITIES})
    source_name = "HDX"

    def _discover_csv_url(self) -> str:
        explicit = self.options.get("csv_url")
        if explicit:
            return str(explicit)

        api_url = self.options.get("api_url")
        if self.url:
            try:
                html = self.client.get_text(self.url, provider=self.adapter_id, timeout_s=self.timeout_s)
            except ProviderNetworkError as e:
                # The CKAN API is a second way in; only give up when there is none.
                if not api_url:
                    raise
                get_logger().warning("HDX dataset page unavailable, trying CKAN API: %s", e)
            else:
                link = find_csv_link(html)
                if link:
                    return link

        if api_url:
            package = self.client.get_json(str(api_url), provider=self.adapter_id, timeout_s=self.timeout_s)
            if not isinstance(package, dict):
                raise ProviderParseError("CKAN package_show did not return an object", provider=self.adapter_id)
            link = find_csv_resource(package)
            if link:
                return link

        raise ProviderParseError("No CSV resource found on the dataset page or CKAN API", provider=self.adapter_id)

    def _fetch_rows(self, category: str, params: Mapping[str, Any]) -> Iterable[dict[str, Any]]:
        csv_url = self._discover_csv_url()
        get_logger().info("Downloading %s data from %s", self.adapter_id, csv_url)
        text = self.client.get_text(csv_url, provider=self.adapter_id, timeout_s=self.timeout_s)

        df = pd.read_csv(io.StringIO(text), dtype=str, skip_blank_lines=True)
        cols = resolve_columns(df.columns)
        if "lat" not in cols or "lon" not in cols:
            raise ProviderParseError(
                f"CSV has no coordinate columns (columns={list(df.columns)[:20]})", provider=self.adapter_id
            )

        rows: list[dict[str, Any]] = []
        for raw in df.to_dict(orient="records"):
            rows.append({field_name: raw.get(col) for field_name, col in cols.items()})
        return rows

    def _to_record(self, category: str, row: dict[str, Any]) -> Record:
        native_id = row.get("native_id")
        if isinstance(native_id, float):
            native_id = None
        return build_facility(row, source=self.source_name, native_id=native_id)
