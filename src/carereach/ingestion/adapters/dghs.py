"""
DGHS facility-head contact directory (HTML tables) -> health worker records.

The page is a set of plain tables whose rows read `name | designation | contact |
facility`. There are no coordinates, so each worker is placed at the divisional city
named in the facility text (default Dhaka) and given a circular 1 km service area.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping

# BeautifulSoup parses the directory's HTML tables.
from bs4 import BeautifulSoup

from carereach.catalogs.normalize import clean_text, infer_skills, normalize_worker_type
from carereach.catalogs.records import Availability, Contact, GeoPoint, Record, Worker, make_record_id
from carereach.errors import ProviderParseError
from carereach.ingestion.adapters.base import SourceAdapter
from carereach.spatial.buffers import service_area_polygon
from carereach.store.base import WORKERS

PHONE_RE = re.compile(r"(\+?880?1[3-9]\d{8}|01[3-9]\d{8})")
HEADER_MARKERS = ("name", "পদবী")

# Divisional cities, (lon, lat).
GAZETTEER: dict[str, tuple[float, float]] = {
    "dhaka": (90.4125, 23.8103),
    "chittagong": (91.7832, 22.3569),
    "chattogram": (91.7832, 22.3569),
    "khulna": (89.5403, 22.8077),
    "rajshahi": (88.5974, 24.3636),
    "sylhet": (91.8833, 24.8949),
    "barisal": (90.3696, 22.7010),
    "barishal": (90.3696, 22.7010),
    "rangpur": (89.2444, 25.7439),
    "mymensingh": (90.4203, 24.7471),
}
DEFAULT_PLACE = "dhaka"


def geocode_place(text: Any) -> tuple[str, GeoPoint]:
    """Return (matched city, point); unmatched text falls back to Dhaka."""
    lowered = str(text or "").lower()
    for place, (lon, lat) in GAZETTEER.items():
        if place in lowered:
            return place, GeoPoint(lon, lat)
    lon, lat = GAZETTEER[DEFAULT_PLACE]
    return DEFAULT_PLACE, GeoPoint(lon, lat)


def extract_phone(contact: str) -> str:
    match = PHONE_RE.search(contact)
    return match.group(0) if match else contact.strip()


def parse_contact_tables(html: str) -> list[dict[str, str]]:
    soup = BeautifulSoup(html, "html.parser")
    rows: list[dict[str, str]] = []
    for table in soup.find_all("table"):
        for tr in table.find_all("tr"):
            cells = [c.get_text(" ", strip=True) for c in tr.find_all(["td", "th"])]
            if len(cells) < 3:
                continue
            name, designation, contact = cells[0], cells[1], cells[2]
            facility = cells[3] if len(cells) > 3 else ""
            lowered = name.lower()
            if not name or not contact or any(marker in lowered for marker in HEADER_MARKERS):
                continue
            rows.append({"name": name, "designation": designation, "contact": contact, "facility": facility})
    return rows


class DghsContactsAdapter(SourceAdapter):
    adapter_id = "dghs"
    categories = frozenset({WORKERS})
    source_name = "DGHS"

    def _fetch_rows(self, category: str, params: Mapping[str, Any]) -> Iterable[dict[str, Any]]:
        if not self.url:
            raise ProviderParseError("DGHS adapter has no URL configured", provider=self.adapter_id)
        html = self.client.get_text(self.url, provider=self.adapter_id, timeout_s=self.timeout_s)
        if "<table" not in html.lower():
            raise ProviderParseError("DGHS page has no tables", provider=self.adapter_id)
        return parse_contact_tables(html)

    def _to_record(self, category: str, row: dict[str, Any]) -> Record:
        place, location = geocode_place(row.get("facility"))
        phone = extract_phone(str(row.get("contact") or ""))
        designation = str(row.get("designation") or "")
        radius_m = float(self.options.get("service_area_radius_m", 1000.0))
        return Worker(
            id=make_record_id(self.source_name, row["name"], phone),
            name=clean_text(row["name"]),
            type=normalize_worker_type(designation),
            location=location,
            service_area=service_area_polygon(location, radius_m=radius_m),
            contact=Contact(phone=phone, whatsapp=phone),
            skills=infer_skills(designation),
            availability=Availability.FULL_TIME,
            organization="DGHS",
            languages=("Bangla",),
            district=place.title(),
            division=f"{place.title()} Division",
            verified=True,
            source=self.source_name,
        )
