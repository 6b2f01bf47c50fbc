"""
Post-ingestion standardization of facility records.

Applied to the live `facilities` and `osm_facilities` generations after all chains
have run:
- coordinates rounded to 6 decimals (~0.1 m),
- address whitespace collapsed,
- type re-normalized,
- empty transport options filled with a per-type default.
Values a provider actually supplied are never overwritten.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Sequence

from carereach.catalogs.normalize import normalize_facility_type, standardize_address
from carereach.catalogs.records import Accessibility, Facility, FacilityType, GeoPoint
from carereach.run_meta import utc_now

COORDINATE_DECIMALS = 6

DEFAULT_TRANSPORT: dict[FacilityType, tuple[str, ...]] = {
    FacilityType.HOSPITAL: ("bus", "rickshaw", "auto_rickshaw"),
    FacilityType.UPAZILA_HEALTH_COMPLEX: ("bus", "rickshaw"),
    FacilityType.UNION_HEALTH_CENTER: ("rickshaw", "van"),
    FacilityType.COMMUNITY_CLINIC: ("rickshaw", "van", "walking"),
}
FALLBACK_TRANSPORT: tuple[str, ...] = ("rickshaw",)


def default_transport_options(ftype: FacilityType) -> tuple[str, ...]:
    return DEFAULT_TRANSPORT.get(ftype, FALLBACK_TRANSPORT)


def determine_accessibility(ftype: FacilityType, current: Accessibility | None) -> Accessibility:
    if current is None:
        return Accessibility(
            road_access=True,
            public_transport=ftype != FacilityType.COMMUNITY_CLINIC and ftype in DEFAULT_TRANSPORT,
            transport_options=default_transport_options(ftype),
        )
    if current.transport_options:
        return current
    return replace(current, transport_options=default_transport_options(ftype))


def standardize_facility(facility: Facility) -> Facility:
    ftype = normalize_facility_type(facility.type)
    return replace(
        facility,
        location=GeoPoint(
            round(facility.location.lon, COORDINATE_DECIMALS),
            round(facility.location.lat, COORDINATE_DECIMALS),
        ),
        type=ftype,
        address=standardize_address(facility.address),
        accessibility=determine_accessibility(ftype, facility.accessibility),
        last_updated=utc_now(),
    )


def standardize_facilities(facilities: Sequence[Facility]) -> list[Facility]:
    return [standardize_facility(f) for f in facilities]
