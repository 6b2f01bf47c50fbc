"""
Built-in seed data: the last link of every fallback chain.

These are small, hand-checked records for Bangladesh, defined as Python constants
(no file or network I/O). A fresh deployment with no provider reachable still answers
"nearest facility" queries around Dhaka and Khulna.
"""

from __future__ import annotations

from typing import Any, Callable

from carereach.catalogs.records import (
    Accessibility,
    Availability,
    Boundary,
    Contact,
    Facility,
    FacilityType,
    GeoPoint,
    Record,
    Worker,
    WorkerType,
    make_record_id,
)
from carereach.spatial.buffers import representative_point
from carereach.store.base import BOUNDARIES, FACILITIES, OSM_FACILITIES, WORKERS

SEED_SOURCE = "seed"
SEED_OSM_SOURCE = "seed_osm"

_DHAKA = {"district": "Dhaka", "division": "Dhaka Division"}

_FACILITIES: list[dict[str, Any]] = [
    {
        "name": "Dhaka Medical College Hospital",
        "type": FacilityType.HOSPITAL,
        "lonlat": (90.4087, 23.7329),
        "address": "Shahbagh, Dhaka",
        "upazila": "Shahbagh",
        "services": ("Emergency care", "Surgery", "Maternity care"),
        "phone": "+880-2-8616661",
        "hours": "24/7",
        "transport": ("bus", "rickshaw", "auto_rickshaw"),
    },
    {
        "name": "Kurmitola General Hospital",
        "type": FacilityType.HOSPITAL,
        "lonlat": (90.3948, 23.8251),
        "address": "Kurmitola, Dhaka",
        "upazila": "Kurmitola",
        "services": ("Emergency care", "Surgery", "Maternity care"),
        "phone": "+880-2-55045312",
        "hours": "24/7",
        "transport": ("bus", "rickshaw", "auto_rickshaw"),
    },
    {
        "name": "Savar Upazila Health Complex",
        "type": FacilityType.UPAZILA_HEALTH_COMPLEX,
        "lonlat": (90.2667, 23.8583),
        "address": "Savar, Dhaka",
        "upazila": "Savar",
        "services": ("Primary care", "Maternity care", "Child health"),
        "phone": "+880-2-7744752",
        "hours": "08:00-20:00",
        "transport": ("bus", "rickshaw"),
    },
    {
        "name": "Mirpur Model Union Health Center",
        "type": FacilityType.UNION_HEALTH_CENTER,
        "lonlat": (90.3628, 23.8223),
        "address": "Mirpur, Dhaka",
        "upazila": "Mirpur",
        "services": ("Primary care", "Vaccination", "Maternity care"),
        "phone": "+880-2-8012986",
        "hours": "08:00-16:00",
        "transport": ("rickshaw", "van"),
    },
]

_OSM_FACILITIES: list[dict[str, Any]] = [
    {
        "name": "Bangabandhu Sheikh Mujib Medical University",
        "type": FacilityType.HOSPITAL,
        "lonlat": (90.4125, 23.8103),
        "address": "Shahbagh, Dhaka",
        "upazila": "Shahbagh",
        "services": ("Emergency care", "Surgery", "Maternity care"),
        "phone": "+880-2-9661051",
        "hours": "24/7",
        "transport": ("bus", "rickshaw", "auto_rickshaw"),
    },
    {
        "name": "Ibrahim Medical College Hospital",
        "type": FacilityType.CLINIC,
        "lonlat": (90.3760, 23.7465),
        "address": "Abul Hasnat, Dhaka",
        "upazila": "Dhanmondi",
        "services": ("Primary care", "Specialist care"),
        "phone": "+880-2-58615162",
        "hours": "08:00-22:00",
        "transport": ("bus", "rickshaw", "auto_rickshaw"),
    },
    {
        "name": "Dr. Mia's Clinic",
        "type": FacilityType.CLINIC,
        "lonlat": (90.4087, 23.7925),
        "address": "Dhanmondi, Dhaka",
        "upazila": "Dhanmondi",
        "services": ("General practice",),
        "phone": "+880-2-8616662",
        "hours": "09:00-20:00",
        "transport": ("rickshaw", "auto_rickshaw"),
    },
]


def _square(min_lon: float, min_lat: float, max_lon: float, max_lat: float) -> dict[str, Any]:
    return {
        "type": "Polygon",
        "coordinates": [
            [
                [min_lon, min_lat],
                [max_lon, min_lat],
                [max_lon, max_lat],
                [min_lon, max_lat],
                [min_lon, min_lat],
            ]
        ],
    }


_BOUNDARIES: list[dict[str, Any]] = [
    {"name": "Savar Upazila", "district": "Dhaka District", "division": "Dhaka Division",
     "geometry": _square(90.20, 23.80, 90.30, 23.90)},
    {"name": "Mirpur Upazila", "district": "Dhaka District", "division": "Dhaka Division",
     "geometry": _square(90.30, 23.70, 90.40, 23.80)},
    {"name": "Sitakunda Upazila", "district": "Chittagong District", "division": "Chittagong Division",
     "geometry": _square(91.60, 22.50, 91.70, 22.60)},
    {"name": "Dumuria Upazila", "district": "Khulna District", "division": "Khulna Division",
     "geometry": _square(89.40, 22.80, 89.50, 22.90)},
]

_WORKERS: list[dict[str, Any]] = [
    {
        "name": "মোঃ আব্দুল করিম",
        "lonlat": (90.4125, 23.8103),
        "service_area": _square(90.40, 23.80, 90.42, 23.82),
        "phone": "+8801712345678",
        "skills": ("Maternal health", "Child health", "Basic first aid"),
        "availability": Availability.FULL_TIME,
        "organization": "DGHS",
        "languages": ("Bangla", "English"),
        "district": "Dhaka",
        "division": "Dhaka Division",
    },
    {
        "name": "ফাতেমা বেগম",
        "lonlat": (89.5403, 22.8077),
        "service_area": _square(89.53, 22.80, 89.55, 22.81),
        "phone": "+8801812345678",
        "skills": ("Maternal health", "Child health", "Vaccination support"),
        "availability": Availability.PART_TIME,
        "organization": "BRAC",
        "languages": ("Bangla",),
        "district": "Khulna",
        "division": "Khulna Division",
    },
]


def _facility(row: dict[str, Any], source: str) -> Facility:
    return Facility(
        id=make_record_id(source, row["name"]),
        name=row["name"],
        type=row["type"],
        location=GeoPoint(*row["lonlat"]),
        address=row["address"],
        upazila=row["upazila"],
        services=row["services"],
        contact=Contact(phone=row["phone"]),
        operating_hours=row["hours"],
        accessibility=Accessibility(road_access=True, public_transport=True, transport_options=row["transport"]),
        source=source,
        **_DHAKA,
    )


def seed_facilities() -> list[Facility]:
    return [_facility(row, SEED_SOURCE) for row in _FACILITIES]


def seed_osm_facilities() -> list[Facility]:
    return [_facility(row, SEED_OSM_SOURCE) for row in _OSM_FACILITIES]


def seed_boundaries() -> list[Boundary]:
    return [
        Boundary(
            id=make_record_id(SEED_SOURCE, "boundary", row["name"]),
            name=row["name"],
            district=row["district"],
            division=row["division"],
            geometry=row["geometry"],
            location=representative_point(row["geometry"]),
            source=SEED_SOURCE,
        )
        for row in _BOUNDARIES
    ]


def seed_workers() -> list[Worker]:
    return [
        Worker(
            id=make_record_id(SEED_SOURCE, "worker", row["name"]),
            name=row["name"],
            type=WorkerType.CHW,
            location=GeoPoint(*row["lonlat"]),
            service_area=row["service_area"],
            contact=Contact(phone=row["phone"], whatsapp=row["phone"]),
            skills=row["skills"],
            availability=row["availability"],
            organization=row["organization"],
            languages=row["languages"],
            district=row["district"],
            division=row["division"],
            verified=True,
            source=SEED_SOURCE,
        )
        for row in _WORKERS
    ]


SEED_LOADERS: dict[str, Callable[[], list[Record]]] = {
    FACILITIES: seed_facilities,
    OSM_FACILITIES: seed_osm_facilities,
    BOUNDARIES: seed_boundaries,
    WORKERS: seed_workers,
}
