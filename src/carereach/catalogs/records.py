"""
Canonical record shapes for facilities, health workers and administrative boundaries.

Every provider payload is normalized into one of these dataclasses before it reaches
the geo store. The two invariants that matter downstream are enforced here:

- `location` is always a valid `GeoPoint` (lon/lat within world bounds), and
- `type` is always a member of the canonical enum, never a raw provider string.

Persistence uses plain dicts (`to_dict` / `from_dict`) with GeoJSON point geometry,
so the file store and the API can share one serialized shape.
"""

from __future__ import annotations

import hashlib
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

from carereach.errors import InvalidCoordinate


class FacilityType(str, Enum):
    HOSPITAL = "hospital"
    CLINIC = "clinic"
    COMMUNITY_CLINIC = "community_clinic"
    UPAZILA_HEALTH_COMPLEX = "upazila_health_complex"
    UNION_HEALTH_CENTER = "union_health_center"


class WorkerType(str, Enum):
    CHW = "CHW"
    DOCTOR = "doctor"
    NURSE = "nurse"
    MIDWIFE = "midwife"
    VOLUNTEER = "volunteer"


class Availability(str, Enum):
    FULL_TIME = "full_time"
    PART_TIME = "part_time"
    ON_CALL = "on_call"


def _coerce_float(value: Any, label: str) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidCoordinate(f"{label} is not numeric: {value!r}") from e
    if not math.isfinite(out):
        raise InvalidCoordinate(f"{label} is not finite: {value!r}")
    return out


@dataclass(frozen=True)
class GeoPoint:
    lon: float
    lat: float

    def __post_init__(self) -> None:
        if not -180.0 <= self.lon <= 180.0:
            raise InvalidCoordinate(f"longitude out of range: {self.lon}")
        if not -90.0 <= self.lat <= 90.0:
            raise InvalidCoordinate(f"latitude out of range: {self.lat}")

    @classmethod
    def of(cls, lon: Any, lat: Any) -> "GeoPoint":
        return cls(lon=_coerce_float(lon, "longitude"), lat=_coerce_float(lat, "latitude"))

    @classmethod
    def parse(cls, value: Any) -> "GeoPoint":
        """Accept `[lon, lat]`, `(lon, lat)`, `"lon,lat"`, a mapping, or a GeoJSON Point."""
        if isinstance(value, GeoPoint):
            return value
        if isinstance(value, str):
            parts = [p.strip() for p in value.split(",")]
            if len(parts) != 2:
                raise InvalidCoordinate(f"expected 'lon,lat', got {value!r}")
            return cls.of(parts[0], parts[1])
        if isinstance(value, dict):
            if "coordinates" in value:
                return cls.parse(value["coordinates"])
            lon = value.get("lon", value.get("lng", value.get("longitude")))
            lat = value.get("lat", value.get("latitude"))
            return cls.of(lon, lat)
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return cls.of(value[0], value[1])
        raise InvalidCoordinate(f"unsupported coordinate value: {value!r}")

    def to_list(self) -> list[float]:
        return [self.lon, self.lat]

    def to_geojson(self) -> dict[str, Any]:
        return {"type": "Point", "coordinates": [self.lon, self.lat]}


@dataclass(frozen=True)
class Accessibility:
    road_access: bool = True
    public_transport: bool = False
    transport_options: tuple[str, ...] = ()
    notes: str = ""

    def __post_init__(self) -> None:
        # Transport options behave like a set; keep first-seen order for stable output.
        seen: dict[str, None] = {}
        for opt in self.transport_options:
            key = str(opt).strip()
            if key:
                seen.setdefault(key, None)
        object.__setattr__(self, "transport_options", tuple(seen))

    def to_dict(self) -> dict[str, Any]:
        return {
            "roadAccess": self.road_access,
            "publicTransport": self.public_transport,
            "transportOptions": list(self.transport_options),
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Accessibility":
        data = data or {}
        return cls(
            road_access=bool(data.get("roadAccess", data.get("road_access", True))),
            public_transport=bool(data.get("publicTransport", data.get("public_transport", False))),
            transport_options=tuple(data.get("transportOptions", data.get("transport_options")) or ()),
            notes=str(data.get("notes", data.get("accessibilityNotes", "")) or ""),
        )


@dataclass(frozen=True)
class Contact:
    phone: str | None = None
    email: str | None = None
    whatsapp: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"phone": self.phone, "email": self.email, "whatsapp": self.whatsapp}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Contact":
        data = data or {}
        return cls(phone=data.get("phone"), email=data.get("email"), whatsapp=data.get("whatsapp"))


def _dt_to_str(value: datetime) -> str:
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat()


def _dt_from_str(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            dt = datetime.fromisoformat(value)
        except ValueError:
            dt = None
        if dt is not None:
            return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def make_record_id(source: str, *parts: Any) -> str:
    raw = "|".join([str(source)] + [str(p) for p in parts])
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class Facility:
    id: str
    name: str
    type: FacilityType
    location: GeoPoint
    address: str = "Unknown Address"
    upazila: str = "Unknown"
    district: str = "Unknown"
    division: str = "Unknown"
    services: tuple[str, ...] = ()
    contact: Contact = field(default_factory=Contact)
    operating_hours: str = "Unknown"
    accessibility: Accessibility = field(default_factory=Accessibility)
    verified: bool = False
    source: str = "unknown"
    last_updated: datetime = field(default_factory=_now)

    kind = "facility"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "name": self.name,
            "type": self.type.value,
            "location": self.location.to_geojson(),
            "address": self.address,
            "upazila": self.upazila,
            "district": self.district,
            "division": self.division,
            "services": list(self.services),
            "contact": self.contact.to_dict(),
            "operatingHours": self.operating_hours,
            "accessibility": self.accessibility.to_dict(),
            "verified": self.verified,
            "source": self.source,
            "lastUpdated": _dt_to_str(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Facility":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or "Unknown Facility"),
            type=FacilityType(data["type"]),
            location=GeoPoint.parse(data["location"]),
            address=str(data.get("address") or "Unknown Address"),
            upazila=str(data.get("upazila") or "Unknown"),
            district=str(data.get("district") or "Unknown"),
            division=str(data.get("division") or "Unknown"),
            services=tuple(data.get("services") or ()),
            contact=Contact.from_dict(data.get("contact")),
            operating_hours=str(data.get("operatingHours") or "Unknown"),
            accessibility=Accessibility.from_dict(data.get("accessibility")),
            verified=bool(data.get("verified", False)),
            source=str(data.get("source") or "unknown"),
            last_updated=_dt_from_str(data.get("lastUpdated")),
        )

    def with_changes(self, **changes: Any) -> "Facility":
        return replace(self, **changes)


@dataclass(frozen=True)
class Worker:
    id: str
    name: str
    type: WorkerType
    location: GeoPoint
    service_area: dict[str, Any] | None = None
    contact: Contact = field(default_factory=Contact)
    skills: tuple[str, ...] = ()
    availability: Availability = Availability.FULL_TIME
    organization: str | None = None
    languages: tuple[str, ...] = ()
    upazila: str = "Unknown"
    district: str = "Unknown"
    division: str = "Unknown"
    verified: bool = False
    source: str = "unknown"
    last_updated: datetime = field(default_factory=_now)

    kind = "worker"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "name": self.name,
            "type": self.type.value,
            "location": self.location.to_geojson(),
            "serviceArea": self.service_area,
            "contact": self.contact.to_dict(),
            "skills": list(self.skills),
            "availability": self.availability.value,
            "organization": self.organization,
            "languages": list(self.languages),
            "upazila": self.upazila,
            "district": self.district,
            "division": self.division,
            "verified": self.verified,
            "source": self.source,
            "lastUpdated": _dt_to_str(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Worker":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or "Unknown"),
            type=WorkerType(data["type"]),
            location=GeoPoint.parse(data["location"]),
            service_area=data.get("serviceArea"),
            contact=Contact.from_dict(data.get("contact")),
            skills=tuple(data.get("skills") or ()),
            availability=Availability(data.get("availability") or Availability.FULL_TIME.value),
            organization=data.get("organization"),
            languages=tuple(data.get("languages") or ()),
            upazila=str(data.get("upazila") or "Unknown"),
            district=str(data.get("district") or "Unknown"),
            division=str(data.get("division") or "Unknown"),
            verified=bool(data.get("verified", False)),
            source=str(data.get("source") or "unknown"),
            last_updated=_dt_from_str(data.get("lastUpdated")),
        )


@dataclass(frozen=True)
class Boundary:
    id: str
    name: str
    district: str
    division: str
    geometry: dict[str, Any]
    location: GeoPoint
    source: str = "unknown"
    last_updated: datetime = field(default_factory=_now)

    kind = "boundary"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "name": self.name,
            "district": self.district,
            "division": self.division,
            "geometry": self.geometry,
            "location": self.location.to_geojson(),
            "source": self.source,
            "lastUpdated": _dt_to_str(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Boundary":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or "Unknown Upazila"),
            district=str(data.get("district") or "Unknown District"),
            division=str(data.get("division") or "Unknown Division"),
            geometry=dict(data.get("geometry") or {}),
            location=GeoPoint.parse(data["location"]),
            source=str(data.get("source") or "unknown"),
            last_updated=_dt_from_str(data.get("lastUpdated")),
        )


Record = Union[Facility, Worker, Boundary]

_KINDS: dict[str, Any] = {"facility": Facility, "worker": Worker, "boundary": Boundary}


def record_from_dict(data: dict[str, Any]) -> Record:
    kind = str(data.get("kind") or "")
    record_cls = _KINDS.get(kind)
    if record_cls is None:
        raise ValueError(f"Unknown record kind: {kind!r}")
    return record_cls.from_dict(data)
