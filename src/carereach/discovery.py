"""
Read-side query surface shared by the API and the CLI.

`DiscoveryService` wraps a `GeoStore` and answers the questions a patient-facing app
asks: which facilities are near me (ranked), which health workers cover this area,
and which way do I walk. Store read failures surface as `DataUnavailable` so callers
can show an explicit "data temporarily unavailable" state instead of an empty list.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, TypeVar

from carereach.catalogs.records import Facility, FacilityType, GeoPoint, Record, Worker
from carereach.errors import DataUnavailable, StoreError, ValidationError
from carereach.log import get_logger
from carereach.scoring.ranking import ProximityRanker, RankedFacility
from carereach.spatial.distance import (
    CardinalDirection,
    bearing_degrees,
    bucket_for_degrees,
    direction_label,
    haversine_m,
)
from carereach.store.base import FACILITY_CATEGORIES, WORKERS, GeoStore

DEFAULT_FACILITY_MAX_DISTANCE_M = 10_000.0
DEFAULT_FACILITY_LIMIT = 10
DEFAULT_WORKER_RADIUS_M = 5_000.0

TRAVEL_MODES = ("walking", "driving", "public_transport")
LANGUAGES = ("bn", "en")

_INSTRUCTIONS = {
    "bn": ("আপনার গন্তব্য {distance} মিটার দূরে", "{label} দিকে যান"),
    "en": ("Your destination is {distance} meters away", "Head {label}"),
}

T = TypeVar("T")


@dataclass(frozen=True)
class Direction:
    distance_m: float
    bearing_degrees: float
    bearing_bucket: CardinalDirection
    mode: str
    instructions: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "distance": round(self.distance_m, 1),
            "bearingDegrees": round(self.bearing_degrees, 2),
            "bearing": self.bearing_bucket.value,
            "mode": self.mode,
            "instructions": list(self.instructions),
        }


def parse_facility_type(value: Any) -> FacilityType | None:
    """Strict parse for query filters; unlike ingestion, an unknown type is a caller error."""
    if value is None or value == "":
        return None
    if isinstance(value, FacilityType):
        return value
    try:
        return FacilityType(str(value).strip().lower())
    except ValueError as e:
        allowed = ", ".join(t.value for t in FacilityType)
        raise ValidationError(f"Unknown facility type {value!r} (expected one of {allowed})") from e


def _same(a: str | None, b: str) -> bool:
    return a is None or a.strip().lower() == b.strip().lower()


class DiscoveryService:
    def __init__(self, store: GeoStore, *, language: str = "bn", settings: dict[str, Any] | None = None) -> None:
        self.store = store
        discovery_cfg = (settings or {}).get("discovery", {}) or {}
        language = str(discovery_cfg.get("language", language))
        if language not in LANGUAGES:
            raise ValueError(f"Unsupported language: {language!r}")
        self.language = language
        self.facility_max_distance_m = float(discovery_cfg.get("facility_max_distance_m", DEFAULT_FACILITY_MAX_DISTANCE_M))
        self.facility_limit = int(discovery_cfg.get("facility_limit", DEFAULT_FACILITY_LIMIT))
        self.worker_radius_m = float(discovery_cfg.get("worker_radius_m", DEFAULT_WORKER_RADIUS_M))
        self.ranker = ProximityRanker(store, categories=FACILITY_CATEGORIES)

    @classmethod
    def from_settings(cls, settings: dict[str, Any], store: GeoStore) -> "DiscoveryService":
        return cls(store, settings=settings)

    def _read(self, category: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except (StoreError, OSError, TimeoutError) as e:
            get_logger().error("Geo store read failed for %s: %s", category, e)
            raise DataUnavailable(f"{category} data is temporarily unavailable: {e}", category=category) from e

    # Facilities

    def nearest_facilities(
        self,
        location: Any,
        max_distance_m: float | None = None,
        limit: int | None = None,
        *,
        facility_type: Any = None,
        services: Iterable[str] | None = None,
    ) -> list[RankedFacility]:
        origin = GeoPoint.parse(location)
        max_distance_m = self.facility_max_distance_m if max_distance_m is None else float(max_distance_m)
        limit = self.facility_limit if limit is None else int(limit)
        if limit <= 0:
            raise ValidationError("limit must be > 0")
        if max_distance_m < 0:
            raise ValidationError("max_distance_m must be >= 0")
        return self.ranker.rank(
            origin,
            max_distance_m,
            limit,
            facility_type=parse_facility_type(facility_type),
            services=list(services) if services else None,
        )

    def list_facilities(
        self,
        facility_type: Any = None,
        upazila: str | None = None,
        district: str | None = None,
    ) -> list[Facility]:
        ftype = parse_facility_type(facility_type)
        out: list[Facility] = []
        seen: set[str] = set()
        for category in FACILITY_CATEGORIES:
            for r in self._read(category, lambda: self.store.all(category)):
                if not isinstance(r, Facility) or r.id in seen:
                    continue
                seen.add(r.id)
                if ftype is not None and r.type != ftype:
                    continue
                if not (_same(upazila, r.upazila) and _same(district, r.district)):
                    continue
                out.append(r)
        return out

    def get_facility(self, facility_id: str) -> Facility | None:
        for category in FACILITY_CATEGORIES:
            record = self._read(category, lambda: self.store.get(category, facility_id))
            if isinstance(record, Facility):
                return record
        return None

    # Health workers

    def nearest_workers(
        self,
        location: Any,
        radius_m: float | None = None,
        *,
        skill: str | None = None,
        upazila: str | None = None,
        district: str | None = None,
        verified: bool | None = None,
        limit: int | None = None,
    ) -> list[tuple[Worker, float]]:
        origin = GeoPoint.parse(location)
        radius_m = self.worker_radius_m if radius_m is None else float(radius_m)
        if radius_m < 0:
            raise ValidationError("radius_m must be >= 0")
        if limit is not None and limit <= 0:
            raise ValidationError("limit must be > 0")

        hits = self._read(WORKERS, lambda: self.store.near(WORKERS, origin, radius_m))
        out: list[tuple[Worker, float]] = []
        for record, distance in hits:
            if isinstance(record, Worker) and self._worker_matches(record, skill, upazila, district, verified):
                out.append((record, distance))
        return out[:limit] if limit is not None else out

    def list_workers(
        self,
        *,
        skill: str | None = None,
        upazila: str | None = None,
        district: str | None = None,
        verified: bool | None = None,
    ) -> list[Worker]:
        records = self._read(WORKERS, lambda: self.store.all(WORKERS))
        workers = [
            r for r in records if isinstance(r, Worker) and self._worker_matches(r, skill, upazila, district, verified)
        ]
        return sorted(workers, key=lambda w: (w.upazila, not w.verified, w.name))

    @staticmethod
    def _worker_matches(
        worker: Worker,
        skill: str | None,
        upazila: str | None,
        district: str | None,
        verified: bool | None,
    ) -> bool:
        if verified is not None and worker.verified != verified:
            return False
        if not (_same(upazila, worker.upazila) and _same(district, worker.district)):
            return False
        if skill and not any(_same(skill, s) for s in worker.skills):
            return False
        return True

    def get_worker(self, worker_id: str) -> Worker | None:
        record = self._read(WORKERS, lambda: self.store.get(WORKERS, worker_id))
        return record if isinstance(record, Worker) else None

    def search_workers(self, q: str) -> list[Worker]:
        needle = (q or "").strip().lower()
        if not needle:
            raise ValidationError("search query must not be empty")
        records = self._read(WORKERS, lambda: self.store.all(WORKERS))
        hits = [
            r
            for r in records
            if isinstance(r, Worker) and (needle in r.name.lower() or any(needle in s.lower() for s in r.skills))
        ]
        return sorted(hits, key=lambda w: (not w.verified, w.name))

    def list_skills(self) -> list[str]:
        records: list[Record] = self._read(WORKERS, lambda: self.store.all(WORKERS))
        skills = {s for r in records if isinstance(r, Worker) for s in r.skills}
        return sorted(skills)

    # Directions

    def direction(self, origin: Any, destination: Any, mode: str = "walking") -> Direction:
        """Straight-line distance and compass heading; no road routing."""
        if mode not in TRAVEL_MODES:
            raise ValidationError(f"Unknown travel mode {mode!r} (expected one of {', '.join(TRAVEL_MODES)})")
        a = GeoPoint.parse(origin)
        b = GeoPoint.parse(destination)
        distance = haversine_m(a, b)
        degrees = bearing_degrees(a, b)
        bucket = bucket_for_degrees(degrees)
        distance_tpl, heading_tpl = _INSTRUCTIONS[self.language]
        return Direction(
            distance_m=distance,
            bearing_degrees=degrees,
            bearing_bucket=bucket,
            mode=mode,
            instructions=(
                distance_tpl.format(distance=round(distance)),
                heading_tpl.format(label=direction_label(bucket, self.language)),
            ),
        )
