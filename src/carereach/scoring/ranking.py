"""
Proximity ranking for facilities.

Every caller (API, CLI, discovery service) goes through `ProximityRanker.rank`, so one
formula decides the order everywhere:

    combined = DISTANCE_WEIGHT * distance_m + ACCESSIBILITY_WEIGHT * (100 - accessibility)

Lower is better. Note the units: distance is meters, the accessibility term is a
0-100 deficit. With these weights one accessibility point is worth ~67 m of distance.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from carereach.catalogs.records import Facility, FacilityType, GeoPoint
from carereach.errors import DataUnavailable, StoreError
from carereach.log import get_logger
from carereach.scoring.accessibility import MAX_SCORE, accessibility_score
from carereach.store.base import FACILITY_CATEGORIES, GeoStore

DISTANCE_WEIGHT = 0.6
ACCESSIBILITY_WEIGHT = 40.0
# Candidates fetched per requested result, so accessibility can reorder a wider pool.
OVERFETCH_FACTOR = 2


def combined_score(distance_m: float, accessibility: int) -> float:
    return DISTANCE_WEIGHT * float(distance_m) + ACCESSIBILITY_WEIGHT * (MAX_SCORE - int(accessibility))


@dataclass(frozen=True)
class RankedFacility:
    record: Facility
    distance_m: float
    accessibility_score: int
    combined_score: float

    def to_dict(self) -> dict[str, Any]:
        out = self.record.to_dict()
        out["distance"] = round(self.distance_m, 1)
        out["accessibilityScore"] = self.accessibility_score
        out["combinedScore"] = round(self.combined_score, 2)
        return out


def _matches(facility: Facility, facility_type: FacilityType | None, services: Iterable[str] | None) -> bool:
    if facility_type is not None and facility.type != facility_type:
        return False
    if services:
        wanted = {s.strip().lower() for s in services if s and s.strip()}
        offered = {s.strip().lower() for s in facility.services}
        if wanted and not (wanted & offered):
            return False
    return True


class ProximityRanker:
    def __init__(self, store: GeoStore, *, categories: Sequence[str] = FACILITY_CATEGORIES) -> None:
        self.store = store
        self.categories = tuple(categories)

    def _near(self, origin: GeoPoint, max_distance_m: float, limit: int | None) -> list[tuple[Facility, float]]:
        # Nearest-first across every facility category; an id seen twice keeps the first category's record.
        merged: list[tuple[Facility, float]] = []
        seen: set[str] = set()
        for category in self.categories:
            try:
                hits = self.store.near(category, origin, max_distance_m, limit=limit)
            except (StoreError, OSError, TimeoutError) as e:
                get_logger().error("Geo store read failed for %s: %s", category, e)
                raise DataUnavailable(f"Facility data is temporarily unavailable: {e}", category=category) from e
            for record, distance in hits:
                if record.id in seen or not isinstance(record, Facility):
                    continue
                seen.add(record.id)
                merged.append((record, distance))
        return sorted(merged, key=lambda pair: pair[1])

    def rank(
        self,
        origin: GeoPoint,
        max_distance_m: float,
        limit: int,
        *,
        facility_type: FacilityType | None = None,
        services: Iterable[str] | None = None,
    ) -> list[RankedFacility]:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        if max_distance_m < 0:
            raise ValueError("max_distance_m must be >= 0")

        filtered = facility_type is not None or bool(services)
        # Filters are applied before truncation so they do not starve the candidate pool.
        candidates = self._near(origin, max_distance_m, None if filtered else OVERFETCH_FACTOR * limit)
        if filtered:
            candidates = [(r, d) for r, d in candidates if _matches(r, facility_type, services)]
        candidates = candidates[: OVERFETCH_FACTOR * limit]

        ranked: list[RankedFacility] = []
        for record, distance in candidates:
            score = accessibility_score(record.accessibility)
            ranked.append(
                RankedFacility(
                    record=record,
                    distance_m=distance,
                    accessibility_score=score,
                    combined_score=combined_score(distance, score),
                )
            )
        # `sorted` is stable, so equal scores keep nearest-first order from the store.
        ranked = sorted(ranked, key=lambda r: r.combined_score)
        return ranked[:limit]
