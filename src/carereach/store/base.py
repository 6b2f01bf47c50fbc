"""
Geo store contract.

A store keeps one live generation of records per category. Readers only ever see a
complete generation: `replace_all` builds the new generation off to the side and then
swaps it in, so a query racing an ingestion run sees either the old or the new data,
never an empty or half-written category.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Sequence

from carereach.catalogs.records import GeoPoint, Record
from carereach.run_meta import new_run_id, utc_now_iso
from carereach.spatial.joins import GeoIndex

FACILITIES = "facilities"
OSM_FACILITIES = "osm_facilities"
BOUNDARIES = "boundaries"
WORKERS = "workers"

CATEGORIES = (FACILITIES, OSM_FACILITIES, BOUNDARIES, WORKERS)
# Both generations hold `Facility` records; discovery ranks and lists them together.
FACILITY_CATEGORIES = (FACILITIES, OSM_FACILITIES)


def check_category(category: str) -> str:
    if category not in CATEGORIES:
        raise ValueError(f"Unknown category: {category!r} (expected one of {', '.join(CATEGORIES)})")
    return category


@dataclass(frozen=True)
class Generation:
    generation_id: str
    created_at: str
    records: tuple[Record, ...]
    index: GeoIndex = field(repr=False)
    by_id: dict[str, Record] = field(repr=False)

    @classmethod
    def build(
        cls,
        records: Sequence[Record],
        *,
        generation_id: str | None = None,
        created_at: str | None = None,
    ) -> "Generation":
        recs = tuple(records)
        return cls(
            generation_id=generation_id or new_run_id(),
            created_at=created_at or utc_now_iso(),
            records=recs,
            index=GeoIndex(recs, [r.location for r in recs]),
            by_id={r.id: r for r in recs},
        )


EMPTY_GENERATION = Generation.build((), generation_id="empty", created_at="")


class GeoStore(ABC):
    """Read/replace interface shared by the in-memory and file-backed stores."""

    def __init__(self) -> None:
        self._swap_lock = threading.Lock()

    @abstractmethod
    def _current(self, category: str) -> Generation:
        raise NotImplementedError

    @abstractmethod
    def _publish(self, category: str, generation: Generation) -> None:
        raise NotImplementedError

    def near(
        self,
        category: str,
        origin: GeoPoint,
        max_distance_m: float,
        limit: int | None = None,
    ) -> list[tuple[Record, float]]:
        """Records within `max_distance_m` of `origin`, nearest first, with their distance."""
        return self._current(check_category(category)).index.within(origin, max_distance_m, limit=limit)

    def all(self, category: str) -> list[Record]:
        return list(self._current(check_category(category)).records)

    def get(self, category: str, record_id: str) -> Record | None:
        return self._current(check_category(category)).by_id.get(record_id)

    def count(self, category: str) -> int:
        return len(self._current(check_category(category)).records)

    def generation_info(self, category: str) -> dict[str, Any]:
        gen = self._current(check_category(category))
        return {
            "category": category,
            "generation_id": gen.generation_id,
            "created_at": gen.created_at,
            "count": len(gen.records),
        }

    def replace_all(self, category: str, records: Sequence[Record]) -> str:
        """Stage `records` as a new generation and swap it in. Returns the generation id."""
        check_category(category)
        generation = Generation.build(records)
        with self._swap_lock:
            self._publish(category, generation)
        return generation.generation_id
