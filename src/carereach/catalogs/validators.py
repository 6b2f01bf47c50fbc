"""
Batch checks run on a category's records before they are swapped into the store.

Instead of raising, we return a structured result:
- `errors`: conditions that make the batch unusable (nothing to publish),
- `warnings`: suspicious rows that are kept or dropped with a note (duplicate ids,
  points outside the service region, placeholder names),
- `stats`: small counts that end up in the ingestion report.

`dedupe_records` is the one mutating helper: later duplicates of an id are dropped.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Sequence

from carereach.catalogs.records import Boundary, Facility, Record, Worker

# Bangladesh with a small margin; points outside are kept but flagged.
DEFAULT_REGION_BBOX = (88.0, 20.5, 92.75, 26.75)


@dataclass(frozen=True)
class BatchValidationResult:
    errors: list[str]
    warnings: list[str]
    stats: dict[str, Any]

    @property
    def ok(self) -> bool:
        return len(self.errors) == 0


def dedupe_records(records: Sequence[Record]) -> tuple[list[Record], int]:
    seen: set[str] = set()
    out: list[Record] = []
    for r in records:
        if r.id in seen:
            continue
        seen.add(r.id)
        out.append(r)
    return out, len(records) - len(out)


def validate_records(
    category: str,
    records: Sequence[Record],
    *,
    region_bbox: tuple[float, float, float, float] | None = DEFAULT_REGION_BBOX,
    max_examples: int = 5,
) -> BatchValidationResult:
    errors: list[str] = []
    warnings: list[str] = []

    if not records:
        errors.append(f"{category}: no records to publish")
        return BatchValidationResult(errors=errors, warnings=warnings, stats={"count": 0})

    id_counts = Counter(r.id for r in records)
    dup_ids = sorted(i for i, n in id_counts.items() if n > 1)
    if dup_ids:
        warnings.append(f"{category}: duplicate ids {dup_ids[:max_examples]} ({len(dup_ids)} total)")

    unnamed = [r.id for r in records if r.name.lower().startswith("unknown")]
    if unnamed:
        warnings.append(f"{category}: {len(unnamed)} records have placeholder names (e.g. {unnamed[:max_examples]})")

    outside: list[str] = []
    if region_bbox is not None:
        min_lon, min_lat, max_lon, max_lat = region_bbox
        for r in records:
            if not (min_lon <= r.location.lon <= max_lon and min_lat <= r.location.lat <= max_lat):
                outside.append(r.id)
        if outside:
            warnings.append(f"{category}: {len(outside)} records outside the service region (e.g. {outside[:max_examples]})")

    by_type: dict[str, int] = {}
    for r in records:
        if isinstance(r, (Facility, Worker)):
            by_type[r.type.value] = by_type.get(r.type.value, 0) + 1
        elif isinstance(r, Boundary):
            by_type["boundary"] = by_type.get("boundary", 0) + 1

    stats = {
        "count": len(records),
        "duplicate_ids": len(dup_ids),
        "outside_region": len(outside),
        "by_type": dict(sorted(by_type.items())),
    }
    return BatchValidationResult(errors=errors, warnings=warnings, stats=stats)
