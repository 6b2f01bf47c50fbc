"""
Provenance index for ingested categories.

After every category run we write a snapshot of the published records to
`raw_dir/snapshots/<category>.json` and upsert one row per category into
`raw_dir/sources_index.json`: which adapter won, the outcome of every attempt,
the record count and a checksum of the snapshot. The API's `/sources` endpoint
serves this file as-is.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Sequence

from carereach.catalogs.records import Record
from carereach.log import get_logger
from carereach.run_meta import utc_now_iso, write_json_atomic
from carereach.store.base import CATEGORIES


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with Path(path).open("rb") as f:
        for chunk in iter(partial(f.read, 1 << 20), b""):
            digest.update(chunk)
    return digest.hexdigest()


@dataclass(frozen=True)
class SourceRecord:
    source_id: str
    fetched_at: str
    output_path: str
    checksum_sha256: str
    # "ok" when a live provider won, "seed" when the chain fell through.
    status: str
    winner: str
    record_count: int
    details: dict[str, Any] = field(default_factory=dict)


def sources_index_path(settings: dict[str, Any]) -> Path:
    return Path(settings["paths"]["raw_dir"]) / "sources_index.json"


def snapshot_path(settings: dict[str, Any], category: str) -> Path:
    return Path(settings["paths"]["raw_dir"]) / "snapshots" / f"{category}.json"


def write_snapshot(settings: dict[str, Any], category: str, records: Sequence[Record]) -> Path:
    path = snapshot_path(settings, category)
    write_json_atomic(path, {"category": category, "records": [r.to_dict() for r in records]})
    return path


def load_sources_index(settings: dict[str, Any]) -> dict[str, Any]:
    path = sources_index_path(settings)
    data: Any = None
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            # The index is rebuilt on the next run; a torn file only loses history.
            get_logger().warning("Ignoring unreadable sources index %s: %s", path, e)
    if not isinstance(data, dict):
        return {"generated_at": utc_now_iso(), "sources": []}
    rows = data.get("sources")
    data["sources"] = [r for r in rows if isinstance(r, dict)] if isinstance(rows, list) else []
    return data


def _row_order(row: dict[str, Any]) -> tuple[int, str]:
    source_id = str(row.get("source_id"))
    rank = CATEGORIES.index(source_id) if source_id in CATEGORIES else len(CATEGORIES)
    return rank, source_id


def upsert_source_record(settings: dict[str, Any], record: SourceRecord) -> Path:
    """Replace the row for `record.source_id` (or add it); rows stay in category order."""
    idx = load_sources_index(settings)
    rows = {str(row.get("source_id")): row for row in idx["sources"]}
    rows[record.source_id] = asdict(record)

    idx["generated_at"] = utc_now_iso()
    idx["sources"] = sorted(rows.values(), key=_row_order)
    path = sources_index_path(settings)
    write_json_atomic(path, idx)
    return path
