"""
File-backed geo store.

Layout under `store_dir`:

    <category>/gen-<generation_id>.json   full record list of one generation
    <category>/current.json              pointer to the live generation

A swap writes the generation file first and then replaces `current.json` atomically,
so a reader in another process (the API while the daemon ingests) always resolves
the pointer to a complete file. Old generation files are pruned after the swap.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

from carereach.catalogs.records import record_from_dict
from carereach.errors import StoreError
from carereach.log import get_logger
from carereach.run_meta import write_json_atomic
from carereach.store.base import EMPTY_GENERATION, Generation, GeoStore
from carereach.store.memory import MemoryGeoStore

POINTER_NAME = "current.json"


class FileGeoStore(GeoStore):
    def __init__(self, base_dir: Path, *, keep_generations: int = 2) -> None:
        super().__init__()
        self.base_dir = Path(base_dir)
        self.keep_generations = max(1, int(keep_generations))
        self._loaded: dict[str, Generation] = {}
        self._load_lock = threading.Lock()

    def _category_dir(self, category: str) -> Path:
        return self.base_dir / category

    def _read_pointer(self, category: str) -> dict[str, Any] | None:
        path = self._category_dir(category) / POINTER_NAME
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StoreError(f"Unreadable generation pointer for {category}: {e}") from e
        if not isinstance(data, dict) or "generation_id" not in data or "file" not in data:
            raise StoreError(f"Malformed generation pointer for {category}: {path}")
        return data

    def _load_generation(self, category: str, pointer: dict[str, Any]) -> Generation:
        path = self._category_dir(category) / str(pointer["file"])
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            records = [record_from_dict(row) for row in payload.get("records", [])]
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise StoreError(f"Unreadable generation {pointer['generation_id']} for {category}: {e}") from e
        return Generation.build(
            records,
            generation_id=str(pointer["generation_id"]),
            created_at=str(payload.get("created_at") or ""),
        )

    def _current(self, category: str) -> Generation:
        pointer = self._read_pointer(category)
        if pointer is None:
            return EMPTY_GENERATION
        with self._load_lock:
            cached = self._loaded.get(category)
            if cached is not None and cached.generation_id == pointer["generation_id"]:
                return cached
            generation = self._load_generation(category, pointer)
            self._loaded[category] = generation
            return generation

    def _publish(self, category: str, generation: Generation) -> None:
        cat_dir = self._category_dir(category)
        file_name = f"gen-{generation.generation_id}.json"
        try:
            write_json_atomic(
                cat_dir / file_name,
                {
                    "category": category,
                    "generation_id": generation.generation_id,
                    "created_at": generation.created_at,
                    "records": [r.to_dict() for r in generation.records],
                },
            )
            # The pointer flip is the commit point of the swap.
            write_json_atomic(
                cat_dir / POINTER_NAME,
                {
                    "generation_id": generation.generation_id,
                    "file": file_name,
                    "created_at": generation.created_at,
                    "count": len(generation.records),
                },
            )
        except OSError as e:
            raise StoreError(f"Failed to publish {category} generation: {e}") from e

        with self._load_lock:
            self._loaded[category] = generation
        get_logger().info(
            "Swapped %s generation=%s records=%s", category, generation.generation_id, len(generation.records)
        )
        self._prune(category, keep=file_name)

    def _prune(self, category: str, *, keep: str) -> None:
        files = sorted(
            self._category_dir(category).glob("gen-*.json"),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
        survivors = [p for p in files if p.name == keep] + [p for p in files if p.name != keep]
        for stale in survivors[self.keep_generations :]:
            try:
                stale.unlink()
            except OSError as e:
                # A stale file that cannot be removed only costs disk space.
                get_logger().warning("Could not prune %s: %s", stale, e)


def store_from_settings(settings: dict[str, Any]) -> GeoStore:
    store_cfg = settings.get("store", {}) or {}
    backend = str(store_cfg.get("backend", "file")).lower()
    if backend == "memory":
        return MemoryGeoStore()
    if backend != "file":
        raise ValueError(f"Unknown store backend: {backend!r}")
    return FileGeoStore(
        Path(settings["paths"]["store_dir"]),
        keep_generations=int(store_cfg.get("keep_generations", 2)),
    )
