from __future__ import annotations

import hashlib
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class DiskCache:
    """File-per-key JSON cache for provider payloads. TTL is checked against file mtime."""

    base_dir: Path
    default_ttl_s: int = 6 * 60 * 60

    def _path(self, namespace: str, key: str) -> Path:
        return Path(self.base_dir) / namespace / f"{_sha256(key)}.json"

    def get_json(self, namespace: str, key: str, ttl_s: int | None = None) -> Any | None:
        path = self._path(namespace, key)
        if not path.exists():
            return None
        ttl = self.default_ttl_s if ttl_s is None else ttl_s
        age = int(time.time()) - int(path.stat().st_mtime)
        # A negative TTL means "never expires".
        if ttl >= 0 and age > ttl:
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except ValueError:
            # A torn write from a killed process is treated as a miss.
            return None

    def set_json(self, namespace: str, key: str, value: Any) -> Path:
        path = self._path(namespace, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(value, ensure_ascii=False), encoding="utf-8")
        tmp.replace(path)
        return path
