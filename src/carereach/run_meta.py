from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def json_hash(data: Any) -> str:
    """
    Hash a JSON-serializable structure deterministically (sorted keys, compact separators).
    """
    raw = json.dumps(data, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def config_fingerprint(settings: dict[str, Any]) -> dict[str, Any]:
    """
    Stable, shareable view of the knobs that decide which data an ingestion run produces.
    Paths and credentials are left out.
    """
    meta = settings.get("_meta", {}) or {}
    providers = settings.get("providers", {}) or {}
    return {
        "profile": meta.get("profile"),
        "config_path": meta.get("config_path"),
        "chains": settings.get("chains", {}),
        "providers": {
            pid: {"enabled": bool((cfg or {}).get("enabled", False)), "url": (cfg or {}).get("url")}
            for pid, cfg in providers.items()
        },
    }


def new_run_id() -> str:
    return uuid4().hex


def write_json_atomic(path: Path, data: Any) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_suffix(p.suffix + ".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
    # `replace` is atomic on POSIX, so readers see either the old or the new file.
    tmp.replace(p)
