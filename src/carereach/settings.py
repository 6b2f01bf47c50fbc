"""
Settings bootstrap for CareReach.

Every entrypoint (CLI, daemon, API) reads configuration through `load_settings()`
first. The base file is `config/default.yaml`; a profile file under
`config/profiles/<profile>.yaml` overrides only the keys it names (for example the
`offline` profile disables every live provider so ingestion falls back to seed data).

Chains are checked at load time: a chain that names an undeclared provider or an
unknown category is a configuration error, reported before any provider is contacted.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

# PyYAML parses the human-edited config files.
import yaml

from carereach.log import configure_logging
from carereach.store.base import CATEGORIES

DEFAULT_CONFIG_PATH = "config/default.yaml"
DEFAULT_PROFILE = "default"

# `project.<key>` overrides; relative values resolve against the project root.
PATH_DEFAULTS = {
    # One JSON generation per category.
    "store_dir": "data/store",
    # Snapshots, sources index, ingestion report and daemon status.
    "raw_dir": "data/raw",
    # HTTP response cache and the ingestion lock file (safe to delete).
    "cache_dir": "cache",
    "logs_dir": "logs",
}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        # Nested mappings merge, so a profile can flip a single provider flag.
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            # Lists (like fallback chains) are replaced as a whole, never concatenated.
            merged[key] = value
    return merged


def _read_yaml_mapping(path: Path) -> dict[str, Any]:
    # A missing profile file means "no overrides".
    if not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"YAML must be a mapping: {path}")
    return data


def read_dotenv(path: Path) -> dict[str, str]:
    """`KEY=value` pairs from a `.env` file; comments, blanks and malformed lines are skipped."""
    if not path.is_file():
        return {}
    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        key, sep, value = line.strip().partition("=")
        if not sep or key.startswith("#") or not key.strip():
            continue
        values[key.strip()] = value.strip().strip("\"'")
    return values


def _project_root(config_path: Path) -> Path:
    # config/default.yaml -> the repo root is the parent of `config/`.
    config_dir = config_path.parent
    return config_dir.parent if config_dir.name == "config" else config_dir


def _runtime_paths(root: Path, project: dict[str, Any]) -> dict[str, Path]:
    paths = {"root": root}
    for key, default in PATH_DEFAULTS.items():
        paths[key] = root / str(project.get(key) or default)
    return paths


def check_chains(settings: dict[str, Any]) -> None:
    providers = settings.get("providers", {}) or {}
    for category, provider_ids in (settings.get("chains", {}) or {}).items():
        if category not in CATEGORIES:
            raise ValueError(f"Unknown chain category {category!r} (expected one of {', '.join(CATEGORIES)})")
        missing = [pid for pid in provider_ids or [] if pid not in providers]
        if missing:
            raise ValueError(f"Chain {category!r} references undeclared providers: {', '.join(missing)}")


def load_settings(config_path: Path, profile: str = DEFAULT_PROFILE) -> dict[str, Any]:
    """
    Load base config and merge a profile override file if present.
    Also initializes runtime directories and logging.
    """
    config_path = Path(config_path).resolve()
    root = _project_root(config_path)

    # Real environment variables always win over `.env`.
    for key, value in read_dotenv(root / ".env").items():
        os.environ.setdefault(key, value)

    profile_path = root / "config" / "profiles" / f"{profile}.yaml"
    settings = _deep_merge(_read_yaml_mapping(config_path), _read_yaml_mapping(profile_path))
    check_chains(settings)

    project = settings.setdefault("project", {})
    paths = _runtime_paths(root, project)
    for p in paths.values():
        p.mkdir(parents=True, exist_ok=True)

    logger = configure_logging(paths["logs_dir"], level=str(project.get("log_level", "INFO")))

    settings["_meta"] = {
        "config_path": str(config_path),
        "profile": profile,
        "profile_path": str(profile_path),
    }
    settings["paths"] = {k: str(v) for k, v in paths.items()}
    logger.info("Loaded settings: config=%s profile=%s", config_path, profile)
    return settings


def settings_from_env() -> dict[str, Any]:
    # Used by the API process, which has no argv to read flags from.
    config_path = Path(os.getenv("CAREREACH_CONFIG", DEFAULT_CONFIG_PATH))
    profile = os.getenv("CAREREACH_PROFILE", DEFAULT_PROFILE)
    return load_settings(config_path, profile=profile)
