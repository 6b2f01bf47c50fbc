"""
Build adapter lists per category from settings.

`providers` declares every configured source (kind, url, timeout, extra options);
`chains` lists provider ids per category in fallback order. Disabled providers are
left out of the chain, so an offline profile that disables everything degrades each
category straight to its seed data.
"""

from __future__ import annotations

from typing import Any, Iterable

from carereach.cache import DiskCache
from carereach.ingestion.adapters.base import SourceAdapter
from carereach.ingestion.adapters.boundaries import GeoJsonBoundaryAdapter
from carereach.ingestion.adapters.dghs import DghsContactsAdapter
from carereach.ingestion.adapters.hdx import HdxTabularAdapter
from carereach.ingestion.adapters.healthsites import HealthsitesAdapter
from carereach.ingestion.adapters.overpass import SMALL_QUERY, OverpassAdapter
from carereach.ingestion.http_client import ProviderHttpClient
from carereach.log import get_logger
from carereach.store.base import CATEGORIES

ADAPTER_KINDS: dict[str, type[SourceAdapter]] = {
    "hdx": HdxTabularAdapter,
    "overpass": OverpassAdapter,
    "healthsites": HealthsitesAdapter,
    "geojson_boundaries": GeoJsonBoundaryAdapter,
    "dghs": DghsContactsAdapter,
}

# Named queries a config file can refer to instead of inlining Overpass QL.
NAMED_QUERIES = {"small": SMALL_QUERY}

_RESERVED_KEYS = {"kind", "enabled", "url", "timeout_s"}


def build_adapter(provider_id: str, cfg: dict[str, Any], client: ProviderHttpClient) -> SourceAdapter:
    kind = str(cfg.get("kind") or provider_id)
    adapter_cls = ADAPTER_KINDS.get(kind)
    if adapter_cls is None:
        raise ValueError(f"Unknown adapter kind for provider {provider_id!r}: {kind!r}")
    options = {k: v for k, v in cfg.items() if k not in _RESERVED_KEYS}
    if isinstance(options.get("query"), str) and options["query"] in NAMED_QUERIES:
        options["query"] = NAMED_QUERIES[options["query"]]
    timeout = cfg.get("timeout_s")
    return adapter_cls(
        adapter_id=provider_id,
        client=client,
        url=cfg.get("url"),
        timeout_s=float(timeout) if timeout is not None else None,
        options=options,
    )


def build_adapter_chains(
    settings: dict[str, Any],
    *,
    client: ProviderHttpClient | None = None,
    only: Iterable[str] | None = None,
) -> dict[str, list[SourceAdapter]]:
    providers = settings.get("providers", {}) or {}
    chains_cfg = settings.get("chains", {}) or {}
    if client is None:
        cache_dir = (settings.get("paths", {}) or {}).get("cache_dir")
        cache = DiskCache(base_dir=cache_dir) if cache_dir else None
        client = ProviderHttpClient.from_settings(settings, cache=cache)

    wanted = set(only) if only else set(CATEGORIES)
    out: dict[str, list[SourceAdapter]] = {}
    for category in CATEGORIES:
        if category not in wanted:
            continue
        adapters: list[SourceAdapter] = []
        for provider_id in chains_cfg.get(category, []) or []:
            cfg = providers.get(provider_id)
            if cfg is None:
                raise ValueError(f"Chain {category!r} references unknown provider {provider_id!r}")
            if not bool(cfg.get("enabled", True)):
                get_logger().info("Provider %s disabled; skipping in %s chain", provider_id, category)
                continue
            adapters.append(build_adapter(provider_id, cfg, client))
        out[category] = adapters
    return out
