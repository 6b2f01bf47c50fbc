from __future__ import annotations

import hashlib
import json
from functools import lru_cache
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from carereach.api.response_cache import ResponseCache
from carereach.api.schemas import (
    DirectionOut,
    DirectionsRequest,
    FacilityOut,
    NearestFacilitiesRequest,
    RankedFacilityOut,
    WorkerOut,
)
from carereach.daemon import DaemonLockBusy, default_lock_path, load_status, process_lock
from carereach.discovery import DiscoveryService
from carereach.errors import DataUnavailable, IngestionExhausted, StoreError, ValidationError
from carereach.ingestion.orchestrator import run_full_ingestion
from carereach.ingestion.sources_index import load_sources_index, sources_index_path
from carereach.log import get_logger
from carereach.run_meta import utc_now_iso
from carereach.scoring.explain import build_explain_payload
from carereach.settings import settings_from_env
from carereach.store.base import CATEGORIES, GeoStore
from carereach.store.file_store import store_from_settings

app = FastAPI(title="CareReach API", version="0.1.0")
app.add_middleware(GZipMiddleware, minimum_size=1000)


@lru_cache(maxsize=1)
def get_settings() -> dict[str, Any]:
    return settings_from_env()


@lru_cache(maxsize=1)
def _default_store() -> GeoStore:
    return store_from_settings(get_settings())


def get_store() -> GeoStore:
    return _default_store()


@lru_cache(maxsize=1)
def _default_cache() -> ResponseCache:
    api_cfg = get_settings().get("api", {}) or {}
    return ResponseCache(
        maxsize=int(api_cfg.get("cache_maxsize", 1024)),
        ttl_s=float(api_cfg.get("cache_ttl_s", 1800)),
    )


def get_response_cache() -> ResponseCache:
    return _default_cache()


def get_service(
    store: GeoStore = Depends(get_store),
    settings: dict[str, Any] = Depends(get_settings),
) -> DiscoveryService:
    return DiscoveryService.from_settings(settings, store)


@app.exception_handler(DataUnavailable)
async def _data_unavailable(_request: Request, exc: DataUnavailable) -> JSONResponse:
    # Distinguishes "store is down" from "nothing nearby"; clients may retry.
    return JSONResponse(
        status_code=503,
        content={"items": [], "detail": str(exc), "retryable": exc.retryable},
        headers={"Retry-After": "30"},
    )


@app.exception_handler(ValidationError)
async def _validation_error(_request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


def _etag(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _cache_key(prefix: str, **params: Any) -> str:
    return prefix + ":" + json.dumps(params, sort_keys=True, default=str)


@app.get("/health")
def health(
    settings: dict[str, Any] = Depends(get_settings),
    store: GeoStore = Depends(get_store),
    cache: ResponseCache = Depends(get_response_cache),
) -> dict[str, Any]:
    generations: dict[str, Any] = {}
    ok = True
    for category in CATEGORIES:
        try:
            generations[category] = store.generation_info(category)
        except (StoreError, OSError) as e:
            ok = False
            generations[category] = {"category": category, "error": f"{type(e).__name__}: {e}"}
    return {
        "ok": ok,
        "generated_at": utc_now_iso(),
        "profile": (settings.get("_meta", {}) or {}).get("profile"),
        "generations": generations,
        "ingestion_status": load_status(settings) or None,
        "cache": cache.stats(),
    }


@app.get("/facilities", response_model=dict[str, list[FacilityOut]])
def list_facilities(
    type: str | None = None,
    upazila: str | None = None,
    district: str | None = None,
    service: DiscoveryService = Depends(get_service),
    cache: ResponseCache = Depends(get_response_cache),
) -> dict[str, Any]:
    key = _cache_key("facilities", type=type, upazila=upazila, district=district)

    def compute() -> dict[str, Any]:
        rows = service.list_facilities(type, upazila=upazila, district=district)
        return {"items": [r.to_dict() for r in rows]}

    return cache.get_or_compute(key, compute)


@app.post("/facilities/nearest", response_model=dict[str, list[RankedFacilityOut]])
def nearest_facilities(
    payload: NearestFacilitiesRequest,
    explain: bool = False,
    service: DiscoveryService = Depends(get_service),
) -> dict[str, Any]:
    ranked = service.nearest_facilities(
        payload.location,
        payload.max_distance,
        payload.limit,
        facility_type=payload.type,
        services=payload.services,
    )
    items = []
    for r in ranked:
        row = r.to_dict()
        if explain:
            row["explain"] = build_explain_payload(r)
        items.append(row)
    return {"items": items}


@app.get("/facilities/{facility_id}", response_model=FacilityOut)
def get_facility(facility_id: str, service: DiscoveryService = Depends(get_service)) -> dict[str, Any]:
    facility = service.get_facility(facility_id)
    if facility is None:
        raise HTTPException(status_code=404, detail="Facility not found")
    return facility.to_dict()


@app.get("/workers", response_model=dict[str, list[WorkerOut]])
def list_workers(
    location: str | None = Query(default=None, description="lon,lat"),
    radius: float | None = Query(default=None, ge=0.0),
    skill: str | None = None,
    upazila: str | None = None,
    district: str | None = None,
    verified: bool | None = None,
    limit: int | None = Query(default=None, gt=0),
    service: DiscoveryService = Depends(get_service),
    cache: ResponseCache = Depends(get_response_cache),
) -> dict[str, Any]:
    if location:
        hits = service.nearest_workers(
            location,
            radius,
            skill=skill,
            upazila=upazila,
            district=district,
            verified=verified,
            limit=limit,
        )
        return {"items": [{**w.to_dict(), "distance": round(d, 1)} for w, d in hits]}

    key = _cache_key("workers", skill=skill, upazila=upazila, district=district, verified=verified)

    def compute() -> dict[str, Any]:
        rows = service.list_workers(skill=skill, upazila=upazila, district=district, verified=verified)
        return {"items": [w.to_dict() for w in rows]}

    out = cache.get_or_compute(key, compute)
    if limit is not None:
        return {"items": out["items"][:limit]}
    return out


@app.get("/workers/skills")
def list_skills(
    service: DiscoveryService = Depends(get_service),
    cache: ResponseCache = Depends(get_response_cache),
) -> dict[str, Any]:
    return cache.get_or_compute("workers:skills", lambda: {"skills": service.list_skills()})


@app.get("/workers/search", response_model=dict[str, list[WorkerOut]])
def search_workers(
    q: str = "",
    service: DiscoveryService = Depends(get_service),
    cache: ResponseCache = Depends(get_response_cache),
) -> dict[str, Any]:
    if not q.strip():
        raise HTTPException(status_code=400, detail="Query parameter q is required")
    key = _cache_key("workers:search", q=q.strip().lower())
    return cache.get_or_compute(key, lambda: {"items": [w.to_dict() for w in service.search_workers(q)]})


@app.get("/workers/{worker_id}", response_model=WorkerOut)
def get_worker(worker_id: str, service: DiscoveryService = Depends(get_service)) -> dict[str, Any]:
    worker = service.get_worker(worker_id)
    if worker is None:
        raise HTTPException(status_code=404, detail="Health worker not found")
    return worker.to_dict()


@app.post("/directions", response_model=DirectionOut)
def directions(payload: DirectionsRequest, service: DiscoveryService = Depends(get_service)) -> dict[str, Any]:
    return service.direction(payload.from_, payload.to, payload.mode).to_dict()


@app.get("/sources")
def sources(response: Response, settings: dict[str, Any] = Depends(get_settings)) -> dict[str, Any]:
    path = sources_index_path(settings)
    if not path.exists():
        raise HTTPException(status_code=404, detail="Missing sources_index.json (run ingestion first)")
    data = load_sources_index(settings)
    stat = path.stat()
    response.headers["ETag"] = _etag(json.dumps({"mtime": stat.st_mtime, "size": stat.st_size}))
    return data


@app.post("/control/ingest")
def control_ingest(
    only: list[str] | None = Query(default=None),
    settings: dict[str, Any] = Depends(get_settings),
    store: GeoStore = Depends(get_store),
    cache: ResponseCache = Depends(get_response_cache),
) -> dict[str, Any]:
    unknown = sorted(set(only or []) - set(CATEGORIES))
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown categories: {', '.join(unknown)}")
    try:
        with process_lock(default_lock_path(settings)):
            results = run_full_ingestion(settings, store, only=only)
    except DaemonLockBusy as e:
        raise HTTPException(status_code=409, detail=str(e))
    except IngestionExhausted as e:
        get_logger().error("Ingestion triggered via API failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))
    cleared = cache.clear()
    return {"results": results, "cache_cleared": cleared, "finished_at": utc_now_iso()}


@app.post("/control/cache/clear")
def control_cache_clear(cache: ResponseCache = Depends(get_response_cache)) -> dict[str, Any]:
    return {"cleared": cache.clear()}
