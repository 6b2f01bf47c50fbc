"""
Ordered-fallback ingestion.

Each category owns a `FallbackChain`: an ordered list of source adapters followed by
a seed loader. The chain is a small state machine:

    TRY_PRIMARY -> TRY_SECONDARY -> TRY_TERTIARY (repeated for any further adapters)
        -> USE_SEED -> DONE

The first attempt that returns SUCCESS with at least one record jumps straight to
DONE; later adapters and the seed are never called. Any other outcome moves to the
next state. Only when the seed itself fails is `IngestionExhausted` raised, and in
that case the store is not touched.

`IngestionOrchestrator` runs the chains, publishes each winner with an atomic
generation swap, records provenance, and finishes with the standardization pass.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Protocol, Sequence

from carereach.catalogs.records import Facility, Record
from carereach.catalogs.seed import SEED_LOADERS
from carereach.catalogs.validators import dedupe_records, validate_records
from carereach.errors import IngestionExhausted
from carereach.ingestion.adapters.base import FetchOutcome, FetchResult
from carereach.ingestion.registry import build_adapter_chains
from carereach.ingestion.sources_index import SourceRecord, sha256_file, upsert_source_record, write_snapshot
from carereach.ingestion.standardize import standardize_facilities
from carereach.log import get_logger
from carereach.run_meta import config_fingerprint, json_hash, new_run_id, utc_now_iso, write_json_atomic
from carereach.store.base import BOUNDARIES, CATEGORIES, FACILITIES, OSM_FACILITIES, WORKERS, GeoStore, check_category

SEED_WINNER = "seed"

# Keys of the `run_full_ingestion` result, per category.
RESULT_KEYS = {
    FACILITIES: "facilities",
    OSM_FACILITIES: "osmFacilities",
    BOUNDARIES: "boundaries",
    WORKERS: "workers",
}


class ChainState(str, Enum):
    TRY_PRIMARY = "try_primary"
    TRY_SECONDARY = "try_secondary"
    TRY_TERTIARY = "try_tertiary"
    USE_SEED = "use_seed"
    DONE = "done"


_ATTEMPT_STATES = (ChainState.TRY_PRIMARY, ChainState.TRY_SECONDARY, ChainState.TRY_TERTIARY)


def attempt_state(index: int) -> ChainState:
    return _ATTEMPT_STATES[min(index, len(_ATTEMPT_STATES) - 1)]


class Adapter(Protocol):
    adapter_id: str

    def fetch(self, category: str, params: Mapping[str, Any] | None = None) -> FetchResult: ...


@dataclass(frozen=True)
class ChainRun:
    category: str
    state_trail: tuple[ChainState, ...]
    attempts: tuple[FetchResult, ...]
    winner: str
    records: tuple[Record, ...]
    generation_id: str | None = None
    elapsed_s: float = 0.0

    @property
    def used_seed(self) -> bool:
        return self.winner == SEED_WINNER

    def summary(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "winner": self.winner,
            "record_count": len(self.records),
            "generation_id": self.generation_id,
            "state_trail": [s.value for s in self.state_trail],
            "attempts": [a.summary() for a in self.attempts],
            "elapsed_s": round(self.elapsed_s, 3),
        }


class FallbackChain:
    def __init__(
        self,
        category: str,
        adapters: Sequence[Adapter],
        seed_loader: Callable[[], Iterable[Record]],
    ) -> None:
        self.category = check_category(category)
        self.adapters = list(adapters)
        self.seed_loader = seed_loader

    def _attempt(self, adapter: Adapter, params: Mapping[str, Any]) -> FetchResult:
        try:
            return adapter.fetch(self.category, params)
        except Exception as e:
            # `fetch` must not raise; a misbehaving adapter still only fails its own attempt.
            get_logger().exception("Adapter %s raised out of fetch", getattr(adapter, "adapter_id", adapter))
            return FetchResult(
                adapter_id=str(getattr(adapter, "adapter_id", "unknown")),
                category=self.category,
                outcome=FetchOutcome.PARSE_ERROR,
                detail={"error": f"{type(e).__name__}: {e}"},
            )

    def run(self, params: Mapping[str, Any] | None = None) -> ChainRun:
        log = get_logger()
        started = time.monotonic()
        trail: list[ChainState] = []
        attempts: list[FetchResult] = []

        for i, adapter in enumerate(self.adapters):
            state = attempt_state(i)
            trail.append(state)
            result = self._attempt(adapter, params or {})
            attempts.append(result)
            if result.outcome == FetchOutcome.SUCCESS and result.records:
                trail.append(ChainState.DONE)
                log.info("Chain %s: %s won with %s records", self.category, result.adapter_id, len(result.records))
                return ChainRun(
                    category=self.category,
                    state_trail=tuple(trail),
                    attempts=tuple(attempts),
                    winner=result.adapter_id,
                    records=tuple(result.records),
                    elapsed_s=time.monotonic() - started,
                )
            log.warning("Chain %s: %s -> %s, falling back", self.category, result.adapter_id, result.outcome.value)

        trail.append(ChainState.USE_SEED)
        log.warning("Chain %s: all %s sources failed, using seed data", self.category, len(self.adapters))
        try:
            records = tuple(self.seed_loader())
        except Exception as e:
            raise IngestionExhausted(self.category, f"seed loader failed: {e}") from e
        if not records:
            raise IngestionExhausted(self.category, "seed loader returned no records")

        trail.append(ChainState.DONE)
        return ChainRun(
            category=self.category,
            state_trail=tuple(trail),
            attempts=tuple(attempts),
            winner=SEED_WINNER,
            records=records,
            elapsed_s=time.monotonic() - started,
        )


_LOCKS_GUARD = threading.Lock()
_CATEGORY_LOCKS: dict[str, threading.Lock] = {}


def category_lock(category: str) -> threading.Lock:
    with _LOCKS_GUARD:
        return _CATEGORY_LOCKS.setdefault(category, threading.Lock())


class IngestionOrchestrator:
    def __init__(
        self,
        store: GeoStore,
        chains: Mapping[str, FallbackChain],
        *,
        settings: dict[str, Any] | None = None,
    ) -> None:
        self.store = store
        self.chains = dict(chains)
        self.settings = settings

    @classmethod
    def from_settings(
        cls,
        settings: dict[str, Any],
        store: GeoStore,
        *,
        only: Iterable[str] | None = None,
        on_retry: Callable[[dict[str, Any]], None] | None = None,
    ) -> "IngestionOrchestrator":
        adapter_chains = build_adapter_chains(settings, only=only)
        if on_retry is not None:
            for adapters in adapter_chains.values():
                for adapter in adapters:
                    adapter.client.on_retry = on_retry
        chains = {
            category: FallbackChain(category, adapters, SEED_LOADERS[category])
            for category, adapters in adapter_chains.items()
        }
        return cls(store, chains, settings=settings)

    def _record_provenance(self, run: ChainRun) -> None:
        if self.settings is None:
            return
        snapshot = write_snapshot(self.settings, run.category, run.records)
        upsert_source_record(
            self.settings,
            SourceRecord(
                source_id=run.category,
                fetched_at=utc_now_iso(),
                output_path=str(snapshot),
                checksum_sha256=sha256_file(snapshot),
                status="seed" if run.used_seed else "ok",
                winner=run.winner,
                record_count=len(run.records),
                details={
                    "state_trail": [s.value for s in run.state_trail],
                    "attempts": [a.summary() for a in run.attempts],
                    "generation_id": run.generation_id,
                },
            ),
        )

    def run_category(self, category: str, params: Mapping[str, Any] | None = None) -> ChainRun:
        chain = self.chains.get(check_category(category))
        if chain is None:
            raise ValueError(f"No fallback chain configured for {category!r}")

        with category_lock(category):
            run = chain.run(params)
            records, dropped = dedupe_records(run.records)
            if dropped:
                get_logger().warning("Chain %s: dropped %s duplicate ids", category, dropped)
            report = validate_records(category, records)
            for warning in report.warnings:
                get_logger().warning("%s", warning)
            if not report.ok:
                raise IngestionExhausted(category, "; ".join(report.errors))

            generation_id = self.store.replace_all(category, records)
            run = replace(run, records=tuple(records), generation_id=generation_id)
            self._record_provenance(run)
        return run

    def standardize(self) -> int:
        """Standardize both facility categories in place; returns the number of records touched."""
        total = 0
        for category in (FACILITIES, OSM_FACILITIES):
            with category_lock(category):
                current = [r for r in self.store.all(category) if isinstance(r, Facility)]
                if not current:
                    continue
                self.store.replace_all(category, standardize_facilities(current))
                total += len(current)
        get_logger().info("Standardized %s facility records", total)
        return total

    def _report_path(self) -> Path | None:
        if self.settings is None:
            return None
        return Path(self.settings["paths"]["raw_dir"]) / "ingestion_report.json"

    def run_full_ingestion(self, only: Iterable[str] | None = None) -> dict[str, int]:
        """
        Run every configured chain in a fixed order, then standardize facilities.
        Returns record counts keyed facilities / osmFacilities / boundaries / workers /
        standardized.
        """
        log = get_logger()
        run_id = new_run_id()
        started_at = utc_now_iso()
        wanted = set(only) if only else set(self.chains)
        results: dict[str, int] = {}
        runs: list[ChainRun] = []
        completed = False
        error: str | None = None

        log.info("Ingestion run %s started (categories=%s)", run_id, sorted(wanted))
        try:
            for category in CATEGORIES:
                if category not in wanted or category not in self.chains:
                    continue
                run = self.run_category(category)
                runs.append(run)
                results[RESULT_KEYS[category]] = len(run.records)
            results["standardized"] = self.standardize()
            completed = True
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            log.error("Ingestion run %s failed: %s", run_id, error)
            raise
        finally:
            report_path = self._report_path()
            if report_path is not None:
                write_json_atomic(
                    report_path,
                    {
                        "run_id": run_id,
                        "started_at": started_at,
                        "finished_at": utc_now_iso(),
                        "status": "ok" if completed else "failed",
                        "error": error,
                        "config_hash": json_hash(config_fingerprint(self.settings or {})),
                        "results": results,
                        "chains": [r.summary() for r in runs],
                    },
                )

        log.info("Ingestion run %s completed: %s", run_id, results)
        return results


def run_full_ingestion(
    settings: dict[str, Any],
    store: GeoStore,
    *,
    only: Iterable[str] | None = None,
) -> dict[str, int]:
    return IngestionOrchestrator.from_settings(settings, store, only=only).run_full_ingestion()
