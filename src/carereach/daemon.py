"""
Periodic ingestion loop.

The daemon holds an exclusive `fcntl` lock for its whole lifetime, so two daemons (or a
daemon and a manual `carereach ingest`) never run ingestion concurrently against
the same store. Progress is mirrored into `raw_dir/ingestion_status.json` for the
API and for operators.
"""

from __future__ import annotations

import json
import random
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

from carereach.errors import CareReachError
from carereach.ingestion.orchestrator import IngestionOrchestrator
from carereach.ingestion.registry import build_adapter_chains
from carereach.log import get_logger
from carereach.run_meta import utc_now_iso, write_json_atomic
from carereach.store.base import GeoStore
from carereach.store.file_store import store_from_settings


class DaemonLockBusy(CareReachError):
    pass


def status_path(settings: dict[str, Any]) -> Path:
    return Path(settings["paths"]["raw_dir"]) / "ingestion_status.json"


def load_status(settings: dict[str, Any]) -> dict[str, Any]:
    p = status_path(settings)
    if not p.exists():
        return {}
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def default_lock_path(settings: dict[str, Any]) -> Path:
    return Path(settings["paths"]["cache_dir"]) / "ingestion.lock"


@contextmanager
def process_lock(lock_path: Path) -> Iterator[None]:
    # POSIX only; fcntl is not available on Windows.
    import fcntl

    lock_path.parent.mkdir(parents=True, exist_ok=True)
    f = lock_path.open("w", encoding="utf-8")
    try:
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise DaemonLockBusy(f"Ingestion already running (lock busy): {lock_path}") from e
        f.write(str(int(time.time())))
        f.flush()
        yield
    finally:
        f.close()


def run_daemon(
    settings: dict[str, Any],
    *,
    interval_s: float | None = None,
    once: bool = False,
    lock_file: str | None = None,
    jitter_s: float | None = None,
    failure_backoff_s: float | None = None,
    store: GeoStore | None = None,
    sleep_fn: Callable[[float], None] | None = None,
    max_cycles: int | None = None,
) -> dict[str, Any]:
    """
    Run `run_full_ingestion` every `interval_s` seconds (plus jitter). After a failed
    cycle the next attempt waits `failure_backoff_s` instead. Returns the final status.
    """
    log = get_logger()
    daemon_cfg = settings.get("daemon", {}) or {}
    interval_s = float(interval_s if interval_s is not None else daemon_cfg.get("interval_s", 86400))
    jitter_s = float(jitter_s if jitter_s is not None else daemon_cfg.get("jitter_s", 30))
    failure_backoff_s = float(
        failure_backoff_s if failure_backoff_s is not None else daemon_cfg.get("failure_backoff_s", 900)
    )
    sleep = sleep_fn or time.sleep
    store = store or store_from_settings(settings)
    lock_path = Path(lock_file) if lock_file else default_lock_path(settings)
    # A broken chain at startup is a setup mistake; raise before taking the lock.
    build_adapter_chains(settings)

    with process_lock(lock_path):
        status = load_status(settings)
        status.update({"state": "idle", "started_at": utc_now_iso(), "lock": str(lock_path)})
        status.setdefault("rate_limit", {"http_429_count": 0, "retry_events": 0})
        status.setdefault("consecutive_failures", 0)
        write_json_atomic(status_path(settings), status)

        def record_retry(event: dict[str, Any]) -> None:
            rl = status.setdefault("rate_limit", {})
            rl["retry_events"] = int(rl.get("retry_events", 0)) + 1
            if int(event.get("status_code", 0)) == 429:
                rl["http_429_count"] = int(rl.get("http_429_count", 0)) + 1
            rl["last_event"] = event
            write_json_atomic(status_path(settings), status)

        log.info("Daemon started: interval_s=%s lock=%s once=%s", interval_s, lock_path, once)
        cycles = 0
        while True:
            cycles += 1
            status["state"] = "running"
            status["cycle_started_at"] = utc_now_iso()
            write_json_atomic(status_path(settings), status)

            ok = False
            try:
                orchestrator = IngestionOrchestrator.from_settings(settings, store, on_retry=record_retry)
                results = orchestrator.run_full_ingestion()
                ok = True
                status["last_success_at"] = utc_now_iso()
                status["last_results"] = results
                status["last_error"] = None
                status["consecutive_failures"] = 0
            except (CareReachError, ValueError) as e:
                # ValueError: adapter construction failed for this cycle; retry after backoff.
                log.error("Ingestion cycle %s failed: %s", cycles, e)
                status["last_error"] = {"at": utc_now_iso(), "type": type(e).__name__, "message": str(e)}
                status["consecutive_failures"] = int(status.get("consecutive_failures", 0)) + 1

            status["state"] = "idle"
            status["cycle_finished_at"] = utc_now_iso()
            write_json_atomic(status_path(settings), status)

            if once or (max_cycles is not None and cycles >= max_cycles):
                break
            wait_s = (interval_s if ok else failure_backoff_s) + random.uniform(0.0, max(0.0, jitter_s))
            log.info("Next ingestion cycle in %.0fs", wait_s)
            sleep(wait_s)

        status["state"] = "stopped"
        write_json_atomic(status_path(settings), status)
        return status
