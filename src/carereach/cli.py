import argparse
import json
from pathlib import Path

from carereach.settings import load_settings
from carereach.store.base import CATEGORIES


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default="config/default.yaml", help="Path to config YAML")
    common.add_argument("--profile", default="default", help="Profile name (config/profiles/<name>.yaml)")

    parser = argparse.ArgumentParser(prog="carereach", description="CareReach CLI", parents=[common])

    sub = parser.add_subparsers(dest="command", required=True)
    ingest = sub.add_parser("ingest", parents=[common], help="Run every fallback chain once and publish the results")
    ingest.add_argument(
        "--only",
        action="append",
        default=None,
        choices=CATEGORIES,
        help="Limit to a category (repeatable). If omitted, ingests every category.",
    )
    ingest.add_argument("--offline", action="store_true", help="Skip live providers and publish seed data")
    daemon = sub.add_parser("daemon", parents=[common], help="Run ingestion periodically")
    daemon.add_argument("--once", action="store_true", help="Run a single cycle then exit")
    daemon.add_argument("--interval-s", type=float, default=None, help="Seconds between successful cycles")
    daemon.add_argument("--jitter-s", type=float, default=None, help="Random jitter added to sleep time")
    daemon.add_argument("--failure-backoff-s", type=float, default=None, help="Sleep after a failed cycle")
    daemon.add_argument("--lock-file", default=None, help="Lock file path to avoid duplicate daemons")
    nearest = sub.add_parser("nearest", parents=[common], help="Rank facilities near a point")
    nearest.add_argument("--lon", type=float, required=True)
    nearest.add_argument("--lat", type=float, required=True)
    nearest.add_argument("--limit", type=int, default=None)
    nearest.add_argument("--max-distance-m", type=float, default=None)
    nearest.add_argument("--type", default=None, help="Facility type filter")
    nearest.add_argument("--explain", action="store_true", help="Print the score breakdown per facility")
    directions = sub.add_parser("directions", parents=[common], help="Straight-line distance and heading")
    directions.add_argument("--from", dest="origin", required=True, help="lon,lat")
    directions.add_argument("--to", dest="destination", required=True, help="lon,lat")
    directions.add_argument("--mode", default="walking", choices=("walking", "driving", "public_transport"))
    sub.add_parser("api-info", parents=[common], help="Print API run instructions")
    return parser


def _offline(settings: dict) -> dict:
    providers = settings.get("providers", {}) or {}
    settings["providers"] = {pid: {**(cfg or {}), "enabled": False} for pid, cfg in providers.items()}
    return settings


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = load_settings(Path(args.config), profile=args.profile)

    if args.command == "api-info":
        api_cfg = settings.get("api", {}) or {}
        host = api_cfg.get("host", "127.0.0.1")
        port = api_cfg.get("port", 8000)
        print(f"Run: uvicorn carereach.api.main:app --reload --host {host} --port {port}")
        return

    if args.command == "ingest":
        from carereach.daemon import default_lock_path, process_lock
        from carereach.ingestion.orchestrator import run_full_ingestion
        from carereach.store.file_store import store_from_settings

        if getattr(args, "offline", False):
            settings = _offline(settings)
        # Shares the daemon's lock so a manual run never overlaps a scheduled one.
        with process_lock(default_lock_path(settings)):
            results = run_full_ingestion(settings, store_from_settings(settings), only=getattr(args, "only", None))
        print(json.dumps(results, indent=2))
        return

    if args.command == "daemon":
        from carereach.daemon import run_daemon

        run_daemon(
            settings,
            interval_s=getattr(args, "interval_s", None),
            jitter_s=getattr(args, "jitter_s", None),
            failure_backoff_s=getattr(args, "failure_backoff_s", None),
            once=bool(getattr(args, "once", False)),
            lock_file=getattr(args, "lock_file", None),
        )
        return

    if args.command == "nearest":
        from carereach.discovery import DiscoveryService
        from carereach.scoring.explain import build_explain_payload, build_explain_text
        from carereach.store.file_store import store_from_settings

        service = DiscoveryService.from_settings(settings, store_from_settings(settings))
        ranked = service.nearest_facilities(
            [args.lon, args.lat],
            args.max_distance_m,
            args.limit,
            facility_type=args.type,
        )
        if not ranked:
            print("No facilities found in range.")
        for i, r in enumerate(ranked, start=1):
            print(f"{i:>2}. {r.record.name} [{r.record.type.value}] {r.distance_m:.0f} m, score {r.combined_score:.1f}")
            if args.explain:
                print(f"    {build_explain_text(build_explain_payload(r))}")
        return

    if args.command == "directions":
        from carereach.discovery import DiscoveryService
        from carereach.store.memory import MemoryGeoStore

        # Directions never touch stored records.
        service = DiscoveryService.from_settings(settings, MemoryGeoStore())
        print(json.dumps(service.direction(args.origin, args.destination, args.mode).to_dict(), ensure_ascii=False, indent=2))
        return

    raise SystemExit(f"Unknown command: {args.command}")
