"""
CLI utilities for cache and artifact maintenance, and the API server.

Usage:
    vv-cache --stats
    vv-cache --prune
    vv-cache --sweep --max-age 600
    vv-cache --purge
    vv-serve --port 8080 --host 127.0.0.1
"""

import argparse
import sys
from datetime import datetime
from typing import Optional

import uvicorn

from .config.settings import Settings
from .persist import LocalArtifactStore, ResultCache, SqliteBackend
from .runtime import build_backend


def format_bytes(bytes_val: float) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "KB", "MB", "GB"]:
        if bytes_val < 1024:
            return f"{bytes_val:.1f} {unit}"
        bytes_val /= 1024
    return f"{bytes_val:.1f} TB"


def format_time(ts: int) -> str:
    """Format unix timestamp as human-readable string."""
    if ts == 0:
        return "never"
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")


def show_stats(settings: Settings) -> int:
    """Display cache and artifact statistics."""
    store = LocalArtifactStore(settings.paths.to_store_paths().artifacts_dir)

    with build_backend(settings) as backend:
        stats = backend.stats()

    artifacts = store.list()
    artifact_bytes = sum(store.stat(name).size for name in artifacts)

    print(f"📊 Cache Statistics ({settings.cache.backend} backend)\n")
    print(f"{'Entries':<12} {stats['count']:>10,}")
    print(f"{'Size':<12} {format_bytes(stats['total_bytes']):>10}")
    print(f"{'Oldest':<12} {format_time(stats['oldest_ts']):>20}")
    print(f"{'Newest':<12} {format_time(stats['newest_ts']):>20}")
    print()
    print(f"📁 Artifacts: {len(artifacts):,} files, {format_bytes(artifact_bytes)} in {store.root}")
    return 0


def prune_cache(settings: Settings) -> int:
    """Drop cache entries whose artifacts are gone."""
    store = LocalArtifactStore(settings.paths.to_store_paths().artifacts_dir)

    with build_backend(settings) as backend:
        removed = ResultCache(backend, store).prune()

    print(f"🧹 Pruned {removed:,} stale cache entries")
    return 0


def purge_cache(settings: Settings) -> int:
    """Delete every cache entry."""
    with build_backend(settings) as backend:
        count = backend.purge()
        if isinstance(backend, SqliteBackend):
            backend.vacuum()

    print(f"🗑️  Purged {count:,} cache entries")
    return 0


def sweep_artifacts(settings: Settings, max_age_s: Optional[float]) -> int:
    """Run one reclamation pass."""
    store = LocalArtifactStore(settings.paths.to_store_paths().artifacts_dir)
    max_age = settings.cache.max_age_s if max_age_s is None else max_age_s

    report = store.sweep(max_age)

    print(f"♻️  Swept {store.root}: scanned {report.scanned}, removed {len(report.removed)}")
    for name in report.failed:
        print(f"   ❌ failed: {name}")
    return 1 if report.failed else 0


def cache_main(argv: Optional[list[str]] = None) -> int:
    """Cache CLI entrypoint."""
    parser = argparse.ArgumentParser(
        description="Manage the result cache and artifact directory"
    )
    parser.add_argument("--stats", action="store_true", help="Show cache statistics")
    parser.add_argument("--prune", action="store_true", help="Drop entries with missing artifacts")
    parser.add_argument("--purge", action="store_true", help="Delete all cache entries")
    parser.add_argument("--sweep", action="store_true", help="Delete artifacts older than the retention window")
    parser.add_argument(
        "--max-age",
        type=float,
        default=None,
        help="Retention window in seconds for --sweep (default: settings)",
    )

    args = parser.parse_args(argv)

    if not (args.stats or args.prune or args.purge or args.sweep):
        parser.print_help()
        print("\n❌ Error: Must specify --stats, --prune, --purge or --sweep")
        return 1

    settings = Settings.from_env()
    exit_code = 0

    if args.sweep:
        exit_code = sweep_artifacts(settings, args.max_age) or exit_code
    if args.prune:
        exit_code = prune_cache(settings) or exit_code
    if args.purge:
        exit_code = purge_cache(settings) or exit_code
    if args.stats:
        exit_code = show_stats(settings) or exit_code

    return exit_code


def serve_main(argv: Optional[list[str]] = None) -> int:
    """Launch the FastAPI server."""
    parser = argparse.ArgumentParser(description="Launch Villager Voice API server")
    parser.add_argument("--host", type=str, default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")

    args = parser.parse_args(argv)

    print(f"Starting Villager Voice API server on {args.host}:{args.port}")
    print(f"API documentation available at: http://localhost:{args.port}/docs")

    uvicorn.run(
        "villager_voice.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )
    return 0


if __name__ == "__main__":
    sys.exit(cache_main())
