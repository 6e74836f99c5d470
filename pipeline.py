#!/usr/bin/env python3
"""
pipeline.py -- Collector runner for SwissDevMap.

Every collector is a one-shot job returning the number of items it processed.
`run_collector` runs one synchronously; `start_collector` spawns it on a
daemon thread and returns at once (fire-and-forget -- progress and completion
are visible in the logs and in `last_runs()`).

Usage:
    python pipeline.py                          # all collectors, in sequence
    python pipeline.py jobsch swissdevjobs      # selected collectors
    python pipeline.py fingerprint --http       # fingerprint without a browser
"""
import argparse
import logging
import threading
import time
from datetime import datetime, timezone

from fingerprint import HttpVisitor, run_fingerprinting
from job_boards import scrape_jobsch, scrape_swissdevjobs
from settings import setup_logging

logger = logging.getLogger("swissdevmap.pipeline")


def _fingerprint(**kwargs) -> int:
    return len(run_fingerprinting(**kwargs))


# name -> callable(**kwargs) -> processed count
COLLECTORS = {
    "fingerprint": _fingerprint,
    "jobsch": scrape_jobsch,
    "swissdevjobs": scrape_swissdevjobs,
}

_runs_lock = threading.Lock()
_last_runs: dict[str, dict] = {}  # in-memory; reset on restart


def _record(name: str, **info):
    with _runs_lock:
        _last_runs[name] = {**_last_runs.get(name, {}), **info}


def last_runs() -> dict[str, dict]:
    with _runs_lock:
        return {k: dict(v) for k, v in _last_runs.items()}


def run_collector(name: str, **kwargs) -> int:
    """Run one collector to completion. Unknown names raise KeyError."""
    collector = COLLECTORS[name]
    started = time.time()
    _record(name, status="running", started_at=datetime.now(timezone.utc).isoformat(),
            finished_at=None, processed=None, error=None)
    try:
        processed = collector(**kwargs)
    except Exception as e:
        _record(name, status="failed", finished_at=datetime.now(timezone.utc).isoformat(),
                error=f"{type(e).__name__}: {e}")
        raise
    elapsed = time.time() - started
    _record(name, status="done", finished_at=datetime.now(timezone.utc).isoformat(),
            processed=processed)
    logger.info("%s done: %d processed (%.1fs)", name, processed, elapsed)
    return processed


def _run_in_background(name: str, kwargs: dict):
    try:
        run_collector(name, **kwargs)
    except Exception:
        logger.exception("%s collector crashed", name)


def start_collector(name: str, **kwargs) -> threading.Thread:
    """Spawn a collector on a daemon thread and return the thread handle."""
    if name not in COLLECTORS:
        raise KeyError(name)
    logger.info("Scrape triggered: %s", name)
    t = threading.Thread(target=_run_in_background, args=(name, kwargs),
                         name=f"collector-{name}", daemon=True)
    t.start()
    return t


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run SwissDevMap collectors")
    parser.add_argument("collectors", nargs="*",
                        help=f"Collectors to run: {', '.join(COLLECTORS)} (default: all)")
    parser.add_argument("--http", action="store_true",
                        help="Fingerprint with plain HTTP instead of headless Chromium")
    parser.add_argument("--dry-run", action="store_true", help="Print results without writing to DB")
    args = parser.parse_args()

    setup_logging()
    names = args.collectors or list(COLLECTORS)
    unknown = [n for n in names if n not in COLLECTORS]
    if unknown:
        parser.error(f"unknown collector(s): {', '.join(unknown)}")
    summary = {}
    for name in names:
        kwargs = {"dry_run": args.dry_run}
        if name == "fingerprint" and args.http:
            kwargs["visitor"] = HttpVisitor()
        try:
            summary[name] = run_collector(name, **kwargs)
        except Exception as e:
            logger.exception("%s collector crashed", name)
            summary[name] = f"failed ({e})"

    print(f"\n{'=' * 50}")
    print("  COLLECTOR SUMMARY")
    print(f"{'=' * 50}")
    for name, result in summary.items():
        print(f"  {name:<16} {result}")
    print(f"{'=' * 50}")
