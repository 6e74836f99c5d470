#!/usr/bin/env python3
"""
seed.py -- Load the starter company list into the SwissDevMap database.

Each company is inserted once (matched by case-insensitive name) and its
listed tags are merged with source='seed'.  Re-running is a no-op unless
--reset is given, which wipes all companies, tags and postings first.

Seed file format (JSON list):
    [{"name": "Proton", "uid": "CHE-184.666.789", "type": "Enterprise",
      "website": "https://proton.me", "city": "Geneva", "lat": 46.2044, "lng": 6.1432,
      "tags": [{"tag": "Go", "category": "backend"}]}]

Usage:
    python seed.py                              # data/companies_seed.json
    python seed.py my_companies.json            # custom seed file
    python seed.py --reset                      # wipe tables, then seed
"""
import argparse
import json
import logging
from pathlib import Path

from settings import setup_logging
from tag_store import (
    connect, ensure_tables, find_company_id, insert_company, merge_tags, reset_tables,
)

logger = logging.getLogger("swissdevmap.seed")

SEED_FILE = Path(__file__).parent / "data" / "companies_seed.json"


def load_seed_file(path: Path = SEED_FILE) -> list[dict]:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def seed_companies(conn, companies: list[dict], source: str = "seed") -> dict:
    """Insert companies that are not yet present and merge their tags.

    Returns {companies_added, companies_existing, tags_added, skipped}.
    """
    stats = {"companies_added": 0, "companies_existing": 0, "tags_added": 0, "skipped": 0}
    for c in companies:
        name = (c.get("name") or "").strip()
        if not name or c.get("lat") is None or c.get("lng") is None:
            logger.warning("  [skip] seed entry without name/lat/lng: %r", c.get("name"))
            stats["skipped"] += 1
            continue

        company_id = find_company_id(conn, name)
        if company_id is None:
            company_id = insert_company(
                conn, name, float(c["lat"]), float(c["lng"]),
                uid=c.get("uid"), website=c.get("website"),
                city=c.get("city"), type=c.get("type"),
            )
            stats["companies_added"] += 1
        else:
            stats["companies_existing"] += 1

        tags = [(t["tag"], t["category"]) for t in c.get("tags", []) if t.get("tag") and t.get("category")]
        added = merge_tags(conn, company_id, tags, source)
        stats["tags_added"] += added
        logger.info("  [OK] %s (%d tags, %d new)", name, len(tags), added)
    return stats


def run(seed_path: Path = SEED_FILE, reset: bool = False) -> dict:
    conn = connect()
    try:
        ensure_tables(conn)
        if reset:
            reset_tables(conn)
            logger.info("Existing data cleared.")
        stats = seed_companies(conn, load_seed_file(seed_path))
    finally:
        conn.close()
    logger.info(
        "Seed complete: %d companies added, %d already present, %d new tags",
        stats["companies_added"], stats["companies_existing"], stats["tags_added"],
    )
    return stats


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed SwissDevMap companies + tags")
    parser.add_argument("seed_file", nargs="?", default=str(SEED_FILE), help="JSON seed file")
    parser.add_argument("--reset", action="store_true", help="Delete all rows before seeding")
    args = parser.parse_args()

    setup_logging()
    run(Path(args.seed_file), reset=args.reset)
