#!/usr/bin/env python3
"""
check_websites.py -- Reachability check for every company website.

Any status code is accepted and inspected: a 2xx text/html response is OK,
anything else is FAIL, and network errors / timeouts are ERR.  Useful before
a fingerprinting run to spot dead or bot-blocked sites.

Usage:
    python check_websites.py
"""
import logging

import requests

from settings import BROWSER_USER_AGENT, setup_logging
from tag_store import connect, ensure_tables

logger = logging.getLogger("swissdevmap.check_websites")

TIMEOUT = 10


def check_website(session: requests.Session, url: str) -> tuple[str, str]:
    """Return (status, detail) where status is 'OK', 'FAIL' or 'ERR'."""
    try:
        r = session.get(url, timeout=TIMEOUT, allow_redirects=True,
                        headers={"User-Agent": BROWSER_USER_AGENT})
    except requests.RequestException as e:
        return "ERR", str(e)
    content_type = r.headers.get("content-type", "")
    if 200 <= r.status_code < 300 and "text/html" in content_type.lower():
        return "OK", f"Status: {r.status_code}"
    return "FAIL", f"Status: {r.status_code}, Type: {content_type or 'unknown'}"


def check_websites(conn=None, session: requests.Session | None = None) -> dict:
    session = session or requests.Session()
    own_conn = conn is None
    if own_conn:
        conn = connect()
        ensure_tables(conn)
    try:
        companies = conn.execute("SELECT name, website FROM companies ORDER BY name").fetchall()
    finally:
        if own_conn:
            conn.close()

    logger.info("Found %d companies. Checking websites...", len(companies))
    stats = {"ok": 0, "fail": 0, "skipped": 0}
    for name, website in companies:
        website = (website or "").strip()
        if not website:
            logger.info("[SKIP] %s: No website", name)
            stats["skipped"] += 1
            continue
        status, detail = check_website(session, website)
        logger.info("[%s]%s %-25s %s (%s)", status, " " * (4 - len(status)), name, website, detail)
        if status == "OK":
            stats["ok"] += 1
        else:
            stats["fail"] += 1

    logger.info("Summary: %d accessible, %d issues.", stats["ok"], stats["fail"])
    return stats


if __name__ == "__main__":
    setup_logging()
    check_websites()
