#!/usr/bin/env python3
"""
fingerprint.py -- Website fingerprinting collector for SwissDevMap

Visits each target company's website in headless Chromium, captures the
navigation response headers, the rendered HTML and every <script src>, runs
them through the fingerprint rules and merges the detected tags into the
company's tag set (source='fingerprint').

Visits are strictly sequential with a courtesy delay between them.  A failed
visit is logged and skipped; the run always completes.

Usage:
    python fingerprint.py                       # fingerprint the built-in target list
    python fingerprint.py --company Proton      # single target
    python fingerprint.py --http                # plain HTTP fetch instead of Playwright
    python fingerprint.py --dry-run             # print tags without writing to DB
"""
import argparse
import logging
import sqlite3
import time
from dataclasses import dataclass, field
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup
from playwright.sync_api import sync_playwright, Page, Response

from fingerprint_rules import FINGERPRINT_RULES, FingerprintRule, apply_fingerprints
from settings import BROWSER_USER_AGENT, setup_logging
from tag_store import connect, ensure_tables, find_company_id, merge_tags

logger = logging.getLogger("swissdevmap.fingerprint")

SOURCE = "fingerprint"

# ---------------------------------------------------------------------------
# Built-in target list
# ---------------------------------------------------------------------------
DEFAULT_TARGETS = [
    ("Swisscom",            "https://www.swisscom.ch"),
    ("Logitech",            "https://www.logitech.com"),
    ("Proton",              "https://proton.me"),
    ("ABB",                 "https://www.abb.com"),
    ("Google Zürich",       "https://careers.google.com/locations/zurich/"),
    ("UBS",                 "https://www.ubs.com"),
    ("Roche",               "https://www.roche.com"),
    ("Novartis",            "https://www.novartis.com"),
    ("SIX Group",           "https://www.six-group.com"),
    ("Ergon Informatik",    "https://www.ergon.ch"),
    ("Open Systems",        "https://www.open-systems.com"),
    ("Adnovum",             "https://www.adnovum.ch"),
    ("Tamedia",             "https://www.tamedia.ch"),
    ("Nestlé Digital Hub",  "https://www.nestle.com"),
    ("EPFL Innovation Park", "https://www.innovationpark.ch"),
    ("Zühlke Engineering",  "https://www.zuehlke.com"),
    ("Sensirion",           "https://www.sensirion.com"),
    ("Sunrise UPC",         "https://www.sunrise.ch"),
    ("Doodle",              "https://doodle.com"),
    ("Cembra Money Bank",   "https://www.cembra.ch"),
]


@dataclass
class FingerprintConfig:
    targets: list = field(default_factory=lambda: list(DEFAULT_TARGETS))
    rules: list[FingerprintRule] = field(default_factory=lambda: list(FINGERPRINT_RULES))
    delay: float = 1.5           # seconds between visits
    timeout_ms: int = 20000      # navigation timeout per visit
    user_agent: str = BROWSER_USER_AGENT


# ---------------------------------------------------------------------------
# Page visitors: url -> (headers, html, script urls)
# ---------------------------------------------------------------------------

def visit_rendered(page: Page, url: str, timeout_ms: int = 20000) -> tuple[dict, str, list[str]]:
    """Navigate with Playwright and return navigation headers, DOM HTML and script srcs."""
    captured: dict = {}

    def _on_response(response: Response):
        try:
            if response.url == url or response.request.is_navigation_request():
                captured.update(response.headers)
        except Exception as e:
            logger.debug("response listener skipped: %s", e)

    page.on("response", _on_response)
    try:
        page.goto(url, timeout=timeout_ms, wait_until="domcontentloaded")
        html = page.content()
        scripts = page.eval_on_selector_all(
            "script[src]", "els => els.map(el => el.src)"
        )
    finally:
        page.remove_listener("response", _on_response)
    return captured, html, scripts


class BrowserVisitor:
    """Context manager owning one headless Chromium; a new page per visit."""

    def __init__(self, user_agent: str = BROWSER_USER_AGENT, timeout_ms: int = 20000):
        self.user_agent = user_agent
        self.timeout_ms = timeout_ms
        self._pw = None
        self._browser = None
        self._context = None

    def __enter__(self):
        self._pw = sync_playwright().start()
        self._browser = self._pw.chromium.launch(headless=True)
        self._context = self._browser.new_context(user_agent=self.user_agent)
        self._context.set_default_timeout(self.timeout_ms)
        return self

    def __exit__(self, *exc):
        if self._context:
            self._context.close()
        if self._browser:
            self._browser.close()
        if self._pw:
            self._pw.stop()
        return False

    def __call__(self, url: str) -> tuple[dict, str, list[str]]:
        page = self._context.new_page()
        try:
            return visit_rendered(page, url, self.timeout_ms)
        finally:
            page.close()


class HttpVisitor:
    """Raw HTTP fetch: no JS execution, so only server-rendered markers are visible."""

    def __init__(self, session: requests.Session | None = None,
                 user_agent: str = BROWSER_USER_AGENT, timeout: float = 20):
        self.session = session or requests.Session()
        self.user_agent = user_agent
        self.timeout = timeout

    def __call__(self, url: str) -> tuple[dict, str, list[str]]:
        r = self.session.get(url, headers={"User-Agent": self.user_agent},
                             timeout=self.timeout, allow_redirects=True)
        r.raise_for_status()
        html = r.text
        soup = BeautifulSoup(html, "html.parser")
        base = getattr(r, "url", None) or url
        scripts = [urljoin(base, s["src"]) for s in soup.find_all("script", src=True)]
        return dict(r.headers), html, scripts


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------

def fingerprint_targets(config: FingerprintConfig, visitor, conn=None,
                        dry_run: bool = False) -> dict[str, list[str]]:
    """Visit every target with `visitor` and merge detected tags. Returns {company: [tags]}."""
    results: dict[str, list[str]] = {}
    stats = {"visited": 0, "failed": 0, "tags_added": 0, "unknown_company": 0}

    for i, (company_name, url) in enumerate(config.targets):
        if i and config.delay:
            time.sleep(config.delay)
        stats["visited"] += 1
        try:
            headers, html, scripts = visitor(url)
        except Exception as e:
            stats["failed"] += 1
            logger.warning("  [ERR] %s: failed -- %s: %s", company_name, type(e).__name__, e)
            continue

        tags = apply_fingerprints(headers, html, scripts, config.rules)
        results[company_name] = [t for t, _ in tags]
        names = ", ".join(results[company_name]) or "none detected"
        logger.info("  [OK] %s: %s", company_name, names)

        if dry_run or conn is None or not tags:
            continue
        try:
            company_id = find_company_id(conn, company_name)
            if company_id is None:
                stats["unknown_company"] += 1
                logger.debug("    -> %s not in companies table, tags not stored", company_name)
                continue
            added = merge_tags(conn, company_id, tags, SOURCE)
        except sqlite3.Error as e:
            conn.rollback()
            stats["failed"] += 1
            logger.error("  [DB] %s: tags not stored -- %s: %s", company_name, type(e).__name__, e)
            continue
        stats["tags_added"] += added
        logger.debug("    -> %s: +%d new tags", company_name, added)

    logger.info(
        "Fingerprinting complete: %d visited, %d failed, %d new tags, %d unknown companies",
        stats["visited"], stats["failed"], stats["tags_added"], stats["unknown_company"],
    )
    return results


def run_fingerprinting(config: FingerprintConfig | None = None, conn=None,
                       visitor=None, dry_run: bool = False) -> dict[str, list[str]]:
    """Fingerprint all configured targets.

    `visitor` is any callable url -> (headers, html, scripts); by default a
    headless Chromium is launched for the duration of the run.
    """
    if config is None:
        config = FingerprintConfig()
    logger.info("Starting fingerprinting of %d sites...", len(config.targets))

    own_conn = conn is None and not dry_run
    if own_conn:
        conn = connect()
        ensure_tables(conn)
    try:
        if visitor is None:
            with BrowserVisitor(config.user_agent, config.timeout_ms) as browser:
                return fingerprint_targets(config, browser, conn, dry_run)
        return fingerprint_targets(config, visitor, conn, dry_run)
    finally:
        if own_conn:
            conn.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Fingerprint company websites for SwissDevMap")
    parser.add_argument("--company", help="Fingerprint a single built-in target by name")
    parser.add_argument("--url", help="Fingerprint an ad-hoc URL (use with --company)")
    parser.add_argument("--http", action="store_true",
                        help="Fetch with plain HTTP instead of headless Chromium")
    parser.add_argument("--dry-run", action="store_true", help="Print results without writing to DB")
    args = parser.parse_args()

    setup_logging()
    cfg = FingerprintConfig()
    if args.url:
        cfg.targets = [(args.company or args.url, args.url)]
    elif args.company:
        cfg.targets = [(n, u) for n, u in DEFAULT_TARGETS if n.lower() == args.company.lower()]
        if not cfg.targets:
            parser.error(f"Company '{args.company}' is not a built-in target (use --url)")

    visitor = HttpVisitor(timeout=cfg.timeout_ms / 1000) if args.http else None
    run_fingerprinting(cfg, visitor=visitor, dry_run=args.dry_run)
