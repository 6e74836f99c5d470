#!/usr/bin/env python3
"""
job_boards.py -- Job board scrapers for SwissDevMap (jobs.ch, SwissDevJobs)

Fetches a job-listing index page, collects links to job detail pages, then
visits up to `max_pages` of them one by one.  From each detail page it takes
the employer name and the page text, extracts tech tags from the text and:

  * records the posting in job_postings (always, linked to the company when known)
  * merges the tags into the company (only when the employer is a known company)

Employer resolution is a case-insensitive exact name match -- "Swisscom AG"
does not resolve to "Swisscom".

Usage:
    python job_boards.py jobsch                 # scrape jobs.ch
    python job_boards.py swissdevjobs           # scrape swissdevjobs.ch
    python job_boards.py jobsch --max-pages 5   # smaller run
    python job_boards.py jobsch --dry-run       # print without writing to DB
"""
import argparse
import json
import logging
import re
import sqlite3
import time
from dataclasses import dataclass, field, replace
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from settings import SCRAPER_USER_AGENT, setup_logging
from tag_store import connect, ensure_tables, find_company_id, merge_tags, record_posting
from tech_tags import TECH_KEYWORDS, extract_tags, format_tags

logger = logging.getLogger("swissdevmap.job_boards")

_PAGINATION_RE = re.compile(r"(^|[?&])(page|p|offset|start)=", re.IGNORECASE)

# Employer text longer than this is a container element, not a name
_MAX_EMPLOYER_LEN = 120


@dataclass
class ListingSite:
    source: str                  # provenance label, e.g. 'jobsch'
    base_url: str
    index_path: str
    detail_path_re: str          # job detail page path pattern
    company_selectors: str       # CSS selector list for the employer name
    link_selector: str = "a[href]"
    delay: float = 1.0           # seconds between detail page visits
    max_pages: int = 30
    index_timeout: float = 15
    detail_timeout: float = 10
    user_agent: str = SCRAPER_USER_AGENT
    keywords: dict = field(default_factory=lambda: dict(TECH_KEYWORDS))

    @property
    def index_url(self) -> str:
        return urljoin(self.base_url, self.index_path)


JOBSCH = ListingSite(
    source="jobsch",
    base_url="https://www.jobs.ch",
    index_path="/en/vacancies/?region=zurich&field=it",
    link_selector='a[href*="/en/vacancies/"]',
    detail_path_re=r"^/en/vacancies/detail/[^/?#]{8,}/?$",
    company_selectors='[class*="company"], [class*="employer"], [data-cy*="company"]',
    delay=1.2,
)

SWISSDEVJOBS = ListingSite(
    source="swissdevjobs",
    base_url="https://swissdevjobs.ch",
    index_path="/jobs",
    link_selector='a[href*="/jobs/"]',
    detail_path_re=r"^/jobs/[^/?#]{8,}/?$",
    company_selectors='[class*="company"], [class*="employer"]',
    delay=1.0,
)

SITES = {s.source: s for s in (JOBSCH, SWISSDEVJOBS)}


# ---------------------------------------------------------------------------
# Link discovery
# ---------------------------------------------------------------------------

def discover_job_links(html: str, site: ListingSite) -> list[str]:
    """Absolute, de-duplicated job detail URLs in first-seen order."""
    soup = BeautifulSoup(html or "", "html.parser")
    base_netloc = urlparse(site.base_url).netloc.lower()
    detail_re = re.compile(site.detail_path_re)
    index_url = site.index_url.rstrip("/")

    links: list[str] = []
    seen: set[str] = set()
    for a in soup.select(site.link_selector):
        href = (a.get("href") or "").strip()
        if not href or href.startswith(("#", "mailto:", "javascript:")):
            continue
        target = urljoin(site.base_url, href)
        parsed = urlparse(target)
        if parsed.netloc.lower() != base_netloc:
            continue
        if _PAGINATION_RE.search(parsed.query):
            continue
        target = parsed._replace(fragment="").geturl()
        if target.rstrip("/") == index_url or not detail_re.match(parsed.path):
            continue
        if target in seen:
            continue
        seen.add(target)
        links.append(target)
    return links


# ---------------------------------------------------------------------------
# Detail page parsing
# ---------------------------------------------------------------------------

def _jsonld_job(soup: BeautifulSoup) -> dict:
    """First JSON-LD JobPosting on the page (flattens lists and @graph), or {}."""
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            raw = (script.string or "").strip()
            if not raw:
                continue
            data = json.loads(raw)
        except ValueError:
            continue

        items = []
        if isinstance(data, list):
            items.extend(data)
        elif isinstance(data, dict):
            if isinstance(data.get("@graph"), list):
                items.extend(data["@graph"])
            else:
                items.append(data)

        for item in items:
            if not isinstance(item, dict):
                continue
            item_type = item.get("@type", "")
            types = item_type if isinstance(item_type, list) else [item_type]
            if "JobPosting" in types:
                return item
    return {}


def _jsonld_employer(job: dict) -> str:
    org = job.get("hiringOrganization")
    if isinstance(org, list):
        org = org[0] if org else None
    if isinstance(org, dict):
        return (org.get("name") or "").strip()
    if isinstance(org, str):
        return org.strip()
    return ""


def _css_employer(soup: BeautifulSoup, selectors: str) -> str:
    for el in soup.select(selectors):
        text = el.get_text(" ", strip=True)
        if text and len(text) <= _MAX_EMPLOYER_LEN:
            return text
    return ""


def parse_job_page(html: str, site: ListingSite) -> dict:
    """Extract {title, company, text} from a job detail page. Missing parts are ''."""
    soup = BeautifulSoup(html or "", "html.parser")
    job = _jsonld_job(soup)

    company = _jsonld_employer(job) or _css_employer(soup, site.company_selectors)

    title = job.get("title")
    title = title.strip() if isinstance(title, str) else ""
    if not title:
        h1 = soup.find("h1")
        title = h1.get_text(" ", strip=True) if h1 else ""

    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    root = soup.body or soup
    text = root.get_text(" ", strip=True)

    return {"title": title, "company": company, "text": text}


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------

def _fetch(session: requests.Session, url: str, site: ListingSite, timeout: float) -> str:
    r = session.get(url, headers={"User-Agent": site.user_agent}, timeout=timeout)
    r.raise_for_status()
    return r.text


def scrape_listing(site: ListingSite, conn=None, session: requests.Session | None = None,
                   dry_run: bool = False) -> int:
    """Scrape one job board. Returns the number of postings processed.

    Never raises for network / parse problems: a failed index fetch returns 0,
    a failed detail page is skipped.
    """
    session = session or requests.Session()
    logger.info("Starting %s scraper...", site.source)

    try:
        index_html = _fetch(session, site.index_url, site, site.index_timeout)
    except Exception as e:
        logger.error("%s scraper failed: index %s -- %s: %s",
                     site.source, site.index_url, type(e).__name__, e)
        return 0

    links = discover_job_links(index_html, site)
    logger.info("  Found %d job links on %s", len(links), site.source)
    if not links:
        logger.info("%s scraper done. 0 postings processed.", site.source)
        return 0

    own_conn = conn is None and not dry_run
    if own_conn:
        conn = connect()
        ensure_tables(conn)

    stats = {"processed": 0, "linked": 0, "unknown_company": 0, "failed": 0, "tags_added": 0}
    try:
        for i, url in enumerate(links[:site.max_pages]):
            if i and site.delay:
                time.sleep(site.delay)
            try:
                html = _fetch(session, url, site, site.detail_timeout)
                job = parse_job_page(html, site)
                tags = extract_tags(job["text"], site.keywords)
            except Exception as e:
                stats["failed"] += 1
                logger.debug("  [skip] %s -- %s: %s", url, type(e).__name__, e)
                continue

            if dry_run:
                stats["processed"] += 1
                logger.info("  [dry] %s: %s", job["company"] or "?", format_tags(tags))
                continue

            try:
                company_id = find_company_id(conn, job["company"])
                if company_id is not None and tags:
                    stats["tags_added"] += merge_tags(conn, company_id, tags, site.source)
                record_posting(conn, site.source, url, job["title"], job["text"], company_id)
            except sqlite3.Error as e:
                stats["failed"] += 1
                conn.rollback()
                logger.error("  [DB] %s -- %s: %s", url, type(e).__name__, e)
                continue

            stats["processed"] += 1
            if company_id is not None:
                stats["linked"] += 1
                logger.info("  [OK] %s: %s", job["company"], format_tags(tags))
            else:
                stats["unknown_company"] += 1
                if job["company"]:
                    logger.info("  Unknown company: %s (posting kept, no tags attached)", job["company"])
    finally:
        if own_conn:
            conn.close()

    logger.info(
        "%s scraper done. %d postings processed (%d linked, %d unknown employer, %d failed, %d new tags).",
        site.source, stats["processed"], stats["linked"], stats["unknown_company"],
        stats["failed"], stats["tags_added"],
    )
    return stats["processed"]


def scrape_jobsch(conn=None, session=None, dry_run: bool = False) -> int:
    return scrape_listing(JOBSCH, conn=conn, session=session, dry_run=dry_run)


def scrape_swissdevjobs(conn=None, session=None, dry_run: bool = False) -> int:
    return scrape_listing(SWISSDEVJOBS, conn=conn, session=session, dry_run=dry_run)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Job board tech-tag scraper for SwissDevMap")
    parser.add_argument("site", choices=sorted(SITES), help="Job board to scrape")
    parser.add_argument("--max-pages", type=int, help="Cap on detail pages visited (default 30)")
    parser.add_argument("--dry-run", action="store_true", help="Print results without writing to DB")
    args = parser.parse_args()

    setup_logging()
    target = SITES[args.site]
    if args.max_pages:
        target = replace(target, max_pages=args.max_pages)
    count = scrape_listing(target, dry_run=args.dry_run)
    print(f"{count} postings processed")
