"""
tag_store.py -- Persistence layer for SwissDevMap.

Owns the `companies`, `tech_tags` and `job_postings` tables.
Provides: schema setup, company lookup by name, idempotent tag merge
(first writer wins), append-only job posting evidence, and query helpers
for the API.
"""

import sqlite3
from datetime import datetime, timezone

from settings import get_db_path

RAW_TEXT_LIMIT = 5000


def _casefold(value):
    return value.casefold() if isinstance(value, str) else value


def connect(db_path=None) -> sqlite3.Connection:
    """Open a connection with Row rows and a unicode-aware casefold() SQL function.

    One connection per thread; check_same_thread stays on.
    """
    conn = sqlite3.connect(db_path or get_db_path(), timeout=30)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.create_function("casefold", 1, _casefold, deterministic=True)
    return conn


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# A) Schema (idempotent)
# ---------------------------------------------------------------------------

def ensure_tables(conn: sqlite3.Connection):
    """Create companies / tech_tags / job_postings. Safe to call repeatedly."""
    conn.execute("""
        CREATE TABLE IF NOT EXISTS companies (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            name        TEXT NOT NULL,
            uid         TEXT,
            website     TEXT,
            city        TEXT,
            lat         REAL NOT NULL,
            lng         REAL NOT NULL,
            type        TEXT,
            created_at  TEXT NOT NULL
        )
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS tech_tags (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            company_id      INTEGER NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
            tag             TEXT NOT NULL,
            category        TEXT NOT NULL,
            source          TEXT NOT NULL,
            discovered_at   TEXT NOT NULL,
            UNIQUE(company_id, tag)
        )
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS job_postings (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            company_id  INTEGER REFERENCES companies(id) ON DELETE SET NULL,
            source      TEXT NOT NULL,
            source_url  TEXT NOT NULL,
            title       TEXT NOT NULL DEFAULT '',
            raw_text    TEXT NOT NULL DEFAULT '',
            scraped_at  TEXT NOT NULL
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_tech_tags_tag ON tech_tags(tag)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_companies_city ON companies(city)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_job_postings_source ON job_postings(source)")
    conn.commit()


def reset_tables(conn: sqlite3.Connection):
    """Delete all rows (seed --reset)."""
    conn.execute("DELETE FROM job_postings")
    conn.execute("DELETE FROM tech_tags")
    conn.execute("DELETE FROM companies")
    conn.execute("DELETE FROM sqlite_sequence WHERE name IN ('companies', 'tech_tags', 'job_postings')")
    conn.commit()


# ---------------------------------------------------------------------------
# B) Company directory lookup
# ---------------------------------------------------------------------------

def find_company_id(conn: sqlite3.Connection, name: str | None) -> int | None:
    """Case-insensitive exact name match. Returns the lowest matching id or None."""
    if not name or not name.strip():
        return None
    row = conn.execute(
        "SELECT id FROM companies WHERE casefold(trim(name)) = ? ORDER BY id LIMIT 1",
        (name.strip().casefold(),),
    ).fetchone()
    return row[0] if row else None


def insert_company(conn: sqlite3.Connection, name: str, lat: float, lng: float,
                   uid: str | None = None, website: str | None = None,
                   city: str | None = None, type: str | None = None,
                   commit: bool = True) -> int:
    cur = conn.execute(
        """INSERT INTO companies (name, uid, website, city, lat, lng, type, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        (name, uid, website, city, lat, lng, type, _now()),
    )
    if commit:
        conn.commit()
    return cur.lastrowid


def create_company(conn: sqlite3.Connection, name: str, lat: float, lng: float,
                   tags=(), source: str = "user_submission", **fields) -> int:
    """Insert a company and its tags in one transaction; nothing is kept on error."""
    try:
        company_id = insert_company(conn, name, lat, lng, commit=False, **fields)
        merge_tags(conn, company_id, tags, source, commit=False)
    except Exception:
        conn.rollback()
        raise
    conn.commit()
    return company_id


# ---------------------------------------------------------------------------
# C) Tag merge (insert-if-absent) + posting evidence
# ---------------------------------------------------------------------------

def merge_tags(conn: sqlite3.Connection, company_id: int, tags, source: str,
               now: str | None = None, commit: bool = True) -> int:
    """Insert each (tag, category) for the company unless (company, tag) exists.

    An existing row is never touched: the category and source of the first
    detection stay.  Returns the number of newly inserted tags.
    """
    if now is None:
        now = _now()
    added = 0
    for tag, category in tags:
        cur = conn.execute(
            """INSERT INTO tech_tags (company_id, tag, category, source, discovered_at)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(company_id, tag) DO NOTHING""",
            (company_id, tag, category, source, now),
        )
        added += cur.rowcount
    if commit:
        conn.commit()
    return added


def record_posting(conn: sqlite3.Connection, source: str, url: str, title: str,
                   raw_text: str, company_id: int | None = None) -> int:
    """Append one job posting (evidence only)."""
    cur = conn.execute(
        """INSERT INTO job_postings (company_id, source, source_url, title, raw_text, scraped_at)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (company_id, source, url, title or "", (raw_text or "")[:RAW_TEXT_LIMIT], _now()),
    )
    conn.commit()
    return cur.lastrowid


# ---------------------------------------------------------------------------
# D) Query helpers (for API endpoints)
# ---------------------------------------------------------------------------

def get_company_tags(conn: sqlite3.Connection, company_id: int) -> list[dict]:
    rows = conn.execute(
        "SELECT tag, category, source, discovered_at FROM tech_tags WHERE company_id=? ORDER BY tag",
        (company_id,),
    ).fetchall()
    return [dict(r) for r in rows]


def _company_dict(row: sqlite3.Row, tags: list[dict]) -> dict:
    return {
        "id": row["id"], "name": row["name"], "uid": row["uid"],
        "website": row["website"], "city": row["city"],
        "lat": row["lat"], "lng": row["lng"], "type": row["type"],
        "tags": [{"tag": t["tag"], "category": t["category"]} for t in tags],
    }


def list_companies(conn: sqlite3.Connection, tag: str | None = None,
                   city: str | None = None) -> list[dict]:
    """Companies with their tags, optionally filtered by tag and/or city (case-insensitive)."""
    query = "SELECT * FROM companies c"
    conditions, params = [], []
    if tag:
        conditions.append(
            "c.id IN (SELECT company_id FROM tech_tags WHERE casefold(tag) = ?)"
        )
        params.append(tag.casefold())
    if city:
        conditions.append("casefold(c.city) = ?")
        params.append(city.casefold())
    if conditions:
        query += " WHERE " + " AND ".join(conditions)
    query += " ORDER BY c.name"

    companies = conn.execute(query, params).fetchall()
    if not companies:
        return []

    ids = [r["id"] for r in companies]
    placeholders = ",".join("?" for _ in ids)
    tag_rows = conn.execute(
        f"SELECT company_id, tag, category FROM tech_tags WHERE company_id IN ({placeholders}) ORDER BY tag",
        ids,
    ).fetchall()
    by_company: dict[int, list[dict]] = {}
    for r in tag_rows:
        by_company.setdefault(r["company_id"], []).append(dict(r))

    return [_company_dict(r, by_company.get(r["id"], [])) for r in companies]


def get_company(conn: sqlite3.Connection, company_id: int) -> dict | None:
    row = conn.execute("SELECT * FROM companies WHERE id=?", (company_id,)).fetchone()
    if row is None:
        return None
    return _company_dict(row, get_company_tags(conn, company_id))


def heatmap_rows(conn: sqlite3.Connection, tech: str) -> list[dict]:
    """Companies carrying a tag, with a per-company intensity count."""
    rows = conn.execute(
        """SELECT c.id, c.name, c.lat, c.lng, c.city, COUNT(t.tag) AS intensity
           FROM companies c
           JOIN tech_tags t ON t.company_id = c.id
           WHERE casefold(t.tag) = ?
           GROUP BY c.id
           ORDER BY c.name""",
        (tech.casefold(),),
    ).fetchall()
    return [dict(r) for r in rows]


def tag_summary(conn: sqlite3.Connection) -> list[dict]:
    """Number of companies per (tag, category), most common first."""
    rows = conn.execute(
        """SELECT tag, category, COUNT(*) AS company_count
           FROM tech_tags
           GROUP BY tag, category
           ORDER BY company_count DESC, tag"""
    ).fetchall()
    return [dict(r) for r in rows]
