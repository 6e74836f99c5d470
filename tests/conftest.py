"""
Pytest configuration and shared fixtures.

DB_PATH / LOG_DIR point at a temp dir before any project module is imported
(app.py touches the database at import time).  Every test then gets its own
SQLite file via the `db_path` fixture.
"""

import os
import tempfile
from pathlib import Path

_TMP = Path(tempfile.mkdtemp(prefix="swissdevmap-tests-"))
os.environ["DB_PATH"] = str(_TMP / "import.db")
os.environ["LOG_DIR"] = str(_TMP / "logs")
os.environ.pop("ADMIN_TOKEN", None)

import pytest  # noqa: E402

import tag_store  # noqa: E402


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = tmp_path / "test.db"
    monkeypatch.setenv("DB_PATH", str(path))
    return path


@pytest.fixture
def conn(db_path):
    c = tag_store.connect()
    tag_store.ensure_tables(c)
    yield c
    c.close()


@pytest.fixture
def make_company(conn):
    """Factory: insert a company and return its id."""
    def _make(name, city="Zürich", lat=47.3769, lng=8.5417, website=None):
        return tag_store.insert_company(conn, name, lat, lng, city=city, website=website)
    return _make
