"""Tests for pipeline.py - collector registry, background triggers, cross-collector merge."""
from dataclasses import replace

import pytest

import pipeline
from fingerprint import FingerprintConfig, run_fingerprinting
from job_boards import SWISSDEVJOBS, scrape_listing
from tests.fakes import FakeSession


@pytest.fixture
def collectors(monkeypatch):
    registry = {}
    monkeypatch.setattr(pipeline, "COLLECTORS", registry)
    monkeypatch.setattr(pipeline, "_last_runs", {})
    return registry


class TestRunCollector:

    def test_returns_count_and_records_run(self, collectors):
        collectors["dummy"] = lambda **kw: 7
        assert pipeline.run_collector("dummy") == 7
        run = pipeline.last_runs()["dummy"]
        assert run["status"] == "done"
        assert run["processed"] == 7
        assert run["finished_at"]

    def test_kwargs_are_forwarded(self, collectors):
        seen = {}
        collectors["dummy"] = lambda **kw: seen.update(kw) or 0
        pipeline.run_collector("dummy", dry_run=True)
        assert seen == {"dry_run": True}

    def test_unknown_collector(self, collectors):
        with pytest.raises(KeyError):
            pipeline.run_collector("nope")
        with pytest.raises(KeyError):
            pipeline.start_collector("nope")


class TestStartCollector:

    def test_runs_in_background_thread(self, collectors):
        collectors["dummy"] = lambda **kw: 3
        thread = pipeline.start_collector("dummy")
        thread.join(timeout=5)
        assert not thread.is_alive()
        assert thread.daemon
        assert pipeline.last_runs()["dummy"]["processed"] == 3

    def test_crash_is_logged_not_raised(self, collectors, caplog):
        def _boom(**kw):
            raise RuntimeError("browser missing")

        collectors["boom"] = _boom
        thread = pipeline.start_collector("boom")
        thread.join(timeout=5)

        run = pipeline.last_runs()["boom"]
        assert run["status"] == "failed"
        assert "browser missing" in run["error"]
        assert "boom collector crashed" in caplog.text


def test_default_registry():
    assert set(pipeline.COLLECTORS) == {"fingerprint", "jobsch", "swissdevjobs"}


def test_same_tag_from_two_collectors_keeps_first_source(conn, make_company):
    cid = make_company("Proton")

    def visitor(url):
        return {}, "<script>ReactDOM.createRoot(el)</script>", []

    run_fingerprinting(FingerprintConfig(targets=[("Proton", "https://proton.me")], delay=0),
                       conn=conn, visitor=visitor)

    site = replace(SWISSDEVJOBS, delay=0)
    detail = "https://swissdevjobs.ch/jobs/Proton-Frontend-Engineer"
    session = FakeSession({
        site.index_url: '<a href="/jobs/Proton-Frontend-Engineer">job</a>',
        detail: '<h1>Frontend</h1><div class="company">Proton</div><p>React and TypeScript</p>',
    })
    assert scrape_listing(site, conn=conn, session=session) == 1

    rows = conn.execute(
        "SELECT category, source FROM tech_tags WHERE company_id=? AND tag='React'", (cid,)
    ).fetchall()
    assert [tuple(r) for r in rows] == [("frontend", "fingerprint")]
    assert conn.execute(
        "SELECT source FROM tech_tags WHERE company_id=? AND tag='TypeScript'", (cid,)
    ).fetchone()[0] == "swissdevjobs"
