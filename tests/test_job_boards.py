"""Tests for job_boards.py - listing page link discovery and detail scraping."""
import sqlite3
from dataclasses import replace

import pytest
import requests

import job_boards
from job_boards import (
    JOBSCH, SWISSDEVJOBS, discover_job_links, parse_job_page, scrape_listing,
)
from tests.fakes import FakeResponse, FakeSession

SDJ = replace(SWISSDEVJOBS, delay=0)
INDEX = SDJ.index_url


def _detail(company, body, title="Senior Engineer"):
    return f"""<html><body>
      <h1>{title}</h1>
      <div class="company-name">{company}</div>
      <section><p>{body}</p></section>
    </body></html>"""


def _index(*hrefs):
    return "<html><body>" + "".join(f'<a href="{h}">job</a>' for h in hrefs) + "</body></html>"


class TestDiscoverJobLinks:

    def test_detail_links_only_deduplicated(self):
        html = _index(
            "/jobs/Proton-Senior-Go-Engineer",
            "/jobs/Proton-Senior-Go-Engineer",
            "https://swissdevjobs.ch/jobs/UBS-Java-Developer#apply",
            "/jobs",
            "/jobs/?page=2",
            "/jobs/Java/All",
            "https://other-board.ch/jobs/Some-Other-Posting",
            "#top",
        )
        assert discover_job_links(html, SDJ) == [
            "https://swissdevjobs.ch/jobs/Proton-Senior-Go-Engineer",
            "https://swissdevjobs.ch/jobs/UBS-Java-Developer",
        ]

    def test_jobsch_links(self):
        html = _index(
            "/en/vacancies/detail/3f2a9c1e-1111-4a3b-9c7d-abcdef012345/",
            "/en/vacancies/?region=zurich&field=it&page=2",
            "/en/vacancies/",
            "/en/companies/swisscom/",
        )
        assert discover_job_links(html, JOBSCH) == [
            "https://www.jobs.ch/en/vacancies/detail/3f2a9c1e-1111-4a3b-9c7d-abcdef012345/",
        ]

    def test_no_links(self):
        assert discover_job_links("<html><body><p>No jobs</p></body></html>", SDJ) == []
        assert discover_job_links("", SDJ) == []


class TestParseJobPage:

    def test_css_employer_title_and_text(self):
        job = parse_job_page(_detail("Proton", "We use Go daily"), SDJ)
        assert job["company"] == "Proton"
        assert job["title"] == "Senior Engineer"
        assert "We use Go daily" in job["text"]

    def test_jsonld_employer_wins(self):
        html = """<html><head>
          <script type="application/ld+json">
            {"@context": "https://schema.org", "@graph": [
              {"@type": "JobPosting", "title": "Platform Engineer",
               "hiringOrganization": {"@type": "Organization", "name": "SIX Group"}}]}
          </script></head>
          <body><div class="company-teaser">Some other text</div><p>Kafka</p></body></html>"""
        job = parse_job_page(html, SDJ)
        assert job["company"] == "SIX Group"
        assert job["title"] == "Platform Engineer"
        assert "hiringOrganization" not in job["text"]

    def test_missing_everything(self):
        job = parse_job_page("<html><body></body></html>", SDJ)
        assert job == {"title": "", "company": "", "text": ""}

    def test_malformed_jsonld_is_ignored(self):
        html = '<script type="application/ld+json">{not json</script><h1>T</h1>'
        assert parse_job_page(html, SDJ)["title"] == "T"


class TestScrapeListing:

    def test_zero_links_returns_zero(self, conn):
        session = FakeSession({INDEX: "<html><body>Nothing here</body></html>"})
        assert scrape_listing(SDJ, conn=conn, session=session) == 0
        assert session.calls == [INDEX]

    def test_index_failure_returns_zero(self, conn):
        session = FakeSession({INDEX: FakeResponse("boom", status_code=503)})
        assert scrape_listing(SDJ, conn=conn, session=session) == 0

    def test_index_timeout_returns_zero(self, conn):
        session = FakeSession({INDEX: requests.Timeout("read timed out")})
        assert scrape_listing(SDJ, conn=conn, session=session) == 0

    def test_known_and_unknown_employers(self, conn, make_company):
        cid = make_company("Proton")
        known = "https://swissdevjobs.ch/jobs/Proton-Go-Engineer"
        unknown = "https://swissdevjobs.ch/jobs/Startup-Rust-Engineer"
        session = FakeSession({
            INDEX: _index("/jobs/Proton-Go-Engineer", "/jobs/Startup-Rust-Engineer"),
            known: _detail("PROTON", "We use Go, Kubernetes and PostgreSQL daily"),
            unknown: _detail("Tiny Startup GmbH", "Rust and React"),
        })

        assert scrape_listing(SDJ, conn=conn, session=session) == 2

        tags = conn.execute(
            "SELECT tag, category, source FROM tech_tags WHERE company_id=?", (cid,)
        ).fetchall()
        assert {r["tag"] for r in tags} >= {"Go", "Kubernetes", "PostgreSQL"}
        assert {r["source"] for r in tags} == {"swissdevjobs"}
        assert conn.execute("SELECT COUNT(*) FROM tech_tags WHERE tag='Rust'").fetchone()[0] == 0

        postings = conn.execute(
            "SELECT source_url, company_id, title FROM job_postings ORDER BY id"
        ).fetchall()
        assert [(p["source_url"], p["company_id"]) for p in postings] == [(known, cid), (unknown, None)]
        assert postings[0]["title"] == "Senior Engineer"

    def test_failed_detail_page_is_skipped(self, conn, make_company):
        make_company("UBS")
        ok = "https://swissdevjobs.ch/jobs/UBS-Java-Developer"
        session = FakeSession({
            INDEX: _index("/jobs/Broken-Posting-Page", "/jobs/UBS-Java-Developer",
                          "/jobs/Timeout-Posting-Page"),
            "https://swissdevjobs.ch/jobs/Broken-Posting-Page": FakeResponse("gone", status_code=404),
            "https://swissdevjobs.ch/jobs/Timeout-Posting-Page": requests.Timeout("slow"),
            ok: _detail("UBS", "Java and Angular"),
        })
        assert scrape_listing(SDJ, conn=conn, session=session) == 1
        assert conn.execute("SELECT COUNT(*) FROM job_postings").fetchone()[0] == 1

    def test_database_error_on_one_page_does_not_stop_run(self, conn, make_company, monkeypatch):
        make_company("Proton")
        first = "https://swissdevjobs.ch/jobs/Proton-Go-Engineer-1"
        second = "https://swissdevjobs.ch/jobs/Proton-Go-Engineer-2"
        session = FakeSession({
            INDEX: _index("/jobs/Proton-Go-Engineer-1", "/jobs/Proton-Go-Engineer-2"),
            first: _detail("Proton", "Go"),
            second: _detail("Proton", "Rust"),
        })
        real_record = job_boards.record_posting
        calls = []

        def flaky_record(*args, **kwargs):
            calls.append(args[2])
            if len(calls) == 1:
                raise sqlite3.OperationalError("database is locked")
            return real_record(*args, **kwargs)

        monkeypatch.setattr(job_boards, "record_posting", flaky_record)

        assert scrape_listing(SDJ, conn=conn, session=session) == 1
        assert session.calls[-1] == second
        assert calls == [first, second]
        urls = [r[0] for r in conn.execute("SELECT source_url FROM job_postings")]
        assert urls == [second]

    def test_visit_cap(self, conn):
        hrefs = [f"/jobs/Posting-Number-{i:03d}" for i in range(5)]
        pages = {INDEX: _index(*hrefs)}
        for h in hrefs:
            pages["https://swissdevjobs.ch" + h] = _detail("Nobody", "Python")
        session = FakeSession(pages)

        assert scrape_listing(replace(SDJ, max_pages=3), conn=conn, session=session) == 3
        assert len(session.calls) == 4

    def test_rerun_is_idempotent_for_tags(self, conn, make_company):
        make_company("Proton")
        url = "https://swissdevjobs.ch/jobs/Proton-Go-Engineer"
        session = FakeSession({INDEX: _index("/jobs/Proton-Go-Engineer"),
                               url: _detail("Proton", "Go and React")})
        scrape_listing(SDJ, conn=conn, session=session)
        scrape_listing(SDJ, conn=conn, session=session)
        assert conn.execute("SELECT COUNT(*) FROM tech_tags").fetchone()[0] == 2
        assert conn.execute("SELECT COUNT(*) FROM job_postings").fetchone()[0] == 2

    def test_delay_between_detail_pages(self, conn, monkeypatch):
        sleeps = []
        monkeypatch.setattr("job_boards.time.sleep", sleeps.append)
        pages = {INDEX: _index("/jobs/First-Posting-Here", "/jobs/Second-Posting-Here")}
        pages["https://swissdevjobs.ch/jobs/First-Posting-Here"] = _detail("A", "")
        pages["https://swissdevjobs.ch/jobs/Second-Posting-Here"] = _detail("B", "")
        scrape_listing(SWISSDEVJOBS, conn=conn, session=FakeSession(pages))
        assert sleeps == [1.0]

    @pytest.mark.parametrize("site", [JOBSCH, SWISSDEVJOBS])
    def test_presets(self, site):
        assert site.max_pages == 30
        assert site.index_timeout <= 20 and site.detail_timeout <= 20
        assert 1.0 <= site.delay <= 1.2
