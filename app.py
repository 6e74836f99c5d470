from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os
import sqlite3
from datetime import datetime, timezone

import pipeline
import settings
import tag_store

settings.setup_logging()
logger = logging.getLogger("swissdevmap.app")

app = FastAPI(title="SwissDevMap API")

# CORS
_cors_raw = os.environ.get("CORS_ORIGINS", "")
_cors_origins = [o.strip() for o in _cors_raw.split(",") if o.strip()] if _cors_raw else [
    "http://localhost:5173",
    "http://localhost:3000",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------------
# DB init
# ----------------------------
def init_db():
    conn = tag_store.connect()
    try:
        tag_store.ensure_tables(conn)
        count = conn.execute("SELECT COUNT(*) FROM companies").fetchone()[0]
    finally:
        conn.close()
    if count == 0:
        logger.warning("companies table is empty -- run seed.py")


init_db()


def _db():
    conn = tag_store.connect()
    tag_store.ensure_tables(conn)
    return conn


# ----------------------------
# Health
# ----------------------------
@app.get("/health")
def health():
    return {
        "status": "ok",
        "service": "SwissDevMap API",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ----------------------------
# Companies
# ----------------------------
@app.get("/api/companies")
def companies(
    tag: str | None = Query(default=None),
    city: str | None = Query(default=None),
):
    conn = _db()
    try:
        return tag_store.list_companies(conn, tag=tag, city=city)
    finally:
        conn.close()


@app.get("/api/companies/{company_id}")
def company_detail(company_id: int):
    conn = _db()
    try:
        company = tag_store.get_company(conn, company_id)
    finally:
        conn.close()
    if company is None:
        return JSONResponse({"error": "Not found"}, status_code=404)
    return company


def _to_float(value):
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@app.post("/api/companies")
async def create_company(request: Request):
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"error": "Body must be JSON"}, status_code=400)
    if not isinstance(body, dict):
        return JSONResponse({"error": "Body must be a JSON object"}, status_code=400)

    name = (body.get("name") or "").strip()
    lat, lng = _to_float(body.get("lat")), _to_float(body.get("lng"))
    if not name or lat is None or lng is None:
        return JSONResponse({"error": "Missing required fields: name, lat, lng"}, status_code=400)

    tags = body.get("tags") or []
    pairs = [
        (t["tag"], t["category"]) for t in tags
        if isinstance(t, dict) and isinstance(t.get("tag"), str) and isinstance(t.get("category"), str)
        and t["tag"].strip() and t["category"].strip()
    ] if isinstance(tags, list) else []

    conn = _db()
    try:
        company_id = tag_store.create_company(
            conn, name, lat, lng, pairs, "user_submission",
            uid=body.get("uid") or None, website=body.get("website") or None,
            city=body.get("city") or None, type=body.get("type") or None,
        )
        company = tag_store.get_company(conn, company_id)
    except sqlite3.Error:
        logger.exception("Failed to create company %s", name)
        return JSONResponse({"error": "Failed to create company"}, status_code=500)
    finally:
        conn.close()
    logger.info("Company created: %s (%d tags)", name, len(pairs))
    return JSONResponse(company, status_code=201)


# ----------------------------
# Heatmap (GeoJSON)
# ----------------------------
@app.get("/api/heatmap")
def heatmap(tech: str | None = Query(default=None)):
    if not tech:
        return JSONResponse({"error": "tech query param required (e.g. ?tech=React)"}, status_code=400)
    conn = _db()
    try:
        rows = tag_store.heatmap_rows(conn, tech)
    finally:
        conn.close()
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [r["lng"], r["lat"]]},
                "properties": {
                    "id": r["id"], "name": r["name"], "city": r["city"],
                    "intensity": r["intensity"],
                },
            }
            for r in rows
        ],
    }


@app.get("/api/heatmap/summary")
def heatmap_summary():
    conn = _db()
    try:
        return tag_store.tag_summary(conn)
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Admin: manual scraper triggers (fire-and-forget)
# ---------------------------------------------------------------------------
_ADMIN_TOKEN = os.environ.get("ADMIN_TOKEN", "")


def _check_admin(request: Request):
    if not _ADMIN_TOKEN:
        return None, 0  # open in local dev
    token = request.headers.get("X-Admin-Token", "")
    if token != _ADMIN_TOKEN:
        return {"error": "unauthorized"}, 401
    return None, 0


@app.post("/api/scrape/{collector}")
def trigger_scrape(collector: str, request: Request):
    err, code = _check_admin(request)
    if err:
        return JSONResponse(err, status_code=code)
    if collector not in pipeline.COLLECTORS:
        return JSONResponse(
            {"error": f"unknown collector '{collector}'", "collectors": sorted(pipeline.COLLECTORS)},
            status_code=404,
        )
    pipeline.start_collector(collector)
    return JSONResponse(
        {"message": f"{collector} scraper started -- check server logs for progress.",
         "collector": collector},
        status_code=202,
    )


@app.get("/api/scrape/status")
def scrape_status(request: Request):
    err, code = _check_admin(request)
    if err:
        return JSONResponse(err, status_code=code)
    return {"runs": pipeline.last_runs()}
