"""Centralised settings and logging setup for SwissDevMap."""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Polite bot UA for listing pages; browser UA for fingerprinting / website checks
SCRAPER_USER_AGENT = os.environ.get(
    "SCRAPER_USER_AGENT", "SwissDevMap-Bot/1.0 (research tool)"
)
BROWSER_USER_AGENT = os.environ.get(
    "BROWSER_USER_AGENT",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)


def get_db_path() -> Path:
    """Return the SQLite database path from DB_PATH env var (default: swissdevmap.db)."""
    return Path(os.environ.get("DB_PATH", "swissdevmap.db"))


def get_log_dir() -> Path:
    return Path(os.environ.get("LOG_DIR", "logs"))


def setup_logging() -> logging.Logger:
    """Attach a dated file handler + stdout handler to the `swissdevmap` logger.

    Module loggers are named `swissdevmap.<module>` so they all propagate here.
    Safe to call repeatedly.
    """
    logger = logging.getLogger("swissdevmap")
    if logger.handlers:
        return logger  # already set up (e.g. app + pipeline in one process)
    logger.setLevel(logging.DEBUG)

    log_dir = get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"pipeline_{datetime.now().strftime('%Y%m%d')}.log"

    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s %(message)s"))
    logger.addHandler(fh)

    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())
    ch.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(ch)

    return logger
