"""
Configuration settings for the BGG collection sync engine.
"""

import os
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


# Project paths
PROJECT_ROOT = Path(__file__).parent.parent  # Go up one level to workspace root
DATABASE_PATH = Path(os.environ.get("BGG_SYNC_DATABASE", str(PROJECT_ROOT / "bgg_sync.db")))
# Logs directory for per-run logs
LOGS_DIR = Path(os.environ.get("BGG_SYNC_LOGS_DIR", str(PROJECT_ROOT / "bgg_sync_cache" / "logs")))


# BGG endpoints
BGG_XMLAPI2_BASE = "https://boardgamegeek.com/xmlapi2"
BGG_SITE_BASE = "https://boardgamegeek.com"
GEEKDO_API_BASE = "https://api.geekdo.com/api"

# XML API v2 request policy (BGG asks for roughly 5 seconds between requests)
RATE_LIMIT_MS = _env_int("BGG_RATE_LIMIT_MS", 5000)
MAX_THINGS_PER_REQUEST = 20
MAX_RETRIES = _env_int("BGG_MAX_RETRIES", 3)
RETRY_DELAY_MS = _env_int("BGG_RETRY_DELAY_MS", 2000)
REQUEST_TIMEOUT = _env_int("BGG_REQUEST_TIMEOUT", 30)

# Fallback client pause between items during bulk enrichment
FALLBACK_PAUSE_MS = _env_int("BGG_FALLBACK_PAUSE_MS", 500)

# Game descriptions are truncated to this many characters
DESCRIPTION_MAX_LENGTH = 500

USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"

# Selenium configuration
HEADLESS_BROWSER = _env_bool("HEADLESS_BROWSER", True)
BROWSER_TIMEOUT = _env_int("BROWSER_TIMEOUT", 30)
CHROMIUM_EXECUTABLE_PATH = os.environ.get("CHROMIUM_EXECUTABLE_PATH") or None

# Scrape queue
SCRAPE_JOB_DELAY_MS = _env_int("SCRAPE_JOB_DELAY_MS", 500)
JOB_RETENTION_DAYS = _env_int("JOB_RETENTION_DAYS", 7)
RECENT_JOBS_LIMIT = _env_int("RECENT_JOBS_LIMIT", 20)

# Scheduler
SYNC_CHECK_INTERVAL_S = _env_int("SYNC_CHECK_INTERVAL_S", 60)
SYNC_WARMUP_DELAY_S = _env_int("SYNC_WARMUP_DELAY_S", 10)
# Scraped games older than this are refreshed during a full sync
STALE_AFTER_DAYS = _env_int("STALE_AFTER_DAYS", 30)

# Sync schedules and how long each waits between runs (hours); "manual" never runs on its own
SYNC_SCHEDULES = {
    "manual": None,
    "daily": 24,
    "weekly": 24 * 7,
    "monthly": 24 * 30,
}
DEFAULT_SYNC_SCHEDULE = "manual"
