"""
BGG Sync - keeps a local board game catalog in sync with BoardGameGeek.

This package provides:
1. Two interchangeable BGG clients (authenticated XML API v2 and an
   unauthenticated Geekdo/page-scraping fallback)
2. A durable, single-worker scrape job queue
3. A scheduler that runs full collection syncs on a configured cadence
"""

__version__ = "0.1.0"
__author__ = "BGG Data Team"

# Main package imports for convenience
from .engine import SyncEngine
from .bgg import BggClient, ClientSelector
from .models import GameDetails, ScrapeJob, SyncResult
from .logging_config import setup_logging

__all__ = [
    "SyncEngine",
    "BggClient",
    "ClientSelector",
    "GameDetails",
    "ScrapeJob",
    "SyncResult",
    "setup_logging",
]
