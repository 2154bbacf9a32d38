"""
Background work: the scrape job queue, the collection sync and its scheduler.
"""

from .collection_sync import CollectionSync
from .scheduler import SyncScheduler
from .scrape_queue import ScrapeQueue

__all__ = [
    "CollectionSync",
    "ScrapeQueue",
    "SyncScheduler",
]
