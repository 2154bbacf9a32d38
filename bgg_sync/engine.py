"""
Composition root wiring the sync engine's services together.
"""

import logging
from typing import Optional

from .bgg.selector import ClientSelector
from .config import (
    DATABASE_PATH,
    JOB_RETENTION_DAYS,
    SCRAPE_JOB_DELAY_MS,
    SYNC_CHECK_INTERVAL_S,
    SYNC_WARMUP_DELAY_S,
)
from .database.catalog import CatalogStore
from .database.jobs import JobStore
from .database.models import PathLike
from .models import SyncResult
from .sync.collection_sync import CollectionSync
from .sync.scheduler import SyncScheduler
from .sync.scrape_queue import ScrapeQueue

logger = logging.getLogger(__name__)


class SyncEngine:
    """
    Owns one instance of each process-wide service.

    - ``selector``: cached BGG client
    - ``queue``: scrape job queue and its worker
    - ``scheduler``: periodic sync checks and the syncing guard
    """

    def __init__(self, db_path: PathLike = DATABASE_PATH, token: Optional[str] = None,
                 selector: Optional[ClientSelector] = None,
                 job_delay_ms: int = SCRAPE_JOB_DELAY_MS,
                 retention_days: int = JOB_RETENTION_DAYS,
                 check_interval_s: float = SYNC_CHECK_INTERVAL_S,
                 warmup_s: float = SYNC_WARMUP_DELAY_S):
        self.catalog = CatalogStore(db_path)
        self.jobs = JobStore(db_path)
        self.selector = selector or ClientSelector(token)
        self.collection_sync = CollectionSync(self.catalog, self.selector)
        self.queue = ScrapeQueue(
            self.jobs,
            self.collection_sync.scrape_game,
            name_lookup=self.catalog.get_game_name,
            job_delay_ms=job_delay_ms,
            retention_days=retention_days,
        )
        self.collection_sync.queue = self.queue
        self.scheduler = SyncScheduler(
            self.collection_sync.perform_sync_with_auto_scrape,
            self.collection_sync.is_sync_due,
            interval_s=check_interval_s,
            warmup_s=warmup_s,
        )

    def start(self) -> None:
        """Resume interrupted scrape jobs and start the scheduler."""
        logger.info("Initializing background sync scheduler...")
        self.queue.recover()
        self.scheduler.start()

    def shutdown(self, timeout: Optional[float] = 5.0) -> None:
        """
        Stop the scheduler.

        Pending jobs stay pending and a job in flight is picked up again by
        ``recover()`` on the next start.
        """
        self.scheduler.stop(timeout)

    def trigger_sync(self, skip_auto_scrape: bool = False) -> Optional[SyncResult]:
        """Run a full sync now; None if one is already running."""
        if skip_auto_scrape:
            return self.scheduler.trigger_sync(
                lambda: self.collection_sync.perform_sync_with_auto_scrape(skip_auto_scrape=True)
            )
        return self.scheduler.trigger_sync()

    def reset(self) -> None:
        self.scheduler.reset()
        self.queue.reset()
        self.selector.reset()
