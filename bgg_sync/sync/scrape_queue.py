"""
Database-backed scrape queue with a single background worker.

Jobs are stored in SQLite and processed one at a time in enqueue order.
The queue survives restarts: ``recover()`` returns interrupted jobs to
pending and resumes the worker.
"""

import logging
import threading
import time
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, List, Optional

from ..config import JOB_RETENTION_DAYS, RECENT_JOBS_LIMIT, SCRAPE_JOB_DELAY_MS
from ..database.jobs import JobStore
from ..database.models import utc_now
from ..error_handling import describe_error, safe_execute
from ..models import JOB_CANCELLED, JOB_PENDING, BatchHandle, QueueStatus, ScrapeJob

logger = logging.getLogger(__name__)


class ScrapeQueue:
    """
    Serial executor for per-game scrape jobs.

    A stop request is observed between jobs only; the job in flight always
    runs to completion.
    """

    def __init__(self, jobs: JobStore, scrape_action: Callable[[str], Any],
                 name_lookup: Optional[Callable[[str], Optional[str]]] = None,
                 job_delay_ms: int = SCRAPE_JOB_DELAY_MS,
                 retention_days: int = JOB_RETENTION_DAYS,
                 recent_limit: int = RECENT_JOBS_LIMIT):
        """
        Initialize the queue.

        Args:
            jobs: Job persistence
            scrape_action: Refreshes one game by id; raises on failure
            name_lookup: Resolves a display name for a game id
            job_delay_ms: Pause between two jobs
            retention_days: How long finished jobs are kept
            recent_limit: Size of the recent-jobs window in status()
        """
        self.jobs = jobs
        self.scrape_action = scrape_action
        self.name_lookup = name_lookup
        self.job_delay_ms = job_delay_ms
        self.retention_days = retention_days
        self.recent_limit = recent_limit

        # Guards the worker handle, the stopping flag and job admission
        self._lock = threading.Lock()
        self._worker: Optional[threading.Thread] = None
        self._stopping = False
        self._current_job_id: Optional[str] = None
        self._current_batch_id: Optional[str] = None
        self._idle = threading.Event()
        self._idle.set()

    @property
    def is_processing(self) -> bool:
        return self._worker is not None

    @property
    def is_stopping(self) -> bool:
        return self._stopping

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    def enqueue(self, game_id: str, display_name: Optional[str] = None) -> ScrapeJob:
        """
        Add a game to the queue.

        If the game already has a pending or processing job, that job is
        returned instead of creating a duplicate.
        """
        with self._lock:
            job = self._admit(str(game_id), display_name, batch_id=None)
            if job.status == JOB_PENDING:
                self._start_worker()
        return job

    def enqueue_many(self, game_ids: Iterable[str]) -> BatchHandle:
        """Queue several games as one batch with its own progress counters."""
        batch_id = uuid.uuid4().hex
        job_ids: List[str] = []
        seen = set()

        with self._lock:
            self._current_batch_id = batch_id
            for game_id in map(str, game_ids):
                if game_id in seen:
                    continue
                seen.add(game_id)
                job_ids.append(self._admit(game_id, None, batch_id=batch_id).id)
            self._start_worker()

        logger.info(f"Queued batch {batch_id} with {len(job_ids)} games")
        return BatchHandle(batch_id=batch_id, job_ids=job_ids)

    def _admit(self, game_id: str, display_name: Optional[str], batch_id: Optional[str]) -> ScrapeJob:
        # Caller holds self._lock
        name = display_name or (self.name_lookup(game_id) if self.name_lookup else None) or game_id

        if self._stopping:
            logger.info(f"Queue is stopping, recording {name} ({game_id}) as cancelled")
            return self.jobs.create(game_id, name, status=JOB_CANCELLED, batch_id=batch_id)

        existing = self.jobs.find_active(game_id)
        if existing:
            if batch_id and existing.batch_id != batch_id:
                self.jobs.assign_batch(existing.id, batch_id)
                existing.batch_id = batch_id
            return existing

        return self.jobs.create(game_id, name, batch_id=batch_id)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def stop(self) -> int:
        """
        Cancel every job that has not started and stop the worker after the current job.

        Returns:
            Number of jobs cancelled
        """
        with self._lock:
            cancelled = self.jobs.cancel_pending()
            if self._worker is not None:
                self._stopping = True
                logger.info("Stop requested - will stop after current job")
        logger.info(f"Cancelled {cancelled} pending jobs")
        return cancelled

    def cancel_job(self, job_id: str) -> bool:
        """Cancel a single pending job."""
        cancelled = self.jobs.cancel(job_id)
        if cancelled:
            logger.info(f"Cancelled job: {job_id}")
        return cancelled

    def get_job(self, job_id: str) -> Optional[ScrapeJob]:
        return self.jobs.get(job_id)

    def recover(self) -> int:
        """
        Resume work left over from a previous run.

        Interrupted processing jobs go back to pending; being the oldest,
        they run first.

        Returns:
            Number of interrupted jobs reset
        """
        interrupted = self.jobs.demote_processing()
        if interrupted:
            logger.info(f"Reset {interrupted} interrupted jobs to pending")

        pending = self.jobs.count_by_status()[JOB_PENDING]
        if pending:
            logger.info(f"Resuming {pending} pending jobs...")
            with self._lock:
                self._start_worker()

        self.cleanup_old_jobs()
        return interrupted

    def cleanup_old_jobs(self, now: Optional[datetime] = None) -> int:
        """Delete finished jobs older than the retention window."""
        cutoff = (now or utc_now()) - timedelta(days=self.retention_days)
        deleted = self.jobs.delete_finished_before(cutoff)
        if deleted:
            logger.info(f"Cleaned up {deleted} old jobs")
        return deleted

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until the worker has exited; False on timeout."""
        return self._idle.wait(timeout)

    def reset(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the worker and clear in-memory state."""
        self.stop()
        self.wait_until_idle(timeout)
        with self._lock:
            self._stopping = False
            self._current_job_id = None
            self._current_batch_id = None

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> QueueStatus:
        counts = self.jobs.count_by_status()
        current_job_id = self._current_job_id
        current_job = self.jobs.get(current_job_id) if current_job_id else None

        batch_id = self._current_batch_id or self.jobs.latest_active_batch_id()
        current_batch = self.jobs.batch_status(batch_id) if batch_id else None

        return QueueStatus(
            is_processing=self.is_processing,
            is_stopping=self._stopping,
            current_job=current_job,
            pending_count=counts["pending"],
            completed_count=counts["completed"],
            failed_count=counts["failed"],
            cancelled_count=counts["cancelled"],
            recent_jobs=self.jobs.recent(self.recent_limit),
            current_batch=current_batch,
        )

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _start_worker(self) -> None:
        # Caller holds self._lock
        if self._worker is not None or self._stopping:
            return
        self._idle.clear()
        self._worker = threading.Thread(target=self._run, name="scrape-worker", daemon=True)
        self._worker.start()

    def _next_job(self) -> Optional[ScrapeJob]:
        """Claim the next pending job, or retire the worker when there is none."""
        with self._lock:
            if self._stopping:
                logger.info("Stop requested, stopping worker.")
                self.jobs.cancel_pending()
                job = None
            else:
                job = self.jobs.next_pending()
                # cancel_job() does not take the lock
                while job is not None and not self.jobs.mark_processing(job.id):
                    job = self.jobs.next_pending()
                if job is not None:
                    self._current_job_id = job.id
                    return job

            self._worker = None
            self._stopping = False
            self._current_job_id = None
            return None

    def _run(self) -> None:
        try:
            while True:
                job = self._next_job()
                if job is None:
                    break
                self._process(job)
                if self.job_delay_ms > 0:
                    time.sleep(self.job_delay_ms / 1000)
        except Exception as e:
            logger.exception(f"Scrape worker stopped unexpectedly: {e}")
        finally:
            with self._lock:
                if self._worker is threading.current_thread():
                    self._worker = None
                    self._stopping = False
                    self._current_job_id = None
            safe_execute(self.cleanup_old_jobs, error_msg="Job cleanup failed")
            logger.info("Worker idle.")
            with self._lock:
                # A new worker may have been started by an enqueue in the meantime
                if self._worker is None:
                    self._idle.set()

    def _process(self, job: ScrapeJob) -> None:
        logger.info(f"Processing: {job.game_name} ({job.game_id})")
        try:
            self.scrape_action(job.game_id)
        except Exception as e:
            self.jobs.mark_failed(job.id, describe_error(e))
            logger.error(f"Error scraping {job.game_name}: {e}")
        else:
            self.jobs.mark_completed(job.id)
            logger.info(f"Completed: {job.game_name}")
        finally:
            self._current_job_id = None
