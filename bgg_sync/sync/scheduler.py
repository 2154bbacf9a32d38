"""
Background scheduler for full collection syncs.
"""

import logging
import threading
from typing import Any, Callable, Optional

from ..config import SYNC_CHECK_INTERVAL_S, SYNC_WARMUP_DELAY_S

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Checks once per interval whether a sync is due and runs it.

    Runs never overlap: a check that finds a sync in progress is skipped,
    not deferred. The timer thread and a manual trigger share the same guard.
    """

    def __init__(self, run_sync: Callable[[], Any], is_due: Callable[[], bool],
                 interval_s: float = SYNC_CHECK_INTERVAL_S,
                 warmup_s: float = SYNC_WARMUP_DELAY_S):
        """
        Args:
            run_sync: Performs one full sync
            is_due: Reports whether the schedule calls for a sync
            interval_s: Seconds between due checks
            warmup_s: Delay before the first check after start
        """
        self.run_sync = run_sync
        self.is_due = is_due
        self.interval_s = interval_s
        self.warmup_s = warmup_s

        self._sync_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_syncing(self) -> bool:
        return self._sync_lock.locked()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="sync-scheduler", daemon=True)
        self._thread.start()
        logger.info(f"Background sync scheduler started (checking every {self.interval_s}s).")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the timer loop; a sync already running is not interrupted."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def reset(self) -> None:
        self.stop(timeout=5.0)
        self._sync_lock = threading.Lock()

    def _loop(self) -> None:
        if self._stop_event.wait(self.warmup_s):
            return
        self.check_and_sync()
        while not self._stop_event.wait(self.interval_s):
            self.check_and_sync()

    def check_and_sync(self) -> bool:
        """
        Run a sync if one is due and none is in progress.

        Returns:
            True if a sync ran
        """
        lock = self._sync_lock
        if not lock.acquire(blocking=False):
            logger.info("Sync already in progress, skipping...")
            return False

        try:
            if not self.is_due():
                return False
            logger.info("Sync is due, starting...")
            self.run_sync()
            logger.info("Sync completed.")
            return True
        except Exception as e:
            logger.error(f"Error during sync check: {e}")
            return False
        finally:
            lock.release()

    def trigger_sync(self, run: Optional[Callable[[], Any]] = None) -> Optional[Any]:
        """
        Run a sync now regardless of the schedule.

        Args:
            run: Sync callable to use instead of the scheduled one

        Returns:
            The sync result, or None if a sync was already running or failed
        """
        lock = self._sync_lock
        if not lock.acquire(blocking=False):
            logger.info("Sync already in progress, manual trigger ignored")
            return None

        try:
            logger.info("Manual sync triggered")
            return (run or self.run_sync)()
        except Exception as e:
            logger.error(f"Manual sync failed: {e}")
            return None
        finally:
            lock.release()
