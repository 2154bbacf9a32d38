"""
Persistence for scrape jobs.

Jobs live in the ``scrape_jobs`` table so pending work survives a restart.
FIFO order is the insertion sequence, not the creation timestamp.
"""

import logging
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from ..config import DATABASE_PATH
from ..models import (
    JOB_ACTIVE_STATUSES,
    JOB_CANCELLED,
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_PENDING,
    JOB_PROCESSING,
    JOB_STATUSES,
    JOB_TERMINAL_STATUSES,
    BatchStatus,
    ScrapeJob,
)
from .models import PathLike, connect, create_database, format_timestamp, utc_now

logger = logging.getLogger(__name__)

_ACTIVE = ", ".join(f"'{status}'" for status in JOB_ACTIVE_STATUSES)
_TERMINAL = ", ".join(f"'{status}'" for status in JOB_TERMINAL_STATUSES)


def _row_to_job(row: sqlite3.Row) -> ScrapeJob:
    return ScrapeJob(
        id=row["id"],
        game_id=row["game_id"],
        game_name=row["game_name"],
        status=row["status"],
        error=row["error"],
        created_at=row["created_at"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        batch_id=row["batch_id"],
    )


class JobStore:
    """Row-level operations on the scrape_jobs table."""

    def __init__(self, db_path: PathLike = DATABASE_PATH):
        self.db_path = Path(db_path)
        create_database(self.db_path)

    def create(self, game_id: str, game_name: str, status: str = JOB_PENDING,
               batch_id: Optional[str] = None) -> ScrapeJob:
        now = format_timestamp(utc_now())
        job = ScrapeJob(
            id=uuid.uuid4().hex,
            game_id=str(game_id),
            game_name=game_name,
            status=status,
            created_at=now,
            completed_at=now if status in JOB_TERMINAL_STATUSES else None,
            batch_id=batch_id,
        )
        with connect(self.db_path) as conn:
            conn.execute("""
                INSERT INTO scrape_jobs (id, game_id, game_name, status, created_at, completed_at, batch_id)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (job.id, job.game_id, job.game_name, job.status, job.created_at,
                  job.completed_at, job.batch_id))
        return job

    def get(self, job_id: str) -> Optional[ScrapeJob]:
        with connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM scrape_jobs WHERE id = ?", (job_id,)).fetchone()
        return _row_to_job(row) if row else None

    def find_active(self, game_id: str) -> Optional[ScrapeJob]:
        """The pending or processing job for a game, if any."""
        with connect(self.db_path) as conn:
            row = conn.execute(
                f"SELECT * FROM scrape_jobs WHERE game_id = ? AND status IN ({_ACTIVE}) ORDER BY seq LIMIT 1",
                (str(game_id),),
            ).fetchone()
        return _row_to_job(row) if row else None

    def next_pending(self) -> Optional[ScrapeJob]:
        with connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM scrape_jobs WHERE status = ? ORDER BY seq LIMIT 1", (JOB_PENDING,)
            ).fetchone()
        return _row_to_job(row) if row else None

    def get_processing(self) -> Optional[ScrapeJob]:
        with connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM scrape_jobs WHERE status = ? ORDER BY seq LIMIT 1", (JOB_PROCESSING,)
            ).fetchone()
        return _row_to_job(row) if row else None

    def mark_processing(self, job_id: str) -> bool:
        """Move a pending job to processing; False if it is no longer pending."""
        with connect(self.db_path) as conn:
            cursor = conn.execute(
                "UPDATE scrape_jobs SET status = ?, started_at = ? WHERE id = ? AND status = ?",
                (JOB_PROCESSING, format_timestamp(utc_now()), job_id, JOB_PENDING),
            )
            return cursor.rowcount > 0

    def mark_completed(self, job_id: str) -> None:
        self._finish(job_id, JOB_COMPLETED, None)

    def mark_failed(self, job_id: str, error: str) -> None:
        self._finish(job_id, JOB_FAILED, error)

    def _finish(self, job_id: str, status: str, error: Optional[str]) -> None:
        with connect(self.db_path) as conn:
            conn.execute(
                "UPDATE scrape_jobs SET status = ?, error = ?, completed_at = ? WHERE id = ? AND status = ?",
                (status, error, format_timestamp(utc_now()), job_id, JOB_PROCESSING),
            )

    def cancel(self, job_id: str) -> bool:
        """Cancel a single job; only pending jobs can be cancelled."""
        with connect(self.db_path) as conn:
            cursor = conn.execute(
                "UPDATE scrape_jobs SET status = ?, completed_at = ? WHERE id = ? AND status = ?",
                (JOB_CANCELLED, format_timestamp(utc_now()), job_id, JOB_PENDING),
            )
            return cursor.rowcount > 0

    def cancel_pending(self) -> int:
        with connect(self.db_path) as conn:
            cursor = conn.execute(
                "UPDATE scrape_jobs SET status = ?, completed_at = ? WHERE status = ?",
                (JOB_CANCELLED, format_timestamp(utc_now()), JOB_PENDING),
            )
            return cursor.rowcount

    def assign_batch(self, job_id: str, batch_id: str) -> None:
        with connect(self.db_path) as conn:
            conn.execute("UPDATE scrape_jobs SET batch_id = ? WHERE id = ?", (batch_id, job_id))

    def demote_processing(self) -> int:
        """Return interrupted jobs to pending after a restart."""
        with connect(self.db_path) as conn:
            cursor = conn.execute(
                "UPDATE scrape_jobs SET status = ?, started_at = NULL WHERE status = ?",
                (JOB_PENDING, JOB_PROCESSING),
            )
            return cursor.rowcount

    def count_by_status(self) -> Dict[str, int]:
        counts = {status: 0 for status in JOB_STATUSES}
        with connect(self.db_path) as conn:
            for row in conn.execute("SELECT status, COUNT(*) AS n FROM scrape_jobs GROUP BY status"):
                counts[row["status"]] = row["n"]
        return counts

    def recent(self, limit: int) -> List[ScrapeJob]:
        """The ``limit`` most recently enqueued jobs, oldest first."""
        with connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM (SELECT * FROM scrape_jobs ORDER BY seq DESC LIMIT ?) ORDER BY seq",
                (limit,),
            ).fetchall()
        return [_row_to_job(row) for row in rows]

    def list_batch(self, batch_id: str) -> List[ScrapeJob]:
        with connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM scrape_jobs WHERE batch_id = ? ORDER BY seq", (batch_id,)
            ).fetchall()
        return [_row_to_job(row) for row in rows]

    def batch_status(self, batch_id: str) -> BatchStatus:
        status = BatchStatus(batch_id=batch_id)
        with connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS n FROM scrape_jobs WHERE batch_id = ? GROUP BY status",
                (batch_id,),
            ).fetchall()
        for row in rows:
            if row["status"] in JOB_STATUSES:
                setattr(status, row["status"], row["n"])
            status.total += row["n"]
        return status

    def latest_active_batch_id(self) -> Optional[str]:
        with connect(self.db_path) as conn:
            row = conn.execute(
                f"SELECT batch_id FROM scrape_jobs WHERE batch_id IS NOT NULL AND status IN ({_ACTIVE}) "
                "ORDER BY seq DESC LIMIT 1"
            ).fetchone()
        return row["batch_id"] if row else None

    def delete_finished_before(self, cutoff: datetime) -> int:
        """Delete terminal jobs that finished before ``cutoff``."""
        with connect(self.db_path) as conn:
            cursor = conn.execute(
                f"DELETE FROM scrape_jobs WHERE status IN ({_TERMINAL}) AND completed_at < ?",
                (format_timestamp(cutoff),),
            )
            return cursor.rowcount
