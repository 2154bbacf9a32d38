"""
Shared data models for the BGG sync engine.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


JOB_PENDING = "pending"
JOB_PROCESSING = "processing"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"
JOB_CANCELLED = "cancelled"
JOB_STATUSES = (JOB_PENDING, JOB_PROCESSING, JOB_COMPLETED, JOB_FAILED, JOB_CANCELLED)
JOB_ACTIVE_STATUSES = (JOB_PENDING, JOB_PROCESSING)
JOB_TERMINAL_STATUSES = (JOB_COMPLETED, JOB_FAILED, JOB_CANCELLED)


@dataclass
class GameDetails:
    """Normalized details for a single BGG thing (game or expansion)."""
    id: str
    name: str
    year_published: Optional[int] = None
    description: Optional[str] = None
    image: Optional[str] = None
    thumbnail: Optional[str] = None
    rating: Optional[float] = None
    min_players: Optional[int] = None
    max_players: Optional[int] = None
    min_playtime: Optional[int] = None
    max_playtime: Optional[int] = None
    min_age: Optional[int] = None
    categories: List[str] = field(default_factory=list)
    mechanics: List[str] = field(default_factory=list)
    is_expansion: bool = False
    base_game_ids: List[str] = field(default_factory=list)
    expansion_ids: List[str] = field(default_factory=list)


@dataclass
class CollectionItem:
    """One entry of a user's owned collection."""
    id: str
    name: str
    year_published: Optional[int] = None
    is_expansion: bool = False


@dataclass
class SearchResult:
    id: str
    name: str
    year_published: Optional[int] = None
    thumbnail: Optional[str] = None
    is_expansion: bool = False


@dataclass
class HotItem:
    id: str
    name: str
    year_published: Optional[int] = None
    thumbnail: Optional[str] = None


@dataclass
class ScrapeJob:
    """A queued request to refresh one game's details."""
    id: str
    game_id: str
    game_name: str
    status: str = JOB_PENDING
    error: Optional[str] = None
    created_at: str = ""
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    batch_id: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in JOB_ACTIVE_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "gameId": self.game_id,
            "gameName": self.game_name,
            "status": self.status,
            "error": self.error,
            "createdAt": self.created_at,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "batchId": self.batch_id,
        }


@dataclass
class BatchHandle:
    """Returned by a collection-wide enqueue."""
    batch_id: str
    job_ids: List[str] = field(default_factory=list)


@dataclass
class BatchStatus:
    """Counters for one batch, derived from the job records that carry its id."""
    batch_id: str
    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0

    @property
    def finished(self) -> bool:
        return self.pending == 0 and self.processing == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "total": self.total,
            "pending": self.pending,
            "processing": self.processing,
            "completed": self.completed,
            "failed": self.failed,
            "cancelled": self.cancelled,
        }


@dataclass
class QueueStatus:
    """Snapshot of the scrape queue for observers."""
    is_processing: bool
    is_stopping: bool
    current_job: Optional[ScrapeJob]
    pending_count: int
    completed_count: int
    failed_count: int
    cancelled_count: int
    recent_jobs: List[ScrapeJob] = field(default_factory=list)
    current_batch: Optional[BatchStatus] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "isProcessing": self.is_processing,
            "isStopping": self.is_stopping,
            "currentJob": self.current_job.to_dict() if self.current_job else None,
            "pendingCount": self.pending_count,
            "completedCount": self.completed_count,
            "failedCount": self.failed_count,
            "cancelledCount": self.cancelled_count,
            "recentJobs": [job.to_dict() for job in self.recent_jobs],
        }
        if self.current_batch is not None:
            data["currentBatch"] = self.current_batch.to_dict()
        return data


@dataclass
class CollectionSettings:
    """Sync settings of the primary collection."""
    bgg_username: Optional[str] = None
    sync_schedule: str = "manual"
    auto_scrape_new_games: bool = False
    last_synced_at: Optional[str] = None


@dataclass
class SyncResult:
    """Outcome of one full collection sync."""
    success: bool
    total: int = 0
    created: int = 0
    updated: int = 0
    new_game_ids: List[str] = field(default_factory=list)
    refreshed: int = 0
    queued: int = 0
    error: Optional[str] = None
