"""
SQLite schema and connection helpers for the local catalog.
"""

import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Union

from ..config import DATABASE_PATH

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Timestamps are stored as ISO-8601 UTC strings so they sort lexically."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@contextmanager
def connect(db_path: PathLike) -> Iterator[sqlite3.Connection]:
    """
    Open a short-lived connection, committing on success and rolling back on error.

    Each operation gets its own connection so no connection is ever shared
    between the scheduler and queue worker threads.
    """
    conn = sqlite3.connect(str(db_path), timeout=30)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def create_database(db_path: PathLike = DATABASE_PATH) -> None:
    """Create the database and tables for the catalog and the scrape queue."""

    # Ensure database directory exists (only if path contains directory)
    db_dir = os.path.dirname(str(db_path))
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    cursor = conn.cursor()

    # Categories, mechanics and available images are JSON arrays
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS games (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            year_published INTEGER,
            description TEXT,
            image TEXT,
            thumbnail TEXT,
            rating REAL,
            min_players INTEGER,
            max_players INTEGER,
            min_playtime INTEGER,
            max_playtime INTEGER,
            min_age INTEGER,
            categories TEXT,
            mechanics TEXT,
            is_expansion INTEGER NOT NULL DEFAULT 0,
            available_images TEXT,
            last_scraped TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            last_updated TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS game_relationships (
            from_game_id TEXT NOT NULL REFERENCES games(id) ON DELETE CASCADE,
            to_game_id TEXT NOT NULL REFERENCES games(id) ON DELETE CASCADE,
            type TEXT NOT NULL,
            PRIMARY KEY (from_game_id, to_game_id, type)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS collection_settings (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            is_primary INTEGER NOT NULL DEFAULT 0,
            bgg_username TEXT,
            sync_schedule TEXT NOT NULL DEFAULT 'manual',
            auto_scrape_new_games INTEGER NOT NULL DEFAULT 0,
            last_synced_at TEXT
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS collection_games (
            collection_id INTEGER NOT NULL REFERENCES collection_settings(id) ON DELETE CASCADE,
            game_id TEXT NOT NULL REFERENCES games(id) ON DELETE CASCADE,
            added_by TEXT,
            added_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (collection_id, game_id)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS sync_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT NOT NULL,
            games_found INTEGER NOT NULL DEFAULT 0,
            status TEXT NOT NULL,
            synced_at TEXT NOT NULL
        )
    """)

    # seq gives the FIFO order; id is the public job handle
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS scrape_jobs (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            id TEXT UNIQUE NOT NULL,
            game_id TEXT NOT NULL,
            game_name TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            error TEXT,
            created_at TEXT NOT NULL,
            started_at TEXT,
            completed_at TEXT,
            batch_id TEXT
        )
    """)
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_scrape_jobs_status ON scrape_jobs(status)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_scrape_jobs_batch ON scrape_jobs(batch_id)")

    # Add missing columns to existing databases if they don't exist
    columns_to_add = [
        ("games", "available_images", "TEXT"),
        ("games", "last_scraped", "TEXT"),
        ("scrape_jobs", "started_at", "TEXT"),
        ("scrape_jobs", "completed_at", "TEXT"),
        ("scrape_jobs", "batch_id", "TEXT"),
    ]

    for table, column_name, column_def in columns_to_add:
        existing = {row[1] for row in cursor.execute(f"PRAGMA table_info({table})")}
        if column_name not in existing:
            cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column_name} {column_def}")
            logger.info(f"Added {table}.{column_name} column to existing database")

    conn.commit()
    conn.close()
    logger.debug(f"Database ready at {db_path}")
