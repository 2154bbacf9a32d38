"""
Catalog operations: game records, expansion relationships, the primary
collection's settings and the sync log.
"""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import DATABASE_PATH, DEFAULT_SYNC_SCHEDULE
from ..models import CollectionItem, CollectionSettings, GameDetails
from .models import PathLike, connect, create_database, format_timestamp, utc_now

logger = logging.getLogger(__name__)

PRIMARY_COLLECTION_NAME = "My Collection"
RELATIONSHIP_EXPANDS = "expands"

MERGE_CREATED = "created"
MERGE_UPDATED = "updated"
MERGE_UNCHANGED = "unchanged"

JSON_COLUMNS = ("categories", "mechanics", "available_images")


def _row_to_game(row: sqlite3.Row) -> Dict[str, Any]:
    game = dict(row)
    for column in JSON_COLUMNS:
        raw = game.get(column)
        game[column] = json.loads(raw) if raw else []
    game["is_expansion"] = bool(game.get("is_expansion"))
    return game


class CatalogStore:
    """
    High-level database operations for the local game catalog.
    """

    def __init__(self, db_path: PathLike = DATABASE_PATH):
        """
        Initialize the catalog store.

        Args:
            db_path: Path to the SQLite database; created if missing
        """
        self.db_path = Path(db_path)
        create_database(self.db_path)

    # ------------------------------------------------------------------
    # Games
    # ------------------------------------------------------------------

    def get_game(self, game_id: str) -> Optional[Dict[str, Any]]:
        with connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM games WHERE id = ?", (str(game_id),)).fetchone()
        return _row_to_game(row) if row else None

    def get_game_name(self, game_id: str) -> Optional[str]:
        with connect(self.db_path) as conn:
            row = conn.execute("SELECT name FROM games WHERE id = ?", (str(game_id),)).fetchone()
        return row["name"] if row else None

    def get_games(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Get games from the catalog ordered by name.

        Args:
            limit: Maximum number of games to return
        """
        query = "SELECT * FROM games ORDER BY name COLLATE NOCASE"
        params: List[Any] = []
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        with connect(self.db_path) as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_game(row) for row in rows]

    def merge_collection_item(self, item: CollectionItem) -> str:
        """
        Insert or update a game from a collection listing.

        Only name, year and the expansion flag are touched so previously
        scraped details survive a sync.

        Returns:
            MERGE_CREATED, MERGE_UPDATED or MERGE_UNCHANGED
        """
        with connect(self.db_path) as conn:
            existing = conn.execute(
                "SELECT name, year_published FROM games WHERE id = ?", (item.id,)
            ).fetchone()

            if existing is None:
                conn.execute("""
                    INSERT INTO games (id, name, year_published, is_expansion)
                    VALUES (?, ?, ?, ?)
                """, (item.id, item.name, item.year_published, int(item.is_expansion)))
                logger.debug(f"Inserting new game: {item.name} ({item.id})")
                return MERGE_CREATED

            if existing["name"] == item.name and existing["year_published"] == item.year_published:
                return MERGE_UNCHANGED

            conn.execute("""
                UPDATE games SET name = ?, year_published = ?, is_expansion = ?,
                    last_updated = datetime('now')
                WHERE id = ?
            """, (item.name, item.year_published, int(item.is_expansion), item.id))
            logger.debug(f"Updating existing game: {item.name} ({item.id})")
            return MERGE_UPDATED

    def save_game_details(self, details: GameDetails,
                          available_images: Optional[List[str]] = None,
                          scraped_at: Optional[datetime] = None) -> bool:
        """
        Store scraped details for a game, creating the record if needed.

        Args:
            details: Normalized details from a BGG client
            available_images: Gallery images; None keeps the stored list
            scraped_at: Scrape time, defaults to now

        Returns:
            True if a new record was created
        """
        scraped = format_timestamp(scraped_at or utc_now())
        values = {
            "name": details.name,
            "year_published": details.year_published,
            "description": details.description,
            "image": details.image,
            "thumbnail": details.thumbnail or details.image,
            "rating": details.rating,
            "min_players": details.min_players,
            "max_players": details.max_players,
            "min_playtime": details.min_playtime,
            "max_playtime": details.max_playtime,
            "min_age": details.min_age,
            "categories": json.dumps(details.categories),
            "mechanics": json.dumps(details.mechanics),
            "is_expansion": int(details.is_expansion),
            "last_scraped": scraped,
        }
        if available_images is not None:
            values["available_images"] = json.dumps(available_images)

        with connect(self.db_path) as conn:
            exists = conn.execute("SELECT 1 FROM games WHERE id = ?", (details.id,)).fetchone()
            if exists:
                assignments = ", ".join(f"{column} = ?" for column in values)
                conn.execute(
                    f"UPDATE games SET {assignments}, last_updated = datetime('now') WHERE id = ?",
                    [*values.values(), details.id],
                )
                return False

            columns = ["id", *values]
            placeholders = ", ".join("?" for _ in columns)
            conn.execute(
                f"INSERT INTO games ({', '.join(columns)}) VALUES ({placeholders})",
                [details.id, *values.values()],
            )
            return True

    def set_base_games(self, game_id: str, base_game_ids: List[str]) -> List[str]:
        """
        Replace the "expands" relationships of an expansion.

        Base games that are not in the catalog are skipped.

        Returns:
            The base game ids that were linked
        """
        linked = []
        with connect(self.db_path) as conn:
            conn.execute(
                "DELETE FROM game_relationships WHERE from_game_id = ? AND type = ?",
                (game_id, RELATIONSHIP_EXPANDS),
            )
            for base_game_id in base_game_ids:
                if conn.execute("SELECT 1 FROM games WHERE id = ?", (base_game_id,)).fetchone() is None:
                    logger.debug(f"Base game {base_game_id} not in catalog (skipping relationship)")
                    continue
                conn.execute(
                    "INSERT OR IGNORE INTO game_relationships (from_game_id, to_game_id, type) VALUES (?, ?, ?)",
                    (game_id, base_game_id, RELATIONSHIP_EXPANDS),
                )
                linked.append(base_game_id)
        return linked

    def get_base_game_ids(self, game_id: str) -> List[str]:
        with connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT to_game_id FROM game_relationships WHERE from_game_id = ? AND type = ? ORDER BY to_game_id",
                (game_id, RELATIONSHIP_EXPANDS),
            ).fetchall()
        return [row["to_game_id"] for row in rows]

    # ------------------------------------------------------------------
    # Primary collection
    # ------------------------------------------------------------------

    def get_primary_collection_id(self) -> int:
        """Get the primary collection, creating it on first use."""
        with connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT id FROM collection_settings WHERE is_primary = 1 ORDER BY id LIMIT 1"
            ).fetchone()
            if row:
                return row["id"]
            cursor = conn.execute(
                "INSERT INTO collection_settings (name, is_primary, sync_schedule) VALUES (?, 1, ?)",
                (PRIMARY_COLLECTION_NAME, DEFAULT_SYNC_SCHEDULE),
            )
            return cursor.lastrowid

    def get_settings(self) -> CollectionSettings:
        collection_id = self.get_primary_collection_id()
        with connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM collection_settings WHERE id = ?", (collection_id,)
            ).fetchone()
        return CollectionSettings(
            bgg_username=row["bgg_username"] or None,
            sync_schedule=row["sync_schedule"] or DEFAULT_SYNC_SCHEDULE,
            auto_scrape_new_games=bool(row["auto_scrape_new_games"]),
            last_synced_at=row["last_synced_at"],
        )

    def update_settings(self, bgg_username: Optional[str] = None, sync_schedule: Optional[str] = None,
                        auto_scrape_new_games: Optional[bool] = None) -> CollectionSettings:
        """Update the given fields of the primary collection; None leaves a field unchanged."""
        updates: Dict[str, Any] = {}
        if bgg_username is not None:
            updates["bgg_username"] = bgg_username.strip() or None
        if sync_schedule is not None:
            updates["sync_schedule"] = sync_schedule
        if auto_scrape_new_games is not None:
            updates["auto_scrape_new_games"] = int(auto_scrape_new_games)

        collection_id = self.get_primary_collection_id()
        if updates:
            assignments = ", ".join(f"{column} = ?" for column in updates)
            with connect(self.db_path) as conn:
                conn.execute(
                    f"UPDATE collection_settings SET {assignments} WHERE id = ?",
                    [*updates.values(), collection_id],
                )
        return self.get_settings()

    def mark_synced(self, synced_at: Optional[datetime] = None) -> str:
        timestamp = format_timestamp(synced_at or utc_now())
        collection_id = self.get_primary_collection_id()
        with connect(self.db_path) as conn:
            conn.execute(
                "UPDATE collection_settings SET last_synced_at = ? WHERE id = ?",
                (timestamp, collection_id),
            )
        return timestamp

    def link_to_collection(self, game_id: str, added_by: str = "sync") -> bool:
        """Add a game to the primary collection; returns True if the link is new."""
        collection_id = self.get_primary_collection_id()
        with connect(self.db_path) as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO collection_games (collection_id, game_id, added_by) VALUES (?, ?, ?)",
                (collection_id, game_id, added_by),
            )
            return cursor.rowcount > 0

    def get_collection_game_ids(self) -> List[str]:
        collection_id = self.get_primary_collection_id()
        with connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT game_id FROM collection_games WHERE collection_id = ? ORDER BY game_id",
                (collection_id,),
            ).fetchall()
        return [row["game_id"] for row in rows]

    def get_stale_game_ids(self, scraped_before: datetime) -> List[str]:
        """Collection games whose last scrape is older than ``scraped_before``."""
        collection_id = self.get_primary_collection_id()
        with connect(self.db_path) as conn:
            rows = conn.execute("""
                SELECT g.id FROM games g
                JOIN collection_games cg ON cg.game_id = g.id
                WHERE cg.collection_id = ? AND g.last_scraped IS NOT NULL AND g.last_scraped < ?
                ORDER BY g.last_scraped, g.id
            """, (collection_id, format_timestamp(scraped_before))).fetchall()
        return [row["id"] for row in rows]

    # ------------------------------------------------------------------
    # Sync log and statistics
    # ------------------------------------------------------------------

    def log_sync(self, username: str, games_found: int, status: str) -> None:
        with connect(self.db_path) as conn:
            conn.execute(
                "INSERT INTO sync_log (username, games_found, status, synced_at) VALUES (?, ?, ?, ?)",
                (username, games_found, status, format_timestamp(utc_now())),
            )

    def get_sync_log(self, limit: int = 10) -> List[Dict[str, Any]]:
        with connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM sync_log ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
        return [dict(row) for row in rows]

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get statistics about the catalog.

        Returns:
            Dictionary with statistics
        """
        collection_id = self.get_primary_collection_id()
        with connect(self.db_path) as conn:
            total_games = conn.execute("SELECT COUNT(*) FROM games").fetchone()[0]
            scraped_games = conn.execute(
                "SELECT COUNT(*) FROM games WHERE last_scraped IS NOT NULL"
            ).fetchone()[0]
            collection_games = conn.execute(
                "SELECT COUNT(*) FROM collection_games WHERE collection_id = ?", (collection_id,)
            ).fetchone()[0]
        settings = self.get_settings()
        return {
            "total_games_in_db": total_games,
            "scraped_games": scraped_games,
            "collection_games": collection_games,
            "last_synced_at": settings.last_synced_at,
        }
