"""
Full collection sync and the per-game scrape action.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from ..bgg.selector import ClientSelector
from ..config import STALE_AFTER_DAYS, SYNC_SCHEDULES
from ..database.catalog import MERGE_CREATED, MERGE_UPDATED, CatalogStore
from ..database.models import parse_timestamp, utc_now
from ..error_handling import ConfigurationError, ScrapeError, describe_error, safe_execute
from ..models import CollectionSettings, GameDetails, SyncResult

logger = logging.getLogger(__name__)


class CollectionSync:
    """
    Imports the owned collection from BGG into the local catalog.

    The scrape queue is attached after construction because the queue in
    turn runs ``scrape_game`` from this class.
    """

    def __init__(self, catalog: CatalogStore, selector: ClientSelector,
                 queue=None, stale_after_days: int = STALE_AFTER_DAYS):
        """
        Args:
            catalog: Local catalog store
            selector: Provides the active BGG client
            queue: ScrapeQueue receiving new games when auto-scrape is on
            stale_after_days: Scraped games older than this are refreshed during a sync
        """
        self.catalog = catalog
        self.selector = selector
        self.queue = queue
        self.stale_after_days = stale_after_days

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_settings(self) -> CollectionSettings:
        return self.catalog.get_settings()

    def configure(self, bgg_username: Optional[str] = None, sync_schedule: Optional[str] = None,
                  auto_scrape_new_games: Optional[bool] = None) -> CollectionSettings:
        if sync_schedule is not None and sync_schedule not in SYNC_SCHEDULES:
            raise ConfigurationError(
                f"Unknown sync schedule '{sync_schedule}', expected one of: {', '.join(SYNC_SCHEDULES)}"
            )
        settings = self.catalog.update_settings(bgg_username, sync_schedule, auto_scrape_new_games)
        logger.info(f"Collection settings updated: {settings}")
        return settings

    def is_sync_due(self, now: Optional[datetime] = None) -> bool:
        """
        Whether the configured schedule calls for a sync.

        ``manual`` never syncs on its own; a collection that was never
        synced is always due.
        """
        settings = self.catalog.get_settings()
        interval_hours = SYNC_SCHEDULES.get(settings.sync_schedule)
        if interval_hours is None:
            return False

        last_synced = parse_timestamp(settings.last_synced_at)
        if last_synced is None:
            return True

        elapsed = (now or utc_now()) - last_synced
        return elapsed >= timedelta(hours=interval_hours)

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def sync_collection(self) -> SyncResult:
        """
        Fetch the owned collection and merge it into the catalog.

        Existing games keep their scraped details; only name, year and the
        expansion flag are updated, and only when name or year changed.
        """
        settings = self.catalog.get_settings()
        username = settings.bgg_username
        if not username:
            return SyncResult(success=False, error="No BGG username configured for this collection")

        logger.info(f"Starting collection import for user: {username}...")

        try:
            client = self.selector.get_client()
            items = client.get_collection(username)
            logger.info(f"Found {len(items)} games in collection")

            # Clients also return [] when the remote call fails
            if not items and self.catalog.get_collection_game_ids():
                logger.warning(f"BGG returned no games for {username} but the collection is not empty")
                self.catalog.log_sync(username, 0, "failed")
                return SyncResult(success=False, error=f"BGG returned an empty collection for {username}")

            created = 0
            updated = 0
            new_game_ids = []
            for item in items:
                outcome = self.catalog.merge_collection_item(item)
                if outcome == MERGE_CREATED:
                    created += 1
                    new_game_ids.append(item.id)
                elif outcome == MERGE_UPDATED:
                    updated += 1
                self.catalog.link_to_collection(item.id)

            refreshed = self._refresh_stale_games(exclude=set(new_game_ids))

            self.catalog.mark_synced()
            self.catalog.log_sync(username, len(items), "success")

            logger.info(f"Import complete: {created} new games, {updated} updated, {refreshed} refreshed")
            return SyncResult(
                success=True,
                total=len(items),
                created=created,
                updated=updated,
                new_game_ids=new_game_ids,
                refreshed=refreshed,
            )

        except Exception as e:
            logger.error(f"Import failed: {e}")
            safe_execute(self.catalog.log_sync, username, 0, "failed", error_msg="Could not record failed sync")
            return SyncResult(success=False, error=describe_error(e))

    def _refresh_stale_games(self, exclude: set) -> int:
        """Re-fetch details of collection games scraped longer ago than the stale window."""
        cutoff = utc_now() - timedelta(days=self.stale_after_days)
        stale_ids = [game_id for game_id in self.catalog.get_stale_game_ids(cutoff) if game_id not in exclude]
        if not stale_ids:
            return 0

        logger.info(f"Refreshing {len(stale_ids)} stale games")
        refreshed = 0
        for details in self.selector.get_client().get_games_details(stale_ids):
            self.catalog.save_game_details(details)
            refreshed += 1
        return refreshed

    def perform_sync_with_auto_scrape(self, skip_auto_scrape: bool = False) -> SyncResult:
        """Run a sync and queue the newly created games for scraping when enabled."""
        settings = self.catalog.get_settings()
        result = self.sync_collection()

        if (
            result.success
            and settings.auto_scrape_new_games
            and not skip_auto_scrape
            and result.new_game_ids
            and self.queue is not None
        ):
            logger.info(f"Queueing {len(result.new_game_ids)} new games for auto-scrape...")
            batch = self.queue.enqueue_many(result.new_game_ids)
            result.queued = len(batch.job_ids)

        return result

    # ------------------------------------------------------------------
    # Scrape
    # ------------------------------------------------------------------

    def scrape_game(self, game_id: str) -> GameDetails:
        """
        Fetch details and gallery images for one game and store them.

        Raises:
            ScrapeError: If BGG returned no details for the game
        """
        client = self.selector.get_client()

        details = client.get_game_details(game_id)
        if details is None:
            raise ScrapeError(f"No details found for {game_id}")
        gallery_images = client.get_gallery_images(game_id)

        self.catalog.save_game_details(details, available_images=gallery_images)

        if details.is_expansion and details.base_game_ids:
            linked = self.catalog.set_base_games(details.id, details.base_game_ids)
            for base_game_id in linked:
                logger.info(f"Linked expansion {details.name} -> base game {base_game_id}")

        return details
