"""
Main CLI entry point for the BGG sync engine.
"""

import argparse
import json
import logging
import time
from pathlib import Path
from typing import List, Optional

from ..config import DATABASE_PATH, SYNC_SCHEDULES
from ..engine import SyncEngine
from ..error_handling import ConfigurationError
from ..logging_config import setup_logging
from ..models import SyncResult

logger = logging.getLogger(__name__)

BANNER = "=" * 60


def print_section(title: str) -> None:
    print("\n" + BANNER)
    print(title)
    print(BANNER)


def print_sync_result(result: Optional[SyncResult]) -> None:
    print_section("SYNC RESULT")
    if result is None:
        print("A sync is already running; nothing was started.")
        return
    if not result.success:
        print(f"✗ FAILED | {result.error}")
        return
    print(f"✓ SUCCESS | {result.total} games in collection")
    print(f"  - New: {result.created}  |  Updated: {result.updated}  |  Refreshed: {result.refreshed}")
    if result.queued:
        print(f"  - Queued for scraping: {result.queued}")
    print(BANNER)


def wait_for_queue(engine: SyncEngine) -> None:
    """Block until the scrape worker is idle, then print a summary."""
    try:
        engine.queue.wait_until_idle()
    except KeyboardInterrupt:
        print("\nStopping after the current job...")
        engine.queue.stop()
        engine.queue.wait_until_idle()

    status = engine.queue.status()
    print_section("SCRAPE RESULTS")
    print(f"Completed: {status.completed_count}  |  Failed: {status.failed_count}  |  "
          f"Cancelled: {status.cancelled_count}")
    for job in status.recent_jobs:
        marker = {"completed": "✓", "failed": "✗"}.get(job.status, "-")
        line = f"{marker} {job.status.upper():<10} | {job.game_name} ({job.game_id})"
        if job.error:
            line += f"\n  └─ Error: {job.error}"
        print(line)
    print(BANNER)


def cmd_sync(engine: SyncEngine, args: argparse.Namespace) -> int:
    result = engine.trigger_sync(skip_auto_scrape=args.no_auto_scrape)
    print_sync_result(result)
    if result is not None and result.queued and args.wait:
        wait_for_queue(engine)
    return 0 if result is not None and result.success else 1


def cmd_scrape(engine: SyncEngine, args: argparse.Namespace) -> int:
    if len(args.game_ids) == 1:
        job = engine.queue.enqueue(args.game_ids[0])
        print(f"Queued {job.game_name} ({job.game_id}) as job {job.id} [{job.status}]")
    else:
        batch = engine.queue.enqueue_many(args.game_ids)
        print(f"Queued batch {batch.batch_id} with {len(batch.job_ids)} jobs")
    if args.wait:
        wait_for_queue(engine)
    return 0


def cmd_scrape_all(engine: SyncEngine, args: argparse.Namespace) -> int:
    game_ids = engine.catalog.get_collection_game_ids()
    if not game_ids:
        print("\n💡 Collection is empty! Run a sync first:")
        print("   bgg-sync configure --username <bgg user>")
        print("   bgg-sync sync")
        return 1
    batch = engine.queue.enqueue_many(game_ids)
    print(f"Queued batch {batch.batch_id} with {len(batch.job_ids)} jobs")
    if args.wait:
        wait_for_queue(engine)
    return 0


def cmd_status(engine: SyncEngine, args: argparse.Namespace) -> int:
    status = engine.queue.status()
    if args.json:
        print(json.dumps(status.to_dict(), indent=2))
        return 0

    stats = engine.catalog.get_statistics()
    settings = engine.catalog.get_settings()
    print_section("CATALOG")
    print(f"Games in database: {stats['total_games_in_db']}  |  Scraped: {stats['scraped_games']}")
    print(f"Games in collection: {stats['collection_games']}")
    print(f"BGG user: {settings.bgg_username or '(not set)'}  |  Schedule: {settings.sync_schedule}  |  "
          f"Auto-scrape: {'on' if settings.auto_scrape_new_games else 'off'}")
    print(f"Last synced: {settings.last_synced_at or 'never'}")
    print(f"Backend: {'xmlapi2 (token set)' if engine.selector.is_configured() else 'geekdo (no token)'}")

    print_section("SCRAPE QUEUE")
    print(f"Pending: {status.pending_count}  |  Completed: {status.completed_count}  |  "
          f"Failed: {status.failed_count}  |  Cancelled: {status.cancelled_count}")
    if status.current_batch:
        batch = status.current_batch
        print(f"Current batch {batch.batch_id}: {batch.completed}/{batch.total} completed, "
              f"{batch.failed} failed, {batch.cancelled} cancelled")
    print(BANNER)
    return 0


def cmd_stop(engine: SyncEngine, args: argparse.Namespace) -> int:
    cancelled = engine.queue.stop()
    print(f"Cancelled {cancelled} pending jobs")
    return 0


def cmd_cleanup(engine: SyncEngine, args: argparse.Namespace) -> int:
    deleted = engine.queue.cleanup_old_jobs()
    print(f"Deleted {deleted} finished jobs older than {engine.queue.retention_days} days")
    return 0


def cmd_configure(engine: SyncEngine, args: argparse.Namespace) -> int:
    try:
        settings = engine.collection_sync.configure(
            bgg_username=args.username,
            sync_schedule=args.schedule,
            auto_scrape_new_games=args.auto_scrape,
        )
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        return 2
    print_section("COLLECTION SETTINGS")
    print(f"BGG user: {settings.bgg_username or '(not set)'}")
    print(f"Schedule: {settings.sync_schedule}")
    print(f"Auto-scrape new games: {'on' if settings.auto_scrape_new_games else 'off'}")
    print(BANNER)
    return 0


def cmd_search(engine: SyncEngine, args: argparse.Namespace) -> int:
    results = engine.selector.get_client().search(args.query, limit=args.limit)
    print_section(f"SEARCH: {args.query}")
    if not results:
        print("No games found.")
    for result in results:
        year = f" ({result.year_published})" if result.year_published else ""
        kind = " [expansion]" if result.is_expansion else ""
        print(f"{result.id:>8} | {result.name}{year}{kind}")
    return 0


def cmd_hot(engine: SyncEngine, args: argparse.Namespace) -> int:
    hot_games = engine.selector.get_client().get_hot_games()
    print_section("HOT GAMES")
    for rank, game in enumerate(hot_games, start=1):
        year = f" ({game.year_published})" if game.year_published else ""
        print(f"{rank:>3}. {game.name}{year} [{game.id}]")
    return 0


def cmd_run(engine: SyncEngine, args: argparse.Namespace) -> int:
    engine.start()
    print("Scheduler and scrape worker running. Press Ctrl+C to exit.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nShutting down...")
    finally:
        engine.shutdown()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bgg-sync", description="Keep a local board game catalog in sync with BoardGameGeek"
    )
    parser.add_argument("--db", type=Path, default=DATABASE_PATH, help="Path to the SQLite catalog")
    parser.add_argument("--log-file", type=str, default="bgg_sync.log",
                        help="Log file name or absolute path; empty for console only")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Run a full collection sync now")
    sync_parser.add_argument("--no-auto-scrape", action="store_true", help="Do not queue new games for scraping")
    sync_parser.add_argument("--no-wait", dest="wait", action="store_false",
                             help="Do not wait for queued scrape jobs")
    sync_parser.set_defaults(handler=cmd_sync)

    scrape_parser = subparsers.add_parser("scrape", help="Scrape details for specific games")
    scrape_parser.add_argument("game_ids", nargs="+", help="BGG game ids")
    scrape_parser.add_argument("--no-wait", dest="wait", action="store_false", help="Only queue the jobs")
    scrape_parser.set_defaults(handler=cmd_scrape)

    scrape_all_parser = subparsers.add_parser("scrape-all", help="Scrape every game in the collection")
    scrape_all_parser.add_argument("--no-wait", dest="wait", action="store_false", help="Only queue the jobs")
    scrape_all_parser.set_defaults(handler=cmd_scrape_all)

    status_parser = subparsers.add_parser("status", help="Show catalog and queue status")
    status_parser.add_argument("--json", action="store_true", help="Print the queue status as JSON")
    status_parser.set_defaults(handler=cmd_status)

    subparsers.add_parser("stop", help="Cancel all pending scrape jobs").set_defaults(handler=cmd_stop)
    subparsers.add_parser("cleanup", help="Delete old finished jobs").set_defaults(handler=cmd_cleanup)

    configure_parser = subparsers.add_parser("configure", help="Edit collection sync settings")
    configure_parser.add_argument("--username", type=str, default=None, help="BGG username")
    configure_parser.add_argument("--schedule", type=str, default=None, choices=list(SYNC_SCHEDULES),
                                  help="Automatic sync schedule")
    auto_scrape = configure_parser.add_mutually_exclusive_group()
    auto_scrape.add_argument("--auto-scrape", dest="auto_scrape", action="store_true", default=None,
                             help="Queue newly synced games for scraping")
    auto_scrape.add_argument("--no-auto-scrape", dest="auto_scrape", action="store_false",
                             help="Do not queue newly synced games")
    configure_parser.set_defaults(handler=cmd_configure)

    search_parser = subparsers.add_parser("search", help="Search BGG by name")
    search_parser.add_argument("query", type=str)
    search_parser.add_argument("--limit", type=int, default=15, help="Maximum results")
    search_parser.set_defaults(handler=cmd_search)

    subparsers.add_parser("hot", help="Show the BGG hot list").set_defaults(handler=cmd_hot)
    subparsers.add_parser("run", help="Run the scheduler and scrape worker until interrupted") \
        .set_defaults(handler=cmd_run)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_file or None, level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        engine = SyncEngine(db_path=args.db)
        return args.handler(engine, args)
    except KeyboardInterrupt:
        print("\nProcess interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Unexpected error in main: {e}")
        raise


if __name__ == "__main__":
    raise SystemExit(main())
