"""Tests for collection sync and the per-game scrape action."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from bgg_sync.bgg.selector import ClientSelector
from bgg_sync.error_handling import ConfigurationError, ScrapeError
from bgg_sync.models import BatchHandle, CollectionItem, GameDetails
from bgg_sync.sync.collection_sync import CollectionSync


@pytest.fixture
def selector(fake_client):
    return ClientSelector(token="", geekdo_factory=lambda: fake_client)


@pytest.fixture
def queue():
    queue = MagicMock()
    queue.enqueue_many.side_effect = lambda ids: BatchHandle(batch_id="b1", job_ids=[f"job-{i}" for i in ids])
    return queue


@pytest.fixture
def sync(catalog, selector, queue):
    return CollectionSync(catalog, selector, queue=queue)


def owned(*items):
    return [CollectionItem(id=game_id, name=name, year_published=year) for game_id, name, year in items]


def test_sync_without_username_fails_fast(sync, fake_client):
    result = sync.sync_collection()

    assert not result.success
    assert result.error == "No BGG username configured for this collection"
    assert sync.get_settings().last_synced_at is None


def test_sync_merges_collection(sync, catalog, fake_client):
    catalog.update_settings(bgg_username="alice")
    catalog.merge_collection_item(CollectionItem(id="13", name="Catan", year_published=1995))
    catalog.merge_collection_item(CollectionItem(id="30549", name="Pandemic", year_published=2007))
    fake_client.collection = owned(
        ("13", "Catan", 1995),
        ("30549", "Pandemic", 2008),
        ("266192", "Wingspan", 2019),
    )

    result = sync.sync_collection()

    assert result.success
    assert (result.total, result.created, result.updated) == (3, 1, 1)
    assert result.new_game_ids == ["266192"]
    assert catalog.get_collection_game_ids() == ["13", "266192", "30549"]
    assert catalog.get_game("30549")["year_published"] == 2008
    assert catalog.get_settings().last_synced_at is not None
    log = catalog.get_sync_log(limit=1)[0]
    assert (log["username"], log["games_found"], log["status"]) == ("alice", 3, "success")


def test_sync_is_idempotent(sync, catalog, fake_client):
    catalog.update_settings(bgg_username="alice")
    fake_client.collection = owned(("13", "Catan", 1995))

    sync.sync_collection()
    result = sync.sync_collection()

    assert (result.created, result.updated) == (0, 0)
    assert catalog.get_statistics()["total_games_in_db"] == 1


def test_client_failure_leaves_last_synced_unchanged(sync, catalog, fake_client):
    catalog.update_settings(bgg_username="alice")
    fake_client.get_collection = MagicMock(side_effect=RuntimeError("BGG is down"))

    result = sync.sync_collection()

    assert not result.success
    assert result.error == "BGG is down"
    assert catalog.get_settings().last_synced_at is None
    assert catalog.get_sync_log(limit=1)[0]["status"] == "failed"


def test_empty_response_for_non_empty_collection_is_a_failure(sync, catalog, fake_client):
    catalog.update_settings(bgg_username="alice")
    catalog.merge_collection_item(CollectionItem(id="13", name="Catan", year_published=1995))
    catalog.link_to_collection("13")
    fake_client.collection = []

    result = sync.sync_collection()

    assert not result.success
    assert "empty collection" in result.error
    assert catalog.get_settings().last_synced_at is None
    assert catalog.get_collection_game_ids() == ["13"]
    assert catalog.get_sync_log(limit=1)[0]["status"] == "failed"


def test_empty_response_for_empty_collection_succeeds(sync, catalog, fake_client):
    catalog.update_settings(bgg_username="alice")
    fake_client.collection = []

    result = sync.sync_collection()

    assert result.success
    assert result.total == 0
    assert catalog.get_settings().last_synced_at is not None


def test_auto_scrape_queues_new_games(sync, catalog, fake_client, queue):
    catalog.update_settings(bgg_username="alice", auto_scrape_new_games=True)
    fake_client.collection = owned(("13", "Catan", 1995), ("822", "Carcassonne", 2000))

    result = sync.perform_sync_with_auto_scrape()

    queue.enqueue_many.assert_called_once_with(["13", "822"])
    assert result.queued == 2


def test_auto_scrape_disabled_or_skipped(sync, catalog, fake_client, queue):
    catalog.update_settings(bgg_username="alice")
    fake_client.collection = owned(("13", "Catan", 1995))
    sync.perform_sync_with_auto_scrape()

    catalog.update_settings(auto_scrape_new_games=True)
    fake_client.collection = owned(("822", "Carcassonne", 2000))
    result = sync.perform_sync_with_auto_scrape(skip_auto_scrape=True)

    queue.enqueue_many.assert_not_called()
    assert result.queued == 0


def test_stale_games_are_refreshed(sync, catalog, fake_client):
    catalog.update_settings(bgg_username="alice")
    old = datetime.now(timezone.utc) - timedelta(days=90)
    catalog.save_game_details(GameDetails(id="13", name="Catan", rating=6.0), scraped_at=old)
    catalog.link_to_collection("13")
    fake_client.collection = owned(("13", "Catan", None), ("822", "Carcassonne", 2000))
    fake_client.games["13"] = GameDetails(id="13", name="Catan", rating=7.2)

    result = sync.sync_collection()

    assert result.refreshed == 1
    assert fake_client.batch_calls == [["13"]]
    assert catalog.get_game("13")["rating"] == 7.2


@pytest.mark.parametrize("schedule, hours_ago, due", [
    ("manual", 10_000, False),
    ("daily", 23, False),
    ("daily", 25, True),
    ("weekly", 100, False),
    ("weekly", 169, True),
    ("monthly", 700, False),
    ("monthly", 721, True),
])
def test_is_sync_due(sync, catalog, schedule, hours_ago, due):
    now = datetime(2024, 6, 1, tzinfo=timezone.utc)
    catalog.update_settings(sync_schedule=schedule)
    catalog.mark_synced(now - timedelta(hours=hours_ago))

    assert sync.is_sync_due(now=now) is due


def test_never_synced_collection_is_due(sync, catalog):
    catalog.update_settings(sync_schedule="weekly")

    assert sync.is_sync_due()


def test_configure_rejects_unknown_schedule(sync):
    with pytest.raises(ConfigurationError):
        sync.configure(sync_schedule="hourly")

    settings = sync.configure(bgg_username="alice", sync_schedule="weekly", auto_scrape_new_games=True)
    assert (settings.bgg_username, settings.sync_schedule, settings.auto_scrape_new_games) == (
        "alice", "weekly", True,
    )


def test_scrape_game_stores_details_and_expansion_links(sync, catalog, fake_client):
    fake_client.games["13"] = GameDetails(id="13", name="Catan", image="https://cf.geekdo-images.com/c.jpg")
    fake_client.games["325"] = GameDetails(
        id="325", name="Seafarers", is_expansion=True, base_game_ids=["13", "404"],
    )
    fake_client.gallery["325"] = ["https://cf.geekdo-images.com/v1.jpg"]

    sync.scrape_game("13")
    details = sync.scrape_game("325")

    assert details.name == "Seafarers"
    game = catalog.get_game("325")
    assert game["is_expansion"] is True
    assert game["available_images"] == ["https://cf.geekdo-images.com/v1.jpg"]
    assert game["last_scraped"] is not None
    assert catalog.get_base_game_ids("325") == ["13"]
    assert catalog.get_game("13")["thumbnail"] == "https://cf.geekdo-images.com/c.jpg"


def test_scrape_game_without_details_raises(sync, catalog):
    with pytest.raises(ScrapeError):
        sync.scrape_game("404")

    assert catalog.get_game("404") is None
