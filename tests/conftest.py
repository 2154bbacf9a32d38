"""Shared fixtures for the bgg_sync test suite."""

import json
from typing import Dict, List, Optional
from unittest.mock import MagicMock, NonCallableMagicMock

import pytest

from bgg_sync.bgg.base import BggClient
from bgg_sync.database.catalog import CatalogStore
from bgg_sync.database.jobs import JobStore
from bgg_sync.models import CollectionItem, GameDetails, HotItem, SearchResult


def make_response(status_code: int = 200, text: str = "", json_data=None) -> MagicMock:
    """A stand-in for requests.Response."""
    response = NonCallableMagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    if json_data is not None:
        response.text = json.dumps(json_data)
        response.json.return_value = json_data
    else:
        response.text = text
        response.json.side_effect = ValueError("No JSON object could be decoded")
    return response


class FakeClock:
    """Replaces the ``time`` module inside a client module."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBggClient(BggClient):
    """In-memory BGG client for sync and queue tests."""

    client_type = "fake"

    def __init__(self, games: Optional[Dict[str, GameDetails]] = None,
                 collection: Optional[List[CollectionItem]] = None):
        self.games = games or {}
        self.collection = collection or []
        self.gallery: Dict[str, List[str]] = {}
        self.detail_calls: List[str] = []
        self.batch_calls: List[List[str]] = []

    def get_game_details(self, game_id):
        self.detail_calls.append(game_id)
        return self.games.get(game_id)

    def get_games_details(self, game_ids):
        self.batch_calls.append(list(game_ids))
        return [self.games[game_id] for game_id in game_ids if game_id in self.games]

    def get_collection(self, username):
        return list(self.collection)

    def get_gallery_images(self, game_id):
        return self.gallery.get(game_id, [])

    def search(self, query, limit=15) -> List[SearchResult]:
        return []

    def get_hot_games(self) -> List[HotItem]:
        return []


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "catalog.db"


@pytest.fixture
def catalog(db_path):
    return CatalogStore(db_path)


@pytest.fixture
def job_store(db_path):
    return JobStore(db_path)


@pytest.fixture
def fake_client():
    return FakeBggClient()
