"""Tests for the authenticated XML API v2 client."""

import threading
import time
from unittest.mock import MagicMock

import pytest
import requests

from bgg_sync.bgg import xmlapi2
from bgg_sync.bgg.xmlapi2 import XmlApi2Client, chunked

from .conftest import FakeClock, make_response

GLOOMHAVEN = """
<items termsofuse="https://boardgamegeek.com/xmlapi/termsofuse">
  <item type="boardgame" id="174430">
    <thumbnail>https://cf.geekdo-images.com/gloom_thumb.jpg</thumbnail>
    <image>https://cf.geekdo-images.com/gloom.jpg</image>
    <name type="primary" sortindex="1" value="Gloomhaven"/>
    <name type="alternate" sortindex="1" value="Gloomhaven (Deutsch)"/>
    <description>Euro-inspired &lt;b&gt;dungeon&lt;/b&gt; crawler</description>
    <yearpublished value="2017"/>
    <minplayers value="1"/>
    <maxplayers value="4"/>
    <minplaytime value="60"/>
    <maxplaytime value="120"/>
    <minage value="14"/>
    <link type="boardgamecategory" id="1022" value="Adventure"/>
    <link type="boardgamecategory" id="1020" value="Exploration"/>
    <link type="boardgamemechanic" id="2023" value="Cooperative Game"/>
    <link type="boardgameexpansion" id="291679" value="Gloomhaven: Forgotten Circles"/>
    <statistics page="1">
      <ratings>
        <average value="8.59786"/>
      </ratings>
    </statistics>
  </item>
</items>
"""

FORGOTTEN_CIRCLES = """
<items>
  <item type="boardgameexpansion" id="291679">
    <name type="primary" sortindex="1" value="Gloomhaven: Forgotten Circles"/>
    <yearpublished value="0"/>
    <link type="boardgamecategory" id="1022" value="Adventure"/>
    <link type="boardgameexpansion" id="174430" value="Gloomhaven" inbound="true"/>
    <link type="boardgameexpansion" id="999999" value="Some Mini Expansion"/>
  </item>
</items>
"""


def thing_xml(ids):
    items = "".join(
        f'<item type="boardgame" id="{game_id}"><name type="primary" value="Game {game_id}"/></item>'
        for game_id in ids
    )
    return f"<items>{items}</items>"


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr(xmlapi2, "time", fake)
    return fake


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def client(session, clock):
    return XmlApi2Client("secret-token", rate_limit_ms=0, retry_delay_ms=100, session=session)


def test_chunked():
    assert chunked(["1", "2", "3"], 2) == [["1", "2"], ["3"]]
    assert chunked([], 20) == []


def test_game_details_are_parsed(client, session):
    session.get.return_value = make_response(200, GLOOMHAVEN)

    game = client.get_game_details("174430")

    assert game.id == "174430"
    assert game.name == "Gloomhaven"
    assert game.year_published == 2017
    assert game.description == "Euro-inspired dungeon crawler"
    assert game.image == "https://cf.geekdo-images.com/gloom.jpg"
    assert game.thumbnail == "https://cf.geekdo-images.com/gloom_thumb.jpg"
    assert game.rating == 8.6
    assert (game.min_players, game.max_players) == (1, 4)
    assert (game.min_playtime, game.max_playtime) == (60, 120)
    assert game.min_age == 14
    assert game.categories == ["Adventure", "Exploration"]
    assert game.mechanics == ["Cooperative Game"]
    assert game.is_expansion is False
    assert game.expansion_ids == ["291679"]
    assert game.base_game_ids == []


def test_every_request_sends_bearer_token(client, session):
    session.get.return_value = make_response(200, GLOOMHAVEN)

    client.get_game_details("174430")

    _, kwargs = session.get.call_args
    assert kwargs["headers"]["Authorization"] == "Bearer secret-token"
    assert kwargs["headers"]["Accept"] == "application/xml"
    assert kwargs["params"] == {"id": "174430", "stats": 1}


def test_expansion_links_are_split_by_direction(client, session):
    session.get.return_value = make_response(200, FORGOTTEN_CIRCLES)

    game = client.get_game_details("291679")

    assert game.is_expansion is True
    assert game.base_game_ids == ["174430"]
    assert game.expansion_ids == ["999999"]
    assert not set(game.base_game_ids) & set(game.expansion_ids)


def test_year_zero_and_missing_fields_become_none(client, session):
    session.get.return_value = make_response(200, FORGOTTEN_CIRCLES)

    game = client.get_game_details("291679")

    assert game.year_published is None
    assert game.rating is None
    assert game.min_players is None
    assert game.description is None
    assert game.mechanics == []


def test_single_and_repeated_names_resolve_to_primary(client, session):
    session.get.return_value = make_response(200, """
        <items>
          <item type="boardgame" id="1"><name type="primary" value="Only Name"/></item>
          <item type="boardgame" id="2">
            <name type="alternate" value="Alias"/>
            <name type="primary" value="Real Name"/>
          </item>
        </items>
    """)

    games = client.get_games_details(["1", "2"])

    assert [game.name for game in games] == ["Only Name", "Real Name"]


def test_batches_are_chunked_to_twenty_ids(client, session):
    ids = [str(n) for n in range(1, 46)]

    def respond(url, params=None, **kwargs):
        # BGG may return items in any order
        return make_response(200, thing_xml(reversed(params["id"].split(","))))

    session.get.side_effect = respond

    games = client.get_games_details(ids)

    assert session.get.call_count == 3
    requested = [call.kwargs["params"]["id"].split(",") for call in session.get.call_args_list]
    assert [len(chunk) for chunk in requested] == [20, 20, 5]
    assert [game.id for game in games] == ids


def test_failed_chunk_contributes_nothing(client, session):
    ids = [str(n) for n in range(1, 26)]
    session.get.side_effect = [
        make_response(400, "bad request"),
        make_response(200, thing_xml(ids[20:])),
    ]

    games = client.get_games_details(ids)

    assert [game.id for game in games] == ids[20:]


def test_malformed_items_are_dropped(client, session):
    session.get.return_value = make_response(200, """
        <items>
          <item type="boardgame" id="1"><name type="primary" value="Game 1"/></item>
          <item type="boardgame"><name type="primary" value="Missing id"/></item>
          <item type="boardgame" id="3">
            <name>stray text</name>
            <name type="primary" value="Game 3"/>
            <link>not a link</link>
            <link type="boardgamecategory" id="1030" value="Party Game"/>
          </item>
        </items>
    """)

    games = client.get_games_details(["1", "2", "3"])

    assert [game.id for game in games] == ["1", "3"]
    assert games[1].name == "Game 3"
    assert games[1].categories == ["Party Game"]


def test_202_is_retried_transparently(session, clock):
    client = XmlApi2Client("token", rate_limit_ms=0, retry_delay_ms=2000, session=session)
    session.get.side_effect = [make_response(202, ""), make_response(200, GLOOMHAVEN)]

    game = client.get_game_details("174430")

    assert session.get.call_count == 2
    assert game.name == "Gloomhaven"
    assert clock.sleeps == [2.0]


def test_server_errors_back_off_exponentially(client, session, clock):
    session.get.side_effect = [
        make_response(503, ""),
        make_response(502, ""),
        make_response(200, GLOOMHAVEN),
    ]

    game = client.get_game_details("174430")

    assert game is not None
    assert clock.sleeps == [pytest.approx(0.1), pytest.approx(0.2)]


def test_retries_exhausted_returns_none(client, session):
    session.get.return_value = make_response(500, "")

    assert client.get_game_details("174430") is None
    assert session.get.call_count == 3


def test_client_error_gives_up_immediately(client, session, clock):
    session.get.return_value = make_response(404, "")

    assert client.get_game_details("174430") is None
    assert session.get.call_count == 1
    assert clock.sleeps == []


def test_transport_error_is_retried(client, session):
    session.get.side_effect = [requests.ConnectionError("connection reset"), make_response(200, GLOOMHAVEN)]

    game = client.get_game_details("174430")

    assert game.id == "174430"
    assert session.get.call_count == 2


def test_rate_limiter_sleeps_the_remainder(session, clock):
    client = XmlApi2Client("token", rate_limit_ms=5000, session=session)
    session.get.return_value = make_response(200, "<items/>")

    client.get_hot_games()
    assert clock.sleeps == []

    clock.advance(1.5)
    client.get_hot_games()
    assert clock.sleeps == [pytest.approx(3.5)]

    clock.advance(6.0)
    client.get_hot_games()
    assert len(clock.sleeps) == 1


def test_rate_limiter_serializes_concurrent_callers(session):
    client = XmlApi2Client("token", rate_limit_ms=200, session=session)
    sent = []

    def record(url, **kwargs):
        sent.append(time.monotonic())
        return make_response(200, "<items/>")

    session.get.side_effect = record
    client.get_hot_games()

    threads = [threading.Thread(target=client.get_hot_games) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(5.0)

    assert len(sent) == 3
    gaps = [later - earlier for earlier, later in zip(sent, sent[1:])]
    assert all(gap >= 0.15 for gap in gaps), gaps


def test_collection_items(client, session):
    session.get.return_value = make_response(200, """
        <items totalitems="2">
          <item objecttype="thing" objectid="13" subtype="boardgame" collid="1">
            <name sortindex="1">Catan</name>
            <yearpublished>1995</yearpublished>
          </item>
          <item objecttype="thing" objectid="325" subtype="boardgameexpansion" collid="2">
            <name sortindex="1">Catan: Seafarers</name>
            <yearpublished>0</yearpublished>
          </item>
        </items>
    """)

    items = client.get_collection("alice")

    assert [(item.id, item.name, item.year_published, item.is_expansion) for item in items] == [
        ("13", "Catan", 1995, False),
        ("325", "Catan: Seafarers", None, True),
    ]
    assert session.get.call_args.kwargs["params"] == {"username": "alice", "own": 1, "stats": 1}


def test_gallery_images_include_versions_without_duplicates(client, session):
    session.get.return_value = make_response(200, """
        <items>
          <item type="boardgame" id="13">
            <image>https://cf.geekdo-images.com/main.jpg</image>
            <versions>
              <item type="boardgameversion" id="1"><image>https://cf.geekdo-images.com/v1.jpg</image></item>
              <item type="boardgameversion" id="2"><image>https://cf.geekdo-images.com/main.jpg</image></item>
              <item type="boardgameversion" id="3"><name type="primary" value="No art"/></item>
            </versions>
          </item>
        </items>
    """)

    images = client.get_gallery_images("13")

    assert images == ["https://cf.geekdo-images.com/main.jpg", "https://cf.geekdo-images.com/v1.jpg"]


def test_gallery_images_with_single_version(client, session):
    session.get.return_value = make_response(200, """
        <items>
          <item type="boardgame" id="13">
            <versions>
              <item type="boardgameversion" id="1"><image>https://cf.geekdo-images.com/v1.jpg</image></item>
            </versions>
          </item>
        </items>
    """)

    assert client.get_gallery_images("13") == ["https://cf.geekdo-images.com/v1.jpg"]


def test_search_enriches_thumbnails(client, session):
    search_xml = """
        <items total="2">
          <item type="boardgame" id="1"><name type="primary" value="Game 1"/><yearpublished value="2001"/></item>
          <item type="boardgameexpansion" id="2"><name type="alternate" value="Game 2"/></item>
        </items>
    """
    details_xml = """
        <items>
          <item type="boardgame" id="1"><name type="primary" value="Game 1"/><thumbnail>t1.jpg</thumbnail></item>
          <item type="boardgameexpansion" id="2"><name type="primary" value="Game 2"/></item>
        </items>
    """
    session.get.side_effect = [make_response(200, search_xml), make_response(200, details_xml)]

    results = client.search("game")

    assert [(r.id, r.name, r.year_published, r.thumbnail, r.is_expansion) for r in results] == [
        ("1", "Game 1", 2001, "t1.jpg", False),
        ("2", "Game 2", None, None, True),
    ]
    assert session.get.call_args_list[1].kwargs["params"]["id"] == "1,2"


def test_hot_games(client, session):
    session.get.return_value = make_response(200, """
        <items>
          <item id="1" rank="1">
            <thumbnail value="https://cf.geekdo-images.com/hot.jpg"/>
            <name value="Hot Game"/>
            <yearpublished value="2024"/>
          </item>
        </items>
    """)

    hot = client.get_hot_games()

    assert len(hot) == 1
    assert (hot[0].id, hot[0].name, hot[0].year_published) == ("1", "Hot Game", 2024)
    assert hot[0].thumbnail == "https://cf.geekdo-images.com/hot.jpg"
