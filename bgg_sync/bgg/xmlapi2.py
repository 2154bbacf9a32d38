"""
BGG client backed by the official XML API v2.

Requires a registered application token. BGG asks API consumers to leave a
few seconds between requests, answers 202 while it prepares large payloads,
and caps ``thing`` requests at 20 ids.

See https://boardgamegeek.com/wiki/page/BGG_XML_API2
"""

import logging
import threading
import time
from typing import Any, Dict, List, Optional

import requests

from ..config import (
    BGG_XMLAPI2_BASE,
    MAX_RETRIES,
    MAX_THINGS_PER_REQUEST,
    RATE_LIMIT_MS,
    REQUEST_TIMEOUT,
    RETRY_DELAY_MS,
    USER_AGENT,
)
from ..error_handling import handle_errors
from ..models import CollectionItem, GameDetails, HotItem, SearchResult
from .base import BggClient
from .parsing import (
    as_list,
    attr,
    child,
    clean_description,
    parse_int,
    parse_rating,
    parse_year,
    text,
    xml_items,
)

logger = logging.getLogger(__name__)

EXPANSION_LINK = "boardgameexpansion"


def chunked(ids: List[str], size: int) -> List[List[str]]:
    """Split ids into consecutive chunks of at most ``size``."""
    return [ids[i:i + size] for i in range(0, len(ids), size)]


class XmlApi2Client(BggClient):
    """
    Authenticated BGG client.

    All requests go through one rate-limit cursor, so they are strictly
    serialized in time no matter which operation issues them.
    """

    client_type = "xmlapi2"

    def __init__(self, token: str, rate_limit_ms: int = RATE_LIMIT_MS,
                 retry_delay_ms: int = RETRY_DELAY_MS, max_retries: int = MAX_RETRIES,
                 timeout: int = REQUEST_TIMEOUT, session: Optional[requests.Session] = None,
                 base_url: str = BGG_XMLAPI2_BASE):
        """
        Initialize the XML API client.

        Args:
            token: Bearer token issued by BGG
            rate_limit_ms: Minimum delay between two requests
            retry_delay_ms: Delay before retrying a 202, and base delay for 5xx backoff
            max_retries: Maximum attempts per request
            timeout: Per-request timeout in seconds
            session: Optional requests session (for connection reuse or testing)
            base_url: API root
        """
        self.token = token
        self.rate_limit_ms = rate_limit_ms
        self.retry_delay_ms = retry_delay_ms
        self.max_retries = max_retries
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self._last_request_time: Optional[float] = None
        # Shared by the scheduler and scrape-worker threads
        self._rate_lock = threading.Lock()

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/xml",
            "User-Agent": USER_AGENT,
        }

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _wait_for_rate_limit(self) -> None:
        """Sleep until the minimum interval since the previous request has passed."""
        with self._rate_lock:
            if self._last_request_time is not None:
                elapsed_ms = (time.monotonic() - self._last_request_time) * 1000
                if elapsed_ms < self.rate_limit_ms:
                    time.sleep((self.rate_limit_ms - elapsed_ms) / 1000)
            self._last_request_time = time.monotonic()

    def _rate_limited_get(self, url: str, params: Dict[str, Any]) -> requests.Response:
        self._wait_for_rate_limit()
        return self.session.get(url, params=params, headers=self.headers, timeout=self.timeout)

    def _fetch_with_retry(self, endpoint: str, params: Dict[str, Any]) -> Optional[str]:
        """
        Fetch an endpoint, retrying 202 (queued) and 5xx responses.

        Returns:
            Response body, or None on a permanent error or when retries run out
        """
        url = f"{self.base_url}/{endpoint}"

        for attempt in range(self.max_retries):
            last_attempt = attempt == self.max_retries - 1
            try:
                response = self._rate_limited_get(url, params)
            except requests.RequestException as e:
                delay_ms = self.retry_delay_ms * (2 ** attempt)
                logger.warning(f"Request to {url} failed ({e}), retrying in {delay_ms}ms...")
                if not last_attempt:
                    time.sleep(delay_ms / 1000)
                continue

            status = response.status_code
            if status == 200:
                return response.text

            if status == 202:
                logger.info(f"Request queued by BGG (202), retrying in {self.retry_delay_ms}ms...")
                if not last_attempt:
                    time.sleep(self.retry_delay_ms / 1000)
                continue

            if status >= 500:
                delay_ms = self.retry_delay_ms * (2 ** attempt)
                logger.warning(f"Server error ({status}), retrying in {delay_ms}ms...")
                if not last_attempt:
                    time.sleep(delay_ms / 1000)
                continue

            logger.error(f"Request failed with status {status}: {url} {params}")
            return None

        logger.error(f"Max retries exceeded for: {url} {params}")
        return None

    # ------------------------------------------------------------------
    # Game details
    # ------------------------------------------------------------------

    def get_game_details(self, game_id: str) -> Optional[GameDetails]:
        results = self.get_games_details([game_id])
        return results[0] if results else None

    def get_games_details(self, game_ids: List[str]) -> List[GameDetails]:
        """
        Get details for several games.

        Ids are sent in chunks of at most 20, one request per chunk. A chunk
        that fails contributes nothing; the others are still returned.
        """
        results: List[GameDetails] = []
        ids = [str(game_id) for game_id in game_ids]
        for batch in chunked(ids, MAX_THINGS_PER_REQUEST):
            results.extend(self._fetch_thing_details(batch))
        return results

    def _fetch_thing_details(self, game_ids: List[str]) -> List[GameDetails]:
        xml_text = self._fetch_with_retry("thing", {"id": ",".join(game_ids), "stats": 1})
        if not xml_text:
            return []

        parsed = [details for details in map(self._parse_thing_item, xml_items(xml_text)) if details]

        # Keep the order of the request even if BGG reorders items
        position = {game_id: index for index, game_id in enumerate(game_ids)}
        parsed.sort(key=lambda details: position.get(details.id, len(position)))
        return parsed

    @handle_errors(default_return=None)
    def _parse_thing_item(self, item: Dict[str, Any]) -> Optional[GameDetails]:
        game_id = item.get("@id")
        if not game_id:
            return None

        names = [name for name in as_list(item.get("name")) if isinstance(name, dict)]
        primary = next((name for name in names if name.get("@type") == "primary"), None)
        name = attr(primary, "value") or attr(names, "value") or ""

        links = [link for link in as_list(item.get("link")) if isinstance(link, dict)]
        categories = [link.get("@value", "") for link in links if link.get("@type") == "boardgamecategory"]
        mechanics = [link.get("@value", "") for link in links if link.get("@type") == "boardgamemechanic"]

        # An inbound expansion link points from an expansion back to its base game
        expansion_links = [link for link in links if link.get("@type") == EXPANSION_LINK and link.get("@id")]
        base_game_ids = [link["@id"] for link in expansion_links if link.get("@inbound") == "true"]
        expansion_ids = [link["@id"] for link in expansion_links if link.get("@inbound") != "true"]

        return GameDetails(
            id=game_id,
            name=name,
            year_published=parse_year(attr(item.get("yearpublished"), "value")),
            description=clean_description(text(item.get("description"))),
            image=text(item.get("image")),
            thumbnail=text(item.get("thumbnail")),
            rating=parse_rating(attr(child(item, "statistics", "ratings", "average"), "value")),
            min_players=parse_int(attr(item.get("minplayers"), "value")),
            max_players=parse_int(attr(item.get("maxplayers"), "value")),
            min_playtime=parse_int(attr(item.get("minplaytime"), "value")),
            max_playtime=parse_int(attr(item.get("maxplaytime"), "value")),
            min_age=parse_int(attr(item.get("minage"), "value")),
            categories=categories,
            mechanics=mechanics,
            is_expansion=item.get("@type") == EXPANSION_LINK,
            base_game_ids=base_game_ids,
            expansion_ids=expansion_ids,
        )

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    def get_collection(self, username: str) -> List[CollectionItem]:
        xml_text = self._fetch_with_retry("collection", {"username": username, "own": 1, "stats": 1})
        if not xml_text:
            return []
        items = [entry for entry in map(self._parse_collection_item, xml_items(xml_text)) if entry]
        logger.info(f"Fetched {len(items)} owned items for {username}")
        return items

    @handle_errors(default_return=None)
    def _parse_collection_item(self, item: Dict[str, Any]) -> Optional[CollectionItem]:
        game_id = item.get("@objectid")
        if not game_id:
            return None
        return CollectionItem(
            id=game_id,
            name=text(item.get("name")) or "",
            year_published=parse_year(text(item.get("yearpublished"))),
            is_expansion=item.get("@subtype") == EXPANSION_LINK,
        )

    # ------------------------------------------------------------------
    # Gallery images
    # ------------------------------------------------------------------

    def get_gallery_images(self, game_id: str) -> List[str]:
        """Collect the main image plus the box art of every version/edition."""
        xml_text = self._fetch_with_retry("thing", {"id": game_id, "versions": 1})
        if not xml_text:
            return []
        return collect_version_images(xml_items(xml_text))

    # ------------------------------------------------------------------
    # Search and hot list
    # ------------------------------------------------------------------

    def search(self, query: str, limit: int = 15) -> List[SearchResult]:
        xml_text = self._fetch_with_retry(
            "search", {"query": query, "type": "boardgame,boardgameexpansion"}
        )
        if not xml_text:
            return []

        items = xml_items(xml_text)[:limit]

        # Search results carry no thumbnails, fetch them with one batched details call
        game_ids = [item["@id"] for item in items if item.get("@id")]
        details = {d.id: d for d in self.get_games_details(game_ids)} if game_ids else {}

        results = []
        for item in items:
            result = self._parse_search_item(item, details)
            if result:
                results.append(result)
        return results

    @handle_errors(default_return=None)
    def _parse_search_item(self, item: Dict[str, Any],
                           details: Dict[str, GameDetails]) -> Optional[SearchResult]:
        game_id = item.get("@id")
        if not game_id:
            return None
        names = [name for name in as_list(item.get("name")) if isinstance(name, dict)]
        primary = next((name for name in names if name.get("@type") == "primary"), None)
        game = details.get(game_id)
        return SearchResult(
            id=game_id,
            name=attr(primary, "value") or attr(names, "value") or "",
            year_published=parse_year(attr(item.get("yearpublished"), "value")),
            thumbnail=game.thumbnail if game else None,
            is_expansion=item.get("@type") == EXPANSION_LINK,
        )

    def get_hot_games(self) -> List[HotItem]:
        xml_text = self._fetch_with_retry("hot", {"type": "boardgame"})
        if not xml_text:
            return []
        return [hot for hot in map(self._parse_hot_item, xml_items(xml_text)) if hot]

    @handle_errors(default_return=None)
    def _parse_hot_item(self, item: Dict[str, Any]) -> Optional[HotItem]:
        game_id = item.get("@id")
        if not game_id:
            return None
        return HotItem(
            id=game_id,
            name=attr(item.get("name"), "value") or "",
            year_published=parse_year(attr(item.get("yearpublished"), "value")),
            thumbnail=attr(item.get("thumbnail"), "value"),
        )


def collect_version_images(items: List[Dict[str, Any]]) -> List[str]:
    """Gather unique image URLs from ``thing?versions=1`` items, main image first."""
    images: Dict[str, None] = {}
    for item in items:
        main_image = text(item.get("image"))
        if main_image:
            images[main_image] = None
        for version in as_list(child(item, "versions", "item")):
            if not isinstance(version, dict):
                continue
            version_image = text(version.get("image"))
            if version_image:
                images[version_image] = None
    return list(images)
