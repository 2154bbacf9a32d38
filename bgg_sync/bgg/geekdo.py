"""
BGG client for deployments without an API token.

Uses BGG's internal JSON endpoints on api.geekdo.com, the public XML API
for version images, and a headless browser for data that only exists in
rendered pages (box art on the game page, the owned-collection table).
These endpoints are unofficial and may change without notice, so every
payload is validated before use.
"""

import logging
import re
import time
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import (
    BGG_SITE_BASE,
    BGG_XMLAPI2_BASE,
    FALLBACK_PAUSE_MS,
    GEEKDO_API_BASE,
    REQUEST_TIMEOUT,
    USER_AGENT,
)
from ..models import CollectionItem, GameDetails, HotItem, SearchResult
from .base import BggClient
from .browser import BrowserSession
from .parsing import clean_description, first_present, parse_int, parse_rating, parse_year, xml_items
from .xmlapi2 import EXPANSION_LINK, collect_version_images

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

GAME_PAGE_IMAGE_SELECTORS = (
    'img[src*="cf.geekdo-images"][src*="itemrep"]',
    'img[src*="cf.geekdo-images"]:not([src*="avatar"])',
)
COLLECTION_ROW_SELECTOR = "table tbody tr"
GAME_HREF_PATTERN = re.compile(r"/(?:boardgame|boardgameexpansion)/(\d+)")
YEAR_PATTERN = re.compile(r"\((\d{4})\)")


# ----------------------------------------------------------------------
# Payload models
# ----------------------------------------------------------------------

class _Payload(BaseModel):
    # Geekdo mixes numbers and numeric strings for the same field
    model_config = ConfigDict(coerce_numbers_to_str=True, extra="ignore")


class NamedLink(_Payload):
    name: Optional[str] = None
    objectid: Optional[str] = None


def validate_entries(model: Type[ModelT], entries: Any, label: str) -> List[ModelT]:
    """Validate list entries one by one, dropping the ones that do not fit ``model``."""
    if not isinstance(entries, list):
        if entries is not None:
            logger.warning(f"Ignoring {label}: expected a list, got {type(entries).__name__}")
        return []
    valid = []
    for index, entry in enumerate(entries):
        try:
            valid.append(model.model_validate(entry))
        except ValidationError as e:
            logger.warning(f"Skipping malformed {label} entry {index}: {e}")
    return valid


class GeekItemImages(_Payload):
    thumb: Optional[str] = None
    square200: Optional[str] = None


class GeekItemLinks(_Payload):
    boardgamecategory: List[NamedLink] = Field(default_factory=list)
    boardgamemechanic: List[NamedLink] = Field(default_factory=list)
    expandsboardgame: List[NamedLink] = Field(default_factory=list)
    boardgameexpansion: List[NamedLink] = Field(default_factory=list)

    @field_validator("boardgamecategory", "boardgamemechanic", "expandsboardgame", "boardgameexpansion",
                     mode="before")
    @classmethod
    def _drop_bad_links(cls, value: Any, info: ValidationInfo) -> List[NamedLink]:
        return validate_entries(NamedLink, value, info.field_name)


class GeekItem(_Payload):
    objectid: Optional[str] = None
    name: Optional[str] = None
    yearpublished: Optional[str] = None
    subtype: Optional[str] = None
    short_description: Optional[str] = None
    description: Optional[str] = None
    minplayers: Optional[str] = None
    maxplayers: Optional[str] = None
    minplaytime: Optional[str] = None
    maxplaytime: Optional[str] = None
    minage: Optional[str] = None
    images: GeekItemImages = Field(default_factory=GeekItemImages)
    links: GeekItemLinks = Field(default_factory=GeekItemLinks)

    @property
    def is_expansion(self) -> bool:
        return self.subtype == EXPANSION_LINK


class GeekItemResponse(_Payload):
    item: Optional[GeekItem] = None


class DynamicStats(_Payload):
    average: Optional[str] = None


class DynamicItem(_Payload):
    stats: DynamicStats = Field(default_factory=DynamicStats)


class DynamicInfoResponse(_Payload):
    item: Optional[DynamicItem] = None


class HotnessItem(_Payload):
    objectid: str
    name: Optional[str] = None
    yearpublished: Optional[str] = None
    subtype: Optional[str] = None
    thumbnail: Optional[str] = None


class HotnessResponse(_Payload):
    items: List[HotnessItem] = Field(default_factory=list)

    @field_validator("items", mode="before")
    @classmethod
    def _drop_bad_items(cls, value: Any) -> List[HotnessItem]:
        return validate_entries(HotnessItem, value, "item")


# ----------------------------------------------------------------------
# Client
# ----------------------------------------------------------------------

class GeekdoApiClient(BggClient):
    """Unauthenticated BGG client built on internal JSON endpoints and page scraping."""

    client_type = "geekdo"

    def __init__(self, pause_ms: int = FALLBACK_PAUSE_MS, timeout: int = REQUEST_TIMEOUT,
                 session: Optional[requests.Session] = None,
                 browser_factory: Callable[[], BrowserSession] = BrowserSession):
        """
        Initialize the fallback client.

        Args:
            pause_ms: Pause between items during bulk enrichment
            timeout: Per-request timeout in seconds
            session: Optional requests session (for testing)
            browser_factory: Callable returning a fresh BrowserSession
        """
        self.pause_ms = pause_ms
        self.timeout = timeout
        self.browser_factory = browser_factory
        self.session = session or self._build_session()

    @staticmethod
    def _build_session() -> requests.Session:
        session = requests.Session()
        session.headers.update({"User-Agent": USER_AGENT})
        # Basic retry policy for transient failures
        retries = Retry(
            total=3,
            backoff_factor=0.3,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS"],
        )
        adapter = HTTPAdapter(max_retries=retries)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def _pause(self) -> None:
        if self.pause_ms > 0:
            time.sleep(self.pause_ms / 1000)

    def _get_json(self, url: str, params: Dict[str, Any], model: Type[ModelT],
                  headers: Optional[Dict[str, str]] = None) -> Optional[ModelT]:
        """
        GET a JSON endpoint and validate the payload.

        Returns:
            The validated model, or None on HTTP error, non-JSON body or a
            payload that does not match the expected shape
        """
        try:
            response = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Request to {url} failed: {e}")
            return None

        if not response.ok:
            logger.warning(f"Request to {url} returned status {response.status_code}")
            return None

        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning(f"Unexpected payload from {url}: {e}")
            return None

    def _get_geek_item(self, game_id: str, nosession: bool = False) -> Optional[GeekItem]:
        params = {"objecttype": "thing", "objectid": game_id}
        if nosession:
            params["nosession"] = 1
        data = self._get_json(f"{GEEKDO_API_BASE}/geekitems", params, GeekItemResponse)
        return data.item if data else None

    def _get_rating(self, game_id: str) -> Optional[float]:
        data = self._get_json(
            f"{GEEKDO_API_BASE}/dynamicinfo", {"objectid": game_id, "objecttype": "thing"},
            DynamicInfoResponse,
        )
        if not data or not data.item:
            return None
        return parse_rating(data.item.stats.average)

    # ------------------------------------------------------------------
    # Game details
    # ------------------------------------------------------------------

    def get_game_details(self, game_id: str) -> Optional[GameDetails]:
        try:
            item = self._get_geek_item(game_id)
            if not item:
                return None

            rating = self._get_rating(game_id)
            gallery_images = self.get_gallery_images(game_id)

            image = self._scrape_game_page_image(game_id, is_expansion=False)
            if not image and item.is_expansion:
                image = self._scrape_game_page_image(game_id, is_expansion=True)
            if not image and gallery_images:
                image = gallery_images[0]

            if item.short_description:
                description = item.short_description
            else:
                description = clean_description(item.description)

            return GameDetails(
                id=str(game_id),
                name=item.name or "",
                year_published=parse_year(item.yearpublished),
                description=description,
                image=image,
                thumbnail=first_present(item.images.square200, item.images.thumb, image),
                rating=rating,
                min_players=parse_int(item.minplayers),
                max_players=parse_int(item.maxplayers),
                min_playtime=parse_int(item.minplaytime),
                max_playtime=parse_int(item.maxplaytime),
                min_age=parse_int(item.minage),
                categories=[link.name for link in item.links.boardgamecategory if link.name],
                mechanics=[link.name for link in item.links.boardgamemechanic if link.name],
                is_expansion=item.is_expansion,
                base_game_ids=[link.objectid for link in item.links.expandsboardgame if link.objectid],
                expansion_ids=[link.objectid for link in item.links.boardgameexpansion if link.objectid],
            )
        except Exception as e:
            logger.error(f"Failed to get game details for {game_id}: {e}")
            return None

    def get_games_details(self, game_ids: List[str]) -> List[GameDetails]:
        """Fetch details one game at a time with a short pause between items."""
        results: List[GameDetails] = []
        for index, game_id in enumerate(game_ids):
            if index > 0:
                self._pause()
            details = self.get_game_details(str(game_id))
            if details:
                results.append(details)
        return results

    def _scrape_game_page_image(self, game_id: str, is_expansion: bool) -> Optional[str]:
        """Read the canonical box-art image from the rendered game page."""
        section = EXPANSION_LINK if is_expansion else "boardgame"
        url = f"{BGG_SITE_BASE}/{section}/{game_id}"
        try:
            with self.browser_factory() as browser:
                if not browser.load(url):
                    return None
                for selector in GAME_PAGE_IMAGE_SELECTORS:
                    element = browser.select_one(selector)
                    if element is not None and element.get("src"):
                        return element["src"]
                return None
        except Exception as e:
            logger.error(f"Scrape error for {game_id}: {e}")
            return None

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    def get_collection(self, username: str) -> List[CollectionItem]:
        """Read the owned collection from the rendered collection table."""
        url = f"{BGG_SITE_BASE}/collection/user/{username}?own=1&subtype=boardgame&ff=1"
        try:
            with self.browser_factory() as browser:
                if not browser.load(url, wait_css="table"):
                    logger.error(f"Collection page for {username} did not render")
                    return []
                items = []
                for row in browser.select(COLLECTION_ROW_SELECTOR):
                    item = parse_collection_row(row)
                    if item:
                        items.append(item)
        except Exception as e:
            logger.error(f"Failed to scrape collection for {username}: {e}")
            return []

        logger.info(f"Scraped {len(items)} owned items for {username}")
        return items

    # ------------------------------------------------------------------
    # Gallery images
    # ------------------------------------------------------------------

    def get_gallery_images(self, game_id: str) -> List[str]:
        """Version box art from the public XML API, same shape as the authenticated client."""
        try:
            response = self.session.get(
                f"{BGG_XMLAPI2_BASE}/thing", params={"id": game_id, "versions": 1}, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Gallery images error for {game_id}: {e}")
            return []
        if not response.ok:
            logger.warning(f"Gallery images for {game_id} returned status {response.status_code}")
            return []
        return collect_version_images(xml_items(response.text))

    # ------------------------------------------------------------------
    # Search and hot list
    # ------------------------------------------------------------------

    def search(self, query: str, limit: int = 15) -> List[SearchResult]:
        data = self._get_json(
            f"{BGG_SITE_BASE}/search/boardgame", {"q": query, "showcount": limit},
            HotnessResponse, headers={"Accept": "application/json"},
        )
        suggestions = data.items[:limit] if data else []

        if not suggestions:
            # Hotness only lists base games
            query_lower = query.lower()
            return [
                SearchResult(id=hot.id, name=hot.name, year_published=hot.year_published,
                             thumbnail=hot.thumbnail, is_expansion=False)
                for hot in self.get_hot_games()
                if query_lower in hot.name.lower()
            ][:limit]

        results = []
        for index, suggestion in enumerate(suggestions):
            if index > 0:
                self._pause()
            results.append(self._enrich_suggestion(suggestion))
        return results

    def _enrich_suggestion(self, suggestion: HotnessItem) -> SearchResult:
        detail = self._get_geek_item(suggestion.objectid, nosession=True)
        if detail is None:
            return SearchResult(
                id=suggestion.objectid,
                name=suggestion.name or "",
                year_published=parse_year(suggestion.yearpublished),
                thumbnail=suggestion.thumbnail or None,
                is_expansion=suggestion.subtype == EXPANSION_LINK,
            )
        return SearchResult(
            id=suggestion.objectid,
            name=detail.name or suggestion.name or "",
            year_published=parse_year(detail.yearpublished) or parse_year(suggestion.yearpublished),
            thumbnail=first_present(detail.images.square200, detail.images.thumb, suggestion.thumbnail),
            is_expansion=detail.is_expansion or suggestion.subtype == EXPANSION_LINK,
        )

    def get_hot_games(self) -> List[HotItem]:
        data = self._get_json(
            f"{GEEKDO_API_BASE}/hotness",
            {"objecttype": "thing", "geeklists": 0, "objectid": 0, "nosession": 1},
            HotnessResponse,
        )
        if not data:
            return []
        return [
            HotItem(
                id=item.objectid,
                name=item.name or "",
                year_published=parse_year(item.yearpublished),
                thumbnail=item.thumbnail or None,
            )
            for item in data.items
        ]


def parse_collection_row(row) -> Optional[CollectionItem]:
    """Turn one row of the rendered collection table into a CollectionItem."""
    cells = row.find_all("td")
    if len(cells) < 5:
        return None

    name_cell = cells[0]
    link = name_cell.find("a")
    if link is None:
        return None

    name = link.get_text(strip=True)
    href = link.get("href") or ""

    # Pagination and filter links share the table layout
    if not name or "»" in name or "Filters" in name or len(name) < 2:
        return None

    id_match = GAME_HREF_PATTERN.search(href)
    if not id_match:
        return None

    year_match = YEAR_PATTERN.search(name_cell.get_text(" "))
    return CollectionItem(
        id=id_match.group(1),
        name=name,
        year_published=int(year_match.group(1)) if year_match else None,
        is_expansion=EXPANSION_LINK in href,
    )
