"""
Client interface implemented by both BGG backends.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..models import CollectionItem, GameDetails, HotItem, SearchResult


class BggClient(ABC):
    """
    Abstract base class for BGG clients.

    Every operation returns normalized domain objects, or None / an empty
    list when the remote service fails. Callers never see the wire format
    and never need to know which backend is active.
    """

    client_type: str = "unknown"

    @abstractmethod
    def get_game_details(self, game_id: str) -> Optional[GameDetails]:
        """Get detailed information about a single game."""

    @abstractmethod
    def get_games_details(self, game_ids: List[str]) -> List[GameDetails]:
        """Get details for several games, preserving the input order."""

    @abstractmethod
    def get_collection(self, username: str) -> List[CollectionItem]:
        """Get a user's owned collection."""

    @abstractmethod
    def get_gallery_images(self, game_id: str) -> List[str]:
        """Get box-art image URLs for every version/edition of a game."""

    @abstractmethod
    def search(self, query: str, limit: int = 15) -> List[SearchResult]:
        """Search for games by name."""

    @abstractmethod
    def get_hot_games(self) -> List[HotItem]:
        """Get the current hot/trending games."""
