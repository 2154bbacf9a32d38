"""
Backend selection for the BGG client.
"""

import logging
import os
import threading
from typing import Callable, Optional

from .base import BggClient
from .geekdo import GeekdoApiClient
from .xmlapi2 import XmlApi2Client

logger = logging.getLogger(__name__)


class ClientSelector:
    """
    Picks the BGG backend once per process and caches it.

    With a token the authenticated XML API v2 client is used, otherwise the
    unauthenticated Geekdo client. The token is read when the first client
    is built, so ``reset()`` picks up a changed environment.
    """

    def __init__(self, token: Optional[str] = None,
                 xmlapi2_factory: Callable[[str], BggClient] = XmlApi2Client,
                 geekdo_factory: Callable[[], BggClient] = GeekdoApiClient):
        """
        Args:
            token: Explicit token; when None the BGG_TOKEN environment variable is used
            xmlapi2_factory: Builds the authenticated client from a token
            geekdo_factory: Builds the fallback client
        """
        self._token = token
        self._xmlapi2_factory = xmlapi2_factory
        self._geekdo_factory = geekdo_factory
        self._client: Optional[BggClient] = None
        self._lock = threading.Lock()

    @property
    def token(self) -> Optional[str]:
        if self._token is not None:
            return self._token or None
        return os.environ.get("BGG_TOKEN") or None

    def get_client(self) -> BggClient:
        with self._lock:
            if self._client is None:
                token = self.token
                if token:
                    logger.info("Using XML API v2 client (authenticated)")
                    self._client = self._xmlapi2_factory(token)
                else:
                    logger.info("Using Geekdo API client (unauthenticated)")
                    self._client = self._geekdo_factory()
            return self._client

    def reset(self) -> None:
        """Drop the cached client; the next call builds a new one."""
        with self._lock:
            self._client = None

    def is_configured(self) -> bool:
        """Whether a token is available for the authenticated backend."""
        return self.token is not None

    @property
    def client_type(self) -> Optional[str]:
        """Identifier of the cached backend, or None before first use."""
        client = self._client
        return client.client_type if client else None
