"""
BoardGameGeek protocol clients.

Two interchangeable backends implement ``BggClient``:
- ``XmlApi2Client``: the official XML API v2, requires a token
- ``GeekdoApiClient``: internal JSON endpoints plus page scraping, no token
"""

from .base import BggClient
from .geekdo import GeekdoApiClient
from .selector import ClientSelector
from .xmlapi2 import XmlApi2Client

__all__ = [
    "BggClient",
    "ClientSelector",
    "GeekdoApiClient",
    "XmlApi2Client",
]
