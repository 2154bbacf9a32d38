"""
Database module for the local game catalog.

This module handles:
- Database schema creation and migration
- Game records, expansion relationships and collection settings
- Durable scrape job storage
"""

from .catalog import CatalogStore
from .jobs import JobStore
from .models import create_database

__all__ = [
    "CatalogStore",
    "JobStore",
    "create_database",
]
