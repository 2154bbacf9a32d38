"""
Command-line interface for the BGG sync engine.

This module provides CLI commands for:
- Collection syncs and sync settings
- Queueing and monitoring scrape jobs
- Ad-hoc BGG search and hot list lookups
"""

from .main import main

__all__ = [
    "main",
]
