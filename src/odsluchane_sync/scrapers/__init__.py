from __future__ import annotations

"""
Song-history scrapers.

Provides the scraping infrastructure for station play history.
"""

__all__ = [
    "Song",
    "SongHistoryScraper",
    "OdsluchaneScraper",
    "Station",
    "split_song_label",
]

from odsluchane_sync.scrapers.base import Song, SongHistoryScraper, split_song_label
from odsluchane_sync.scrapers.odsluchane import OdsluchaneScraper, Station
