__all__ = (
    "Config",
    "SyncError",
    # Normalization and matching
    "normalize",
    "build_song_key",
    "choose_best_track",
    # Planning and state
    "TimeWindow",
    "build_windows",
    "WarsawClock",
    "PlaylistIndex",
    "StateStore",
    "SyncState",
    # Sync
    "SyncEngine",
    "SyncOptions",
    "SyncResult",
    "SyncStats",
    # Collaborators
    "OdsluchaneScraper",
    "SpotifyClient",
)

from odsluchane_sync.config import Config
from odsluchane_sync.errors import SyncError
from odsluchane_sync.matching import choose_best_track
from odsluchane_sync.normalize import build_song_key, normalize
from odsluchane_sync.playlist_index import PlaylistIndex
from odsluchane_sync.scrapers.odsluchane import OdsluchaneScraper
from odsluchane_sync.spotify import SpotifyClient
from odsluchane_sync.state import StateStore, SyncState
from odsluchane_sync.sync import SyncEngine, SyncOptions, SyncResult, SyncStats
from odsluchane_sync.windows import TimeWindow, WarsawClock, build_windows
