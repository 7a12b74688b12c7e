"""Incremental sync of a station's play history into a Spotify playlist.

Walks the planned hour windows of one day in order, scrapes each window,
matches every new song on Spotify and inserts the matches at the top of the
playlist. Windows whose end lies in the past are remembered so later runs
skip them.

Everything runs strictly sequentially: one window at a time, one song at a
time, one request in flight.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from odsluchane_sync.matching import find_track_for_song
from odsluchane_sync.normalize import build_song_key
from odsluchane_sync.scrapers.base import SongHistoryScraper
from odsluchane_sync.spotify import SpotifyClient
from odsluchane_sync.state import StateStore
from odsluchane_sync.windows import TimeWindow, WarsawClock, WindowStatus, build_windows

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, TimeWindow, WindowStatus], None]


@dataclass(frozen=True)
class SyncOptions:
    """Inputs for one sync run."""

    station_id: str
    date: str
    playlist_id: str
    from_hour: int = 0
    to_hour: int = 24
    window_hours: int = 2
    source_delay_s: float = 2.5
    spotify_delay_s: float = 0.12
    dry_run: bool = False
    force: bool = False


@dataclass
class SyncStats:
    """Counters accumulated over one run."""

    windows_planned: int = 0
    windows_processed: int = 0
    windows_skipped_already_done: int = 0
    windows_skipped_future: int = 0
    windows_not_marked_not_in_past: int = 0
    songs_scraped: int = 0
    songs_matched: int = 0
    songs_unmatched: int = 0
    songs_duplicate_skipped: int = 0
    songs_already_in_playlist_skipped: int = 0
    tracks_added: int = 0


@dataclass
class SyncResult:
    station_id: str
    date: str
    playlist_id: str
    dry_run: bool
    force: bool
    stats: SyncStats = field(default_factory=SyncStats)
    window_statuses: dict[str, WindowStatus] = field(default_factory=dict)


class SyncEngine:
    """
    Drives one sync run.

    Collaborators are injected so tests can substitute fakes for the scraper,
    Spotify, the state file, the clock and the sleep function.
    """

    def __init__(
        self,
        scraper: SongHistoryScraper,
        spotify: SpotifyClient,
        store: StateStore,
        clock: WarsawClock | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.scraper = scraper
        self.spotify = spotify
        self.store = store
        self.clock = clock or WarsawClock()
        self._sleep = sleep

    def run(self, options: SyncOptions, progress: ProgressCallback | None = None) -> SyncResult:
        """
        Sync every planned window of `options.date`.

        Any error aborts the run. Windows committed before the error stay
        remembered; the failing window is not.

        Args:
            options: Station, date, playlist and pacing settings
            progress: Optional callback receiving (completed, total, window, status)

        Returns:
            SyncResult with per-window statuses and run counters
        """
        result = SyncResult(
            station_id=options.station_id,
            date=options.date,
            playlist_id=options.playlist_id,
            dry_run=options.dry_run,
            force=options.force,
        )
        stats = result.stats

        windows = build_windows(options.from_hour, options.to_hour, options.window_hours)
        stats.windows_planned = len(windows)
        total = len(windows)

        def report(completed: int, window: TimeWindow, status: WindowStatus) -> None:
            result.window_statuses[window.key] = status
            if progress is not None:
                progress(completed, total, window, status)

        state = self.store.load()
        logger.info(f"Loading playlist track index for {options.playlist_id}")
        index = self.spotify.get_playlist_track_index(options.playlist_id)
        run_seen: set[str] = set()

        if windows:
            report(0, windows[0], WindowStatus.WAITING)

        completed = 0
        for window in windows:
            report(completed, window, WindowStatus.SCRAPING)

            if self.clock.is_window_fully_in_future(options.date, window.from_hour):
                stats.windows_skipped_future += 1
                completed += 1
                report(completed, window, WindowStatus.FUTURE)
                continue

            if not options.force and state.is_window_processed(
                options.station_id, options.date, window.key
            ):
                stats.windows_skipped_already_done += 1
                completed += 1
                report(completed, window, WindowStatus.SKIPPED)
                continue

            source_url = self.scraper.build_source_url(
                options.station_id, options.date, window.from_hour, window.to_hour
            )
            songs = self.scraper.scrape_songs(source_url)
            stats.songs_scraped += len(songs)
            logger.info(f"Window {window.label}: scraped {len(songs)} songs")

            uris_to_add: list[str] = []
            for position, song in enumerate(songs):
                song_key = build_song_key(song.artist, song.title)

                if song_key in run_seen:
                    stats.songs_duplicate_skipped += 1
                    continue

                if index.contains_song_key(song_key):
                    run_seen.add(song_key)
                    stats.songs_already_in_playlist_skipped += 1
                    continue

                if options.spotify_delay_s > 0 and position > 0:
                    self._sleep(options.spotify_delay_s)

                track = find_track_for_song(self.spotify, song)
                if track is None:
                    run_seen.add(song_key)
                    stats.songs_unmatched += 1
                    logger.info(f"No Spotify match for {song.raw_label!r}")
                    continue

                matched_key = build_song_key(" ".join(track.artists), track.name)

                if index.contains_track_id(track.id):
                    run_seen.add(song_key)
                    index.record(None, song_key, matched_key)
                    stats.songs_already_in_playlist_skipped += 1
                    continue

                uris_to_add.append(track.uri)
                run_seen.add(song_key)
                index.record(track.id, song_key, matched_key)
                stats.songs_matched += 1
                logger.debug(f"Matched {song.raw_label!r} -> {track.uri}")

            if not options.dry_run and uris_to_add:
                # Position 0 inserts stack up, so send them last-first.
                self.spotify.add_tracks_to_playlist(
                    options.playlist_id, list(reversed(uris_to_add)), position=0
                )
                stats.tracks_added += len(uris_to_add)

            if not options.dry_run:
                if self.clock.is_window_fully_in_past(options.date, window.to_hour):
                    state.mark_window_processed(options.station_id, options.date, window.key)
                    self.store.save(state)
                else:
                    stats.windows_not_marked_not_in_past += 1
                    logger.info(f"Window {window.label} is not fully in the past, not marking it")

            stats.windows_processed += 1
            completed += 1
            report(completed, window, WindowStatus.DONE)

            if options.source_delay_s > 0:
                self._sleep(options.source_delay_s)

        return result
