"""Tests for the incremental sync orchestrator using in-memory fakes."""

from __future__ import annotations

import json

import pytest

from odsluchane_sync.errors import RemoteServiceError
from odsluchane_sync.playlist_index import PlaylistItem
from odsluchane_sync.sync import SyncEngine, SyncOptions
from odsluchane_sync.windows import WindowStatus

from sync_fakes import SYNC_DATE, FakeScraper, FakeSpotify, make_song, make_track

QUEEN_QUERY = "track:Bohemian Rhapsody artist:Queen"
DUA_QUERY = "track:Levitating artist:Dua Lipa"


def _history() -> dict[tuple[int, int], list]:
    return {
        (0, 2): [
            make_song("Queen - Bohemian Rhapsody", "00:03"),
            make_song("Dua Lipa - Levitating", "00:09"),
        ],
        (2, 4): [
            make_song("Queen - Bohemian Rhapsody (Live)", "02:15"),
            make_song("Adele - Hello", "02:21"),
        ],
    }


def _catalog() -> dict[str, list]:
    return {
        QUEEN_QUERY: [make_track("q1", "Bohemian Rhapsody", ("Queen",))],
        DUA_QUERY: [make_track("d1", "Levitating", ("Dua Lipa",))],
    }


def _options(**overrides) -> SyncOptions:
    values = dict(
        station_id="40",
        date=SYNC_DATE,
        playlist_id="pl1",
        from_hour=0,
        to_hour=4,
        window_hours=2,
        source_delay_s=0,
        spotify_delay_s=0,
    )
    values.update(overrides)
    return SyncOptions(**values)


class TestSyncRun:
    """A complete run over a day that lies entirely in the past."""

    @pytest.fixture
    def engine(self, state_store, warsaw_clock, no_sleep):
        scraper = FakeScraper(_history())
        spotify = FakeSpotify(_catalog())
        return SyncEngine(
            scraper, spotify, state_store, warsaw_clock("2026-02-25T09:00"), no_sleep.append
        )

    def test_counts_and_adds_newest_first(self, engine):
        result = engine.run(_options())
        stats = result.stats

        assert stats.windows_planned == 2
        assert stats.windows_processed == 2
        assert stats.songs_scraped == 4
        assert stats.songs_matched == 2
        assert stats.songs_unmatched == 1
        assert stats.songs_duplicate_skipped == 1
        assert stats.tracks_added == 2

        # Accumulated q1, d1; inserted at the top in reverse so q1 ends up first
        assert engine.spotify.add_calls == [("pl1", ["spotify:track:d1", "spotify:track:q1"], 0)]

    def test_within_run_duplicate_is_never_searched_again(self, engine):
        engine.run(_options())

        assert engine.spotify.searches.count(QUEEN_QUERY) == 1
        assert engine.spotify.added_uris.count("spotify:track:q1") == 1

    def test_second_run_skips_every_window(self, engine):
        engine.run(_options())
        urls_after_first = list(engine.scraper.scraped_urls)

        second = engine.run(_options())

        assert second.stats.windows_skipped_already_done == 2
        assert second.stats.windows_processed == 0
        assert set(second.window_statuses.values()) == {WindowStatus.SKIPPED}
        assert engine.scraper.scraped_urls == urls_after_first

    def test_memory_persisted_in_nested_shape(self, engine, state_store):
        engine.run(_options())

        on_disk = json.loads(state_store.path.read_text(encoding="utf-8"))
        assert on_disk["scrapedWindows"] == {"40": {SYNC_DATE: {"0-2": True, "2-4": True}}}

    def test_force_rescrapes_without_clearing_memory(self, engine, state_store):
        engine.run(_options())

        forced = engine.run(_options(force=True))

        assert forced.stats.windows_processed == 2
        assert forced.stats.windows_skipped_already_done == 0
        assert state_store.load().is_window_processed("40", SYNC_DATE, "0-2")


def test_dry_run_counts_but_never_mutates(state_store, warsaw_clock, no_sleep):
    spotify = FakeSpotify(_catalog())
    engine = SyncEngine(
        FakeScraper(_history()),
        spotify,
        state_store,
        warsaw_clock("2026-02-25T09:00"),
        no_sleep.append,
    )

    result = engine.run(_options(dry_run=True))

    assert result.stats.songs_matched == 2
    assert result.stats.windows_processed == 2
    assert result.stats.tracks_added == 0
    assert result.stats.windows_not_marked_not_in_past == 0
    assert spotify.add_calls == []
    assert not state_store.path.exists()


def test_straddling_window_is_processed_but_not_marked(state_store, warsaw_clock, no_sleep):
    engine = SyncEngine(
        FakeScraper(_history()),
        FakeSpotify(_catalog()),
        state_store,
        warsaw_clock("2026-02-24T03:30"),
        no_sleep.append,
    )

    result = engine.run(_options(to_hour=6))

    assert result.window_statuses == {
        "0-2": WindowStatus.DONE,
        "2-4": WindowStatus.DONE,
        "4-6": WindowStatus.FUTURE,
    }
    assert result.stats.windows_skipped_future == 1
    assert result.stats.windows_not_marked_not_in_past == 1

    saved = state_store.load()
    assert saved.is_window_processed("40", SYNC_DATE, "0-2")
    assert not saved.is_window_processed("40", SYNC_DATE, "2-4")
    assert not saved.is_window_processed("40", SYNC_DATE, "4-6")


def test_error_keeps_memory_of_committed_windows_only(state_store, warsaw_clock, no_sleep):
    scraper = FakeScraper(_history())
    scraper.fail_on.add((2, 4))
    engine = SyncEngine(
        scraper, FakeSpotify(_catalog()), state_store, warsaw_clock("2026-02-25T09:00"), no_sleep.append
    )

    with pytest.raises(RemoteServiceError):
        engine.run(_options())

    saved = state_store.load()
    assert saved.processed_windows == {("40", SYNC_DATE, "0-2")}


def test_existing_playlist_content_is_skipped(state_store, warsaw_clock, no_sleep):
    existing = [
        PlaylistItem("q0", ("Queen",), "Bohemian Rhapsody - Remastered 2011"),
        PlaylistItem("q-live", ("Queen",), "Bohemian Rhapsody [Live]"),
        PlaylistItem("d1", ("Dua Lipa", "DaBaby"), "Levitating"),
    ]
    spotify = FakeSpotify(_catalog(), existing=existing)
    engine = SyncEngine(
        FakeScraper({(0, 2): _history()[(0, 2)]}),
        spotify,
        state_store,
        warsaw_clock("2026-02-25T09:00"),
        no_sleep.append,
    )

    result = engine.run(_options(to_hour=2))

    # Queen is known by song key, so it is never searched
    assert QUEEN_QUERY not in spotify.searches
    # Dua Lipa is searched, but the matched track id is already in the playlist
    assert DUA_QUERY in spotify.searches
    assert result.stats.songs_already_in_playlist_skipped == 2
    assert result.stats.songs_matched == 0
    assert spotify.add_calls == []


def test_pacing_between_searches_and_windows(state_store, warsaw_clock, no_sleep):
    engine = SyncEngine(
        FakeScraper({(0, 2): _history()[(0, 2)]}),
        FakeSpotify(_catalog()),
        state_store,
        warsaw_clock("2026-02-25T09:00"),
        no_sleep.append,
    )

    engine.run(_options(to_hour=2, source_delay_s=2.5, spotify_delay_s=0.12))

    # First song in a window is searched immediately
    assert no_sleep == [0.12, 2.5]


def test_progress_reports_each_window(state_store, warsaw_clock, no_sleep):
    seen: list[tuple[int, int, str, WindowStatus]] = []
    engine = SyncEngine(
        FakeScraper(_history()),
        FakeSpotify(_catalog()),
        state_store,
        warsaw_clock("2026-02-24T03:30"),
        no_sleep.append,
    )

    engine.run(
        _options(from_hour=2, to_hour=6),
        progress=lambda done, total, window, status: seen.append((done, total, window.key, status)),
    )

    assert seen == [
        (0, 2, "2-4", WindowStatus.WAITING),
        (0, 2, "2-4", WindowStatus.SCRAPING),
        (1, 2, "2-4", WindowStatus.DONE),
        (1, 2, "4-6", WindowStatus.SCRAPING),
        (2, 2, "4-6", WindowStatus.FUTURE),
    ]


def _engine(history, catalog, state_store, warsaw_clock, no_sleep) -> SyncEngine:
    return SyncEngine(
        FakeScraper(history),
        FakeSpotify(catalog),
        state_store,
        warsaw_clock("2026-02-25T09:00"),
        no_sleep.append,
    )


def test_repeat_of_unmatched_song_is_not_searched_again(state_store, warsaw_clock, no_sleep):
    history = {
        (0, 2): [make_song("Nobody - Nothing", "00:10")],
        (2, 4): [make_song("NOBODY - Nothing (Live)", "02:40")],
    }
    engine = _engine(history, {}, state_store, warsaw_clock, no_sleep)

    result = engine.run(_options())

    assert engine.spotify.searches == ["track:Nothing artist:Nobody"]
    assert result.stats.songs_unmatched == 1
    assert result.stats.songs_duplicate_skipped == 1
    assert engine.spotify.add_calls == []


def test_song_matching_an_earlier_tracks_own_key_is_skipped(state_store, warsaw_clock, no_sleep):
    history = {
        (0, 2): [make_song("DL - Levitating", "00:10")],
        (2, 4): [make_song("Dua Lipa - Levitating", "02:40")],
    }
    catalog = {"track:Levitating artist:DL": [make_track("d1", "Levitating", ("Dua Lipa",))]}
    engine = _engine(history, catalog, state_store, warsaw_clock, no_sleep)

    result = engine.run(_options())

    # "dua lipa|levitating" was recorded from the matched track, not from the scraped label
    assert engine.spotify.searches == ["track:Levitating artist:DL"]
    assert result.stats.songs_matched == 1
    assert result.stats.songs_already_in_playlist_skipped == 1
    assert engine.spotify.added_uris == ["spotify:track:d1"]
