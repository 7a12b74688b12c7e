"""Candidate disambiguation for scraped songs.

Scores Spotify search results against a scraped song and picks the best one,
preferring album editions over near-equivalent singles.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from odsluchane_sync.errors import EmptyCandidatesError
from odsluchane_sync.normalize import normalize
from odsluchane_sync.scrapers.base import Song
from odsluchane_sync.spotify import SpotifyClient, SpotifyTrack

logger = logging.getLogger(__name__)

TITLE_EXACT_SCORE = 120
TITLE_PARTIAL_SCORE = 75
ARTIST_MATCH_SCORE = 100
ALBUM_BONUS = 28
SINGLE_PENALTY = -12
POPULARITY_DIVISOR = 15
ALBUM_PREFERENCE_MARGIN = 12


@dataclass(frozen=True)
class ScoredCandidate:
    track: SpotifyTrack
    score: float


def build_search_query(song: Song) -> str:
    """Build a filtered search query, falling back to the raw label."""
    parts: list[str] = []
    if song.title:
        parts.append(f"track:{song.title}")
    if song.artist:
        parts.append(f"artist:{song.artist}")
    return " ".join(parts).strip() or song.raw_label


def score_candidate(expected_title: str, expected_artist: str, track: SpotifyTrack) -> float:
    """
    Score one candidate against normalized expectations.

    Title equality (or containment either way), artist agreement, release
    type and popularity all contribute; see the module constants.
    """
    track_title = normalize(track.name)
    track_artists = [a for a in (normalize(name) for name in track.artists) if a]

    score = 0.0

    if track_title == expected_title:
        score += TITLE_EXACT_SCORE
    elif expected_title in track_title or track_title in expected_title:
        score += TITLE_PARTIAL_SCORE

    if expected_artist and any(
        artist == expected_artist or expected_artist in artist or artist in expected_artist
        for artist in track_artists
    ):
        score += ARTIST_MATCH_SCORE

    if track.album_type == "album":
        score += ALBUM_BONUS
    elif track.album_type == "single":
        score += SINGLE_PENALTY

    score += min(track.popularity or 0, 100) / POPULARITY_DIVISOR
    return score


def rank_candidates(song: Song, candidates: list[SpotifyTrack]) -> list[ScoredCandidate]:
    """Score every candidate and sort by descending score (stable for ties)."""
    expected_title = normalize(song.title)
    expected_artist = normalize(song.artist)

    scored = [
        ScoredCandidate(track, score_candidate(expected_title, expected_artist, track))
        for track in candidates
    ]
    return sorted(scored, key=lambda c: c.score, reverse=True)


def pick_best(ranked: list[ScoredCandidate]) -> SpotifyTrack:
    """
    Pick the winner from an already ranked list.

    A single on top yields to the best album candidate when the album scores
    within `ALBUM_PREFERENCE_MARGIN` points of it.
    """
    if not ranked:
        raise EmptyCandidatesError("No candidate tracks available to score.")

    best = ranked[0]
    best_album = next((c for c in ranked if c.track.album_type == "album"), None)

    if (
        best_album is not None
        and best.track.album_type == "single"
        and best_album.score >= best.score - ALBUM_PREFERENCE_MARGIN
    ):
        logger.debug(
            f"Preferring album '{best_album.track.album_name}' ({best_album.score:.1f}) "
            f"over single ({best.score:.1f})"
        )
        return best_album.track

    return best.track


def choose_best_track(song: Song, candidates: list[SpotifyTrack]) -> SpotifyTrack:
    """
    Choose the best search candidate for a scraped song.

    Never returns None: there is no minimum score, the caller decides
    "unmatched" only from an empty search result.

    Raises:
        EmptyCandidatesError: If `candidates` is empty
    """
    if not candidates:
        raise EmptyCandidatesError("No candidate tracks available to score.")
    return pick_best(rank_candidates(song, candidates))


def find_track_for_song(spotify: SpotifyClient, song: Song, limit: int = 10) -> SpotifyTrack | None:
    """
    Search Spotify for a scraped song and pick the best candidate.

    Returns:
        The chosen track, or None when the search came back empty
    """
    query = build_search_query(song)
    candidates = spotify.search_tracks(query, limit)
    if not candidates:
        logger.debug(f"No Spotify candidates for query {query!r}")
        return None
    return choose_best_track(song, candidates)


## Tests


def _song(artist: str, title: str) -> Song:
    return Song("12:00", f"{artist} - {title}", artist, title, "https://example.test")


def test_build_search_query():
    assert build_search_query(_song("Queen", "Bohemian Rhapsody")) == (
        "track:Bohemian Rhapsody artist:Queen"
    )
    assert build_search_query(Song("12:00", "Jingle", "", "Jingle", "u")) == "track:Jingle"
    assert build_search_query(Song("12:00", "Raw label", "", "", "u")) == "Raw label"


def test_score_candidate_weights():
    track = SpotifyTrack("1", "spotify:track:1", "Halo", ("Beyoncé",), "album", "A", 90)
    assert score_candidate("halo", "beyonce", track) == 120 + 100 + 28 + 6


def test_unknown_artist_gets_no_artist_points():
    track = SpotifyTrack("1", "spotify:track:1", "Halo", ("Beyoncé",), "compilation", None, 0)
    assert score_candidate("halo", "", track) == 120
