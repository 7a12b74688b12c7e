"""Tests for SpotifyClient with HTTP mocking."""

from __future__ import annotations

import json
from urllib.parse import parse_qs, urlparse

import pytest

from odsluchane_sync.errors import RemoteServiceError, ResponseParseError
from odsluchane_sync.spotify import PlaylistMeta, SpotifyClient

TOKEN_URL = "https://accounts.spotify.com/api/token"
API = "https://api.spotify.com/v1"


def _track(track_id: str, name: str, artist: str, album_type: str = "album") -> dict:
    return {
        "id": track_id,
        "uri": f"spotify:track:{track_id}",
        "name": name,
        "artists": [{"name": artist}],
        "album": {"album_type": album_type, "name": f"{name} album"},
        "popularity": 60,
    }


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def spotify(sleeps):
    with SpotifyClient("client-id", "client-secret", "refresh-token", sleep=sleeps.append) as client:
        yield client


@pytest.fixture
def token(httpx_mock):
    httpx_mock.add_response(
        method="POST", url=TOKEN_URL, json={"access_token": "tok", "expires_in": 3600}
    )


class TestSearch:
    def test_search_tracks_sends_filtered_query(self, spotify, token, httpx_mock):
        httpx_mock.add_response(
            method="GET",
            json={"tracks": {"items": [_track("t1", "Halo", "Beyoncé"), None]}},
        )

        tracks = spotify.search_tracks("track:Halo artist:Beyoncé", limit=5)

        assert [t.id for t in tracks] == ["t1"]
        assert tracks[0].artists == ("Beyoncé",)

        token_request, search_request = httpx_mock.get_requests()
        assert token_request.headers["Authorization"].startswith("Basic ")
        assert parse_qs(token_request.content.decode()) == {
            "grant_type": ["refresh_token"],
            "refresh_token": ["refresh-token"],
        }
        assert search_request.headers["Authorization"] == "Bearer tok"
        assert parse_qs(urlparse(str(search_request.url)).query) == {
            "q": ["track:Halo artist:Beyoncé"],
            "type": ["track"],
            "limit": ["5"],
        }

    def test_access_token_is_reused(self, spotify, token, httpx_mock):
        httpx_mock.add_response(method="GET", json={"tracks": {"items": []}})
        httpx_mock.add_response(method="GET", json={"tracks": {"items": []}})

        spotify.search_tracks("a")
        spotify.search_tracks("b")

        token_requests = [r for r in httpx_mock.get_requests() if str(r.url) == TOKEN_URL]
        assert len(token_requests) == 1

    def test_unexpected_search_shape_raises(self, spotify, token, httpx_mock):
        httpx_mock.add_response(method="GET", json={"albums": {}})

        with pytest.raises(ResponseParseError):
            spotify.search_tracks("a")


class TestPlaylist:
    def test_playlist_index_follows_next_links(self, spotify, token, httpx_mock):
        httpx_mock.add_response(
            method="GET",
            url=f"{API}/playlists/pl1/items?limit=50&offset=0",
            json={
                "items": [
                    {"item": _track("a", "Bohemian Rhapsody", "Queen")},
                    {"track": None},
                ],
                "next": f"{API}/playlists/pl1/items?limit=50&offset=50",
            },
        )
        httpx_mock.add_response(
            method="GET",
            url=f"{API}/playlists/pl1/items?limit=50&offset=50",
            json={"items": [{"track": _track("b", "Levitating", "Dua Lipa")}], "next": None},
        )

        index = spotify.get_playlist_track_index("pl1")

        assert index.track_ids == {"a", "b"}
        assert index.contains_song_key("queen|bohemian rhapsody")
        assert index.contains_song_key("dua lipa|levitating")

    def test_add_tracks_at_top_sends_chunks_last_first(self, spotify, token, httpx_mock):
        uris = [f"spotify:track:{n}" for n in range(150)]
        httpx_mock.add_response(
            method="POST", url=f"{API}/playlists/pl1/items", json={"snapshot_id": "s1"}
        )
        httpx_mock.add_response(
            method="POST", url=f"{API}/playlists/pl1/items", json={"snapshot_id": "s2"}
        )

        spotify.add_tracks_to_playlist("pl1", uris, position=0)

        bodies = [
            json.loads(r.content) for r in httpx_mock.get_requests() if str(r.url) != TOKEN_URL
        ]
        assert bodies == [
            {"uris": uris[100:], "position": 0},
            {"uris": uris[:100], "position": 0},
        ]

    def test_playlist_meta(self, spotify, token, httpx_mock):
        httpx_mock.add_response(
            method="GET",
            json={
                "id": "pl1",
                "name": "  Radio   mix ",
                "public": False,
                "collaborative": True,
                "owner": {"id": "owner1", "display_name": None},
            },
        )

        meta = spotify.get_playlist_meta("pl1")

        assert meta == PlaylistMeta(
            id="pl1",
            name="Radio mix",
            owner_id="owner1",
            owner_name="owner1",
            collaborative=True,
            is_public=False,
        )


class TestErrors:
    def test_api_error_carries_status(self, spotify, token, httpx_mock):
        httpx_mock.add_response(method="GET", status_code=403, text="Forbidden")

        with pytest.raises(RemoteServiceError) as exc_info:
            spotify.get_current_user()

        assert exc_info.value.status_code == 403
        assert "GET /v1/me" in str(exc_info.value)

    def test_long_rate_limit_is_reported_with_hint(self, spotify, token, sleeps, httpx_mock):
        httpx_mock.add_response(method="GET", status_code=429, headers={"Retry-After": "60"})

        with pytest.raises(RemoteServiceError, match=r"retry-after: 60s or ~1m 0s") as exc_info:
            spotify.search_tracks("a")

        assert exc_info.value.status_code == 429
        assert sleeps == []

    def test_token_refresh_failure(self, spotify, httpx_mock):
        httpx_mock.add_response(
            method="POST", url=TOKEN_URL, status_code=400, json={"error": "invalid_grant"}
        )

        with pytest.raises(RemoteServiceError, match="Failed to refresh Spotify access token"):
            spotify.search_tracks("a")
