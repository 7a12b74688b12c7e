"""
Spotify Web API client for playlist synchronization.

Authenticates with a long-lived refresh token (obtained once through the
`auth` command), searches tracks, pages through playlist contents and
inserts tracks at a given position. Every call goes through the resilient
request layer.
"""

from __future__ import annotations

import base64
import json
import logging
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, urlencode, urlparse

import httpx

from odsluchane_sync.errors import (
    ConfigurationError,
    RemoteServiceError,
    ResponseParseError,
)
from odsluchane_sync.fetch import RequestOptions, perform_request, retry_after_hint
from odsluchane_sync.normalize import cleanup_spaces
from odsluchane_sync.playlist_index import PlaylistIndex, PlaylistItem

logger = logging.getLogger(__name__)

ADD_TRACKS_CHUNK_SIZE = 100
TOKEN_REFRESH_MARGIN_S = 30.0


@dataclass(frozen=True)
class SpotifyTrack:
    """Spotify track as returned by search."""

    id: str
    uri: str
    name: str
    artists: tuple[str, ...]
    album_type: str | None = None
    album_name: str | None = None
    popularity: int | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> SpotifyTrack:
        album = data.get("album") or {}
        return cls(
            id=data["id"],
            uri=data["uri"],
            name=data.get("name", ""),
            artists=tuple(a.get("name", "") for a in data.get("artists") or []),
            album_type=album.get("album_type"),
            album_name=album.get("name"),
            popularity=data.get("popularity"),
        )


@dataclass(frozen=True)
class SpotifyUser:
    id: str
    display_name: str | None = None


@dataclass(frozen=True)
class PlaylistMeta:
    """Playlist metadata needed to decide whether we may write to it."""

    id: str
    name: str
    owner_id: str
    owner_name: str
    collaborative: bool
    is_public: bool | None
    tracks_total: int | None = None


def can_current_user_write_playlist(current_user_id: str, owner_id: str, collaborative: bool) -> bool:
    return current_user_id == owner_id or collaborative


class SpotifyClient:
    """
    Spotify Web API client using the refresh-token flow.

    The access token is refreshed lazily whenever fewer than
    `TOKEN_REFRESH_MARGIN_S` seconds of validity remain.
    """

    BASE_URL = "https://api.spotify.com/v1"
    AUTH_URL = "https://accounts.spotify.com/api/token"

    def __init__(
        self,
        client_id: str | None,
        client_secret: str | None,
        refresh_token: str | None,
        request_options: RequestOptions | None = None,
        token_request_options: RequestOptions | None = None,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the client.

        Args:
            client_id: Spotify client ID (env: SPOTIFY_CLIENT_ID)
            client_secret: Spotify client secret (env: SPOTIFY_CLIENT_SECRET)
            refresh_token: Refresh token from the `auth` command (env: SPOTIFY_REFRESH_TOKEN)
            request_options: Retry budget for API calls (default 2 attempts, 12s)
            token_request_options: Retry budget for token refreshes
            client: Optional preconfigured httpx client (used by tests)
            sleep: Sleep function used between retries
        """
        missing = [
            name
            for name, value in (
                ("SPOTIFY_CLIENT_ID", client_id),
                ("SPOTIFY_CLIENT_SECRET", client_secret),
                ("SPOTIFY_REFRESH_TOKEN", refresh_token),
            )
            if not value or not value.strip()
        ]
        if missing:
            raise ConfigurationError(f"Missing required env var: {', '.join(missing)}")

        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.request_options = request_options or RequestOptions(max_attempts=2, timeout_s=12.0)
        self.token_request_options = token_request_options or RequestOptions()
        self._sleep = sleep
        self._access_token: str | None = None
        self._token_expires_at: float = 0.0
        self._client = client or httpx.Client(timeout=30.0)

    def _ensure_access_token(self) -> str:
        if self._access_token and time.time() + TOKEN_REFRESH_MARGIN_S < self._token_expires_at:
            return self._access_token

        credentials = f"{self.client_id}:{self.client_secret}"
        b64_credentials = base64.b64encode(credentials.encode()).decode()

        response = perform_request(
            self._client,
            "POST",
            self.AUTH_URL,
            options=self.token_request_options,
            sleep=self._sleep,
            headers={
                "Authorization": f"Basic {b64_credentials}",
                "Content-Type": "application/x-www-form-urlencoded",
            },
            data={"grant_type": "refresh_token", "refresh_token": self.refresh_token},
        )

        if not response.is_success:
            hint = retry_after_hint(response)
            hint_suffix = f" ({hint})" if hint else ""
            raise RemoteServiceError(
                f"Failed to refresh Spotify access token ({response.status_code}){hint_suffix}: "
                f"{response.text[:400]}",
                response.status_code,
            )

        data = self._decode_json(response, "POST", "/api/token")
        try:
            token = data["access_token"]
            expires_in = float(data["expires_in"])
        except (KeyError, TypeError, ValueError) as e:
            raise ResponseParseError(f"Unexpected Spotify token response: {e}") from e

        self._access_token = token
        self._token_expires_at = time.time() + expires_in
        logger.debug(f"Spotify access token refreshed, expires in {expires_in:.0f}s")
        return token

    def _request(self, method: str, url: str, body: dict[str, Any] | None = None) -> Any:
        """Make an authenticated API request and decode its JSON body."""
        token = self._ensure_access_token()
        if not url.startswith("http"):
            url = f"{self.BASE_URL}/{url.lstrip('/')}"
        endpoint = urlparse(url).path

        response = perform_request(
            self._client,
            method,
            url,
            options=self.request_options,
            sleep=self._sleep,
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            json=body,
        )

        logger.debug(f"Spotify API {method} {endpoint} -> {response.status_code}")
        rate_limit = self._rate_limit_summary(response)
        if rate_limit:
            logger.debug(f"Spotify quota headers: {rate_limit}")

        if not response.is_success:
            hint = retry_after_hint(response)
            hint_suffix = f" ({hint})" if hint else ""
            raise RemoteServiceError(
                f"Spotify API request failed ({response.status_code}) {method} {endpoint}: "
                f"{response.text[:400]}{hint_suffix}",
                response.status_code,
            )

        if response.status_code == 204 or not response.content:
            return None

        return self._decode_json(response, method, endpoint)

    @staticmethod
    def _decode_json(response: httpx.Response, method: str, endpoint: str) -> Any:
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ResponseParseError(
                f"Spotify API response parsing failed {method} {endpoint}: {e}"
            ) from e

    @staticmethod
    def _rate_limit_summary(response: httpx.Response) -> str:
        parts = [
            f"{name}={value}"
            for name, value in response.headers.items()
            if name.lower().startswith("x-ratelimit") or name.lower() == "retry-after"
        ]
        return ", ".join(parts)

    def search_tracks(self, query: str, limit: int = 10) -> list[SpotifyTrack]:
        """
        Search for tracks.

        Args:
            query: Spotify search query (supports `track:` and `artist:` filters)
            limit: Max results

        Returns:
            List of SpotifyTrack objects (possibly empty)
        """
        params = urlencode({"q": query, "type": "track", "limit": str(limit)})
        data = self._request("GET", f"search?{params}")
        try:
            items = data["tracks"]["items"]
            return [SpotifyTrack.from_api(item) for item in items if item]
        except (KeyError, TypeError) as e:
            raise ResponseParseError(f"Unexpected Spotify search response: {e}") from e

    def iter_playlist_pages(self, playlist_id: str) -> Iterator[list[PlaylistItem]]:
        """Yield pages of playlist membership until the `next` link runs out."""
        next_url: str | None = f"playlists/{quote(playlist_id, safe='')}/items?limit=50&offset=0"

        while next_url:
            data = self._request("GET", next_url)
            try:
                raw_items = data["items"]
                next_url = data.get("next")
            except (KeyError, TypeError) as e:
                raise ResponseParseError(f"Unexpected Spotify playlist page: {e}") from e

            page: list[PlaylistItem] = []
            for raw in raw_items:
                track = (raw or {}).get("item") or (raw or {}).get("track")
                if not track:
                    continue
                page.append(
                    PlaylistItem(
                        track_id=track.get("id"),
                        artist_names=tuple(
                            a.get("name", "") for a in track.get("artists") or []
                        ),
                        title=track.get("name"),
                    )
                )
            yield page

    def get_playlist_track_index(self, playlist_id: str) -> PlaylistIndex:
        return PlaylistIndex.from_pages(self.iter_playlist_pages(playlist_id))

    def add_tracks_to_playlist(
        self, playlist_id: str, uris: list[str], position: int | None = None
    ) -> None:
        """
        Add tracks in chunks of 100.

        When inserting at position 0 the chunks are sent last-first so the
        final playlist order matches `uris`.
        """
        chunks = [
            uris[i : i + ADD_TRACKS_CHUNK_SIZE] for i in range(0, len(uris), ADD_TRACKS_CHUNK_SIZE)
        ]
        if position == 0:
            chunks.reverse()

        for chunk in chunks:
            payload: dict[str, Any] = {"uris": chunk}
            if position is not None:
                payload["position"] = position
            self._request("POST", f"playlists/{quote(playlist_id, safe='')}/items", payload)
        logger.info(f"Added {len(uris)} tracks to playlist {playlist_id}")

    def get_current_user(self) -> SpotifyUser:
        data = self._request("GET", "me")
        return SpotifyUser(id=data["id"], display_name=data.get("display_name"))

    def get_playlist_meta(self, playlist_id: str) -> PlaylistMeta:
        fields = quote("id,name,public,collaborative,owner(id,display_name)", safe="")
        data = self._request("GET", f"playlists/{quote(playlist_id, safe='')}?fields={fields}")
        return self._playlist_from_api(data)

    def get_user_playlists(self) -> list[PlaylistMeta]:
        """List every playlist visible to the current user."""
        playlists: list[PlaylistMeta] = []
        next_url: str | None = "me/playlists?limit=50&offset=0"

        while next_url:
            data = self._request("GET", next_url)
            for item in data.get("items") or []:
                playlists.append(self._playlist_from_api(item))
            next_url = data.get("next")

        return playlists

    @staticmethod
    def _playlist_from_api(data: dict[str, Any]) -> PlaylistMeta:
        owner = data.get("owner") or {}
        owner_id = owner.get("id") or ""
        tracks = data.get("tracks") or {}
        return PlaylistMeta(
            id=data["id"],
            name=cleanup_spaces(data.get("name") or ""),
            owner_id=owner_id,
            owner_name=cleanup_spaces(owner.get("display_name") or owner_id or "unknown"),
            collaborative=bool(data.get("collaborative")),
            is_public=data.get("public"),
            tracks_total=tracks.get("total"),
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> SpotifyClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


## Tests


def test_spotify_track_from_api():
    track = SpotifyTrack.from_api(
        {
            "id": "abc123",
            "uri": "spotify:track:abc123",
            "name": "Halo",
            "artists": [{"name": "Beyoncé"}],
            "album": {"album_type": "album", "name": "I Am... Sasha Fierce"},
            "popularity": 75,
        }
    )
    assert track.artists == ("Beyoncé",)
    assert track.album_type == "album"
    assert track.popularity == 75


def test_can_current_user_write_playlist():
    assert can_current_user_write_playlist("me", "me", False)
    assert can_current_user_write_playlist("me", "other", True)
    assert not can_current_user_write_playlist("me", "other", False)


def test_missing_credentials_raise():
    import pytest

    with pytest.raises(ConfigurationError, match="SPOTIFY_REFRESH_TOKEN"):
        SpotifyClient("id", "secret", None)
