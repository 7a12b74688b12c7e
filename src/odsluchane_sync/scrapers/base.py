from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from odsluchane_sync.errors import ScrapeError
from odsluchane_sync.fetch import RequestOptions, perform_request

logger = logging.getLogger(__name__)

USER_AGENT = "odsluchane-sync/1.0 (+respectful scraper)"

LABEL_SEPARATORS = (" - ", " – ", " — ")


@dataclass(frozen=True)
class Song:
    """A single play scraped from a station's history page."""

    played_at: str
    raw_label: str
    artist: str
    title: str
    source_url: str


def split_song_label(raw_label: str) -> tuple[str, str]:
    """
    Split an "Artist - Title" label.

    Separators are tried in order; the first one found past the start of the
    label wins. Labels without a separator yield an empty artist.
    """
    for separator in LABEL_SEPARATORS:
        index = raw_label.find(separator)
        if index > 0:
            return raw_label[:index].strip(), raw_label[index + len(separator) :].strip()
    return "", raw_label.strip()


class SongHistoryScraper(ABC):
    """
    Base class for song-history sources.

    Provides the shared HTTP client and the fetch helper; subclasses know how
    to address one window and parse the page into `Song` rows.
    """

    def __init__(
        self,
        request_options: RequestOptions | None = None,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.request_options = request_options or RequestOptions()
        self._sleep = sleep
        self._client = client

    @property
    def client(self) -> httpx.Client:
        """Lazy-initialized HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                timeout=30.0,
                follow_redirects=True,
                headers={
                    "User-Agent": USER_AGENT,
                    "Accept": "text/html,application/xhtml+xml",
                },
            )
        return self._client

    def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> SongHistoryScraper:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # pyright: ignore[reportMissingParameterType, reportUnknownParameterType]
        self.close()

    @abstractmethod
    def build_source_url(self, station_id: str, date: str, from_hour: int, to_hour: int) -> str:
        """URL of the history page for one station, day and hour window."""
        ...

    @abstractmethod
    def scrape_songs(self, source_url: str) -> list[Song]:
        """
        Scrape all plays listed on one history page.

        Returns:
            Songs in the order the source lists them (possibly empty)
        """
        ...

    def _fetch_text(self, url: str, what: str) -> str:
        """Fetch a page through the retry layer; non-2xx answers raise ScrapeError."""
        response = perform_request(
            self.client, "GET", url, options=self.request_options, sleep=self._sleep
        )
        if not response.is_success:
            raise ScrapeError(f"Failed to fetch {what} ({response.status_code}): {url}")
        return response.text


## Tests


def test_split_song_label():
    assert split_song_label("Queen - Bohemian Rhapsody") == ("Queen", "Bohemian Rhapsody")
    assert split_song_label("Dawid Podsiadło – Małomiasteczkowy") == (
        "Dawid Podsiadło",
        "Małomiasteczkowy",
    )
    assert split_song_label("Jingle") == ("", "Jingle")
    assert split_song_label(" - Untitled") == ("", "- Untitled")
