from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from html.parser import HTMLParser
from pathlib import Path
from urllib.parse import urlencode

from odsluchane_sync.errors import ScrapeError
from odsluchane_sync.normalize import cleanup_spaces
from odsluchane_sync.scrapers.base import Song, SongHistoryScraper, split_song_label

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Station:
    """A station from the odsluchane.eu catalog."""

    id: str
    name: str
    group_name: str


class OdsluchaneScraper(SongHistoryScraper):
    """
    Scraper for odsluchane.eu song history.

    Target: https://www.odsluchane.eu
    """

    BASE_URL = "https://www.odsluchane.eu"

    def build_source_url(self, station_id: str, date: str, from_hour: int, to_hour: int) -> str:
        params = urlencode(
            {"r": station_id, "date": date, "time_from": str(from_hour), "time_to": str(to_hour)}
        )
        return f"{self.BASE_URL}/szukaj.php?{params}"

    def scrape_songs(self, source_url: str) -> list[Song]:
        """
        Scrape one history page.

        Args:
            source_url: URL from `build_source_url`

        Returns:
            Songs in page order; rows without a HH:MM time or a label are skipped
        """
        html = self._fetch_text(source_url, "source page")
        return self.parse_history_html(html, source_url)

    @staticmethod
    def parse_history_html(html: str, source_url: str) -> list[Song]:
        parser = _HistoryTableParser()
        parser.feed(html)
        parser.close()

        songs: list[Song] = []
        for cells in parser.rows:
            if len(cells) < 2:
                continue

            time_text, cell_text, link_text = cells[0][0], cells[1][0], cells[1][1]
            raw_label = cleanup_spaces(link_text or cell_text)
            if not raw_label:
                continue

            played_at = cleanup_spaces(time_text)
            if not played_at or len(played_at) > 5 or ":" not in played_at:
                continue

            artist, title = split_song_label(raw_label)
            songs.append(
                Song(
                    played_at=played_at,
                    raw_label=raw_label,
                    artist=artist,
                    title=title,
                    source_url=source_url,
                )
            )

        logger.debug(f"Parsed {len(songs)} songs from {source_url}")
        return songs

    def fetch_stations(self, cache_path: Path | None = None) -> list[Station]:
        """
        Load the station catalog, preferring a local JSON cache.

        A missing or malformed cache is ignored and rebuilt from the site.
        """
        if cache_path is not None:
            cached = read_stations_cache(cache_path)
            if cached:
                return cached

        html = self._fetch_text(f"{self.BASE_URL}/", "station catalog")
        stations = self.parse_station_catalog(html)

        if cache_path is not None:
            write_stations_cache(cache_path, stations)
        return stations

    @staticmethod
    def parse_station_catalog(html: str) -> list[Station]:
        parser = _SelektorParser()
        parser.feed(html)
        parser.close()

        if not parser.stations_raw:
            raise ScrapeError("Failed to parse station list from odsluchane.eu page.")

        try:
            groups = json.loads(parser.stations_raw)
        except json.JSONDecodeError as e:
            raise ScrapeError(f"Failed to decode station list JSON: {e}") from e

        stations: list[Station] = []
        for group in groups:
            group_name = cleanup_spaces(str(group.get("groupName", "")))
            for station in group.get("stations") or []:
                name = cleanup_spaces(str(station.get("name", "")))
                station_id = str(station.get("id", "")).strip()
                if not name or not station_id:
                    continue
                stations.append(Station(id=station_id, name=name, group_name=group_name))

        if not stations:
            raise ScrapeError("Station list was fetched but no stations were found.")
        return stations


def read_stations_cache(path: Path) -> list[Station] | None:
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None

    if not isinstance(parsed, list):
        return None

    stations: list[Station] = []
    for item in parsed:
        if not isinstance(item, dict):
            return None
        station_id = cleanup_spaces(str(item.get("id") or ""))
        name = cleanup_spaces(str(item.get("name") or ""))
        group_name = cleanup_spaces(str(item.get("group_name") or item.get("groupName") or ""))
        if not station_id or not name or not group_name:
            return None
        stations.append(Station(id=station_id, name=name, group_name=group_name))

    return stations or None


def write_stations_cache(path: Path, stations: list[Station]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = [asdict(station) for station in stations]
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


class _HistoryTableParser(HTMLParser):
    """
    Collects ``table tbody tr`` rows.

    Each cell is stored as (cell text, text of its first ``a.title-link``).
    """

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.rows: list[list[tuple[str, str]]] = []
        self._tbody_depth = 0
        self._row: list[tuple[str, str]] | None = None
        self._cell_text: list[str] | None = None
        self._link_text: list[str] | None = None
        self._link_done = False
        self._in_link = False

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag == "tbody":
            self._tbody_depth += 1
        elif tag == "tr" and self._tbody_depth:
            self._row = []
        elif tag in ("td", "th") and self._row is not None:
            self._cell_text = []
            self._link_text = None
            self._link_done = False
        elif tag == "a" and self._cell_text is not None and not self._link_done:
            classes = (dict(attrs).get("class") or "").split()
            if "title-link" in classes:
                self._in_link = True
                self._link_text = []

    def handle_endtag(self, tag: str) -> None:
        if tag == "a" and self._in_link:
            self._in_link = False
            self._link_done = True
        elif tag in ("td", "th") and self._row is not None and self._cell_text is not None:
            if tag == "td":
                link = "".join(self._link_text) if self._link_text is not None else ""
                self._row.append(("".join(self._cell_text), link))
            self._cell_text = None
            self._link_text = None
            self._in_link = False
        elif tag == "tr" and self._row is not None:
            self.rows.append(self._row)
            self._row = None
        elif tag == "tbody" and self._tbody_depth:
            self._tbody_depth -= 1

    def handle_data(self, data: str) -> None:
        if self._cell_text is not None:
            self._cell_text.append(data)
        if self._in_link and self._link_text is not None:
            self._link_text.append(data)


class _SelektorParser(HTMLParser):
    """Grabs the ``:stations-default`` attribute of the first ``<selektor>``."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.stations_raw: str | None = None

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag == "selektor" and self.stations_raw is None:
            self.stations_raw = dict(attrs).get(":stations-default")


## Tests


def test_build_source_url():
    scraper = OdsluchaneScraper()
    url = scraper.build_source_url("40", "24-02-2026", 4, 6)
    assert url == "https://www.odsluchane.eu/szukaj.php?r=40&date=24-02-2026&time_from=4&time_to=6"


def test_parse_history_html():
    html = """
    <table>
      <thead><tr><th>Godzina</th><th>Utwór</th></tr></thead>
      <tbody>
        <tr><td>04:03</td><td><a class="title-link" href="#">Queen - Bohemian Rhapsody</a> <span>info</span></td></tr>
        <tr><td>04:09</td><td>Jingle</td></tr>
        <tr><td>reklama</td><td>Sponsor - Spot</td></tr>
        <tr><td colspan="2">brak</td></tr>
      </tbody>
    </table>
    """
    songs = OdsluchaneScraper.parse_history_html(html, "https://example.test")

    assert [(s.played_at, s.artist, s.title) for s in songs] == [
        ("04:03", "Queen", "Bohemian Rhapsody"),
        ("04:09", "", "Jingle"),
    ]
    assert songs[0].raw_label == "Queen - Bohemian Rhapsody"


def test_parse_station_catalog_decodes_entities():
    html = (
        '<selektor :stations-default="[{&quot;groupName&quot;:&quot;RMF&quot;,'
        '&quot;stations&quot;:[{&quot;id&quot;:40,&quot;name&quot;:&quot;RMF FM&quot;},'
        '{&quot;id&quot;:&quot;&quot;,&quot;name&quot;:&quot;broken&quot;}]}]"></selektor>'
    )
    stations = OdsluchaneScraper.parse_station_catalog(html)
    assert stations == [Station(id="40", name="RMF FM", group_name="RMF")]
