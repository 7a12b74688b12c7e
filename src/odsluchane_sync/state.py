"""
Persisted sync memory.

Holds the station -> playlist mapping and the set of windows already fully
scraped. Processed windows are kept in memory as `(station_id, date, window_key)`
tuples and written to disk in the nested
``{station: {date: {window: true}}}`` JSON shape.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

STATE_VERSION = 1

WindowRef = tuple[str, str, str]


@dataclass
class SyncState:
    version: int = STATE_VERSION
    station_playlists: dict[str, str] = field(default_factory=dict)
    processed_windows: set[WindowRef] = field(default_factory=set)

    def is_window_processed(self, station_id: str, date: str, window_key: str) -> bool:
        return (station_id, date, window_key) in self.processed_windows

    def mark_window_processed(self, station_id: str, date: str, window_key: str) -> None:
        self.processed_windows.add((station_id, date, window_key))

    def to_json(self) -> dict[str, Any]:
        scraped: dict[str, dict[str, dict[str, bool]]] = {}
        for station_id, date, window_key in sorted(self.processed_windows):
            scraped.setdefault(station_id, {}).setdefault(date, {})[window_key] = True
        return {
            "version": self.version,
            "stationPlaylists": dict(sorted(self.station_playlists.items())),
            "scrapedWindows": scraped,
        }

    @classmethod
    def from_json(cls, data: Any) -> SyncState:
        """
        Build state from parsed JSON, dropping anything of the wrong shape.

        Only entries explicitly set to ``true`` count as processed.
        """
        if not isinstance(data, dict):
            return cls()

        playlists_raw = data.get("stationPlaylists")
        station_playlists = {
            str(station): playlist
            for station, playlist in (playlists_raw.items() if isinstance(playlists_raw, dict) else ())
            if isinstance(playlist, str) and playlist
        }

        processed: set[WindowRef] = set()
        scraped_raw = data.get("scrapedWindows")
        if isinstance(scraped_raw, dict):
            for station_id, dates in scraped_raw.items():
                if not isinstance(dates, dict):
                    continue
                for date, windows in dates.items():
                    if not isinstance(windows, dict):
                        continue
                    for window_key, done in windows.items():
                        if done is True:
                            processed.add((str(station_id), str(date), str(window_key)))

        return cls(
            version=STATE_VERSION,
            station_playlists=station_playlists,
            processed_windows=processed,
        )


class StateStore:
    """JSON file backing for `SyncState`."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> SyncState:
        """Load state; a missing or unreadable file starts empty."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return SyncState()
        except OSError as e:
            logger.warning(f"Could not read state file {self.path}: {e}")
            return SyncState()

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring malformed state file {self.path}: {e}")
            return SyncState()

        return SyncState.from_json(data)

    def save(self, state: SyncState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(state.to_json(), indent=2, ensure_ascii=False)
        self.path.write_text(payload + "\n", encoding="utf-8")
        logger.debug(f"Saved state to {self.path}")


## Tests


def test_window_memory_roundtrips_nested_json(tmp_path):
    store = StateStore(tmp_path / "nested" / "state.json")
    state = SyncState()
    state.mark_window_processed("40", "24-02-2026", "0-2")
    state.station_playlists["40"] = "pl1"
    store.save(state)

    on_disk = json.loads(store.path.read_text(encoding="utf-8"))
    assert on_disk["scrapedWindows"] == {"40": {"24-02-2026": {"0-2": True}}}

    loaded = store.load()
    assert loaded.is_window_processed("40", "24-02-2026", "0-2")
    assert not loaded.is_window_processed("40", "24-02-2026", "2-4")
    assert loaded.station_playlists == {"40": "pl1"}


def test_load_failure_starts_empty(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    assert StateStore(path).load() == SyncState()
    assert StateStore(tmp_path / "missing.json").load() == SyncState()
