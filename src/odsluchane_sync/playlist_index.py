from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from odsluchane_sync.normalize import build_song_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlaylistItem:
    """One track already present in the destination playlist."""

    track_id: str | None
    artist_names: tuple[str, ...]
    title: str | None

    @property
    def song_key(self) -> str:
        return build_song_key(" ".join(self.artist_names), self.title or "")


@dataclass
class PlaylistIndex:
    """
    Duplicate-suppression index for one destination playlist.

    Seeded from the playlist's current contents and then extended with every
    track accepted during the run, so later songs (in the same or later
    windows) are recognized as already present.
    """

    track_ids: set[str] = field(default_factory=set)
    song_keys: set[str] = field(default_factory=set)

    @classmethod
    def from_pages(cls, pages: Iterable[Iterable[PlaylistItem]]) -> PlaylistIndex:
        """Accumulate every page of playlist membership into a fresh index."""
        index = cls()
        skipped = 0
        for page in pages:
            for item in page:
                if not item.track_id or not item.title or not item.artist_names:
                    skipped += 1
                    continue
                index.record(item.track_id, item.song_key)

        if skipped:
            logger.debug(f"Skipped {skipped} playlist items without id, title or artists")
        logger.info(
            f"Playlist index loaded: {len(index.track_ids)} tracks, {len(index.song_keys)} song keys"
        )
        return index

    def contains_track_id(self, track_id: str) -> bool:
        return track_id in self.track_ids

    def contains_song_key(self, song_key: str) -> bool:
        return song_key in self.song_keys

    def record(self, track_id: str | None = None, *song_keys: str) -> None:
        """Mark a track id and/or song keys as present. Idempotent."""
        if track_id:
            self.track_ids.add(track_id)
        self.song_keys.update(song_keys)

    def __len__(self) -> int:
        return len(self.track_ids)


## Tests


def test_from_pages_unions_all_pages():
    pages = [
        [PlaylistItem("a", ("Queen",), "Bohemian Rhapsody")],
        [
            PlaylistItem("b", ("Daft Punk", "Pharrell Williams"), "Get Lucky (Radio Edit)"),
            PlaylistItem(None, ("Ghost",), "Local File"),
        ],
    ]
    index = PlaylistIndex.from_pages(pages)

    assert index.track_ids == {"a", "b"}
    assert index.contains_song_key("queen|bohemian rhapsody")
    assert index.contains_song_key("daft punk pharrell williams|get lucky")
    assert len(index) == 2


def test_record_is_idempotent():
    index = PlaylistIndex()
    index.record("x", "a|b", "c|d")
    index.record("x", "a|b")

    assert index.track_ids == {"x"}
    assert index.song_keys == {"a|b", "c|d"}
    assert index.contains_track_id("x")
    assert not index.contains_track_id("y")
