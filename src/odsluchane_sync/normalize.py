from __future__ import annotations

import re
import unicodedata

_COMBINING_MARKS = re.compile(r"[\u0300-\u036f]")
_BRACKETED = re.compile(r"\(.*?\)|\[.*?\]")
_FEAT_SUFFIX = re.compile(r"\bfeat\.?\b.*$", re.IGNORECASE | re.ASCII)
_FT_SUFFIX = re.compile(r"\bft\.?\b.*$", re.IGNORECASE | re.ASCII)
_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_WHITESPACE = re.compile(r"\s+")


def cleanup_spaces(value: str) -> str:
    """Collapse runs of whitespace and trim."""
    return _WHITESPACE.sub(" ", value).strip()


def normalize(value: str) -> str:
    """
    Reduce free text to its comparison form.

    Lower-cases, strips diacritics, drops bracketed fragments and any
    trailing "feat."/"ft." clause, then collapses everything that is not
    ``[a-z0-9]`` into single spaces.
    """
    s = unicodedata.normalize("NFKD", value).lower()
    s = _COMBINING_MARKS.sub("", s)
    s = _BRACKETED.sub(" ", s)
    s = _FEAT_SUFFIX.sub(" ", s)
    s = _FT_SUFFIX.sub(" ", s)
    s = _NON_ALNUM.sub(" ", s)
    return s.strip()


def build_song_key(artist: str, title: str) -> str:
    """Build the ``artist|title`` key used for duplicate and match comparison."""
    return f"{normalize(artist)}|{normalize(title)}"


## Tests


def test_cleanup_spaces():
    assert cleanup_spaces("  A   lot   of   spaces  ") == "A lot of spaces"
    assert cleanup_spaces("foo\n\tbar") == "foo bar"


def test_normalize_case_accents_punctuation():
    assert normalize("  Béyoncé — Halo  ") == "beyonce halo"


def test_normalize_drops_features_and_brackets():
    assert normalize("Artist feat. Guest (Live) [Remix]") == "artist"
    assert normalize("Artist ft Guest - Song") == "artist"
    assert normalize("Song (Radio Edit)") == "song"


def test_normalize_keeps_words_containing_ft():
    assert normalize("Daft Punk") == "daft punk"
    assert normalize("Left Outside Alone") == "left outside alone"


def test_build_song_key():
    assert build_song_key("Beyoncé", "Halo (Live)") == "beyonce|halo"
    assert build_song_key("", "Halo") == "|halo"

