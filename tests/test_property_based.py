"""Property-based tests for odsluchane-sync.

Uses hypothesis to validate invariants of normalization, song keys and
log sanitization.
"""

from __future__ import annotations

import string

from hypothesis import given, settings
from hypothesis import strategies as st

from odsluchane_sync.normalize import build_song_key, normalize
from odsluchane_sync.safe_logging import sanitize_message
from odsluchane_sync.state import SyncState

# Letters, digits, spaces and punctuation other than brackets and underscores
free_text = st.text(
    alphabet=st.characters(categories=("L", "N", "Zs", "Po", "Pd")),
    max_size=80,
)

ascii_words = st.text(alphabet=string.ascii_letters + string.digits + " -.'&", max_size=60)

token_chars = string.ascii_letters + string.digits + "._~+/=-"


# Normalization properties


@given(free_text)
@settings(max_examples=200)
def test_normalize_idempotent(text: str):
    """Property: Normalizing twice equals normalizing once."""
    first = normalize(text)
    assert normalize(first) == first, f"Idempotence failed: {text!r} -> {first!r}"


@given(free_text)
@settings(max_examples=200)
def test_normalize_output_alphabet(text: str):
    """Property: Output is lowercase ASCII words separated by single spaces."""
    result = normalize(text)
    assert result == result.strip()
    assert "  " not in result
    assert set(result) <= set(string.ascii_lowercase + string.digits + " ")


@given(ascii_words, ascii_words)
@settings(max_examples=100)
def test_song_key_ignores_case(artist: str, title: str):
    """Property: Song keys do not depend on letter case."""
    assert build_song_key(artist.upper(), title) == build_song_key(artist.lower(), title)
    assert build_song_key(artist, title.swapcase()) == build_song_key(artist, title)


@given(free_text, free_text, st.sampled_from(["(Live)", "[Remix]", "(Radio Edit)"]))
@settings(max_examples=100)
def test_song_key_ignores_bracketed_suffix(artist: str, title: str, suffix: str):
    """Property: A trailing bracketed version marker does not change the key."""
    assert build_song_key(artist, f"{title} {suffix}") == build_song_key(artist, title)


@given(free_text, free_text)
@settings(max_examples=100)
def test_song_key_has_one_separator(artist: str, title: str):
    assert build_song_key(artist, title).count("|") == 1


# Sanitization properties


@given(st.text(alphabet=token_chars, min_size=1, max_size=120))
@settings(max_examples=100)
def test_bearer_tokens_never_survive(token: str):
    """Property: Any bearer token is fully redacted."""
    assert sanitize_message(f"Bearer {token}") == "Bearer [REDACTED]"


@given(st.text(alphabet=string.ascii_letters + string.digits + "-_", min_size=1, max_size=80))
@settings(max_examples=100)
def test_authorization_code_never_survives(code: str):
    """Property: OAuth codes in callback URLs are redacted, other params kept."""
    sanitized = sanitize_message(f"http://127.0.0.1:8888/callback?code={code}&state=s1")
    assert sanitized == "http://127.0.0.1:8888/callback?code=[REDACTED]&state=s1"


# State properties


window_refs = st.tuples(
    st.sampled_from(["40", "41", "7"]),
    st.sampled_from(["24-02-2026", "25-02-2026"]),
    st.sampled_from(["0-2", "2-4", "22-24", "5-6"]),
)


@given(st.sets(window_refs, max_size=12))
@settings(max_examples=50)
def test_processed_windows_survive_serialization(refs: set[tuple[str, str, str]]):
    """Property: The nested on-disk shape keeps exactly the processed windows."""
    state = SyncState(processed_windows=set(refs))
    assert SyncState.from_json(state.to_json()).processed_windows == refs
