"""Pytest configuration and shared fixtures for odsluchane-sync tests."""

from __future__ import annotations

import os
from collections.abc import Callable
from datetime import datetime

import pytest

from odsluchane_sync.state import StateStore
from odsluchane_sync.windows import SOURCE_TIMEZONE, WarsawClock

# =============================================================================
# Clock and State Fixtures
# =============================================================================


@pytest.fixture
def warsaw_clock() -> Callable[[str], WarsawClock]:
    """Build a WarsawClock frozen at a Warsaw-local ISO time, e.g. ``"2026-02-25T09:00"``."""

    def _make(local_iso: str) -> WarsawClock:
        frozen = datetime.fromisoformat(local_iso).replace(tzinfo=SOURCE_TIMEZONE)
        return WarsawClock(now=lambda: frozen)

    return _make


@pytest.fixture
def state_store(tmp_path) -> StateStore:
    """Provide a StateStore writing into a temporary directory."""
    return StateStore(tmp_path / ".cache" / "state.json")


@pytest.fixture
def no_sleep() -> list[float]:
    """Collects requested sleeps instead of sleeping; pass ``no_sleep.append``."""
    return []


# =============================================================================
# Environment Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep real credentials and config overrides out of tests."""
    for name in list(os.environ):
        if name.startswith(("SPOTIFY_", "ODSLUCHANE_SYNC_")):
            monkeypatch.delenv(name, raising=False)
