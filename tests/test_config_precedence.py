"""Tests for configuration precedence: env > .env > TOML > defaults."""

from __future__ import annotations

from pathlib import Path

import pytest

from odsluchane_sync.config import Config


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(
        f"""
[sync]
from_hour = 6
to_hour = 22
window_hours = 1
spotify_delay_ms = 300

[http]
max_attempts = 3

[paths]
state_path = "{(tmp_path / "state.json").as_posix()}"
env_path = "{(tmp_path / "sync.env").as_posix()}"

[logging]
level = "INFO"
"""
    )
    return path


class TestConfigPrecedence:
    def test_toml_values_are_loaded(self, config_file, tmp_path):
        config = Config.load(config_file)

        assert config.sync.from_hour == 6
        assert config.sync.to_hour == 22
        assert config.sync.window_hours == 1
        assert config.sync.source_delay_ms == 2500
        assert config.http.max_attempts == 3
        assert config.paths.state_path == tmp_path / "state.json"
        assert config.logging.level == "INFO"

    def test_env_overrides_toml(self, config_file, monkeypatch):
        monkeypatch.setenv("ODSLUCHANE_SYNC_SYNC_FROM_HOUR", "8")
        monkeypatch.setenv("ODSLUCHANE_SYNC_HTTP_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("ODSLUCHANE_SYNC_LOGGING_REDACT_SECRETS", "no")
        monkeypatch.setenv("SPOTIFY_REDIRECT_URI", "http://localhost:9999/cb")

        config = Config.load(config_file)

        assert config.sync.from_hour == 8
        assert config.sync.to_hour == 22
        assert config.http.max_attempts == 5
        assert config.logging.redact_secrets is False
        assert config.spotify.redirect_uri == "http://localhost:9999/cb"

    def test_env_file_supplies_credentials(self, config_file, tmp_path):
        (tmp_path / "sync.env").write_text(
            "SPOTIFY_CLIENT_ID=from-file\n"
            "SPOTIFY_CLIENT_SECRET=file-secret\n"
            "SPOTIFY_REFRESH_TOKEN=file-token\n"
            "ODSLUCHANE_SYNC_SYNC_WINDOW_HOURS=2\n"
        )

        config = Config.load(config_file, load_env_file=True)

        assert config.spotify.client_id == "from-file"
        assert config.spotify.client_secret == "file-secret"
        assert config.spotify.refresh_token == "file-token"
        assert config.sync.window_hours == 2

    def test_process_env_beats_env_file(self, config_file, tmp_path, monkeypatch):
        (tmp_path / "sync.env").write_text("SPOTIFY_CLIENT_ID=from-file\n")
        monkeypatch.setenv("SPOTIFY_CLIENT_ID", "from-process")

        config = Config.load(config_file, load_env_file=True)

        assert config.spotify.client_id == "from-process"

    def test_env_file_ignored_unless_requested(self, config_file, tmp_path):
        (tmp_path / "sync.env").write_text("SPOTIFY_CLIENT_ID=from-file\n")

        config = Config.load(config_file)

        assert config.spotify.client_id is None

    def test_missing_env_file_is_fine(self, config_file):
        config = Config.load(config_file, load_env_file=True)

        assert config.spotify.refresh_token is None


def test_invalid_values_are_rejected(tmp_path, monkeypatch):
    from pydantic import ValidationError

    monkeypatch.setenv("ODSLUCHANE_SYNC_SYNC_WINDOW_HOURS", "3")

    with pytest.raises(ValidationError):
        Config.load(tmp_path / "absent.toml")
