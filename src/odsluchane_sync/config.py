from __future__ import annotations

import os
import tomllib
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

DEFAULT_REDIRECT_URI = "http://127.0.0.1:8888/callback"
DEFAULT_ENV_PATH = Path(".env")


class SyncConfig(BaseModel):
    """Defaults for the sync command."""

    from_hour: int = Field(default=0, ge=0, le=23)
    to_hour: int = Field(default=24, ge=1, le=24)
    window_hours: int = Field(default=2, ge=1, le=2)
    source_delay_ms: int = Field(default=2500, ge=0)  # between windows
    spotify_delay_ms: int = Field(default=120, ge=0)  # between searches

    @model_validator(mode="after")
    def _check_hour_range(self) -> SyncConfig:
        if self.from_hour >= self.to_hour:
            raise ValueError("sync.from_hour must be lower than sync.to_hour")
        return self


class HttpConfig(BaseModel):
    """Retry budgets for outgoing requests."""

    max_attempts: int = Field(default=4, ge=1)
    timeout_s: float = Field(default=30.0, gt=0)
    spotify_max_attempts: int = Field(default=2, ge=1)
    spotify_timeout_s: float = Field(default=12.0, gt=0)


class PathsConfig(BaseModel):
    state_path: Path = Field(default=Path(".cache/state.json"))
    stations_cache_path: Path = Field(default=Path(".cache/stations.json"))
    env_path: Path = Field(default=DEFAULT_ENV_PATH)


class SpotifyConfig(BaseModel):
    """Spotify credentials (read from SPOTIFY_* env vars if not provided)."""

    client_id: str | None = Field(default=None)
    client_secret: str | None = Field(default=None)
    refresh_token: str | None = Field(default=None)
    redirect_uri: str = Field(default=DEFAULT_REDIRECT_URI)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="WARNING")  # DEBUG, INFO, WARNING, ERROR
    format: str = Field(default="%(message)s")
    redact_secrets: bool = Field(default=True)


class Config(BaseModel):
    """
    Main configuration for odsluchane-sync.

    Loads from TOML file with optional environment variable overrides.
    """

    sync: SyncConfig = Field(default_factory=SyncConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    spotify: SpotifyConfig = Field(default_factory=SpotifyConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: Path | None = None, load_env_file: bool = False) -> Config:
        """
        Load configuration from TOML file with environment variable overrides.

        Environment variables take precedence and follow the pattern:
        ODSLUCHANE_SYNC_<SECTION>_<KEY> (e.g., ODSLUCHANE_SYNC_SYNC_WINDOW_HOURS).
        Spotify credentials use the plain SPOTIFY_* names.

        With `load_env_file`, variables from `paths.env_path` are added to the
        process environment first; variables already set in the process win.
        """
        config_dict: dict[str, object] = {}

        if config_path and config_path.exists():
            config_dict = tomllib.loads(config_path.read_text())

        config_dict = cls._merge_env_overrides(config_dict)

        if load_env_file:
            paths = cls._section(config_dict, "paths")
            env_path = Path(str(paths.get("env_path") or DEFAULT_ENV_PATH))
            if env_path.exists():
                load_dotenv(env_path, override=False)
                config_dict = cls._merge_env_overrides(config_dict)

        return cls.model_validate(config_dict)

    @staticmethod
    def _section(config_dict: dict[str, object], name: str) -> dict[str, object]:
        section = config_dict.setdefault(name, {})
        if not isinstance(section, dict):
            section = {}
            config_dict[name] = section
        return section

    @classmethod
    def _merge_env_overrides(cls, config_dict: dict[str, object]) -> dict[str, object]:
        """
        Merge environment variable overrides into config dictionary.

        Updates `config_dict` in place and returns it, ready for Pydantic validation.
        """
        env_prefix = "ODSLUCHANE_SYNC_"

        sync = cls._section(config_dict, "sync")
        for key in ("from_hour", "to_hour", "window_hours", "source_delay_ms", "spotify_delay_ms"):
            if value := os.getenv(f"{env_prefix}SYNC_{key.upper()}"):
                sync[key] = value

        http = cls._section(config_dict, "http")
        for key in ("max_attempts", "timeout_s", "spotify_max_attempts", "spotify_timeout_s"):
            if value := os.getenv(f"{env_prefix}HTTP_{key.upper()}"):
                http[key] = value

        paths = cls._section(config_dict, "paths")
        for key in ("state_path", "stations_cache_path", "env_path"):
            if value := os.getenv(f"{env_prefix}PATHS_{key.upper()}"):
                paths[key] = value

        # Spotify credentials from env
        spotify = cls._section(config_dict, "spotify")
        if client_id := os.getenv("SPOTIFY_CLIENT_ID"):
            spotify["client_id"] = client_id
        if client_secret := os.getenv("SPOTIFY_CLIENT_SECRET"):
            spotify["client_secret"] = client_secret
        if refresh_token := os.getenv("SPOTIFY_REFRESH_TOKEN"):
            spotify["refresh_token"] = refresh_token
        if redirect_uri := os.getenv("SPOTIFY_REDIRECT_URI"):
            spotify["redirect_uri"] = redirect_uri

        logging_config = cls._section(config_dict, "logging")
        if log_level := os.getenv(f"{env_prefix}LOGGING_LEVEL"):
            logging_config["level"] = log_level
        if log_format := os.getenv(f"{env_prefix}LOGGING_FORMAT"):
            logging_config["format"] = log_format
        if redact := os.getenv(f"{env_prefix}LOGGING_REDACT_SECRETS"):
            logging_config["redact_secrets"] = redact.lower() in ("true", "1", "yes")

        return config_dict


## Tests


def test_config_defaults():
    config = Config()
    assert config.sync.window_hours == 2
    assert config.sync.source_delay_ms == 2500
    assert config.http.max_attempts == 4
    assert config.http.spotify_timeout_s == 12.0
    assert config.paths.state_path == Path(".cache/state.json")
    assert config.spotify.redirect_uri == DEFAULT_REDIRECT_URI


def test_config_from_dict():
    config = Config.model_validate(
        {"sync": {"from_hour": 6, "to_hour": 10, "window_hours": 1}, "paths": {"state_path": "/tmp/s.json"}}
    )
    assert config.sync.from_hour == 6
    assert config.sync.window_hours == 1
    assert config.paths.state_path == Path("/tmp/s.json")


def test_config_rejects_inverted_hours():
    import pytest
    from pydantic import ValidationError

    with pytest.raises(ValidationError):
        Config.model_validate({"sync": {"from_hour": 10, "to_hour": 4}})


def test_config_env_overrides(
    monkeypatch,  # pyright: ignore[reportMissingParameterType,reportUnknownParameterType]
):
    monkeypatch.setenv("ODSLUCHANE_SYNC_SYNC_WINDOW_HOURS", "1")  # pyright: ignore[reportUnknownMemberType]
    monkeypatch.setenv("ODSLUCHANE_SYNC_HTTP_MAX_ATTEMPTS", "6")  # pyright: ignore[reportUnknownMemberType]
    monkeypatch.setenv("SPOTIFY_CLIENT_ID", "cid")  # pyright: ignore[reportUnknownMemberType]

    config = Config.load()
    assert config.sync.window_hours == 1
    assert config.http.max_attempts == 6
    assert config.spotify.client_id == "cid"


def test_config_load_nonexistent_file():
    config = Config.load(Path("/nonexistent/config.toml"))
    assert config.sync.to_hour == 24


def test_merge_env_overrides_updates_dict_in_place(
    monkeypatch,  # pyright: ignore[reportMissingParameterType,reportUnknownParameterType]
):
    monkeypatch.setenv("ODSLUCHANE_SYNC_SYNC_TO_HOUR", "12")  # pyright: ignore[reportUnknownMemberType]
    config_dict: dict[str, object] = {"sync": {"from_hour": 6}}

    merged = Config._merge_env_overrides(config_dict)  # pyright: ignore[reportPrivateUsage]

    assert merged is config_dict
    assert config_dict["sync"] == {"from_hour": 6, "to_hour": "12"}
