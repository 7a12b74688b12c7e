"""CLI for odsluchane-sync using Typer and Rich.

Commands:
    auth  obtain a Spotify refresh token through the local callback flow
    map   save a station -> playlist mapping (interactive unless both ids are given)
    sync  scrape a station's play history and add matched tracks to its playlist
"""

from __future__ import annotations

import logging
import webbrowser
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import httpx
import typer

from odsluchane_sync.auth import (
    DEFAULT_AUTH_TIMEOUT_MS,
    CallbackAddress,
    build_spotify_auth_url,
    exchange_authorization_code,
    save_refresh_token_to_env,
    wait_for_authorization_code,
)
from odsluchane_sync.config import Config
from odsluchane_sync.console import (
    get_console,
    print_error,
    print_success,
    print_warning,
    set_console,
    status,
)
from odsluchane_sync.console import (
    print as cprint,
)
from odsluchane_sync.errors import ConfigurationError, SyncError
from odsluchane_sync.fetch import RequestOptions
from odsluchane_sync.safe_logging import configure_rich_logging, redact_dict, verbosity_to_level
from odsluchane_sync.scrapers.odsluchane import OdsluchaneScraper, Station
from odsluchane_sync.selection import (
    SelectOption,
    build_station_group_options,
    filter_select_options_by_name,
    normalize_playlist_id,
    prompt_select_option,
    resolve_select_option_with_name_filter,
)
from odsluchane_sync.spotify import SpotifyClient, can_current_user_write_playlist
from odsluchane_sync.state import StateStore
from odsluchane_sync.sync import SyncEngine, SyncOptions, SyncResult
from odsluchane_sync.windows import (
    WarsawClock,
    format_date_for_display,
    format_window_progress_text,
    parse_input_date,
)

logger = logging.getLogger(__name__)


class ExitCode:
    """Standard exit codes for CLI commands."""

    SUCCESS = 0
    ERROR = 1


app = typer.Typer(
    name="odsluchane-sync",
    help="Mirror a radio station's play history from odsluchane.eu into a Spotify playlist",
    no_args_is_help=True,
    add_completion=False,
)


# Global state (set by callback)
class AppState:
    """Global application state passed between commands."""

    config: Config
    verbose: int


state = AppState()


@contextmanager
def _exit_on_error() -> Iterator[None]:
    """Report expected failures as a red one-liner and exit with code 1."""
    try:
        yield
    except (SyncError, ValueError) as e:
        logger.debug("Command failed", exc_info=True)
        print_error(str(e))
        raise typer.Exit(code=ExitCode.ERROR) from e


def make_scraper(cfg: Config) -> OdsluchaneScraper:
    return OdsluchaneScraper(
        request_options=RequestOptions(
            max_attempts=cfg.http.max_attempts, timeout_s=cfg.http.timeout_s
        )
    )


def make_spotify(cfg: Config) -> SpotifyClient:
    return SpotifyClient(
        client_id=cfg.spotify.client_id,
        client_secret=cfg.spotify.client_secret,
        refresh_token=cfg.spotify.refresh_token,
        request_options=RequestOptions(
            max_attempts=cfg.http.spotify_max_attempts, timeout_s=cfg.http.spotify_timeout_s
        ),
        token_request_options=RequestOptions(
            max_attempts=cfg.http.max_attempts, timeout_s=cfg.http.timeout_s
        ),
    )


def make_clock() -> WarsawClock:
    return WarsawClock()


@app.callback()
def main(
    config_path: Annotated[
        Path | None,
        typer.Option("--config", help="Path to configuration TOML file", exists=True),
    ] = None,
    state_path: Annotated[
        Path | None,
        typer.Option(help="Sync state file (default: .cache/state.json)"),
    ] = None,
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", count=True, help="Increase verbosity"),
    ] = 0,
) -> None:
    """odsluchane-sync: keep a Spotify playlist in step with a radio station's airplay."""
    # Load config (TOML + .env + env vars)
    cfg = Config.load(config_path, load_env_file=True)

    # CLI > Env > Config File > Defaults
    if state_path:
        cfg.paths.state_path = state_path

    log_level = verbosity_to_level(verbose, cfg.logging.level)
    console = configure_rich_logging(
        level=log_level,
        format_string=cfg.logging.format,
        redact_secrets=cfg.logging.redact_secrets,
        show_time=True,
        show_path=False,
        quiet_http=verbose < 3,
    )
    set_console(console)

    if config_path:
        logger.info(f"Loaded config from {config_path}")
    logger.debug(f"Effective config: {redact_dict(cfg.model_dump(mode='json'))}")

    state.config = cfg
    state.verbose = verbose


# ====================================================================
# AUTH
# ====================================================================


@app.command()
def auth(
    timeout_ms: Annotated[
        int, typer.Option("--timeout-ms", min=1, help="How long to wait for the callback")
    ] = DEFAULT_AUTH_TIMEOUT_MS,
) -> None:
    """Start a local callback listener, open the consent page and store the refresh token."""
    cfg = state.config
    with _exit_on_error():
        redirect_uri = cfg.spotify.redirect_uri
        address = CallbackAddress.from_redirect_uri(redirect_uri)
        auth_url = build_spotify_auth_url(cfg.spotify.client_id, redirect_uri)

        def open_browser() -> None:
            cprint(f"Listening on {redirect_uri}", markup=False)
            cprint(f"Opening authorization URL in your default browser:\n{auth_url}", markup=False)
            cprint("Open it manually if auto-open doesn't work.")
            if webbrowser.open(auth_url):
                cprint("Opened authorization URL in your default browser.")
            else:
                print_warning("Could not auto-open browser. Open the URL manually.")

        code = wait_for_authorization_code(address, timeout_ms, on_listening=open_browser)

        cprint("Authorization callback received. Exchanging code for tokens...")
        tokens = exchange_authorization_code(
            code,
            redirect_uri,
            cfg.spotify.client_id,
            cfg.spotify.client_secret,
            options=RequestOptions(max_attempts=cfg.http.max_attempts, timeout_s=cfg.http.timeout_s),
        )

    print_success("Token exchange succeeded.")
    cprint(f"Access token expires in: {tokens.expires_in} seconds")

    if not tokens.refresh_token:
        print_warning(
            "No refresh_token returned. If you already authorized this app before, "
            "re-authorize with a fresh consent."
        )
        return

    env_path = cfg.paths.env_path
    try:
        save_refresh_token_to_env(tokens.refresh_token, env_path)
    except OSError as e:
        print_warning(f"Could not update {env_path} automatically ({e}).")
        cprint(f"Set this manually:\nSPOTIFY_REFRESH_TOKEN={tokens.refresh_token}", markup=False)
        return
    print_success(f"Saved SPOTIFY_REFRESH_TOKEN to {env_path}")


# ====================================================================
# MAP
# ====================================================================


def _station_options(stations: list[Station]) -> list[SelectOption]:
    return [
        SelectOption(
            id=station.id,
            label=station.name,
            search_text=f"{station.name} {station.group_name} {station.id}",
            group_name=station.group_name,
        )
        for station in stations
    ]


def _yes_no(value: bool | None) -> str:
    if value is None:
        return "unknown"
    return "yes" if value else "no"


@app.command("map")
def map_station(
    station: Annotated[str | None, typer.Option(help="Station id (non-interactive mode)")] = None,
    playlist: Annotated[
        str | None, typer.Option(help="Playlist id or URL (non-interactive mode)")
    ] = None,
    station_name: Annotated[
        str | None,
        typer.Option(help="Filter stations by name; auto-select on exactly one match"),
    ] = None,
    playlist_name: Annotated[
        str | None,
        typer.Option(help="Filter playlists by name; auto-select on exactly one match"),
    ] = None,
) -> None:
    """Save a station -> playlist mapping."""
    cfg = state.config
    store = StateStore(cfg.paths.state_path)

    with _exit_on_error():
        sync_state = store.load()
        station_id = (station or "").strip()
        playlist_id = normalize_playlist_id(playlist or "")

        if station_id and playlist_id:
            sync_state.station_playlists[station_id] = playlist_id
            store.save(sync_state)
            print_success(f"Saved mapping: station {station_id} -> playlist {playlist_id}")
            return

        console = get_console()
        station_filter = " ".join((station_name or "").split())
        playlist_filter = " ".join((playlist_name or "").split())

        with make_scraper(cfg) as scraper, status("Loading station list from odsluchane.eu..."):
            stations = scraper.fetch_stations(cfg.paths.stations_cache_path)

        station_options = filter_select_options_by_name(_station_options(stations), station_filter)
        if station_filter and not station_options:
            raise ConfigurationError(
                f'Select station: no matches for name filter "{station_filter}".'
            )

        groups = build_station_group_options(station_options)
        if not groups:
            raise ConfigurationError("Select station group: no station groups available.")
        if len(groups) == 1:
            group = groups[0]
            cprint(f"Select station group: auto-selected {group.label}", markup=False)
        else:
            group = prompt_select_option("Select station group", groups, console)

        chosen_station = resolve_select_option_with_name_filter(
            "Select station",
            [option for option in station_options if option.group_name == group.id],
            station_filter,
            "station-name",
            console,
        )

        with make_spotify(cfg) as spotify:
            with status("Loading your Spotify playlists..."):
                current_user = spotify.get_current_user()
                playlists = spotify.get_user_playlists()

        writable = [
            item
            for item in playlists
            if can_current_user_write_playlist(current_user.id, item.owner_id, item.collaborative)
        ]
        if not writable:
            raise ConfigurationError(
                "No writable Spotify playlists available (owner or collaborative)."
            )

        playlist_options = [
            SelectOption(
                id=item.id,
                label=(
                    f"{item.name} ({item.id}) - owner: {item.owner_name}, "
                    f"tracks: {item.tracks_total if item.tracks_total is not None else '?'}, "
                    f"collaborative: {_yes_no(item.collaborative)}, public: {_yes_no(item.is_public)}"
                ),
                search_text=(
                    f"{item.name} {item.id} {item.owner_name} "
                    f"{'collaborative' if item.collaborative else ''}"
                ),
            )
            for item in writable
        ]
        chosen_playlist = resolve_select_option_with_name_filter(
            "Select playlist", playlist_options, playlist_filter, "playlist-name", console
        )

        sync_state.station_playlists[chosen_station.id] = chosen_playlist.id
        store.save(sync_state)

    print_success(
        f"Saved mapping: station {chosen_station.label} -> playlist {chosen_playlist.label}"
    )


# ====================================================================
# SYNC
# ====================================================================


def _resolve_station_for_sync(
    cfg: Config, station: str | None, station_name: str | None
) -> tuple[str, str | None]:
    """Return (station id, label if already known)."""
    station_id = (station or "").strip()
    if station_id:
        return station_id, None

    name_filter = " ".join((station_name or "").split())
    if not name_filter:
        raise ConfigurationError("Missing required argument: --station or --station-name")

    with make_scraper(cfg) as scraper:
        stations = scraper.fetch_stations(cfg.paths.stations_cache_path)

    matches = filter_select_options_by_name(_station_options(stations), name_filter)
    if not matches:
        raise ConfigurationError(f'No station matches --station-name "{name_filter}".')
    if len(matches) > 1:
        raise ConfigurationError(
            f'--station-name "{name_filter}" matched {len(matches)} stations. '
            "Refine the name or use --station <id>."
        )

    label = f"{matches[0].label} ({matches[0].id})"
    cprint(f'Sync station: auto-selected by --station-name "{name_filter}" -> {label}', markup=False)
    return matches[0].id, label


def _station_label(cfg: Config, station_id: str) -> str:
    """Human label for a station id; falls back to the bare id when the catalog is unavailable."""
    try:
        with make_scraper(cfg) as scraper:
            stations = scraper.fetch_stations(cfg.paths.stations_cache_path)
    except (SyncError, httpx.HTTPError) as e:
        logger.info(f"Station catalog unavailable, using bare id: {e}")
        return f"station {station_id}"

    for item in stations:
        if item.id == station_id:
            return f"{item.name} ({item.id})"
    return f"station {station_id}"


def print_sync_summary(result: SyncResult, state_path: Path) -> None:
    stats = result.stats
    lines = [
        "",
        "[bold]Sync finished[/bold]",
        f"Station: {result.station_id}",
        f"Date: {result.date}",
        f"Playlist: {result.playlist_id}",
        f"Dry run: {str(result.dry_run).lower()}",
        f"Force: {str(result.force).lower()}",
        "",
        f"Windows planned: {stats.windows_planned}",
        f"Windows processed: {stats.windows_processed}",
        f"Windows skipped (already done): {stats.windows_skipped_already_done}",
        f"Windows skipped (fully in future): {stats.windows_skipped_future}",
        f"Windows not marked (not fully in past): {stats.windows_not_marked_not_in_past}",
        f"Songs scraped: {stats.songs_scraped}",
        f"Songs matched: {stats.songs_matched}",
        f"Songs unmatched: {stats.songs_unmatched}",
        f"Songs skipped (duplicates in run): {stats.songs_duplicate_skipped}",
        f"Songs skipped (already in playlist): {stats.songs_already_in_playlist_skipped}",
        f"Tracks added: {stats.tracks_added}",
        f"State file: {state_path}",
    ]
    for line in lines:
        cprint(line, highlight=False)


@app.command()
def sync(
    station: Annotated[
        str | None, typer.Option(help="Station id (required unless --station-name is given)")
    ] = None,
    station_name: Annotated[
        str | None, typer.Option(help="Station name filter; must match exactly one station")
    ] = None,
    playlist: Annotated[
        str | None, typer.Option(help="Playlist id or URL (also saves the mapping)")
    ] = None,
    date: Annotated[
        str | None, typer.Option(help="Day to sync, DD-MM-YYYY (default: today in Europe/Warsaw)")
    ] = None,
    from_hour: Annotated[int | None, typer.Option("--from", help="First hour, 0-23")] = None,
    to_hour: Annotated[int | None, typer.Option("--to", help="End hour, 1-24")] = None,
    window: Annotated[int | None, typer.Option(help="Hours per scrape request, 1 or 2")] = None,
    source_delay_ms: Annotated[
        int | None, typer.Option(help="Pause between windows in milliseconds")
    ] = None,
    spotify_delay_ms: Annotated[
        int | None, typer.Option(help="Pause between Spotify searches in milliseconds")
    ] = None,
    dry_run: Annotated[bool, typer.Option(help="Match only; don't add tracks or save progress")] = False,
    force: Annotated[bool, typer.Option(help="Ignore processed-window memory")] = False,
) -> None:
    """Scrape odsluchane.eu and add matched tracks to the mapped Spotify playlist."""
    cfg = state.config
    clock = make_clock()
    store = StateStore(cfg.paths.state_path)

    with _exit_on_error():
        time_from = cfg.sync.from_hour if from_hour is None else from_hour
        time_to = cfg.sync.to_hour if to_hour is None else to_hour
        window_hours = cfg.sync.window_hours if window is None else window
        source_delay = cfg.sync.source_delay_ms if source_delay_ms is None else source_delay_ms
        spotify_delay = cfg.sync.spotify_delay_ms if spotify_delay_ms is None else spotify_delay_ms

        if not (0 <= time_from <= 23 and 1 <= time_to <= 24 and time_from < time_to):
            raise ConfigurationError("Invalid --from/--to values. Expected 0 <= from < to <= 24.")
        if window_hours not in (1, 2):
            raise ConfigurationError(
                "Invalid --window value. odsluchane supports max 2 hours per request."
            )
        if source_delay < 0 or spotify_delay < 0:
            raise ConfigurationError("Invalid delay value. Expected a non-negative integer.")

        day = date.strip() if date else clock.today()
        parse_input_date(day)

        station_id, station_label = _resolve_station_for_sync(cfg, station, station_name)

        sync_state = store.load()
        if playlist:
            sync_state.station_playlists[station_id] = normalize_playlist_id(playlist)
            store.save(sync_state)

        playlist_id = sync_state.station_playlists.get(station_id)
        if not playlist_id:
            raise ConfigurationError(
                f"No playlist mapped for station {station_id}. "
                f"Run: odsluchane-sync map --station {station_id} --playlist <spotify_playlist_id>"
            )

        station_label = station_label or _station_label(cfg, station_id)
        cprint(f"Syncing {station_label} for {format_date_for_display(day)}...", markup=False)

        with make_scraper(cfg) as scraper, make_spotify(cfg) as spotify:
            with status("Loading Spotify account..."):
                current_user = spotify.get_current_user()
                meta = spotify.get_playlist_meta(playlist_id)
            cprint(f"Spotify account loaded: {current_user.id}", markup=False)
            cprint(f"Playlist metadata loaded: {meta.name} ({meta.id})", markup=False)

            if not dry_run and not can_current_user_write_playlist(
                current_user.id, meta.owner_id, meta.collaborative
            ):
                raise ConfigurationError(
                    f'Mapped playlist "{meta.name}" ({meta.id}) is not writable by '
                    f'"{current_user.id}". Choose a playlist you own or a collaborative '
                    "playlist using: odsluchane-sync map"
                )

            options = SyncOptions(
                station_id=station_id,
                date=day,
                playlist_id=playlist_id,
                from_hour=time_from,
                to_hour=time_to,
                window_hours=window_hours,
                source_delay_s=source_delay / 1000,
                spotify_delay_s=spotify_delay / 1000,
                dry_run=dry_run,
                force=force,
            )
            engine = SyncEngine(scraper, spotify, store, clock=clock)

            with status("Preparing scrape windows...") as st:
                result = engine.run(
                    options,
                    progress=lambda completed, total, win, win_status: st.update(
                        format_window_progress_text(completed, total, win, win_status)
                    ),
                )

    total = result.stats.windows_planned
    print_success(f"Scrape windows complete ({total}/{total}).")
    print_sync_summary(result, cfg.paths.state_path)


# ====================================================================
# ENTRY POINT
# ====================================================================


def cli() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    cli()
