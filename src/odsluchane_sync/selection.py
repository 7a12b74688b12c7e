"""Interactive selection of stations and playlists for the `map` command."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from odsluchane_sync.errors import ConfigurationError
from odsluchane_sync.normalize import cleanup_spaces, normalize

logger = logging.getLogger(__name__)

PAGE_SIZE = 15

PLAYLIST_URL_MARKER = "spotify.com/playlist/"


@dataclass(frozen=True)
class SelectOption:
    """One choice in a selection list; `search_text` is what name filters match against."""

    id: str
    label: str
    search_text: str
    group_name: str = ""


T = TypeVar("T", bound=SelectOption)


def filter_select_options_by_name(options: Sequence[T], name_filter: str) -> list[T]:
    """Keep options whose normalized search text contains the normalized filter."""
    query = normalize(name_filter) if name_filter else ""
    if not query:
        return list(options)
    return [option for option in options if query in normalize(option.search_text)]


def build_station_group_options(station_options: Sequence[SelectOption]) -> list[SelectOption]:
    """One option per station group, sorted case-insensitively by name."""
    counts = Counter(option.group_name for option in station_options)
    groups = [
        SelectOption(id=group_name, label=group_name, search_text=f"{group_name} {count}")
        for group_name, count in counts.items()
    ]
    return sorted(groups, key=lambda option: option.label.casefold())


def normalize_playlist_id(playlist: str) -> str:
    """Accept a bare playlist id or an open.spotify.com playlist URL (query string dropped)."""
    trimmed = playlist.strip()
    if PLAYLIST_URL_MARKER not in trimmed:
        return trimmed

    without_prefix = trimmed[trimmed.index("/playlist/") + len("/playlist/") :]
    return without_prefix.split("?", 1)[0].strip()


def prompt_select_option(
    title: str,
    options: Sequence[T],
    console: Console,
    ask: Callable[[str], str] | None = None,
) -> T:
    """
    Let the user pick an option from a numbered table.

    Typing a number selects it; typing anything else narrows the list by name.
    An empty answer resets the filter.

    Raises:
        ConfigurationError: If there is nothing to choose from
    """
    if not options:
        raise ConfigurationError(f'No options available for "{title}".')

    ask = ask or (lambda prompt: Prompt.ask(prompt, console=console, default=""))
    visible = list(options)

    while True:
        table = Table(title=title, show_lines=False)
        table.add_column("#", justify="right", style="cyan")
        table.add_column("Name")
        for number, option in enumerate(visible[:PAGE_SIZE], start=1):
            table.add_row(str(number), option.label)
        if len(visible) > PAGE_SIZE:
            table.caption = f"{len(visible) - PAGE_SIZE} more, type to filter"
        console.print(table)

        answer = cleanup_spaces(ask("Number or filter text"))
        if answer.isdigit() and 1 <= int(answer) <= min(len(visible), PAGE_SIZE):
            return visible[int(answer) - 1]

        narrowed = filter_select_options_by_name(options, answer)
        if not narrowed:
            console.print(f'No matches for "{answer}".', markup=False)
            continue
        visible = narrowed


def resolve_select_option_with_name_filter(
    title: str,
    options: Sequence[T],
    name_filter: str,
    filter_flag: str,
    console: Console,
    ask: Callable[[str], str] | None = None,
) -> T:
    """
    Apply a name filter given on the command line before prompting.

    Exactly one match is selected without asking.

    Raises:
        ConfigurationError: If the filter matches nothing
    """
    filtered = filter_select_options_by_name(options, name_filter)

    if name_filter and not filtered:
        raise ConfigurationError(f'{title}: no matches for name filter "{name_filter}".')

    if name_filter and len(filtered) == 1:
        selected = filtered[0]
        console.print(
            f'{title}: auto-selected by --{filter_flag} "{name_filter}" -> {selected.label}',
            markup=False,
        )
        return selected

    if name_filter:
        console.print(
            f'{title}: --{filter_flag} "{name_filter}" matched {len(filtered)} results.',
            markup=False,
        )

    return prompt_select_option(title, filtered, console, ask)


## Tests


def _options() -> list[SelectOption]:
    return [
        SelectOption("40", "RMF FM", "RMF FM RMF 40", "RMF"),
        SelectOption("41", "RMF Classic", "RMF Classic RMF 41", "RMF"),
        SelectOption("7", "Radio ZET Chilli", "Radio ZET Chilli Eurozet 7", "Eurozet"),
    ]


def test_filter_select_options_by_name():
    assert [o.id for o in filter_select_options_by_name(_options(), "chilli")] == ["7"]
    assert [o.id for o in filter_select_options_by_name(_options(), "rmf")] == ["40", "41"]
    assert len(filter_select_options_by_name(_options(), "")) == 3
    assert len(filter_select_options_by_name(_options(), "!!")) == 3


def test_build_station_group_options():
    groups = build_station_group_options(_options())
    assert [(g.id, g.search_text) for g in groups] == [("Eurozet", "Eurozet 1"), ("RMF", "RMF 2")]


def test_normalize_playlist_id():
    assert normalize_playlist_id(" 37i9dQZF1DX ") == "37i9dQZF1DX"
    assert normalize_playlist_id("https://open.spotify.com/playlist/abc123?si=x") == "abc123"
