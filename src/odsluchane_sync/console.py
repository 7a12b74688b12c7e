"""Shared Rich console and status utilities for odsluchane-sync.

Provides a global Rich console instance and helpers for consistent
output formatting across all CLI commands.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.status import Status

# Global console instance (initialized in CLI)
_console: Console | None = None


def get_console() -> Console:
    """Get the global Rich console instance.

    Falls back to a default console when the CLI has not installed one.
    """
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global Rich console instance.

    Args:
        console: The Console instance to use globally
    """
    global _console
    _console = console


@contextmanager
def status(
    message: str,
    spinner: str = "dots",
) -> Iterator[Status]:
    """Create a Rich Status context for showing ongoing operations.

    Args:
        message: Status message to display
        spinner: Spinner style name (default: "dots")

    Yields:
        Status instance for updating message

    Example:
        with status("Loading stations...") as st:
            # Do work
            st.update("Loading playlists...")
    """
    with get_console().status(message, spinner=spinner) as st:
        yield st


def print(*args: Any, **kwargs: Any) -> None:
    """Print to the global console."""
    get_console().print(*args, **kwargs)


def print_error(message: str) -> None:
    get_console().print(f"[red]Error: {escape(message)}[/red]", markup=True, highlight=False)


def print_warning(message: str) -> None:
    get_console().print(f"[yellow]Warning: {escape(message)}[/yellow]", markup=True, highlight=False)


def print_success(message: str) -> None:
    get_console().print(f"[green]{escape(message)}[/green]", markup=True, highlight=False)
