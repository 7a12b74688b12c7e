"""Secret-safe logging utilities for odsluchane-sync.

Provides utilities to ensure logs do not leak credentials:
- Sensitive field redaction for dictionaries (e.g. dumped configuration)
- Message sanitization for bearer tokens, OAuth query values and e-mails
- Rich logging handler setup for the CLI
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

# Fields that should be redacted in logs
REDACT_FIELDS = frozenset(
    {
        "password",
        "secret",
        "token",
        "authorization",
        "access_token",
        "refresh_token",
        "client_secret",
    }
)

# Regex patterns for sensitive data
PATTERNS = {
    "bearer": re.compile(r"\b(Bearer|Basic)\s+[A-Za-z0-9._~+/=-]+"),
    "query_secret": re.compile(r"\b(refresh_token|access_token|code)=([^&\s\"']+)"),
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b"),
}

NOISY_LOGGERS = ("httpx", "httpcore")


def redact_value(value: str, visible_chars: int = 4) -> str:
    """Redact a sensitive value, showing only first few characters.

    Args:
        value: Value to redact
        visible_chars: Number of characters to show

    Returns:
        Redacted string (e.g., "AQDx***")
    """
    if len(value) <= visible_chars:
        return "***"
    return f"{value[:visible_chars]}***"


def redact_dict(
    data: dict[str, Any],
    redact_fields: frozenset[str] | None = None,
) -> dict[str, Any]:
    """Recursively redact sensitive fields in a dictionary.

    Args:
        data: Dictionary to redact
        redact_fields: Set of field names to redact (case-insensitive)

    Returns:
        New dictionary with sensitive fields redacted
    """
    if redact_fields is None:
        redact_fields = REDACT_FIELDS

    result: dict[str, Any] = {}
    for key, value in data.items():
        key_lower = key.lower()
        should_redact = key_lower in redact_fields or any(
            field in key_lower for field in redact_fields
        )

        if should_redact and isinstance(value, str):
            result[key] = redact_value(value)
        elif isinstance(value, dict):
            result[key] = redact_dict(value, redact_fields)
        else:
            result[key] = value

    return result


def sanitize_message(message: str) -> str:
    """Remove credentials and e-mail addresses from a log message."""
    result = PATTERNS["bearer"].sub(lambda m: f"{m.group(1)} [REDACTED]", message)
    result = PATTERNS["query_secret"].sub(lambda m: f"{m.group(1)}=[REDACTED]", result)
    result = PATTERNS["email"].sub("[EMAIL]", result)
    return result


class SafeLogFormatter(logging.Formatter):
    """Log formatter that strips secrets from the rendered message."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        sanitize_messages: bool = True,
    ):
        super().__init__(fmt, datefmt)
        self.sanitize_messages = sanitize_messages

    def format(self, record: logging.LogRecord) -> str:
        # Work on a copy so other handlers see the original record
        record = logging.makeLogRecord(record.__dict__)

        if self.sanitize_messages:
            record.msg = sanitize_message(str(record.msg))
            if record.args:
                record.args = self._sanitize_args(record.args)

        return super().format(record)

    def _sanitize_args(
        self, args: tuple[Any, ...] | Mapping[str, Any]
    ) -> tuple[Any, ...] | dict[str, Any]:
        if isinstance(args, Mapping):
            return {k: self._sanitize_value(v) for k, v in args.items()}
        return tuple(self._sanitize_value(arg) for arg in args)

    @staticmethod
    def _sanitize_value(value: Any) -> Any:
        if isinstance(value, str):
            return sanitize_message(value)
        return value


def verbosity_to_level(verbose: int, default: str = "WARNING") -> int:
    """Map -v counts to a logging level (-v INFO, -vv DEBUG)."""
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    level = logging.getLevelNamesMapping().get(default.upper())
    return level if level is not None else logging.WARNING


def configure_rich_logging(
    level: int = logging.WARNING,
    format_string: str = "%(message)s",
    redact_secrets: bool = True,
    show_time: bool = True,
    show_path: bool = False,
    quiet_http: bool = True,
    console: Console | None = None,
) -> Console:
    """Configure the root logger with a Rich handler and secret-safe formatting.

    Args:
        level: Logging level
        format_string: Format string applied to the message part
        redact_secrets: Whether to sanitize messages
        show_time: Show the timestamp column
        show_path: Show the source location column
        quiet_http: Keep httpx/httpcore at WARNING regardless of `level`
        console: Console to share with regular output (a new one by default)

    Returns:
        The console the handler writes to
    """
    console = console or Console()
    handler = RichHandler(
        console=console,
        show_time=show_time,
        show_path=show_path,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(SafeLogFormatter(fmt=format_string, sanitize_messages=redact_secrets))

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        if isinstance(existing, RichHandler):
            root_logger.removeHandler(existing)
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING if quiet_http else level)

    return console


## Tests


def test_redact_value():
    assert redact_value("AQDx-refresh-token") == "AQDx***"
    assert redact_value("abc") == "***"


def test_redact_dict():
    data = {
        "spotify": {"client_id": "cid", "client_secret": "shhh-secret", "refresh_token": "AQDxyz"},
        "paths": {"state_path": ".cache/state.json"},
    }
    redacted = redact_dict(data)

    assert redacted["spotify"]["client_id"] == "cid"
    assert redacted["spotify"]["client_secret"] == "shhh***"
    assert redacted["spotify"]["refresh_token"] == "AQDx***"
    assert redacted["paths"]["state_path"] == ".cache/state.json"


def test_sanitize_message():
    msg = (
        "Authorization: Bearer BQDa9xyz.abc for user@example.com "
        "callback ?code=AQB123&state=xyz refresh_token=AQDsecret"
    )
    sanitized = sanitize_message(msg)

    assert "BQDa9xyz" not in sanitized
    assert "Bearer [REDACTED]" in sanitized
    assert "code=[REDACTED]&state=xyz" in sanitized
    assert "refresh_token=[REDACTED]" in sanitized
    assert "[EMAIL]" in sanitized


def test_safe_log_formatter_sanitizes_args():
    formatter = SafeLogFormatter(fmt="%(message)s")
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg="Header: %s",
        args=("Bearer abc.def",),
        exc_info=None,
    )

    assert formatter.format(record) == "Header: Bearer [REDACTED]"


def test_verbosity_to_level():
    assert verbosity_to_level(0) == logging.WARNING
    assert verbosity_to_level(0, "ERROR") == logging.ERROR
    assert verbosity_to_level(1) == logging.INFO
    assert verbosity_to_level(3) == logging.DEBUG
