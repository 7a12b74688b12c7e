"""Scrape window planning and the Europe/Warsaw clock.

The source serves song history in hour ranges of at most two hours within one
calendar day. Dates are exchanged in the source's DD-MM-YYYY form.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from zoneinfo import ZoneInfo

SOURCE_TIMEZONE = ZoneInfo("Europe/Warsaw")
SUPPORTED_WINDOW_HOURS = (1, 2)

_DATE_PATTERN = re.compile(r"^\d{2}-\d{2}-\d{4}$")


class WindowStatus(StrEnum):
    """Progress states reported while walking the planned windows."""

    WAITING = "waiting"
    SCRAPING = "scraping"
    SKIPPED = "skipped"
    FUTURE = "future"
    DONE = "done"


@dataclass(frozen=True)
class TimeWindow:
    """Hour range [from_hour, to_hour) within one day."""

    from_hour: int
    to_hour: int

    @property
    def key(self) -> str:
        """Key used in processed-window memory, e.g. ``"4-6"``."""
        return f"{self.from_hour}-{self.to_hour}"

    @property
    def label(self) -> str:
        return f"{self.from_hour:02d}:00-{self.to_hour:02d}:00"


def build_windows(from_hour: int, to_hour: int, window_hours: int) -> list[TimeWindow]:
    """
    Split [from_hour, to_hour) into consecutive windows of `window_hours`.

    The last window is clamped to `to_hour` and may be shorter.

    Raises:
        ValueError: If the hour range or window size is out of bounds
    """
    if not (0 <= from_hour < to_hour <= 24):
        raise ValueError(
            f"Invalid hour range {from_hour}-{to_hour}. Expected 0 <= from < to <= 24."
        )
    if window_hours not in SUPPORTED_WINDOW_HOURS:
        raise ValueError(
            f"Invalid window size {window_hours}. The source supports 1 or 2 hours per request."
        )

    return [
        TimeWindow(start, min(start + window_hours, to_hour))
        for start in range(from_hour, to_hour, window_hours)
    ]


def format_window_progress_text(
    completed: int, total: int, window: TimeWindow, status: WindowStatus
) -> str:
    percent = 100 if total == 0 else round(completed / total * 100)
    return f"Scraping windows {completed}/{total} ({percent}%) | {window.label} | {status}"


def parse_input_date(value: str) -> date:
    """
    Parse a DD-MM-YYYY date.

    Raises:
        ValueError: On malformed input or a date that does not exist
    """
    if not _DATE_PATTERN.match(value):
        raise ValueError(f"Invalid date format: {value}. Expected DD-MM-YYYY.")

    day, month, year = (int(part) for part in value.split("-"))
    try:
        return date(year, month, day)
    except ValueError:
        raise ValueError(f"Invalid calendar date: {value}. Expected a real DD-MM-YYYY date.") from None


def format_input_date(value: date) -> str:
    return value.strftime("%d-%m-%Y")


def format_date_for_display(value: str) -> str:
    """Render DD-MM-YYYY as e.g. "February 24, 2026"; unparsable input is returned as-is."""
    try:
        parsed = parse_input_date(value)
    except ValueError:
        return value
    return f"{parsed.strftime('%B')} {parsed.day}, {parsed.year}"


def format_duration(total_seconds: float) -> str:
    """Format seconds as "1h 2m 3s", dropping leading zero units."""
    if not math.isfinite(total_seconds):
        total_seconds = 0
    seconds_total = max(0, round(total_seconds))
    hours, rest = divmod(seconds_total, 3600)
    minutes, seconds = divmod(rest, 60)

    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


class WarsawClock:
    """
    Answers "is this window in the past/future" in the source's timezone.

    `now` is injectable so tests and the orchestrator can be driven
    deterministically.
    """

    def __init__(self, now: Callable[[], datetime] | None = None):
        self._now = now or (lambda: datetime.now(SOURCE_TIMEZONE))

    def now(self) -> datetime:
        current = self._now()
        if current.tzinfo is None:
            return current.replace(tzinfo=SOURCE_TIMEZONE)
        return current.astimezone(SOURCE_TIMEZONE)

    def today(self) -> str:
        return format_input_date(self.now().date())

    def _minutes_and_day(self) -> tuple[date, int]:
        current = self.now()
        return current.date(), current.hour * 60 + current.minute

    def is_window_fully_in_past(self, day: str, to_hour: int) -> bool:
        target = parse_input_date(day)
        today, now_minutes = self._minutes_and_day()
        if target < today:
            return True
        if target > today:
            return False
        return now_minutes >= to_hour * 60

    def is_window_fully_in_future(self, day: str, from_hour: int) -> bool:
        target = parse_input_date(day)
        today, now_minutes = self._minutes_and_day()
        if target > today:
            return True
        if target < today:
            return False
        return from_hour * 60 > now_minutes


## Tests


def test_build_windows_example():
    assert build_windows(0, 5, 2) == [TimeWindow(0, 2), TimeWindow(2, 4), TimeWindow(4, 5)]


def test_window_key_and_label():
    window = TimeWindow(4, 6)
    assert window.key == "4-6"
    assert window.label == "04:00-06:00"


def test_format_duration():
    assert format_duration(0) == "0s"
    assert format_duration(59) == "59s"
    assert format_duration(125) == "2m 5s"
    assert format_duration(3661) == "1h 1m 1s"
    assert format_duration(-5) == "0s"
    assert format_duration(float("nan")) == "0s"


def test_format_window_progress_text():
    text = format_window_progress_text(3, 12, TimeWindow(4, 6), WindowStatus.SCRAPING)
    assert text == "Scraping windows 3/12 (25%) | 04:00-06:00 | scraping"
