"""Resilient HTTP request layer.

Wraps a single outbound call with a per-attempt timeout, linear backoff for
network failures and 5xx answers, and Retry-After handling for 429s. Both the
song-history scraper and the Spotify client go through `perform_request`.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from odsluchane_sync.errors import RequestFailedError
from odsluchane_sync.windows import format_duration

logger = logging.getLogger(__name__)

MIN_RETRY_AFTER_S = 1.5
MAX_RETRY_AFTER_S = 10.0
BACKOFF_STEP_S = 1.5
DEFAULT_MAX_ATTEMPTS = 4
DEFAULT_TIMEOUT_S = 30.0


@dataclass(frozen=True)
class RequestOptions:
    """
    Attempt budget and timeout for one logical request.

    `timeout_s` is passed to httpx as its connect, read, write and pool
    timeout, so it bounds each phase of an attempt rather than its total
    duration.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    timeout_s: float = DEFAULT_TIMEOUT_S


class _Retry(Exception):
    def __init__(self, delay_s: float, reason: str):
        super().__init__(reason)
        self.delay_s = delay_s
        self.reason = reason


def backoff_delay(attempt: int) -> float:
    """Delay before retrying after the given 1-based attempt failed."""
    return max(attempt * BACKOFF_STEP_S, MIN_RETRY_AFTER_S)


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """
    Parse a Retry-After header into seconds.

    Accepts delta-seconds or an HTTP date. Returns None when the header is
    missing, unparseable or not a finite number.
    """
    if not value:
        return None

    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        return seconds if math.isfinite(seconds) else None

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=UTC)

    now = now or datetime.now(UTC)
    return (retry_at - now).total_seconds()


def retry_after_delay(response: httpx.Response) -> float:
    """Delay requested by a 429 response, clamped to the minimum backoff."""
    seconds = parse_retry_after(response.headers.get("retry-after"))
    if seconds is None:
        return MIN_RETRY_AFTER_S
    return max(seconds, MIN_RETRY_AFTER_S)


def retry_after_hint(response: httpx.Response) -> str:
    """Human-readable Retry-After summary for 429 error messages."""
    if response.status_code != 429:
        return ""

    raw = response.headers.get("retry-after")
    if not raw:
        return ""

    seconds = parse_retry_after(raw)
    if seconds is None:
        return f"retry-after: {raw}"

    return f"retry-after: {raw}s or ~{format_duration(max(0, round(seconds)))}"


def perform_request(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    options: RequestOptions | None = None,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> httpx.Response:
    """
    Perform an HTTP request with retries.

    Non-final attempts retry on transport errors, unexpected exceptions and
    5xx answers (linear backoff), and on 429 when the requested wait is at
    most `MAX_RETRY_AFTER_S`. A longer 429 wait is returned to the caller
    as-is. The final attempt's outcome is returned or raised unchanged,
    except that transport errors are wrapped in `RequestFailedError`.
    """
    options = options or RequestOptions()
    total_attempts = max(1, options.max_attempts)
    method = method.upper()
    timeout = httpx.Timeout(options.timeout_s)

    for attempt in range(1, total_attempts + 1):
        is_last = attempt >= total_attempts
        logger.debug(f"HTTP request {method} {url} (attempt {attempt}/{total_attempts})")

        try:
            try:
                response = client.request(method, url, timeout=timeout, **kwargs)
            except Exception as e:
                if is_last:
                    if isinstance(e, httpx.TransportError):
                        raise RequestFailedError(
                            f"{method} {url} failed after {total_attempts} attempts: {e}"
                        ) from e
                    raise
                raise _Retry(backoff_delay(attempt), "network failure") from e

            logger.debug(f"HTTP response {response.status_code} {method} {url}")

            if response.status_code == 429 and not is_last:
                delay_s = retry_after_delay(response)
                if delay_s > MAX_RETRY_AFTER_S:
                    logger.info(
                        f"Rate-limited for {delay_s:.0f}s on {method} {url}; not waiting inline"
                    )
                    return response
                raise _Retry(delay_s, "rate-limited")

            if response.status_code >= 500 and not is_last:
                raise _Retry(backoff_delay(attempt), "5xx")

            return response

        except _Retry as retry:
            logger.debug(
                f"HTTP retry scheduled in {retry.delay_s * 1000:.0f}ms ({retry.reason}) {method} {url}"
            )
            sleep(retry.delay_s)

    raise AssertionError("unreachable")  # pragma: no cover


## Tests


def _mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_backoff_delay():
    assert backoff_delay(1) == 1.5
    assert backoff_delay(2) == 3.0
    assert backoff_delay(0) == 1.5


def test_parse_retry_after_seconds_and_date():
    assert parse_retry_after("3") == 3.0
    assert parse_retry_after(None) is None
    assert parse_retry_after("soon") is None
    assert parse_retry_after("nan") is None

    now = datetime(2026, 2, 24, 12, 0, 0, tzinfo=UTC)
    assert parse_retry_after("Tue, 24 Feb 2026 12:00:20 GMT", now=now) == 20.0


def test_retries_server_errors_then_succeeds():
    calls: list[int] = []
    sleeps: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, text="ok")

    with _mock_client(handler) as client:
        response = perform_request(client, "GET", "https://example.test/", sleep=sleeps.append)

    assert response.status_code == 200
    assert sleeps == [1.5, 3.0]


def test_final_attempt_returns_server_error():
    sleeps: list[float] = []

    with _mock_client(lambda request: httpx.Response(500)) as client:
        response = perform_request(
            client,
            "GET",
            "https://example.test/",
            options=RequestOptions(max_attempts=2),
            sleep=sleeps.append,
        )

    assert response.status_code == 500
    assert sleeps == [1.5]


def test_long_retry_after_is_returned_without_waiting():
    sleeps: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, headers={"Retry-After": "60"})

    with _mock_client(handler) as client:
        response = perform_request(client, "GET", "https://example.test/", sleep=sleeps.append)

    assert response.status_code == 429
    assert sleeps == []
