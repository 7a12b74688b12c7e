"""Tests for the retrying request layer against mocked transports."""

from __future__ import annotations

import httpx
import pytest
from freezegun import freeze_time

from odsluchane_sync.errors import RequestFailedError
from odsluchane_sync.fetch import RequestOptions, perform_request, retry_after_hint

URL = "https://example.test/resource"


@pytest.fixture
def client():
    with httpx.Client() as instance:
        yield instance


@pytest.fixture
def sleeps() -> list[float]:
    return []


def _get(client: httpx.Client, sleeps: list[float], attempts: int = 4) -> httpx.Response:
    return perform_request(
        client, "get", URL, options=RequestOptions(max_attempts=attempts), sleep=sleeps.append
    )


class TestNetworkFailures:
    def test_network_error_is_retried_with_linear_backoff(self, client, sleeps, httpx_mock):
        httpx_mock.add_exception(httpx.ConnectError("refused"))
        httpx_mock.add_exception(httpx.ReadTimeout("slow"))
        httpx_mock.add_response(url=URL, text="ok")

        response = _get(client, sleeps)

        assert response.text == "ok"
        assert sleeps == [1.5, 3.0]

    def test_last_network_error_is_wrapped(self, client, sleeps, httpx_mock):
        for _ in range(3):
            httpx_mock.add_exception(httpx.ConnectError("refused"))

        expected = "GET https://example.test/resource failed after 3 attempts"
        with pytest.raises(RequestFailedError, match=expected) as exc_info:
            _get(client, sleeps, attempts=3)

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert sleeps == [1.5, 3.0]

    def test_unexpected_error_on_last_attempt_propagates_unchanged(self, client, sleeps, httpx_mock):
        httpx_mock.add_exception(ValueError("boom"))

        with pytest.raises(ValueError, match="boom"):
            _get(client, sleeps, attempts=1)

        assert sleeps == []


class TestRateLimiting:
    def test_short_retry_after_is_honored(self, client, sleeps, httpx_mock):
        httpx_mock.add_response(url=URL, status_code=429, headers={"Retry-After": "2"})
        httpx_mock.add_response(url=URL, text="ok")

        assert _get(client, sleeps).status_code == 200
        assert sleeps == [2.0]

    def test_tiny_or_missing_retry_after_uses_minimum(self, client, sleeps, httpx_mock):
        httpx_mock.add_response(url=URL, status_code=429, headers={"Retry-After": "0.2"})
        httpx_mock.add_response(url=URL, status_code=429)
        httpx_mock.add_response(url=URL, text="ok")

        assert _get(client, sleeps).status_code == 200
        assert sleeps == [1.5, 1.5]

    @pytest.mark.parametrize("header", ["nan", "inf", "-inf"])
    def test_non_finite_retry_after_uses_minimum(self, client, sleeps, httpx_mock, header):
        httpx_mock.add_response(url=URL, status_code=429, headers={"Retry-After": header})
        httpx_mock.add_response(url=URL, text="ok")

        assert _get(client, sleeps).status_code == 200
        assert sleeps == [1.5]

    def test_non_finite_retry_after_hint_keeps_raw_value(self):
        response = httpx.Response(429, headers={"Retry-After": "nan"})
        assert retry_after_hint(response) == "retry-after: nan"

    @freeze_time("2026-02-24 12:00:00")
    def test_http_date_retry_after(self, client, sleeps, httpx_mock):
        httpx_mock.add_response(
            url=URL, status_code=429, headers={"Retry-After": "Tue, 24 Feb 2026 12:00:05 GMT"}
        )
        httpx_mock.add_response(url=URL, text="ok")

        assert _get(client, sleeps).status_code == 200
        assert sleeps == [5.0]

    def test_rate_limit_on_last_attempt_is_returned(self, client, sleeps, httpx_mock):
        httpx_mock.add_response(url=URL, status_code=429, headers={"Retry-After": "1"})

        response = _get(client, sleeps, attempts=1)

        assert response.status_code == 429
        assert retry_after_hint(response) == "retry-after: 1s or ~1s"
        assert sleeps == []


def test_client_errors_are_not_retried(client, sleeps, httpx_mock):
    httpx_mock.add_response(url=URL, status_code=404)

    assert _get(client, sleeps).status_code == 404
    assert sleeps == []


def test_hint_is_empty_for_other_statuses():
    response = httpx.Response(503, headers={"Retry-After": "5"})
    assert retry_after_hint(response) == ""
