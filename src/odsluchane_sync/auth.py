"""
Spotify authorization-code flow for obtaining a refresh token.

Runs a one-shot local HTTP listener on the redirect URI, sends the user to
Spotify's consent page and exchanges the returned code for tokens. The
refresh token is then written into the `.env` file.
"""

from __future__ import annotations

import base64
import html
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from urllib.parse import parse_qs, urlencode, urlparse

import httpx
from dotenv import set_key

from odsluchane_sync.errors import (
    AuthorizationError,
    ConfigurationError,
    RemoteServiceError,
    ResponseParseError,
)
from odsluchane_sync.fetch import RequestOptions, perform_request, retry_after_hint

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"
DEFAULT_AUTH_TIMEOUT_MS = 180_000

SPOTIFY_SCOPES = " ".join(
    [
        "playlist-read-private",
        "playlist-read-collaborative",
        "playlist-modify-private",
        "playlist-modify-public",
    ]
)

_PAGE_TEMPLATE = (
    "<!doctype html><html><body style=\"font-family:sans-serif;max-width:700px;"
    'margin:40px auto;padding:0 16px">{body}</body></html>'
)


@dataclass(frozen=True)
class TokenResponse:
    access_token: str
    expires_in: int
    refresh_token: str | None = None
    scope: str | None = None


@dataclass(frozen=True)
class CallbackAddress:
    """Where the local listener binds, derived from the redirect URI."""

    hostname: str
    port: int
    path: str

    @classmethod
    def from_redirect_uri(cls, redirect_uri: str) -> CallbackAddress:
        """
        Raises:
            ConfigurationError: If the redirect URI is not a plain http:// URL
        """
        parsed = urlparse(redirect_uri)
        if parsed.scheme != "http" or not parsed.hostname:
            raise ConfigurationError(
                "SPOTIFY_REDIRECT_URI must use http:// for local listener flow. "
                f"Current: {redirect_uri}"
            )
        return cls(hostname=parsed.hostname, port=parsed.port or 80, path=parsed.path or "/")


def _require(name: str, value: str | None) -> str:
    if not value or not value.strip():
        raise ConfigurationError(f"Missing required env var: {name}")
    return value


def build_spotify_auth_url(client_id: str | None, redirect_uri: str) -> str:
    params = urlencode(
        {
            "client_id": _require("SPOTIFY_CLIENT_ID", client_id),
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "scope": SPOTIFY_SCOPES,
        }
    )
    return f"{AUTHORIZE_URL}?{params}"


def exchange_authorization_code(
    code: str,
    redirect_uri: str,
    client_id: str | None,
    client_secret: str | None,
    client: httpx.Client | None = None,
    options: RequestOptions | None = None,
) -> TokenResponse:
    """
    Exchange an authorization code for access and refresh tokens.

    Raises:
        RemoteServiceError: If Spotify rejects the exchange
        ResponseParseError: If the token response is malformed
    """
    credentials = (
        f"{_require('SPOTIFY_CLIENT_ID', client_id)}:"
        f"{_require('SPOTIFY_CLIENT_SECRET', client_secret)}"
    )
    b64_credentials = base64.b64encode(credentials.encode()).decode()

    owns_client = client is None
    http_client = client or httpx.Client(timeout=30.0)
    try:
        response = perform_request(
            http_client,
            "POST",
            TOKEN_URL,
            options=options,
            headers={
                "Authorization": f"Basic {b64_credentials}",
                "Content-Type": "application/x-www-form-urlencoded",
            },
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            },
        )
    finally:
        if owns_client:
            http_client.close()

    if not response.is_success:
        hint = retry_after_hint(response)
        hint_suffix = f" ({hint})" if hint else ""
        raise RemoteServiceError(
            f"Token exchange failed ({response.status_code}){hint_suffix}: {response.text[:400]}",
            response.status_code,
        )

    try:
        data = response.json()
        return TokenResponse(
            access_token=data["access_token"],
            expires_in=int(data["expires_in"]),
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope"),
        )
    except (ValueError, KeyError, TypeError) as e:
        raise ResponseParseError(f"Unexpected Spotify token response: {e}") from e


class _CallbackHandler(BaseHTTPRequestHandler):
    """Answers the OAuth redirect and stores the outcome on the server."""

    server: _CallbackServer

    def do_GET(self) -> None:  # noqa: N802
        parsed = urlparse(self.path)
        if parsed.path != self.server.callback_path:
            self.send_response(404)
            self.send_header("Content-Type", "text/plain; charset=utf-8")
            self.end_headers()
            self.wfile.write(b"Not found")
            return

        query = parse_qs(parsed.query)
        if error := (query.get("error") or [""])[0]:
            self._write_page(
                400, f"<h1>Authorization failed</h1><p>{html.escape(error, quote=True)}</p>"
            )
            self.server.error = AuthorizationError(f"Spotify authorization failed: {error}")
            return

        code = (query.get("code") or [""])[0]
        if not code:
            self._write_page(
                400,
                "<h1>Missing code</h1><p>No authorization code found in callback query string.</p>",
            )
            self.server.error = AuthorizationError('Missing "code" parameter in Spotify callback.')
            return

        self._write_page(
            200,
            "<h1>Authorization received</h1>"
            "<p>You can close this tab and return to your terminal.</p>",
        )
        self.server.code = code

    def _write_page(self, status: int, body: str) -> None:
        payload = _PAGE_TEMPLATE.format(body=body).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format: str, *args: object) -> None:
        logger.debug(f"OAuth callback: {format % args}")


class _CallbackServer(HTTPServer):
    def __init__(self, address: CallbackAddress):
        super().__init__((address.hostname, address.port), _CallbackHandler)
        self.callback_path = address.path
        self.code: str | None = None
        self.error: AuthorizationError | None = None


def wait_for_authorization_code(
    address: CallbackAddress,
    timeout_ms: int = DEFAULT_AUTH_TIMEOUT_MS,
    on_listening: Callable[[], None] | None = None,
) -> str:
    """
    Serve the callback URL until Spotify redirects back or the timeout expires.

    Requests to other paths get a 404 and keep the listener running.

    Raises:
        AuthorizationError: On an error callback, a missing code or timeout
    """
    deadline = time.monotonic() + timeout_ms / 1000
    with _CallbackServer(address) as server:
        if on_listening is not None:
            on_listening()

        while True:
            if server.error is not None:
                raise server.error
            if server.code is not None:
                return server.code
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise AuthorizationError(
                    f"Authorization timed out after {round(timeout_ms / 1000)} seconds."
                )
            server.timeout = remaining
            server.handle_request()


def save_refresh_token_to_env(refresh_token: str, env_path: Path) -> None:
    """Insert or replace SPOTIFY_REFRESH_TOKEN in the env file, creating it if needed."""
    env_path.parent.mkdir(parents=True, exist_ok=True)
    env_path.touch(exist_ok=True)
    set_key(env_path, "SPOTIFY_REFRESH_TOKEN", refresh_token, quote_mode="never")


## Tests


def test_callback_address_from_redirect_uri():
    address = CallbackAddress.from_redirect_uri("http://127.0.0.1:8888/callback")
    assert address == CallbackAddress("127.0.0.1", 8888, "/callback")


def test_callback_address_requires_http():
    import pytest

    with pytest.raises(ConfigurationError, match="http://"):
        CallbackAddress.from_redirect_uri("https://example.com/callback")


def test_build_spotify_auth_url():
    url = build_spotify_auth_url("cid", "http://127.0.0.1:8888/callback")
    query = parse_qs(urlparse(url).query)
    assert url.startswith(AUTHORIZE_URL)
    assert query["client_id"] == ["cid"]
    assert query["response_type"] == ["code"]
    assert query["scope"] == [SPOTIFY_SCOPES]


def test_save_refresh_token_replaces_existing_value(tmp_path):
    env_path = tmp_path / ".env"
    env_path.write_text("SPOTIFY_CLIENT_ID=cid\nSPOTIFY_REFRESH_TOKEN=old\n", encoding="utf-8")

    save_refresh_token_to_env("new-token", env_path)

    lines = env_path.read_text(encoding="utf-8").splitlines()
    assert "SPOTIFY_CLIENT_ID=cid" in lines
    assert "SPOTIFY_REFRESH_TOKEN=new-token" in lines
    assert "SPOTIFY_REFRESH_TOKEN=old" not in lines
