"""Exception hierarchy for odsluchane-sync.

Transient failures are retried inside `odsluchane_sync.fetch`; everything that
reaches the caller is one of the errors below and ends the current run.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for all errors surfaced to the CLI."""


class ConfigurationError(SyncError):
    """Missing credentials, invalid option values or unmapped stations."""


class RequestFailedError(SyncError):
    """Transport-level failure that persisted after every retry attempt."""


class RemoteServiceError(SyncError):
    """A remote service answered with a non-success status code."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class ResponseParseError(SyncError):
    """A response body could not be decoded or had an unexpected shape."""


class ScrapeError(SyncError):
    """The song-history source could not be fetched or parsed."""


class AuthorizationError(SyncError):
    """The OAuth authorization flow failed or timed out."""


class EmptyCandidatesError(SyncError):
    """Scoring was requested for an empty candidate list."""
