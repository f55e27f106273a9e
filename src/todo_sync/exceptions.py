"""Exception hierarchy for todo_sync.

Only credential and transport problems are raised as exceptions.  The
remote gateway converts everything it sees into typed outcomes, so code
above it never needs to catch ``DropboxApiError`` directly.
"""

from __future__ import annotations


class TodoSyncError(Exception):
    """Base exception for all todo_sync errors."""


class DropboxApiError(TodoSyncError):
    """A Dropbox HTTP endpoint answered with an error.

    Attributes:
        status_code: HTTP status code of the response.
        error_summary: Dropbox ``error_summary`` string (for example
            ``"path/not_found/.."``) or the OAuth ``error`` code.
    """

    def __init__(
        self,
        status_code: int,
        error_summary: str,
        message: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.error_summary = error_summary or ""
        super().__init__(
            message or f"Dropbox API error {status_code}: {error_summary}"
        )

    @property
    def is_invalid_token(self) -> bool:
        """True for revoked, expired or malformed access tokens."""
        if self.status_code == 401:
            return True
        return self.error_summary.startswith(
            ("invalid_access_token", "expired_access_token")
        )

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 409 and "not_found" in self.error_summary

    @property
    def is_conflict(self) -> bool:
        return self.status_code == 409 and "conflict" in self.error_summary


class CredentialError(TodoSyncError):
    """No usable Dropbox credential is available."""


class NoCredentialError(CredentialError):
    """Neither an access token nor a refresh token is stored."""


class RefreshFailedError(CredentialError):
    """The refresh token was rejected or the refresh call failed.

    The session has already been logged out when this is raised.
    """
