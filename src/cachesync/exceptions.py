"""Custom exceptions for the cachesync fetch/reconcile/write workflow."""

from __future__ import annotations


class CacheSyncError(Exception):
    """Base exception for cachesync errors."""

    pass


class FetchError(CacheSyncError):
    """Raised when the cache search fails.

    Fatal for a reconciliation run: nothing is written to the sheet.
    """


class NoteFetchError(CacheSyncError):
    """Raised when a personal cache note cannot be fetched.

    Recovered locally by the normalizer, which substitutes an empty note.
    """

    def __init__(self, code: str, reason: str) -> None:
        self.code = code
        self.reason = reason
        super().__init__(f"Could not fetch note for {code}: {reason}")


class TransportError(CacheSyncError):
    """Base exception for HTTP transport errors."""


class AuthenticationError(TransportError):
    """Raised when authentication fails (401)."""


class CredentialsError(CacheSyncError):
    """Raised when a Sheets access token cannot be minted from the service account key."""


class NotFoundError(TransportError):
    """Raised when the spreadsheet or worksheet is not found (404)."""


class APIError(TransportError):
    """Raised when the API returns an error."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(APIError):
    """Raised when the remote service is throttling requests.

    Google Sheets answers 429 when a per-minute quota is hit and frequently
    403 when a per-user quota is exhausted; both are raised as this class.
    It is the only error the retry executor retries.
    """


class RetriesExhaustedError(CacheSyncError):
    """Raised when a call is still rate limited after every retry attempt."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Failed after {attempts} attempts: {last_error}")
