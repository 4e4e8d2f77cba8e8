"""Sheets access tokens minted from a service account key file."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import timezone
from pathlib import Path
from typing import Any

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from loguru import logger

from cachesync.exceptions import CredentialsError

SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

# Refresh this long before the reported expiry
EXPIRY_MARGIN_SECONDS = 60


@dataclass(frozen=True)
class Token:
    """A bearer token for the Sheets API and the account it was issued to."""

    access_token: str
    service_account_email: str
    expires_at: float

    @classmethod
    def from_credentials(cls, credentials: Any) -> Token:
        # google-auth reports expiry as a naive UTC datetime
        expiry = credentials.expiry
        return cls(
            access_token=credentials.token,
            service_account_email=credentials.service_account_email,
            expires_at=expiry.replace(tzinfo=timezone.utc).timestamp() if expiry else 0.0,
        )

    def remaining(self, now: float | None = None) -> int:
        """Whole seconds left before expiry, never negative."""
        now = time.time() if now is None else now
        return max(0, int(self.expires_at - now))

    def is_valid(self, margin: int = EXPIRY_MARGIN_SECONDS, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return now < self.expires_at - margin


def get_service_account_token(path: str | Path) -> Token:
    """Load a service account key and refresh it into a Sheets token.

    Raises:
        FileNotFoundError: If the key file does not exist
        CredentialsError: If the key is malformed or Google rejects the refresh
    """
    key_file = Path(path)
    if not key_file.is_file():
        raise FileNotFoundError(f"Service account file not found: {key_file}")

    try:
        credentials = service_account.Credentials.from_service_account_file(
            str(key_file), scopes=SHEETS_SCOPES
        )
        credentials.refresh(Request())
    except (GoogleAuthError, ValueError) as e:
        raise CredentialsError(f"Could not get a Sheets token from {key_file}: {e}") from e
    token = Token.from_credentials(credentials)
    logger.debug(
        f"Sheets token for {token.service_account_email} "
        f"valid for {token.remaining()}s"
    )
    return token
