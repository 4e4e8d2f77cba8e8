"""Fetcher layer for cache search results.

Defines the Fetcher protocol and implementations:
- GeocachingFetcher: Production fetcher using the geocaching.com web API
- LocalFileFetcher: Test fetcher reading from local golden files
"""

from __future__ import annotations

import json
import re
import ssl
from abc import ABC, abstractmethod
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import Any

import certifi
import httpx
from loguru import logger

from cachesync.exceptions import (
    APIError,
    AuthenticationError,
    FetchError,
    NoteFetchError,
    NotFoundError,
    RateLimitedError,
    TransportError,
)
from cachesync.models import Geocache
from cachesync.search import SearchCriteria

# API constants
DEFAULT_BASE_URL = "https://www.geocaching.com"
SIGNIN_PATH = "/account/signin"
TOKEN_PATH = "/account/oauth/token"
SEARCH_PATH = "/api/proxy/web/search/v2"
NOTE_PATH = "/api/proxy/web/v1/geocaches/{code}/notes"
DEFAULT_TIMEOUT = 60
PAGE_SIZE = 500

_VERIFICATION_TOKEN = re.compile(
    r'name="__RequestVerificationToken"[^>]*value="([^"]+)"'
)


class Fetcher(ABC):
    """Abstract base class for the cache search service."""

    @abstractmethod
    def search(self, criteria: SearchCriteria) -> list[Geocache]:
        """Fetch every cache matching the criteria.

        Implementations own pagination.

        Raises:
            FetchError: If the search fails
            RateLimitedError: If the service is throttling (retryable)
        """
        ...

    @abstractmethod
    def fetch_note(self, cache: Geocache) -> str:
        """Fetch the caller's personal note for a cache.

        Raises:
            NoteFetchError: If the note cannot be fetched
            RateLimitedError: If the service is throttling (retryable)
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Close any open connections."""
        ...


class GeocachingFetcher(Fetcher):
    """Production fetcher that signs in to geocaching.com and uses its web API.

    Signs in with a username and password on first use, then exchanges the
    session cookie for a bearer token accepted by the API proxy.
    """

    def __init__(
        self,
        username: str,
        password: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: int = DEFAULT_TIMEOUT,
        page_size: int = PAGE_SIZE,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            username: geocaching.com username or email
            password: geocaching.com password
            base_url: Site root, overridable for testing
            timeout: Request timeout in seconds
            page_size: Results requested per search page
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self._username = username
        self._password = password
        self._page_size = page_size
        self._authenticated = False
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            verify=ssl_context,
            follow_redirects=True,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    def search(self, criteria: SearchCriteria) -> list[Geocache]:
        """Page through the search API until every result is fetched."""
        try:
            self._ensure_authenticated()
            caches: list[Geocache] = []
            skip = 0
            while True:
                params = criteria.to_params() + [
                    ("take", str(self._page_size)),
                    ("skip", str(skip)),
                ]
                response = self._request("GET", SEARCH_PATH, params=params)
                results = response.get("results") or []
                caches.extend(Geocache.from_dict(item) for item in results)
                skip += len(results)

                total = response.get("total", 0)
                if len(results) < self._page_size or skip >= total:
                    break
        except RateLimitedError:
            raise
        except TransportError as e:
            raise FetchError(f"Search failed: {e}") from e
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise FetchError(f"Malformed search response: {e}") from e

        logger.debug(f"Search returned {len(caches)} caches")
        return caches

    def fetch_note(self, cache: Geocache) -> str:
        """Fetch the personal note for a cache."""
        try:
            self._ensure_authenticated()
            response = self._request("GET", NOTE_PATH.format(code=cache.code))
        except RateLimitedError:
            raise
        except TransportError as e:
            raise NoteFetchError(cache.code, str(e)) from e
        note = response.get("note")
        return note if isinstance(note, str) else ""

    def _ensure_authenticated(self) -> None:
        if self._authenticated:
            return

        try:
            signin = self._client.get(SIGNIN_PATH)
            match = _VERIFICATION_TOKEN.search(signin.text)
            if not match:
                raise AuthenticationError("Sign-in page has no verification token")

            response = self._client.post(
                SIGNIN_PATH,
                data={
                    "UsernameOrEmail": self._username,
                    "Password": self._password,
                    "__RequestVerificationToken": match.group(1),
                },
            )
        except httpx.RequestError as e:
            raise TransportError(f"Network error: {e}") from e
        if response.status_code >= 400:
            raise AuthenticationError(f"Sign-in failed ({response.status_code})")

        token = self._request("GET", TOKEN_PATH).get("access_token")
        if not token:
            raise AuthenticationError("Invalid username or password")

        self._client.headers["Authorization"] = f"Bearer {token}"
        self._authenticated = True
        logger.debug(f"Signed in to geocaching.com as {self._username}")

    def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        """Make a request and decode the JSON body."""
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
            result = response.json()
            if not isinstance(result, dict):
                raise TransportError(f"Expected a JSON object from {url}")
            return result
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 429:
                raise RateLimitedError(
                    "Too many requests to geocaching.com", status_code=status
                ) from e
            if status in (401, 403):
                self._authenticated = False
                raise AuthenticationError("Not signed in to geocaching.com") from e
            if status == 404:
                raise NotFoundError(f"Not found: {url}") from e
            body = e.response.text
            raise APIError(f"API error ({status}): {body}", status_code=status) from e
        except httpx.RequestError as e:
            raise TransportError(f"Network error: {e}") from e
        except json.JSONDecodeError as e:
            raise TransportError(f"Invalid JSON from {url}: {e}") from e

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()


class LocalFileFetcher(Fetcher):
    """Test fetcher that reads from local golden files.

    Expected directory structure:
        golden_dir/
            search.json   {"results": [...]} in the search API shape
            notes.json    {"<code>": "<note>", ...} (optional)

    Every criteria passed to search() is recorded in `searches`.
    """

    def __init__(self, golden_dir: Path) -> None:
        """Initialize the fetcher.

        Args:
            golden_dir: Directory containing golden test files
        """
        self._golden_dir = golden_dir
        self.searches: list[SearchCriteria] = []

    def search(self, criteria: SearchCriteria) -> list[Geocache]:
        """Read search results from local file."""
        self.searches.append(criteria)
        path = self._golden_dir / "search.json"
        if not path.exists():
            raise FetchError(f"Golden file not found: {path}")
        response = json.loads(path.read_text())
        return [Geocache.from_dict(item) for item in response.get("results", [])]

    def fetch_note(self, cache: Geocache) -> str:
        """Read a note from local file."""
        path = self._golden_dir / "notes.json"
        notes = json.loads(path.read_text()) if path.exists() else {}
        if cache.code not in notes:
            raise NoteFetchError(cache.code, "no note in golden file")
        return str(notes[cache.code])

    def close(self) -> None:
        """No-op for local file fetcher."""
        pass
