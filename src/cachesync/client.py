"""SyncClient - Main API for cachesync.

Provides `sync_region`, `sync_all` and `search` over an injected Fetcher and a
factory producing one Store per region worksheet.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from loguru import logger

from cachesync.config import Settings
from cachesync.exceptions import CacheSyncError, FetchError, RetriesExhaustedError
from cachesync.fetcher import Fetcher
from cachesync.logging import region_context
from cachesync.lookups import DEFAULT_LOOKUPS, Lookups
from cachesync.models import Coordinates, Geocache
from cachesync.normalizer import Clock, RowNormalizer
from cachesync.reconciler import DEFAULT_BATCH_SIZE, Reconciler, SyncResult
from cachesync.retry import RetryPolicy
from cachesync.search import (
    DEFAULT_RADIUS,
    SearchCriteria,
    UNSOLVED_RADIUS,
    default_criteria,
    filter_unsolved,
    solved_criteria,
    unsolved_criteria,
)
from cachesync.store import Store

StoreFactory = Callable[[str], Store]


class UnknownRegionError(CacheSyncError):
    """Raised when a region ID is not in the region table."""

    def __init__(self, region_id: str) -> None:
        self.region_id = region_id
        super().__init__(f"Unknown region ID: {region_id}")


class SyncClient:
    """Client tying the search service to per-region worksheets.

    Each region syncs into its own worksheet, titled with the region name, so
    runs for different regions never share row positions.

    Example:
        >>> client = SyncClient(fetcher, home, store_factory=lambda name: MemoryStore())
        >>> result = client.sync_region("54")
        >>> print(result.summary())
    """

    def __init__(
        self,
        fetcher: Fetcher,
        home: Coordinates,
        *,
        store_factory: StoreFactory | None = None,
        lookups: Lookups = DEFAULT_LOOKUPS,
        retry: RetryPolicy | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Clock = datetime.now,
        username: str | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            fetcher: Search service
            home: Distance origin and search centre
            store_factory: Builds the Store for a worksheet title; required
                for syncing, not for searching
            lookups: Code-to-name tables
            retry: Policy wrapping every remote call
            batch_size: Write batch threshold
            clock: Source of Last Updated timestamps
            username: Excluded via "not found by" in searches around home
        """
        self._fetcher = fetcher
        self._store_factory = store_factory
        self._home = home
        self._lookups = lookups
        self._retry = retry or RetryPolicy()
        self._batch_size = batch_size
        self._clock = clock
        self._username = username

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        fetcher: Fetcher,
        store_factory: StoreFactory | None = None,
    ) -> SyncClient:
        return cls(
            fetcher,
            settings.home,
            store_factory=store_factory,
            retry=RetryPolicy(
                max_attempts=settings.max_retries,
                max_backoff=settings.max_backoff_seconds,
            ),
            batch_size=settings.batch_size,
            username=settings.geocaching_username or None,
        )

    @property
    def lookups(self) -> Lookups:
        return self._lookups

    def sync_region(self, region_id: str) -> SyncResult:
        """Sync caches with corrected coordinates in one region.

        Raises:
            UnknownRegionError: If the region ID is not known
            FetchError: If the search fails
        """
        region = self._lookups.region_name(region_id)
        if region is None:
            raise UnknownRegionError(region_id)
        if self._store_factory is None:
            raise CacheSyncError("No store configured for syncing")

        with region_context(region):
            logger.info(f"Syncing solved caches for region: {region}")
            store = self._store_factory(region)
            try:
                reconciler = Reconciler(
                    self._fetcher,
                    store,
                    RowNormalizer(self._lookups, self._home, self._clock),
                    self._retry,
                    self._batch_size,
                )
                return reconciler.run(solved_criteria(region_id))
            finally:
                store.close()

    def sync_all(self) -> dict[str, SyncResult | CacheSyncError]:
        """Sync every known region in turn; one failing region doesn't stop the rest."""
        results: dict[str, SyncResult | CacheSyncError] = {}
        for region_id, region in self._lookups.regions.items():
            try:
                results[region_id] = self.sync_region(region_id)
            except CacheSyncError as e:
                logger.error(f"Failed to sync region {region}: {e}")
                results[region_id] = e
        return results

    def search(self, radius: int = DEFAULT_RADIUS) -> list[Geocache]:
        """Standard caches around home."""
        criteria = default_criteria(self._home, radius, self._username)
        caches = self._search(criteria)
        logger.info(f"Found {len(caches)} caches")
        return caches

    def search_unsolved(self, radius: int = UNSOLVED_RADIUS) -> list[Geocache]:
        """Unsolved puzzle caches around home, bonus and challenge caches removed."""
        criteria = unsolved_criteria(self._home, radius, self._username)
        caches = filter_unsolved(self._search(criteria), self._lookups)
        logger.info(f"Found {len(caches)} unsolved caches")
        return caches

    def _search(self, criteria: SearchCriteria) -> list[Geocache]:
        try:
            return self._retry.call(self._fetcher.search, criteria)
        except RetriesExhaustedError as e:
            raise FetchError(
                f"Search still rate limited after {e.attempts} attempts"
            ) from e
