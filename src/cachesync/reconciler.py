"""Reconciler - brings the worksheet in line with the latest search results.

One run is: fetch -> normalize -> diff against the sheet snapshot -> flush.
Rows are only ever appended or overwritten in place, never deleted, and a run
that is repeated against unchanged data writes nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Callable, Sequence

from loguru import logger

from cachesync.diff import changed_fields
from cachesync.exceptions import CacheSyncError, FetchError, RetriesExhaustedError
from cachesync.fetcher import Fetcher
from cachesync.models import HEADER, CacheRow, ExistingRow, Geocache
from cachesync.normalizer import RowNormalizer
from cachesync.retry import RetryPolicy
from cachesync.search import SearchCriteria
from cachesync.store import Store

DEFAULT_BATCH_SIZE = 500


class SyncState(str, Enum):
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    DIFFING = "diffing"
    FLUSHING = "flushing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SyncResult:
    """Outcome of a reconciliation run."""

    state: SyncState = SyncState.FETCHING
    fetched: int = 0
    added: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed_batches: int = 0
    failed_rows: int = 0

    @property
    def success(self) -> bool:
        return self.state == SyncState.DONE and self.failed_batches == 0

    def summary(self) -> str:
        text = (
            f"{self.added} added, {self.updated} updated, "
            f"{self.unchanged} unchanged, {self.skipped} skipped"
        )
        if self.failed_batches:
            text += (
                f", {self.failed_batches} failed batch(es) "
                f"covering {self.failed_rows} row(s)"
            )
        return text


class Reconciler:
    """Runs one reconciliation of search results into a Store.

    Example:
        >>> reconciler = Reconciler(fetcher, store, normalizer, RetryPolicy())
        >>> result = reconciler.run(solved_criteria("54"))
        >>> print(result.summary())

    Args:
        fetcher: Source of search results and notes
        store: Target worksheet
        normalizer: Builds rows from search results
        retry: Policy wrapping every remote call
        batch_size: Queue length that triggers a write
    """

    def __init__(
        self,
        fetcher: Fetcher,
        store: Store,
        normalizer: RowNormalizer,
        retry: RetryPolicy | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._fetcher = fetcher
        self._store = store
        self._normalizer = normalizer
        self._retry = retry or RetryPolicy()
        self._batch_size = batch_size
        self._state = SyncState.FETCHING

    @property
    def state(self) -> SyncState:
        return self._state

    def run(self, criteria: SearchCriteria) -> SyncResult:
        """Reconcile the store against the caches matching `criteria`.

        Raises:
            FetchError: If the search fails; nothing has been written
            CacheSyncError: If the worksheet cannot be prepared or read;
                nothing has been written
        """
        result = SyncResult()
        self._state = SyncState.FETCHING

        caches = self._fetch(criteria)
        result.fetched = len(caches)
        logger.info(f"Found {len(caches)} caches")

        existing = self._read_snapshot()
        logger.debug(f"Sheet holds {len(existing)} rows")

        appends: list[CacheRow] = []
        updates: list[tuple[int, CacheRow]] = []
        fetch_note = partial(self._retry.call, self._fetcher.fetch_note)

        for cache in _latest_by_code(caches):
            self._state = SyncState.NORMALIZING
            row = self._normalizer.normalize(cache, existing, fetch_note)
            if row is None:
                result.skipped += 1
                continue

            self._state = SyncState.DIFFING
            current = existing.get(row.code)
            if current is None:
                appends.append(row)
            else:
                changed = changed_fields(current.row, row)
                if not changed:
                    result.unchanged += 1
                    continue
                logger.debug(f"{row.code}: changed {', '.join(changed)}")
                updates.append((current.position, row))

            if len(appends) >= self._batch_size:
                self._flush_appends(appends, result)
                appends = []
            if len(updates) >= self._batch_size:
                self._flush_updates(updates, result)
                updates = []

        if appends:
            self._flush_appends(appends, result)
        if updates:
            self._flush_updates(updates, result)

        self._extend_coverage()

        self._state = SyncState.DONE
        result.state = self._state
        logger.info(f"Sync complete: {result.summary()}")
        return result

    def _fetch(self, criteria: SearchCriteria) -> list[Geocache]:
        try:
            return self._retry.call(self._fetcher.search, criteria)
        except RetriesExhaustedError as e:
            self._state = SyncState.FAILED
            raise FetchError(
                f"Search still rate limited after {e.attempts} attempts"
            ) from e
        except FetchError as e:
            self._state = SyncState.FAILED
            logger.error(f"Search failed: {e}")
            raise

    def _read_snapshot(self) -> dict[str, ExistingRow]:
        # No write may happen without a snapshot, so failures here are fatal.
        try:
            self._retry.call(self._store.ensure_target_ready, HEADER)
            return self._retry.call(self._store.get_existing_rows)
        except CacheSyncError as e:
            self._state = SyncState.FAILED
            logger.error(f"Could not read existing rows: {e}")
            raise

    def _flush_appends(self, rows: Sequence[CacheRow], result: SyncResult) -> None:
        if self._write(self._store.append_rows, list(rows), "appended"):
            result.added += len(rows)
        else:
            result.failed_batches += 1
            result.failed_rows += len(rows)

    def _flush_updates(
        self, updates: Sequence[tuple[int, CacheRow]], result: SyncResult
    ) -> None:
        if self._write(self._store.update_rows, list(updates), "updated"):
            result.updated += len(updates)
        else:
            result.failed_batches += 1
            result.failed_rows += len(updates)

    def _write(self, write: Callable[[list], None], batch: list, label: str) -> bool:
        """Flush one batch. A failed batch is logged and the run carries on."""
        self._state = SyncState.FLUSHING
        try:
            self._retry.call(write, batch)
        except CacheSyncError as e:
            logger.error(f"Batch of {len(batch)} rows not {label}: {e}")
            return False
        logger.info(f"{label.capitalize()} {len(batch)} rows")
        return True

    def _extend_coverage(self) -> None:
        try:
            self._retry.call(self._store.extend_coverage, len(HEADER))
        except CacheSyncError as e:
            logger.warning(f"Could not extend filter to all rows: {e}")


def _latest_by_code(caches: Sequence[Geocache]) -> list[Geocache]:
    """Collapse duplicate codes; the later record wins, first position kept."""
    latest: dict[str, Geocache] = {}
    for cache in caches:
        if cache.code in latest:
            logger.debug(f"{cache.code}: duplicate search result, keeping the later one")
        latest[cache.code] = cache
    return list(latest.values())
