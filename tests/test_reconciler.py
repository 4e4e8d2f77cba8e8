"""Tests for the Reconciler."""

from dataclasses import replace

import pytest

from cachesync.exceptions import APIError, FetchError, RetriesExhaustedError
from cachesync.models import HEADER, CacheRow
from cachesync.normalizer import RowNormalizer
from cachesync.reconciler import Reconciler, SyncState
from cachesync.retry import RetryPolicy
from cachesync.search import solved_criteria
from tests.fakes import FailingFetcher, FakeFetcher, FlakyStore, make_cache

CRITERIA = solved_criteria("54")


def _existing(normalizer: RowNormalizer, cache, **overrides: str) -> CacheRow:
    """Row as the previous run would have written it."""
    row = normalizer.normalize(cache, {}, lambda c: "")
    assert row is not None
    return replace(row, **overrides)


class TestFirstRun:
    """Tests for syncing into an empty worksheet."""

    def test_appends_solved_caches(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """Every cache with a real correction is appended, in search order."""
        fetcher = FakeFetcher(
            [
                make_cache("GC1"),
                make_cache("GC2", posted=(-27.4, 153.1), corrected=(-27.4, 153.1)),
                make_cache("GC3"),
            ]
        )
        store = FlakyStore()

        result = Reconciler(fetcher, store, normalizer, retry).run(CRITERIA)

        assert [row.code for row in store.rows] == ["GC1", "GC3"]
        assert result.fetched == 3
        assert result.added == 2
        assert result.skipped == 1
        assert result.state == SyncState.DONE
        assert result.success

    def test_prepares_worksheet_and_extends_coverage(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """The header is ensured before writing and the filter extended after."""
        store = FlakyStore()

        Reconciler(FakeFetcher([make_cache("GC1")]), store, normalizer, retry).run(
            CRITERIA
        )

        assert store.header == list(HEADER)
        assert store.coverage_calls == [len(HEADER)]

    def test_passes_criteria_to_fetcher(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """The search runs with the given criteria."""
        fetcher = FakeFetcher()

        Reconciler(fetcher, FlakyStore(), normalizer, retry).run(CRITERIA)

        assert fetcher.searches == [CRITERIA]

    def test_empty_search(self, normalizer: RowNormalizer, retry: RetryPolicy) -> None:
        """No results means no writes but a successful run."""
        store = FlakyStore()

        result = Reconciler(FakeFetcher(), store, normalizer, retry).run(CRITERIA)

        assert store.append_calls == []
        assert store.update_calls == []
        assert result.success


class TestIdempotence:
    """Tests for repeated runs."""

    def test_second_run_writes_nothing(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """Running twice against unchanged data makes no writes the second time."""
        fetcher = FakeFetcher([make_cache("GC1"), make_cache("GC2")])
        store = FlakyStore()

        Reconciler(fetcher, store, normalizer, retry).run(CRITERIA)
        appends_after_first = len(store.append_calls)
        result = Reconciler(fetcher, store, normalizer, retry).run(CRITERIA)

        assert len(store.append_calls) == appends_after_first
        assert store.update_calls == []
        assert result.unchanged == 2
        assert result.added == 0
        assert result.updated == 0

    def test_stale_timestamp_alone_is_unchanged(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """A row differing only in Last Updated is left alone."""
        cache = make_cache("GC1")
        store = FlakyStore(
            [_existing(normalizer, cache, last_updated="2020-01-01 00:00:00")]
        )

        result = Reconciler(FakeFetcher([cache]), store, normalizer, retry).run(
            CRITERIA
        )

        assert result.unchanged == 1
        assert store.update_calls == []
        assert store.rows[0].last_updated == "2020-01-01 00:00:00"


class TestUpdates:
    """Tests for rewriting changed rows."""

    def test_changed_row_updated_in_place(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """A changed cache is written at its existing position."""
        first, second = make_cache("GC1"), make_cache("GC2")
        store = FlakyStore(
            [_existing(normalizer, first), _existing(normalizer, second, favorites="1")]
        )
        second = make_cache("GC2", favorite_points=9)

        result = Reconciler(
            FakeFetcher([first, second]), store, normalizer, retry
        ).run(CRITERIA)

        assert result.updated == 1
        assert store.update_calls == [[(2, store.rows[1])]]
        assert store.rows[1].favorites == "9"
        assert store.append_calls == []

    def test_rows_never_deleted(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """Rows for caches no longer in the results stay in the sheet."""
        gone = make_cache("GC9")
        store = FlakyStore([_existing(normalizer, gone)])

        Reconciler(FakeFetcher([make_cache("GC1")]), store, normalizer, retry).run(
            CRITERIA
        )

        assert [row.code for row in store.rows] == ["GC9", "GC1"]

    def test_codes_stay_unique(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """Each code appears in the sheet at most once after a run."""
        store = FlakyStore([_existing(normalizer, make_cache("GC1"), name="Old")])
        fetcher = FakeFetcher([make_cache("GC1"), make_cache("GC2")])

        Reconciler(fetcher, store, normalizer, retry).run(CRITERIA)
        Reconciler(fetcher, store, normalizer, retry).run(CRITERIA)

        codes = [row.code for row in store.rows]
        assert sorted(codes) == ["GC1", "GC2"]

    def test_duplicate_results_collapsed(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """A code repeated in one search is written once, from the later record."""
        fetcher = FakeFetcher(
            [make_cache("GC1", name="First"), make_cache("GC1", name="Second")]
        )
        store = FlakyStore()

        Reconciler(fetcher, store, normalizer, retry).run(CRITERIA)

        assert len(store.rows) == 1
        assert store.rows[0].name == "Second"


class TestNotes:
    """Tests for note handling during a run."""

    def test_hand_edited_note_preserved(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """A non-empty note in the sheet is neither refetched nor overwritten."""
        cache = make_cache("GC1", has_note=True)
        store = FlakyStore([_existing(normalizer, cache, note="hand edited")])
        fetcher = FakeFetcher([cache], notes={"GC1": "from the site"})

        result = Reconciler(fetcher, store, normalizer, retry).run(CRITERIA)

        assert fetcher.note_requests == []
        assert result.unchanged == 1
        assert store.rows[0].note == "hand edited"

    def test_missing_note_filled_in(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """An empty note cell is filled when the cache now has a note."""
        cache = make_cache("GC1", has_note=True)
        store = FlakyStore([_existing(normalizer, cache)])
        fetcher = FakeFetcher([cache], notes={"GC1": "from the site"})

        result = Reconciler(fetcher, store, normalizer, retry).run(CRITERIA)

        assert fetcher.note_requests == ["GC1"]
        assert result.updated == 1
        assert store.rows[0].note == "from the site"

    def test_note_failure_does_not_fail_run(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """A note that cannot be fetched leaves the note empty."""
        fetcher = FakeFetcher([make_cache("GC1", has_note=True)])
        store = FlakyStore()

        result = Reconciler(fetcher, store, normalizer, retry).run(CRITERIA)

        assert result.success
        assert store.rows[0].note == ""


class TestBatching:
    """Tests for write batching."""

    def test_appends_flushed_in_batches(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """N new rows with batch size B take ceil(N / B) append calls."""
        fetcher = FakeFetcher([make_cache(f"GC{i}") for i in range(5)])
        store = FlakyStore()

        Reconciler(fetcher, store, normalizer, retry, batch_size=2).run(CRITERIA)

        assert [len(batch) for batch in store.append_calls] == [2, 2, 1]
        assert [row.code for row in store.rows] == [f"GC{i}" for i in range(5)]

    def test_updates_flushed_in_batches(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """Updates are batched separately from appends."""
        caches = [make_cache(f"GC{i}") for i in range(3)]
        store = FlakyStore([_existing(normalizer, c, name="Old") for c in caches])

        result = Reconciler(
            FakeFetcher(caches), store, normalizer, retry, batch_size=2
        ).run(CRITERIA)

        assert [len(batch) for batch in store.update_calls] == [2, 1]
        assert result.updated == 3

    def test_invalid_batch_size(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """Batch size must be positive."""
        with pytest.raises(ValueError, match="batch_size"):
            Reconciler(FakeFetcher(), FlakyStore(), normalizer, retry, batch_size=0)


class TestFailures:
    """Tests for error handling."""

    def test_fetch_failure_writes_nothing(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """A failed search aborts the run before the sheet is touched."""
        store = FlakyStore()
        reconciler = Reconciler(FailingFetcher(), store, normalizer, retry)

        with pytest.raises(FetchError):
            reconciler.run(CRITERIA)

        assert reconciler.state == SyncState.FAILED
        assert store.header is None
        assert store.append_calls == []
        assert store.coverage_calls == []

    def test_search_rate_limited_then_recovers(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """A throttled search is retried."""
        fetcher = FakeFetcher([make_cache("GC1")])
        fetcher.rate_limited_searches = 2
        store = FlakyStore()

        result = Reconciler(fetcher, store, normalizer, retry).run(CRITERIA)

        assert len(fetcher.searches) == 3
        assert result.added == 1

    def test_search_rate_limit_exhausted(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """A search throttled past every retry becomes a FetchError."""
        fetcher = FakeFetcher([make_cache("GC1")])
        fetcher.rate_limited_searches = 10
        store = FlakyStore()

        with pytest.raises(FetchError, match="rate limited"):
            Reconciler(fetcher, store, normalizer, retry).run(CRITERIA)

        assert store.rows == []

    def test_snapshot_failure_is_fatal(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """Without the existing rows nothing is written."""
        store = FlakyStore()
        store.fail_reads = True
        reconciler = Reconciler(
            FakeFetcher([make_cache("GC1")]), store, normalizer, retry
        )

        with pytest.raises(RetriesExhaustedError):
            reconciler.run(CRITERIA)

        assert reconciler.state == SyncState.FAILED
        assert store.append_calls == []

    def test_failed_batch_does_not_stop_run(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """A batch that stays rate limited is counted and later batches still land."""
        fetcher = FakeFetcher([make_cache("GC1"), make_cache("GC2"), make_cache("GC3")])
        store = FlakyStore()
        store.poisoned_codes = {"GC1"}

        result = Reconciler(fetcher, store, normalizer, retry, batch_size=1).run(
            CRITERIA
        )

        assert [row.code for row in store.rows] == ["GC2", "GC3"]
        assert result.state == SyncState.DONE
        assert result.added == 2
        assert result.failed_batches == 1
        assert result.failed_rows == 1
        assert not result.success
        assert "1 failed batch(es)" in result.summary()

    def test_throttled_write_retried(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """A write that is throttled once succeeds on retry."""
        store = FlakyStore()
        store.throttle_next = 1

        result = Reconciler(
            FakeFetcher([make_cache("GC1")]), store, normalizer, retry
        ).run(CRITERIA)

        assert result.added == 1
        assert result.success

    def test_coverage_failure_is_not_fatal(
        self, normalizer: RowNormalizer, retry: RetryPolicy
    ) -> None:
        """Failing to extend the filter only logs a warning."""

        class NoFilterStore(FlakyStore):
            def extend_coverage(self, column_count: int) -> None:
                raise APIError("Invalid range", status_code=400)

        store = NoFilterStore()

        result = Reconciler(
            FakeFetcher([make_cache("GC1")]), store, normalizer, retry
        ).run(CRITERIA)

        assert result.success
        assert len(store.rows) == 1


class TestSummary:
    """Tests for SyncResult.summary."""

    def test_counts(self, normalizer: RowNormalizer, retry: RetryPolicy) -> None:
        """The summary lists every count."""
        fetcher = FakeFetcher(
            [
                make_cache("GC1"),
                make_cache("GC2", posted=(-27.4, 153.1), corrected=(-27.4, 153.1)),
            ]
        )

        result = Reconciler(fetcher, FlakyStore(), normalizer, retry).run(CRITERIA)

        assert result.summary() == "1 added, 0 updated, 0 unchanged, 1 skipped"
