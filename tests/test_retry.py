"""Tests for RetryPolicy."""

import pytest

from cachesync.exceptions import (
    APIError,
    RateLimitedError,
    RetriesExhaustedError,
)
from cachesync.retry import RetryPolicy
from tests.fakes import RecordingSleep


class Throttled:
    """Callable that is rate limited a fixed number of times, then succeeds."""

    def __init__(self, failures: int, result: str = "ok") -> None:
        self.failures = failures
        self.result = result
        self.calls = 0

    def __call__(self, *args, **kwargs) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise RateLimitedError("Too many requests", status_code=429)
        return self.result


class TestBackoff:
    """Tests for the backoff schedule."""

    def test_doubles_from_one_second(self, sleep: RecordingSleep) -> None:
        """Delays are 1, 2, 4, 8... seconds."""
        policy = RetryPolicy(max_attempts=6, max_backoff=600, sleep=sleep)

        assert policy.call(Throttled(failures=5)) == "ok"
        assert sleep.delays == [1, 2, 4, 8, 16]

    def test_capped(self, sleep: RecordingSleep) -> None:
        """Delays never exceed max_backoff."""
        policy = RetryPolicy(max_attempts=8, max_backoff=10, sleep=sleep)

        assert policy.call(Throttled(failures=7)) == "ok"
        assert sleep.delays == [1, 2, 4, 8, 10, 10, 10]

    def test_huge_attempt_count(self, sleep: RecordingSleep) -> None:
        """Exponents past float range still sleep max_backoff and end exhausted."""
        policy = RetryPolicy(max_attempts=1100, max_backoff=60, sleep=sleep)
        func = Throttled(failures=10_000)

        with pytest.raises(RetriesExhaustedError) as exc_info:
            policy.call(func)

        assert func.calls == 1100
        assert exc_info.value.attempts == 1100
        assert len(sleep.delays) == 1099
        assert sleep.delays[-1] == 60

    def test_invalid_settings(self) -> None:
        """At least one attempt is required and backoff can't be negative."""
        with pytest.raises(ValueError, match="max_attempts"):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError, match="max_backoff"):
            RetryPolicy(max_backoff=-1)


class TestCall:
    """Tests for RetryPolicy.call."""

    def test_success_first_time(self, retry: RetryPolicy, sleep: RecordingSleep) -> None:
        """A successful call returns immediately without sleeping."""
        assert retry.call(lambda: 42) == 42
        assert sleep.delays == []

    def test_passes_arguments(self, retry: RetryPolicy) -> None:
        """Positional and keyword arguments reach the callee."""
        assert retry.call(lambda a, b=0: a + b, 1, b=2) == 3

    def test_retries_until_success(self, sleep: RecordingSleep) -> None:
        """Rate-limited attempts are retried with growing delays."""
        policy = RetryPolicy(max_attempts=5, sleep=sleep)
        func = Throttled(failures=3)

        assert policy.call(func) == "ok"
        assert func.calls == 4
        assert sleep.delays == [1, 2, 4]

    def test_exhausted(self, sleep: RecordingSleep) -> None:
        """After max_attempts rate-limited calls, RetriesExhaustedError is raised."""
        policy = RetryPolicy(max_attempts=3, sleep=sleep)
        func = Throttled(failures=10)

        with pytest.raises(RetriesExhaustedError) as exc_info:
            policy.call(func)

        assert func.calls == 3
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, RateLimitedError)
        # No sleep after the final attempt
        assert sleep.delays == [1, 2]

    def test_delays_capped(self, sleep: RecordingSleep) -> None:
        """Long retry runs are capped at max_backoff."""
        policy = RetryPolicy(max_attempts=15, max_backoff=60, sleep=sleep)

        with pytest.raises(RetriesExhaustedError):
            policy.call(Throttled(failures=100))

        assert sleep.delays == [1, 2, 4, 8, 16, 32] + [60] * 8

    def test_other_errors_not_retried(self, retry: RetryPolicy, sleep: RecordingSleep) -> None:
        """Errors other than rate limiting propagate on the first attempt."""
        calls = []

        def broken() -> None:
            calls.append(1)
            raise APIError("Bad request", status_code=400)

        with pytest.raises(APIError):
            retry.call(broken)

        assert len(calls) == 1
        assert sleep.delays == []
