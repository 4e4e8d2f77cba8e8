"""Retry with capped exponential backoff for rate-limited remote calls.

Only `RateLimitedError` is retried. Any other exception is not assumed to be
transient and propagates on the first occurrence.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from loguru import logger
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cachesync.exceptions import RateLimitedError, RetriesExhaustedError

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 15
DEFAULT_MAX_BACKOFF = 60.0


@dataclass
class RetryPolicy:
    """Executes a call, sleeping 1, 2, 4... seconds (capped at max_backoff)
    between rate-limited attempts.

    Example:
        >>> policy = RetryPolicy(max_attempts=5, max_backoff=30)
        >>> policy.call(store.append_rows, rows)
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    max_backoff: float = DEFAULT_MAX_BACKOFF
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.max_backoff < 0:
            raise ValueError("max_backoff must not be negative")

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Invoke `func`, retrying while it raises RateLimitedError.

        Raises:
            RetriesExhaustedError: If every attempt was rate limited
        """
        name = getattr(func, "__name__", repr(func))

        def log_retry(state: RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome else None
            status = getattr(error, "status_code", None)
            delay = state.next_action.sleep if state.next_action else 0
            logger.warning(
                f"Rate limited calling {name} ({status}), retrying in {delay:g}s "
                f"(attempt {state.attempt_number}/{self.max_attempts})"
            )

        retrying = Retrying(
            retry=retry_if_exception_type(RateLimitedError),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, max=self.max_backoff),
            sleep=self.sleep,
            before_sleep=log_retry,
        )
        try:
            return retrying(func, *args, **kwargs)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            raise RetriesExhaustedError(self.max_attempts, last_error) from last_error
