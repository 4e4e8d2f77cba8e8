"""Shared fixtures."""

from pathlib import Path

import pytest

from cachesync.config import get_settings
from cachesync.lookups import DEFAULT_LOOKUPS
from cachesync.models import Coordinates
from cachesync.normalizer import RowNormalizer
from cachesync.retry import RetryPolicy
from tests.fakes import RecordingSleep, fixed_clock

GOLDEN_DIR = Path(__file__).parent / "golden"

# Distance origin used across tests; same as the posted coordinates of the
# default test cache, so its distance is 0
HOME = Coordinates(-27.5, 153.0)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def retry(sleep: RecordingSleep) -> RetryPolicy:
    """Retry policy that records delays instead of sleeping."""
    return RetryPolicy(max_attempts=3, max_backoff=60.0, sleep=sleep)


@pytest.fixture
def normalizer() -> RowNormalizer:
    return RowNormalizer(DEFAULT_LOOKUPS, HOME, clock=fixed_clock)


@pytest.fixture(autouse=True)
def clear_settings_cache(monkeypatch: pytest.MonkeyPatch):
    """Settings never leak between tests or from the developer's environment."""
    for name in (
        "GEOCACHING_USERNAME",
        "GEOCACHING_PASSWORD",
        "GOOGLE_APPLICATION_CREDENTIALS",
        "SPREADSHEET_ID",
        "ENVIRONMENT",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
