"""cachesync - Keeps a Google Sheets worksheet in step with solved geocaches.

Searches geocaching.com for caches with corrected coordinates and reconciles
them into one worksheet per region: new caches are appended, changed caches
are updated in place, and rows are never deleted.
"""

__version__ = "0.1.0"

from cachesync.client import SyncClient, UnknownRegionError
from cachesync.exceptions import (
    APIError,
    AuthenticationError,
    CacheSyncError,
    CredentialsError,
    FetchError,
    NoteFetchError,
    NotFoundError,
    RateLimitedError,
    RetriesExhaustedError,
    TransportError,
)
from cachesync.fetcher import Fetcher, GeocachingFetcher, LocalFileFetcher
from cachesync.models import HEADER, CacheRow, Geocache
from cachesync.reconciler import Reconciler, SyncResult, SyncState
from cachesync.retry import RetryPolicy
from cachesync.store import GoogleSheetsStore, MemoryStore, Store

__all__ = [
    "APIError",
    "AuthenticationError",
    "CacheRow",
    "CacheSyncError",
    "CredentialsError",
    "FetchError",
    "Fetcher",
    "Geocache",
    "GoogleSheetsStore",
    "HEADER",
    "LocalFileFetcher",
    "MemoryStore",
    "NoteFetchError",
    "NotFoundError",
    "RateLimitedError",
    "Reconciler",
    "RetriesExhaustedError",
    "RetryPolicy",
    "Store",
    "SyncClient",
    "SyncResult",
    "SyncState",
    "TransportError",
    "UnknownRegionError",
    "__version__",
]
