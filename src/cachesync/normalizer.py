"""Turns Geocache search results into worksheet rows."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Mapping

from loguru import logger

from cachesync.dates import format_date, format_timestamp
from cachesync.exceptions import NoteFetchError, RetriesExhaustedError
from cachesync.geo import format_coords, haversine
from cachesync.lookups import Lookups
from cachesync.models import CacheRow, Coordinates, ExistingRow, Geocache

NoteFetcher = Callable[[Geocache], str]
Clock = Callable[[], datetime]


class RowNormalizer:
    """Builds a CacheRow for one Geocache.

    Args:
        lookups: Code-to-name tables for type and size columns
        origin: Point distances are measured from
        clock: Source of the Last Updated timestamp
    """

    def __init__(
        self,
        lookups: Lookups,
        origin: Coordinates,
        clock: Clock = datetime.now,
    ) -> None:
        self._lookups = lookups
        self._origin = origin
        self._clock = clock

    def normalize(
        self,
        cache: Geocache,
        existing: Mapping[str, ExistingRow],
        fetch_note: NoteFetcher,
    ) -> CacheRow | None:
        """Build the row for `cache`, or None when it has no useful correction.

        A cache whose corrected coordinates format the same as its posted
        coordinates is outside the sync scope and produces no row.
        """
        posted = format_coords(
            cache.posted_coordinates.latitude, cache.posted_coordinates.longitude
        )
        corrected = format_coords(
            cache.user_corrected_coordinates.latitude,
            cache.user_corrected_coordinates.longitude,
        )
        if posted == corrected:
            logger.debug(f"{cache.code}: coordinates not corrected, skipping")
            return None

        distance = haversine(
            self._origin.latitude,
            self._origin.longitude,
            cache.posted_coordinates.latitude,
            cache.posted_coordinates.longitude,
        )

        return CacheRow(
            code=cache.code,
            name=cache.name,
            favorites=str(cache.favorite_points),
            posted_coords=posted,
            corrected_coords=corrected,
            distance=f"{round(distance, 2):.2f}",
            placed_date=format_date(cache.placed_date),
            cache_type=self._lookups.cache_type_name(cache.geocache_type),
            cache_size=self._lookups.container_size_name(cache.container_type),
            difficulty=f"{cache.difficulty:g}",
            terrain=f"{cache.terrain:g}",
            owner=cache.owner.username,
            region=cache.region,
            country=cache.country,
            found="Yes" if cache.user_found else "",
            note=self._resolve_note(cache, existing.get(cache.code), fetch_note),
            last_updated=format_timestamp(self._clock()),
        )

    def _resolve_note(
        self,
        cache: Geocache,
        existing: ExistingRow | None,
        fetch_note: NoteFetcher,
    ) -> str:
        # A note already in the sheet may have been edited by hand; keep it.
        if existing is not None and existing.row.note:
            return existing.row.note
        if not cache.has_note:
            return ""
        try:
            return fetch_note(cache)
        except (NoteFetchError, RetriesExhaustedError) as e:
            logger.warning(f"{cache.code}: using empty note ({e})")
            return ""
