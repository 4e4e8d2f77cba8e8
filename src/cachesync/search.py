"""Search criteria for the geocaching.com search, and the presets the CLI and API use."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable

from cachesync.lookups import CacheType, Lookups
from cachesync.models import Coordinates, Geocache

ORIGIN_QUERY = "query"
ORIGIN_REGION = "region"

DEFAULT_RADIUS = 25_000
UNSOLVED_RADIUS = 100_000

# Standard cache types, events excluded
DEFAULT_CACHE_TYPES = (
    CacheType.TRADITIONAL,
    CacheType.MULTI,
    CacheType.VIRTUAL,
    CacheType.LETTERBOX,
    CacheType.UNKNOWN,
    CacheType.WEBCAM,
    CacheType.EARTHCACHE,
    CacheType.WHERIGO,
)

# Types whose final location differs from the posted coordinates
SOLVABLE_CACHE_TYPES = (
    CacheType.UNKNOWN,
    CacheType.MULTI,
    CacheType.LETTERBOX,
    CacheType.WHERIGO,
)


@dataclass(frozen=True)
class SearchCriteria:
    """Parameters of one cache search.

    Tri-state flags use None for "don't filter".
    """

    origin_type: str = ORIGIN_QUERY
    origin: Coordinates | None = None
    radius_meters: int | None = None
    region_id: str | None = None
    cache_types: tuple[int, ...] = ()
    container_sizes: tuple[int, ...] = ()
    hide_owned: bool | None = None
    hide_found: bool | None = None
    show_disabled: bool | None = None
    corrected: bool | None = None
    not_found_by: tuple[str, ...] = ()
    sort: str = "distance"
    sort_ascending: bool = True

    def to_params(self) -> list[tuple[str, str]]:
        """Query string parameters, as a list so repeated keys survive."""
        params: list[tuple[str, str]] = [("ot", self.origin_type)]

        if self.origin is not None:
            params.append(
                ("origin", f"{self.origin.latitude},{self.origin.longitude}")
            )
        if self.radius_meters is not None:
            params.append(("rad", str(self.radius_meters)))
        if self.region_id is not None:
            params.append(("rid", self.region_id))
        if self.cache_types:
            params.append(("ct", ",".join(str(int(t)) for t in self.cache_types)))
        if self.container_sizes:
            params.append(
                ("cs", ",".join(str(int(s)) for s in self.container_sizes))
            )

        for key, flag in (
            ("ho", self.hide_owned),
            ("hf", self.hide_found),
            ("sd", self.show_disabled),
            ("cc", self.corrected),
        ):
            if flag is not None:
                params.append((key, "1" if flag else "0"))

        params.extend(("nfb", name) for name in self.not_found_by)
        params.append(("sort", self.sort))
        params.append(("asc", "true" if self.sort_ascending else "false"))
        return params


def default_criteria(
    origin: Coordinates,
    radius: int = DEFAULT_RADIUS,
    not_found_by: str | None = None,
) -> SearchCriteria:
    """Standard caches around a point, nearest first."""
    if radius <= 0:
        radius = DEFAULT_RADIUS
    return SearchCriteria(
        origin_type=ORIGIN_QUERY,
        origin=origin,
        radius_meters=radius,
        cache_types=tuple(DEFAULT_CACHE_TYPES),
        hide_owned=True,
        show_disabled=False,
        not_found_by=(not_found_by,) if not_found_by else (),
    )


def unsolved_criteria(
    origin: Coordinates,
    radius: int = UNSOLVED_RADIUS,
    not_found_by: str | None = None,
) -> SearchCriteria:
    """Puzzle caches around a point that have no corrected coordinates yet."""
    if radius <= 0:
        radius = UNSOLVED_RADIUS
    return replace(
        default_criteria(origin, radius, not_found_by),
        cache_types=(CacheType.UNKNOWN,),
        corrected=False,
    )


def solved_criteria(region_id: str) -> SearchCriteria:
    """Caches in a region with corrected coordinates: the sync scope."""
    return SearchCriteria(
        origin_type=ORIGIN_REGION,
        region_id=region_id,
        cache_types=tuple(SOLVABLE_CACHE_TYPES),
        hide_owned=True,
        corrected=True,
    )


def is_unsolved_candidate(cache: Geocache, lookups: Lookups) -> bool:
    """False for bonus caches and caches needing more than a puzzle solution."""
    if "bonus" in cache.name.lower():
        return False
    return not any(
        attr.is_applicable and attr.id in lookups.unsolved_excluded_attributes
        for attr in cache.attributes
    )


def filter_unsolved(caches: Iterable[Geocache], lookups: Lookups) -> list[Geocache]:
    return [cache for cache in caches if is_unsolved_candidate(cache, lookups)]
