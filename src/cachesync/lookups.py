"""Code-to-name tables for geocache types, container sizes, attributes and regions.

The tables are read-only mappings bundled in a frozen `Lookups` value that is
built once and passed to the components that need it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from types import MappingProxyType
from typing import Mapping


class CacheType(IntEnum):
    TRADITIONAL = 2
    MULTI = 3
    VIRTUAL = 4
    LETTERBOX = 5
    EVENT = 6
    UNKNOWN = 8
    APE = 9
    WEBCAM = 11
    LOCATIONLESS = 12
    CITO = 13
    EARTHCACHE = 137
    MEGA = 453
    GPS_MAZE = 1304
    WHERIGO = 1858
    COMMUNITY_EVENT = 3653
    HQ_CACHE = 3773
    HQ_CELEBRATION = 3774
    BLOCK_PARTY = 4738
    GIGA = 7005


class ContainerSize(IntEnum):
    NOT_CHOSEN = 1
    MICRO = 2
    REGULAR = 3
    LARGE = 4
    VIRTUAL = 5
    OTHER = 6
    SMALL = 8


class Attribute(IntEnum):
    """Attribute IDs consulted by the unsolved-puzzle filter."""

    FIELD_PUZZLE = 47
    WIRELESS_BEACON = 60
    BONUS_CACHE = 69
    CHALLENGE_CACHE = 71


CACHE_TYPES: Mapping[int, str] = MappingProxyType(
    {
        CacheType.TRADITIONAL: "Traditional",
        CacheType.MULTI: "Multi",
        CacheType.VIRTUAL: "Virtual",
        CacheType.LETTERBOX: "Letterbox",
        CacheType.EVENT: "Event",
        CacheType.UNKNOWN: "Unknown",
        CacheType.APE: "A.P.E. Cache",
        CacheType.WEBCAM: "Webcam",
        CacheType.LOCATIONLESS: "Locationless",
        CacheType.CITO: "CITO",
        CacheType.EARTHCACHE: "Earthcache",
        CacheType.MEGA: "Mega",
        CacheType.GPS_MAZE: "GPS Maze",
        CacheType.WHERIGO: "Wherigo",
        CacheType.COMMUNITY_EVENT: "Community Event",
        CacheType.HQ_CACHE: "HQ Cache",
        CacheType.HQ_CELEBRATION: "HQ Celebration",
        CacheType.BLOCK_PARTY: "Block Party",
        CacheType.GIGA: "Giga",
    }
)

CONTAINER_SIZES: Mapping[int, str] = MappingProxyType(
    {
        ContainerSize.NOT_CHOSEN: "Not chosen",
        ContainerSize.MICRO: "Micro",
        ContainerSize.REGULAR: "Regular",
        ContainerSize.LARGE: "Large",
        ContainerSize.VIRTUAL: "Virtual",
        ContainerSize.OTHER: "Other",
        ContainerSize.SMALL: "Small",
    }
)

# Region IDs as used by the geocaching.com search (origin type "region")
REGIONS: Mapping[str, str] = MappingProxyType(
    {
        "52": "New South Wales",
        "53": "Victoria",
        "54": "Queensland",
        "55": "South Australia",
        "56": "Western Australia",
        "57": "Tasmania",
        "58": "Northern Territory",
        "59": "Australian Capital Territory",
        "82": "North Island NZ",
        "86": "South Island NZ",
    }
)

UNSOLVED_EXCLUDED_ATTRIBUTES: frozenset[int] = frozenset(
    {
        Attribute.CHALLENGE_CACHE,
        Attribute.FIELD_PUZZLE,
        Attribute.BONUS_CACHE,
        Attribute.WIRELESS_BEACON,
    }
)


@dataclass(frozen=True)
class Lookups:
    """Immutable bundle of lookup tables."""

    cache_types: Mapping[int, str] = field(default_factory=lambda: CACHE_TYPES)
    container_sizes: Mapping[int, str] = field(default_factory=lambda: CONTAINER_SIZES)
    regions: Mapping[str, str] = field(default_factory=lambda: REGIONS)
    unsolved_excluded_attributes: frozenset[int] = field(
        default=UNSOLVED_EXCLUDED_ATTRIBUTES
    )

    def cache_type_name(self, code: int) -> str:
        """Name for a geocache type code, or "" when unknown."""
        return self.cache_types.get(code, "")

    def container_size_name(self, code: int) -> str:
        """Name for a container type code, or "" when unknown."""
        return self.container_sizes.get(code, "")

    def region_name(self, region_id: str) -> str | None:
        return self.regions.get(region_id)


DEFAULT_LOOKUPS = Lookups()
