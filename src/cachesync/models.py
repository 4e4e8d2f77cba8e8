"""Data model: geocaches from the search API and the rows written to the sheet."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any


@dataclass(frozen=True)
class Coordinates:
    latitude: float = 0.0
    longitude: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Coordinates:
        if not data:
            return cls()
        return cls(
            latitude=float(data.get("latitude") or 0.0),
            longitude=float(data.get("longitude") or 0.0),
        )


@dataclass(frozen=True)
class Owner:
    code: str = ""
    username: str = ""


@dataclass(frozen=True)
class GeocacheAttribute:
    id: int
    is_applicable: bool = True


@dataclass(frozen=True)
class Geocache:
    """A single search result, as returned by the geocaching.com search API.

    The cache code is the natural key: unique within one search and stable
    across runs.
    """

    code: str
    name: str = ""
    favorite_points: int = 0
    difficulty: float = 0.0
    terrain: float = 0.0
    posted_coordinates: Coordinates = field(default_factory=Coordinates)
    user_corrected_coordinates: Coordinates = field(default_factory=Coordinates)
    placed_date: str = ""
    geocache_type: int = 0
    container_type: int = 0
    owner: Owner = field(default_factory=Owner)
    region: str = ""
    country: str = ""
    user_found: bool = False
    has_note: bool = False
    attributes: tuple[GeocacheAttribute, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Geocache:
        """Build a Geocache from a search API result object."""
        owner = data.get("owner") or {}
        return cls(
            code=data["code"],
            name=data.get("name") or "",
            favorite_points=int(data.get("favoritePoints") or 0),
            difficulty=float(data.get("difficulty") or 0.0),
            terrain=float(data.get("terrain") or 0.0),
            posted_coordinates=Coordinates.from_dict(data.get("postedCoordinates")),
            user_corrected_coordinates=Coordinates.from_dict(
                data.get("userCorrectedCoordinates")
            ),
            placed_date=data.get("placedDate") or "",
            geocache_type=int(data.get("geocacheType") or 0),
            container_type=int(data.get("containerType") or 0),
            owner=Owner(
                code=owner.get("code") or "",
                username=owner.get("username") or "",
            ),
            region=data.get("region") or "",
            country=data.get("country") or "",
            user_found=bool(data.get("userFound")),
            has_note=bool(data.get("hasCallerNote")),
            attributes=tuple(
                GeocacheAttribute(
                    id=int(attr["id"]),
                    is_applicable=bool(attr.get("isApplicable", True)),
                )
                for attr in data.get("attributes") or []
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize back to the search API's JSON shape."""
        return {
            "code": self.code,
            "name": self.name,
            "favoritePoints": self.favorite_points,
            "difficulty": self.difficulty,
            "terrain": self.terrain,
            "postedCoordinates": {
                "latitude": self.posted_coordinates.latitude,
                "longitude": self.posted_coordinates.longitude,
            },
            "userCorrectedCoordinates": {
                "latitude": self.user_corrected_coordinates.latitude,
                "longitude": self.user_corrected_coordinates.longitude,
            },
            "placedDate": self.placed_date,
            "geocacheType": self.geocache_type,
            "containerType": self.container_type,
            "owner": {"code": self.owner.code, "username": self.owner.username},
            "region": self.region,
            "country": self.country,
            "userFound": self.user_found,
            "hasCallerNote": self.has_note,
            "attributes": [
                {"id": attr.id, "isApplicable": attr.is_applicable}
                for attr in self.attributes
            ],
        }


@dataclass(frozen=True)
class CacheRow:
    """One worksheet row: the display-ready projection of a Geocache.

    Field order is column order.
    """

    code: str
    name: str = ""
    favorites: str = ""
    posted_coords: str = ""
    corrected_coords: str = ""
    distance: str = ""
    placed_date: str = ""
    cache_type: str = ""
    cache_size: str = ""
    difficulty: str = ""
    terrain: str = ""
    owner: str = ""
    region: str = ""
    country: str = ""
    found: str = ""
    note: str = ""
    last_updated: str = ""

    def to_values(self) -> list[str]:
        return [getattr(self, f.name) for f in fields(self)]

    @classmethod
    def from_values(cls, values: list[Any]) -> CacheRow:
        """Build a row from raw cell values, padding missing trailing cells."""
        names = [f.name for f in fields(cls)]
        padded = [_cell_text(v) for v in values[: len(names)]]
        padded += [""] * (len(names) - len(padded))
        return cls(**dict(zip(names, padded)))


HEADER: tuple[str, ...] = (
    "Code",
    "Name",
    "Favorites",
    "Posted Coords",
    "Corrected Coords",
    "Distance (km)",
    "Placed Date",
    "Type",
    "Size",
    "Difficulty",
    "Terrain",
    "Owner",
    "Region",
    "Country",
    "Found",
    "Note",
    "Last Updated",
)

PLACED_DATE_COLUMN = HEADER.index("Placed Date")
LAST_UPDATED_COLUMN = HEADER.index("Last Updated")


@dataclass(frozen=True)
class ExistingRow:
    """A row already present in the sheet.

    `position` is the 0-based row offset in the worksheet. Position 0 is the
    header row and never holds data.
    """

    position: int
    row: CacheRow


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
