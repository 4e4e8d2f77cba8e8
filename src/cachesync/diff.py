"""Row equality used to decide whether an existing sheet row needs rewriting.

Two rows are equal when every displayed field matches, with three
relaxations:

- `last_updated` is ignored; it changes on every run.
- `note` only counts when it goes from empty to non-empty or back. Notes are
  edited by hand in the sheet and a resync must not overwrite them.
- Numbers and dates are compared in a normalized form, so "2" equals "2.0"
  and "01/07/2024" equals "2024-07-01".
"""

from __future__ import annotations

from cachesync.dates import normalize_date
from cachesync.models import CacheRow

NUMERIC_FIELDS = ("favorites", "distance", "difficulty", "terrain")
DATE_FIELDS = ("placed_date",)
TEXT_FIELDS = (
    "name",
    "posted_coords",
    "corrected_coords",
    "cache_type",
    "cache_size",
    "owner",
    "region",
    "country",
    "found",
)


def normalize_number(value: str) -> str:
    """Fixed two-decimal form of a numeric string, or the string itself."""
    try:
        return f"{float(value):.2f}"
    except ValueError:
        return value


def changed_fields(existing: CacheRow, candidate: CacheRow) -> list[str]:
    """Names of the fields that differ under the relaxed comparison."""
    changed: list[str] = []

    for name in TEXT_FIELDS:
        if getattr(existing, name) != getattr(candidate, name):
            changed.append(name)

    for name in NUMERIC_FIELDS:
        if normalize_number(getattr(existing, name)) != normalize_number(
            getattr(candidate, name)
        ):
            changed.append(name)

    for name in DATE_FIELDS:
        if normalize_date(getattr(existing, name)) != normalize_date(
            getattr(candidate, name)
        ):
            changed.append(name)

    if bool(existing.note) != bool(candidate.note):
        changed.append("note")

    return changed


def rows_equal(existing: CacheRow, candidate: CacheRow) -> bool:
    """True when `candidate` carries nothing worth writing over `existing`."""
    return not changed_fields(existing, candidate)
