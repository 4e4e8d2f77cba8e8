"""Typed cell values for the Google Sheets boundary.

A `CacheRow` holds only strings. When a row is written, each column is tagged
as Text, Number or Formula so the sheet receives numbers it can sort and dates
it can filter, without any untyped values leaking into the reconciler.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from cachesync.dates import to_serial
from cachesync.models import CacheRow

CACHE_URL_PREFIX = "https://coord.info/"


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Formula:
    value: str


CellValue = Union[Text, Number, Formula]


def hyperlink(code: str) -> Formula:
    """HYPERLINK formula pointing at the cache page, labelled with the code."""
    return Formula(f'=HYPERLINK("{CACHE_URL_PREFIX}{code}", "{code}")')


def number_or_text(value: str) -> CellValue:
    try:
        return Number(float(value))
    except ValueError:
        return Text(value)


def date_or_text(value: str) -> CellValue:
    serial = to_serial(value)
    if serial is None:
        return Text(value)
    return Number(serial)


def row_to_cells(row: CacheRow) -> list[CellValue]:
    """Tag every column of a row, in column order."""
    return [
        hyperlink(row.code),
        Text(row.name),
        number_or_text(row.favorites),
        Text(row.posted_coords),
        Text(row.corrected_coords),
        number_or_text(row.distance),
        date_or_text(row.placed_date),
        Text(row.cache_type),
        Text(row.cache_size),
        number_or_text(row.difficulty),
        number_or_text(row.terrain),
        Text(row.owner),
        Text(row.region),
        Text(row.country),
        Text(row.found),
        Text(row.note),
        date_or_text(row.last_updated),
    ]


def to_cell_data(cell: CellValue) -> dict[str, Any]:
    """Render a cell as an updateCells CellData object."""
    if isinstance(cell, Formula):
        return {"userEnteredValue": {"formulaValue": cell.value}}
    if isinstance(cell, Number):
        return {"userEnteredValue": {"numberValue": cell.value}}
    return {"userEnteredValue": {"stringValue": cell.value}}


def to_user_entered(cell: CellValue) -> str | float:
    """Render a cell for values:append with valueInputOption=USER_ENTERED.

    Non-empty text is prefixed with an apostrophe so Sheets stores it
    verbatim instead of parsing it as a number, date or formula.
    """
    if isinstance(cell, Text):
        return f"'{cell.value}" if cell.value else ""
    return cell.value
