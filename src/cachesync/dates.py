"""
Date conversion helpers for the Google Sheets date representation.

Google Sheets stores dates as a day count (serial number) from 1899-12-30,
so a date-typed cell sorts and filters correctly only when written as a
number. Parsing never raises: an unparseable value is handed back unchanged
so that one malformed date cannot abort a sync run.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

SHEETS_EPOCH = datetime(1899, 12, 30)

DATE_FORMAT = "%Y-%m-%d"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Patterns accepted for values coming from the search API or from the sheet
_ISO_FORMATS = (
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    TIMESTAMP_FORMAT,
    DATE_FORMAT,
)
# Display pattern applied to the Placed Date column
_SHEET_DISPLAY_FORMAT = "%d/%m/%Y"


def _parse(value: str, formats: tuple[str, ...]) -> datetime | None:
    for fmt in formats:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def format_date(value: str) -> str:
    """Convert an ISO date or timestamp to YYYY-MM-DD.

    Examples:
        "2024-07-01T00:00:00" -> "2024-07-01"
        "notadate" -> "notadate"
    """
    if not value:
        return ""
    parsed = _parse(value, _ISO_FORMATS)
    if parsed is None:
        return value
    return parsed.strftime(DATE_FORMAT)


def to_serial(value: str | date | datetime) -> float | None:
    """Convert a date or timestamp to a Sheets day serial.

    Returns None when the value cannot be parsed.

    Examples:
        "2024-07-01" -> 45474.0
        "2025-10-11 05:58:35" -> 45941.24901620370...
    """
    if isinstance(value, datetime):
        parsed: datetime | None = value.replace(tzinfo=None)
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif value:
        parsed = _parse(value, _ISO_FORMATS)
    else:
        parsed = None

    if parsed is None:
        return None
    return (parsed - SHEETS_EPOCH) / timedelta(days=1)


def from_serial(serial: float) -> datetime:
    """Convert a Sheets day serial back to a datetime."""
    return SHEETS_EPOCH + timedelta(days=serial)


def normalize_date(value: str | float | int) -> str:
    """Normalize any date form found in a sheet cell to YYYY-MM-DD.

    Accepts ISO dates and timestamps, the dd/mm/yyyy display pattern and raw
    day serials. Anything else is returned as a string, unchanged.
    """
    if isinstance(value, (int, float)):
        return from_serial(float(value)).strftime(DATE_FORMAT)
    if not value:
        return ""

    parsed = _parse(value, _ISO_FORMATS + (_SHEET_DISPLAY_FORMAT,))
    if parsed is not None:
        return parsed.strftime(DATE_FORMAT)

    try:
        return from_serial(float(value)).strftime(DATE_FORMAT)
    except (ValueError, OverflowError):
        return value


def format_timestamp(moment: datetime) -> str:
    """Format a datetime for the Last Updated column."""
    return moment.strftime(TIMESTAMP_FORMAT)
