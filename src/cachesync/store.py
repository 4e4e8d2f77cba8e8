"""Store layer for the target worksheet.

Defines the Store protocol and implementations:
- GoogleSheetsStore: Production store using the Google Sheets API
- MemoryStore: In-memory store for tests and dry runs
"""

from __future__ import annotations

import ssl
import urllib.parse
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Sequence

import certifi
import httpx
from loguru import logger

from cachesync.cells import row_to_cells, to_cell_data, to_user_entered
from cachesync.dates import normalize_date
from cachesync.exceptions import (
    APIError,
    AuthenticationError,
    NotFoundError,
    RateLimitedError,
    TransportError,
)
from cachesync.models import (
    LAST_UPDATED_COLUMN,
    PLACED_DATE_COLUMN,
    CacheRow,
    ExistingRow,
)

# API constants
API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
DEFAULT_TIMEOUT = 60

PLACED_DATE_PATTERN = "dd/mm/yyyy"
LAST_UPDATED_PATTERN = "yyyy-mm-dd hh:mm:ss"


class Store(ABC):
    """Abstract base class for the worksheet the reconciler writes to.

    Row positions are 0-based offsets in the worksheet; position 0 is the
    header row.
    """

    @abstractmethod
    def get_existing_rows(self) -> dict[str, ExistingRow]:
        """Read every data row, keyed by cache code."""
        ...

    @abstractmethod
    def ensure_target_ready(self, header: Sequence[str]) -> None:
        """Create the worksheet with a header row if it does not exist."""
        ...

    @abstractmethod
    def append_rows(self, rows: Sequence[CacheRow]) -> None:
        """Append rows after the last data row."""
        ...

    @abstractmethod
    def update_rows(self, updates: Sequence[tuple[int, CacheRow]]) -> None:
        """Overwrite rows in place at the given positions."""
        ...

    @abstractmethod
    def extend_coverage(self, column_count: int) -> None:
        """Stretch the filter and column formats over every row present."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Close any open connections."""
        ...


def _check_positions(updates: Sequence[tuple[int, CacheRow]]) -> None:
    for position, row in updates:
        if position < 1:
            raise ValueError(
                f"Cannot update {row.code} at position {position}: "
                "position 0 is the header row"
            )


class GoogleSheetsStore(Store):
    """Production store backed by one worksheet of a Google spreadsheet.

    The worksheet is addressed by title; its numeric sheetId is looked up on
    first use and cached.
    """

    def __init__(
        self,
        spreadsheet_id: str,
        sheet_name: str,
        access_token: str,
        timeout: int = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            spreadsheet_id: The spreadsheet identifier
            sheet_name: Title of the worksheet to sync into
            access_token: OAuth2 access token with the spreadsheets scope
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self._spreadsheet_id = spreadsheet_id
        self._sheet_name = sheet_name
        self._sheet_id: int | None = None
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        self._client = httpx.Client(
            timeout=timeout,
            verify=ssl_context,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
            transport=transport,
        )

    @property
    def sheet_name(self) -> str:
        return self._sheet_name

    def get_existing_rows(self) -> dict[str, ExistingRow]:
        """Read formatted values and key each data row by its code."""
        values = self._get_values()
        rows: dict[str, ExistingRow] = {}
        for position, raw in enumerate(values):
            # Skip header and empty rows
            if position == 0 or not raw or not raw[0]:
                continue
            row = CacheRow.from_values(raw)
            row = _with_iso_placed_date(row)
            rows[row.code] = ExistingRow(position=position, row=row)
        return rows

    def ensure_target_ready(self, header: Sequence[str]) -> None:
        """Create the worksheet, write the header, filter it and freeze it."""
        if self._lookup_sheet_id() is not None:
            return

        logger.info(f"Creating worksheet '{self._sheet_name}'")
        response = self._batch_update(
            [{"addSheet": {"properties": {"title": self._sheet_name}}}]
        )
        self._sheet_id = response["replies"][0]["addSheet"]["properties"]["sheetId"]

        header_range = (
            f"{_escape_sheet_title(self._sheet_name)}!A1:"
            f"{_column_index_to_letter(len(header) - 1)}1"
        )
        self._request(
            "PUT",
            self._values_url(header_range),
            params={"valueInputOption": "RAW"},
            json={"values": [list(header)]},
        )

        self._batch_update(
            [
                _basic_filter(self._sheet_id, row_count=2, column_count=len(header)),
                {
                    "updateSheetProperties": {
                        "properties": {
                            "sheetId": self._sheet_id,
                            "gridProperties": {"frozenRowCount": 1},
                        },
                        "fields": "gridProperties.frozenRowCount",
                    }
                },
            ]
        )

    def append_rows(self, rows: Sequence[CacheRow]) -> None:
        """Append rows with USER_ENTERED parsing so formulas and dates are typed."""
        if not rows:
            return
        values = [[to_user_entered(cell) for cell in row_to_cells(r)] for r in rows]
        self._request(
            "POST",
            self._values_url(f"{_escape_sheet_title(self._sheet_name)}!A:Z")
            + ":append",
            params={
                "valueInputOption": "USER_ENTERED",
                "insertDataOption": "INSERT_ROWS",
            },
            json={"values": values},
        )

    def update_rows(self, updates: Sequence[tuple[int, CacheRow]]) -> None:
        """Overwrite each row with one updateCells request."""
        if not updates:
            return
        _check_positions(updates)
        sheet_id = self._require_sheet_id()

        requests: list[dict[str, Any]] = []
        for position, row in updates:
            cells = row_to_cells(row)
            requests.append(
                {
                    "updateCells": {
                        "range": {
                            "sheetId": sheet_id,
                            "startRowIndex": position,
                            "endRowIndex": position + 1,
                            "startColumnIndex": 0,
                            "endColumnIndex": len(cells),
                        },
                        "rows": [{"values": [to_cell_data(c) for c in cells]}],
                        "fields": "userEnteredValue",
                    }
                }
            )
        self._batch_update(requests)

    def extend_coverage(self, column_count: int) -> None:
        """Reset the basic filter to cover all rows and format the date columns."""
        sheet_id = self._lookup_sheet_id()
        if sheet_id is None:
            return

        # Always cover at least header + one row for the filter
        row_count = max(len(self._get_values()), 2)

        self._batch_update(
            [
                _basic_filter(sheet_id, row_count=row_count, column_count=column_count),
                _column_format(sheet_id, PLACED_DATE_COLUMN, "DATE", PLACED_DATE_PATTERN),
                _column_format(
                    sheet_id, LAST_UPDATED_COLUMN, "DATE_TIME", LAST_UPDATED_PATTERN
                ),
            ]
        )

    def _get_values(self) -> list[list[Any]]:
        response = self._request(
            "GET", self._values_url(_escape_sheet_title(self._sheet_name))
        )
        values: list[list[Any]] = response.get("values", [])
        return values

    def _lookup_sheet_id(self) -> int | None:
        if self._sheet_id is not None:
            return self._sheet_id
        response = self._request(
            "GET",
            f"{API_BASE}/{self._spreadsheet_id}",
            params={"fields": "sheets.properties"},
        )
        for sheet in response.get("sheets", []):
            props = sheet.get("properties", {})
            if props.get("title") == self._sheet_name:
                self._sheet_id = props.get("sheetId", 0)
                return self._sheet_id
        return None

    def _require_sheet_id(self) -> int:
        sheet_id = self._lookup_sheet_id()
        if sheet_id is None:
            raise NotFoundError(f"Worksheet '{self._sheet_name}' not found")
        return sheet_id

    def _values_url(self, a1_range: str) -> str:
        return (
            f"{API_BASE}/{self._spreadsheet_id}/values/"
            f"{urllib.parse.quote(a1_range, safe='')}"
        )

    def _batch_update(self, requests: list[dict[str, Any]]) -> dict[str, Any]:
        return self._request(
            "POST",
            f"{API_BASE}/{self._spreadsheet_id}:batchUpdate",
            json={"requests": requests},
        )

    def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        """Make an authenticated request."""
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
            result: dict[str, Any] = response.json()
            return result
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in (403, 429):
                raise RateLimitedError(
                    f"Rate limited by Google Sheets API ({status})",
                    status_code=status,
                ) from e
            if status == 401:
                raise AuthenticationError("Invalid or expired access token") from e
            if status == 404:
                raise NotFoundError(
                    "Spreadsheet not found. Check the ID and sharing permissions."
                ) from e
            body = e.response.text
            raise APIError(f"API error ({status}): {body}", status_code=status) from e
        except httpx.RequestError as e:
            raise TransportError(f"Network error: {e}") from e

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()


class MemoryStore(Store):
    """In-memory worksheet that records every call for later inspection.

    Used by tests and by `sync --dry-run`. Row i of `rows` sits at position
    i + 1, just like a worksheet with a header.
    """

    def __init__(self, rows: Sequence[CacheRow] = ()) -> None:
        self.header: list[str] | None = None
        self.rows: list[CacheRow] = list(rows)
        self.append_calls: list[list[CacheRow]] = []
        self.update_calls: list[list[tuple[int, CacheRow]]] = []
        self.coverage_calls: list[int] = []

    def get_existing_rows(self) -> dict[str, ExistingRow]:
        return {
            row.code: ExistingRow(position=i + 1, row=row)
            for i, row in enumerate(self.rows)
            if row.code
        }

    def ensure_target_ready(self, header: Sequence[str]) -> None:
        if self.header is None:
            self.header = list(header)

    def append_rows(self, rows: Sequence[CacheRow]) -> None:
        self.append_calls.append(list(rows))
        self.rows.extend(rows)

    def update_rows(self, updates: Sequence[tuple[int, CacheRow]]) -> None:
        _check_positions(updates)
        self.update_calls.append(list(updates))
        for position, row in updates:
            self.rows[position - 1] = row

    def extend_coverage(self, column_count: int) -> None:
        self.coverage_calls.append(column_count)

    def close(self) -> None:
        """No-op for the in-memory store."""
        pass


def _with_iso_placed_date(row: CacheRow) -> CacheRow:
    placed = normalize_date(row.placed_date)
    if placed == row.placed_date:
        return row
    return replace(row, placed_date=placed)


def _basic_filter(sheet_id: int, row_count: int, column_count: int) -> dict[str, Any]:
    return {
        "setBasicFilter": {
            "filter": {
                "range": {
                    "sheetId": sheet_id,
                    "startRowIndex": 0,
                    "endRowIndex": row_count,
                    "startColumnIndex": 0,
                    "endColumnIndex": column_count,
                }
            }
        }
    }


def _column_format(
    sheet_id: int, column: int, number_type: str, pattern: str
) -> dict[str, Any]:
    return {
        "repeatCell": {
            "range": {
                "sheetId": sheet_id,
                "startRowIndex": 1,  # skip header
                "startColumnIndex": column,
                "endColumnIndex": column + 1,
            },
            "cell": {
                "userEnteredFormat": {
                    "numberFormat": {"type": number_type, "pattern": pattern}
                }
            },
            "fields": "userEnteredFormat.numberFormat",
        }
    }


def _escape_sheet_title(title: str) -> str:
    """Quote a worksheet title for A1 ranges ("New South Wales" -> 'New South Wales')."""
    needs_quoting = (
        " " in title
        or "'" in title
        or "!" in title
        or ":" in title
        or (len(title) > 0 and title[0].isdigit())
    )
    if needs_quoting:
        escaped = title.replace("'", "''")
        return f"'{escaped}'"
    return title


def _column_index_to_letter(index: int) -> str:
    """Convert a 0-based column index to A1 column letter(s).

    Examples: 0 -> A, 16 -> Q, 25 -> Z, 26 -> AA
    """
    result = ""
    idx = index
    while True:
        result = chr(ord("A") + (idx % 26)) + result
        idx = idx // 26 - 1
        if idx < 0:
            break
    return result
