"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is supported as a storage backend because:
1. Small-business owners can view their documents directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data
- No transactions (the engine handles this with careful ordering)
- Limited query capabilities (we filter in Python)

Each table is one worksheet. Row 1 holds the column names; new
columns are appended to the header the first time a row uses them.
Cells hold plain text so the sheet stays human-readable; the engine's
pydantic models turn the text back into Decimals and dates.
"""

import json
from typing import Any, Optional, Sequence

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from docengine.config import get_settings
from docengine.services.storage.interface import (
    ConnectionError,
    DuplicateError,
    Filter,
    StorageError,
    StorageInterface,
    sort_key,
)


transient_retry = retry(
    retry=retry_if_exception_type(gspread.exceptions.APIError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def encode_cell(value: Any) -> str:
    """Python value -> sheet cell text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def decode_cell(text: str) -> Optional[str]:
    """Sheet cell text -> row value (empty cells are None)."""
    return text if text != "" else None


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_table_sheet(self, table: str) -> gspread.Worksheet:
        """Get or create the worksheet backing a table."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(table)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=table,
                rows=self._settings.default_sheet_rows,
                cols=40,
            )
            sheet.append_row(["id"])
        return sheet


class GoogleSheetsStorage(StorageInterface):
    """
    Google Sheets implementation of table storage.

    Every call re-reads the worksheet, so edits made by hand in the
    spreadsheet are picked up immediately.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @transient_retry
    def _load(self, table: str) -> tuple[Any, list[str], list[dict]]:
        """Read a worksheet -> (sheet, header, rows with their sheet row index)."""
        sheet = self._client.get_table_sheet(table)
        values = sheet.get_all_values()
        header = values[0] if values else []
        rows = []
        for index, raw in enumerate(values[1:], start=2):
            if not any(raw):
                continue
            row = {
                column: decode_cell(raw[i] if i < len(raw) else "")
                for i, column in enumerate(header)
                if column
            }
            row["__row__"] = index
            rows.append(row)
        return sheet, header, rows

    @staticmethod
    def _strip(row: dict) -> dict:
        return {k: v for k, v in row.items() if k != "__row__"}

    def _ensure_columns(self, sheet, header: list[str], keys: Sequence[str]) -> list[str]:
        header = list(header)
        for key in keys:
            if key not in header:
                header.append(key)
                sheet.update_cell(1, len(header), key)
        return header

    async def query(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        try:
            _, _, rows = self._load(table)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to query {table}: {e}")

        matching = [
            self._strip(row) for row in rows
            if all(f.matches(row) for f in filters)
        ]
        if order_by:
            matching.sort(key=sort_key(order_by), reverse=descending)
        if limit is not None:
            matching = matching[:limit]
        return matching

    async def count(self, table: str, filters: Sequence[Filter] = ()) -> int:
        return len(await self.query(table, filters))

    async def insert(self, table: str, rows: Sequence[dict]) -> list[dict]:
        try:
            sheet, header, existing = self._load(table)
            existing_ids = {row.get("id") for row in existing if row.get("id")}
            for row in rows:
                if row.get("id") and str(row["id"]) in existing_ids:
                    raise DuplicateError(f"Duplicate id in {table}: {row['id']}")

            keys: list[str] = []
            for row in rows:
                for key in row:
                    if key not in keys:
                        keys.append(key)
            header = self._ensure_columns(sheet, header, keys)

            sheet.append_rows(
                [[encode_cell(row.get(column)) for column in header] for row in rows],
                value_input_option="RAW",
            )
            return [dict(row) for row in rows]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert into {table}: {e}")

    async def update(
        self,
        table: str,
        filters: Sequence[Filter],
        values: dict,
    ) -> list[dict]:
        try:
            sheet, header, rows = self._load(table)
            header = self._ensure_columns(sheet, header, list(values))

            updated = []
            for row in rows:
                if not all(f.matches(row) for f in filters):
                    continue
                for key, value in values.items():
                    sheet.update_cell(row["__row__"], header.index(key) + 1, encode_cell(value))
                    row[key] = value
                updated.append(self._strip(row))
            return updated
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {table}: {e}")

    async def delete(self, table: str, filters: Sequence[Filter]) -> int:
        try:
            sheet, _, rows = self._load(table)
            doomed = [row["__row__"] for row in rows if all(f.matches(row) for f in filters)]
            # Bottom-up so earlier indices stay valid
            for index in sorted(doomed, reverse=True):
                sheet.delete_rows(index)
            return len(doomed)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete from {table}: {e}")
