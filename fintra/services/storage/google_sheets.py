"""
Google Sheets Storage Implementation

Stores the key-value pairs as rows of one worksheet so the user can look
at (and back up) their data directly in Sheets.

Layout: `key | part | value | updated_at`. A Sheets cell holds at most
50,000 characters, so a long value is split across consecutive parts and
joined back on read.

TRADEOFFS:
- Every write rewrites all the rows of its key
- No transactions (the finance store writes one key at a time)
"""

import asyncio
import datetime as dt
from typing import Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from fintra.config import get_settings
from fintra.config.settings import GoogleSheetsSettings
from fintra.services.storage.interface import (
    ConnectionError,
    KeyValueStoreInterface,
    StorageError,
)


KV_COLUMNS = ["key", "part", "value", "updated_at"]

# Leave headroom below the 50,000 character cell limit
MAX_CELL_CHARS = 45000


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

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

    def get_kv_sheet(self) -> gspread.Worksheet:
        """Get or create the key-value worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.worksheet_name)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=self._settings.worksheet_name,
                rows=100,
                cols=len(KV_COLUMNS),
            )
            sheet.append_row(KV_COLUMNS)
        return sheet


def split_value(value: str, size: int = MAX_CELL_CHARS) -> list[str]:
    """Split a value into cell-sized parts (at least one, possibly empty)."""
    if not value:
        return [""]
    return [value[i:i + size] for i in range(0, len(value), size)]


class GoogleSheetsKeyValueStore(KeyValueStoreInterface):
    """
    Google Sheets implementation of the key-value store.

    gspread is synchronous, so every API call runs in a worker thread.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _rows(self) -> list[list[str]]:
        """All data rows (header excluded)."""
        sheet = self._client.get_kv_sheet()
        return sheet.get_all_values()[1:]

    def _read_value(self, key: str) -> Optional[str]:
        parts: list[tuple[int, str]] = []
        for row in self._rows():
            if row and row[0] == key:
                part = int(row[1]) if len(row) > 1 and row[1] else 0
                value = row[2] if len(row) > 2 else ""
                parts.append((part, value))

        if not parts:
            return None
        parts.sort(key=lambda item: item[0])
        return "".join(value for _, value in parts)

    def _delete_key_rows(self, sheet: gspread.Worksheet, key: str) -> int:
        all_rows = sheet.get_all_values()
        # Sheet rows are 1-based and row 1 is the header
        matches = [
            idx
            for idx, row in enumerate(all_rows[1:], start=2)
            if row and row[0] == key
        ]
        # Bottom-up so earlier indexes stay valid
        for idx in reversed(matches):
            sheet.delete_rows(idx)
        return len(matches)

    def _write_value(self, key: str, value: str) -> None:
        sheet = self._client.get_kv_sheet()
        updated_at = dt.datetime.now(dt.timezone.utc).isoformat()
        rows = [
            [key, str(part), chunk, updated_at]
            for part, chunk in enumerate(split_value(value))
        ]
        self._delete_key_rows(sheet, key)
        sheet.append_rows(rows, value_input_option="RAW")

    def _delete_value(self, key: str) -> bool:
        sheet = self._client.get_kv_sheet()
        return self._delete_key_rows(sheet, key) > 0

    async def get(self, key: str) -> Optional[str]:
        """Read and join the parts of a key."""
        try:
            return await asyncio.to_thread(self._read_value, key)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {key}: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def set(self, key: str, value: str) -> bool:
        """Replace every row of a key with the parts of the new value."""
        try:
            await asyncio.to_thread(self._write_value, key, value)
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save {key}: {e}")

    async def delete(self, key: str) -> bool:
        try:
            return await asyncio.to_thread(self._delete_value, key)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete {key}: {e}")

    async def keys(self) -> list[str]:
        try:
            rows = await asyncio.to_thread(self._rows)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list keys: {e}")
        return list(dict.fromkeys(row[0] for row in rows if row and row[0]))
