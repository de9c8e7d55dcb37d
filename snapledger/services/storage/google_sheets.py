"""
Google Sheets Tabular Store

DESIGN DECISION: The remote multi-user store is a Google spreadsheet with
one worksheet per table and one row per record, every row tagged with the
owning user's id. It implements the generic TabularClient interface, so
the ledger never knows it is talking to a spreadsheet.

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions: an upsert of many rows is not atomic on the sheet.
  Matching rows are overwritten one call at a time before the new rows
  are appended, so a failure partway leaves some rows written. Upserts
  only carry default seeding and backup imports, both of which are
  best-effort and converge on the next load or import.
- Limited query capabilities (we filter and sort in Python)

Cells are written RAW and read back as strings; the row models in
`snapledger.models.rows` parse them back into typed values.
"""

from typing import Any, Optional, Sequence

import gspread
import structlog
from google.oauth2.service_account import Credentials
from gspread.exceptions import APIError
from gspread.utils import rowcol_to_a1
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from snapledger.config import GoogleSheetsSettings, get_settings
from snapledger.models.audit import AUDIT_COLUMNS
from snapledger.models.rows import CATEGORY_COLUMNS, TRANSACTION_COLUMNS
from snapledger.services.storage.interface import (
    NotFoundError,
    PreconditionError,
    StorageError,
    StoreUnavailableError,
    TableNotFoundError,
    TabularClient,
)

logger = structlog.get_logger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]

# Transient API failures (rate limits, 5xx) are worth another try
_retry_api = retry(
    retry=retry_if_exception_type(APIError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._settings = settings or get_settings().google_sheets
        if not self._settings.is_configured:
            raise PreconditionError(
                "Remote store credentials are not configured "
                "(GOOGLE_SHEETS_CREDENTIALS_PATH / GOOGLE_SHEETS_SPREADSHEET_ID)"
            )
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        retry=retry_if_exception_type(StoreUnavailableError),
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
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=SCOPES,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise PreconditionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StoreUnavailableError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise StoreUnavailableError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(
        self,
        title: str,
        columns: Sequence[str],
        create: bool = False,
    ) -> gspread.Worksheet:
        """
        Get a worksheet by title.

        With `create`, a missing worksheet is added with `columns` as its
        header row; without it, TableNotFoundError is raised.
        """
        spreadsheet = self.get_spreadsheet()
        try:
            return spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            if not create:
                raise TableNotFoundError(f"Worksheet not found: {title}")
            logger.info("worksheet_created", title=title)
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(list(columns))
            return sheet

    def table(self, title: str, columns: Sequence[str]) -> "GoogleSheetsTable":
        return GoogleSheetsTable(self, title, columns)

    def transactions_table(self) -> "GoogleSheetsTable":
        return self.table(self._settings.transactions_sheet_name, TRANSACTION_COLUMNS)

    def categories_table(self) -> "GoogleSheetsTable":
        return self.table(self._settings.categories_sheet_name, CATEGORY_COLUMNS)

    def events_table(self) -> "GoogleSheetsTable":
        return self.table(self._settings.events_sheet_name, AUDIT_COLUMNS)


def _cell(value: Any) -> str:
    return "" if value is None else str(value)


def _matches(row: dict[str, str], criteria: Optional[dict[str, Any]]) -> bool:
    if not criteria:
        return True
    return all(row.get(col, "") == _cell(value) for col, value in criteria.items())


class GoogleSheetsTable(TabularClient):
    """
    One worksheet used as a table.

    Row 1 is the header; every following non-empty row is a record.
    """

    def __init__(
        self,
        client: GoogleSheetsClient,
        title: str,
        columns: Sequence[str],
    ):
        self._client = client
        self._title = title
        self._columns = list(columns)

    def _sheet(self, create: bool = False) -> gspread.Worksheet:
        return self._client.get_worksheet(self._title, self._columns, create=create)

    def _to_cells(self, row: dict[str, Any]) -> list[str]:
        return [_cell(row.get(col)) for col in self._columns]

    def _range(self, row_number: int) -> str:
        return f"{rowcol_to_a1(row_number, 1)}:{rowcol_to_a1(row_number, len(self._columns))}"

    @_retry_api
    def _fetch(self, sheet: gspread.Worksheet) -> list[tuple[int, dict[str, str]]]:
        """All records with their 1-based sheet row numbers."""
        values = sheet.get_all_values()
        if not values:
            return []
        header = values[0]
        records = []
        for row_number, raw in enumerate(values[1:], start=2):
            if not any(raw):
                continue
            padded = raw + [""] * (len(header) - len(raw))
            records.append((row_number, dict(zip(header, padded))))
        return records

    @_retry_api
    def _append(self, sheet: gspread.Worksheet, rows: list[list[str]]) -> None:
        sheet.append_rows(rows, value_input_option="RAW")

    @_retry_api
    def _overwrite(self, sheet: gspread.Worksheet, row_number: int, cells: list[str]) -> None:
        sheet.update(range_name=self._range(row_number), values=[cells], value_input_option="RAW")

    @_retry_api
    def _delete_row(self, sheet: gspread.Worksheet, row_number: int) -> None:
        sheet.delete_rows(row_number)

    async def select(
        self,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        """Rows matching every filter, optionally sorted by one column."""
        try:
            sheet = self._sheet()
            rows = [row for _, row in self._fetch(sheet) if _matches(row, filters)]
        except (TableNotFoundError, PreconditionError, StoreUnavailableError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {self._title}: {e}")

        if order_by:
            rows.sort(key=lambda r: r.get(order_by, ""), reverse=descending)
        return rows

    async def insert(self, row: dict[str, Any]) -> None:
        """Append one row."""
        try:
            sheet = self._sheet(create=True)
            self._append(sheet, [self._to_cells(row)])
        except (PreconditionError, StoreUnavailableError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert into {self._title}: {e}")

    async def update(self, match: dict[str, Any], values: dict[str, Any]) -> None:
        """Overwrite columns of the first row matching `match`."""
        try:
            sheet = self._sheet()
            for row_number, existing in self._fetch(sheet):
                if _matches(existing, match):
                    merged = {**existing, **values}
                    self._overwrite(sheet, row_number, self._to_cells(merged))
                    return
        except TableNotFoundError as e:
            raise NotFoundError(str(e))
        except (PreconditionError, StoreUnavailableError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {self._title}: {e}")

        raise NotFoundError(f"No row in {self._title} matches {match}")

    async def delete(self, match: dict[str, Any]) -> None:
        """Delete matching rows, bottom-up so row numbers stay valid."""
        try:
            sheet = self._sheet()
            doomed = [n for n, row in self._fetch(sheet) if _matches(row, match)]
            for row_number in sorted(doomed, reverse=True):
                self._delete_row(sheet, row_number)
        except TableNotFoundError:
            return
        except (PreconditionError, StoreUnavailableError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete from {self._title}: {e}")

    async def upsert(
        self,
        rows: Sequence[dict[str, Any]],
        keys: Sequence[str] = ("id",),
    ) -> None:
        """Overwrite rows sharing `keys`, append the rest in one call."""
        if not rows:
            return
        try:
            sheet = self._sheet(create=True)
            existing = {
                tuple(row.get(k, "") for k in keys): n
                for n, row in self._fetch(sheet)
            }
            new_rows = []
            for row in rows:
                row_number = existing.get(tuple(_cell(row.get(k)) for k in keys))
                if row_number is None:
                    new_rows.append(self._to_cells(row))
                else:
                    self._overwrite(sheet, row_number, self._to_cells(row))
            if new_rows:
                self._append(sheet, new_rows)
        except (PreconditionError, StoreUnavailableError):
            raise
        except Exception as e:
            raise StorageError(f"Failed to upsert into {self._title}: {e}")
