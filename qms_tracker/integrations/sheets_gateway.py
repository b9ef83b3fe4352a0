"""
Google Sheets Gateway — the catalog sheet.

Reads the rectangular block of catalog rows and writes single cells back.
Direct `requests` calls to the Sheets API elsewhere are FORBIDDEN.

  - fetch_rows():   GET  values/<sheet>!A:R  (API key or bearer token)
  - update_cell():  PUT  values/'<sheet>'!<col><row>?valueInputOption=USER_ENTERED
                    (bearer token required)

Failures are raised, never swallowed:
  - read  → SourceUnavailableError
  - write → WriteFailureError carrying the Sheets API's own message
"""

from __future__ import annotations

import logging
import re
from urllib.parse import quote

from qms_tracker.core.exceptions import SourceUnavailableError, ValidationError, WriteFailureError
from qms_tracker.integrations.base import GoogleGateway

logger = logging.getLogger(__name__)

SHEETS_API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"

_COLUMN_RE = re.compile(r"^[A-Z]{1,3}$")


class SheetsGateway(GoogleGateway):
    """Google Sheets values API for one spreadsheet tab.

    Usage:
        from qms_tracker.integrations import sheets_gateway as sheets_module
        rows = sheets_module.sheets_gateway.fetch_rows()
    """

    name = "sheets"

    def __init__(
        self,
        spreadsheet_id: str | None = None,
        sheet_name: str = "Data",
        cell_range: str = "A:R",
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name
        self.cell_range = cell_range

    def _values_url(self, a1_range: str) -> str:
        if not self.spreadsheet_id:
            raise SourceUnavailableError("sheets", "SPREADSHEET_ID is not configured")
        return f"{SHEETS_API_BASE}/{self.spreadsheet_id}/values/{quote(a1_range, safe='')}"

    def fetch_rows(self) -> list[list[str]]:
        """Return all rows of the configured range, header row included.

        Raises:
            SourceUnavailableError: the sheet could not be read.
        """
        url = self._values_url(f"{self.sheet_name}!{self.cell_range}")
        result = self.request("GET", url)
        if not result.ok:
            logger.error("Failed to fetch sheet data: %s (status=%s)", result.error, result.status_code)
            raise SourceUnavailableError("sheets", result.error or "unknown error", result.status_code)
        rows = (result.data or {}).get("values") or []
        logger.debug("Fetched %d sheet rows in %dms", len(rows), result.duration_ms)
        return rows

    def update_cell(self, row_index: int, column: str, value: str) -> bool:
        """Write one string value to ``<column><row_index>``.

        Raises:
            ValidationError: column is not a letter reference or row < 2.
            WriteFailureError: the write was rejected or could not be sent.
        """
        if not self.spreadsheet_id:
            raise WriteFailureError("SPREADSHEET_ID is not configured", row_index=row_index, column=column)
        column = (column or "").upper()
        if not _COLUMN_RE.match(column):
            raise ValidationError(f"Invalid column {column!r}", details={"column": column})
        if not isinstance(row_index, int) or row_index < 2:
            raise ValidationError(f"Invalid row {row_index!r}", details={"row_index": row_index})

        # Always quote the sheet name in case it contains spaces
        url = self._values_url(f"'{self.sheet_name}'!{column}{row_index}")
        result = self.request(
            "PUT", url,
            params={"valueInputOption": "USER_ENTERED"},
            json_body={"values": [[value]]},
            require_token=True,
        )
        if not result.ok:
            logger.error("Sheets write rejected %s%d: %s", column, row_index, result.error)
            raise WriteFailureError(
                result.error or "unknown error",
                row_index=row_index, column=column, status_code=result.status_code,
            )
        logger.info("Sheets cell %s%d updated", column, row_index)
        return True


# Module-level singleton, configured by the app factory.
# In tests, override via:
#   from qms_tracker.integrations import sheets_gateway as sheets_module
#   sheets_module.sheets_gateway = FakeSheets(...)
sheets_gateway = SheetsGateway()
