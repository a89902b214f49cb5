"""Google Sheets and Drive API client.

This is the remote spreadsheet transport: values, formulas, structural
metadata, the tab list, the Drive change token and the row writes. Every remote
failure leaves this module already classified as a ``SheetsError``.
"""

import logging
from typing import Any, Callable, Optional, Sequence

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from ..config import settings
from ..discovery.merges import find_merge
from ..discovery.models import MergeRange
from ..discovery.structure import column_letter
from .errors import classify_error
from .models import (
    CheckboxValidation,
    DropdownValidation,
    SheetMetadata,
    SheetTab,
    SpreadsheetInfo,
    ValidationRule,
    WriteResult,
)

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.metadata.readonly",
]

SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"
METADATA_FIELDS = "sheets(properties,merges,filterViews,basicFilter,tables)"
VALIDATION_FIELDS = "sheets(properties(sheetId,title),data(rowData(values(dataValidation))))"


def a1_prefix(sheet_name: str) -> str:
    """Quoted ``'Sheet'!`` prefix for A1 ranges; empty for the default sheet."""
    if not sheet_name:
        return ""
    escaped = sheet_name.replace("'", "''")
    return f"'{escaped}'!"


def sheet_row_number(row_index: int, header_row_index: int) -> int:
    """1-based sheet row of data row ``row_index`` below the header."""
    return row_index + header_row_index + 2


def select_sheet(sheets: list[dict], sheet_name: str) -> Optional[dict]:
    """Match a sheet by title (case-insensitive), falling back to the first sheet."""
    if not sheets:
        return None
    if sheet_name:
        wanted = sheet_name.lower()
        for sheet in sheets:
            if sheet.get("properties", {}).get("title", "").lower() == wanted:
                return sheet
    return sheets[0]


def parse_merge_ranges(sheet: dict) -> list[MergeRange]:
    merges = []
    for merge in sheet.get("merges", []):
        try:
            merges.append(
                MergeRange(
                    start_row=merge.get("startRowIndex", 0),
                    end_row=merge.get("endRowIndex", 0),
                    start_col=merge.get("startColumnIndex", 0),
                    end_col=merge.get("endColumnIndex", 0),
                )
            )
        except ValueError:
            logger.debug(f"Skipping unbounded or empty merge {merge}")
    return merges


def is_structured_table(sheet: dict) -> bool:
    return bool(sheet.get("filterViews") or sheet.get("basicFilter") or sheet.get("tables"))


def parse_column_validations(sheet: dict) -> dict[int, ValidationRule]:
    """First validation rule found in each column of the scanned grid."""
    found: dict[int, ValidationRule] = {}
    for grid in sheet.get("data", [])[:1]:
        for row in grid.get("rowData", []):
            for col, cell in enumerate(row.get("values", [])):
                if col in found:
                    continue
                condition = (cell.get("dataValidation") or {}).get("condition") or {}
                rule_type = (condition.get("type") or "").upper()
                if rule_type == "ONE_OF_LIST":
                    options = [
                        value["userEnteredValue"]
                        for value in condition.get("values", [])
                        if "userEnteredValue" in value
                    ]
                    if options:
                        found[col] = DropdownValidation(options=options)
                elif rule_type == "BOOLEAN":
                    found[col] = CheckboxValidation()
    return found


def normalize_formula_rows(rows: list[list[Any]]) -> list[list[Optional[str]]]:
    """Keep only real formulas; every other cell becomes None."""
    normalized = []
    for row in rows:
        cells = []
        for cell in row:
            text = str(cell).strip() if cell is not None else ""
            cells.append(text if text.startswith("=") else None)
        normalized.append(cells)
    return normalized


def _row_values(row: Sequence[Optional[str]]) -> list[Any]:
    return ["" if value is None else value for value in row]


class GoogleSheetsClient:
    """Client for the Google Sheets v4 and Drive v3 APIs."""

    def __init__(self):
        self._service = None
        self._drive_service = None
        self._credentials = None

    def _get_credentials(self) -> Credentials:
        """Get or refresh OAuth2 credentials."""
        creds = None

        if settings.google_token_path.exists():
            creds = Credentials.from_authorized_user_file(str(settings.google_token_path), SCOPES)

        if not creds or not creds.valid:
            if creds and creds.expired and creds.refresh_token:
                creds.refresh(Request())
            else:
                if not settings.google_credentials_path.exists():
                    raise FileNotFoundError(
                        f"Google credentials file not found at {settings.google_credentials_path}. "
                        "Please download it from Google Cloud Console."
                    )
                flow = InstalledAppFlow.from_client_secrets_file(
                    str(settings.google_credentials_path), SCOPES
                )
                creds = flow.run_local_server(port=0)

            # Save credentials for next run
            settings.google_token_path.parent.mkdir(parents=True, exist_ok=True)
            with open(settings.google_token_path, "w") as token:
                token.write(creds.to_json())

        return creds

    @property
    def credentials(self) -> Credentials:
        if self._credentials is None:
            self._credentials = self._get_credentials()
        return self._credentials

    @property
    def service(self):
        """Get or create the Sheets API service."""
        if self._service is None:
            self._service = build("sheets", "v4", credentials=self.credentials)
        return self._service

    @property
    def drive_service(self):
        """Get or create the Drive API service."""
        if self._drive_service is None:
            self._drive_service = build("drive", "v3", credentials=self.credentials)
        return self._drive_service

    def _execute(self, make_request: Callable[[], Any]) -> Any:
        try:
            return make_request().execute()
        except Exception as e:
            raise classify_error(e) from e

    # Reads

    def list_spreadsheets(self) -> list[SpreadsheetInfo]:
        """List the user's spreadsheets, most recently modified first."""
        spreadsheets = []
        page_token = None
        while True:
            response = self._execute(
                lambda: self.drive_service.files().list(
                    q=f"mimeType='{SPREADSHEET_MIME_TYPE}' and trashed=false",
                    pageSize=100,
                    pageToken=page_token,
                    orderBy="modifiedTime desc",
                    fields="nextPageToken,files(id,name,modifiedTime,createdTime)",
                )
            )
            for file in response.get("files", []):
                if not file.get("id"):
                    continue
                spreadsheets.append(
                    SpreadsheetInfo(
                        id=file["id"],
                        name=file.get("name") or "Untitled",
                        modified_time=file.get("modifiedTime"),
                        created_time=file.get("createdTime"),
                    )
                )
            page_token = response.get("nextPageToken")
            if not page_token:
                return spreadsheets

    def fetch_values(
        self,
        spreadsheet_id: str,
        sheet_name: str,
        render_mode: str = "FORMATTED_VALUE",
    ) -> list[list[Any]]:
        """Read the sheet's fetch window as jagged rows."""
        range_notation = f"{a1_prefix(sheet_name)}{settings.fetch_range}"
        response = self._execute(
            lambda: self.service.spreadsheets()
            .values()
            .get(
                spreadsheetId=spreadsheet_id,
                range=range_notation,
                valueRenderOption=render_mode,
                dateTimeRenderOption="FORMATTED_STRING",
                majorDimension="ROWS",
            )
        )
        return response.get("values", [])

    def fetch_formulas(self, spreadsheet_id: str, sheet_name: str) -> list[list[Optional[str]]]:
        """Raw formulas aligned with ``fetch_values``; non-formula cells are None."""
        return normalize_formula_rows(self.fetch_values(spreadsheet_id, sheet_name, "FORMULA"))

    def fetch_metadata(self, spreadsheet_id: str, sheet_name: str) -> SheetMetadata:
        """Merges, structured-table flag and column validations of one sheet."""
        response = self._execute(
            lambda: self.service.spreadsheets().get(
                spreadsheetId=spreadsheet_id, fields=METADATA_FIELDS
            )
        )
        sheet = select_sheet(response.get("sheets", []), sheet_name)
        if sheet is None:
            return SheetMetadata(title=sheet_name)

        properties = sheet.get("properties", {})
        return SheetMetadata(
            sheet_id=properties.get("sheetId", 0),
            title=properties.get("title", sheet_name),
            merge_ranges=parse_merge_ranges(sheet),
            column_validations=self._fetch_column_validations(spreadsheet_id, sheet_name),
            is_structured_table=is_structured_table(sheet),
        )

    def _fetch_column_validations(
        self, spreadsheet_id: str, sheet_name: str
    ) -> dict[int, ValidationRule]:
        range_notation = f"{a1_prefix(sheet_name)}{settings.validation_scan_range}"
        try:
            response = self._execute(
                lambda: self.service.spreadsheets().get(
                    spreadsheetId=spreadsheet_id,
                    includeGridData=True,
                    ranges=[range_notation],
                    fields=VALIDATION_FIELDS,
                )
            )
        except Exception as e:
            # Validations only enrich the editor; the sheet is usable without them
            logger.warning(f"Could not read data validations for {spreadsheet_id}/{sheet_name}: {e}")
            return {}
        sheet = select_sheet(response.get("sheets", []), sheet_name)
        return parse_column_validations(sheet) if sheet else {}

    def fetch_change_token(self, spreadsheet_id: str) -> Optional[str]:
        """Drive ``modifiedTime`` of the spreadsheet file."""
        response = self._execute(
            lambda: self.drive_service.files().get(
                fileId=spreadsheet_id, fields="modifiedTime", supportsAllDrives=True
            )
        )
        return response.get("modifiedTime")

    def resolve_sheet_id(self, spreadsheet_id: str, sheet_name: str = "") -> int:
        """Numeric sheetId for a tab, matched by name."""
        response = self._execute(
            lambda: self.service.spreadsheets().get(
                spreadsheetId=spreadsheet_id, fields="sheets(properties(sheetId,title))"
            )
        )
        sheet = select_sheet(response.get("sheets", []), sheet_name)
        if sheet is None:
            return 0
        return sheet.get("properties", {}).get("sheetId", 0)

    def list_sheet_tabs(self, spreadsheet_id: str) -> list[SheetTab]:
        """Tabs of a spreadsheet in the order the API returns them."""
        response = self._execute(
            lambda: self.service.spreadsheets().get(
                spreadsheetId=spreadsheet_id, fields="sheets(properties(sheetId,title,index))"
            )
        )
        tabs = []
        for sheet in response.get("sheets", []):
            properties = sheet.get("properties")
            if not properties or properties.get("sheetId") is None:
                continue
            sheet_id = properties["sheetId"]
            tabs.append(
                SheetTab(
                    sheet_id=sheet_id,
                    title=properties.get("title") or f"Sheet{sheet_id + 1}",
                    index=properties.get("index", 0),
                )
            )
        return tabs

    # Writes

    def append_row(
        self, spreadsheet_id: str, sheet_name: str, row: Sequence[Optional[str]]
    ) -> WriteResult:
        """Append one row after the last row of the sheet's table."""
        body = {"majorDimension": "ROWS", "values": [_row_values(row)]}
        response = self._execute(
            lambda: self.service.spreadsheets()
            .values()
            .append(
                spreadsheetId=spreadsheet_id,
                range=f"{a1_prefix(sheet_name)}A1",
                valueInputOption="USER_ENTERED",
                insertDataOption="INSERT_ROWS",
                body=body,
            )
        )
        updates = response.get("updates", {})
        return WriteResult(
            success=True,
            spreadsheet_id=spreadsheet_id,
            sheet_name=sheet_name,
            updated_range=updates.get("updatedRange"),
            updated_cells=updates.get("updatedCells", 0),
        )

    def update_row(
        self,
        spreadsheet_id: str,
        sheet_name: str,
        row_index: int,
        row: Sequence[Optional[str]],
        header_row_index: int = 0,
        merge_ranges: Optional[Sequence[MergeRange]] = None,
    ) -> WriteResult:
        """Overwrite data row ``row_index`` (0-based, relative to the header).

        Cells of the row that belong to a merged range are also written
        across the whole merge so every cell of it carries the new value.
        """
        row_number = sheet_row_number(row_index, header_row_index)
        last_col = column_letter(max(len(row), 1) - 1)
        range_notation = f"{a1_prefix(sheet_name)}A{row_number}:{last_col}{row_number}"
        body = {"range": range_notation, "majorDimension": "ROWS", "values": [_row_values(row)]}

        response = self._execute(
            lambda: self.service.spreadsheets()
            .values()
            .update(
                spreadsheetId=spreadsheet_id,
                range=range_notation,
                valueInputOption="USER_ENTERED",
                body=body,
            )
        )

        merged = self._merges_in_row(merge_ranges or [], row_number - 1, row)
        if merged:
            sheet_id = self.resolve_sheet_id(spreadsheet_id, sheet_name)
            requests = [
                {
                    "repeatCell": {
                        "range": {
                            "sheetId": sheet_id,
                            "startRowIndex": merge.start_row,
                            "endRowIndex": merge.end_row,
                            "startColumnIndex": merge.start_col,
                            "endColumnIndex": merge.end_col,
                        },
                        "cell": {"userEnteredValue": {"stringValue": value}},
                        "fields": "userEnteredValue",
                    }
                }
                for merge, value in merged
            ]
            self._execute(
                lambda: self.service.spreadsheets().batchUpdate(
                    spreadsheetId=spreadsheet_id, body={"requests": requests}
                )
            )

        return WriteResult(
            success=True,
            spreadsheet_id=spreadsheet_id,
            sheet_name=sheet_name,
            updated_range=response.get("updatedRange", range_notation),
            updated_cells=response.get("updatedCells", 0),
        )

    def delete_row(
        self, spreadsheet_id: str, sheet_name: str, row_index: int, header_row_index: int = 0
    ) -> WriteResult:
        """Remove data row ``row_index`` from the sheet; rows below shift up."""
        grid_row = sheet_row_number(row_index, header_row_index) - 1
        sheet_id = self.resolve_sheet_id(spreadsheet_id, sheet_name)
        request = {
            "deleteDimension": {
                "range": {
                    "sheetId": sheet_id,
                    "dimension": "ROWS",
                    "startIndex": grid_row,
                    "endIndex": grid_row + 1,
                }
            }
        }
        self._execute(
            lambda: self.service.spreadsheets().batchUpdate(
                spreadsheetId=spreadsheet_id, body={"requests": [request]}
            )
        )
        logger.info(f"Deleted row {grid_row + 1} of {spreadsheet_id}/{sheet_name}")
        return WriteResult(
            success=True,
            spreadsheet_id=spreadsheet_id,
            sheet_name=sheet_name,
            updated_range=f"{a1_prefix(sheet_name)}{grid_row + 1}:{grid_row + 1}",
        )

    @staticmethod
    def _merges_in_row(
        merges: Sequence[MergeRange], grid_row: int, row: Sequence[Optional[str]]
    ) -> list[tuple[MergeRange, str]]:
        """Distinct merges crossed by the row, each with the value of its first cell in the row."""
        seen = []
        for col, value in enumerate(row):
            merge = find_merge(merges, grid_row, col)
            if merge is not None and all(merge is not m for m, _ in seen):
                seen.append((merge, "" if value is None else str(value)))
        return seen
