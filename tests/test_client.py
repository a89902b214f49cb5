"""Tests for the Google Sheets transport."""

from unittest.mock import MagicMock

import httplib2
import pytest
from googleapiclient.errors import HttpError

from sheetlens.config import settings
from sheetlens.discovery.models import MergeRange
from sheetlens.sheets import GoogleSheetsClient
from sheetlens.sheets.client import (
    a1_prefix,
    is_structured_table,
    normalize_formula_rows,
    parse_column_validations,
    parse_merge_ranges,
    select_sheet,
    sheet_row_number,
)
from sheetlens.sheets.errors import FatalError, PermissionDeniedError, TransientError
from sheetlens.sheets.models import CheckboxValidation, DropdownValidation


def http_error(status: int, message: str = "") -> HttpError:
    content = f'{{"error": {{"message": "{message}"}}}}'.encode() if message else b""
    return HttpError(httplib2.Response({"status": str(status)}), content)


@pytest.fixture
def client():
    sheets_client = GoogleSheetsClient()
    sheets_client._service = MagicMock()
    sheets_client._drive_service = MagicMock()
    return sheets_client


class TestHelpers:
    """Test pure helpers used to build requests and parse responses."""

    def test_a1_prefix_quotes_names(self):
        assert a1_prefix("Sheet1") == "'Sheet1'!"
        assert a1_prefix("Q1 Budget") == "'Q1 Budget'!"
        assert a1_prefix("Bob's") == "'Bob''s'!"
        assert a1_prefix("") == ""

    def test_sheet_row_number_includes_header_offset(self):
        assert sheet_row_number(0, 0) == 2
        assert sheet_row_number(0, 2) == 4
        assert sheet_row_number(5, 1) == 8

    def test_select_sheet_is_case_insensitive(self):
        sheets = [{"properties": {"title": "Main"}}, {"properties": {"title": "Archive"}}]

        assert select_sheet(sheets, "archive") is sheets[1]
        assert select_sheet(sheets, "Missing") is sheets[0]
        assert select_sheet([], "Main") is None

    def test_parse_merge_ranges_skips_empty(self):
        sheet = {
            "merges": [
                {"startRowIndex": 0, "endRowIndex": 1, "startColumnIndex": 0, "endColumnIndex": 4},
                {"endRowIndex": 3, "endColumnIndex": 2},
                {"startRowIndex": 2, "endRowIndex": 2, "startColumnIndex": 0, "endColumnIndex": 1},
            ]
        }

        assert parse_merge_ranges(sheet) == [
            MergeRange(start_row=0, end_row=1, start_col=0, end_col=4),
            MergeRange(start_row=0, end_row=3, start_col=0, end_col=2),
        ]

    def test_structured_table_detection(self):
        assert is_structured_table({"basicFilter": {"range": {}}}) is True
        assert is_structured_table({"filterViews": [{"filterViewId": 1}]}) is True
        assert is_structured_table({"properties": {}}) is False

    def test_parse_column_validations_first_rule_wins(self):
        sheet = {
            "data": [
                {
                    "rowData": [
                        {
                            "values": [
                                {},
                                {
                                    "dataValidation": {
                                        "condition": {
                                            "type": "ONE_OF_LIST",
                                            "values": [
                                                {"userEnteredValue": "Open"},
                                                {"userEnteredValue": "Done"},
                                            ],
                                        }
                                    }
                                },
                            ]
                        },
                        {
                            "values": [
                                {"dataValidation": {"condition": {"type": "BOOLEAN"}}},
                                {"dataValidation": {"condition": {"type": "BOOLEAN"}}},
                            ]
                        },
                    ]
                }
            ]
        }

        validations = parse_column_validations(sheet)

        assert validations == {
            0: CheckboxValidation(),
            1: DropdownValidation(options=["Open", "Done"]),
        }

    def test_unsupported_validation_is_ignored(self):
        sheet = {
            "data": [
                {"rowData": [{"values": [{"dataValidation": {"condition": {"type": "NUMBER_GREATER"}}}]}]}
            ]
        }

        assert parse_column_validations(sheet) == {}

    def test_normalize_formula_rows(self):
        rows = [["=SUM(A1:A3)", "12", None], [" =B2*2", ""]]

        assert normalize_formula_rows(rows) == [["=SUM(A1:A3)", None, None], ["=B2*2", None]]


class TestReads:
    def test_list_spreadsheets_follows_pages(self, client):
        files = client._drive_service.files().list().execute
        files.side_effect = [
            {"files": [{"id": "a", "name": "Budget", "modifiedTime": "2024-03-02T00:00:00Z"}], "nextPageToken": "p2"},
            {"files": [{"id": "b"}, {"name": "no id"}]},
        ]

        spreadsheets = client.list_spreadsheets()

        assert [(s.id, s.name) for s in spreadsheets] == [("a", "Budget"), ("b", "Untitled")]
        assert client._drive_service.files().list.call_args.kwargs["pageToken"] == "p2"

    def test_fetch_values_uses_quoted_range(self, client):
        get = client._service.spreadsheets().values().get
        get().execute.return_value = {"values": [["Name"], ["Alice"]]}

        rows = client.fetch_values("sheet-1", "Q1 Budget")

        assert rows == [["Name"], ["Alice"]]
        assert get.call_args.kwargs["range"] == f"'Q1 Budget'!{settings.fetch_range}"
        assert get.call_args.kwargs["valueRenderOption"] == "FORMATTED_VALUE"

    def test_fetch_change_token(self, client):
        client._drive_service.files().get().execute.return_value = {
            "modifiedTime": "2024-03-02T10:00:00.000Z"
        }

        assert client.fetch_change_token("sheet-1") == "2024-03-02T10:00:00.000Z"

    def test_fetch_metadata(self, client):
        client._service.spreadsheets().get().execute.side_effect = [
            {
                "sheets": [
                    {"properties": {"sheetId": 1, "title": "Other"}},
                    {
                        "properties": {"sheetId": 3, "title": "Budget"},
                        "merges": [
                            {"startRowIndex": 0, "endRowIndex": 1, "startColumnIndex": 0, "endColumnIndex": 3}
                        ],
                        "basicFilter": {"range": {"sheetId": 3}},
                    },
                ]
            },
            {
                "sheets": [
                    {
                        "properties": {"sheetId": 3, "title": "Budget"},
                        "data": [
                            {"rowData": [{"values": [{"dataValidation": {"condition": {"type": "BOOLEAN"}}}]}]}
                        ],
                    }
                ]
            },
        ]

        metadata = client.fetch_metadata("sheet-1", "Budget")

        assert metadata.sheet_id == 3
        assert metadata.merge_ranges == [MergeRange(start_row=0, end_row=1, start_col=0, end_col=3)]
        assert metadata.is_structured_table is True
        assert metadata.column_validations == {0: CheckboxValidation()}

    def test_validation_failure_keeps_metadata(self, client):
        client._service.spreadsheets().get().execute.side_effect = [
            {"sheets": [{"properties": {"sheetId": 0, "title": "Sheet1"}}]},
            http_error(500),
        ]

        metadata = client.fetch_metadata("sheet-1", "Sheet1")

        assert metadata.title == "Sheet1"
        assert metadata.column_validations == {}


    def test_list_sheet_tabs(self, client):
        get = client._service.spreadsheets().get
        get().execute.return_value = {
            "sheets": [
                {"properties": {"sheetId": 0, "title": "Budget", "index": 0}},
                {"properties": {"sheetId": 4, "index": 1}},
                {"properties": {"title": "No id"}},
                {},
            ]
        }

        tabs = client.list_sheet_tabs("sheet-1")

        assert [(t.sheet_id, t.title, t.index) for t in tabs] == [(0, "Budget", 0), (4, "Sheet5", 1)]
        assert get.call_args.kwargs["fields"] == "sheets(properties(sheetId,title,index))"


class TestWrites:
    def test_update_row_writes_header_relative_range(self, client):
        update = client._service.spreadsheets().values().update
        update().execute.return_value = {"updatedRange": "'Sheet1'!A4:C4", "updatedCells": 3}

        result = client.update_row("sheet-1", "Sheet1", 0, ["Alice", "150", None], header_row_index=2)

        assert update.call_args.kwargs["range"] == "'Sheet1'!A4:C4"
        assert update.call_args.kwargs["body"]["values"] == [["Alice", "150", ""]]
        assert update.call_args.kwargs["valueInputOption"] == "USER_ENTERED"
        assert result.updated_cells == 3
        client._service.spreadsheets().batchUpdate.assert_not_called()

    def test_update_row_fills_merged_cells(self, client):
        client._service.spreadsheets().values().update().execute.return_value = {}
        client._service.spreadsheets().get().execute.return_value = {
            "sheets": [{"properties": {"sheetId": 7, "title": "Sheet1"}}]
        }
        merge = MergeRange(start_row=2, end_row=4, start_col=1, end_col=3)

        client.update_row(
            "sheet-1", "Sheet1", 0, ["Alice", "150", "150"], header_row_index=1, merge_ranges=[merge]
        )

        body = client._service.spreadsheets().batchUpdate.call_args.kwargs["body"]
        (request,) = body["requests"]
        assert request["repeatCell"]["range"] == {
            "sheetId": 7,
            "startRowIndex": 2,
            "endRowIndex": 4,
            "startColumnIndex": 1,
            "endColumnIndex": 3,
        }
        assert request["repeatCell"]["cell"] == {"userEnteredValue": {"stringValue": "150"}}

    def test_delete_row_removes_grid_row_below_header(self, client):
        client._service.spreadsheets().get().execute.return_value = {
            "sheets": [{"properties": {"sheetId": 7, "title": "Sheet1"}}]
        }

        result = client.delete_row("sheet-1", "Sheet1", 2, header_row_index=1)

        body = client._service.spreadsheets().batchUpdate.call_args.kwargs["body"]
        (request,) = body["requests"]
        assert request["deleteDimension"]["range"] == {
            "sheetId": 7,
            "dimension": "ROWS",
            "startIndex": 4,
            "endIndex": 5,
        }
        assert result.updated_range == "'Sheet1'!5:5"

    def test_delete_row_permission_denied(self, client):
        client._service.spreadsheets().get().execute.return_value = {"sheets": []}
        client._service.spreadsheets().batchUpdate().execute.side_effect = http_error(403)

        with pytest.raises(PermissionDeniedError):
            client.delete_row("sheet-1", "Sheet1", 0)

    def test_append_row(self, client):
        append = client._service.spreadsheets().values().append
        append().execute.return_value = {"updates": {"updatedRange": "'Sheet1'!A9:B9", "updatedCells": 2}}

        result = client.append_row("sheet-1", "Sheet1", ["Cara", None])

        assert result.updated_range == "'Sheet1'!A9:B9"
        assert append.call_args.kwargs["insertDataOption"] == "INSERT_ROWS"
        assert append.call_args.kwargs["body"]["values"] == [["Cara", ""]]

    def test_server_error_is_transient(self, client):
        client._service.spreadsheets().values().append().execute.side_effect = http_error(503)

        with pytest.raises(TransientError) as exc_info:
            client.append_row("sheet-1", "Sheet1", ["Cara"])

        assert exc_info.value.status == 503

    def test_bad_request_is_fatal(self, client):
        client._service.spreadsheets().values().append().execute.side_effect = http_error(
            400, "Unable to parse range"
        )

        with pytest.raises(FatalError) as exc_info:
            client.append_row("sheet-1", "Sheet1", ["Cara"])

        assert exc_info.value.raw_message == "Unable to parse range"
